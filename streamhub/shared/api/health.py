from fastapi import APIRouter, Request

from .errors import E_UNAVAILABLE
from .utils import ApiFailure, ApiSuccess, make_response


router = APIRouter()


@router.get('/health', response_model=ApiSuccess)
async def health(request: Request):
    supervisor = getattr(request.app.state, 'supervisor', None)
    if supervisor is not None and supervisor.stopped:
        failure = ApiFailure(errcode=E_UNAVAILABLE, errmesg='Ingest supervisor is stopped')
        return make_response(failure, status_code=503)
    return ApiSuccess(results="OK")
