from typing import Annotated

from fastapi import Depends, Request

from streamhub.domain.ingest import IngestSupervisor
from streamhub.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


def get_ingest_supervisor(request: Request) -> IngestSupervisor:
    """Supervisor owned by the application lifespan."""
    supervisor = getattr(request.app.state, "supervisor", None)
    if supervisor is None:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_STATE,
            errmesg="Ingest supervisor is not running",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )
    return supervisor


Supervisor = Annotated[IngestSupervisor, Depends(get_ingest_supervisor)]
