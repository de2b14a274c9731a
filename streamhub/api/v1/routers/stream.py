from fastapi import APIRouter, Query

from streamhub.api.v1.dependency import Supervisor
from streamhub.api.v1.schemas.base import ApiOut
from streamhub.api.v1.schemas.stream import (
    AddStreamIn,
    ListStreamsOut,
    PlaybackUrlOut,
    StreamOut,
)

router = APIRouter(prefix="/stream")


@router.get("/list_streams")
async def list_streams(supervisor: Supervisor) -> ApiOut[ListStreamsOut]:
    """List every ingested stream with its current status."""
    entries = sorted(supervisor.list_streams(), key=lambda e: e.name)
    return ApiOut[ListStreamsOut](
        results=ListStreamsOut(streams=[StreamOut.from_entry(e) for e in entries])
    )


@router.get("/get_stream")
async def get_stream(
    supervisor: Supervisor,
    name: str = Query(..., min_length=1, description="Stream name"),
) -> ApiOut[StreamOut]:
    entry = supervisor.get_stream(name)
    return ApiOut[StreamOut](results=StreamOut.from_entry(entry))


@router.get("/get_playback_url")
async def get_playback_url(
    supervisor: Supervisor,
    name: str = Query(..., min_length=1, description="Stream name"),
) -> ApiOut[PlaybackUrlOut]:
    """Resolve the HLS playlist URL of an active stream."""
    url = supervisor.resolve_playback_url(name)
    return ApiOut[PlaybackUrlOut](results=PlaybackUrlOut(name=name, playback_url=url))


@router.post("/add_stream")
async def add_stream(stream: AddStreamIn, supervisor: Supervisor) -> ApiOut[StreamOut]:
    """Launch an additional stream at runtime."""
    entry = await supervisor.launch_stream(stream.name, stream.source_url)
    return ApiOut[StreamOut](results=StreamOut.from_entry(entry))
