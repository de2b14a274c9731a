from datetime import datetime

from pydantic import BaseModel, Field, field_serializer, field_validator

from streamhub.domain.ingest import StreamEntry, validate_stream_name
from streamhub.schemas.stream_status import StreamStatus

from .serializers import serialize_utc_datetime


class StreamOut(BaseModel):
    name: str
    source_url: str
    status: StreamStatus
    last_update: datetime
    viewer_count: int = 0

    @field_serializer("last_update")
    def serialize_datetime(self, v: datetime) -> str:
        return serialize_utc_datetime(v)

    @classmethod
    def from_entry(cls, entry: StreamEntry) -> "StreamOut":
        return cls(
            name=entry.name,
            source_url=entry.source_url,
            status=entry.status,
            last_update=entry.last_update,
            viewer_count=entry.viewer_count,
        )


class ListStreamsOut(BaseModel):
    streams: list[StreamOut]


class PlaybackUrlOut(BaseModel):
    name: str
    playback_url: str = Field(description="HLS playlist URL of the active stream")


class AddStreamIn(BaseModel):
    name: str = Field(description="Stream name, used as the output subdirectory")
    source_url: str = Field(description="HLS, RTMP, RTSP or MP4 source URL")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        validate_stream_name(v)
        return v

    @field_validator("source_url")
    @classmethod
    def validate_source_url(cls, v: str) -> str:
        return v.strip()
