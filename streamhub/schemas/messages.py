"""Typed pub/sub message variants.

Payloads are decoded once at the boundary into one of the variants below,
selected by the ``kind`` discriminator; handlers receive fully validated models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from streamhub.schemas.stream_status import StreamStatus
from streamhub.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class VideoStatusUpdate(BaseModel):
    kind: Literal["video_status_update"] = "video_status_update"
    video_id: int
    status: str
    progress: int = Field(0, ge=0, le=100)


class LiveEvent(BaseModel):
    kind: Literal["live_event"] = "live_event"
    live_id: int
    event: str
    extra: dict[str, Any] = Field(default_factory=dict)


class ChatPosted(BaseModel):
    kind: Literal["chat_posted"] = "chat_posted"
    live_id: int
    user_id: int
    username: str
    content: str


class StreamStatusChanged(BaseModel):
    """Published by the ingest supervisor on every stream status transition."""

    kind: Literal["stream_status_changed"] = "stream_status_changed"
    name: str
    source_url: str
    status: StreamStatus
    changed_at: datetime


Message = Annotated[
    VideoStatusUpdate | LiveEvent | ChatPosted | StreamStatusChanged,
    Field(discriminator="kind"),
]

MessageKind = Literal["video_status_update", "live_event", "chat_posted", "stream_status_changed"]

_message_adapter: TypeAdapter[Message] = TypeAdapter(Message)


def decode_message(payload: bytes | str) -> Message:
    """Decode a raw JSON payload into its typed variant.

    Raises:
        AppError: E_INVALID_MESSAGE when the payload is not valid JSON or does not
            match any variant.
    """
    try:
        return _message_adapter.validate_json(payload)
    except ValidationError as exc:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_MESSAGE,
            errmesg=f"Invalid message payload: {exc.error_count()} error(s): {exc.errors()[:1]}",
            status_code=HttpStatusCode.BAD_REQUEST,
        ) from exc


def encode_message(message: Message) -> bytes:
    return message.model_dump_json().encode("utf-8")


__all__ = [
    "ChatPosted",
    "LiveEvent",
    "Message",
    "MessageKind",
    "StreamStatusChanged",
    "VideoStatusUpdate",
    "decode_message",
    "encode_message",
]
