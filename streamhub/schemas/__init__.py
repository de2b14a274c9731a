from .messages import (
    ChatPosted,
    LiveEvent,
    Message,
    StreamStatusChanged,
    VideoStatusUpdate,
    decode_message,
    encode_message,
)
from .stream_status import StreamStatus

__all__ = [
    "ChatPosted",
    "LiveEvent",
    "Message",
    "StreamStatus",
    "StreamStatusChanged",
    "VideoStatusUpdate",
    "decode_message",
    "encode_message",
]
