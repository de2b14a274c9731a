"""Tests for typed pub/sub message decoding."""

from datetime import datetime, timezone

import orjson
import pytest

from streamhub.schemas.messages import (
    ChatPosted,
    LiveEvent,
    StreamStatusChanged,
    VideoStatusUpdate,
    decode_message,
    encode_message,
)
from streamhub.schemas.stream_status import StreamStatus
from streamhub.utils.app_errors import AppError, AppErrorCode


class TestDecodeMessage:
    def test_video_status_update(self):
        payload = orjson.dumps({"kind": "video_status_update", "video_id": 7, "status": "ready", "progress": 100})

        message = decode_message(payload)

        assert isinstance(message, VideoStatusUpdate)
        assert message.video_id == 7
        assert message.progress == 100

    def test_live_event_extra_defaults_to_empty(self):
        message = decode_message('{"kind": "live_event", "live_id": 3, "event": "started"}')

        assert isinstance(message, LiveEvent)
        assert message.extra == {}

    def test_chat_posted(self):
        payload = {"kind": "chat_posted", "live_id": 3, "user_id": 9, "username": "ann", "content": "hi"}

        message = decode_message(orjson.dumps(payload))

        assert isinstance(message, ChatPosted)
        assert message.username == "ann"

    def test_stream_status_changed(self):
        original = StreamStatusChanged(
            name="cam1",
            source_url="rtsp://h/s",
            status=StreamStatus.ACTIVE,
            changed_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )

        message = decode_message(encode_message(original))

        assert message == original

    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b'{"kind": "unknown", "live_id": 1}',
            b'{"live_id": 1, "event": "started"}',
            b'{"kind": "video_status_update", "video_id": 1, "status": "x", "progress": 101}',
            b'{"kind": "chat_posted", "live_id": 1}',
        ],
    )
    def test_invalid_payloads(self, payload):
        """Bad payloads fail once at the boundary with E_INVALID_MESSAGE."""
        with pytest.raises(AppError) as exc_info:
            decode_message(payload)

        assert exc_info.value.errcode == AppErrorCode.E_INVALID_MESSAGE
