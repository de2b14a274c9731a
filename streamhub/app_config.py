from pathlib import Path

import orjson
from pydantic import BaseModel, Field, field_validator

from streamhub.domain.ingest.ingest_models import SupervisorConfig
from streamhub.shared.config import config


class AppEnvironConfig(BaseModel):
    DEBUG: bool = config.get("DEBUG", "false").strip().lower() == "true"  # type: ignore

    # API server
    API_HOST: str = config.get("API_HOST", "0.0.0.0").strip()  # type: ignore
    API_PORT: int = int((config.get("API_PORT") or "").strip() or 8000)
    API_WORKERS: int = int((config.get("API_WORKERS") or "").strip() or 1)

    # Ingest supervisor
    INGEST_OUTPUT_DIR: str = config.get("INGEST_OUTPUT_DIR", "/tmp/public_streams").strip()  # type: ignore
    # JSON object mapping stream name -> source URL
    INGEST_STREAMS: dict[str, str] = Field(
        default=(config.get("INGEST_STREAMS") or "").strip() or "{}",
        validate_default=True,
    )
    INGEST_SEGMENT_SECONDS: int = int((config.get("INGEST_SEGMENT_SECONDS") or "").strip() or 2)
    INGEST_PLAYLIST_SIZE: int = int((config.get("INGEST_PLAYLIST_SIZE") or "").strip() or 5)
    INGEST_HTTP_PORT: int = int((config.get("INGEST_HTTP_PORT") or "").strip() or 8081)
    INGEST_PLAYBACK_HOST: str = config.get("INGEST_PLAYBACK_HOST", "localhost").strip()  # type: ignore
    INGEST_HEALTH_CHECK_INTERVAL: float = float(
        (config.get("INGEST_HEALTH_CHECK_INTERVAL") or "").strip() or 30
    )
    INGEST_FFMPEG_BIN: str = config.get("INGEST_FFMPEG_BIN", "ffmpeg").strip()  # type: ignore
    # When unset, ffmpeg output is discarded
    INGEST_LOG_DIR: str | None = (config.get("INGEST_LOG_DIR") or "").strip() or None

    # Stream status events over Redis pub/sub
    EVENTS_ENABLE: bool = config.get("EVENTS_ENABLE", "false").strip().lower() == "true"  # type: ignore
    EVENTS_CHANNEL: str = config.get("EVENTS_CHANNEL", "streamhub:stream_events").strip()  # type: ignore
    EVENTS_QUEUE_SIZE: int = int((config.get("EVENTS_QUEUE_SIZE") or "").strip() or 1000)
    EVENTS_REDIS_LABEL: str = config.get("EVENTS_REDIS_LABEL", "default").strip()  # type: ignore
    # Comma separated channels to consume; empty disables the subscriber
    EVENTS_SUBSCRIBE_CHANNELS: list[str] = [
        x.strip() for x in (config.get("EVENTS_SUBSCRIBE_CHANNELS") or "").split(",") if x.strip()
    ]
    EVENTS_DISPATCH_WORKERS: int = int((config.get("EVENTS_DISPATCH_WORKERS") or "").strip() or 4)

    @field_validator("INGEST_STREAMS", mode="before")
    @classmethod
    def _parse_streams(cls, value):
        if isinstance(value, (str, bytes)):
            value = orjson.loads(value or "{}")
        if not isinstance(value, dict):
            raise ValueError("INGEST_STREAMS must be a JSON object of name -> url")
        return value

    def to_supervisor_config(self) -> SupervisorConfig:
        return SupervisorConfig(
            output_dir=Path(self.INGEST_OUTPUT_DIR),
            streams=dict(self.INGEST_STREAMS),
            segment_seconds=self.INGEST_SEGMENT_SECONDS,
            playlist_size=self.INGEST_PLAYLIST_SIZE,
            http_port=self.INGEST_HTTP_PORT,
            playback_host=self.INGEST_PLAYBACK_HOST,
            health_check_interval=self.INGEST_HEALTH_CHECK_INTERVAL,
            ffmpeg_bin=self.INGEST_FFMPEG_BIN,
            log_dir=Path(self.INGEST_LOG_DIR) if self.INGEST_LOG_DIR else None,
        )


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
