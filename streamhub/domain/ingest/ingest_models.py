"""Models for the stream ingest supervisor."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from streamhub.schemas.stream_status import StreamStatus
from streamhub.shared.timeutils import utc_now

if TYPE_CHECKING:
    from .process import ProcessHandle

PLAYLIST_FILENAME = "index.m3u8"
SEGMENT_FILENAME_PATTERN = "segment_%03d.ts"


class SupervisorConfig(BaseModel):
    """Static configuration consumed by the ingest supervisor.

    Attributes:
        output_dir: Root directory; each stream writes under ``output_dir/<name>/``
        streams: Stream name -> source URL launched on start
        segment_seconds: HLS segment duration
        playlist_size: Number of segments kept in the live playlist
        http_port: Port of the HTTP server that serves ``output_dir``
        playback_host: Host used when building playback URLs
        health_check_interval: Seconds between health sweeps
        ffmpeg_bin: Transcoder executable
        log_dir: Optional directory receiving one ``<name>.log`` per stream
    """

    output_dir: Path
    streams: dict[str, str] = Field(default_factory=dict)
    segment_seconds: int = Field(2, ge=1)
    playlist_size: int = Field(5, ge=1)
    http_port: int = Field(8081, ge=1, le=65535)
    playback_host: str = "localhost"
    health_check_interval: float = Field(30.0, gt=0)
    ffmpeg_bin: str = "ffmpeg"
    log_dir: Path | None = None


@dataclass
class StreamEntry:
    """Registry record of one named source and its current process."""

    name: str
    source_url: str
    status: StreamStatus = StreamStatus.INACTIVE
    last_update: datetime = field(default_factory=utc_now)
    viewer_count: int = 0
    process: ProcessHandle | None = field(default=None, compare=False)

    def copy(self) -> StreamEntry:
        return replace(self)

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None


__all__ = [
    "PLAYLIST_FILENAME",
    "SEGMENT_FILENAME_PATTERN",
    "StreamEntry",
    "SupervisorConfig",
]
