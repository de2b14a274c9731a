"""Source classification and ffmpeg argument construction."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from streamhub.utils.app_errors import UnsupportedSourceError

from .ingest_models import PLAYLIST_FILENAME, SEGMENT_FILENAME_PATTERN


class SourceKind(str, Enum):
    HLS = "hls"
    RTMP = "rtmp"
    RTSP = "rtsp"
    FILE_LOOP = "file_loop"

    def __str__(self) -> str:
        return self.value


def classify_source(source_url: str) -> SourceKind:
    """Map a source URL to its transcoding strategy.

    Rules are checked in a fixed order and the first match wins, so an
    ``rtmp://`` URL that mentions ``.m3u8`` is still treated as HLS.

    Raises:
        UnsupportedSourceError: No rule matches.
    """
    scheme = source_url.split("://", 1)[0].lower() if "://" in source_url else ""

    if ".m3u8" in source_url:
        return SourceKind.HLS
    if scheme == "rtmp":
        return SourceKind.RTMP
    if scheme == "rtsp":
        return SourceKind.RTSP
    if ".mp4" in source_url:
        return SourceKind.FILE_LOOP

    raise UnsupportedSourceError(source_url)


@dataclass(frozen=True, slots=True)
class TranscodeProfile:
    """Parameters shared by every stream's ffmpeg invocation."""

    segment_seconds: int
    playlist_size: int
    ffmpeg_bin: str = "ffmpeg"
    video_codec: str = "libx264"
    video_preset: str = "ultrafast"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"


def _input_args(kind: SourceKind, source_url: str) -> list[str]:
    if kind is SourceKind.FILE_LOOP:
        # Loop forever at native frame rate so the file behaves like a live feed
        return ["-re", "-stream_loop", "-1", "-i", source_url]
    return ["-i", source_url]


def _codec_args(kind: SourceKind, profile: TranscodeProfile) -> list[str]:
    if kind is SourceKind.HLS:
        return ["-c", "copy"]
    return [
        "-c:v", profile.video_codec,
        "-preset", profile.video_preset,
        "-c:a", profile.audio_codec,
        "-b:a", profile.audio_bitrate,
    ]


def _hls_output_args(stream_dir: Path, profile: TranscodeProfile) -> list[str]:
    return [
        "-f", "hls",
        "-hls_time", str(profile.segment_seconds),
        "-hls_list_size", str(profile.playlist_size),
        "-hls_flags", "delete_segments",
        "-hls_segment_filename", str(stream_dir / SEGMENT_FILENAME_PATTERN),
        str(stream_dir / PLAYLIST_FILENAME),
    ]


def build_ffmpeg_args(
    kind: SourceKind,
    source_url: str,
    stream_dir: Path,
    profile: TranscodeProfile,
) -> list[str]:
    """Build the full argv (executable included) for one stream."""
    return [
        profile.ffmpeg_bin, "-hide_banner", "-nostdin", "-y",
        *_input_args(kind, source_url),
        *_codec_args(kind, profile),
        *_hls_output_args(stream_dir, profile),
    ]
