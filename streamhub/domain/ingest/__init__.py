"""Stream ingest supervisor.

Top-level API:
- `IngestSupervisor`: start, stop and query the set of ingested streams
- `SupervisorConfig`: static configuration consumed by the supervisor

Internals:
- `registry`: concurrency-safe store of stream entries
- `sources`: source classification and ffmpeg argument construction
- `launcher`: starts a transcoder and watches it until exit
- `monitor`: periodic health sweep and restarts
- `process`: process spawning seam
"""

from streamhub.domain.ingest.ingest_models import (
    PLAYLIST_FILENAME,
    SEGMENT_FILENAME_PATTERN,
    StreamEntry,
    SupervisorConfig,
)
from streamhub.domain.ingest.launcher import StreamLauncher, validate_stream_name
from streamhub.domain.ingest.monitor import HealthMonitor
from streamhub.domain.ingest.process import (
    ProcessHandle,
    ProcessRunner,
    SubprocessHandle,
    SubprocessRunner,
)
from streamhub.domain.ingest.registry import StreamRegistry
from streamhub.domain.ingest.sources import (
    SourceKind,
    TranscodeProfile,
    build_ffmpeg_args,
    classify_source,
)
from streamhub.domain.ingest.supervisor import IngestSupervisor

__all__ = [
    "PLAYLIST_FILENAME",
    "SEGMENT_FILENAME_PATTERN",
    "HealthMonitor",
    "IngestSupervisor",
    "ProcessHandle",
    "ProcessRunner",
    "SourceKind",
    "StreamEntry",
    "StreamLauncher",
    "StreamRegistry",
    "SubprocessHandle",
    "SubprocessRunner",
    "SupervisorConfig",
    "TranscodeProfile",
    "build_ffmpeg_args",
    "classify_source",
    "validate_stream_name",
]
