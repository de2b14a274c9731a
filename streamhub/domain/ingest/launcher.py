"""Process launcher: classify a source, start its transcoder, wire it into the registry."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from loguru import logger

from streamhub.schemas.messages import StreamStatusChanged
from streamhub.schemas.stream_status import StreamStatus
from streamhub.utils.app_errors import InvalidStreamError, LaunchFailureError, SourceConflictError

from .ingest_models import StreamEntry
from .process import ProcessHandle, ProcessRunner
from .registry import StreamRegistry
from .sources import TranscodeProfile, build_ffmpeg_args, classify_source

EventSink = Callable[[StreamStatusChanged], None]


def validate_stream_name(name: str) -> None:
    """Stream names become a directory under the output root."""
    if not name or not name.strip():
        raise InvalidStreamError("Stream name must not be empty")
    if name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidStreamError(f"Stream name must be a single path component: {name!r}")


class StreamLauncher:
    """Starts one transcoding process per stream and watches it until it exits."""

    def __init__(
        self,
        registry: StreamRegistry,
        runner: ProcessRunner,
        *,
        output_dir: Path,
        profile: TranscodeProfile,
        lifetime: asyncio.Event,
        clock: Callable[[], datetime],
        log_dir: Path | None = None,
        event_sink: EventSink | None = None,
    ) -> None:
        self._registry = registry
        self._runner = runner
        self._output_dir = output_dir
        self._profile = profile
        self._lifetime = lifetime
        self._clock = clock
        self._log_dir = log_dir
        self._event_sink = event_sink
        self._watchers: set[asyncio.Task] = set()

    @property
    def watchers(self) -> frozenset[asyncio.Task]:
        return frozenset(self._watchers)

    def stream_dir(self, name: str) -> Path:
        return self._output_dir / name

    async def launch(self, name: str, source_url: str) -> StreamEntry:
        """Start the transcoder for ``name`` and record it as active.

        Returns:
            Snapshot of the entry after the process was attached

        Raises:
            InvalidStreamError: Empty name/URL or a name that is not a single path component
            UnsupportedSourceError: URL matches no classification rule; no entry is created
            SourceConflictError: ``name`` is registered with a different source URL
            LaunchFailureError: The process failed to start; the entry is set to ERROR
        """
        validate_stream_name(name)
        if not source_url or not source_url.strip():
            raise InvalidStreamError(f"Stream {name} has an empty source URL")

        existing = self._registry.get(name)
        if existing is not None and existing.source_url != source_url:
            raise SourceConflictError(name, existing.source_url)

        kind = classify_source(source_url)
        stream_dir = self.stream_dir(name)
        argv = build_ffmpeg_args(kind, source_url, stream_dir, self._profile)
        log_path = self._log_dir / f"{name}.log" if self._log_dir else None

        logger.info("Launching stream {} ({}): {}", name, kind, source_url)

        try:
            stream_dir.mkdir(parents=True, exist_ok=True)
            handle = await self._runner.spawn(argv, cwd=stream_dir, log_path=log_path)
        except (OSError, ValueError) as exc:
            previous, failed = self._registry.upsert(
                name, source_url, lambda e: self._mark_error(e, source_url)
            )
            self._release_previous(name, previous)
            self.publish_status(failed)
            logger.error("Failed to start transcoder for stream {}: {}", name, exc)
            raise LaunchFailureError(name, str(exc)) from exc

        try:
            previous, entry = self._registry.upsert(
                name, source_url, lambda e: self._install(e, source_url, handle)
            )
        except SourceConflictError:
            # Another launch registered the name with a different source meanwhile
            self._terminate(name, handle)
            raise

        self._release_previous(name, previous)

        if self._lifetime.is_set():
            # Shutdown raced with this launch
            logger.info("Supervisor is stopping, terminating freshly started stream {}", name)
            self._terminate(name, handle)

        watcher = asyncio.create_task(self._watch(name, handle), name=f"stream-watch:{name}")
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)

        self.publish_status(entry)
        logger.info("Stream {} started (pid={})", name, handle.pid)
        return entry

    def _install(
        self, entry: StreamEntry, source_url: str, handle: ProcessHandle
    ) -> tuple[ProcessHandle | None, StreamEntry]:
        if entry.source_url != source_url:
            raise SourceConflictError(entry.name, entry.source_url)
        previous = entry.process
        entry.process = handle
        entry.status = StreamStatus.ACTIVE
        entry.last_update = self._clock()
        return previous, entry.copy()

    def _mark_error(
        self, entry: StreamEntry, source_url: str
    ) -> tuple[ProcessHandle | None, StreamEntry]:
        if entry.source_url != source_url:
            raise SourceConflictError(entry.name, entry.source_url)
        previous = entry.process
        entry.process = None
        entry.status = StreamStatus.ERROR
        entry.last_update = self._clock()
        return previous, entry.copy()

    def _release_previous(self, name: str, previous: ProcessHandle | None) -> None:
        # The superseded handle's watcher no longer owns it
        if previous is not None and previous.returncode is None:
            logger.warning("Stream {} relaunched while pid {} was still running, killing it", name, previous.pid)
            self._terminate(name, previous)

    async def _watch(self, name: str, handle: ProcessHandle) -> None:
        returncode = await handle.wait()

        def _release(entry: StreamEntry) -> StreamEntry | None:
            # A relaunch may already have installed a newer handle
            if entry.process is not handle:
                return None
            entry.process = None
            if entry.status == StreamStatus.ACTIVE:
                entry.status = StreamStatus.INACTIVE
            entry.last_update = self._clock()
            return entry.copy()

        released = self._registry.update(name, _release)
        if released is None:
            logger.debug("Stale watcher for stream {} finished (pid={})", name, handle.pid)
            return

        logger.warning("Stream {} stopped (pid={}, returncode={})", name, handle.pid, returncode)
        self.publish_status(released)

    def _terminate(self, name: str, handle: ProcessHandle) -> None:
        try:
            handle.kill()
        except OSError as exc:
            logger.warning("Failed to terminate stream {} (pid={}): {}", name, handle.pid, exc)

    def publish_status(self, entry: StreamEntry) -> None:
        if self._event_sink is None:
            return
        try:
            self._event_sink(
                StreamStatusChanged(
                    name=entry.name,
                    source_url=entry.source_url,
                    status=entry.status,
                    changed_at=entry.last_update,
                )
            )
        except Exception as exc:
            logger.warning("Failed to publish status of stream {}: {}", entry.name, exc)
