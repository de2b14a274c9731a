"""Lifecycle controller for the stream ingest subsystem."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from datetime import datetime

from loguru import logger

from streamhub.schemas.stream_status import StreamStatus
from streamhub.shared.timeutils import utc_now
from streamhub.utils.app_errors import (
    AppError,
    AppErrorCode,
    HttpStatusCode,
    StreamNotActiveError,
    StreamNotFoundError,
    TerminationError,
)

from .ingest_models import PLAYLIST_FILENAME, StreamEntry, SupervisorConfig
from .launcher import EventSink, StreamLauncher
from .monitor import HealthMonitor
from .process import ProcessRunner, SubprocessRunner
from .registry import StreamRegistry
from .sources import TranscodeProfile


class IngestSupervisor:
    """Owns the registry, the launcher and the health monitor.

    ``start()`` and ``stop()`` are single-shot: a supervisor cannot be restarted
    once stopped. Queries are safe from any task or thread at any time.
    """

    def __init__(
        self,
        config: SupervisorConfig,
        *,
        runner: ProcessRunner | None = None,
        clock: Callable[[], datetime] = utc_now,
        event_sink: EventSink | None = None,
    ) -> None:
        self._config = config
        self._registry = StreamRegistry()
        self._lifetime = asyncio.Event()
        self._launcher = StreamLauncher(
            self._registry,
            runner or SubprocessRunner(),
            output_dir=config.output_dir,
            profile=TranscodeProfile(
                segment_seconds=config.segment_seconds,
                playlist_size=config.playlist_size,
                ffmpeg_bin=config.ffmpeg_bin,
            ),
            lifetime=self._lifetime,
            clock=clock,
            log_dir=config.log_dir,
            event_sink=event_sink,
        )
        self._monitor = HealthMonitor(
            self._registry,
            self._launcher,
            lifetime=self._lifetime,
            clock=clock,
            interval=config.health_check_interval,
        )
        self._monitor_task: asyncio.Task | None = None
        self._started = False

    @property
    def registry(self) -> StreamRegistry:
        return self._registry

    @property
    def monitor(self) -> HealthMonitor:
        return self._monitor

    @property
    def started(self) -> bool:
        return self._started

    @property
    def stopped(self) -> bool:
        return self._lifetime.is_set()

    async def start(self) -> None:
        """Launch every configured stream, then start the health monitor.

        A stream that fails to launch is logged and skipped; it never prevents
        the remaining streams from starting.

        Raises:
            AppError: E_INVALID_STATE on a second call,
                E_OUTPUT_DIR_UNAVAILABLE if the output root cannot be created
        """
        if self._started:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_STATE,
                errmesg="Ingest supervisor already started",
                status_code=HttpStatusCode.CONFLICT,
            )
        self._started = True

        try:
            self._config.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise AppError(
                errcode=AppErrorCode.E_OUTPUT_DIR_UNAVAILABLE,
                errmesg=f"Cannot create output directory {self._config.output_dir}: {exc}",
            ) from exc

        logger.info(
            "Starting ingest supervisor: {} stream(s), output={}",
            len(self._config.streams), self._config.output_dir,
        )

        names = list(self._config.streams)
        results = await asyncio.gather(
            *(self._launcher.launch(name, self._config.streams[name]) for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, AppError):
                logger.error("Failed to start stream {}: {}", name, result.errmesg)
            elif isinstance(result, BaseException):
                logger.opt(exception=result).error("Unexpected error starting stream {}", name)

        self._monitor_task = asyncio.create_task(self._monitor.run(), name="stream-health-monitor")

    def stop(self) -> None:
        """Signal shutdown and request termination of every attached process.

        Returns as soon as termination has been requested; use ``wait_closed``
        to wait for the background tasks.
        """
        if self._lifetime.is_set():
            return

        logger.info("Stopping ingest supervisor")
        self._lifetime.set()

        def _terminate(entry: StreamEntry) -> None:
            handle = entry.process
            if handle is None:
                return
            try:
                handle.kill()
            except OSError as exc:
                error = TerminationError(entry.name, str(exc))
                logger.warning("{} (pid={}, erresid={})", error.errmesg, handle.pid, error.erresid)

        self._registry.apply_all(_terminate)

    async def wait_closed(self, timeout: float = 10.0) -> None:
        """Wait for the monitor, restarts and completion watchers after ``stop()``."""
        tasks: list[asyncio.Task] = [*self._launcher.watchers, *self._monitor.pending_restarts]
        if self._monitor_task is not None:
            tasks.append(self._monitor_task)
        if not tasks:
            return

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning("{} ingest task(s) still running after {}s, cancelling", len(pending), timeout)
            for task in pending:
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.gather(*pending, return_exceptions=True)

    async def launch_stream(self, name: str, source_url: str) -> StreamEntry:
        """Launch a stream at runtime through the same path ``start()`` uses."""
        if self._lifetime.is_set():
            raise AppError(
                errcode=AppErrorCode.E_INVALID_STATE,
                errmesg="Ingest supervisor is stopped",
                status_code=HttpStatusCode.CONFLICT,
            )
        return await self._launcher.launch(name, source_url)

    def list_streams(self) -> list[StreamEntry]:
        return self._registry.list()

    def get_stream(self, name: str) -> StreamEntry:
        entry = self._registry.get(name)
        if entry is None:
            raise StreamNotFoundError(name)
        return entry

    def resolve_playback_url(self, name: str) -> str:
        """Build the playlist URL of an active stream.

        Raises:
            StreamNotFoundError: Unknown stream
            StreamNotActiveError: Stream exists but is not active
        """
        entry = self.get_stream(name)
        if entry.status != StreamStatus.ACTIVE:
            raise StreamNotActiveError(name, str(entry.status))
        return f"http://{self._config.playback_host}:{self._config.http_port}/{name}/{PLAYLIST_FILENAME}"
