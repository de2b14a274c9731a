"""Periodic health sweep that restarts streams whose process has exited."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

from loguru import logger

from streamhub.schemas.stream_status import StreamStatus
from streamhub.utils.app_errors import AppError

from .ingest_models import StreamEntry
from .launcher import StreamLauncher
from .registry import StreamRegistry


class HealthMonitor:
    """Detects dead transcoders and relaunches them with their original source."""

    DEFAULT_INTERVAL = 30.0  # seconds between sweeps

    def __init__(
        self,
        registry: StreamRegistry,
        launcher: StreamLauncher,
        *,
        lifetime: asyncio.Event,
        clock: Callable[[], datetime],
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        """Initialize the monitor.

        Args:
            registry: Registry shared with the launcher
            launcher: Launcher used for restarts
            lifetime: Shared shutdown signal; the loop exits once it is set
            clock: Source of ``last_update`` timestamps
            interval: Seconds between sweeps
        """
        self._registry = registry
        self._launcher = launcher
        self._lifetime = lifetime
        self._clock = clock
        self._interval = interval
        self._restarts: dict[str, asyncio.Task] = {}

    @property
    def pending_restarts(self) -> list[asyncio.Task]:
        return list(self._restarts.values())

    async def run(self) -> None:
        """Sweep every ``interval`` seconds until the lifetime is set."""
        logger.info("Starting stream health monitor (interval={}s)", self._interval)

        while not self._lifetime.is_set():
            try:
                await asyncio.wait_for(self._lifetime.wait(), timeout=self._interval)
            except TimeoutError:
                try:
                    await self.sweep()
                except Exception as exc:
                    logger.exception(f"Error in stream health sweep: {exc}")

        logger.info("Stream health monitor stopped")

    async def sweep(self) -> list[str]:
        """Run one health pass and schedule restarts.

        Returns:
            Names of the streams a restart was scheduled for
        """
        if self._lifetime.is_set():
            return []

        now = self._clock()
        candidates: list[tuple[str, str]] = []

        def _check(entry: StreamEntry) -> tuple[StreamEntry, bool] | None:
            entry.last_update = now
            handle = entry.process
            if handle is not None:
                if handle.returncode is None:
                    return None
                logger.warning(
                    "Stream {} process exited (pid={}, returncode={})",
                    entry.name, handle.pid, handle.returncode,
                )
                entry.process = None
                entry.status = StreamStatus.INACTIVE
                return entry.copy(), True
            # Exit already recorded by the completion watcher
            if entry.status == StreamStatus.INACTIVE:
                return entry.copy(), False
            return None

        for name in self._registry.names():
            checked = self._registry.update(name, _check)
            if checked is None:
                continue
            entry, downgraded = checked
            if downgraded:
                self._launcher.publish_status(entry)
            candidates.append((entry.name, entry.source_url))

        scheduled: list[str] = []
        for name, source_url in candidates:
            if name in self._restarts:
                logger.debug("Restart of stream {} already in flight", name)
                continue
            if self._lifetime.is_set():
                break
            task = asyncio.create_task(self._restart(name, source_url), name=f"stream-restart:{name}")
            self._restarts[name] = task
            task.add_done_callback(lambda _t, n=name: self._restarts.pop(n, None))
            scheduled.append(name)

        return scheduled

    async def _restart(self, name: str, source_url: str) -> None:
        logger.info("Restarting stream {}", name)
        try:
            await self._launcher.launch(name, source_url)
        except AppError as exc:
            logger.error("Restart of stream {} failed: {}", name, exc.errmesg)
        except Exception as exc:
            logger.opt(exception=exc).error("Unexpected error restarting stream {}", name)
