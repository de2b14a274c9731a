"""Tests for HealthMonitor sweeps and the periodic loop."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from streamhub.domain.ingest.launcher import StreamLauncher
from streamhub.domain.ingest.monitor import HealthMonitor
from streamhub.domain.ingest.registry import StreamRegistry
from streamhub.domain.ingest.sources import TranscodeProfile
from streamhub.schemas.stream_status import StreamStatus
from streamhub.utils.app_errors import LaunchFailureError


@pytest.fixture
def registry() -> StreamRegistry:
    return StreamRegistry()


@pytest.fixture
def lifetime() -> asyncio.Event:
    return asyncio.Event()


@pytest.fixture
def launcher(registry, fake_runner, fake_clock, lifetime, tmp_path) -> StreamLauncher:
    return StreamLauncher(
        registry,
        fake_runner,
        output_dir=tmp_path,
        profile=TranscodeProfile(segment_seconds=2, playlist_size=5),
        lifetime=lifetime,
        clock=fake_clock,
    )


@pytest.fixture
def monitor(registry, launcher, fake_clock, lifetime) -> HealthMonitor:
    return HealthMonitor(registry, launcher, lifetime=lifetime, clock=fake_clock, interval=0.01)


async def _settle(monitor: HealthMonitor, launcher: StreamLauncher) -> None:
    await asyncio.wait_for(asyncio.gather(*monitor.pending_restarts), timeout=5)
    await asyncio.sleep(0)


class TestSweep:
    async def test_restarts_exited_process(self, monitor, launcher, registry, fake_runner):
        """A handle that exited before its watcher ran is cleared and relaunched."""
        # Arrange
        await launcher.launch("cam1", "rtsp://h/s")
        dead = fake_runner.latest("cam1")
        dead.exit_unobserved(1)

        # Act
        scheduled = await monitor.sweep()
        await _settle(monitor, launcher)

        # Assert
        assert scheduled == ["cam1"]
        assert len(fake_runner.handles_for("cam1")) == 2
        entry = registry.get("cam1")
        assert entry.status == StreamStatus.ACTIVE
        assert entry.process is fake_runner.latest("cam1")
        assert entry.source_url == "rtsp://h/s"

        # Late watcher of the dead handle must not touch the new one
        dead.finish(1)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert registry.get("cam1").status == StreamStatus.ACTIVE

    async def test_restarts_entries_left_inactive_by_watcher(self, monitor, launcher, registry, fake_runner):
        await launcher.launch("cam1", "rtsp://h/s")
        fake_runner.latest("cam1").finish(1)
        await asyncio.gather(*launcher.watchers)
        assert registry.get("cam1").status == StreamStatus.INACTIVE

        scheduled = await monitor.sweep()
        await _settle(monitor, launcher)

        assert scheduled == ["cam1"]
        assert registry.get("cam1").status == StreamStatus.ACTIVE

    async def test_leaves_live_process_alone(self, monitor, launcher, registry, fake_runner):
        await launcher.launch("cam1", "rtsp://h/s")
        live = fake_runner.latest("cam1")

        scheduled = await monitor.sweep()

        assert scheduled == []
        assert registry.get("cam1").process is live
        assert live.kill_count == 0

    async def test_error_entries_are_not_retried(self, monitor, launcher, registry, fake_runner):
        fake_runner.fail_names.add("cam1")
        with pytest.raises(LaunchFailureError):
            await launcher.launch("cam1", "rtsp://h/s")

        scheduled = await monitor.sweep()

        assert scheduled == []
        assert registry.get("cam1").status == StreamStatus.ERROR

    async def test_failed_restart_settles_in_error(self, monitor, launcher, registry, fake_runner):
        """An unreachable source ends up in error via the launcher's failure path."""
        await launcher.launch("cam1", "rtsp://h/s")
        fake_runner.latest("cam1").exit_unobserved(1)
        fake_runner.fail_names.add("cam1")

        await monitor.sweep()
        await _settle(monitor, launcher)

        entry = registry.get("cam1")
        assert entry.status == StreamStatus.ERROR
        assert entry.process is None

    async def test_unexpected_restart_error_is_collected(self, monitor, launcher, registry, fake_runner, monkeypatch):
        """A non-AppError from launch is logged inside the restart task, not left on it."""
        await launcher.launch("cam1", "rtsp://h/s")
        fake_runner.latest("cam1").exit_unobserved(1)
        monkeypatch.setattr(launcher, "launch", AsyncMock(side_effect=RuntimeError("boom")))

        scheduled = await monitor.sweep()
        restarts = list(monitor.pending_restarts)
        await asyncio.wait_for(asyncio.gather(*restarts), timeout=5)

        assert scheduled == ["cam1"]
        assert all(task.exception() is None for task in restarts)
        assert monitor.pending_restarts == []

    async def test_refreshes_last_update_everywhere(self, monitor, launcher, registry, fake_clock):
        await launcher.launch("cam1", "rtsp://h/s")
        await launcher.launch("cam2", "rtsp://h/t")
        tick = fake_clock.advance(30)

        await monitor.sweep()

        assert {e.last_update for e in registry.list()} == {tick}

    async def test_one_restart_in_flight_per_stream(self, monitor, launcher, registry, fake_runner):
        # Arrange
        await launcher.launch("cam1", "rtsp://h/s")
        fake_runner.latest("cam1").exit_unobserved(1)
        fake_runner.gate = asyncio.Event()

        # Act
        first = await monitor.sweep()
        second = await monitor.sweep()
        fake_runner.gate.set()
        await _settle(monitor, launcher)

        # Assert
        assert first == ["cam1"]
        assert second == []
        assert len(fake_runner.handles_for("cam1")) == 2

    async def test_no_mutation_after_shutdown(self, monitor, launcher, registry, fake_runner, fake_clock, lifetime):
        """Once the lifetime is cancelled a sweep must leave the registry untouched."""
        # Arrange
        await launcher.launch("cam1", "rtsp://h/s")
        fake_runner.latest("cam1").exit_unobserved(1)
        before = registry.list()
        lifetime.set()
        fake_clock.advance(30)

        # Act
        scheduled = await monitor.sweep()

        # Assert
        assert scheduled == []
        assert registry.list() == before
        assert len(fake_runner.calls) == 1


class TestRunLoop:
    async def test_heals_killed_process_within_interval(
        self, registry, fake_runner, fake_clock, lifetime, tmp_path
    ):
        """Killing a stream out of band goes through inactive back to active."""
        # Arrange
        events = []
        launcher = StreamLauncher(
            registry,
            fake_runner,
            output_dir=tmp_path,
            profile=TranscodeProfile(segment_seconds=2, playlist_size=5),
            lifetime=lifetime,
            clock=fake_clock,
            event_sink=events.append,
        )
        monitor = HealthMonitor(registry, launcher, lifetime=lifetime, clock=fake_clock, interval=0.01)
        await launcher.launch("cam1", "rtsp://h/s")
        run_task = asyncio.create_task(monitor.run())

        # Act
        fake_runner.latest("cam1").kill()
        for _ in range(500):
            await asyncio.sleep(0.005)
            if len(fake_runner.handles_for("cam1")) == 2 and registry.get("cam1").status == StreamStatus.ACTIVE:
                break

        lifetime.set()
        await asyncio.wait_for(run_task, timeout=5)

        # Assert
        assert [e.status for e in events][:3] == [
            StreamStatus.ACTIVE,
            StreamStatus.INACTIVE,
            StreamStatus.ACTIVE,
        ]
        assert registry.get("cam1").status == StreamStatus.ACTIVE
        assert len(fake_runner.handles_for("cam1")) == 2

    async def test_stops_when_lifetime_set(self, monitor, lifetime):
        run_task = asyncio.create_task(monitor.run())
        await asyncio.sleep(0.02)

        lifetime.set()

        await asyncio.wait_for(run_task, timeout=5)
        assert run_task.done()

    async def test_sweep_errors_do_not_stop_loop(self, monitor, lifetime, monkeypatch):
        calls = 0

        async def flaky_sweep():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return []

        monkeypatch.setattr(monitor, "sweep", flaky_sweep)
        run_task = asyncio.create_task(monitor.run())

        for _ in range(500):
            await asyncio.sleep(0.005)
            if calls >= 2:
                break
        lifetime.set()
        await asyncio.wait_for(run_task, timeout=5)

        assert calls >= 2
