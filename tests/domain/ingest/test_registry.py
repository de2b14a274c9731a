"""Tests for StreamRegistry."""

import threading
import time

from streamhub.domain.ingest.registry import StreamRegistry
from streamhub.schemas.stream_status import StreamStatus


def _activate(entry):
    entry.status = StreamStatus.ACTIVE
    return entry.copy()


class TestUpsert:
    def test_creates_entry_on_first_use(self):
        """Should create an inactive entry before applying the mutation."""
        registry = StreamRegistry()
        seen = []

        registry.upsert("cam1", "rtsp://h/s", lambda e: seen.append(e.status))

        assert seen == [StreamStatus.INACTIVE]
        assert "cam1" in registry
        assert len(registry) == 1

    def test_keeps_original_source_url(self):
        """Should not overwrite the source URL of an existing entry."""
        registry = StreamRegistry()
        registry.upsert("cam1", "rtsp://h/s", _activate)

        registry.upsert("cam1", "rtsp://other/s", _activate)

        assert registry.get("cam1").source_url == "rtsp://h/s"

    def test_returns_mutation_result(self):
        registry = StreamRegistry()

        result = registry.upsert("cam1", "rtsp://h/s", _activate)

        assert result.status == StreamStatus.ACTIVE


class TestUpdate:
    def test_unknown_name_returns_none(self):
        """Should not create entries for unknown names."""
        registry = StreamRegistry()

        assert registry.update("missing", _activate) is None
        assert len(registry) == 0

    def test_mutates_existing_entry(self):
        registry = StreamRegistry()
        registry.upsert("cam1", "rtsp://h/s", lambda e: None)

        registry.update("cam1", _activate)

        assert registry.get("cam1").status == StreamStatus.ACTIVE


class TestReads:
    def test_get_returns_copy(self):
        """Should hand out copies that do not alias the stored entry."""
        registry = StreamRegistry()
        registry.upsert("cam1", "rtsp://h/s", lambda e: None)

        snapshot = registry.get("cam1")
        snapshot.status = StreamStatus.ERROR
        snapshot.viewer_count = 42

        stored = registry.get("cam1")
        assert stored.status == StreamStatus.INACTIVE
        assert stored.viewer_count == 0

    def test_get_unknown_returns_none(self):
        assert StreamRegistry().get("missing") is None

    def test_list_is_a_snapshot(self):
        """Should not reflect mutations made after the call."""
        registry = StreamRegistry()
        registry.upsert("cam1", "rtsp://h/s", lambda e: None)

        snapshot = registry.list()
        registry.update("cam1", _activate)
        registry.upsert("cam2", "rtsp://h/t", lambda e: None)

        assert [e.status for e in snapshot] == [StreamStatus.INACTIVE]
        assert sorted(registry.names()) == ["cam1", "cam2"]

    def test_remove(self):
        registry = StreamRegistry()
        registry.upsert("cam1", "rtsp://h/s", lambda e: None)

        removed = registry.remove("cam1")

        assert removed.name == "cam1"
        assert registry.get("cam1") is None
        assert registry.remove("cam1") is None


class TestApplyAll:
    def test_visits_every_entry(self):
        registry = StreamRegistry()
        for name in ("a", "b", "c"):
            registry.upsert(name, f"rtsp://h/{name}", lambda e: None)

        registry.apply_all(_activate)

        assert {e.status for e in registry.list()} == {StreamStatus.ACTIVE}


class TestConcurrentAccess:
    def test_readers_never_observe_torn_entries(self):
        """Many readers against one writer should only ever see consistent snapshots."""
        # Arrange
        registry = StreamRegistry()
        registry.upsert("cam1", "rtsp://h/s", lambda e: None)
        stop = threading.Event()
        torn: list[tuple[int, StreamStatus]] = []

        def _write(i):
            def _mutate(entry):
                entry.viewer_count = i
                time.sleep(0)
                entry.status = StreamStatus.ACTIVE if i % 2 == 0 else StreamStatus.INACTIVE
            return _mutate

        def writer():
            for i in range(1, 2001):
                registry.update("cam1", _write(i))
            stop.set()

        def reader():
            while not stop.is_set():
                for entry in registry.list():
                    expected = StreamStatus.ACTIVE if entry.viewer_count % 2 == 0 else StreamStatus.INACTIVE
                    if entry.viewer_count and entry.status != expected:
                        torn.append((entry.viewer_count, entry.status))

        readers = [threading.Thread(target=reader) for _ in range(8)]
        writer_thread = threading.Thread(target=writer)

        # Act
        for t in readers:
            t.start()
        writer_thread.start()
        writer_thread.join(timeout=30)
        stop.set()
        for t in readers:
            t.join(timeout=30)

        # Assert
        assert not writer_thread.is_alive()
        assert torn == []
        assert registry.get("cam1").viewer_count == 2000
