"""Concurrency-safe store of stream entries keyed by name."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from streamhub.shared.rwlock import ReadWriteLock

from .ingest_models import StreamEntry

R = TypeVar("R")


class StreamRegistry:
    """Registry of stream entries.

    Mutations run under the exclusive side of a reader/writer lock and only for
    the duration of the in-memory change; callers must never start, await or
    wait on a process inside a mutate callback. Reads hand out copies, so a
    caller never observes a half-written or later-mutated entry.
    """

    def __init__(self) -> None:
        self._entries: dict[str, StreamEntry] = {}
        self._lock = ReadWriteLock()

    def upsert(self, name: str, source_url: str, mutate: Callable[[StreamEntry], R]) -> R:
        """Apply ``mutate`` to the entry for ``name``, creating it first if absent.

        An existing entry keeps its original ``source_url``.
        """
        with self._lock.write_locked():
            entry = self._entries.get(name)
            if entry is None:
                entry = StreamEntry(name=name, source_url=source_url)
                self._entries[name] = entry
            return mutate(entry)

    def update(self, name: str, mutate: Callable[[StreamEntry], R]) -> R | None:
        """Apply ``mutate`` to an existing entry; returns None when ``name`` is unknown."""
        with self._lock.write_locked():
            entry = self._entries.get(name)
            if entry is None:
                return None
            return mutate(entry)

    def apply_all(self, fn: Callable[[StreamEntry], None]) -> None:
        """Run ``fn`` on every entry while holding the exclusive lock."""
        with self._lock.write_locked():
            for entry in self._entries.values():
                fn(entry)

    def get(self, name: str) -> StreamEntry | None:
        with self._lock.read_locked():
            entry = self._entries.get(name)
            return entry.copy() if entry is not None else None

    def list(self) -> list[StreamEntry]:
        with self._lock.read_locked():
            return [entry.copy() for entry in self._entries.values()]

    def names(self) -> list[str]:
        with self._lock.read_locked():
            return list(self._entries)

    def remove(self, name: str) -> StreamEntry | None:
        with self._lock.write_locked():
            return self._entries.pop(name, None)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)

    def __contains__(self, name: object) -> bool:
        with self._lock.read_locked():
            return name in self._entries
