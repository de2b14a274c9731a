"""Process spawning seam for the ingest launcher.

The supervisor only needs to start, observe and terminate an external process.
``SubprocessRunner`` does this with asyncio subprocesses; tests substitute their
own runner implementing the same protocol.
"""

from __future__ import annotations

import asyncio
import contextlib
import shlex
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Protocol

from loguru import logger


class ProcessHandle(Protocol):
    """Ownership token for one running external process."""

    @property
    def pid(self) -> int | None: ...

    @property
    def returncode(self) -> int | None:
        """Exit status, or None while the process is still running."""
        ...

    async def wait(self) -> int: ...

    def kill(self) -> None:
        """Request termination. Killing an already-exited process is a no-op."""
        ...


class ProcessRunner(Protocol):
    async def spawn(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        log_path: Path | None = None,
    ) -> ProcessHandle:
        """Start ``argv`` in ``cwd``.

        Raises:
            OSError: The process could not be started (missing binary, permissions).
        """
        ...


class SubprocessHandle:
    """ProcessHandle backed by ``asyncio.subprocess.Process``."""

    def __init__(self, proc: asyncio.subprocess.Process, log_file: IO[bytes] | None = None) -> None:
        self._proc = proc
        self._log_file = log_file

    @property
    def pid(self) -> int | None:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    async def wait(self) -> int:
        try:
            return await self._proc.wait()
        finally:
            self._close_log()

    def kill(self) -> None:
        if self._proc.returncode is not None:
            return
        try:
            self._proc.kill()
        except ProcessLookupError:
            # Exited between the returncode check and the signal.
            logger.debug("Process {} already exited", self._proc.pid)

    def _close_log(self) -> None:
        if self._log_file is not None:
            with contextlib.suppress(OSError):
                self._log_file.close()
            self._log_file = None

    def __repr__(self) -> str:
        return f"SubprocessHandle(pid={self.pid}, returncode={self.returncode})"


class SubprocessRunner:
    """Spawns processes with stdin closed and output appended to a log file or discarded."""

    async def spawn(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        log_path: Path | None = None,
    ) -> SubprocessHandle:
        log_file: IO[bytes] | None = None
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_file = open(log_path, "ab", buffering=0)

        logger.debug("spawn cwd={} cmd={}", cwd, " ".join(shlex.quote(arg) for arg in argv))

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=log_file if log_file else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.STDOUT if log_file else asyncio.subprocess.DEVNULL,
                cwd=str(cwd),
            )
        except OSError:
            if log_file is not None:
                log_file.close()
            raise

        return SubprocessHandle(proc, log_file)
