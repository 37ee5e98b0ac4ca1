#!/usr/bin/env python3
"""Child process capability used by the session controller.

The controller never touches subprocess directly. It spawns through a
ProcessLauncher and drives the result through a ProcessHandle, which lets the
tests substitute fakes for the encoder.

Handles:
    PopenHandle: A child this process spawned.
    PidHandle: A process adopted by pid, e.g. an encoder started by an
        earlier invocation of the CLI.
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from regionrec.errors import SpawnFailed

_POLL_INTERVAL_S = 0.05


class ProcessHandle(ABC):
    """Control surface for one running process."""

    @property
    @abstractmethod
    def pid(self) -> int:
        """Operating system process id."""

    @abstractmethod
    def is_alive(self) -> bool:
        """Return True while the process has not exited."""

    @abstractmethod
    def signal_stop(self) -> None:
        """Ask the process to finish cleanly (SIGINT for ffmpeg)."""

    @abstractmethod
    def wait(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds; return True if the process exited."""

    @abstractmethod
    def kill(self) -> None:
        """Terminate the process forcefully."""


class ProcessLauncher(ABC):
    """Factory for ProcessHandles."""

    @abstractmethod
    def spawn(self, argv: Sequence[str], log_path: Path) -> ProcessHandle:
        """Start ``argv`` with stdout/stderr appended to ``log_path``.

        Raises:
            SpawnFailed: If the executable is missing or cannot be run.
        """

    def adopt(self, pid: int) -> ProcessHandle:
        """Return a handle for an already running process."""
        return PidHandle(pid)


# ============================================================================
# LIVENESS HELPERS
# ============================================================================


def pid_alive(pid: int) -> bool:
    """Return True if ``pid`` names a running (non-zombie) process."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True

    try:
        with open(f"/proc/{pid}/stat", "r", encoding="utf-8") as f:
            stat = f.read()
    except OSError:
        return True
    # Field 3 follows the parenthesised command name
    state = stat.rsplit(")", 1)[-1].split()[:1]
    return state != ["Z"]


def process_cmdline(pid: int) -> Optional[List[str]]:
    """Return the argv of ``pid`` from /proc, or None if unavailable."""
    try:
        with open(f"/proc/{pid}/cmdline", "rb") as f:
            raw = f.read()
    except OSError:
        return None
    return [part.decode(errors="replace") for part in raw.split(b"\0") if part]


# ============================================================================
# POPEN IMPLEMENTATION
# ============================================================================


class PopenHandle(ProcessHandle):
    def __init__(self, proc: "subprocess.Popen[bytes]"):
        self._proc = proc

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode

    def is_alive(self) -> bool:
        return self._proc.poll() is None

    def signal_stop(self) -> None:
        if self.is_alive():
            try:
                self._proc.send_signal(signal.SIGINT)
            except ProcessLookupError:
                pass

    def wait(self, timeout: float) -> bool:
        try:
            self._proc.wait(timeout=timeout)
            return True
        except subprocess.TimeoutExpired:
            return False

    def kill(self) -> None:
        if self.is_alive():
            self._proc.kill()


class PopenLauncher(ProcessLauncher):
    """Spawn real child processes.

    Children get their own session so a Ctrl+C aimed at the host (or the
    exit of a short-lived CLI invocation) does not reach the encoder.
    """

    def spawn(self, argv: Sequence[str], log_path: Path) -> ProcessHandle:
        try:
            log_file = open(log_path, "wb")
        except OSError as e:
            raise SpawnFailed(f"Could not create log file {log_path}: {e}") from e

        try:
            proc: "subprocess.Popen[bytes]" = subprocess.Popen(
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnFailed(f"Failed to start {argv[0]}: {e}") from e
        finally:
            # The child holds its own descriptor
            log_file.close()
        return PopenHandle(proc)


# ============================================================================
# ADOPTED PROCESSES
# ============================================================================


class PidHandle(ProcessHandle):
    """Handle for a process that is not our child.

    Exit can only be observed by polling, since the process cannot be
    reaped from here.
    """

    def __init__(self, pid: int):
        self._pid = pid

    @property
    def pid(self) -> int:
        return self._pid

    def is_alive(self) -> bool:
        return pid_alive(self._pid)

    def _send(self, sig: int) -> None:
        try:
            os.kill(self._pid, sig)
        except ProcessLookupError:
            pass

    def signal_stop(self) -> None:
        self._send(signal.SIGINT)

    def wait(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while self.is_alive():
            if time.monotonic() >= deadline:
                return False
            time.sleep(_POLL_INTERVAL_S)
        return True

    def kill(self) -> None:
        self._send(signal.SIGKILL)
