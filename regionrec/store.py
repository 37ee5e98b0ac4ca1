#!/usr/bin/env python3
"""Persistence of the active recording between toggles.

A hotkey typically launches a new process on every press, so the first press
must leave enough behind for the second one to find and stop the encoder.
The record lives in a small JSON file in the temp directory for exactly as
long as a recording runs.
"""

from __future__ import annotations

import fcntl
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Dict, Optional, Tuple

from regionrec.process import pid_alive, process_cmdline
from regionrec.types import DEFAULT_STATE_FILE, AudioSource, CaptureRegion


@dataclass(frozen=True)
class SessionRecord:
    pid: int
    output_path: Path
    started_at: float
    region: CaptureRegion
    audio_sources: Tuple[AudioSource, ...]
    executable: str = "ffmpeg"
    log_path: Optional[Path] = None
    # Encoder that survived a kill; reaped before the next start
    stale: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pid": self.pid,
            "output_path": str(self.output_path),
            "started_at": self.started_at,
            "region": list(self.region.as_tuple()),
            "audio_sources": [[s.kind, s.device] for s in self.audio_sources],
            "executable": self.executable,
            "log_path": str(self.log_path) if self.log_path else None,
            "stale": self.stale,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        x, y, w, h = (int(v) for v in data["region"])
        log_path = data.get("log_path")
        return cls(
            pid=int(data["pid"]),
            output_path=Path(data["output_path"]),
            started_at=float(data["started_at"]),
            region=CaptureRegion(x, y, w, h),
            audio_sources=tuple(AudioSource(str(k), str(d)) for k, d in data["audio_sources"]),
            executable=str(data.get("executable", "ffmpeg")),
            log_path=Path(log_path) if log_path else None,
            stale=bool(data.get("stale", False)),
        )


def record_is_live(record: SessionRecord) -> bool:
    """Return True if the recorded pid still runs the recorded encoder.

    Guards against pid reuse: a live pid whose command line no longer starts
    with the encoder executable counts as gone.
    """
    if not pid_alive(record.pid):
        return False
    cmdline = process_cmdline(record.pid)
    if not cmdline:
        # No /proc to confirm against
        return True
    return os.path.basename(cmdline[0]) == os.path.basename(record.executable)


class SessionStore:
    """JSON file holding at most one SessionRecord.

    Next to it sits a lock file. Whoever is starting or stopping a recording
    holds an exclusive flock on it, so a hotkey press handled by another
    process sees the transition and backs off.
    """

    def __init__(self, path: Path = DEFAULT_STATE_FILE):
        self.path = path

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    def claim(self) -> Optional[IO[str]]:
        """Take the transition lock without blocking.

        Returns:
            The open lock file, to be passed to release(), or None if another
            process (or another claim in this one) holds the lock.

        Raises:
            OSError: If the lock file cannot be opened.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock_file = open(self.lock_path, "a", encoding="utf-8")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            lock_file.close()
            return None
        return lock_file

    def release(self, lock_file: IO[str]) -> None:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            lock_file.close()

    def load(self) -> Optional[SessionRecord]:
        """Return the stored record, or None if absent or unreadable."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return SessionRecord.from_dict(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError):
            # Corrupt leftovers are discarded like a stale pidfile
            self.clear()
            return None

    def save(self, record: SessionRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
