#!/usr/bin/env python3
"""Recording session state machine.

    IDLE --toggle--> STARTING --encoder running--> RECORDING
    RECORDING --toggle--> STOPPING --encoder exited--> IDLE

Any failure while starting drops back to IDLE without leaving a process
behind. Stopping always ends in IDLE, even when the encoder has to be killed
or leaves no usable file; the problem is reported in the ToggleResult so the
next toggle can start a fresh session.

The thread lock only guards the phase check-and-set. Selection and encoder
shutdown run outside it, so a toggle arriving mid-transition sees
STARTING/STOPPING and is rejected instead of queueing behind the lock. The
same window is claimed across processes through the session store's lock
file, since each hotkey press may be handled by a fresh process.
"""

from __future__ import annotations

import os
import sys
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from regionrec.audio import compose_audio_sources
from regionrec.command import build_command, output_file_path, validate_video_config
from regionrec.config import RecorderConfig, load_config
from regionrec.errors import (
    ForcedTermination,
    IncompleteOutput,
    MonitorQueryUnavailable,
    RecorderError,
    SelectionCancelled,
    SpawnFailed,
)
from regionrec.geometry import MonitorQuery, MssMonitorQuery, clamp_to_screen, resolve_region
from regionrec.process import PopenLauncher, ProcessHandle, ProcessLauncher
from regionrec.selection import RegionSelector, SlopSelector
from regionrec.store import SessionRecord, SessionStore, record_is_live
from regionrec.types import (
    DEFAULT_KILL_TIMEOUT_S,
    DEFAULT_LOG_FILE,
    DEFAULT_STARTUP_GRACE_S,
    DEFAULT_STOP_TIMEOUT_S,
    AudioSource,
    CaptureCommand,
    CaptureRegion,
    RawSelection,
    SessionPhase,
    ToggleAction,
    ToggleResult,
)


@dataclass(frozen=True)
class _ActiveSession:
    started_at: float
    output_path: Path
    handle: ProcessHandle
    region: CaptureRegion
    audio_sources: Tuple[AudioSource, ...]
    executable: str = "ffmpeg"


class SessionController:
    """Owns the single recording session and its encoder process.

    Args:
        launcher: Spawns the encoder. Defaults to real subprocesses.
        selector: Interactive region selection. Defaults to slop with the
            configured selection timeout.
        monitor_query: Monitor layout source. Defaults to mss.
        config_loader: Returns the current configuration snapshot; called
            once per start.
        store: Persists the running session between processes.
        log_path: File receiving the encoder's output.
        display: X11 display to grab. Defaults to $DISPLAY.
        stop_timeout_s: Grace period after SIGINT before SIGKILL.
        kill_timeout_s: Wait after SIGKILL.
        startup_grace_s: How long the encoder must survive to count as started.
        clock: Wall clock, replaceable in tests.
        verbose: Print progress to stderr.
    """

    def __init__(
        self,
        launcher: Optional[ProcessLauncher] = None,
        selector: Optional[RegionSelector] = None,
        monitor_query: Optional[MonitorQuery] = None,
        config_loader: Optional[Callable[[], RecorderConfig]] = None,
        store: Optional[SessionStore] = None,
        log_path: Path = DEFAULT_LOG_FILE,
        display: Optional[str] = None,
        stop_timeout_s: float = DEFAULT_STOP_TIMEOUT_S,
        kill_timeout_s: float = DEFAULT_KILL_TIMEOUT_S,
        startup_grace_s: float = DEFAULT_STARTUP_GRACE_S,
        clock: Callable[[], float] = time.time,
        verbose: bool = False,
    ):
        self.launcher = launcher or PopenLauncher()
        self.selector = selector
        self.monitor_query = monitor_query or MssMonitorQuery()
        self.config_loader = config_loader or load_config
        self.store = store or SessionStore()
        self.log_path = log_path
        self.display = display or os.environ.get("DISPLAY", ":0.0")
        self.stop_timeout_s = stop_timeout_s
        self.kill_timeout_s = kill_timeout_s
        self.startup_grace_s = startup_grace_s
        self.clock = clock
        self.verbose = verbose

        self._lock = threading.Lock()
        self._phase = SessionPhase.IDLE
        self._session: Optional[_ActiveSession] = None

        self._restore()

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message, file=sys.stderr)

    @property
    def phase(self) -> SessionPhase:
        with self._lock:
            return self._phase

    def describe(self) -> Dict[str, Any]:
        """Return a snapshot of the current state for status displays."""
        with self._lock:
            info: Dict[str, Any] = {"phase": self._phase.value}
            session = self._session
        if session is not None:
            info.update(
                output_path=str(session.output_path),
                pid=session.handle.pid,
                started_at=session.started_at,
                elapsed_s=max(0.0, self.clock() - session.started_at),
                region=session.region.as_tuple(),
                audio=[s.kind for s in session.audio_sources],
            )
        return info

    # ------------------------------------------------------------------
    # Toggle
    # ------------------------------------------------------------------

    def toggle(self) -> ToggleResult:
        """Start a recording when idle, stop it when recording."""
        with self._lock:
            phase = self._phase
            if phase in (SessionPhase.STARTING, SessionPhase.STOPPING):
                return ToggleResult(
                    ToggleAction.REJECTED, f"Recorder is busy ({phase.value}); toggle ignored"
                )
            try:
                claim = self.store.claim()
            except OSError as e:
                return ToggleResult(
                    ToggleAction.REJECTED,
                    f"Could not lock {self.store.lock_path}: {e}",
                    error=SpawnFailed.__name__,
                )
            if claim is None:
                return ToggleResult(
                    ToggleAction.REJECTED,
                    "Another regionrec process is starting or stopping a recording; toggle ignored",
                )

            if phase is SessionPhase.IDLE:
                # Pick up a recording started by another process meanwhile
                try:
                    self._restore()
                except BaseException:
                    self.store.release(claim)
                    raise
                phase = self._phase
            if phase is SessionPhase.IDLE:
                self._phase = SessionPhase.STARTING
            else:
                self._phase = SessionPhase.STOPPING

        try:
            if phase is SessionPhase.IDLE:
                return self._start()
            return self._stop()
        finally:
            self.store.release(claim)

    def _set_idle(self) -> None:
        with self._lock:
            self._session = None
            self._phase = SessionPhase.IDLE

    # ------------------------------------------------------------------
    # Starting
    # ------------------------------------------------------------------

    def _start(self) -> ToggleResult:
        try:
            return self._start_session()
        except SelectionCancelled as e:
            self._log(f"Selection cancelled: {e}")
            self._set_idle()
            return ToggleResult(ToggleAction.REJECTED, "Selection cancelled")
        except RecorderError as e:
            self._log(f"Start failed ({e.kind}): {e}")
            self._set_idle()
            return ToggleResult(ToggleAction.REJECTED, f"Recording failed: {e}", error=e.kind)
        except BaseException:
            self._set_idle()
            raise

    def _start_session(self) -> ToggleResult:
        self._reap_stale()

        cfg = self.config_loader()
        # Bad settings are reported before the user draws anything
        validate_video_config(cfg.video)

        selector = self.selector or SlopSelector(cfg.region.selection_timeout_s)
        raw = selector.select()
        self._log(f"Selection: {raw.width}x{raw.height} at ({raw.x}, {raw.y})")

        region = self._resolve(raw, cfg)
        sources = tuple(compose_audio_sources(cfg.audio))
        try:
            output = output_file_path(cfg.output_dir, cfg.video.format)
        except OSError as e:
            raise SpawnFailed(f"Could not create output directory {cfg.output_dir}: {e}") from e

        command = build_command(region, sources, cfg.video, output, display=self.display)
        self._log(f"Starting encoder: {command}")

        handle = self._spawn(command)
        session = _ActiveSession(
            self.clock(), output, handle, region, sources, command.executable
        )
        try:
            self.store.save(self._record_for(session))
        except OSError as e:
            # Without a record the next toggle could never stop this encoder
            self._terminate(handle)
            raise SpawnFailed(f"Could not save session state to {self.store.path}: {e}") from e

        with self._lock:
            self._session = session
            self._phase = SessionPhase.RECORDING

        audio_desc = " + ".join(s.kind for s in sources) or "no audio"
        return ToggleResult(
            ToggleAction.STARTED,
            f"Recording {region.width}x{region.height} ({audio_desc}). Toggle again to stop.",
            output_path=output,
        )

    def _resolve(self, raw: RawSelection, cfg: RecorderConfig) -> CaptureRegion:
        try:
            monitors = self.monitor_query.monitors()
        except MonitorQueryUnavailable as e:
            if not cfg.region.fallback_to_screen:
                raise
            self._log(f"Warning: {e}; clamping to the full screen without snapping")
            return clamp_to_screen(raw, self.monitor_query.screen())
        return resolve_region(raw, monitors, cfg.region.snap_tolerance_px)

    def _spawn(self, command: CaptureCommand) -> ProcessHandle:
        handle = self.launcher.spawn(command.argv, self.log_path)
        if handle.wait(self.startup_grace_s):
            raise SpawnFailed(f"{command.executable} exited immediately. Check {self.log_path}")
        return handle

    def _reap_stale(self) -> None:
        """Terminate an encoder that outlived its session.

        Raises:
            SpawnFailed: If the encoder cannot be stopped; starting another
                one next to it would leave two recordings running.
        """
        record = self.store.load()
        if record is None:
            return
        if not record_is_live(record):
            self.store.clear()
            return

        handle = self.launcher.adopt(record.pid)
        self._log(f"Cleaning up stale encoder (pid {record.pid})")
        self._terminate(handle)
        if handle.is_alive():
            self.store.save(replace(record, stale=True))
            raise SpawnFailed(
                f"Previous encoder (pid {record.pid}) is still running and cannot be stopped"
            )
        self.store.clear()

    def _record_for(self, session: _ActiveSession) -> SessionRecord:
        return SessionRecord(
            pid=session.handle.pid,
            output_path=session.output_path,
            started_at=session.started_at,
            region=session.region,
            audio_sources=session.audio_sources,
            executable=session.executable,
            log_path=self.log_path,
        )

    # ------------------------------------------------------------------
    # Stopping
    # ------------------------------------------------------------------

    def _terminate(self, handle: ProcessHandle) -> bool:
        """Stop ``handle`` gracefully, escalating to a kill.

        Returns True if the kill was needed.
        """
        if not handle.is_alive():
            return False
        handle.signal_stop()
        if handle.wait(self.stop_timeout_s):
            return False

        self._log(f"Encoder ignored SIGINT for {self.stop_timeout_s:.0f}s, killing")
        handle.kill()
        handle.wait(self.kill_timeout_s)
        return True

    def _stop(self) -> ToggleResult:
        session = self._session
        if session is None:
            self._set_idle()
            return ToggleResult(ToggleAction.REJECTED, "No active recording")

        elapsed = max(0.0, self.clock() - session.started_at)
        try:
            forced = self._terminate(session.handle)
        finally:
            try:
                self._release_record(session)
            finally:
                self._set_idle()

        try:
            size = self._finalize(session.output_path, forced)
        except RecorderError as e:
            self._log(f"Stop problem ({e.kind}): {e}")
            return ToggleResult(
                ToggleAction.STOPPED, str(e), error=e.kind, output_path=session.output_path
            )

        size_mb = size / (1024 * 1024)
        return ToggleResult(
            ToggleAction.STOPPED,
            f"Saved {session.output_path} ({elapsed:.1f}s, {size_mb:.1f} MB)",
            output_path=session.output_path,
        )

    def _release_record(self, session: _ActiveSession) -> None:
        """Drop the stored record, or mark it stale if the encoder is still alive."""
        if session.handle.is_alive():
            self._log(f"Encoder (pid {session.handle.pid}) survived SIGKILL; kept for cleanup")
            self.store.save(replace(self._record_for(session), stale=True))
        else:
            self.store.clear()

    def _finalize(self, output_path: Path, forced: bool) -> int:
        """Check the finished file and return its size in bytes."""
        try:
            size = output_path.stat().st_size
        except OSError:
            size = 0

        if size <= 0:
            suffix = " after the encoder was killed" if forced else ""
            raise IncompleteOutput(f"Recording stopped but {output_path} is missing or empty{suffix}")
        if forced:
            raise ForcedTermination(
                f"Encoder did not exit in time and was killed; {output_path} may be truncated"
            )
        return size

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def _restore(self) -> None:
        """Adopt an encoder started by an earlier process, if still running."""
        record = self.store.load()
        if record is None or record.stale:
            return
        if not record_is_live(record):
            self._log(f"Discarding stale session record (pid {record.pid})")
            self.store.clear()
            return

        self._session = _ActiveSession(
            started_at=record.started_at,
            output_path=record.output_path,
            handle=self.launcher.adopt(record.pid),
            region=record.region,
            audio_sources=record.audio_sources,
            executable=record.executable,
        )
        self._phase = SessionPhase.RECORDING
