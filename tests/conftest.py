"""Shared pytest fixtures for regionrec tests."""

import sys
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from regionrec.config import AudioConfig, RecorderConfig, RegionConfig, VideoConfig
from regionrec.errors import MonitorQueryUnavailable
from regionrec.geometry import MonitorQuery
from regionrec.process import ProcessHandle, ProcessLauncher
from regionrec.selection import RegionSelector
from regionrec.session import SessionController
from regionrec.store import SessionStore
from regionrec.types import Monitor, RawSelection


class FakeHandle(ProcessHandle):
    """Stand-in for an encoder process.

    Writes ``payload`` to ``output_path`` when it exits, like ffmpeg
    flushing its container on SIGINT.
    """

    def __init__(
        self,
        pid: int = 4242,
        output_path: Optional[Path] = None,
        stops_gracefully: bool = True,
        dies_on_kill: bool = True,
        exit_immediately: bool = False,
        payload: bytes = b"\x1a\x45\xdf\xa3 fake matroska",
    ):
        self._pid = pid
        self.output_path = output_path
        self.stops_gracefully = stops_gracefully
        self.dies_on_kill = dies_on_kill
        self.payload = payload
        self.alive = not exit_immediately
        self.signals: List[str] = []
        self.killed = False

    @property
    def pid(self) -> int:
        return self._pid

    def _exit(self) -> None:
        self.alive = False
        if self.output_path is not None and self.payload:
            self.output_path.write_bytes(self.payload)

    def crash(self) -> None:
        """Die without writing anything."""
        self.alive = False

    def is_alive(self) -> bool:
        return self.alive

    def signal_stop(self) -> None:
        self.signals.append("SIGINT")
        if self.stops_gracefully:
            self._exit()

    def wait(self, timeout: float) -> bool:
        return not self.alive

    def kill(self) -> None:
        self.killed = True
        if self.dies_on_kill:
            self._exit()


class FakeLauncher(ProcessLauncher):
    """Records spawned commands instead of running them."""

    def __init__(self, error: Optional[Exception] = None, **handle_kwargs):
        self.error = error
        self.handle_kwargs = handle_kwargs
        self.spawned: List[Tuple[str, ...]] = []
        self.handles: List[FakeHandle] = []
        self.adopted: Dict[int, FakeHandle] = {}

    def spawn(self, argv: Sequence[str], log_path: Path) -> ProcessHandle:
        if self.error is not None:
            raise self.error
        self.spawned.append(tuple(argv))
        handle = FakeHandle(
            pid=1000 + len(self.handles), output_path=Path(argv[-1]), **self.handle_kwargs
        )
        self.handles.append(handle)
        return handle

    def adopt(self, pid: int) -> ProcessHandle:
        """Return the handle this launcher spawned with ``pid``, if any."""
        if pid not in self.adopted:
            spawned = [h for h in self.handles if h.pid == pid]
            self.adopted[pid] = spawned[0] if spawned else FakeHandle(pid=pid)
        return self.adopted[pid]


class FakeSelector(RegionSelector):
    """Returns a fixed selection, optionally blocking until released."""

    name = "fake"

    def __init__(
        self,
        raw: Optional[RawSelection] = None,
        error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ):
        super().__init__(timeout_s=5)
        self.raw = raw or RawSelection(10, 10, 500, 400)
        self.error = error
        self.gate = gate
        self.entered = threading.Event()
        self.calls = 0

    def select(self) -> RawSelection:
        self.calls += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.raw


class FakeMonitorQuery(MonitorQuery):
    name = "fake"

    def __init__(
        self,
        monitors: Sequence[Monitor] = (Monitor(0, 0, 1920, 1080, "HDMI-1"),),
        screen: Optional[Monitor] = None,
        available: bool = True,
    ):
        self._monitors = tuple(monitors)
        self._screen = screen or Monitor(0, 0, 1920, 1080, "screen")
        self.available = available

    def monitors(self) -> Tuple[Monitor, ...]:
        if not self.available or not self._monitors:
            raise MonitorQueryUnavailable("xrandr failed")
        return self._monitors

    def screen(self) -> Monitor:
        return self._screen


@pytest.fixture
def single_monitor() -> Tuple[Monitor, ...]:
    """One 1920x1080 monitor at the origin."""
    return (Monitor(0, 0, 1920, 1080, "HDMI-1"),)


@pytest.fixture
def dual_monitors() -> Tuple[Monitor, ...]:
    """A 1920x1080 monitor with a 2560x1440 monitor to its right."""
    return (
        Monitor(0, 0, 1920, 1080, "HDMI-1"),
        Monitor(1920, 0, 2560, 1440, "DP-1"),
    )


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "Videos"


@pytest.fixture
def recorder_config(output_dir: Path) -> RecorderConfig:
    """Microphone only, crf 18, veryfast, 60 fps, mkv."""
    return RecorderConfig(
        audio=AudioConfig(enabled=True, inputs=["mic"]),
        video=VideoConfig(crf=18, preset="veryfast", framerate=60, format="mkv"),
        region=RegionConfig(snap_tolerance_px=15),
        output_dir=output_dir,
    )


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / "session.json")


@pytest.fixture
def make_controller(
    tmp_path: Path, recorder_config: RecorderConfig, store: SessionStore
) -> Callable[..., SessionController]:
    """Factory for controllers wired to fakes."""

    def factory(
        config: Optional[RecorderConfig] = None,
        launcher: Optional[FakeLauncher] = None,
        selector: Optional[RegionSelector] = None,
        monitor_query: Optional[MonitorQuery] = None,
        **kwargs,
    ) -> SessionController:
        cfg = config or recorder_config
        return SessionController(
            launcher=launcher or FakeLauncher(),
            selector=selector or FakeSelector(),
            monitor_query=monitor_query or FakeMonitorQuery(),
            config_loader=lambda: cfg,
            store=kwargs.pop("session_store", store),
            log_path=tmp_path / "regionrec.log",
            display=":0.0",
            startup_grace_s=0,
            stop_timeout_s=0.01,
            kill_timeout_s=0.01,
            **kwargs,
        )

    return factory
