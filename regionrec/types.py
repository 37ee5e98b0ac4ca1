#!/usr/bin/env python3
"""Shared types and constants for the regionrec package.

Constants:
    __version__: Package version string
    DEFAULT_SNAP_TOLERANCE_PX: Edge snapping distance in pixels
    MIN_CRF, MAX_CRF: Bounds of the x264 quality factor
    VIDEO_PRESETS: Accepted x264 speed presets
    VIDEO_FORMATS: Accepted output containers

Types:
    Monitor, RawSelection, CaptureRegion: Screen geometry
    AudioSource: One encoder audio input
    CaptureCommand: Resolved encoder argument list
    SessionPhase, ToggleAction, ToggleResult: Session state machine
"""

from __future__ import annotations

import enum
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

# ============================================================================
# VERSION AND METADATA
# ============================================================================

__version__ = "1.0.0"

# ============================================================================
# GEOMETRY
# ============================================================================

DEFAULT_SNAP_TOLERANCE_PX: int = 15

# ============================================================================
# VIDEO ENCODING
# ============================================================================

MIN_CRF: int = 0
MAX_CRF: int = 51  # libx264 8-bit upper bound

VIDEO_PRESETS: Tuple[str, ...] = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
)

# Both containers carry libx264 + aac. mp4 is written fragmented so a killed
# encoder still leaves a playable file; matroska is already crash-tolerant.
VIDEO_FORMATS: Tuple[str, ...] = ("mkv", "mp4")

AUDIO_CODEC: str = "aac"
AUDIO_BITRATE: str = "192k"

# ============================================================================
# AUDIO
# ============================================================================

DEFAULT_DEVICE: str = "default"
AUDIO_KINDS: Tuple[str, ...] = ("mic", "system")
DEFAULT_SYSTEM_SOURCE: str = "@DEFAULT_MONITOR@"

# ============================================================================
# PROCESS LIFECYCLE
# ============================================================================

DEFAULT_SELECTION_TIMEOUT_S: float = 120.0
DEFAULT_STOP_TIMEOUT_S: float = 10.0
DEFAULT_KILL_TIMEOUT_S: float = 2.0
DEFAULT_STARTUP_GRACE_S: float = 0.5

# ============================================================================
# PATHS
# ============================================================================

DEFAULT_CONFIG_PATH: Path = Path.home() / ".config" / "regionrec" / "config.json"
DEFAULT_OUTPUT_DIR: Path = Path.home() / "Videos"
DEFAULT_STATE_FILE: Path = Path(tempfile.gettempdir()) / "regionrec-session.json"
DEFAULT_LOG_FILE: Path = Path(tempfile.gettempdir()) / "regionrec.log"
SETTINGS_URL: str = "http://127.0.0.1:42700/plugins/plugin-screen-recorder/"

# ============================================================================
# TYPE DEFINITIONS
# ============================================================================


@dataclass(frozen=True)
class Monitor:
    """One physical monitor in global screen coordinates."""

    x: int
    y: int
    width: int
    height: int
    name: str = ""

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def contains_point(self, px: int, py: int) -> bool:
        return self.x <= px < self.right and self.y <= py < self.bottom


@dataclass(frozen=True)
class RawSelection:
    """User-drawn rectangle, untrusted."""

    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class CaptureRegion:
    """Validated rectangle that lies inside one monitor."""

    x: int
    y: int
    width: int
    height: int

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class AudioSource:
    kind: str
    device: str


@dataclass(frozen=True)
class CaptureCommand:
    """Fully resolved encoder invocation; argv[0] is the executable."""

    argv: Tuple[str, ...]

    @property
    def executable(self) -> str:
        return self.argv[0]

    @property
    def output_path(self) -> str:
        return self.argv[-1]

    def __str__(self) -> str:
        return " ".join(self.argv)


class SessionPhase(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RECORDING = "recording"
    STOPPING = "stopping"


class ToggleAction(enum.Enum):
    STARTED = "started"
    STOPPED = "stopped"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of one toggle, shown to the user by the host.

    ``error`` is the name of the error class when something went wrong, or
    None. A cancelled selection is rejected without an error.
    """

    action: ToggleAction
    detail: str
    error: Optional[str] = None
    output_path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.error is None

