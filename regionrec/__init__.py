#!/usr/bin/env python3
"""Region screen recorder driven by a single toggle.

Public API:
    # Host entry points
    ToggleGateway.on_toggle() -> ToggleResult
    ToggleGateway.read_config() / update_config(document) -> dict

    # Building blocks
    resolve_region(raw, monitors, snap_tolerance_px) -> CaptureRegion
    compose_audio_sources(audio_config) -> List[AudioSource]
    build_command(region, audio, video, output_path) -> CaptureCommand
    SessionController: the recording state machine

Usage as a library:
    ```python
    from regionrec import ToggleGateway

    gateway = ToggleGateway()
    result = gateway.on_toggle()   # draw a region, recording starts
    print(result.detail)
    result = gateway.on_toggle()   # recording stops
    print(result.output_path)
    ```

Usage as CLI:
    ```bash
    regionrec record        # toggle
    python -m regionrec status
    ```
"""

from __future__ import annotations

from regionrec.types import (
    __version__,
    AudioSource,
    CaptureCommand,
    CaptureRegion,
    Monitor,
    RawSelection,
    SessionPhase,
    ToggleAction,
    ToggleResult,
)
from regionrec.errors import (
    RecorderError,
    InvalidRegion,
    MonitorQueryUnavailable,
    InvalidVideoConfig,
    SpawnFailed,
    IncompleteOutput,
    ForcedTermination,
    SelectionCancelled,
    ConfigError,
)
from regionrec.config import (
    AudioConfig,
    VideoConfig,
    RegionConfig,
    RecorderConfig,
    load_config,
    parse_config,
    save_config,
)
from regionrec.geometry import (
    resolve_region,
    clamp_to_screen,
    MssMonitorQuery,
    XrandrMonitorQuery,
)
from regionrec.audio import compose_audio_sources
from regionrec.command import build_command, validate_video_config
from regionrec.session import SessionController
from regionrec.gateway import ToggleGateway
from regionrec.cli import main

__all__ = [
    "__version__",
    # Types
    "AudioSource",
    "CaptureCommand",
    "CaptureRegion",
    "Monitor",
    "RawSelection",
    "SessionPhase",
    "ToggleAction",
    "ToggleResult",
    # Errors
    "RecorderError",
    "InvalidRegion",
    "MonitorQueryUnavailable",
    "InvalidVideoConfig",
    "SpawnFailed",
    "IncompleteOutput",
    "ForcedTermination",
    "SelectionCancelled",
    "ConfigError",
    # Configuration
    "AudioConfig",
    "VideoConfig",
    "RegionConfig",
    "RecorderConfig",
    "load_config",
    "parse_config",
    "save_config",
    # Components
    "resolve_region",
    "clamp_to_screen",
    "MssMonitorQuery",
    "XrandrMonitorQuery",
    "compose_audio_sources",
    "build_command",
    "validate_video_config",
    "SessionController",
    "ToggleGateway",
    "main",
]
