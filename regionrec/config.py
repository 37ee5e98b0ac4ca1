#!/usr/bin/env python3
"""Recorder configuration document.

The configuration is a JSON document edited by the host's settings page::

    {
      "audio": {"enabled": true, "inputs": ["mic"],
                "mic_device": "default", "system_device": "default"},
      "video": {"crf": 18, "preset": "veryfast", "framerate": 60,
                "format": "mkv"},
      "region": {"snap_tolerance_px": 15, "fallback_to_screen": true,
                 "selection_timeout_s": 120},
      "output_dir": "~/Videos"
    }

Every key is optional and falls back to the default shown. The recorder only
reads the document; range checks on the video settings happen when the
encoder command is built (see regionrec.command.validate_video_config).
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from regionrec.errors import ConfigError
from regionrec.types import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DEVICE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SELECTION_TIMEOUT_S,
    DEFAULT_SNAP_TOLERANCE_PX,
)

CONFIG_ENV_VAR = "REGIONREC_CONFIG"


@dataclass(frozen=True)
class AudioConfig:
    enabled: bool = True
    inputs: List[str] = field(default_factory=lambda: ["mic"])
    mic_device: str = DEFAULT_DEVICE
    system_device: str = DEFAULT_DEVICE


@dataclass(frozen=True)
class VideoConfig:
    crf: int = 18
    preset: str = "veryfast"
    framerate: int = 60
    format: str = "mkv"


@dataclass(frozen=True)
class RegionConfig:
    snap_tolerance_px: int = DEFAULT_SNAP_TOLERANCE_PX
    fallback_to_screen: bool = True
    selection_timeout_s: float = DEFAULT_SELECTION_TIMEOUT_S


@dataclass(frozen=True)
class RecorderConfig:
    audio: AudioConfig = field(default_factory=AudioConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    region: RegionConfig = field(default_factory=RegionConfig)
    output_dir: Path = DEFAULT_OUTPUT_DIR


def default_config_path() -> Path:
    """Return the config path, honouring the REGIONREC_CONFIG override."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_PATH


def _section(document: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = document.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be an object, got {type(value).__name__}")
    return value


def _get(section: Dict[str, Any], key: str, kind: Union[type, tuple], default: Any) -> Any:
    value = section.get(key, default)
    # bool is an int subclass; a flag is never a number and vice versa.
    if isinstance(value, bool) and kind is not bool:
        raise ConfigError(f"'{key}' must be {_type_name(kind)}, got bool")
    if not isinstance(value, kind):
        raise ConfigError(f"'{key}' must be {_type_name(kind)}, got {type(value).__name__}")
    return value


def _type_name(kind: Union[type, tuple]) -> str:
    if isinstance(kind, tuple):
        return " or ".join(k.__name__ for k in kind)
    return kind.__name__


def parse_config(document: Dict[str, Any]) -> RecorderConfig:
    """Build a RecorderConfig from a decoded JSON document.

    Args:
        document: Decoded configuration object. Missing keys take defaults.

    Returns:
        The parsed configuration.

    Raises:
        ConfigError: If the document or one of its values has the wrong type.
    """
    if not isinstance(document, dict):
        raise ConfigError(f"Configuration must be an object, got {type(document).__name__}")

    audio = _section(document, "audio")
    inputs = _get(audio, "inputs", list, ["mic"])
    if not all(isinstance(item, str) for item in inputs):
        raise ConfigError("'inputs' must be a list of strings")

    audio_cfg = AudioConfig(
        enabled=_get(audio, "enabled", bool, True),
        inputs=list(inputs),
        mic_device=_get(audio, "mic_device", str, DEFAULT_DEVICE),
        system_device=_get(audio, "system_device", str, DEFAULT_DEVICE),
    )

    video = _section(document, "video")
    video_cfg = VideoConfig(
        crf=_get(video, "crf", int, 18),
        preset=_get(video, "preset", str, "veryfast"),
        framerate=_get(video, "framerate", int, 60),
        format=_get(video, "format", str, "mkv"),
    )

    region = _section(document, "region")
    region_cfg = RegionConfig(
        snap_tolerance_px=_get(region, "snap_tolerance_px", int, DEFAULT_SNAP_TOLERANCE_PX),
        fallback_to_screen=_get(region, "fallback_to_screen", bool, True),
        selection_timeout_s=float(
            _get(region, "selection_timeout_s", (int, float), DEFAULT_SELECTION_TIMEOUT_S)
        ),
    )
    if region_cfg.snap_tolerance_px < 0:
        raise ConfigError("'snap_tolerance_px' must not be negative")
    if region_cfg.selection_timeout_s <= 0:
        raise ConfigError("'selection_timeout_s' must be positive")

    output_dir = document.get("output_dir")
    if output_dir is None:
        output_path = DEFAULT_OUTPUT_DIR
    elif isinstance(output_dir, str) and output_dir:
        output_path = Path(output_dir).expanduser()
    else:
        raise ConfigError("'output_dir' must be a non-empty string")

    return RecorderConfig(
        audio=audio_cfg, video=video_cfg, region=region_cfg, output_dir=output_path
    )


def config_to_dict(cfg: RecorderConfig) -> Dict[str, Any]:
    """Serialize a RecorderConfig back to its JSON document form."""
    return {
        "audio": {
            "enabled": cfg.audio.enabled,
            "inputs": list(cfg.audio.inputs),
            "mic_device": cfg.audio.mic_device,
            "system_device": cfg.audio.system_device,
        },
        "video": {
            "crf": cfg.video.crf,
            "preset": cfg.video.preset,
            "framerate": cfg.video.framerate,
            "format": cfg.video.format,
        },
        "region": {
            "snap_tolerance_px": cfg.region.snap_tolerance_px,
            "fallback_to_screen": cfg.region.fallback_to_screen,
            "selection_timeout_s": cfg.region.selection_timeout_s,
        },
        "output_dir": str(cfg.output_dir),
    }


def load_config(path: Optional[Path] = None) -> RecorderConfig:
    """Read the current configuration snapshot.

    A missing, unreadable or malformed file yields the defaults so that a
    broken settings page never blocks recording. Anything but a missing file
    is reported on stderr, since the defaults replace every saved setting.
    """
    path = path or default_config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
        return parse_config(document)
    except FileNotFoundError:
        return RecorderConfig()
    except (OSError, json.JSONDecodeError, ConfigError) as e:
        print(f"Warning: Ignoring config {path}, using defaults: {e}", file=sys.stderr)
        return RecorderConfig()


def save_config(cfg: RecorderConfig, path: Optional[Path] = None) -> Path:
    """Write the configuration atomically and return the path written."""
    path = path or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(config_to_dict(cfg), f, indent=2)
    os.replace(tmp_path, path)
    return path
