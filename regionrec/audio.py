#!/usr/bin/env python3
"""Audio source composition and PulseAudio discovery."""

from __future__ import annotations

import subprocess
from typing import List, Optional, Tuple

from regionrec.config import AudioConfig
from regionrec.types import (
    AUDIO_KINDS,
    DEFAULT_DEVICE,
    DEFAULT_SYSTEM_SOURCE,
    AudioSource,
)

# What the "default" sentinel means for each input kind
_DEFAULT_IDENTIFIERS = {
    "mic": DEFAULT_DEVICE,
    "system": DEFAULT_SYSTEM_SOURCE,
}


def compose_audio_sources(cfg: AudioConfig) -> List[AudioSource]:
    """Translate audio settings into encoder inputs.

    Sources come out in fixed order (microphone first, then system audio)
    regardless of how the inputs are listed. Unknown kinds are skipped and
    device names other than the "default" sentinel are passed through
    untouched; whether a device exists is only known once the encoder runs.
    """
    if not cfg.enabled or not cfg.inputs:
        return []

    requested = set(cfg.inputs)
    devices = {"mic": cfg.mic_device, "system": cfg.system_device}

    sources: List[AudioSource] = []
    for kind in AUDIO_KINDS:
        if kind not in requested:
            continue
        device = devices[kind]
        if device == DEFAULT_DEVICE:
            device = _DEFAULT_IDENTIFIERS[kind]
        sources.append(AudioSource(kind, device))
    return sources


def get_pulse_default_source() -> Optional[str]:
    """Get the monitor source of the default sink (captures desktop audio)."""
    try:
        result = subprocess.run(
            ["pactl", "get-default-sink"],
            capture_output=True, text=True, check=True
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    default_sink = result.stdout.strip()
    if not default_sink:
        return None
    return f"{default_sink}.monitor"


def list_audio_sources() -> List[Tuple[str, str]]:
    """List PulseAudio sources as (name, kind) pairs.

    Monitor sources (desktop audio) are reported as "system", everything
    else as "mic".
    """
    sources: List[Tuple[str, str]] = []
    try:
        result = subprocess.run(
            ["pactl", "list", "sources", "short"],
            capture_output=True, text=True, check=True
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return sources

    for line in result.stdout.strip().split("\n"):
        parts = line.split("\t")
        if len(parts) >= 2 and parts[1]:
            name = parts[1]
            sources.append((name, "system" if name.endswith(".monitor") else "mic"))
    return sources
