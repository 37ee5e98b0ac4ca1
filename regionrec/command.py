#!/usr/bin/env python3
"""Encoder command construction.

build_command() is a pure function: the same region, audio sources, video
settings and output path always give the same argument list, so the command
can be logged and compared in tests. Validation runs first so a bad
configuration is reported before any process is spawned.
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from regionrec.config import VideoConfig
from regionrec.errors import InvalidRegion, InvalidVideoConfig
from regionrec.types import (
    AUDIO_BITRATE,
    AUDIO_CODEC,
    MAX_CRF,
    MIN_CRF,
    VIDEO_FORMATS,
    VIDEO_PRESETS,
    AudioSource,
    CaptureCommand,
    CaptureRegion,
)

VIDEO_CODEC = "libx264"
PIXEL_FORMAT = "yuv420p"

# Muxer flags per container
_CONTAINER_ARGS: Dict[str, List[str]] = {
    "mkv": [],
    "mp4": ["-movflags", "+frag_keyframe+empty_moov+default_base_moof"],
}


def validate_video_config(video: VideoConfig) -> None:
    """Reject video settings the encoder cannot use.

    Raises:
        InvalidVideoConfig: On a quality factor outside MIN_CRF..MAX_CRF, a
            non-positive frame rate, or an unknown preset or container.
    """
    if isinstance(video.crf, bool) or not isinstance(video.crf, int):
        raise InvalidVideoConfig(f"Quality factor must be an integer, got {video.crf!r}")
    if not MIN_CRF <= video.crf <= MAX_CRF:
        raise InvalidVideoConfig(
            f"Quality factor {video.crf} out of range ({MIN_CRF}-{MAX_CRF})"
        )
    if video.preset not in VIDEO_PRESETS:
        raise InvalidVideoConfig(f"Unknown preset: {video.preset!r}")
    if isinstance(video.framerate, bool) or not isinstance(video.framerate, int) \
            or video.framerate <= 0:
        raise InvalidVideoConfig(f"Frame rate must be a positive integer, got {video.framerate!r}")
    if video.format not in VIDEO_FORMATS:
        raise InvalidVideoConfig(
            f"Unknown format: {video.format!r} (expected one of {', '.join(VIDEO_FORMATS)})"
        )


def build_command(
    region: CaptureRegion,
    audio: Sequence[AudioSource],
    video: VideoConfig,
    output_path: Union[str, Path],
    display: str = ":0.0",
    encoder: str = "ffmpeg",
) -> CaptureCommand:
    """Assemble the ffmpeg invocation for one recording.

    Args:
        region: Capture rectangle. Odd sizes are trimmed by one pixel since
            yuv420p needs even dimensions.
        audio: Audio inputs in composer order. Two or more are mixed into a
            single track.
        video: Encoding settings.
        output_path: Destination file; its suffix must match video.format.
        display: X11 display to grab from.
        encoder: Encoder executable.

    Returns:
        The immutable command.

    Raises:
        InvalidVideoConfig: If the video settings or output suffix are wrong.
        InvalidRegion: If the region is too small to encode.
    """
    validate_video_config(video)

    output = Path(output_path)
    if output.suffix != f".{video.format}":
        raise InvalidVideoConfig(
            f"Output {output.name} does not match format {video.format!r}"
        )

    width = region.width - (region.width % 2)
    height = region.height - (region.height % 2)
    if width < 2 or height < 2:
        raise InvalidRegion(f"Region too small to encode: {region.width}x{region.height}")

    args: List[str] = [
        # Refuse to overwrite an existing recording; ffmpeg exits and the
        # startup check reports it
        encoder, "-n",
        "-f", "x11grab",
        "-video_size", f"{width}x{height}",
        "-framerate", str(video.framerate),
        "-i", f"{display}+{region.x},{region.y}",
    ]

    for source in audio:
        args += ["-f", "pulse", "-i", source.device]

    if len(audio) > 1:
        labels = "".join(f"[{i}:a]" for i in range(1, len(audio) + 1))
        args += [
            "-filter_complex", f"{labels}amix=inputs={len(audio)}:duration=longest[aout]",
            "-map", "0:v",
            "-map", "[aout]",
        ]

    if audio:
        args += ["-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE]

    args += [
        "-c:v", VIDEO_CODEC,
        "-crf", str(video.crf),
        "-preset", video.preset,
        "-pix_fmt", PIXEL_FORMAT,
    ]
    args += _CONTAINER_ARGS[video.format]
    args.append(str(output))

    return CaptureCommand(tuple(args))


def output_file_path(
    output_dir: Path, fmt: str, now: Optional[datetime.datetime] = None
) -> Path:
    """Return a fresh timestamped file path in output_dir, creating the dir.

    A numeric suffix is added if a recording with the same timestamp exists.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")

    candidate = output_dir / f"recording-{stamp}.{fmt}"
    counter = 1
    while candidate.exists():
        candidate = output_dir / f"recording-{stamp}-{counter}.{fmt}"
        counter += 1
    return candidate
