#!/usr/bin/env python3
"""Interactive region selection.

Selectors block until the user finishes or aborts a drag. An abort (escape,
right click in slop, or running out of time) raises SelectionCancelled,
which the session controller treats as a normal return to idle.
"""

from __future__ import annotations

import subprocess
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from regionrec.errors import InvalidRegion, SelectionCancelled, SpawnFailed
from regionrec.types import DEFAULT_SELECTION_TIMEOUT_S, RawSelection

SLOP_ARGS: List[str] = [
    "slop",
    "--highlight",
    "--color=1,0,0,0.65",
    "-b", "0",
    "-f", "%x,%y,%w,%h",
]


class RegionSelector(ABC):
    """Interactive source of a RawSelection."""

    name: str = "base"

    def __init__(self, timeout_s: float = DEFAULT_SELECTION_TIMEOUT_S):
        self.timeout_s = timeout_s

    @abstractmethod
    def select(self) -> RawSelection:
        """Block until the user draws a rectangle.

        Raises:
            SelectionCancelled: If the user aborts or the timeout elapses.
            SpawnFailed: If the selection tool is not installed.
        """


def parse_selection_geometry(text: str) -> RawSelection:
    """Parse ``x,y,w,h`` as printed by slop."""
    parts = [p.strip() for p in text.strip().split(",")]
    if len(parts) != 4:
        raise InvalidRegion(f"Expected 4 values in geometry, got {len(parts)}: {text!r}")
    try:
        x, y, w, h = (int(p) for p in parts)
    except ValueError as e:
        raise InvalidRegion(f"Invalid selection geometry: {text!r}") from e
    return RawSelection(x, y, w, h)


class SlopSelector(RegionSelector):
    """Rectangle selection with the ``slop`` tool."""

    name = "slop"

    def select(self) -> RawSelection:
        try:
            result = subprocess.run(
                SLOP_ARGS,
                capture_output=True, text=True, timeout=self.timeout_s
            )
        except FileNotFoundError as e:
            raise SpawnFailed("slop required. Install: apt install slop") from e
        except subprocess.TimeoutExpired as e:
            raise SelectionCancelled(f"Selection timed out after {self.timeout_s:.0f}s") from e

        raw = result.stdout.strip()
        if result.returncode != 0 or not raw:
            raise SelectionCancelled("Selection cancelled")
        return parse_selection_geometry(raw)


class PynputSelector(RegionSelector):
    """Press-drag-release selection using global pynput listeners.

    Escape cancels. Needs an X11 session; without one pynput cannot be
    imported and the selection fails with SpawnFailed.
    """

    name = "pynput"

    def select(self) -> RawSelection:
        try:
            from pynput import keyboard, mouse
        except ImportError as e:
            raise SpawnFailed(f"pynput unavailable (X11 display required): {e}") from e

        points: Dict[str, Optional[Tuple[int, int]]] = {"start": None, "end": None}
        cancelled = threading.Event()
        done = threading.Event()

        def on_click(x: int, y: int, button: Any, pressed: bool) -> Optional[bool]:
            if button != mouse.Button.left:
                return None
            if pressed:
                points["start"] = (int(x), int(y))
                return None
            if points["start"] is None:
                return None
            points["end"] = (int(x), int(y))
            done.set()
            return False

        def on_press(key: Any) -> Optional[bool]:
            if key == keyboard.Key.esc:
                cancelled.set()
                done.set()
                return False
            return None

        with mouse.Listener(on_click=on_click), keyboard.Listener(on_press=on_press):
            finished = done.wait(self.timeout_s)

        start, end = points["start"], points["end"]
        if not finished or cancelled.is_set() or start is None or end is None:
            raise SelectionCancelled("Selection cancelled")

        return RawSelection(
            min(start[0], end[0]),
            min(start[1], end[1]),
            abs(end[0] - start[0]),
            abs(end[1] - start[1]),
        )


SELECTORS = {
    SlopSelector.name: SlopSelector,
    PynputSelector.name: PynputSelector,
}
