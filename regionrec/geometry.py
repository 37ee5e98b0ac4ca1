#!/usr/bin/env python3
"""Monitor layout queries and capture region resolution.

A raw selection drawn with the pointer is rarely pixel exact. resolve_region()
snaps edges that land close to a monitor boundary onto that boundary and then
clamps the rectangle to the monitor it mostly covers, so the encoder never
grabs pixels outside a real screen.

Snapping rules:
    - The left/top edge snapping alone shifts the whole rectangle, keeping
      the drawn size.
    - The right/bottom edge snapping moves only that edge.
    - Candidate edges come from every monitor on the same axis. An exact tie
      goes to the larger monitor, then to the earlier monitor in query order.
"""

from __future__ import annotations

import re
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import mss
from mss.exception import ScreenShotError

from regionrec.errors import InvalidRegion, MonitorQueryUnavailable
from regionrec.types import (
    DEFAULT_SNAP_TOLERANCE_PX,
    CaptureRegion,
    Monitor,
    RawSelection,
)

_GEOMETRY_RE = re.compile(r"^(\d+)x(\d+)([+-]\d+)([+-]\d+)$")
_DIMENSIONS_RE = re.compile(r"dimensions:\s+(\d+)x(\d+)")

# (coordinate, monitor index) pairs for one axis
EdgeCandidates = List[Tuple[int, int]]


# ============================================================================
# REGION RESOLUTION
# ============================================================================


def virtual_bounds(monitors: Sequence[Monitor]) -> Tuple[int, int, int, int]:
    """Return (left, top, right, bottom) of the box enclosing all monitors."""
    return (
        min(m.x for m in monitors),
        min(m.y for m in monitors),
        max(m.right for m in monitors),
        max(m.bottom for m in monitors),
    )


def _edge_candidates(monitors: Sequence[Monitor], vertical: bool) -> EdgeCandidates:
    candidates: EdgeCandidates = []
    for index, m in enumerate(monitors):
        if vertical:
            candidates.append((m.x, index))
            candidates.append((m.right, index))
        else:
            candidates.append((m.y, index))
            candidates.append((m.bottom, index))
    return candidates


def snap_edge(
    value: int,
    candidates: EdgeCandidates,
    monitors: Sequence[Monitor],
    tolerance: int,
) -> Optional[int]:
    """Return the boundary ``value`` snaps to, or None if none is close enough."""
    if not candidates:
        return None
    coord, _ = min(
        candidates,
        key=lambda c: (abs(value - c[0]), -monitors[c[1]].area, c[1]),
    )
    if abs(value - coord) <= tolerance:
        return coord
    return None


def _overlap(left: int, top: int, right: int, bottom: int, m: Monitor) -> int:
    w = min(right, m.right) - max(left, m.x)
    h = min(bottom, m.bottom) - max(top, m.y)
    if w <= 0 or h <= 0:
        return 0
    return w * h


def _target_monitor(
    left: int, top: int, right: int, bottom: int, monitors: Sequence[Monitor]
) -> Optional[Monitor]:
    cx = left + (right - left) // 2
    cy = top + (bottom - top) // 2
    for m in monitors:
        if m.contains_point(cx, cy):
            return m

    # Centre fell into a gap between monitors of different sizes
    best = max(monitors, key=lambda m: _overlap(left, top, right, bottom, m))
    if _overlap(left, top, right, bottom, best) == 0:
        return None
    return best


def _clamp(
    left: int, top: int, right: int, bottom: int,
    bounds: Tuple[int, int, int, int],
) -> Tuple[int, int, int, int]:
    bl, bt, br, bb = bounds
    return max(left, bl), max(top, bt), min(right, br), min(bottom, bb)


def resolve_region(
    raw: RawSelection,
    monitors: Sequence[Monitor],
    snap_tolerance_px: int = DEFAULT_SNAP_TOLERANCE_PX,
) -> CaptureRegion:
    """Turn a raw pointer selection into a snapped, validated capture region.

    Args:
        raw: Rectangle as drawn by the user, in global coordinates.
        monitors: Monitor layout in query order.
        snap_tolerance_px: Maximum distance at which an edge snaps.

    Returns:
        A region with positive size that lies inside one monitor.

    Raises:
        MonitorQueryUnavailable: If ``monitors`` is empty.
        InvalidRegion: If the selection is degenerate or off every monitor.

    Examples:
        >>> screen = [Monitor(0, 0, 1920, 1080)]
        >>> resolve_region(RawSelection(2, 2, 300, 300), screen, 15).as_tuple()
        (0, 0, 300, 300)
    """
    if not monitors:
        raise MonitorQueryUnavailable("No monitors available to snap the selection to")
    if raw.width <= 0 or raw.height <= 0:
        raise InvalidRegion(f"Invalid area: {raw.width}x{raw.height}")

    left, top = raw.x, raw.y
    right, bottom = raw.x + raw.width, raw.y + raw.height

    vertical = _edge_candidates(monitors, vertical=True)
    horizontal = _edge_candidates(monitors, vertical=False)

    snap_left = snap_edge(left, vertical, monitors, snap_tolerance_px)
    snap_right = snap_edge(right, vertical, monitors, snap_tolerance_px)
    snap_top = snap_edge(top, horizontal, monitors, snap_tolerance_px)
    snap_bottom = snap_edge(bottom, horizontal, monitors, snap_tolerance_px)

    if snap_left is not None:
        if snap_right is None:
            right += snap_left - left
        left = snap_left
    if snap_right is not None:
        right = snap_right
    if snap_top is not None:
        if snap_bottom is None:
            bottom += snap_top - top
        top = snap_top
    if snap_bottom is not None:
        bottom = snap_bottom

    left, top, right, bottom = _clamp(left, top, right, bottom, virtual_bounds(monitors))
    if right <= left or bottom <= top:
        raise InvalidRegion(f"Invalid area: {right - left}x{bottom - top}")

    target = _target_monitor(left, top, right, bottom, monitors)
    if target is None:
        raise InvalidRegion("Selection does not cover any monitor")

    left, top, right, bottom = _clamp(
        left, top, right, bottom, (target.x, target.y, target.right, target.bottom)
    )
    if right <= left or bottom <= top:
        raise InvalidRegion(f"Invalid area: {right - left}x{bottom - top}")

    return CaptureRegion(left, top, right - left, bottom - top)


def clamp_to_screen(raw: RawSelection, screen: Monitor) -> CaptureRegion:
    """Clamp a selection to the virtual screen without any snapping.

    Used when the monitor layout cannot be queried.
    """
    left, top, right, bottom = _clamp(
        raw.x, raw.y, raw.x + raw.width, raw.y + raw.height,
        (screen.x, screen.y, screen.right, screen.bottom),
    )
    if raw.width <= 0 or raw.height <= 0 or right <= left or bottom <= top:
        raise InvalidRegion(f"Invalid area: {right - left}x{bottom - top}")
    return CaptureRegion(left, top, right - left, bottom - top)


# ============================================================================
# MONITOR QUERIES
# ============================================================================


class MonitorQuery(ABC):
    """Source of the monitor layout.

    Subclasses must implement monitors() and screen(). Both raise
    MonitorQueryUnavailable when the backing tool is missing or fails.
    """

    name: str = "base"

    @abstractmethod
    def monitors(self) -> Tuple[Monitor, ...]:
        """Return monitors in the order the backend reports them."""

    @abstractmethod
    def screen(self) -> Monitor:
        """Return the virtual screen spanning all monitors."""


def parse_monitor_geometry(token: str, name: str = "") -> Optional[Monitor]:
    """Parse an xrandr geometry token such as ``1920x1080+1920+0``."""
    match = _GEOMETRY_RE.match(token)
    if not match:
        return None
    width, height, x, y = (int(g) for g in match.groups())
    return Monitor(x, y, width, height, name)


def parse_xrandr_output(text: str) -> List[Monitor]:
    """Extract connected, active outputs from ``xrandr --query`` output."""
    monitors: List[Monitor] = []
    for line in text.splitlines():
        if " connected" not in line:
            continue
        parts = line.split()
        for token in parts[1:]:
            monitor = parse_monitor_geometry(token, parts[0])
            if monitor:
                monitors.append(monitor)
                break
    return monitors


class XrandrMonitorQuery(MonitorQuery):
    """Monitor layout from ``xrandr``; virtual screen from ``xdpyinfo``."""

    name = "xrandr"

    def monitors(self) -> Tuple[Monitor, ...]:
        try:
            result = subprocess.run(
                ["xrandr", "--query"],
                capture_output=True, text=True, check=True
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise MonitorQueryUnavailable(f"xrandr failed: {e}") from e

        monitors = parse_xrandr_output(result.stdout)
        if not monitors:
            raise MonitorQueryUnavailable("No monitors found from xrandr")
        return tuple(monitors)

    def screen(self) -> Monitor:
        try:
            result = subprocess.run(
                ["xdpyinfo"],
                capture_output=True, text=True, check=True
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise MonitorQueryUnavailable(f"xdpyinfo failed: {e}") from e

        match = _DIMENSIONS_RE.search(result.stdout)
        if not match:
            raise MonitorQueryUnavailable("Could not read dimensions from xdpyinfo")
        return Monitor(0, 0, int(match.group(1)), int(match.group(2)), "screen")


def _monitor_from_mss(entry: dict, name: str) -> Monitor:
    return Monitor(entry["left"], entry["top"], entry["width"], entry["height"], name)


class MssMonitorQuery(MonitorQuery):
    """Monitor layout from the mss screenshot library.

    mss lists the combined virtual screen first, then each physical monitor.
    """

    name = "mss"

    def _query(self) -> List[dict]:
        try:
            with mss.mss() as sct:
                return [dict(m) for m in sct.monitors]
        except ScreenShotError as e:
            raise MonitorQueryUnavailable(f"mss could not query monitors: {e}") from e

    def monitors(self) -> Tuple[Monitor, ...]:
        entries = self._query()[1:]
        if not entries:
            raise MonitorQueryUnavailable("No monitors found from mss")
        return tuple(
            _monitor_from_mss(entry, f"monitor-{i}") for i, entry in enumerate(entries, 1)
        )

    def screen(self) -> Monitor:
        entries = self._query()
        if not entries:
            raise MonitorQueryUnavailable("No screen found from mss")
        return _monitor_from_mss(entries[0], "screen")


MONITOR_QUERIES = {
    XrandrMonitorQuery.name: XrandrMonitorQuery,
    MssMonitorQuery.name: MssMonitorQuery,
}
