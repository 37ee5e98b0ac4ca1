"""Tests for regionrec.geometry - region snapping and monitor queries."""

import subprocess
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from regionrec import geometry
from regionrec.errors import InvalidRegion, MonitorQueryUnavailable
from regionrec.geometry import (
    MssMonitorQuery,
    XrandrMonitorQuery,
    clamp_to_screen,
    parse_monitor_geometry,
    parse_xrandr_output,
    resolve_region,
)
from regionrec.types import CaptureRegion, Monitor, RawSelection

XRANDR_OUTPUT = """\
Screen 0: minimum 8 x 8, current 4480 x 1440, maximum 32767 x 32767
HDMI-1 connected primary 1920x1080+0+0 (normal left inverted right x axis y axis) 527mm x 296mm
   1920x1080     60.00*+
DP-1 connected 2560x1440+1920+0 (normal left inverted right x axis y axis) 597mm x 336mm
   2560x1440     59.95*+
DP-2 disconnected (normal left inverted right x axis y axis)
"""


class TestResolveRegion:
    """Tests for resolve_region."""

    def test_no_snap_far_from_edges(self, single_monitor):
        """Selection far from every edge is returned unchanged."""
        region = resolve_region(RawSelection(100, 120, 500, 400), single_monitor, 15)
        assert region == CaptureRegion(100, 120, 500, 400)

    def test_near_corner_snaps_to_origin(self, single_monitor):
        """(2,2,300,300) with tolerance 15 moves into the corner."""
        region = resolve_region(RawSelection(2, 2, 300, 300), single_monitor, 15)
        assert region.as_tuple() == (0, 0, 300, 300)

    def test_near_edge_within_tolerance_snaps(self, single_monitor):
        """An edge 10px from the boundary is within a 15px tolerance."""
        region = resolve_region(RawSelection(10, 10, 500, 400), single_monitor, 15)
        assert region.as_tuple() == (0, 0, 500, 400)

    def test_scenario_outside_tolerance_unchanged(self, single_monitor):
        """With edges beyond tolerance nothing moves."""
        region = resolve_region(RawSelection(10, 10, 500, 400), single_monitor, 5)
        assert region.as_tuple() == (10, 10, 500, 400)

    def test_far_edges_stretch_to_boundary(self, single_monitor):
        """Right/bottom edges near the boundary extend the region."""
        region = resolve_region(RawSelection(100, 100, 1810, 970), single_monitor, 15)
        assert region.as_tuple() == (100, 100, 1820, 980)

    def test_both_edges_snap_to_full_monitor(self, single_monitor):
        """A rough full-screen drag becomes exactly the monitor."""
        region = resolve_region(RawSelection(5, 3, 1910, 1072), single_monitor, 15)
        assert region.as_tuple() == (0, 0, 1920, 1080)

    def test_offscreen_part_is_clamped(self, single_monitor):
        """Parts outside the monitor are cut away."""
        region = resolve_region(RawSelection(-200, 500, 400, 1000), single_monitor, 15)
        assert region.as_tuple() == (0, 500, 200, 580)

    def test_zero_size_is_invalid(self, single_monitor):
        with pytest.raises(InvalidRegion):
            resolve_region(RawSelection(100, 100, 0, 50), single_monitor, 15)

    def test_entirely_offscreen_is_invalid(self, single_monitor):
        with pytest.raises(InvalidRegion):
            resolve_region(RawSelection(3000, 3000, 100, 100), single_monitor, 15)

    def test_no_monitors(self):
        with pytest.raises(MonitorQueryUnavailable):
            resolve_region(RawSelection(0, 0, 100, 100), [], 15)

    def test_clamped_to_monitor_under_centre(self, dual_monitors):
        """A selection straddling two monitors keeps to the one under its centre."""
        region = resolve_region(RawSelection(1800, 200, 600, 300), dual_monitors, 15)
        assert region.as_tuple() == (1920, 200, 480, 300)

    def test_snap_to_boundary_between_monitors(self, dual_monitors):
        """An edge just past the shared boundary snaps onto it."""
        region = resolve_region(RawSelection(1925, 500, 400, 300), dual_monitors, 15)
        assert region.as_tuple() == (1920, 500, 400, 300)

    def test_tie_prefers_larger_monitor(self):
        """Equidistant edges resolve to the larger monitor's boundary."""
        monitors = (
            Monitor(0, 0, 1000, 1000, "small"),
            Monitor(1000, 100, 2000, 1200, "large"),
        )
        # top edge 50 is 50px from y=0 (small) and y=100 (large)
        region = resolve_region(RawSelection(1200, 50, 400, 400), monitors, 60)
        assert region.y == 100

    def test_tie_same_size_prefers_first_monitor(self):
        """With equal sizes the earlier monitor in query order wins."""
        monitors = (
            Monitor(0, 0, 1000, 1000, "first"),
            Monitor(1000, 100, 1000, 1000, "second"),
        )
        assert geometry.snap_edge(
            50, geometry._edge_candidates(monitors, vertical=False), monitors, 60
        ) == 0


class TestResolveRegionProperties:
    """Property-based tests for resolve_region."""

    @given(
        st.integers(min_value=16, max_value=1000),
        st.integers(min_value=16, max_value=500),
        st.integers(min_value=1, max_value=800),
        st.integers(min_value=1, max_value=500),
    )
    @settings(max_examples=50)
    def test_inside_selection_without_snap_is_unchanged(self, x, y, w, h):
        """Property: edges beyond tolerance from every boundary stay put."""
        assume(x + w <= 1920 - 16 and y + h <= 1080 - 16)
        monitors = [Monitor(0, 0, 1920, 1080)]
        region = resolve_region(RawSelection(x, y, w, h), monitors, 15)
        assert region.as_tuple() == (x, y, w, h)

    @given(
        st.integers(min_value=0, max_value=15),
        st.integers(min_value=100, max_value=900),
        st.integers(min_value=50, max_value=800),
        st.integers(min_value=50, max_value=100),
    )
    @settings(max_examples=50)
    def test_left_edge_within_tolerance_snaps(self, x, y, w, h):
        """Property: a left edge within tolerance lands on the monitor's left edge."""
        monitors = [Monitor(0, 0, 1920, 1080)]
        region = resolve_region(RawSelection(x, y, w, h), monitors, 15)
        assert region.x == 0

    @given(
        st.integers(min_value=-500, max_value=2500),
        st.integers(min_value=-500, max_value=1500),
        st.integers(min_value=1, max_value=3000),
        st.integers(min_value=1, max_value=2000),
    )
    @settings(max_examples=100)
    def test_result_inside_a_monitor(self, x, y, w, h):
        """Property: any successful result lies fully inside one monitor."""
        monitors = [Monitor(0, 0, 1920, 1080), Monitor(1920, 0, 2560, 1440)]
        try:
            region = resolve_region(RawSelection(x, y, w, h), monitors, 15)
        except InvalidRegion:
            return
        assert region.width > 0 and region.height > 0
        assert any(
            m.x <= region.x and m.y <= region.y
            and region.x + region.width <= m.right
            and region.y + region.height <= m.bottom
            for m in monitors
        )


class TestClampToScreen:
    """Tests for clamp_to_screen (fallback without monitor info)."""

    def test_clamps_without_snapping(self):
        screen = Monitor(0, 0, 1920, 1080)
        assert clamp_to_screen(RawSelection(2, 2, 300, 300), screen).as_tuple() == (2, 2, 300, 300)

    def test_cuts_overhang(self):
        screen = Monitor(0, 0, 1920, 1080)
        region = clamp_to_screen(RawSelection(1800, 1000, 300, 300), screen)
        assert region.as_tuple() == (1800, 1000, 120, 80)

    def test_degenerate(self):
        with pytest.raises(InvalidRegion):
            clamp_to_screen(RawSelection(2000, 0, 100, 100), Monitor(0, 0, 1920, 1080))


class TestParseXrandr:
    """Tests for xrandr output parsing."""

    def test_parse_geometry_token(self):
        assert parse_monitor_geometry("2560x1440+1920+0", "DP-1") == Monitor(
            1920, 0, 2560, 1440, "DP-1"
        )

    def test_parse_negative_offset(self):
        m = parse_monitor_geometry("1280x1024-1280+0")
        assert m is not None
        assert (m.x, m.y) == (-1280, 0)

    def test_parse_invalid_token(self):
        assert parse_monitor_geometry("primary") is None
        assert parse_monitor_geometry("1920x1080") is None

    def test_parse_output(self):
        monitors = parse_xrandr_output(XRANDR_OUTPUT)
        assert [m.name for m in monitors] == ["HDMI-1", "DP-1"]
        assert monitors[1].x == 1920

    def test_skips_connected_without_mode(self):
        text = "HDMI-2 connected (normal left inverted right x axis y axis)\n"
        assert parse_xrandr_output(text) == []


class TestXrandrMonitorQuery:
    """Tests for XrandrMonitorQuery."""

    def test_monitors(self):
        mock_result = MagicMock()
        mock_result.stdout = XRANDR_OUTPUT
        with patch("subprocess.run", return_value=mock_result):
            monitors = XrandrMonitorQuery().monitors()
        assert len(monitors) == 2

    def test_missing_tool(self):
        with patch("subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(MonitorQueryUnavailable):
                XrandrMonitorQuery().monitors()

    def test_failure(self):
        with patch("subprocess.run", side_effect=subprocess.CalledProcessError(1, "xrandr")):
            with pytest.raises(MonitorQueryUnavailable):
                XrandrMonitorQuery().monitors()

    def test_empty_output(self):
        mock_result = MagicMock()
        mock_result.stdout = "Screen 0: minimum 8 x 8\n"
        with patch("subprocess.run", return_value=mock_result):
            with pytest.raises(MonitorQueryUnavailable):
                XrandrMonitorQuery().monitors()

    def test_screen_from_xdpyinfo(self):
        mock_result = MagicMock()
        mock_result.stdout = "screen #0:\n  dimensions:    4480x1440 pixels (1185x381 millimeters)\n"
        with patch("subprocess.run", return_value=mock_result):
            screen = XrandrMonitorQuery().screen()
        assert (screen.width, screen.height) == (4480, 1440)

    def test_screen_unreadable(self):
        mock_result = MagicMock()
        mock_result.stdout = "nothing useful\n"
        with patch("subprocess.run", return_value=mock_result):
            with pytest.raises(MonitorQueryUnavailable):
                XrandrMonitorQuery().screen()


class TestMssMonitorQuery:
    """Tests for MssMonitorQuery with a mocked mss."""

    def _mock_mss(self, monitors):
        sct = MagicMock()
        sct.monitors = monitors
        ctx = MagicMock()
        ctx.__enter__.return_value = sct
        return ctx

    def test_monitors_skip_virtual_screen(self):
        entries = [
            {"left": 0, "top": 0, "width": 4480, "height": 1440},
            {"left": 0, "top": 0, "width": 1920, "height": 1080},
            {"left": 1920, "top": 0, "width": 2560, "height": 1440},
        ]
        with patch.object(geometry.mss, "mss", return_value=self._mock_mss(entries)):
            query = MssMonitorQuery()
            monitors = query.monitors()
            screen = query.screen()
        assert [(m.x, m.width) for m in monitors] == [(0, 1920), (1920, 2560)]
        assert screen.width == 4480

    def test_no_physical_monitors(self):
        entries = [{"left": 0, "top": 0, "width": 1920, "height": 1080}]
        with patch.object(geometry.mss, "mss", return_value=self._mock_mss(entries)):
            with pytest.raises(MonitorQueryUnavailable):
                MssMonitorQuery().monitors()

    def test_no_display(self):
        with patch.object(geometry.mss, "mss", side_effect=geometry.ScreenShotError("no display")):
            with pytest.raises(MonitorQueryUnavailable):
                MssMonitorQuery().monitors()
