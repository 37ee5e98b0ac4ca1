#!/usr/bin/env python3
"""Command-line interface for regionrec.

Bind ``regionrec record`` to a hotkey: the first press asks for a region and
starts recording, the next press stops it. Each press may be a separate
process; the running session is picked up from the session store.
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from regionrec.audio import get_pulse_default_source, list_audio_sources
from regionrec.config import load_config
from regionrec.errors import MonitorQueryUnavailable
from regionrec.gateway import ToggleGateway
from regionrec.geometry import MONITOR_QUERIES
from regionrec.selection import SELECTORS
from regionrec.session import SessionController
from regionrec.types import SETTINGS_URL, ToggleAction, ToggleResult, __version__

ACTIONS = ("record", "status", "audio-settings", "list-monitors", "list-audio", "bind-keys")


def show_notification(title: str, message: str, timeout_ms: int) -> None:
    """Show a desktop notification; silently skipped without notify-send."""
    try:
        subprocess.run(
            ["notify-send", "-u", "normal", "-t", str(timeout_ms), title, message],
            capture_output=True, check=False
        )
    except FileNotFoundError:
        pass


def notify_result(result: ToggleResult) -> None:
    if result.error:
        title = "Recording failed" if result.action is ToggleAction.REJECTED else "Recording stopped"
        show_notification(title, result.detail, 1600)
    elif result.action is ToggleAction.STARTED:
        show_notification("Recording started", "Press your hotkey to stop", 1200)
    elif result.action is ToggleAction.STOPPED:
        folder = result.output_path.parent if result.output_path else "~/Videos"
        show_notification("Recording stopped", f"Saved to {folder}", 2000)


def open_settings(url: str = SETTINGS_URL) -> bool:
    """Open the host's settings page in the default browser."""
    try:
        subprocess.Popen(
            ["xdg-open", url],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL
        )
        return True
    except FileNotFoundError:
        print("Error: xdg-open not found; open this URL manually:", file=sys.stderr)
        print(f"  {url}", file=sys.stderr)
        return False


def print_keybinding_instructions() -> None:
    """Print instructions for binding the toggle to a keyboard shortcut."""
    print("""
regionrec - Keyboard Shortcut Setup
===================================

One shortcut does everything: press it to draw a region and start
recording, press it again to stop. Recordings go to ~/Videos.

GNOME (Settings > Keyboard > Shortcuts > Custom Shortcuts):
-----------------------------------------------------------
  Name: Record Region
  Command: regionrec record
  Shortcut: Super+Shift+R  (or your choice)

KDE Plasma (System Settings > Shortcuts > Custom Shortcuts):
------------------------------------------------------------
Add a new Global Shortcut running: regionrec record

XFCE (Settings > Keyboard > Application Shortcuts):
---------------------------------------------------
Add the command: regionrec record

i3/Sway (config file):
----------------------
bindsym $mod+Shift+r exec regionrec record

xbindkeys (~/.xbindkeysrc):
---------------------------
"regionrec record"
  Mod4 + Shift + r

Tips:
-----
- Press Escape (or right click) while drawing to cancel
- Run 'regionrec audio-settings' to pick microphone/system audio
- Run 'regionrec status' to see whether a recording is running
- Encoder output is logged to the system temp dir (regionrec.log)
""")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="regionrec",
        description="Toggle recording of a screen region with optional audio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Actions:
  record          Start recording (draw a region) or stop the running one
  status          Show whether a recording is running
  audio-settings  Open the settings page
  list-monitors   List monitors and their geometry
  list-audio      List PulseAudio sources usable as devices
  bind-keys       Show how to bind 'record' to a keyboard shortcut

Examples:
  # First call starts, second call stops
  regionrec record

  # Use pynput instead of slop for drawing the region
  regionrec record --selector pynput

  # Use a specific settings file
  regionrec record --config ~/recorder.json
"""
    )
    parser.add_argument("action", nargs="?", default="record", choices=ACTIONS,
                        help="What to do (default: record)")
    parser.add_argument("--config", type=Path, metavar="PATH",
                        help="Settings file (default: ~/.config/regionrec/config.json)")
    parser.add_argument("--selector", choices=sorted(SELECTORS), default="slop",
                        help="Region selection tool (default: slop)")
    parser.add_argument("--monitors", choices=sorted(MONITOR_QUERIES), default="mss",
                        help="Monitor layout source (default: mss)")
    parser.add_argument("--no-notify", action="store_true",
                        help="Do not show desktop notifications")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show progress")
    parser.add_argument("-V", "--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser


def build_gateway(args: argparse.Namespace) -> ToggleGateway:
    # One read per invocation; each hotkey press is a fresh process
    cfg = load_config(args.config)
    controller = SessionController(
        selector=SELECTORS[args.selector](cfg.region.selection_timeout_s),
        monitor_query=MONITOR_QUERIES[args.monitors](),
        config_loader=lambda: cfg,
        verbose=args.verbose,
    )
    return ToggleGateway(controller, config_path=args.config, verbose=args.verbose)


def _list_monitors(args: argparse.Namespace) -> int:
    query = MONITOR_QUERIES[args.monitors]()
    try:
        monitors = query.monitors()
    except MonitorQueryUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Found {len(monitors)} monitor(s):")
    for i, m in enumerate(monitors, 1):
        print(f"  {i}: {m.name} {m.width}x{m.height} at ({m.x}, {m.y})")
    return 0


def _list_audio() -> int:
    sources = list_audio_sources()
    if not sources:
        print("No audio sources found (PulseAudio may not be running)")
        return 0
    print("Audio sources:")
    for name, kind in sources:
        print(f"  [{kind}] {name}")
    default_monitor = get_pulse_default_source()
    if default_monitor:
        print(f"Default system audio: {default_monitor}")
    return 0


def _print_status(gateway: ToggleGateway) -> int:
    info = gateway.status()
    print(f"State: {info['phase']}")
    if "output_path" in info:
        x, y, w, h = info["region"]
        print(f"  Output: {info['output_path']}")
        print(f"  Region: {w}x{h} at ({x}, {y})")
        print(f"  Audio: {', '.join(info['audio']) or 'none'}")
        print(f"  Encoder pid: {info['pid']}, running for {info['elapsed_s']:.0f}s")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = _build_parser().parse_args(argv)

    if args.action == "bind-keys":
        print_keybinding_instructions()
        return 0
    if args.action == "audio-settings":
        return 0 if open_settings() else 1
    if args.action == "list-audio":
        return _list_audio()
    if args.action == "list-monitors":
        return _list_monitors(args)

    gateway = build_gateway(args)
    if args.action == "status":
        return _print_status(gateway)

    result = gateway.on_toggle()
    if result.error:
        print(f"Error: {result.detail}", file=sys.stderr)
    else:
        print(result.detail)
    if not args.no_notify:
        notify_result(result)
    return 1 if result.error else 0


if __name__ == "__main__":
    sys.exit(main())
