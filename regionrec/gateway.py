#!/usr/bin/env python3
"""Host-facing entry points.

The tray host (or the CLI standing in for it) talks to the recorder through
exactly two surfaces: on_toggle() for the hotkey/menu action and the
read_config()/update_config() pair for the settings page.
"""

from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from regionrec.command import validate_video_config
from regionrec.config import (
    config_to_dict,
    default_config_path,
    load_config,
    parse_config,
    save_config,
)
from regionrec.errors import ConfigError
from regionrec.session import SessionController
from regionrec.types import ToggleAction, ToggleResult


def _merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ToggleGateway:
    """Single entry point for the host's toggle action.

    Safe to call from several threads at once: the controller serializes on
    its phase, so at most one recording is ever started and a recording is
    never stopped twice.
    """

    def __init__(
        self,
        controller: Optional[SessionController] = None,
        config_path: Optional[Path] = None,
        verbose: bool = False,
    ):
        self.config_path = config_path or default_config_path()
        self.verbose = verbose
        self.controller = controller or SessionController(
            config_loader=lambda: load_config(self.config_path),
            verbose=verbose,
        )

    def on_toggle(self) -> ToggleResult:
        """Start or stop recording depending on the current phase."""
        try:
            return self.controller.toggle()
        except Exception as e:
            # Keep the host alive; the controller has already reset itself
            if self.verbose:
                print(f"Error: Unexpected failure during toggle: {e!r}", file=sys.stderr)
            return ToggleResult(
                ToggleAction.REJECTED, f"Unexpected error: {e}", error=type(e).__name__
            )

    def status(self) -> Dict[str, Any]:
        return self.controller.describe()

    def read_config(self) -> Dict[str, Any]:
        """Return the current configuration document with defaults filled in."""
        return config_to_dict(load_config(self.config_path))

    def update_config(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``document`` into the stored configuration and save it.

        Raises:
            ConfigError: If the merged document has wrong types.
            InvalidVideoConfig: If the video settings are out of range.
        """
        if not isinstance(document, dict):
            raise ConfigError(f"Configuration must be an object, got {type(document).__name__}")
        merged = _merge(self.read_config(), document)
        cfg = parse_config(merged)
        validate_video_config(cfg.video)
        save_config(cfg, self.config_path)
        return config_to_dict(cfg)
