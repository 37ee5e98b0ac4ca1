#!/usr/bin/env python3
"""Error taxonomy for recording sessions.

Every failure the session controller can report is a subclass of
RecorderError. The controller catches these at the toggle boundary and turns
them into a ToggleResult; nothing escapes to the host.
"""

from __future__ import annotations


class RecorderError(Exception):
    """Base class for all regionrec errors."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidRegion(RecorderError):
    """The selected rectangle is degenerate or lies off every monitor."""


class MonitorQueryUnavailable(RecorderError):
    """The monitor layout could not be queried or was empty."""


class InvalidVideoConfig(RecorderError):
    """Quality factor, preset, frame rate or container is not acceptable."""


class SpawnFailed(RecorderError):
    """A collaborator process could not be started, or the encoder exited right away."""


class IncompleteOutput(RecorderError):
    """The encoder stopped but the output file is missing or empty."""


class ForcedTermination(RecorderError):
    """The encoder ignored the graceful stop signal and had to be killed."""


class SelectionCancelled(RecorderError):
    """The user aborted region selection. Not a failure."""


class ConfigError(RecorderError):
    """A configuration document could not be parsed."""
