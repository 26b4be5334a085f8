"""Exceptions raised by rendergit-site. Every one of them is fatal to a run."""
from __future__ import annotations

from typing import Optional, Sequence


class RenderGitError(Exception):
    """Base class for errors reported to the user as a single line."""


class UsageError(RenderGitError):
    """Bad or missing command-line arguments."""


class ConfigurationError(RenderGitError):
    """The persisted or supplied configuration cannot be used."""


class BackendError(RenderGitError):
    """A git query failed or produced output that could not be parsed."""

    def __init__(self, message: str, cmd: Optional[Sequence[str]] = None, stderr: str = ""):
        super().__init__(message)
        self.cmd = list(cmd) if cmd is not None else None
        self.stderr = stderr
