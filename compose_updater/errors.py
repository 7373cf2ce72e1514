"""Error taxonomy for the updater.

``ConfigError`` is fatal at startup. ``ResolveError`` is recovered per
workload, ``RefreshError`` aborts a single cycle, ``ExecutionError`` is
logged and the remaining restart steps still run. ``AuthError`` is raised
by callers that prefer exceptions over the boolean ``verify_signature``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from compose_updater.models import ExecutionReport


class UpdaterError(Exception):
    """Base class for all updater errors."""


class ConfigError(UpdaterError):
    """Workload, policy or settings definitions are missing or malformed."""


class ResolveError(UpdaterError):
    """A digest lookup failed for a single workload."""

    def __init__(self, message: str, *, workload: str | None = None) -> None:
        super().__init__(message)
        self.workload = workload


class RefreshError(UpdaterError):
    """The bulk registry refresh failed; the current cycle is aborted."""


class ExecutionError(UpdaterError):
    """An orchestrator command or restart step failed."""

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        returncode: int | None = None,
        output: str = "",
        report: ExecutionReport | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.output = output
        self.report = report


class AuthError(UpdaterError):
    """A webhook signature is missing or invalid."""
