"""Error taxonomy shared by every component."""

from __future__ import annotations

from typing import Any, Dict, Optional


class GitDeployError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ConfigError(GitDeployError):
    """Missing secret, binary or directory. Fatal at startup."""


class AuthError(GitDeployError):
    status_code = 401


class ValidationError(GitDeployError):
    status_code = 400


class GitError(GitDeployError):
    """A git command failed or could not run."""


class RollbackError(GitError):
    status_code = 400


class ExecError(GitDeployError):
    """Raised when a process cannot be spawned at all."""

    def __init__(self, command: list[str], reason: str) -> None:
        self.command = command
        super().__init__(
            f"unable to run ({' '.join(command)}): {reason}",
            details={"command": " ".join(command)},
        )


class NotificationError(GitDeployError):
    """Outbound notification failed. Always swallowed by callers."""
