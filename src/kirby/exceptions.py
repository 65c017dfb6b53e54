"""
Error hierarchy for Kirby.

Storage errors are raised to the caller rather than logged and swallowed;
the command and listener layers decide how to report them. Asset errors are
raised once at startup and are meant to abort the process.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class KirbyError(Exception):
    """Base class for every error raised by Kirby."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}


class StoreError(KirbyError):
    """Failure inside the guild welcome store."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        guild_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.operation = operation
        self.guild_id = guild_id
        self.details.update({"operation": operation, "guild_id": guild_id})


class StoreConnectionError(StoreError):
    """The connection pool is exhausted or the database cannot be reached."""


class TransactionError(StoreError):
    """A statement, BEGIN, COMMIT or ROLLBACK failed."""


class NotFoundError(StoreError):
    """No welcome configuration exists for the guild."""


class ValidationError(StoreError):
    """A value supplied for a welcome field is not acceptable."""


class AssetLoadError(KirbyError):
    """An asset could not be read, decoded or parsed."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message, details={"path": path})
        self.path = path
