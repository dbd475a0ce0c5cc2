"""
popups_api/exceptions.py – error types raised by the data-access layer.
"""
from __future__ import annotations

from typing import Optional


class PopupsError(Exception):
    """Base exception for all popups_api errors."""


class StoreError(PopupsError):
    """Raised when the durable store or process cache fails."""

    def __init__(
        self,
        operation: str,
        detail: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        self.operation = operation
        msg = f"Store error during '{operation}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.__cause__ = cause


class SerializationError(PopupsError, TypeError):
    """Raised when a value cannot be serialized for storage."""


class InvalidIdentifierError(PopupsError, ValueError):
    """Raised when a client or campaign identifier cannot form a key."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class RequestConcludedError(PopupsError, RuntimeError):
    """Raised when a concluded request is asked to do more work."""
