"""
Error taxonomy for the agent core.

Every error names the operation that failed and, where known, the
field or identity involved. The root cause stays attached through
normal exception chaining (``raise ... from exc``), so a caller can
branch on the class and still walk ``__cause__`` for detail.
"""

from __future__ import annotations

from typing import Optional


class MeshgardenError(Exception):
    """Base class for all agent-core errors.

    Args:
        message: What went wrong.
        operation: What was being attempted (e.g. "query interface").
        entity: The field or identity the error concerns.
    """

    kind = "error"
    retryable = False
    fatal = False

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        entity: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.entity = entity

    def __str__(self) -> str:
        if self.operation:
            return f"failed to {self.operation}: {self.message}"
        return self.message


class ValidationError(MeshgardenError):
    """A request field is malformed (bad length, port or endpoint)."""

    kind = "validation"


class ConflictError(MeshgardenError):
    """A write would violate a uniqueness constraint."""

    kind = "conflict"


class NotFoundError(MeshgardenError):
    """No interface or log row matches the query."""

    kind = "not-found"


class CryptoError(MeshgardenError):
    """A secret failed to decrypt or authenticate."""

    kind = "crypto"
    fatal = True


class ParseError(MeshgardenError):
    """A persisted field does not parse back into its domain type."""

    kind = "parse"
    fatal = True


class StorageError(MeshgardenError):
    """The database failed (connectivity, locking, I/O)."""

    kind = "storage"
    retryable = True
