"""
Workflow Exceptions

Typed business-rule failures raised by the permohonan lifecycle engine.
None of them are transient: callers surface them to the human actor, never retry.
"""

from typing import Any
from typing import List
from typing import Optional

__all__ = [
    "PermohonanError",
    "ValidationFailed",
    "UnsupportedType",
    "FileTooLarge",
    "InvalidTransition",
    "InvalidState",
    "MissingReason",
    "MissingResultDocument",
    "NotFound",
    "ConcurrentModification",
    "TrackingNumberExhausted",
]


class PermohonanError(Exception):
    """Base class for every lifecycle failure."""

    error_type = "PermohonanError"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class ValidationFailed(PermohonanError):
    """Bad input at creation (missing or invalid documents, unknown service...)."""

    error_type = "ValidationFailed"

    def __init__(self, message: str, errors: Optional[List[str]] = None, **context: Any):
        super().__init__(message, **context)
        self.errors = list(errors or [])


class UnsupportedType(PermohonanError):
    """Document media type is not in the allowed set."""

    error_type = "UnsupportedType"


class FileTooLarge(PermohonanError):
    """Document exceeds the configured maximum size."""

    error_type = "FileTooLarge"


class InvalidTransition(PermohonanError):
    """Target status is not reachable from the current status."""

    error_type = "InvalidTransition"


class InvalidState(PermohonanError):
    """Operation is not allowed in the aggregate's current status."""

    error_type = "InvalidState"


class MissingReason(PermohonanError):
    """Rejection attempted without a reason."""

    error_type = "MissingReason"


class MissingResultDocument(PermohonanError):
    """Completion attempted without a result document."""

    error_type = "MissingResultDocument"


class NotFound(PermohonanError):
    """Lookup miss."""

    error_type = "NotFound"


class ConcurrentModification(PermohonanError):
    """Stored version moved underneath a write (another writer won)."""

    error_type = "ConcurrentModification"


class TrackingNumberExhausted(PermohonanError):
    """Daily tracking sequence ran past its four digits."""

    error_type = "TrackingNumberExhausted"
