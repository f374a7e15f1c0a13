"""
Error taxonomy.

Storage adapters and the enrollment path raise these exceptions; the
authentication path converts them into :class:`~heartid.models.DecisionResult`
values tagged with the matching :class:`ErrorKind`.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    NOT_ENROLLED = "not_enrolled"
    DECRYPTION_FAILURE = "decryption_failure"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    LOCKED_OUT = "locked_out"
    REJECTED = "rejected"


class HeartIDError(Exception):
    """Base class; ``kind`` lets callers match without isinstance chains."""

    kind: ErrorKind = ErrorKind.STORAGE_UNAVAILABLE

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class InsufficientDataError(HeartIDError):
    """Window too short or too noisy; the caller should recapture."""

    kind = ErrorKind.INSUFFICIENT_DATA


class NotEnrolledError(HeartIDError):
    kind = ErrorKind.NOT_ENROLLED


class StorageUnavailableError(HeartIDError):
    kind = ErrorKind.STORAGE_UNAVAILABLE


class DecryptionFailureError(HeartIDError):
    """Stored blob could not be decrypted or decoded."""

    kind = ErrorKind.DECRYPTION_FAILURE
