"""Error taxonomy shared by the storage, analysis and record layers."""

from __future__ import annotations


class VidcoreError(Exception):
    """Base error for vidcore."""


class StorageWriteFailed(VidcoreError):
    """Bytes could not be durably written. Nothing was persisted."""


class NotFound(VidcoreError):
    """A storage location or record id does not resolve to anything."""


class AnalysisError(VidcoreError):
    """An external analysis tool could not produce its result."""

    def __init__(self, reason: str, *, detail: str | None = None):
        super().__init__(reason if detail is None else f"{reason}: {detail}")
        self.reason = reason
        self.detail = detail


class ProbeFailed(AnalysisError):
    """Duration could not be extracted from the stored media."""


class ExtractionFailed(AnalysisError):
    """No thumbnail could be produced from the stored media."""


class OwnershipViolation(VidcoreError):
    """The record exists but belongs to a different owner."""


class RecordConflict(VidcoreError):
    """A record update clashed with a terminal status or a concurrent write."""


class IngestionFailed(VidcoreError):
    """Analysis hit a hard failure after the record was created.

    The record exists with status ``failed``; ``record_id`` identifies it.
    """

    def __init__(self, record_id: str, reason: str):
        super().__init__(f"ingestion of {record_id} failed: {reason}")
        self.record_id = record_id
        self.reason = reason


__all__ = [
    "VidcoreError",
    "StorageWriteFailed",
    "NotFound",
    "AnalysisError",
    "ProbeFailed",
    "ExtractionFailed",
    "OwnershipViolation",
    "RecordConflict",
    "IngestionFailed",
]
