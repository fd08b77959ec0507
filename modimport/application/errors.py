"""Errors raised by the import workflow."""

from __future__ import annotations

from modimport.data.staging import ExtractionFailedError, PlacementFailedError


class JobNotFoundError(LookupError):
    """Raised when a job id is unknown or has been purged."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Import job not found: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(RuntimeError):
    """Raised when a job cannot move from its current status to the requested one."""

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(f"Import job {job_id} cannot move from '{current}' to '{requested}'")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class ImportValidationError(ValueError):
    """Raised for malformed user input, before any state transition happens."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


__all__ = [
    "ExtractionFailedError",
    "ImportValidationError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "PlacementFailedError",
]
