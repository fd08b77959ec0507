"""Application layer services."""

from .catalog_service import CatalogSearchService
from .errors import (
    ExtractionFailedError,
    ImportValidationError,
    InvalidTransitionError,
    JobNotFoundError,
    PlacementFailedError,
)
from .events import JobEvent, JobEventBus
from .jobs import ImportJob, JobStatus, JobStore
from .pipeline import ImportPipeline
from .resolution import ResolutionOutcome, ResolutionPipeline
from .review import ReviewQueue

__all__ = [
    "CatalogSearchService",
    "ExtractionFailedError",
    "ImportValidationError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "PlacementFailedError",
    "JobEvent",
    "JobEventBus",
    "ImportJob",
    "JobStatus",
    "JobStore",
    "ImportPipeline",
    "ResolutionOutcome",
    "ResolutionPipeline",
    "ReviewQueue",
]
