"""Import job records and the in-memory job store.

Status flow::

    queued -> extracting -> matching -> needs_review | placing -> done | failed

``canceled`` is reachable from every non-terminal status. ``needs_review``
returns to ``matching`` on a user override or a catalog re-match, and a
``failed`` job only becomes ``canceled`` through a human skip.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import StrEnum
import logging
from threading import Lock
from typing import Any, Iterable
import uuid

from modimport.data.matcher import ConfidenceTier

from .errors import InvalidTransitionError, JobNotFoundError
from .events import JobEvent, JobEventBus

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100


class JobStatus(StrEnum):
    QUEUED = "queued"
    EXTRACTING = "extracting"
    MATCHING = "matching"
    NEEDS_REVIEW = "needs_review"
    PLACING = "placing"
    DONE = "done"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.FAILED, JobStatus.CANCELED})

_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.EXTRACTING, JobStatus.CANCELED}),
    JobStatus.EXTRACTING: frozenset({JobStatus.MATCHING, JobStatus.FAILED, JobStatus.CANCELED}),
    # Matching always moves forward: it has no failure edge
    JobStatus.MATCHING: frozenset({JobStatus.NEEDS_REVIEW, JobStatus.PLACING, JobStatus.CANCELED}),
    JobStatus.NEEDS_REVIEW: frozenset({JobStatus.MATCHING, JobStatus.CANCELED}),
    JobStatus.PLACING: frozenset({JobStatus.DONE, JobStatus.FAILED, JobStatus.CANCELED}),
    JobStatus.DONE: frozenset(),
    JobStatus.FAILED: frozenset({JobStatus.CANCELED}),
    JobStatus.CANCELED: frozenset(),
}

# Statuses that never carry a matched entry
_CLEARS_MATCH = frozenset({JobStatus.QUEUED, JobStatus.EXTRACTING, JobStatus.FAILED, JobStatus.CANCELED})

_MUTABLE_FIELDS = frozenset({"display_name", "staging_path", "placed_path", "error_message"})


def can_transition(current: JobStatus, requested: JobStatus) -> bool:
    return requested in _TRANSITIONS[current]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MatchedEntryRef:
    name: str
    category: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "category": self.category}


@dataclass(frozen=True)
class MatchRecord:
    """Everything a match decision writes to a job, applied as one unit."""

    matched_entry: MatchedEntryRef | None
    confidence: ConfidenceTier
    score: float
    detail: str
    is_duplicate: bool = False


_EMPTY_MATCH = MatchRecord(matched_entry=None, confidence=ConfidenceTier.NONE, score=0.0, detail="")


@dataclass
class ImportJob:
    source_path: str
    scope: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    batch_id: str | None = None
    status: JobStatus = JobStatus.QUEUED
    display_name: str | None = None
    matched_entry: MatchedEntryRef | None = None
    confidence: ConfidenceTier = ConfidenceTier.NONE
    match_score: float = 0.0
    match_detail: str | None = None
    is_duplicate: bool = False
    error_message: str | None = None
    staging_path: str | None = None
    placed_path: str | None = None
    retry_of: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def apply_match(self, record: MatchRecord) -> None:
        self.matched_entry = record.matched_entry
        self.confidence = record.confidence
        self.match_score = record.score
        self.match_detail = record.detail or None
        self.is_duplicate = record.is_duplicate

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_path": self.source_path,
            "scope": self.scope,
            "batch_id": self.batch_id,
            "status": self.status.value,
            "display_name": self.display_name,
            "matched_entry": self.matched_entry.to_dict() if self.matched_entry else None,
            "confidence": self.confidence.value,
            "match_score": round(self.match_score, 3),
            "match_detail": self.match_detail,
            "is_duplicate": self.is_duplicate,
            "error_message": self.error_message,
            "staging_path": self.staging_path,
            "placed_path": self.placed_path,
            "retry_of": self.retry_of,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class JobStore:
    """Thread-safe in-memory job records.

    Callers only ever see copies; all mutation goes through ``transition`` and
    ``record_match`` so every change is validated and published.
    """

    def __init__(self, events: JobEventBus | None = None) -> None:
        self._jobs: dict[str, ImportJob] = {}
        self._lock = Lock()
        self._events = events

    def _publish(self, job: ImportJob, previous: JobStatus | None) -> None:
        if self._events is None:
            return
        self._events.publish(
            JobEvent(
                job_id=job.id,
                status=job.status.value,
                previous_status=previous.value if previous else None,
                job=job.to_dict(),
            )
        )

    def _get_locked(self, job_id: str) -> ImportJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def create(
        self,
        source_path: str,
        scope: str,
        *,
        batch_id: str | None = None,
        retry_of: str | None = None,
    ) -> ImportJob:
        job = ImportJob(source_path=source_path, scope=scope, batch_id=batch_id, retry_of=retry_of)
        with self._lock:
            self._jobs[job.id] = job
            snapshot = replace(job)
        logger.info("[JobStore] Created job %s for %s", job.id, source_path)
        self._publish(snapshot, None)
        return snapshot

    def get(self, job_id: str) -> ImportJob:
        with self._lock:
            return replace(self._get_locked(job_id))

    def list(
        self,
        statuses: Iterable[JobStatus] | None = None,
        *,
        include_canceled: bool = False,
        batch_id: str | None = None,
        limit: int | None = DEFAULT_LIST_LIMIT,
    ) -> list[ImportJob]:
        """Jobs newest first. Canceled jobs are hidden unless asked for."""
        wanted = frozenset(statuses) if statuses else None
        result: list[ImportJob] = []
        with self._lock:
            for job in reversed(self._jobs.values()):
                if wanted is not None and job.status not in wanted:
                    continue
                if wanted is None and job.status == JobStatus.CANCELED and not include_canceled:
                    continue
                if batch_id is not None and job.batch_id != batch_id:
                    continue
                result.append(replace(job))
                if limit is not None and len(result) >= limit:
                    break
        return result

    def transition(
        self,
        job_id: str,
        status: JobStatus,
        *,
        match: MatchRecord | None = None,
        **changes: Any,
    ) -> ImportJob:
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported job fields: {sorted(unknown)}")

        with self._lock:
            job = self._get_locked(job_id)
            previous = job.status
            if not can_transition(previous, status):
                raise InvalidTransitionError(job_id, previous.value, status.value)

            job.status = status
            for key, value in changes.items():
                setattr(job, key, value)
            if match is not None:
                job.apply_match(match)
            elif status in _CLEARS_MATCH:
                job.apply_match(_EMPTY_MATCH)
            job.updated_at = _utcnow()
            snapshot = replace(job)

        logger.info("[JobStore] Job %s %s -> %s", job_id, previous.value, status.value)
        self._publish(snapshot, previous)
        return snapshot

    def record_match(self, job_id: str, match: MatchRecord) -> ImportJob:
        """Overwrite the match fields of a job that is matching or awaiting review."""
        with self._lock:
            job = self._get_locked(job_id)
            if job.status not in (JobStatus.MATCHING, JobStatus.NEEDS_REVIEW):
                raise InvalidTransitionError(job_id, job.status.value, "record_match")
            job.apply_match(match)
            job.updated_at = _utcnow()
            snapshot = replace(job)
        self._publish(snapshot, snapshot.status)
        return snapshot

    def find_done(self, display_name: str, category: str) -> ImportJob | None:
        name_key = display_name.strip().casefold()
        category_key = category.strip().casefold()
        with self._lock:
            for job in self._jobs.values():
                if job.status != JobStatus.DONE or job.matched_entry is None:
                    continue
                if (job.display_name or "").strip().casefold() != name_key:
                    continue
                if job.matched_entry.category.strip().casefold() == category_key:
                    return replace(job)
        return None

    def purge(self, *, older_than_days: float, now: datetime | None = None) -> int:
        """Drop terminal jobs last updated before the cutoff. Returns the count."""
        cutoff = (now or _utcnow()) - timedelta(days=older_than_days)
        with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status.is_terminal and job.updated_at < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            logger.info("[JobStore] Purged %s jobs older than %s days", len(stale), older_than_days)
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
