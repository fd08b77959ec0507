"""Review queue: jobs waiting on a human decision."""

from __future__ import annotations

from typing import Any

from modimport.data.matcher import SUGGESTION_LIMIT, MatchCandidate
from modimport.data.normalizer import display_name_from_path

from .catalog_service import CatalogSearchService
from .jobs import ImportJob, JobStatus
from .pipeline import ImportPipeline


class ReviewQueue:
    def __init__(self, *, pipeline: ImportPipeline, search: CatalogSearchService) -> None:
        self._pipeline = pipeline
        self._search = search

    def pending(self) -> list[ImportJob]:
        """Jobs in ``needs_review``, oldest first."""
        jobs = self._pipeline.store.list([JobStatus.NEEDS_REVIEW], limit=None)
        return list(reversed(jobs))

    def actionable(self) -> list[ImportJob]:
        """Rows the user can act on: pending reviews and failures (skippable)."""
        jobs = self._pipeline.store.list([JobStatus.NEEDS_REVIEW, JobStatus.FAILED], limit=None)
        return list(reversed(jobs))

    async def confirm(self, job_id: str, category: str, entry_name: str | None = None) -> ImportJob:
        return await self._pipeline.confirm(job_id, category, entry_name)

    async def skip(self, job_id: str) -> ImportJob:
        return await self._pipeline.skip(job_id)

    def suggestions(self, job_id: str, limit: int = SUGGESTION_LIMIT) -> list[MatchCandidate]:
        job = self._pipeline.store.get(job_id)
        name = job.display_name or display_name_from_path(job.source_path)
        return self._search.suggest(name, job.scope, limit=limit)

    def summary(self) -> dict[str, Any]:
        rows = self.actionable()
        return {
            "count": len(rows),
            "needs_review": sum(1 for job in rows if job.status == JobStatus.NEEDS_REVIEW),
            "failed": sum(1 for job in rows if job.status == JobStatus.FAILED),
            "jobs": [job.to_dict() for job in rows],
        }
