"""Asynchronous driver that moves import jobs through their stages."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable
import uuid

from modimport.data.catalog import CatalogUnavailableError
from modimport.data.catalog_store import CatalogStore
from modimport.data.config import CatalogConfig, ImportConfig
from modimport.data.matcher import ConfidenceTier
from modimport.data.normalizer import display_name_from_path, is_valid_folder_name

from .errors import (
    ExtractionFailedError,
    ImportValidationError,
    InvalidTransitionError,
    PlacementFailedError,
)
from .jobs import ImportJob, JobStatus, JobStore, MatchRecord, can_transition
from .ports import AssetPlacer, DuplicateChecker, SourceExtractor
from .resolution import CATALOG_NOT_LOADED, ResolutionPipeline

logger = logging.getLogger(__name__)

Stage = Callable[[str], Awaitable[None]]


class ImportPipeline:
    """Runs every import job in its own task.

    Each job is sequenced by its own ``asyncio.Lock``; collaborator calls are
    awaited outside that lock and their results are dropped when the job was
    canceled (or otherwise moved on) in the meantime.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        catalogs: CatalogStore,
        extractor: SourceExtractor,
        placer: AssetPlacer,
        duplicates: DuplicateChecker,
        resolver: ResolutionPipeline | None = None,
        default_scope: str | None = None,
        max_concurrent: int | None = None,
    ) -> None:
        config = ImportConfig()
        self._store = store
        self._catalogs = catalogs
        self._extractor = extractor
        self._placer = placer
        self._duplicates = duplicates
        self._resolver = resolver or ResolutionPipeline(threshold=config.suggestion_threshold)
        self._default_scope = default_scope or CatalogConfig().default_scope
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent or config.max_concurrent))
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._watchers: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def default_scope(self) -> str:
        return self._default_scope

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _clean_scope(self, scope: str | None) -> str:
        return (scope or "").strip() or self._default_scope

    def submit(
        self,
        source_path: str,
        scope: str | None = None,
        batch_id: str | None = None,
        *,
        retry_of: str | None = None,
    ) -> ImportJob:
        """Create a queued job and start its task. Needs a running event loop."""
        path = (source_path or "").strip()
        if not path:
            raise ImportValidationError("Source path is required", field="source_path")

        job = self._store.create(path, self._clean_scope(scope), batch_id=batch_id, retry_of=retry_of)
        self._spawn(job.id, self._run)
        return job

    def submit_batch(self, source_paths: Iterable[str], scope: str | None = None) -> tuple[str, list[ImportJob]]:
        paths = [(path or "").strip() for path in source_paths]
        if not paths:
            raise ImportValidationError("At least one source path is required", field="source_paths")
        if any(not path for path in paths):
            raise ImportValidationError("Source paths cannot be blank", field="source_paths")

        batch_id = uuid.uuid4().hex
        jobs = [self.submit(path, scope, batch_id) for path in paths]
        logger.info("[ImportPipeline] Submitted batch %s with %s jobs", batch_id, len(jobs))
        return batch_id, jobs

    def _spawn(self, job_id: str, stage: Stage) -> asyncio.Task[None]:
        task = asyncio.create_task(self._guarded(job_id, stage), name=f"import-{job_id}")
        self._tasks[job_id] = task

        def _forget(done: asyncio.Task[None]) -> None:
            if self._tasks.get(job_id) is done:
                self._tasks.pop(job_id, None)

        task.add_done_callback(_forget)
        return task

    async def _guarded(self, job_id: str, stage: Stage) -> None:
        try:
            await stage(job_id)
        except asyncio.CancelledError:
            logger.info("[ImportPipeline] Task for job %s canceled", job_id)
            raise
        except Exception as exc:
            logger.exception("[ImportPipeline] Unexpected error in job %s", job_id)
            await self._fail(job_id, f"Unexpected error: {exc}")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _advance(self, job_id: str, expected: JobStatus, status: JobStatus, **changes: Any) -> ImportJob | None:
        """Transition only if the job is still where this stage left it."""
        async with self._lock_for(job_id):
            current = self._store.get(job_id)
            if current.status != expected:
                logger.warning(
                    "[ImportPipeline] Discarding result for job %s: expected %s, found %s",
                    job_id,
                    expected.value,
                    current.status.value,
                )
                return None
            return self._store.transition(job_id, status, **changes)

    async def _fail(self, job_id: str, message: str) -> None:
        async with self._lock_for(job_id):
            current = self._store.get(job_id)
            if current.status == JobStatus.MATCHING:
                # No failure edge out of matching: hand the job to a human instead
                record = MatchRecord(matched_entry=None, confidence=ConfidenceTier.NONE, score=0.0, detail=message)
                self._store.transition(job_id, JobStatus.NEEDS_REVIEW, match=record)
                return
            if not can_transition(current.status, JobStatus.FAILED):
                logger.warning(
                    "[ImportPipeline] Ignoring failure for job %s in status %s: %s",
                    job_id,
                    current.status.value,
                    message,
                )
                return
            self._store.transition(job_id, JobStatus.FAILED, error_message=message)

    async def _run(self, job_id: str) -> None:
        job = await self._advance(job_id, JobStatus.QUEUED, JobStatus.EXTRACTING)
        if job is None:
            return

        try:
            async with self._semaphore:
                extracted = await self._extractor.extract(job_id, job.source_path)
        except ExtractionFailedError as exc:
            await self._fail(job_id, str(exc))
            return

        display_name = extracted.display_name.strip() or display_name_from_path(job.source_path)
        job = await self._advance(
            job_id,
            JobStatus.EXTRACTING,
            JobStatus.MATCHING,
            display_name=display_name,
            staging_path=extracted.staging_path,
        )
        if job is None:
            return
        await self._match(job_id)

    async def _match(self, job_id: str) -> None:
        job = self._store.get(job_id)
        if job.status != JobStatus.MATCHING:
            return

        name = job.display_name or display_name_from_path(job.source_path)
        index = self._catalogs.get_index(job.scope)
        outcome = await asyncio.to_thread(self._resolver.resolve, name, index)

        is_duplicate = False
        check_error: str | None = None
        if outcome.best is not None:
            try:
                is_duplicate = await asyncio.to_thread(
                    self._duplicates.is_duplicate, name, outcome.best.entry.category
                )
            except Exception as exc:
                logger.warning("[ImportPipeline] Duplicate check failed for job %s: %s", job_id, exc)
                check_error = str(exc) or type(exc).__name__
                is_duplicate = True

        auto_accept, detail = self._resolver.decide(outcome, is_duplicate)
        if check_error is not None:
            detail = f"Duplicate check failed ({check_error}); {outcome.match_detail}"
        record = outcome.to_match_record(detail=detail, is_duplicate=is_duplicate)

        async with self._lock_for(job_id):
            current = self._store.get(job_id)
            if current.status != JobStatus.MATCHING:
                logger.warning("[ImportPipeline] Discarding match for job %s (%s)", job_id, current.status.value)
                return
            next_status = JobStatus.PLACING if auto_accept else JobStatus.NEEDS_REVIEW
            self._store.transition(job_id, next_status, match=record)

        if not outcome.catalog_loaded:
            self._watch_catalog(job.scope)
            return
        if auto_accept:
            await self._place(job_id)

    async def _place(self, job_id: str) -> None:
        job = self._store.get(job_id)
        if job.status != JobStatus.PLACING or job.matched_entry is None:
            return

        entry = job.matched_entry
        try:
            async with self._semaphore:
                placed_path = await self._placer.place(
                    job_id,
                    job.staging_path or job.source_path,
                    entry.category,
                    entry.name,
                    job.display_name or entry.name,
                )
        except PlacementFailedError as exc:
            await self._fail(job_id, str(exc))
            return

        await self._advance(job_id, JobStatus.PLACING, JobStatus.DONE, placed_path=placed_path)

    # ------------------------------------------------------------------
    # Catalog re-match
    # ------------------------------------------------------------------

    def _watch_catalog(self, scope: str) -> None:
        task = asyncio.create_task(self._rematch_after_load(scope), name=f"catalog-watch-{scope}")
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)

    async def _rematch_after_load(self, scope: str) -> None:
        try:
            await self._catalogs.load(scope)
        except CatalogUnavailableError as exc:
            logger.warning("[ImportPipeline] Catalog %s unavailable, jobs stay in review: %s", scope, exc)
            return
        await self.rematch_waiting(scope)

    async def rematch_waiting(self, scope: str) -> int:
        """Re-run matching for jobs that went to review before ``scope`` was loaded."""
        key = scope.strip().lower()
        count = 0
        for job in self._store.list([JobStatus.NEEDS_REVIEW], limit=None):
            if job.scope.strip().lower() != key or job.match_detail != CATALOG_NOT_LOADED:
                continue
            async with self._lock_for(job.id):
                current = self._store.get(job.id)
                if current.status != JobStatus.NEEDS_REVIEW or current.match_detail != CATALOG_NOT_LOADED:
                    continue
                self._store.transition(job.id, JobStatus.MATCHING)
            self._spawn(job.id, self._rematch)
            count += 1

        if count:
            logger.info("[ImportPipeline] Re-matching %s jobs after catalog %s loaded", count, scope)
        return count

    async def _rematch(self, job_id: str) -> None:
        await self._match(job_id)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def _stop_task(self, job_id: str) -> None:
        task = self._tasks.get(job_id)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def cancel(self, job_id: str) -> ImportJob:
        """Cancel a job. Terminal jobs are returned unchanged."""
        async with self._lock_for(job_id):
            job = self._store.get(job_id)
            if job.status.is_terminal:
                return job
            job = self._store.transition(job_id, JobStatus.CANCELED)
        self._stop_task(job_id)
        return job

    async def cancel_batch(self, batch_id: str) -> list[ImportJob]:
        canceled: list[ImportJob] = []
        for job in self._store.list(batch_id=batch_id, include_canceled=True, limit=None):
            if job.status.is_terminal:
                continue
            result = await self.cancel(job.id)
            if result.status == JobStatus.CANCELED:
                canceled.append(result)
        logger.info("[ImportPipeline] Canceled %s jobs in batch %s", len(canceled), batch_id)
        return canceled

    async def skip(self, job_id: str) -> ImportJob:
        """Human skip: dismisses review and failed rows alike. Idempotent."""
        async with self._lock_for(job_id):
            job = self._store.get(job_id)
            if job.status in (JobStatus.DONE, JobStatus.CANCELED):
                return job
            job = self._store.transition(job_id, JobStatus.CANCELED)
        self._stop_task(job_id)
        return job

    async def confirm(self, job_id: str, category: str, entry_name: str | None = None) -> ImportJob:
        """Apply a user override and start placement in the background."""
        category = (category or "").strip()
        if not category:
            raise ImportValidationError("Category is required", field="category")
        if not is_valid_folder_name(category):
            raise ImportValidationError(f"Invalid category: '{category}'", field="category")
        if entry_name is not None and not entry_name.strip():
            raise ImportValidationError("Entry name cannot be blank", field="entry_name")
        if entry_name is not None and not is_valid_folder_name(entry_name):
            raise ImportValidationError(f"Invalid entry name: '{entry_name.strip()}'", field="entry_name")

        async with self._lock_for(job_id):
            job = self._store.get(job_id)
            if job.status != JobStatus.NEEDS_REVIEW:
                raise InvalidTransitionError(job_id, job.status.value, JobStatus.MATCHING.value)

            name = entry_name.strip() if entry_name else None
            if name is None:
                pending = job.matched_entry
                if pending is not None and pending.category.strip().lower() == category.lower():
                    name = pending.name
                else:
                    name = job.display_name or display_name_from_path(job.source_path)

            index = self._catalogs.get_index(job.scope)
            known = index.find(name, category) if index is not None else None
            if known is not None:
                name = known.name
                if known.category_key == category.lower():
                    category = known.category

            record = self._resolver.direct_assignment(name, category).to_match_record()
            self._store.transition(job_id, JobStatus.MATCHING, match=record)
            job = self._store.transition(job_id, JobStatus.PLACING)

        logger.info("[ImportPipeline] Job %s confirmed as %s / %s", job_id, category, name)
        self._spawn(job_id, self._place)
        return job

    def retry(self, job_id: str) -> ImportJob:
        """Queue a fresh job for the source of a failed one."""
        job = self._store.get(job_id)
        if job.status != JobStatus.FAILED:
            raise InvalidTransitionError(job_id, job.status.value, "retry")
        return self.submit(job.source_path, job.scope, job.batch_id, retry_of=job.id)

    def purge(self, older_than_days: float | None = None) -> int:
        days = ImportConfig().retention_days if older_than_days is None else older_than_days
        removed = self._store.purge(older_than_days=days)
        if removed:
            known = {job.id for job in self._store.list(include_canceled=True, limit=None)}
            for job_id in list(self._locks):
                if job_id not in known and job_id not in self._tasks:
                    self._locks.pop(job_id, None)
        return removed

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def wait_idle(self) -> None:
        """Wait until no job task or catalog watcher is running."""
        while True:
            pending = [task for task in (*self._tasks.values(), *self._watchers) if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
