"""Import job endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from modimport.application.errors import (
    ImportValidationError,
    InvalidTransitionError,
    JobNotFoundError,
)
from modimport.application.jobs import JobStatus
from modimport.bootstrap import get_container
from modimport.data.catalog import CatalogUnavailableError
from modimport.data.matcher import SUGGESTION_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_INTERVAL_S = 15.0


class ImportRequest(BaseModel):
    source_path: str = Field(..., description="Folder or archive to import")
    scope: str | None = Field(default=None, description="Catalog scope (defaults to CATALOG_DEFAULT_SCOPE)")


class BatchImportRequest(BaseModel):
    source_paths: list[str] = Field(..., description="Folders or archives to import together")
    scope: str | None = None


class ConfirmRequest(BaseModel):
    category: str = Field(..., description="Category chosen by the user")
    entry_name: str | None = Field(default=None, description="Catalog entry chosen by the user")


class PurgeRequest(BaseModel):
    older_than_days: float | None = Field(
        default=None,
        ge=0,
        description="Remove finished jobs older than this (defaults to IMPORT_RETENTION_DAYS)",
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, JobNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ImportValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, CatalogUnavailableError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal server error")


_KNOWN_ERRORS = (JobNotFoundError, ImportValidationError, InvalidTransitionError, CatalogUnavailableError)


def _parse_statuses(raw: str | None) -> list[JobStatus] | None:
    if not raw:
        return None
    statuses = []
    for part in raw.split(","):
        part = part.strip().lower()
        if not part:
            continue
        try:
            statuses.append(JobStatus(part))
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=f"Unknown status: {part}") from exc
    return statuses or None


def _sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


@router.post("/imports")
async def create_import(request: ImportRequest) -> dict[str, Any]:
    try:
        job = get_container().imports.submit(request.source_path, request.scope)
    except _KNOWN_ERRORS as exc:
        raise _http_error(exc) from exc
    return job.to_dict()


@router.post("/imports/batch")
async def create_import_batch(request: BatchImportRequest) -> dict[str, Any]:
    try:
        batch_id, jobs = get_container().imports.submit_batch(request.source_paths, request.scope)
    except _KNOWN_ERRORS as exc:
        raise _http_error(exc) from exc
    return {"batch_id": batch_id, "count": len(jobs), "jobs": [job.to_dict() for job in jobs]}


@router.get("/imports")
async def list_imports(
    status: str | None = None,
    include_canceled: bool = False,
    limit: int = Query(default=100, ge=1, le=1000),
) -> dict[str, Any]:
    statuses = _parse_statuses(status)
    jobs = get_container().jobs.list(statuses, include_canceled=include_canceled, limit=limit)
    return {"count": len(jobs), "jobs": [job.to_dict() for job in jobs]}


@router.get("/imports/review")
async def get_review_queue() -> dict[str, Any]:
    return get_container().review.summary()


@router.get("/imports/events")
async def stream_import_events(request: Request) -> StreamingResponse:
    events = get_container().events

    async def stream() -> AsyncIterator[str]:
        queue = events.open_queue()
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_INTERVAL_S)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield _sse(event.to_dict())
        finally:
            events.close_queue(queue)

    return StreamingResponse(stream(), media_type="text/event-stream")


@router.post("/imports/purge")
async def purge_imports(request: PurgeRequest | None = None) -> dict[str, Any]:
    req = request or PurgeRequest()
    try:
        removed = get_container().imports.purge(req.older_than_days)
    except Exception as exc:
        logger.exception("Error in purge_imports")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return {"removed": removed}


@router.post("/imports/batches/{batch_id}/cancel")
async def cancel_import_batch(batch_id: str) -> dict[str, Any]:
    try:
        jobs = await get_container().imports.cancel_batch(batch_id)
    except Exception as exc:
        logger.exception("Error in cancel_import_batch")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return {"batch_id": batch_id, "canceled": len(jobs), "jobs": [job.to_dict() for job in jobs]}


@router.get("/imports/{job_id}")
async def get_import(job_id: str) -> dict[str, Any]:
    try:
        return get_container().jobs.get(job_id).to_dict()
    except JobNotFoundError as exc:
        raise _http_error(exc) from exc


@router.get("/imports/{job_id}/suggestions")
async def get_import_suggestions(
    job_id: str,
    limit: int = Query(default=SUGGESTION_LIMIT, ge=1, le=20),
) -> dict[str, Any]:
    try:
        candidates = get_container().review.suggestions(job_id, limit=limit)
    except _KNOWN_ERRORS as exc:
        raise _http_error(exc) from exc
    return {
        "job_id": job_id,
        "count": len(candidates),
        "suggestions": [{**candidate.to_dict(), "confidence": candidate.confidence.value} for candidate in candidates],
    }


@router.post("/imports/{job_id}/confirm")
async def confirm_import(job_id: str, request: ConfirmRequest) -> dict[str, Any]:
    try:
        job = await get_container().review.confirm(job_id, request.category, request.entry_name)
    except _KNOWN_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        logger.exception("Error in confirm_import")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return job.to_dict()


@router.post("/imports/{job_id}/skip")
async def skip_import(job_id: str) -> dict[str, Any]:
    try:
        job = await get_container().review.skip(job_id)
    except _KNOWN_ERRORS as exc:
        raise _http_error(exc) from exc
    return job.to_dict()


@router.post("/imports/{job_id}/cancel")
async def cancel_import(job_id: str) -> dict[str, Any]:
    try:
        job = await get_container().imports.cancel(job_id)
    except _KNOWN_ERRORS as exc:
        raise _http_error(exc) from exc
    return job.to_dict()


@router.post("/imports/{job_id}/retry")
async def retry_import(job_id: str) -> dict[str, Any]:
    try:
        job = get_container().imports.retry(job_id)
    except _KNOWN_ERRORS as exc:
        raise _http_error(exc) from exc
    return job.to_dict()
