"""Catalog endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from modimport.bootstrap import get_container
from modimport.data.catalog import CatalogUnavailableError
from modimport.data.matcher import DEFAULT_RESULT_LIMIT, MAX_RESULT_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/catalog/status")
async def get_catalog_status() -> dict[str, Any]:
    return get_container().catalog_search.status()


@router.get("/catalog/{scope}/search")
async def search_catalog(
    scope: str,
    q: str = "",
    category: str | None = None,
    limit: int = Query(default=DEFAULT_RESULT_LIMIT, ge=1, le=MAX_RESULT_LIMIT),
) -> dict[str, Any]:
    try:
        return await get_container().catalog_search.search(q, scope=scope, category=category, limit=limit)
    except CatalogUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Error in search_catalog")
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@router.post("/catalog/{scope}/reload")
async def reload_catalog(scope: str) -> dict[str, Any]:
    try:
        return await get_container().catalog_search.reload(scope)
    except CatalogUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Error in reload_catalog")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
