"""Catalog search and smart suggestions."""

from __future__ import annotations

import logging
from typing import Any

from modimport.data.catalog_store import CatalogStore
from modimport.data.config import CatalogConfig, ImportConfig
from modimport.data.matcher import (
    DEFAULT_RESULT_LIMIT,
    SUGGESTION_LIMIT,
    MatchCandidate,
    capped_limit,
    find_candidates,
)

logger = logging.getLogger(__name__)


class CatalogSearchService:
    """Use-cases over the loaded catalogs: search-as-you-type and suggestions."""

    def __init__(
        self,
        *,
        catalogs: CatalogStore,
        search_threshold: float | None = None,
        suggestion_threshold: float | None = None,
        default_scope: str | None = None,
    ) -> None:
        config = ImportConfig()
        self._catalogs = catalogs
        self._search_threshold = config.search_threshold if search_threshold is None else search_threshold
        self._suggestion_threshold = (
            config.suggestion_threshold if suggestion_threshold is None else suggestion_threshold
        )
        self._default_scope = default_scope or CatalogConfig().default_scope

    @property
    def catalogs(self) -> CatalogStore:
        return self._catalogs

    def _scope(self, scope: str | None) -> str:
        return (scope or "").strip() or self._default_scope

    async def search(
        self,
        query: str,
        scope: str | None = None,
        category: str | None = None,
        limit: int | None = DEFAULT_RESULT_LIMIT,
    ) -> dict[str, Any]:
        """Ranked entries for ``query``; a blank query lists the category."""
        scope = self._scope(scope)
        index = await self._catalogs.load(scope)
        max_results = capped_limit(limit)
        query = (query or "").strip()

        if not query:
            entries = index.entries_for(category)[:max_results]
            results = [entry.to_dict() for entry in entries]
        else:
            candidates = find_candidates(
                query, category, index, threshold=self._search_threshold, limit=max_results
            )
            results = [{**candidate.entry.to_dict(), **candidate.to_dict()} for candidate in candidates]

        return {
            "query": query,
            "scope": scope,
            "category": category,
            "count": len(results),
            "results": results,
        }

    def suggest(self, name: str, scope: str | None = None, limit: int | None = SUGGESTION_LIMIT) -> list[MatchCandidate]:
        """Suggestions for a display name across the whole catalog.

        Returns nothing (and starts a background load) when the scope has not
        been loaded yet.
        """
        scope = self._scope(scope)
        index = self._catalogs.get_index(scope)
        if index is None:
            self._catalogs.ensure_loading(scope)
            logger.info("[CatalogSearch] No suggestions for %r, catalog %s not loaded", name, scope)
            return []
        return find_candidates(
            name,
            None,
            index,
            threshold=self._suggestion_threshold,
            limit=capped_limit(limit, default=SUGGESTION_LIMIT),
        )

    async def reload(self, scope: str | None = None) -> dict[str, Any]:
        scope = self._scope(scope)
        index = await self._catalogs.reload(scope)
        return {
            "scope": scope,
            "entries": len(index),
            "categories": index.categories(),
        }

    def status(self) -> dict[str, Any]:
        return {"default_scope": self._default_scope, "scopes": self._catalogs.status()}
