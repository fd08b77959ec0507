"""Per-scope catalog cache with async, de-duplicated, cancelable loads."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .cache import TTLCache
from .catalog import CatalogIndex, CatalogUnavailableError
from .catalog_client import CatalogFetcher
from .config import CatalogConfig

logger = logging.getLogger(__name__)


class CatalogStore:
    """Owns the Catalog Index of every scope loaded this session.

    Readers call ``get_index`` which never blocks: ``None`` means "not loaded
    yet" and callers degrade to no-match instead of waiting.
    """

    def __init__(self, fetcher: CatalogFetcher, ttl_s: float | None = None) -> None:
        self._fetcher = fetcher
        self._cache: TTLCache[CatalogIndex] = TTLCache(
            CatalogConfig().cache_ttl_s if ttl_s is None else ttl_s
        )
        self._loads: dict[str, asyncio.Task[CatalogIndex]] = {}
        self._errors: dict[str, str] = {}
        self._scopes: set[str] = set()

    @staticmethod
    def _key(scope: str) -> str:
        return scope.strip().lower()

    def get_index(self, scope: str) -> CatalogIndex | None:
        return self._cache.get(self._key(scope))

    def is_loading(self, scope: str) -> bool:
        task = self._loads.get(self._key(scope))
        return task is not None and not task.done()

    def last_error(self, scope: str) -> str | None:
        return self._errors.get(self._key(scope))

    async def _fetch_and_index(self, scope: str) -> CatalogIndex:
        key = self._key(scope)
        try:
            entries = await self._fetcher.fetch(scope)
        except asyncio.CancelledError:
            logger.info("[CatalogStore] Load canceled for scope %s", scope)
            raise
        except CatalogUnavailableError as exc:
            self._errors[key] = str(exc)
            logger.warning("[CatalogStore] Catalog unavailable for scope %s: %s", scope, exc)
            raise
        except Exception as exc:
            self._errors[key] = str(exc)
            logger.exception("[CatalogStore] Unexpected error loading scope %s", scope)
            raise CatalogUnavailableError(f"Catalog load failed: {exc}", scope=scope) from exc

        index = CatalogIndex.build(entries)
        self._cache.set(key, index)
        self._errors.pop(key, None)
        logger.info(
            "[CatalogStore] Loaded %s entries in %s categories for scope %s",
            len(index),
            len(index.categories()),
            scope,
        )
        return index

    def _start_load(self, scope: str) -> asyncio.Task[CatalogIndex]:
        key = self._key(scope)
        task = self._loads.get(key)
        if task is not None and not task.done():
            return task

        self._scopes.add(key)
        task = asyncio.create_task(self._fetch_and_index(scope), name=f"catalog-load-{key}")

        def _forget(done: asyncio.Task[CatalogIndex]) -> None:
            if self._loads.get(key) is done:
                self._loads.pop(key, None)
            # Retrieve the exception so un-awaited background loads don't warn
            if not done.cancelled():
                done.exception()

        task.add_done_callback(_forget)
        self._loads[key] = task
        return task

    def ensure_loading(self, scope: str) -> asyncio.Task[CatalogIndex] | None:
        """Start a background load unless the scope is cached. Does not await."""
        if self.get_index(scope) is not None:
            return None
        return self._start_load(scope)

    async def load(self, scope: str) -> CatalogIndex:
        """Return the cached index or await a (shared) fetch."""
        index = self.get_index(scope)
        if index is not None:
            return index
        # shield: one awaiting caller being canceled must not cancel the shared load
        return await asyncio.shield(self._start_load(scope))

    async def reload(self, scope: str) -> CatalogIndex:
        self._cache.invalidate(self._key(scope))
        self.cancel(scope)
        return await self.load(scope)

    def cancel(self, scope: str) -> bool:
        task = self._loads.pop(self._key(scope), None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def status(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in sorted(self._scopes):
            index = self._cache.get(key)
            age = self._cache.age(key) if index is not None else None
            result[key] = {
                "loaded": index is not None,
                "loading": self.is_loading(key),
                "entries": len(index) if index is not None else 0,
                "categories": index.categories() if index is not None else [],
                "age_seconds": round(age, 1) if age is not None else None,
                "error": self._errors.get(key),
            }
        return result
