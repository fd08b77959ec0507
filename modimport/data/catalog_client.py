"""Catalog fetchers: remote HTTP source and local JSON files."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

import httpx

from .catalog import CatalogEntry, CatalogUnavailableError, parse_catalog
from .config import CatalogConfig

logger = logging.getLogger(__name__)


class CatalogFetcher(Protocol):
    async def fetch(self, scope: str) -> list[CatalogEntry]: ...


class HttpCatalogFetcher:
    """Async HTTP fetcher for serialized catalogs (``GET {base_url}/{scope}.json``)."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config = CatalogConfig()
        base = base_url or config.source_url
        if not base:
            raise ValueError("A catalog base URL is required (set CATALOG_URL)")
        self._base_url = base.rstrip("/")
        self._timeout_s = timeout_s or config.timeout_s
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def fetch(self, scope: str) -> list[CatalogEntry]:
        url = f"{self._base_url}/{scope}.json"
        logger.info("[CatalogFetch] Fetching catalog: scope=%s url=%s", scope, url)
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise CatalogUnavailableError(f"Catalog request failed: {exc}", scope=scope) from exc
        return self._handle_response(response, scope)

    def _handle_response(self, response: httpx.Response, scope: str) -> list[CatalogEntry]:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CatalogUnavailableError(
                f"Catalog source error ({response.status_code}).",
                scope=scope,
                status_code=response.status_code,
            ) from exc

        try:
            data: Any = response.json()
        except ValueError as exc:
            raise CatalogUnavailableError(f"Catalog is not valid JSON: {exc}", scope=scope) from exc
        return parse_catalog(data)


class FileCatalogFetcher:
    """Reads ``<dir>/<scope>.json`` (or ``<dir>/databases/<scope>.json``).

    A missing file yields an empty catalog rather than an error.
    """

    def __init__(self, catalog_dir: Path | None = None) -> None:
        self._dir = catalog_dir or CatalogConfig().dir

    def _path_for(self, scope: str) -> Path | None:
        for candidate in (self._dir / f"{scope}.json", self._dir / "databases" / f"{scope}.json"):
            if candidate.exists():
                return candidate
        return None

    def _read(self, scope: str) -> list[CatalogEntry]:
        path = self._path_for(scope)
        if path is None:
            logger.warning("[CatalogFetch] Catalog not found for scope %s in %s", scope, self._dir)
            return []

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CatalogUnavailableError(f"Failed to read catalog {path}: {exc}", scope=scope) from exc
        return parse_catalog(raw)

    async def fetch(self, scope: str) -> list[CatalogEntry]:
        return await asyncio.to_thread(self._read, scope)
