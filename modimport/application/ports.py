"""Collaborator interfaces the import pipeline depends on."""

from __future__ import annotations

from typing import Protocol

from modimport.data.catalog_client import CatalogFetcher
from modimport.data.staging import ExtractedSource


class SourceExtractor(Protocol):
    async def extract(self, job_id: str, source_path: str) -> ExtractedSource:
        """Stage the source; raise ``ExtractionFailedError`` with a user-facing message."""
        ...


class AssetPlacer(Protocol):
    async def place(
        self,
        job_id: str,
        staging_path: str,
        category: str,
        entry_name: str,
        display_name: str,
    ) -> str:
        """Move the staged asset to its final location and return that path."""
        ...


class DuplicateChecker(Protocol):
    def is_duplicate(self, name: str, category: str) -> bool: ...


__all__ = ["AssetPlacer", "CatalogFetcher", "DuplicateChecker", "ExtractedSource", "SourceExtractor"]
