"""Dependency composition root."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from modimport.application.catalog_service import CatalogSearchService
from modimport.application.events import JobEventBus
from modimport.application.jobs import JobStore
from modimport.application.pipeline import ImportPipeline
from modimport.application.resolution import ResolutionPipeline
from modimport.application.review import ReviewQueue
from modimport.data.catalog_client import FileCatalogFetcher, HttpCatalogFetcher
from modimport.data.catalog_store import CatalogStore
from modimport.data.config import CatalogConfig, ImportConfig
from modimport.data.filesystem import (
    FilesystemPlacer,
    FilesystemSourceExtractor,
    PlacedAssetDuplicateChecker,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppContainer:
    """Wired application dependencies."""

    catalogs: CatalogStore
    catalog_search: CatalogSearchService
    events: JobEventBus
    jobs: JobStore
    imports: ImportPipeline
    review: ReviewQueue


_CONTAINER: AppContainer | None = None


def _build_fetcher(config: CatalogConfig) -> HttpCatalogFetcher | FileCatalogFetcher:
    if config.source_url:
        logger.info("[Container] Using remote catalogs from %s", config.source_url)
        return HttpCatalogFetcher(base_url=config.source_url, timeout_s=config.timeout_s)
    logger.info("[Container] Using local catalogs from %s", config.dir)
    return FileCatalogFetcher(catalog_dir=config.dir)


def get_container() -> AppContainer:
    global _CONTAINER
    if _CONTAINER is not None:
        return _CONTAINER

    catalog_config = CatalogConfig()
    import_config = ImportConfig()

    catalogs = CatalogStore(_build_fetcher(catalog_config), ttl_s=catalog_config.cache_ttl_s)
    events = JobEventBus()
    jobs = JobStore(events=events)
    catalog_search = CatalogSearchService(
        catalogs=catalogs,
        search_threshold=import_config.search_threshold,
        suggestion_threshold=import_config.suggestion_threshold,
        default_scope=catalog_config.default_scope,
    )
    imports = ImportPipeline(
        store=jobs,
        catalogs=catalogs,
        extractor=FilesystemSourceExtractor(import_config.allowed_extensions),
        placer=FilesystemPlacer(import_config.mods_root),
        duplicates=PlacedAssetDuplicateChecker(jobs, import_config.mods_root),
        resolver=ResolutionPipeline(threshold=import_config.suggestion_threshold),
        default_scope=catalog_config.default_scope,
        max_concurrent=import_config.max_concurrent,
    )

    _CONTAINER = AppContainer(
        catalogs=catalogs,
        catalog_search=catalog_search,
        events=events,
        jobs=jobs,
        imports=imports,
        review=ReviewQueue(pipeline=imports, search=catalog_search),
    )
    return _CONTAINER


def reset_container() -> None:
    global _CONTAINER
    _CONTAINER = None
