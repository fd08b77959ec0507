"""Data layer: catalog model, matching, loading and configuration."""

from .catalog import CatalogEntry, CatalogIndex, CatalogUnavailableError, SkinVariant, parse_catalog
from .catalog_client import CatalogFetcher, FileCatalogFetcher, HttpCatalogFetcher
from .catalog_store import CatalogStore
from .config import CatalogConfig, ImportConfig
from .filesystem import FilesystemPlacer, FilesystemSourceExtractor, PlacedAssetDuplicateChecker
from .matcher import ConfidenceTier, MatchCandidate, MatchedVia, confidence_tier, find_candidates
from .similarity import fuzzy_score
from .staging import ExtractedSource, ExtractionFailedError, PlacementFailedError

__all__ = [
    "CatalogEntry",
    "CatalogIndex",
    "CatalogUnavailableError",
    "SkinVariant",
    "parse_catalog",
    "CatalogFetcher",
    "FileCatalogFetcher",
    "HttpCatalogFetcher",
    "CatalogStore",
    "CatalogConfig",
    "ImportConfig",
    "FilesystemPlacer",
    "FilesystemSourceExtractor",
    "PlacedAssetDuplicateChecker",
    "ConfidenceTier",
    "MatchCandidate",
    "MatchedVia",
    "confidence_tier",
    "find_candidates",
    "fuzzy_score",
    "ExtractedSource",
    "ExtractionFailedError",
    "PlacementFailedError",
]
