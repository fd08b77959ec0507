"""Configuration for catalog loading and the import pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path

from .normalizer import DEFAULT_ARCHIVE_EXTENSIONS

DEFAULT_SCOPE = "default"
_DEFAULT_CATALOG_DIR = Path("data/catalogs")
_DEFAULT_MODS_ROOT = Path("data/mods")


def _get_allowed_extensions() -> tuple[str, ...]:
    raw = os.getenv("IMPORT_ALLOWED_EXTENSIONS")
    if not raw:
        return DEFAULT_ARCHIVE_EXTENSIONS
    extensions = []
    for part in raw.split(","):
        ext = part.strip().lower()
        if not ext:
            continue
        extensions.append(ext if ext.startswith(".") else f".{ext}")
    return tuple(extensions) or DEFAULT_ARCHIVE_EXTENSIONS


@dataclass(frozen=True)
class CatalogConfig:
    source_url: str | None = field(default_factory=lambda: os.getenv("CATALOG_URL") or None)
    dir: Path = field(default_factory=lambda: Path(os.getenv("CATALOG_DIR", str(_DEFAULT_CATALOG_DIR))))
    default_scope: str = field(default_factory=lambda: os.getenv("CATALOG_DEFAULT_SCOPE", DEFAULT_SCOPE))
    cache_ttl_s: float = field(default_factory=lambda: float(os.getenv("CATALOG_CACHE_TTL_S", "3600")))  # 1 hour
    timeout_s: float = field(default_factory=lambda: float(os.getenv("CATALOG_TIMEOUT_S", "15")))


@dataclass(frozen=True)
class ImportConfig:
    mods_root: Path = field(default_factory=lambda: Path(os.getenv("MODS_ROOT", str(_DEFAULT_MODS_ROOT))))
    allowed_extensions: tuple[str, ...] = field(default_factory=_get_allowed_extensions)
    retention_days: int = field(default_factory=lambda: int(os.getenv("IMPORT_RETENTION_DAYS", "30")))
    max_concurrent: int = field(default_factory=lambda: int(os.getenv("IMPORT_MAX_CONCURRENT", "4")))
    suggestion_threshold: float = field(
        default_factory=lambda: float(os.getenv("IMPORT_SUGGESTION_THRESHOLD", "0.25"))
    )
    search_threshold: float = field(default_factory=lambda: float(os.getenv("IMPORT_SEARCH_THRESHOLD", "0.2")))
