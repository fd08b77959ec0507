"""Local filesystem collaborators: source inspection, placement, duplicate lookup.

Archives are never unpacked here; an archive is staged and placed as a single
file.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
import shutil
from typing import Any

from .config import ImportConfig
from .normalizer import DISABLED_PREFIX, display_name_from_path, is_valid_folder_name, sanitize_folder_name
from .staging import ExtractedSource, ExtractionFailedError, PlacementFailedError

logger = logging.getLogger(__name__)

MAX_COLLISION_SUFFIX = 1000


class FilesystemSourceExtractor:
    """Validates a scanned folder or archive and derives its display name."""

    def __init__(self, allowed_extensions: tuple[str, ...] | None = None) -> None:
        extensions = allowed_extensions or ImportConfig().allowed_extensions
        self._allowed = tuple(ext.lower() for ext in extensions)

    @property
    def allowed_extensions(self) -> tuple[str, ...]:
        return self._allowed

    def _inspect(self, source_path: str) -> ExtractedSource:
        path = Path(source_path)
        if not path.exists():
            raise ExtractionFailedError(f"Source not found: {source_path}")

        if not path.is_dir():
            ext = path.suffix.lower()
            if ext not in self._allowed:
                raise ExtractionFailedError(
                    f"Extension '{ext or '(none)'}' is not in the allowed list: {', '.join(self._allowed)}"
                )

        return ExtractedSource(
            display_name=display_name_from_path(str(path), self._allowed),
            staging_path=str(path),
        )

    async def extract(self, job_id: str, source_path: str) -> ExtractedSource:
        result = await asyncio.to_thread(self._inspect, source_path)
        logger.info("[Extractor] Job %s staged %s as %r", job_id, source_path, result.display_name)
        return result


class FilesystemPlacer:
    """Moves staged assets to ``<mods_root>/<category>/<entry>/DISABLED <name>``.

    New mods always land disabled; an existing destination gets a numbered
    suffix instead of being overwritten.
    """

    def __init__(self, mods_root: Path | None = None) -> None:
        self._mods_root = mods_root or ImportConfig().mods_root

    @property
    def mods_root(self) -> Path:
        return self._mods_root

    def destination_for(self, staging_path: str, category: str, entry_name: str, display_name: str) -> Path:
        for part in (category, entry_name):
            if not is_valid_folder_name(part):
                raise PlacementFailedError(f"Failed to place mod: invalid folder name '{part}'")

        source = Path(staging_path)
        target_dir = self._mods_root / sanitize_folder_name(category) / sanitize_folder_name(entry_name)
        root = self._mods_root.resolve()
        if root not in target_dir.resolve().parents:
            raise PlacementFailedError(f"Failed to place mod: destination is outside {self._mods_root}")
        suffix = "" if source.is_dir() else source.suffix
        base = f"{DISABLED_PREFIX}{sanitize_folder_name(display_name)}"

        candidate = target_dir / f"{base}{suffix}"
        counter = 2
        while candidate.exists():
            if counter > MAX_COLLISION_SUFFIX:
                raise PlacementFailedError(f"Failed to place mod: too many copies of '{display_name}'")
            candidate = target_dir / f"{base} ({counter}){suffix}"
            counter += 1
        return candidate

    def _move(self, staging_path: str, category: str, entry_name: str, display_name: str) -> str:
        if not Path(staging_path).exists():
            raise PlacementFailedError(f"Failed to place mod: staged source missing ({staging_path})")
        try:
            destination = self.destination_for(staging_path, category, entry_name, display_name)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(staging_path, str(destination))
        except OSError as exc:
            raise PlacementFailedError(f"Failed to place mod: {exc}") from exc
        return str(destination)

    async def place(
        self,
        job_id: str,
        staging_path: str,
        category: str,
        entry_name: str,
        display_name: str,
    ) -> str:
        placed = await asyncio.to_thread(self._move, staging_path, category, entry_name, display_name)
        logger.info("[Placer] Job %s placed at %s", job_id, placed)
        return placed


class PlacedAssetDuplicateChecker:
    """A name is a duplicate when a finished job or a placed folder already has it."""

    def __init__(self, store: Any, mods_root: Path | None = None) -> None:
        self._store = store
        self._mods_root = mods_root or ImportConfig().mods_root

    def _placed_on_disk(self, name: str, category: str) -> bool:
        if not is_valid_folder_name(category):
            return False
        category_dir = self._mods_root / sanitize_folder_name(category)
        if not category_dir.is_dir():
            return False
        wanted = name.strip().casefold()
        for entry_dir in category_dir.iterdir():
            if not entry_dir.is_dir():
                continue
            for child in entry_dir.iterdir():
                if display_name_from_path(child.name).casefold() == wanted:
                    return True
        return False

    def is_duplicate(self, name: str, category: str) -> bool:
        if not name.strip():
            return False
        if self._store.find_done(name, category) is not None:
            return True
        try:
            return self._placed_on_disk(name, category)
        except OSError as exc:
            logger.warning("[Duplicates] Could not scan %s: %s", self._mods_root, exc)
            return False
