"""Catalog entries and the category-partitioned catalog index."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Union

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Other"

# Closed variant for free-form metadata values.
MetadataValue = Union[str, int, float, bool, None, Mapping[str, "MetadataValue"]]


class CatalogUnavailableError(RuntimeError):
    """Raised when a catalog cannot be fetched or parsed."""

    def __init__(self, message: str, *, scope: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.scope = scope
        self.status_code = status_code


def normalize_metadata(raw: Any, *, path: str = "metadata") -> dict[str, MetadataValue]:
    """Coerce a raw mapping into the closed metadata variant.

    Unsupported values (lists, arbitrary objects) are dropped with a warning.
    """
    if not isinstance(raw, Mapping):
        return {}

    result: dict[str, MetadataValue] = {}
    for key, value in raw.items():
        key = str(key)
        if value is None or isinstance(value, (str, bool, int, float)):
            result[key] = value
        elif isinstance(value, Mapping):
            result[key] = MappingProxyType(normalize_metadata(value, path=f"{path}.{key}"))
        else:
            logger.warning("[Catalog] Dropping unsupported metadata value at %s.%s (%s)", path, key, type(value).__name__)
    return result


def _metadata_to_plain(value: MetadataValue) -> Any:
    if isinstance(value, Mapping):
        return {k: _metadata_to_plain(v) for k, v in value.items()}
    return value


def _string_tuple(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    return tuple(str(value).strip() for value in raw if value is not None and str(value).strip())


@dataclass(frozen=True)
class SkinVariant:
    name: str
    aliases: tuple[str, ...] = ()
    thumbnail_reference: str | None = None
    rarity: str | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SkinVariant | None":
        name = str(raw.get("name") or "").strip()
        if not name:
            return None
        thumbnail = raw.get("thumbnail_skin_path") or raw.get("thumbnail_reference")
        rarity = raw.get("rarity")
        return cls(
            name=name,
            aliases=_string_tuple(raw.get("aliases")),
            thumbnail_reference=str(thumbnail) if thumbnail else None,
            rarity=str(rarity) if rarity else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "aliases": list(self.aliases),
            "thumbnail_reference": self.thumbnail_reference,
            "rarity": self.rarity,
        }


@dataclass(frozen=True)
class CatalogEntry:
    """Canonical identity of a known object (character, weapon, UI...)."""

    name: str
    category: str = DEFAULT_CATEGORY
    aliases: tuple[str, ...] = ()
    metadata: Mapping[str, MetadataValue] = field(default_factory=dict, compare=False, hash=False)
    thumbnail_reference: str | None = None
    skin_variants: tuple[SkinVariant, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CatalogEntry | None":
        name = str(raw.get("name") or "").strip()
        if not name:
            return None

        category = str(raw.get("object_type") or raw.get("category") or "").strip() or DEFAULT_CATEGORY
        aliases = _string_tuple(raw.get("tags") if raw.get("tags") is not None else raw.get("aliases"))
        thumbnail = raw.get("thumbnail_path") or raw.get("thumbnail_reference")

        skins_raw = raw.get("custom_skins") if raw.get("custom_skins") is not None else raw.get("skin_variants")
        skins: list[SkinVariant] = []
        if isinstance(skins_raw, list):
            for skin_raw in skins_raw:
                if isinstance(skin_raw, Mapping):
                    skin = SkinVariant.from_dict(skin_raw)
                    if skin:
                        skins.append(skin)

        return cls(
            name=name,
            category=category,
            aliases=aliases,
            metadata=MappingProxyType(normalize_metadata(raw.get("metadata"), path=name)),
            thumbnail_reference=str(thumbnail) if thumbnail else None,
            skin_variants=tuple(skins),
        )

    @property
    def category_key(self) -> str:
        return self.category.strip().lower()

    def alias_terms(self) -> tuple[str, ...]:
        """Aliases followed by every skin variant name and alias."""
        terms = list(self.aliases)
        for skin in self.skin_variants:
            terms.append(skin.name)
            terms.extend(skin.aliases)
        return tuple(terms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "aliases": list(self.aliases),
            "metadata": {key: _metadata_to_plain(value) for key, value in self.metadata.items()},
            "thumbnail_reference": self.thumbnail_reference,
            "skin_variants": [skin.to_dict() for skin in self.skin_variants],
        }


def _extract_entries(raw: Any) -> list[Any]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("entries"), list):
        return raw["entries"]
    raise CatalogUnavailableError(
        "Invalid catalog format: expected array or object with 'entries' key"
    )


def parse_catalog(raw: Any) -> list[CatalogEntry]:
    """Parse a serialized catalog (already JSON-decoded) into entries."""
    entries: list[CatalogEntry] = []
    skipped = 0
    for item in _extract_entries(raw):
        entry = CatalogEntry.from_dict(item) if isinstance(item, Mapping) else None
        if entry is None:
            skipped += 1
            continue
        entries.append(entry)

    if skipped:
        logger.warning("[Catalog] Skipped %s malformed catalog entries", skipped)
    return entries


class CatalogIndex:
    """Read-only lookup of catalog entries partitioned by category.

    Rebuilding is the only update path; an index never changes after
    construction.
    """

    def __init__(self, by_category: dict[str, tuple[CatalogEntry, ...]]) -> None:
        self._by_category = by_category
        self._all: tuple[CatalogEntry, ...] = tuple(
            entry for entries in by_category.values() for entry in entries
        )
        self._by_name: dict[str, list[CatalogEntry]] = {}
        for entry in self._all:
            self._by_name.setdefault(entry.name.lower(), []).append(entry)

    @classmethod
    def build(cls, entries: Iterable[CatalogEntry]) -> "CatalogIndex":
        grouped: dict[str, list[CatalogEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.category_key, []).append(entry)
        return cls({key: tuple(values) for key, values in grouped.items()})

    def __len__(self) -> int:
        return len(self._all)

    def categories(self) -> list[str]:
        return list(self._by_category)

    def all_entries(self) -> list[CatalogEntry]:
        return list(self._all)

    def _fallback_key(self, requested: str) -> str | None:
        best: str | None = None
        for key in self._by_category:
            if key in requested or requested in key:
                if best is None or len(key) > len(best):
                    best = key
        return best

    def entries_for(self, category: str | None) -> list[CatalogEntry]:
        """Entries of ``category``, a close category, or everything.

        Never raises: an unknown or ambiguous category falls back to the full
        entry set so matching is never blocked.
        """
        requested = (category or "").strip().lower()
        if not requested:
            return self.all_entries()

        if requested in self._by_category:
            return list(self._by_category[requested])

        key = self._fallback_key(requested)
        if key is not None:
            logger.debug("[Catalog] Category %r resolved to %r", category, key)
            return list(self._by_category[key])

        return self.all_entries()

    def find(self, name: str, category: str | None = None) -> CatalogEntry | None:
        """Exact, case-insensitive lookup by entry name."""
        matches = self._by_name.get(name.strip().lower(), [])
        if not matches:
            return None
        if category:
            wanted = category.strip().lower()
            for entry in matches:
                if entry.category_key == wanted:
                    return entry
        return matches[0]
