"""Name cleanup for scanned folders and downloaded archives."""

from __future__ import annotations

from pathlib import PurePath
import re

DISABLED_PREFIX = "DISABLED "

DEFAULT_ARCHIVE_EXTENSIONS = (".zip", ".7z", ".rar", ".tar", ".gz")

# Common noise prefixes stripped before matching
NOISE_PREFIXES = ("[mod]", "[skin]", "[fix]", "[update]", "disabled ")

_SEPARATORS_RE = re.compile(r"[\s_\-.]+")
_FORBIDDEN_CHARS_RE = re.compile(r'[\\/:*?"<>|]')


def is_disabled_folder(name: str) -> bool:
    """Folders are disabled by the case-sensitive ``DISABLED `` prefix."""
    return name.startswith(DISABLED_PREFIX)


def normalize_display_name(name: str) -> str:
    if is_disabled_folder(name):
        name = name[len(DISABLED_PREFIX):]
    return name.strip()


def strip_noise_prefixes(name: str) -> str:
    """Remove one leading noise prefix such as ``[Mod]`` or ``DISABLED``."""
    result = name.strip()
    lower = result.lower()
    for prefix in NOISE_PREFIXES:
        if lower.startswith(prefix):
            result = result[len(prefix):]
            break
    return result.strip()


def strip_archive_suffix(name: str, extensions: tuple[str, ...] = DEFAULT_ARCHIVE_EXTENSIONS) -> str:
    lower = name.lower()
    for ext in sorted(extensions, key=len, reverse=True):
        if ext and lower.endswith(ext.lower()):
            name = name[: -len(ext)]
            # .tar.gz
            if name.lower().endswith(".tar"):
                name = name[:-4]
            break
    return name


def display_name_from_path(
    source_path: str,
    extensions: tuple[str, ...] = DEFAULT_ARCHIVE_EXTENSIONS,
) -> str:
    """Human-readable name of a scanned folder or archive.

    "C:/Downloads/[Mod] Raiden_Shogun-v2.zip" → "Raiden Shogun v2"
    """
    raw = PurePath(source_path.replace("\\", "/")).name or source_path
    name = strip_archive_suffix(raw, extensions)
    name = strip_noise_prefixes(normalize_display_name(name))
    name = _SEPARATORS_RE.sub(" ", name).strip()
    return name or raw


def sanitize_folder_name(name: str) -> str:
    r"""Replace characters forbidden in folder names (``\ / : * ? " < > |``)."""
    return _FORBIDDEN_CHARS_RE.sub("_", name)


def is_valid_folder_name(name: str) -> bool:
    """False for names that sanitize to nothing but dots and spaces (``.``, ``..``, ``" "``)."""
    return bool(sanitize_folder_name(name).strip(" ."))
