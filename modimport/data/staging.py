"""Records and errors shared by the extraction and placement collaborators."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExtractedSource:
    display_name: str
    staging_path: str


class ExtractionFailedError(RuntimeError):
    """Reported by the extraction collaborator; the message is shown verbatim."""


class PlacementFailedError(RuntimeError):
    """Reported by the placement collaborator; the message is shown verbatim."""
