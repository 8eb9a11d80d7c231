"""
User-facing battle categories and the audio feature each one compares.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class Category:
    label: str
    feature: str
    # lower mean wins when True (e.g. less valence means sadder)
    inverted: bool
    comparative: str  # "<name> is {comparative}!"
    adjective: str  # "Both playlists are equally {adjective}!"


_CATEGORIES = (
    Category("Sadder", "valence", True, "sadder", "sad"),
    Category("Happier", "valence", False, "happier", "happy"),
    Category("Energetic", "energy", False, "more energetic", "energetic"),
    Category("Danceable", "danceability", False, "more danceable", "danceable"),
    Category("Louder", "loudness", False, "louder", "loud"),
    Category("Livelier", "liveness", False, "livelier", "lively"),
)

CATEGORIES: Mapping[str, Category] = MappingProxyType({c.label: c for c in _CATEGORIES})


def find_category(label: str | None) -> Category | None:
    """Case-insensitive lookup by label; None when unknown or blank."""
    s = (label or "").strip().lower()
    if not s:
        return None
    for c in _CATEGORIES:
        if c.label.lower() == s:
            return c
    return None
