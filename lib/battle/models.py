"""
Battle のデータモデル。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class Verdict(str, Enum):
    """Which side won a comparison."""
    FIRST = "first"
    SECOND = "second"
    TIE = "tie"


@dataclass
class Track:
    """A playlist entry reduced to what the comparison needs."""
    id: str
    popularity: int = 0


@dataclass
class PlaylistInfo:
    """Display metadata for a playlist. image_url is "" when there is no cover art."""
    id: str
    name: str
    image_url: str = ""


@dataclass
class MetricSet:
    """
    Per-track values of one feature for a single playlist.

    A value is None when the upstream record lacks the feature.
    """
    values: List[Optional[float]]
    playlist: PlaylistInfo | None = None


@dataclass
class ComparisonResult:
    message: str
    verdict: Verdict
    name: str | None = None
    image: str | None = None
    means: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "message": self.message,
            "verdict": self.verdict.value,
            "name": self.name,
            "image": self.image,
            "means": dict(self.means),
        }
