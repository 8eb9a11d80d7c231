"""
Comparator: reduce two metric sets to means and decide a winner.

Two rules share the same interface:

- ``FeatureRule`` compares one audio feature under a ``Category``.
- ``PopularityRule`` compares track popularity; the less popular
  ("more underground") playlist wins and its name and cover are attached
  to the result.
"""
from __future__ import annotations

from typing import Iterable, Optional

from lib.battle.categories import Category
from lib.battle.models import ComparisonResult, MetricSet, PlaylistInfo, Verdict

# Value used for a track whose record lacks the feature. This treats
# "feature unavailable" the same as a real zero; kept for parity with the
# web front-end's behaviour.
MISSING_FEATURE_DEFAULT = 0.0


def average(values: Iterable[Optional[float]]) -> float:
    """Arithmetic mean with None counted as MISSING_FEATURE_DEFAULT. Empty -> 0."""
    vals = [MISSING_FEATURE_DEFAULT if v is None else float(v) for v in values]
    if not vals:
        return 0.0
    return sum(vals) / len(vals)


def _display_name(info: PlaylistInfo | None, fallback: str) -> str:
    if info is not None and info.name:
        return info.name
    return fallback


class ComparisonRule:
    """Base strategy. Subclasses supply polarity and wording."""

    inverted: bool = False
    surfaces_identity: bool = False

    def win_message(self, name: str) -> str:
        raise NotImplementedError

    def tie_message(self) -> str:
        raise NotImplementedError

    def pick(self, mean1: float, mean2: float) -> Verdict:
        if mean1 == mean2:
            return Verdict.TIE
        first_higher = mean1 > mean2
        if self.inverted:
            return Verdict.SECOND if first_higher else Verdict.FIRST
        return Verdict.FIRST if first_higher else Verdict.SECOND


class FeatureRule(ComparisonRule):
    def __init__(self, category: Category):
        self.category = category
        self.inverted = category.inverted

    @property
    def feature(self) -> str:
        return self.category.feature

    def win_message(self, name: str) -> str:
        return f"{name} is {self.category.comparative}!"

    def tie_message(self) -> str:
        return f"Both playlists are equally {self.category.adjective}!"

    def __repr__(self) -> str:
        return f"FeatureRule({self.category.label!r})"


class PopularityRule(ComparisonRule):
    inverted = True
    surfaces_identity = True

    def win_message(self, name: str) -> str:
        return f"{name} is more underground, smell some good taste in there!"

    def tie_message(self) -> str:
        return "Both playlists are equally underground!"

    def __repr__(self) -> str:
        return "PopularityRule()"


def determine_winner(metrics1: MetricSet, metrics2: MetricSet, rule: ComparisonRule) -> ComparisonResult:
    mean1 = average(metrics1.values)
    mean2 = average(metrics2.values)
    verdict = rule.pick(mean1, mean2)
    means = {"first": mean1, "second": mean2}

    if verdict is Verdict.TIE:
        return ComparisonResult(message=rule.tie_message(), verdict=verdict, means=means)

    if verdict is Verdict.FIRST:
        info, fallback = metrics1.playlist, "Playlist 1"
    else:
        info, fallback = metrics2.playlist, "Playlist 2"
    name = _display_name(info, fallback)

    result = ComparisonResult(message=rule.win_message(name), verdict=verdict, means=means)
    if rule.surfaces_identity:
        result.name = name
        result.image = info.image_url if info is not None else ""
    return result
