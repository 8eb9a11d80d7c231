"""
Playlist battle comparison.

Public API:
  - determine_winner(metrics1, metrics2, rule) -> ComparisonResult
  - FeatureRule(category), PopularityRule()
  - CATEGORIES, find_category(label)
"""
from lib.battle.categories import CATEGORIES, Category, find_category
from lib.battle.comparator import (
    ComparisonRule,
    FeatureRule,
    PopularityRule,
    average,
    determine_winner,
)
from lib.battle.models import ComparisonResult, MetricSet, PlaylistInfo, Track, Verdict

__all__ = [
    "CATEGORIES",
    "Category",
    "find_category",
    "ComparisonRule",
    "FeatureRule",
    "PopularityRule",
    "average",
    "determine_winner",
    "ComparisonResult",
    "MetricSet",
    "PlaylistInfo",
    "Track",
    "Verdict",
]
