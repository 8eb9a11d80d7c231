#!/usr/bin/env python3
"""
2 つの Spotify プレイリストを比較する battle パイプライン。

- プレイリスト URL から ID を抽出（ネットワークアクセス前に検証）
- 両サイド（トラック一覧 / 表示情報 / 指標）を並行取得
- Comparator で平均値を比較して勝者を決定

を行い、API 層にそのまま返せる dict を返す。
"""

from __future__ import annotations

import asyncio
import logging
import re
from time import perf_counter
from typing import Any, Dict, List, Optional, Tuple

import spotipy

from lib.battle import (
    Category,
    ComparisonRule,
    FeatureRule,
    MetricSet,
    PlaylistInfo,
    PopularityRule,
    Track,
    determine_winner,
    find_category,
)
from lib.cache_manager import build_playlist_cache_key, get_playlist_cache
from lib.spotify import (
    BattleError,
    FetchError,
    ValidationError,
    get_audio_features,
    get_playlist_info,
    get_playlist_tracks,
    get_spotify_client,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

PLAYLIST_URL_RE = re.compile(r"playlist/([a-zA-Z0-9]{22})")


# =========================
# 入力検証
# =========================


def extract_playlist_id(url: str | None) -> Optional[str]:
    """Return the 22-character playlist ID embedded in a link, or None."""
    m = PLAYLIST_URL_RE.search(url or "")
    if not m:
        return None
    return m.group(1)


def _validate_links(playlist1: str | None, playlist2: str | None) -> Tuple[str, str]:
    if not (playlist1 or "").strip() or not (playlist2 or "").strip():
        raise ValidationError("Please fill in all fields!")

    id1 = extract_playlist_id(playlist1)
    id2 = extract_playlist_id(playlist2)
    if not id1 or not id2:
        logger.info(f"[battle] invalid playlist link(s): id1={id1} id2={id2}")
        raise ValidationError("Invalid playlist link!")
    return id1, id2


def get_category(label: str | None) -> Category:
    category = find_category(label)
    if category is None:
        raise ValidationError("Please choose a category!", meta={"category": label})
    return category


# =========================
# プレイリスト取得
# =========================


def _load_playlist(sp: spotipy.Spotify, playlist_id: str) -> Tuple[PlaylistInfo, List[Track]]:
    tracks = get_playlist_tracks(sp, playlist_id)
    info = get_playlist_info(sp, playlist_id)
    return info, tracks


async def _load_playlist_cached(
    sp: spotipy.Spotify,
    playlist_id: str,
    refresh: bool,
) -> Tuple[PlaylistInfo, List[Track], bool]:
    """Tracks + info for one playlist, served from the TTL cache unless refresh is set."""
    cache = get_playlist_cache()
    key = build_playlist_cache_key(playlist_id)
    if not refresh:
        cached = cache.get(key)
        if cached is not None:
            info, tracks = cached
            return info, tracks, True

    info, tracks = await asyncio.to_thread(_load_playlist, sp, playlist_id)
    cache[key] = (info, tracks)
    return info, tracks, False


async def _build_side(
    sp: spotipy.Spotify,
    playlist_id: str,
    rule: ComparisonRule,
    refresh: bool,
) -> Tuple[MetricSet, bool]:
    info, tracks, cache_hit = await _load_playlist_cached(sp, playlist_id, refresh)

    if isinstance(rule, FeatureRule):
        records = await asyncio.to_thread(get_audio_features, sp, [t.id for t in tracks])
        values = [r.get(rule.feature) for r in records]
    else:
        values = [t.popularity for t in tracks]

    return MetricSet(values=values, playlist=info), cache_hit


# =========================
# Battle
# =========================


async def _run_battle(
    id1: str,
    id2: str,
    rule: ComparisonRule,
    sp: spotipy.Spotify | None,
    refresh: bool,
) -> Dict[str, Any]:
    t0_total = perf_counter()
    logger.info(f"[battle] start rule={rule!r} playlist1={id1} playlist2={id2} refresh={refresh}")

    try:
        client = sp or get_spotify_client()
        t0_fetch = perf_counter()
        (metrics1, hit1), (metrics2, hit2) = await asyncio.gather(
            _build_side(client, id1, rule, refresh),
            _build_side(client, id2, rule, refresh),
        )
        t1_fetch = perf_counter()
        result = determine_winner(metrics1, metrics2, rule)
    except BattleError:
        raise
    except Exception as e:
        logger.exception(f"[battle] unexpected error for playlist1={id1} playlist2={id2}")
        raise FetchError(f"Unexpected error while comparing playlists: {e}") from e

    total_ms = (perf_counter() - t0_total) * 1000
    fetch_ms = (t1_fetch - t0_fetch) * 1000
    logger.info(
        f"[PERF] rule={rule!r} cache_hit={hit1 and hit2} fetch_ms={fetch_ms:.1f} "
        f"total_ms={total_ms:.1f} tracks={len(metrics1.values)}/{len(metrics2.values)} "
        f"verdict={result.verdict.value}"
    )

    data = result.to_dict()
    data["meta"] = {
        "cache_hit": hit1 and hit2,
        "fetch_ms": float(fetch_ms),
        "total_ms": float(total_ms),
        "tracks": [len(metrics1.values), len(metrics2.values)],
    }
    return data


async def run_underground_battle(
    playlist1: str | None,
    playlist2: str | None,
    sp: spotipy.Spotify | None = None,
    refresh: bool = False,
) -> Dict[str, Any]:
    """
    Compare average track popularity; the less popular playlist wins and its
    name and cover image are attached to the result.
    """
    id1, id2 = _validate_links(playlist1, playlist2)
    return await _run_battle(id1, id2, PopularityRule(), sp, refresh)


async def run_feature_battle(
    playlist1: str | None,
    playlist2: str | None,
    category: str | None,
    sp: spotipy.Spotify | None = None,
    refresh: bool = False,
) -> Dict[str, Any]:
    """Compare the mean of the audio feature behind ``category``."""
    id1, id2 = _validate_links(playlist1, playlist2)
    rule = FeatureRule(get_category(category))
    return await _run_battle(id1, id2, rule, sp, refresh)
