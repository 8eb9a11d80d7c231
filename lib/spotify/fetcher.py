"""
Playlist / audio-feature fetchers.

All functions take a ``spotipy.Spotify`` client and are blocking; the
pipeline runs them in worker threads. Upstream failures are translated
into ``FetchError`` / ``RateLimited`` here so callers never see
``SpotifyException``.
"""
from __future__ import annotations

import logging
import os
import re
import time
import unicodedata
from typing import Any, Callable, Dict, Iterable, List

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from lib.battle.models import PlaylistInfo, Track
from lib.spotify.errors import BattleError, FetchError, RateLimited

logger = logging.getLogger(__name__)

SPOTIFY_ID_RE = re.compile(r"^[A-Za-z0-9]{22}$")
AUDIO_FEATURES_BATCH_SIZE = 100  # upstream cap per /audio-features call

METRIC_RATE_LIMIT_RETRIES = int(os.getenv("METRIC_RATE_LIMIT_RETRIES", "0"))
METRIC_BACKOFF_BASE_S = float(os.getenv("METRIC_BACKOFF_BASE_S", "1"))
METRIC_BACKOFF_MAX_S = float(os.getenv("METRIC_BACKOFF_MAX_S", "30"))


def is_valid_spotify_id(value: Any) -> bool:
    return isinstance(value, str) and bool(SPOTIFY_ID_RE.match(value))


def _retry_after_seconds(e: SpotifyException) -> float | None:
    headers = getattr(e, "headers", None) or {}
    raw = headers.get("Retry-After") or headers.get("retry-after")
    try:
        return float(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _drop_stale_token(sp: spotipy.Spotify) -> None:
    manager = getattr(sp, "auth_manager", None)
    invalidate = getattr(manager, "invalidate", None)
    if callable(invalidate):
        invalidate()


def _translate_error(sp: spotipy.Spotify, e: Exception, what: str, **meta: Any) -> BattleError:
    if isinstance(e, SpotifyException):
        status = getattr(e, "http_status", None)
        msg = getattr(e, "msg", str(e))
        meta["status"] = status
        if status == 401:
            # token revoked before its expiry; the next call fetches a new one
            logger.warning(f"[Spotify] 401 while fetching {what}; dropping cached token")
            _drop_stale_token(sp)
        # spotipy's default session reports exhausted 5xx retries as 429 "Max Retries"
        if status == 429 and "Max Retries" not in str(msg):
            retry_after = _retry_after_seconds(e)
            logger.warning(f"[Spotify] rate limited while fetching {what} retry_after={retry_after}")
            return RateLimited(f"Rate limited while fetching {what}", retry_after=retry_after, meta=meta)
        logger.error(f"[Spotify] failed to fetch {what} ({status}): {msg}")
        return FetchError(f"Failed to fetch {what} ({status}): {msg}", meta=meta)
    logger.error(f"[Spotify] transport error while fetching {what}: {e}")
    return FetchError(f"Failed to fetch {what}: {e}", meta=meta)


# =========================
# Playlist
# =========================


def get_playlist_tracks(sp: spotipy.Spotify, playlist_id: str) -> List[Track]:
    """
    Fetch every track of a playlist (following pagination).

    Entries without a nested track or without an id (local files, removed
    tracks) are dropped. Raises FetchError when nothing usable is left.
    """
    items: List[Dict[str, Any]] = []
    try:
        results = sp.playlist_items(
            playlist_id,
            fields="items(track(id,popularity)),next",
            limit=100,
            additional_types=("track",),
        )
        items.extend(results.get("items") or [])
        while results.get("next"):
            results = sp.next(results)
            if not results:
                break
            items.extend(results.get("items") or [])
    except (SpotifyException, requests.RequestException) as e:
        raise _translate_error(sp, e, "playlist tracks", playlist_id=playlist_id) from e

    if not items:
        raise FetchError("No tracks found in the playlist", meta={"playlist_id": playlist_id})

    tracks = [
        Track(id=item["track"]["id"], popularity=int(item["track"].get("popularity") or 0))
        for item in items
        if item and item.get("track") and item["track"].get("id")
    ]
    if not tracks:
        raise FetchError("Playlist has no usable tracks", meta={"playlist_id": playlist_id})

    logger.debug(f"[Spotify] playlist {playlist_id}: {len(tracks)}/{len(items)} usable tracks")
    return tracks


def get_playlist_info(sp: spotipy.Spotify, playlist_id: str) -> PlaylistInfo:
    try:
        playlist = sp.playlist(playlist_id, fields="id,name,images")
    except (SpotifyException, requests.RequestException) as e:
        raise _translate_error(sp, e, "playlist info", playlist_id=playlist_id) from e

    if not playlist:
        raise FetchError("Empty playlist info response", meta={"playlist_id": playlist_id})

    name = unicodedata.normalize("NFC", playlist.get("name") or "")
    images = playlist.get("images") or []
    image_url = ""
    if images and images[0]:
        image_url = images[0].get("url") or ""
    return PlaylistInfo(id=playlist.get("id") or playlist_id, name=name, image_url=image_url)


# =========================
# Audio features
# =========================


def _backoff_delay(attempt: int, retry_after: float | None) -> float:
    if retry_after is not None:
        return retry_after
    return min(METRIC_BACKOFF_MAX_S, METRIC_BACKOFF_BASE_S * (2 ** attempt))


def _fetch_feature_batch(
    sp: spotipy.Spotify,
    batch: List[str],
    retries: int,
    sleep: Callable[[float], None],
) -> List[Dict[str, Any] | None]:
    attempt = 0
    while True:
        try:
            return sp.audio_features(batch) or []
        except (SpotifyException, requests.RequestException) as e:
            err = _translate_error(sp, e, "audio features", batch_size=len(batch))
            if not isinstance(err, RateLimited) or attempt >= retries:
                raise err from e
            delay = _backoff_delay(attempt, err.retry_after)
            if delay > METRIC_BACKOFF_MAX_S:
                raise err from e
            attempt += 1
            logger.warning(f"[Spotify] audio features rate limited; retry {attempt}/{retries} in {delay:.1f}s")
            sleep(delay)


def get_audio_features(
    sp: spotipy.Spotify,
    track_ids: Iterable[str],
    retries: int = METRIC_RATE_LIMIT_RETRIES,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Dict[str, Any]]:
    """
    Fetch audio-feature records for the given tracks.

    Invalid ids are filtered out first; the rest are requested in batches of
    AUDIO_FEATURES_BATCH_SIZE. ``null`` records (unknown tracks) are dropped.
    With ``retries`` > 0 a 429 is retried with bounded exponential backoff
    (or the server's Retry-After); otherwise RateLimited is raised at once.
    """
    valid = [t for t in track_ids if is_valid_spotify_id(t)]
    if not valid:
        raise FetchError("No valid track IDs to fetch audio features for")

    records: List[Dict[str, Any]] = []
    for start in range(0, len(valid), AUDIO_FEATURES_BATCH_SIZE):
        batch = valid[start:start + AUDIO_FEATURES_BATCH_SIZE]
        records.extend(r for r in _fetch_feature_batch(sp, batch, retries, sleep) if r)

    if not records:
        raise FetchError("Spotify returned no audio features", meta={"requested": len(valid)})
    return records
