"""Spotipy client wired to the process-wide token provider."""
from __future__ import annotations

import os

import requests
import spotipy
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from lib.spotify.auth import SPOTIFY_HTTP_TIMEOUT_S, SpotifyTokenProvider, get_token_provider

SPOTIFY_HTTP_RETRIES = int(os.getenv("SPOTIFY_HTTP_RETRIES", "2"))
SPOTIFY_HTTP_BACKOFF_S = float(os.getenv("SPOTIFY_HTTP_BACKOFF_S", "0.3"))

# Transport-level retries cover server errors only. 429 must reach the
# fetcher untouched, so Retry-After is ignored here as well.
RETRY_STATUS_CODES = (500, 502, 503, 504)


def build_http_session(retries: int = SPOTIFY_HTTP_RETRIES) -> requests.Session:
    """
    requests.Session with a urllib3 retry policy for 5xx.

    raise_on_status=False hands the last 5xx response back to spotipy, which
    reports it with its real status instead of a synthetic 429.
    """
    retry = Retry(
        total=retries,
        connect=None,
        read=False,
        status=retries,
        backoff_factor=SPOTIFY_HTTP_BACKOFF_S,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=frozenset(["GET", "POST"]),
        respect_retry_after_header=False,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def get_spotify_client(provider: SpotifyTokenProvider | None = None) -> spotipy.Spotify:
    """
    Spotipy クライアントを返す。Bearer トークンは provider から都度取得する。
    """
    auth_manager = provider or get_token_provider()
    return spotipy.Spotify(
        auth_manager=auth_manager,
        requests_session=build_http_session(),
        requests_timeout=SPOTIFY_HTTP_TIMEOUT_S,
    )
