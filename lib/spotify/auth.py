"""
Spotify client-credentials トークンの取得とキャッシュ。

``SpotifyTokenProvider`` holds a single cached bearer token and refreshes it
on first use after expiry. Refresh is serialized: concurrent callers wait
for the in-flight exchange and reuse its token.

The provider also implements ``get_access_token(as_dict=False)`` so it can
be passed to ``spotipy.Spotify(auth_manager=...)``.
"""
from __future__ import annotations

import base64
import logging
import os
import threading
import time
from typing import Callable, Optional

import requests

from lib.spotify.errors import AuthError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_HTTP_TIMEOUT_S = float(os.getenv("SPOTIFY_HTTP_TIMEOUT_S", "10"))
# a token this close to expiry is refreshed instead of reused
TOKEN_EXPIRY_MARGIN_S = float(os.getenv("TOKEN_EXPIRY_MARGIN_S", "30"))


class SpotifyTokenProvider:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        timeout: float = SPOTIFY_HTTP_TIMEOUT_S,
        clock: Callable[[], float] = time.time,
        session: Optional[requests.Session] = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._clock = clock
        self._http = session or requests
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at: float = 0.0

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def _cached(self) -> str | None:
        if self._token and self._expires_at - TOKEN_EXPIRY_MARGIN_S > self._clock():
            return self._token
        return None

    def get_token(self) -> str:
        token = self._cached()
        if token:
            return token
        with self._lock:
            # another thread may have refreshed while we waited
            token = self._cached()
            if token:
                return token
            return self._refresh()

    def get_access_token(self, as_dict: bool = False):
        token = self.get_token()
        if as_dict:
            return {
                "access_token": token,
                "token_type": "Bearer",
                "expires_at": int(self._expires_at),
            }
        return token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def _refresh(self) -> str:
        auth_string = f"{self._client_id}:{self._client_secret}"
        auth_base64 = base64.b64encode(auth_string.encode("utf-8")).decode("utf-8")
        headers = {
            "Authorization": f"Basic {auth_base64}",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        data = {"grant_type": "client_credentials"}

        try:
            response = self._http.post(TOKEN_URL, headers=headers, data=data, timeout=self._timeout)
        except requests.RequestException as e:
            logger.error(f"[Auth] token request failed: {e.__class__.__name__}")
            raise AuthError(f"Token endpoint unreachable: {e}") from e

        if response.status_code != 200:
            error_code = None
            try:
                error_code = response.json().get("error")
            except ValueError:
                pass
            logger.error(f"[Auth] token request rejected status={response.status_code} error={error_code}")
            raise AuthError(
                f"Token endpoint rejected client credentials ({response.status_code})",
                meta={"status": response.status_code, "error": error_code},
            )

        try:
            payload = response.json()
            token = payload["access_token"]
            expires_in = float(payload["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError("Malformed token response") from e

        self._token = token
        self._expires_at = self._clock() + expires_in
        logger.info(f"[Auth] new token issued, expires_in={int(expires_in)}s")
        return token


# Process-wide provider, created on first use
_provider: SpotifyTokenProvider | None = None
_provider_lock = threading.Lock()


def get_token_provider() -> SpotifyTokenProvider:
    """
    環境変数からクレデンシャルを読み込み、プロセス共通の provider を返す。

    必要な環境変数:
    - SPOTIFY_CLIENT_ID
    - SPOTIFY_CLIENT_SECRET
    """
    global _provider
    with _provider_lock:
        if _provider is None:
            client_id = os.getenv("SPOTIFY_CLIENT_ID")
            client_secret = os.getenv("SPOTIFY_CLIENT_SECRET")
            if not client_id or not client_secret:
                raise AuthError(
                    "Spotify client credentials are not set. "
                    "Please set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET."
                )
            _provider = SpotifyTokenProvider(client_id, client_secret)
        return _provider


def reset_token_provider() -> None:
    global _provider
    with _provider_lock:
        _provider = None
