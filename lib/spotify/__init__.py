"""
Spotify Web API access (client-credentials only).

Public API:
  - get_token_provider() -> SpotifyTokenProvider
  - get_spotify_client(provider) -> spotipy.Spotify
  - get_playlist_tracks / get_playlist_info / get_audio_features
"""
from lib.spotify.auth import SpotifyTokenProvider, get_token_provider, reset_token_provider
from lib.spotify.client import get_spotify_client
from lib.spotify.errors import AuthError, BattleError, FetchError, RateLimited, ValidationError
from lib.spotify.fetcher import (
    get_audio_features,
    get_playlist_info,
    get_playlist_tracks,
    is_valid_spotify_id,
)

__all__ = [
    "SpotifyTokenProvider",
    "get_token_provider",
    "reset_token_provider",
    "get_spotify_client",
    "AuthError",
    "BattleError",
    "FetchError",
    "RateLimited",
    "ValidationError",
    "get_audio_features",
    "get_playlist_info",
    "get_playlist_tracks",
    "is_valid_spotify_id",
]
