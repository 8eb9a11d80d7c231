"""
Battle パイプラインの例外。

Every error carries a short user-facing message (shown in place of a
result) and an optional ``meta`` dict for server-side diagnostics.
"""
from __future__ import annotations


class BattleError(Exception):
    """Base class for failures that abort a playlist comparison."""

    user_message = "Something went wrong!"

    def __init__(self, message: str, meta: dict | None = None):
        super().__init__(message)
        self.meta = meta or {}


class AuthError(BattleError):
    """Client-credentials exchange failed or the credentials are missing."""

    user_message = "Error fetching playlist data!"


class FetchError(BattleError):
    """Spotify returned no usable data for a playlist or its tracks."""

    user_message = "Error fetching playlist data!"


class RateLimited(BattleError):
    """Spotify answered HTTP 429."""

    user_message = "Spotify is busy right now, try again in a moment!"

    def __init__(self, message: str, retry_after: float | None = None, meta: dict | None = None):
        super().__init__(message, meta)
        self.retry_after = retry_after


class ValidationError(BattleError):
    """Malformed user input, rejected before any network call."""

    def __init__(self, user_message: str, meta: dict | None = None):
        super().__init__(user_message, meta)
        self.user_message = user_message
