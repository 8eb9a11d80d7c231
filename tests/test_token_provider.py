import base64
import threading
import time
import unittest
from unittest import mock

import requests

from lib.spotify.auth import TOKEN_EXPIRY_MARGIN_S, TOKEN_URL, SpotifyTokenProvider, get_token_provider, reset_token_provider
from lib.spotify.errors import AuthError


def _response(status_code=200, payload=None):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    return resp


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TokenProviderTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.session = mock.Mock()
        self.session.post.return_value = _response(payload={"access_token": "tok-1", "expires_in": 3600})
        self.provider = SpotifyTokenProvider("id", "secret", clock=self.clock, session=self.session)

    def test_first_call_exchanges_client_credentials(self):
        self.assertEqual(self.provider.get_token(), "tok-1")
        self.session.post.assert_called_once()
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], TOKEN_URL)
        self.assertEqual(kwargs["data"], {"grant_type": "client_credentials"})
        expected = base64.b64encode(b"id:secret").decode("utf-8")
        self.assertEqual(kwargs["headers"]["Authorization"], f"Basic {expected}")
        self.assertIn("timeout", kwargs)
        self.assertEqual(self.provider.expires_at, 1000.0 + 3600)

    def test_reuses_token_within_validity_window(self):
        self.provider.get_token()
        self.clock.now += 3600 - TOKEN_EXPIRY_MARGIN_S - 1
        self.assertEqual(self.provider.get_token(), "tok-1")
        self.assertEqual(self.session.post.call_count, 1)

    def test_refreshes_once_after_expiry(self):
        self.provider.get_token()
        self.session.post.return_value = _response(payload={"access_token": "tok-2", "expires_in": 60})
        self.clock.now += 3600  # expiry must be strictly in the future to reuse
        self.assertEqual(self.provider.get_token(), "tok-2")
        self.assertEqual(self.provider.get_token(), "tok-2")
        self.assertEqual(self.session.post.call_count, 2)
        self.assertEqual(self.provider.expires_at, self.clock.now + 60)

    def test_refreshes_token_about_to_expire(self):
        self.provider.get_token()
        self.session.post.return_value = _response(payload={"access_token": "tok-2", "expires_in": 3600})
        self.clock.now += 3600 - TOKEN_EXPIRY_MARGIN_S + 1
        self.assertEqual(self.provider.get_token(), "tok-2")
        self.assertEqual(self.session.post.call_count, 2)

    def test_spotipy_auth_manager_interface(self):
        self.assertEqual(self.provider.get_access_token(as_dict=False), "tok-1")
        as_dict = self.provider.get_access_token(as_dict=True)
        self.assertEqual(as_dict["access_token"], "tok-1")

    def test_invalidate_forces_new_exchange(self):
        self.provider.get_token()
        self.provider.invalidate()
        self.provider.get_token()
        self.assertEqual(self.session.post.call_count, 2)

    def test_rejected_credentials_raise_auth_error(self):
        self.session.post.return_value = _response(400, {"error": "invalid_client"})
        with self.assertRaises(AuthError) as ctx:
            self.provider.get_token()
        self.assertEqual(ctx.exception.meta["error"], "invalid_client")

    def test_unreachable_endpoint_raises_auth_error(self):
        self.session.post.side_effect = requests.ConnectionError("boom")
        with self.assertRaises(AuthError):
            self.provider.get_token()

    def test_malformed_body_raises_auth_error(self):
        self.session.post.return_value = _response(payload={"token_type": "Bearer"})
        with self.assertRaises(AuthError):
            self.provider.get_token()

    def test_concurrent_callers_share_one_refresh(self):
        def slow_post(*args, **kwargs):
            time.sleep(0.05)
            return _response(payload={"access_token": "tok-1", "expires_in": 3600})

        self.session.post.side_effect = slow_post
        results = []
        threads = [threading.Thread(target=lambda: results.append(self.provider.get_token())) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results, ["tok-1"] * 8)
        self.assertEqual(self.session.post.call_count, 1)


class ProcessProviderTests(unittest.TestCase):
    def tearDown(self):
        reset_token_provider()

    def test_missing_credentials(self):
        reset_token_provider()
        with mock.patch.dict("os.environ", {"SPOTIFY_CLIENT_ID": "", "SPOTIFY_CLIENT_SECRET": ""}):
            with self.assertRaises(AuthError):
                get_token_provider()

    def test_provider_is_shared(self):
        reset_token_provider()
        with mock.patch.dict("os.environ", {"SPOTIFY_CLIENT_ID": "a", "SPOTIFY_CLIENT_SECRET": "b"}):
            self.assertIs(get_token_provider(), get_token_provider())


if __name__ == "__main__":
    unittest.main()
