"""
Unit tests for the OAuth2 token refresher

All HTTP traffic goes through a mocked requests.Session.
"""

import base64
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

import requests

from otp_relay.modules.errors import AuthError, MailConnectionError
from otp_relay.modules.models import OAuth2Credentials
from otp_relay.modules.token_refresher import (
    GOOGLE_TOKEN_URL,
    TokenRefresher,
    build_xoauth2_string,
    encode_xoauth2,
)

CREDENTIALS = OAuth2Credentials(
    client_id="client-id",
    client_secret="client-secret",
    redirect_uri="urn:ietf:wg:oauth:2.0:oob",
    refresh_token="refresh-token"
)


def _response(status_code, body=None):
    response = MagicMock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


class TestTokenRefresher(unittest.TestCase):

    def setUp(self):
        self.http = MagicMock()
        self.refresher = TokenRefresher(timeout=5, session=self.http)

    def test_successful_refresh(self):
        self.http.post.return_value = _response(
            200, {"access_token": "ya29.token", "expires_in": 3599, "token_type": "Bearer"}
        )

        token = self.refresher.refresh(CREDENTIALS)

        self.assertEqual(token.token, "ya29.token")
        self.assertGreater(token.expiry, datetime.now(timezone.utc))
        self.http.post.assert_called_once_with(
            GOOGLE_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "client_id": "client-id",
                "client_secret": "client-secret",
                "refresh_token": "refresh-token",
                "redirect_uri": "urn:ietf:wg:oauth:2.0:oob",
            },
            timeout=5
        )

    def test_missing_expiry_is_allowed(self):
        self.http.post.return_value = _response(200, {"access_token": "ya29.token"})

        token = self.refresher.refresh(CREDENTIALS)

        self.assertIsNone(token.expiry)

    def test_invalid_grant_is_auth_error(self):
        self.http.post.return_value = _response(
            400, {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
        )

        with self.assertRaises(AuthError) as ctx:
            self.refresher.refresh(CREDENTIALS)
        self.assertIn("invalid_grant", str(ctx.exception))

    def test_unauthorized_client_without_body_is_auth_error(self):
        self.http.post.return_value = _response(401)

        with self.assertRaises(AuthError):
            self.refresher.refresh(CREDENTIALS)

    def test_response_without_token_is_auth_error(self):
        self.http.post.return_value = _response(200, {"token_type": "Bearer"})

        with self.assertRaises(AuthError):
            self.refresher.refresh(CREDENTIALS)

    def test_server_error_is_connection_error(self):
        self.http.post.return_value = _response(503, {"error": "backend_error"})

        with self.assertRaises(MailConnectionError):
            self.refresher.refresh(CREDENTIALS)

    def test_transport_failure_is_connection_error(self):
        self.http.post.side_effect = requests.ConnectionError("Name or service not known")

        with self.assertRaises(MailConnectionError):
            self.refresher.refresh(CREDENTIALS)

    def test_no_internal_retry(self):
        self.http.post.side_effect = requests.Timeout("read timed out")

        with self.assertRaises(MailConnectionError):
            self.refresher.refresh(CREDENTIALS)
        self.assertEqual(self.http.post.call_count, 1)


class TestXOAuth2(unittest.TestCase):

    def test_raw_string(self):
        self.assertEqual(
            build_xoauth2_string("user@gmail.com", "tok"),
            "user=user@gmail.com\x01auth=Bearer tok\x01\x01"
        )

    def test_base64_blob(self):
        blob = encode_xoauth2("user@gmail.com", "tok")
        self.assertEqual(
            base64.b64decode(blob),
            b"user=user@gmail.com\x01auth=Bearer tok\x01\x01"
        )


if __name__ == '__main__':
    unittest.main()
