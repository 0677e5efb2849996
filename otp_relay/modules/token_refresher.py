"""
Token Refresher Module
Exchanges an OAuth2 refresh token for a short-lived access token

The refresher is stateless and never retries: a failure goes straight back
to the caller, which owns the retry/backoff policy.

PATTERN RECOGNITION: Failures are split by whether waiting can fix them.
A rejected grant (revoked or invalid refresh token) raises AuthError, since
retrying the same token will never succeed. A transport failure or a 5xx
from the provider raises MailConnectionError, so the caller treats it like
any other network hiccup and reconnects later.
"""

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import requests

from .errors import AuthError, MailConnectionError
from .models import AccessToken, OAuth2Credentials

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class TokenRefresher:
    """Refreshes OAuth2 access tokens against the provider's token endpoint"""

    def __init__(
        self,
        token_url: str = GOOGLE_TOKEN_URL,
        timeout: int = 10,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            token_url: OAuth2 token endpoint
            timeout: HTTP timeout in seconds
            session: Optional requests session (shared connection pool)
        """
        self.token_url = token_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger("TokenRefresher")

    def refresh(self, credentials: OAuth2Credentials) -> AccessToken:
        """
        Request a fresh access token.

        Args:
            credentials: OAuth2 client and refresh token material

        Returns:
            AccessToken with its expiry, when the provider reports one

        Raises:
            AuthError: The provider rejected the grant or returned no token
            MailConnectionError: The provider could not be reached
        """
        payload = {
            "grant_type": "refresh_token",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "refresh_token": credentials.refresh_token,
            "redirect_uri": credentials.redirect_uri,
        }

        try:
            response = self.session.post(self.token_url, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise MailConnectionError(f"Token endpoint unreachable: {e}") from e

        if response.status_code >= 500:
            raise MailConnectionError(f"Token endpoint returned {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code != 200:
            error_code = body.get("error", "unknown_error") if isinstance(body, dict) else "unknown_error"
            description = body.get("error_description", "") if isinstance(body, dict) else ""
            raise AuthError(
                f"Token refresh rejected ({response.status_code}): {error_code} {description}".strip()
            )

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise AuthError("Token endpoint response carried no access_token")

        expiry = None
        expires_in = body.get("expires_in")
        if expires_in is not None:
            try:
                expiry = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                self.logger.debug(f"Ignoring unparseable expires_in: {expires_in!r}")

        return AccessToken(token=access_token, expiry=expiry)


def build_xoauth2_string(user: str, access_token: str) -> str:
    """Raw SASL XOAUTH2 initial client response for *user*"""
    return f"user={user}\x01auth=Bearer {access_token}\x01\x01"


def encode_xoauth2(user: str, access_token: str) -> str:
    """
    Base64 form of the XOAUTH2 string, as sent on the wire.

    IMAPClient.oauth2_login builds the same blob internally; this is kept for
    clients that take the pre-encoded string.
    """
    raw = build_xoauth2_string(user, access_token).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")
