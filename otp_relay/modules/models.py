"""
Relay Data Model
Accounts, credential material and the per-message records that flow through the pipeline
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class AuthMode(str, Enum):
    """How an account authenticates to its mailbox"""
    PASSWORD = "password"
    OAUTH2 = "oauth2"


@dataclass(frozen=True)
class PasswordCredentials:
    """Static app password; cannot be refreshed"""
    app_password: str


@dataclass(frozen=True)
class OAuth2Credentials:
    """
    OAuth2 client and token material

    Only access_token and expiry change over the process lifetime; they are
    replaced (never mutated) whenever the Token Refresher issues a new token.
    """
    client_id: str
    client_secret: str
    redirect_uri: str
    refresh_token: str
    access_token: Optional[str] = None
    expiry: Optional[datetime] = None

    def with_access_token(self, token: "AccessToken") -> "OAuth2Credentials":
        return replace(self, access_token=token.token, expiry=token.expiry)

    def has_valid_access_token(self, now: Optional[datetime] = None) -> bool:
        """True when an access token is present and not yet expired"""
        if not self.access_token or self.expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expiry > now


Credentials = Union[PasswordCredentials, OAuth2Credentials]


@dataclass(frozen=True)
class Account:
    """One mailbox identity and its credential material"""
    email: str
    credentials: Credentials

    @property
    def mode(self) -> AuthMode:
        if isinstance(self.credentials, PasswordCredentials):
            return AuthMode.PASSWORD
        if isinstance(self.credentials, OAuth2Credentials):
            return AuthMode.OAUTH2
        raise TypeError(f"Unknown credential type: {type(self.credentials).__name__}")

    @property
    def refreshable(self) -> bool:
        return self.mode is AuthMode.OAUTH2


@dataclass(frozen=True)
class AccessToken:
    """Short-lived access credential issued by the OAuth2 provider"""
    token: str
    expiry: Optional[datetime] = None


@dataclass(frozen=True)
class RawMessage:
    """Opaque bytes of one fetched mail item"""
    uid: int
    data: bytes


@dataclass(frozen=True)
class ParsedMessage:
    """
    Structured view of a RawMessage

    Either body may be empty: a message can lack a text or an HTML part.
    """
    recipient: str
    text: str = ""
    html: str = ""


@dataclass(frozen=True)
class ExtractionResult:
    """An OTP code and the recipient alias it belongs to"""
    alias: str
    discriminator: str
    code: str

    @property
    def routing_key(self) -> str:
        return f"{self.alias.lower()}/{self.discriminator}"
