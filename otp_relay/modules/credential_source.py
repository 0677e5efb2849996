"""
Credential Source Module
Loads per-account credential material from the database or a local JSON file

Account entries are keyed by the mailbox address with dots encoded as
commas. Two entry shapes are accepted:

    {"creds": {"client_id": ..., "client_secret": ..., "redirect_uris": [...]},
     "tokens": {"refresh_token": ..., "access_token": ..., "expiry_date": ...}}

    {"password": "<app password>"}

An explicit "mode" field ("password" or "oauth2") wins over shape detection.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .destination_store import DestinationStore, decode_key
from .errors import ConfigError, StoreError
from .models import Account, AuthMode, OAuth2Credentials, PasswordCredentials
from ..utils.sanitization import redact_email

DEFAULT_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"

logger = logging.getLogger(__name__)


def _require(entry: Mapping[str, Any], field: str, email: str) -> str:
    value = entry.get(field)
    if not value or not isinstance(value, str):
        raise ConfigError(f"{redact_email(email)}: missing {field}")
    return value


def _parse_expiry(value: Any) -> Optional[datetime]:
    """Token expiry is stored as epoch milliseconds"""
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _detect_mode(entry: Mapping[str, Any]) -> AuthMode:
    explicit = entry.get("mode")
    if explicit:
        try:
            return AuthMode(str(explicit).lower())
        except ValueError:
            raise ConfigError(f"unknown auth mode {explicit!r}")
    if "creds" in entry or "tokens" in entry:
        return AuthMode.OAUTH2
    if "password" in entry or "app_password" in entry:
        return AuthMode.PASSWORD
    raise ConfigError("entry has neither OAuth2 creds/tokens nor a password")


def parse_account(
    key: str,
    entry: Any,
    default_redirect_uri: str = DEFAULT_REDIRECT_URI
) -> Account:
    """
    Build an Account from one credential-source entry.

    Args:
        key: Encoded account key (dots stored as commas)
        entry: Raw entry mapping
        default_redirect_uri: Used when the entry lists no redirect URI

    Raises:
        ConfigError: If the entry is malformed or incomplete
    """
    email = decode_key(key)
    if "@" not in email:
        raise ConfigError(f"account key {key!r} is not an email address")
    if not isinstance(entry, Mapping):
        raise ConfigError(f"{redact_email(email)}: entry is not a mapping")

    mode = _detect_mode(entry)

    if mode is AuthMode.PASSWORD:
        password = entry.get("app_password") or entry.get("password")
        if not password or not isinstance(password, str):
            raise ConfigError(f"{redact_email(email)}: missing password")
        return Account(email=email, credentials=PasswordCredentials(app_password=password))

    creds = entry.get("creds")
    tokens = entry.get("tokens")
    if not isinstance(creds, Mapping) or not isinstance(tokens, Mapping):
        raise ConfigError(f"{redact_email(email)}: missing creds or tokens")

    # Google client secret files nest everything under "installed" or "web"
    creds = creds.get("installed") or creds.get("web") or creds

    redirect_uris = creds.get("redirect_uris") or []
    if isinstance(redirect_uris, str):
        redirect_uris = [redirect_uris]

    return Account(
        email=email,
        credentials=OAuth2Credentials(
            client_id=_require(creds, "client_id", email),
            client_secret=_require(creds, "client_secret", email),
            redirect_uri=redirect_uris[0] if redirect_uris else default_redirect_uri,
            refresh_token=_require(tokens, "refresh_token", email),
            access_token=tokens.get("access_token") or None,
            expiry=_parse_expiry(tokens.get("expiry_date")),
        )
    )


def load_accounts(
    mapping: Optional[Mapping[str, Any]],
    default_redirect_uri: str = DEFAULT_REDIRECT_URI
) -> List[Account]:
    """
    Parse every entry of a credential mapping, skipping malformed ones.

    Raises:
        ConfigError: If the mapping holds no entries at all
    """
    if not mapping:
        raise ConfigError("No accounts found in credential source")

    accounts = []
    for key, entry in mapping.items():
        try:
            accounts.append(parse_account(key, entry, default_redirect_uri))
        except ConfigError as e:
            logger.warning(f"Skipping account entry: {e}")

    logger.info(f"Loaded {len(accounts)}/{len(mapping)} accounts")
    return accounts


class FirebaseCredentialSource:
    """Reads account entries from a database node"""

    def __init__(
        self,
        store: DestinationStore,
        path: str = "/gmailAccounts",
        default_redirect_uri: str = DEFAULT_REDIRECT_URI
    ):
        self.store = store
        self.path = path
        self.default_redirect_uri = default_redirect_uri

    def load(self) -> List[Account]:
        try:
            mapping = self.store.get(self.path)
        except StoreError as e:
            raise ConfigError(f"Cannot read accounts from {self.path}: {e}") from e
        return load_accounts(mapping, self.default_redirect_uri)


class JsonFileCredentialSource:
    """Reads account entries from a local JSON file with the same layout"""

    def __init__(self, path: str, default_redirect_uri: str = DEFAULT_REDIRECT_URI):
        self.path = Path(path)
        self.default_redirect_uri = default_redirect_uri

    def load(self) -> List[Account]:
        try:
            mapping: Dict[str, Any] = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigError(f"Cannot read accounts file {self.path}: {e}") from e
        if not isinstance(mapping, dict):
            raise ConfigError(f"Accounts file {self.path} must hold a JSON object")
        return load_accounts(mapping, self.default_redirect_uri)
