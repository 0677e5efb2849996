"""
Mail Session Module
One authenticated IMAP connection to one mailbox

PATTERN RECOGNITION: This follows the Adapter pattern. It wraps
imapclient.IMAPClient behind the handful of operations the supervisor
needs, and translates every library or socket exception into one of two
relay errors:

- AuthError: the server rejected the credential (LoginError, or an IMAP
  error carrying an authentication-failure marker)
- MailConnectionError: anything else (socket loss, TLS failure, abort, BYE)

A session is single-use: after any error it is closed and replaced, never
repaired.
"""

import logging
from typing import Callable, List, Optional

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError, LoginError

from .errors import AuthError, MailConnectionError, OTPRelayError
from .models import Account, OAuth2Credentials, PasswordCredentials, RawMessage
from ..utils.config import ImapConfig
from ..utils.sanitization import redact_email, sanitize_for_logging
from ..utils.security_validators import apply_ssl_overrides, create_secure_ssl_context

AUTH_FAILURE_MARKERS = (
    "authenticationfailed",
    "authentication failed",
    "invalid credentials",
    "login failed",
    "[auth]",
    "[authorizationfailed]",
)

NEW_MAIL_RESPONSES = (b"EXISTS", b"RECENT")

FETCH_BODY = b"BODY[]"


def classify_error(exc: BaseException) -> OTPRelayError:
    """
    Map a library or socket exception onto the relay error taxonomy.

    Args:
        exc: Exception raised while talking to the mail server

    Returns:
        AuthError or MailConnectionError wrapping the original message
    """
    if isinstance(exc, (AuthError, MailConnectionError)):
        return exc

    message = sanitize_for_logging(str(exc))
    if isinstance(exc, LoginError):
        return AuthError(message)

    if isinstance(exc, IMAPClientError):
        lowered = message.lower()
        if any(marker in lowered for marker in AUTH_FAILURE_MARKERS):
            return AuthError(message)

    return MailConnectionError(f"{type(exc).__name__}: {message}")


class MailSession:
    """
    IMAP session for a single account

    MAINTENANCE WISDOM: Keep protocol details here and lifecycle decisions in
    the SessionSupervisor. That split lets the supervisor's state machine be
    tested with a fake session and no server.
    """

    def __init__(
        self,
        account: Account,
        config: ImapConfig,
        client_factory: Callable[..., IMAPClient] = IMAPClient
    ):
        """
        Args:
            account: Account this session belongs to
            config: Server and mailbox settings
            client_factory: Builds the underlying IMAPClient (patched in tests)
        """
        self.account = account
        self.config = config
        self.client_factory = client_factory
        self.client: Optional[IMAPClient] = None
        self.logger = logging.getLogger(f"MailSession.{redact_email(account.email)}")

    def _require_client(self) -> IMAPClient:
        if self.client is None:
            raise MailConnectionError("Session is not connected")
        return self.client

    def _call(self, operation: str, func: Callable, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (IMAPClientError, OSError, EOFError) as e:
            error = classify_error(e)
            self.logger.debug(f"{operation} failed: {error}")
            raise error from e

    def connect(self) -> None:
        """Open a TLS connection to the mail server"""
        self.logger.info(f"Connecting to {self.config.server}:{self.config.port}")

        context = create_secure_ssl_context()
        apply_ssl_overrides(context, self.config.verify_ssl, self.logger.warning)

        self.client = self._call(
            "connect",
            self.client_factory,
            self.config.server,
            port=self.config.port,
            ssl=True,
            ssl_context=context,
            timeout=self.config.timeout
        )

    def authenticate(self, access_token: Optional[str] = None) -> None:
        """
        Present the account's credential.

        Args:
            access_token: Current OAuth2 access token (OAuth2 accounts only)

        Raises:
            AuthError: If the server rejects the credential
        """
        client = self._require_client()
        credentials = self.account.credentials

        if isinstance(credentials, PasswordCredentials):
            self._call("login", client.login, self.account.email, credentials.app_password)
        elif isinstance(credentials, OAuth2Credentials):
            if not access_token:
                raise AuthError("No access token available for XOAUTH2 login")
            self._call("oauth2_login", client.oauth2_login, self.account.email, access_token)
        else:
            raise TypeError(f"Unsupported credential type: {type(credentials).__name__}")

        self.logger.info(f"Authenticated as {redact_email(self.account.email)}")

    def open_mailbox(self, readonly: bool = False) -> int:
        """
        Select the configured mailbox.

        Read-write mode is required for fetches to mark messages seen.

        Returns:
            Number of messages in the mailbox
        """
        client = self._require_client()
        info = self._call("select_folder", client.select_folder, self.config.mailbox, readonly=readonly)
        total = int(info.get(b"EXISTS", 0)) if isinstance(info, dict) else 0
        self.logger.info(
            f"Watching {sanitize_for_logging(self.config.mailbox)} (total {total})"
        )
        return total

    def search_unseen(self) -> List[int]:
        client = self._require_client()
        return list(self._call("search", client.search, ["UNSEEN"]))

    def fetch(self, uids: List[int]) -> List[RawMessage]:
        """
        Fetch full bodies of *uids* in one round trip.

        A non-peek BODY[] fetch sets the \\Seen flag server-side as a side
        effect, whether or not the caller later manages to extract anything.
        """
        if not uids:
            return []

        client = self._require_client()
        response = self._call("fetch", client.fetch, uids, [FETCH_BODY])

        messages = []
        for uid in sorted(response):
            data = response[uid].get(FETCH_BODY)
            if isinstance(data, bytes):
                messages.append(RawMessage(uid=uid, data=data))
            else:
                self.logger.warning(f"Unexpected payload type for message {uid}: {type(data)}")
        return messages

    def _idle_once(self, client: IMAPClient, timeout: int) -> list:
        client.idle()
        responses = list(client.idle_check(timeout=timeout))
        # Pushes that arrive between the check and DONE come back from idle_done
        _, done_responses = client.idle_done()
        return responses + list(done_responses)

    def wait_for_mail(self, timeout: int) -> bool:
        """
        Block in IDLE until the server pushes a notification or *timeout* passes.

        Returns:
            True if new mail was announced, False on a quiet timeout

        Raises:
            MailConnectionError: If the server closes the session (BYE)
        """
        client = self._require_client()
        responses = self._call("idle", self._idle_once, client, timeout)

        new_mail = False
        for response in responses:
            if not isinstance(response, tuple) or not response:
                continue
            if response[0] == b"BYE":
                raise MailConnectionError("Server closed the session (BYE)")
            if len(response) > 1 and response[1] in NEW_MAIL_RESPONSES:
                new_mail = True
        return new_mail

    def close(self) -> None:
        """Log out, tolerating a connection that is already gone"""
        if self.client is None:
            return

        try:
            self.client.logout()
            self.logger.info("Disconnected from IMAP server")
        except (IMAPClientError, OSError, EOFError):
            self.logger.debug("Connection was already closed or logout failed")
        finally:
            self.client = None
