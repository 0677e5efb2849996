"""
Session Supervisor Module
Owns the lifecycle of one mailbox connection

State machine (no terminal state except on unrecoverable auth failure):

    CONNECTING -> AUTHENTICATING -> WATCHING
        WATCHING --auth error, refreshable--> REAUTHENTICATING -> CONNECTING
        WATCHING --auth error, password mode--> HALTED
        WATCHING --any other error / server close--> RECONNECTING -> CONNECTING

PATTERN RECOGNITION: Each state is a handler method that performs its
blocking work and returns the next state, so the whole lifecycle reads as
one loop instead of a chain of nested callbacks. Suspension points (connect,
login, IDLE, token refresh, backoff) are plain blocking calls on this
supervisor's own thread and never hold up another account.

MAINTENANCE WISDOM: A broken session is never repaired. Every pass through
CONNECTING builds a brand-new MailSession from the factory and the old one
is closed and dropped.
"""

import logging
import threading
from dataclasses import replace
from enum import Enum
from typing import Callable, Optional

from .errors import AuthError, MailConnectionError
from .mail_session import MailSession
from .mailbox_watcher import MailboxWatcher
from .models import Account, OAuth2Credentials
from .token_refresher import TokenRefresher
from ..utils.config import ImapConfig
from ..utils.metrics import Metrics
from ..utils.sanitization import redact_email


class SupervisorState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    WATCHING = "watching"
    REAUTHENTICATING = "reauthenticating"
    RECONNECTING = "reconnecting"
    HALTED = "halted"


SessionFactory = Callable[[Account, ImapConfig], MailSession]


def default_session_factory(account: Account, config: ImapConfig) -> MailSession:
    return MailSession(account, config)


class SessionSupervisor:
    """Keeps one account's mailbox watched until the process exits"""

    def __init__(
        self,
        account: Account,
        imap_config: ImapConfig,
        watcher: MailboxWatcher,
        refresher: Optional[TokenRefresher] = None,
        reconnect_delay: float = 10,
        session_factory: SessionFactory = default_session_factory,
        metrics: Optional[Metrics] = None
    ):
        """
        Args:
            account: Account to supervise
            imap_config: Server and mailbox settings
            watcher: Runs extraction passes on the open session
            refresher: Token refresher (required for OAuth2 accounts)
            reconnect_delay: Constant backoff before each reconnect (seconds)
            session_factory: Builds a fresh MailSession per connection attempt
            metrics: Shared counters (optional)
        """
        if account.refreshable and refresher is None:
            raise ValueError("OAuth2 accounts need a TokenRefresher")

        self.account = account
        self.imap_config = imap_config
        self.watcher = watcher
        self.refresher = refresher
        self.reconnect_delay = reconnect_delay
        self.session_factory = session_factory
        self.metrics = metrics

        self.state = SupervisorState.CONNECTING
        self.session: Optional[MailSession] = None
        self.reconnect_attempts = 0
        self.last_error: Optional[Exception] = None

        # Set when the server rejected the current access token
        self._needs_refresh = False
        # Set by a refresh, cleared once a session reaches WATCHING
        self._refreshed_since_watch = False

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.label = redact_email(account.email)
        self.logger = logging.getLogger(f"SessionSupervisor.{self.label}")

        self._handlers = {
            SupervisorState.CONNECTING: self._handle_connecting,
            SupervisorState.AUTHENTICATING: self._handle_authenticating,
            SupervisorState.WATCHING: self._handle_watching,
            SupervisorState.REAUTHENTICATING: self._handle_reauthenticating,
            SupervisorState.RECONNECTING: self._handle_reconnecting,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> threading.Thread:
        """Run the state machine on a daemon thread"""
        self._thread = threading.Thread(
            target=self.run,
            name=f"supervisor-{self.label}",
            daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Ask the supervisor to exit at its next suspension point"""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        """Drive the state machine until halted or stopped"""
        self.logger.info(f"Supervisor started ({self.account.mode.value})")

        while not self.stopped and self.state is not SupervisorState.HALTED:
            handler = self._handlers[self.state]
            try:
                next_state = handler()
            except Exception as e:
                # Unexpected failure inside a handler: treat like a connection error
                self.last_error = e
                if self.metrics:
                    self.metrics.record_error("supervisor")
                self.logger.error(f"Unexpected error in {self.state.value}: {e}", exc_info=True)
                next_state = SupervisorState.RECONNECTING
            self._transition(next_state)

        self._close_session()
        self.logger.info(f"Supervisor exited in state {self.state.value}")

    def _transition(self, new_state: SupervisorState) -> None:
        if new_state is not self.state:
            self.logger.info(f"state -> {new_state.value}")
        self.state = new_state

    def _close_session(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def _refresh_access_token(self) -> None:
        """
        Request one fresh access token and install it.

        Raises:
            AuthError: The grant was rejected
            MailConnectionError: The provider was unreachable
        """
        credentials = self.account.credentials
        self.logger.info("Refreshing access token")
        token = self.refresher.refresh(credentials)
        self.account = replace(self.account, credentials=credentials.with_access_token(token))
        self._needs_refresh = False
        self._refreshed_since_watch = True

    def _access_token(self) -> Optional[str]:
        """Current access token for OAuth2 accounts, refreshing when missing or stale"""
        credentials = self.account.credentials
        if not isinstance(credentials, OAuth2Credentials):
            return None
        if self._needs_refresh or not credentials.has_valid_access_token():
            self._refresh_access_token()
        return self.account.credentials.access_token

    def _on_auth_failure(self, error: AuthError) -> SupervisorState:
        self.last_error = error
        if self.metrics:
            self.metrics.record_error("auth")

        if not self.account.refreshable:
            self.logger.error(
                f"Authentication failed and password credentials cannot be refreshed; "
                f"halting: {error}"
            )
            return SupervisorState.HALTED

        self._needs_refresh = True
        if self._refreshed_since_watch:
            # A token fresh from the provider was rejected: back off before trying again
            self.logger.warning(f"Freshly refreshed token rejected: {error}")
            return SupervisorState.RECONNECTING

        self.logger.warning(f"Authentication error: {error}")
        return SupervisorState.REAUTHENTICATING

    def _on_connection_error(self, error: MailConnectionError) -> SupervisorState:
        self.last_error = error
        if self.metrics:
            self.metrics.record_error("connection")
        self.logger.error(f"IMAP error: {error}")
        return SupervisorState.RECONNECTING

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    def _handle_connecting(self) -> SupervisorState:
        self._close_session()
        self.session = self.session_factory(self.account, self.imap_config)
        try:
            self.session.connect()
        except AuthError as e:
            return self._on_auth_failure(e)
        except MailConnectionError as e:
            return self._on_connection_error(e)
        return SupervisorState.AUTHENTICATING

    def _handle_authenticating(self) -> SupervisorState:
        try:
            access_token = self._access_token()
        except AuthError as e:
            self.last_error = e
            if self.metrics:
                self.metrics.record_error("auth")
            self.logger.error(f"Token refresh failed; halting: {e}")
            return SupervisorState.HALTED
        except MailConnectionError as e:
            return self._on_connection_error(e)

        try:
            self.session.authenticate(access_token)
            self.session.open_mailbox(readonly=False)
        except AuthError as e:
            return self._on_auth_failure(e)
        except MailConnectionError as e:
            return self._on_connection_error(e)
        return SupervisorState.WATCHING

    def _handle_watching(self) -> SupervisorState:
        self.reconnect_attempts = 0
        self._refreshed_since_watch = False

        try:
            self.watcher.on_ready(self.session)
            while not self.stopped:
                if self.session.wait_for_mail(self.imap_config.idle_timeout):
                    self.logger.debug("New mail notification")
                else:
                    self.logger.debug("IDLE keepalive")
                if self.stopped:
                    break
                # One UNSEEN search per IDLE cycle also picks up missed pushes
                self.watcher.on_ready(self.session)
        except AuthError as e:
            return self._on_auth_failure(e)
        except MailConnectionError as e:
            return self._on_connection_error(e)
        return SupervisorState.WATCHING

    def _handle_reauthenticating(self) -> SupervisorState:
        self._close_session()
        self.logger.info("Reauthenticating")
        try:
            self._refresh_access_token()
        except AuthError as e:
            self.last_error = e
            if self.metrics:
                self.metrics.record_error("auth")
            self.logger.error(f"Re-auth failed; halting: {e}")
            return SupervisorState.HALTED
        except MailConnectionError as e:
            return self._on_connection_error(e)

        if self.metrics:
            self.metrics.record_reauthentication()
        return SupervisorState.CONNECTING

    def _handle_reconnecting(self) -> SupervisorState:
        self._close_session()
        self.reconnect_attempts += 1
        if self.metrics:
            self.metrics.record_reconnect()
        self.logger.info(
            f"Reconnecting in {self.reconnect_delay}s (attempt {self.reconnect_attempts})"
        )
        # Event.wait doubles as an interruptible sleep
        if self._stop_event.wait(self.reconnect_delay):
            return SupervisorState.RECONNECTING
        return SupervisorState.CONNECTING
