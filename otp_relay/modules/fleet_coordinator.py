"""
Fleet Coordinator Module
Starts one independent session supervisor per account

No retries happen at this level. Once a supervisor is launched, every
failure of that account is the supervisor's concern; an account that cannot
be launched is skipped without affecting the rest of the fleet.
"""

import logging
from typing import Iterable, List, Optional

from .destination_store import DestinationStore
from .errors import ConfigError
from .mailbox_watcher import MailboxWatcher
from .message_extractor import MessageExtractor
from .models import Account, OAuth2Credentials, PasswordCredentials
from .recipient_router import RecipientRouter
from .session_supervisor import SessionFactory, SessionSupervisor, default_session_factory
from .token_refresher import TokenRefresher
from ..utils.config import ImapConfig
from ..utils.metrics import Metrics
from ..utils.sanitization import redact_email

OAUTH2_REQUIRED_FIELDS = ("client_id", "client_secret", "redirect_uri", "refresh_token")


def validate_account(account: Account) -> None:
    """
    Check that *account* carries complete credential material.

    Raises:
        ConfigError: If a required field is missing or empty
    """
    if not account.email or "@" not in account.email:
        raise ConfigError(f"invalid account address {account.email!r}")

    label = redact_email(account.email)
    credentials = account.credentials

    if isinstance(credentials, PasswordCredentials):
        if not credentials.app_password:
            raise ConfigError(f"{label}: missing password")
    elif isinstance(credentials, OAuth2Credentials):
        for field_name in OAUTH2_REQUIRED_FIELDS:
            if not getattr(credentials, field_name):
                raise ConfigError(f"{label}: missing {field_name}")
    else:
        raise ConfigError(f"{label}: unsupported credential type {type(credentials).__name__}")


class FleetCoordinator:
    """Builds the per-account pipeline and launches its supervisor"""

    def __init__(
        self,
        imap_config: ImapConfig,
        store: DestinationStore,
        refresher: Optional[TokenRefresher] = None,
        reconnect_delay: float = 10,
        metrics: Optional[Metrics] = None,
        session_factory: SessionFactory = default_session_factory
    ):
        """
        Args:
            imap_config: Server and mailbox settings shared by all accounts
            store: Destination store shared by every router
            refresher: Token refresher shared by OAuth2 accounts
            reconnect_delay: Constant backoff passed to each supervisor
            metrics: Shared counters (optional)
            session_factory: Builds MailSessions (replaced in tests)
        """
        self.imap_config = imap_config
        self.store = store
        self.refresher = refresher
        self.reconnect_delay = reconnect_delay
        self.metrics = metrics
        self.session_factory = session_factory
        self.supervisors: List[SessionSupervisor] = []
        self.logger = logging.getLogger("FleetCoordinator")

    def build_supervisor(self, account: Account) -> SessionSupervisor:
        """Wire extractor, router and watcher for one account"""
        label = redact_email(account.email)
        extractor = MessageExtractor(account_label=label, metrics=self.metrics)
        router = RecipientRouter(self.store, account_label=label, metrics=self.metrics)
        watcher = MailboxWatcher(extractor, router, account_label=label, metrics=self.metrics)
        return SessionSupervisor(
            account,
            self.imap_config,
            watcher,
            refresher=self.refresher,
            reconnect_delay=self.reconnect_delay,
            session_factory=self.session_factory,
            metrics=self.metrics
        )

    def start(self, accounts: Iterable[Account]) -> List[SessionSupervisor]:
        """
        Launch one supervisor per valid account.

        Returns as soon as every supervisor thread has been started.

        Returns:
            Supervisors started by this call
        """
        started = []
        seen = {supervisor.account.email.lower() for supervisor in self.supervisors}

        for account in accounts:
            try:
                validate_account(account)
                if account.refreshable and self.refresher is None:
                    raise ConfigError(f"{redact_email(account.email)}: no token refresher configured")
            except ConfigError as e:
                self.logger.warning(f"Skipping account: {e}")
                continue

            address = account.email.lower()
            if address in seen:
                self.logger.warning(f"Skipping duplicate account {redact_email(account.email)}")
                continue
            seen.add(address)

            supervisor = self.build_supervisor(account)
            supervisor.start()
            started.append(supervisor)
            self.logger.info(
                f"Started supervisor for {redact_email(account.email)} ({account.mode.value})"
            )

        self.supervisors.extend(started)
        self.logger.info(f"Fleet running: {len(self.supervisors)} supervisors")
        return started

    def stop(self) -> None:
        """Signal every supervisor to exit"""
        for supervisor in self.supervisors:
            supervisor.stop()

    def join(self, timeout: Optional[float] = None) -> None:
        for supervisor in self.supervisors:
            supervisor.join(timeout)

    def status(self) -> dict:
        """Current state of every supervisor keyed by redacted address"""
        return {supervisor.label: supervisor.state.value for supervisor in self.supervisors}
