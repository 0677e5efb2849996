#!/usr/bin/env python3
"""
OTP Relay Service
Main orchestrator that wires the store, credential source and session fleet
"""

import sys
import logging
import threading
from pathlib import Path
from typing import List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from otp_relay.utils.config import Config
from otp_relay.utils.logging_utils import ColoredFormatter
from otp_relay.utils.metrics import Metrics
from otp_relay.utils.structured_logging import JSONFormatter
from otp_relay.modules.credential_source import FirebaseCredentialSource, JsonFileCredentialSource
from otp_relay.modules.destination_store import FirebaseStore, init_firebase_app
from otp_relay.modules.errors import ConfigError
from otp_relay.modules.fleet_coordinator import FleetCoordinator
from otp_relay.modules.health_server import HealthServer
from otp_relay.modules.models import Account
from otp_relay.modules.token_refresher import TokenRefresher


class OTPRelayService:
    """Main service orchestrator"""

    def __init__(self, config_file: str = ".env"):
        """
        Initialize service

        Args:
            config_file: Path to configuration file
        """
        # Load configuration
        self.config = Config(config_file)

        # Setup logging
        self._setup_logging()

        self.logger = logging.getLogger("OTPRelayService")
        self.logger.info("Initializing OTP Relay")

        self.metrics = Metrics()
        self.refresher = TokenRefresher(
            self.config.oauth.token_url,
            timeout=self.config.oauth.timeout
        )

        self.fleet: Optional[FleetCoordinator] = None
        self.health_server: Optional[HealthServer] = None
        self._shutdown = threading.Event()

    def _setup_logging(self):
        """Setup logging configuration"""
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

        # Create logs directory if needed
        log_path = Path(self.config.system.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Resolve log level with safe fallback
        level_name = str(self.config.system.log_level).upper()
        level = logging._nameToLevel.get(level_name, logging.INFO)

        file_handler = logging.FileHandler(self.config.system.log_file)
        console_handler = logging.StreamHandler(sys.stdout)

        if self.config.system.log_format == "json":
            file_handler.setFormatter(JSONFormatter())
            console_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(log_format))
            console_handler.setFormatter(ColoredFormatter(log_format))

        logging.basicConfig(level=level, handlers=[file_handler, console_handler])

        if level_name not in logging._nameToLevel:
            logging.getLogger("OTPRelayService").warning(
                "Invalid log level '%s'; defaulting to INFO",
                self.config.system.log_level
            )

    def _load_accounts(self) -> List[Account]:
        """
        Load accounts once at startup.

        Raises:
            ConfigError: If the credential source is unreadable or empty
        """
        store_config = self.config.store
        if store_config.accounts_file:
            self.logger.info(f"Loading accounts from {store_config.accounts_file}")
            source = JsonFileCredentialSource(
                store_config.accounts_file,
                self.config.oauth.default_redirect_uri
            )
        else:
            self.logger.info(f"Loading accounts from {store_config.accounts_path}")
            source = FirebaseCredentialSource(
                FirebaseStore(root="/"),
                store_config.accounts_path,
                self.config.oauth.default_redirect_uri
            )

        accounts = source.load()
        if not accounts:
            raise ConfigError("No usable accounts in credential source")
        return accounts

    def start(self):
        """Start the service"""
        try:
            # Validate configuration
            self.config.validate()

            self.logger.info("Starting OTP Relay")

            init_firebase_app(
                self.config.store.firebase_credentials,
                self.config.store.database_url
            )
            accounts = self._load_accounts()

            # One store client shared by every router
            otp_store = FirebaseStore(root=self.config.store.otp_path)

            self.fleet = FleetCoordinator(
                self.config.imap,
                otp_store,
                refresher=self.refresher,
                reconnect_delay=self.config.system.reconnect_delay,
                metrics=self.metrics
            )
            supervisors = self.fleet.start(accounts)
            if not supervisors:
                raise ConfigError("No account could be started")

            if self.config.system.health_enabled:
                self.health_server = HealthServer(
                    self.config.system.health_host,
                    self.config.system.health_port
                )
                self.health_server.start()

            self._wait_loop()

        except KeyboardInterrupt:
            self.logger.info("Received shutdown signal")
            self.stop()
        except ConfigError as e:
            self.logger.error(f"Configuration error: {e}")
            self.stop()
            sys.exit(1)
        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            self.stop()
            sys.exit(1)

    def _wait_loop(self):
        """Block the main thread, logging a metrics summary every interval"""
        interval = self.config.system.metrics_log_interval
        while not self._shutdown.wait(interval):
            self._log_status()

    def _log_status(self):
        summary = self.metrics.get_summary()
        self.logger.info(f"Metrics: {summary}")
        if self.fleet is not None:
            self.logger.info(f"Sessions: {self.fleet.status()}")

    def stop(self):
        """Stop the service"""
        self.logger.info("Stopping OTP Relay")
        self._shutdown.set()
        if self.fleet is not None:
            self.fleet.stop()
        if self.health_server is not None:
            self.health_server.stop()
        self._log_status()
        self.logger.info("Service stopped")


def main():
    """Main entry point"""
    from otp_relay.app_runner import AppRunner
    AppRunner().run()


if __name__ == "__main__":
    main()
