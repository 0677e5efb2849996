"""
Configuration Management Module
Handles loading and validation of environment variables and settings
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from ..modules.errors import ConfigError


@dataclass
class ImapConfig:
    """Mail server and mailbox settings shared by all accounts"""
    server: str
    port: int
    mailbox: str
    timeout: int
    idle_timeout: int
    verify_ssl: bool


@dataclass
class StoreConfig:
    """Destination store and credential source locations"""
    firebase_credentials: Optional[str]
    database_url: Optional[str]
    accounts_path: str
    otp_path: str
    accounts_file: Optional[str]


@dataclass
class OAuthConfig:
    """OAuth2 token endpoint settings"""
    token_url: str
    timeout: int
    default_redirect_uri: str


@dataclass
class SystemConfig:
    """Configuration for system settings"""
    log_level: str
    log_file: str
    log_format: str
    reconnect_delay: int
    health_enabled: bool
    health_host: str
    health_port: int
    metrics_log_interval: int


class Config:
    """Main configuration class"""

    def __init__(self, env_file: str = ".env"):
        """
        Initialize configuration from environment file

        Args:
            env_file: Path to environment file (default: .env)
        """
        load_dotenv(env_file)

        self.imap = self._load_imap_config()
        self.store = self._load_store_config()
        self.oauth = self._load_oauth_config()
        self.system = self._load_system_config()

    def _load_imap_config(self) -> ImapConfig:
        return ImapConfig(
            server=os.getenv("IMAP_SERVER", "imap.gmail.com"),
            port=self._get_int("IMAP_PORT", 993),
            mailbox=os.getenv("IMAP_MAILBOX", "OTP"),
            timeout=self._get_int("IMAP_TIMEOUT", 30),
            idle_timeout=self._get_int("IDLE_TIMEOUT", 300),
            verify_ssl=self._get_bool("VERIFY_SSL", True)
        )

    def _load_store_config(self) -> StoreConfig:
        return StoreConfig(
            firebase_credentials=os.getenv("FIREBASE_CREDENTIALS") or None,
            database_url=os.getenv("FIREBASE_DATABASE_URL") or None,
            accounts_path=os.getenv("ACCOUNTS_PATH", "/gmailAccounts"),
            otp_path=os.getenv("OTP_PATH", "/OTP"),
            accounts_file=os.getenv("ACCOUNTS_FILE") or None
        )

    def _load_oauth_config(self) -> OAuthConfig:
        return OAuthConfig(
            token_url=os.getenv("OAUTH_TOKEN_URL", "https://oauth2.googleapis.com/token"),
            timeout=self._get_int("OAUTH_TIMEOUT", 10),
            default_redirect_uri=os.getenv(
                "OAUTH_DEFAULT_REDIRECT_URI", "urn:ietf:wg:oauth:2.0:oob"
            )
        )

    def _load_system_config(self) -> SystemConfig:
        return SystemConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "logs/otp_relay.log"),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
            reconnect_delay=self._get_int("RECONNECT_DELAY", 10),
            health_enabled=self._get_bool("HEALTH_ENABLED", True),
            health_host=os.getenv("HEALTH_HOST", "0.0.0.0"),
            health_port=self._get_int("HEALTH_PORT", 8080),
            metrics_log_interval=self._get_int("METRICS_LOG_INTERVAL", 300)
        )

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        """Convert environment variable to boolean"""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Convert environment variable to int, rejecting garbage early"""
        value = os.getenv(key)
        if value is None or value.strip() == "":
            return default
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got {value!r}")

    def validate(self) -> bool:
        """
        Validate configuration

        Returns:
            True if configuration is valid

        Raises:
            ConfigError: If configuration is invalid
        """
        if not self.store.database_url:
            raise ConfigError("FIREBASE_DATABASE_URL is required")

        if not self.store.firebase_credentials:
            raise ConfigError("FIREBASE_CREDENTIALS is required")

        for name, port in (("IMAP_PORT", self.imap.port), ("HEALTH_PORT", self.system.health_port)):
            if not 1 <= port <= 65535:
                raise ConfigError(f"{name} out of range: {port}")

        for name, value in (
            ("IMAP_TIMEOUT", self.imap.timeout),
            ("IDLE_TIMEOUT", self.imap.idle_timeout),
            ("OAUTH_TIMEOUT", self.oauth.timeout),
            ("RECONNECT_DELAY", self.system.reconnect_delay),
            ("METRICS_LOG_INTERVAL", self.system.metrics_log_interval),
        ):
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

        if self.system.log_format not in ("text", "json"):
            raise ConfigError(f"LOG_FORMAT must be 'text' or 'json', got {self.system.log_format!r}")

        return True
