import os
import sys
import signal
import shutil
from pathlib import Path
from typing import Optional, List, NoReturn

from otp_relay.modules.errors import ConfigError
from otp_relay.utils.config import Config
from otp_relay.utils.colors import Colors
from otp_relay.utils.validators import check_default_credentials


class AppRunner:
    """Encapsulates the startup, configuration verification, and execution logic of the OTP relay."""

    def __init__(self, args: Optional[List[str]] = None) -> None:
        """
        Initialize the runner with CLI arguments.

        Args:
            args: Command line arguments (defaults to sys.argv)
        """
        self.args = args if args is not None else sys.argv
        self.config_file = self.args[1] if len(self.args) > 1 else ".env"

    def run(self) -> None:
        """Execute the main application flow."""
        self.setup_signal_handlers()
        self.print_banner()
        self.ensure_config_exists()
        self.validate_config()
        self.start_service()

    def setup_signal_handlers(self) -> None:
        """Register handlers for graceful shutdown."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    @staticmethod
    def _signal_handler(signum, frame) -> NoReturn:
        """Handle shutdown signals."""
        print("\nReceived shutdown signal, stopping gracefully...")
        raise KeyboardInterrupt

    def print_banner(self) -> None:
        """Print the application startup banner."""
        print(Colors.colorize("=" * 80, Colors.CYAN))
        print(Colors.colorize("OTP Relay", Colors.BOLD + Colors.CYAN))
        print(Colors.colorize("Watches OTP mailboxes and publishes codes by recipient alias", Colors.GREY))
        print(Colors.colorize("=" * 80, Colors.CYAN))
        print()

    def ensure_config_exists(self) -> None:
        """Check if the configuration file exists, and offer to create it from the template if not."""
        if Path(self.config_file).exists():
            return

        if Path(".env.example").exists() and sys.stdin.isatty():
            self._handle_missing_config_interactive()
        else:
            self._handle_missing_config_non_interactive()

    def _handle_missing_config_interactive(self) -> None:
        """Offer to copy .env.example into place."""
        print(f"Configuration file '{self.config_file}' not found.")
        try:
            response = input(f"Create '{self.config_file}' from template? [Y/n] ").strip().lower()
            if response not in ('', 'y', 'yes'):
                print("Please create a .env file based on .env.example")
                sys.exit(1)

            try:
                shutil.copy(".env.example", self.config_file)
                os.chmod(self.config_file, 0o600)
            except OSError as e:
                print(f"Error creating file: {e}")
                sys.exit(1)

            print(f"Created '{self.config_file}' from '.env.example'.")
            print("IMPORTANT: Please edit .env with your Firebase settings before proceeding.")
            sys.exit(0)
        except EOFError:
            self._handle_missing_config_non_interactive()

    def _handle_missing_config_non_interactive(self) -> NoReturn:
        """Handle missing configuration when non-interactive or template is missing."""
        print(f"Error: Configuration file '{self.config_file}' not found")
        print("Please create a .env file based on .env.example")
        print("You can run: cp .env.example .env")
        sys.exit(1)

    def validate_config(self) -> None:
        """Refuse to start while the configuration still holds example values."""
        try:
            errors = check_default_credentials(Config(self.config_file))
        except Exception as e:
            print(f"{Colors.YELLOW}Warning: Could not validate configuration: {e}{Colors.RESET}")
            return

        if errors:
            print(f"\n{Colors.RED}Configuration Error: Example values detected{Colors.RESET}")
            print(f"{Colors.GREY}The following issues must be resolved in your .env file before starting:{Colors.RESET}\n")

            for error in errors:
                print(f"  - {Colors.YELLOW}{error}{Colors.RESET}")

            print(f"\nPlease edit {Colors.BOLD}{self.config_file}{Colors.RESET} with your actual settings.")
            sys.exit(1)

    def start_service(self) -> None:
        """Instantiate and start the relay service."""
        from otp_relay.main import OTPRelayService
        print(f"{Colors.GREEN}Starting OTP relay...{Colors.RESET}")
        try:
            service = OTPRelayService(self.config_file)
        except ConfigError as e:
            print(f"{Colors.RED}Configuration error: {e}{Colors.RESET}")
            sys.exit(1)
        service.start()


def main() -> None:
    AppRunner().run()


if __name__ == "__main__":
    main()
