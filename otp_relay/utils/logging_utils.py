import copy
import logging
import re

from .colors import Colors

STATE_PATTERN = re.compile(r"state -> (\w+)")


class ColoredFormatter(logging.Formatter):
    """
    Custom formatter to add colors to log levels and specific messages.
    Highlights stored codes and session state changes, dims IDLE keepalives.
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GREY,
        logging.INFO: Colors.BLUE,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED
    }

    def format(self, record):
        # Copy so the file handler never sees ANSI codes
        record = copy.copy(record)

        color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        record.levelname = f"{color}{record.levelname}{Colors.RESET}"

        if isinstance(record.msg, str):
            state_match = STATE_PATTERN.search(record.msg)
            if "Saved OTP" in record.msg:
                record.msg = f"{Colors.GREEN}{record.msg}{Colors.RESET}"
            elif state_match:
                state_color = Colors.get_state_color(state_match.group(1))
                record.msg = f"{state_color}{Colors.BOLD}{record.msg}{Colors.RESET}"
            elif "IDLE keepalive" in record.msg:
                record.msg = f"{Colors.GREY}{record.msg}{Colors.RESET}"

        return super().format(record)
