"""
Sanitization Utility Module
Provides functions to sanitize and redact values for safe logging.
"""

import re
import unicodedata

ANSI_ESCAPE_PATTERN = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')


def sanitize_for_logging(text: str, max_length: int = 255) -> str:
    """
    Sanitize text for safe logging to prevent Log Injection (CRLF) and terminal manipulation.

    Recipient addresses and server error strings come from the network, so
    they are treated as untrusted before reaching a log line.

    Args:
        text: The input string to sanitize.
        max_length: Maximum allowed length for the log entry (truncates if longer).

    Returns:
        Sanitized string safe for logging.
    """
    if not text:
        return ""

    text = unicodedata.normalize('NFKC', str(text))

    # Escape line breaks so one log record stays on one line
    text = text.replace('\n', '\\n').replace('\r', '\\r')

    text = ANSI_ESCAPE_PATTERN.sub('', text)

    # Remaining control characters (ASCII 0-31 except tab)
    text = "".join(ch for ch in text if ch == '\t' or ord(ch) >= 32)

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text


def redact_email(address: str) -> str:
    """
    Redact the local-part of an account address for logs.

    Example:
        >>> redact_email("mailbox.one@gmail.com")
        'ma***@gmail.com'
    """
    if not address:
        return ""

    address = sanitize_for_logging(address)
    if "@" not in address:
        return address[:2] + "***"

    local, _, domain = address.partition("@")
    return f"{local[:2]}***@{domain}"


def mask_code(code: str) -> str:
    """Mask an OTP code, keeping only its last two digits"""
    if not code:
        return ""
    if len(code) <= 2:
        return "*" * len(code)
    return "*" * (len(code) - 2) + code[-2:]
