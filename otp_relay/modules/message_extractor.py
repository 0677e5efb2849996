"""
Message Extractor Module
Parses a fetched message and recovers the OTP code and recipient alias

The code is located by an ordered pattern chain, first match wins:

1. HTML: a <span> inside a <div> wrapping 4-8 digits
2. HTML: a <p> inside a <td> wrapping 4-8 digits
3. Plain text: a standalone run of exactly 6 digits

PATTERN RECOGNITION: This is a priority list of known sender templates
(rich HTML layouts first, generic plain text last) rather than one
universal expression. A generic 6-digit match in the text part would
happily pick up a phone number or a date, so the template-specific HTML
patterns always get the first chance.
"""

import email
import logging
import re
from email.header import decode_header, make_header
from email.message import Message
from email.utils import getaddresses
from typing import Optional, Tuple

from .errors import NoMatchError, ParseError
from .models import ExtractionResult, ParsedMessage, RawMessage
from ..utils.metrics import Metrics
from ..utils.pattern_compiler import compile_pattern_chain
from ..utils.sanitization import mask_code, sanitize_for_logging

HTML_PATTERNS = compile_pattern_chain(
    [
        ("html_div_span", r"<div[^>]*>\s*<span[^>]*>\s*(\d{4,8})\s*</span>\s*</div>"),
        ("html_td_p", r"<td[^>]*>\s*<p>\s*(\d{4,8})\s*</p>"),
    ],
    flags=re.ASCII,
)

TEXT_PATTERNS = compile_pattern_chain(
    [
        ("text_six_digits", r"\b(\d{6})\b"),
    ],
    flags=re.ASCII,
)

TRAILING_DIGITS = re.compile(r"^(.*?)(\d+)$", re.ASCII)
LINE_BREAKS = re.compile(r"\r?\n")


def derive_alias(address: str) -> Tuple[str, str]:
    """
    Split a recipient address into (alias, discriminator).

    The local-part is split on its first '+' when it has one, otherwise on
    its trailing run of digits. The discriminator is empty when neither
    exists. A local-part made only of digits is kept whole as the alias.

    Examples:
        >>> derive_alias("mike+42@x.com")
        ('mike', '42')
        >>> derive_alias("mike42@x.com")
        ('mike', '42')
        >>> derive_alias("mike@x.com")
        ('mike', '')
    """
    local = address.split("@", 1)[0].strip()

    if "+" in local:
        alias, discriminator = local.split("+", 1)
        return alias, discriminator

    match = TRAILING_DIGITS.match(local)
    if match and match.group(1):
        return match.group(1), match.group(2)
    return local, ""


def find_code(message: ParsedMessage) -> Tuple[str, str]:
    """
    Run the pattern chain over *message*.

    Returns:
        (pattern_name, code) of the first matching pattern

    Raises:
        NoMatchError: If no pattern matches
    """
    html = LINE_BREAKS.sub(" ", message.html or "")
    if html:
        for name, pattern in HTML_PATTERNS:
            match = pattern.search(html)
            if match:
                return name, match.group(1)

    text = (message.text or "").strip()
    if text:
        for name, pattern in TEXT_PATTERNS:
            match = pattern.search(text)
            if match:
                return name, match.group(1)

    raise NoMatchError("No OTP pattern matched")


def _decode_header_value(value: str) -> str:
    if not value:
        return ""
    try:
        return str(make_header(decode_header(value)))
    except Exception:
        return value


def _decode_bytes(data: bytes, charset: Optional[str]) -> str:
    encoding = charset or "utf-8"
    try:
        return data.decode(encoding, errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


def _decode_part_payload(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if not payload:
        return ""
    return _decode_bytes(payload, part.get_content_charset())


def _first_address(msg: Message) -> str:
    for header in ("To", "Delivered-To", "X-Original-To"):
        values = msg.get_all(header) or []
        for _, address in getaddresses([_decode_header_value(v) for v in values]):
            if address and "@" in address:
                return address.strip()
    return ""


def parse_message(raw: RawMessage) -> ParsedMessage:
    """
    Parse raw bytes into recipient, text body and HTML body.

    Raises:
        ParseError: If the bytes cannot be parsed or carry no recipient
    """
    try:
        msg = email.message_from_bytes(raw.data)
    except Exception as e:
        raise ParseError(f"Message {raw.uid} could not be parsed: {e}") from e

    recipient = _first_address(msg)
    if not recipient:
        raise ParseError(f"Message {raw.uid} has no recipient address")

    text = ""
    html = ""
    try:
        for part in msg.walk():
            if part.is_multipart():
                continue
            if "attachment" in str(part.get("Content-Disposition", "")).lower():
                continue
            content_type = part.get_content_type()
            if content_type == "text/plain":
                text += _decode_part_payload(part)
            elif content_type == "text/html":
                html += _decode_part_payload(part)
    except Exception as e:
        raise ParseError(f"Message {raw.uid} body could not be decoded: {e}") from e

    return ParsedMessage(recipient=recipient, text=text, html=html)


class MessageExtractor:
    """Turns one RawMessage into an ExtractionResult, or nothing"""

    def __init__(self, account_label: str = "", metrics: Optional[Metrics] = None):
        """
        Args:
            account_label: Redacted account address used in log lines
            metrics: Shared counters (optional)
        """
        self.metrics = metrics
        self.logger = logging.getLogger(
            f"MessageExtractor.{account_label}" if account_label else "MessageExtractor"
        )

    def extract(self, raw: RawMessage) -> Optional[ExtractionResult]:
        """
        Extract the OTP code and routing alias from *raw*.

        Returns:
            ExtractionResult, or None when no pattern matches

        Raises:
            ParseError: If the message cannot be parsed
        """
        parsed = parse_message(raw)
        safe_recipient = sanitize_for_logging(parsed.recipient)

        try:
            pattern_name, code = find_code(parsed)
        except NoMatchError:
            if self.metrics:
                self.metrics.record_no_match()
            self.logger.warning(f"No OTP found in message {raw.uid} to {safe_recipient}")
            return None

        alias, discriminator = derive_alias(parsed.recipient)
        self.logger.debug(
            f"Message {raw.uid} to {safe_recipient}: {mask_code(code)} via {pattern_name}"
        )
        return ExtractionResult(alias=alias, discriminator=discriminator, code=code)
