"""
Error Taxonomy
Exceptions raised by the relay components, grouped by the scope that contains them

PATTERN RECOGNITION: Each exception type maps to exactly one recovery policy:
- ConfigError: skip the account (fatal only when no accounts exist at all)
- AuthError: re-authenticate if refreshable, otherwise halt that account
- MailConnectionError: back off and reconnect, forever
- ParseError / NoMatchError: skip the message, continue the batch
- StoreError: log and continue, never retried
"""


class OTPRelayError(Exception):
    """Base class for every error raised by the relay"""


class ConfigError(OTPRelayError):
    """Missing or invalid configuration / account fields"""


class AuthError(OTPRelayError):
    """Bad, expired or revoked credential"""


class MailConnectionError(OTPRelayError, ConnectionError):
    """Network or protocol failure on a mail session"""


class ParseError(OTPRelayError):
    """A fetched message could not be parsed"""


class NoMatchError(OTPRelayError):
    """No OTP pattern matched the message"""


class StoreError(OTPRelayError):
    """A write to the destination store failed"""
