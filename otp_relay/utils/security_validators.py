"""
Security Validators Module
TLS settings shared by every mail session

SECURITY STORY: Mail sessions carry app passwords and bearer tokens, so
every connection is made over TLS 1.2+ with hostname verification. The only
escape hatch is VERIFY_SSL=false, meant for test servers with self-signed
certificates.
"""

import logging
import ssl
from typing import Callable

logger = logging.getLogger(__name__)


def create_secure_ssl_context() -> ssl.SSLContext:
    """
    Create a secure SSL context with modern TLS settings

    Returns:
        Configured SSL context enforcing TLS 1.2+ and hostname checking
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    context.check_hostname = True
    context.verify_mode = ssl.CERT_REQUIRED

    context.load_default_certs()

    logger.debug("Created secure SSL context with TLS 1.2+ enforcement")
    return context


def apply_ssl_overrides(
    context: ssl.SSLContext,
    verify_ssl: bool,
    log_warning: Callable[[str], None]
) -> None:
    """
    Disable certificate validation on *context* when verify_ssl is False.

    Args:
        context: SSL context to configure
        verify_ssl: When False, hostname checking and cert validation are disabled
        log_warning: Callable used to emit a warning when verification is disabled
    """
    if not verify_ssl:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        log_warning("SSL verification disabled - use only for testing!")
