"""
Recipient Router Module
Publishes extracted codes to the destination store under alias/discriminator
"""

import logging
from typing import Optional

from .destination_store import DestinationStore
from .errors import StoreError
from .models import ExtractionResult
from ..utils.metrics import Metrics
from ..utils.sanitization import mask_code, sanitize_for_logging


class RecipientRouter:
    """
    Writes {otp, ts} at key alias.lower()/discriminator

    The write is an unconditional overwrite: no read-before-write and no
    concurrency check, since consumers only ever need the latest code for
    a key. Failures are logged and never retried.
    """

    def __init__(
        self,
        store: DestinationStore,
        account_label: str = "",
        metrics: Optional[Metrics] = None
    ):
        """
        Args:
            store: Shared destination store client
            account_label: Redacted account address used in log lines
            metrics: Shared counters (optional)
        """
        self.store = store
        self.metrics = metrics
        self.logger = logging.getLogger(
            f"RecipientRouter.{account_label}" if account_label else "RecipientRouter"
        )

    def route(self, result: ExtractionResult) -> bool:
        """
        Store *result*.

        Returns:
            True on success, False if the store rejected the write
        """
        key = result.routing_key
        safe_key = sanitize_for_logging(key)

        try:
            self.store.set_otp(key, result.code)
        except StoreError as e:
            if self.metrics:
                self.metrics.record_error("store")
            self.logger.error(f"Failed to save OTP to {safe_key}: {e}")
            return False

        if self.metrics:
            self.metrics.record_otp_routed()
        self.logger.info(f"Saved OTP {mask_code(result.code)} -> {safe_key}")
        return True
