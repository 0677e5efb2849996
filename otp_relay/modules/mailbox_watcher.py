"""
Mailbox Watcher Module
Runs one extraction pass over the unseen messages of an open session

A pass is triggered once per successful mailbox open and once per new-mail
notification. A notification is only a trigger to re-scan: each pass
searches for *all* currently-unseen messages, so a burst of notifications
that arrives while a batch is being fetched is coalesced into the next pass.

At-least-once boundary: fetching marks messages seen whether or not
extraction succeeds, so a message whose OTP fails to parse is not retried.
"""

import logging
from typing import Optional

from .errors import ParseError
from .mail_session import MailSession
from .message_extractor import MessageExtractor
from .recipient_router import RecipientRouter
from ..utils.metrics import Metrics


class MailboxWatcher:
    """Search -> fetch -> extract -> route, one message failure never aborting the batch"""

    def __init__(
        self,
        extractor: MessageExtractor,
        router: RecipientRouter,
        account_label: str = "",
        metrics: Optional[Metrics] = None
    ):
        self.extractor = extractor
        self.router = router
        self.metrics = metrics
        self.logger = logging.getLogger(
            f"MailboxWatcher.{account_label}" if account_label else "MailboxWatcher"
        )

    def on_ready(self, session: MailSession) -> int:
        """
        Process every unseen message in the session's mailbox.

        Session errors (AuthError, MailConnectionError) propagate to the
        supervisor; per-message errors are logged and contained.

        Returns:
            Number of codes successfully routed
        """
        uids = session.search_unseen()
        if not uids:
            self.logger.debug("No unseen messages")
            return 0

        self.logger.info(f"Found {len(uids)} unseen messages")
        messages = session.fetch(uids)

        routed = 0
        for raw in messages:
            if self.metrics:
                self.metrics.record_message_processed()
            try:
                result = self.extractor.extract(raw)
                if result is not None and self.router.route(result):
                    routed += 1
            except ParseError as e:
                if self.metrics:
                    self.metrics.record_error("parse")
                self.logger.error(f"Skipping message {raw.uid}: {e}")
            except Exception as e:
                if self.metrics:
                    self.metrics.record_error("message_handler")
                self.logger.error(f"Message handler error for {raw.uid}: {e}", exc_info=True)

        self.logger.info(f"Done processing {len(messages)} messages ({routed} codes saved)")
        return routed
