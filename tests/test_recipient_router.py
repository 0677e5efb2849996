"""
Tests for the recipient router and the mailbox watcher pass

The end-to-end cases drive a fake session through MailboxWatcher.on_ready()
into an InMemoryStore, so the whole extract -> route path runs without a
mail server or database.
"""

import unittest
from email.mime.text import MIMEText
from unittest.mock import MagicMock

from otp_relay.modules.destination_store import InMemoryStore
from otp_relay.modules.errors import MailConnectionError, StoreError
from otp_relay.modules.mailbox_watcher import MailboxWatcher
from otp_relay.modules.message_extractor import MessageExtractor
from otp_relay.modules.models import ExtractionResult, RawMessage
from otp_relay.modules.recipient_router import RecipientRouter
from otp_relay.utils.metrics import Metrics


def _raw(uid, to, body, subtype="plain") -> RawMessage:
    msg = MIMEText(body, subtype, "utf-8")
    msg["To"] = to
    return RawMessage(uid=uid, data=msg.as_bytes())


def _session(messages):
    session = MagicMock()
    session.search_unseen.return_value = [m.uid for m in messages]
    session.fetch.return_value = messages
    return session


class TestRecipientRouter(unittest.TestCase):
    """Tests for RecipientRouter.route()"""

    def setUp(self):
        self.store = InMemoryStore()
        self.metrics = Metrics()
        self.router = RecipientRouter(self.store, metrics=self.metrics)

    def test_writes_code_and_timestamp(self):
        ok = self.router.route(ExtractionResult("Mike", "42", "123456"))

        self.assertTrue(ok)
        record = self.store.get("mike/42")
        self.assertEqual(record["otp"], "123456")
        self.assertIsInstance(record["ts"], int)
        self.assertEqual(self.metrics.otps_routed, 1)

    def test_last_write_wins(self):
        self.router.route(ExtractionResult("mike", "42", "111111"))
        self.router.route(ExtractionResult("mike", "42", "222222"))

        self.assertEqual(self.store.get("mike/42")["otp"], "222222")
        self.assertEqual(list(self.store.get("mike")), ["42"])

    def test_empty_discriminator_keeps_sibling_codes(self):
        self.router.route(ExtractionResult("mike", "42", "111111"))
        self.router.route(ExtractionResult("mike", "7", "222222"))
        self.router.route(ExtractionResult("mike", "", "333333"))

        self.assertEqual(self.store.get("mike/")["otp"], "333333")
        self.assertEqual(self.store.get("mike/42")["otp"], "111111")
        self.assertEqual(self.store.get("mike/7")["otp"], "222222")

    def test_store_error_is_contained(self):
        store = MagicMock()
        store.set_otp.side_effect = StoreError("permission denied")
        router = RecipientRouter(store, metrics=self.metrics)

        ok = router.route(ExtractionResult("mike", "", "123456"))

        self.assertFalse(ok)
        self.assertEqual(self.metrics.errors_count["store"], 1)
        self.assertEqual(self.metrics.otps_routed, 0)


class TestMailboxWatcher(unittest.TestCase):
    """Tests for MailboxWatcher.on_ready()"""

    def setUp(self):
        self.store = InMemoryStore()
        self.metrics = Metrics()
        self.watcher = MailboxWatcher(
            MessageExtractor(metrics=self.metrics),
            RecipientRouter(self.store, metrics=self.metrics),
            metrics=self.metrics
        )

    def test_html_end_to_end(self):
        session = _session([_raw(1, "acct7@x.com", "<div><span>839201</span></div>", "html")])

        routed = self.watcher.on_ready(session)

        self.assertEqual(routed, 1)
        self.assertEqual(self.store.get("acct/7")["otp"], "839201")
        session.fetch.assert_called_once_with([1])

    def test_plain_text_end_to_end(self):
        session = _session([_raw(4, "mike@x.com", "Your code is 004521 - use within 5 minutes")])

        self.watcher.on_ready(session)

        self.assertEqual(self.store.get("mike/")["otp"], "004521")

    def test_html_precedence_end_to_end(self):
        msg = (
            b"To: mike+42@x.com\r\n"
            b"MIME-Version: 1.0\r\n"
            b'Content-Type: multipart/alternative; boundary="b1"\r\n\r\n'
            b"--b1\r\nContent-Type: text/plain\r\n\r\nYour code is 111111\r\n"
            b"--b1\r\nContent-Type: text/html\r\n\r\n<div><span>222222</span></div>\r\n"
            b"--b1--\r\n"
        )
        self.watcher.on_ready(_session([RawMessage(uid=9, data=msg)]))

        self.assertEqual(self.store.get("mike/42")["otp"], "222222")

    def test_no_match_writes_nothing(self):
        session = _session([_raw(2, "mike@x.com", "Welcome to the service")])

        routed = self.watcher.on_ready(session)

        self.assertEqual(routed, 0)
        self.assertIsNone(self.store.get("mike"))
        self.assertEqual(self.metrics.no_match, 1)

    def test_no_unseen_is_noop(self):
        session = _session([])

        self.assertEqual(self.watcher.on_ready(session), 0)
        session.fetch.assert_not_called()

    def test_bad_message_does_not_abort_batch(self):
        broken = RawMessage(uid=1, data=b"Subject: no recipient\r\n\r\n123456")
        good = _raw(2, "mike+1@x.com", "code 654321")

        routed = self.watcher.on_ready(_session([broken, good]))

        self.assertEqual(routed, 1)
        self.assertEqual(self.store.get("mike/1")["otp"], "654321")
        self.assertEqual(self.metrics.errors_count["parse"], 1)
        self.assertEqual(self.metrics.messages_processed, 2)

    def test_unexpected_handler_error_is_contained(self):
        extractor = MagicMock()
        extractor.extract.side_effect = [RuntimeError("boom"), ExtractionResult("a", "", "123456")]
        watcher = MailboxWatcher(extractor, RecipientRouter(self.store), metrics=self.metrics)

        routed = watcher.on_ready(_session([_raw(1, "a@x.com", "x"), _raw(2, "a@x.com", "y")]))

        self.assertEqual(routed, 1)
        self.assertEqual(self.metrics.errors_count["message_handler"], 1)

    def test_same_message_twice_is_idempotent(self):
        raw = _raw(5, "mike+42@x.com", "code 123456")

        self.watcher.on_ready(_session([raw]))
        first = self.store.get("mike/42")["otp"]
        self.watcher.on_ready(_session([raw]))

        self.assertEqual(self.store.get("mike/42")["otp"], first)
        self.assertEqual(list(self.store.get("mike")), ["42"])

    def test_session_errors_propagate(self):
        session = MagicMock()
        session.search_unseen.side_effect = MailConnectionError("socket closed")

        with self.assertRaises(MailConnectionError):
            self.watcher.on_ready(session)


if __name__ == '__main__':
    unittest.main()
