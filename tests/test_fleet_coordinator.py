"""
Unit tests for the FleetCoordinator

Supervisors are real, but their sessions come from a factory that blocks on
an event, so no test reaches a mail server and every thread can be released
at teardown.
"""

import threading
import unittest
from unittest.mock import MagicMock

from otp_relay.modules.destination_store import InMemoryStore
from otp_relay.modules.errors import ConfigError, MailConnectionError
from otp_relay.modules.fleet_coordinator import FleetCoordinator, validate_account
from otp_relay.modules.models import Account, OAuth2Credentials, PasswordCredentials
from otp_relay.modules.session_supervisor import SessionSupervisor
from otp_relay.utils.config import ImapConfig


def _imap_config() -> ImapConfig:
    return ImapConfig("imap.example.com", 993, "OTP", 30, 300, True)


def _password(email, pw="app-pass") -> Account:
    return Account(email, PasswordCredentials(pw))


def _oauth(email, refresh_token="refresh") -> Account:
    return Account(email, OAuth2Credentials("cid", "secret", "urn:ietf:wg:oauth:2.0:oob", refresh_token))


class TestValidateAccount(unittest.TestCase):

    def test_valid_accounts(self):
        validate_account(_password("a@x.com"))
        validate_account(_oauth("b@x.com"))

    def test_empty_password(self):
        with self.assertRaises(ConfigError):
            validate_account(_password("a@x.com", pw=""))

    def test_empty_refresh_token(self):
        with self.assertRaises(ConfigError):
            validate_account(_oauth("a@x.com", refresh_token=""))

    def test_bad_address(self):
        with self.assertRaises(ConfigError):
            validate_account(_password("not-an-address"))


class TestFleetCoordinator(unittest.TestCase):

    def setUp(self):
        self.release = threading.Event()
        self.factory_calls = []
        self.lock = threading.Lock()

        def factory(account, config):
            with self.lock:
                self.factory_calls.append(account.email)
            session = MagicMock()
            session.connect.side_effect = self._block
            return session

        self.fleet = FleetCoordinator(
            _imap_config(),
            InMemoryStore(),
            refresher=MagicMock(),
            reconnect_delay=60,
            session_factory=factory
        )

    def _block(self):
        self.release.wait(5)
        raise MailConnectionError("released")

    def tearDown(self):
        self.fleet.stop()
        self.release.set()
        self.fleet.join(timeout=5)

    def test_one_supervisor_per_valid_account(self):
        accounts = [_password("a@x.com"), _oauth("b@x.com"), _password("c@x.com")]

        supervisors = self.fleet.start(accounts)

        self.assertEqual(len(supervisors), 3)
        self.assertTrue(all(isinstance(s, SessionSupervisor) for s in supervisors))
        self.assertEqual([s.account.email for s in supervisors], ["a@x.com", "b@x.com", "c@x.com"])
        self.assertTrue(all(s.is_alive for s in supervisors))

    def test_malformed_account_does_not_block_others(self):
        accounts = [_password("a@x.com"), _password("broken@x.com", pw=""), _oauth("c@x.com")]

        supervisors = self.fleet.start(accounts)

        self.assertEqual([s.account.email for s in supervisors], ["a@x.com", "c@x.com"])

    def test_duplicate_address_is_skipped(self):
        supervisors = self.fleet.start([_password("a@x.com"), _password("A@x.com")])

        self.assertEqual(len(supervisors), 1)

    def test_oauth_without_refresher_is_skipped(self):
        fleet = FleetCoordinator(_imap_config(), InMemoryStore(), refresher=None)

        supervisors = fleet.start([_oauth("b@x.com")])

        self.assertEqual(supervisors, [])

    def test_each_supervisor_gets_its_own_pipeline(self):
        first, second = self.fleet.start([_password("a@x.com"), _password("b@x.com")])

        self.assertIsNot(first.watcher, second.watcher)
        self.assertIs(first.watcher.router.store, second.watcher.router.store)

    def test_status_reports_every_supervisor(self):
        self.fleet.start([_password("alpha@x.com"), _password("beta@x.com")])

        status = self.fleet.status()

        self.assertEqual(sorted(status), ["al***@x.com", "be***@x.com"])

    def test_stop_and_join(self):
        supervisors = self.fleet.start([_password("a@x.com")])

        self.fleet.stop()
        self.release.set()
        self.fleet.join(timeout=5)

        self.assertFalse(supervisors[0].is_alive)


if __name__ == '__main__':
    unittest.main()
