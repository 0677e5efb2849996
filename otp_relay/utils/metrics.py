"""
Metrics Collection Module
Tracks relay throughput and session health across all accounts
"""

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict


@dataclass
class Metrics:
    """
    Collects operational counters shared by every session supervisor.

    PATTERN RECOGNITION: Supervisors run on separate threads, so every
    mutation goes through one lock. Reads take the same lock and return a
    plain-dict snapshot that is safe to log or serialize.
    """

    messages_processed: int = 0
    otps_routed: int = 0
    no_match: int = 0
    reconnects: int = 0
    reauthentications: int = 0
    errors_count: Counter = field(default_factory=Counter)
    start_time: datetime = field(default_factory=datetime.now)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_message_processed(self):
        with self._lock:
            self.messages_processed += 1

    def record_otp_routed(self):
        with self._lock:
            self.otps_routed += 1

    def record_no_match(self):
        with self._lock:
            self.no_match += 1

    def record_reconnect(self):
        with self._lock:
            self.reconnects += 1

    def record_reauthentication(self):
        with self._lock:
            self.reauthentications += 1

    def record_error(self, error_type: str):
        """
        Record that an error occurred.

        Args:
            error_type: Type of error (e.g., "parse", "store", "auth")
        """
        with self._lock:
            self.errors_count[error_type] += 1

    def get_summary(self) -> Dict:
        """Get a snapshot of all counters suitable for logging or export"""
        with self._lock:
            return {
                "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
                "messages_processed": self.messages_processed,
                "otps_routed": self.otps_routed,
                "no_match": self.no_match,
                "reconnects": self.reconnects,
                "reauthentications": self.reauthentications,
                "errors": dict(self.errors_count),
            }
