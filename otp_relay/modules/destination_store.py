"""
Destination Store Module
Keyed store that receives extracted codes, backed by Firebase Realtime Database

PATTERN RECOGNITION: The Firebase app is process-wide state with an
init-once lifecycle. It is created at startup by init_firebase_app() and the
resulting FirebaseStore is handed by reference to every RecipientRouter,
instead of each router reaching for a global client.

SECURITY STORY: Realtime Database keys may not contain '.', '#', '$', '['
or ']'. Dots are common in mailbox addresses, so they are stored as commas
(a reversible substitution shared with the accounts node); the other
characters are rejected with a StoreError instead of being written to an
unexpected path.
"""

import copy
import logging
import threading
import time
from typing import Any, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin import exceptions as firebase_exceptions

from .errors import ConfigError, StoreError

FORBIDDEN_KEY_CHARS = set("#$[]")

# Realtime Database placeholder resolved to the server clock at write time
SERVER_TIMESTAMP = {".sv": "timestamp"}

_app_lock = threading.Lock()
_firebase_app: Optional[firebase_admin.App] = None

logger = logging.getLogger(__name__)


def encode_key(value: str) -> str:
    """Encode a value for use as a database key ('.' -> ',')"""
    return value.replace(".", ",")


def decode_key(key: str) -> str:
    """Restore a value encoded by encode_key (',' -> '.')"""
    return key.replace(",", ".")


def encode_path(path: str) -> str:
    """
    Encode each segment of a slash-separated path.

    Empty segments pass through unchanged; the database itself drops them,
    so "mike/" and "mike" address the same node.

    Raises:
        StoreError: If a segment contains a character the database forbids
    """
    segments = path.split("/")
    for segment in segments:
        if FORBIDDEN_KEY_CHARS.intersection(segment):
            raise StoreError(f"Illegal character in store key segment: {segment!r}")
    return "/".join(encode_key(segment) for segment in segments)


def _segments(key: str) -> List[str]:
    return [segment for segment in key.split("/") if segment]


def init_firebase_app(credentials_path: str, database_url: str) -> firebase_admin.App:
    """
    Initialize the Firebase Admin app once per process.

    Later calls return the already-initialized app.

    Raises:
        ConfigError: If the service-account file cannot be loaded
    """
    global _firebase_app
    with _app_lock:
        if _firebase_app is not None:
            return _firebase_app
        try:
            cred = credentials.Certificate(credentials_path)
        except (IOError, ValueError) as e:
            raise ConfigError(f"Cannot load Firebase credentials from {credentials_path}: {e}")
        _firebase_app = firebase_admin.initialize_app(cred, {"databaseURL": database_url})
        logger.info("Firebase app initialized")
        return _firebase_app


class DestinationStore:
    """Interface of the keyed store; implementations must be thread-safe"""

    def set(self, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    def update(self, key: str, value: Dict[str, Any]) -> None:
        """Merge the fields of *value* into the node at *key*, keeping its other children"""
        raise NotImplementedError

    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set_otp(self, key: str, otp: str) -> None:
        """Unconditionally overwrite *key* with the code and a store-assigned timestamp"""
        raise NotImplementedError

    def write_record(self, key: str, record: Dict[str, Any]) -> None:
        """
        Write a routing record at *key*.

        An empty discriminator ("mike/") addresses the alias node itself, since
        the database drops empty path segments. A set() there would replace
        "mike/42" and every other discriminator under the alias, so the record
        fields are merged into the alias node instead.
        """
        if key.endswith("/"):
            self.update(key.rstrip("/"), record)
        else:
            self.set(key, record)


class FirebaseStore(DestinationStore):
    """
    Realtime Database store

    The underlying client is safe for concurrent use, so one instance is
    shared by all supervisors without extra locking.
    """

    def __init__(self, app: Optional[firebase_admin.App] = None, root: str = "/"):
        """
        Args:
            app: Initialized Firebase app (the default app when None)
            root: Path prefix for every key handled by this store
        """
        self.app = app
        self.root = "/" + root.strip("/")
        self.logger = logging.getLogger("FirebaseStore")

    def _path(self, key: str) -> str:
        return f"{self.root.rstrip('/')}/{encode_path(key.lstrip('/'))}"

    def set(self, key: str, value: Dict[str, Any]) -> None:
        path = self._path(key)
        try:
            db.reference(path, app=self.app).set(value)
        except (firebase_exceptions.FirebaseError, ValueError, OSError) as e:
            raise StoreError(f"Write to {path} failed: {e}") from e

    def update(self, key: str, value: Dict[str, Any]) -> None:
        path = self._path(key)
        try:
            db.reference(path, app=self.app).update(value)
        except (firebase_exceptions.FirebaseError, ValueError, OSError) as e:
            raise StoreError(f"Update of {path} failed: {e}") from e

    def get(self, key: str) -> Any:
        path = self._path(key)
        try:
            return db.reference(path, app=self.app).get()
        except (firebase_exceptions.FirebaseError, ValueError, OSError) as e:
            raise StoreError(f"Read of {path} failed: {e}") from e

    def set_otp(self, key: str, otp: str) -> None:
        self.write_record(key, {"otp": otp, "ts": SERVER_TIMESTAMP})


class InMemoryStore(DestinationStore):
    """
    Thread-safe dict tree addressed like the Realtime Database

    Empty path segments are dropped, so "mike/" and "mike" are the same node.
    ts is its own clock in epoch milliseconds.
    """

    def __init__(self):
        self._root: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def _node(self, segments: List[str]) -> Dict[str, Any]:
        node = self._root
        for segment in segments:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = node[segment] = {}
            node = child
        return node

    def set(self, key: str, value: Dict[str, Any]) -> None:
        segments = _segments(key)
        with self._lock:
            if not segments:
                self._root = copy.deepcopy(value)
                return
            self._node(segments[:-1])[segments[-1]] = copy.deepcopy(value)

    def update(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._node(_segments(key)).update(copy.deepcopy(value))

    def get(self, key: str) -> Any:
        with self._lock:
            node: Any = self._root
            for segment in _segments(key):
                if not isinstance(node, dict) or segment not in node:
                    return None
                node = node[segment]
            return copy.deepcopy(node) if node != {} else None

    def set_otp(self, key: str, otp: str) -> None:
        self.write_record(key, {"otp": otp, "ts": int(time.time() * 1000)})
