"""
Secure-storage port and adapters.

The engine only ever hands plain bytes to a :class:`SecureStorage`.  Three
adapters are provided:

* :class:`InMemorySecureStorage` – process-local dict, for tests and demos.
* :class:`SQLiteSecureStorage`   – one table in a SQLite file; survives restarts.
* :class:`EncryptedStorage`      – wraps another adapter with AES-256-GCM,
  key derived from a passphrase with PBKDF2-HMAC-SHA256.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import re
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from heartid.errors import DecryptionFailureError, StorageUnavailableError

logger = logging.getLogger(__name__)


class SecureStorage(ABC):
    """Keyed blob store; one blob per user."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[bytes]:
        """Return the stored blob or ``None`` when nothing is stored."""

    @abstractmethod
    def put(self, user_id: str, blob: bytes) -> None:
        """Store *blob*, replacing any previous one."""

    @abstractmethod
    def delete(self, user_id: str) -> None:
        """Remove the blob; deleting a missing key is not an error."""


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemorySecureStorage(SecureStorage):

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[bytes]:
        with self._lock:
            return self._blobs.get(user_id)

    def put(self, user_id: str, blob: bytes) -> None:
        with self._lock:
            self._blobs[user_id] = bytes(blob)

    def delete(self, user_id: str) -> None:
        with self._lock:
            self._blobs.pop(user_id, None)

    def __contains__(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._blobs


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteSecureStorage(SecureStorage):
    """
    Blob table in a SQLite database.

    Parameters
    ----------
    path:
        Database file; created on first use.
    table:
        Table name, so baselines and lockout states can share one file.
    """

    def __init__(self, path: str, table: str = "blobs") -> None:
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self.path = path
        self.table = table
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        try:
            conn.execute("PRAGMA journal_mode = WAL;")
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    f"""CREATE TABLE IF NOT EXISTS {self.table} (
                            user_id    TEXT PRIMARY KEY,
                            blob       BLOB NOT NULL,
                            stored_at  INTEGER NOT NULL
                        )"""
                )
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Cannot open {self.path}: {exc}") from exc
        logger.info("SQLite storage ready: %s [%s]", self.path, self.table)

    def get(self, user_id: str) -> Optional[bytes]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT blob FROM {self.table} WHERE user_id=?", (user_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Read failed for '{user_id}': {exc}") from exc
        return None if row is None else bytes(row[0])

    def put(self, user_id: str, blob: bytes) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    f"""INSERT INTO {self.table}(user_id, blob, stored_at)
                        VALUES(?,?,?)
                        ON CONFLICT(user_id) DO UPDATE SET blob=excluded.blob,
                                                           stored_at=excluded.stored_at""",
                    (user_id, sqlite3.Binary(blob), int(time.time())),
                )
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Write failed for '{user_id}': {exc}") from exc

    def delete(self, user_id: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(f"DELETE FROM {self.table} WHERE user_id=?", (user_id,))
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Delete failed for '{user_id}': {exc}") from exc
        logger.info("Deleted [%s] entry for '%s'", self.table, user_id)


# ---------------------------------------------------------------------------
# AES-256-GCM wrapper
# ---------------------------------------------------------------------------

KEY_LEN = 32          # AES-256
NONCE_LEN = 12        # 96-bit GCM nonce
SALT_LEN = 16
PBKDF2_ITER = 100_000
KEY_CACHE_SIZE = 64


def derive_key(passphrase: bytes, salt: bytes, iterations: int = PBKDF2_ITER) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LEN,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase)


class EncryptedStorage(SecureStorage):
    """
    Encrypt blobs before handing them to *inner*.

    Each stored envelope is JSON ``{salt, nonce, ciphertext}`` (base64); the
    user id is bound as associated data so a blob copied to another user's
    slot fails to decrypt.
    """

    def __init__(
        self,
        inner: SecureStorage,
        passphrase: bytes | str,
        iterations: int = PBKDF2_ITER,
    ) -> None:
        self.inner = inner
        self._passphrase = passphrase.encode() if isinstance(passphrase, str) else passphrase
        self.iterations = iterations
        self._keys: Dict[bytes, bytes] = {}

    def get(self, user_id: str) -> Optional[bytes]:
        envelope = self.inner.get(user_id)
        if envelope is None:
            return None
        try:
            payload = json.loads(envelope.decode("utf-8"))
            salt = base64.b64decode(payload["salt"])
            nonce = base64.b64decode(payload["nonce"])
            ciphertext = base64.b64decode(payload["ciphertext"])
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            raise DecryptionFailureError(f"Malformed envelope for '{user_id}'") from exc
        try:
            return AESGCM(self._key(salt)).decrypt(nonce, ciphertext, user_id.encode())
        except (InvalidTag, ValueError) as exc:
            # ValueError: nonce length outside what AES-GCM accepts
            logger.error("Decryption failed for '%s' (wrong key or tampered blob)", user_id)
            raise DecryptionFailureError(f"Cannot decrypt blob for '{user_id}'") from exc

    def put(self, user_id: str, blob: bytes) -> None:
        salt = os.urandom(SALT_LEN)
        nonce = os.urandom(NONCE_LEN)
        ciphertext = AESGCM(self._key(salt)).encrypt(nonce, blob, user_id.encode())
        envelope = {
            "salt": base64.b64encode(salt).decode(),
            "nonce": base64.b64encode(nonce).decode(),
            "ciphertext": base64.b64encode(ciphertext).decode(),
        }
        self.inner.put(user_id, json.dumps(envelope).encode("utf-8"))

    def delete(self, user_id: str) -> None:
        self.inner.delete(user_id)

    def _key(self, salt: bytes) -> bytes:
        key = self._keys.get(salt)
        if key is None:
            if len(self._keys) >= KEY_CACHE_SIZE:
                self._keys.clear()
            key = derive_key(self._passphrase, salt, self.iterations)
            self._keys[salt] = key
        return key
