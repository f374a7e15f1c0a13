"""
Unit tests for the secure-storage adapters.
Run with:  pytest tests/
"""

from __future__ import annotations

import base64
import json

import pytest

from heartid.errors import DecryptionFailureError, StorageUnavailableError
from heartid.storage import EncryptedStorage, InMemorySecureStorage, SQLiteSecureStorage

FAST_ITER = 1_000


class TestInMemoryStorage:

    def test_put_get_delete(self):
        storage = InMemorySecureStorage()
        assert storage.get("alice") is None
        storage.put("alice", b"blob")
        assert storage.get("alice") == b"blob"
        storage.delete("alice")
        assert storage.get("alice") is None

    def test_delete_missing_is_noop(self):
        InMemorySecureStorage().delete("nobody")


class TestSQLiteStorage:

    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "heartid.db")
        SQLiteSecureStorage(path).put("alice", b"\x00\x01payload")
        assert SQLiteSecureStorage(path).get("alice") == b"\x00\x01payload"

    def test_put_replaces(self, tmp_path):
        storage = SQLiteSecureStorage(str(tmp_path / "heartid.db"))
        storage.put("alice", b"one")
        storage.put("alice", b"two")
        assert storage.get("alice") == b"two"

    def test_tables_are_independent(self, tmp_path):
        path = str(tmp_path / "heartid.db")
        baselines = SQLiteSecureStorage(path, table="baselines")
        lockouts = SQLiteSecureStorage(path, table="lockouts")
        baselines.put("alice", b"baseline")
        assert lockouts.get("alice") is None
        baselines.delete("alice")
        assert baselines.get("alice") is None

    def test_invalid_table_name(self, tmp_path):
        with pytest.raises(ValueError):
            SQLiteSecureStorage(str(tmp_path / "x.db"), table="x; DROP TABLE y")

    def test_unopenable_path(self, tmp_path):
        with pytest.raises(StorageUnavailableError):
            SQLiteSecureStorage(str(tmp_path))


class TestEncryptedStorage:

    def test_round_trip(self):
        storage = EncryptedStorage(InMemorySecureStorage(), "correct horse", FAST_ITER)
        storage.put("alice", b"secret fingerprint")
        assert storage.get("alice") == b"secret fingerprint"

    def test_inner_blob_is_ciphertext(self):
        inner = InMemorySecureStorage()
        EncryptedStorage(inner, "pw", FAST_ITER).put("alice", b"secret fingerprint")
        envelope = inner.get("alice")
        assert b"secret fingerprint" not in envelope
        assert set(json.loads(envelope)) == {"salt", "nonce", "ciphertext"}

    def test_wrong_passphrase(self):
        inner = InMemorySecureStorage()
        EncryptedStorage(inner, "right", FAST_ITER).put("alice", b"data")
        with pytest.raises(DecryptionFailureError):
            EncryptedStorage(inner, "wrong", FAST_ITER).get("alice")

    def test_tampered_ciphertext(self):
        inner = InMemorySecureStorage()
        storage = EncryptedStorage(inner, "pw", FAST_ITER)
        storage.put("alice", b"data")
        envelope = json.loads(inner.get("alice"))
        envelope["ciphertext"] = envelope["ciphertext"][::-1]
        inner.put("alice", json.dumps(envelope).encode())
        with pytest.raises(DecryptionFailureError):
            storage.get("alice")

    def test_blob_bound_to_user(self):
        inner = InMemorySecureStorage()
        storage = EncryptedStorage(inner, "pw", FAST_ITER)
        storage.put("alice", b"data")
        inner.put("mallory", inner.get("alice"))
        with pytest.raises(DecryptionFailureError):
            storage.get("mallory")

    def test_malformed_envelope(self):
        inner = InMemorySecureStorage()
        inner.put("alice", b"not an envelope")
        with pytest.raises(DecryptionFailureError):
            EncryptedStorage(inner, "pw", FAST_ITER).get("alice")

    def test_invalid_nonce_length(self):
        inner = InMemorySecureStorage()
        storage = EncryptedStorage(inner, "pw", FAST_ITER)
        storage.put("alice", b"data")
        envelope = json.loads(inner.get("alice"))
        envelope["nonce"] = base64.b64encode(b"abc").decode()
        inner.put("alice", json.dumps(envelope).encode())
        with pytest.raises(DecryptionFailureError):
            storage.get("alice")

    def test_missing_blob(self):
        assert EncryptedStorage(InMemorySecureStorage(), "pw", FAST_ITER).get("alice") is None
