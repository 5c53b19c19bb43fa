"""
Tests for SQLite WAL Mode: central connect utility and the key store.

Covers: core/db.connect() PRAGMAs, immediate_transaction commit/rollback,
WAL on the key store, concurrent read-during-write, busy_timeout.
"""

import sqlite3
import threading
import time
from pathlib import Path

import pytest

from citadel_keyvault.core.db import connect as db_connect
from citadel_keyvault.core.db import immediate_transaction


# ===================================================================
# TestCoreDBConnect: central utility
# ===================================================================


class TestCoreDBConnect:
    """Verify the core connect() utility sets correct PRAGMAs."""

    def test_returns_connection(self, tmp_path):
        conn = db_connect(tmp_path / "test.db")
        assert isinstance(conn, sqlite3.Connection)
        conn.close()

    def test_wal_mode_enabled(self, tmp_path):
        conn = db_connect(tmp_path / "test.db")
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"
        conn.close()

    def test_busy_timeout_set(self, tmp_path):
        conn = db_connect(tmp_path / "test.db")
        timeout = conn.execute("PRAGMA busy_timeout").fetchone()[0]
        assert timeout == 5000
        conn.close()

    def test_foreign_keys_on(self, tmp_path):
        conn = db_connect(tmp_path / "test.db")
        fk = conn.execute("PRAGMA foreign_keys").fetchone()[0]
        assert fk == 1
        conn.close()

    def test_row_factory_off_by_default(self, tmp_path):
        conn = db_connect(tmp_path / "test.db")
        assert conn.row_factory is None
        conn.close()

    def test_row_factory_on_when_requested(self, tmp_path):
        conn = db_connect(tmp_path / "test.db", row_factory=True)
        assert conn.row_factory is sqlite3.Row
        conn.close()

    def test_string_path_accepted(self, tmp_path):
        conn = db_connect(str(tmp_path / "strpath.db"))
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"
        conn.close()


# ===================================================================
# TestImmediateTransaction: all-or-nothing write blocks
# ===================================================================


class TestImmediateTransaction:

    @pytest.fixture
    def conn(self, tmp_path):
        conn = db_connect(tmp_path / "txn.db")
        conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, val TEXT)")
        conn.commit()
        yield conn
        conn.close()

    def test_commits_on_success(self, conn, tmp_path):
        with immediate_transaction(conn):
            conn.execute("INSERT INTO t VALUES (1, 'a')")
            conn.execute("INSERT INTO t VALUES (2, 'b')")

        other = sqlite3.connect(str(tmp_path / "txn.db"))
        assert other.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 2
        other.close()

    def test_rolls_back_on_error(self, conn):
        with pytest.raises(RuntimeError):
            with immediate_transaction(conn):
                conn.execute("INSERT INTO t VALUES (1, 'a')")
                raise RuntimeError("boom")
        assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0
        assert not conn.in_transaction

    def test_rolls_back_on_integrity_error(self, conn):
        conn.execute("INSERT INTO t VALUES (1, 'a')")
        conn.commit()
        with pytest.raises(sqlite3.IntegrityError):
            with immediate_transaction(conn):
                conn.execute("UPDATE t SET val = 'changed' WHERE id = 1")
                conn.execute("INSERT INTO t VALUES (1, 'dup')")
        assert conn.execute("SELECT val FROM t WHERE id = 1").fetchone()[0] == "a"

    def test_holds_write_lock(self, conn, tmp_path):
        other = sqlite3.connect(str(tmp_path / "txn.db"), timeout=0)
        with immediate_transaction(conn):
            with pytest.raises(sqlite3.OperationalError):
                other.execute("BEGIN IMMEDIATE")
        other.close()


# ===================================================================
# TestKeyStoreWAL: the key store opens its database in WAL mode
# ===================================================================


class TestKeyStoreWAL:

    def test_key_store_uses_wal(self, tmp_path):
        from citadel_keyvault.vault.key_store import KeyStore

        store = KeyStore(db_path=tmp_path / "keys.db")
        conn = sqlite3.connect(str(store.db_path))
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        conn.close()
        assert mode == "wal"

    def test_vault_manager_uses_wal(self, tmp_path):
        from citadel_keyvault.vault import VaultManager

        vm = VaultManager(db_path=tmp_path / "vault.db")
        vm.add_key("TestPassword123!", "Aes256Gcm", "Argon2id-standard")
        conn = sqlite3.connect(str(vm.store.db_path))
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        conn.close()


# ===================================================================
# TestConcurrentAccess: WAL enables concurrent reads during writes
# ===================================================================


class TestConcurrentAccess:
    """Verify WAL allows concurrent read + write."""

    def test_wal_allows_concurrent_read_during_write(self, tmp_path):
        db_path = tmp_path / "concurrent.db"
        conn = db_connect(db_path)
        conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, val TEXT)")
        conn.execute("INSERT INTO t VALUES (1, 'initial')")
        conn.commit()

        # Start a write transaction (but don't commit yet)
        conn.execute("BEGIN IMMEDIATE")
        conn.execute("INSERT INTO t VALUES (2, 'writing')")

        # A second connection should still be able to READ
        reader = db_connect(db_path, row_factory=True)
        rows = reader.execute("SELECT * FROM t").fetchall()
        # Reader sees committed data (row 1), not uncommitted row 2
        assert len(rows) == 1
        assert rows[0]["val"] == "initial"

        conn.commit()
        reader.close()
        conn.close()

    def test_busy_timeout_prevents_immediate_failure(self, tmp_path):
        db_path = tmp_path / "busy.db"
        # Use check_same_thread=False so we can release lock from another thread
        conn1 = db_connect(db_path, check_same_thread=False)
        conn1.execute("CREATE TABLE t (id INTEGER)")
        conn1.commit()

        # Lock the database with an exclusive transaction
        conn1.execute("BEGIN EXCLUSIVE")

        conn2 = db_connect(db_path, check_same_thread=False)

        # Release the lock from another thread after a short delay
        def release():
            time.sleep(0.1)
            conn1.commit()

        t = threading.Thread(target=release)
        t.start()

        # This should succeed because busy_timeout (5000ms) > delay (100ms)
        conn2.execute("INSERT INTO t VALUES (1)")
        conn2.commit()

        t.join()
        conn1.close()
        conn2.close()

    def test_multiple_readers_no_blocking(self, tmp_path):
        db_path = tmp_path / "readers.db"
        conn = db_connect(db_path)
        conn.execute("CREATE TABLE t (id INTEGER)")
        for i in range(100):
            conn.execute("INSERT INTO t VALUES (?)", (i,))
        conn.commit()
        conn.close()

        # Open 5 concurrent readers: all should succeed
        results = []
        errors = []

        def reader():
            try:
                c = db_connect(db_path)
                count = c.execute("SELECT COUNT(*) FROM t").fetchone()[0]
                results.append(count)
                c.close()
            except Exception as e:
                errors.append(str(e))

        threads = [threading.Thread(target=reader) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(errors) == 0
        assert all(r == 100 for r in results)


# ===================================================================
# TestWALPersistence: WAL mode is persistent across connections
# ===================================================================


class TestWALPersistence:
    """Verify WAL mode sticks after first connection closes."""

    def test_wal_persists_across_connections(self, tmp_path):
        db_path = tmp_path / "persist.db"

        # First connection sets WAL
        conn1 = db_connect(db_path)
        conn1.execute("CREATE TABLE t (id INTEGER)")
        conn1.commit()
        conn1.close()

        # Second connection (raw sqlite3, no PRAGMA) should still see WAL
        conn2 = sqlite3.connect(str(db_path))
        mode = conn2.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"
        conn2.close()

    def test_wal_creates_sidecar_files(self, tmp_path):
        db_path = tmp_path / "sidecar.db"
        conn = db_connect(db_path)
        conn.execute("CREATE TABLE t (id INTEGER)")
        conn.commit()

        # WAL creates -wal and -shm sidecar files
        wal_path = Path(str(db_path) + "-wal")
        shm_path = Path(str(db_path) + "-shm")
        assert wal_path.exists() or shm_path.exists()
        conn.close()
