"""Key record store: durable table of wrapped keys.

Follows the core.db.connect() pattern: SQLite + WAL, one fresh connection
per call. Every write that touches the uuid or default-key invariants runs
inside a single BEGIN IMMEDIATE transaction, and the schema backs both
invariants with unique indexes, so a violating write is rolled back and
the table is left unchanged.
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Union

from .exceptions import InvariantViolation, NotFound
from .models import CipherAlgorithm, HashingProfile, KeyRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "uuid", "name", "is_default", "date_created", "cipher_algorithm",
    "hashing_profile", "kdf_salt", "wrapped_master_key", "master_key_nonce",
    "content_salt", "wrapped_content_key", "content_key_nonce", "automount",
)
_INSERT_SQL = (
    f"INSERT INTO keys ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)


class KeyStore:
    """SQLite persistence for key records.

    Args:
        db_path: Path to SQLite database file. Defaults to the configured
                 key store path.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        if db_path is None:
            from ..core.config import get_config
            db_path = get_config().db_path
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _connect(self, row_factory: bool = False) -> sqlite3.Connection:
        from ..core.db import connect as db_connect
        return db_connect(self.db_path, row_factory=row_factory)

    def _init_database(self):
        """Create the keys table and its uniqueness indexes."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS keys (
                    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
                    uuid                TEXT NOT NULL,
                    name                TEXT,
                    is_default          INTEGER NOT NULL DEFAULT 0,
                    date_created        TEXT NOT NULL,
                    cipher_algorithm    TEXT NOT NULL,
                    hashing_profile     TEXT NOT NULL,
                    kdf_salt            BLOB NOT NULL,
                    wrapped_master_key  BLOB NOT NULL,
                    master_key_nonce    BLOB NOT NULL,
                    content_salt        BLOB NOT NULL,
                    wrapped_content_key BLOB NOT NULL,
                    content_key_nonce   BLOB NOT NULL,
                    automount           INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS keys_uuid_key ON keys(uuid)"
            )
            # At most one row may carry is_default = 1
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS keys_single_default "
                "ON keys(is_default) WHERE is_default = 1"
            )
            conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Fresh connection inside BEGIN IMMEDIATE; closed afterwards."""
        from ..core.db import immediate_transaction
        conn = self._connect()
        try:
            with immediate_transaction(conn):
                yield conn
        finally:
            conn.close()

    # ── CRUD ────────────────────────────────────────────────────────

    def insert(self, record: KeyRecord) -> KeyRecord:
        """
        Insert a new key record and return it as stored.

        If ``record.is_default`` is set, the previous default is cleared in
        the same transaction.

        Raises:
            InvariantViolation: uuid already present (store unchanged).
        """
        try:
            with self._transaction() as conn:
                if record.is_default:
                    conn.execute("UPDATE keys SET is_default = 0 WHERE is_default = 1")
                conn.execute(_INSERT_SQL, self._record_values(record))
        except sqlite3.IntegrityError as e:
            raise InvariantViolation(
                f"Cannot insert key {record.uuid}: {e}"
            ) from None

        logger.info("Key record stored: %s", record.uuid)
        return self.get(record.uuid)

    def insert_missing(self, records: List[KeyRecord]) -> List[str]:
        """
        Insert every record whose uuid is not stored yet, in one transaction.

        Records are inserted as non-default. Either all missing records are
        written or, on any error, none are.

        Returns:
            uuids that were inserted

        Raises:
            InvariantViolation: A constraint rejected a row (store unchanged).
        """
        inserted = []
        try:
            with self._transaction() as conn:
                for record in records:
                    if conn.execute(
                        "SELECT 1 FROM keys WHERE uuid = ?", (record.uuid,)
                    ).fetchone() is not None:
                        continue
                    conn.execute(_INSERT_SQL, self._record_values(replace(record, is_default=False)))
                    inserted.append(record.uuid)
        except sqlite3.IntegrityError as e:
            raise InvariantViolation(f"Cannot import keys: {e}") from None

        logger.info("Key records imported: %d", len(inserted))
        return inserted

    def get(self, key_uuid: str) -> KeyRecord:
        """Return a key record. Raises NotFound if absent."""
        with self._connect(row_factory=True) as conn:
            row = conn.execute(
                "SELECT * FROM keys WHERE uuid = ?", (key_uuid,)
            ).fetchone()
        if row is None:
            raise NotFound(key_uuid)
        return self._row_to_record(row)

    def exists(self, key_uuid: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM keys WHERE uuid = ?", (key_uuid,)
            ).fetchone()
        return row is not None

    def list(self) -> List[KeyRecord]:
        """Return all key records, oldest first."""
        with self._connect(row_factory=True) as conn:
            rows = conn.execute(
                "SELECT * FROM keys ORDER BY date_created, id"
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def get_default(self) -> Optional[KeyRecord]:
        """Return the default key record, or None when no default is set."""
        with self._connect(row_factory=True) as conn:
            row = conn.execute(
                "SELECT * FROM keys WHERE is_default = 1"
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list_automount(self) -> List[KeyRecord]:
        """Return records flagged for automount, oldest first."""
        with self._connect(row_factory=True) as conn:
            rows = conn.execute(
                "SELECT * FROM keys WHERE automount = 1 ORDER BY date_created, id"
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def set_default(self, key_uuid: str) -> None:
        """
        Make ``key_uuid`` the only default key.

        Raises:
            NotFound: No such key (previous default left untouched).
        """
        try:
            with self._transaction() as conn:
                if conn.execute(
                    "SELECT 1 FROM keys WHERE uuid = ?", (key_uuid,)
                ).fetchone() is None:
                    raise NotFound(key_uuid)
                conn.execute(
                    "UPDATE keys SET is_default = 0 WHERE is_default = 1 AND uuid != ?",
                    (key_uuid,),
                )
                conn.execute(
                    "UPDATE keys SET is_default = 1 WHERE uuid = ?", (key_uuid,)
                )
        except sqlite3.IntegrityError as e:
            raise InvariantViolation(f"Cannot set default key {key_uuid}: {e}") from None

    def clear_default(self) -> bool:
        """Leave no default key. Returns True if a default was cleared."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE keys SET is_default = 0 WHERE is_default = 1"
            )
        return cursor.rowcount > 0

    def update_name(self, key_uuid: str, name: Optional[str]) -> None:
        self._update_one(key_uuid, "UPDATE keys SET name = ? WHERE uuid = ?", (name, key_uuid))

    def update_automount(self, key_uuid: str, automount: bool) -> None:
        self._update_one(
            key_uuid,
            "UPDATE keys SET automount = ? WHERE uuid = ?",
            (int(automount), key_uuid),
        )

    def replace_master_key_wrap(
        self,
        key_uuid: str,
        kdf_salt: bytes,
        wrapped_master_key: bytes,
        master_key_nonce: bytes,
    ) -> None:
        """Swap the passphrase-dependent fields together (passphrase change)."""
        self._update_one(
            key_uuid,
            """UPDATE keys
               SET kdf_salt = ?, wrapped_master_key = ?, master_key_nonce = ?
               WHERE uuid = ?""",
            (bytes(kdf_salt), bytes(wrapped_master_key), bytes(master_key_nonce), key_uuid),
        )

    def delete(self, key_uuid: str) -> bool:
        """
        Delete a key record.

        Returns:
            True if the deleted key was the default. No default remains
            afterwards in that case.

        Raises:
            NotFound: No such key.
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT is_default FROM keys WHERE uuid = ?", (key_uuid,)
            ).fetchone()
            if row is None:
                raise NotFound(key_uuid)
            conn.execute("DELETE FROM keys WHERE uuid = ?", (key_uuid,))

        logger.info("Key record deleted: %s", key_uuid)
        return bool(row[0])

    # ── helpers ──────────────────────────────────────────────────────

    def _update_one(self, key_uuid: str, sql: str, params: tuple) -> None:
        try:
            with self._transaction() as conn:
                cursor = conn.execute(sql, params)
                if cursor.rowcount == 0:
                    raise NotFound(key_uuid)
        except sqlite3.IntegrityError as e:
            raise InvariantViolation(f"Cannot update key {key_uuid}: {e}") from None

    @staticmethod
    def _record_values(record: KeyRecord) -> tuple:
        """Column values for _INSERT_SQL, in _COLUMNS order."""
        return (
            record.uuid,
            record.name,
            int(record.is_default),
            record.date_created or datetime.now(timezone.utc).isoformat(),
            record.cipher_algorithm.value,
            record.hashing_profile.value,
            bytes(record.kdf_salt),
            bytes(record.wrapped_master_key),
            bytes(record.master_key_nonce),
            bytes(record.content_salt),
            bytes(record.wrapped_content_key),
            bytes(record.content_key_nonce),
            int(record.automount),
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> KeyRecord:
        """
        Build a KeyRecord from a row and shape-check it.

        Raises:
            UnsupportedAlgorithm: Unknown cipher or hashing label.
            CorruptRecord: A salt, nonce or wrapped key has the wrong length.
        """
        record = KeyRecord(
            id=row["id"],
            uuid=row["uuid"],
            name=row["name"],
            is_default=bool(row["is_default"]),
            date_created=row["date_created"],
            cipher_algorithm=CipherAlgorithm.from_label(row["cipher_algorithm"]),
            hashing_profile=HashingProfile.from_label(row["hashing_profile"]),
            kdf_salt=row["kdf_salt"],
            wrapped_master_key=row["wrapped_master_key"],
            master_key_nonce=row["master_key_nonce"],
            content_salt=row["content_salt"],
            wrapped_content_key=row["wrapped_content_key"],
            content_key_nonce=row["content_key_nonce"],
            automount=bool(row["automount"]),
        )
        record.validate_shape()
        return record
