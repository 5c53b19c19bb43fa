# Core Module - Central SQLite Connection Helper
#
# Every key vault database access goes through `connect()` from this
# module instead of raw `sqlite3.connect()`. This ensures:
#
#   - WAL journal mode (concurrent readers + one writer)
#   - busy_timeout to avoid SQLITE_BUSY under contention
#   - foreign_keys enforcement on every connection
#
# Writers that must check and write under one lock use
# `immediate_transaction()`, which takes the SQLite RESERVED lock up front
# (BEGIN IMMEDIATE) so no other writer can slip in between the check and
# the write.

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
    check_same_thread: bool = True,
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and safe PRAGMAs.

    Args:
        db_path: Path to the database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        check_same_thread: Passed to sqlite3.connect().

    Returns:
        sqlite3.Connection with WAL mode, busy_timeout, and foreign_keys.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=check_same_thread)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def immediate_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside ``BEGIN IMMEDIATE`` ... ``COMMIT``.

    Any exception rolls the whole block back and is re-raised, so the
    database is left exactly as it was before the block started.

    Usage:
        with connect(path) as conn, immediate_transaction(conn):
            conn.execute("UPDATE ...")
            conn.execute("UPDATE ...")
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()
