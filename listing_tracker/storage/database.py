# listing_tracker/storage/database.py

"""SQLite schema and unit-of-work handling shared by the stores."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from listing_tracker.config.settings import Settings
from listing_tracker.core.deadline import Deadline
from listing_tracker.core.exceptions import OperationCancelled, StoreError

logger = logging.getLogger("listing_tracker.storage.database")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS principals (
    id            TEXT PRIMARY KEY,
    username      TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS listings (
    id         TEXT PRIMARY KEY,
    owner_id   TEXT NOT NULL,
    url        TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (owner_id, url)
);

CREATE TABLE IF NOT EXISTS snapshots (
    id                TEXT    PRIMARY KEY,
    listing_id        TEXT    NOT NULL
                      REFERENCES listings(id) ON DELETE CASCADE,
    version           INTEGER NOT NULL CHECK (version > 0),
    retrieved_at      TEXT    NOT NULL,
    name              TEXT    NOT NULL,
    description       TEXT    NOT NULL,
    price_minor_units INTEGER NOT NULL,
    currency          TEXT    NOT NULL,
    availability      TEXT    NOT NULL,
    raw_payload       TEXT    NOT NULL,
    UNIQUE (listing_id, version)
);

CREATE INDEX IF NOT EXISTS idx_listings_owner_created
    ON listings(owner_id, created_at);
"""

# Statements between progress-handler callbacks
_PROGRESS_STEPS = 1000


def is_unique_violation(
    exc: sqlite3.IntegrityError, *columns: str,
) -> bool:
    """True if *exc* is a UNIQUE violation naming every one of *columns*."""
    message = str(exc)
    if "UNIQUE constraint failed" not in message:
        return False
    return all(column in message for column in columns)


class Database:
    """Opens one SQLite connection per unit of work.

    Nothing is cached between calls, so different listings can be
    written from different threads without sharing a connection.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        busy_timeout: float | None = None,
    ) -> None:
        self.path = db_path or Settings.DB_PATH
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout = (
            busy_timeout if busy_timeout is not None
            else Settings.DB_BUSY_TIMEOUT
        )
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        logger.debug("Database ready at %s", self.path)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a fresh autocommit connection and close it afterwards."""
        try:
            conn = sqlite3.connect(
                str(self.path),
                timeout=self.busy_timeout,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StoreError("Failed to open database", exc) from exc
        try:
            conn.execute("PRAGMA foreign_keys=ON")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self,
        deadline: Deadline | None = None,
        operation: str = "transaction",
    ) -> Iterator[sqlite3.Connection]:
        """All-or-nothing unit of work.

        The write lock is taken up front (``BEGIN IMMEDIATE``). When a
        *deadline* is given, in-flight statements are interrupted once it
        fires and the commit is refused, so an expired deadline never
        leaves a partial write behind.
        """
        with self.connect() as conn:
            if deadline is not None:
                deadline.check(operation)
                conn.set_progress_handler(
                    lambda: 1 if deadline.expired else 0,
                    _PROGRESS_STEPS,
                )
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                if deadline is not None:
                    deadline.check(operation)
                conn.execute("COMMIT")
            except sqlite3.OperationalError as exc:
                self._rollback(conn)
                if deadline is not None and deadline.expired:
                    raise OperationCancelled(operation) from exc
                raise StoreError(f"{operation} failed", exc) from exc
            except BaseException:
                self._rollback(conn)
                raise

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        # The progress handler would interrupt the ROLLBACK itself
        conn.set_progress_handler(None, 0)
        if conn.in_transaction:
            conn.execute("ROLLBACK")
