# listing_tracker/storage/principal_store.py

"""Minimal principal (user) records keyed by username."""

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from uuid import UUID

import bcrypt

from listing_tracker.config.settings import Settings
from listing_tracker.core.exceptions import (
    PrincipalAlreadyExists,
    PrincipalNotFound,
    StoreError,
)
from listing_tracker.storage.database import Database, is_unique_violation

logger = logging.getLogger("listing_tracker.storage.principals")


class PrincipalStore:
    """Creates principals and resolves credentials to a principal id.

    The snapshot store never consults this table; it only ever sees the
    opaque id returned here.
    """

    def __init__(self, db: Database, bcrypt_rounds: int | None = None) -> None:
        self.db = db
        self.bcrypt_rounds = bcrypt_rounds or Settings.BCRYPT_ROUNDS

    def create_principal(self, username: str, password: str) -> UUID:
        """Store a new principal with a bcrypt password hash."""
        password_hash = bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt(rounds=self.bcrypt_rounds),
        ).decode("utf-8")
        principal_id = uuid.uuid4()

        with self.db.transaction(operation="create_principal") as conn:
            try:
                conn.execute(
                    "INSERT INTO principals (id, username, password_hash, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        str(principal_id),
                        username,
                        password_hash,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if is_unique_violation(exc, "principals.username"):
                    raise PrincipalAlreadyExists(username) from exc
                raise StoreError("Failed to create principal", exc) from exc

        logger.info("Created principal %s (%s)", username, principal_id)
        return principal_id

    def get_principal_id(self, username: str, password: str) -> UUID:
        """Return the id of the principal matching the credentials.

        Unknown usernames and wrong passwords both raise
        :class:`PrincipalNotFound`.
        """
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT id, password_hash FROM principals WHERE username = ?",
                (username,),
            ).fetchone()
        if row is None:
            raise PrincipalNotFound(username)
        if not bcrypt.checkpw(password.encode("utf-8"), row[1].encode("utf-8")):
            logger.warning("Password mismatch for principal %s", username)
            raise PrincipalNotFound(username)
        return UUID(row[0])
