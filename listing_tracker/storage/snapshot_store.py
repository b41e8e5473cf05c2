# listing_tracker/storage/snapshot_store.py

"""Append-only, versioned snapshot history per tracked listing."""

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from uuid import UUID

from listing_tracker.core.deadline import Deadline
from listing_tracker.core.exceptions import (
    AlreadyTracked,
    ListingNotFound,
    MalformedStructuredData,
    StoreError,
    VersionConflict,
)
from listing_tracker.core.url_utils import normalize_url
from listing_tracker.models.listing import Listing, Snapshot
from listing_tracker.models.product import ProductRecord
from listing_tracker.storage.database import Database, is_unique_violation

logger = logging.getLogger("listing_tracker.storage.snapshots")

_SNAPSHOT_COLUMNS = (
    "s.id, s.listing_id, s.version, s.retrieved_at, s.name, "
    "s.description, s.price_minor_units, s.currency, "
    "s.availability, s.raw_payload"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_listing(row: tuple) -> Listing:
    return Listing(
        id=UUID(row[0]),
        owner_id=UUID(row[1]),
        url=row[2],
        created_at=datetime.fromisoformat(row[3]),
    )


def _row_to_snapshot(row: tuple) -> Snapshot:
    return Snapshot(
        id=UUID(row[0]),
        listing_id=UUID(row[1]),
        version=row[2],
        retrieved_at=datetime.fromisoformat(row[3]),
        name=row[4],
        description=row[5],
        price_minor_units=row[6],
        currency=row[7],
        availability=row[8],
        raw_payload=row[9],
    )


class SnapshotStore:
    """Listings and their snapshot history on top of :class:`Database`."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ── Tracking ─────────────────────────────────────────

    def track_listing(
        self,
        owner_id: UUID,
        url: str,
        deadline: Deadline | None = None,
    ) -> Listing:
        """Start tracking *url* for *owner_id*.

        Raises:
            AlreadyTracked: the owner already tracks this URL. Callers
                should treat it as an already-satisfied request.
        """
        listing = Listing(
            id=uuid.uuid4(),
            owner_id=owner_id,
            url=normalize_url(url),
            created_at=_utcnow(),
        )
        with self.db.transaction(deadline, "track_listing") as conn:
            try:
                conn.execute(
                    "INSERT INTO listings (id, owner_id, url, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        str(listing.id),
                        str(owner_id),
                        listing.url,
                        listing.created_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if is_unique_violation(exc, "listings.owner_id", "listings.url"):
                    raise AlreadyTracked(str(owner_id), listing.url) from exc
                raise StoreError("Failed to track listing", exc) from exc

        logger.info("Owner %s now tracks %s", owner_id, listing.url)
        return listing

    def list_listings(self, owner_id: UUID) -> list[Listing]:
        """Return every listing tracked by *owner_id*, newest first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT id, owner_id, url, created_at "
                "FROM listings WHERE owner_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (str(owner_id),),
            ).fetchall()
        return [_row_to_listing(r) for r in rows]

    def get_listing(self, listing_id: UUID) -> Listing:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT id, owner_id, url, created_at "
                "FROM listings WHERE id = ?",
                (str(listing_id),),
            ).fetchone()
        if row is None:
            raise ListingNotFound(str(listing_id))
        return _row_to_listing(row)

    # ── Snapshots ────────────────────────────────────────

    def _current_version(
        self, conn: sqlite3.Connection, listing_id: UUID,
    ) -> int:
        """Highest stored version for a listing, 0 if none.

        Advisory only: the UNIQUE(listing_id, version) constraint decides.
        """
        row = conn.execute(
            "SELECT COALESCE(MAX(version), 0) "
            "FROM snapshots WHERE listing_id = ?",
            (str(listing_id),),
        ).fetchone()
        return int(row[0])

    def append_snapshot(
        self,
        listing_id: UUID,
        record: ProductRecord,
        retrieved_at: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> int:
        """Append *record* as the next version of *listing_id*.

        Writers take the database write lock up front (``BEGIN
        IMMEDIATE``), so two appends never read the same current version
        through this store. The UNIQUE(listing_id, version) check and the
        resulting :class:`VersionConflict` are a backstop for writers that
        bypass that lock, such as another process on a shared file opened
        without it.

        Returns:
            The version assigned to the new snapshot (1 for the first).

        Raises:
            ListingNotFound: no listing with that id.
            MalformedStructuredData: the price does not fit the stored
                integer column.
            VersionConflict: a concurrent writer claimed the version
                first. Nothing was written; the caller may retry.
            OperationCancelled: *deadline* fired; nothing was written.
        """
        ts = (retrieved_at or _utcnow()).isoformat()
        try:
            price_minor_units = record.price_minor_units
        except ValueError as exc:
            raise MalformedStructuredData(
                f"Price cannot be stored: {exc}", original_error=exc,
            ) from exc

        with self.db.transaction(deadline, "append_snapshot") as conn:
            exists = conn.execute(
                "SELECT 1 FROM listings WHERE id = ?",
                (str(listing_id),),
            ).fetchone()
            if exists is None:
                raise ListingNotFound(str(listing_id))

            version = self._current_version(conn, listing_id) + 1
            try:
                conn.execute(
                    "INSERT INTO snapshots ("
                    "id, listing_id, version, retrieved_at, name, "
                    "description, price_minor_units, currency, "
                    "availability, raw_payload"
                    ") VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        str(uuid.uuid4()),
                        str(listing_id),
                        version,
                        ts,
                        record.name,
                        record.description,
                        price_minor_units,
                        record.offers.price_currency,
                        record.offers.availability.value,
                        record.raw_payload,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if is_unique_violation(
                    exc, "snapshots.listing_id", "snapshots.version",
                ):
                    logger.info(
                        "Version %d of listing %s lost to a concurrent writer",
                        version,
                        listing_id,
                    )
                    raise VersionConflict(str(listing_id), version) from exc
                raise StoreError("Failed to append snapshot", exc) from exc

        logger.info(
            "Stored snapshot v%d for listing %s", version, listing_id,
        )
        return version

    def list_snapshots(
        self, owner_id: UUID, listing_id: UUID,
    ) -> list[Snapshot]:
        """Return the owner's snapshots of a listing, newest version first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                f"SELECT {_SNAPSHOT_COLUMNS} "
                "FROM listings l "
                "JOIN snapshots s ON s.listing_id = l.id "
                "WHERE l.owner_id = ? AND l.id = ? "
                "ORDER BY s.version DESC",
                (str(owner_id), str(listing_id)),
            ).fetchall()
        return [_row_to_snapshot(r) for r in rows]

    def latest_snapshot(self, listing_id: UUID) -> Snapshot | None:
        with self.db.connect() as conn:
            row = conn.execute(
                f"SELECT {_SNAPSHOT_COLUMNS} "
                "FROM snapshots s WHERE s.listing_id = ? "
                "ORDER BY s.version DESC LIMIT 1",
                (str(listing_id),),
            ).fetchone()
        return _row_to_snapshot(row) if row else None
