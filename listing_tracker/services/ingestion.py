# listing_tracker/services/ingestion.py

"""Fetch → extract → verify → append, for one listing or one owner's set."""

import asyncio
import logging
import time
from dataclasses import dataclass
from uuid import UUID

from listing_tracker.config.settings import Settings
from listing_tracker.core.deadline import Deadline
from listing_tracker.core.exceptions import (
    ListingDeactivated,
    ListingTrackerError,
    MalformedStructuredData,
    OperationCancelled,
    StructuredDataNotFound,
    TransportError,
    URLMismatch,
    VersionConflict,
)
from listing_tracker.core.url_utils import verify_listing_url
from listing_tracker.models.listing import Listing
from listing_tracker.scrapers.listing_fetcher import ListingFetcher
from listing_tracker.storage.snapshot_store import SnapshotStore

logger = logging.getLogger("listing_tracker.ingestion")

STATUS_STORED = "stored"

_STATUS_BY_ERROR: list[tuple[type[ListingTrackerError], str]] = [
    (ListingDeactivated, "deactivated"),
    (StructuredDataNotFound, "not_found"),
    (MalformedStructuredData, "malformed"),
    (URLMismatch, "url_mismatch"),
    (VersionConflict, "conflict"),
    (TransportError, "transport_error"),
    (OperationCancelled, "cancelled"),
]


def status_for(exc: ListingTrackerError) -> str:
    """Short status label for a typed pipeline failure."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return "error"


@dataclass
class IngestionResult:
    """Outcome of one listing in a polling pass."""

    listing_id: UUID
    url: str
    status: str
    version: int | None = None
    attempts: int = 1
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_STORED


class IngestionService:
    """Runs the extraction-and-append pipeline for tracked listings."""

    def __init__(
        self, fetcher: ListingFetcher, store: SnapshotStore,
    ) -> None:
        self.fetcher = fetcher
        self.store = store

    def ingest(
        self, listing: Listing, deadline: Deadline | None = None,
    ) -> int:
        """Take one snapshot of *listing* and return its version.

        Every failure propagates as its typed exception; nothing is
        retried here.
        """
        record = self.fetcher.fetch(listing.url, deadline=deadline)
        verify_listing_url(listing.url, record.url)
        return self.store.append_snapshot(
            listing.id, record, deadline=deadline,
        )

    def ingest_with_retry(
        self,
        listing: Listing,
        attempts: int = 1,
        deadline_seconds: float | None = None,
    ) -> IngestionResult:
        """Ingest one listing, retrying only on :class:`VersionConflict`.

        Each attempt re-fetches the page so the retried snapshot is
        never older than the one that won the race.
        """
        attempts = max(1, attempts)
        attempt = 0
        while True:
            attempt += 1
            deadline = (
                Deadline.after(deadline_seconds)
                if deadline_seconds is not None
                else None
            )
            try:
                version = self.ingest(listing, deadline=deadline)
            except VersionConflict as exc:
                if attempt < attempts:
                    logger.info(
                        "Conflict on %s (attempt %d/%d), retrying",
                        listing.url,
                        attempt,
                        attempts,
                    )
                    time.sleep(Settings.APPEND_RETRY_DELAY * attempt)
                    continue
                failure: ListingTrackerError = exc
            except ListingTrackerError as exc:
                logger.warning(
                    "Ingestion of %s failed: %s", listing.url, exc.message,
                )
                failure = exc
            else:
                return IngestionResult(
                    listing_id=listing.id,
                    url=listing.url,
                    status=STATUS_STORED,
                    version=version,
                    attempts=attempt,
                )
            return IngestionResult(
                listing_id=listing.id,
                url=listing.url,
                status=status_for(failure),
                attempts=attempt,
                message=failure.message,
            )

    async def poll_once(
        self,
        owner_id: UUID,
        attempts: int = 1,
        deadline_seconds: float | None = None,
    ) -> list[IngestionResult]:
        """Take one snapshot of every listing the owner tracks.

        Listings are processed concurrently in worker threads; results
        come back in the store's listing order.
        """
        listings = self.store.list_listings(owner_id)
        tasks = [
            asyncio.to_thread(
                self.ingest_with_retry,
                listing,
                attempts,
                deadline_seconds,
            )
            for listing in listings
        ]
        results: list[IngestionResult] = list(await asyncio.gather(*tasks))

        stored = sum(1 for r in results if r.ok)
        logger.info(
            "Polling pass for %s: %d/%d listings stored",
            owner_id,
            stored,
            len(results),
        )
        return results
