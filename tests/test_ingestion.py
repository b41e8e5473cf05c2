# tests/test_ingestion.py

"""Tests for the fetch → extract → verify → append pipeline."""

import asyncio
import shutil
import tempfile
import unittest
import uuid
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

from listing_tracker.core.exceptions import (
    ListingDeactivated,
    StructuredDataNotFound,
    TransportError,
    URLMismatch,
    VersionConflict,
)
from listing_tracker.models.product import Availability, Offer, ProductRecord
from listing_tracker.scrapers.listing_fetcher import ListingFetcher
from listing_tracker.services.ingestion import IngestionService, status_for
from listing_tracker.storage.database import Database
from listing_tracker.storage.snapshot_store import SnapshotStore

_URL = "https://www.olx.ro/d/oferta/mouse-IDabc.html"


def _record(url: str = _URL) -> ProductRecord:
    return ProductRecord(
        name="Mouse",
        url=url,
        offers=Offer(
            availability=Availability.IN_STOCK,
            price=Decimal("49.99"),
            price_currency="RON",
        ),
        raw_payload="{}",
    )


class _PipelineTestCase(unittest.TestCase):
    """Real store in a temp dir, fetcher mocked out."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.db = Database(db_path=Path(self.tmp_dir) / "test.db")
        self.store = SnapshotStore(self.db)
        self.fetcher = MagicMock(spec=ListingFetcher)
        self.service = IngestionService(self.fetcher, self.store)
        self.owner = uuid.uuid4()
        self.listing = self.store.track_listing(self.owner, _URL)

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)


class TestIngest(_PipelineTestCase):
    """Single-attempt ingest()."""

    def test_stores_snapshot(self) -> None:
        self.fetcher.fetch.return_value = _record()
        self.assertEqual(self.service.ingest(self.listing), 1)
        self.assertEqual(self.store.latest_snapshot(self.listing.id).price_minor_units, 4999)

    def test_url_mismatch_writes_nothing(self) -> None:
        self.fetcher.fetch.return_value = _record("https://www.olx.ro/d/oferta/other-IDzzz.html")
        with self.assertRaises(URLMismatch):
            self.service.ingest(self.listing)
        self.assertIsNone(self.store.latest_snapshot(self.listing.id))

    def test_empty_extracted_url_is_mismatch(self) -> None:
        self.fetcher.fetch.return_value = _record("")
        with self.assertRaises(URLMismatch):
            self.service.ingest(self.listing)

    def test_tracking_params_do_not_cause_mismatch(self) -> None:
        self.fetcher.fetch.return_value = _record(f"{_URL}?reason=observed_ad")
        self.assertEqual(self.service.ingest(self.listing), 1)

    def test_fetch_errors_propagate(self) -> None:
        self.fetcher.fetch.side_effect = ListingDeactivated(_URL)
        with self.assertRaises(ListingDeactivated):
            self.service.ingest(self.listing)


class TestIngestWithRetry(_PipelineTestCase):
    """Driver-side retry policy."""

    def test_success_reports_version(self) -> None:
        self.fetcher.fetch.return_value = _record()
        result = self.service.ingest_with_retry(self.listing, attempts=3)
        self.assertTrue(result.ok)
        self.assertEqual(result.status, "stored")
        self.assertEqual(result.version, 1)
        self.assertEqual(result.attempts, 1)

    def test_conflict_is_retried_with_fresh_fetch(self) -> None:
        self.fetcher.fetch.return_value = _record()
        real_append = self.store.append_snapshot
        calls = {"n": 0}

        def flaky_append(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise VersionConflict(str(self.listing.id), 1)
            return real_append(*args, **kwargs)

        with patch.object(self.store, "append_snapshot", side_effect=flaky_append):
            result = self.service.ingest_with_retry(self.listing, attempts=3)

        self.assertEqual(result.status, "stored")
        self.assertEqual(result.attempts, 2)
        self.assertEqual(self.fetcher.fetch.call_count, 2)

    def test_conflict_exhausts_attempts(self) -> None:
        self.fetcher.fetch.return_value = _record()
        with patch.object(
            self.store,
            "append_snapshot",
            side_effect=VersionConflict(str(self.listing.id), 1),
        ):
            result = self.service.ingest_with_retry(self.listing, attempts=2)
        self.assertEqual(result.status, "conflict")
        self.assertEqual(result.attempts, 2)
        self.assertFalse(result.ok)

    def test_other_failures_are_not_retried(self) -> None:
        self.fetcher.fetch.side_effect = TransportError("boom", url=_URL, status_code=503)
        result = self.service.ingest_with_retry(self.listing, attempts=5)
        self.assertEqual(result.status, "transport_error")
        self.assertEqual(result.attempts, 1)
        self.assertEqual(self.fetcher.fetch.call_count, 1)

    def test_status_labels(self) -> None:
        self.assertEqual(status_for(StructuredDataNotFound()), "not_found")
        self.assertEqual(status_for(URLMismatch(_URL, "")), "url_mismatch")
        self.assertEqual(status_for(ListingDeactivated(_URL)), "deactivated")


class TestPollOnce(_PipelineTestCase):
    """One polling pass over an owner's listings."""

    def test_every_listing_gets_a_result(self) -> None:
        second = self.store.track_listing(self.owner, "https://www.olx.ro/d/oferta/gone-IDdef.html")

        def fetch(url, deadline=None):
            if url == second.url:
                raise ListingDeactivated(url)
            return _record(url)

        self.fetcher.fetch.side_effect = fetch
        results = asyncio.run(self.service.poll_once(self.owner, attempts=2))

        by_id = {r.listing_id: r for r in results}
        self.assertEqual(by_id[self.listing.id].status, "stored")
        self.assertEqual(by_id[second.id].status, "deactivated")
        self.assertEqual(len(self.store.list_snapshots(self.owner, self.listing.id)), 1)

    def test_hostile_price_does_not_stop_the_pass(self) -> None:
        second = self.store.track_listing(self.owner, "https://www.olx.ro/d/oferta/huge-IDhuge.html")
        huge = ProductRecord(
            url=second.url,
            offers=Offer(price=Decimal("1e30"), price_currency="RON"),
        )

        def fetch(url, deadline=None):
            return huge if url == second.url else _record(url)

        self.fetcher.fetch.side_effect = fetch
        results = asyncio.run(self.service.poll_once(self.owner))

        by_id = {r.listing_id: r for r in results}
        self.assertEqual(by_id[self.listing.id].status, "stored")
        self.assertEqual(by_id[second.id].status, "malformed")
        self.assertIsNone(self.store.latest_snapshot(second.id))

    def test_no_listings(self) -> None:
        results = asyncio.run(self.service.poll_once(uuid.uuid4()))
        self.assertEqual(results, [])

    def test_repeated_passes_append_versions(self) -> None:
        self.fetcher.fetch.return_value = _record()
        for _ in range(3):
            asyncio.run(self.service.poll_once(self.owner))
        snaps = self.store.list_snapshots(self.owner, self.listing.id)
        self.assertEqual([s.version for s in snaps], [3, 2, 1])


class TestEndToEnd(unittest.TestCase):
    """HTML bytes through a real fetcher, extractor and store."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = SnapshotStore(Database(db_path=Path(self.tmp_dir) / "e2e.db"))

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_mouse_page_becomes_version_one(self) -> None:
        body = (
            b"<html><body><h1>Mouse</h1>"
            b'<script type="application/ld+json">'
            b'{"name":"Mouse","url":"' + _URL.encode() + b'",'
            b'"offers":{"price":49.99,"priceCurrency":"RON","availability":"InStock"}}'
            b"</script></body></html>"
        )
        resp = MagicMock()
        resp.status_code = 200
        resp.headers = {"content-type": "text/html; charset=utf-8"}
        resp.iter_content.return_value = iter([body[:40], body[40:]])
        session = MagicMock()
        session.get.return_value = resp

        owner = uuid.uuid4()
        listing = self.store.track_listing(owner, _URL)
        service = IngestionService(ListingFetcher(session), self.store)

        result = service.ingest_with_retry(listing)

        self.assertEqual(result.status, "stored")
        self.assertEqual(result.version, 1)
        snap = self.store.latest_snapshot(listing.id)
        self.assertEqual(snap.name, "Mouse")
        self.assertEqual(snap.price_minor_units, 4999)
        self.assertEqual(snap.currency, "RON")
        self.assertEqual(snap.availability, "in_stock")


if __name__ == "__main__":
    unittest.main()
