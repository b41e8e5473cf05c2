# listing_tracker/scrapers/listing_fetcher.py

"""HTTP boundary in front of the structured-data extractor."""

import logging
import re

from curl_cffi import CurlError
from curl_cffi import requests as curl_requests

from listing_tracker.config.settings import Settings
from listing_tracker.core.deadline import Deadline
from listing_tracker.core.exceptions import ListingDeactivated, TransportError
from listing_tracker.extractors.structured_data import StructuredDataExtractor
from listing_tracker.models.product import ProductRecord

logger = logging.getLogger("listing_tracker.fetcher")

HTTP_OK = 200
HTTP_GONE = 410

_CHARSET_RE = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)


def build_session() -> curl_requests.Session:
    """Create a browser-impersonating session from settings.

    The session is handed to :class:`ListingFetcher` by the caller; no
    module keeps one around.
    """
    return curl_requests.Session(
        impersonate=Settings.IMPERSONATE_BROWSER,
    )


def check_status(status_code: int, url: str) -> None:
    """Gate a response before its body reaches the extractor.

    Raises:
        ListingDeactivated: 410 Gone, the listing was taken down.
        TransportError: any other non-200 status.
    """
    if status_code == HTTP_GONE:
        raise ListingDeactivated(url)
    if status_code != HTTP_OK:
        raise TransportError(
            f"Request responded with status {status_code}",
            url=url,
            status_code=status_code,
        )


def response_charset(resp: curl_requests.Response) -> str | None:
    """Charset declared in the Content-Type header, if any."""
    content_type = resp.headers.get("content-type") or ""
    match = _CHARSET_RE.search(content_type)
    return match.group(1) if match else None


class ListingFetcher:
    """Fetch a listing page and extract its product record.

    No retries happen here: every failure goes back to the caller as a
    typed exception.
    """

    def __init__(
        self,
        session: curl_requests.Session,
        extractor: StructuredDataExtractor | None = None,
        timeout: float | None = None,
        chunk_size: int | None = None,
    ) -> None:
        self.session = session
        self.extractor = extractor or StructuredDataExtractor()
        self.timeout = timeout or Settings.REQUEST_TIMEOUT
        self.chunk_size = chunk_size or Settings.READ_CHUNK_SIZE

    def _request_timeout(self, deadline: Deadline | None) -> float:
        if deadline is None:
            return self.timeout
        remaining = deadline.remaining()
        if remaining is None:
            return self.timeout
        return min(self.timeout, remaining)

    def fetch(
        self, url: str, deadline: Deadline | None = None,
    ) -> ProductRecord:
        """GET *url* and extract the embedded product record.

        Raises:
            ListingDeactivated: the page answered 410 Gone.
            TransportError: other status codes or network failures.
            StructuredDataNotFound: no JSON-LD block on the page.
            MalformedStructuredData: the block is not a valid product.
            OperationCancelled: *deadline* fired before the request.
        """
        if deadline is not None:
            deadline.check("fetch")

        headers: dict[str, str] = {**Settings.DEFAULT_HEADERS}
        try:
            resp = self.session.get(
                url,
                headers=headers,
                timeout=self._request_timeout(deadline),
                stream=True,
            )
        except CurlError as exc:
            logger.warning("Request error for %s: %s", url, exc)
            raise TransportError(
                "Failed to send request", url=url, original_error=exc,
            ) from exc

        try:
            logger.debug("HTTP %d for %s", resp.status_code, url)
            check_status(resp.status_code, url)
            return self.extractor.extract(
                resp.iter_content(chunk_size=self.chunk_size),
                encoding=response_charset(resp),
                deadline=deadline,
            )
        except CurlError as exc:
            logger.warning("Body read failed for %s: %s", url, exc)
            raise TransportError(
                "Failed to read response body", url=url, original_error=exc,
            ) from exc
        finally:
            resp.close()
