# listing_tracker/extractors/structured_data.py

"""Streaming extractor for the JSON-LD product block of a listing page.

The page is never built into a document tree up front: body chunks are
fed to an incremental ``lxml`` HTML pull parser and ``<script>`` tokens
are consumed lazily until the first structured-data block turns up or
the stream runs dry.
"""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import BinaryIO

from lxml import etree

from listing_tracker.config.settings import Settings
from listing_tracker.core.deadline import Deadline
from listing_tracker.core.exceptions import (
    MalformedStructuredData,
    StructuredDataNotFound,
)
from listing_tracker.extractors.product_schema import decode_product
from listing_tracker.models.product import ProductRecord

logger = logging.getLogger("listing_tracker.extractors.structured_data")


@dataclass(frozen=True)
class ScriptToken:
    """A ``<script>`` element as seen by the scanner."""

    attrs: dict[str, str]
    text: str


class _ScanState:
    """Counters reported back when no block is found."""

    def __init__(self) -> None:
        self.bytes_read = 0
        self.scripts_seen = 0


def _iter_chunks(
    source: BinaryIO | Iterable[bytes], chunk_size: int,
) -> Iterator[bytes]:
    read = getattr(source, "read", None)
    if read is not None:
        return iter(lambda: read(chunk_size), b"")
    return iter(source)  # type: ignore[arg-type]


def _new_parser(encoding: str) -> etree.HTMLPullParser:
    return etree.HTMLPullParser(events=("end",), encoding=encoding)


def _prune(element: etree._Element) -> None:
    """Drop a finished element and everything before it from the tree.

    Only the chain of still-open ancestors survives, so memory stays flat
    however large the page is.
    """
    element.clear(keep_tail=True)
    parent = element.getparent()
    if parent is None:
        return
    while element.getprevious() is not None:
        del parent[0]


def _drain(parser: etree.HTMLPullParser) -> Iterator[ScriptToken]:
    for _event, element in parser.read_events():
        token = None
        if element.tag == "script":
            token = ScriptToken(
                attrs={str(k).lower(): str(v) for k, v in element.attrib.items()},
                text=element.text or "",
            )
        _prune(element)
        if token is not None:
            yield token


def iter_script_tokens(
    source: BinaryIO | Iterable[bytes],
    *,
    encoding: str | None = None,
    chunk_size: int | None = None,
    deadline: Deadline | None = None,
    state: _ScanState | None = None,
) -> Iterator[ScriptToken]:
    """Yield ``<script>`` tokens from an HTML byte stream as they complete.

    The generator is finite and not restartable. It ends silently when the
    stream is exhausted, when the parser gives up on the input, or when
    *deadline* fires; all three look the same to the consumer.
    """
    try:
        parser = _new_parser(encoding or Settings.HTML_ENCODING)
    except LookupError:
        logger.debug(
            "Unknown charset %r, falling back to %s",
            encoding,
            Settings.HTML_ENCODING,
        )
        parser = _new_parser(Settings.HTML_ENCODING)
    size = chunk_size or Settings.READ_CHUNK_SIZE

    for chunk in _iter_chunks(source, size):
        if deadline is not None and deadline.expired:
            logger.debug("Deadline expired mid-stream, treating as end of input")
            return
        if not chunk:
            continue
        if state is not None:
            state.bytes_read += len(chunk)
        try:
            parser.feed(chunk)
        except etree.LxmlError as exc:
            logger.debug("HTML tokenizer gave up: %s", exc)
            return
        yield from _drain(parser)

    try:
        parser.close()
    except etree.LxmlError as exc:
        # Empty or whitespace-only documents end up here
        logger.debug("HTML tokenizer closed with error: %s", exc)
        return
    yield from _drain(parser)


class StructuredDataExtractor:
    """Locate and decode the first JSON-LD block of a listing page.

    Stateless between calls; one instance can serve any number of
    concurrent extractions.
    """

    def __init__(
        self,
        media_type: str | None = None,
        chunk_size: int | None = None,
    ) -> None:
        self.media_type = (
            media_type or Settings.STRUCTURED_DATA_TYPE
        ).strip().lower()
        self.chunk_size = chunk_size or Settings.READ_CHUNK_SIZE

    def is_structured_data(self, token: ScriptToken) -> bool:
        """True if the token's ``type`` attribute names the JSON-LD media type."""
        return token.attrs.get("type", "").strip().lower() == self.media_type

    def find_payload(
        self,
        source: BinaryIO | Iterable[bytes],
        *,
        encoding: str | None = None,
        deadline: Deadline | None = None,
    ) -> str:
        """Return the trimmed text of the first JSON-LD block that has text.

        Raises:
            StructuredDataNotFound: the stream ended first.
            MalformedStructuredData: that block holds only whitespace.
        """
        state = _ScanState()
        tokens = iter_script_tokens(
            source,
            encoding=encoding,
            chunk_size=self.chunk_size,
            deadline=deadline,
            state=state,
        )
        for token in tokens:
            state.scripts_seen += 1
            if not self.is_structured_data(token):
                continue
            if not token.text:
                # An empty element carries no text token; keep scanning
                continue
            payload = token.text.strip()
            if not payload:
                raise MalformedStructuredData("Structured-data block is blank")
            return payload

        logger.info(
            "No JSON-LD block after %d bytes and %d scripts",
            state.bytes_read,
            state.scripts_seen,
        )
        raise StructuredDataNotFound(
            bytes_read=state.bytes_read,
            scripts_seen=state.scripts_seen,
        )

    def extract(
        self,
        source: BinaryIO | Iterable[bytes],
        *,
        encoding: str | None = None,
        deadline: Deadline | None = None,
    ) -> ProductRecord:
        """Extract the product record embedded in an HTML page.

        Args:
            source: Binary stream or iterable of byte chunks of one page.
            encoding: Character set of the bytes (defaults to UTF-8).
            deadline: Optional expiry; firing ends the scan early.

        Returns:
            The decoded :class:`ProductRecord`.

        Raises:
            StructuredDataNotFound: no block before end of stream.
            MalformedStructuredData: the block is not a valid product.
        """
        payload = self.find_payload(
            source, encoding=encoding, deadline=deadline,
        )
        record = decode_product(payload)
        logger.debug(
            "Extracted product %r (%s %s)",
            record.name,
            record.offers.price,
            record.offers.price_currency,
        )
        return record
