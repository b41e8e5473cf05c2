# listing_tracker/core/url_utils.py

"""Listing URL normalisation and the requested-vs-extracted URL check."""

import re
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from listing_tracker.core.exceptions import URLMismatch

# Campaign and session params that never identify a listing
_TRACKING_PARAMS: frozenset[str] = frozenset({
    "fbclid", "gclid", "msclkid", "ref", "referrer",
    "reason", "search_reason", "ispreviewactive",
})

_TRACKING_PREFIXES: tuple[str, ...] = ("utm_",)

_DEFAULT_PORTS = {"http": ":80", "https": ":443"}


def _is_tracking(key: str) -> bool:
    lowered = key.lower()
    return (
        lowered in _TRACKING_PARAMS
        or lowered.startswith(_TRACKING_PREFIXES)
    )


def normalize_url(raw_url: str) -> str:
    """Strip tracking params, fragments and default ports from a listing URL.

    Scheme and host are lower-cased; the path is kept as-is apart from
    collapsing duplicate slashes.
    """
    raw_url = raw_url.strip()
    if not raw_url:
        return ""
    parsed = urlparse(raw_url)

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    default_port = _DEFAULT_PORTS.get(scheme)
    if default_port and netloc.endswith(default_port):
        netloc = netloc[: -len(default_port)]

    path = re.sub(r"/{2,}", "/", parsed.path) or "/"

    params = parse_qs(parsed.query, keep_blank_values=True)
    cleaned = {
        k: v for k, v in params.items() if not _is_tracking(k)
    }
    new_query = urlencode(cleaned, doseq=True) if cleaned else ""
    return urlunparse((
        scheme,
        netloc,
        path,
        parsed.params,
        new_query,
        "",  # drop fragment
    ))


def verify_listing_url(requested_url: str, extracted_url: str) -> None:
    """Raise :class:`URLMismatch` unless both URLs name the same listing.

    An empty extracted URL counts as a mismatch: a page that does not
    say which listing it describes cannot be trusted to be the right one.
    """
    if not extracted_url or normalize_url(requested_url) != normalize_url(extracted_url):
        raise URLMismatch(requested_url, extracted_url)
