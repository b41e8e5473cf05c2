# listing_tracker/extractors/product_schema.py

"""Map a schema.org ``Product`` JSON-LD document onto :class:`ProductRecord`.

Absent fields keep their defaults; present fields of an incompatible type
make the whole payload malformed.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from listing_tracker.core.exceptions import MalformedStructuredData
from listing_tracker.models.product import (
    Area,
    Availability,
    MonetaryAmount,
    Offer,
    ProductRecord,
    Region,
    Shipping,
    to_minor_units,
)

logger = logging.getLogger("listing_tracker.extractors.schema")

_SCHEMA_PREFIXES: tuple[str, ...] = (
    "https://schema.org/",
    "http://schema.org/",
)

_AVAILABILITY_VOCABULARY: dict[str, Availability] = {
    "instock": Availability.IN_STOCK,
    "limitedavailability": Availability.IN_STOCK,
    "instoreonly": Availability.IN_STOCK,
    "onlineonly": Availability.IN_STOCK,
    "outofstock": Availability.OUT_OF_STOCK,
    "soldout": Availability.OUT_OF_STOCK,
    "discontinued": Availability.DISCONTINUED,
}


def map_availability(value: str) -> Availability:
    """Translate a schema.org ItemAvailability token to :class:`Availability`."""
    token = value.strip()
    for prefix in _SCHEMA_PREFIXES:
        if token.lower().startswith(prefix):
            token = token[len(prefix):]
            break
    return _AVAILABILITY_VOCABULARY.get(token.lower(), Availability.UNKNOWN)


def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-finite number {token!r}")


def parse_payload(raw: str) -> dict[str, Any]:
    """Decode the JSON text of a structured-data block into a dict."""
    try:
        data = json.loads(
            raw,
            parse_float=Decimal,
            parse_constant=_reject_constant,
        )
    except (ValueError, RecursionError) as exc:
        # json.JSONDecodeError is a ValueError subclass
        logger.debug("Invalid JSON-LD: %s", exc)
        raise MalformedStructuredData(original_error=exc) from exc

    if not isinstance(data, dict):
        raise MalformedStructuredData(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    return data


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        return str(value)
    raise MalformedStructuredData(
        f"Field {key!r} must be a string, got {type(value).__name__}"
    )


def _object(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    raise MalformedStructuredData(
        f"Field {key!r} must be an object, got {type(value).__name__}"
    )


def _images(data: dict[str, Any]) -> tuple[str, ...]:
    value = data.get("image")
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise MalformedStructuredData("Field 'image' must be a string or a list of strings")


def _raw_price(data: dict[str, Any]) -> Decimal:
    value = data.get("price")
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        raise MalformedStructuredData("Field 'price' must be numeric, got bool")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise MalformedStructuredData(
                f"Field 'price' is not a number: {value!r}", original_error=exc,
            ) from exc
    raise MalformedStructuredData(
        f"Field 'price' must be numeric, got {type(value).__name__}"
    )


def _price(data: dict[str, Any]) -> Decimal:
    price = _raw_price(data)
    try:
        to_minor_units(price)
    except ValueError as exc:
        raise MalformedStructuredData(
            f"Field 'price' is unusable: {exc}", original_error=exc,
        ) from exc
    return price


def _offers(data: dict[str, Any]) -> dict[str, Any]:
    value = data.get("offers")
    if isinstance(value, list):
        # AggregateOffer-style arrays: the first offer describes the listing
        value = value[0] if value else None
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    raise MalformedStructuredData(
        f"Field 'offers' must be an object, got {type(value).__name__}"
    )


def decode_offer(data: dict[str, Any]) -> Offer:
    area = _object(data, "areaServed")
    shipping = _object(data, "shippingDetails")
    rate = _object(shipping, "shippingRate")
    destination = _object(shipping, "shippingDestination")
    availability_source = _text(data, "availability")

    return Offer(
        type=_text(data, "@type"),
        availability=map_availability(availability_source),
        availability_source=availability_source,
        price=_price(data),
        price_currency=_text(data, "priceCurrency"),
        item_condition=_text(data, "itemCondition"),
        area_served=Area(
            type=_text(area, "@type"),
            name=_text(area, "name"),
        ),
        shipping=Shipping(
            type=_text(shipping, "@type"),
            shipping_rate=MonetaryAmount(
                type=_text(rate, "@type"),
                currency=_text(rate, "currency"),
            ),
            shipping_destination=Region(
                type=_text(destination, "@type"),
                address_country=_text(destination, "addressCountry"),
            ),
        ),
    )


def decode_product(raw: str) -> ProductRecord:
    """Decode one JSON-LD payload into a :class:`ProductRecord`.

    Raises:
        MalformedStructuredData: the text is not JSON, not an object, or
            holds a field of an incompatible type.
    """
    data = parse_payload(raw)
    return ProductRecord(
        context=_text(data, "@context"),
        type=_text(data, "@type"),
        name=_text(data, "name"),
        images=_images(data),
        url=_text(data, "url"),
        description=_text(data, "description"),
        category=_text(data, "category"),
        sku=_text(data, "sku"),
        offers=decode_offer(_offers(data)),
        raw_payload=raw,
    )
