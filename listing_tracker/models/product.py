# listing_tracker/models/product.py

"""Product record decoded from a listing page's JSON-LD block."""

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, localcontext
from enum import Enum


class Availability(str, Enum):
    """Normalised stock state of an offer."""

    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    DISCONTINUED = "discontinued"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Area:
    type: str = ""
    name: str = ""


@dataclass(frozen=True)
class MonetaryAmount:
    type: str = ""
    currency: str = ""


@dataclass(frozen=True)
class Region:
    type: str = ""
    address_country: str = ""


@dataclass(frozen=True)
class Shipping:
    type: str = ""
    shipping_rate: MonetaryAmount = field(default_factory=MonetaryAmount)
    shipping_destination: Region = field(default_factory=Region)


@dataclass(frozen=True)
class Offer:
    """The ``offers`` object of a product: price, stock and shipping."""

    type: str = ""
    availability: Availability = Availability.UNKNOWN
    availability_source: str = ""
    price: Decimal = Decimal("0")
    price_currency: str = ""
    item_condition: str = ""
    area_served: Area = field(default_factory=Area)
    shipping: Shipping = field(default_factory=Shipping)


@dataclass(frozen=True)
class ProductRecord:
    """A single extraction result. Built fresh for every page read."""

    context: str = ""
    type: str = ""
    name: str = ""
    images: tuple[str, ...] = ()
    url: str = ""
    description: str = ""
    category: str = ""
    sku: str = ""
    offers: Offer = field(default_factory=Offer)
    raw_payload: str = ""

    @property
    def price_minor_units(self) -> int:
        return to_minor_units(self.offers.price)


# Range of a signed 64-bit SQLite INTEGER
MIN_MINOR_UNITS = -(2**63)
MAX_MINOR_UNITS = 2**63 - 1


def to_minor_units(price: Decimal) -> int:
    """Convert a decimal price to integer minor units (e.g. cents).

    The exact decimal is multiplied by 100 and truncated toward zero,
    so ``Decimal("49.99")`` becomes ``4999``.

    Raises:
        ValueError: the price is not finite or does not fit a signed
            64-bit integer once scaled.
    """
    if not price.is_finite():
        raise ValueError(f"price is not finite: {price}")
    # Bound the exponent first so the scaling below cannot overflow
    if price.adjusted() > 18:
        raise ValueError(f"price out of range: {price}")
    with localcontext() as ctx:
        ctx.rounding = ROUND_DOWN
        minor = int((price * 100).to_integral_value())
    if not MIN_MINOR_UNITS <= minor <= MAX_MINOR_UNITS:
        raise ValueError(f"price out of range: {price}")
    return minor
