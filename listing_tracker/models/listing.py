# listing_tracker/models/listing.py

"""Tracked listings and their immutable, versioned snapshots."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class Listing:
    """A marketplace URL tracked by one principal."""

    id: UUID
    owner_id: UUID
    url: str
    created_at: datetime


@dataclass(frozen=True)
class Snapshot:
    """One observation of a listing at a point in time."""

    id: UUID
    listing_id: UUID
    version: int
    retrieved_at: datetime
    name: str
    description: str
    price_minor_units: int
    currency: str
    availability: str
    raw_payload: str
