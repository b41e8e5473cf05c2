# listing_tracker/cli/runner.py

"""Headless CLI commands: principals, tracking, one polling pass, history."""

import json
import logging
import sys
from pathlib import Path
from uuid import UUID

from rich.console import Console
from rich.table import Table

from listing_tracker.config.settings import Settings
from listing_tracker.core.exceptions import (
    AlreadyTracked,
    ListingTrackerError,
    PrincipalAlreadyExists,
    PrincipalNotFound,
)
from listing_tracker.models.listing import Snapshot
from listing_tracker.scrapers.listing_fetcher import ListingFetcher, build_session
from listing_tracker.services.ingestion import IngestionResult, IngestionService
from listing_tracker.storage.database import Database
from listing_tracker.storage.principal_store import PrincipalStore
from listing_tracker.storage.snapshot_store import SnapshotStore

logger = logging.getLogger("listing_tracker.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)

_STATUS_STYLES: dict[str, str] = {
    "stored": "green",
    "conflict": "yellow",
    "deactivated": "magenta",
}


def _open_db(db_path: str | None) -> Database:
    return Database(Path(db_path) if db_path else None)


def _resolve_owner(db: Database, username: str, password: str) -> UUID | None:
    """Look up the principal, printing a message on failure."""
    try:
        return PrincipalStore(db).get_principal_id(username, password)
    except PrincipalNotFound:
        _err.print(f"[red]Unknown user or wrong password: {username}[/red]")
        return None


def _format_price(minor_units: int, currency: str) -> str:
    sign = "-" if minor_units < 0 else ""
    whole, cents = divmod(abs(minor_units), 100)
    return f"{sign}{whole:,}.{cents:02d} {currency}".strip()


def _snapshots_to_dicts(snapshots: list[Snapshot]) -> list[dict[str, object]]:
    """Serialise snapshots to plain dicts for JSON output."""
    return [
        {
            "version": s.version,
            "retrieved_at": s.retrieved_at.isoformat(),
            "name": s.name,
            "description": s.description,
            "price_minor_units": s.price_minor_units,
            "currency": s.currency,
            "availability": s.availability,
        }
        for s in snapshots
    ]


def run_add_user(username: str, password: str, db_path: str | None = None) -> int:
    """Create a principal. Exit code 0 also when it already exists."""
    db = _open_db(db_path)
    try:
        principal_id = PrincipalStore(db).create_principal(username, password)
    except PrincipalAlreadyExists:
        _err.print(f"[yellow]User {username} already exists.[/yellow]")
        return 0
    _err.print(f"[green]✓ Created user {username}[/green]")
    sys.stdout.write(f"{principal_id}\n")
    return 0


def run_track(
    url: str, username: str, password: str, db_path: str | None = None,
) -> int:
    """Start tracking a URL; an already-tracked URL is not an error."""
    db = _open_db(db_path)
    owner_id = _resolve_owner(db, username, password)
    if owner_id is None:
        return 1
    try:
        listing = SnapshotStore(db).track_listing(owner_id, url)
    except AlreadyTracked:
        _err.print("[yellow]Listing is already being tracked for this user.[/yellow]")
        return 0
    _err.print(f"[green]✓ Tracking {listing.url}[/green]")
    sys.stdout.write(f"{listing.id}\n")
    return 0


def run_list_listings(
    username: str, password: str, db_path: str | None = None,
) -> int:
    """Print the user's tracked listings, newest first."""
    db = _open_db(db_path)
    owner_id = _resolve_owner(db, username, password)
    if owner_id is None:
        return 1
    listings = SnapshotStore(db).list_listings(owner_id)
    if not listings:
        _err.print("[yellow]No tracked listings.[/yellow]")
        return 0

    table = Table(title="Tracked Listings", show_lines=True, title_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("URL", overflow="fold")
    table.add_column("Tracked since", justify="right")
    for listing in listings:
        table.add_row(
            str(listing.id),
            listing.url,
            listing.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    Console().print(table)
    return 0


def _print_results(results: list[IngestionResult]) -> None:
    table = Table(title="Polling Pass", show_lines=True, title_style="bold cyan")
    table.add_column("URL", overflow="fold")
    table.add_column("Status", justify="center")
    table.add_column("Version", justify="right")
    table.add_column("Attempts", justify="right", style="dim")
    table.add_column("Notes", style="dim")
    for r in results:
        style = _STATUS_STYLES.get(r.status, "red")
        table.add_row(
            r.url,
            f"[{style}]{r.status}[/{style}]",
            str(r.version) if r.version is not None else "-",
            str(r.attempts),
            r.message,
        )
    Console().print(table)


async def run_poll(
    username: str,
    password: str,
    attempts: int | None = None,
    deadline_seconds: float | None = None,
    db_path: str | None = None,
) -> int:
    """Take one snapshot of every tracked listing. Exit 1 if any failed."""
    db = _open_db(db_path)
    owner_id = _resolve_owner(db, username, password)
    if owner_id is None:
        return 1

    session = build_session()
    try:
        service = IngestionService(ListingFetcher(session), SnapshotStore(db))
        results = await service.poll_once(
            owner_id,
            attempts=attempts or Settings.APPEND_MAX_ATTEMPTS,
            deadline_seconds=deadline_seconds,
        )
    finally:
        session.close()

    if not results:
        _err.print("[yellow]No tracked listings.[/yellow]")
        return 0
    _print_results(results)
    stored = sum(1 for r in results if r.ok)
    _err.print(f"[green]✓ {stored} of {len(results)} listings stored[/green]")
    return 0 if stored == len(results) else 1


def run_history(
    listing_id: str,
    username: str,
    password: str,
    output_format: str = "table",
    db_path: str | None = None,
) -> int:
    """Print a listing's snapshot history, newest version first."""
    try:
        listing_uuid = UUID(listing_id)
    except ValueError:
        _err.print(f"[red]Not a listing id: {listing_id}[/red]")
        return 1

    db = _open_db(db_path)
    owner_id = _resolve_owner(db, username, password)
    if owner_id is None:
        return 1
    try:
        snapshots = SnapshotStore(db).list_snapshots(owner_id, listing_uuid)
    except ListingTrackerError as exc:
        logger.error("History lookup failed: %s", exc.message, exc_info=True)
        _err.print(f"[red]{exc.message}[/red]")
        return 1

    if output_format == "json":
        json.dump(
            _snapshots_to_dicts(snapshots),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")
        return 0

    if not snapshots:
        _err.print("[yellow]No snapshots for this listing.[/yellow]")
        return 0

    table = Table(title="Snapshot History", show_lines=True, title_style="bold cyan")
    table.add_column("v", justify="right", style="bold")
    table.add_column("Retrieved", justify="right")
    table.add_column("Name", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Availability", justify="center")
    for s in snapshots:
        table.add_row(
            str(s.version),
            s.retrieved_at.strftime("%Y-%m-%d %H:%M"),
            s.name[:50],
            _format_price(s.price_minor_units, s.currency),
            s.availability,
        )
    Console().print(table)
    return 0
