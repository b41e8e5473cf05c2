# main.py

"""Entry point for the listing_tracker command line."""

import argparse
import asyncio
import getpass
import logging
import os
import sys

from listing_tracker.config.logging_config import setup_logging

logger = logging.getLogger("listing_tracker.main")

_PASSWORD_ENV = "LISTING_TRACKER_PASSWORD"


def _add_credentials(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-u",
        "--user",
        required=True,
        help="Username that owns the tracked listings.",
    )
    parser.add_argument(
        "-p",
        "--password",
        default=None,
        help=f"Password (default: ${_PASSWORD_ENV} or prompt).",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="listing_tracker",
        description="Track marketplace listings as a versioned snapshot history.",
    )
    parser.add_argument(
        "--db",
        default=None,
        dest="db_path",
        help="SQLite database path (default: data/listings.db).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    add_user = sub.add_parser("add-user", help="Create a user.")
    add_user.add_argument("username")
    add_user.add_argument("-p", "--password", default=None)

    track = sub.add_parser("track", help="Start tracking a listing URL.")
    track.add_argument("url")
    _add_credentials(track)

    listings = sub.add_parser("listings", help="List tracked listings.")
    _add_credentials(listings)

    poll = sub.add_parser("poll", help="Take one snapshot of every tracked listing.")
    _add_credentials(poll)
    poll.add_argument(
        "-a",
        "--attempts",
        type=int,
        default=None,
        help="Attempts per listing on version conflicts (default: 3).",
    )
    poll.add_argument(
        "-t",
        "--deadline",
        type=float,
        default=None,
        dest="deadline_seconds",
        help="Per-listing deadline in seconds.",
    )

    history = sub.add_parser("history", help="Show a listing's snapshot history.")
    history.add_argument("listing_id")
    _add_credentials(history)
    history.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="table",
        dest="output_format",
        help="Output format (default: table).",
    )
    return parser


def _password(args: argparse.Namespace) -> str:
    if args.password is not None:
        return args.password
    from_env = os.getenv(_PASSWORD_ENV)
    if from_env:
        return from_env
    return getpass.getpass("Password: ")


def _dispatch(args: argparse.Namespace) -> int:
    from listing_tracker.cli import runner

    if args.command == "add-user":
        return runner.run_add_user(args.username, _password(args), args.db_path)
    if args.command == "track":
        return runner.run_track(args.url, args.user, _password(args), args.db_path)
    if args.command == "listings":
        return runner.run_list_listings(args.user, _password(args), args.db_path)
    if args.command == "poll":
        return asyncio.run(
            runner.run_poll(
                args.user,
                _password(args),
                attempts=args.attempts,
                deadline_seconds=args.deadline_seconds,
                db_path=args.db_path,
            )
        )
    return runner.run_history(
        args.listing_id,
        args.user,
        _password(args),
        output_format=args.output_format,
        db_path=args.db_path,
    )


def main() -> None:
    """Parse arguments and run the requested command."""
    log_file = setup_logging()
    logger.info("listing_tracker starting, log file: %s", log_file)

    args = _build_parser().parse_args()
    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error in %s", args.command, exc_info=True)
        raise
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
