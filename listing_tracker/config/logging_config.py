# listing_tracker/config/logging_config.py

"""Per-run log files for the ``listing_tracker`` logger tree.

Every CLI invocation writes ``run_<timestamp>.log`` into the logs
directory, so the fetches, extractions and appends of one polling pass
can be read back together. Levels and retention come from
:class:`Settings` (and therefore from ``LISTING_TRACKER_*`` env vars).
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from listing_tracker.config.settings import Settings

ROOT_LOGGER = "listing_tracker"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | "
    "%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(name: str, default: int) -> int:
    """Map a level name such as ``"info"`` to its number, or *default*."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def prune_run_logs(logs_dir: Path, keep: int) -> list[Path]:
    """Delete all but the newest *keep* ``run_*.log`` files.

    File names embed the launch timestamp, so name order is age order.
    Returns the deleted paths.
    """
    runs = sorted(logs_dir.glob("run_*.log"))
    stale = runs[:-keep] if keep > 0 else runs
    for path in stale:
        path.unlink(missing_ok=True)
    return stale


def _current_log_file(logger: logging.Logger) -> Path | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def setup_logging(logs_dir: Path | None = None) -> Path:
    """Attach the run file and stderr handlers to the ``listing_tracker`` logger.

    Calling it again in the same process reuses the handlers already
    installed and returns the same file.

    Args:
        logs_dir: Directory for run files (default: ``Settings.LOGS_DIR``).

    Returns:
        The path of this run's log file.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    existing = _current_log_file(logger)
    if existing is not None:
        return existing

    logs_dir = logs_dir or Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    if Settings.LOG_KEEP_RUNS > 0:
        # Leave room for the file this run is about to create
        prune_run_logs(logs_dir, Settings.LOG_KEEP_RUNS - 1)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{timestamp}.log"

    file_level = resolve_level(Settings.LOG_LEVEL, logging.DEBUG)
    console_level = resolve_level(Settings.CONSOLE_LOG_LEVEL, logging.WARNING)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    logger.setLevel(min(file_level, console_level))
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.debug(
        "Logging to %s (file=%s, console=%s)",
        log_file,
        logging.getLevelName(file_level),
        logging.getLevelName(console_level),
    )
    return log_file
