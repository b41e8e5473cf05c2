# listing_tracker/config/settings.py

"""Central configuration for the listing tracker."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the listing tracker."""

    # --- Fetching ---
    REQUEST_TIMEOUT: int = int(
        os.getenv("LISTING_TRACKER_REQUEST_TIMEOUT", "10")
    )                                   # Seconds before a request times out
    READ_CHUNK_SIZE: int = 16 * 1024    # Bytes per body chunk fed to the parser
    HTML_ENCODING: str = "utf-8"        # Fallback when the response has no charset

    # --- Extraction ---
    STRUCTURED_DATA_TYPE: str = "application/ld+json"

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "ro-RO,ro;q=0.9,en-US;q=0.8,en;q=0.7",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Storage ---
    DB_BUSY_TIMEOUT: float = 5.0        # Seconds a writer waits for the lock
    BCRYPT_ROUNDS: int = int(
        os.getenv("LISTING_TRACKER_BCRYPT_ROUNDS", "12")
    )

    # --- Driver retry policy (never applied inside the store) ---
    APPEND_MAX_ATTEMPTS: int = 3
    APPEND_RETRY_DELAY: float = 0.5     # Seconds, multiplied by attempt number

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DB_PATH: Path = Path(
        os.getenv(
            "LISTING_TRACKER_DB_PATH",
            str(BASE_DIR / "data" / "listings.db"),
        )
    )
    LOGS_DIR: Path = Path(
        os.getenv("LISTING_TRACKER_LOGS_DIR", str(BASE_DIR / "logs"))
    )

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("LISTING_TRACKER_LOG_LEVEL", "DEBUG")
    CONSOLE_LOG_LEVEL: str = os.getenv(
        "LISTING_TRACKER_CONSOLE_LOG_LEVEL", "WARNING"
    )
    LOG_KEEP_RUNS: int = int(
        os.getenv("LISTING_TRACKER_LOG_KEEP_RUNS", "20")
    )                                   # Older run_*.log files are deleted
