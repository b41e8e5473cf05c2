# tests/test_settings.py

"""Tests for the Settings configuration class."""

import logging
import unittest
from pathlib import Path

from listing_tracker.config.settings import Settings


class TestSettings(unittest.TestCase):
    """Verify Settings constants."""

    def test_request_timeout_is_positive_int(self) -> None:
        """REQUEST_TIMEOUT must be a positive integer."""
        self.assertIsInstance(Settings.REQUEST_TIMEOUT, int)
        self.assertGreater(Settings.REQUEST_TIMEOUT, 0)

    def test_read_chunk_size_positive(self) -> None:
        """READ_CHUNK_SIZE must be > 0."""
        self.assertGreater(Settings.READ_CHUNK_SIZE, 0)

    def test_structured_data_type_is_lowercase(self) -> None:
        """The media type is compared against lowercased attributes."""
        self.assertEqual(
            Settings.STRUCTURED_DATA_TYPE,
            Settings.STRUCTURED_DATA_TYPE.lower(),
        )

    def test_html_encoding_is_known(self) -> None:
        """The fallback encoding must be usable by the codec registry."""
        "".encode(Settings.HTML_ENCODING)

    def test_append_attempts_at_least_one(self) -> None:
        """APPEND_MAX_ATTEMPTS must be >= 1."""
        self.assertGreaterEqual(Settings.APPEND_MAX_ATTEMPTS, 1)

    def test_retry_delay_non_negative(self) -> None:
        """APPEND_RETRY_DELAY must be >= 0."""
        self.assertGreaterEqual(Settings.APPEND_RETRY_DELAY, 0)

    def test_bcrypt_rounds_in_range(self) -> None:
        """bcrypt accepts cost factors between 4 and 31."""
        self.assertGreaterEqual(Settings.BCRYPT_ROUNDS, 4)
        self.assertLessEqual(Settings.BCRYPT_ROUNDS, 31)

    def test_default_headers_have_accept(self) -> None:
        """Requests must ask for HTML."""
        self.assertIn("text/html", Settings.DEFAULT_HEADERS["Accept"])

    def test_paths_are_path_objects(self) -> None:
        """Path settings are pathlib.Path instances."""
        for name in ("BASE_DIR", "DB_PATH", "LOGS_DIR"):
            with self.subTest(name=name):
                self.assertIsInstance(getattr(Settings, name), Path)

    def test_log_levels_are_level_names(self) -> None:
        """Both configured levels name a real logging level."""
        for name in (Settings.LOG_LEVEL, Settings.CONSOLE_LOG_LEVEL):
            with self.subTest(level=name):
                self.assertIsInstance(logging.getLevelName(name.upper()), int)

    def test_logs_dir_under_base_dir(self) -> None:
        """LOGS_DIR lives inside the project directory."""
        self.assertEqual(Settings.LOGS_DIR.parent, Settings.BASE_DIR)


if __name__ == "__main__":
    unittest.main()
