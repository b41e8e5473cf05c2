# tests/test_deadline.py

"""Tests for the Deadline cancellation signal."""

import threading
import time
import unittest

from listing_tracker.core.deadline import Deadline
from listing_tracker.core.exceptions import OperationCancelled


class TestDeadline(unittest.TestCase):
    """Verify expiry, cancellation and check()."""

    def test_unbounded_never_expires(self) -> None:
        deadline = Deadline()
        self.assertFalse(deadline.expired)
        self.assertIsNone(deadline.remaining())
        deadline.check()

    def test_future_deadline_not_expired(self) -> None:
        deadline = Deadline.after(60)
        self.assertFalse(deadline.expired)
        self.assertGreater(deadline.remaining(), 0)

    def test_past_deadline_expired(self) -> None:
        deadline = Deadline(expires_at=time.monotonic() - 1)
        self.assertTrue(deadline.expired)
        self.assertEqual(deadline.remaining(), 0.0)

    def test_cancel_fires_immediately(self) -> None:
        deadline = Deadline.after(60)
        deadline.cancel()
        self.assertTrue(deadline.cancelled)
        self.assertTrue(deadline.expired)
        self.assertEqual(deadline.remaining(), 0.0)

    def test_check_raises_with_operation_name(self) -> None:
        deadline = Deadline()
        deadline.cancel()
        with self.assertRaises(OperationCancelled) as ctx:
            deadline.check("append_snapshot")
        self.assertEqual(ctx.exception.details["operation"], "append_snapshot")

    def test_cancel_from_another_thread(self) -> None:
        deadline = Deadline()
        worker = threading.Thread(target=deadline.cancel)
        worker.start()
        worker.join()
        self.assertTrue(deadline.expired)


if __name__ == "__main__":
    unittest.main()
