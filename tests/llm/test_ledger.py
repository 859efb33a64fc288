"""Tests for the usage ledger."""

import threading
import unittest

from relaycord.llm import UsageLedger


class TestUsageLedger(unittest.TestCase):
    """Tests for UsageLedger."""

    def setUp(self):
        self.ledger = UsageLedger()

    def test_add_accumulates(self):
        self.assertAlmostEqual(self.ledger.add("1", 0.5), 0.5)
        self.assertAlmostEqual(self.ledger.add("1", 0.25), 0.75)
        self.assertAlmostEqual(self.ledger.total_for("1"), 0.75)

    def test_unknown_user_has_zero_total(self):
        self.assertEqual(self.ledger.total_for("nobody"), 0.0)

    def test_non_positive_costs_are_ignored(self):
        """Should not record zero, negative or unknown costs."""
        self.ledger.add("1", 0.0)
        self.ledger.add("1", -1.0)
        self.ledger.add("1", None)

        self.assertEqual(self.ledger.snapshot(), {})

    def test_leaderboard_orders_by_total(self):
        self.ledger.add("a", 1.0)
        self.ledger.add("b", 3.0)
        self.ledger.add("c", 2.0)

        self.assertEqual(self.ledger.leaderboard(), [("b", 3.0), ("c", 2.0), ("a", 1.0)])
        self.assertEqual(self.ledger.leaderboard(limit=1), [("b", 3.0)])

    def test_snapshot_is_a_copy(self):
        self.ledger.add("a", 1.0)

        self.ledger.snapshot()["a"] = 100.0

        self.assertEqual(self.ledger.total_for("a"), 1.0)

    def test_concurrent_adds(self):
        """Should not lose updates under concurrent writers."""
        def charge():
            for _ in range(1000):
                self.ledger.add("u", 1.0)

        threads = [threading.Thread(target=charge) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(self.ledger.total_for("u"), 8000.0)


if __name__ == "__main__":
    unittest.main()
