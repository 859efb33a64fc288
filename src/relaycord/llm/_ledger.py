"""
In-memory ledger of what each user has spent on completions.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class UsageLedger:
    """
    Thread-safe cumulative cost per user.

    Example:
        >>> ledger = UsageLedger()
        >>> ledger.add("42", 0.0015)
        0.0015
        >>> ledger.total_for("42")
        0.0015
    """

    def __init__(self) -> None:
        self._totals: dict[str, float] = {}
        self._lock = threading.Lock()

    def add(self, user_id: str, cost: float | None) -> float:
        """
        Charge `cost` to a user and return their new total.

        Costs that are None, zero or negative are ignored.
        """
        assert user_id, "user_id cannot be empty."
        with self._lock:
            total = self._totals.get(user_id, 0.0)
            if cost is None or cost <= 0:
                return total
            total += cost
            self._totals[user_id] = total

        logger.debug(f"UsageLedger | User {user_id} charged ¥{cost:.6f} (total: ¥{total:.6f})")
        return total

    def total_for(self, user_id: str) -> float:
        with self._lock:
            return self._totals.get(user_id, 0.0)

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return dict(self._totals)

    def leaderboard(self, limit: int | None = None) -> list[tuple[str, float]]:
        """Return (user_id, total) pairs, highest spender first."""
        ranked = sorted(self.snapshot().items(), key=lambda item: item[1], reverse=True)
        return ranked[:limit] if limit is not None else ranked
