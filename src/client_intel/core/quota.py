"""Daily call budget for a costly tier.

``try_acquire`` increments and checks in one critical section, so concurrent
callers can never push the day's count past the limit.
"""

import threading
from datetime import date, datetime, timezone
from typing import Callable

from client_intel.core.domain import QuotaCounter
from client_intel.observability import get_logger

logger = get_logger(__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class DailyQuota:
    """Shared per-day counter for one tier.

    Args:
        tier: Tier name for logging.
        daily_limit: Maximum successful acquisitions per calendar day.
        today: Returns the current calendar day; injectable for tests.
    """

    def __init__(self, tier: str, daily_limit: int, today: Callable[[], date] = _utc_today) -> None:
        self.tier = tier
        self._limit = daily_limit
        self._today = today
        self._lock = threading.Lock()
        self._date_key = today().isoformat()
        self._used = 0

    def _roll(self) -> None:
        date_key = self._today().isoformat()
        if date_key != self._date_key:
            self._date_key = date_key
            self._used = 0

    def try_acquire(self) -> QuotaCounter | None:
        """Reserve one call for today.

        Returns:
            The counter after the reservation, or None if today's budget is spent.
        """
        with self._lock:
            self._roll()
            if self._used >= self._limit:
                exhausted = True
            else:
                self._used += 1
                exhausted = False
            counter = QuotaCounter(date_key=self._date_key, used_count=self._used, daily_limit=self._limit)

        if exhausted:
            logger.warning("daily_quota_exhausted", tier=self.tier, date=counter.date_key, limit=self._limit)
            return None
        return counter

    def status(self) -> QuotaCounter:
        with self._lock:
            self._roll()
            return QuotaCounter(date_key=self._date_key, used_count=self._used, daily_limit=self._limit)
