"""Per-session usage and cost accounting for routed decisions.

Each logical session (one API caller, one batch run) gets its own
``UsageSession`` that is passed explicitly into every router call, so
concurrent sessions never share counters. A session can also forward every
call to an ``IUsageTracker`` backend for durable reporting.
"""

import threading
import uuid
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Any

from client_intel.core.domain import Tier
from client_intel.core.interfaces import IUsageTracker
from client_intel.errors import ClientIntelError
from client_intel.observability import get_logger

logger = get_logger(__name__)

AI_SHARE_ADVICE_THRESHOLD = 0.2


@dataclass(frozen=True)
class SessionStats:
    """Counters for one session.

    Attributes:
        session_id: Session identifier.
        queries_by_source: Tier name to number of routed calls.
        estimated_cost_usd: Sum of per-call cost estimates.
        cached_hits: Calls answered from a tier cache.
    """

    session_id: str
    queries_by_source: dict[str, int] = field(default_factory=dict)
    estimated_cost_usd: float = 0.0
    cached_hits: int = 0

    @property
    def total_queries(self) -> int:
        return sum(self.queries_by_source.values())


def summarize(stats: SessionStats) -> dict[str, Any]:
    """Turn session counters into a report with cost-saving advice."""
    total = stats.total_queries
    counts = {tier.value: stats.queries_by_source.get(tier.value, 0) for tier in Tier}
    ai_share = counts[Tier.AI.value] / total if total else 0.0

    advice: list[str] = []
    if ai_share > AI_SHARE_ADVICE_THRESHOLD:
        advice.append("Consider caching AI responses for common queries")
    if counts[Tier.SEARCH.value] > counts[Tier.DATABASE.value]:
        advice.append("Many unknown companies - consider enriching database")

    return {
        "session_id": stats.session_id,
        "total_queries": total,
        "queries_by_source": counts,
        "cached_hits": stats.cached_hits,
        "estimated_cost_usd": round(stats.estimated_cost_usd, 6),
        "ai_percentage": round(ai_share * 100, 1),
        "advice": advice,
    }


class InMemoryUsageTracker:
    """Process-local ledger. Implements IUsageTracker."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, Counter[str]] = {}
        self._costs: dict[str, float] = {}

    async def record(self, session_id: str, source: Tier, cost_usd: float, cached: bool = False) -> None:
        with self._lock:
            self._counts.setdefault(session_id, Counter())[source.value] += 1
            self._costs[session_id] = self._costs.get(session_id, 0.0) + cost_usd

    async def summary(self, session_id: str) -> dict[str, Any]:
        with self._lock:
            return {
                "queries_by_source": dict(self._counts.get(session_id, Counter())),
                "estimated_cost_usd": round(self._costs.get(session_id, 0.0), 6),
            }


class UsageSession:
    """Usage counters for one logical session.

    Args:
        session_id: Identifier; a random one is generated when omitted.
        tracker: Optional backend that receives every recorded call.
    """

    def __init__(self, session_id: str | None = None, tracker: IUsageTracker | None = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self._tracker = tracker
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter()
        self._cost = 0.0
        self._cached = 0

    async def record(self, source: Tier, cost_usd: float, cached: bool = False) -> None:
        with self._lock:
            self._counts[source.value] += 1
            self._cost += cost_usd
            if cached:
                self._cached += 1
        if self._tracker is None:
            return
        try:
            await self._tracker.record(self.session_id, source, cost_usd, cached)
        except ClientIntelError as exc:
            logger.warning(
                "usage_tracker_failed",
                session_id=self.session_id,
                source=source.value,
                error_code=exc.error_code.value,
                error=exc.message,
            )

    @property
    def stats(self) -> SessionStats:
        with self._lock:
            return SessionStats(
                session_id=self.session_id,
                queries_by_source=dict(self._counts),
                estimated_cost_usd=self._cost,
                cached_hits=self._cached,
            )

    def summary(self) -> dict[str, Any]:
        return summarize(self.stats)


class SessionRegistry:
    """Hands out one UsageSession per session id for the HTTP layer.

    Holds at most ``max_sessions`` sessions; the least recently used one is
    dropped when a new session would exceed the bound. A dropped session's
    calls stay in the usage tracker.

    Args:
        tracker: Backend passed to every session.
        max_sessions: Upper bound on retained sessions.
    """

    def __init__(self, tracker: IUsageTracker | None = None, max_sessions: int = 1000) -> None:
        self._tracker = tracker
        self._max_sessions = max(1, max_sessions)
        self._sessions: OrderedDict[str, UsageSession] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_or_create(self, session_id: str | None = None) -> UsageSession:
        with self._lock:
            if session_id and session_id in self._sessions:
                self._sessions.move_to_end(session_id)
                return self._sessions[session_id]
            session = UsageSession(session_id, tracker=self._tracker)
            self._sessions[session.session_id] = session
            while len(self._sessions) > self._max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.debug("usage_session_evicted", session_id=evicted)
            return session

    def get(self, session_id: str) -> UsageSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session
