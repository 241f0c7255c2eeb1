"""Tests for per-session usage accounting."""

from unittest.mock import AsyncMock

import pytest

from client_intel.core.domain import Tier
from client_intel.core.usage import InMemoryUsageTracker, SessionRegistry, SessionStats, UsageSession, summarize
from client_intel.errors import SourceUnavailableError


class TestSummarize:
    def test_empty_session(self) -> None:
        summary = summarize(SessionStats(session_id="s1"))

        assert summary["total_queries"] == 0
        assert summary["ai_percentage"] == 0.0
        assert summary["queries_by_source"] == {"database": 0, "rules": 0, "search": 0, "ai": 0}
        assert summary["advice"] == []

    def test_ai_heavy_session_gets_caching_advice(self) -> None:
        stats = SessionStats("s1", {"database": 3, "ai": 1}, estimated_cost_usd=0.002)
        summary = summarize(stats)

        assert summary["ai_percentage"] == 25.0
        assert "Consider caching AI responses for common queries" in summary["advice"]

    def test_search_heavy_session_gets_enrichment_advice(self) -> None:
        summary = summarize(SessionStats("s1", {"database": 1, "search": 2}))
        assert summary["advice"] == ["Many unknown companies - consider enriching database"]


class TestUsageSession:
    @pytest.mark.asyncio
    async def test_counts_cost_and_cache_hits(self) -> None:
        session = UsageSession("s1")

        await session.record(Tier.DATABASE, 0.0)
        await session.record(Tier.SEARCH, 0.005)
        await session.record(Tier.SEARCH, 0.0, cached=True)

        stats = session.stats
        assert stats.queries_by_source == {"database": 1, "search": 2}
        assert stats.estimated_cost_usd == pytest.approx(0.005)
        assert stats.cached_hits == 1
        assert session.summary()["total_queries"] == 3

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self) -> None:
        first, second = UsageSession(), UsageSession()
        await first.record(Tier.AI, 0.001)

        assert first.session_id != second.session_id
        assert second.stats.total_queries == 0

    @pytest.mark.asyncio
    async def test_forwards_to_tracker(self) -> None:
        tracker = InMemoryUsageTracker()
        session = UsageSession("s1", tracker=tracker)

        await session.record(Tier.AI, 0.001)
        await session.record(Tier.RULES, 0.0)

        summary = await tracker.summary("s1")
        assert summary["queries_by_source"] == {"ai": 1, "rules": 1}
        assert summary["estimated_cost_usd"] == pytest.approx(0.001)

    @pytest.mark.asyncio
    async def test_tracker_failure_keeps_local_counters(self) -> None:
        tracker = AsyncMock()
        tracker.record.side_effect = SourceUnavailableError("usage_ledger", "db down")
        session = UsageSession("s1", tracker=tracker)

        await session.record(Tier.SEARCH, 0.005)
        await session.record(Tier.DATABASE, 0.0)

        assert tracker.record.await_count == 2
        assert session.stats.queries_by_source == {"search": 1, "database": 1}
        assert session.stats.estimated_cost_usd == pytest.approx(0.005)


class TestSessionRegistry:
    def test_get_or_create_reuses_ids(self) -> None:
        registry = SessionRegistry()

        created = registry.get_or_create("batch-7")

        assert registry.get_or_create("batch-7") is created
        assert registry.get("batch-7") is created
        assert registry.get("unknown") is None

    def test_generates_id_when_missing(self) -> None:
        registry = SessionRegistry()
        session = registry.get_or_create()
        assert registry.get(session.session_id) is session

    def test_evicts_least_recently_used_beyond_bound(self) -> None:
        registry = SessionRegistry(max_sessions=3)
        kept = registry.get_or_create("kept")

        for _ in range(10):
            registry.get_or_create()
            registry.get("kept")

        assert len(registry) == 3
        assert registry.get("kept") is kept

    def test_oldest_session_is_dropped(self) -> None:
        registry = SessionRegistry(max_sessions=2)
        registry.get_or_create("a")
        registry.get_or_create("b")

        registry.get_or_create("c")

        assert registry.get("a") is None
        assert registry.get("b") is not None
        assert len(registry) == 2
