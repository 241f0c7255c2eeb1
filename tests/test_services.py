"""Unit tests for ClientIntelligenceService."""

from typing import Callable
from unittest.mock import AsyncMock, patch

import pytest

from client_intel.adapters.memory import InMemoryOverlayStore
from client_intel.core.caching import TTLCache
from client_intel.core.decision_router import DecisionRouter
from client_intel.core.domain import ClientOverlay, OutcomeStatus, ProspectProfile, Tier
from client_intel.core.quota import DailyQuota
from client_intel.core.recommendations import RecommendationComposer
from client_intel.core.services import ClientIntelligenceService
from client_intel.core.snapshot import SnapshotProvider
from client_intel.core.usage import UsageSession
from client_intel.errors import NotFoundError
from client_intel.settings import Settings


@pytest.fixture
def service(
    make_provider: Callable[..., SnapshotProvider],
    overlay_store: InMemoryOverlayStore,
    search_client: AsyncMock,
    settings: Settings,
) -> ClientIntelligenceService:
    snapshots = make_provider()
    composer = RecommendationComposer(neighbor_count=settings.similar_neighbors)
    router = DecisionRouter(
        snapshots=snapshots,
        composer=composer,
        settings=settings,
        search_client=search_client,
        ai_client=None,
        search_cache=TTLCache(Tier.SEARCH.value, settings.search_cache_ttl_seconds),
        ai_cache=TTLCache(Tier.AI.value, settings.ai_cache_ttl_seconds),
        search_quota=DailyQuota(Tier.SEARCH.value, settings.search_daily_quota),
        ai_quota=DailyQuota(Tier.AI.value, settings.ai_daily_quota),
    )
    return ClientIntelligenceService(snapshots, composer, overlay_store, router, settings)


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


class TestClientQueries:
    @pytest.mark.asyncio
    async def test_list_clients_filters(self, service: ClientIntelligenceService) -> None:
        everyone = await service.list_clients()
        active = await service.list_clients(active_only=True)
        outside = await service.list_clients(in_roster=False)

        assert len(everyone) == 6
        assert [r.canonical_name for r in active] == ["Acme Pay", "Bharat Finserv", "Credo Lending"]
        assert [r.canonical_name for r in outside] == ["Zeta Games"]

    @pytest.mark.asyncio
    async def test_client_listing_reads_one_snapshot(self, service: ClientIntelligenceService) -> None:
        await service.set_overlay(ClientOverlay("ZZ4", segment="Fintech"))
        spy = AsyncMock(wraps=service._snapshots.get)

        with patch.object(service._snapshots, "get", spy):
            views, report = await service.client_listing()

        assert spy.await_count == 1
        assert len(views) == 6
        segments = {v.record.canonical_name: v.segment for v in views}
        assert segments["Credo Lending"] == "NBFC"
        assert segments["Zeta Games"] == "Fintech"
        assert report.recent_period == "2025-09"

    @pytest.mark.asyncio
    async def test_get_client_unknown_raises(self, service: ClientIntelligenceService) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await service.get_client("Nobody Inc")
        assert "Nobody Inc" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_recommendations_for_client(self, service: ClientIntelligenceService) -> None:
        view, recommendations, upsell = await service.recommendations_for_client("credo lending", limit=3)

        assert view.record.canonical_id == "CL3"
        assert view.segment == "NBFC"
        assert [r.product_name for r in recommendations] == ["CKYC Upload", "AML Search", "Aadhaar OKYC"]
        assert upsell == pytest.approx(9000.0)

    @pytest.mark.asyncio
    async def test_similar_and_unused(self, service: ClientIntelligenceService) -> None:
        edges = await service.similar_clients("BF7", k=2)
        unused = await service.unused_products("Acme Pay")

        assert [e.client_b for e in edges] == ["Credo Lending", "Acme Pay"]
        assert "PAN Verification" not in [p.product_name for p in unused]
        with pytest.raises(NotFoundError):
            await service.similar_clients("Nobody Inc")

    @pytest.mark.asyncio
    async def test_segment_adoption(self, service: ClientIntelligenceService) -> None:
        nbfc = await service.segment_adoption("NBFC")
        everything = await service.segment_adoption()

        assert nbfc["NBFC"].total_clients_in_segment == 2
        assert "NBFC" in everything and "Gaming" in everything
        with pytest.raises(NotFoundError):
            await service.segment_adoption("Aerospace")


# ---------------------------------------------------------------------------
# Overlays
# ---------------------------------------------------------------------------


class TestOverlays:
    @pytest.mark.asyncio
    async def test_set_overlay_resolves_name_and_refreshes(self, service: ClientIntelligenceService) -> None:
        stored = await service.set_overlay(ClientOverlay("zeta games", segment="Fintech"))

        assert stored.canonical_id == "ZZ4"
        assert stored.updated_at is not None
        view = await service.client_view("ZZ4")
        assert view.segment == "Fintech"

    @pytest.mark.asyncio
    async def test_set_overlay_unknown_client(self, service: ClientIntelligenceService) -> None:
        with pytest.raises(NotFoundError):
            await service.set_overlay(ClientOverlay("Nobody Inc", segment="Fintech"))

    @pytest.mark.asyncio
    async def test_delete_overlay(self, service: ClientIntelligenceService) -> None:
        await service.set_overlay(ClientOverlay("ZZ4", segment="Fintech"))

        await service.delete_overlay("ZZ4")

        view = await service.client_view("ZZ4")
        assert view.segment == "Gaming"
        with pytest.raises(NotFoundError):
            await service.delete_overlay("ZZ4")


# ---------------------------------------------------------------------------
# Prospects
# ---------------------------------------------------------------------------


class TestScoreProspects:
    @pytest.mark.asyncio
    async def test_sorted_by_fit_then_value(self, service: ClientIntelligenceService) -> None:
        profiles = [
            ProspectProfile("Small Co", "Fintech", size="small", geography="USA"),
            ProspectProfile("Big Co", "Fintech", size="large", geography="India"),
            ProspectProfile("Also Big", "Fintech", size="large", geography="India"),
        ]

        scores = await service.score_prospects(profiles, UsageSession())

        assert [s.profile.name for s in scores] == ["Also Big", "Big Co", "Small Co"]
        assert scores[0].fit_score == 80
        assert all(s.outcome is None for s in scores)

    @pytest.mark.asyncio
    async def test_enrich_routes_through_search(
        self, service: ClientIntelligenceService, search_client: AsyncMock
    ) -> None:
        session = UsageSession()

        scores = await service.score_prospects(
            [ProspectProfile("Quickloan Finance", "NBFC")], session, enrich=True
        )

        outcome = scores[0].outcome
        assert outcome is not None
        assert outcome.source_used is Tier.SEARCH
        assert outcome.status is OutcomeStatus.OK
        assert outcome.payload["segment"] == "NBFC"
        search_client.search.assert_awaited_once()
        assert session.stats.queries_by_source == {"search": 1}
