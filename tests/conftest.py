"""Shared test fixtures for client-intel tests."""

import sys
from pathlib import Path

# Ensure the src/ layout is importable without installing the package.
_SRC_PATH = Path(__file__).parent.parent / "src"
if str(_SRC_PATH) not in sys.path:
    sys.path.insert(0, str(_SRC_PATH))

from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from client_intel.adapters.memory import (
    InMemoryBillingSource,
    InMemoryCatalogSource,
    InMemoryOverlayStore,
    InMemoryRosterSource,
)
from client_intel.core.caching import TTLCache
from client_intel.core.decision_router import DecisionRouter
from client_intel.core.domain import CatalogProduct, RosterEntry, Tier, UsageFact
from client_intel.core.quota import DailyQuota
from client_intel.core.recommendations import RecommendationComposer
from client_intel.core.snapshot import SnapshotProvider
from client_intel.settings import Settings


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Provide test settings with safe defaults (no credentials, no database)."""
    return Settings(
        search_api_key=None,
        search_engine_id=None,
        ai_api_key=None,
        database_url=None,
        cache_dir=None,
        recent_period=None,
        search_daily_quota=100,
        ai_daily_quota=500,
        search_timeout_seconds=1.0,
        ai_timeout_seconds=1.0,
        log_json=False,
    )


@pytest.fixture
def roster() -> list[RosterEntry]:
    """Five roster clients; Ekart Rides has no billing."""
    return [
        RosterEntry("Acme Pay", "AC1", industry="Payment Service Provider"),
        RosterEntry("Bharat Finserv", "BF7", industry="NBFC"),
        RosterEntry("Credo Lending", "CL3", industry="NBFC Lending"),
        RosterEntry("Dhan Insure", "DI2", industry="Insurance"),
        RosterEntry("Ekart Rides", "ER9", industry="Gig Economy"),
    ]


@pytest.fixture
def facts() -> list[UsageFact]:
    """Usage facts in USD. Zeta Games is billed but not in the roster."""
    return [
        UsageFact("AC1", "2025-08", "PAN Verification", 1000, 20.0),
        UsageFact("AC1", "2025-09", "PAN Verification", 1200, 30.0),
        UsageFact("BF7", "2025-08", "PAN Verification", 5000, 100.0, client_name="Bharat Finserv", industry="NBFC"),
        UsageFact("BF7", "2025-08", "Bank Account Verification", 800, 40.0, client_name="Bharat Finserv"),
        UsageFact("BF7", "2025-09", "Aadhaar OKYC with OTP", 2000, 80.0, client_name="Bharat Finserv"),
        UsageFact("CL3", "2025-09", "PAN Verification", 700, 14.0, client_name="Credo Lending"),
        UsageFact("CL3", "2025-09", "Bank Account Verification", 250, 12.5, client_name="Credo Lending"),
        UsageFact("CL3", "2025-09", "Credit Bureau", 90, 45.0, client_name="Credo Lending"),
        UsageFact("DI2", "2025-07", "Face Match", 150, 6.0, client_name="Dhan Insure"),
        UsageFact("ZZ4", "2025-09", "PAN Verification", 400, 8.0, client_name="Zeta Games", industry="Gaming"),
        UsageFact("ZZ4", "2025-09", "Face Match", 400, 12.0, client_name="Zeta Games", industry="Gaming"),
    ]


@pytest.fixture
def catalog() -> list[CatalogProduct]:
    return [
        CatalogProduct("PAN Verification", "Identity Verification"),
        CatalogProduct("Aadhaar OKYC with OTP", "Identity Verification"),
        CatalogProduct("Face Match", "Face & Biometric"),
        CatalogProduct("Bank Account Verification", "Bank & Financial"),
        CatalogProduct("AML Search", "AML & Compliance"),
        CatalogProduct("Ongoing Monitoring", "AML & Compliance"),
        CatalogProduct("Document OCR", "Document OCR"),
        CatalogProduct("Credit Bureau", "Credit & Risk"),
    ]


@pytest.fixture
def overlay_store() -> InMemoryOverlayStore:
    return InMemoryOverlayStore()


@pytest.fixture
def make_provider(
    settings: Settings,
    roster: list[RosterEntry],
    facts: list[UsageFact],
    catalog: list[CatalogProduct],
    overlay_store: InMemoryOverlayStore,
) -> Callable[..., SnapshotProvider]:
    """Factory for a SnapshotProvider over the in-memory fixtures."""

    def _make(
        roster_available: bool = True,
        billing_available: bool = True,
        clock: Callable[[], float] | None = None,
        provider_settings: Settings | None = None,
    ) -> SnapshotProvider:
        kwargs: dict[str, Any] = {}
        if clock is not None:
            kwargs["clock"] = clock
        return SnapshotProvider(
            roster_source=InMemoryRosterSource(roster, available=roster_available),
            billing_source=InMemoryBillingSource(facts, available=billing_available),
            catalog_source=InMemoryCatalogSource(catalog),
            overlay_store=overlay_store,
            settings=provider_settings or settings,
            **kwargs,
        )

    return _make


@pytest.fixture
def search_client() -> AsyncMock:
    """Configured search client returning two results."""
    client = AsyncMock()
    client.configured = True
    client.search.return_value = [
        {
            "title": "Quickloan Finance raises $12 million",
            "snippet": "Quickloan Finance is a digital lending NBFC headquartered in Pune, with 250 employees.",
            "link": "https://economictimes.com/quickloan",
            "display_link": "economictimes.com",
            "source": "news",
        },
        {
            "title": "Quickloan Finance | Instant personal loans",
            "snippet": "Quickloan Finance offers instant personal loans to salaried professionals across India.",
            "link": "https://quickloanfinance.in/",
            "display_link": "quickloanfinance.in",
            "source": "company",
        },
    ]
    return client


@pytest.fixture
def ai_client() -> AsyncMock:
    """Configured AI client returning a schema-valid analysis."""
    client = AsyncMock()
    client.configured = True
    client.analyze.return_value = {
        "company": "Quickloan Finance",
        "industry": "NBFC",
        "summary": "Digital lender focused on salaried borrowers.",
        "pitch": "Cut onboarding drop-off with one-call KYC.",
        "recommendations": [
            {"product": "Aadhaar OKYC", "priority": "critical", "reason": "Regulatory KYC", "estimated_monthly_revenue": 4000},
        ],
    }
    return client


@pytest.fixture
def make_router(
    settings: Settings,
    make_provider: Callable[..., SnapshotProvider],
) -> Callable[..., DecisionRouter]:
    """Factory for a DecisionRouter with injectable clients, clock and quotas."""

    def _make(
        search: Any = None,
        ai: Any = None,
        clock: Callable[[], float] | None = None,
        search_quota: int | None = None,
        ai_quota: int | None = None,
        router_settings: Settings | None = None,
    ) -> DecisionRouter:
        active = router_settings or settings
        cache_kwargs: dict[str, Any] = {"clock": clock} if clock is not None else {}
        return DecisionRouter(
            snapshots=make_provider(provider_settings=active),
            composer=RecommendationComposer(neighbor_count=active.similar_neighbors),
            settings=active,
            search_client=search,
            ai_client=ai,
            search_cache=TTLCache(Tier.SEARCH.value, active.search_cache_ttl_seconds, **cache_kwargs),
            ai_cache=TTLCache(Tier.AI.value, active.ai_cache_ttl_seconds, **cache_kwargs),
            search_quota=DailyQuota(Tier.SEARCH.value, search_quota if search_quota is not None else active.search_daily_quota),
            ai_quota=DailyQuota(Tier.AI.value, ai_quota if ai_quota is not None else active.ai_daily_quota),
        )

    return _make
