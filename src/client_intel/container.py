"""Wires settings into sources, caches, quotas, the router and the service.

``ServiceContainer.from_settings`` is the single place where concrete
adapters are chosen: file sources for roster/billing/catalog, SQL stores when
``database_url`` is set (in-memory otherwise), and HTTP clients for the two
costly tiers.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from client_intel.adapters.ai_client import OpenAIChatClient
from client_intel.adapters.file_sources import CsvBillingSource, JsonCatalogSource, JsonRosterSource
from client_intel.adapters.memory import InMemoryOverlayStore
from client_intel.adapters.repositories import SqlOverlayStore, SqlUsageTracker
from client_intel.adapters.search_client import GoogleSearchClient
from client_intel.adapters.usage_parser import CurrencyConverter
from client_intel.core.caching import TTLCache
from client_intel.core.decision_router import DecisionRouter
from client_intel.core.domain import Tier
from client_intel.core.interfaces import (
    IAIClient,
    IBillingSource,
    ICatalogSource,
    IOverlayStore,
    IRosterSource,
    ISearchClient,
    IUsageTracker,
)
from client_intel.core.quota import DailyQuota
from client_intel.core.recommendations import RecommendationComposer
from client_intel.core.services import ClientIntelligenceService
from client_intel.core.snapshot import SnapshotProvider
from client_intel.core.usage import InMemoryUsageTracker, SessionRegistry
from client_intel.observability import get_logger
from client_intel.settings import Settings

logger = get_logger(__name__)

_PACKAGE_DIR = Path(__file__).parent


def resolve_data_path(raw: str) -> Path:
    """Use ``raw`` as given if it exists, else look for it inside the package."""
    path = Path(raw)
    if path.is_absolute() or path.exists():
        return path
    return _PACKAGE_DIR / path


@dataclass
class ServiceContainer:
    """Everything a request handler needs, built once per process."""

    settings: Settings
    snapshots: SnapshotProvider
    router: DecisionRouter
    service: ClientIntelligenceService
    sessions: SessionRegistry
    search_cache: TTLCache
    ai_cache: TTLCache
    engine: AsyncEngine | None = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        roster_source: IRosterSource,
        billing_source: IBillingSource,
        catalog_source: ICatalogSource,
        overlay_store: IOverlayStore,
        search_client: ISearchClient | None,
        ai_client: IAIClient | None,
        usage_tracker: IUsageTracker | None = None,
        engine: AsyncEngine | None = None,
    ) -> "ServiceContainer":
        """Assemble a container from explicit adapters (tests use this directly)."""
        snapshots = SnapshotProvider(roster_source, billing_source, catalog_source, overlay_store, settings)
        composer = RecommendationComposer(neighbor_count=settings.similar_neighbors)
        search_cache = TTLCache(
            Tier.SEARCH.value,
            settings.search_cache_ttl_seconds,
            persist_dir=settings.cache_dir,
            io_timeout_seconds=settings.cache_io_timeout_seconds,
        )
        ai_cache = TTLCache(
            Tier.AI.value,
            settings.ai_cache_ttl_seconds,
            persist_dir=settings.cache_dir,
            io_timeout_seconds=settings.cache_io_timeout_seconds,
        )
        router = DecisionRouter(
            snapshots=snapshots,
            composer=composer,
            settings=settings,
            search_client=search_client,
            ai_client=ai_client,
            search_cache=search_cache,
            ai_cache=ai_cache,
            search_quota=DailyQuota(Tier.SEARCH.value, settings.search_daily_quota),
            ai_quota=DailyQuota(Tier.AI.value, settings.ai_daily_quota),
        )
        service = ClientIntelligenceService(snapshots, composer, overlay_store, router, settings)
        return cls(
            settings=settings,
            snapshots=snapshots,
            router=router,
            service=service,
            sessions=SessionRegistry(usage_tracker, max_sessions=settings.max_sessions),
            search_cache=search_cache,
            ai_cache=ai_cache,
            engine=engine,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        converter = CurrencyConverter(settings.currency_rates, settings.reporting_currency)
        timeout = settings.source_load_timeout_seconds

        engine: AsyncEngine | None = None
        overlay_store: IOverlayStore
        usage_tracker: IUsageTracker
        if settings.database_url:
            engine = create_async_engine(settings.database_url, pool_pre_ping=True)
            session_factory = async_sessionmaker(engine, expire_on_commit=False)
            overlay_store = SqlOverlayStore(session_factory)
            usage_tracker = SqlUsageTracker(session_factory)
        else:
            overlay_store = InMemoryOverlayStore()
            usage_tracker = InMemoryUsageTracker()

        logger.info(
            "service_container_built",
            roster_path=settings.roster_path,
            billing_path=settings.billing_path,
            catalog_path=settings.catalog_path,
            persistence="sql" if engine is not None else "memory",
        )
        return cls.build(
            settings=settings,
            roster_source=JsonRosterSource(resolve_data_path(settings.roster_path), timeout),
            billing_source=CsvBillingSource(resolve_data_path(settings.billing_path), converter, timeout),
            catalog_source=JsonCatalogSource(resolve_data_path(settings.catalog_path), timeout),
            overlay_store=overlay_store,
            search_client=GoogleSearchClient(settings),
            ai_client=OpenAIChatClient(settings),
            usage_tracker=usage_tracker,
            engine=engine,
        )

    async def aclose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
