"""Immutable intelligence snapshots and their read-time rebuild.

A snapshot bundles everything derived from one reconciliation run: ordered
records, the lookup index, per-segment adoption, the similarity engine and the
overlays in force when it was built. Readers always hold a complete snapshot;
the provider builds a replacement off to the side and publishes it with a
single reference assignment.

Freshness is checked when a reader asks for the snapshot, not by a timer.
Concurrent readers that find it stale wait on one rebuild rather than each
starting their own.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping, Sequence, TypeVar

from client_intel.core.adoption import AdoptionProfiler
from client_intel.core.classifier import (
    Classifier,
    build_category_classifier,
    industry_segment_classifier,
    segment_from_industry,
)
from client_intel.core.domain import (
    BillingLoad,
    CatalogProduct,
    ClientOverlay,
    ClientRecord,
    LoadStatus,
    ReconciliationResult,
    SegmentAdoption,
)
from client_intel.core.interfaces import IBillingSource, ICatalogSource, IOverlayStore, IRosterSource
from client_intel.core.normalizer import normalize
from client_intel.core.reconciler import Reconciler
from client_intel.core.similarity import DEFAULT_SEGMENT_BOOST, SimilarityEngine
from client_intel.errors import SourceUnavailableError
from client_intel.observability import get_logger
from client_intel.settings import Settings

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ProductBenchmark:
    """Cross-client revenue benchmark for one product.

    Attributes:
        adopters: Number of clients billed for the product.
        avg_monthly_revenue: Mean over adopters of (product revenue / months billed).
        avg_monthly_usage: Mean over adopters of (product usage / months billed).
    """

    adopters: int
    avg_monthly_revenue: float
    avg_monthly_usage: float


@dataclass(frozen=True)
class SnapshotReport:
    """How the snapshot's inputs fared."""

    built_at: datetime
    roster_available: bool
    billing_available: bool
    catalog_available: bool
    records: int
    skipped_usage_rows: int
    skipped_roster_rows: int
    unmatched_roster: int
    unmatched_billing: int
    recent_period: str | None
    warnings: tuple[str, ...] = ()

    @property
    def status(self) -> LoadStatus:
        if self.roster_available and self.billing_available and self.catalog_available:
            return LoadStatus.OK
        return LoadStatus.DEGRADED


class IntelligenceSnapshot:
    """Read-only view of one reconciliation run plus derived structures.

    Args:
        reconciliation: Reconciler output.
        catalog: Master product catalog.
        overlays: Overlays keyed by canonical_id at build time.
        report: Source health for this build.
        segment_boost: Same-segment similarity multiplier.
        segment_classifier: Classifies overlay industry labels into segments.
    """

    def __init__(
        self,
        reconciliation: ReconciliationResult,
        catalog: Sequence[CatalogProduct],
        overlays: Mapping[str, ClientOverlay],
        report: SnapshotReport,
        segment_boost: float = DEFAULT_SEGMENT_BOOST,
        segment_classifier: Classifier | None = None,
    ) -> None:
        self.records: tuple[ClientRecord, ...] = reconciliation.records
        self.reconciliation = reconciliation
        self.catalog: tuple[CatalogProduct, ...] = tuple(catalog)
        self.overlays: Mapping[str, ClientOverlay] = MappingProxyType(dict(overlays))
        self.report = report
        self.category_classifier = build_category_classifier(self.catalog)
        self._segment_classifier = segment_classifier or industry_segment_classifier()

        self._segments = {record.canonical_id: self._effective_segment(record) for record in self.records}
        self._index = self._build_index(self.records)
        self.adoption: Mapping[str, SegmentAdoption] = MappingProxyType(
            AdoptionProfiler(self.category_classifier).profile(self.records, self.catalog, self.segment_of)
        )
        self.similarity = SimilarityEngine(self.records, self.segment_of, segment_boost)
        self.benchmarks: Mapping[str, ProductBenchmark] = MappingProxyType(self._build_benchmarks(self.records))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find(self, name_or_id: str) -> ClientRecord | None:
        """Resolve a display name, canonical id or billing key to a record."""
        key = normalize(name_or_id)
        return self._index.get(key) if key else None

    def segment_of(self, record: ClientRecord) -> str:
        """Overlay-aware segment for ``record``."""
        return self._segments.get(record.canonical_id) or record.segment

    def overlay_for(self, record: ClientRecord) -> ClientOverlay | None:
        return self.overlays.get(record.canonical_id)

    def unused_products(self, record: ClientRecord) -> list[CatalogProduct]:
        """Catalog products the client has never been billed for."""
        used = {name.casefold() for name in record.products}
        return [p for p in self.catalog if p.product_name.casefold() not in used]

    def clients_in_segment(self, segment: str) -> int:
        adoption = self.adoption.get(segment)
        return adoption.total_clients_in_segment if adoption else 0

    def benchmark(self, product_name: str) -> ProductBenchmark | None:
        return self.benchmarks.get(product_name.casefold())

    # ------------------------------------------------------------------
    # Build helpers
    # ------------------------------------------------------------------

    def _effective_segment(self, record: ClientRecord) -> str:
        overlay = self.overlays.get(record.canonical_id)
        if overlay is None:
            return record.segment
        if overlay.segment:
            return overlay.segment
        if overlay.industry:
            return segment_from_industry(overlay.industry, self._segment_classifier)
        return record.segment

    @staticmethod
    def _build_index(records: Sequence[ClientRecord]) -> dict[str, ClientRecord]:
        index: dict[str, ClientRecord] = {}
        # Names and roster ids first so a billing key never shadows a display name.
        for record in records:
            for key in (normalize(record.canonical_name), normalize(record.canonical_id)):
                if key:
                    index.setdefault(key, record)
        for record in records:
            for raw_key in record.billing_keys:
                key = normalize(raw_key)
                if key:
                    index.setdefault(key, record)
        return index

    @staticmethod
    def _build_benchmarks(records: Sequence[ClientRecord]) -> dict[str, ProductBenchmark]:
        revenue: dict[str, list[float]] = {}
        usage: dict[str, list[float]] = {}
        for record in records:
            months = max(1, record.months_billed)
            for name, totals in record.products.items():
                key = name.casefold()
                revenue.setdefault(key, []).append(totals.revenue / months)
                usage.setdefault(key, []).append(totals.usage / months)
        return {
            key: ProductBenchmark(
                adopters=len(values),
                avg_monthly_revenue=round(sum(values) / len(values), 2),
                avg_monthly_usage=round(sum(usage[key]) / len(usage[key]), 2),
            )
            for key, values in revenue.items()
        }


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class SnapshotProvider:
    """Owns the current snapshot and rebuilds it when stale.

    Args:
        roster_source: Master roster.
        billing_source: Usage facts.
        catalog_source: Product catalog.
        overlay_store: Per-client overrides.
        settings: Snapshot TTL, recent period and similarity boost.
        reconciler: Injected for tests; built from settings otherwise.
        clock: Monotonic seconds, injectable for tests.
    """

    def __init__(
        self,
        roster_source: IRosterSource,
        billing_source: IBillingSource,
        catalog_source: ICatalogSource,
        overlay_store: IOverlayStore,
        settings: Settings,
        reconciler: Reconciler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._roster_source = roster_source
        self._billing_source = billing_source
        self._catalog_source = catalog_source
        self._overlay_store = overlay_store
        self._settings = settings
        self._reconciler = reconciler or Reconciler(default_recent_period=settings.recent_period)
        self._clock = clock
        self._snapshot: IntelligenceSnapshot | None = None
        self._built_at: float = 0.0
        self._stale = True
        self._lock = asyncio.Lock()
        self.builds = 0

    @property
    def current(self) -> IntelligenceSnapshot | None:
        return self._snapshot

    def invalidate(self) -> None:
        """Force a rebuild on the next ``get``; readers keep the old snapshot until then."""
        self._stale = True

    def _is_fresh(self) -> bool:
        return (
            self._snapshot is not None
            and not self._stale
            and self._clock() - self._built_at < self._settings.snapshot_ttl_seconds
        )

    async def get(self) -> IntelligenceSnapshot:
        """Return a fresh snapshot, rebuilding first if the TTL has elapsed."""
        if self._is_fresh():
            return self._snapshot  # type: ignore[return-value]
        async with self._lock:
            if self._is_fresh():
                return self._snapshot  # type: ignore[return-value]
            return await self._rebuild_locked()

    async def rebuild(self) -> IntelligenceSnapshot:
        async with self._lock:
            return await self._rebuild_locked()

    async def _rebuild_locked(self) -> IntelligenceSnapshot:
        self._stale = False
        snapshot = await self._build()
        self._snapshot = snapshot
        self._built_at = self._clock()
        self.builds += 1
        return snapshot

    async def _build(self) -> IntelligenceSnapshot:
        roster, billing, catalog, overlays = await asyncio.gather(
            _optional("roster", self._roster_source.load_roster),
            _optional("billing", self._billing_source.load_usage),
            _optional("catalog", self._catalog_source.load_catalog),
            _optional("overlays", self._overlay_store.list_all),
        )
        billing_load = billing if billing is not None else BillingLoad(facts=(), status=LoadStatus.DEGRADED)

        roster_entries = roster.entries if roster is not None else None
        roster_skipped = roster.skipped_rows if roster is not None else 0
        reconciliation = self._reconciler.reconcile(roster_entries, billing_load.facts)
        warnings = list(reconciliation.warnings)
        if billing is None:
            warnings.append("billing unavailable; records carry no usage")
        if catalog is None:
            warnings.append("catalog unavailable; unused-product lists are empty")

        report = SnapshotReport(
            built_at=datetime.now(timezone.utc),
            roster_available=roster is not None,
            billing_available=billing is not None,
            catalog_available=catalog is not None,
            records=len(reconciliation.records),
            skipped_usage_rows=len(billing_load.errors),
            skipped_roster_rows=reconciliation.skipped_roster_rows + roster_skipped,
            unmatched_roster=reconciliation.unmatched_roster,
            unmatched_billing=reconciliation.unmatched_billing,
            recent_period=reconciliation.recent_period,
            warnings=tuple(warnings),
        )
        snapshot = IntelligenceSnapshot(
            reconciliation=reconciliation,
            catalog=catalog or [],
            overlays={o.canonical_id: o for o in overlays or []},
            report=report,
            segment_boost=self._settings.same_segment_boost,
        )
        logger.info(
            "snapshot_built",
            records=report.records,
            status=report.status.value,
            segments=len(snapshot.adoption),
            overlays=len(snapshot.overlays),
        )
        return snapshot


async def _optional(source: str, loader: Callable[[], Awaitable[T]]) -> T | None:
    try:
        return await loader()
    except SourceUnavailableError as exc:
        logger.warning("source_unavailable", source=source, error=exc.message)
        return None
