"""Tests for IntelligenceSnapshot lookups and SnapshotProvider freshness."""

import asyncio
import json
from pathlib import Path
from typing import Any, Callable

import pytest

from client_intel.adapters.file_sources import JsonRosterSource
from client_intel.adapters.memory import InMemoryBillingSource, InMemoryCatalogSource, InMemoryOverlayStore
from client_intel.core.domain import CatalogProduct, ClientOverlay, LoadStatus, UsageFact
from client_intel.core.snapshot import SnapshotProvider
from client_intel.settings import Settings


class TestSnapshotLookups:
    @pytest.mark.asyncio
    async def test_find_by_name_id_and_billing_key(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        snapshot = await make_provider().get()

        assert snapshot.find("  credo   LENDING ").canonical_id == "CL3"
        assert snapshot.find("CL3").canonical_name == "Credo Lending"
        assert snapshot.find("zz4").canonical_name == "Zeta Games"
        assert snapshot.find("Nobody Inc") is None
        assert snapshot.find("   ") is None

    @pytest.mark.asyncio
    async def test_records_in_display_order(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        snapshot = await make_provider().get()

        assert [r.canonical_name for r in snapshot.records] == [
            "Acme Pay",
            "Bharat Finserv",
            "Credo Lending",
            "Dhan Insure",
            "Ekart Rides",
            "Zeta Games",
        ]
        assert snapshot.report.status is LoadStatus.OK
        assert snapshot.report.recent_period == "2025-09"

    @pytest.mark.asyncio
    async def test_unused_products_follow_catalog_order(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        snapshot = await make_provider().get()

        unused = snapshot.unused_products(snapshot.find("Credo Lending"))

        assert [p.product_name for p in unused] == [
            "Aadhaar OKYC with OTP",
            "Face Match",
            "AML Search",
            "Ongoing Monitoring",
            "Document OCR",
        ]

    @pytest.mark.asyncio
    async def test_benchmarks_are_per_adopter_monthly_means(
        self, make_provider: Callable[..., SnapshotProvider]
    ) -> None:
        snapshot = await make_provider().get()

        face_match = snapshot.benchmark("face match")

        assert face_match is not None
        assert face_match.adopters == 2
        assert face_match.avg_monthly_revenue == 9.0
        assert face_match.avg_monthly_usage == 275.0
        assert snapshot.benchmark("Teleportation") is None

    @pytest.mark.asyncio
    async def test_clients_in_segment(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        snapshot = await make_provider().get()
        assert snapshot.clients_in_segment("NBFC") == 2
        assert snapshot.clients_in_segment("Aerospace") == 0


class TestOverlays:
    @pytest.mark.asyncio
    async def test_overlay_segment_wins(
        self, make_provider: Callable[..., SnapshotProvider], overlay_store: InMemoryOverlayStore
    ) -> None:
        await overlay_store.upsert(ClientOverlay("ZZ4", segment="Fintech"))
        snapshot = await make_provider().get()

        zeta = snapshot.find("Zeta Games")
        assert zeta.segment == "Gaming"
        assert snapshot.segment_of(zeta) == "Fintech"
        assert snapshot.overlay_for(zeta).segment == "Fintech"
        assert "Fintech" in snapshot.adoption

    @pytest.mark.asyncio
    async def test_overlay_industry_is_reclassified(
        self, make_provider: Callable[..., SnapshotProvider], overlay_store: InMemoryOverlayStore
    ) -> None:
        await overlay_store.upsert(ClientOverlay("AC1", industry="Digital lending"))
        snapshot = await make_provider().get()

        assert snapshot.segment_of(snapshot.find("AC1")) == "NBFC"
        assert snapshot.clients_in_segment("NBFC") == 3

    @pytest.mark.asyncio
    async def test_no_overlay_keeps_record_segment(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        snapshot = await make_provider().get()
        acme = snapshot.find("Acme Pay")
        assert snapshot.overlay_for(acme) is None
        assert snapshot.segment_of(acme) == acme.segment


class TestDegradedSources:
    @pytest.mark.asyncio
    async def test_roster_unavailable(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        snapshot = await make_provider(roster_available=False).get()

        assert snapshot.report.status is LoadStatus.DEGRADED
        assert snapshot.report.roster_available is False
        assert snapshot.records
        assert not any(r.in_roster or r.is_active for r in snapshot.records)
        assert any("roster unavailable" in w for w in snapshot.report.warnings)

    @pytest.mark.asyncio
    async def test_billing_unavailable(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        snapshot = await make_provider(billing_available=False).get()

        assert snapshot.report.status is LoadStatus.DEGRADED
        assert [r.canonical_id for r in snapshot.records] == ["AC1", "BF7", "CL3", "DI2", "ER9"]
        assert all(r.total_revenue == 0 and not r.is_active for r in snapshot.records)
        assert any("billing unavailable" in w for w in snapshot.report.warnings)

    @pytest.mark.asyncio
    async def test_unusable_roster_rows_are_reported(
        self,
        tmp_path: Path,
        settings: Settings,
        facts: list[UsageFact],
        catalog: list[CatalogProduct],
    ) -> None:
        roster_path = tmp_path / "clients.json"
        roster_path.write_text(
            json.dumps([{"name": "Acme Pay", "id": "AC1"}, {"industry": "NBFC"}, "not an object"]),
            encoding="utf-8",
        )
        provider = SnapshotProvider(
            roster_source=JsonRosterSource(roster_path),
            billing_source=InMemoryBillingSource(facts),
            catalog_source=InMemoryCatalogSource(catalog),
            overlay_store=InMemoryOverlayStore(),
            settings=settings,
        )

        snapshot = await provider.get()

        assert snapshot.report.skipped_roster_rows == 2
        assert snapshot.report.roster_available is True
        assert snapshot.find("AC1").in_roster is True


class TestSnapshotProvider:
    @pytest.mark.asyncio
    async def test_reuses_snapshot_within_ttl(
        self, make_provider: Callable[..., SnapshotProvider], fake_clock: Any
    ) -> None:
        provider = make_provider(clock=fake_clock)

        first = await provider.get()
        fake_clock.advance(299)
        second = await provider.get()

        assert first is second
        assert provider.builds == 1

    @pytest.mark.asyncio
    async def test_rebuilds_after_ttl(self, make_provider: Callable[..., SnapshotProvider], fake_clock: Any) -> None:
        provider = make_provider(clock=fake_clock)

        first = await provider.get()
        fake_clock.advance(300)
        second = await provider.get()

        assert first is not second
        assert provider.builds == 2
        assert provider.current is second

    @pytest.mark.asyncio
    async def test_invalidate_forces_rebuild(
        self, make_provider: Callable[..., SnapshotProvider], overlay_store: InMemoryOverlayStore
    ) -> None:
        provider = make_provider()
        before = await provider.get()
        await overlay_store.upsert(ClientOverlay("ZZ4", segment="Fintech"))

        # Stale until invalidated.
        assert (await provider.get()) is before

        provider.invalidate()
        after = await provider.get()

        assert after is not before
        assert after.segment_of(after.find("ZZ4")) == "Fintech"
        # Readers holding the old snapshot still see the old segment.
        assert before.segment_of(before.find("ZZ4")) == "Gaming"

    @pytest.mark.asyncio
    async def test_concurrent_readers_share_one_build(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        provider = make_provider()

        snapshots = await asyncio.gather(*(provider.get() for _ in range(10)))

        assert provider.builds == 1
        assert all(s is snapshots[0] for s in snapshots)

    @pytest.mark.asyncio
    async def test_explicit_rebuild(self, make_provider: Callable[..., SnapshotProvider]) -> None:
        provider = make_provider()
        await provider.get()
        await provider.rebuild()
        assert provider.builds == 2
