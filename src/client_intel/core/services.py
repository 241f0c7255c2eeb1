"""Business logic facade for the Client Intelligence Engine.

The HTTP layer talks only to ``ClientIntelligenceService``; every method reads
from the current snapshot, so one request sees one consistent view even while
a rebuild is in progress.

Operations:
  list_clients / client_listing ordered client records, optionally filtered
  get_client / client_view      one record by name, id or billing key
  recommendations_for_client    ranked pitches plus potential upsell
  recommendations_for_prospect  pitches for a non-client profile
  similar_clients               nearest neighbours by product overlap
  unused_products               catalog products never billed to a client
  segment_adoption              per-segment product adoption statistics
  set_overlay / delete_overlay  user edits, applied at the next snapshot build
  score_prospects               fit score and pitch list for many prospects
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, Mapping, Sequence

from client_intel.core.decision_router import DecisionRouter
from client_intel.core.domain import (
    Capability,
    CatalogProduct,
    ClientOverlay,
    ClientRecord,
    DecisionRequest,
    ProspectProfile,
    ProspectScore,
    Recommendation,
    SegmentAdoption,
    SimilarityEdge,
)
from client_intel.core.interfaces import IOverlayStore
from client_intel.core.prospects import score_prospect
from client_intel.core.recommendations import RecommendationComposer, potential_upsell
from client_intel.core.snapshot import IntelligenceSnapshot, SnapshotProvider, SnapshotReport
from client_intel.core.usage import UsageSession
from client_intel.errors import NotFoundError
from client_intel.observability import get_logger
from client_intel.settings import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClientView:
    """A record paired with its effective segment from the same snapshot."""

    record: ClientRecord
    segment: str


def _filter_records(
    records: Iterable[ClientRecord], active_only: bool, in_roster: bool | None
) -> list[ClientRecord]:
    selected = list(records)
    if active_only:
        selected = [r for r in selected if r.is_active]
    if in_roster is not None:
        selected = [r for r in selected if r.in_roster == in_roster]
    return selected


def _find_or_raise(snapshot: IntelligenceSnapshot, name_or_id: str) -> ClientRecord:
    record = snapshot.find(name_or_id)
    if record is None:
        raise NotFoundError("client", name_or_id)
    return record


class ClientIntelligenceService:
    """Read and overlay operations over the current intelligence snapshot.

    Args:
        snapshots: Snapshot provider.
        composer: Recommendation composer.
        overlay_store: Persistence for client overlays.
        router: Decision router, used for enriched prospect scoring.
        settings: Default limits.
    """

    def __init__(
        self,
        snapshots: SnapshotProvider,
        composer: RecommendationComposer,
        overlay_store: IOverlayStore,
        router: DecisionRouter,
        settings: Settings,
    ) -> None:
        self._snapshots = snapshots
        self._composer = composer
        self._overlay_store = overlay_store
        self._router = router
        self._settings = settings

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    async def list_clients(self, active_only: bool = False, in_roster: bool | None = None) -> list[ClientRecord]:
        snapshot = await self._snapshots.get()
        return _filter_records(snapshot.records, active_only, in_roster)

    async def client_listing(
        self,
        active_only: bool = False,
        in_roster: bool | None = None,
    ) -> tuple[list[ClientView], SnapshotReport]:
        """Filtered clients with their effective segments, plus the report of
        the snapshot they were read from."""
        snapshot = await self._snapshots.get()
        views = [
            ClientView(record, snapshot.segment_of(record))
            for record in _filter_records(snapshot.records, active_only, in_roster)
        ]
        return views, snapshot.report

    async def get_client(self, name_or_id: str) -> ClientRecord:
        """Resolve a client.

        Raises:
            NotFoundError: If no record matches after normalisation.
        """
        snapshot = await self._snapshots.get()
        return _find_or_raise(snapshot, name_or_id)

    async def client_view(self, name_or_id: str) -> ClientView:
        """Resolve a client together with its overlay-aware segment.

        Raises:
            NotFoundError: If no record matches after normalisation.
        """
        snapshot = await self._snapshots.get()
        record = _find_or_raise(snapshot, name_or_id)
        return ClientView(record, snapshot.segment_of(record))

    async def recommendations_for_client(
        self,
        name_or_id: str,
        limit: int | None = None,
    ) -> tuple[ClientView, list[Recommendation], float]:
        """Ranked recommendations for an existing client.

        Returns:
            The client view, its recommendations, and the potential monthly
            upsell over the top recommendations.

        Raises:
            NotFoundError: If the client is unknown.
        """
        snapshot = await self._snapshots.get()
        record = _find_or_raise(snapshot, name_or_id)
        recommendations = self._composer.for_client(
            record, snapshot, limit=limit or self._settings.default_recommendation_limit
        )
        upsell = potential_upsell(recommendations, self._settings.upsell_top_n)
        logger.info(
            "client_recommendations_generated",
            client=record.canonical_name,
            count=len(recommendations),
            potential_upsell=upsell,
        )
        return ClientView(record, snapshot.segment_of(record)), recommendations, upsell

    async def recommendations_for_prospect(
        self,
        profile: ProspectProfile,
        limit: int | None = None,
    ) -> list[Recommendation]:
        snapshot = await self._snapshots.get()
        return self._composer.for_prospect(profile, snapshot, limit=limit or self._settings.default_recommendation_limit)

    async def similar_clients(self, name_or_id: str, k: int | None = None) -> list[SimilarityEdge]:
        """Nearest neighbours of a client.

        Raises:
            NotFoundError: If the client is unknown.
        """
        snapshot = await self._snapshots.get()
        record = _find_or_raise(snapshot, name_or_id)
        return snapshot.similarity.find_similar(record, k or self._settings.similar_neighbors)

    async def unused_products(self, name_or_id: str) -> list[CatalogProduct]:
        snapshot = await self._snapshots.get()
        record = _find_or_raise(snapshot, name_or_id)
        return snapshot.unused_products(record)

    async def segment_adoption(self, segment: str | None = None) -> Mapping[str, SegmentAdoption]:
        """Adoption for every segment, or only ``segment``.

        Raises:
            NotFoundError: If a named segment has no clients.
        """
        snapshot = await self._snapshots.get()
        if segment is None:
            return snapshot.adoption
        adoption = snapshot.adoption.get(segment)
        if adoption is None:
            raise NotFoundError("segment", segment)
        return {segment: adoption}

    async def snapshot_report(self) -> SnapshotReport:
        snapshot = await self._snapshots.get()
        return snapshot.report

    # ------------------------------------------------------------------
    # Overlays
    # ------------------------------------------------------------------

    async def set_overlay(self, overlay: ClientOverlay) -> ClientOverlay:
        """Store an overlay for an existing client and mark the snapshot stale.

        Raises:
            NotFoundError: If ``overlay.canonical_id`` matches no client.
        """
        record = await self.get_client(overlay.canonical_id)
        stored = await self._overlay_store.upsert(
            replace(overlay, canonical_id=record.canonical_id, updated_at=datetime.now(timezone.utc))
        )
        self._snapshots.invalidate()
        logger.info("client_overlay_saved", canonical_id=stored.canonical_id)
        return stored

    async def delete_overlay(self, canonical_id: str) -> None:
        """Remove an overlay.

        Raises:
            NotFoundError: If no overlay exists for ``canonical_id``.
        """
        removed = await self._overlay_store.delete(canonical_id)
        if not removed:
            raise NotFoundError("overlay", canonical_id)
        self._snapshots.invalidate()
        logger.info("client_overlay_deleted", canonical_id=canonical_id)

    # ------------------------------------------------------------------
    # Prospects
    # ------------------------------------------------------------------

    async def score_prospects(
        self,
        profiles: Sequence[ProspectProfile],
        session: UsageSession,
        enrich: bool = False,
        limit: int | None = None,
    ) -> list[ProspectScore]:
        """Score many prospects, best fit first.

        With ``enrich`` each prospect is also routed as a realtime request
        (bounded by ``batch_max_concurrency``); unknown names reach the search
        tier. The routed outcome is attached to its score.
        """
        snapshot = await self._snapshots.get()
        semaphore = asyncio.Semaphore(max(1, self._settings.batch_max_concurrency))
        size = limit or self._settings.default_recommendation_limit

        async def _score(profile: ProspectProfile) -> ProspectScore:
            outcome = None
            if enrich:
                async with semaphore:
                    outcome = await self._router.decide(
                        DecisionRequest(
                            target_name=profile.name,
                            capability=Capability.RECOMMENDATIONS,
                            realtime=True,
                            segment_hint=profile.segment,
                        ),
                        session,
                    )
            recommendations = self._composer.for_prospect(profile, snapshot, limit=size)
            return score_prospect(profile, snapshot, recommendations, outcome)

        scores = await asyncio.gather(*(_score(p) for p in profiles))
        ordered = sorted(scores, key=lambda s: (-s.fit_score, -s.estimated_annual_value, s.profile.name.casefold()))
        logger.info("prospects_scored", count=len(ordered), enriched=enrich, session_id=session.session_id)
        return ordered
