"""Decision Router: picks the cheapest sufficient data source per query.

Waterfall (first match wins):

  database  known client, no explicit realtime/AI/search request     confidence 0.95, free
  ai        pitch capability or force_ai                             confidence 0.85, ~$0.01/call
  search    (unknown target and realtime) or force_search            confidence 0.70, ~$0.005/call
  rules     everything else                                          confidence 0.60, free

The two costly tiers check their TTL cache first, then reserve one unit of
the day's quota, then call out under a timeout. A quota refusal, a missing
credential, a timeout or a malformed answer never reaches the caller: the
query is answered by the rules tier with a status saying why.
"""

import asyncio
import time
from dataclasses import replace
from typing import Any, Sequence

from client_intel.core.caching import TTLCache
from client_intel.core.classifier import Classifier, industry_segment_classifier, name_segment_classifier
from client_intel.core.domain import (
    Capability,
    ClientRecord,
    DecisionOutcome,
    DecisionRequest,
    OutcomeStatus,
    ProspectProfile,
    Tier,
)
from client_intel.core.enrichment import build_pitch_prompt, extract_company_info, parse_analysis
from client_intel.core.interfaces import IAIClient, ISearchClient
from client_intel.core.quota import DailyQuota
from client_intel.core.recommendations import RecommendationComposer, potential_upsell
from client_intel.core.serialization import (
    catalog_product_to_dict,
    edge_to_dict,
    recommendation_to_dict,
    record_to_dict,
)
from client_intel.core.snapshot import IntelligenceSnapshot, SnapshotProvider
from client_intel.core.usage import UsageSession
from client_intel.errors import ConfigurationMissingError, EnrichmentFailedError
from client_intel.observability import get_logger
from client_intel.settings import Settings

logger = get_logger(__name__)

TIER_CONFIDENCE: dict[Tier, float] = {
    Tier.DATABASE: 0.95,
    Tier.AI: 0.85,
    Tier.SEARCH: 0.7,
    Tier.RULES: 0.6,
}


class DecisionRouter:
    """Routes target queries through the cost waterfall.

    Args:
        snapshots: Provides the current intelligence snapshot.
        composer: Builds recommendation lists.
        settings: Costs, timeouts and limits.
        search_client: Search tier; None means the tier is unavailable.
        ai_client: AI tier; None means the tier is unavailable.
        search_cache: TTL cache for search payloads.
        ai_cache: TTL cache for AI payloads.
        search_quota: Daily budget for search calls.
        ai_quota: Daily budget for AI calls.
        name_classifier: Infers a segment from a company name for unknown targets.
    """

    def __init__(
        self,
        snapshots: SnapshotProvider,
        composer: RecommendationComposer,
        settings: Settings,
        search_client: ISearchClient | None,
        ai_client: IAIClient | None,
        search_cache: TTLCache,
        ai_cache: TTLCache,
        search_quota: DailyQuota,
        ai_quota: DailyQuota,
        name_classifier: Classifier | None = None,
    ) -> None:
        self._snapshots = snapshots
        self._composer = composer
        self._settings = settings
        self._search_client = search_client
        self._ai_client = ai_client
        self._search_cache = search_cache
        self._ai_cache = ai_cache
        self._search_quota = search_quota
        self._ai_quota = ai_quota
        self._name_classifier = name_classifier or name_segment_classifier()
        self._industry_classifier = industry_segment_classifier()
        self._costs: dict[Tier, float] = {
            Tier.DATABASE: 0.0,
            Tier.RULES: 0.0,
            Tier.SEARCH: settings.search_cost_per_call_usd,
            Tier.AI: settings.ai_cost_per_call_usd,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def decide(self, request: DecisionRequest, session: UsageSession) -> DecisionOutcome:
        """Route one request and record it against ``session``.

        Args:
            request: Target name, capability and explicit tier flags.
            session: Usage counters for the calling session.

        Returns:
            DecisionOutcome; never raises for expected tier failures.
        """
        started = time.perf_counter()
        snapshot = await self._snapshots.get()
        record = snapshot.find(request.target_name)

        wants_ai = request.capability is Capability.PITCH or request.force_ai
        explicit = wants_ai or request.realtime or request.force_search

        if record is not None and not explicit:
            outcome = self._database(request, record, snapshot)
        elif wants_ai:
            outcome = await self._ai(request, record, snapshot)
        elif request.force_search or (record is None and request.realtime):
            outcome = await self._search(request, record, snapshot)
        elif record is not None:
            outcome = self._rules(request, record, snapshot, reasoning="Realtime enrichment is only used for unknown targets")
        else:
            outcome = self._rules(request, record, snapshot, reasoning="No database match and no enrichment requested")

        outcome = replace(outcome, took_millis=round((time.perf_counter() - started) * 1000, 3))
        cost = 0.0 if outcome.cached else self._costs[outcome.source_used]
        await session.record(outcome.source_used, cost, cached=outcome.cached)

        logger.info(
            "decision_routed",
            target=request.target_name,
            capability=request.capability.value,
            source=outcome.source_used.value,
            status=outcome.status.value,
            cached=outcome.cached,
            fallback_from=outcome.fallback_from.value if outcome.fallback_from else None,
            took_millis=outcome.took_millis,
            session_id=session.session_id,
        )
        return outcome

    async def decide_batch(
        self,
        requests: Sequence[DecisionRequest],
        session: UsageSession,
        max_concurrency: int | None = None,
    ) -> list[DecisionOutcome]:
        """Route many requests with at most ``max_concurrency`` in flight.

        Results are returned in request order.
        """
        semaphore = asyncio.Semaphore(max(1, max_concurrency or self._settings.batch_max_concurrency))

        async def _bounded(request: DecisionRequest) -> DecisionOutcome:
            async with semaphore:
                return await self.decide(request, session)

        outcomes = await asyncio.gather(*(_bounded(r) for r in requests))
        logger.info("decision_batch_completed", requests=len(requests), session_id=session.session_id)
        return list(outcomes)

    def quota_status(self) -> dict[str, dict[str, Any]]:
        status: dict[str, dict[str, Any]] = {}
        for tier, quota in ((Tier.SEARCH, self._search_quota), (Tier.AI, self._ai_quota)):
            counter = quota.status()
            status[tier.value] = {
                "date": counter.date_key,
                "used": counter.used_count,
                "remaining": counter.remaining,
                "limit": counter.daily_limit,
            }
        return status

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _segment_for(self, request: DecisionRequest, record: ClientRecord | None, snapshot: IntelligenceSnapshot) -> str:
        if request.segment_hint:
            return request.segment_hint
        if record is not None:
            return snapshot.segment_of(record)
        return self._name_classifier.classify(request.target_name) or "General"

    def _database(
        self,
        request: DecisionRequest,
        record: ClientRecord,
        snapshot: IntelligenceSnapshot,
    ) -> DecisionOutcome:
        segment = snapshot.segment_of(record)
        payload: dict[str, Any] = {
            "is_existing_client": True,
            "client": record_to_dict(record, segment),
            "unused_products": [catalog_product_to_dict(p) for p in snapshot.unused_products(record)],
        }
        if request.capability in (Capability.RECOMMENDATIONS, Capability.LOOKUP):
            recommendations = self._composer.for_client(
                record, snapshot, limit=self._settings.default_recommendation_limit
            )
            payload["recommendations"] = [recommendation_to_dict(r) for r in recommendations]
            payload["potential_upsell"] = potential_upsell(recommendations, self._settings.upsell_top_n)
        if request.capability in (Capability.SIMILAR, Capability.LOOKUP):
            edges = snapshot.similarity.find_similar(record, self._settings.similar_neighbors)
            payload["similar_clients"] = [edge_to_dict(e) for e in edges]

        return DecisionOutcome(
            target_name=request.target_name,
            source_used=Tier.DATABASE,
            confidence=TIER_CONFIDENCE[Tier.DATABASE],
            payload=payload,
            took_millis=0.0,
            reasoning=f"{record.canonical_name} found in client database",
        )

    def _rules(
        self,
        request: DecisionRequest,
        record: ClientRecord | None,
        snapshot: IntelligenceSnapshot,
        reasoning: str,
        status: OutcomeStatus = OutcomeStatus.OK,
        fallback_from: Tier | None = None,
    ) -> DecisionOutcome:
        segment = self._segment_for(request, record, snapshot)
        recommendations = self._composer.rule_based(
            request.target_name,
            segment,
            snapshot,
            record=record,
            limit=self._settings.default_recommendation_limit,
        )
        return DecisionOutcome(
            target_name=request.target_name,
            source_used=Tier.RULES,
            confidence=TIER_CONFIDENCE[Tier.RULES],
            payload={
                "is_existing_client": record is not None,
                "segment": segment,
                "recommendations": [recommendation_to_dict(r) for r in recommendations],
            },
            took_millis=0.0,
            status=status,
            fallback_from=fallback_from,
            reasoning=reasoning,
        )

    async def _ai(
        self,
        request: DecisionRequest,
        record: ClientRecord | None,
        snapshot: IntelligenceSnapshot,
    ) -> DecisionOutcome:
        key = TTLCache.make_key(request.target_name)
        cached = await self._ai_cache.get(key)
        if cached is not None:
            return self._tier_outcome(request, Tier.AI, cached, cached_hit=True)

        if self._ai_client is None or not self._ai_client.configured:
            return self._rules(
                request, record, snapshot,
                reasoning="AI tier not configured",
                status=OutcomeStatus.TIER_UNAVAILABLE,
                fallback_from=Tier.AI,
            )

        if self._ai_quota.try_acquire() is None:
            return self._rules(
                request, record, snapshot,
                reasoning="AI daily quota exhausted",
                status=OutcomeStatus.QUOTA_EXCEEDED,
                fallback_from=Tier.AI,
            )

        segment = self._segment_for(request, record, snapshot)
        baseline = self._composer.rule_based(request.target_name, segment, snapshot, record=record, limit=5)
        prompt = build_pitch_prompt(request.target_name, segment, record, baseline)
        try:
            raw = await asyncio.wait_for(self._ai_client.analyze(prompt), timeout=self._settings.ai_timeout_seconds)
            analysis = parse_analysis(raw)
        except (EnrichmentFailedError, ConfigurationMissingError, asyncio.TimeoutError) as exc:
            logger.warning("ai_tier_failed", target=request.target_name, error=str(exc) or type(exc).__name__)
            return self._rules(
                request, record, snapshot,
                reasoning="AI analysis failed; rule-based recommendations returned",
                status=OutcomeStatus.FALLBACK,
                fallback_from=Tier.AI,
            )

        payload = {
            "is_existing_client": record is not None,
            "segment": segment,
            "analysis": analysis.model_dump(mode="json"),
            "baseline_recommendations": [recommendation_to_dict(r) for r in baseline],
        }
        await self._ai_cache.put(key, payload)
        return self._tier_outcome(request, Tier.AI, payload, cached_hit=False)

    async def _search(
        self,
        request: DecisionRequest,
        record: ClientRecord | None,
        snapshot: IntelligenceSnapshot,
    ) -> DecisionOutcome:
        key = TTLCache.make_key(request.target_name)
        cached = await self._search_cache.get(key)
        if cached is not None:
            return self._tier_outcome(request, Tier.SEARCH, cached, cached_hit=True)

        if self._search_client is None or not self._search_client.configured:
            return self._rules(
                request, record, snapshot,
                reasoning="Search tier not configured",
                status=OutcomeStatus.TIER_UNAVAILABLE,
                fallback_from=Tier.SEARCH,
            )

        if self._search_quota.try_acquire() is None:
            return self._rules(
                request, record, snapshot,
                reasoning="Search daily quota exhausted",
                status=OutcomeStatus.QUOTA_EXCEEDED,
                fallback_from=Tier.SEARCH,
            )

        try:
            results = await asyncio.wait_for(
                self._search_client.search(f"{request.target_name} company"),
                timeout=self._settings.search_timeout_seconds,
            )
        except (EnrichmentFailedError, asyncio.TimeoutError) as exc:
            logger.warning("search_tier_failed", target=request.target_name, error=str(exc) or type(exc).__name__)
            return self._rules(
                request, record, snapshot,
                reasoning="Search failed; rule-based recommendations returned",
                status=OutcomeStatus.FALLBACK,
                fallback_from=Tier.SEARCH,
            )

        info = extract_company_info(request.target_name, results)
        segment = request.segment_hint or self._infer_segment_from_results(request.target_name, results)
        profile = ProspectProfile(name=request.target_name, segment=segment)
        recommendations = self._composer.for_prospect(
            profile, snapshot, limit=self._settings.default_recommendation_limit
        )
        payload = {
            "is_existing_client": record is not None,
            "segment": segment,
            "results": results,
            "company_info": info.to_dict(),
            "recommendations": [recommendation_to_dict(r) for r in recommendations],
        }
        await self._search_cache.put(key, payload)
        return self._tier_outcome(request, Tier.SEARCH, payload, cached_hit=False)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _infer_segment_from_results(self, target_name: str, results: Sequence[dict[str, Any]]) -> str:
        text = " ".join(f"{r.get('title', '')} {r.get('snippet', '')}" for r in results)
        label = self._industry_classifier.classify(text) if text.strip() else None
        if label and label != "Other":
            return label
        return self._name_classifier.classify(target_name) or "General"

    @staticmethod
    def _tier_outcome(
        request: DecisionRequest,
        tier: Tier,
        payload: dict[str, Any],
        cached_hit: bool,
    ) -> DecisionOutcome:
        return DecisionOutcome(
            target_name=request.target_name,
            source_used=tier,
            confidence=TIER_CONFIDENCE[tier],
            payload=payload,
            took_millis=0.0,
            status=OutcomeStatus.CACHED if cached_hit else OutcomeStatus.OK,
            cached=cached_hit,
            reasoning=f"{tier.value} tier answered" + (" from cache" if cached_hit else ""),
        )
