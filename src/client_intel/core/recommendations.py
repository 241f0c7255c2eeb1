"""Recommendation Composer: tiered, deduplicated product pitches.

Tiers, in fixed order:
  regulatory         segment-mandated products             must-have, 95
  similar-clients    products the nearest neighbours use   high-value (>=3 neighbours) or nice-to-have, 50+10n (<=90)
  industry-standard  common-or-better adoption in segment  high-value, 80
  category-gap       priority categories with no product   nice-to-have, 70 (existing clients only)

The first occurrence of a product (in tier order) wins. The final list is
sorted by (priority tier, confidence) descending; Python's stable sort keeps
tier order for ties. It is truncated to the requested size and never padded.
"""

from collections import Counter
from typing import Sequence

from client_intel.core.adoption import COMMON_THRESHOLD
from client_intel.core.domain import (
    ClientOverlay,
    ClientRecord,
    PriorityTier,
    ProspectProfile,
    Recommendation,
    SourceKind,
)
from client_intel.core.industry_rules import (
    BASE_MONTHLY_ESTIMATES,
    PRODUCT_CATEGORIES,
    SIZE_MULTIPLIERS,
    priority_categories_for,
    requirements_for,
)
from client_intel.core.snapshot import IntelligenceSnapshot
from client_intel.observability import get_logger

logger = get_logger(__name__)

REGULATORY_CONFIDENCE = 95
INDUSTRY_STANDARD_CONFIDENCE = 80
CATEGORY_GAP_CONFIDENCE = 70
SIMILAR_BASE_CONFIDENCE = 50
SIMILAR_STEP_CONFIDENCE = 10
SIMILAR_MAX_CONFIDENCE = 90
SIMILAR_HIGH_VALUE_NEIGHBORS = 3
CATEGORY_GAP_PRODUCTS = 2

# Monthly revenue assumed when no client benchmark exists for a product.
TIER_DEFAULT_MONTHLY: dict[SourceKind, float] = {
    SourceKind.REGULATORY: 3000.0,
    SourceKind.SIMILAR_CLIENTS: 2000.0,
    SourceKind.INDUSTRY_STANDARD: 2500.0,
    SourceKind.CATEGORY_GAP: 1500.0,
}


def potential_upsell(recommendations: Sequence[Recommendation], top_n: int = 5) -> float:
    """Sum of estimated monthly revenue over the first ``top_n`` recommendations."""
    return round(sum(r.estimated_monthly_revenue for r in recommendations[:top_n]), 2)


def rank(recommendations: Sequence[Recommendation], limit: int) -> list[Recommendation]:
    ordered = sorted(recommendations, key=lambda r: (-r.priority_tier.rank, -r.confidence))
    return ordered[: max(0, limit)]


class _Collector:
    """Accumulates candidates, skipping used and already-recommended products."""

    def __init__(self, used: set[str]) -> None:
        self._blocked = set(used)
        self.items: list[Recommendation] = []

    def accepts(self, product_name: str) -> bool:
        return product_name.casefold() not in self._blocked

    def add(self, recommendation: Recommendation) -> None:
        if self.accepts(recommendation.product_name):
            self._blocked.add(recommendation.product_name.casefold())
            self.items.append(recommendation)


class RecommendationComposer:
    """Builds recommendation lists for existing clients and prospects.

    Args:
        neighbor_count: How many similar clients feed the similar-client tier.
    """

    def __init__(self, neighbor_count: int = 5) -> None:
        self._neighbor_count = neighbor_count

    def for_client(
        self,
        record: ClientRecord,
        snapshot: IntelligenceSnapshot,
        limit: int = 10,
    ) -> list[Recommendation]:
        """All four tiers for an existing client."""
        neighbors = [n for n, _ in snapshot.similarity.neighbors(record, self._neighbor_count)]
        return self._compose(
            target_name=record.canonical_name,
            segment=snapshot.segment_of(record),
            used_products=list(record.products),
            snapshot=snapshot,
            neighbors=neighbors,
            include_category_gap=True,
            overlay=snapshot.overlay_for(record),
            size_multiplier=None,
            limit=limit,
        )

    def for_prospect(
        self,
        profile: ProspectProfile,
        snapshot: IntelligenceSnapshot,
        limit: int = 10,
    ) -> list[Recommendation]:
        """Regulatory and industry-standard tiers for a company with no usage history."""
        return self._compose(
            target_name=profile.name,
            segment=profile.segment,
            used_products=[],
            snapshot=snapshot,
            neighbors=[],
            include_category_gap=False,
            overlay=None,
            size_multiplier=SIZE_MULTIPLIERS.get(profile.size, SIZE_MULTIPLIERS["medium"]),
            limit=limit,
        )

    def rule_based(
        self,
        target_name: str,
        segment: str,
        snapshot: IntelligenceSnapshot,
        record: ClientRecord | None = None,
        limit: int = 10,
    ) -> list[Recommendation]:
        """Deterministic set without neighbour data (regulatory, industry-standard, category-gap).

        This is what callers get when an external tier fails.
        """
        return self._compose(
            target_name=record.canonical_name if record else target_name,
            segment=segment,
            used_products=list(record.products) if record else [],
            snapshot=snapshot,
            neighbors=[],
            include_category_gap=record is not None,
            overlay=snapshot.overlay_for(record) if record else None,
            size_multiplier=None,
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def _compose(
        self,
        target_name: str,
        segment: str,
        used_products: Sequence[str],
        snapshot: IntelligenceSnapshot,
        neighbors: Sequence[ClientRecord],
        include_category_gap: bool,
        overlay: ClientOverlay | None,
        size_multiplier: float | None,
        limit: int,
    ) -> list[Recommendation]:
        collector = _Collector({p.casefold() for p in used_products})
        requirements = requirements_for(segment)

        def make(product: str, tier: PriorityTier, confidence: int, kind: SourceKind, reasoning: str) -> Recommendation:
            monthly = self._estimate_monthly(product, kind, snapshot, overlay, size_multiplier)
            return Recommendation(
                target_name=target_name,
                product_name=product,
                priority_tier=tier,
                confidence=confidence,
                reasoning=reasoning,
                source_kind=kind,
                estimated_monthly_revenue=monthly,
                estimated_annual_revenue=round(monthly * 12, 2),
                category=snapshot.category_classifier.classify(product),
            )

        # 1. Regulatory
        for product in requirements.regulatory:
            if collector.accepts(product):
                collector.add(
                    make(
                        product,
                        PriorityTier.MUST_HAVE,
                        REGULATORY_CONFIDENCE,
                        SourceKind.REGULATORY,
                        f"Regulatory requirement for {segment}",
                    )
                )

        # 2. Similar clients
        if neighbors:
            counts: Counter[str] = Counter()
            display: dict[str, str] = {}
            users: dict[str, list[str]] = {}
            for neighbor in neighbors:
                for product in neighbor.products:
                    key = product.casefold()
                    counts[key] += 1
                    display.setdefault(key, product)
                    users.setdefault(key, []).append(neighbor.canonical_name)
            for key, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
                product = display[key]
                if not collector.accepts(product):
                    continue
                tier = PriorityTier.HIGH_VALUE if count >= SIMILAR_HIGH_VALUE_NEIGHBORS else PriorityTier.NICE_TO_HAVE
                confidence = min(SIMILAR_MAX_CONFIDENCE, SIMILAR_BASE_CONFIDENCE + SIMILAR_STEP_CONFIDENCE * count)
                named = ", ".join(users[key][:3])
                collector.add(
                    make(
                        product,
                        tier,
                        confidence,
                        SourceKind.SIMILAR_CLIENTS,
                        f"Used by {count} of {len(neighbors)} similar clients ({named})",
                    )
                )

        # 3. Industry standard
        adoption = snapshot.adoption.get(segment)
        if adoption is not None:
            for stat in adoption.products_at_or_above(COMMON_THRESHOLD):
                if collector.accepts(stat.product_name):
                    collector.add(
                        make(
                            stat.product_name,
                            PriorityTier.HIGH_VALUE,
                            INDUSTRY_STANDARD_CONFIDENCE,
                            SourceKind.INDUSTRY_STANDARD,
                            f"Used by {stat.adoption_rate:.0%} of {segment} clients",
                        )
                    )
        for product in requirements.must_have:
            if collector.accepts(product):
                collector.add(
                    make(
                        product,
                        PriorityTier.HIGH_VALUE,
                        INDUSTRY_STANDARD_CONFIDENCE,
                        SourceKind.INDUSTRY_STANDARD,
                        f"Industry standard for {segment}",
                    )
                )

        # 4. Category gaps
        if include_category_gap:
            classifier = snapshot.category_classifier
            used_categories = {classifier.classify(p) for p in used_products}
            for category in priority_categories_for(segment):
                if category in used_categories:
                    continue
                candidates = [p.product_name for p in snapshot.catalog if p.category == category]
                candidates = candidates or list(PRODUCT_CATEGORIES.get(category, ()))
                added = 0
                for product in candidates:
                    if added >= CATEGORY_GAP_PRODUCTS:
                        break
                    if collector.accepts(product):
                        collector.add(
                            make(
                                product,
                                PriorityTier.NICE_TO_HAVE,
                                CATEGORY_GAP_CONFIDENCE,
                                SourceKind.CATEGORY_GAP,
                                f"{category} is essential for {segment}; no product in use",
                            )
                        )
                        added += 1

        ranked = rank(collector.items, limit)
        logger.debug(
            "recommendations_composed",
            target=target_name,
            segment=segment,
            candidates=len(collector.items),
            returned=len(ranked),
        )
        return ranked

    @staticmethod
    def _estimate_monthly(
        product: str,
        kind: SourceKind,
        snapshot: IntelligenceSnapshot,
        overlay: ClientOverlay | None,
        size_multiplier: float | None,
    ) -> float:
        benchmark = snapshot.benchmark(product)
        if overlay is not None and benchmark is not None:
            prices = {name.casefold(): price for name, price in overlay.product_prices.items()}
            price = prices.get(product.casefold())
            if price is not None:
                return round(price * benchmark.avg_monthly_usage, 2)

        if benchmark is not None and benchmark.avg_monthly_revenue > 0:
            base = benchmark.avg_monthly_revenue
        elif size_multiplier is not None:
            base = BASE_MONTHLY_ESTIMATES.get(product, TIER_DEFAULT_MONTHLY[kind])
        else:
            base = TIER_DEFAULT_MONTHLY[kind]

        if size_multiplier is not None:
            base *= size_multiplier
        return round(base, 2)
