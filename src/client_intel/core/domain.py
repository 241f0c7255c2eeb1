"""Domain value objects for the Client Intelligence Engine.

Everything here is immutable. Derived structures (ClientRecord,
SegmentAdoption, SimilarityEdge, Recommendation) are rebuilt wholesale on
every reconciliation and never edited in place; user edits live in a
separate ClientOverlay keyed by canonical_id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, Mapping, TypeVar

T = TypeVar("T")

UNKNOWN_SEGMENT = "Unknown"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class PriorityTier(str, Enum):
    """Sales priority of a recommendation."""

    MUST_HAVE = "must-have"
    HIGH_VALUE = "high-value"
    NICE_TO_HAVE = "nice-to-have"

    @property
    def rank(self) -> int:
        """Higher rank sorts first."""
        return {"must-have": 3, "high-value": 2, "nice-to-have": 1}[self.value]


class SourceKind(str, Enum):
    """Provenance of a recommendation, in fixed tier order."""

    REGULATORY = "regulatory"
    SIMILAR_CLIENTS = "similar-clients"
    INDUSTRY_STANDARD = "industry-standard"
    CATEGORY_GAP = "category-gap"


class Importance(str, Enum):
    CRITICAL = "critical"
    COMMON = "common"
    OPTIONAL = "optional"


class Tier(str, Enum):
    """Data source tiers of the decision waterfall."""

    DATABASE = "database"
    RULES = "rules"
    SEARCH = "search"
    AI = "ai"


class OutcomeStatus(str, Enum):
    OK = "ok"
    CACHED = "cached"
    FALLBACK = "fallback"
    QUOTA_EXCEEDED = "quota_exceeded"
    TIER_UNAVAILABLE = "tier_unavailable"


class Capability(str, Enum):
    """What the caller wants from a routed decision."""

    LOOKUP = "lookup"
    RECOMMENDATIONS = "recommendations"
    SIMILAR = "similar"
    PITCH = "pitch"


class LoadStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"


# ---------------------------------------------------------------------------
# Source records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RosterEntry:
    """One row of the master client roster.

    Attributes:
        display_name: Canonical display name; wins over billing names.
        canonical_id: Stable client identifier.
        external_ids: Identifiers of the same client in other systems (billing ids, CRM ids).
        industry: Optional free-text industry used for segment inference.
    """

    display_name: str
    canonical_id: str
    external_ids: tuple[str, ...] = ()
    industry: str | None = None


@dataclass(frozen=True)
class UsageFact:
    """One billed product line for one client in one period.

    Attributes:
        client_key: Client identifier exactly as the billing source reports it.
        period: Billing period, normalised to YYYY-MM.
        product_name: Billed product (API) name.
        usage_count: Number of billable calls.
        revenue_amount: Revenue in the reporting currency.
        currency: Reporting currency code after boundary conversion.
        client_name: Billing-side display name, when present.
        sub_account: Billing sub-account (app id) the row was reported under.
        industry: Billing-side industry label, when present.
    """

    client_key: str
    period: str
    product_name: str
    usage_count: int
    revenue_amount: float
    currency: str = "USD"
    client_name: str | None = None
    sub_account: str | None = None
    industry: str | None = None


@dataclass(frozen=True)
class CatalogProduct:
    product_name: str
    category: str
    billing_unit: str = "per call"


@dataclass(frozen=True)
class RowError:
    """A rejected input row: where it was and why."""

    line_number: int
    reason: str
    raw: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RosterLoad:
    """Result of loading the roster source.

    Attributes:
        entries: Valid roster entries in canonical order.
        skipped_rows: Rows dropped for having no name or id.
    """

    entries: tuple[RosterEntry, ...]
    skipped_rows: int = 0


@dataclass(frozen=True)
class BillingLoad:
    """Result of loading the billing source.

    Attributes:
        facts: Valid, currency-converted usage facts.
        errors: Rows skipped for failing validation.
        status: DEGRADED when the source itself could not be read.
    """

    facts: tuple[UsageFact, ...]
    errors: tuple[RowError, ...] = ()
    status: LoadStatus = LoadStatus.OK


# ---------------------------------------------------------------------------
# Reconciled records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductTotals:
    usage: int
    revenue: float


@dataclass(frozen=True)
class PeriodSummary:
    period: str
    usage: int
    revenue: float
    product_count: int


@dataclass(frozen=True)
class ClientRecord:
    """One canonical client after reconciliation.

    Attributes:
        canonical_name: Display name (roster name when matched).
        canonical_id: Roster id, or the billing key for non-roster clients.
        segment: Industry/vertical bucket used for adoption grouping.
        products: Product name to totals across all periods (read-only).
        periods: Per-period summaries in ascending period order.
        total_revenue: Sum of revenue over all products and periods.
        in_roster: True when the client appears in the master roster.
        has_recent_activity: True when billed in the recent period.
        is_active: in_roster and has_recent_activity.
        billing_keys: Raw billing identifiers merged into this record.
        industry: Industry label the segment was derived from.
    """

    canonical_name: str
    canonical_id: str
    segment: str
    products: Mapping[str, ProductTotals]
    periods: tuple[PeriodSummary, ...]
    total_revenue: float
    in_roster: bool
    has_recent_activity: bool
    is_active: bool
    billing_keys: tuple[str, ...] = ()
    industry: str | None = None

    def __post_init__(self) -> None:
        if self.is_active and not self.in_roster:
            raise ValueError("is_active requires in_roster")
        object.__setattr__(self, "products", MappingProxyType(dict(self.products)))

    @property
    def product_names(self) -> frozenset[str]:
        return frozenset(self.products)

    @property
    def latest_period(self) -> str | None:
        return self.periods[-1].period if self.periods else None

    @property
    def months_billed(self) -> int:
        return len(self.periods)


@dataclass(frozen=True)
class ReconciliationResult:
    """Output of one reconciliation run.

    Attributes:
        records: Client records in final display order.
        status: DEGRADED when the roster was unavailable.
        recent_period: Period used for the activity flag.
        unmatched_roster: Roster entries that produced placeholders.
        unmatched_billing: Billing clients with no roster entry.
        skipped_roster_rows: Duplicate or invalid roster rows ignored.
        warnings: Human-readable degradation notes.
    """

    records: tuple[ClientRecord, ...]
    status: LoadStatus
    recent_period: str | None
    unmatched_roster: int = 0
    unmatched_billing: int = 0
    skipped_roster_rows: int = 0
    warnings: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Adoption and similarity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductAdoption:
    product_name: str
    adopting_client_count: int
    adoption_rate: float
    total_revenue: float
    avg_revenue_per_adopter: float
    importance: Importance
    category: str | None = None


@dataclass(frozen=True)
class SegmentAdoption:
    """Adoption statistics for one segment.

    Attributes:
        segment: Segment name.
        total_clients_in_segment: Number of clients grouped under the segment (never zero).
        per_product: Product name to adoption statistics.
    """

    segment: str
    total_clients_in_segment: int
    per_product: Mapping[str, ProductAdoption]

    def __post_init__(self) -> None:
        object.__setattr__(self, "per_product", MappingProxyType(dict(self.per_product)))

    def products_at_or_above(self, threshold: float) -> list[ProductAdoption]:
        """Products with adoption_rate >= threshold, highest rate first."""
        eligible = [p for p in self.per_product.values() if p.adoption_rate >= threshold]
        return sorted(eligible, key=lambda p: (-p.adoption_rate, p.product_name))


@dataclass(frozen=True)
class SimilarityEdge:
    """Similarity from client A to client B.

    ``unique_to_b`` is relative to B, so an edge is directional even though
    its score is the same in both directions.

    Attributes:
        client_a: Source client name.
        client_b: Neighbour client name.
        score: Segment-boosted Jaccard similarity in [0, 1].
        raw_score: Unboosted Jaccard similarity.
        shared_products: Products both clients use, sorted.
        unique_to_b: Products B uses and A does not, sorted.
    """

    client_a: str
    client_b: str
    score: float
    raw_score: float
    shared_products: tuple[str, ...]
    unique_to_b: tuple[str, ...]


# ---------------------------------------------------------------------------
# Recommendations and prospects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Recommendation:
    """A product pitch for one target.

    Attributes:
        target_name: Client or prospect the recommendation is for.
        product_name: Recommended product.
        priority_tier: Sales priority.
        confidence: 0 to 100.
        reasoning: One-line explanation.
        source_kind: Tier the recommendation came from.
        estimated_monthly_revenue: Expected monthly revenue in the reporting currency.
        estimated_annual_revenue: Twelve times the monthly estimate.
        category: Product category, when classifiable.
    """

    target_name: str
    product_name: str
    priority_tier: PriorityTier
    confidence: int
    reasoning: str
    source_kind: SourceKind
    estimated_monthly_revenue: float
    estimated_annual_revenue: float
    category: str | None = None


@dataclass(frozen=True)
class ProspectProfile:
    """A company that is not (yet) a client."""

    name: str
    segment: str
    size: str = "medium"
    geography: str = "India"


@dataclass(frozen=True)
class ClientOverlay:
    """User edits layered over a reconciled ClientRecord at read time.

    Attributes:
        canonical_id: Client the overlay applies to.
        industry: Replacement industry label (re-classified into a segment).
        segment: Explicit segment; takes precedence over ``industry``.
        product_prices: Per-product unit price overrides in the reporting currency.
        notes: Free-text annotation.
        updated_at: Last modification time.
    """

    canonical_id: str
    industry: str | None = None
    segment: str | None = None
    product_prices: Mapping[str, float] = field(default_factory=dict)
    notes: str | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "product_prices", MappingProxyType(dict(self.product_prices)))


# ---------------------------------------------------------------------------
# Decision routing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DecisionRequest:
    """A routed question about one target.

    Attributes:
        target_name: Client or company name as typed by the caller.
        capability: Lookup, recommendations, similar clients, or pitch generation.
        realtime: Caller wants fresh external enrichment.
        force_ai: Caller explicitly wants AI-grade output.
        force_search: Caller explicitly wants external search.
        segment_hint: Segment to use instead of name-based inference.
    """

    target_name: str
    capability: Capability = Capability.RECOMMENDATIONS
    realtime: bool = False
    force_ai: bool = False
    force_search: bool = False
    segment_hint: str | None = None


@dataclass(frozen=True)
class DecisionOutcome:
    """Answer produced by the decision router.

    Attributes:
        target_name: The routed target.
        source_used: Tier that produced the payload.
        confidence: 0 to 1, fixed per tier.
        payload: Tier-specific answer body.
        took_millis: Wall time spent routing.
        status: OK, CACHED, or why a cheaper tier answered instead.
        cached: True when served from a tier cache without a network call.
        fallback_from: Tier that was attempted before falling back, if any.
        reasoning: Why this tier was chosen.
    """

    target_name: str
    source_used: Tier
    confidence: float
    payload: Mapping[str, Any]
    took_millis: float
    status: OutcomeStatus = OutcomeStatus.OK
    cached: bool = False
    fallback_from: Tier | None = None
    reasoning: str = ""


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class QuotaCounter:
    """Daily call budget state for one costly tier."""

    date_key: str
    used_count: int
    daily_limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.used_count)


@dataclass(frozen=True)
class ProspectScore:
    """Fit score and pitch list for one prospect.

    Attributes:
        profile: The scored prospect.
        fit_score: 0 to 100.
        recommendations: Ranked product pitches.
        estimated_annual_value: Twelve times the summed monthly estimates.
        outcome: Routed decision used for enrichment.
    """

    profile: ProspectProfile
    fit_score: int
    recommendations: tuple[Recommendation, ...]
    estimated_annual_value: float
    outcome: DecisionOutcome | None = None
