"""Pydantic request and response schemas for the Client Intelligence API.

All API inputs and outputs are typed Pydantic models. Responses are built
from the JSON-safe dicts in ``core.serialization`` so cached router payloads
and fresh answers look identical on the wire.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from client_intel.core.domain import Capability


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


class ProductTotalsResponse(BaseModel):
    usage: int
    revenue: float


class PeriodSummaryResponse(BaseModel):
    period: str
    usage: int
    revenue: float
    product_count: int


class ClientRecordResponse(BaseModel):
    """A reconciled client with per-product and per-period totals."""

    canonical_name: str
    canonical_id: str
    segment: str
    industry: str | None
    products: dict[str, ProductTotalsResponse]
    periods: list[PeriodSummaryResponse]
    total_revenue: float
    in_roster: bool
    has_recent_activity: bool
    is_active: bool


class ClientListResponse(BaseModel):
    items: list[ClientRecordResponse]
    total: int
    recent_period: str | None
    status: str = Field(description="ok | degraded")
    warnings: list[str] = Field(default_factory=list)


class CatalogProductResponse(BaseModel):
    product_name: str
    category: str
    billing_unit: str


class SimilarityEdgeResponse(BaseModel):
    """Similarity between ``client_a`` (the target) and ``client_b``."""

    client_a: str
    client_b: str
    score: float = Field(ge=0, le=1)
    raw_score: float = Field(ge=0, le=1)
    shared_products: list[str]
    unique_to_b: list[str]


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


class RecommendationResponse(BaseModel):
    target_name: str
    product_name: str
    priority_tier: str = Field(description="must-have | high-value | nice-to-have")
    confidence: int = Field(ge=0, le=100)
    reasoning: str
    source_kind: str = Field(description="regulatory | similar-clients | industry-standard | category-gap")
    estimated_monthly_revenue: float
    estimated_annual_revenue: float
    category: str | None = None


class ClientRecommendationsResponse(BaseModel):
    client: ClientRecordResponse
    recommendations: list[RecommendationResponse]
    potential_upsell: float = Field(description="Monthly revenue of the top recommendations")


class ProspectRequest(BaseModel):
    """A company that is not yet a client."""

    name: str = Field(..., min_length=1, max_length=255)
    segment: str = Field(..., min_length=1, max_length=100)
    size: str = Field(default="medium", description="startup | small | medium | large | enterprise")
    geography: str = Field(default="India")
    limit: int | None = Field(default=None, ge=1, le=50)


class ProspectRecommendationsResponse(BaseModel):
    prospect: ProspectRequest
    recommendations: list[RecommendationResponse]
    estimated_annual_value: float


class ProspectScoreRequest(BaseModel):
    prospects: list[ProspectRequest] = Field(..., min_length=1, max_length=200)
    enrich: bool = Field(default=False, description="Route each prospect through the search tier")
    session_id: str | None = None


class ProspectScoreResponse(BaseModel):
    name: str
    segment: str
    fit_score: int = Field(ge=0, le=100)
    estimated_annual_value: float
    recommendations: list[RecommendationResponse]
    source_used: str | None = None
    status: str | None = None


class ProspectScoreBatchResponse(BaseModel):
    session_id: str
    items: list[ProspectScoreResponse]


# ---------------------------------------------------------------------------
# Adoption
# ---------------------------------------------------------------------------


class ProductAdoptionResponse(BaseModel):
    product_name: str
    adopting_client_count: int
    adoption_rate: float = Field(ge=0, le=1)
    total_revenue: float
    avg_revenue_per_adopter: float
    importance: str = Field(description="critical | common | optional")
    category: str | None = None


class SegmentAdoptionResponse(BaseModel):
    segment: str
    total_clients_in_segment: int
    per_product: list[ProductAdoptionResponse]


# ---------------------------------------------------------------------------
# Decisions and sessions
# ---------------------------------------------------------------------------


class DecisionRequestBody(BaseModel):
    """One routed query."""

    target_name: str = Field(..., min_length=1, max_length=255)
    capability: Capability = Capability.RECOMMENDATIONS
    realtime: bool = False
    force_ai: bool = False
    force_search: bool = False
    segment_hint: str | None = None


class DecisionRouteRequest(DecisionRequestBody):
    session_id: str | None = None


class DecisionResponse(BaseModel):
    target_name: str
    source_used: str = Field(description="database | rules | search | ai")
    confidence: float
    status: str = Field(description="ok | cached | fallback | quota_exceeded | tier_unavailable")
    cached: bool
    fallback_from: str | None
    reasoning: str
    took_millis: float
    payload: dict[str, Any]


class DecisionRouteResponse(DecisionResponse):
    session_id: str


class DecisionBatchRequest(BaseModel):
    requests: list[DecisionRequestBody] = Field(..., min_length=1, max_length=500)
    session_id: str | None = None
    max_concurrency: int | None = Field(default=None, ge=1, le=50)


class DecisionBatchResponse(BaseModel):
    session_id: str
    outcomes: list[DecisionResponse]


class SessionSummaryResponse(BaseModel):
    """Per-session query counts, estimated spend and cost-saving advice."""

    session_id: str
    total_queries: int
    queries_by_source: dict[str, int]
    cached_hits: int
    estimated_cost_usd: float
    ai_percentage: float
    advice: list[str]


class QuotaTierResponse(BaseModel):
    date: str
    used: int
    remaining: int
    limit: int


class QuotaResponse(BaseModel):
    search: QuotaTierResponse
    ai: QuotaTierResponse


# ---------------------------------------------------------------------------
# Overlays and health
# ---------------------------------------------------------------------------


class OverlayRequest(BaseModel):
    industry: str | None = Field(default=None, max_length=255)
    segment: str | None = Field(default=None, max_length=100)
    product_prices: dict[str, float] = Field(default_factory=dict)
    notes: str | None = None


class OverlayResponse(BaseModel):
    canonical_id: str
    industry: str | None
    segment: str | None
    product_prices: dict[str, float]
    notes: str | None
    updated_at: datetime | None


class HealthResponse(BaseModel):
    status: str
    service: str
    records: int
    roster_available: bool
    billing_available: bool
    catalog_available: bool
    skipped_usage_rows: int
    skipped_roster_rows: int
    recent_period: str | None
    built_at: datetime
    warnings: list[str]
