"""FastAPI router for the Client Intelligence API.

All routes are thin: they validate inputs, call the service or the decision
router, and return Pydantic response models. No business logic belongs here.

Endpoints:
  GET    /api/v1/clients                             Reconciled clients in canonical order
  GET    /api/v1/clients/{name}                      One client by name, id or billing key
  GET    /api/v1/clients/{name}/recommendations      Ranked recommendations plus potential upsell
  GET    /api/v1/clients/{name}/similar              Nearest clients by product overlap
  GET    /api/v1/clients/{name}/unused-products      Catalog products never billed to the client
  GET    /api/v1/segments/adoption                   Product adoption per segment
  POST   /api/v1/prospects/recommendations           Recommendations for a non-client
  POST   /api/v1/prospects/score                     Fit scores for many prospects
  POST   /api/v1/decisions                           Route one query through the cost waterfall
  POST   /api/v1/decisions/batch                     Route many queries with bounded concurrency
  GET    /api/v1/sessions/{session_id}/summary       Session usage, spend and advice
  PUT    /api/v1/overlays/{canonical_id}             Create or replace a client overlay
  DELETE /api/v1/overlays/{canonical_id}             Remove a client overlay
  GET    /api/v1/quota                               Daily quota state of the costly tiers
  GET    /api/v1/health                              Snapshot and source health
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response

from client_intel.api.schemas import (
    CatalogProductResponse,
    ClientListResponse,
    ClientRecommendationsResponse,
    ClientRecordResponse,
    DecisionBatchRequest,
    DecisionBatchResponse,
    DecisionRequestBody,
    DecisionResponse,
    DecisionRouteRequest,
    DecisionRouteResponse,
    HealthResponse,
    OverlayRequest,
    OverlayResponse,
    ProspectRecommendationsResponse,
    ProspectRequest,
    ProspectScoreBatchResponse,
    ProspectScoreRequest,
    ProspectScoreResponse,
    QuotaResponse,
    RecommendationResponse,
    SegmentAdoptionResponse,
    SessionSummaryResponse,
    SimilarityEdgeResponse,
)
from client_intel.container import ServiceContainer
from client_intel.core.decision_router import DecisionRouter
from client_intel.core.domain import ClientOverlay, DecisionOutcome, DecisionRequest, ProspectProfile
from client_intel.core.serialization import (
    catalog_product_to_dict,
    edge_to_dict,
    recommendation_to_dict,
    record_to_dict,
    segment_adoption_to_dict,
)
from client_intel.core.services import ClientIntelligenceService
from client_intel.errors import NotFoundError

router = APIRouter(tags=["client-intel"])


# ---------------------------------------------------------------------------
# Dependency factories
# ---------------------------------------------------------------------------


def _get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _get_service(
    container: Annotated[ServiceContainer, Depends(_get_container)],
) -> ClientIntelligenceService:
    return container.service


def _get_router(
    container: Annotated[ServiceContainer, Depends(_get_container)],
) -> DecisionRouter:
    return container.router


def _outcome_response(outcome: DecisionOutcome) -> DecisionResponse:
    return DecisionResponse(
        target_name=outcome.target_name,
        source_used=outcome.source_used.value,
        confidence=outcome.confidence,
        status=outcome.status.value,
        cached=outcome.cached,
        fallback_from=outcome.fallback_from.value if outcome.fallback_from else None,
        reasoning=outcome.reasoning,
        took_millis=outcome.took_millis,
        payload=dict(outcome.payload),
    )


def _to_domain_request(body: DecisionRequestBody) -> DecisionRequest:
    return DecisionRequest(
        target_name=body.target_name,
        capability=body.capability,
        realtime=body.realtime,
        force_ai=body.force_ai,
        force_search=body.force_search,
        segment_hint=body.segment_hint,
    )


# ---------------------------------------------------------------------------
# Client endpoints
# ---------------------------------------------------------------------------


@router.get("/clients", response_model=ClientListResponse, summary="List reconciled clients")
async def list_clients(
    active_only: Annotated[bool, Query(description="Only roster clients billed in the recent period")] = False,
    in_roster: Annotated[bool | None, Query(description="Filter by roster membership")] = None,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> ClientListResponse:
    """List clients in canonical order: roster clients by name, then billing-only clients by revenue."""
    views, report = await service.client_listing(active_only=active_only, in_roster=in_roster)
    items = [ClientRecordResponse.model_validate(record_to_dict(v.record, v.segment)) for v in views]
    return ClientListResponse(
        items=items,
        total=len(items),
        recent_period=report.recent_period,
        status=report.status.value,
        warnings=list(report.warnings),
    )


@router.get("/clients/{name}", response_model=ClientRecordResponse, summary="Get one client")
async def get_client(
    name: str,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> ClientRecordResponse:
    view = await service.client_view(name)
    return ClientRecordResponse.model_validate(record_to_dict(view.record, view.segment))


@router.get(
    "/clients/{name}/recommendations",
    response_model=ClientRecommendationsResponse,
    summary="Recommendations for an existing client",
)
async def get_client_recommendations(
    name: str,
    limit: Annotated[int | None, Query(ge=1, le=50)] = None,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> ClientRecommendationsResponse:
    """Regulatory, similar-client, industry-standard and category-gap recommendations, best first."""
    view, recommendations, upsell = await service.recommendations_for_client(name, limit=limit)
    return ClientRecommendationsResponse(
        client=ClientRecordResponse.model_validate(record_to_dict(view.record, view.segment)),
        recommendations=[RecommendationResponse.model_validate(recommendation_to_dict(r)) for r in recommendations],
        potential_upsell=upsell,
    )


@router.get("/clients/{name}/similar", response_model=list[SimilarityEdgeResponse], summary="Similar clients")
async def get_similar_clients(
    name: str,
    k: Annotated[int | None, Query(ge=1, le=50, description="Number of neighbours")] = None,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> list[SimilarityEdgeResponse]:
    edges = await service.similar_clients(name, k=k)
    return [SimilarityEdgeResponse.model_validate(edge_to_dict(e)) for e in edges]


@router.get(
    "/clients/{name}/unused-products",
    response_model=list[CatalogProductResponse],
    summary="Catalog products the client does not use",
)
async def get_unused_products(
    name: str,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> list[CatalogProductResponse]:
    products = await service.unused_products(name)
    return [CatalogProductResponse.model_validate(catalog_product_to_dict(p)) for p in products]


@router.get("/segments/adoption", response_model=list[SegmentAdoptionResponse], summary="Segment adoption")
async def get_segment_adoption(
    segment: Annotated[str | None, Query(description="Restrict to one segment")] = None,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> list[SegmentAdoptionResponse]:
    adoption = await service.segment_adoption(segment)
    return [SegmentAdoptionResponse.model_validate(segment_adoption_to_dict(a)) for a in adoption.values()]


# ---------------------------------------------------------------------------
# Prospect endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/prospects/recommendations",
    response_model=ProspectRecommendationsResponse,
    summary="Recommendations for a prospect",
)
async def get_prospect_recommendations(
    body: ProspectRequest,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> ProspectRecommendationsResponse:
    profile = ProspectProfile(name=body.name, segment=body.segment, size=body.size, geography=body.geography)
    recommendations = await service.recommendations_for_prospect(profile, limit=body.limit)
    return ProspectRecommendationsResponse(
        prospect=body,
        recommendations=[RecommendationResponse.model_validate(recommendation_to_dict(r)) for r in recommendations],
        estimated_annual_value=round(sum(r.estimated_annual_revenue for r in recommendations), 2),
    )


@router.post("/prospects/score", response_model=ProspectScoreBatchResponse, summary="Score prospects")
async def score_prospects(
    body: ProspectScoreRequest,
    container: Annotated[ServiceContainer, Depends(_get_container)] = ...,
) -> ProspectScoreBatchResponse:
    """Fit score and pitch list per prospect, best fit first.

    With ``enrich`` each prospect is routed through the search tier and
    charged to the session.
    """
    session = container.sessions.get_or_create(body.session_id)
    profiles = [ProspectProfile(name=p.name, segment=p.segment, size=p.size, geography=p.geography) for p in body.prospects]
    scores = await container.service.score_prospects(profiles, session, enrich=body.enrich)
    items = [
        ProspectScoreResponse(
            name=s.profile.name,
            segment=s.profile.segment,
            fit_score=s.fit_score,
            estimated_annual_value=s.estimated_annual_value,
            recommendations=[RecommendationResponse.model_validate(recommendation_to_dict(r)) for r in s.recommendations],
            source_used=s.outcome.source_used.value if s.outcome else None,
            status=s.outcome.status.value if s.outcome else None,
        )
        for s in scores
    ]
    return ProspectScoreBatchResponse(session_id=session.session_id, items=items)


# ---------------------------------------------------------------------------
# Decision endpoints
# ---------------------------------------------------------------------------


@router.post("/decisions", response_model=DecisionRouteResponse, summary="Route one query")
async def route_decision(
    body: DecisionRouteRequest,
    container: Annotated[ServiceContainer, Depends(_get_container)] = ...,
    decision_router: Annotated[DecisionRouter, Depends(_get_router)] = ...,
) -> DecisionRouteResponse:
    """Answer from the cheapest sufficient tier: database, AI, search, then rules."""
    session = container.sessions.get_or_create(body.session_id)
    outcome = await decision_router.decide(_to_domain_request(body), session)
    return DecisionRouteResponse(**_outcome_response(outcome).model_dump(), session_id=session.session_id)


@router.post("/decisions/batch", response_model=DecisionBatchResponse, summary="Route many queries")
async def route_decision_batch(
    body: DecisionBatchRequest,
    container: Annotated[ServiceContainer, Depends(_get_container)] = ...,
    decision_router: Annotated[DecisionRouter, Depends(_get_router)] = ...,
) -> DecisionBatchResponse:
    session = container.sessions.get_or_create(body.session_id)
    outcomes = await decision_router.decide_batch(
        [_to_domain_request(r) for r in body.requests],
        session,
        max_concurrency=body.max_concurrency,
    )
    return DecisionBatchResponse(session_id=session.session_id, outcomes=[_outcome_response(o) for o in outcomes])


@router.get(
    "/sessions/{session_id}/summary",
    response_model=SessionSummaryResponse,
    summary="Session usage summary",
)
async def get_session_summary(
    session_id: str,
    container: Annotated[ServiceContainer, Depends(_get_container)] = ...,
) -> SessionSummaryResponse:
    session = container.sessions.get(session_id)
    if session is None:
        raise NotFoundError("session", session_id)
    return SessionSummaryResponse.model_validate(session.summary())


@router.get("/quota", response_model=QuotaResponse, summary="Daily quota state")
async def get_quota(
    decision_router: Annotated[DecisionRouter, Depends(_get_router)] = ...,
) -> QuotaResponse:
    return QuotaResponse.model_validate(decision_router.quota_status())


# ---------------------------------------------------------------------------
# Overlay endpoints
# ---------------------------------------------------------------------------


@router.put("/overlays/{canonical_id}", response_model=OverlayResponse, summary="Create or replace an overlay")
async def put_overlay(
    canonical_id: str,
    body: OverlayRequest,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> OverlayResponse:
    """Store user edits for a client. They apply from the next snapshot read."""
    stored = await service.set_overlay(
        ClientOverlay(
            canonical_id=canonical_id,
            industry=body.industry,
            segment=body.segment,
            product_prices=body.product_prices,
            notes=body.notes,
        )
    )
    return OverlayResponse(
        canonical_id=stored.canonical_id,
        industry=stored.industry,
        segment=stored.segment,
        product_prices=dict(stored.product_prices),
        notes=stored.notes,
        updated_at=stored.updated_at,
    )


@router.delete("/overlays/{canonical_id}", status_code=204, summary="Delete an overlay")
async def delete_overlay(
    canonical_id: str,
    service: Annotated[ClientIntelligenceService, Depends(_get_service)] = ...,
) -> Response:
    await service.delete_overlay(canonical_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Snapshot health")
async def get_health(
    container: Annotated[ServiceContainer, Depends(_get_container)] = ...,
) -> HealthResponse:
    report = await container.service.snapshot_report()
    return HealthResponse(
        status=report.status.value,
        service=container.settings.service_name,
        records=report.records,
        roster_available=report.roster_available,
        billing_available=report.billing_available,
        catalog_available=report.catalog_available,
        skipped_usage_rows=report.skipped_usage_rows,
        skipped_roster_rows=report.skipped_roster_rows,
        recent_period=report.recent_period,
        built_at=report.built_at,
        warnings=list(report.warnings),
    )
