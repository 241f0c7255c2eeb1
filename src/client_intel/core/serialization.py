"""JSON-safe dict renderings of domain values.

Router payloads go through these so they can be cached on disk and returned
over HTTP unchanged.
"""

from typing import Any

from client_intel.core.domain import (
    CatalogProduct,
    ClientRecord,
    ProductAdoption,
    Recommendation,
    SegmentAdoption,
    SimilarityEdge,
)


def record_to_dict(record: ClientRecord, segment: str | None = None) -> dict[str, Any]:
    return {
        "canonical_name": record.canonical_name,
        "canonical_id": record.canonical_id,
        "segment": segment or record.segment,
        "industry": record.industry,
        "products": {
            name: {"usage": totals.usage, "revenue": totals.revenue} for name, totals in record.products.items()
        },
        "periods": [
            {"period": p.period, "usage": p.usage, "revenue": p.revenue, "product_count": p.product_count}
            for p in record.periods
        ],
        "total_revenue": record.total_revenue,
        "in_roster": record.in_roster,
        "has_recent_activity": record.has_recent_activity,
        "is_active": record.is_active,
    }


def recommendation_to_dict(recommendation: Recommendation) -> dict[str, Any]:
    return {
        "target_name": recommendation.target_name,
        "product_name": recommendation.product_name,
        "priority_tier": recommendation.priority_tier.value,
        "confidence": recommendation.confidence,
        "reasoning": recommendation.reasoning,
        "source_kind": recommendation.source_kind.value,
        "estimated_monthly_revenue": recommendation.estimated_monthly_revenue,
        "estimated_annual_revenue": recommendation.estimated_annual_revenue,
        "category": recommendation.category,
    }


def edge_to_dict(edge: SimilarityEdge) -> dict[str, Any]:
    return {
        "client_a": edge.client_a,
        "client_b": edge.client_b,
        "score": round(edge.score, 6),
        "raw_score": round(edge.raw_score, 6),
        "shared_products": list(edge.shared_products),
        "unique_to_b": list(edge.unique_to_b),
    }


def catalog_product_to_dict(product: CatalogProduct) -> dict[str, Any]:
    return {
        "product_name": product.product_name,
        "category": product.category,
        "billing_unit": product.billing_unit,
    }


def product_adoption_to_dict(stat: ProductAdoption) -> dict[str, Any]:
    return {
        "product_name": stat.product_name,
        "adopting_client_count": stat.adopting_client_count,
        "adoption_rate": round(stat.adoption_rate, 6),
        "total_revenue": stat.total_revenue,
        "avg_revenue_per_adopter": stat.avg_revenue_per_adopter,
        "importance": stat.importance.value,
        "category": stat.category,
    }


def segment_adoption_to_dict(adoption: SegmentAdoption) -> dict[str, Any]:
    return {
        "segment": adoption.segment,
        "total_clients_in_segment": adoption.total_clients_in_segment,
        "per_product": [product_adoption_to_dict(p) for p in adoption.per_product.values()],
    }
