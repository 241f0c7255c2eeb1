"""Adoption Profiler: per-segment product adoption statistics."""

from collections import defaultdict
from typing import Callable, Iterable, Sequence

from client_intel.core.classifier import Classifier, build_category_classifier
from client_intel.core.domain import (
    CatalogProduct,
    ClientRecord,
    Importance,
    ProductAdoption,
    SegmentAdoption,
)
from client_intel.observability import get_logger

logger = get_logger(__name__)

CRITICAL_THRESHOLD = 0.5
COMMON_THRESHOLD = 0.2


def importance_for(rate: float) -> Importance:
    if rate >= CRITICAL_THRESHOLD:
        return Importance.CRITICAL
    if rate >= COMMON_THRESHOLD:
        return Importance.COMMON
    return Importance.OPTIONAL


class AdoptionProfiler:
    """Computes SegmentAdoption for every non-empty segment.

    Args:
        category_classifier: Assigns catalog categories to products. Built from
            the catalog passed to ``profile`` when not supplied.
    """

    def __init__(self, category_classifier: Classifier | None = None) -> None:
        self._category_classifier = category_classifier

    def profile(
        self,
        records: Iterable[ClientRecord],
        catalog: Sequence[CatalogProduct] = (),
        segment_of: Callable[[ClientRecord], str] | None = None,
    ) -> dict[str, SegmentAdoption]:
        """Group records by segment and compute adoption per product.

        Args:
            records: Reconciled client records.
            catalog: Master product catalog, used to label product categories.
            segment_of: Effective segment for a record (e.g. overlay-aware).
                Defaults to ``record.segment``.

        Returns:
            Segment name to SegmentAdoption. Segments with no clients are absent.
        """
        resolve = segment_of or (lambda record: record.segment)
        classifier = self._category_classifier or build_category_classifier(catalog)

        members: dict[str, int] = defaultdict(int)
        adopters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        revenue: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))

        for record in records:
            segment = resolve(record)
            members[segment] += 1
            for product_name, totals in record.products.items():
                adopters[segment][product_name] += 1
                revenue[segment][product_name] += totals.revenue

        result: dict[str, SegmentAdoption] = {}
        for segment in sorted(members):
            total = members[segment]
            per_product: dict[str, ProductAdoption] = {}
            for product_name in sorted(adopters[segment]):
                count = adopters[segment][product_name]
                rate = count / total
                product_revenue = revenue[segment][product_name]
                per_product[product_name] = ProductAdoption(
                    product_name=product_name,
                    adopting_client_count=count,
                    adoption_rate=rate,
                    total_revenue=round(product_revenue, 6),
                    avg_revenue_per_adopter=round(product_revenue / count, 6),
                    importance=importance_for(rate),
                    category=classifier.classify(product_name),
                )
            result[segment] = SegmentAdoption(
                segment=segment,
                total_clients_in_segment=total,
                per_product=per_product,
            )

        logger.debug("adoption_profiled", segments=len(result))
        return result
