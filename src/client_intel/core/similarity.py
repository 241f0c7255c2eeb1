"""Similarity Engine: Jaccard similarity over product-name sets.

Clients in the same known segment get their score multiplied by a fixed
boost (1.3 by default) and clamped to 1.0. Segment equality is symmetric, so
the boosted score is symmetric as well; only the ``unique_to_b`` side of a
SimilarityEdge depends on direction.
"""

from typing import Callable, Iterable, Sequence

from client_intel.core.domain import UNKNOWN_SEGMENT, ClientRecord, SimilarityEdge

DEFAULT_SEGMENT_BOOST = 1.3


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Intersection over union of two product-name sets. Empty union -> 0.0."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


class SimilarityEngine:
    """Pairwise similarity and nearest-neighbour search.

    Args:
        records: Candidate neighbours.
        segment_of: Effective segment for a record. Defaults to ``record.segment``.
        segment_boost: Multiplier applied when both clients share a known segment.
    """

    def __init__(
        self,
        records: Sequence[ClientRecord],
        segment_of: Callable[[ClientRecord], str] | None = None,
        segment_boost: float = DEFAULT_SEGMENT_BOOST,
    ) -> None:
        self._records = tuple(records)
        self._segment_of = segment_of or (lambda record: record.segment)
        self._boost = segment_boost

    def same_segment(self, a: ClientRecord, b: ClientRecord) -> bool:
        segment_a = self._segment_of(a)
        return segment_a not in ("", UNKNOWN_SEGMENT) and segment_a == self._segment_of(b)

    def raw_similarity(self, a: ClientRecord, b: ClientRecord) -> float:
        return jaccard(a.product_names, b.product_names)

    def similarity(self, a: ClientRecord, b: ClientRecord) -> float:
        """Boosted similarity in [0, 1]."""
        raw = self.raw_similarity(a, b)
        if raw > 0 and self.same_segment(a, b):
            return min(1.0, raw * self._boost)
        return raw

    def edge(self, a: ClientRecord, b: ClientRecord) -> SimilarityEdge:
        products_a, products_b = a.product_names, b.product_names
        return SimilarityEdge(
            client_a=a.canonical_name,
            client_b=b.canonical_name,
            score=self.similarity(a, b),
            raw_score=self.raw_similarity(a, b),
            shared_products=tuple(sorted(products_a & products_b)),
            unique_to_b=tuple(sorted(products_b - products_a)),
        )

    def find_similar(self, target: ClientRecord, k: int = 5) -> list[SimilarityEdge]:
        """Top-k neighbours of ``target`` by boosted score.

        Self is excluded by canonical_id. Pairs with no shared product are
        dropped. Ties go to the larger shared-product count, then to the
        alphabetically first name.
        """
        return [edge for _, edge in self.neighbors(target, k)]

    def neighbors(self, target: ClientRecord, k: int = 5) -> list[tuple[ClientRecord, SimilarityEdge]]:
        """Same ranking as ``find_similar``, keeping the neighbour records."""
        if k <= 0 or not target.products:
            return []
        pairs = [
            (candidate, self.edge(target, candidate))
            for candidate in self._records
            if candidate.canonical_id != target.canonical_id and candidate.products
        ]
        pairs = [(record, edge) for record, edge in pairs if edge.score > 0]
        pairs.sort(
            key=lambda pair: (
                -pair[1].score,
                -len(pair[1].shared_products),
                pair[1].client_b.casefold(),
                pair[1].client_b,
                pair[0].canonical_id,
            )
        )
        return pairs[:k]
