"""Pluggable text classifiers.

Category and segment assignment is table-driven keyword matching, kept behind
the ``Classifier`` protocol so an exact taxonomy or a learned model can replace
it without touching callers.
"""

from typing import Mapping, Protocol, Sequence, runtime_checkable

from client_intel.core.domain import UNKNOWN_SEGMENT, CatalogProduct
from client_intel.core.industry_rules import (
    GENERAL_SEGMENT,
    INDUSTRY_SEGMENT_KEYWORDS,
    NAME_SEGMENT_KEYWORDS,
    PRODUCT_CATEGORIES,
)
from client_intel.core.normalizer import normalize


@runtime_checkable
class Classifier(Protocol):
    """Assigns a label to free text, or None when nothing matches."""

    def classify(self, text: str | None) -> str | None:
        ...


class KeywordClassifier:
    """Substring keyword matching over an ordered label table.

    The first label whose keyword list has any keyword contained in the
    lower-cased text wins. Row order in the table is therefore significant.

    Args:
        table: Label to keywords, in priority order.
        default: Label returned when no keyword matches.
    """

    def __init__(self, table: Mapping[str, Sequence[str]], default: str | None = None) -> None:
        self._table = [(label, tuple(kw.lower() for kw in keywords)) for label, keywords in table.items()]
        self._default = default

    def classify(self, text: str | None) -> str | None:
        if not text:
            return self._default
        lowered = text.lower()
        for label, keywords in self._table:
            if any(keyword in lowered for keyword in keywords):
                return label
        return self._default


class ExactClassifier:
    """Exact lookup on the normalised text (e.g. a product catalog taxonomy)."""

    def __init__(self, mapping: Mapping[str, str], default: str | None = None) -> None:
        self._mapping = {normalize(key): value for key, value in mapping.items()}
        self._default = default

    def classify(self, text: str | None) -> str | None:
        return self._mapping.get(normalize(text), self._default)


class FallbackClassifier:
    """Try each classifier in order; first non-None label wins."""

    def __init__(self, *classifiers: Classifier, default: str | None = None) -> None:
        self._classifiers = classifiers
        self._default = default

    def classify(self, text: str | None) -> str | None:
        for classifier in self._classifiers:
            label = classifier.classify(text)
            if label is not None:
                return label
        return self._default


class ProductCategoryClassifier:
    """Product name -> category.

    A used product counts toward a category when its name contains any of the
    category's representative product names (case-insensitive).
    """

    def __init__(self, categories: Mapping[str, Sequence[str]] = PRODUCT_CATEGORIES) -> None:
        self._categories = [
            (category, tuple(p.lower() for p in products)) for category, products in categories.items()
        ]

    def classify(self, text: str | None) -> str | None:
        if not text:
            return None
        lowered = text.lower()
        for category, products in self._categories:
            if any(product in lowered for product in products):
                return category
        return None


def build_category_classifier(catalog: Sequence[CatalogProduct] = ()) -> Classifier:
    """Catalog categories take precedence over the keyword table."""
    exact = ExactClassifier({p.product_name: p.category for p in catalog if p.category})
    return FallbackClassifier(exact, ProductCategoryClassifier())


def industry_segment_classifier() -> Classifier:
    """Free-text industry label -> segment (``Other`` when nothing matches)."""
    return KeywordClassifier(INDUSTRY_SEGMENT_KEYWORDS, default="Other")


def name_segment_classifier() -> Classifier:
    """Company name -> segment for targets without data (``General`` fallback)."""
    return KeywordClassifier(NAME_SEGMENT_KEYWORDS, default=GENERAL_SEGMENT)


def segment_from_industry(industry: str | None, classifier: Classifier | None = None) -> str:
    if not industry or not industry.strip():
        return UNKNOWN_SEGMENT
    label = (classifier or industry_segment_classifier()).classify(industry)
    return label or UNKNOWN_SEGMENT
