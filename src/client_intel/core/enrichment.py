"""Contracts for the two external enrichment tiers.

The AI tier must answer with JSON matching ``AIAnalysis``. Anything else,
including a well-formed JSON document of the wrong shape, raises
``EnrichmentFailedError`` so the router can fall back to rules.

Search results are plain dicts; ``extract_company_info`` reads a handful of
facts (headcount, funding, headquarters) out of their titles and snippets.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from client_intel.core.domain import ClientRecord, PriorityTier, Recommendation
from client_intel.errors import EnrichmentFailedError

_EMPLOYEES = re.compile(r"(\d+(?:,\d+)?)\+?\s*employees", re.IGNORECASE)
_FUNDING = (
    re.compile(r"raised?\s*\$?([\d.]+)\s*(million|billion|mn|bn|m|b|cr|crore)\b", re.IGNORECASE),
    re.compile(r"funding\s*(?:of|round)?\s*\$?([\d.]+)\s*(million|billion|mn|bn|m|b|cr|crore)\b", re.IGNORECASE),
    re.compile(r"series\s*[a-e]\s*(?:of|round)?\s*\$?([\d.]+)\s*(million|billion|mn|bn|m|b|cr|crore)\b", re.IGNORECASE),
)
_HEADQUARTERS = (
    re.compile(r"headquartered?\s+in\s+([a-z\s,]+)", re.IGNORECASE),
    re.compile(r"based\s+(?:in|out\s+of)\s+([a-z\s,]+)", re.IGNORECASE),
)
_NEWS_MARKERS = ("news", "times", "economic")
_PRIORITY_ALIASES = {
    "critical": "must-have",
    "high": "high-value",
    "medium": "nice-to-have",
    "low": "nice-to-have",
}


# ---------------------------------------------------------------------------
# AI tier
# ---------------------------------------------------------------------------


class AIRecommendation(BaseModel):
    product: str = Field(..., min_length=1)
    priority: PriorityTier = PriorityTier.HIGH_VALUE
    reason: str = ""
    estimated_monthly_revenue: float = Field(default=0.0, ge=0)

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _PRIORITY_ALIASES.get(value.strip().lower(), value.strip().lower())
        return value


class AIAnalysis(BaseModel):
    """Structured answer expected from the AI tier."""

    company: str = ""
    industry: str | None = None
    summary: str = ""
    pitch: str = ""
    recommendations: list[AIRecommendation] = Field(default_factory=list)


def parse_analysis(raw: Any) -> AIAnalysis:
    """Validate the AI tier's JSON answer.

    Raises:
        EnrichmentFailedError: If the document does not match ``AIAnalysis``.
    """
    try:
        return AIAnalysis.model_validate(raw)
    except ValidationError as exc:
        raise EnrichmentFailedError("ai", f"response did not match schema: {exc.error_count()} errors") from exc


def build_pitch_prompt(
    target_name: str,
    segment: str,
    record: ClientRecord | None,
    baseline: Sequence[Recommendation],
) -> str:
    """Prompt asking for a pitch plus product recommendations as JSON."""
    lines = [
        f"Company: {target_name}",
        f"Segment: {segment}",
    ]
    if record is not None and record.products:
        top = sorted(record.products.items(), key=lambda item: -item[1].revenue)[:10]
        lines.append("Products in use: " + ", ".join(name for name, _ in top))
        lines.append(f"Total revenue to date: {record.total_revenue:.2f}")
    else:
        lines.append("Products in use: none (prospect)")
    if baseline:
        lines.append("Rule-based candidates: " + ", ".join(r.product_name for r in baseline))
    lines.append(
        "Respond with a JSON object with keys: company, industry, summary, pitch, "
        "recommendations (list of {product, priority: must-have|high-value|nice-to-have, "
        "reason, estimated_monthly_revenue})."
    )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Search tier
# ---------------------------------------------------------------------------


def classify_result_source(link: str, display_link: str = "") -> str:
    """linkedin | crunchbase | news | company | other."""
    lowered = link.lower()
    if "linkedin.com" in lowered:
        return "linkedin"
    if "crunchbase.com" in lowered:
        return "crunchbase"
    if any(marker in lowered for marker in _NEWS_MARKERS):
        return "news"
    if display_link and display_link.lower() in lowered:
        return "company"
    return "other"


@dataclass(frozen=True)
class CompanyInfo:
    """Facts scraped from search snippets. Every field is best-effort."""

    employee_count: str | None = None
    funding_info: str | None = None
    headquarters: str | None = None
    description: str | None = None
    website: str | None = None
    recent_news: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["recent_news"] = list(self.recent_news)
        return data


def extract_company_info(company_name: str, results: Sequence[dict[str, Any]]) -> CompanyInfo:
    text = " ".join(f"{r.get('title', '')} {r.get('snippet', '')}" for r in results).lower()

    employee_count = None
    match = _EMPLOYEES.search(text)
    if match:
        employee_count = match.group(1).replace(",", "") + "+"

    funding_info = None
    for pattern in _FUNDING:
        match = pattern.search(text)
        if match:
            funding_info = f"${match.group(1)} {match.group(2)}"
            break

    headquarters = None
    for pattern in _HEADQUARTERS:
        match = pattern.search(text)
        if match:
            headquarters = re.split(r"[,.]", match.group(1).strip())[0].strip() or None
            break

    news = tuple(r.get("title", "") for r in results if r.get("source") == "news")[:5]
    description = next(
        (r.get("snippet") for r in results if r.get("source") != "news" and len(r.get("snippet") or "") > 50),
        None,
    )
    slug = company_name.lower().replace(" ", "")
    website = next(
        (f"https://{r['display_link']}" for r in results if slug and slug in (r.get("display_link") or "").lower()),
        None,
    )
    return CompanyInfo(
        employee_count=employee_count,
        funding_info=funding_info,
        headquarters=headquarters,
        description=description,
        website=website,
        recent_news=news,
    )
