"""Prospect fit scoring.

fit = 50
    + segment fit    (+20 if we serve >10 clients in the segment, +10 if >5)
    + size fit       (+15 medium/large, +10 enterprise, +5 small)
    + geography fit  (+15 home market, +10 nearby markets, +5 elsewhere)
capped at 100.
"""

from typing import Sequence

from client_intel.core.domain import DecisionOutcome, ProspectProfile, ProspectScore, Recommendation
from client_intel.core.snapshot import IntelligenceSnapshot

BASE_FIT = 50
HOME_GEOGRAPHIES = frozenset({"india"})
NEARBY_GEOGRAPHIES = frozenset({"asean", "sea", "vietnam", "indonesia"})


def fit_score(profile: ProspectProfile, snapshot: IntelligenceSnapshot) -> int:
    score = BASE_FIT

    served = snapshot.clients_in_segment(profile.segment)
    if served > 10:
        score += 20
    elif served > 5:
        score += 10

    size = profile.size.lower()
    if size in ("medium", "large"):
        score += 15
    elif size == "enterprise":
        score += 10
    else:
        score += 5

    geography = profile.geography.strip().lower()
    if geography in HOME_GEOGRAPHIES:
        score += 15
    elif geography in NEARBY_GEOGRAPHIES:
        score += 10
    else:
        score += 5

    return min(100, score)


def score_prospect(
    profile: ProspectProfile,
    snapshot: IntelligenceSnapshot,
    recommendations: Sequence[Recommendation],
    outcome: DecisionOutcome | None = None,
) -> ProspectScore:
    """Combine fit score and pitch list into a ProspectScore."""
    monthly = sum(r.estimated_monthly_revenue for r in recommendations)
    return ProspectScore(
        profile=profile,
        fit_score=fit_score(profile, snapshot),
        recommendations=tuple(recommendations),
        estimated_annual_value=round(monthly * 12, 2),
        outcome=outcome,
    )
