"""Reconciler: merges billing facts with the master roster.

The billing source knows what clients bought; the roster knows which
clients exist and in what order. Reconciliation joins them on normalised
identity keys and produces one ClientRecord per canonical client.

Pipeline:
  1. consolidate   sum facts per raw billing key and (product, period),
                   then merge billing keys whose identity key collides
  2. index         normalised billing name/id -> consolidated client
  3. roster walk   probe each roster entry's name, id and external ids;
                   miss -> in-roster placeholder with zero revenue
  4. leftovers     unmatched billing clients appended with in_roster=False
  5. ordering      active, then roster, then name (roster) or revenue (others)

The whole record set is rebuilt on every run. Identical inputs give identical
output, order included.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from client_intel.core.classifier import Classifier, industry_segment_classifier, segment_from_industry
from client_intel.core.domain import (
    UNKNOWN_SEGMENT,
    ClientRecord,
    LoadStatus,
    PeriodSummary,
    ProductTotals,
    ReconciliationResult,
    RosterEntry,
    UsageFact,
)
from client_intel.core.normalizer import normalize
from client_intel.observability import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Consolidation
# ---------------------------------------------------------------------------


@dataclass
class _BillingClient:
    """Mutable accumulator used only while consolidating."""

    key: str
    name: str
    industry: str | None = None
    raw_keys: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)
    cells: dict[tuple[str, str], list[float]] = field(default_factory=dict)

    def add(self, product: str, period: str, usage: int, revenue: float) -> None:
        cell = self.cells.setdefault((product, period), [0, 0.0])
        cell[0] += usage
        cell[1] += revenue

    def absorb(self, other: "_BillingClient") -> None:
        self.raw_keys.extend(other.raw_keys)
        self.names.extend(n for n in other.names if n not in self.names)
        if self.industry is None:
            self.industry = other.industry
        for (product, period), (usage, revenue) in other.cells.items():
            self.add(product, period, int(usage), revenue)

    def identity_key(self) -> str:
        return normalize(self.name) or normalize(self.key)


def consolidate(facts: Iterable[UsageFact]) -> list[_BillingClient]:
    """Group facts by raw client key, summing duplicate (product, period) cells.

    A second pass merges billing clients whose identity keys collide (the same
    client reported under several sub-accounts or ids). Merging follows raw
    key order, so the result does not depend on fact order.

    A client whose key and name both normalise to nothing is kept under its
    raw key instead of being dropped.
    """
    by_key: dict[str, _BillingClient] = {}
    for fact in facts:
        client = by_key.get(fact.client_key)
        if client is None:
            client = _BillingClient(
                key=fact.client_key,
                name=fact.client_name or fact.client_key,
                industry=fact.industry,
                raw_keys=[fact.client_key],
                names=[fact.client_name] if fact.client_name else [],
            )
            by_key[fact.client_key] = client
        else:
            if fact.client_name and fact.client_name not in client.names:
                client.names.append(fact.client_name)
            if client.industry is None and fact.industry:
                client.industry = fact.industry
        client.add(fact.product_name, fact.period, fact.usage_count, fact.revenue_amount)

    merged: dict[str, _BillingClient] = {}
    for raw_key in sorted(by_key):
        client = by_key[raw_key]
        identity = client.identity_key()
        if not identity:
            identity = f"raw:{raw_key}"
            logger.warning("billing_identity_empty", client_key=raw_key, fallback="raw key")
        if identity in merged:
            merged[identity].absorb(client)
        else:
            merged[identity] = client
    return list(merged.values())


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class Reconciler:
    """Builds the canonical ClientRecord set.

    Args:
        segment_classifier: Maps free-text industry labels to segments.
        default_recent_period: Period (YYYY-MM) used for activity flags when the
            caller does not pass one. None means "latest billed period".
    """

    def __init__(
        self,
        segment_classifier: Classifier | None = None,
        default_recent_period: str | None = None,
    ) -> None:
        self._segment_classifier = segment_classifier or industry_segment_classifier()
        self._default_recent_period = default_recent_period

    def reconcile(
        self,
        roster: Sequence[RosterEntry] | None,
        facts: Iterable[UsageFact],
        recent_period: str | None = None,
    ) -> ReconciliationResult:
        """Join roster and billing into ordered ClientRecords.

        Args:
            roster: Roster entries in canonical order, or None when the roster
                source is unavailable.
            facts: Usage facts in the reporting currency.
            recent_period: Overrides the activity period for this run.

        Returns:
            ReconciliationResult with records in final display order.
        """
        fact_list = list(facts)
        billing_clients = consolidate(fact_list)
        period = recent_period or self._default_recent_period or _latest_period(fact_list)
        warnings: list[str] = []

        unidentified = sum(1 for client in billing_clients if not client.identity_key())
        if unidentified:
            warnings.append(f"{unidentified} billing client(s) have no usable name or id; kept under the raw key")

        lookup: dict[str, _BillingClient] = {}
        for client in billing_clients:
            for key in self._lookup_keys(client):
                lookup.setdefault(key, client)

        records: list[ClientRecord] = []
        claimed: set[int] = set()
        skipped_roster = 0
        unmatched_roster = 0

        if roster is None:
            status = LoadStatus.DEGRADED
            warnings.append("roster unavailable; all clients reported as non-roster")
            logger.warning("roster_unavailable_degrading", billing_clients=len(billing_clients))
        else:
            status = LoadStatus.OK
            seen_ids: set[str] = set()
            for entry in roster:
                entry_id = normalize(entry.canonical_id) or normalize(entry.display_name)
                if not entry_id or entry_id in seen_ids:
                    skipped_roster += 1
                    logger.warning(
                        "roster_entry_skipped",
                        display_name=entry.display_name,
                        canonical_id=entry.canonical_id,
                        reason="duplicate or empty identity",
                    )
                    continue
                seen_ids.add(entry_id)

                match = self._probe(entry, lookup)
                if match is not None and id(match) in claimed:
                    warnings.append(f"{entry.display_name} matched a client already claimed by another roster entry")
                    logger.warning("roster_match_already_claimed", display_name=entry.display_name)
                    match = None

                if match is None:
                    unmatched_roster += 1
                    records.append(self._placeholder(entry))
                else:
                    claimed.add(id(match))
                    records.append(self._build_record(match, period, entry=entry))

        leftovers = [c for c in billing_clients if id(c) not in claimed]
        for client in leftovers:
            records.append(self._build_record(client, period, entry=None))

        ordered = tuple(sorted(records, key=_sort_key))

        logger.info(
            "reconciliation_completed",
            records=len(ordered),
            roster_available=roster is not None,
            unmatched_roster=unmatched_roster,
            unmatched_billing=len(leftovers),
            skipped_roster_rows=skipped_roster,
            unidentified_billing=unidentified,
            recent_period=period,
        )

        return ReconciliationResult(
            records=ordered,
            status=status,
            recent_period=period,
            unmatched_roster=unmatched_roster,
            unmatched_billing=len(leftovers),
            skipped_roster_rows=skipped_roster,
            warnings=tuple(warnings),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _lookup_keys(client: _BillingClient) -> list[str]:
        keys = [normalize(name) for name in [client.name, *client.names]]
        keys.extend(normalize(raw) for raw in client.raw_keys)
        return [k for k in dict.fromkeys(keys) if k]

    @staticmethod
    def _probe(entry: RosterEntry, lookup: dict[str, _BillingClient]) -> _BillingClient | None:
        for candidate in (entry.display_name, entry.canonical_id, *entry.external_ids):
            key = normalize(candidate)
            if key and key in lookup:
                return lookup[key]
        return None

    def _segment(self, *industries: str | None) -> tuple[str, str | None]:
        for industry in industries:
            if industry and industry.strip():
                return segment_from_industry(industry, self._segment_classifier), industry
        return UNKNOWN_SEGMENT, None

    def _placeholder(self, entry: RosterEntry) -> ClientRecord:
        segment, industry = self._segment(entry.industry)
        return ClientRecord(
            canonical_name=entry.display_name,
            canonical_id=entry.canonical_id,
            segment=segment,
            products={},
            periods=(),
            total_revenue=0.0,
            in_roster=True,
            has_recent_activity=False,
            is_active=False,
            industry=industry,
        )

    def _build_record(
        self,
        client: _BillingClient,
        recent_period: str | None,
        entry: RosterEntry | None,
    ) -> ClientRecord:
        product_usage: dict[str, int] = defaultdict(int)
        product_revenue: dict[str, float] = defaultdict(float)
        period_usage: dict[str, int] = defaultdict(int)
        period_revenue: dict[str, float] = defaultdict(float)
        period_products: dict[str, set[str]] = defaultdict(set)

        for (product, period), (usage, revenue) in sorted(client.cells.items()):
            if usage <= 0 and revenue <= 0:
                continue
            product_usage[product] += int(usage)
            product_revenue[product] += revenue
            period_usage[period] += int(usage)
            period_revenue[period] += revenue
            period_products[period].add(product)

        products = {
            name: ProductTotals(usage=product_usage[name], revenue=round(product_revenue[name], 6))
            for name in sorted(product_usage)
        }
        periods = tuple(
            PeriodSummary(
                period=p,
                usage=period_usage[p],
                revenue=round(period_revenue[p], 6),
                product_count=len(period_products[p]),
            )
            for p in sorted(period_usage)
        )
        total_revenue = round(sum(product_revenue.values()), 6)
        has_recent = recent_period is not None and recent_period in period_usage
        in_roster = entry is not None
        segment, industry = self._segment(entry.industry if entry else None, client.industry)

        return ClientRecord(
            canonical_name=entry.display_name if entry else client.name,
            canonical_id=entry.canonical_id if entry else client.key,
            segment=segment,
            products=products,
            periods=periods,
            total_revenue=total_revenue,
            in_roster=in_roster,
            has_recent_activity=has_recent,
            is_active=in_roster and has_recent,
            billing_keys=tuple(sorted(client.raw_keys)),
            industry=industry,
        )


def _latest_period(facts: Sequence[UsageFact]) -> str | None:
    return max((f.period for f in facts), default=None)


def _sort_key(record: ClientRecord) -> tuple:
    name_key = (record.canonical_name.casefold(), record.canonical_name, record.canonical_id)
    if record.in_roster:
        tier = 0 if record.is_active else 1
        return (tier, 0.0, *name_key)
    return (2, -record.total_revenue, *name_key)
