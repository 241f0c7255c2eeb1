"""Tests for roster/billing reconciliation."""

import pytest

from client_intel.core.domain import UNKNOWN_SEGMENT, LoadStatus, RosterEntry, UsageFact
from client_intel.core.reconciler import Reconciler, consolidate


def _by_name(result):
    return {r.canonical_name: r for r in result.records}


class TestConsolidate:
    def test_sums_duplicate_cells(self) -> None:
        clients = consolidate(
            [
                UsageFact("AC1", "2025-09", "PAN Verification", 10, 1.0),
                UsageFact("AC1", "2025-09", "PAN Verification", 5, 0.5),
            ]
        )
        assert len(clients) == 1
        assert clients[0].cells[("PAN Verification", "2025-09")] == [15, 1.5]

    def test_merges_keys_with_colliding_identity(self) -> None:
        clients = consolidate(
            [
                UsageFact("app-1", "2025-09", "PAN Verification", 10, 1.0, client_name="Acme Pay"),
                UsageFact("app-2", "2025-09", "PAN Verification", 5, 0.5, client_name="ACME PAY"),
            ]
        )
        assert len(clients) == 1
        assert sorted(clients[0].raw_keys) == ["app-1", "app-2"]
        assert clients[0].cells[("PAN Verification", "2025-09")] == [15, 1.5]

    def test_unnormalisable_keys_stay_separate(self) -> None:
        clients = consolidate(
            [
                UsageFact("---", "2025-09", "KYC", 100, 50.0),
                UsageFact("///", "2025-09", "KYC", 10, 5.0),
            ]
        )
        assert sorted(c.key for c in clients) == ["---", "///"]


class TestReconciler:
    """Reconciler.reconcile() behaviour."""

    def test_billing_key_matches_roster_id(self, roster: list[RosterEntry], facts: list[UsageFact]) -> None:
        """A billing key with no name joins the roster entry whose id normalises to the same key."""
        result = Reconciler().reconcile(roster, facts)
        acme = _by_name(result)["Acme Pay"]

        assert acme.canonical_id == "AC1"
        assert acme.in_roster is True
        assert acme.total_revenue == pytest.approx(50.0)
        assert acme.has_recent_activity is True
        assert acme.is_active is True
        assert acme.products["PAN Verification"].usage == 2200
        assert [p.period for p in acme.periods] == ["2025-08", "2025-09"]

    def test_recent_period_defaults_to_latest_billed(self, roster: list[RosterEntry], facts: list[UsageFact]) -> None:
        result = Reconciler().reconcile(roster, facts)
        assert result.recent_period == "2025-09"
        assert _by_name(result)["Dhan Insure"].is_active is False
        assert _by_name(result)["Dhan Insure"].has_recent_activity is False

    def test_explicit_recent_period(self, roster: list[RosterEntry], facts: list[UsageFact]) -> None:
        result = Reconciler().reconcile(roster, facts, recent_period="2025-07")
        records = _by_name(result)
        assert records["Dhan Insure"].is_active is True
        assert records["Acme Pay"].is_active is False

    def test_roster_entry_without_billing_gets_placeholder(
        self, roster: list[RosterEntry], facts: list[UsageFact]
    ) -> None:
        result = Reconciler().reconcile(roster, facts)
        ekart = _by_name(result)["Ekart Rides"]

        assert ekart.in_roster is True
        assert ekart.total_revenue == 0.0
        assert dict(ekart.products) == {}
        assert ekart.is_active is False
        assert ekart.segment == "Gig Economy"
        assert result.unmatched_roster == 1

    def test_unmatched_billing_appended_outside_roster(
        self, roster: list[RosterEntry], facts: list[UsageFact]
    ) -> None:
        result = Reconciler().reconcile(roster, facts)
        zeta = _by_name(result)["Zeta Games"]

        assert zeta.in_roster is False
        assert zeta.is_active is False
        assert zeta.has_recent_activity is True
        assert zeta.canonical_id == "ZZ4"
        assert zeta.segment == "Gaming"
        assert result.unmatched_billing == 1

    def test_ordering(self, roster: list[RosterEntry], facts: list[UsageFact]) -> None:
        """Active roster by name, then inactive roster by name, then non-roster by revenue."""
        extra = facts + [UsageFact("YY1", "2025-09", "Face Match", 10, 500.0, client_name="Yotta Bank")]
        result = Reconciler().reconcile(roster, extra)

        assert [r.canonical_name for r in result.records] == [
            "Acme Pay",
            "Bharat Finserv",
            "Credo Lending",
            "Dhan Insure",
            "Ekart Rides",
            "Yotta Bank",
            "Zeta Games",
        ]

    def test_is_deterministic_under_input_order(self, roster: list[RosterEntry], facts: list[UsageFact]) -> None:
        forward = Reconciler().reconcile(roster, facts)
        backward = Reconciler().reconcile(roster, list(reversed(facts)))
        assert forward.records == backward.records

    def test_segment_prefers_roster_industry(self, roster: list[RosterEntry], facts: list[UsageFact]) -> None:
        records = _by_name(Reconciler().reconcile(roster, facts))
        assert records["Acme Pay"].segment == "Payment Service Provider"
        assert records["Credo Lending"].segment == "NBFC"
        assert records["Bharat Finserv"].industry == "NBFC"

    def test_missing_industry_is_unknown_segment(self) -> None:
        result = Reconciler().reconcile(
            [RosterEntry("Nameless Co", "NC1")],
            [UsageFact("NC1", "2025-09", "PAN Verification", 1, 1.0)],
        )
        assert result.records[0].segment == UNKNOWN_SEGMENT

    def test_zero_usage_zero_revenue_cells_are_dropped(self) -> None:
        result = Reconciler().reconcile(
            [RosterEntry("Acme Pay", "AC1")],
            [
                UsageFact("AC1", "2025-09", "PAN Verification", 0, 0.0),
                UsageFact("AC1", "2025-09", "Face Match", 3, 0.3),
            ],
        )
        assert list(result.records[0].products) == ["Face Match"]

    def test_roster_unavailable_degrades_to_billing_only(self, facts: list[UsageFact]) -> None:
        result = Reconciler().reconcile(None, facts)

        assert result.status is LoadStatus.DEGRADED
        assert result.warnings
        assert all(not r.in_roster for r in result.records)
        assert all(not r.is_active for r in result.records)
        revenues = [r.total_revenue for r in result.records]
        assert revenues == sorted(revenues, reverse=True)

    def test_duplicate_roster_ids_are_skipped(self, facts: list[UsageFact]) -> None:
        result = Reconciler().reconcile(
            [RosterEntry("Acme Pay", "AC1"), RosterEntry("Acme Payments", "ac-1")],
            facts,
        )
        assert result.skipped_roster_rows == 1
        assert [r.canonical_name for r in result.records if r.in_roster] == ["Acme Pay"]

    def test_second_claim_on_same_billing_client_gets_placeholder(self) -> None:
        result = Reconciler().reconcile(
            [RosterEntry("Acme Pay", "AC1"), RosterEntry("Acme Pay Wallet", "AW2", external_ids=("AC1",))],
            [UsageFact("AC1", "2025-09", "PAN Verification", 1, 1.0)],
        )
        records = _by_name(result)
        assert records["Acme Pay"].total_revenue == pytest.approx(1.0)
        assert records["Acme Pay Wallet"].total_revenue == 0.0
        assert any("already claimed" in w for w in result.warnings)

    def test_empty_inputs(self) -> None:
        result = Reconciler().reconcile([], [])
        assert result.records == ()
        assert result.recent_period is None

    def test_billing_client_without_usable_identity_is_kept(self) -> None:
        result = Reconciler().reconcile([], [UsageFact("---", "2025-09", "KYC", 100, 50.0)])

        assert len(result.records) == 1
        record = result.records[0]
        assert record.canonical_id == "---"
        assert record.in_roster is False
        assert record.total_revenue == pytest.approx(50.0)
        assert result.unmatched_billing == 1
        assert any("no usable name or id" in w for w in result.warnings)
