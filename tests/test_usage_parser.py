"""Tests for billing row parsing, currency conversion and the file sources."""

import io
import json
from pathlib import Path

import pytest

from client_intel.adapters.file_sources import (
    CsvBillingSource,
    JsonCatalogSource,
    JsonRosterSource,
    parse_roster_document,
)
from client_intel.adapters.usage_parser import (
    CurrencyConverter,
    collect_billing,
    iter_usage_rows,
    parse_usage_row,
    read_usage_csv,
)
from client_intel.core.domain import RowError, UsageFact
from client_intel.errors import MalformedRecordError, SourceUnavailableError


@pytest.fixture
def converter() -> CurrencyConverter:
    return CurrencyConverter({"USD": 1.0, "INR": 0.012, "EUR": 1.08}, reporting_currency="USD")


class TestCurrencyConverter:
    def test_reporting_currency_is_identity(self, converter: CurrencyConverter) -> None:
        assert converter.convert(42.0, "USD") == 42.0
        assert converter.convert(42.0, None) == 42.0

    def test_converts_foreign_amount(self, converter: CurrencyConverter) -> None:
        assert converter.convert(1000.0, "inr") == pytest.approx(12.0)

    def test_cross_rate_when_reporting_currency_is_not_base(self) -> None:
        eur = CurrencyConverter({"USD": 1.0, "EUR": 1.08}, reporting_currency="EUR")
        assert eur.convert(108.0, "USD") == pytest.approx(100.0)

    def test_unknown_currency_passes_through(self, converter: CurrencyConverter) -> None:
        assert converter.convert(10.0, "XYZ") == 10.0


class TestParseUsageRow:
    def test_parses_aliased_columns(self, converter: CurrencyConverter) -> None:
        fact = parse_usage_row(
            {
                "Client ID": "BF7",
                "Client Name": "Bharat Finserv",
                "Month": "Sep 2025",
                "Module Name": "PAN Verification",
                "Usage": "1,200",
                "Revenue": "2500",
                "Currency": "INR",
            },
            converter,
        )
        assert fact.client_key == "BF7"
        assert fact.client_name == "Bharat Finserv"
        assert fact.period == "2025-09"
        assert fact.product_name == "PAN Verification"
        assert fact.usage_count == 1200
        assert fact.revenue_amount == pytest.approx(30.0)
        assert fact.currency == "USD"

    def test_client_name_used_as_key_without_id(self, converter: CurrencyConverter) -> None:
        fact = parse_usage_row(
            {"client_name": "Zeta Games", "period": "2025-09", "product_name": "Face Match", "usage_count": "1", "revenue_amount": "0.5"},
            converter,
        )
        assert fact.client_key == "Zeta Games"

    @pytest.mark.parametrize(
        "row",
        [
            {"period": "2025-09", "product_name": "PAN", "usage_count": "1", "revenue_amount": "1"},
            {"client_id": "X", "period": "2025-09", "usage_count": "1", "revenue_amount": "1"},
            {"client_id": "X", "period": "2025-09", "product_name": "PAN", "revenue_amount": "1"},
            {"client_id": "X", "period": "bad", "product_name": "PAN", "usage_count": "1", "revenue_amount": "1"},
            {"client_id": "X", "period": "2025-09", "product_name": "PAN", "usage_count": "many", "revenue_amount": "1"},
            {"client_id": "X", "period": "2025-09", "product_name": "PAN", "usage_count": "-5", "revenue_amount": "1"},
            {"client_id": "X", "period": "2025-09", "product_name": "PAN", "usage_count": "1", "revenue_amount": "-1"},
            {"client_id": "---", "period": "2025-09", "product_name": "PAN", "usage_count": "1", "revenue_amount": "1"},
        ],
    )
    def test_malformed_rows_raise(self, row: dict[str, str], converter: CurrencyConverter) -> None:
        with pytest.raises(MalformedRecordError):
            parse_usage_row(row, converter)


class TestStreamingParser:
    def test_bad_rows_are_reported_not_fatal(self, converter: CurrencyConverter) -> None:
        stream = io.StringIO(
            "client_id,period,product_name,usage_count,revenue_amount\n"
            "AC1,2025-09,PAN Verification,10,1.5\n"
            "AC1,2025-09,,10,1.5\n"
            "AC1,2025-09,Face Match,abc,1.5\n"
            "BF7,2025-08,PAN Verification,3,0.3\n"
        )
        items = list(read_usage_csv(stream, converter))

        assert [type(i) for i in items] == [UsageFact, RowError, RowError, UsageFact]
        errors = [i for i in items if isinstance(i, RowError)]
        assert [e.line_number for e in errors] == [3, 4]

        load = collect_billing(items)
        assert len(load.facts) == 2
        assert len(load.errors) == 2

    def test_line_numbers_follow_first_line(self, converter: CurrencyConverter) -> None:
        items = list(iter_usage_rows([{"client_id": "X"}], converter, first_line=10))
        assert isinstance(items[0], RowError)
        assert items[0].line_number == 10


class TestRosterDocument:
    def test_accepts_wrapped_list_and_key_variants(self) -> None:
        entries, skipped = parse_roster_document(
            {
                "clients": [
                    {"name": "Acme Pay", "clientId": "AC1", "zohoId": "Z-9"},
                    {"display_name": "Bharat Finserv", "canonical_id": "BF7", "external_ids": ["bf-old", "bf-new"]},
                    {"industry": "NBFC"},
                    "not an object",
                ]
            }
        )
        assert skipped == 2
        assert [e.canonical_id for e in entries] == ["AC1", "BF7"]
        assert entries[0].external_ids == ("Z-9",)
        assert entries[1].external_ids == ("bf-old", "bf-new")

    def test_rejects_non_list_document(self) -> None:
        with pytest.raises(SourceUnavailableError):
            parse_roster_document({"clients": "nope"})


class TestFileSources:
    @pytest.mark.asyncio
    async def test_missing_files_raise_source_unavailable(self, tmp_path: Path, converter: CurrencyConverter) -> None:
        with pytest.raises(SourceUnavailableError):
            await JsonRosterSource(tmp_path / "missing.json").load_roster()
        with pytest.raises(SourceUnavailableError):
            await CsvBillingSource(tmp_path / "missing.csv", converter).load_usage()
        with pytest.raises(SourceUnavailableError):
            await JsonCatalogSource(tmp_path / "missing.json").load_catalog()

    @pytest.mark.asyncio
    async def test_invalid_json_raises_source_unavailable(self, tmp_path: Path) -> None:
        path = tmp_path / "roster.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SourceUnavailableError):
            await JsonRosterSource(path).load_roster()

    @pytest.mark.asyncio
    async def test_loads_files(self, tmp_path: Path, converter: CurrencyConverter) -> None:
        roster_path = tmp_path / "clients.json"
        roster_path.write_text(json.dumps([{"name": "Acme Pay", "id": "AC1"}]), encoding="utf-8")
        billing_path = tmp_path / "usage.csv"
        billing_path.write_text(
            "client_id,period,product_name,usage_count,revenue_amount,currency\n"
            "AC1,2025-09,PAN Verification,10,100,INR\n",
            encoding="utf-8",
        )
        catalog_path = tmp_path / "catalog.json"
        catalog_path.write_text(
            json.dumps(
                {
                    "products": [
                        {"product_name": "PAN Verification", "category": "Identity Verification"},
                        {"product_name": "pan verification", "category": "Duplicate"},
                        {"moduleName": "Face Match"},
                    ]
                }
            ),
            encoding="utf-8",
        )

        roster = await JsonRosterSource(roster_path).load_roster()
        billing = await CsvBillingSource(billing_path, converter).load_usage()
        catalog = await JsonCatalogSource(catalog_path).load_catalog()

        assert roster.entries[0].canonical_id == "AC1"
        assert roster.skipped_rows == 0
        assert billing.facts[0].revenue_amount == pytest.approx(1.2)
        assert [p.product_name for p in catalog] == ["PAN Verification", "Face Match"]
        assert catalog[1].category == "Other"
