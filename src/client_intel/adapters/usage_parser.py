"""Streaming, typed parser for billing usage rows.

Rows are validated one at a time and yielded either as a ``UsageFact`` or as
a ``RowError``; a bad row never aborts the stream. Currency conversion into
the reporting currency happens here, at the boundary, so nothing downstream
ever sees a foreign amount.

Accepted CSV columns (header matching ignores case, spaces and punctuation):

  client_id | client_key | client_identifier   billing client identifier
  client_name                                  billing display name (optional)
  sub_account | app_id                         sub-account the row was billed under (optional)
  period | month                               YYYY-MM, YYYY-MM-DD, "Sep 2025"
  product_name | module_name                   billed product
  usage_count | usage                          integer call count
  revenue_amount | revenue                     amount in ``currency``
  currency                                     ISO code (defaults to the reporting currency)
  industry                                     free-text industry (optional)
"""

import csv
import math
from typing import Iterable, Iterator, Mapping, TextIO

from client_intel.core.domain import BillingLoad, LoadStatus, RowError, UsageFact
from client_intel.core.normalizer import normalize, normalize_period
from client_intel.errors import MalformedRecordError
from client_intel.observability import get_logger

logger = get_logger(__name__)

_COLUMN_ALIASES: dict[str, str] = {
    "clientid": "client_id",
    "clientkey": "client_id",
    "clientidentifier": "client_id",
    "clientname": "client_name",
    "subaccount": "sub_account",
    "appid": "sub_account",
    "period": "period",
    "month": "period",
    "productname": "product_name",
    "modulename": "product_name",
    "usagecount": "usage_count",
    "usage": "usage_count",
    "revenueamount": "revenue_amount",
    "revenue": "revenue_amount",
    "currency": "currency",
    "industry": "industry",
}


class CurrencyConverter:
    """Static-rate conversion into a single reporting currency.

    Args:
        rates: Currency code to value of one unit in a common base (e.g. USD).
        reporting_currency: Target currency code.
    """

    def __init__(self, rates: Mapping[str, float], reporting_currency: str = "USD") -> None:
        self._rates = {code.upper(): rate for code, rate in rates.items()}
        self.reporting_currency = reporting_currency.upper()
        self._reporting_rate = self._rates.get(self.reporting_currency, 1.0)

    def convert(self, amount: float, currency: str | None) -> float:
        """Convert ``amount`` from ``currency`` into the reporting currency.

        Unknown currency codes pass through at rate 1.
        """
        code = (currency or self.reporting_currency).upper()
        if code == self.reporting_currency:
            return amount
        if code not in self._rates:
            logger.debug("unknown_currency_passthrough", currency=code)
            return amount
        return amount * self._rates[code] / self._reporting_rate


def canonical_columns(row: Mapping[str, str | None]) -> dict[str, str]:
    """Re-key a raw row by canonical column name, stripping values."""
    canonical: dict[str, str] = {}
    for key, value in row.items():
        if key is None:
            continue
        column = _COLUMN_ALIASES.get(normalize(key))
        if column is not None and column not in canonical:
            canonical[column] = (value or "").strip()
    return canonical


def _parse_count(raw: str, field_name: str) -> int:
    try:
        value = float(raw.replace(",", ""))
    except ValueError as exc:
        raise MalformedRecordError(f"{field_name} is not numeric: {raw!r}") from exc
    if not math.isfinite(value) or value < 0:
        raise MalformedRecordError(f"{field_name} must be a non-negative number: {raw!r}")
    return int(value)


def _parse_amount(raw: str, field_name: str) -> float:
    try:
        value = float(raw.replace(",", ""))
    except ValueError as exc:
        raise MalformedRecordError(f"{field_name} is not numeric: {raw!r}") from exc
    if not math.isfinite(value) or value < 0:
        raise MalformedRecordError(f"{field_name} must be a non-negative number: {raw!r}")
    return value


def parse_usage_row(row: Mapping[str, str | None], converter: CurrencyConverter) -> UsageFact:
    """Validate one raw row and build a UsageFact.

    Raises:
        MalformedRecordError: If a required field is missing or has the wrong shape.
    """
    fields = canonical_columns(row)

    client_id = fields.get("client_id", "")
    client_name = fields.get("client_name") or None
    if not client_id and not client_name:
        raise MalformedRecordError("missing client identifier")
    if not normalize(client_id) and not normalize(client_name or ""):
        raise MalformedRecordError(f"client identifier has no letters or digits: {client_id or client_name!r}")
    product_name = fields.get("product_name", "")
    if not product_name:
        raise MalformedRecordError("missing product name")
    if "usage_count" not in fields or "revenue_amount" not in fields:
        raise MalformedRecordError("missing usage_count or revenue_amount")

    period = normalize_period(fields.get("period", ""))
    usage_count = _parse_count(fields["usage_count"] or "0", "usage_count")
    revenue = _parse_amount(fields["revenue_amount"] or "0", "revenue_amount")
    currency = fields.get("currency") or converter.reporting_currency

    return UsageFact(
        client_key=client_id or client_name or "",
        period=period,
        product_name=product_name,
        usage_count=usage_count,
        revenue_amount=round(converter.convert(revenue, currency), 6),
        currency=converter.reporting_currency,
        client_name=client_name,
        sub_account=fields.get("sub_account") or None,
        industry=fields.get("industry") or None,
    )


def iter_usage_rows(
    rows: Iterable[Mapping[str, str | None]],
    converter: CurrencyConverter,
    first_line: int = 2,
) -> Iterator[UsageFact | RowError]:
    """Yield a UsageFact or RowError for every input row, in order.

    Args:
        rows: Raw rows, e.g. from ``csv.DictReader``.
        converter: Currency converter applied to revenue amounts.
        first_line: Line number of the first row (2 for a CSV with a header).
    """
    for offset, row in enumerate(rows):
        line_number = first_line + offset
        try:
            yield parse_usage_row(row, converter)
        except MalformedRecordError as exc:
            yield RowError(line_number=line_number, reason=exc.reason, raw=dict(row))


def read_usage_csv(stream: TextIO, converter: CurrencyConverter) -> Iterator[UsageFact | RowError]:
    """Stream-parse a CSV file object without loading it whole."""
    yield from iter_usage_rows(csv.DictReader(stream), converter)


def collect_billing(items: Iterable[UsageFact | RowError]) -> BillingLoad:
    """Drain a parser stream into a BillingLoad, logging skipped rows."""
    facts: list[UsageFact] = []
    errors: list[RowError] = []
    for item in items:
        if isinstance(item, RowError):
            errors.append(item)
        else:
            facts.append(item)

    if errors:
        logger.warning(
            "usage_rows_skipped",
            skipped=len(errors),
            accepted=len(facts),
            first_error=errors[0].reason,
            first_error_line=errors[0].line_number,
        )
    return BillingLoad(facts=tuple(facts), errors=tuple(errors), status=LoadStatus.OK)
