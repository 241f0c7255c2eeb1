"""File-backed roster, billing and catalog sources.

File reads run in a worker thread under an explicit timeout. Any failure to
read the file as a whole surfaces as ``SourceUnavailableError`` so callers can
degrade; individual bad rows are skipped and counted.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, TypeVar

from client_intel.adapters.usage_parser import CurrencyConverter, collect_billing, read_usage_csv
from client_intel.core.domain import BillingLoad, CatalogProduct, RosterEntry, RosterLoad
from client_intel.errors import SourceUnavailableError
from client_intel.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_NAME_KEYS = ("display_name", "name", "client_name")
_ID_KEYS = ("canonical_id", "client_id", "clientId", "id")
_EXTERNAL_ID_KEYS = ("external_ids", "zohoId", "zoho_id", "metabaseIds", "billing_ids")


async def _read_with_timeout(source: str, reader: Callable[[], T], timeout: float) -> T:
    try:
        return await asyncio.wait_for(asyncio.to_thread(reader), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise SourceUnavailableError(source, f"read timed out after {timeout}s") from exc
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SourceUnavailableError(source, str(exc)) from exc


def _collect_ids(raw: dict[str, Any]) -> tuple[str, ...]:
    ids: list[str] = []
    for key in _EXTERNAL_ID_KEYS:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            ids.append(value.strip())
        elif isinstance(value, list):
            ids.extend(str(v).strip() for v in value if v is not None and str(v).strip())
    return tuple(ids)


def parse_roster_document(document: Any) -> tuple[list[RosterEntry], int]:
    """Turn a roster JSON document into entries.

    Accepts either a bare list of client objects or ``{"clients": [...]}``.

    Returns:
        Tuple of (valid entries in document order, number of skipped rows).
    """
    rows = document.get("clients", []) if isinstance(document, dict) else document
    if not isinstance(rows, list):
        raise SourceUnavailableError("roster", "expected a list of clients")

    entries: list[RosterEntry] = []
    skipped = 0
    for position, raw in enumerate(rows):
        if not isinstance(raw, dict):
            skipped += 1
            logger.warning("roster_row_skipped", position=position, reason="not an object")
            continue
        name = next((str(raw[k]).strip() for k in _NAME_KEYS if raw.get(k)), "")
        canonical_id = next((str(raw[k]).strip() for k in _ID_KEYS if raw.get(k)), "")
        if not name and not canonical_id:
            skipped += 1
            logger.warning("roster_row_skipped", position=position, reason="no name or id")
            continue
        entries.append(
            RosterEntry(
                display_name=name or canonical_id,
                canonical_id=canonical_id or name,
                external_ids=_collect_ids(raw),
                industry=(raw.get("industry") or None),
            )
        )
    return entries, skipped


class JsonRosterSource:
    """Roster read from a JSON file. Implements IRosterSource."""

    def __init__(self, path: str | Path, timeout_seconds: float = 10.0) -> None:
        self._path = Path(path)
        self._timeout = timeout_seconds

    async def load_roster(self) -> RosterLoad:
        document = await _read_with_timeout(
            "roster",
            lambda: json.loads(self._path.read_text(encoding="utf-8")),
            self._timeout,
        )
        entries, skipped = parse_roster_document(document)
        logger.info("roster_loaded", path=str(self._path), entries=len(entries), skipped=skipped)
        return RosterLoad(entries=tuple(entries), skipped_rows=skipped)


class CsvBillingSource:
    """Usage facts read from a CSV export. Implements IBillingSource.

    Args:
        path: CSV file location.
        converter: Converts row amounts into the reporting currency.
        timeout_seconds: Upper bound on the whole file read.
    """

    def __init__(self, path: str | Path, converter: CurrencyConverter, timeout_seconds: float = 10.0) -> None:
        self._path = Path(path)
        self._converter = converter
        self._timeout = timeout_seconds

    def _read(self) -> BillingLoad:
        with self._path.open(newline="", encoding="utf-8") as stream:
            return collect_billing(read_usage_csv(stream, self._converter))

    async def load_usage(self) -> BillingLoad:
        load = await _read_with_timeout("billing", self._read, self._timeout)
        logger.info(
            "billing_loaded",
            path=str(self._path),
            facts=len(load.facts),
            skipped=len(load.errors),
        )
        return load


class JsonCatalogSource:
    """Product catalog read from a JSON list of products. Implements ICatalogSource."""

    def __init__(self, path: str | Path, timeout_seconds: float = 10.0) -> None:
        self._path = Path(path)
        self._timeout = timeout_seconds

    async def load_catalog(self) -> list[CatalogProduct]:
        document = await _read_with_timeout(
            "catalog",
            lambda: json.loads(self._path.read_text(encoding="utf-8")),
            self._timeout,
        )
        rows = document.get("products", []) if isinstance(document, dict) else document
        products: list[CatalogProduct] = []
        seen: set[str] = set()
        for raw in rows if isinstance(rows, list) else []:
            if not isinstance(raw, dict):
                continue
            name = str(raw.get("product_name") or raw.get("moduleName") or raw.get("name") or "").strip()
            if not name or name.casefold() in seen:
                continue
            seen.add(name.casefold())
            products.append(
                CatalogProduct(
                    product_name=name,
                    category=str(raw.get("category") or "Other"),
                    billing_unit=str(raw.get("billing_unit") or raw.get("billingUnit") or "per call"),
                )
            )
        logger.info("catalog_loaded", path=str(self._path), products=len(products))
        return products
