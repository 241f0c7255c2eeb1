"""In-memory implementations of the source and store Protocols.

Used as defaults when no database is configured, and as fixtures in tests.
"""

import asyncio
from datetime import datetime, timezone
from typing import Sequence

from client_intel.core.domain import BillingLoad, CatalogProduct, ClientOverlay, RosterEntry, RosterLoad, UsageFact
from client_intel.errors import SourceUnavailableError


class InMemoryRosterSource:
    """Static roster. ``available=False`` simulates an unreachable source."""

    def __init__(self, entries: Sequence[RosterEntry], available: bool = True, skipped_rows: int = 0) -> None:
        self._entries = tuple(entries)
        self._skipped_rows = skipped_rows
        self.available = available

    async def load_roster(self) -> RosterLoad:
        if not self.available:
            raise SourceUnavailableError("roster", "in-memory roster marked unavailable")
        return RosterLoad(entries=self._entries, skipped_rows=self._skipped_rows)


class InMemoryBillingSource:
    def __init__(self, facts: Sequence[UsageFact], available: bool = True) -> None:
        self._facts = tuple(facts)
        self.available = available

    async def load_usage(self) -> BillingLoad:
        if not self.available:
            raise SourceUnavailableError("billing", "in-memory billing marked unavailable")
        return BillingLoad(facts=self._facts)


class InMemoryCatalogSource:
    def __init__(self, products: Sequence[CatalogProduct] = ()) -> None:
        self._products = list(products)

    async def load_catalog(self) -> list[CatalogProduct]:
        return list(self._products)


class InMemoryOverlayStore:
    """Dict-backed overlay store. Implements IOverlayStore."""

    def __init__(self) -> None:
        self._overlays: dict[str, ClientOverlay] = {}
        self._lock = asyncio.Lock()

    async def get(self, canonical_id: str) -> ClientOverlay | None:
        return self._overlays.get(canonical_id)

    async def list_all(self) -> list[ClientOverlay]:
        return [self._overlays[key] for key in sorted(self._overlays)]

    async def upsert(self, overlay: ClientOverlay) -> ClientOverlay:
        stamped = ClientOverlay(
            canonical_id=overlay.canonical_id,
            industry=overlay.industry,
            segment=overlay.segment,
            product_prices=dict(overlay.product_prices),
            notes=overlay.notes,
            updated_at=datetime.now(timezone.utc),
        )
        async with self._lock:
            self._overlays[overlay.canonical_id] = stamped
        return stamped

    async def delete(self, canonical_id: str) -> bool:
        async with self._lock:
            return self._overlays.pop(canonical_id, None) is not None
