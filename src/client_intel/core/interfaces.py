"""Abstract interfaces (Protocols) for the Client Intelligence Engine.

Services depend on these Protocols, not on concrete adapters, so file,
in-memory and SQL implementations can be swapped freely and replaced with
mocks in tests.
"""

from typing import Any, Protocol, runtime_checkable

from client_intel.core.domain import (
    BillingLoad,
    CatalogProduct,
    ClientOverlay,
    RosterLoad,
    Tier,
)


@runtime_checkable
class IRosterSource(Protocol):
    """Ordered master list of clients."""

    async def load_roster(self) -> RosterLoad:
        """Load roster entries in canonical order, with the count of rows dropped.

        Raises:
            SourceUnavailableError: If the roster cannot be read.
        """
        ...


@runtime_checkable
class IBillingSource(Protocol):
    """Per-client, per-period, per-product usage and revenue."""

    async def load_usage(self) -> BillingLoad:
        """Load usage facts already converted to the reporting currency.

        Rows failing validation are reported in ``BillingLoad.errors``.

        Raises:
            SourceUnavailableError: If the billing data cannot be read.
        """
        ...


@runtime_checkable
class ICatalogSource(Protocol):
    """Master product catalog."""

    async def load_catalog(self) -> list[CatalogProduct]:
        ...


@runtime_checkable
class ISearchClient(Protocol):
    """External web search tier."""

    @property
    def configured(self) -> bool:
        """False when credentials are missing; ``search`` then returns []."""
        ...

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Run one search query.

        Returns:
            Result dicts with title, snippet, link, display_link and source keys.

        Raises:
            EnrichmentFailedError: On HTTP or transport failure.
        """
        ...


@runtime_checkable
class IAIClient(Protocol):
    """Generative AI analysis tier."""

    @property
    def configured(self) -> bool:
        ...

    async def analyze(self, prompt: str) -> dict[str, Any]:
        """Send a prompt and return the model's structured JSON answer.

        Raises:
            EnrichmentFailedError: On transport failure or non-JSON output.
            ConfigurationMissingError: When no credentials are configured.
        """
        ...


@runtime_checkable
class IOverlayStore(Protocol):
    """Per-client overrides keyed by canonical_id."""

    async def get(self, canonical_id: str) -> ClientOverlay | None:
        ...

    async def list_all(self) -> list[ClientOverlay]:
        ...

    async def upsert(self, overlay: ClientOverlay) -> ClientOverlay:
        ...

    async def delete(self, canonical_id: str) -> bool:
        ...


@runtime_checkable
class IUsageTracker(Protocol):
    """Durable or in-memory ledger of routed calls per session."""

    async def record(self, session_id: str, source: Tier, cost_usd: float, cached: bool = False) -> None:
        ...

    async def summary(self, session_id: str) -> dict[str, Any]:
        """Return ``{"queries_by_source": {...}, "estimated_cost_usd": float}``."""
        ...
