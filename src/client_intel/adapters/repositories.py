"""SQLAlchemy repositories for the Client Intelligence Engine.

Both stores implement interfaces from core/interfaces.py and open one
short-lived session per call from an ``async_sessionmaker``. Database errors
are logged and raised as ``SourceUnavailableError`` so the snapshot build can
degrade instead of failing.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from client_intel.core.domain import ClientOverlay, Tier
from client_intel.core.models import ClientOverlayRow, UsageLedgerRow
from client_intel.errors import SourceUnavailableError
from client_intel.observability import get_logger

logger = get_logger(__name__)


def _to_domain(row: ClientOverlayRow) -> ClientOverlay:
    return ClientOverlay(
        canonical_id=row.canonical_id,
        industry=row.industry,
        segment=row.segment,
        product_prices=dict(row.product_prices or {}),
        notes=row.notes,
        updated_at=row.updated_at,
    )


class SqlOverlayStore:
    """Overlay persistence in cie_client_overlays. Implements IOverlayStore."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, canonical_id: str) -> ClientOverlay | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(ClientOverlayRow, canonical_id)
                return _to_domain(row) if row is not None else None
        except SQLAlchemyError as exc:
            logger.error("overlay_read_failed", canonical_id=canonical_id, error=str(exc))
            raise SourceUnavailableError("overlays", str(exc)) from exc

    async def list_all(self) -> list[ClientOverlay]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(ClientOverlayRow).order_by(ClientOverlayRow.canonical_id))
                return [_to_domain(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("overlay_list_failed", error=str(exc))
            raise SourceUnavailableError("overlays", str(exc)) from exc

    async def upsert(self, overlay: ClientOverlay) -> ClientOverlay:
        """Insert or replace the overlay for ``overlay.canonical_id``."""
        updated_at = overlay.updated_at or datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(ClientOverlayRow, overlay.canonical_id)
                    if row is None:
                        row = ClientOverlayRow(canonical_id=overlay.canonical_id)
                        session.add(row)
                    row.industry = overlay.industry
                    row.segment = overlay.segment
                    row.product_prices = dict(overlay.product_prices)
                    row.notes = overlay.notes
                    row.updated_at = updated_at
                    stored = _to_domain(row)
                return stored
        except SQLAlchemyError as exc:
            logger.error("overlay_write_failed", canonical_id=overlay.canonical_id, error=str(exc))
            raise SourceUnavailableError("overlays", str(exc)) from exc

    async def delete(self, canonical_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(ClientOverlayRow).where(ClientOverlayRow.canonical_id == canonical_id)
                    )
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            logger.error("overlay_delete_failed", canonical_id=canonical_id, error=str(exc))
            raise SourceUnavailableError("overlays", str(exc)) from exc


class SqlUsageTracker:
    """Durable decision ledger in cie_usage_ledger. Implements IUsageTracker."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(self, session_id: str, source: Tier, cost_usd: float, cached: bool = False) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        UsageLedgerRow(
                            session_id=session_id,
                            source=source.value,
                            cost_usd=cost_usd,
                            cached=cached,
                            recorded_at=datetime.now(timezone.utc),
                        )
                    )
        except SQLAlchemyError as exc:
            logger.error("usage_ledger_write_failed", session_id=session_id, error=str(exc))
            raise SourceUnavailableError("usage_ledger", str(exc)) from exc

    async def summary(self, session_id: str) -> dict[str, Any]:
        """Per-source call counts and total cost for one session."""
        query = (
            select(
                UsageLedgerRow.source,
                func.count(UsageLedgerRow.id),
                func.coalesce(func.sum(UsageLedgerRow.cost_usd), 0.0),
            )
            .where(UsageLedgerRow.session_id == session_id)
            .group_by(UsageLedgerRow.source)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.all()
        except SQLAlchemyError as exc:
            logger.error("usage_ledger_read_failed", session_id=session_id, error=str(exc))
            raise SourceUnavailableError("usage_ledger", str(exc)) from exc

        return {
            "queries_by_source": {source: int(count) for source, count, _ in rows},
            "estimated_cost_usd": round(sum(float(cost) for _, _, cost in rows), 6),
        }
