"""SQLAlchemy ORM models for the Client Intelligence Engine.

All tables use the `cie_` prefix.

Domain model:
  ClientOverlayRow  user edits layered over a reconciled client record
  UsageLedgerRow    one routed decision (tier, cost, cache hit) per row
"""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

TABLE_PREFIX = "cie_"
VERSION_TABLE = "cie_alembic_version"


def is_engine_table(name: str | None) -> bool:
    """True for tables owned by this service, migration marker included."""
    return bool(name) and name.startswith(TABLE_PREFIX)


class Base(DeclarativeBase):
    """Declarative base for all cie_ tables."""


class ClientOverlayRow(Base):
    """Overlay for one client, keyed by the roster canonical id.

    Table: cie_client_overlays
    """

    __tablename__ = "cie_client_overlays"

    canonical_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Roster canonical id (or billing key for non-roster clients)",
    )
    industry: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Replacement industry label",
    )
    segment: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Explicit segment; wins over industry",
    )
    product_prices: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Product name to unit price in the reporting currency",
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Last modification time (UTC)",
    )


class UsageLedgerRow(Base):
    """A single routed decision charged to a session.

    Table: cie_usage_ledger
    """

    __tablename__ = "cie_usage_ledger"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Caller session identifier",
    )
    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="database | rules | search | ai",
    )
    cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the decision was routed (UTC)",
    )

    __table_args__ = (Index("ix_cie_usage_ledger_session", "session_id", "recorded_at"),)
