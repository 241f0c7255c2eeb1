"""Create initial cie_ schema tables.

Revision ID: 001_cie_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "001_cie_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the overlay and usage ledger tables."""

    # cie_client_overlays
    op.create_table(
        "cie_client_overlays",
        sa.Column("canonical_id", sa.String(255), primary_key=True),
        sa.Column("industry", sa.String(255), nullable=True),
        sa.Column("segment", sa.String(100), nullable=True),
        sa.Column("product_prices", sa.JSON, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    # cie_usage_ledger
    op.create_table(
        "cie_usage_ledger",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("cost_usd", sa.Float, nullable=False, server_default="0"),
        sa.Column("cached", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cie_usage_ledger_session", "cie_usage_ledger", ["session_id", "recorded_at"])


def downgrade() -> None:
    """Drop all cie_ tables."""
    op.drop_index("ix_cie_usage_ledger_session", table_name="cie_usage_ledger")
    op.drop_table("cie_usage_ledger")
    op.drop_table("cie_client_overlays")
