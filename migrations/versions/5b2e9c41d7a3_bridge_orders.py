"""bridge orders

Revision ID: 5b2e9c41d7a3
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5b2e9c41d7a3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SEQUENCE_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create the bridge order table and its audit tables."""
    op.create_table(
        "bridge_order",
        sa.Column("id", sa.VARCHAR(length=36), nullable=False),
        sa.Column("atomiq_swap_id", sa.Text(), nullable=True),
        sa.Column("network", sa.VARCHAR(length=16), nullable=False),
        sa.Column("source_asset", sa.VARCHAR(length=16), nullable=False),
        sa.Column("destination_asset", sa.VARCHAR(length=32), nullable=False),
        sa.Column("amount", sa.Text(), nullable=False),
        sa.Column("amount_type", sa.VARCHAR(length=16), nullable=False),
        sa.Column("amount_source", sa.Text(), nullable=True),
        sa.Column("amount_destination", sa.Text(), nullable=True),
        sa.Column("receive_address", sa.Text(), nullable=False),
        sa.Column("wallet_address", sa.Text(), nullable=False),
        sa.Column("deposit_address", sa.Text(), nullable=True),
        sa.Column("status", sa.VARCHAR(length=32), nullable=False),
        sa.Column("source_tx_id", sa.Text(), nullable=True),
        sa.Column("destination_tx_id", sa.Text(), nullable=True),
        sa.Column("quote", sa.JSON(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("raw_state", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("atomiq_swap_id"),
    )
    op.create_index("ix_bridge_order_wallet_address", "bridge_order", ["wallet_address"])
    op.create_index("ix_bridge_order_status", "bridge_order", ["status"])

    for table, name_column in (("bridge_action", "type"), ("bridge_event", "kind")):
        columns = [
            sa.Column("id", SEQUENCE_ID, autoincrement=True, nullable=False),
            sa.Column("order_id", sa.VARCHAR(length=36), nullable=False),
            sa.Column(name_column, sa.VARCHAR(length=32), nullable=False),
        ]
        if table == "bridge_action":
            columns.append(sa.Column("outcome", sa.VARCHAR(length=16), nullable=False))
        else:
            columns.append(sa.Column("from_status", sa.VARCHAR(length=32), nullable=True))
            columns.append(sa.Column("to_status", sa.VARCHAR(length=32), nullable=False))
        op.create_table(
            table,
            *columns,
            sa.Column("detail", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["order_id"], ["bridge_order.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_order_id", table, ["order_id", "id"])


def downgrade() -> None:
    """Drop the bridge tables."""
    op.drop_index("ix_bridge_event_order_id", table_name="bridge_event")
    op.drop_table("bridge_event")
    op.drop_index("ix_bridge_action_order_id", table_name="bridge_action")
    op.drop_table("bridge_action")
    op.drop_index("ix_bridge_order_status", table_name="bridge_order")
    op.drop_index("ix_bridge_order_wallet_address", table_name="bridge_order")
    op.drop_table("bridge_order")
