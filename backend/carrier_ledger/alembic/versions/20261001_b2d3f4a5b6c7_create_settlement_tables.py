"""create dispatch sessions, settlements, orders and account movements tables

Revision ID: b2d3f4a5b6c7
Revises: a1c2e3f4a5b6
Create Date: 2026-10-01 00:00:01.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "b2d3f4a5b6c7"
down_revision = "a1c2e3f4a5b6"
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "dispatch_sessions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("carrier_id", sa.String(length=36), nullable=False),
        sa.Column("session_code", sa.String(length=30), nullable=False),
        sa.Column("dispatch_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="dispatched"),
        sa.Column("total_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cod_expected", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("total_prepaid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("settlement_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("exported_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("imported_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["carrier_id"], ["carriers.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "session_code", name="uq_dispatch_sessions_store_id_code"),
    )
    op.create_index("ix_dispatch_sessions_store_id", "dispatch_sessions", ["store_id"], unique=False)
    op.create_index("ix_dispatch_sessions_carrier_id", "dispatch_sessions", ["carrier_id"], unique=False)
    op.create_index("ix_dispatch_sessions_status", "dispatch_sessions", ["status"], unique=False)

    op.create_table(
        "settlements",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("carrier_id", sa.String(length=36), nullable=False),
        sa.Column("dispatch_session_id", sa.String(length=36), nullable=True),
        sa.Column("settlement_code", sa.String(length=30), nullable=False),
        sa.Column("settlement_date", sa.Date(), nullable=False),
        sa.Column("total_dispatched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_delivered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_not_delivered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cod_delivered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_prepaid_delivered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cod_expected", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("total_cod_collected", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("total_carrier_fees", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("cod_carrier_fees", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("prepaid_carrier_fees", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("failed_attempt_fee", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("net_receivable", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("amount_paid", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("balance_due", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["carrier_id"], ["carriers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["dispatch_session_id"], ["dispatch_sessions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "settlement_code", name="uq_settlements_store_id_code"),
    )
    op.create_index("ix_settlements_store_id", "settlements", ["store_id"], unique=False)
    op.create_index("ix_settlements_carrier_id", "settlements", ["carrier_id"], unique=False)
    op.create_index("ix_settlements_dispatch_session_id", "settlements", ["dispatch_session_id"], unique=False)
    op.create_index("ix_settlements_status", "settlements", ["status"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("carrier_id", sa.String(length=36), nullable=True),
        sa.Column("order_number", sa.String(length=50), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=50), nullable=True),
        sa.Column("shipping_address", sa.String(length=500), nullable=True),
        sa.Column("shipping_city", sa.String(length=150), nullable=True),
        sa.Column("delivery_zone", sa.String(length=100), nullable=True),
        sa.Column("total_price", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("prepaid_method", sa.String(length=50), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("is_pickup", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("amount_collected", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("has_amount_discrepancy", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settlement_id", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["carrier_id"], ["carriers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["settlement_id"], ["settlements.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_orders_store_id", "orders", ["store_id"], unique=False)
    op.create_index("ix_orders_carrier_id", "orders", ["carrier_id"], unique=False)
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=False)
    op.create_index("ix_orders_status", "orders", ["status"], unique=False)
    op.create_index("ix_orders_settlement_id", "orders", ["settlement_id"], unique=False)

    op.create_table(
        "dispatched_orders",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("order_id", sa.String(length=36), nullable=False),
        sa.Column("order_number", sa.String(length=50), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=50), nullable=True),
        sa.Column("delivery_address", sa.String(length=500), nullable=True),
        sa.Column("delivery_city", sa.String(length=150), nullable=True),
        sa.Column("delivery_zone", sa.String(length=100), nullable=True),
        sa.Column("total_price", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("prepaid_method", sa.String(length=50), nullable=True),
        sa.Column("is_cod", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("carrier_fee", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("delivery_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("amount_collected", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("failure_reason", sa.String(length=30), nullable=True),
        sa.Column("courier_notes", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["session_id"], ["dispatch_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "order_id", name="uq_dispatched_orders_session_id_order_id"),
    )
    op.create_index("ix_dispatched_orders_session_id", "dispatched_orders", ["session_id"], unique=False)
    op.create_index("ix_dispatched_orders_order_id", "dispatched_orders", ["order_id"], unique=False)
    op.create_index("ix_dispatched_orders_delivery_status", "dispatched_orders", ["delivery_status"], unique=False)

    op.create_table(
        "account_movements",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("carrier_id", sa.String(length=36), nullable=False),
        sa.Column("order_id", sa.String(length=36), nullable=False),
        sa.Column("movement_type", sa.String(length=30), nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("dispatch_session_id", sa.String(length=36), nullable=True),
        sa.Column("settlement_id", sa.String(length=36), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("movement_date", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["carrier_id"], ["carriers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["dispatch_session_id"], ["dispatch_sessions.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["settlement_id"], ["settlements.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", "movement_type", name="uq_account_movements_order_id_movement_type"),
    )
    op.create_index("ix_account_movements_store_id", "account_movements", ["store_id"], unique=False)
    op.create_index("ix_account_movements_carrier_id", "account_movements", ["carrier_id"], unique=False)
    op.create_index("ix_account_movements_order_id", "account_movements", ["order_id"], unique=False)
    op.create_index("ix_account_movements_movement_type", "account_movements", ["movement_type"], unique=False)
    op.create_index("ix_account_movements_settlement_id", "account_movements", ["settlement_id"], unique=False)

    op.create_table(
        "code_sequences",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("scope", sa.String(length=20), nullable=False),
        sa.Column("sequence_date", sa.Date(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "scope", "sequence_date", name="uq_code_sequences_store_scope_date"),
    )
    op.create_index("ix_code_sequences_store_id", "code_sequences", ["store_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_code_sequences_store_id", table_name="code_sequences")
    op.drop_table("code_sequences")
    for index in ("settlement_id", "movement_type", "order_id", "carrier_id", "store_id"):
        op.drop_index(f"ix_account_movements_{index}", table_name="account_movements")
    op.drop_table("account_movements")
    for index in ("delivery_status", "order_id", "session_id"):
        op.drop_index(f"ix_dispatched_orders_{index}", table_name="dispatched_orders")
    op.drop_table("dispatched_orders")
    for index in ("settlement_id", "status", "order_number", "carrier_id", "store_id"):
        op.drop_index(f"ix_orders_{index}", table_name="orders")
    op.drop_table("orders")
    for index in ("status", "dispatch_session_id", "carrier_id", "store_id"):
        op.drop_index(f"ix_settlements_{index}", table_name="settlements")
    op.drop_table("settlements")
    for index in ("status", "carrier_id", "store_id"):
        op.drop_index(f"ix_dispatch_sessions_{index}", table_name="dispatch_sessions")
    op.drop_table("dispatch_sessions")
