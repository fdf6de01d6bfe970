"""create stores, carriers and carrier rate tables

Revision ID: a1c2e3f4a5b6
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "a1c2e3f4a5b6"
down_revision = None
branch_labels = None
depends_on = None

# Known default store ID, used when requests carry no X-Store-Id header
DEFAULT_STORE_ID = "00000000-0000-0000-0000-000000000001"


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.Column("dispatch_code_prefix", sa.String(length=10), nullable=True),
        sa.Column("settlement_code_prefix", sa.String(length=10), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    stores_table = sa.table(
        "stores",
        sa.column("id", sa.String),
        sa.column("name", sa.String),
        sa.column("timezone", sa.String),
    )
    op.bulk_insert(
        stores_table,
        [{"id": DEFAULT_STORE_ID, "name": "Default Store", "timezone": "UTC"}],
    )

    op.create_table(
        "carriers",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("failed_attempt_fee_percent", sa.Integer(), nullable=True),
        sa.Column("charges_failed_attempts", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_carriers_store_id", "carriers", ["store_id"], unique=False)

    op.create_table(
        "carrier_zones",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("carrier_id", sa.String(length=36), nullable=False),
        sa.Column("zone_name", sa.String(length=100), nullable=False),
        sa.Column("rate", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        sa.ForeignKeyConstraint(["carrier_id"], ["carriers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("carrier_id", "zone_name", name="uq_carrier_zones_carrier_id_zone_name"),
    )
    op.create_index("ix_carrier_zones_carrier_id", "carrier_zones", ["carrier_id"], unique=False)

    op.create_table(
        "carrier_coverage",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("carrier_id", sa.String(length=36), nullable=False),
        sa.Column("city", sa.String(length=150), nullable=False),
        sa.Column("rate", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        sa.ForeignKeyConstraint(["carrier_id"], ["carriers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("carrier_id", "city", name="uq_carrier_coverage_carrier_id_city"),
    )
    op.create_index("ix_carrier_coverage_carrier_id", "carrier_coverage", ["carrier_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_carrier_coverage_carrier_id", table_name="carrier_coverage")
    op.drop_table("carrier_coverage")
    op.drop_index("ix_carrier_zones_carrier_id", table_name="carrier_zones")
    op.drop_table("carrier_zones")
    op.drop_index("ix_carriers_store_id", table_name="carriers")
    op.drop_table("carriers")
    op.drop_table("stores")
