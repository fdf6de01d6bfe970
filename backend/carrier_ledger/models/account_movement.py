"""AccountMovement model: the per-order ledger between store and carrier."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint, func

from carrier_ledger.core.database import Base
from carrier_ledger.models.shared import DEFAULT_STORE_ID, UUIDType, generate_uuid, utc_now


class MovementType(str, Enum):
    COD_COLLECTED = "cod_collected"
    DELIVERY_FEE = "delivery_fee"
    FAILED_ATTEMPT_FEE = "failed_attempt_fee"


class AccountMovement(Base):
    """AccountMovement model.

    Positive amounts are owed by the carrier to the store, negative amounts
    are charges the carrier keeps.
    """

    __tablename__ = "account_movements"
    __table_args__ = (
        UniqueConstraint(
            "order_id", "movement_type", name="uq_account_movements_order_id_movement_type"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    store_id = Column(
        UUIDType,
        ForeignKey("stores.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_STORE_ID,
    )
    carrier_id = Column(
        UUIDType, ForeignKey("carriers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    order_id = Column(
        UUIDType, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    movement_type = Column(String(30), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    dispatch_session_id = Column(
        UUIDType, ForeignKey("dispatch_sessions.id", ondelete="SET NULL"), nullable=True
    )
    settlement_id = Column(
        UUIDType, ForeignKey("settlements.id", ondelete="SET NULL"), nullable=True, index=True
    )
    description = Column(String(500), nullable=True)
    movement_metadata = Column("metadata", JSON, nullable=True)
    movement_date = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
