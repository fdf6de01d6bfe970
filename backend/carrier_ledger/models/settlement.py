"""Settlement model: the reconciled balance between a store and a carrier."""

from enum import Enum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)

from carrier_ledger.core.database import Base
from carrier_ledger.models.shared import DEFAULT_STORE_ID, UUIDType, generate_uuid


class SettlementStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class Settlement(Base):
    """Settlement model."""

    __tablename__ = "settlements"
    __table_args__ = (
        UniqueConstraint("store_id", "settlement_code", name="uq_settlements_store_id_code"),
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
    dispatch_session_id = Column(
        UUIDType, ForeignKey("dispatch_sessions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    settlement_code = Column(String(30), nullable=False)
    settlement_date = Column(Date, nullable=False)

    total_dispatched = Column(Integer, nullable=False, default=0)
    total_delivered = Column(Integer, nullable=False, default=0)
    total_not_delivered = Column(Integer, nullable=False, default=0)
    total_cod_delivered = Column(Integer, nullable=False, default=0)
    total_prepaid_delivered = Column(Integer, nullable=False, default=0)

    total_cod_expected = Column(Numeric(12, 2), nullable=False, default=0)
    total_cod_collected = Column(Numeric(12, 2), nullable=False, default=0)
    total_carrier_fees = Column(Numeric(12, 2), nullable=False, default=0)
    cod_carrier_fees = Column(Numeric(12, 2), nullable=False, default=0)
    prepaid_carrier_fees = Column(Numeric(12, 2), nullable=False, default=0)
    failed_attempt_fee = Column(Numeric(12, 2), nullable=False, default=0)
    net_receivable = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    balance_due = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(String(20), nullable=False, default=SettlementStatus.PENDING.value, index=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    dispute_reason = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
