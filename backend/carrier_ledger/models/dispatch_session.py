"""Dispatch session models: a batch of orders handed to one carrier."""

from enum import Enum

from sqlalchemy import (
    Boolean,
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


class DispatchSessionStatus(str, Enum):
    DISPATCHED = "dispatched"
    PROCESSING = "processing"
    SETTLED = "settled"
    CANCELLED = "cancelled"


TERMINAL_SESSION_STATUSES = (
    DispatchSessionStatus.SETTLED.value,
    DispatchSessionStatus.CANCELLED.value,
)

# Forward-only lifecycle; terminal states have no outgoing edges.
SESSION_TRANSITIONS: dict[str, tuple[str, ...]] = {
    DispatchSessionStatus.DISPATCHED.value: (
        DispatchSessionStatus.PROCESSING.value,
        DispatchSessionStatus.CANCELLED.value,
    ),
    DispatchSessionStatus.PROCESSING.value: (
        DispatchSessionStatus.SETTLED.value,
        DispatchSessionStatus.CANCELLED.value,
    ),
    DispatchSessionStatus.SETTLED.value: (),
    DispatchSessionStatus.CANCELLED.value: (),
}


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    NOT_DELIVERED = "not_delivered"
    REJECTED = "rejected"
    RESCHEDULED = "rescheduled"
    RETURNED = "returned"


NOT_DELIVERED_STATUSES = (
    DeliveryStatus.NOT_DELIVERED.value,
    DeliveryStatus.REJECTED.value,
    DeliveryStatus.RETURNED.value,
)


class FailureReason(str, Enum):
    NO_ANSWER = "no_answer"
    WRONG_ADDRESS = "wrong_address"
    CUSTOMER_ABSENT = "customer_absent"
    CUSTOMER_REJECTED = "customer_rejected"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ADDRESS_NOT_FOUND = "address_not_found"
    RESCHEDULED = "rescheduled"
    OTHER = "other"


class DispatchSession(Base):
    """DispatchSession model."""

    __tablename__ = "dispatch_sessions"
    __table_args__ = (
        UniqueConstraint("store_id", "session_code", name="uq_dispatch_sessions_store_id_code"),
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
    session_code = Column(String(30), nullable=False)
    dispatch_date = Column(Date, nullable=False)
    status = Column(
        String(20), nullable=False, default=DispatchSessionStatus.DISPATCHED.value, index=True
    )
    total_orders = Column(Integer, nullable=False, default=0)
    total_cod_expected = Column(Numeric(12, 2), nullable=False, default=0)
    total_prepaid = Column(Integer, nullable=False, default=0)
    # no FK: settlements.dispatch_session_id is the owning side
    settlement_id = Column(UUIDType, nullable=True)
    created_by = Column(String(255), nullable=True)

    exported_at = Column(DateTime(timezone=True), nullable=True)
    imported_at = Column(DateTime(timezone=True), nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DispatchedOrder(Base):
    """One order line inside a dispatch session.

    Customer, address and payment fields are snapshots taken at dispatch time.
    """

    __tablename__ = "dispatched_orders"
    __table_args__ = (
        UniqueConstraint("session_id", "order_id", name="uq_dispatched_orders_session_id_order_id"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    session_id = Column(
        UUIDType, ForeignKey("dispatch_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id = Column(
        UUIDType, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    order_number = Column(String(50), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    delivery_address = Column(String(500), nullable=True)
    delivery_city = Column(String(150), nullable=True)
    delivery_zone = Column(String(100), nullable=True)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(50), nullable=True)
    prepaid_method = Column(String(50), nullable=True)
    is_cod = Column(Boolean, nullable=False, default=True)
    carrier_fee = Column(Numeric(12, 2), nullable=False, default=0)
    delivery_status = Column(
        String(20), nullable=False, default=DeliveryStatus.PENDING.value, index=True
    )
    amount_collected = Column(Numeric(12, 2), nullable=True)
    failure_reason = Column(String(30), nullable=True)
    courier_notes = Column(Text, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
