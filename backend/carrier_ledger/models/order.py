"""Order model as provided by the order pipeline."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, func

from carrier_ledger.core.database import Base
from carrier_ledger.models.shared import DEFAULT_STORE_ID, UUIDType, generate_uuid


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    NOT_DELIVERED = "not_delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


DISPATCHABLE_ORDER_STATUSES = (OrderStatus.CONFIRMED.value, OrderStatus.READY_TO_SHIP.value)


class Order(Base):
    """Order model."""

    __tablename__ = "orders"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    store_id = Column(
        UUIDType,
        ForeignKey("stores.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_STORE_ID,
    )
    carrier_id = Column(
        UUIDType, ForeignKey("carriers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    order_number = Column(String(50), nullable=False, index=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    shipping_address = Column(String(500), nullable=True)
    shipping_city = Column(String(150), nullable=True)
    delivery_zone = Column(String(100), nullable=True)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(50), nullable=True)
    prepaid_method = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    is_pickup = Column(Boolean, nullable=False, default=False)
    amount_collected = Column(Numeric(12, 2), nullable=True)
    has_amount_discrepancy = Column(Boolean, nullable=False, default=False)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    reconciled_at = Column(DateTime(timezone=True), nullable=True)
    settlement_id = Column(
        UUIDType, ForeignKey("settlements.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
