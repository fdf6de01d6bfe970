"""Order schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from carrier_ledger.models.dispatch_session import DeliveryStatus, FailureReason
from carrier_ledger.models.order import OrderStatus


class OrderCreate(BaseModel):
    order_number: str = Field(max_length=50)
    customer_name: str | None = Field(default=None, max_length=255)
    customer_phone: str | None = Field(default=None, max_length=50)
    shipping_address: str | None = Field(default=None, max_length=500)
    shipping_city: str | None = Field(default=None, max_length=150)
    delivery_zone: str | None = Field(default=None, max_length=100)
    total_price: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: str | None = Field(default=None, max_length=50)
    prepaid_method: str | None = Field(default=None, max_length=50)
    status: OrderStatus = OrderStatus.CONFIRMED
    carrier_id: UUID | None = None
    is_pickup: bool = False
    delivered_at: datetime | None = None
    amount_collected: Decimal | None = Field(default=None, ge=0)


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    carrier_id: UUID | None = None
    order_number: str
    customer_name: str | None = None
    shipping_city: str | None = None
    delivery_zone: str | None = None
    total_price: Decimal
    payment_method: str | None = None
    prepaid_method: str | None = None
    status: str
    amount_collected: Decimal | None = None
    has_amount_discrepancy: bool
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    reconciled_at: datetime | None = None
    settlement_id: UUID | None = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    amount_collected: Decimal | None = Field(default=None, ge=0)


class DeliveryOutcomeCreate(BaseModel):
    delivered: bool
    amount_collected: Decimal | None = Field(default=None, ge=0)
    failure_reason: FailureReason | None = None
    delivery_status: DeliveryStatus | None = None
    courier_notes: str | None = None
