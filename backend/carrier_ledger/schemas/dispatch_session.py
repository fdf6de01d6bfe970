"""Dispatch session schemas."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DispatchSessionCreate(BaseModel):
    carrier_id: UUID
    order_ids: list[UUID]
    dispatch_date: date | None = None
    created_by: str | None = Field(default=None, max_length=255)


class DispatchedOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    order_id: UUID
    order_number: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    delivery_address: str | None = None
    delivery_city: str | None = None
    delivery_zone: str | None = None
    total_price: Decimal
    payment_method: str | None = None
    prepaid_method: str | None = None
    is_cod: bool
    carrier_fee: Decimal
    delivery_status: str
    amount_collected: Decimal | None = None
    failure_reason: str | None = None
    courier_notes: str | None = None
    delivered_at: datetime | None = None
    processed_at: datetime | None = None


class DispatchSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    carrier_id: UUID
    session_code: str
    dispatch_date: date
    status: str
    total_orders: int
    total_cod_expected: Decimal
    total_prepaid: int
    settlement_id: UUID | None = None
    created_by: str | None = None
    exported_at: datetime | None = None
    imported_at: datetime | None = None
    settled_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime


class DispatchSessionDetailResponse(DispatchSessionResponse):
    orders: list[DispatchedOrderResponse] = []


class OrderToDispatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    customer_name: str | None = None
    shipping_city: str | None = None
    delivery_zone: str | None = None
    total_price: Decimal
    payment_method: str | None = None
    prepaid_method: str | None = None
    carrier_id: UUID | None = None
    status: str


class OutcomeImportRow(BaseModel):
    order_number: str
    delivery_status: str
    amount_collected: Decimal | None = Field(default=None, ge=0)
    failure_reason: str | None = None
    courier_notes: str | None = None


class OutcomeImportRequest(BaseModel):
    rows: list[OutcomeImportRow] = Field(min_length=1)


class OutcomeImportResponse(BaseModel):
    processed: int
    errors: list[str]
    warnings: list[str]


class SettleSessionRequest(BaseModel):
    collected_total: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None
    created_by: str | None = Field(default=None, max_length=255)
