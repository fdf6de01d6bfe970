"""Account movement schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AccountMovementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    carrier_id: UUID
    order_id: UUID
    movement_type: str
    amount: Decimal
    dispatch_session_id: UUID | None = None
    settlement_id: UUID | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="movement_metadata")
    movement_date: datetime


class CarrierBalanceResponse(BaseModel):
    carrier_id: UUID
    carrier_name: str
    total_cod_collected: Decimal
    total_delivery_fees: Decimal
    total_failed_fees: Decimal
    net_balance: Decimal
    unsettled_balance: Decimal
    movement_count: int
    last_movement_date: datetime | None = None


class BackfillRequest(BaseModel):
    dry_run: bool = True
    batch_size: int = Field(default=500, ge=1, le=5000)


class BackfillResponse(BaseModel):
    dry_run: bool
    orders_checked: int
    incorrect_cod_found: int
    incorrect_cod_deleted: int
    missing_fee_found: int
    missing_fee_created: int
    orders_affected: list[UUID]
    batch_limit_reached: bool


class CarrierHealthResponse(BaseModel):
    store_id: UUID
    carrier_id: UUID
    carrier_name: str
    total_delivered_orders: int
    orders_with_cod_movement: int
    orders_with_fee_movement: int
    actual_cod_orders: int
    actual_prepaid_orders: int
    incorrect_cod_movements: int
    missing_fee_movements: int
    health_status: str
