"""Settlement schemas."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from carrier_ledger.models.dispatch_session import FailureReason


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    carrier_id: UUID
    dispatch_session_id: UUID | None = None
    settlement_code: str
    settlement_date: date
    total_dispatched: int
    total_delivered: int
    total_not_delivered: int
    total_cod_delivered: int
    total_prepaid_delivered: int
    total_cod_expected: Decimal
    total_cod_collected: Decimal
    total_carrier_fees: Decimal
    cod_carrier_fees: Decimal
    prepaid_carrier_fees: Decimal
    failed_attempt_fee: Decimal
    net_receivable: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    status: str
    payment_date: datetime | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    notes: str | None = None
    dispute_reason: str | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    method: str | None = Field(default=None, max_length=50)
    reference: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class DisputeRequest(BaseModel):
    reason: str = Field(min_length=1)


class ReconcileOrderOutcome(BaseModel):
    order_id: UUID
    delivered: bool
    failure_reason: FailureReason | None = None
    amount_collected: Decimal | None = Field(default=None, ge=0)


class ReconcileRequest(BaseModel):
    carrier_id: UUID
    delivery_date: date
    orders: list[ReconcileOrderOutcome] | None = None
    collected_total: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None
    created_by: str | None = Field(default=None, max_length=255)


class PendingReconciliationGroup(BaseModel):
    carrier_id: UUID
    carrier_name: str
    delivery_date: date
    total_orders: int
    total_cod: Decimal
    total_prepaid: int


class SettlementSummaryResponse(BaseModel):
    total_settlements: int
    pending_count: int
    partial_count: int
    paid_count: int
    disputed_count: int
    cancelled_count: int
    total_net_receivable: Decimal
    total_paid: Decimal
    total_balance_due: Decimal
