from carrier_ledger.schemas.account_movement import (
    AccountMovementResponse,
    BackfillRequest,
    BackfillResponse,
    CarrierBalanceResponse,
    CarrierHealthResponse,
)
from carrier_ledger.schemas.carrier import (
    CarrierCoverageCreate,
    CarrierCoverageResponse,
    CarrierCreate,
    CarrierResponse,
    CarrierZoneCreate,
    CarrierZoneResponse,
)
from carrier_ledger.schemas.dispatch_session import (
    DispatchedOrderResponse,
    DispatchSessionCreate,
    DispatchSessionDetailResponse,
    DispatchSessionResponse,
    OrderToDispatchResponse,
    OutcomeImportRequest,
    OutcomeImportResponse,
    OutcomeImportRow,
    SettleSessionRequest,
)
from carrier_ledger.schemas.order import (
    DeliveryOutcomeCreate,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
)
from carrier_ledger.schemas.settlement import (
    DisputeRequest,
    PaymentCreate,
    PendingReconciliationGroup,
    ReconcileOrderOutcome,
    ReconcileRequest,
    SettlementResponse,
    SettlementSummaryResponse,
)

__all__ = [
    "AccountMovementResponse",
    "BackfillRequest",
    "BackfillResponse",
    "CarrierBalanceResponse",
    "CarrierCoverageCreate",
    "CarrierCoverageResponse",
    "CarrierCreate",
    "CarrierHealthResponse",
    "CarrierResponse",
    "CarrierZoneCreate",
    "CarrierZoneResponse",
    "DeliveryOutcomeCreate",
    "DispatchSessionCreate",
    "DispatchSessionDetailResponse",
    "DispatchSessionResponse",
    "DispatchedOrderResponse",
    "DisputeRequest",
    "OrderCreate",
    "OrderResponse",
    "OrderStatusUpdate",
    "OrderToDispatchResponse",
    "OutcomeImportRequest",
    "OutcomeImportResponse",
    "OutcomeImportRow",
    "PaymentCreate",
    "PendingReconciliationGroup",
    "ReconcileOrderOutcome",
    "ReconcileRequest",
    "SettleSessionRequest",
    "SettlementResponse",
    "SettlementSummaryResponse",
]
