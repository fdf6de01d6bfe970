"""Settlement API endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from carrier_ledger.core.auth import get_current_store
from carrier_ledger.core.database import get_db
from carrier_ledger.models.settlement import Settlement, SettlementStatus
from carrier_ledger.repositories.settlement_repository import SettlementRepository
from carrier_ledger.schemas.settlement import (
    DisputeRequest,
    PaymentCreate,
    PendingReconciliationGroup,
    ReconcileRequest,
    SettlementResponse,
    SettlementSummaryResponse,
)
from carrier_ledger.services.settlement_payment_service import SettlementPaymentService
from carrier_ledger.services.settlement_service import OrderOutcome, SettlementService

router = APIRouter()


@router.get("/", response_model=list[SettlementResponse], summary="List settlements")
async def list_settlements(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    status: SettlementStatus | None = None,
    carrier_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[Settlement]:
    repo = SettlementRepository(db)
    response.headers["X-Total-Count"] = str(repo.count(store_id))
    return repo.get_all(
        store_id,
        skip=skip,
        limit=limit,
        status=status,
        carrier_id=carrier_id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get(
    "/pending",
    response_model=list[SettlementResponse],
    summary="List settlements with an outstanding balance",
)
async def list_pending_settlements(
    carrier_id: UUID | None = None,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[Settlement]:
    return SettlementService(db).get_pending_settlements(store_id, carrier_id)


@router.get(
    "/pending_reconciliation",
    response_model=list[PendingReconciliationGroup],
    summary="Delivered orders awaiting reconciliation",
)
async def list_pending_reconciliation(
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[PendingReconciliationGroup]:
    """Unreconciled deliveries grouped by carrier and delivery date."""
    groups = SettlementService(db).get_pending_reconciliation(store_id)
    return [PendingReconciliationGroup.model_validate(g, from_attributes=True) for g in groups]


@router.get("/summary", response_model=SettlementSummaryResponse, summary="Settlement totals")
async def get_settlements_summary(
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> SettlementSummaryResponse:
    summary = SettlementService(db).get_summary(store_id)
    return SettlementSummaryResponse.model_validate(summary, from_attributes=True)


@router.post(
    "/reconcile",
    response_model=SettlementResponse,
    status_code=201,
    summary="Reconcile a carrier's deliveries for a date",
    responses={
        404: {"description": "Carrier or order not found"},
        409: {"description": "Orders already reconciled"},
        422: {"description": "Validation error or nothing to reconcile"},
        503: {"description": "Reconciliation lock timed out, retry"},
    },
)
async def reconcile_deliveries(
    data: ReconcileRequest,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Settlement:
    outcomes = None
    if data.orders is not None:
        outcomes = [
            OrderOutcome(
                order_id=o.order_id,
                delivered=o.delivered,
                failure_reason=o.failure_reason.value if o.failure_reason else None,
                amount_collected=o.amount_collected,
            )
            for o in data.orders
        ]
    return SettlementService(db).compute_for_date(
        store_id,
        data.carrier_id,
        data.delivery_date,
        outcomes=outcomes,
        collected_total=data.collected_total,
        notes=data.notes,
        created_by=data.created_by,
    )


@router.get(
    "/{settlement_id}",
    response_model=SettlementResponse,
    summary="Get settlement",
    responses={404: {"description": "Settlement not found"}},
)
async def get_settlement(
    settlement_id: UUID,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Settlement:
    return SettlementService(db).get_settlement(store_id, settlement_id)


@router.post(
    "/{settlement_id}/payments",
    response_model=SettlementResponse,
    summary="Record carrier payment",
    responses={
        404: {"description": "Settlement not found"},
        409: {"description": "Settlement is paid, disputed or cancelled"},
        422: {"description": "Invalid amount"},
        503: {"description": "Settlement lock timed out, retry"},
    },
)
async def record_settlement_payment(
    settlement_id: UUID,
    data: PaymentCreate,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Settlement:
    return SettlementPaymentService(db).record_payment(
        store_id,
        settlement_id,
        amount=data.amount,
        method=data.method,
        reference=data.reference,
        notes=data.notes,
    )


@router.post(
    "/{settlement_id}/dispute",
    response_model=SettlementResponse,
    summary="Dispute settlement",
    responses={
        404: {"description": "Settlement not found"},
        409: {"description": "Settlement cannot be disputed in its current state"},
    },
)
async def dispute_settlement(
    settlement_id: UUID,
    data: DisputeRequest,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Settlement:
    return SettlementService(db).dispute_settlement(store_id, settlement_id, data.reason)


@router.post(
    "/{settlement_id}/cancel",
    response_model=SettlementResponse,
    summary="Cancel settlement",
    responses={
        404: {"description": "Settlement not found"},
        409: {"description": "Settlement is paid or already cancelled"},
    },
)
async def cancel_settlement(
    settlement_id: UUID,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Settlement:
    """Cancel the settlement and release its orders for reconciliation."""
    return SettlementService(db).cancel_settlement(store_id, settlement_id)
