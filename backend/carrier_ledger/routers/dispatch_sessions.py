"""Dispatch session API endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from carrier_ledger.core.auth import get_current_store
from carrier_ledger.core.database import get_db
from carrier_ledger.models.dispatch_session import DispatchSession, DispatchSessionStatus
from carrier_ledger.models.order import Order
from carrier_ledger.models.settlement import Settlement
from carrier_ledger.repositories.dispatch_session_repository import DispatchSessionRepository
from carrier_ledger.schemas.dispatch_session import (
    DispatchedOrderResponse,
    DispatchSessionCreate,
    DispatchSessionDetailResponse,
    DispatchSessionResponse,
    OrderToDispatchResponse,
    OutcomeImportRequest,
    OutcomeImportResponse,
    SettleSessionRequest,
)
from carrier_ledger.schemas.settlement import SettlementResponse
from carrier_ledger.services.delivery_outcome_service import DeliveryOutcomeService
from carrier_ledger.services.dispatch_session_service import DispatchSessionService
from carrier_ledger.services.settlement_service import SettlementService

router = APIRouter()


@router.get(
    "/orders_to_dispatch",
    response_model=list[OrderToDispatchResponse],
    summary="List orders ready to dispatch",
)
async def list_orders_to_dispatch(
    carrier_id: UUID | None = None,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[Order]:
    """Confirmed or ready-to-ship orders not held by an active session."""
    return DispatchSessionService(db).list_orders_to_dispatch(store_id, carrier_id)


@router.post(
    "/",
    response_model=DispatchSessionResponse,
    status_code=201,
    summary="Create dispatch session",
    responses={
        404: {"description": "Carrier or order not found"},
        409: {"description": "Orders not dispatchable or already in an active session"},
        422: {"description": "Validation error"},
    },
)
async def create_dispatch_session(
    data: DispatchSessionCreate,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> DispatchSession:
    """Hand a batch of orders to a carrier."""
    return DispatchSessionService(db).create_session(
        store_id=store_id,
        carrier_id=data.carrier_id,
        order_ids=data.order_ids,
        dispatch_date=data.dispatch_date,
        created_by=data.created_by,
    )


@router.get(
    "/",
    response_model=list[DispatchSessionResponse],
    summary="List dispatch sessions",
)
async def list_dispatch_sessions(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    status: DispatchSessionStatus | None = None,
    carrier_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[DispatchSession]:
    repo = DispatchSessionRepository(db)
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
    "/{session_id}",
    response_model=DispatchSessionDetailResponse,
    summary="Get dispatch session",
    responses={404: {"description": "Dispatch session not found"}},
)
async def get_dispatch_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> DispatchSessionDetailResponse:
    """Session header with its order lines."""
    service = DispatchSessionService(db)
    session = service.get_session(store_id, session_id)
    lines = service.get_session_lines(store_id, session_id)
    detail = DispatchSessionDetailResponse.model_validate(session)
    detail.orders = [DispatchedOrderResponse.model_validate(line) for line in lines]
    return detail


@router.get(
    "/{session_id}/export",
    summary="Export courier manifest",
    responses={
        200: {"content": {"text/csv": {}}, "description": "CSV manifest"},
        404: {"description": "Dispatch session not found"},
    },
)
async def export_dispatch_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Response:
    service = DispatchSessionService(db)
    content = service.export_session_csv(store_id, session_id)
    session = service.get_session(store_id, session_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{session.session_code}.csv"'},
    )


@router.post(
    "/{session_id}/import",
    response_model=OutcomeImportResponse,
    summary="Import delivery outcomes",
    responses={
        404: {"description": "Dispatch session not found"},
        409: {"description": "Dispatch session is settled or cancelled"},
    },
)
async def import_delivery_outcomes(
    session_id: UUID,
    data: OutcomeImportRequest,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> OutcomeImportResponse:
    """Apply the courier's filled-in manifest rows to the session."""
    result = DeliveryOutcomeService(db).import_outcomes(
        store_id, session_id, [row.model_dump() for row in data.rows]
    )
    return OutcomeImportResponse(
        processed=result.processed, errors=result.errors, warnings=result.warnings
    )


@router.post(
    "/{session_id}/cancel",
    response_model=DispatchSessionResponse,
    summary="Cancel dispatch session",
    responses={
        404: {"description": "Dispatch session not found"},
        409: {"description": "Dispatch session is settled or cancelled"},
    },
)
async def cancel_dispatch_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> DispatchSession:
    return DispatchSessionService(db).cancel_session(store_id, session_id)


@router.post(
    "/{session_id}/settle",
    response_model=SettlementResponse,
    status_code=201,
    summary="Settle dispatch session",
    responses={
        404: {"description": "Dispatch session not found"},
        409: {"description": "Session not processing, already settled or orders reconciled"},
        422: {"description": "No delivery outcomes recorded"},
        503: {"description": "Reconciliation lock timed out, retry"},
    },
)
async def settle_dispatch_session(
    session_id: UUID,
    data: SettleSessionRequest | None = None,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Settlement:
    """Compute the settlement for a processed session."""
    data = data or SettleSessionRequest()
    return SettlementService(db).compute_for_session(
        store_id,
        session_id,
        collected_total=data.collected_total,
        notes=data.notes,
        created_by=data.created_by,
    )
