"""Carrier account ledger API endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from carrier_ledger.core.auth import get_current_store
from carrier_ledger.core.database import get_db
from carrier_ledger.models.account_movement import AccountMovement, MovementType
from carrier_ledger.schemas.account_movement import (
    AccountMovementResponse,
    BackfillRequest,
    BackfillResponse,
    CarrierBalanceResponse,
    CarrierHealthResponse,
)
from carrier_ledger.services.account_movement_service import AccountMovementService
from carrier_ledger.services.movement_repair_service import MovementRepairService
from carrier_ledger.tasks import enqueue_movement_backfill, enqueue_movement_health_check

router = APIRouter()


@router.get(
    "/balances",
    response_model=list[CarrierBalanceResponse],
    summary="Carrier balances",
)
async def list_carrier_balances(
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[CarrierBalanceResponse]:
    """Ledger totals per carrier. Positive balances are owed to the store."""
    balances = AccountMovementService(db).get_carrier_balances(store_id)
    return [CarrierBalanceResponse.model_validate(b, from_attributes=True) for b in balances]


@router.get(
    "/health",
    response_model=list[CarrierHealthResponse],
    summary="Movement health report",
)
async def get_movement_health(
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[CarrierHealthResponse]:
    report = MovementRepairService(db).get_movement_health_report(store_id)
    return [CarrierHealthResponse.model_validate(r, from_attributes=True) for r in report]


@router.post(
    "/backfill",
    response_model=BackfillResponse,
    summary="Detect and repair inconsistent movements",
)
async def backfill_movements(
    data: BackfillRequest | None = None,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> BackfillResponse:
    """Dry run by default; pass ``dry_run: false`` to apply the fixes."""
    data = data or BackfillRequest()
    result = MovementRepairService(db).backfill_fix_movements(
        store_id=store_id, dry_run=data.dry_run, batch_size=data.batch_size
    )
    return BackfillResponse.model_validate(result, from_attributes=True)


@router.post(
    "/backfill/enqueue",
    status_code=202,
    summary="Queue a movement backfill for the worker",
)
async def enqueue_backfill(
    data: BackfillRequest | None = None,
    store_id: UUID = Depends(get_current_store),
) -> dict[str, str]:
    data = data or BackfillRequest()
    job = await enqueue_movement_backfill(store_id=str(store_id), dry_run=data.dry_run)
    return {"job_id": job.job_id}


@router.post(
    "/health/enqueue",
    status_code=202,
    summary="Queue a movement health check for the worker",
)
async def enqueue_health_check(
    store_id: UUID = Depends(get_current_store),
) -> dict[str, str]:
    job = await enqueue_movement_health_check(store_id=str(store_id))
    return {"job_id": job.job_id}


@router.get(
    "/{carrier_id}/movements",
    response_model=list[AccountMovementResponse],
    summary="List carrier movements",
    responses={404: {"description": "Carrier not found"}},
)
async def list_carrier_movements(
    carrier_id: UUID,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    movement_type: MovementType | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[AccountMovement]:
    return AccountMovementService(db).list_movements(
        store_id,
        carrier_id,
        movement_type=movement_type,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
