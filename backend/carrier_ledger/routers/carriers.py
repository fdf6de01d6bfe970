"""Carrier API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carrier_ledger.core.auth import get_current_store
from carrier_ledger.core.database import get_db
from carrier_ledger.models.carrier import Carrier, CarrierCoverage, CarrierZone
from carrier_ledger.repositories.carrier_repository import CarrierRepository
from carrier_ledger.schemas.carrier import (
    CarrierCoverageCreate,
    CarrierCoverageResponse,
    CarrierCreate,
    CarrierResponse,
    CarrierZoneCreate,
    CarrierZoneResponse,
)

router = APIRouter()


def _get_carrier_or_404(repo: CarrierRepository, carrier_id: UUID, store_id: UUID) -> Carrier:
    carrier = repo.get_by_id(carrier_id, store_id)
    if not carrier:
        raise HTTPException(status_code=404, detail="Carrier not found")
    return carrier


@router.post("/", response_model=CarrierResponse, status_code=201, summary="Create carrier")
async def create_carrier(
    data: CarrierCreate,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Carrier:
    return CarrierRepository(db).create(data, store_id)


@router.get("/", response_model=list[CarrierResponse], summary="List carriers")
async def list_carriers(
    active_only: bool = False,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> list[Carrier]:
    return CarrierRepository(db).get_all(store_id, active_only=active_only)


@router.post(
    "/{carrier_id}/zones",
    response_model=CarrierZoneResponse,
    status_code=201,
    summary="Add delivery zone rate",
    responses={
        404: {"description": "Carrier not found"},
        409: {"description": "Zone already exists for this carrier"},
    },
)
async def add_carrier_zone(
    carrier_id: UUID,
    data: CarrierZoneCreate,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> CarrierZone:
    repo = CarrierRepository(db)
    _get_carrier_or_404(repo, carrier_id, store_id)
    try:
        return repo.add_zone(carrier_id, data)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Zone already exists") from None


@router.post(
    "/{carrier_id}/coverage",
    response_model=CarrierCoverageResponse,
    status_code=201,
    summary="Add city coverage rate",
    responses={
        404: {"description": "Carrier not found"},
        409: {"description": "City already covered by this carrier"},
    },
)
async def add_carrier_coverage(
    carrier_id: UUID,
    data: CarrierCoverageCreate,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> CarrierCoverage:
    repo = CarrierRepository(db)
    _get_carrier_or_404(repo, carrier_id, store_id)
    try:
        return repo.add_coverage(carrier_id, data)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="City already covered") from None
