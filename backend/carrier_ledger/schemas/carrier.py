"""Carrier schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CarrierCreate(BaseModel):
    name: str = Field(max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    failed_attempt_fee_percent: int | None = Field(default=None, ge=0, le=100)
    charges_failed_attempts: bool = True


class CarrierZoneCreate(BaseModel):
    zone_name: str = Field(min_length=1, max_length=100)
    rate: Decimal = Field(ge=0)


class CarrierCoverageCreate(BaseModel):
    city: str = Field(min_length=1, max_length=150)
    rate: Decimal | None = Field(default=None, ge=0)


class CarrierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    name: str
    phone: str | None = None
    failed_attempt_fee_percent: int | None = None
    charges_failed_attempts: bool
    is_active: bool
    created_at: datetime


class CarrierZoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    carrier_id: UUID
    zone_name: str
    rate: Decimal
    is_active: bool


class CarrierCoverageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    carrier_id: UUID
    city: str
    rate: Decimal | None = None
    is_active: bool
