"""Carrier (courier company) model and its rate tables."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)

from carrier_ledger.core.database import Base
from carrier_ledger.models.shared import DEFAULT_STORE_ID, UUIDType, generate_uuid


class Carrier(Base):
    """Carrier model."""

    __tablename__ = "carriers"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    store_id = Column(
        UUIDType,
        ForeignKey("stores.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_STORE_ID,
    )
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    # NULL means the configured default percentage applies
    failed_attempt_fee_percent = Column(Integer, nullable=True)
    charges_failed_attempts = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CarrierZone(Base):
    """Flat delivery rate per named zone."""

    __tablename__ = "carrier_zones"
    __table_args__ = (
        UniqueConstraint("carrier_id", "zone_name", name="uq_carrier_zones_carrier_id_zone_name"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    carrier_id = Column(
        UUIDType, ForeignKey("carriers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    zone_name = Column(String(100), nullable=False)
    rate = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CarrierCoverage(Base):
    """Delivery rate for a specific city."""

    __tablename__ = "carrier_coverage"
    __table_args__ = (
        UniqueConstraint("carrier_id", "city", name="uq_carrier_coverage_carrier_id_city"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    carrier_id = Column(
        UUIDType, ForeignKey("carriers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    city = Column(String(150), nullable=False)
    rate = Column(Numeric(12, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
