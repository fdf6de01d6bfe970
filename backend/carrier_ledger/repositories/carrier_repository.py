"""Carrier repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.models.carrier import Carrier, CarrierCoverage, CarrierZone
from carrier_ledger.models.shared import DEFAULT_STORE_ID
from carrier_ledger.schemas.carrier import CarrierCoverageCreate, CarrierCreate, CarrierZoneCreate


class CarrierRepository:
    """Repository for Carrier model and its rate tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self, store_id: UUID, active_only: bool = False) -> list[Carrier]:
        query = self.db.query(Carrier).filter(Carrier.store_id == store_id)
        if active_only:
            query = query.filter(Carrier.is_active.is_(True))
        return query.order_by(Carrier.name.asc()).all()

    def get_by_id(self, carrier_id: UUID, store_id: UUID | None = None) -> Carrier | None:
        """Get a carrier by ID."""
        query = self.db.query(Carrier).filter(Carrier.id == carrier_id)
        if store_id is not None:
            query = query.filter(Carrier.store_id == store_id)
        return query.first()

    def get_by_ids(self, carrier_ids: list[UUID]) -> dict[UUID, Carrier]:
        if not carrier_ids:
            return {}
        carriers = self.db.query(Carrier).filter(Carrier.id.in_(carrier_ids)).all()
        return {c.id: c for c in carriers}  # type: ignore[misc]

    def create(self, data: CarrierCreate, store_id: UUID = DEFAULT_STORE_ID) -> Carrier:
        """Create a new carrier."""
        carrier = Carrier(
            store_id=store_id,
            name=data.name,
            phone=data.phone,
            failed_attempt_fee_percent=data.failed_attempt_fee_percent,
            charges_failed_attempts=data.charges_failed_attempts,
        )
        self.db.add(carrier)
        self.db.commit()
        self.db.refresh(carrier)
        return carrier

    def add_zone(self, carrier_id: UUID, data: CarrierZoneCreate) -> CarrierZone:
        zone = CarrierZone(carrier_id=carrier_id, zone_name=data.zone_name, rate=data.rate)
        self.db.add(zone)
        self.db.commit()
        self.db.refresh(zone)
        return zone

    def add_coverage(self, carrier_id: UUID, data: CarrierCoverageCreate) -> CarrierCoverage:
        coverage = CarrierCoverage(carrier_id=carrier_id, city=data.city, rate=data.rate)
        self.db.add(coverage)
        self.db.commit()
        self.db.refresh(coverage)
        return coverage

    def get_active_zones(self, carrier_id: UUID) -> list[CarrierZone]:
        return (
            self.db.query(CarrierZone)
            .filter(CarrierZone.carrier_id == carrier_id, CarrierZone.is_active.is_(True))
            .all()
        )

    def get_active_coverage(self, carrier_id: UUID) -> list[CarrierCoverage]:
        """Active city coverage rows that carry a rate."""
        return (
            self.db.query(CarrierCoverage)
            .filter(
                CarrierCoverage.carrier_id == carrier_id,
                CarrierCoverage.is_active.is_(True),
                CarrierCoverage.rate.isnot(None),
            )
            .all()
        )
