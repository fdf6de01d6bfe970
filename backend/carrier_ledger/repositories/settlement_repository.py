"""Settlement repository for data access."""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.models.settlement import Settlement, SettlementStatus

OPEN_SETTLEMENT_STATUSES = (SettlementStatus.PENDING.value, SettlementStatus.PARTIAL.value)


class SettlementRepository:
    """Repository for Settlement model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        store_id: UUID,
        skip: int = 0,
        limit: int = 100,
        status: SettlementStatus | None = None,
        carrier_id: UUID | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[Settlement]:
        """Get all settlements with optional filters."""
        query = self.db.query(Settlement).filter(Settlement.store_id == store_id)

        if status:
            query = query.filter(Settlement.status == status.value)
        if carrier_id:
            query = query.filter(Settlement.carrier_id == carrier_id)
        if date_from:
            query = query.filter(Settlement.settlement_date >= date_from)
        if date_to:
            query = query.filter(Settlement.settlement_date <= date_to)

        return (
            query.order_by(Settlement.settlement_date.desc(), Settlement.settlement_code.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count(self, store_id: UUID) -> int:
        return self.db.query(Settlement).filter(Settlement.store_id == store_id).count()

    def get_by_id(self, settlement_id: UUID, store_id: UUID | None = None) -> Settlement | None:
        """Get a settlement by ID."""
        query = self.db.query(Settlement).filter(Settlement.id == settlement_id)
        if store_id is not None:
            query = query.filter(Settlement.store_id == store_id)
        return query.first()

    def get_for_update(self, settlement_id: UUID, store_id: UUID | None = None) -> Settlement | None:
        """Lock the settlement row (SELECT ... FOR UPDATE) and reload it."""
        query = self.db.query(Settlement).filter(Settlement.id == settlement_id)
        if store_id is not None:
            query = query.filter(Settlement.store_id == store_id)
        return query.with_for_update().populate_existing().first()

    def get_open(self, store_id: UUID, carrier_id: UUID | None = None) -> list[Settlement]:
        """Settlements with an outstanding balance (pending or partial)."""
        query = self.db.query(Settlement).filter(
            Settlement.store_id == store_id,
            Settlement.status.in_(OPEN_SETTLEMENT_STATUSES),
        )
        if carrier_id is not None:
            query = query.filter(Settlement.carrier_id == carrier_id)
        return query.order_by(Settlement.settlement_date.asc()).all()

    def create(self, **fields: Any) -> Settlement:
        """Stage a settlement in the current transaction."""
        settlement = Settlement(**fields)
        self.db.add(settlement)
        self.db.flush()
        return settlement
