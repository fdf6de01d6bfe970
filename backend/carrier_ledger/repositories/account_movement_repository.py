"""Account movement repository for data access."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carrier_ledger.models.account_movement import AccountMovement, MovementType
from carrier_ledger.models.order import Order
from carrier_ledger.models.shared import utc_now


class AccountMovementRepository:
    """Repository for AccountMovement model.

    Writes only flush; the calling service owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_order_and_type(
        self, order_id: UUID, movement_type: MovementType
    ) -> AccountMovement | None:
        return (
            self.db.query(AccountMovement)
            .filter(
                AccountMovement.order_id == order_id,
                AccountMovement.movement_type == movement_type.value,
            )
            .first()
        )

    def get_for_order(self, order_id: UUID) -> list[AccountMovement]:
        return (
            self.db.query(AccountMovement)
            .filter(AccountMovement.order_id == order_id)
            .order_by(AccountMovement.movement_type.asc())
            .all()
        )

    def get_for_orders(
        self, order_ids: list[UUID], movement_type: MovementType | None = None
    ) -> list[AccountMovement]:
        if not order_ids:
            return []
        query = self.db.query(AccountMovement).filter(AccountMovement.order_id.in_(order_ids))
        if movement_type is not None:
            query = query.filter(AccountMovement.movement_type == movement_type.value)
        return query.all()

    def get_with_orders(
        self,
        movement_type: MovementType,
        store_id: UUID | None = None,
        after_id: UUID | None = None,
        limit: int = 500,
    ) -> list[tuple[AccountMovement, Order]]:
        """Movements of one type joined to their order, paged by movement id."""
        query = (
            self.db.query(AccountMovement, Order)
            .join(Order, Order.id == AccountMovement.order_id)
            .filter(AccountMovement.movement_type == movement_type.value)
        )
        if store_id is not None:
            query = query.filter(AccountMovement.store_id == store_id)
        if after_id is not None:
            query = query.filter(AccountMovement.id > after_id)
        rows = query.order_by(AccountMovement.id).limit(limit).all()
        return [(movement, order) for movement, order in rows]

    def get_all(
        self,
        store_id: UUID,
        carrier_id: UUID | None = None,
        movement_type: MovementType | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[AccountMovement]:
        """Get movements with optional filters, newest first."""
        query = self.db.query(AccountMovement).filter(AccountMovement.store_id == store_id)

        if carrier_id:
            query = query.filter(AccountMovement.carrier_id == carrier_id)
        if movement_type:
            query = query.filter(AccountMovement.movement_type == movement_type.value)
        if date_from:
            query = query.filter(AccountMovement.movement_date >= date_from)
        if date_to:
            query = query.filter(AccountMovement.movement_date <= date_to)

        return (
            query.order_by(AccountMovement.movement_date.desc(), AccountMovement.id.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def upsert(
        self,
        store_id: UUID,
        carrier_id: UUID,
        order_id: UUID,
        movement_type: MovementType,
        amount: Decimal,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        dispatch_session_id: UUID | None = None,
        settlement_id: UUID | None = None,
        movement_date: datetime | None = None,
    ) -> AccountMovement:
        """Insert the (order, type) movement or update the existing one in place.

        Metadata is merged; session and settlement links are only replaced
        when a new value is given.
        """
        movement = self.get_by_order_and_type(order_id, movement_type)
        if movement is None:
            movement = AccountMovement(
                store_id=store_id,
                carrier_id=carrier_id,
                order_id=order_id,
                movement_type=movement_type.value,
                amount=amount,
                description=description,
                movement_metadata=metadata or {},
                dispatch_session_id=dispatch_session_id,
                settlement_id=settlement_id,
                movement_date=movement_date or utc_now(),
            )
            try:
                with self.db.begin_nested():
                    self.db.add(movement)
                return movement
            except IntegrityError:
                # concurrent insert won the unique (order_id, movement_type) race
                movement = self.get_by_order_and_type(order_id, movement_type)
                if movement is None:
                    raise

        movement.amount = amount  # type: ignore[assignment]
        movement.carrier_id = carrier_id  # type: ignore[assignment]
        movement.description = description  # type: ignore[assignment]
        merged = dict(movement.movement_metadata or {})
        merged.update(metadata or {})
        movement.movement_metadata = merged  # type: ignore[assignment]
        if dispatch_session_id is not None:
            movement.dispatch_session_id = dispatch_session_id  # type: ignore[assignment]
        if settlement_id is not None:
            movement.settlement_id = settlement_id  # type: ignore[assignment]
        if movement_date is not None:
            movement.movement_date = movement_date  # type: ignore[assignment]
        self.db.flush()
        return movement

    def delete(self, movement: AccountMovement) -> None:
        self.db.delete(movement)
        self.db.flush()

    def totals_by_carrier(self, store_id: UUID) -> list[Any]:
        """Per carrier and type: summed amount, row count and latest movement date."""
        return (
            self.db.query(
                AccountMovement.carrier_id,
                AccountMovement.movement_type,
                func.sum(AccountMovement.amount),
                func.count(AccountMovement.id),
                func.max(AccountMovement.movement_date),
            )
            .filter(AccountMovement.store_id == store_id)
            .group_by(AccountMovement.carrier_id, AccountMovement.movement_type)
            .all()
        )

    def unsettled_totals_by_carrier(self, store_id: UUID) -> dict[UUID, Decimal]:
        rows = (
            self.db.query(AccountMovement.carrier_id, func.sum(AccountMovement.amount))
            .filter(
                AccountMovement.store_id == store_id,
                AccountMovement.settlement_id.is_(None),
            )
            .group_by(AccountMovement.carrier_id)
            .all()
        )
        return {carrier_id: Decimal(str(total or 0)) for carrier_id, total in rows}
