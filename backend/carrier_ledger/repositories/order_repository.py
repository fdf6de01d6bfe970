"""Order repository for data access."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import exists
from sqlalchemy.orm import Session

from carrier_ledger.models.account_movement import AccountMovement, MovementType
from carrier_ledger.models.order import DISPATCHABLE_ORDER_STATUSES, Order, OrderStatus
from carrier_ledger.models.shared import DEFAULT_STORE_ID
from carrier_ledger.schemas.order import OrderCreate


class OrderRepository:
    """Repository for Order model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, order_id: UUID, store_id: UUID | None = None) -> Order | None:
        """Get an order by ID."""
        query = self.db.query(Order).filter(Order.id == order_id)
        if store_id is not None:
            query = query.filter(Order.store_id == store_id)
        return query.first()

    def get_by_ids(
        self,
        order_ids: list[UUID],
        store_id: UUID | None = None,
        for_update: bool = False,
        nowait: bool = False,
        refresh: bool = False,
    ) -> list[Order]:
        """Get orders by ID, optionally locking the rows (FOR UPDATE [NOWAIT]).

        ``refresh`` reloads rows already in the session from the database.
        """
        if not order_ids:
            return []
        query = self.db.query(Order).filter(Order.id.in_(order_ids))
        if store_id is not None:
            query = query.filter(Order.store_id == store_id)
        if for_update:
            query = query.with_for_update(nowait=nowait)
        if for_update or refresh:
            query = query.populate_existing()
        return query.order_by(Order.id).all()

    def get_dispatchable(
        self,
        store_id: UUID,
        exclude_ids: set[UUID],
        carrier_id: UUID | None = None,
    ) -> list[Order]:
        """Orders ready to hand to a carrier, excluding pickups and ``exclude_ids``."""
        query = self.db.query(Order).filter(
            Order.store_id == store_id,
            Order.status.in_(DISPATCHABLE_ORDER_STATUSES),
            Order.is_pickup.is_(False),
        )
        if carrier_id is not None:
            query = query.filter((Order.carrier_id == carrier_id) | (Order.carrier_id.is_(None)))
        orders = query.order_by(Order.created_at.asc()).all()
        return [o for o in orders if o.id not in exclude_ids]

    def get_delivered_unreconciled(
        self, store_id: UUID, carrier_id: UUID | None = None
    ) -> list[Order]:
        """Delivered orders not yet included in any settlement."""
        query = self.db.query(Order).filter(
            Order.store_id == store_id,
            Order.status == OrderStatus.DELIVERED.value,
            Order.reconciled_at.is_(None),
            Order.carrier_id.isnot(None),
        )
        if carrier_id is not None:
            query = query.filter(Order.carrier_id == carrier_id)
        return query.order_by(Order.delivered_at.asc()).all()

    def get_delivered_for_repair(
        self, store_id: UUID | None = None, delivered_since: datetime | None = None
    ) -> list[Order]:
        query = self.db.query(Order).filter(
            Order.status == OrderStatus.DELIVERED.value,
            Order.carrier_id.isnot(None),
        )
        if store_id is not None:
            query = query.filter(Order.store_id == store_id)
        if delivered_since is not None:
            query = query.filter(Order.delivered_at >= delivered_since)
        return query.order_by(Order.delivered_at.desc()).all()

    def count_delivered(self, store_id: UUID | None = None) -> int:
        query = self.db.query(Order).filter(
            Order.status == OrderStatus.DELIVERED.value,
            Order.carrier_id.isnot(None),
        )
        if store_id is not None:
            query = query.filter(Order.store_id == store_id)
        return query.count()

    def get_delivered_without_movement(
        self,
        movement_type: MovementType,
        store_id: UUID | None = None,
        delivered_since: datetime | None = None,
        after_id: UUID | None = None,
        limit: int = 500,
    ) -> list[Order]:
        """Delivered orders with no movement of ``movement_type``, paged by id."""
        has_movement = exists().where(
            AccountMovement.order_id == Order.id,
            AccountMovement.movement_type == movement_type.value,
        )
        query = self.db.query(Order).filter(
            Order.status == OrderStatus.DELIVERED.value,
            Order.carrier_id.isnot(None),
            ~has_movement,
        )
        if store_id is not None:
            query = query.filter(Order.store_id == store_id)
        if delivered_since is not None:
            query = query.filter(Order.delivered_at >= delivered_since)
        if after_id is not None:
            query = query.filter(Order.id > after_id)
        return query.order_by(Order.id).limit(limit).all()

    def create(self, data: OrderCreate, store_id: UUID = DEFAULT_STORE_ID) -> Order:
        """Create a new order."""
        order = Order(store_id=store_id, **data.model_dump())
        order.status = data.status.value  # type: ignore[assignment]
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order
