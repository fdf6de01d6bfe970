"""Order status changes and the ledger entries that follow them."""

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.core.errors import ConflictError, NotFoundError
from carrier_ledger.core.locks import lock_coordinator, order_key
from carrier_ledger.models.order import Order, OrderStatus
from carrier_ledger.models.shared import to_money, utc_now
from carrier_ledger.repositories.order_repository import OrderRepository
from carrier_ledger.services.account_movement_service import AccountMovementService

logger = logging.getLogger(__name__)


class OrderStatusService:
    """Moves orders between statuses outside of dispatch and reconciliation.

    A reconciled order is frozen: its status and ledger entries belong to the
    settlement that closed it until that settlement is cancelled.
    """

    def __init__(self, db: Session):
        self.db = db
        self.order_repo = OrderRepository(db)
        self.movement_service = AccountMovementService(db)

    def change_status(
        self,
        store_id: UUID,
        order_id: UUID,
        status: OrderStatus,
        amount_collected: Decimal | None = None,
    ) -> Order:
        with lock_coordinator.hold(order_key(order_id), db=self.db):
            try:
                found = self.order_repo.get_by_ids([order_id], store_id, refresh=True)
                if not found:
                    raise NotFoundError("Order", order_id)
                order = found[0]
                if order.reconciled_at is not None:
                    raise ConflictError(
                        f"Order {order.order_number} is reconciled and can no longer change",
                        details={
                            "order_id": str(order.id),
                            "settlement_id": str(order.settlement_id),
                            "current_status": str(order.status),
                        },
                    )

                previous_status = str(order.status)
                order.status = status.value  # type: ignore[assignment]
                if amount_collected is not None:
                    order.amount_collected = to_money(amount_collected)  # type: ignore[assignment]
                if status == OrderStatus.DELIVERED and order.delivered_at is None:
                    order.delivered_at = utc_now()  # type: ignore[assignment]
                self.db.flush()
                self.movement_service.on_order_status_changed(order, previous_status)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(order)
        logger.info("Order %s moved from %s to %s", order.id, previous_status, order.status)
        return order
