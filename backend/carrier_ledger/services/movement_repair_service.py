"""Detection and repair of inconsistent carrier account movements."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.core.config import settings
from carrier_ledger.models.account_movement import AccountMovement, MovementType
from carrier_ledger.models.order import Order
from carrier_ledger.models.shared import utc_now
from carrier_ledger.repositories.account_movement_repository import AccountMovementRepository
from carrier_ledger.repositories.carrier_repository import CarrierRepository
from carrier_ledger.repositories.order_repository import OrderRepository
from carrier_ledger.services.account_movement_service import AccountMovementService
from carrier_ledger.services.payment_classification import is_order_cod

logger = logging.getLogger(__name__)

HEALTH_CRITICAL = "CRITICAL"
HEALTH_WARNING = "WARNING"
HEALTH_HEALTHY = "HEALTHY"


@dataclass
class BackfillResult:
    dry_run: bool
    orders_checked: int = 0
    incorrect_cod_found: int = 0
    incorrect_cod_deleted: int = 0
    missing_fee_found: int = 0
    missing_fee_created: int = 0
    orders_affected: list[UUID] = field(default_factory=list)
    batch_limit_reached: bool = False


@dataclass
class CarrierMovementHealth:
    store_id: UUID
    carrier_id: UUID
    carrier_name: str
    total_delivered_orders: int = 0
    orders_with_cod_movement: int = 0
    orders_with_fee_movement: int = 0
    actual_cod_orders: int = 0
    actual_prepaid_orders: int = 0
    incorrect_cod_movements: int = 0
    missing_fee_movements: int = 0
    health_status: str = HEALTH_HEALTHY


class MovementRepairService:
    """Finds and fixes two known ledger defects.

    1. ``cod_collected`` movements on orders that carry a prepaid override
       (the cash was never collected by the carrier).
    2. Delivered orders with a carrier fee but no ``delivery_fee`` movement.
    """

    def __init__(self, db: Session):
        self.db = db
        self.order_repo = OrderRepository(db)
        self.movement_repo = AccountMovementRepository(db)
        self.carrier_repo = CarrierRepository(db)
        self.movement_service = AccountMovementService(db)

    def backfill_fix_movements(
        self,
        store_id: UUID | None = None,
        dry_run: bool = True,
        batch_size: int | None = None,
    ) -> BackfillResult:
        """Detect, and unless ``dry_run`` fix, both defects.

        Each phase handles at most ``batch_size`` orders; re-running picks up
        whatever is left.
        """
        if batch_size is None:
            batch_size = settings.BACKFILL_BATCH_SIZE
        result = BackfillResult(dry_run=dry_run)
        affected: set[UUID] = set()

        try:
            incorrect = self._incorrect_cod_movements(store_id, limit=batch_size + 1)
            if len(incorrect) > batch_size:
                result.batch_limit_reached = True
                incorrect = incorrect[:batch_size]
            result.incorrect_cod_found = len(incorrect)
            for movement in incorrect:
                affected.add(movement.order_id)  # type: ignore[arg-type]
                if not dry_run:
                    self.movement_repo.delete(movement)
                    result.incorrect_cod_deleted += 1

            result.orders_checked = self.order_repo.count_delivered(store_id)
            missing = self._orders_missing_fee(store_id, limit=batch_size + 1)
            if len(missing) > batch_size:
                result.batch_limit_reached = True
                missing = missing[:batch_size]
            result.missing_fee_found = len(missing)
            for order in missing:
                affected.add(order.id)  # type: ignore[arg-type]
                if not dry_run:
                    source = self.movement_service.source_for_order(order)
                    self.movement_service.record_delivery_movements(
                        source,
                        settlement_id=order.settlement_id,  # type: ignore[arg-type]
                        movement_date=order.delivered_at,  # type: ignore[arg-type]
                    )
                    result.missing_fee_created += 1

            if dry_run:
                self.db.rollback()
            else:
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        result.orders_affected = sorted(affected, key=str)
        logger.info(
            "Movement backfill (%s): %d incorrect COD, %d missing fees, %d orders affected%s",
            "dry run" if dry_run else "applied",
            result.incorrect_cod_found,
            result.missing_fee_found,
            len(result.orders_affected),
            ", batch limit reached" if result.batch_limit_reached else "",
        )
        return result

    def _incorrect_cod_movements(self, store_id: UUID | None, limit: int) -> list[AccountMovement]:
        """Up to ``limit`` COD movements on orders that were not cash on delivery."""
        found: list[AccountMovement] = []
        after_id = None
        while len(found) < limit:
            page = self.movement_repo.get_with_orders(
                MovementType.COD_COLLECTED, store_id, after_id=after_id, limit=limit
            )
            if not page:
                break
            found.extend(
                movement
                for movement, order in page
                if not is_order_cod(order.payment_method, order.prepaid_method)  # type: ignore[arg-type]
            )
            after_id = page[-1][0].id
        return found[:limit]

    def _orders_missing_fee(
        self,
        store_id: UUID | None,
        limit: int | None = None,
        delivered_since: datetime | None = None,
    ) -> list[Order]:
        """Delivered orders owed a delivery fee movement, at most ``limit``.

        Only orders without a fee movement are read, a page at a time; those
        whose fee resolves to 0 are skipped.
        """
        page_size = limit or settings.BACKFILL_BATCH_SIZE
        missing: list[Order] = []
        after_id = None
        while limit is None or len(missing) < limit:
            page = self.order_repo.get_delivered_without_movement(
                MovementType.DELIVERY_FEE,
                store_id,
                delivered_since=delivered_since,
                after_id=after_id,  # type: ignore[arg-type]
                limit=page_size,
            )
            if not page:
                break
            fees = self.movement_service.carrier_fees(page)
            missing.extend(o for o in page if fees[o.id] > 0)  # type: ignore[index]
            after_id = page[-1].id
        return missing if limit is None else missing[:limit]

    def get_movement_health_report(
        self, store_id: UUID | None = None
    ) -> list[CarrierMovementHealth]:
        """Per carrier movement integrity over recently delivered orders."""
        since = utc_now() - timedelta(days=settings.HEALTH_REPORT_WINDOW_DAYS)
        orders = self.order_repo.get_delivered_for_repair(store_id, delivered_since=since)
        order_ids = [o.id for o in orders]
        cod_orders = {
            m.order_id
            for m in self.movement_repo.get_for_orders(order_ids, MovementType.COD_COLLECTED)  # type: ignore[arg-type]
        }
        fee_orders = {
            m.order_id
            for m in self.movement_repo.get_for_orders(order_ids, MovementType.DELIVERY_FEE)  # type: ignore[arg-type]
        }
        missing_fee = {o.id for o in self._orders_missing_fee(store_id, delivered_since=since)}
        carriers = self.carrier_repo.get_by_ids(list({o.carrier_id for o in orders}))  # type: ignore[misc]

        report: dict[tuple[UUID, UUID], CarrierMovementHealth] = {}
        for order in orders:
            key = (order.store_id, order.carrier_id)
            entry = report.get(key)  # type: ignore[arg-type]
            if entry is None:
                carrier = carriers.get(order.carrier_id)  # type: ignore[arg-type]
                entry = CarrierMovementHealth(
                    store_id=order.store_id,  # type: ignore[arg-type]
                    carrier_id=order.carrier_id,  # type: ignore[arg-type]
                    carrier_name=str(carrier.name) if carrier else "",
                )
                report[key] = entry  # type: ignore[index]

            cod = is_order_cod(order.payment_method, order.prepaid_method)  # type: ignore[arg-type]
            entry.total_delivered_orders += 1
            if cod:
                entry.actual_cod_orders += 1
            else:
                entry.actual_prepaid_orders += 1
            if order.id in cod_orders:
                entry.orders_with_cod_movement += 1
                if not cod:
                    entry.incorrect_cod_movements += 1
            if order.id in fee_orders:
                entry.orders_with_fee_movement += 1
            if order.id in missing_fee:
                entry.missing_fee_movements += 1

        for entry in report.values():
            if entry.incorrect_cod_movements:
                entry.health_status = HEALTH_CRITICAL
            elif entry.missing_fee_movements:
                entry.health_status = HEALTH_WARNING

        rank = {HEALTH_CRITICAL: 0, HEALTH_WARNING: 1, HEALTH_HEALTHY: 2}
        return sorted(report.values(), key=lambda e: (rank[e.health_status], e.carrier_name))
