"""Account movement ledger between stores and carriers."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.core.errors import NotFoundError, ValidationError
from carrier_ledger.models.account_movement import AccountMovement, MovementType
from carrier_ledger.models.carrier import Carrier
from carrier_ledger.models.order import Order, OrderStatus
from carrier_ledger.models.shared import to_money
from carrier_ledger.repositories.account_movement_repository import AccountMovementRepository
from carrier_ledger.repositories.carrier_repository import CarrierRepository
from carrier_ledger.repositories.dispatch_session_repository import DispatchSessionRepository
from carrier_ledger.services.payment_classification import is_order_cod
from carrier_ledger.services.rate_resolver import (
    RateResolver,
    calculate_failed_attempt_fee,
    failed_attempt_percent,
)

logger = logging.getLogger(__name__)

FAILED_ORDER_STATUSES = (
    OrderStatus.NOT_DELIVERED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.RETURNED.value,
)


@dataclass
class MovementSource:
    """The facts about one order that its ledger entries are derived from."""

    store_id: UUID
    carrier_id: UUID
    order_id: UUID
    order_number: str | None
    is_cod: bool
    carrier_fee: Decimal
    amount_collected: Decimal = Decimal("0")
    dispatch_session_id: UUID | None = None
    failure_reason: str | None = None


@dataclass
class CarrierBalance:
    carrier_id: UUID
    carrier_name: str
    total_cod_collected: Decimal
    total_delivery_fees: Decimal
    total_failed_fees: Decimal
    net_balance: Decimal
    unsettled_balance: Decimal
    movement_count: int
    last_movement_date: datetime | None


class AccountMovementService:
    """Creates and reads the per-order ledger.

    Each (order, movement type) pair has exactly one row: recording the same
    fact again updates that row, whichever path (status change, outcome
    import, reconciliation, repair) gets there first. Methods here only
    flush; the caller commits.
    """

    def __init__(self, db: Session):
        self.db = db
        self.movement_repo = AccountMovementRepository(db)
        self.carrier_repo = CarrierRepository(db)
        self.session_repo = DispatchSessionRepository(db)
        self.rate_resolver = RateResolver(db)

    def record_delivery_movements(
        self,
        source: MovementSource,
        settlement_id: UUID | None = None,
        movement_date: datetime | None = None,
    ) -> list[AccountMovement]:
        """COD collected (COD orders with cash in hand) and the delivery fee."""
        movements: list[AccountMovement] = []
        collected = to_money(source.amount_collected)
        fee = to_money(source.carrier_fee)
        label = source.order_number or str(source.order_id)

        if source.is_cod and collected > 0:
            movements.append(
                self.movement_repo.upsert(
                    store_id=source.store_id,
                    carrier_id=source.carrier_id,
                    order_id=source.order_id,
                    movement_type=MovementType.COD_COLLECTED,
                    amount=collected,
                    description=f"COD collected for order {label}",
                    metadata={
                        "order_number": source.order_number,
                        "amount_collected": str(collected),
                    },
                    dispatch_session_id=source.dispatch_session_id,
                    settlement_id=settlement_id,
                    movement_date=movement_date,
                )
            )

        if fee > 0:
            movements.append(
                self.movement_repo.upsert(
                    store_id=source.store_id,
                    carrier_id=source.carrier_id,
                    order_id=source.order_id,
                    movement_type=MovementType.DELIVERY_FEE,
                    amount=-fee,
                    description=f"Delivery fee for order {label}",
                    metadata={
                        "order_number": source.order_number,
                        "carrier_fee": str(fee),
                        "is_cod": source.is_cod,
                    },
                    dispatch_session_id=source.dispatch_session_id,
                    settlement_id=settlement_id,
                    movement_date=movement_date,
                )
            )

        return movements

    def record_failed_attempt_movement(
        self,
        source: MovementSource,
        carrier: Carrier,
        settlement_id: UUID | None = None,
        movement_date: datetime | None = None,
    ) -> AccountMovement | None:
        """Partial fee for a failed attempt, when the carrier charges one."""
        if not carrier.charges_failed_attempts:
            return None

        full_fee = to_money(source.carrier_fee)
        percent = failed_attempt_percent(carrier)
        fee = calculate_failed_attempt_fee(full_fee, percent)
        if fee <= 0:
            return None

        label = source.order_number or str(source.order_id)
        return self.movement_repo.upsert(
            store_id=source.store_id,
            carrier_id=source.carrier_id,
            order_id=source.order_id,
            movement_type=MovementType.FAILED_ATTEMPT_FEE,
            amount=-fee,
            description=f"Failed delivery attempt fee ({percent}%) for order {label}",
            metadata={
                "order_number": source.order_number,
                "full_fee": str(full_fee),
                "fee_percent": percent,
                "calculated_fee": str(fee),
                "failure_reason": source.failure_reason,
            },
            dispatch_session_id=source.dispatch_session_id,
            settlement_id=settlement_id,
            movement_date=movement_date,
        )

    def clear_unsettled(self, order_id: UUID, movement_types: list[MovementType]) -> int:
        """Remove movements of the given types that no settlement has claimed yet."""
        removed = 0
        for movement_type in movement_types:
            movement = self.movement_repo.get_by_order_and_type(order_id, movement_type)
            if movement is not None and movement.settlement_id is None:
                self.movement_repo.delete(movement)
                removed += 1
        return removed

    def source_for_order(self, order: Order) -> MovementSource:
        """Build a MovementSource from the order and its latest dispatch line.

        The fee snapshotted at dispatch time wins over a fresh rate lookup.
        """
        if order.carrier_id is None:
            raise ValidationError(
                f"Order {order.id} has no carrier assigned",
                details={"order_id": str(order.id)},
            )

        line = self.session_repo.get_latest_line_for_order(order.id)  # type: ignore[arg-type]
        if line is not None:
            fee = to_money(line.carrier_fee)
            session_id = line.session_id
        else:
            fee = self.rate_resolver.resolve_fee(
                order.carrier_id,  # type: ignore[arg-type]
                order.shipping_city,  # type: ignore[arg-type]
                order.delivery_zone,  # type: ignore[arg-type]
            )
            session_id = None

        cod = is_order_cod(order.payment_method, order.prepaid_method)  # type: ignore[arg-type]
        if order.amount_collected is not None:
            collected = to_money(order.amount_collected)
        else:
            collected = to_money(order.total_price) if cod else Decimal("0.00")

        return MovementSource(
            store_id=order.store_id,  # type: ignore[arg-type]
            carrier_id=order.carrier_id,  # type: ignore[arg-type]
            order_id=order.id,  # type: ignore[arg-type]
            order_number=order.order_number,  # type: ignore[arg-type]
            is_cod=cod,
            carrier_fee=fee,
            amount_collected=collected,
            dispatch_session_id=session_id,
        )

    def carrier_fees(self, orders: list[Order]) -> dict[UUID, Decimal]:
        """Fee per order, resolved as in ``source_for_order`` with one line lookup."""
        lines = self.session_repo.get_latest_lines_for_orders([o.id for o in orders])  # type: ignore[misc]
        fees: dict[UUID, Decimal] = {}
        for order in orders:
            line = lines.get(order.id)  # type: ignore[call-overload]
            if line is not None:
                fees[order.id] = to_money(line.carrier_fee)  # type: ignore[index]
            else:
                fees[order.id] = self.rate_resolver.resolve_fee(  # type: ignore[index]
                    order.carrier_id,  # type: ignore[arg-type]
                    order.shipping_city,  # type: ignore[arg-type]
                    order.delivery_zone,  # type: ignore[arg-type]
                )
        return fees

    def on_order_status_changed(
        self, order: Order, previous_status: str | None
    ) -> list[AccountMovement]:
        """Keep the ledger in step with an order status change.

        Delivered orders get their delivery movements; a shipped order that
        fails (not delivered, cancelled, returned) gets the failed attempt fee.
        """
        if order.carrier_id is None or previous_status == order.status:
            return []

        if order.status == OrderStatus.DELIVERED.value:
            source = self.source_for_order(order)
            movements = self.record_delivery_movements(source)
            logger.info(
                "Recorded %d delivery movement(s) for order %s", len(movements), order.id
            )
            return movements

        if (
            order.status in FAILED_ORDER_STATUSES
            and previous_status == OrderStatus.SHIPPED.value
        ):
            carrier = self.carrier_repo.get_by_id(order.carrier_id)  # type: ignore[arg-type]
            if carrier is None:
                raise NotFoundError("Carrier", order.carrier_id)
            movement = self.record_failed_attempt_movement(self.source_for_order(order), carrier)
            return [movement] if movement is not None else []

        return []

    def list_movements(
        self,
        store_id: UUID,
        carrier_id: UUID,
        movement_type: MovementType | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[AccountMovement]:
        if self.carrier_repo.get_by_id(carrier_id, store_id) is None:
            raise NotFoundError("Carrier", carrier_id)
        return self.movement_repo.get_all(
            store_id,
            carrier_id=carrier_id,
            movement_type=movement_type,
            date_from=date_from,
            date_to=date_to,
            skip=skip,
            limit=limit,
        )

    def get_carrier_balances(self, store_id: UUID) -> list[CarrierBalance]:
        """Per carrier ledger totals. Positive balances are owed to the store."""
        rows = self.movement_repo.totals_by_carrier(store_id)
        unsettled = self.movement_repo.unsettled_totals_by_carrier(store_id)

        totals: dict[UUID, dict[str, Any]] = {}
        for carrier_id, movement_type, amount, count, last_date in rows:
            entry = totals.setdefault(
                carrier_id,
                {"by_type": {}, "count": 0, "last": None},
            )
            entry["by_type"][movement_type] = to_money(amount)
            entry["count"] += int(count)
            if last_date is not None and (entry["last"] is None or last_date > entry["last"]):
                entry["last"] = last_date

        carriers = self.carrier_repo.get_by_ids(list(totals.keys()))
        balances = []
        for carrier_id, entry in totals.items():
            by_type = entry["by_type"]
            cod = by_type.get(MovementType.COD_COLLECTED.value, Decimal("0.00"))
            fees = by_type.get(MovementType.DELIVERY_FEE.value, Decimal("0.00"))
            failed = by_type.get(MovementType.FAILED_ATTEMPT_FEE.value, Decimal("0.00"))
            carrier = carriers.get(carrier_id)
            balances.append(
                CarrierBalance(
                    carrier_id=carrier_id,
                    carrier_name=str(carrier.name) if carrier else "",
                    total_cod_collected=cod,
                    total_delivery_fees=fees,
                    total_failed_fees=failed,
                    net_balance=to_money(cod + fees + failed),
                    unsettled_balance=to_money(unsettled.get(carrier_id, 0)),
                    movement_count=entry["count"],
                    last_movement_date=entry["last"],
                )
            )
        return sorted(balances, key=lambda b: b.carrier_name)
