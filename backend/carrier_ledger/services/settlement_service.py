"""Settlement service: reconciling delivered orders against carrier fees."""

import logging
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from carrier_ledger.core.database import supports_row_locks
from carrier_ledger.core.errors import (
    ConcurrencyTimeoutError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from carrier_ledger.core.locks import (
    lock_coordinator,
    order_key,
    reconciliation_key,
    settlement_key,
)
from carrier_ledger.models.carrier import Carrier
from carrier_ledger.models.dispatch_session import (
    NOT_DELIVERED_STATUSES,
    DeliveryStatus,
    DispatchSessionStatus,
)
from carrier_ledger.models.order import Order, OrderStatus
from carrier_ledger.models.settlement import Settlement, SettlementStatus
from carrier_ledger.models.shared import local_date, to_money, utc_now
from carrier_ledger.repositories.account_movement_repository import AccountMovementRepository
from carrier_ledger.repositories.carrier_repository import CarrierRepository
from carrier_ledger.repositories.dispatch_session_repository import DispatchSessionRepository
from carrier_ledger.repositories.order_repository import OrderRepository
from carrier_ledger.repositories.settlement_repository import SettlementRepository
from carrier_ledger.repositories.store_repository import StoreRepository
from carrier_ledger.services.account_movement_service import (
    AccountMovementService,
    MovementSource,
)
from carrier_ledger.services.code_generator import CodeGenerator, CodeScope
from carrier_ledger.services.dispatch_session_service import DispatchSessionService
from carrier_ledger.services.payment_classification import is_order_cod
from carrier_ledger.services.rate_resolver import RateResolver, failed_attempt_percent
from carrier_ledger.services.settlement_calculator import (
    SettlementLine,
    calculate_totals,
    compute_balance_due,
    derive_status,
)

logger = logging.getLogger(__name__)

# Terminal order status after reconciliation, by delivery outcome.
RECONCILED_ORDER_STATUS = {
    DeliveryStatus.DELIVERED.value: OrderStatus.DELIVERED.value,
    DeliveryStatus.NOT_DELIVERED.value: OrderStatus.CANCELLED.value,
    DeliveryStatus.REJECTED.value: OrderStatus.CANCELLED.value,
    DeliveryStatus.RETURNED.value: OrderStatus.RETURNED.value,
}


@dataclass
class OrderOutcome:
    """Delivery result for one order in a date based reconciliation."""

    order_id: UUID
    delivered: bool
    failure_reason: str | None = None
    amount_collected: Decimal | None = None


@dataclass
class PendingReconciliation:
    carrier_id: UUID
    carrier_name: str
    delivery_date: date
    total_orders: int
    total_cod: Decimal
    total_prepaid: int


@dataclass
class SettlementsSummary:
    total_settlements: int
    pending_count: int
    partial_count: int
    paid_count: int
    disputed_count: int
    cancelled_count: int
    total_net_receivable: Decimal
    total_paid: Decimal
    total_balance_due: Decimal


class SettlementService:
    """Computes settlements and manages their lifecycle.

    Every computation holds the exclusive lock for its (store, carrier, date)
    group from validation to commit, so two reconciliations of the same
    group serialize and the second one sees the first one's orders as
    already reconciled.
    """

    def __init__(self, db: Session):
        self.db = db
        self.settlement_repo = SettlementRepository(db)
        self.session_repo = DispatchSessionRepository(db)
        self.order_repo = OrderRepository(db)
        self.carrier_repo = CarrierRepository(db)
        self.store_repo = StoreRepository(db)
        self.movement_repo = AccountMovementRepository(db)
        self.movement_service = AccountMovementService(db)
        self.session_service = DispatchSessionService(db)
        self.code_generator = CodeGenerator(db)
        self.rate_resolver = RateResolver(db)

    def compute_for_session(
        self,
        store_id: UUID,
        session_id: UUID,
        collected_total: Decimal | None = None,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> Settlement:
        """Settle a dispatch session from the outcomes recorded on its lines."""
        _validate_collected_total(collected_total)
        session = self.session_service.get_session(store_id, session_id)
        key = reconciliation_key(store_id, session.carrier_id, session.dispatch_date)  # type: ignore[arg-type]
        order_ids = [line.order_id for line in self.session_repo.get_lines(session_id)]

        with lock_coordinator.hold(key, db=self.db):
            with lock_coordinator.hold_many([order_key(i) for i in order_ids], db=self.db):
                try:
                    # Reloads ``session`` in place.
                    self.session_repo.get_for_update(session_id)
                    if session.status == DispatchSessionStatus.SETTLED.value:
                        raise ConflictError(
                            f"Dispatch session {session.session_code} is already settled",
                            details={
                                "session_id": str(session.id),
                                "settlement_id": str(session.settlement_id),
                            },
                        )
                    if session.status != DispatchSessionStatus.PROCESSING.value:
                        raise InvalidStateError(
                            f"Dispatch session {session.session_code} cannot be settled "
                            f"while {session.status}",
                            current_state=str(session.status),
                        )

                    lines = self.session_repo.get_lines(session_id, refresh=True)
                    processed = [
                        line
                        for line in lines
                        if line.delivery_status == DeliveryStatus.DELIVERED.value
                        or line.delivery_status in NOT_DELIVERED_STATUSES
                    ]
                    if not processed:
                        raise ValidationError(
                            "No delivery outcomes recorded for this session",
                            details={"session_id": str(session_id)},
                        )

                    orders = self._lock_orders([line.order_id for line in processed], store_id)  # type: ignore[misc]
                    self._ensure_not_reconciled(orders.values())

                    carrier = self._get_carrier(store_id, session.carrier_id)  # type: ignore[arg-type]
                    settlement_lines = [
                        SettlementLine(
                            order_id=line.order_id,  # type: ignore[arg-type]
                            order_number=line.order_number,  # type: ignore[arg-type]
                            delivery_status=str(line.delivery_status),
                            is_cod=bool(line.is_cod),
                            carrier_fee=to_money(line.carrier_fee),
                            total_price=to_money(line.total_price),
                            amount_collected=to_money(line.amount_collected),
                            dispatch_session_id=session.id,  # type: ignore[arg-type]
                            failure_reason=line.failure_reason,  # type: ignore[arg-type]
                        )
                        for line in processed
                    ]
                    settlement = self._settle(
                        store_id=store_id,
                        carrier=carrier,
                        settlement_date=session.dispatch_date,  # type: ignore[arg-type]
                        lines=settlement_lines,
                        orders=orders,
                        total_dispatched=len(lines),
                        collected_total=collected_total,
                        notes=notes,
                        created_by=created_by,
                        dispatch_session_id=session.id,  # type: ignore[arg-type]
                    )

                    session.settlement_id = settlement.id
                    self.session_service.transition(session, DispatchSessionStatus.SETTLED)
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
                self.db.refresh(settlement)

        logger.info(
            "Settled session %s as %s: net receivable %s",
            session.session_code,
            settlement.settlement_code,
            settlement.net_receivable,
        )
        return settlement

    def compute_for_date(
        self,
        store_id: UUID,
        carrier_id: UUID,
        delivery_date: date,
        outcomes: list[OrderOutcome] | None = None,
        collected_total: Decimal | None = None,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> Settlement:
        """Settle one carrier's deliveries for one day.

        Without explicit ``outcomes`` every delivered, unreconciled order of
        the carrier delivered on ``delivery_date`` (store local time) is taken,
        except orders an open dispatch session still holds: those settle
        through their session. Naming such an order explicitly is a conflict.
        """
        _validate_collected_total(collected_total)
        if outcomes is not None:
            if not outcomes:
                raise ValidationError("At least one order outcome is required")
            ids = [o.order_id for o in outcomes]
            duplicates = sorted({str(i) for i in ids if ids.count(i) > 1})
            if duplicates:
                raise ValidationError(
                    "Duplicate order ids in request", details={"order_ids": duplicates}
                )

        carrier = self._get_carrier(store_id, carrier_id)
        key = reconciliation_key(store_id, carrier_id, delivery_date)

        with lock_coordinator.hold(key, db=self.db):
            if outcomes is None:
                outcomes = self._delivered_on(store_id, carrier_id, delivery_date)
            by_id = {o.order_id: o for o in outcomes}

            with lock_coordinator.hold_many([order_key(i) for i in by_id], db=self.db):
                try:
                    orders = self._lock_orders(list(by_id), store_id)
                    missing = [i for i in by_id if i not in orders]
                    if missing:
                        raise NotFoundError("Order", missing)
                    foreign = [str(o.id) for o in orders.values() if o.carrier_id != carrier_id]
                    if foreign:
                        raise ValidationError(
                            "Orders are not assigned to this carrier",
                            details={"order_ids": foreign, "carrier_id": str(carrier_id)},
                        )
                    self._ensure_not_reconciled(orders.values())
                    self._ensure_not_in_open_session(list(orders))

                    lines = [
                        self._line_for_order(orders[order_id], outcome, carrier_id)
                        for order_id, outcome in by_id.items()
                    ]
                    settlement = self._settle(
                        store_id=store_id,
                        carrier=carrier,
                        settlement_date=delivery_date,
                        lines=lines,
                        orders=orders,
                        total_dispatched=len(lines),
                        collected_total=collected_total,
                        notes=notes,
                        created_by=created_by,
                    )
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
                self.db.refresh(settlement)

        logger.info(
            "Reconciled %d order(s) for carrier %s on %s as %s: net receivable %s",
            settlement.total_dispatched,
            carrier_id,
            delivery_date,
            settlement.settlement_code,
            settlement.net_receivable,
        )
        return settlement

    def _delivered_on(
        self, store_id: UUID, carrier_id: UUID, delivery_date: date
    ) -> list[OrderOutcome]:
        tz_name = self._store_timezone(store_id)
        held = self.session_repo.get_active_order_ids(store_id)
        outcomes = [
            OrderOutcome(order_id=order.id, delivered=True)  # type: ignore[arg-type]
            for order in self.order_repo.get_delivered_unreconciled(store_id, carrier_id)
            if order.delivered_at is not None
            and order.id not in held
            and local_date(order.delivered_at, tz_name) == delivery_date  # type: ignore[arg-type]
        ]
        if not outcomes:
            raise ValidationError(
                "No delivered orders pending reconciliation for this carrier and date",
                details={"carrier_id": str(carrier_id), "delivery_date": delivery_date.isoformat()},
            )
        return outcomes

    def _line_for_order(
        self, order: Order, outcome: OrderOutcome, carrier_id: UUID
    ) -> SettlementLine:
        dispatch_line = self.session_repo.get_latest_line_for_order(order.id)  # type: ignore[arg-type]
        if dispatch_line is not None:
            fee = to_money(dispatch_line.carrier_fee)
        else:
            fee = self.rate_resolver.resolve_fee(
                carrier_id,
                order.shipping_city,  # type: ignore[arg-type]
                order.delivery_zone,  # type: ignore[arg-type]
            )

        cod = is_order_cod(order.payment_method, order.prepaid_method)  # type: ignore[arg-type]
        collected = Decimal("0.00")
        if outcome.delivered and cod:
            if outcome.amount_collected is not None:
                collected = to_money(outcome.amount_collected)
            elif order.amount_collected is not None:
                collected = to_money(order.amount_collected)
            else:
                collected = to_money(order.total_price)

        return SettlementLine(
            order_id=order.id,  # type: ignore[arg-type]
            order_number=order.order_number,  # type: ignore[arg-type]
            delivery_status=(
                DeliveryStatus.DELIVERED.value
                if outcome.delivered
                else DeliveryStatus.NOT_DELIVERED.value
            ),
            is_cod=cod,
            carrier_fee=fee,
            total_price=to_money(order.total_price),
            amount_collected=collected,
            dispatch_session_id=dispatch_line.session_id if dispatch_line else None,  # type: ignore[arg-type]
            failure_reason=outcome.failure_reason,
        )

    def _settle(
        self,
        store_id: UUID,
        carrier: Carrier,
        settlement_date: date,
        lines: list[SettlementLine],
        orders: dict[UUID, Order],
        total_dispatched: int,
        collected_total: Decimal | None,
        notes: str | None,
        created_by: str | None,
        dispatch_session_id: UUID | None = None,
    ) -> Settlement:
        """Create the settlement, close out its orders and write their movements."""
        totals = calculate_totals(
            lines,
            failed_fee_percent=failed_attempt_percent(carrier),
            charges_failed_attempts=bool(carrier.charges_failed_attempts),
            collected_total=collected_total,
            total_dispatched=total_dispatched,
        )
        settlement = self.settlement_repo.create(
            store_id=store_id,
            carrier_id=carrier.id,
            dispatch_session_id=dispatch_session_id,
            settlement_code=self.code_generator.next_code(
                store_id, CodeScope.SETTLEMENT, settlement_date
            ),
            settlement_date=settlement_date,
            amount_paid=Decimal("0.00"),
            balance_due=compute_balance_due(totals.net_receivable, Decimal("0")),
            status=derive_status(Decimal("0"), totals.net_receivable),
            notes=notes,
            created_by=created_by,
            **asdict(totals),
        )

        now = utc_now()
        for line in lines:
            order = orders[line.order_id]
            order.reconciled_at = now  # type: ignore[assignment]
            order.settlement_id = settlement.id
            order.status = RECONCILED_ORDER_STATUS[line.delivery_status]  # type: ignore[assignment]

            source = MovementSource(
                store_id=store_id,
                carrier_id=carrier.id,  # type: ignore[arg-type]
                order_id=line.order_id,
                order_number=line.order_number,
                is_cod=line.is_cod,
                carrier_fee=line.carrier_fee,
                amount_collected=line.amount_collected,
                dispatch_session_id=line.dispatch_session_id,
                failure_reason=line.failure_reason,
            )
            if line.delivered:
                if order.delivered_at is None:
                    order.delivered_at = now  # type: ignore[assignment]
                if line.is_cod:
                    order.amount_collected = line.amount_collected  # type: ignore[assignment]
                self.movement_service.record_delivery_movements(source, settlement_id=settlement.id)  # type: ignore[arg-type]
            else:
                self.movement_service.record_failed_attempt_movement(
                    source, carrier, settlement_id=settlement.id  # type: ignore[arg-type]
                )

        self.db.flush()
        return settlement

    def _lock_orders(self, order_ids: list[UUID], store_id: UUID) -> dict[UUID, Order]:
        """Row-lock the orders (FOR UPDATE NOWAIT where supported)."""
        lockable = supports_row_locks(self.db)
        try:
            orders = self.order_repo.get_by_ids(
                order_ids, store_id, for_update=lockable, nowait=lockable, refresh=True
            )
        except OperationalError:
            raise ConcurrencyTimeoutError(
                "Orders are locked by another reconciliation",
                details={"order_ids": [str(i) for i in order_ids]},
            ) from None
        return {o.id: o for o in orders}  # type: ignore[misc]

    def _ensure_not_reconciled(self, orders) -> None:  # type: ignore[no-untyped-def]
        reconciled = [o for o in orders if o.reconciled_at is not None]
        if reconciled:
            raise ConflictError(
                "Orders have already been reconciled",
                details={
                    "order_ids": sorted(str(o.id) for o in reconciled),
                    "settlement_ids": sorted({str(o.settlement_id) for o in reconciled}),
                },
            )

    def _ensure_not_in_open_session(self, order_ids: list[UUID]) -> None:
        active = self.session_repo.get_active_lines_for_orders(order_ids)
        if active:
            raise ConflictError(
                "Orders are held by an open dispatch session and settle through it",
                details={
                    "order_ids": sorted({str(line.order_id) for line, _ in active}),
                    "session_codes": sorted({str(s.session_code) for _, s in active}),
                },
            )

    def _get_carrier(self, store_id: UUID, carrier_id: UUID) -> Carrier:
        carrier = self.carrier_repo.get_by_id(carrier_id, store_id)
        if carrier is None:
            raise NotFoundError("Carrier", carrier_id)
        return carrier

    def _store_timezone(self, store_id: UUID) -> str | None:
        store = self.store_repo.get_by_id(store_id)
        return str(store.timezone) if store else None

    def get_settlement(self, store_id: UUID, settlement_id: UUID) -> Settlement:
        settlement = self.settlement_repo.get_by_id(settlement_id, store_id)
        if settlement is None:
            raise NotFoundError("Settlement", settlement_id)
        return settlement

    def get_pending_settlements(
        self, store_id: UUID, carrier_id: UUID | None = None
    ) -> list[Settlement]:
        """Settlements with an outstanding balance, oldest first."""
        return self.settlement_repo.get_open(store_id, carrier_id)

    def get_pending_reconciliation(self, store_id: UUID) -> list[PendingReconciliation]:
        """Delivered, unreconciled orders grouped by carrier and delivery date.

        Orders still held by an open dispatch session are left out.
        """
        tz_name = self._store_timezone(store_id)
        held = self.session_repo.get_active_order_ids(store_id)
        groups: dict[tuple[UUID, date], PendingReconciliation] = {}
        orders = self.order_repo.get_delivered_unreconciled(store_id)
        carriers = self.carrier_repo.get_by_ids(list({o.carrier_id for o in orders}))  # type: ignore[misc]

        for order in orders:
            if order.delivered_at is None or order.id in held:
                continue
            day = local_date(order.delivered_at, tz_name)  # type: ignore[arg-type]
            group_key = (order.carrier_id, day)
            group = groups.get(group_key)  # type: ignore[arg-type]
            if group is None:
                carrier = carriers.get(order.carrier_id)  # type: ignore[arg-type]
                group = PendingReconciliation(
                    carrier_id=order.carrier_id,  # type: ignore[arg-type]
                    carrier_name=str(carrier.name) if carrier else "",
                    delivery_date=day,
                    total_orders=0,
                    total_cod=Decimal("0.00"),
                    total_prepaid=0,
                )
                groups[group_key] = group  # type: ignore[index]
            group.total_orders += 1
            if is_order_cod(order.payment_method, order.prepaid_method):  # type: ignore[arg-type]
                group.total_cod = to_money(group.total_cod + to_money(order.total_price))
            else:
                group.total_prepaid += 1

        return sorted(groups.values(), key=lambda g: (g.delivery_date, g.carrier_name), reverse=True)

    def dispute_settlement(self, store_id: UUID, settlement_id: UUID, reason: str) -> Settlement:
        """Freeze an open settlement while a disagreement is resolved."""
        if not reason or not reason.strip():
            raise ValidationError("A dispute reason is required")

        with lock_coordinator.hold(settlement_key(settlement_id), db=self.db):
            try:
                settlement = self._get_for_update(store_id, settlement_id)
                if settlement.status not in (
                    SettlementStatus.PENDING.value,
                    SettlementStatus.PARTIAL.value,
                ):
                    raise InvalidStateError(
                        f"Settlement {settlement.settlement_code} cannot be disputed "
                        f"while {settlement.status}",
                        current_state=str(settlement.status),
                    )
                settlement.status = SettlementStatus.DISPUTED.value  # type: ignore[assignment]
                settlement.dispute_reason = reason.strip()  # type: ignore[assignment]
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(settlement)

        logger.info("Settlement %s disputed", settlement.settlement_code)
        return settlement

    def cancel_settlement(self, store_id: UUID, settlement_id: UUID) -> Settlement:
        """Cancel a settlement that is not paid and release its orders."""
        with lock_coordinator.hold(settlement_key(settlement_id), db=self.db):
            try:
                settlement = self._get_for_update(store_id, settlement_id)
                if settlement.status in (
                    SettlementStatus.PAID.value,
                    SettlementStatus.CANCELLED.value,
                ):
                    raise InvalidStateError(
                        f"Settlement {settlement.settlement_code} cannot be cancelled "
                        f"while {settlement.status}",
                        current_state=str(settlement.status),
                    )

                released = (
                    self.db.query(Order).filter(Order.settlement_id == settlement.id).all()
                )
                for order in released:
                    order.reconciled_at = None  # type: ignore[assignment]
                    order.settlement_id = None  # type: ignore[assignment]
                for movement in self.movement_repo.get_for_orders([o.id for o in released]):  # type: ignore[misc]
                    if movement.settlement_id == settlement.id:
                        movement.settlement_id = None  # type: ignore[assignment]

                settlement.status = SettlementStatus.CANCELLED.value  # type: ignore[assignment]
                settlement.balance_due = Decimal("0.00")  # type: ignore[assignment]
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(settlement)

        logger.info(
            "Settlement %s cancelled, %d order(s) released", settlement.settlement_code, len(released)
        )
        return settlement

    def _get_for_update(self, store_id: UUID, settlement_id: UUID) -> Settlement:
        settlement = self.settlement_repo.get_for_update(settlement_id, store_id)
        if settlement is None:
            raise NotFoundError("Settlement", settlement_id)
        return settlement

    def get_summary(self, store_id: UUID) -> SettlementsSummary:
        settlements = self.settlement_repo.get_all(store_id, limit=100000)
        counts = {status.value: 0 for status in SettlementStatus}
        net = paid = due = Decimal("0.00")
        for settlement in settlements:
            counts[str(settlement.status)] = counts.get(str(settlement.status), 0) + 1
            if settlement.status == SettlementStatus.CANCELLED.value:
                continue
            net += to_money(settlement.net_receivable)
            paid += to_money(settlement.amount_paid)
            due += to_money(settlement.balance_due)
        return SettlementsSummary(
            total_settlements=len(settlements),
            pending_count=counts[SettlementStatus.PENDING.value],
            partial_count=counts[SettlementStatus.PARTIAL.value],
            paid_count=counts[SettlementStatus.PAID.value],
            disputed_count=counts[SettlementStatus.DISPUTED.value],
            cancelled_count=counts[SettlementStatus.CANCELLED.value],
            total_net_receivable=to_money(net),
            total_paid=to_money(paid),
            total_balance_due=to_money(due),
        )


def _validate_collected_total(collected_total: Decimal | None) -> None:
    if collected_total is not None and collected_total < 0:
        raise ValidationError("collected_total cannot be negative")
