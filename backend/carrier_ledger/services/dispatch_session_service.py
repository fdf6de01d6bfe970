"""Dispatch session service: batching orders out to a carrier."""

import csv
import io
import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from carrier_ledger.core.locks import lock_coordinator, order_key
from carrier_ledger.models.account_movement import MovementType
from carrier_ledger.models.dispatch_session import (
    SESSION_TRANSITIONS,
    DispatchedOrder,
    DispatchSession,
    DispatchSessionStatus,
)
from carrier_ledger.models.order import DISPATCHABLE_ORDER_STATUSES, Order, OrderStatus
from carrier_ledger.models.shared import local_date, to_money, utc_now
from carrier_ledger.repositories.carrier_repository import CarrierRepository
from carrier_ledger.repositories.dispatch_session_repository import DispatchSessionRepository
from carrier_ledger.repositories.order_repository import OrderRepository
from carrier_ledger.repositories.store_repository import StoreRepository
from carrier_ledger.services.account_movement_service import AccountMovementService
from carrier_ledger.services.code_generator import CodeGenerator, CodeScope
from carrier_ledger.services.payment_classification import amount_to_collect, is_order_cod
from carrier_ledger.services.rate_resolver import RateResolver

logger = logging.getLogger(__name__)

MANIFEST_HEADERS = [
    "reference",
    "phone",
    "customer_name",
    "address",
    "city",
    "payment_type",
    "amount_to_collect",
    "total_price",
    "carrier_fee",
    "delivery_status",
    "amount_collected",
    "failure_reason",
    "notes",
]


class DispatchSessionService:
    """Service for dispatch session business logic."""

    def __init__(self, db: Session):
        self.db = db
        self.session_repo = DispatchSessionRepository(db)
        self.order_repo = OrderRepository(db)
        self.carrier_repo = CarrierRepository(db)
        self.store_repo = StoreRepository(db)
        self.rate_resolver = RateResolver(db)
        self.code_generator = CodeGenerator(db)
        self.movement_service = AccountMovementService(db)

    def _today(self, store_id: UUID) -> date:
        store = self.store_repo.get_by_id(store_id)
        return local_date(utc_now(), str(store.timezone) if store else None)

    def create_session(
        self,
        store_id: UUID,
        carrier_id: UUID,
        order_ids: list[UUID],
        dispatch_date: date | None = None,
        created_by: str | None = None,
    ) -> DispatchSession:
        """Hand a batch of orders to a carrier.

        Snapshots each order, resolves its carrier fee, marks it shipped and
        issues the session code, all in one transaction.
        """
        if not order_ids:
            raise ValidationError("At least one order is required")
        duplicates = sorted({str(i) for i in order_ids if order_ids.count(i) > 1})
        if duplicates:
            raise ValidationError(
                "Duplicate order ids in request", details={"order_ids": duplicates}
            )

        carrier = self.carrier_repo.get_by_id(carrier_id, store_id)
        if carrier is None:
            raise NotFoundError("Carrier", carrier_id)
        if not carrier.is_active:
            raise InvalidStateError("Carrier is inactive", current_state="inactive")

        # Order locks cover the membership check through commit.
        with lock_coordinator.hold_many([order_key(i) for i in order_ids], db=self.db):
            try:
                orders = self.order_repo.get_by_ids(order_ids, store_id, for_update=True)
                found = {o.id for o in orders}
                missing = [i for i in order_ids if i not in found]
                if missing:
                    raise NotFoundError("Order", missing)

                active = self.session_repo.get_active_lines_for_orders(list(found))
                if active:
                    raise ConflictError(
                        "Orders already belong to an active dispatch session",
                        details={
                            "order_ids": sorted({str(line.order_id) for line, _ in active}),
                            "session_codes": sorted({str(s.session_code) for _, s in active}),
                        },
                    )

                pickup = [str(o.id) for o in orders if o.is_pickup]
                if pickup:
                    raise InvalidStateError(
                        "Pickup orders cannot be dispatched to a carrier",
                        details={"order_ids": pickup},
                    )
                ineligible = [
                    {"order_id": str(o.id), "status": o.status}
                    for o in orders
                    if o.status not in DISPATCHABLE_ORDER_STATUSES
                ]
                if ineligible:
                    raise InvalidStateError(
                        "Orders are not ready to be dispatched",
                        details={"orders": ineligible},
                    )

                if not self.rate_resolver.has_rates(carrier_id):
                    raise InvalidStateError(
                        f"Carrier {carrier.name} has no delivery zones or city coverage configured",
                        current_state="unconfigured",
                    )
                if self.rate_resolver.fallback_rate(carrier_id) is None:
                    logger.warning(
                        "Carrier %s has no delivery zones; uncovered cities will cost 0", carrier_id
                    )

                now = utc_now()
                day = dispatch_date or self._today(store_id)
                lines = []
                total_cod_expected = Decimal("0.00")
                total_prepaid = 0
                for order in orders:
                    lines.append(self._snapshot(order, carrier_id))
                    if lines[-1].is_cod:
                        total_cod_expected += to_money(order.total_price)
                    else:
                        total_prepaid += 1
                    order.status = OrderStatus.SHIPPED.value  # type: ignore[assignment]
                    order.carrier_id = carrier_id  # type: ignore[assignment]
                    order.shipped_at = now  # type: ignore[assignment]

                session = DispatchSession(
                    store_id=store_id,
                    carrier_id=carrier_id,
                    session_code=self.code_generator.next_code(store_id, CodeScope.DISPATCH, day),
                    dispatch_date=day,
                    status=DispatchSessionStatus.DISPATCHED.value,
                    total_orders=len(lines),
                    total_cod_expected=to_money(total_cod_expected),
                    total_prepaid=total_prepaid,
                    created_by=created_by,
                )
                self.session_repo.create(session, lines)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(session)
        logger.info(
            "Created dispatch session %s with %d orders for carrier %s",
            session.session_code,
            session.total_orders,
            carrier_id,
        )
        return session

    def _snapshot(self, order: Order, carrier_id: UUID) -> DispatchedOrder:
        fee = self.rate_resolver.resolve_fee(
            carrier_id,
            order.shipping_city,  # type: ignore[arg-type]
            order.delivery_zone,  # type: ignore[arg-type]
        )
        return DispatchedOrder(
            order_id=order.id,
            order_number=order.order_number,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            delivery_address=order.shipping_address,
            delivery_city=order.shipping_city,
            delivery_zone=order.delivery_zone,
            total_price=to_money(order.total_price),
            payment_method=order.payment_method,
            prepaid_method=order.prepaid_method,
            is_cod=is_order_cod(order.payment_method, order.prepaid_method),  # type: ignore[arg-type]
            carrier_fee=fee,
        )

    def transition(self, session: DispatchSession, new_status: DispatchSessionStatus) -> None:
        """Move a session forward. Flushes only; the caller commits."""
        current = str(session.status)
        if new_status.value not in SESSION_TRANSITIONS.get(current, ()):
            raise InvalidStateError(
                f"Cannot move dispatch session from {current} to {new_status.value}",
                current_state=current,
                details={"session_id": str(session.id), "requested": new_status.value},
            )

        session.status = new_status.value  # type: ignore[assignment]
        now = utc_now()
        if new_status == DispatchSessionStatus.PROCESSING:
            session.imported_at = now  # type: ignore[assignment]
        elif new_status == DispatchSessionStatus.SETTLED:
            session.settled_at = now  # type: ignore[assignment]
        elif new_status == DispatchSessionStatus.CANCELLED:
            session.cancelled_at = now  # type: ignore[assignment]
        self.db.flush()

    def cancel_session(self, store_id: UUID, session_id: UUID) -> DispatchSession:
        """Cancel a session and release its unreconciled orders.

        Released orders lose the unsettled ledger entries their recorded
        outcomes produced; entries a settlement already claimed stay.
        """
        session = self.get_session(store_id, session_id)
        order_ids = [line.order_id for line in self.session_repo.get_lines(session_id)]

        with lock_coordinator.hold_many([order_key(i) for i in order_ids], db=self.db):
            try:
                # Reloads ``session`` in place.
                self.session_repo.get_for_update(session_id)
                self.transition(session, DispatchSessionStatus.CANCELLED)
                orders = self.order_repo.get_by_ids(order_ids, refresh=True)  # type: ignore[arg-type]
                released = 0
                for order in orders:
                    if order.status == OrderStatus.SHIPPED.value and order.reconciled_at is None:
                        order.status = OrderStatus.READY_TO_SHIP.value  # type: ignore[assignment]
                        order.shipped_at = None  # type: ignore[assignment]
                        self.movement_service.clear_unsettled(
                            order.id,  # type: ignore[arg-type]
                            [
                                MovementType.COD_COLLECTED,
                                MovementType.DELIVERY_FEE,
                                MovementType.FAILED_ATTEMPT_FEE,
                            ],
                        )
                        released += 1
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(session)
        logger.info("Cancelled dispatch session %s, released %d orders", session.session_code, released)
        return session

    def get_session(self, store_id: UUID, session_id: UUID) -> DispatchSession:
        session = self.session_repo.get_by_id(session_id, store_id)
        if session is None:
            raise NotFoundError("DispatchSession", session_id)
        return session

    def get_session_lines(self, store_id: UUID, session_id: UUID) -> list[DispatchedOrder]:
        self.get_session(store_id, session_id)
        return self.session_repo.get_lines(session_id)

    def list_orders_to_dispatch(
        self, store_id: UUID, carrier_id: UUID | None = None
    ) -> list[Order]:
        """Eligible orders that no active session holds yet."""
        held = self.session_repo.get_active_order_ids(store_id)
        return self.order_repo.get_dispatchable(store_id, held, carrier_id)

    def export_session_csv(self, store_id: UUID, session_id: UUID) -> str:
        """Courier manifest for the session, with blank columns for the courier."""
        session = self.get_session(store_id, session_id)
        lines = self.session_repo.get_lines(session_id)

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(MANIFEST_HEADERS)
        for line in lines:
            to_collect = amount_to_collect(
                line.payment_method,  # type: ignore[arg-type]
                line.prepaid_method,  # type: ignore[arg-type]
                line.total_price,  # type: ignore[arg-type]
            )
            writer.writerow(
                [
                    line.order_number,
                    line.customer_phone or "",
                    line.customer_name or "",
                    line.delivery_address or "",
                    line.delivery_city or "",
                    "COD" if line.is_cod else "PREPAID",
                    str(to_money(to_collect)),
                    str(to_money(line.total_price)),
                    str(to_money(line.carrier_fee)),
                    "",
                    "",
                    "",
                    "",
                ]
            )

        session.exported_at = utc_now()  # type: ignore[assignment]
        self.db.commit()
        return output.getvalue()
