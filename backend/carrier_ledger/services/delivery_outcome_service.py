"""Recording what happened to each dispatched order."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
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
    NOT_DELIVERED_STATUSES,
    TERMINAL_SESSION_STATUSES,
    DeliveryStatus,
    DispatchedOrder,
    DispatchSession,
    DispatchSessionStatus,
    FailureReason,
)
from carrier_ledger.models.shared import to_money, utc_now
from carrier_ledger.repositories.carrier_repository import CarrierRepository
from carrier_ledger.repositories.dispatch_session_repository import DispatchSessionRepository
from carrier_ledger.repositories.order_repository import OrderRepository
from carrier_ledger.services.account_movement_service import (
    AccountMovementService,
    MovementSource,
)
from carrier_ledger.services.dispatch_session_service import DispatchSessionService

logger = logging.getLogger(__name__)

# Courier manifest status column, Spanish and English spellings.
STATUS_ALIASES: dict[str, DeliveryStatus] = {
    "ENTREGADO": DeliveryStatus.DELIVERED,
    "DELIVERED": DeliveryStatus.DELIVERED,
    "NO ENTREGADO": DeliveryStatus.NOT_DELIVERED,
    "NO_ENTREGADO": DeliveryStatus.NOT_DELIVERED,
    "NOT_DELIVERED": DeliveryStatus.NOT_DELIVERED,
    "NOT DELIVERED": DeliveryStatus.NOT_DELIVERED,
    "RECHAZADO": DeliveryStatus.REJECTED,
    "REJECTED": DeliveryStatus.REJECTED,
    "REPROGRAMADO": DeliveryStatus.RESCHEDULED,
    "RESCHEDULED": DeliveryStatus.RESCHEDULED,
    "DEVUELTO": DeliveryStatus.RETURNED,
    "RETURNED": DeliveryStatus.RETURNED,
}

# Checked in order; first keyword found in the free text wins.
REASON_KEYWORDS: list[tuple[tuple[str, ...], FailureReason]] = [
    (("NO CONTESTA", "NO ANSWER"), FailureReason.NO_ANSWER),
    (("DIRECCION", "WRONG ADDRESS"), FailureReason.WRONG_ADDRESS),
    (("AUSENTE", "ABSENT"), FailureReason.CUSTOMER_ABSENT),
    (("RECHAZ", "REJECT"), FailureReason.CUSTOMER_REJECTED),
    (("DINERO", "FONDOS", "FUNDS"), FailureReason.INSUFFICIENT_FUNDS),
    (("NO SE ENCONTR", "NOT FOUND"), FailureReason.ADDRESS_NOT_FOUND),
    (("REPROGRAM", "RESCHEDUL"), FailureReason.RESCHEDULED),
]

DELIVERY_STATUS_VALUES = {s.value for s in DeliveryStatus}
FAILURE_REASON_VALUES = {r.value for r in FailureReason}


def parse_delivery_status(value: str | None) -> DeliveryStatus:
    """Map a courier status cell to a DeliveryStatus; unknown text stays pending."""
    key = (value or "").strip().upper()
    if key in STATUS_ALIASES:
        return STATUS_ALIASES[key]
    if key.lower() in DELIVERY_STATUS_VALUES:
        return DeliveryStatus(key.lower())
    return DeliveryStatus.PENDING


def parse_failure_reason(value: str | None) -> FailureReason | None:
    if not value or not value.strip():
        return None
    text = value.strip().upper()
    if text.lower() in FAILURE_REASON_VALUES:
        return FailureReason(text.lower())
    for keywords, reason in REASON_KEYWORDS:
        if any(k in text for k in keywords):
            return reason
    return FailureReason.OTHER


@dataclass
class ImportResult:
    processed: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class DeliveryOutcomeService:
    """Writes per-order delivery outcomes onto session lines.

    Outcomes never touch a settlement; they refresh the order's unsettled
    ledger entries so carrier balances stay current before reconciliation.
    """

    def __init__(self, db: Session):
        self.db = db
        self.session_repo = DispatchSessionRepository(db)
        self.order_repo = OrderRepository(db)
        self.carrier_repo = CarrierRepository(db)
        self.movement_service = AccountMovementService(db)
        self.session_service = DispatchSessionService(db)

    def record_outcome(
        self,
        store_id: UUID,
        order_id: UUID,
        delivered: bool,
        amount_collected: Decimal | None = None,
        failure_reason: FailureReason | None = None,
        delivery_status: DeliveryStatus | None = None,
        courier_notes: str | None = None,
    ) -> DispatchedOrder:
        """Record the outcome for an order in its active dispatch session.

        Raises ConflictError once the order has been reconciled.
        """
        if amount_collected is not None and amount_collected < 0:
            raise ValidationError("amount_collected cannot be negative")

        status = self._resolve_status(delivered, delivery_status)

        with lock_coordinator.hold(order_key(order_id), db=self.db):
            try:
                if not self.order_repo.get_by_ids([order_id], store_id, refresh=True):
                    raise NotFoundError("Order", order_id)

                active = self.session_repo.get_active_lines_for_orders([order_id])
                if not active:
                    raise NotFoundError(
                        "DispatchedOrder",
                        order_id,
                        details={"reason": "order is not in an active dispatch session"},
                    )
                line, session = active[0]

                warnings = self._apply(
                    session, line, status, amount_collected, failure_reason, courier_notes
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        for warning in warnings:
            logger.warning("%s", warning)
        self.db.refresh(line)
        return line

    def import_outcomes(
        self, store_id: UUID, session_id: UUID, rows: list[dict[str, Any]]
    ) -> ImportResult:
        """Apply a courier manifest to a session.

        Rows that cannot be matched, or that name an already reconciled
        order, are reported in ``errors``; every other row is applied and the
        whole batch commits together.
        """
        session = self.session_service.get_session(store_id, session_id)
        order_ids = [line.order_id for line in self.session_repo.get_lines(session_id)]
        result = ImportResult()

        with lock_coordinator.hold_many([order_key(i) for i in order_ids], db=self.db):
            try:
                # Reloads ``session`` in place.
                self.session_repo.get_for_update(session_id)
                if session.status in TERMINAL_SESSION_STATUSES:
                    raise InvalidStateError(
                        f"Dispatch session {session.session_code} is {session.status}",
                        current_state=str(session.status),
                    )
                self.order_repo.get_by_ids(order_ids, refresh=True)  # type: ignore[arg-type]
                lines = {
                    str(line.order_number): line
                    for line in self.session_repo.get_lines(session_id, refresh=True)
                }

                for index, row in enumerate(rows, start=1):
                    order_number = str(row.get("order_number") or "").strip()
                    line = lines.get(order_number)
                    if line is None:
                        result.errors.append(f"Row {index}: order {order_number} not found in this session")
                        continue

                    status = parse_delivery_status(row.get("delivery_status"))
                    if status == DeliveryStatus.PENDING:
                        result.errors.append(
                            f"Row {index}: unknown delivery status {row.get('delivery_status')!r}"
                        )
                        continue

                    amount = row.get("amount_collected")
                    try:
                        warnings = self._apply(
                            session,
                            line,
                            status,
                            Decimal(str(amount)) if amount is not None else None,
                            parse_failure_reason(row.get("failure_reason")),
                            row.get("courier_notes"),
                        )
                    except ConflictError as exc:
                        result.errors.append(f"Row {index}: {exc.message}")
                        continue
                    result.warnings.extend(warnings)
                    result.processed += 1

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            "Imported %d outcome(s) into session %s (%d errors, %d warnings)",
            result.processed,
            session.session_code,
            len(result.errors),
            len(result.warnings),
        )
        return result

    def _resolve_status(
        self, delivered: bool, delivery_status: DeliveryStatus | None
    ) -> DeliveryStatus:
        if delivered:
            if delivery_status not in (None, DeliveryStatus.DELIVERED):
                raise ValidationError("delivered=True conflicts with delivery_status")
            return DeliveryStatus.DELIVERED
        if delivery_status in (None, DeliveryStatus.PENDING, DeliveryStatus.DELIVERED):
            return DeliveryStatus.NOT_DELIVERED
        return delivery_status  # type: ignore[return-value]

    def _apply(
        self,
        session: DispatchSession,
        line: DispatchedOrder,
        status: DeliveryStatus,
        amount_collected: Decimal | None,
        failure_reason: FailureReason | None,
        courier_notes: str | None,
    ) -> list[str]:
        """Write one outcome and refresh the order's ledger; returns warnings."""
        if session.status in TERMINAL_SESSION_STATUSES:
            raise InvalidStateError(
                f"Dispatch session {session.session_code} is {session.status}",
                current_state=str(session.status),
            )

        label = line.order_number or str(line.order_id)
        order = self.order_repo.get_by_id(line.order_id)  # type: ignore[arg-type]
        if order is not None and order.reconciled_at is not None:
            raise ConflictError(
                f"Order {label} has already been reconciled",
                details={
                    "order_id": str(order.id),
                    "settlement_id": str(order.settlement_id),
                },
            )

        warnings: list[str] = []
        now = utc_now()
        total_price = to_money(line.total_price)

        if status == DeliveryStatus.DELIVERED:
            if line.is_cod:
                collected = to_money(amount_collected) if amount_collected is not None else total_price
                if collected != total_price:
                    warnings.append(
                        f"Order {label}: amount discrepancy, expected {total_price}, collected {collected}"
                    )
            else:
                collected = Decimal("0.00")
                if amount_collected is not None and amount_collected > 0:
                    warnings.append(
                        f"Order {label}: prepaid but courier reported collecting "
                        f"{to_money(amount_collected)}; recorded as 0"
                    )
            line.delivered_at = now  # type: ignore[assignment]
            line.failure_reason = None  # type: ignore[assignment]
        else:
            collected = Decimal("0.00")
            line.delivered_at = None  # type: ignore[assignment]
            line.failure_reason = failure_reason.value if failure_reason else None  # type: ignore[assignment]

        line.delivery_status = status.value  # type: ignore[assignment]
        line.amount_collected = collected  # type: ignore[assignment]
        line.courier_notes = courier_notes  # type: ignore[assignment]
        line.processed_at = now  # type: ignore[assignment]

        if order is not None and status == DeliveryStatus.DELIVERED and line.is_cod:
            order.amount_collected = collected  # type: ignore[assignment]
            order.has_amount_discrepancy = collected != total_price  # type: ignore[assignment]

        if session.status == DispatchSessionStatus.DISPATCHED.value:
            self.session_service.transition(session, DispatchSessionStatus.PROCESSING)
        self.db.flush()

        self._refresh_movements(session, line, status, collected)
        return warnings

    def _refresh_movements(
        self,
        session: DispatchSession,
        line: DispatchedOrder,
        status: DeliveryStatus,
        collected: Decimal,
    ) -> None:
        source = MovementSource(
            store_id=session.store_id,  # type: ignore[arg-type]
            carrier_id=session.carrier_id,  # type: ignore[arg-type]
            order_id=line.order_id,  # type: ignore[arg-type]
            order_number=line.order_number,  # type: ignore[arg-type]
            is_cod=bool(line.is_cod),
            carrier_fee=to_money(line.carrier_fee),
            amount_collected=collected,
            dispatch_session_id=session.id,  # type: ignore[arg-type]
            failure_reason=line.failure_reason,  # type: ignore[arg-type]
        )

        if status == DeliveryStatus.DELIVERED:
            stale = [MovementType.FAILED_ATTEMPT_FEE]
            if not (source.is_cod and collected > 0):
                stale.append(MovementType.COD_COLLECTED)
            self.movement_service.clear_unsettled(source.order_id, stale)
            self.movement_service.record_delivery_movements(source)
        elif status.value in NOT_DELIVERED_STATUSES:
            self.movement_service.clear_unsettled(
                source.order_id, [MovementType.COD_COLLECTED, MovementType.DELIVERY_FEE]
            )
            carrier = self.carrier_repo.get_by_id(session.carrier_id)  # type: ignore[arg-type]
            if carrier is not None:
                self.movement_service.record_failed_attempt_movement(source, carrier)
        else:
            self.movement_service.clear_unsettled(
                source.order_id,
                [
                    MovementType.COD_COLLECTED,
                    MovementType.DELIVERY_FEE,
                    MovementType.FAILED_ATTEMPT_FEE,
                ],
            )
