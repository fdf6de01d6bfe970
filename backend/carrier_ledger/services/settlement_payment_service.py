"""Recording carrier payments against settlements."""

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.core.errors import InvalidStateError, NotFoundError, ValidationError
from carrier_ledger.core.locks import lock_coordinator, settlement_key
from carrier_ledger.models.settlement import Settlement, SettlementStatus
from carrier_ledger.models.shared import to_money, utc_now
from carrier_ledger.repositories.settlement_repository import SettlementRepository
from carrier_ledger.services.settlement_calculator import compute_balance_due, derive_status

logger = logging.getLogger(__name__)

# Statuses that refuse payments, with the error code reported for each.
PAYMENT_BLOCKING_STATUSES = {
    SettlementStatus.PAID.value: "already_paid",
    SettlementStatus.DISPUTED.value: "settlement_disputed",
    SettlementStatus.CANCELLED.value: "settlement_cancelled",
}


class SettlementPaymentService:
    """Applies payments to a settlement under its row and named locks.

    ``amount_paid`` only ever grows: concurrent payments are serialized, and
    each one re-reads the settlement before adding to it.
    """

    def __init__(self, db: Session):
        self.db = db
        self.settlement_repo = SettlementRepository(db)

    def record_payment(
        self,
        store_id: UUID,
        settlement_id: UUID,
        amount: Decimal,
        method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
        payment_date: datetime | None = None,
    ) -> Settlement:
        if amount is None or to_money(amount) <= 0:
            raise ValidationError(
                "Payment amount must be greater than zero",
                error_code="invalid_amount",
                details={"amount": str(amount)},
            )
        amount = to_money(amount)

        with lock_coordinator.hold(settlement_key(settlement_id), db=self.db):
            try:
                settlement = self.settlement_repo.get_for_update(settlement_id, store_id)
                if settlement is None:
                    raise NotFoundError("Settlement", settlement_id)

                blocked = PAYMENT_BLOCKING_STATUSES.get(str(settlement.status))
                if blocked is not None:
                    raise InvalidStateError(
                        f"Settlement {settlement.settlement_code} is {settlement.status}",
                        current_state=str(settlement.status),
                        error_code=blocked,
                    )

                net = to_money(settlement.net_receivable)
                new_amount_paid = to_money(to_money(settlement.amount_paid) + amount)
                settlement.amount_paid = new_amount_paid  # type: ignore[assignment]
                settlement.balance_due = compute_balance_due(net, new_amount_paid)  # type: ignore[assignment]
                settlement.status = derive_status(new_amount_paid, net)  # type: ignore[assignment]
                settlement.payment_date = payment_date or utc_now()  # type: ignore[assignment]
                if method is not None:
                    settlement.payment_method = method  # type: ignore[assignment]
                if reference is not None:
                    settlement.payment_reference = reference  # type: ignore[assignment]
                if notes:
                    settlement.notes = (  # type: ignore[assignment]
                        f"{settlement.notes}\n{notes}" if settlement.notes else notes
                    )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(settlement)

        logger.info(
            "Recorded payment of %s on settlement %s: paid %s, balance %s (%s)",
            amount,
            settlement.settlement_code,
            settlement.amount_paid,
            settlement.balance_due,
            settlement.status,
        )
        return settlement
