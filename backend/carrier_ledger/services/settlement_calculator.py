"""Settlement arithmetic.

Pure functions over plain values so the same rules back session
settlements, date based reconciliation and payments:

    net_receivable = cod_collected - total_carrier_fees - failed_attempt_fee
    balance_due    = max(net_receivable - amount_paid, 0)
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from carrier_ledger.models.dispatch_session import NOT_DELIVERED_STATUSES, DeliveryStatus
from carrier_ledger.models.settlement import SettlementStatus
from carrier_ledger.models.shared import to_money
from carrier_ledger.services.rate_resolver import calculate_failed_attempt_fee

TERMINAL_SETTLEMENT_STATUSES = (
    SettlementStatus.DISPUTED.value,
    SettlementStatus.CANCELLED.value,
)


@dataclass
class SettlementLine:
    """One order as the calculator sees it."""

    order_id: UUID
    order_number: str | None
    delivery_status: str
    is_cod: bool
    carrier_fee: Decimal
    total_price: Decimal
    amount_collected: Decimal = Decimal("0")
    dispatch_session_id: UUID | None = None
    failure_reason: str | None = None

    @property
    def delivered(self) -> bool:
        return self.delivery_status == DeliveryStatus.DELIVERED.value

    @property
    def not_delivered(self) -> bool:
        return self.delivery_status in NOT_DELIVERED_STATUSES


@dataclass
class SettlementTotals:
    total_dispatched: int
    total_delivered: int
    total_not_delivered: int
    total_cod_delivered: int
    total_prepaid_delivered: int
    total_cod_expected: Decimal
    total_cod_collected: Decimal
    total_carrier_fees: Decimal
    cod_carrier_fees: Decimal
    prepaid_carrier_fees: Decimal
    failed_attempt_fee: Decimal
    net_receivable: Decimal


def calculate_totals(
    lines: list[SettlementLine],
    failed_fee_percent: int,
    charges_failed_attempts: bool = True,
    collected_total: Decimal | None = None,
    total_dispatched: int | None = None,
) -> SettlementTotals:
    """Aggregate settlement figures for a set of processed orders.

    ``collected_total`` is the cash the carrier actually handed over; when
    omitted it is the sum collected over delivered COD orders. Lines that
    are neither delivered nor failed (pending, rescheduled) only count as
    dispatched.
    """
    delivered = [line for line in lines if line.delivered]
    failed = [line for line in lines if line.not_delivered]
    cod = [line for line in delivered if line.is_cod]
    prepaid = [line for line in delivered if not line.is_cod]

    cod_fees = sum((to_money(line.carrier_fee) for line in cod), Decimal("0"))
    prepaid_fees = sum((to_money(line.carrier_fee) for line in prepaid), Decimal("0"))
    total_fees = cod_fees + prepaid_fees

    failed_fee = Decimal("0")
    if charges_failed_attempts:
        failed_fee = sum(
            (calculate_failed_attempt_fee(line.carrier_fee, failed_fee_percent) for line in failed),
            Decimal("0"),
        )

    cod_expected = sum((to_money(line.total_price) for line in cod), Decimal("0"))
    if collected_total is None:
        cod_collected = sum((to_money(line.amount_collected) for line in cod), Decimal("0"))
    else:
        cod_collected = to_money(collected_total)

    return SettlementTotals(
        total_dispatched=len(lines) if total_dispatched is None else total_dispatched,
        total_delivered=len(delivered),
        total_not_delivered=len(failed),
        total_cod_delivered=len(cod),
        total_prepaid_delivered=len(prepaid),
        total_cod_expected=to_money(cod_expected),
        total_cod_collected=to_money(cod_collected),
        total_carrier_fees=to_money(total_fees),
        cod_carrier_fees=to_money(cod_fees),
        prepaid_carrier_fees=to_money(prepaid_fees),
        failed_attempt_fee=to_money(failed_fee),
        net_receivable=to_money(cod_collected - total_fees - failed_fee),
    )


def compute_balance_due(net_receivable: Decimal, amount_paid: Decimal) -> Decimal:
    return to_money(max(to_money(net_receivable) - to_money(amount_paid), Decimal("0")))


def derive_status(
    amount_paid: Decimal, net_receivable: Decimal, current_status: str | None = None
) -> str:
    """Settlement status as a function of what has been paid.

    Disputed and cancelled are terminal overrides and are returned as is.
    """
    if current_status in TERMINAL_SETTLEMENT_STATUSES:
        return str(current_status)
    paid = to_money(amount_paid)
    if paid <= 0:
        return SettlementStatus.PENDING.value
    if paid >= to_money(net_receivable):
        return SettlementStatus.PAID.value
    return SettlementStatus.PARTIAL.value
