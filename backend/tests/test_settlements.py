"""Tests for settlement computation and lifecycle."""

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from carrier_ledger.core.database import get_db
from carrier_ledger.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from carrier_ledger.models import AccountMovement, Order, OrderStatus
from carrier_ledger.models.dispatch_session import DispatchSessionStatus, FailureReason
from carrier_ledger.models.settlement import SettlementStatus
from carrier_ledger.services.delivery_outcome_service import DeliveryOutcomeService
from carrier_ledger.services.dispatch_session_service import DispatchSessionService
from carrier_ledger.services.settlement_payment_service import SettlementPaymentService
from carrier_ledger.services.settlement_service import OrderOutcome, SettlementService
from tests.conftest import DEFAULT_STORE_ID, create_carrier, create_order

DISPATCH_DAY = date(2026, 10, 5)


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def carrier(db_session):
    return create_carrier(db_session)


@pytest.fixture
def service(db_session):
    return SettlementService(db_session)


@pytest.fixture
def processed_session(db_session, carrier):
    """Two COD deliveries (100 + 50) and one failed COD attempt, fee 10 each."""
    first = create_order(db_session, "100.00", order_number="S-1")
    second = create_order(db_session, "50.00", order_number="S-2")
    failed = create_order(db_session, "80.00", order_number="S-3")
    session = DispatchSessionService(db_session).create_session(
        DEFAULT_STORE_ID, carrier.id, [first.id, second.id, failed.id], dispatch_date=DISPATCH_DAY
    )
    outcomes = DeliveryOutcomeService(db_session)
    outcomes.record_outcome(DEFAULT_STORE_ID, first.id, delivered=True)
    outcomes.record_outcome(DEFAULT_STORE_ID, second.id, delivered=True)
    outcomes.record_outcome(
        DEFAULT_STORE_ID, failed.id, delivered=False, failure_reason=FailureReason.NO_ANSWER
    )
    return session, [first, second, failed]


def _delivered_order(db_session, carrier, total="100.00", delivered_at=None, **kwargs):
    return create_order(
        db_session,
        total,
        carrier_id=carrier.id,
        status=OrderStatus.DELIVERED.value,
        delivered_at=delivered_at or datetime(2026, 10, 5, 15, 30, tzinfo=UTC),
        **kwargs,
    )


class TestComputeForSession:
    def test_settlement_figures(self, service, processed_session):
        """Collected 150, fees 20 and a 5.00 failed attempt leave 125 receivable."""
        session, _ = processed_session

        settlement = service.compute_for_session(DEFAULT_STORE_ID, session.id)

        assert settlement.settlement_code == "LIQ-05102026-001"
        assert settlement.settlement_date == DISPATCH_DAY
        assert settlement.total_dispatched == 3
        assert settlement.total_delivered == 2
        assert settlement.total_not_delivered == 1
        assert settlement.total_cod_delivered == 2
        assert settlement.total_cod_expected == Decimal("150.00")
        assert settlement.total_cod_collected == Decimal("150.00")
        assert settlement.total_carrier_fees == Decimal("20.00")
        assert settlement.failed_attempt_fee == Decimal("5.00")
        assert settlement.net_receivable == Decimal("125.00")
        assert settlement.balance_due == Decimal("125.00")
        assert settlement.amount_paid == Decimal("0.00")
        assert settlement.status == SettlementStatus.PENDING.value
        assert settlement.dispatch_session_id == session.id

    def test_session_and_orders_closed_out(self, db_session, service, processed_session):
        session, (first, second, failed) = processed_session

        settlement = service.compute_for_session(DEFAULT_STORE_ID, session.id)

        db_session.refresh(session)
        assert session.status == DispatchSessionStatus.SETTLED.value
        assert session.settlement_id == settlement.id
        for order in (first, second, failed):
            db_session.refresh(order)
            assert order.reconciled_at is not None
            assert order.settlement_id == settlement.id
        assert first.status == OrderStatus.DELIVERED.value
        assert failed.status == OrderStatus.CANCELLED.value

    def test_movements_linked_to_settlement(self, db_session, service, processed_session):
        """The ledger carries the same net as the settlement."""
        session, orders = processed_session

        settlement = service.compute_for_session(DEFAULT_STORE_ID, session.id)

        movements = (
            db_session.query(AccountMovement)
            .filter(AccountMovement.order_id.in_([o.id for o in orders]))
            .all()
        )
        assert len(movements) == 5
        assert all(m.settlement_id == settlement.id for m in movements)
        assert sum(m.amount for m in movements) == settlement.net_receivable

    def test_collected_total_override(self, service, processed_session):
        session, _ = processed_session

        settlement = service.compute_for_session(
            DEFAULT_STORE_ID, session.id, collected_total=Decimal("140")
        )

        assert settlement.total_cod_collected == Decimal("140.00")
        assert settlement.net_receivable == Decimal("115.00")

    def test_settling_twice_conflicts(self, service, processed_session):
        session, _ = processed_session
        service.compute_for_session(DEFAULT_STORE_ID, session.id)

        with pytest.raises(ConflictError):
            service.compute_for_session(DEFAULT_STORE_ID, session.id)

    def test_dispatched_session_cannot_settle(self, db_session, service, carrier):
        order = create_order(db_session)
        session = DispatchSessionService(db_session).create_session(
            DEFAULT_STORE_ID, carrier.id, [order.id]
        )

        with pytest.raises(InvalidStateError):
            service.compute_for_session(DEFAULT_STORE_ID, session.id)

    def test_negative_collected_total(self, service, processed_session):
        session, _ = processed_session

        with pytest.raises(ValidationError):
            service.compute_for_session(
                DEFAULT_STORE_ID, session.id, collected_total=Decimal("-1")
            )

    def test_prepaid_delivery_owes_only_the_fee(self, db_session, service, carrier):
        """A prepaid delivery contributes a fee but no cash."""
        prepaid = create_order(db_session, "70.00", prepaid_method="transferencia")
        session = DispatchSessionService(db_session).create_session(
            DEFAULT_STORE_ID, carrier.id, [prepaid.id], dispatch_date=DISPATCH_DAY
        )
        DeliveryOutcomeService(db_session).record_outcome(DEFAULT_STORE_ID, prepaid.id, True)

        settlement = service.compute_for_session(DEFAULT_STORE_ID, session.id)

        assert settlement.total_prepaid_delivered == 1
        assert settlement.prepaid_carrier_fees == Decimal("10.00")
        assert settlement.net_receivable == Decimal("-10.00")
        assert settlement.balance_due == Decimal("0.00")
        assert settlement.status == SettlementStatus.PENDING.value


class TestComputeForDate:
    def test_auto_selects_delivered_orders(self, db_session, service, carrier):
        first = _delivered_order(db_session, carrier, "100.00")
        second = _delivered_order(db_session, carrier, "40.00", prepaid_method="qr")
        _delivered_order(
            db_session, carrier, "30.00", delivered_at=datetime(2026, 10, 6, 9, 0, tzinfo=UTC)
        )

        settlement = service.compute_for_date(DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY)

        assert settlement.total_dispatched == 2
        assert settlement.total_cod_collected == Decimal("100.00")
        assert settlement.net_receivable == Decimal("80.00")
        for order in (first, second):
            db_session.refresh(order)
            assert order.settlement_id == settlement.id

    def test_explicit_outcomes(self, db_session, service, carrier):
        delivered = create_order(db_session, "100.00", carrier_id=carrier.id)
        failed = create_order(db_session, "60.00", carrier_id=carrier.id)

        settlement = service.compute_for_date(
            DEFAULT_STORE_ID,
            carrier.id,
            DISPATCH_DAY,
            outcomes=[
                OrderOutcome(order_id=delivered.id, delivered=True, amount_collected=Decimal("90")),
                OrderOutcome(order_id=failed.id, delivered=False, failure_reason="no_answer"),
            ],
        )

        assert settlement.total_cod_collected == Decimal("90.00")
        assert settlement.failed_attempt_fee == Decimal("5.00")
        assert settlement.net_receivable == Decimal("75.00")
        db_session.refresh(delivered)
        db_session.refresh(failed)
        assert delivered.status == OrderStatus.DELIVERED.value
        assert delivered.delivered_at is not None
        assert failed.status == OrderStatus.CANCELLED.value

    def test_nothing_to_reconcile(self, service, carrier):
        with pytest.raises(ValidationError):
            service.compute_for_date(DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY)

    def test_already_reconciled_orders_conflict(self, db_session, service, carrier):
        order = _delivered_order(db_session, carrier)
        settlement = service.compute_for_date(DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY)

        with pytest.raises(ConflictError) as exc_info:
            service.compute_for_date(
                DEFAULT_STORE_ID,
                carrier.id,
                DISPATCH_DAY,
                outcomes=[OrderOutcome(order_id=order.id, delivered=True)],
            )
        assert exc_info.value.details["settlement_ids"] == [str(settlement.id)]

    def test_orders_held_by_open_session_conflict(self, db_session, service, carrier, processed_session):
        """Orders still in a dispatch session settle through that session."""
        session, orders = processed_session

        with pytest.raises(ConflictError) as exc_info:
            service.compute_for_date(
                DEFAULT_STORE_ID,
                carrier.id,
                DISPATCH_DAY,
                outcomes=[OrderOutcome(order_id=orders[0].id, delivered=True)],
            )

        assert exc_info.value.details["session_codes"] == [session.session_code]
        db_session.refresh(orders[0])
        assert orders[0].reconciled_at is None
        assert service.settlement_repo.count(DEFAULT_STORE_ID) == 0
        settlement = service.compute_for_session(DEFAULT_STORE_ID, session.id)
        assert settlement.total_delivered == 2

    def test_auto_selection_skips_orders_held_by_open_session(
        self, db_session, service, carrier, processed_session
    ):
        _, orders = processed_session
        held = orders[0]
        held.status = OrderStatus.DELIVERED.value
        held.delivered_at = datetime(2026, 10, 5, 15, 0, tzinfo=UTC)
        db_session.commit()
        loose = _delivered_order(db_session, carrier, "40.00")

        settlement = service.compute_for_date(DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY)

        assert settlement.total_dispatched == 1
        db_session.refresh(loose)
        db_session.refresh(held)
        assert loose.settlement_id == settlement.id
        assert held.reconciled_at is None

    def test_order_of_another_carrier(self, db_session, service, carrier):
        other = create_carrier(db_session, name="Otro Courier")
        order = _delivered_order(db_session, other)

        with pytest.raises(ValidationError):
            service.compute_for_date(
                DEFAULT_STORE_ID,
                carrier.id,
                DISPATCH_DAY,
                outcomes=[OrderOutcome(order_id=order.id, delivered=True)],
            )

    def test_unknown_order(self, service, carrier):
        with pytest.raises(NotFoundError):
            service.compute_for_date(
                DEFAULT_STORE_ID,
                carrier.id,
                DISPATCH_DAY,
                outcomes=[OrderOutcome(order_id=uuid.uuid4(), delivered=True)],
            )

    def test_duplicate_outcomes(self, db_session, service, carrier):
        order = _delivered_order(db_session, carrier)
        outcome = OrderOutcome(order_id=order.id, delivered=True)

        with pytest.raises(ValidationError):
            service.compute_for_date(
                DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY, outcomes=[outcome, outcome]
            )

    def test_empty_outcomes(self, service, carrier):
        with pytest.raises(ValidationError):
            service.compute_for_date(DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY, outcomes=[])

    def test_unknown_carrier(self, service):
        with pytest.raises(NotFoundError):
            service.compute_for_date(DEFAULT_STORE_ID, uuid.uuid4(), DISPATCH_DAY)

    def test_failed_rollback_keeps_orders_open(self, db_session, service, carrier):
        """A rejected reconciliation leaves nothing behind."""
        order = _delivered_order(db_session, carrier)

        with pytest.raises(NotFoundError):
            service.compute_for_date(
                DEFAULT_STORE_ID,
                carrier.id,
                DISPATCH_DAY,
                outcomes=[
                    OrderOutcome(order_id=order.id, delivered=True),
                    OrderOutcome(order_id=uuid.uuid4(), delivered=True),
                ],
            )

        db_session.refresh(order)
        assert order.reconciled_at is None
        assert service.settlement_repo.count(DEFAULT_STORE_ID) == 0


class TestPendingReconciliation:
    def test_groups_by_carrier_and_day(self, db_session, service, carrier):
        _delivered_order(db_session, carrier, "100.00")
        _delivered_order(db_session, carrier, "50.00")
        _delivered_order(db_session, carrier, "20.00", prepaid_method="qr")
        _delivered_order(
            db_session, carrier, "30.00", delivered_at=datetime(2026, 10, 6, 9, 0, tzinfo=UTC)
        )

        groups = service.get_pending_reconciliation(DEFAULT_STORE_ID)

        assert [g.delivery_date for g in groups] == [date(2026, 10, 6), DISPATCH_DAY]
        older = groups[1]
        assert older.carrier_name == carrier.name
        assert older.total_orders == 3
        assert older.total_cod == Decimal("150.00")
        assert older.total_prepaid == 1

    def test_reconciled_orders_disappear(self, db_session, service, carrier):
        _delivered_order(db_session, carrier)
        service.compute_for_date(DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY)

        assert service.get_pending_reconciliation(DEFAULT_STORE_ID) == []

    def test_orders_held_by_open_session_are_not_pending(
        self, db_session, service, carrier, processed_session
    ):
        _, orders = processed_session
        orders[0].status = OrderStatus.DELIVERED.value
        orders[0].delivered_at = datetime(2026, 10, 5, 15, 0, tzinfo=UTC)
        db_session.commit()

        assert service.get_pending_reconciliation(DEFAULT_STORE_ID) == []


class TestSettlementLifecycle:
    @pytest.fixture
    def settlement(self, db_session, service, carrier):
        _delivered_order(db_session, carrier, "100.00")
        return service.compute_for_date(DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY)

    def test_get_settlement(self, service, settlement):
        assert service.get_settlement(DEFAULT_STORE_ID, settlement.id).id == settlement.id

    def test_get_settlement_other_store(self, service, settlement):
        with pytest.raises(NotFoundError):
            service.get_settlement(uuid.uuid4(), settlement.id)

    def test_pending_settlements(self, service, settlement):
        assert [s.id for s in service.get_pending_settlements(DEFAULT_STORE_ID)] == [settlement.id]

    def test_dispute(self, service, settlement):
        disputed = service.dispute_settlement(DEFAULT_STORE_ID, settlement.id, " Missing cash ")

        assert disputed.status == SettlementStatus.DISPUTED.value
        assert disputed.dispute_reason == "Missing cash"
        assert service.get_pending_settlements(DEFAULT_STORE_ID) == []

    def test_dispute_requires_reason(self, service, settlement):
        with pytest.raises(ValidationError):
            service.dispute_settlement(DEFAULT_STORE_ID, settlement.id, "  ")

    def test_dispute_paid_settlement(self, db_session, service, settlement):
        SettlementPaymentService(db_session).record_payment(
            DEFAULT_STORE_ID, settlement.id, Decimal("90.00")
        )

        with pytest.raises(InvalidStateError):
            service.dispute_settlement(DEFAULT_STORE_ID, settlement.id, "late")

    def test_cancel_releases_orders(self, db_session, service, settlement, carrier):
        """Cancelled settlements give their orders and movements back."""
        cancelled = service.cancel_settlement(DEFAULT_STORE_ID, settlement.id)

        assert cancelled.status == SettlementStatus.CANCELLED.value
        assert cancelled.balance_due == Decimal("0.00")
        order = db_session.query(Order).filter(Order.carrier_id == carrier.id).one()
        assert order.reconciled_at is None
        assert order.settlement_id is None
        movements = db_session.query(AccountMovement).filter(AccountMovement.order_id == order.id).all()
        assert movements
        assert all(m.settlement_id is None for m in movements)

        again = service.compute_for_date(DEFAULT_STORE_ID, carrier.id, DISPATCH_DAY)
        assert again.settlement_code == "LIQ-05102026-002"

    def test_cancel_twice(self, service, settlement):
        service.cancel_settlement(DEFAULT_STORE_ID, settlement.id)

        with pytest.raises(InvalidStateError):
            service.cancel_settlement(DEFAULT_STORE_ID, settlement.id)

    def test_summary(self, db_session, service, settlement, carrier):
        SettlementPaymentService(db_session).record_payment(
            DEFAULT_STORE_ID, settlement.id, Decimal("30.00")
        )
        _delivered_order(
            db_session, carrier, "50.00", delivered_at=datetime(2026, 10, 6, 9, 0, tzinfo=UTC)
        )
        second = service.compute_for_date(DEFAULT_STORE_ID, carrier.id, date(2026, 10, 6))
        service.cancel_settlement(DEFAULT_STORE_ID, second.id)

        summary = service.get_summary(DEFAULT_STORE_ID)

        assert summary.total_settlements == 2
        assert summary.partial_count == 1
        assert summary.cancelled_count == 1
        assert summary.total_net_receivable == Decimal("90.00")
        assert summary.total_paid == Decimal("30.00")
        assert summary.total_balance_due == Decimal("60.00")
