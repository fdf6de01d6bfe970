"""Tests for the carrier account movement ledger."""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from carrier_ledger.core.database import get_db
from carrier_ledger.core.errors import NotFoundError, ValidationError
from carrier_ledger.models import AccountMovement, MovementType, OrderStatus, Settlement
from carrier_ledger.repositories.account_movement_repository import AccountMovementRepository
from carrier_ledger.services.account_movement_service import (
    AccountMovementService,
    MovementSource,
)
from tests.conftest import DEFAULT_STORE_ID, create_carrier, create_order


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
    return AccountMovementService(db_session)


def _settlement(db, carrier) -> Settlement:
    settlement = Settlement(
        store_id=DEFAULT_STORE_ID,
        carrier_id=carrier.id,
        settlement_code=f"LIQ-{uuid.uuid4().hex[:6]}",
        settlement_date=date(2026, 10, 5),
    )
    db.add(settlement)
    db.flush()
    return settlement


def _source(carrier, order, **overrides) -> MovementSource:
    fields = dict(
        store_id=DEFAULT_STORE_ID,
        carrier_id=carrier.id,
        order_id=order.id,
        order_number=order.order_number,
        is_cod=True,
        carrier_fee=Decimal("10.00"),
        amount_collected=Decimal("100.00"),
    )
    fields.update(overrides)
    return MovementSource(**fields)


class TestRecordMovements:
    def test_delivery_movements(self, db_session, service, carrier):
        order = create_order(db_session)

        movements = service.record_delivery_movements(_source(carrier, order))
        db_session.commit()

        amounts = {m.movement_type: m.amount for m in movements}
        assert amounts == {
            MovementType.COD_COLLECTED.value: Decimal("100.00"),
            MovementType.DELIVERY_FEE.value: Decimal("-10.00"),
        }

    def test_prepaid_records_fee_only(self, db_session, service, carrier):
        order = create_order(db_session)

        movements = service.record_delivery_movements(
            _source(carrier, order, is_cod=False, amount_collected=Decimal("0"))
        )

        assert [m.movement_type for m in movements] == [MovementType.DELIVERY_FEE.value]

    def test_recording_twice_updates_in_place(self, db_session, service, carrier):
        """One row per order and movement type, whichever path writes it."""
        order = create_order(db_session)
        service.record_delivery_movements(_source(carrier, order))
        db_session.commit()

        service.record_delivery_movements(_source(carrier, order, amount_collected=Decimal("90")))
        db_session.commit()

        rows = AccountMovementRepository(db_session).get_for_order(order.id)
        assert len(rows) == 2
        cod = next(r for r in rows if r.movement_type == MovementType.COD_COLLECTED.value)
        assert cod.amount == Decimal("90.00")

    def test_settlement_link_kept_when_not_given(self, db_session, service, carrier):
        order = create_order(db_session)
        settlement_id = _settlement(db_session, carrier).id
        service.record_delivery_movements(_source(carrier, order), settlement_id=settlement_id)
        db_session.commit()

        service.record_delivery_movements(_source(carrier, order))
        db_session.commit()

        rows = AccountMovementRepository(db_session).get_for_order(order.id)
        assert {r.settlement_id for r in rows} == {settlement_id}

    def test_failed_attempt_fee(self, db_session, service, carrier):
        order = create_order(db_session)

        movement = service.record_failed_attempt_movement(
            _source(carrier, order, failure_reason="no_answer"), carrier
        )

        assert movement.amount == Decimal("-5.00")
        assert movement.movement_metadata["fee_percent"] == 50
        assert movement.movement_metadata["failure_reason"] == "no_answer"

    def test_failed_attempt_custom_percent(self, db_session, service):
        carrier = create_carrier(db_session, name="Full Fee", failed_attempt_fee_percent=100)
        order = create_order(db_session)

        movement = service.record_failed_attempt_movement(_source(carrier, order), carrier)

        assert movement.amount == Decimal("-10.00")

    def test_carrier_without_failed_fees(self, db_session, service):
        carrier = create_carrier(db_session, name="Free Retry", charges_failed_attempts=False)
        order = create_order(db_session)

        assert service.record_failed_attempt_movement(_source(carrier, order), carrier) is None

    def test_clear_unsettled_keeps_settled_rows(self, db_session, service, carrier):
        order = create_order(db_session)
        service.record_delivery_movements(_source(carrier, order))
        fee = AccountMovementRepository(db_session).get_by_order_and_type(
            order.id, MovementType.DELIVERY_FEE
        )
        fee.settlement_id = _settlement(db_session, carrier).id
        db_session.flush()

        removed = service.clear_unsettled(
            order.id, [MovementType.COD_COLLECTED, MovementType.DELIVERY_FEE]
        )

        assert removed == 1
        assert [m.movement_type for m in AccountMovementRepository(db_session).get_for_order(order.id)] == [
            MovementType.DELIVERY_FEE.value
        ]


class TestOrderStatusChanges:
    def test_delivered_order_gets_movements(self, db_session, service, carrier):
        order = create_order(db_session, carrier_id=carrier.id, status=OrderStatus.DELIVERED.value)

        movements = service.on_order_status_changed(order, OrderStatus.SHIPPED.value)
        db_session.commit()

        assert len(movements) == 2
        assert sum(m.amount for m in movements) == Decimal("90.00")

    def test_collected_amount_on_order_wins(self, db_session, service, carrier):
        order = create_order(
            db_session,
            carrier_id=carrier.id,
            status=OrderStatus.DELIVERED.value,
            amount_collected=Decimal("80.00"),
        )

        movements = service.on_order_status_changed(order, OrderStatus.SHIPPED.value)

        cod = next(m for m in movements if m.movement_type == MovementType.COD_COLLECTED.value)
        assert cod.amount == Decimal("80.00")

    def test_shipped_order_cancelled_gets_failed_fee(self, db_session, service, carrier):
        order = create_order(db_session, carrier_id=carrier.id, status=OrderStatus.CANCELLED.value)

        movements = service.on_order_status_changed(order, OrderStatus.SHIPPED.value)

        assert [m.movement_type for m in movements] == [MovementType.FAILED_ATTEMPT_FEE.value]

    def test_cancel_before_shipping_is_free(self, db_session, service, carrier):
        order = create_order(db_session, carrier_id=carrier.id, status=OrderStatus.CANCELLED.value)

        assert service.on_order_status_changed(order, OrderStatus.CONFIRMED.value) == []

    def test_unchanged_status_is_ignored(self, db_session, service, carrier):
        order = create_order(db_session, carrier_id=carrier.id, status=OrderStatus.DELIVERED.value)

        assert service.on_order_status_changed(order, OrderStatus.DELIVERED.value) == []

    def test_order_without_carrier_is_ignored(self, db_session, service):
        order = create_order(db_session, status=OrderStatus.DELIVERED.value)

        assert service.on_order_status_changed(order, OrderStatus.SHIPPED.value) == []

    def test_source_requires_carrier(self, db_session, service):
        order = create_order(db_session)

        with pytest.raises(ValidationError):
            service.source_for_order(order)


class TestBalancesAndListing:
    def test_carrier_balances(self, db_session, service, carrier):
        other = create_carrier(db_session, name="Bravo Courier")
        first = create_order(db_session)
        second = create_order(db_session)
        third = create_order(db_session)
        service.record_delivery_movements(_source(carrier, first))
        service.record_failed_attempt_movement(_source(carrier, second), carrier)
        service.record_delivery_movements(
            _source(other, third, amount_collected=Decimal("40.00")),
            settlement_id=_settlement(db_session, other).id,
        )
        db_session.commit()

        balances = service.get_carrier_balances(DEFAULT_STORE_ID)

        assert [b.carrier_name for b in balances] == ["Bravo Courier", "Rapido Express"]
        bravo, rapido = balances
        assert rapido.total_cod_collected == Decimal("100.00")
        assert rapido.total_delivery_fees == Decimal("-10.00")
        assert rapido.total_failed_fees == Decimal("-5.00")
        assert rapido.net_balance == Decimal("85.00")
        assert rapido.unsettled_balance == Decimal("85.00")
        assert rapido.movement_count == 3
        assert bravo.net_balance == Decimal("30.00")
        assert bravo.unsettled_balance == Decimal("0.00")

    def test_list_movements(self, db_session, service, carrier):
        order = create_order(db_session)
        service.record_delivery_movements(_source(carrier, order))
        db_session.commit()

        fees = service.list_movements(
            DEFAULT_STORE_ID, carrier.id, movement_type=MovementType.DELIVERY_FEE
        )

        assert len(fees) == 1
        assert fees[0].amount == Decimal("-10.00")
        assert len(service.list_movements(DEFAULT_STORE_ID, carrier.id)) == 2

    def test_list_movements_unknown_carrier(self, service):
        with pytest.raises(NotFoundError):
            service.list_movements(DEFAULT_STORE_ID, uuid.uuid4())

    def test_unique_order_and_type(self, db_session, carrier):
        """The database refuses a second row for the same order and type."""
        order = create_order(db_session)
        repo = AccountMovementRepository(db_session)
        repo.upsert(DEFAULT_STORE_ID, carrier.id, order.id, MovementType.DELIVERY_FEE, Decimal("-10"))
        repo.upsert(DEFAULT_STORE_ID, carrier.id, order.id, MovementType.DELIVERY_FEE, Decimal("-12"))
        db_session.commit()

        rows = db_session.query(AccountMovement).filter(AccountMovement.order_id == order.id).all()
        assert len(rows) == 1
        assert rows[0].amount == Decimal("-12.00")
