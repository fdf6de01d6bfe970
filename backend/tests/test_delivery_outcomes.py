"""Tests for recording and importing delivery outcomes."""

import uuid
from decimal import Decimal

import pytest

from carrier_ledger.core.database import get_db
from carrier_ledger.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from carrier_ledger.models.account_movement import MovementType
from carrier_ledger.models.dispatch_session import (
    DeliveryStatus,
    DispatchSessionStatus,
    FailureReason,
)
from carrier_ledger.models.shared import utc_now
from carrier_ledger.repositories.account_movement_repository import AccountMovementRepository
from carrier_ledger.services.delivery_outcome_service import (
    DeliveryOutcomeService,
    parse_delivery_status,
    parse_failure_reason,
)
from carrier_ledger.services.dispatch_session_service import DispatchSessionService
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
def dispatched(db_session, carrier):
    """A session with one COD order (100.00) and one prepaid order (60.00)."""
    cod = create_order(db_session, "100.00", order_number="C-1")
    prepaid = create_order(db_session, "60.00", order_number="C-2", prepaid_method="transferencia")
    session = DispatchSessionService(db_session).create_session(
        DEFAULT_STORE_ID, carrier.id, [cod.id, prepaid.id]
    )
    return session, cod, prepaid


@pytest.fixture
def service(db_session):
    return DeliveryOutcomeService(db_session)


def _movement(db_session, order_id, movement_type):
    return AccountMovementRepository(db_session).get_by_order_and_type(order_id, movement_type)


class TestParsers:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("ENTREGADO", DeliveryStatus.DELIVERED),
            ("entregado ", DeliveryStatus.DELIVERED),
            ("No Entregado", DeliveryStatus.NOT_DELIVERED),
            ("RECHAZADO", DeliveryStatus.REJECTED),
            ("reprogramado", DeliveryStatus.RESCHEDULED),
            ("DEVUELTO", DeliveryStatus.RETURNED),
            ("delivered", DeliveryStatus.DELIVERED),
            ("not_delivered", DeliveryStatus.NOT_DELIVERED),
            ("???", DeliveryStatus.PENDING),
            (None, DeliveryStatus.PENDING),
        ],
    )
    def test_parse_delivery_status(self, text, expected):
        assert parse_delivery_status(text) == expected

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            (None, None),
            ("  ", None),
            ("no_answer", FailureReason.NO_ANSWER),
            ("Cliente no contesta", FailureReason.NO_ANSWER),
            ("direccion incorrecta", FailureReason.WRONG_ADDRESS),
            ("cliente ausente", FailureReason.CUSTOMER_ABSENT),
            ("no tenia dinero", FailureReason.INSUFFICIENT_FUNDS),
            ("lluvia", FailureReason.OTHER),
        ],
    )
    def test_parse_failure_reason(self, text, expected):
        assert parse_failure_reason(text) == expected


class TestRecordOutcome:
    def test_delivered_cod(self, db_session, service, dispatched):
        """A COD delivery records the cash and the two ledger movements."""
        session, cod, _ = dispatched

        line = service.record_outcome(DEFAULT_STORE_ID, cod.id, delivered=True)

        assert line.delivery_status == DeliveryStatus.DELIVERED.value
        assert line.amount_collected == Decimal("100.00")
        assert line.delivered_at is not None
        assert line.processed_at is not None
        db_session.refresh(session)
        assert session.status == DispatchSessionStatus.PROCESSING.value
        assert _movement(db_session, cod.id, MovementType.COD_COLLECTED).amount == Decimal("100.00")
        assert _movement(db_session, cod.id, MovementType.DELIVERY_FEE).amount == Decimal("-10.00")

    def test_collected_amount_discrepancy(self, db_session, service, dispatched):
        """Short collections are recorded as reported and flagged on the order."""
        _, cod, _ = dispatched

        line = service.record_outcome(
            DEFAULT_STORE_ID, cod.id, delivered=True, amount_collected=Decimal("90")
        )

        assert line.amount_collected == Decimal("90.00")
        db_session.refresh(cod)
        assert cod.amount_collected == Decimal("90.00")
        assert cod.has_amount_discrepancy is True
        assert _movement(db_session, cod.id, MovementType.COD_COLLECTED).amount == Decimal("90.00")

    def test_prepaid_collection_forced_to_zero(self, db_session, service, dispatched):
        """Cash reported on a prepaid order is not recorded."""
        _, _, prepaid = dispatched

        line = service.record_outcome(
            DEFAULT_STORE_ID, prepaid.id, delivered=True, amount_collected=Decimal("60")
        )

        assert line.amount_collected == Decimal("0.00")
        assert _movement(db_session, prepaid.id, MovementType.COD_COLLECTED) is None
        assert _movement(db_session, prepaid.id, MovementType.DELIVERY_FEE) is not None

    def test_failed_attempt(self, db_session, service, dispatched):
        """A failed attempt records the partial fee only."""
        _, cod, _ = dispatched

        line = service.record_outcome(
            DEFAULT_STORE_ID, cod.id, delivered=False, failure_reason=FailureReason.NO_ANSWER
        )

        assert line.delivery_status == DeliveryStatus.NOT_DELIVERED.value
        assert line.failure_reason == FailureReason.NO_ANSWER.value
        assert line.amount_collected == Decimal("0.00")
        failed = _movement(db_session, cod.id, MovementType.FAILED_ATTEMPT_FEE)
        assert failed.amount == Decimal("-5.00")
        assert failed.movement_metadata["failure_reason"] == "no_answer"
        assert _movement(db_session, cod.id, MovementType.DELIVERY_FEE) is None

    def test_correcting_an_outcome_replaces_movements(self, db_session, service, dispatched):
        """Re-recording an order swaps its unsettled movements."""
        _, cod, _ = dispatched
        service.record_outcome(DEFAULT_STORE_ID, cod.id, delivered=False)

        service.record_outcome(DEFAULT_STORE_ID, cod.id, delivered=True)

        assert _movement(db_session, cod.id, MovementType.FAILED_ATTEMPT_FEE) is None
        assert _movement(db_session, cod.id, MovementType.DELIVERY_FEE) is not None
        assert len(AccountMovementRepository(db_session).get_for_order(cod.id)) == 2

    def test_rescheduled_clears_movements(self, db_session, service, dispatched):
        _, cod, _ = dispatched
        service.record_outcome(DEFAULT_STORE_ID, cod.id, delivered=True)

        service.record_outcome(
            DEFAULT_STORE_ID, cod.id, delivered=False, delivery_status=DeliveryStatus.RESCHEDULED
        )

        assert AccountMovementRepository(db_session).get_for_order(cod.id) == []

    def test_reconciled_order_is_frozen(self, db_session, service, dispatched):
        """Once reconciled, an order's outcome and movements stay as settled."""
        _, cod, _ = dispatched
        cod.reconciled_at = utc_now()
        db_session.commit()

        with pytest.raises(ConflictError) as exc_info:
            service.record_outcome(DEFAULT_STORE_ID, cod.id, delivered=True)

        assert exc_info.value.details["order_id"] == str(cod.id)
        assert AccountMovementRepository(db_session).get_for_order(cod.id) == []

    def test_conflicting_flags(self, service, dispatched):
        _, cod, _ = dispatched

        with pytest.raises(ValidationError):
            service.record_outcome(
                DEFAULT_STORE_ID, cod.id, delivered=True, delivery_status=DeliveryStatus.REJECTED
            )

    def test_negative_amount(self, service, dispatched):
        _, cod, _ = dispatched

        with pytest.raises(ValidationError):
            service.record_outcome(DEFAULT_STORE_ID, cod.id, True, amount_collected=Decimal("-1"))

    def test_unknown_order(self, service):
        with pytest.raises(NotFoundError):
            service.record_outcome(DEFAULT_STORE_ID, uuid.uuid4(), delivered=True)

    def test_order_not_dispatched(self, db_session, service):
        """Orders outside any active session have nowhere to record an outcome."""
        order = create_order(db_session)

        with pytest.raises(NotFoundError) as exc_info:
            service.record_outcome(DEFAULT_STORE_ID, order.id, delivered=True)
        assert exc_info.value.details["entity"] == "DispatchedOrder"


class TestImportOutcomes:
    def test_import_rows(self, db_session, service, dispatched):
        """Matched rows are applied; unknown orders and statuses are reported."""
        session, cod, prepaid = dispatched

        result = service.import_outcomes(
            DEFAULT_STORE_ID,
            session.id,
            [
                {"order_number": "C-1", "delivery_status": "ENTREGADO", "amount_collected": "100"},
                {"order_number": "C-2", "delivery_status": "NO ENTREGADO", "failure_reason": "ausente"},
                {"order_number": "C-9", "delivery_status": "ENTREGADO"},
                {"order_number": "C-1", "delivery_status": "perdido"},
            ],
        )

        assert result.processed == 2
        assert len(result.errors) == 2
        assert "C-9" in result.errors[0]
        lines = {
            line.order_number: line
            for line in DispatchSessionService(db_session).get_session_lines(DEFAULT_STORE_ID, session.id)
        }
        assert lines["C-1"].delivery_status == DeliveryStatus.DELIVERED.value
        assert lines["C-2"].failure_reason == FailureReason.CUSTOMER_ABSENT.value
        db_session.refresh(session)
        assert session.status == DispatchSessionStatus.PROCESSING.value

    def test_import_reports_discrepancy_warning(self, service, dispatched):
        session, _, _ = dispatched

        result = service.import_outcomes(
            DEFAULT_STORE_ID,
            session.id,
            [{"order_number": "C-1", "delivery_status": "ENTREGADO", "amount_collected": "80"}],
        )

        assert result.processed == 1
        assert any("discrepancy" in w for w in result.warnings)

    def test_import_reports_reconciled_orders(self, db_session, service, dispatched):
        session, cod, prepaid = dispatched
        cod.reconciled_at = utc_now()
        db_session.commit()

        result = service.import_outcomes(
            DEFAULT_STORE_ID,
            session.id,
            [
                {"order_number": "C-1", "delivery_status": "ENTREGADO"},
                {"order_number": "C-2", "delivery_status": "ENTREGADO"},
            ],
        )

        assert result.processed == 1
        assert result.errors == ["Row 1: Order C-1 has already been reconciled"]
        assert AccountMovementRepository(db_session).get_for_order(cod.id) == []
        assert _movement(db_session, prepaid.id, MovementType.DELIVERY_FEE) is not None

    def test_import_into_cancelled_session(self, db_session, service, dispatched):
        session, _, _ = dispatched
        DispatchSessionService(db_session).cancel_session(DEFAULT_STORE_ID, session.id)

        with pytest.raises(InvalidStateError):
            service.import_outcomes(
                DEFAULT_STORE_ID,
                session.id,
                [{"order_number": "C-1", "delivery_status": "ENTREGADO"}],
            )
