"""Tests for recording payments against settlements."""

import threading
import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from carrier_ledger.core.database import Base, get_db
from carrier_ledger.core.errors import InvalidStateError, NotFoundError, ValidationError
from carrier_ledger.models import Settlement, SettlementStatus
from carrier_ledger.services.settlement_payment_service import SettlementPaymentService
from carrier_ledger.services.settlement_service import SettlementService
from tests.conftest import DEFAULT_STORE_ID, _seed_default_store, create_carrier


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


def _create_settlement(db, net="125.00", **kwargs) -> Settlement:
    carrier = create_carrier(db)
    settlement = Settlement(
        store_id=DEFAULT_STORE_ID,
        carrier_id=carrier.id,
        settlement_code=f"LIQ-{uuid.uuid4().hex[:6]}",
        settlement_date=date(2026, 10, 5),
        net_receivable=Decimal(net),
        amount_paid=Decimal("0.00"),
        balance_due=max(Decimal(net), Decimal("0.00")),
        status=SettlementStatus.PENDING.value,
        **kwargs,
    )
    db.add(settlement)
    db.commit()
    db.refresh(settlement)
    return settlement


@pytest.fixture
def settlement(db_session):
    return _create_settlement(db_session)


@pytest.fixture
def service(db_session):
    return SettlementPaymentService(db_session)


class TestRecordPayment:
    def test_partial_then_paid(self, service, settlement):
        """Payments accumulate until the net receivable is covered."""
        partial = service.record_payment(
            DEFAULT_STORE_ID, settlement.id, Decimal("50"), method="transfer", reference="TRX-1"
        )

        assert partial.amount_paid == Decimal("50.00")
        assert partial.balance_due == Decimal("75.00")
        assert partial.status == SettlementStatus.PARTIAL.value
        assert partial.payment_method == "transfer"
        assert partial.payment_reference == "TRX-1"
        assert partial.payment_date is not None

        paid = service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("75"))

        assert paid.amount_paid == Decimal("125.00")
        assert paid.balance_due == Decimal("0.00")
        assert paid.status == SettlementStatus.PAID.value
        assert paid.payment_method == "transfer"

    def test_overpayment_leaves_zero_balance(self, service, settlement):
        paid = service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("130"))

        assert paid.amount_paid == Decimal("130.00")
        assert paid.balance_due == Decimal("0.00")
        assert paid.status == SettlementStatus.PAID.value

    def test_explicit_payment_date(self, service, settlement):
        when = datetime(2026, 10, 7, 12, 0, tzinfo=UTC)

        paid = service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("10"), payment_date=when)

        assert paid.payment_date.replace(tzinfo=UTC) == when

    def test_notes_are_appended(self, service, settlement):
        service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("10"), notes="first")
        result = service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("10"), notes="second")

        assert result.notes == "first\nsecond"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("0.001")])
    def test_invalid_amount(self, service, settlement, amount):
        with pytest.raises(ValidationError) as exc_info:
            service.record_payment(DEFAULT_STORE_ID, settlement.id, amount)
        assert exc_info.value.error_code == "invalid_amount"

    def test_unknown_settlement(self, service):
        with pytest.raises(NotFoundError):
            service.record_payment(DEFAULT_STORE_ID, uuid.uuid4(), Decimal("10"))

    def test_already_paid(self, service, settlement):
        service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("125"))

        with pytest.raises(InvalidStateError) as exc_info:
            service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("1"))
        assert exc_info.value.error_code == "already_paid"

    def test_disputed_settlement(self, db_session, service, settlement):
        SettlementService(db_session).dispute_settlement(DEFAULT_STORE_ID, settlement.id, "short")

        with pytest.raises(InvalidStateError) as exc_info:
            service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("10"))
        assert exc_info.value.error_code == "settlement_disputed"

    def test_cancelled_settlement(self, db_session, service, settlement):
        SettlementService(db_session).cancel_settlement(DEFAULT_STORE_ID, settlement.id)

        with pytest.raises(InvalidStateError) as exc_info:
            service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("10"))
        assert exc_info.value.error_code == "settlement_cancelled"

    def test_rejected_payment_changes_nothing(self, db_session, service, settlement):
        service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("125"))

        with pytest.raises(InvalidStateError):
            service.record_payment(DEFAULT_STORE_ID, settlement.id, Decimal("5"))

        db_session.refresh(settlement)
        assert settlement.amount_paid == Decimal("125.00")


class TestConcurrentPayments:
    def test_concurrent_payments_are_not_lost(self, tmp_path):
        """Two simultaneous payments on separate sessions both land."""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'payments.db'}",
            connect_args={"check_same_thread": False},
        )
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        Base.metadata.create_all(bind=engine)

        setup = Session()
        try:
            _seed_default_store(setup)
            settlement_id = _create_settlement(setup).id
        finally:
            setup.close()

        barrier = threading.Barrier(2)
        errors: list[Exception] = []

        def pay(amount: str) -> None:
            db = Session()
            try:
                barrier.wait()
                SettlementPaymentService(db).record_payment(
                    DEFAULT_STORE_ID, settlement_id, Decimal(amount)
                )
            except Exception as exc:
                errors.append(exc)
            finally:
                db.close()

        threads = [threading.Thread(target=pay, args=(a,)) for a in ("50.00", "75.00")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        check = Session()
        try:
            result = check.get(Settlement, settlement_id)
            assert result.amount_paid == Decimal("125.00")
            assert result.balance_due == Decimal("0.00")
            assert result.status == SettlementStatus.PAID.value
        finally:
            check.close()
            engine.dispose()
