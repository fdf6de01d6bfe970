"""Dispatch session repository for data access."""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.models.dispatch_session import (
    TERMINAL_SESSION_STATUSES,
    DispatchedOrder,
    DispatchSession,
    DispatchSessionStatus,
)


class DispatchSessionRepository:
    """Repository for DispatchSession and its DispatchedOrder lines.

    Writes only flush; the calling service owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        store_id: UUID,
        skip: int = 0,
        limit: int = 100,
        status: DispatchSessionStatus | None = None,
        carrier_id: UUID | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[DispatchSession]:
        """Get all sessions with optional filters."""
        query = self.db.query(DispatchSession).filter(DispatchSession.store_id == store_id)

        if status:
            query = query.filter(DispatchSession.status == status.value)
        if carrier_id:
            query = query.filter(DispatchSession.carrier_id == carrier_id)
        if date_from:
            query = query.filter(DispatchSession.dispatch_date >= date_from)
        if date_to:
            query = query.filter(DispatchSession.dispatch_date <= date_to)

        return (
            query.order_by(DispatchSession.dispatch_date.desc(), DispatchSession.session_code.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count(self, store_id: UUID) -> int:
        return self.db.query(DispatchSession).filter(DispatchSession.store_id == store_id).count()

    def get_by_id(self, session_id: UUID, store_id: UUID | None = None) -> DispatchSession | None:
        """Get a session by ID."""
        query = self.db.query(DispatchSession).filter(DispatchSession.id == session_id)
        if store_id is not None:
            query = query.filter(DispatchSession.store_id == store_id)
        return query.first()

    def get_for_update(self, session_id: UUID) -> DispatchSession | None:
        return (
            self.db.query(DispatchSession)
            .filter(DispatchSession.id == session_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def create(self, session: DispatchSession, lines: list[DispatchedOrder]) -> DispatchSession:
        """Stage a session and its lines in the current transaction."""
        self.db.add(session)
        self.db.flush()
        for line in lines:
            line.session_id = session.id
            self.db.add(line)
        self.db.flush()
        return session

    def get_lines(self, session_id: UUID, refresh: bool = False) -> list[DispatchedOrder]:
        query = self.db.query(DispatchedOrder).filter(DispatchedOrder.session_id == session_id)
        if refresh:
            query = query.populate_existing()
        return query.order_by(DispatchedOrder.order_number.asc()).all()

    def get_active_lines_for_orders(
        self, order_ids: list[UUID]
    ) -> list[tuple[DispatchedOrder, DispatchSession]]:
        """Lines of the given orders that sit in a non-terminal session."""
        if not order_ids:
            return []
        rows = (
            self.db.query(DispatchedOrder, DispatchSession)
            .join(DispatchSession, DispatchSession.id == DispatchedOrder.session_id)
            .filter(
                DispatchedOrder.order_id.in_(order_ids),
                DispatchSession.status.notin_(TERMINAL_SESSION_STATUSES),
            )
            .populate_existing()
            .all()
        )
        return [(line, session) for line, session in rows]

    def get_active_order_ids(self, store_id: UUID) -> set[UUID]:
        """IDs of every order currently held by a non-terminal session."""
        rows = (
            self.db.query(DispatchedOrder.order_id)
            .join(DispatchSession, DispatchSession.id == DispatchedOrder.session_id)
            .filter(
                DispatchSession.store_id == store_id,
                DispatchSession.status.notin_(TERMINAL_SESSION_STATUSES),
            )
            .all()
        )
        return {row[0] for row in rows}

    def get_latest_line_for_order(self, order_id: UUID) -> DispatchedOrder | None:
        """Most recent line for an order from a session that was not cancelled."""
        return (
            self.db.query(DispatchedOrder)
            .join(DispatchSession, DispatchSession.id == DispatchedOrder.session_id)
            .filter(
                DispatchedOrder.order_id == order_id,
                DispatchSession.status != DispatchSessionStatus.CANCELLED.value,
            )
            .order_by(DispatchedOrder.created_at.desc())
            .first()
        )

    def get_latest_lines_for_orders(self, order_ids: list[UUID]) -> dict[UUID, DispatchedOrder]:
        """Batch form of ``get_latest_line_for_order``, keyed by order id."""
        if not order_ids:
            return {}
        lines = (
            self.db.query(DispatchedOrder)
            .join(DispatchSession, DispatchSession.id == DispatchedOrder.session_id)
            .filter(
                DispatchedOrder.order_id.in_(order_ids),
                DispatchSession.status != DispatchSessionStatus.CANCELLED.value,
            )
            .order_by(DispatchedOrder.created_at.asc())
            .all()
        )
        return {line.order_id: line for line in lines}  # type: ignore[misc]
