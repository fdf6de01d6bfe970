"""Code sequence repository: atomic per store/scope/day counters."""

from datetime import date
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carrier_ledger.models.code_sequence import CodeSequence


class CodeSequenceRepository:
    def __init__(self, db: Session):
        self.db = db

    def _increment(self, store_id: UUID, scope: str, day: date) -> int:
        return (
            self.db.query(CodeSequence)
            .filter(
                CodeSequence.store_id == store_id,
                CodeSequence.scope == scope,
                CodeSequence.sequence_date == day,
            )
            .update(
                {CodeSequence.last_value: CodeSequence.last_value + 1},
                synchronize_session=False,
            )
        )

    def next_value(self, store_id: UUID, scope: str, day: date) -> int:
        """Increment and return the counter inside the caller's transaction.

        The UPDATE takes the row lock first, so concurrent callers never read
        the same value.
        """
        if not self._increment(store_id, scope, day):
            try:
                with self.db.begin_nested():
                    self.db.add(
                        CodeSequence(store_id=store_id, scope=scope, sequence_date=day, last_value=1)
                    )
                return 1
            except IntegrityError:
                # another transaction created the row first
                self._increment(store_id, scope, day)

        value = (
            self.db.query(CodeSequence.last_value)
            .filter(
                CodeSequence.store_id == store_id,
                CodeSequence.scope == scope,
                CodeSequence.sequence_date == day,
            )
            .scalar()
        )
        return int(value)
