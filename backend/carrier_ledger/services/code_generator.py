"""Human readable sequential codes: PREFIX-DDMMYYYY-NNN."""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.core.config import settings
from carrier_ledger.repositories.code_sequence_repository import CodeSequenceRepository
from carrier_ledger.repositories.store_repository import StoreRepository


class CodeScope(str, Enum):
    DISPATCH = "dispatch"
    SETTLEMENT = "settlement"


def format_code(prefix: str, day: date, sequence: int) -> str:
    return f"{prefix}-{day.strftime('%d%m%Y')}-{sequence:03d}"


class CodeGenerator:
    """Issues codes sequential per store, scope and day.

    The counter is incremented inside the caller's transaction, so a rolled
    back unit of work gives its number back.
    """

    def __init__(self, db: Session):
        self.db = db
        self.sequence_repo = CodeSequenceRepository(db)
        self.store_repo = StoreRepository(db)

    def _prefix(self, store_id: UUID, scope: CodeScope) -> str:
        store = self.store_repo.get_by_id(store_id)
        if scope == CodeScope.DISPATCH:
            custom = store.dispatch_code_prefix if store else None
            return str(custom or settings.DEFAULT_DISPATCH_CODE_PREFIX)
        custom = store.settlement_code_prefix if store else None
        return str(custom or settings.DEFAULT_SETTLEMENT_CODE_PREFIX)

    def next_code(self, store_id: UUID, scope: CodeScope, day: date) -> str:
        sequence = self.sequence_repo.next_value(store_id, scope.value, day)
        return format_code(self._prefix(store_id, scope), day, sequence)
