"""Store repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.models.store import Store


class StoreRepository:
    """Repository for Store model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, store_id: UUID) -> Store | None:
        return self.db.query(Store).filter(Store.id == store_id).first()

    def create(
        self,
        name: str,
        timezone: str = "UTC",
        store_id: UUID | None = None,
        dispatch_code_prefix: str | None = None,
        settlement_code_prefix: str | None = None,
    ) -> Store:
        """Create a new store."""
        store = Store(
            name=name,
            timezone=timezone,
            dispatch_code_prefix=dispatch_code_prefix,
            settlement_code_prefix=settlement_code_prefix,
        )
        if store_id is not None:
            store.id = store_id  # type: ignore[assignment]
        self.db.add(store)
        self.db.commit()
        self.db.refresh(store)
        return store
