"""CodeSequence model: per store, per day counters behind human readable codes."""

from sqlalchemy import Column, Date, ForeignKey, Integer, String, UniqueConstraint

from carrier_ledger.core.database import Base
from carrier_ledger.models.shared import UUIDType, generate_uuid


class CodeSequence(Base):
    __tablename__ = "code_sequences"
    __table_args__ = (
        UniqueConstraint(
            "store_id", "scope", "sequence_date", name="uq_code_sequences_store_scope_date"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    store_id = Column(
        UUIDType, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scope = Column(String(20), nullable=False)
    sequence_date = Column(Date, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)
