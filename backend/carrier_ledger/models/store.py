"""Store model."""

from sqlalchemy import Column, DateTime, String, func

from carrier_ledger.core.database import Base
from carrier_ledger.models.shared import UUIDType, generate_uuid


class Store(Base):
    """A tenant store whose orders are dispatched to carriers."""

    __tablename__ = "stores"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    dispatch_code_prefix = Column(String(10), nullable=True)
    settlement_code_prefix = Column(String(10), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
