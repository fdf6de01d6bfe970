from carrier_ledger.models.account_movement import AccountMovement, MovementType
from carrier_ledger.models.carrier import Carrier, CarrierCoverage, CarrierZone
from carrier_ledger.models.code_sequence import CodeSequence
from carrier_ledger.models.dispatch_session import (
    DeliveryStatus,
    DispatchedOrder,
    DispatchSession,
    DispatchSessionStatus,
    FailureReason,
)
from carrier_ledger.models.order import Order, OrderStatus
from carrier_ledger.models.settlement import Settlement, SettlementStatus
from carrier_ledger.models.store import Store

__all__ = [
    "AccountMovement",
    "Carrier",
    "CarrierCoverage",
    "CarrierZone",
    "CodeSequence",
    "DeliveryStatus",
    "DispatchSession",
    "DispatchSessionStatus",
    "DispatchedOrder",
    "FailureReason",
    "MovementType",
    "Order",
    "OrderStatus",
    "Settlement",
    "SettlementStatus",
    "Store",
]
