from carrier_ledger.repositories.account_movement_repository import AccountMovementRepository
from carrier_ledger.repositories.carrier_repository import CarrierRepository
from carrier_ledger.repositories.code_sequence_repository import CodeSequenceRepository
from carrier_ledger.repositories.dispatch_session_repository import DispatchSessionRepository
from carrier_ledger.repositories.order_repository import OrderRepository
from carrier_ledger.repositories.settlement_repository import SettlementRepository
from carrier_ledger.repositories.store_repository import StoreRepository

__all__ = [
    "AccountMovementRepository",
    "CarrierRepository",
    "CodeSequenceRepository",
    "DispatchSessionRepository",
    "OrderRepository",
    "SettlementRepository",
    "StoreRepository",
]
