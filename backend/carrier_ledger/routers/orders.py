"""Order API endpoints: creation, delivery outcomes and status changes."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carrier_ledger.core.auth import get_current_store
from carrier_ledger.core.database import get_db
from carrier_ledger.models.dispatch_session import DispatchedOrder
from carrier_ledger.models.order import Order
from carrier_ledger.repositories.order_repository import OrderRepository
from carrier_ledger.schemas.dispatch_session import DispatchedOrderResponse
from carrier_ledger.schemas.order import (
    DeliveryOutcomeCreate,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
)
from carrier_ledger.services.delivery_outcome_service import DeliveryOutcomeService
from carrier_ledger.services.order_status_service import OrderStatusService

router = APIRouter()


@router.post(
    "/",
    response_model=OrderResponse,
    status_code=201,
    summary="Create order",
    responses={409: {"description": "Order number already exists"}},
)
async def create_order(
    data: OrderCreate,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Order:
    try:
        return OrderRepository(db).create(data, store_id)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Order number already exists") from None


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    responses={404: {"description": "Order not found"}},
)
async def get_order(
    order_id: UUID,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Order:
    order = OrderRepository(db).get_by_id(order_id, store_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post(
    "/{order_id}/delivery_outcome",
    response_model=DispatchedOrderResponse,
    summary="Record delivery outcome",
    responses={
        404: {"description": "Order not found or not in an active dispatch session"},
        409: {"description": "Dispatch session is settled or cancelled, or order reconciled"},
        422: {"description": "Validation error"},
    },
)
async def record_delivery_outcome(
    order_id: UUID,
    data: DeliveryOutcomeCreate,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> DispatchedOrder:
    """Record what happened to an order on its dispatch session line."""
    return DeliveryOutcomeService(db).record_outcome(
        store_id,
        order_id,
        delivered=data.delivered,
        amount_collected=data.amount_collected,
        failure_reason=data.failure_reason,
        delivery_status=data.delivery_status,
        courier_notes=data.courier_notes,
    )


@router.post(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Change order status",
    responses={
        404: {"description": "Order not found"},
        409: {"description": "Order is already reconciled"},
    },
)
async def update_order_status(
    order_id: UUID,
    data: OrderStatusUpdate,
    db: Session = Depends(get_db),
    store_id: UUID = Depends(get_current_store),
) -> Order:
    """Change an order's status and keep its carrier ledger entries in step."""
    return OrderStatusService(db).change_status(
        store_id, order_id, data.status, amount_collected=data.amount_collected
    )
