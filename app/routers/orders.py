"""Orders: placement, listings, status updates and buyer confirmation."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.order import BuyerConfirmation, DeliveryStatus, OrderStatus
from app.models.user import User
from app.schemas.order import (
    BuyerConfirmationRequest,
    BuyerConfirmationResponse,
    DeliveryStatusUpdate,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
)
from app.services import orders as order_service

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=OrderResponse)
def create_order(
    data: OrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return order_service.create_order(db, current_user, data)


@router.get("/buyer", response_model=list[OrderResponse])
def list_buyer_orders(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return order_service.list_buyer_orders(db, current_user.id)


@router.get("/seller", response_model=list[OrderResponse])
def list_seller_orders(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return order_service.list_seller_orders(db, current_user.id)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return order_service.get_order_for_participant(db, order_id, current_user)


@router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return order_service.update_status(db, order_id, current_user, OrderStatus(data.status))


@router.put("/{order_id}/delivery-status", response_model=OrderResponse)
def update_delivery_status(
    order_id: int,
    data: DeliveryStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return order_service.update_delivery_status(db, order_id, current_user, DeliveryStatus(data.delivery_status))


@router.put("/{order_id}/buyer-confirmation", response_model=BuyerConfirmationResponse)
def confirm_order(
    order_id: int,
    data: BuyerConfirmationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Buyer marks the order received or rejected. Allowed once."""
    decision = BuyerConfirmation(data.confirmation)
    order = order_service.buyer_confirm(db, order_id, current_user.id, decision)
    out = OrderResponse.model_validate(order)
    return BuyerConfirmationResponse(**out.model_dump(), message=order_service.CONFIRMATION_MESSAGES[decision])
