"""Order schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Literal
from pydantic import Field
from app.models.order import OrderStatus, DeliveryStatus, BuyerConfirmation, PayoutStatus
from app.schemas.auth import CamelModel


class OrderCreate(CamelModel):
    seller_id: int
    product_id: int
    quantity: int = Field(default=1, ge=1)
    total_amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)


class OrderStatusUpdate(CamelModel):
    status: Literal["confirmed", "cancelled"]


class DeliveryStatusUpdate(CamelModel):
    delivery_status: Literal["pending", "in_transit"]


class BuyerConfirmationRequest(CamelModel):
    confirmation: Literal["received", "rejected"]


class OrderResponse(CamelModel):
    id: int
    buyer_id: int
    seller_id: int
    product_id: int
    quantity: int
    total_amount: Decimal
    status: OrderStatus
    delivery_status: DeliveryStatus
    buyer_confirmation: BuyerConfirmation
    payout_status: PayoutStatus
    buyer_confirmation_at: datetime | None = None
    payout_released_at: datetime | None = None
    created_at: datetime | None = None


class BuyerConfirmationResponse(OrderResponse):
    message: str
