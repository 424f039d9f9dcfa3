"""Orders and their settlement state."""
from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from app.database import Base
import enum


class OrderStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    rejected = "rejected"
    cancelled = "cancelled"


class DeliveryStatus(str, enum.Enum):
    pending = "pending"
    in_transit = "in_transit"
    delivered = "delivered"
    rejected = "rejected"


class BuyerConfirmation(str, enum.Enum):
    none = "none"
    received = "received"
    rejected = "rejected"


class PayoutStatus(str, enum.Enum):
    none = "none"
    pending = "pending"
    processed = "processed"
    cancelled = "cancelled"


# Once payout reaches one of these the order is closed
CLOSED_PAYOUT_STATUSES = (PayoutStatus.processed, PayoutStatus.cancelled)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)  # catalog lives outside this service
    quantity = Column(Integer, nullable=False, default=1)
    total_amount = Column(Numeric(10, 2), nullable=False)

    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.pending)
    delivery_status = Column(SQLEnum(DeliveryStatus), nullable=False, default=DeliveryStatus.pending)
    buyer_confirmation = Column(SQLEnum(BuyerConfirmation), nullable=False, default=BuyerConfirmation.none)
    payout_status = Column(SQLEnum(PayoutStatus), nullable=False, default=PayoutStatus.none)

    buyer_confirmation_at = Column(DateTime(timezone=True), nullable=True)
    payout_released_at = Column(DateTime(timezone=True), nullable=True)
    payout_released_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
