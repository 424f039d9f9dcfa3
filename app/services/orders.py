"""Order lifecycle: placement, buyer confirmation and payout release.

State is the tuple (status, delivery_status, buyer_confirmation, payout_status),
created as (pending, pending, none, none). Buyer confirmation is a one-shot
conditional write of all four fields:

    received -> (completed, delivered, received, payout pending)
    rejected -> (rejected,  rejected,  rejected, payout cancelled)

Participants may set status confirmed/cancelled or delivery pending/in_transit
only while the order is still open. Cancelling closes the order, so a cancelled
order can never be confirmed. A payout leaves `pending` only through
release_payout, which requires the seller's verification to be approved.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.errors import Forbidden, InvalidState, NotFoundError, ValidationError
from app.models.order import (
    CLOSED_PAYOUT_STATUSES,
    BuyerConfirmation,
    DeliveryStatus,
    Order,
    OrderStatus,
    PayoutStatus,
)
from app.models.user import User, UserRole
from app.schemas.order import OrderCreate
from app.services.audit_log import create_log, CATEGORY_DELIVERY, CATEGORY_PAYOUT, CATEGORY_STATUS_CHANGE
from app.services.verification import require_payout_eligible

logger = logging.getLogger(__name__)

_CONFIRMATION_OUTCOMES = {
    BuyerConfirmation.received: {
        "status": OrderStatus.completed,
        "delivery_status": DeliveryStatus.delivered,
        "payout_status": PayoutStatus.pending,
    },
    BuyerConfirmation.rejected: {
        "status": OrderStatus.rejected,
        "delivery_status": DeliveryStatus.rejected,
        "payout_status": PayoutStatus.cancelled,
    },
}

CONFIRMATION_MESSAGES = {
    BuyerConfirmation.received: "Product marked as received. Seller payout is now pending.",
    BuyerConfirmation.rejected: "Product marked as rejected. Order has been cancelled.",
}


def get_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_for_participant(db: Session, order_id: int, caller: User) -> Order:
    order = get_order(db, order_id)
    if caller.id not in (order.buyer_id, order.seller_id) and caller.role != UserRole.admin:
        raise Forbidden("Cannot access another user's order")
    return order


def create_order(db: Session, buyer: User, data: OrderCreate) -> Order:
    if data.seller_id == buyer.id:
        raise ValidationError("You cannot order from yourself")
    seller = db.query(User).filter(User.id == data.seller_id).first()
    if seller is None or seller.role != UserRole.seller:
        raise NotFoundError("Seller not found")
    order = Order(
        buyer_id=buyer.id,
        seller_id=seller.id,
        product_id=data.product_id,
        quantity=data.quantity,
        total_amount=data.total_amount,
        status=OrderStatus.pending,
        delivery_status=DeliveryStatus.pending,
        buyer_confirmation=BuyerConfirmation.none,
        payout_status=PayoutStatus.none,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("Order %s placed by buyer %s with seller %s", order.id, buyer.id, seller.id)
    return order


def list_buyer_orders(db: Session, buyer_id: int) -> list[Order]:
    return db.query(Order).filter(Order.buyer_id == buyer_id).order_by(Order.id.desc()).all()


def list_seller_orders(db: Session, seller_id: int) -> list[Order]:
    return db.query(Order).filter(Order.seller_id == seller_id).order_by(Order.id.desc()).all()


def buyer_confirm(db: Session, order_id: int, caller_id: int, decision: BuyerConfirmation) -> Order:
    """The buyer's one-time received/rejected decision. Cancelled orders cannot be confirmed."""
    if decision not in _CONFIRMATION_OUTCOMES:
        raise ValidationError("Invalid confirmation type. Must be 'received' or 'rejected'")
    order = get_order(db, order_id)
    if order.buyer_id != caller_id:
        raise Forbidden("Only the buyer can confirm order delivery")
    if order.status == OrderStatus.cancelled:
        raise InvalidState("This order has been cancelled")
    if order.buyer_confirmation != BuyerConfirmation.none:
        raise InvalidState("This order has already been confirmed")

    now = datetime.now(timezone.utc)
    result = db.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.buyer_confirmation == BuyerConfirmation.none,
            Order.status != OrderStatus.cancelled,
        )
        .values(buyer_confirmation=decision, buyer_confirmation_at=now, **_CONFIRMATION_OUTCOMES[decision])
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # A concurrent confirmation or cancel for the same order committed first
        db.rollback()
        raise InvalidState("This order can no longer be confirmed")
    create_log(
        db,
        CATEGORY_STATUS_CHANGE,
        f"Buyer confirmation: {decision.value}",
        f"Buyer {caller_id} marked order {order_id} as {decision.value}.",
        order_id=order_id,
        subject_user_id=order.seller_id,
        actor_user_id=caller_id,
        meta={"decision": decision, **_CONFIRMATION_OUTCOMES[decision]},
    )
    db.commit()
    db.refresh(order)
    logger.info("Order %s buyer confirmation=%s", order_id, decision.value)
    return order


def _is_open(order: Order) -> bool:
    return (
        order.buyer_confirmation == BuyerConfirmation.none
        and order.payout_status not in CLOSED_PAYOUT_STATUSES
        and order.status != OrderStatus.cancelled
    )


def _update_open_order(db: Session, order: Order, caller: User, **values) -> None:
    """Write `values` only while the order is still open; a confirmed or cancelled row is left as is."""
    if caller.id not in (order.buyer_id, order.seller_id):
        raise Forbidden("Cannot update another user's order")
    if not _is_open(order):
        raise InvalidState("This order can no longer be changed")
    result = db.execute(
        update(Order)
        .where(
            Order.id == order.id,
            Order.buyer_confirmation == BuyerConfirmation.none,
            Order.payout_status.notin_(CLOSED_PAYOUT_STATUSES),
            Order.status != OrderStatus.cancelled,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidState("This order can no longer be changed")


def update_status(db: Session, order_id: int, caller: User, status: OrderStatus) -> Order:
    if status not in (OrderStatus.confirmed, OrderStatus.cancelled):
        raise ValidationError("Status can only be set to 'confirmed' or 'cancelled'")
    order = get_order(db, order_id)
    old = order.status
    _update_open_order(db, order, caller, status=status)
    create_log(
        db,
        CATEGORY_STATUS_CHANGE,
        "Order status updated",
        f"User {caller.id} changed order {order_id} status from {old.value} to {status.value}.",
        order_id=order_id,
        actor_user_id=caller.id,
        meta={"old_value": old, "new_value": status},
    )
    db.commit()
    db.refresh(order)
    return order


def update_delivery_status(db: Session, order_id: int, caller: User, delivery_status: DeliveryStatus) -> Order:
    # delivered/rejected are only reachable through buyer_confirm
    if delivery_status not in (DeliveryStatus.pending, DeliveryStatus.in_transit):
        raise ValidationError("Delivery status can only be set to 'pending' or 'in_transit'")
    order = get_order(db, order_id)
    old = order.delivery_status
    _update_open_order(db, order, caller, delivery_status=delivery_status)
    create_log(
        db,
        CATEGORY_DELIVERY,
        "Delivery status updated",
        f"User {caller.id} changed order {order_id} delivery from {old.value} to {delivery_status.value}.",
        order_id=order_id,
        actor_user_id=caller.id,
        meta={"old_value": old, "new_value": delivery_status},
    )
    db.commit()
    db.refresh(order)
    return order


def release_payout(db: Session, order_id: int, admin: User) -> Order:
    """Admin moves a pending payout to processed once the seller is verified."""
    if admin.role != UserRole.admin:
        raise Forbidden("Admin access required")
    order = get_order(db, order_id)
    if order.payout_status != PayoutStatus.pending:
        raise InvalidState("Payout is not pending for this order")
    require_payout_eligible(db, order.seller_id)

    now = datetime.now(timezone.utc)
    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.payout_status == PayoutStatus.pending)
        .values(payout_status=PayoutStatus.processed, payout_released_at=now, payout_released_by_id=admin.id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidState("Payout is not pending for this order")
    create_log(
        db,
        CATEGORY_PAYOUT,
        "Payout released",
        f"Admin {admin.id} released payout for order {order_id} to seller {order.seller_id}.",
        order_id=order_id,
        subject_user_id=order.seller_id,
        actor_user_id=admin.id,
        actor_email=admin.email,
        meta={"total_amount": order.total_amount},
    )
    db.commit()
    db.refresh(order)
    logger.info("Payout released for order %s by admin %s", order_id, admin.id)
    return order
