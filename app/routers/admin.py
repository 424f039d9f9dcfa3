"""Admin: verification review queue and payout release."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models.user import User, VerificationStatus
from app.schemas.admin import PendingVerificationResponse, VerificationReview
from app.schemas.order import OrderResponse
from app.services import orders as order_service
from app.services import verification

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/verifications/pending", response_model=list[PendingVerificationResponse])
def list_pending_verifications(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return verification.list_pending(db)


@router.put("/users/{user_id}/verification", response_model=PendingVerificationResponse)
def review_verification(
    user_id: int,
    data: VerificationReview,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return verification.review(db, admin, user_id, VerificationStatus(data.decision), data.notes)


@router.put("/orders/{order_id}/payout", response_model=OrderResponse)
def release_payout(order_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    """Mark a pending payout processed. The seller must be verified."""
    return order_service.release_payout(db, order_id, admin)
