"""Document verification: submissions, admin review, and the payout precondition."""
import enum
import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.errors import Forbidden, InvalidState, NotFoundError, NotVerified, ValidationError
from app.models.user import User, UserRole, VerificationStatus
from app.services.audit_log import create_log, CATEGORY_VERIFICATION

logger = logging.getLogger(__name__)


class DocumentContext(str, enum.Enum):
    seller = "seller"   # seller registration: id_scan_url / face_scan_url
    buyer = "buyer"     # buyer checkout: buyer_id_scan_url / buyer_face_scan_url


_SLOTS = {
    DocumentContext.seller: ("id_scan_url", "face_scan_url"),
    DocumentContext.buyer: ("buyer_id_scan_url", "buyer_face_scan_url"),
}

# Allowed moves of verification_status. Re-opening a decided review happens
# only through a new submission (-> pending).
_TRANSITIONS = {
    VerificationStatus.unverified: {VerificationStatus.pending},
    VerificationStatus.pending: {VerificationStatus.pending, VerificationStatus.verified, VerificationStatus.rejected},
    VerificationStatus.verified: {VerificationStatus.pending},
    VerificationStatus.rejected: {VerificationStatus.pending},
}

REVIEW_DECISIONS = (VerificationStatus.verified, VerificationStatus.rejected)


def can_transition(current: VerificationStatus, target: VerificationStatus) -> bool:
    return target in _TRANSITIONS.get(current, set())


def submit_documents(
    db: Session,
    user: User,
    context: DocumentContext,
    id_scan_url: str | None = None,
    face_scan_url: str | None = None,
) -> User:
    """Store one or both document references and move the user to pending."""
    if not id_scan_url and not face_scan_url:
        raise ValidationError("No verification documents uploaded")
    if not can_transition(user.verification_status, VerificationStatus.pending):
        raise InvalidState("Verification cannot be resubmitted right now")
    id_slot, face_slot = _SLOTS[context]
    if id_scan_url:
        setattr(user, id_slot, id_scan_url)
    if face_scan_url:
        setattr(user, face_slot, face_scan_url)
    user.verification_status = VerificationStatus.pending
    user.verification_submitted_at = datetime.now(timezone.utc)
    user.verification_reviewed_at = None
    user.verification_reviewed_by_id = None
    create_log(
        db,
        CATEGORY_VERIFICATION,
        "Verification documents submitted",
        f"User {user.id} submitted {context.value} verification documents.",
        subject_user_id=user.id,
        actor_user_id=user.id,
        actor_email=user.email,
        meta={"context": context, "id_scan": bool(id_scan_url), "face_scan": bool(face_scan_url)},
    )
    db.commit()
    db.refresh(user)
    logger.info("User %s submitted %s verification documents", user.id, context.value)
    return user


def review(
    db: Session,
    reviewer: User,
    user_id: int,
    decision: VerificationStatus,
    notes: str | None = None,
) -> User:
    """Admin decision on a pending submission."""
    if reviewer.role != UserRole.admin:
        raise Forbidden("Admin access required")
    if decision not in REVIEW_DECISIONS:
        raise ValidationError("Decision must be 'verified' or 'rejected'")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    if not can_transition(user.verification_status, decision):
        raise InvalidState("Only pending verifications can be reviewed")

    now = datetime.now(timezone.utc)
    result = db.execute(
        update(User)
        .where(User.id == user_id, User.verification_status == VerificationStatus.pending)
        .values(
            verification_status=decision,
            verification_notes=notes,
            verification_reviewed_at=now,
            verification_reviewed_by_id=reviewer.id,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidState("Only pending verifications can be reviewed")
    create_log(
        db,
        CATEGORY_VERIFICATION,
        f"Verification {decision.value}",
        f"Admin {reviewer.id} marked user {user_id} as {decision.value}.",
        subject_user_id=user_id,
        actor_user_id=reviewer.id,
        actor_email=reviewer.email,
        meta={"decision": decision, "notes": notes},
    )
    db.commit()
    db.refresh(user)
    logger.info("Admin %s reviewed user %s: %s", reviewer.id, user_id, decision.value)
    return user


def require_payout_eligible(db: Session, user_id: int) -> None:
    """Raise NotVerified unless the user's documents have been approved."""
    status = db.query(User.verification_status).filter(User.id == user_id).scalar()
    if status != VerificationStatus.verified:
        raise NotVerified("Seller identity verification must be approved before payout")


def list_pending(db: Session) -> list[User]:
    return (
        db.query(User)
        .filter(User.verification_status == VerificationStatus.pending)
        .order_by(User.verification_submitted_at.asc(), User.id.asc())
        .all()
    )
