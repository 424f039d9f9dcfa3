"""Password reset for password-holding (admin) accounts.

Only a sha256 digest of the emailed token is stored. A token is single use and
expires after `password_reset_expire_minutes`.
"""
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import ValidationError
from app.models.user import User
from app.services.auth import get_password_hash
from app.services.code_store import as_utc
from app.services.credentials import get_user_by_email
from app.services.otp import normalize_email

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent."


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def reset_url(token: str) -> str:
    base = get_settings().frontend_url.rstrip("/")
    return f"{base}/reset-password?{urlencode({'token': token})}"


def request_reset(db: Session, email: str, now: datetime | None = None) -> str | None:
    """Issue a reset token for a password account. Returns None when there is nothing to reset."""
    user = get_user_by_email(db, normalize_email(email))
    if user is None or not user.hashed_password:
        logger.info("Password reset requested for non-password account: %s", email)
        return None
    now = now or datetime.now(timezone.utc)
    token = secrets.token_urlsafe(32)
    user.password_reset_token = _digest(token)
    user.password_reset_expires = now + timedelta(minutes=get_settings().password_reset_expire_minutes)
    db.commit()
    logger.info("Password reset token issued for user %s", user.id)
    return token


def user_for_token(db: Session, token: str, now: datetime | None = None) -> User | None:
    if not token:
        return None
    user = db.query(User).filter(User.password_reset_token == _digest(token)).first()
    if user is None or user.password_reset_expires is None:
        return None
    if as_utc(user.password_reset_expires) <= (now or datetime.now(timezone.utc)):
        return None
    return user


def reset_password(db: Session, token: str, new_password: str, now: datetime | None = None) -> User:
    user = user_for_token(db, token, now)
    if user is None:
        raise ValidationError("Invalid or expired reset token")
    user.hashed_password = get_password_hash(new_password)
    user.password_reset_token = None
    user.password_reset_expires = None
    db.commit()
    db.refresh(user)
    logger.info("Password reset completed for user %s", user.id)
    return user
