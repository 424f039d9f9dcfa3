"""Authentication: code issuance, role-specific registration, login and admin password reset."""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import auth_rate_limit, get_current_user, get_otp_send_limiter, get_otp_service
from app.errors import AuthError, ValidationError
from app.models.one_time_code import OtpChannel
from app.models.user import User
from app.schemas.auth import (
    AdminRegister,
    LoginRequest,
    MemberRegister,
    MessageResponse,
    PasswordReset,
    PasswordResetRequest,
    ResetTokenStatus,
    SellerRegister,
    SendOtpRequest,
    SendWhatsAppOtpRequest,
    Token,
    UserResponse,
)
from app.services.audit_log import create_log, request_origin, CATEGORY_FAILED_ATTEMPT
from app.services.auth import create_access_token
from app.services.credentials import CredentialResolver, credential_from_login
from app.services.notifications import dispatch_code, send_password_reset_email
from app.services.otp import OneTimeCodeService, normalize_email, normalize_whatsapp_number
from app.services.password_reset import RESET_REQUESTED_MESSAGE, request_reset, reset_password, reset_url, user_for_token
from app.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
# Credential endpoints share the per-IP limiter; /me does not count against it
rate_limited = [Depends(auth_rate_limit)]


def _session(user: User) -> Token:
    return Token(access_token=create_access_token(user.id, user.role), user=UserResponse.model_validate(user))


def _log_failed(db: Session, request: Request, title: str, identifier: str | None, reason: str) -> None:
    create_log(
        db,
        CATEGORY_FAILED_ATTEMPT,
        title,
        f"{title} for {identifier or '(unknown)'}.",
        actor_email=identifier,
        meta={"reason": reason},
        **request_origin(request),
    )
    db.commit()
    logger.info("%s: identifier=%s reason=%s", title, identifier, reason)


@router.post("/send-otp", response_model=MessageResponse, dependencies=rate_limited)
def send_otp(
    data: SendOtpRequest,
    background_tasks: BackgroundTasks,
    otp: OneTimeCodeService = Depends(get_otp_service),
    send_limiter: RateLimiter = Depends(get_otp_send_limiter),
):
    """Email a code. The response is the same whether or not an account exists."""
    email = normalize_email(data.email)
    send_limiter.check(f"{OtpChannel.email.value}:{email}")
    code = otp.issue(email, OtpChannel.email)
    background_tasks.add_task(dispatch_code, OtpChannel.email, email, code)
    return MessageResponse(message="Verification code sent to your email")


@router.post("/send-whatsapp-otp", response_model=MessageResponse, dependencies=rate_limited)
def send_whatsapp_otp(
    data: SendWhatsAppOtpRequest,
    background_tasks: BackgroundTasks,
    otp: OneTimeCodeService = Depends(get_otp_service),
    send_limiter: RateLimiter = Depends(get_otp_send_limiter),
):
    number = normalize_whatsapp_number(data.phone_number)
    send_limiter.check(f"{OtpChannel.whatsapp.value}:{number}")
    code = otp.issue(number, OtpChannel.whatsapp)
    background_tasks.add_task(dispatch_code, OtpChannel.whatsapp, number, code)
    return MessageResponse(message="Verification code sent to your WhatsApp")


@router.post("/register", response_model=Token, dependencies=rate_limited)
def register(
    data: MemberRegister,
    db: Session = Depends(get_db),
    otp: OneTimeCodeService = Depends(get_otp_service),
):
    """Buyer or seller signup with an email code."""
    user = CredentialResolver(db, otp).register_member(data)
    return _session(user)


@router.post("/seller/register", response_model=Token, dependencies=rate_limited)
def register_seller(
    data: SellerRegister,
    db: Session = Depends(get_db),
    otp: OneTimeCodeService = Depends(get_otp_service),
):
    user = CredentialResolver(db, otp).register_seller(data)
    return _session(user)


@router.post("/admin/register", response_model=Token, dependencies=rate_limited)
def register_admin(
    request: Request,
    data: AdminRegister,
    db: Session = Depends(get_db),
    otp: OneTimeCodeService = Depends(get_otp_service),
):
    try:
        user = CredentialResolver(db, otp).register_admin(data)
    except AuthError:
        _log_failed(db, request, "Admin registration rejected", normalize_email(data.email), "invalid_invite_token")
        raise
    return _session(user)


@router.post("/login", response_model=Token, dependencies=rate_limited)
def login(
    request: Request,
    data: LoginRequest,
    db: Session = Depends(get_db),
    otp: OneTimeCodeService = Depends(get_otp_service),
):
    credential = credential_from_login(data)
    try:
        user = CredentialResolver(db, otp).resolve(credential)
    except AuthError as e:
        identifier = getattr(credential, "email", None) or getattr(credential, "whatsapp_number", None)
        _log_failed(db, request, "Login failed", identifier, e.code)
        raise
    return _session(user)


@router.post("/request-password-reset", response_model=MessageResponse, dependencies=rate_limited)
def request_password_reset(
    data: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Email a reset link to a password account. The answer never reveals whether the account exists."""
    email = normalize_email(data.email)
    token = request_reset(db, email)
    if token:
        background_tasks.add_task(send_password_reset_email, email, reset_url(token))
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse, dependencies=rate_limited)
def reset_password_with_token(request: Request, data: PasswordReset, db: Session = Depends(get_db)):
    try:
        reset_password(db, data.token, data.new_password)
    except ValidationError:
        _log_failed(db, request, "Password reset failed", None, "invalid_reset_token")
        raise
    return MessageResponse(message="Password has been reset successfully")


@router.get("/verify-reset-token", response_model=ResetTokenStatus, dependencies=rate_limited)
def verify_reset_token(token: str = Query(""), db: Session = Depends(get_db)):
    if user_for_token(db, token) is None:
        return ResetTokenStatus(message="Invalid or expired token", valid=False)
    return ResetTokenStatus(message="Token is valid", valid=True)


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)
