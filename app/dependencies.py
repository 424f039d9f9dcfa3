"""Shared dependencies: DB session, current user, code store, rate limiters."""
from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.models.user import User, UserRole
from app.services.auth import decode_token_with_error
from app.services.code_store import InMemoryCodeStore, SqlCodeStore
from app.services.otp import OneTimeCodeService
from app.services.rate_limit import RateLimiter

security = HTTPBearer(auto_error=False)


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials:
        raise HTTPException(status_code=401, detail="Authentication required")
    token_str = (credentials.credentials or "").strip()
    payload, _ = decode_token_with_error(token_str)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


@lru_cache
def get_memory_code_store() -> InMemoryCodeStore:
    return InMemoryCodeStore()


def get_otp_service(db: Session = Depends(get_db)) -> OneTimeCodeService:
    settings = get_settings()
    if settings.code_store_backend == "memory":
        store = get_memory_code_store()
    else:
        store = SqlCodeStore(db)
    return OneTimeCodeService(store, expire_minutes=settings.otp_expire_minutes)


@lru_cache
def get_auth_rate_limiter() -> RateLimiter:
    s = get_settings()
    return RateLimiter(
        s.auth_rate_limit_max_requests,
        s.auth_rate_limit_window_seconds,
        message="Too many authentication attempts, please try again later.",
    )


@lru_cache
def get_otp_send_limiter() -> RateLimiter:
    s = get_settings()
    return RateLimiter(
        s.otp_send_max_per_identifier,
        s.otp_send_window_seconds,
        message="Too many codes requested for this address, please try again later.",
    )


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def auth_rate_limit(request: Request, limiter: RateLimiter = Depends(get_auth_rate_limiter)) -> None:
    """Shared per-IP limit for the auth endpoints that take credentials."""
    limiter.check(f"auth:{client_ip(request)}")
