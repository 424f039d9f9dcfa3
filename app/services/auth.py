"""Session tokens (JWT) and admin password hashing."""
from datetime import datetime, timedelta, timezone
import bcrypt
import jwt
from app.config import get_settings
from app.models.user import UserRole

# bcrypt ignores everything past 72 bytes
_BCRYPT_MAX_BYTES = 72


def _encode_password(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_encode_password(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """False for a missing or malformed hash as well as a mismatch."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_encode_password(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: int, role: UserRole) -> str:
    """Signed bearer token carrying the user id (as `sub`) and role."""
    settings = get_settings()
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role.value,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.jwt_access_token_expire_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token_with_error(token: str) -> tuple[dict | None, str | None]:
    """Returns (claims, None) for a valid token, else (None, reason)."""
    token = (token or "").strip()
    if not token:
        return None, "empty token"
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]), None
    except jwt.PyJWTError as e:
        return None, str(e)
