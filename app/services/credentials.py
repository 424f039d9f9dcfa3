"""Credential resolution for login and the three registration paths.

A login body is turned into exactly one credential variant:

    PasswordLogin      email + password         (admins only; others have no password)
    WhatsAppCodeLogin  whatsappNumber + code    (sellers)
    EmailCodeLogin     email + code             (buyers and sellers)

`resolve` dispatches over the closed set; anything else is a programming error.
Admin accounts are never returned by the code paths.
"""
import logging
import secrets
from dataclasses import dataclass
from typing import Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import ConflictError, Forbidden, InvalidCredentials, UserNotFound, ValidationError
from app.models.one_time_code import OtpChannel
from app.models.user import User, UserRole
from app.schemas.auth import AdminRegister, LoginRequest, MemberRegister, SellerRegister
from app.services.auth import get_password_hash, verify_password
from app.services.otp import OneTimeCodeService, normalize_email, normalize_whatsapp_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PasswordLogin:
    email: str
    password: str


@dataclass(frozen=True)
class EmailCodeLogin:
    email: str
    code: str


@dataclass(frozen=True)
class WhatsAppCodeLogin:
    whatsapp_number: str
    code: str


Credential = Union[PasswordLogin, EmailCodeLogin, WhatsAppCodeLogin]


def credential_from_login(data: LoginRequest) -> Credential:
    """Pick the credential variant by which fields are populated, in priority order."""
    email = normalize_email(data.email)
    if email and data.password:
        return PasswordLogin(email=email, password=data.password)
    number = normalize_whatsapp_number(data.whatsapp_number)
    if number and (data.whatsapp_otp_code or "").strip():
        return WhatsAppCodeLogin(whatsapp_number=number, code=data.whatsapp_otp_code.strip())
    if email and (data.otp_code or "").strip():
        return EmailCodeLogin(email=email, code=data.otp_code.strip())
    raise ValidationError("Valid credentials required (email/password, email/code, or WhatsApp/code)")


def get_user_by_email(db: Session, email: str) -> User | None:
    email = normalize_email(email)
    if not email:
        return None
    return db.query(User).filter(User.email == email).first()


def get_user_by_whatsapp(db: Session, number: str) -> User | None:
    number = normalize_whatsapp_number(number)
    if not number:
        return None
    return db.query(User).filter(User.whatsapp_number == number).first()


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.query(User).filter(User.username == username.strip()).first()


class CredentialResolver:
    def __init__(self, db: Session, otp: OneTimeCodeService):
        self.db = db
        self.otp = otp

    def resolve(self, credential: Credential) -> User:
        if isinstance(credential, PasswordLogin):
            return self._resolve_password(credential)
        if isinstance(credential, WhatsAppCodeLogin):
            return self._resolve_whatsapp_code(credential)
        if isinstance(credential, EmailCodeLogin):
            return self._resolve_email_code(credential)
        raise TypeError(f"Unsupported credential type: {type(credential).__name__}")

    def _resolve_password(self, credential: PasswordLogin) -> User:
        user = get_user_by_email(self.db, credential.email)
        if user is None:
            raise InvalidCredentials()
        if not user.hashed_password:
            raise ValidationError("Password sign-in is not available for this account. Use a verification code.")
        if not verify_password(credential.password, user.hashed_password):
            raise InvalidCredentials()
        return user

    def _resolve_whatsapp_code(self, credential: WhatsAppCodeLogin) -> User:
        self.otp.validate(credential.whatsapp_number, OtpChannel.whatsapp, credential.code)
        user = get_user_by_whatsapp(self.db, credential.whatsapp_number)
        if user is None or user.role == UserRole.admin:
            raise UserNotFound()
        user.whatsapp_verified = True
        self.db.commit()
        self.db.refresh(user)
        return user

    def _resolve_email_code(self, credential: EmailCodeLogin) -> User:
        self.otp.validate(credential.email, OtpChannel.email, credential.code)
        user = get_user_by_email(self.db, credential.email)
        if user is None or user.role == UserRole.admin:
            raise UserNotFound()
        user.email_verified = True
        self.db.commit()
        self.db.refresh(user)
        return user

    # Registration

    def _ensure_unique(self, email: str | None, username: str, whatsapp_number: str | None = None) -> None:
        if whatsapp_number and get_user_by_whatsapp(self.db, whatsapp_number):
            raise ConflictError("WhatsApp number already registered")
        if email and get_user_by_email(self.db, email):
            raise ConflictError("Email already exists")
        if get_user_by_username(self.db, username):
            raise ConflictError("Username already exists")

    def _insert(self, user: User) -> User:
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same email/username/number
            self.db.rollback()
            raise ConflictError("An account with these details already exists")
        self.db.refresh(user)
        return user

    def register_member(self, data: MemberRegister) -> User:
        """Buyer or seller signup backed by a fresh email code."""
        code = (data.otp_code or "").strip()
        if not code:
            raise ValidationError("Verification code is required")
        email = normalize_email(data.email)
        self.otp.validate(email, OtpChannel.email, code)
        self._ensure_unique(email, data.username)
        is_seller = data.role == UserRole.seller
        user = User(
            email=email,
            username=data.username,
            first_name=data.first_name,
            last_name=data.last_name,
            university=data.university,
            campus=data.campus or None,
            city=data.city,
            role=data.role,
            is_merchant=is_seller,
            email_verified=True,
        )
        user = self._insert(user)
        logger.info("Registered %s user_id=%s via email code", user.role.value, user.id)
        return user

    def register_seller(self, data: SellerRegister) -> User:
        """Seller signup backed by a fresh WhatsApp code. Role is always seller."""
        number = normalize_whatsapp_number(data.whatsapp_number)
        code = (data.whatsapp_otp_code or "").strip()
        if not number or not code:
            raise ValidationError("WhatsApp verification code is required for seller registration")
        self.otp.validate(number, OtpChannel.whatsapp, code)
        email = normalize_email(data.email) or None
        self._ensure_unique(email, data.username, whatsapp_number=number)
        user = User(
            email=email,
            whatsapp_number=number,
            username=data.username,
            first_name=data.first_name,
            last_name=data.last_name,
            university=data.university,
            campus=data.campus or None,
            city=data.city,
            role=UserRole.seller,
            is_merchant=True,
            whatsapp_verified=True,
        )
        user = self._insert(user)
        logger.info("Registered seller user_id=%s via WhatsApp code", user.id)
        return user

    def register_admin(self, data: AdminRegister) -> User:
        """Admin signup gated by the configured invite secret; never code-based."""
        if not invite_token_valid(data.invite_token):
            raise Forbidden("Invalid invite token. Admin registration requires a valid invitation.")
        email = normalize_email(data.email)
        self._ensure_unique(email, data.username)
        user = User(
            email=email,
            hashed_password=get_password_hash(data.password),
            username=data.username.strip(),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            university="Admin",
            city="Admin",
            role=UserRole.admin,
            is_merchant=False,
            email_verified=True,
        )
        user = self._insert(user)
        logger.info("Registered admin user_id=%s", user.id)
        return user


def invite_token_valid(candidate: str | None) -> bool:
    secret = get_settings().admin_invite_token
    if not secret:
        return False
    return secrets.compare_digest((candidate or "").strip().encode("utf-8"), secret.encode("utf-8"))
