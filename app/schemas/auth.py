"""Auth, registration and login schemas."""
import re
from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from app.models.user import UserRole, VerificationStatus

PHONE_MIN_DIGITS = 7
PHONE_MAX_DIGITS = 15


def _validate_phone_digits(phone: str) -> None:
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        raise ValueError("Phone number is required.")
    if len(digits) < PHONE_MIN_DIGITS:
        raise ValueError(f"Phone number must have at least {PHONE_MIN_DIGITS} digits.")
    if len(digits) > PHONE_MAX_DIGITS:
        raise ValueError(f"Phone number cannot exceed {PHONE_MAX_DIGITS} digits.")


class CamelModel(BaseModel):
    """Accepts camelCase (web client) and snake_case field names; responds in camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class SendOtpRequest(CamelModel):
    email: EmailStr


class SendWhatsAppOtpRequest(CamelModel):
    phone_number: str

    @field_validator("phone_number")
    @classmethod
    def phone_valid(cls, v: str) -> str:
        _validate_phone_digits(v)
        return v.strip()


class _Profile(CamelModel):
    username: str = Field(min_length=3, max_length=100)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    university: str = Field(min_length=1, max_length=255)
    campus: str | None = None
    city: str = Field(min_length=1, max_length=100)

    @field_validator("username", "first_name", "last_name", "university", "city")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("This field is required.")
        return v


class MemberRegister(_Profile):
    """Buyer or seller signup proven by an email code."""
    email: EmailStr
    role: UserRole = UserRole.buyer
    otp_code: str = ""

    @field_validator("role")
    @classmethod
    def role_not_admin(cls, v: UserRole) -> UserRole:
        if v == UserRole.admin:
            raise ValueError("Admin accounts require an invitation.")
        return v


class SellerRegister(_Profile):
    """Seller signup proven by a WhatsApp code."""
    whatsapp_number: str = ""
    whatsapp_otp_code: str = ""
    email: EmailStr | None = None


class AdminRegister(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8)
    username: str = Field(min_length=3, max_length=100)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    invite_token: str


class LoginRequest(CamelModel):
    """Any one of: email+password, email+otpCode, whatsappNumber+whatsappOtpCode."""
    email: EmailStr | None = None
    password: str | None = None
    otp_code: str | None = None
    whatsapp_number: str | None = None
    whatsapp_otp_code: str | None = None


class UserResponse(CamelModel):
    id: int
    email: str | None = None
    whatsapp_number: str | None = None
    username: str
    first_name: str
    last_name: str
    university: str
    campus: str | None = None
    city: str
    role: UserRole
    is_merchant: bool = False
    email_verified: bool = False
    whatsapp_verified: bool = False
    verification_status: VerificationStatus = VerificationStatus.unverified


class Token(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class MessageResponse(CamelModel):
    message: str


class PasswordResetRequest(CamelModel):
    email: EmailStr


class PasswordReset(CamelModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class ResetTokenStatus(CamelModel):
    message: str
    valid: bool
