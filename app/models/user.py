"""Marketplace users, roles and document-verification state."""
from sqlalchemy import Column, Integer, String, Enum as SQLEnum, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.sql import func
from app.database import Base
import enum


class UserRole(str, enum.Enum):
    buyer = "buyer"
    seller = "seller"
    admin = "admin"


class VerificationStatus(str, enum.Enum):
    unverified = "unverified"
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    whatsapp_number = Column(String(32), unique=True, index=True, nullable=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    # Only admins sign in with a password; buyers and sellers use one-time codes
    hashed_password = Column(String(255), nullable=True)
    # sha256 of the emailed reset token; cleared once used
    password_reset_token = Column(String(64), nullable=True, index=True)
    password_reset_expires = Column(DateTime(timezone=True), nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.buyer)
    is_merchant = Column(Boolean, default=False, nullable=False)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    university = Column(String(255), nullable=False)
    campus = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)

    email_verified = Column(Boolean, default=False, nullable=False)
    whatsapp_verified = Column(Boolean, default=False, nullable=False)

    verification_status = Column(
        SQLEnum(VerificationStatus),
        nullable=False,
        default=VerificationStatus.unverified,
    )
    # Seller-registration document slots
    id_scan_url = Column(String(500), nullable=True)
    face_scan_url = Column(String(500), nullable=True)
    # Buyer-checkout document slots
    buyer_id_scan_url = Column(String(500), nullable=True)
    buyer_face_scan_url = Column(String(500), nullable=True)

    verification_submitted_at = Column(DateTime(timezone=True), nullable=True)
    verification_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    verification_reviewed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    verification_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
