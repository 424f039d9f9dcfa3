"""One-time verification codes, one row per (identifier, channel)."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base
import enum


class OtpChannel(str, enum.Enum):
    email = "email"
    whatsapp = "whatsapp"


class OneTimeCode(Base):
    __tablename__ = "one_time_codes"
    __table_args__ = (UniqueConstraint("identifier", "channel", name="uq_one_time_codes_identifier_channel"),)

    id = Column(Integer, primary_key=True, index=True)
    identifier = Column(String(255), nullable=False, index=True)  # normalized email or WhatsApp number
    channel = Column(SQLEnum(OtpChannel), nullable=False)
    code = Column(String(10), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    consumed = Column(Boolean, default=False, nullable=False)
    consumed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
