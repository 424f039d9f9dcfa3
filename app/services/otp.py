"""One-time codes: issue and validate single-use, time-boxed codes per (identifier, channel)."""
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable

from app.errors import OtpInvalidOrExpired, ValidationError
from app.models.one_time_code import OtpChannel
from app.services.code_store import CodeRecord, CodeStore

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
DEFAULT_EXPIRE_MINUTES = 15


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def normalize_whatsapp_number(value: str | None) -> str:
    """Keep digits and a leading '+', e.g. '+1 (555) 000-1' -> '+15550001'."""
    s = (value or "").strip()
    digits = re.sub(r"\D", "", s)
    if not digits:
        return ""
    return f"+{digits}"


def normalize_identifier(identifier: str | None, channel: OtpChannel) -> str:
    if channel == OtpChannel.email:
        return normalize_email(identifier)
    return normalize_whatsapp_number(identifier)


class OneTimeCodeService:
    """Issues codes into a CodeStore and validates them exactly once.

    Issuing for a pair that already has a code replaces it, so only the most
    recently issued code for a pair can ever validate.
    """

    def __init__(
        self,
        store: CodeStore,
        expire_minutes: int = DEFAULT_EXPIRE_MINUTES,
        code_factory: Callable[[], str] = generate_code,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.expire_minutes = expire_minutes
        self.code_factory = code_factory
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def issue(self, identifier: str, channel: OtpChannel) -> str:
        key = normalize_identifier(identifier, channel)
        if not key:
            raise ValidationError("Email is required" if channel == OtpChannel.email else "Phone number is required")
        now = self.clock()
        code = self.code_factory()
        self.store.put(
            CodeRecord(
                identifier=key,
                channel=channel,
                code=code,
                created_at=now,
                expires_at=now + timedelta(minutes=self.expire_minutes),
            )
        )
        logger.info("Issued %s code for %s", channel.value, key)
        return code

    def validate(self, identifier: str, channel: OtpChannel, candidate: str) -> None:
        """Consume the pair's live code if it equals `candidate`, else raise OtpInvalidOrExpired."""
        key = normalize_identifier(identifier, channel)
        candidate = (candidate or "").strip()
        now = self.clock()
        record = self.store.get(key, channel) if key else None
        # Compare against a dummy when there is no record so every failure takes the same path
        expected = record.code if record is not None else "0" * CODE_LENGTH
        matches = secrets.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))
        if record is None or not matches or not record.is_live(now):
            logger.info("Rejected %s code for %s", channel.value, key or "(empty)")
            raise OtpInvalidOrExpired()
        if not self.store.consume(key, channel, record.code, now):
            # Lost a race with another validate or a re-issue
            logger.info("Concurrent use of %s code for %s rejected", channel.value, key)
            raise OtpInvalidOrExpired()

    def purge_expired(self) -> int:
        return self.store.purge(self.clock())
