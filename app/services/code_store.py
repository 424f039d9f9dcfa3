"""Keyed storage for one-time codes, scoped by (identifier, channel).

Two backends share one contract:
  - SqlCodeStore: the one_time_codes table; safe across several app instances.
  - InMemoryCodeStore: a locked dict for single-process deployments and tests.

Every store keeps at most one record per pair. `put` replaces it outright and
`consume` is a compare-and-set on (code, not consumed, not expired), so only
one caller can ever consume a given code.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.one_time_code import OneTimeCode, OtpChannel


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored here is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class CodeRecord:
    identifier: str
    channel: OtpChannel
    code: str
    created_at: datetime
    expires_at: datetime
    consumed: bool = False

    def is_live(self, now: datetime) -> bool:
        return not self.consumed and as_utc(self.expires_at) > now


class CodeStore(Protocol):
    def put(self, record: CodeRecord) -> None:
        """Store `record`, replacing any earlier record for the same pair."""

    def get(self, identifier: str, channel: OtpChannel) -> CodeRecord | None:
        ...

    def consume(self, identifier: str, channel: OtpChannel, code: str, now: datetime) -> bool:
        """Atomically mark the pair's code consumed if it still equals `code`,
        is unconsumed and unexpired. Returns True only for the winning caller."""

    def purge(self, now: datetime) -> int:
        """Drop consumed or expired records; returns how many were removed."""


class InMemoryCodeStore:
    def __init__(self) -> None:
        self._records: dict[tuple[str, OtpChannel], CodeRecord] = {}
        self._lock = threading.Lock()

    def put(self, record: CodeRecord) -> None:
        with self._lock:
            self._records[(record.identifier, record.channel)] = record

    def get(self, identifier: str, channel: OtpChannel) -> CodeRecord | None:
        with self._lock:
            return self._records.get((identifier, channel))

    def consume(self, identifier: str, channel: OtpChannel, code: str, now: datetime) -> bool:
        key = (identifier, channel)
        with self._lock:
            record = self._records.get(key)
            if record is None or record.code != code or not record.is_live(now):
                return False
            self._records[key] = replace(record, consumed=True)
            return True

    def purge(self, now: datetime) -> int:
        with self._lock:
            stale = [key for key, record in self._records.items() if not record.is_live(now)]
            for key in stale:
                del self._records[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class SqlCodeStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _overwrite(self, record: CodeRecord) -> int:
        result = self.db.execute(
            update(OneTimeCode)
            .where(OneTimeCode.identifier == record.identifier, OneTimeCode.channel == record.channel)
            .values(
                code=record.code,
                created_at=record.created_at,
                expires_at=record.expires_at,
                consumed=False,
                consumed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def put(self, record: CodeRecord) -> None:
        if self._overwrite(record):
            self.db.commit()
            return
        self.db.add(
            OneTimeCode(
                identifier=record.identifier,
                channel=record.channel,
                code=record.code,
                created_at=record.created_at,
                expires_at=record.expires_at,
                consumed=False,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent issuance inserted the row first; last writer wins
            self.db.rollback()
            self._overwrite(record)
            self.db.commit()

    def get(self, identifier: str, channel: OtpChannel) -> CodeRecord | None:
        row = (
            self.db.query(OneTimeCode)
            .filter(OneTimeCode.identifier == identifier, OneTimeCode.channel == channel)
            .first()
        )
        if row is None:
            return None
        return CodeRecord(
            identifier=row.identifier,
            channel=row.channel,
            code=row.code,
            created_at=as_utc(row.created_at),
            expires_at=as_utc(row.expires_at),
            consumed=bool(row.consumed),
        )

    def consume(self, identifier: str, channel: OtpChannel, code: str, now: datetime) -> bool:
        result = self.db.execute(
            update(OneTimeCode)
            .where(
                OneTimeCode.identifier == identifier,
                OneTimeCode.channel == channel,
                OneTimeCode.code == code,
                OneTimeCode.consumed.is_(False),
                OneTimeCode.expires_at > now,
            )
            .values(consumed=True, consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def purge(self, now: datetime) -> int:
        result = self.db.execute(
            delete(OneTimeCode)
            .where(or_(OneTimeCode.consumed.is_(True), OneTimeCode.expires_at <= now))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount
