"""One-time code tests: issue/validate semantics over both store backends.

Tests cover:
    - Single use (a code validates at most once)
    - Expiry at the configured lifetime
    - Re-issue supersedes the earlier code
    - Identifier normalization
    - Concurrent validation of one code
    - Purging consumed and expired records
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.errors import OtpInvalidOrExpired, ValidationError
from app.models.one_time_code import OneTimeCode, OtpChannel
from app.services.code_store import InMemoryCodeStore, SqlCodeStore
from app.services.otp import (
    OneTimeCodeService,
    generate_code,
    normalize_email,
    normalize_whatsapp_number,
)


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _codes(*values):
    it = iter(values)
    return lambda: next(it)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sql"])
def store(request, db):
    if request.param == "memory":
        return InMemoryCodeStore()
    return SqlCodeStore(db)


# --- Code generation and normalization ----------------------------------------

def test_generated_code_is_six_digits():
    for _ in range(50):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_normalize_email_lowercases_and_strips():
    assert normalize_email("  Alice@U.EDU ") == "alice@u.edu"
    assert normalize_email(None) == ""


def test_normalize_whatsapp_number_keeps_digits_with_plus():
    assert normalize_whatsapp_number("+1 (555) 000-1") == "+15550001"
    assert normalize_whatsapp_number("15550001") == "+15550001"
    assert normalize_whatsapp_number("  ") == ""


# --- Issue / validate ---------------------------------------------------------

def test_code_validates_once(store, clock):
    otp = OneTimeCodeService(store, code_factory=_codes("123456"), clock=clock)
    otp.issue("alice@u.edu", OtpChannel.email)

    otp.validate("alice@u.edu", OtpChannel.email, "123456")
    with pytest.raises(OtpInvalidOrExpired):
        otp.validate("alice@u.edu", OtpChannel.email, "123456")


def test_wrong_code_does_not_consume(store, clock):
    otp = OneTimeCodeService(store, code_factory=_codes("123456"), clock=clock)
    otp.issue("alice@u.edu", OtpChannel.email)

    with pytest.raises(OtpInvalidOrExpired):
        otp.validate("alice@u.edu", OtpChannel.email, "654321")
    otp.validate("alice@u.edu", OtpChannel.email, "123456")


def test_code_expires(store, clock):
    otp = OneTimeCodeService(store, expire_minutes=15, code_factory=_codes("123456"), clock=clock)
    otp.issue("alice@u.edu", OtpChannel.email)

    clock.advance(minutes=15, seconds=1)
    with pytest.raises(OtpInvalidOrExpired):
        otp.validate("alice@u.edu", OtpChannel.email, "123456")


def test_code_valid_just_before_expiry(store, clock):
    otp = OneTimeCodeService(store, expire_minutes=15, code_factory=_codes("123456"), clock=clock)
    otp.issue("alice@u.edu", OtpChannel.email)

    clock.advance(minutes=14, seconds=59)
    otp.validate("alice@u.edu", OtpChannel.email, "123456")


def test_reissue_supersedes_previous_code(store, clock):
    otp = OneTimeCodeService(store, code_factory=_codes("111111", "222222"), clock=clock)
    otp.issue("alice@u.edu", OtpChannel.email)
    otp.issue("alice@u.edu", OtpChannel.email)

    with pytest.raises(OtpInvalidOrExpired):
        otp.validate("alice@u.edu", OtpChannel.email, "111111")
    otp.validate("alice@u.edu", OtpChannel.email, "222222")


def test_reissue_after_consumption_yields_fresh_code(store, clock):
    otp = OneTimeCodeService(store, code_factory=_codes("111111", "111111"), clock=clock)
    otp.issue("alice@u.edu", OtpChannel.email)
    otp.validate("alice@u.edu", OtpChannel.email, "111111")

    otp.issue("alice@u.edu", OtpChannel.email)
    otp.validate("alice@u.edu", OtpChannel.email, "111111")


def test_identifier_is_normalized(store, clock):
    otp = OneTimeCodeService(store, code_factory=_codes("123456"), clock=clock)
    otp.issue("  Alice@U.edu ", OtpChannel.email)
    otp.validate("alice@u.edu", OtpChannel.email, "123456")


def test_channels_are_separate(store, clock):
    otp = OneTimeCodeService(store, code_factory=_codes("123456"), clock=clock)
    otp.issue("+15550001", OtpChannel.whatsapp)

    with pytest.raises(OtpInvalidOrExpired):
        otp.validate("+15550001", OtpChannel.email, "123456")


def test_unknown_identifier_rejected(store, clock):
    otp = OneTimeCodeService(store, clock=clock)
    with pytest.raises(OtpInvalidOrExpired):
        otp.validate("nobody@u.edu", OtpChannel.email, "000000")


def test_empty_identifier_cannot_be_issued(store, clock):
    otp = OneTimeCodeService(store, clock=clock)
    with pytest.raises(ValidationError):
        otp.issue("   ", OtpChannel.email)


# --- Concurrency --------------------------------------------------------------

def test_concurrent_validation_has_one_winner(clock):
    store = InMemoryCodeStore()
    otp = OneTimeCodeService(store, code_factory=_codes("123456"), clock=clock)
    otp.issue("alice@u.edu", OtpChannel.email)

    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    lock = threading.Lock()

    def attempt():
        barrier.wait()
        try:
            otp.validate("alice@u.edu", OtpChannel.email, "123456")
            outcome = True
        except OtpInvalidOrExpired:
            outcome = False
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert results.count(False) == workers - 1


def test_sql_consume_is_compare_and_set(db, clock):
    store = SqlCodeStore(db)
    otp = OneTimeCodeService(store, code_factory=_codes("123456"), clock=clock)
    otp.issue("alice@u.edu", OtpChannel.email)

    assert store.consume("alice@u.edu", OtpChannel.email, "123456", clock()) is True
    assert store.consume("alice@u.edu", OtpChannel.email, "123456", clock()) is False


def test_sql_store_keeps_one_row_per_pair(db, clock):
    otp = OneTimeCodeService(SqlCodeStore(db), code_factory=_codes("111111", "222222", "333333"), clock=clock)
    for _ in range(3):
        otp.issue("alice@u.edu", OtpChannel.email)

    rows = db.query(OneTimeCode).filter(OneTimeCode.identifier == "alice@u.edu").all()
    assert len(rows) == 1
    assert rows[0].code == "333333"


# --- Purge --------------------------------------------------------------------

def test_purge_removes_consumed_and_expired(store, clock):
    otp = OneTimeCodeService(store, expire_minutes=15, code_factory=_codes("111111", "222222", "333333"), clock=clock)
    otp.issue("used@u.edu", OtpChannel.email)
    otp.validate("used@u.edu", OtpChannel.email, "111111")
    otp.issue("old@u.edu", OtpChannel.email)
    clock.advance(minutes=10)
    otp.issue("fresh@u.edu", OtpChannel.email)
    clock.advance(minutes=6)

    assert otp.purge_expired() == 2
    assert store.get("fresh@u.edu", OtpChannel.email) is not None
    assert store.get("old@u.edu", OtpChannel.email) is None
