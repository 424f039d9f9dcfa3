"""Root conftest: in-memory SQLite, dependency overrides and user factories.

Invariants:
    - Environment is fixed before any app module is imported
    - Every test gets fresh tables on a single shared in-memory connection
    - Rate limiters and the in-memory code store start empty for every test
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "development"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ADMIN_INVITE_TOKEN"] = "test-invite-token"
os.environ["AUTH_RATE_LIMIT_MAX_REQUESTS"] = "1000"
os.environ["OTP_SEND_MAX_PER_IDENTIFIER"] = "1000"
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")

import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings
from app.database import Base, get_db
from app.dependencies import get_auth_rate_limiter, get_memory_code_store, get_otp_send_limiter
from app.main import app
from app.models.one_time_code import OneTimeCode, OtpChannel
from app.models.user import User, UserRole, VerificationStatus
from app.services.auth import create_access_token, get_password_hash


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_shared_state():
    get_auth_rate_limiter().reset()
    get_otp_send_limiter().reset()
    get_memory_code_store().clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client(session_factory, tmp_path, monkeypatch):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(get_settings(), "upload_dir", str(tmp_path / "uploads"))
    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


_seq = itertools.count(1)


@pytest.fixture
def make_user(db):
    def _make(role=UserRole.buyer, **fields):
        n = next(_seq)
        values = {
            "email": f"user{n}@campus.edu",
            "username": f"user{n}",
            "first_name": "Test",
            "last_name": f"User{n}",
            "university": "State University",
            "city": "Springfield",
            "role": role,
            "is_merchant": role == UserRole.seller,
            "verification_status": VerificationStatus.unverified,
        }
        if role == UserRole.admin:
            values["hashed_password"] = get_password_hash("admin-pass-123")
        values.update(fields)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}

    return _headers


@pytest.fixture
def latest_code(db):
    """Read the stored code for a pair, bypassing the session's identity map."""

    def _code(identifier: str, channel: OtpChannel) -> str:
        db.expire_all()
        row = (
            db.query(OneTimeCode)
            .filter(OneTimeCode.identifier == identifier, OneTimeCode.channel == channel)
            .one()
        )
        return row.code

    return _code
