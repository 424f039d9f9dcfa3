"""Auth route tests: code issuance, registration, login and the shared limiter."""

from app.dependencies import get_auth_rate_limiter, get_otp_send_limiter
from app.models.audit_log import AuditLog
from app.models.one_time_code import OtpChannel
from app.models.user import User, UserRole

PROFILE = {
    "firstName": "Bea",
    "lastName": "Buyer",
    "university": "State University",
    "city": "Springfield",
}


def _register_buyer(client, latest_code, email="bea@campus.edu", username="bea"):
    client.post("/api/auth/send-otp", json={"email": email})
    code = latest_code(email, OtpChannel.email)
    return client.post("/api/auth/register", json={"email": email, "otpCode": code, "username": username, **PROFILE})


# --- Code issuance ------------------------------------------------------------

def test_send_otp_stores_code(client, latest_code):
    resp = client.post("/api/auth/send-otp", json={"email": "Bea@Campus.edu"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "Verification code sent to your email"}
    assert len(latest_code("bea@campus.edu", OtpChannel.email)) == 6


def test_send_whatsapp_otp_normalizes_number(client, latest_code):
    resp = client.post("/api/auth/send-whatsapp-otp", json={"phoneNumber": "+1 555 0001"})
    assert resp.status_code == 200
    assert latest_code("+15550001", OtpChannel.whatsapp).isdigit()


def test_send_otp_rejects_bad_email(client):
    resp = client.post("/api/auth/send-otp", json={"email": "not-an-email"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


def test_send_otp_limited_per_identifier(client, monkeypatch):
    monkeypatch.setattr(get_otp_send_limiter(), "max_requests", 1)
    assert client.post("/api/auth/send-otp", json={"email": "bea@campus.edu"}).status_code == 200
    resp = client.post("/api/auth/send-otp", json={"email": "bea@campus.edu"})
    assert resp.status_code == 429
    assert client.post("/api/auth/send-otp", json={"email": "other@campus.edu"}).status_code == 200


# --- Registration -------------------------------------------------------------

def test_register_buyer_returns_session(client, latest_code, db):
    resp = _register_buyer(client, latest_code)
    assert resp.status_code == 200
    body = resp.json()
    assert body["tokenType"] == "bearer"
    assert body["user"]["email"] == "bea@campus.edu"
    assert body["user"]["role"] == "buyer"
    assert body["user"]["emailVerified"] is True

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['accessToken']}"})
    assert me.status_code == 200
    assert me.json()["username"] == "bea"


def test_register_with_wrong_code(client, latest_code):
    client.post("/api/auth/send-otp", json={"email": "bea@campus.edu"})
    code = latest_code("bea@campus.edu", OtpChannel.email)
    wrong = "000000" if code != "000000" else "111111"
    resp = client.post("/api/auth/register", json={"email": "bea@campus.edu", "otpCode": wrong, "username": "bea", **PROFILE})
    assert resp.status_code == 401
    assert resp.json()["code"] == "otp_invalid_or_expired"


def test_seller_register_duplicate_number(client, latest_code, db):
    client.post("/api/auth/send-whatsapp-otp", json={"phoneNumber": "+15550001"})
    code = latest_code("+15550001", OtpChannel.whatsapp)
    resp = client.post(
        "/api/auth/seller/register",
        json={"whatsappNumber": "+15550001", "whatsappOtpCode": code, "username": "sam", **PROFILE},
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "seller"
    assert resp.json()["user"]["isMerchant"] is True

    client.post("/api/auth/send-whatsapp-otp", json={"phoneNumber": "+15550001"})
    code = latest_code("+15550001", OtpChannel.whatsapp)
    resp = client.post(
        "/api/auth/seller/register",
        json={"whatsappNumber": "+15550001", "whatsappOtpCode": code, "username": "sam2", **PROFILE},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "WhatsApp number already registered"
    assert db.query(User).count() == 1


def test_admin_register_wrong_token(client, db):
    resp = client.post(
        "/api/auth/admin/register",
        json={
            "email": "root@campus.edu",
            "password": "correct-horse",
            "username": "root",
            "firstName": "Ada",
            "lastName": "Admin",
            "inviteToken": "guess",
        },
    )
    assert resp.status_code == 403
    assert db.query(User).count() == 0
    assert db.query(AuditLog).filter(AuditLog.category == "failed_attempt").count() == 1


def test_admin_register_and_password_login(client):
    resp = client.post(
        "/api/auth/admin/register",
        json={
            "email": "root@campus.edu",
            "password": "correct-horse",
            "username": "root",
            "firstName": "Ada",
            "lastName": "Admin",
            "inviteToken": "test-invite-token",
        },
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "admin"

    login = client.post("/api/auth/login", json={"email": "root@campus.edu", "password": "correct-horse"})
    assert login.status_code == 200
    assert login.json()["user"]["role"] == "admin"

    bad = client.post("/api/auth/login", json={"email": "root@campus.edu", "password": "wrong-horse"})
    assert bad.status_code == 401
    assert bad.json()["detail"] == "Invalid credentials"


# --- Login --------------------------------------------------------------------

def test_email_code_login_single_use(client, latest_code):
    _register_buyer(client, latest_code)
    client.post("/api/auth/send-otp", json={"email": "bea@campus.edu"})
    code = latest_code("bea@campus.edu", OtpChannel.email)

    first = client.post("/api/auth/login", json={"email": "bea@campus.edu", "otpCode": code})
    assert first.status_code == 200
    second = client.post("/api/auth/login", json={"email": "bea@campus.edu", "otpCode": code})
    assert second.status_code == 401


def test_login_unknown_account_looks_like_bad_credentials(client, latest_code, db):
    client.post("/api/auth/send-otp", json={"email": "ghost@campus.edu"})
    code = latest_code("ghost@campus.edu", OtpChannel.email)
    resp = client.post("/api/auth/login", json={"email": "ghost@campus.edu", "otpCode": code})
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Invalid credentials", "code": "invalid_credentials"}
    log = db.query(AuditLog).filter(AuditLog.category == "failed_attempt").one()
    assert log.actor_email == "ghost@campus.edu"


def test_login_without_credentials(client):
    resp = client.post("/api/auth/login", json={"email": "bea@campus.edu"})
    assert resp.status_code == 400


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401


def test_me_rejects_garbage_token(client):
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401


# --- Shared limiter -----------------------------------------------------------

def test_auth_endpoints_share_ip_limit(client, monkeypatch):
    monkeypatch.setattr(get_auth_rate_limiter(), "max_requests", 2)
    client.post("/api/auth/send-otp", json={"email": "a@campus.edu"})
    client.post("/api/auth/login", json={"email": "a@campus.edu"})
    resp = client.post("/api/auth/send-otp", json={"email": "b@campus.edu"})
    assert resp.status_code == 429
    assert int(resp.headers["Retry-After"]) > 0
    assert resp.json()["code"] == "rate_limited"


def test_me_is_not_rate_limited(client, make_user, auth_headers, monkeypatch):
    monkeypatch.setattr(get_auth_rate_limiter(), "max_requests", 2)
    headers = auth_headers(make_user())
    statuses = [client.get("/api/auth/me", headers=headers).status_code for _ in range(5)]
    assert statuses == [200] * 5
    # profile reads leave the credential endpoints their full allowance
    assert client.post("/api/auth/send-otp", json={"email": "a@campus.edu"}).status_code == 200
    assert client.post("/api/auth/send-otp", json={"email": "b@campus.edu"}).status_code == 200
    assert client.post("/api/auth/send-otp", json={"email": "c@campus.edu"}).status_code == 429


def test_role_cannot_be_admin_on_member_signup(client, latest_code):
    client.post("/api/auth/send-otp", json={"email": "bea@campus.edu"})
    code = latest_code("bea@campus.edu", OtpChannel.email)
    resp = client.post(
        "/api/auth/register",
        json={"email": "bea@campus.edu", "otpCode": code, "username": "bea", "role": UserRole.admin.value, **PROFILE},
    )
    assert resp.status_code == 400
