from datetime import datetime, timedelta

from jose import jwt

from src.api import config
from src.api.auth import create_access_token
from src.api.models import User


def test_register_creates_user(client):
    resp = client.post("/api/auth/register", json={
        "name": "Asha Rao",
        "email": "Asha@Welin.in",
        "mobile": "9876543210",
        "password": "secret123",
        "role": "vendor",
    })
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["email"] == "asha@welin.in"
    assert body["data"]["role"] == "vendor"
    assert "hashed_password" not in body["data"]


def test_register_rejects_agent_role(client):
    resp = client.post("/api/auth/register", json={
        "name": "Agent", "email": "agent@welin.in", "mobile": "9876543210",
        "password": "secret123", "role": "agent",
    })
    assert resp.status_code == 400
    assert resp.json()["status"] == "fail"


def test_register_duplicate_email_and_mobile(client, make_user):
    existing = make_user(role="vendor")
    resp = client.post("/api/auth/register", json={
        "name": "Other", "email": existing.email, "mobile": "7000000001", "password": "secret123",
    })
    assert resp.status_code == 400
    assert resp.json() == {"status": "fail", "message": "User with this email already exists"}

    resp = client.post("/api/auth/register", json={
        "name": "Other", "email": "fresh@welin.in", "mobile": existing.mobile, "password": "secret123",
    })
    assert resp.status_code == 400
    assert resp.json()["message"] == "User with this mobile number already exists"


def test_register_email_taken_by_member(client, make_user, make_member):
    member = make_member(make_user(role="vendor"))
    resp = client.post("/api/auth/register", json={
        "name": "Other", "email": member.email, "mobile": "7000000002", "password": "secret123",
    })
    assert resp.status_code == 400


def test_register_invalid_mobile(client):
    resp = client.post("/api/auth/register", json={
        "name": "Bad", "email": "bad@welin.in", "mobile": "12345", "password": "secret123",
    })
    assert resp.status_code == 400
    assert resp.json()["message"].startswith("Invalid input data")


def test_login_returns_token_and_refreshes_last_login(client, db, make_user):
    user = make_user(role="admin")
    user.last_login = datetime(2020, 1, 1)
    db.commit()

    resp = client.post("/api/auth/login", json={"email": user.email, "password": "secret123"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    claims = jwt.decode(data["token"]["access_token"], config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    assert claims["id"] == user.id
    assert claims["role"] == "admin"
    assert claims["email"] == user.email
    assert claims["exp"] - datetime.now().timestamp() <= 3600 + 5

    db.expire_all()
    assert db.get(User, user.id).last_login > datetime(2020, 1, 1)


def test_login_wrong_password(client, make_user):
    user = make_user()
    resp = client.post("/api/auth/login", json={"email": user.email, "password": "wrong-password"})
    assert resp.status_code == 400
    assert resp.json() == {"status": "fail", "message": "Invalid credentials"}


def test_login_unknown_email(client):
    resp = client.post("/api/auth/login", json={"email": "nobody@welin.in", "password": "whatever"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid credentials"


def test_login_deactivated_user(client, make_user):
    user = make_user(is_active=False)
    resp = client.post("/api/auth/login", json={"email": user.email, "password": "secret123"})
    assert resp.status_code == 401


def test_me_requires_token(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["message"] == "No token, authorization denied"


def test_me_with_token(client, make_user, headers):
    user = make_user(role="vendor")
    resp = client.get("/api/auth/me", headers=headers(user))
    assert resp.status_code == 200
    assert resp.json()["id"] == user.id


def test_expired_token_rejected(client, make_user):
    user = make_user()
    token = create_access_token(
        {"sub": str(user.id), "id": user.id, "role": user.role, "email": user.email},
        expires_delta=timedelta(seconds=-30),
    )
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Your token has expired! Please log in again."


def test_invalid_token_rejected(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid token. Please log in again!"


def test_token_for_deleted_user(client, db, make_user, headers):
    user = make_user()
    auth = headers(user)
    db.delete(user)
    db.commit()
    resp = client.get("/api/auth/me", headers=auth)
    assert resp.status_code == 401
    assert resp.json()["message"] == "User not found"


def test_deactivated_user_token_rejected(client, db, make_user, headers):
    user = make_user()
    auth = headers(user)
    user.is_active = False
    db.commit()
    resp = client.get("/api/auth/me", headers=auth)
    assert resp.status_code == 401
    assert resp.json()["message"] == "User account is deactivated"


def test_member_login_and_profile(client, make_user, make_member):
    member = make_member(make_user(role="vendor"), password="memberpass")
    resp = client.post("/api/auth/member/login", json={"email": member.email, "password": "memberpass"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["welin_id"] == member.welin_id
    token = data["token"]["access_token"]

    claims = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    assert claims["role"] == "member"
    assert claims["welin_id"] == member.welin_id

    resp = client.get("/api/member/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["data"]["product_details"] == []


def test_member_token_cannot_use_back_office_routes(client, make_user, make_member, headers):
    member = make_member(make_user(role="vendor"))
    resp = client.get("/api/member", headers=headers(member))
    assert resp.status_code == 403
