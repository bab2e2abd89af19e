from auth import create_token
from conftest import auth_header, make_user


def test_signup_returns_token_and_user(client, db):
    response = client.post("/api/auth/signup", json={"name": "Asha", "email": "Asha@Example.com", "password": "secret123"})
    assert response.status_code == 201
    data = response.json()
    assert data["token"]
    assert data["user"]["email"] == "asha@example.com"
    assert data["user"]["is_admin"] is False
    stored = db["user"].find_one({"email": "asha@example.com"})
    assert stored["password_hash"] != "secret123"


def test_signup_rejects_duplicate_email(client, user):
    response = client.post("/api/auth/signup", json={"name": "Again", "email": user["email"], "password": "secret123"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Email already registered"


def test_login_with_valid_and_invalid_password(client, user):
    ok = client.post("/api/auth/login", json={"email": user["email"], "password": "secret123"})
    assert ok.status_code == 200
    assert ok.json()["user"]["id"] == str(user["_id"])

    bad = client.post("/api/auth/login", json={"email": user["email"], "password": "wrong-pass"})
    assert bad.status_code == 401


def test_me_requires_token(client, user_headers):
    assert client.get("/api/auth/me").status_code == 401
    response = client.get("/api/auth/me", headers=user_headers)
    assert response.status_code == 200
    assert "password_hash" not in response.json()


def test_invalid_token_is_rejected(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_token_with_malformed_user_id_is_unauthorized(client):
    token = create_token({"id": "not-an-object-id", "email": "ghost@example.com", "is_admin": False})
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token payload"


def test_blocked_user_is_forbidden(client, db):
    blocked = make_user(db, email="blocked@example.com", is_blocked=True)
    assert client.get("/api/auth/me", headers=auth_header(blocked)).status_code == 403
    login = client.post("/api/auth/login", json={"email": "blocked@example.com", "password": "secret123"})
    assert login.status_code == 403


def test_admin_routes_reject_regular_users(client, user_headers):
    response = client.get("/api/admin/me", headers=user_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied. Admin privileges required."


def test_admin_login(client, admin, user):
    ok = client.post("/api/admin/login", json={"email": admin["email"], "password": "secret123"})
    assert ok.status_code == 200
    assert ok.json()["user"]["is_admin"] is True

    not_admin = client.post("/api/admin/login", json={"email": user["email"], "password": "secret123"})
    assert not_admin.status_code == 403

    wrong = client.post("/api/admin/login", json={"email": admin["email"], "password": "nope-nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid email or password"
