from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import config
import database
from conftest import auth_header, make_category, make_coupon, make_product, make_user
from database import utcnow
from main import app
from test_orders import checkout


# ----------------------- Users -----------------------
def test_list_users_excludes_admins_and_paginates(client, db, admin_headers):
    for i in range(3):
        make_user(db, email=f"user{i}@example.com", name=f"User {i}")

    data = client.get("/api/admin/users", params={"limit": 2}, headers=admin_headers).json()
    assert data["pagination"]["total"] == 3
    assert data["pagination"]["has_next"] is True
    assert len(data["users"]) == 2
    assert all("password_hash" not in u for u in data["users"])

    found = client.get("/api/admin/users", params={"search": "user1"}, headers=admin_headers).json()
    assert [u["email"] for u in found["users"]] == ["user1@example.com"]


def test_block_toggle(client, db, user, admin_headers, user_headers):
    response = client.patch(f"/api/admin/users/{user['_id']}/block", headers=admin_headers)
    assert response.json()["user"]["is_blocked"] is True
    assert client.get("/api/auth/me", headers=user_headers).status_code == 403

    client.patch(f"/api/admin/users/{user['_id']}/block", headers=admin_headers)
    assert client.get("/api/auth/me", headers=user_headers).status_code == 200


def test_admin_cannot_be_deleted(client, db, admin, user, admin_headers):
    response = client.delete(f"/api/admin/users/{admin['_id']}", headers=admin_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Cannot delete admin user"

    assert client.delete(f"/api/admin/users/{user['_id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/admin/users/{user['_id']}", headers=admin_headers).status_code == 404


def test_create_and_update_user(client, db, admin_headers):
    created = client.post(
        "/api/admin/users",
        json={"name": "New", "email": "new@example.com", "password": "secret123"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    user_id = created.json()["user"]["id"]

    updated = client.put(f"/api/admin/users/{user_id}", json={"is_active": False}, headers=admin_headers).json()
    assert updated["user"]["is_active"] is False

    stats = client.get("/api/admin/users/stats", headers=admin_headers).json()
    assert stats["total_users"] == 1
    assert stats["active_users"] == 0


# ----------------------- Orders -----------------------
@pytest.fixture
def order_id(client, db, user_headers):
    product = make_product(db, make_category(db, "Casual"), "Shirt", price=700)
    return checkout(client, user_headers, [{"product_id": product, "quantity": 2}]).json()["id"]


def test_order_status_updates(client, db, order_id, user, admin_headers):
    bad = client.patch(f"/api/admin/orders/{order_id}/status", json={"status": "lost"}, headers=admin_headers)
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Invalid order status"

    ok = client.patch(
        f"/api/admin/orders/{order_id}/status",
        json={"status": "confirmed", "notes": "called customer"},
        headers=admin_headers,
    )
    assert ok.json()["order"]["status"] == "confirmed"
    assert ok.json()["order"]["notes"] == "called customer"
    summary = db["userdetails"].find_one({"user_id": str(user["_id"])})["orders"][0]
    assert summary["status"] == "confirmed"

    paid = client.patch(
        f"/api/admin/orders/{order_id}/payment-status", json={"payment_status": "paid"}, headers=admin_headers
    )
    assert paid.json()["order"]["payment_status"] == "paid"
    assert client.patch(
        f"/api/admin/orders/{order_id}/payment-status", json={"payment_status": "maybe"}, headers=admin_headers
    ).status_code == 400


def test_order_list_stats_and_by_users(client, db, order_id, user, admin_headers):
    listing = client.get("/api/admin/orders", headers=admin_headers).json()
    assert listing["pagination"]["total"] == 1
    assert listing["orders"][0]["customer"]["email"] == user["email"]

    client.patch(f"/api/admin/orders/{order_id}/payment-status", json={"payment_status": "paid"}, headers=admin_headers)
    stats = client.get("/api/admin/orders/stats", headers=admin_headers).json()
    assert stats["total_orders"] == 1
    assert stats["pending_orders"] == 1
    assert stats["total_revenue"] == 1400

    by_users = client.get("/api/admin/orders/by-users", headers=admin_headers).json()
    assert by_users[0]["user_id"] == str(user["_id"])
    assert by_users[0]["order_count"] == 1
    assert by_users[0]["total_spent"] == 1400


def test_dashboard_and_analytics(client, db, order_id, admin_headers):
    client.patch(f"/api/admin/orders/{order_id}/payment-status", json={"payment_status": "paid"}, headers=admin_headers)

    overview = client.get("/api/admin/dashboard/overview", headers=admin_headers).json()
    assert overview["summary"]["total_orders"] == 1
    assert overview["summary"]["total_revenue"] == 1400
    assert overview["summary"]["total_users"] == 1
    assert overview["trending_products"][0]["total_sold"] == 2
    assert overview["order_status_breakdown"] == {"pending": 1}
    assert len(overview["sales_trend"]) == 1

    analytics = client.get("/api/admin/analytics/sales", params={"period": "week"}, headers=admin_headers).json()
    assert analytics["summary"]["total_revenue"] == 1400
    assert analytics["top_products"][0]["name"] == "Shirt"
    assert analytics["sales"][0]["orders"] == 1


# ----------------------- Coupons -----------------------
def test_coupon_window_is_validated_on_create(client, admin_headers):
    now = utcnow()
    body = {
        "code": "late",
        "discount_type": "fixed",
        "discount_value": 100,
        "valid_from": (now + timedelta(days=5)).isoformat(),
        "valid_until": now.isoformat(),
    }
    response = client.post("/api/admin/coupons", json=body, headers=admin_headers)
    assert response.status_code == 400

    body["valid_until"] = (now + timedelta(days=10)).isoformat()
    created = client.post("/api/admin/coupons", json=body, headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["coupon"]["code"] == "LATE"

    duplicate = client.post("/api/admin/coupons", json=body, headers=admin_headers)
    assert duplicate.status_code == 400


def test_coupon_outside_window_is_rejected(client, db, user_headers):
    now = utcnow()
    make_coupon(db, "FUTURE", valid_from=now + timedelta(days=1), valid_until=now + timedelta(days=5))
    make_coupon(db, "PAST", valid_from=now - timedelta(days=5), valid_until=now - timedelta(days=1))
    make_coupon(db, "NOW", discount_type="fixed", discount_value=75)

    for code in ("FUTURE", "PAST"):
        response = client.post("/api/coupons/validate", json={"code": code, "amount": 1000}, headers=user_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Coupon is not valid at this time"

    ok = client.post("/api/coupons/validate", json={"code": "now", "amount": 1000}, headers=user_headers)
    assert ok.json()["discount"] == 75
    assert client.post(
        "/api/coupons/validate", json={"code": "NOPE", "amount": 1000}, headers=user_headers
    ).status_code == 404


def test_coupon_minimum_and_usage_limit(client, db, user_headers):
    make_coupon(db, "BIG", min_purchase_amount=2000)
    make_coupon(db, "USEDUP", usage_limit=5, used_count=5)
    assert client.post("/api/coupons/validate", json={"code": "BIG", "amount": 1000}, headers=user_headers).status_code == 400
    used = client.post("/api/coupons/validate", json={"code": "USEDUP", "amount": 1000}, headers=user_headers)
    assert used.json()["detail"] == "Coupon usage limit reached"


def test_used_coupon_is_deactivated_not_deleted(client, db, user_headers, admin_headers):
    coupon_id = make_coupon(db, "USED")
    unused_id = make_coupon(db, "UNUSED")
    product = make_product(db, make_category(db, "Casual"), price=500)
    checkout(client, user_headers, [{"product_id": product}], coupon_code="USED")

    response = client.delete(f"/api/admin/coupons/{coupon_id}", headers=admin_headers)
    assert response.json()["coupon"]["is_active"] is False
    assert client.delete(f"/api/admin/coupons/{unused_id}", headers=admin_headers).status_code == 200
    assert db["coupon"].count_documents({}) == 1

    expired = client.get("/api/admin/coupons", params={"is_active": "false"}, headers=admin_headers).json()
    assert [c["code"] for c in expired] == ["USED"]



def test_coupon_update_ignores_null_fields(client, db, admin_headers):
    coupon_id = make_coupon(db, "KEEP")
    response = client.put(
        f"/api/admin/coupons/{coupon_id}",
        json={"discount_type": None, "discount_value": 15},
        headers=admin_headers,
    )
    assert response.status_code == 200
    coupon = response.json()["coupon"]
    assert coupon["discount_type"] == "percentage"
    assert coupon["discount_value"] == 15


# ----------------------- Notifications -----------------------
def test_notification_targets_must_exist(client, admin_headers):
    body = {"title": "Hi", "message": "Hello", "target_audience": "specific_users", "target_users": ["64b7f0c2a1b2c3d4e5f60718"]}
    response = client.post("/api/admin/notifications", json=body, headers=admin_headers)
    assert response.status_code == 400


def test_notifications_reach_the_right_users(client, db, user, user_headers, admin_headers):
    other = make_user(db, email="other@example.com")
    casual = make_category(db, "Casual")
    product = make_product(db, casual)
    client.post(f"/api/products/{product}/view", headers=user_headers)

    posts = [
        {"title": "Everyone", "message": "Sale"},
        {"title": "Just you", "message": "Hi", "target_audience": "specific_users", "target_users": [str(user["_id"])]},
        {"title": "Only other", "message": "Hi", "target_audience": "specific_users", "target_users": [str(other["_id"])]},
        {"title": "Casual fans", "message": "New tees", "target_audience": "category_based", "target_categories": [casual]},
        {"title": "Later", "message": "Soon", "scheduled_at": (utcnow() + timedelta(days=1)).isoformat()},
        {"title": "Gone", "message": "Over", "expires_at": (utcnow() - timedelta(days=1)).isoformat()},
    ]
    for body in posts:
        assert client.post("/api/admin/notifications", json=body, headers=admin_headers).status_code == 201

    mine = client.get("/api/notifications", headers=user_headers).json()
    assert sorted(n["title"] for n in mine) == ["Casual fans", "Everyone", "Just you"]
    assert not any(n["is_read"] for n in mine)

    target = mine[0]["id"]
    client.post(f"/api/notifications/{target}/read", headers=user_headers)
    client.post(f"/api/notifications/{target}/read", headers=user_headers)
    mine = client.get("/api/notifications", headers=user_headers).json()
    assert [n["is_read"] for n in mine if n["id"] == target] == [True]

    stats = client.get("/api/admin/notifications/stats", headers=admin_headers).json()
    assert stats["total"] == 6
    assert stats["scheduled"] == 1
    assert stats["total_reads"] == 1

    others = client.get("/api/notifications", headers=auth_header(other)).json()
    assert sorted(n["title"] for n in others) == ["Everyone", "Only other"]


# ----------------------- Seed -----------------------
def test_startup_builds_indexes_and_seeds(db, monkeypatch):
    monkeypatch.setattr(database, "db", db)
    monkeypatch.setattr(config, "AUTO_SEED", True)
    with TestClient(app) as c:
        assert c.get("/").status_code == 200
    assert "email_1" in db["user"].index_information()
    assert db["category"].count_documents({}) == 6
    assert db["user"].find_one({"email": config.ADMIN_EMAIL})["is_admin"] is True


def test_seed_is_idempotent(client, db):
    first = client.post("/api/seed").json()
    assert first["categories"] == 6
    assert first["admin_created"] is True
    products = db["product"].count_documents({})
    assert products > 0

    second = client.post("/api/seed").json()
    assert second["seeded"] is False
    assert db["product"].count_documents({}) == products
    assert db["category"].count_documents({}) == 6

    admin = db["user"].find_one({"email": config.ADMIN_EMAIL})
    assert admin["is_admin"] is True
    login = client.post("/api/admin/login", json={"email": config.ADMIN_EMAIL, "password": config.ADMIN_PASSWORD})
    assert login.status_code == 200
