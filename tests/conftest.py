from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from auth import hash_password, token_for
from database import create_document, get_db, to_object_id, utcnow
from main import app
from schemas import Category, Product, User


@pytest.fixture
def db():
    return mongomock.MongoClient()["tryon_test"]


@pytest.fixture
def client(db, monkeypatch):
    # keep startup hooks away from any real database
    monkeypatch.setattr(database, "db", None)
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(db, email="shopper@example.com", password="secret123", **extra):
    user = User(name=extra.pop("name", "Shopper"), email=email, password_hash=hash_password(password), **extra)
    user_id = create_document(db, "user", user)
    return db["user"].find_one({"_id": to_object_id(user_id)})


def make_category(db, name="Casual", **extra):
    slug = name.lower().replace(" ", "-")
    return create_document(db, "category", Category(name=name, slug=slug, **extra))


def make_product(db, category_id, name="Linen Shirt", price=1000.0, **extra):
    category = db["category"].find_one({"_id": to_object_id(category_id)})
    product = Product(
        name=name,
        description=extra.pop("description", f"{name} description"),
        category=category_id,
        category_name=category["name"],
        price=price,
        stock=extra.pop("stock", 20),
        **extra,
    )
    return create_document(db, "product", product)


def make_coupon(db, code="SAVE10", days_valid=30, **extra):
    now = utcnow()
    data = {
        "code": code,
        "discount_type": "percentage",
        "discount_value": 10,
        "min_purchase_amount": 0,
        "max_discount_amount": None,
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=days_valid),
        "usage_limit": None,
        "used_count": 0,
        "usage_limit_per_user": 1,
        "applicable_categories": [],
        "is_active": True,
    }
    data.update(extra)
    return create_document(db, "coupon", data)


def auth_header(user) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, email="boss@example.com", name="Boss", is_admin=True)


@pytest.fixture
def user_headers(user):
    return auth_header(user)


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)
