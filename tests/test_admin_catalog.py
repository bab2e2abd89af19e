from conftest import make_category, make_product


def test_create_category_generates_slug(client, admin_headers):
    response = client.post("/api/admin/categories", json={"name": "  Street Wear & More "}, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["category"]["slug"] == "street-wear-more"

    duplicate = client.post("/api/admin/categories", json={"name": "Street Wear & More"}, headers=admin_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Category with this name already exists"


def test_category_parent_rules(client, db, admin_headers):
    missing = client.post(
        "/api/admin/categories",
        json={"name": "Kids", "parent_category": "64b7f0c2a1b2c3d4e5f60718"},
        headers=admin_headers,
    )
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Parent category not found"

    parent = make_category(db, "Casual")
    child = client.post("/api/admin/categories", json={"name": "Tees", "parent_category": parent}, headers=admin_headers)
    assert child.json()["category"]["parent_category"]["name"] == "Casual"

    own = client.put(f"/api/admin/categories/{parent}", json={"parent_category": parent}, headers=admin_headers)
    assert own.status_code == 400
    assert own.json()["detail"] == "Category cannot be its own parent"

    roots = client.get("/api/admin/categories", params={"parent_category": "null"}, headers=admin_headers).json()
    assert [c["name"] for c in roots] == ["Casual"]


def test_delete_category_guarded_by_products(client, db, admin_headers):
    empty = make_category(db, "Empty")
    assert client.delete(f"/api/admin/categories/{empty}", headers=admin_headers).status_code == 200
    assert db["category"].count_documents({}) == 0

    used = make_category(db, "Used")
    make_product(db, used)
    response = client.delete(f"/api/admin/categories/{used}", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot delete category. 1 product(s) are associated with this category."


def test_delete_category_guarded_by_subcategories(client, db, admin_headers):
    parent = make_category(db, "Parent")
    make_category(db, "Child", parent_category=parent)
    response = client.delete(f"/api/admin/categories/{parent}", headers=admin_headers)
    assert response.status_code == 400


def test_rename_category_updates_slug_and_products(client, db, admin_headers):
    casual = make_category(db, "Casual")
    make_product(db, casual)
    response = client.put(f"/api/admin/categories/{casual}", json={"name": "Everyday Casual"}, headers=admin_headers)
    assert response.json()["category"]["slug"] == "everyday-casual"
    assert db["product"].find_one({})["category_name"] == "Everyday Casual"


def test_create_product_requires_category(client, db, admin_headers):
    body = {"name": "Shirt", "description": "Cotton", "category": "64b7f0c2a1b2c3d4e5f60718", "price": 999}
    response = client.post("/api/admin/products", json=body, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Category not found"

    body["category"] = make_category(db, "Casual")
    created = client.post("/api/admin/products", json=body, headers=admin_headers)
    assert created.status_code == 201
    product = created.json()["product"]
    assert product["category_name"] == "Casual"
    assert product["original_price"] == 999


def test_update_product_text_clears_embedding(client, db, admin_headers):
    product = make_product(db, make_category(db, "Casual"), embedding=[0.1, 0.2])
    client.put(f"/api/admin/products/{product}", json={"stock": 3}, headers=admin_headers)
    assert db["product"].find_one({})["embedding"] == [0.1, 0.2]

    client.put(f"/api/admin/products/{product}", json={"name": "Renamed"}, headers=admin_headers)
    stored = db["product"].find_one({})
    assert stored["name"] == "Renamed"
    assert stored["embedding"] is None


def test_update_product_ignores_null_fields(client, db, admin_headers):
    product = make_product(db, make_category(db, "Casual"), price=1200)
    response = client.put(
        f"/api/admin/products/{product}", json={"price": None, "stock": 7}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["product"]["price"] == 1200
    stored = db["product"].find_one({})
    assert stored["price"] == 1200
    assert stored["stock"] == 7


def test_product_list_filters_and_stats(client, db, admin_headers):
    casual = make_category(db, "Casual")
    make_product(db, casual, "Cheap", price=100, stock=0)
    make_product(db, casual, "Mid", price=500, stock=5, is_featured=True)
    make_product(db, casual, "Pricey", price=5000, stock=50)

    data = client.get(
        "/api/admin/products", params={"min_price": 200, "in_stock": "true"}, headers=admin_headers
    ).json()
    assert sorted(p["name"] for p in data["products"]) == ["Mid", "Pricey"]
    assert data["pagination"]["total"] == 2

    stats = client.get("/api/admin/products/stats", headers=admin_headers).json()
    assert stats == {
        "total_products": 3,
        "active_products": 3,
        "out_of_stock": 1,
        "low_stock": 1,
        "featured_products": 1,
    }


def test_delete_product(client, db, admin_headers):
    product = make_product(db, make_category(db, "Casual"))
    assert client.delete(f"/api/admin/products/{product}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/admin/products/{product}", headers=admin_headers).status_code == 404
