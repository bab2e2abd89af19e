from conftest import make_category, make_product


def test_products_hide_inactive_categories(client, db):
    casual = make_category(db, "Casual")
    hidden = make_category(db, "Retired", is_active=False)
    make_product(db, casual, "Linen Shirt")
    make_product(db, hidden, "Old Coat")

    data = client.get("/api/products").json()
    assert data["total"] == 1
    assert [p["name"] for p in data["products"]] == ["Linen Shirt"]
    assert "embedding" not in data["products"][0]

    empty = client.get("/api/products", params={"category": hidden}).json()
    assert empty["products"] == []
    assert empty["total"] == 0


def test_products_search_matches_tags_case_insensitively(client, db):
    casual = make_category(db, "Casual")
    make_product(db, casual, "Denim Jacket", tags=["outerwear"])
    make_product(db, casual, "Linen Shirt")

    data = client.get("/api/products", params={"search": "OUTER"}).json()
    assert [p["name"] for p in data["products"]] == ["Denim Jacket"]


def test_products_pagination(client, db):
    casual = make_category(db, "Casual")
    for i in range(5):
        make_product(db, casual, f"Tee {i}")

    data = client.get("/api/products", params={"page": 2, "limit": 2}).json()
    assert data["total"] == 5
    assert data["total_pages"] == 3
    assert len(data["products"]) == 2


def test_get_product_not_found(client, db):
    assert client.get("/api/products/not-an-id").status_code == 404
    assert client.get("/api/products/64b7f0c2a1b2c3d4e5f60718").status_code == 404


def test_categories_sorted_by_display_order(client, db):
    make_category(db, "Party", display_order=2)
    make_category(db, "Formal", display_order=1)
    make_category(db, "Hidden", display_order=0, is_active=False)

    names = [c["name"] for c in client.get("/api/categories").json()]
    assert names == ["Formal", "Party"]


def test_view_tracking_keeps_newest_first_and_caps(client, db, user, user_headers):
    casual = make_category(db, "Casual")
    first = make_product(db, casual, "First")
    second = make_product(db, casual, "Second")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"browsing_history": [{"product_id": "x"}] * 50}},
    )

    assert client.post(f"/api/products/{first}/view", headers=user_headers).status_code == 200
    assert client.post(f"/api/products/{second}/view", headers=user_headers).status_code == 200

    history = db["user"].find_one({"_id": user["_id"]})["browsing_history"]
    assert len(history) == 50
    assert [h["product_id"] for h in history[:2]] == [second, first]
