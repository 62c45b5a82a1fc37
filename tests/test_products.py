def test_create_product_derives_category_slug(client, make_product):
    prod = make_product(category="Bath & Body")
    assert prod["category_slug"] == "bath-body"
    assert prod["id"]
    assert "created_at" in prod and "updated_at" in prod


def test_discounted_price_cannot_exceed_original(client, admin_headers):
    body = {"name": "Oud Mist", "original_price": 40.0, "discounted_price": 45.0, "category": "Fragrance"}
    r = client.post("/api/admin/products", json=body, headers=admin_headers)
    assert r.status_code == 400
    body.update(discounted_price=30.0, quantity=-1)
    assert client.post("/api/admin/products", json=body, headers=admin_headers).status_code == 422


def test_public_listing_filters_searches_and_sorts(client, make_product):
    make_product(name="Rose Glow Serum", discounted_price=50.0, category="Skincare")
    make_product(name="Vitamin C Cream", discounted_price=35.0, category="Skincare")
    make_product(name="Velvet Oud", discounted_price=55.0, original_price=90.0, category="Fragrance")

    r = client.get("/api/products", params={"category": "skincare", "sort": "price-low"})
    assert [p["name"] for p in r.json()] == ["Vitamin C Cream", "Rose Glow Serum"]

    r = client.get("/api/products", params={"q": "oud"})
    assert [p["name"] for p in r.json()] == ["Velvet Oud"]

    r = client.get("/api/products", params={"sort": "price-high"})
    assert [p["discounted_price"] for p in r.json()] == [55.0, 50.0, 35.0]

    r = client.get("/api/products", params={"category": "all", "sort": "name"})
    assert len(r.json()) == 3


def test_search_treats_input_literally(client, make_product):
    make_product(name="Glow (Travel Size)")
    assert len(client.get("/api/products", params={"q": "(travel"}).json()) == 1


def test_get_product(client, make_product):
    prod = make_product()
    assert client.get(f"/api/products/{prod['id']}").json()["name"] == "Rose Glow Serum"
    assert client.get("/api/products/not-an-id").status_code == 400
    assert client.get("/api/products/0123456789abcdef01234567").status_code == 404


def test_categories(client, make_product):
    make_product(category="Skincare")
    make_product(name="Night Cream", category="Skincare")
    make_product(name="Lip Tint", category="Makeup")
    cats = client.get("/api/categories").json()
    assert cats == [
        {"category": "Makeup", "category_slug": "makeup", "count": 1},
        {"category": "Skincare", "category_slug": "skincare", "count": 2},
    ]


def test_admin_update_and_delete(client, admin_headers, make_product):
    prod = make_product()
    r = client.patch(
        f"/api/admin/products/{prod['id']}",
        json={"category": "Face Care", "quantity": 3, "status": "Low Stock"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["category_slug"] == "face-care"
    assert body["quantity"] == 3
    assert body["name"] == "Rose Glow Serum"

    r = client.patch(f"/api/admin/products/{prod['id']}", json={"discounted_price": 99.0}, headers=admin_headers)
    assert r.status_code == 400

    assert client.delete(f"/api/admin/products/{prod['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/admin/products/{prod['id']}", headers=admin_headers).status_code == 404
    assert client.get(f"/api/products/{prod['id']}").status_code == 404


def test_admin_listing_paginates_with_stock_stats(client, admin_headers, make_product):
    for i in range(12):
        make_product(name=f"Lip Balm {i:02d}", discounted_price=float(i), original_price=20.0, quantity=i)
    make_product(name="Sold Out Toner", quantity=0, status="Out of Stock")

    r = client.get("/api/admin/products", params={"sort": "name-asc", "per_page": 10, "page": 2}, headers=admin_headers)
    body = r.json()
    assert body["total"] == 13
    assert body["pages"] == 2
    assert [p["name"] for p in body["items"]] == ["Lip Balm 10", "Lip Balm 11", "Sold Out Toner"]
    assert body["stats"]["out_of_stock"] == 1
    assert body["stats"]["in_stock"] == 12
    # quantities 0..5 plus the sold out toner
    assert body["stats"]["needs_restock"] == 7


def test_image_upload(client, admin_headers, customer_headers):
    png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
    files = {"file": ("serum.PNG", png, "image/png")}
    assert client.post("/api/admin/uploads", files=files, headers=customer_headers).status_code == 403

    r = client.post("/api/admin/uploads", files=files, headers=admin_headers)
    assert r.status_code == 201
    url = r.json()["url"]
    assert url.startswith("/uploads/") and url.endswith(".png")
    assert client.get(url).content == png

    r = client.post("/api/admin/uploads", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=admin_headers)
    assert r.status_code == 400


def test_admin_can_clear_optional_fields(client, admin_headers, make_product):
    prod = make_product(image_url="/uploads/rose.png")
    r = client.patch(
        f"/api/admin/products/{prod['id']}",
        json={"image_url": None, "description": None, "name": None},
        headers=admin_headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["image_url"] is None
    assert body["description"] == ""
    assert body["name"] == "Rose Glow Serum"
