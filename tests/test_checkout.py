from pymongo.errors import PyMongoError

import main
from conftest import checkout_body, shipping_address
from database import CART, ORDERS, PRODUCTS, db, to_object_id


def stock_of(product):
    return db[PRODUCTS].find_one({"_id": to_object_id(product["id"])})["quantity"]


def fill_cart(client, headers, *lines):
    for prod, qty in lines:
        r = client.post("/api/cart/items", json={"product_id": prod["id"], "quantity": qty}, headers=headers)
        assert r.status_code == 200


def test_empty_cart_is_rejected(client, customer_headers):
    r = client.post("/api/checkout", json=checkout_body(), headers=customer_headers)
    assert r.status_code == 400
    assert db[ORDERS].count_documents({}) == 0


def test_paid_checkout_creates_processing_order(client, customer_headers, make_product):
    serum = make_product(discounted_price=50.0, quantity=10)
    balm = make_product(name="Shea Lip Balm", discounted_price=12.5, original_price=15.0, quantity=3)
    fill_cart(client, customer_headers, (serum, 2), (balm, 1))

    r = client.post("/api/checkout", json=checkout_body(), headers=customer_headers)
    assert r.status_code == 201, r.text
    order = r.json()
    assert order["order_number"].startswith("BEAUTY-")
    assert order["status"] == "processing"
    assert order["payment_status"] == "paid"
    assert order["display_status"] == "processing"
    assert order["subtotal"] == 112.5
    assert order["delivery_fee"] == 15.0
    assert order["total_amount"] == 127.5
    assert order["customer_name"] == "Ama Mensah"
    assert order["payment_reference"] == "PSK-1001"
    assert {(i["name"], i["quantity"]) for i in order["items"]} == {("Rose Glow Serum", 2), ("Shea Lip Balm", 1)}

    assert stock_of(serum) == 8
    assert stock_of(balm) == 2
    assert client.get("/api/cart", headers=customer_headers).json()["items"] == []


def test_completed_payment_is_recorded_as_paid(client, customer_headers, make_product):
    fill_cart(client, customer_headers, (make_product(), 1))
    r = client.post("/api/checkout", json=checkout_body(payment_status="completed"), headers=customer_headers)
    assert r.json()["payment_status"] == "paid"


def test_pickup_has_no_delivery_fee(client, customer_headers, make_product):
    fill_cart(client, customer_headers, (make_product(discounted_price=50.0), 1))
    r = client.post("/api/checkout", json=checkout_body(shipping_method="pickup"), headers=customer_headers)
    assert r.json()["delivery_fee"] == 0.0
    assert r.json()["total_amount"] == 50.0


def test_failed_payment_writes_nothing(client, customer_headers, make_product):
    prod = make_product(quantity=10)
    fill_cart(client, customer_headers, (prod, 2))

    r = client.post("/api/checkout", json=checkout_body(payment_status="failed"), headers=customer_headers)
    assert r.status_code == 402
    assert db[ORDERS].count_documents({}) == 0
    assert stock_of(prod) == 10
    assert db[CART].count_documents({}) == 1


def test_insufficient_stock_releases_reserved_units(client, customer_headers, make_product):
    plenty = make_product(name="Rose Glow Serum", quantity=10)
    scarce = make_product(name="Velvet Oud", quantity=1)
    fill_cart(client, customer_headers, (plenty, 3), (scarce, 2))

    r = client.post("/api/checkout", json=checkout_body(), headers=customer_headers)
    assert r.status_code == 409
    assert "Velvet Oud" in r.json()["detail"]
    assert stock_of(plenty) == 10
    assert stock_of(scarce) == 1
    assert db[ORDERS].count_documents({}) == 0
    assert len(client.get("/api/cart", headers=customer_headers).json()["items"]) == 2


def test_pending_payment_shows_as_pending_payment(client, customer_headers, make_product):
    fill_cart(client, customer_headers, (make_product(), 1))
    order = client.post("/api/checkout", json=checkout_body(payment_status="pending"), headers=customer_headers).json()
    assert order["status"] == "pending"
    assert order["display_status"] == "pending_payment"

    body = client.get("/api/orders", headers=customer_headers).json()
    assert body["counts"] == {"all": 1, "pending_payment": 1}
    assert client.get("/api/orders", params={"status": "pending_payment"}, headers=customer_headers).json()["orders"]
    assert client.get("/api/orders", params={"status": "processing"}, headers=customer_headers).json()["orders"] == []


def test_invalid_shipping_address(client, customer_headers, make_product):
    fill_cart(client, customer_headers, (make_product(), 1))
    body = checkout_body()
    body["shipping_address"] = shipping_address(region="Atlantis")
    assert client.post("/api/checkout", json=body, headers=customer_headers).status_code == 422
    body["shipping_address"] = shipping_address(first_name="   ")
    assert client.post("/api/checkout", json=body, headers=customer_headers).status_code == 422


def test_orders_are_private(client, customer_headers, other_headers, make_product):
    fill_cart(client, customer_headers, (make_product(), 1))
    order = client.post("/api/checkout", json=checkout_body(), headers=customer_headers).json()

    assert client.get(f"/api/orders/{order['id']}", headers=customer_headers).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=other_headers).status_code == 404
    assert client.get("/api/orders", headers=other_headers).json() == {"orders": [], "counts": {"all": 0}}


def test_failed_order_write_releases_stock(client, customer_headers, make_product, monkeypatch):
    prod = make_product(quantity=10)
    fill_cart(client, customer_headers, (prod, 3))

    def broken_insert(collection_name, data):
        raise PyMongoError("primary stepped down")

    monkeypatch.setattr(main, "create_document", broken_insert)
    r = client.post("/api/checkout", json=checkout_body(), headers=customer_headers)
    assert r.status_code == 503
    assert r.json()["detail"] == "Database unavailable, please try again"
    assert stock_of(prod) == 10
    assert db[ORDERS].count_documents({}) == 0
    assert client.get("/api/cart", headers=customer_headers).json()["count"] == 3
