import os
import tempfile

import mongomock
import pymongo
import pytest

os.environ["DATABASE_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "glow_beauty_test"
os.environ["ADMIN_EMAILS"] = "admin@glowbeauty.com"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="glow-uploads-")

# database.py builds its client at import time; hand it the in-memory server
pymongo.MongoClient = mongomock.MongoClient

from fastapi.testclient import TestClient  # noqa: E402

from database import db  # noqa: E402
from main import app  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture
def client():
    for name in db.list_collection_names():
        db.drop_collection(name)
    with TestClient(app) as c:
        yield c


def signup(client, email, name=None):
    r = client.post("/api/auth/signup", json={"email": email, "password": PASSWORD, "name": name})
    assert r.status_code == 201, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    return signup(client, "admin@glowbeauty.com", "Store Admin")


@pytest.fixture
def customer_headers(client):
    return signup(client, "ama@glowbeauty.com", "Ama Mensah")


@pytest.fixture
def other_headers(client):
    return signup(client, "kofi@glowbeauty.com", "Kofi Boateng")


@pytest.fixture
def make_product(client, admin_headers):
    def _make(**overrides):
        body = {
            "name": "Rose Glow Serum",
            "description": "Hydrating rosehip face serum",
            "original_price": 60.0,
            "discounted_price": 50.0,
            "category": "Skincare",
            "quantity": 10,
            "status": "In Stock",
        }
        body.update(overrides)
        r = client.post("/api/admin/products", json=body, headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()
    return _make


def shipping_address(**overrides):
    addr = {
        "first_name": "Ama",
        "last_name": "Mensah",
        "address": "12 Oxford Street",
        "city": "Accra",
        "region": "Greater Accra",
        "locality": "Osu",
        "phone": "0241234567",
        "email": "ama@glowbeauty.com",
    }
    addr.update(overrides)
    return addr


def checkout_body(payment_status="paid", shipping_method="standard", **payment):
    return {
        "shipping_address": shipping_address(),
        "shipping_method": shipping_method,
        "payment": {"method": "mobile-money", "status": payment_status, "reference": "PSK-1001", **payment},
    }
