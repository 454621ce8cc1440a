"""
Shared fixtures.

The app is built with real stores and services; only the MongoDB server is
replaced, by a mongomock client injected through Database(client=...).
"""
import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from main import create_app


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", database_name="test_shop", cart_write_retries=3)


@pytest.fixture
def database(settings):
    return Database(name=settings.database_name, client=mongomock.MongoClient())


@pytest.fixture
def db(database):
    return database.db


@pytest.fixture
def app(settings, database):
    return create_app(settings, database)


@pytest.fixture
def test_client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_user(db):
    def _make_user(email: str, role: str = "buyer") -> str:
        result = db["user"].insert_one({"email": email, "role": role, "wishlist": []})
        return str(result.inserted_id)
    return _make_user


@pytest.fixture
def make_product(db):
    def _make_product(name: str = "Night Bloom Serum", quantity: int = 5, price: float = 24.5,
                      category: str = "skincare", image: str = "https://img.example/serum.jpg") -> str:
        result = db["products"].insert_one({
            "name": name,
            "category": category,
            "price": price,
            "quantity": quantity,
            "image": image,
        })
        return str(result.inserted_id)
    return _make_product


@pytest.fixture
def auth(app):
    def _auth(email: str) -> dict:
        return {"Authorization": f"Bearer {app.state.tokens.issue(email)}"}
    return _auth


@pytest.fixture
def stock(db):
    def _stock(product_id: str) -> int:
        return db["products"].find_one({"_id": ObjectId(product_id)})["quantity"]
    return _stock
