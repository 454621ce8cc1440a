"""
Component tests for failure responses: every failure uses {error, message}.
"""
import pytest
from fastapi.testclient import TestClient

import main

BUYER = "amara@example.com"


@pytest.fixture
def lenient_client(app):
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


class TestUnexpectedFaults:

    def test_corrupt_product_on_wishlist_add_returns_json_500(self, lenient_client: TestClient, make_user, make_product, auth, db):
        """
        Validates:
        - a fault outside the known error types still returns {error, message}
        - no internal detail leaks into the message
        """
        make_user(BUYER)
        product_id = make_product()
        db["products"].update_one({"name": "Night Bloom Serum"}, {"$set": {"name": None}})

        response = lenient_client.post(f"/wishlist/{product_id}", headers=auth(BUYER))

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"error": True, "message": "Internal server error"}

    def test_corrupt_product_on_cart_add_keeps_stock(self, lenient_client: TestClient, make_user, make_product, auth, stock, db):
        make_user(BUYER)
        product_id = make_product(quantity=3)
        db["products"].update_one({"name": "Night Bloom Serum"}, {"$set": {"price": -5}})

        response = lenient_client.post(f"/cart/{product_id}", headers=auth(BUYER))

        assert response.status_code == 500
        assert response.json() == {"error": True, "message": "Failed to add product to cart"}
        assert stock(product_id) == 3
        assert db["carts"].count_documents({}) == 0


def test_create_app_configures_logging(settings, database, monkeypatch):
    levels = []
    monkeypatch.setattr(main, "setup_logging", levels.append)

    main.create_app(settings, database)

    assert levels == [settings.log_level]
