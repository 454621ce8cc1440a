"""
Component tests for the cart: stock reservation through the HTTP surface.
"""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

BUYER = "amara@example.com"
OTHER_BUYER = "jun@example.com"


@pytest.fixture
def buyers(make_user):
    make_user(BUYER)
    make_user(OTHER_BUYER)


class TestAddToCart:

    def test_first_and_second_add_reserve_one_unit_each(self, test_client: TestClient, buyers, make_product, auth, stock):
        """
        Validates:
        - each add moves exactly one unit from stock into the cart line
        - the second add increments the existing line instead of adding one
        """
        product_id = make_product(quantity=5, price=24.5)

        response = test_client.post(f"/cart/{product_id}", headers=auth(BUYER))
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert stock(product_id) == 4

        cart = test_client.get("/cart", headers=auth(BUYER)).json()
        assert cart["email"] == BUYER
        assert len(cart["products"]) == 1
        line = cart["products"][0]
        assert line["product_id"] == product_id
        assert line["quantity"] == 1
        assert line["name"] == "Night Bloom Serum"
        assert line["price"] == 24.5
        assert line["image"] == "https://img.example/serum.jpg"

        test_client.post(f"/cart/{product_id}", headers=auth(BUYER))
        assert stock(product_id) == 3
        cart = test_client.get("/cart", headers=auth(BUYER)).json()
        assert len(cart["products"]) == 1
        assert cart["products"][0]["quantity"] == 2
        assert cart["total"] == 49.0

    def test_price_is_snapshotted_at_add_time(self, test_client: TestClient, buyers, make_product, auth, db):
        product_id = make_product(price=10.0)
        test_client.post(f"/cart/{product_id}", headers=auth(BUYER))

        db["products"].update_one({"name": "Night Bloom Serum"}, {"$set": {"price": 99.0}})
        test_client.post(f"/cart/{product_id}", headers=auth(BUYER))

        cart = test_client.get("/cart", headers=auth(BUYER)).json()
        assert cart["products"][0]["price"] == 10.0
        assert cart["total"] == 20.0

    def test_out_of_stock_changes_nothing(self, test_client: TestClient, buyers, make_product, auth, stock, db):
        product_id = make_product(quantity=0)

        response = test_client.post(f"/cart/{product_id}", headers=auth(BUYER))

        assert response.status_code == 400
        assert response.json() == {"error": True, "message": "Product out of stock"}
        assert stock(product_id) == 0
        assert db["carts"].find_one({"email": BUYER}) is None
        assert test_client.get("/cart", headers=auth(BUYER)).status_code == 404

    def test_last_unit_goes_to_exactly_one_buyer(self, test_client: TestClient, buyers, make_product, auth, stock, db):
        product_id = make_product(quantity=1)

        first = test_client.post(f"/cart/{product_id}", headers=auth(BUYER))
        second = test_client.post(f"/cart/{product_id}", headers=auth(OTHER_BUYER))

        assert first.status_code == 200
        assert second.status_code == 400
        assert stock(product_id) == 0
        assert db["carts"].count_documents({}) == 1

    def test_concurrent_buyers_race_for_last_unit(self, test_client: TestClient, make_user, make_product, auth, stock, db):
        """
        Validates:
        - buyers released together cannot both reserve the last unit
        - stock never goes below zero
        """
        emails = [f"buyer{i}@example.com" for i in range(8)]
        for email in emails:
            make_user(email)
        headers = [auth(email) for email in emails]
        product_id = make_product(quantity=1)
        start = threading.Barrier(len(emails))

        def add(buyer_headers):
            start.wait()
            return test_client.post(f"/cart/{product_id}", headers=buyer_headers).status_code

        with ThreadPoolExecutor(max_workers=len(emails)) as pool:
            statuses = list(pool.map(add, headers))

        assert sorted(statuses) == [200] + [400] * (len(emails) - 1)
        assert stock(product_id) == 0
        carts = list(db["carts"].find())
        assert len(carts) == 1
        assert carts[0]["products"][0]["quantity"] == 1

    def test_unknown_product_returns_404(self, test_client: TestClient, buyers, auth):
        response = test_client.post("/cart/65a1f0c2e4b0a1b2c3d4e5f6", headers=auth(BUYER))
        assert response.status_code == 404
        assert response.json()["message"] == "Product not found"

    def test_malformed_product_id_returns_404(self, test_client: TestClient, buyers, auth):
        response = test_client.post("/cart/not-an-id", headers=auth(BUYER))
        assert response.status_code == 404

    def test_get_cart_before_any_add_returns_404(self, test_client: TestClient, buyers, auth):
        response = test_client.get("/cart", headers=auth(BUYER))
        assert response.status_code == 404
        assert response.json() == {"error": True, "message": "Cart not found"}


class TestRemoveFromCart:

    def test_remove_returns_unit_to_stock(self, test_client: TestClient, buyers, make_product, auth, stock):
        product_id = make_product(quantity=5)
        test_client.post(f"/cart/{product_id}", headers=auth(BUYER))
        test_client.post(f"/cart/{product_id}", headers=auth(BUYER))
        assert stock(product_id) == 3

        response = test_client.delete(f"/cart/{product_id}", headers=auth(BUYER))
        assert response.status_code == 200
        assert response.json()["cart"]["products"][0]["quantity"] == 1
        assert stock(product_id) == 4

        response = test_client.delete(f"/cart/{product_id}", headers=auth(BUYER))
        assert response.status_code == 200
        # no zero-quantity line is left behind
        assert response.json()["cart"]["products"] == []
        assert stock(product_id) == 5

    def test_remove_product_not_in_cart_returns_404(self, test_client: TestClient, buyers, make_product, auth, stock):
        kept = make_product(name="Kept")
        other = make_product(name="Other")
        test_client.post(f"/cart/{kept}", headers=auth(BUYER))

        response = test_client.delete(f"/cart/{other}", headers=auth(BUYER))

        assert response.status_code == 404
        assert response.json()["message"] == "Product not found in cart"
        assert stock(other) == 5

    def test_remove_without_cart_returns_404(self, test_client: TestClient, buyers, make_product, auth):
        product_id = make_product()
        response = test_client.delete(f"/cart/{product_id}", headers=auth(BUYER))
        assert response.status_code == 404


class TestStockConservation:

    def test_stock_plus_reserved_units_stays_constant(self, test_client: TestClient, buyers, make_product, auth, stock, db):
        initial = {make_product(name="Lip Tint", quantity=3): 3, make_product(name="Face Mist", quantity=2): 2}
        actions = [
            ("post", BUYER, 0), ("post", OTHER_BUYER, 0), ("post", BUYER, 1),
            ("post", BUYER, 0), ("post", OTHER_BUYER, 0), ("delete", BUYER, 0),
            ("post", OTHER_BUYER, 1), ("post", OTHER_BUYER, 1), ("delete", OTHER_BUYER, 1),
            ("post", OTHER_BUYER, 0),
        ]
        product_ids = list(initial)

        for method, email, index in actions:
            getattr(test_client, method)(f"/cart/{product_ids[index]}", headers=auth(email))

            for product_id, original in initial.items():
                live = stock(product_id)
                reserved = sum(
                    line["quantity"]
                    for cart in db["carts"].find()
                    for line in cart["products"]
                    if line["product_id"] == product_id
                )
                assert live >= 0
                assert live + reserved == original

