"""
Cart coordinator

Adding a product moves one unit of stock from the product document into a
line of the buyer's cart. The two documents live in different collections,
so every move is a two-step saga:

1. conditional decrement of Product.quantity (only while quantity >= 1),
2. compare-and-set write of the cart, retried when the cart version moved.

If step 2 cannot be completed the unit is put back on the product. At any
quiescent point, stock plus every cart's reserved quantity for a product
equals the product's original stock.
"""

import logging
from typing import Any, Callable, Dict, List

from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import parse_object_id, serialize_doc
from errors import InternalError, NotFound, OutOfStock
from schemas import CartLine
from stores import CartStore, CatalogStore

logger = logging.getLogger(__name__)

Lines = List[Dict[str, Any]]


class CartConflict(InternalError):
    message = "Cart is busy, please try again"


def add_unit(lines: Lines, product: Dict[str, Any]) -> Lines:
    product_id = str(product["_id"])
    for line in lines:
        if line["product_id"] == product_id:
            line["quantity"] = int(line.get("quantity", 1)) + 1
            return lines
    line = CartLine(
        product_id=product_id,
        name=product.get("name"),
        quantity=1,
        price=product.get("price"),
        image=product.get("image"),
    )
    lines.append(line.model_dump())
    return lines


def remove_unit(lines: Lines, product_id: str) -> Lines:
    for i, line in enumerate(lines):
        if line["product_id"] == product_id:
            if line["quantity"] > 1:
                line["quantity"] -= 1
            else:
                del lines[i]
            return lines
    raise NotFound("Product not found in cart")


def cart_view(cart: Dict[str, Any]) -> Dict[str, Any]:
    view = serialize_doc(cart)
    view.pop("version", None)
    view["total"] = round(sum(l["price"] * l["quantity"] for l in view.get("products", [])), 2)
    return view


class CartCoordinator:
    def __init__(self, catalog: CatalogStore, carts: CartStore, retries: int = 5):
        self.catalog = catalog
        self.carts = carts
        self.retries = retries

    def get_cart(self, email: str) -> Dict[str, Any]:
        cart = self.carts.find(email)
        if not cart:
            raise NotFound("Cart not found")
        return cart_view(cart)

    def add_to_cart(self, email: str, product_id: str) -> Dict[str, Any]:
        product = self.catalog.get(product_id)
        if not product:
            raise NotFound("Product not found")
        if product.get("quantity", 0) < 1:
            raise OutOfStock()

        # The read above may be stale; this decrement is what decides.
        reserved = self.catalog.reserve_unit(product["_id"])
        if reserved is None:
            raise OutOfStock()

        try:
            cart = self._write(email, lambda lines: add_unit(lines, reserved), create=True)
        except CartConflict:
            self._restock(reserved, email)
            raise
        except (PyMongoError, ValidationError) as e:
            self._restock(reserved, email)
            raise InternalError("Failed to add product to cart") from e

        logger.info("Reserved 1 unit of %s for %s (%s left)", product_id, email, reserved["quantity"])
        return cart_view(cart)

    def remove_from_cart(self, email: str, product_id: str) -> Dict[str, Any]:
        oid = parse_object_id(product_id)
        if oid is None:
            raise NotFound("Product not found in cart")
        removed = {}

        def take(lines):
            for line in lines:
                if line["product_id"] == product_id:
                    removed.update(line)
            return remove_unit(lines, product_id)

        cart = self._write(email, take)
        try:
            restored = self.catalog.release_units(oid)
        except PyMongoError as e:
            try:
                self._write(email, lambda lines: _put_back(lines, removed), create=True)
            except (PyMongoError, InternalError):
                logger.exception("Could not put a unit of %s back into the cart of %s after a failed stock restore",
                                 product_id, email)
            else:
                logger.warning("Stock restore failed for %s, unit put back into the cart of %s", product_id, email)
            raise InternalError("Failed to remove product from cart") from e
        if not restored:
            logger.warning("Released a unit of %s but the product no longer exists", product_id)
        logger.info("Released 1 unit of %s from %s", product_id, email)
        return cart_view(cart)

    def release_cart(self, email: str) -> int:
        """Delete the cart and return all of its reserved units to stock."""
        cart = self.carts.delete(email)
        if not cart:
            return 0
        released = 0
        for line in cart.get("products", []):
            oid = parse_object_id(line["product_id"])
            if oid is not None and self.catalog.release_units(oid, line["quantity"]):
                released += line["quantity"]
        logger.info("Released %d reserved units from the cart of %s", released, email)
        return released

    def _write(self, email: str, mutate: Callable[[Lines], Lines], create: bool = False) -> Dict[str, Any]:
        for _ in range(self.retries):
            cart = self.carts.find(email)
            if cart is None:
                if not create:
                    raise NotFound("Cart not found")
                lines = mutate([])
                try:
                    return self.carts.insert(email, lines)
                except DuplicateKeyError:
                    continue
            lines = mutate([dict(line) for line in cart.get("products", [])])
            updated = self.carts.replace_lines(email, cart.get("version"), lines)
            if updated is not None:
                return updated
            logger.debug("Cart of %s changed underneath us, retrying", email)
        raise CartConflict()

    def _restock(self, product: Dict[str, Any], email: str):
        try:
            self.catalog.release_units(product["_id"])
        except PyMongoError:
            logger.exception("Could not return a unit of %s to stock after a failed cart write for %s",
                             product["_id"], email)
            raise
        logger.warning("Cart write failed for %s, returned 1 unit of %s to stock", email, product["_id"])


def _put_back(lines: Lines, line: Dict[str, Any]) -> Lines:
    for existing in lines:
        if existing["product_id"] == line["product_id"]:
            existing["quantity"] += 1
            return lines
    lines.append(CartLine(**dict(line, quantity=1)).model_dump())
    return lines
