import logging
from typing import Any, Dict, List

from errors import InvalidRequest, NotFound
from schemas import WishlistEntry
from stores import AccountStore, CatalogStore

logger = logging.getLogger(__name__)


class WishlistManager:
    """Set semantics over User.wishlist, keyed by product id."""

    def __init__(self, catalog: CatalogStore, accounts: AccountStore):
        self.catalog = catalog
        self.accounts = accounts

    def list(self, email: str) -> List[Dict[str, Any]]:
        user = self.accounts.find_by_email(email)
        if not user:
            raise NotFound("User not found")
        return user.get("wishlist", [])

    def add(self, email: str, product_id: str) -> bool:
        product = self.catalog.get(product_id)
        if not product:
            raise NotFound("Product not found")
        entry = WishlistEntry(
            product_id=str(product["_id"]),
            name=product.get("name"),
            category=product.get("category"),
            price=product.get("price", 0),
            image=product.get("image"),
        )
        added = self.accounts.add_wishlist_entry(email, entry)
        if not added:
            logger.debug("%s already on the wishlist of %s", product_id, email)
        return added

    def remove(self, email: str, product_id: str):
        if self.accounts.remove_wishlist_entry(email, product_id):
            return
        if not self.catalog.get(product_id):
            raise NotFound("Product not found")
        raise InvalidRequest("Product is not in the wishlist")
