"""
Collection access for products, users and carts.

Stores only talk to MongoDB: they return documents, None, or counts and
leave the error decisions to the services above them.
"""

from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument

from database import Database, parse_object_id
from schemas import Cart, Product, Role, User, WishlistEntry


class CatalogStore:
    collection_name = "products"

    def __init__(self, database: Database):
        self.database = database

    @property
    def collection(self):
        return self.database.db[self.collection_name]

    def get(self, product_id: str) -> Optional[Dict[str, Any]]:
        oid = parse_object_id(product_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def find(self, query: Dict[str, Any], sort: Optional[int] = None) -> List[Dict[str, Any]]:
        cursor = self.collection.find(query)
        if sort:
            cursor = cursor.sort("price", sort)
        return list(cursor)

    def insert(self, product: Product) -> str:
        result = self.collection.insert_one(product.model_dump(mode="json"))
        return str(result.inserted_id)

    def reserve_unit(self, oid: ObjectId) -> Optional[Dict[str, Any]]:
        """Take one unit out of stock, only if one is left.

        Returns the product after the decrement, or None when the product
        has no stock (or no longer exists).
        """
        return self.collection.find_one_and_update(
            {"_id": oid, "quantity": {"$gte": 1}},
            {"$inc": {"quantity": -1}},
            return_document=ReturnDocument.AFTER,
        )

    def release_units(self, oid: ObjectId, count: int = 1) -> bool:
        result = self.collection.update_one({"_id": oid}, {"$inc": {"quantity": count}})
        return result.matched_count == 1


class AccountStore:
    collection_name = "user"

    def __init__(self, database: Database):
        self.database = database

    @property
    def collection(self):
        return self.database.db[self.collection_name]

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"email": email})

    def find_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def list_all(self) -> List[Dict[str, Any]]:
        return list(self.collection.find())

    def insert(self, user: User) -> str:
        result = self.collection.insert_one(user.model_dump(mode="json"))
        return str(result.inserted_id)

    def set_role(self, user_id: str, role: Role) -> bool:
        oid = parse_object_id(user_id)
        if oid is None:
            return False
        result = self.collection.update_one({"_id": oid}, {"$set": {"role": role.value}})
        return result.matched_count == 1

    def delete(self, user_id: str) -> Optional[Dict[str, Any]]:
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        return self.collection.find_one_and_delete({"_id": oid})

    def add_wishlist_entry(self, email: str, entry: WishlistEntry) -> bool:
        # Matches nothing when the product is already on the list.
        result = self.collection.update_one(
            {"email": email, "wishlist.product_id": {"$ne": entry.product_id}},
            {"$push": {"wishlist": entry.model_dump(mode="json")}},
        )
        return result.modified_count == 1

    def remove_wishlist_entry(self, email: str, product_id: str) -> bool:
        result = self.collection.update_one(
            {"email": email},
            {"$pull": {"wishlist": {"product_id": product_id}}},
        )
        return result.modified_count == 1


class CartStore:
    collection_name = "carts"

    def __init__(self, database: Database):
        self.database = database

    @property
    def collection(self):
        return self.database.db[self.collection_name]

    def find(self, email: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"email": email})

    def insert(self, email: str, lines: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Create the cart; raises DuplicateKeyError if one already exists."""
        doc = Cart(email=email, products=lines, version=1).model_dump(mode="json")
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def replace_lines(self, email: str, version: Optional[int], lines: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Compare-and-set write; None means another request got there first."""
        # Carts written before versioning have no version field at all.
        expected = version if version is not None else {"$exists": False}
        return self.collection.find_one_and_update(
            {"email": email, "version": expected},
            {"$set": {"products": lines}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )

    def delete(self, email: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one_and_delete({"email": email})
