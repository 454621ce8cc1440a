"""
Database handle

One MongoClient per process, opened at startup and closed at shutdown.
The handle is passed to each store when the app is built instead of living
in a module global.
"""

import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database as MongoDatabase

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, url: Optional[str] = None, name: str = "NightQueenGlow", client: Optional[MongoClient] = None):
        self.url = url
        self.name = name
        self._client = client
        self._owns_client = client is None

    @property
    def connected(self) -> bool:
        return self._client is not None

    @property
    def db(self) -> MongoDatabase:
        if self._client is None:
            raise RuntimeError("Database is not connected")
        return self._client[self.name]

    def connect(self) -> "Database":
        if self._client is None:
            if not self.url:
                raise RuntimeError("DATABASE_URL is not set")
            self._client = MongoClient(self.url)
            logger.info("Connected to MongoDB database %s", self.name)
        self.ensure_indexes()
        return self

    def ensure_indexes(self):
        self.db["user"].create_index([("email", ASCENDING)], unique=True)
        self.db["carts"].create_index([("email", ASCENDING)], unique=True)

    def close(self):
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
            logger.info("Closed MongoDB connection")


def parse_object_id(value: str) -> Optional[ObjectId]:
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
    return doc
