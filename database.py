"""
MongoDB access.

A single ``Database`` handle is created by the app factory, opened at startup
and closed at shutdown. Stores receive the handle when they are constructed;
nothing here is module-level state.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database as MongoDatabase

from logconfig import get_logger

logger = get_logger(__name__)

USERS = "users"
PRODUCTS = "products"
ORDERS = "orders"


class Database:
    def __init__(self, url: str, name: str, client: Optional[MongoClient] = None):
        self.url = url
        self.name = name
        self._client = client
        self._db: Optional[MongoDatabase] = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    def open(self) -> "Database":
        if self._db is not None:
            return self
        if self._client is None:
            self._client = MongoClient(self.url)
        self._db = self._client[self.name]
        self.ensure_indexes()
        logger.info("database_opened", database=self.name)
        return self

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("database_closed", database=self.name)
        self._client = None
        self._db = None

    def ensure_indexes(self) -> None:
        self.db[USERS].create_index([("username", ASCENDING)], unique=True)
        self.db[PRODUCTS].create_index([("name", ASCENDING)], unique=True)
        self.db[ORDERS].create_index([("userId", ASCENDING)])

    @property
    def db(self) -> MongoDatabase:
        if self._db is None:
            raise RuntimeError("Database is not open")
        return self._db

    @property
    def users(self):
        return self.db[USERS]

    @property
    def products(self):
        return self.db[PRODUCTS]

    @property
    def orders(self):
        return self.db[ORDERS]

    def ping(self) -> bool:
        self.db.command("ping")
        return True


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse ``value`` as an ObjectId, returning None when it is not one."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    return _serialize_value(doc)
