import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from database import Database, serialize_doc, to_object_id
from errors import Conflict, InternalError, NotFound
from logconfig import get_logger
from schemas import Product

logger = get_logger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_PAGE = 1_000_000
MAX_LIMIT = 100

_LEADING_INT = re.compile(r"\s*[+-]?\d+")

NAME_TAKEN = "Product name already exists"
PRODUCT_NOT_FOUND = "Product not found"


def parse_positive_int(value: Any, default: int, maximum: int) -> int:
    """Read the leading integer of a query value, like JavaScript's parseInt.

    Anything without one, or below 1, gives ``default``; larger values are
    clamped to ``maximum``.
    """
    if value is None or isinstance(value, bool):
        return default
    match = _LEADING_INT.match(str(value))
    if not match:
        return default
    number = int(match.group(0))
    if number < 1:
        return default
    return min(number, maximum)


def page_bounds(page: Any, limit: Any) -> Tuple[int, int]:
    """Return ``(skip, limit)`` for 1-based page parameters."""
    page = parse_positive_int(page, DEFAULT_PAGE, MAX_PAGE)
    limit = parse_positive_int(limit, DEFAULT_LIMIT, MAX_LIMIT)
    return (page - 1) * limit, limit


class CatalogStore:
    def __init__(self, database: Database):
        self.database = database

    def create(self, product: Product) -> str:
        products = self.database.products
        if products.find_one({"name": product.name}, {"_id": 1}):
            raise Conflict(NAME_TAKEN)
        try:
            result = products.insert_one(product.model_dump())
        except DuplicateKeyError:
            raise Conflict(NAME_TAKEN)
        if not result.inserted_id:
            raise InternalError("Error creating product")

        logger.info("product_created", product_id=str(result.inserted_id))
        return str(result.inserted_id)

    def get(self, product_id: str) -> Dict[str, Any]:
        oid = to_object_id(product_id)
        doc = self.database.products.find_one({"_id": oid}) if oid else None
        if not doc:
            raise NotFound(PRODUCT_NOT_FOUND)
        return serialize_doc(doc)

    def exists(self, product_id: str) -> bool:
        oid = to_object_id(product_id)
        return bool(oid and self.database.products.find_one({"_id": oid}, {"_id": 1}))

    def update(self, product_id: str, product: Product) -> None:
        products = self.database.products
        oid = to_object_id(product_id)
        if not oid or not products.find_one({"_id": oid}, {"_id": 1}):
            raise NotFound(PRODUCT_NOT_FOUND)
        if products.find_one({"name": product.name, "_id": {"$ne": oid}}, {"_id": 1}):
            raise Conflict(NAME_TAKEN)

        try:
            result = products.update_one({"_id": oid}, {"$set": product.model_dump()})
        except DuplicateKeyError:
            raise Conflict(NAME_TAKEN)
        # Deleted between the existence check and the write.
        if result.matched_count == 0:
            raise NotFound(PRODUCT_NOT_FOUND)
        logger.info("product_updated", product_id=product_id)

    def delete(self, product_id: str) -> None:
        oid = to_object_id(product_id)
        if not oid:
            raise NotFound(PRODUCT_NOT_FOUND)
        result = self.database.products.delete_one({"_id": oid})
        if result.deleted_count == 0:
            raise NotFound(PRODUCT_NOT_FOUND)
        logger.info("product_deleted", product_id=product_id)

    def search(self, query: Optional[str]) -> Iterator[Dict[str, Any]]:
        """Case-insensitive substring match over name, description and category.

        The result is a one-shot iterator over the underlying cursor.
        """
        pattern = {"$regex": re.escape(query or ""), "$options": "i"}
        cursor = self.database.products.find(
            {
                "$or": [
                    {"name": pattern},
                    {"description": pattern},
                    {"category": pattern},
                ]
            }
        )
        return (serialize_doc(doc) for doc in cursor)

    def list(self, page: Any = None, limit: Any = None) -> Tuple[List[Dict[str, Any]], int]:
        skip, limit = page_bounds(page, limit)
        products = self.database.products
        total = products.count_documents({})
        cursor = products.find().sort("_id", ASCENDING).skip(skip).limit(limit)
        return [serialize_doc(doc) for doc in cursor], total
