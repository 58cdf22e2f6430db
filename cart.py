import threading
import weakref
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument

from catalog import CatalogStore
from database import Database, serialize_doc, to_object_id
from errors import InternalError, NotFound, ValidationError
from logconfig import get_logger

logger = get_logger(__name__)

USER_NOT_FOUND = "User not found"


class UserLocks:
    """One lock per user id, so cart and order mutations for a user run one at a time.

    Locks are held weakly and disappear once no request is using them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()

    def for_user(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock


def require_user_id(user_id: str) -> ObjectId:
    oid = to_object_id(user_id)
    if oid is None:
        raise NotFound(USER_NOT_FOUND)
    return oid


class CartStore:
    def __init__(self, database: Database, catalog: CatalogStore, locks: UserLocks):
        self.database = database
        self.catalog = catalog
        self.locks = locks

    def get(self, user_id: str) -> List[Dict[str, Any]]:
        user = self.database.users.find_one({"_id": require_user_id(user_id)}, {"cart": 1})
        if not user:
            raise NotFound(USER_NOT_FOUND)
        return serialize_doc({"cart": user.get("cart", [])})["cart"]

    def add(self, user_id: str, product_id: str, quantity: Optional[int] = None) -> None:
        """Add ``quantity`` of a product to the cart.

        Entries are keyed by productId: adding a product that is already in
        the cart raises its quantity instead of adding a second entry.
        """
        uid = require_user_id(user_id)
        pid = to_object_id(product_id)
        if pid is None:
            raise ValidationError("Invalid product id", errors=[{"field": "productId", "message": "Invalid product id"}])
        quantity = quantity or 1
        if quantity < 1:
            raise ValidationError("Invalid quantity", errors=[{"field": "quantity", "message": "Quantity must be at least 1"}])

        with self.locks.for_user(str(uid)):
            users = self.database.users
            if not users.find_one({"_id": uid}, {"_id": 1}):
                raise NotFound(USER_NOT_FOUND)
            if not self.catalog.exists(product_id):
                raise NotFound("Product not found")

            result = users.update_one(
                {"_id": uid, "cart.productId": pid},
                {"$inc": {"cart.$.quantity": quantity}},
            )
            if result.matched_count == 0:
                result = users.update_one(
                    {"_id": uid, "cart.productId": {"$ne": pid}},
                    {"$push": {"cart": {"productId": pid, "quantity": quantity}}},
                )
            if result.matched_count == 0:
                raise InternalError("Error adding product to cart")

        logger.info("cart_item_added", user_id=user_id, product_id=product_id, quantity=quantity)

    def remove(self, user_id: str, product_id: str) -> None:
        """Remove every entry for ``product_id``, whatever its quantity."""
        uid = require_user_id(user_id)
        pid = to_object_id(product_id)
        if pid is None:
            raise ValidationError("Invalid product id", errors=[{"field": "productId", "message": "Invalid product id"}])

        with self.locks.for_user(str(uid)):
            users = self.database.users
            if not users.find_one({"_id": uid}, {"_id": 1}):
                raise NotFound(USER_NOT_FOUND)
            updated = users.find_one_and_update(
                {"_id": uid},
                {"$pull": {"cart": {"productId": pid}}},
                return_document=ReturnDocument.AFTER,
            )
            if not updated:
                raise InternalError("Error removing product from cart")

        logger.info("cart_item_removed", user_id=user_id, product_id=product_id)
