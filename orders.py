from typing import Any, Dict, List, Tuple

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from cart import USER_NOT_FOUND, UserLocks, require_user_id
from catalog import page_bounds
from database import Database, serialize_doc
from errors import InternalError, NotFound
from logconfig import get_logger
from schemas import CartEntry, Order

logger = get_logger(__name__)


class OrderStore:
    def __init__(self, database: Database, locks: UserLocks):
        self.database = database
        self.locks = locks

    def place(self, user_id: str) -> str:
        """Turn the user's cart into an order and leave the cart empty.

        The cart is read and cleared in a single atomic update, so nothing
        added concurrently can be lost or ordered twice. If writing the order
        fails, the snapshot goes back into the cart.
        """
        uid = require_user_id(user_id)
        users = self.database.users

        with self.locks.for_user(str(uid)):
            before = users.find_one_and_update(
                {"_id": uid},
                {"$set": {"cart": []}},
                projection={"cart": 1},
                return_document=ReturnDocument.BEFORE,
            )
            if not before:
                raise NotFound(USER_NOT_FOUND)

            snapshot = [CartEntry(**entry) for entry in before.get("cart", [])]
            order = Order(userId=uid, products=snapshot)
            try:
                result = self.database.orders.insert_one(order.model_dump())
            except PyMongoError:
                logger.exception("order_insert_failed", user_id=user_id)
                self._restore_cart(uid, before.get("cart", []))
                raise InternalError("Error placing order")

        logger.info("order_placed", user_id=user_id, order_id=str(result.inserted_id), items=len(snapshot))
        return str(result.inserted_id)

    def _restore_cart(self, uid, entries: List[Dict[str, Any]]) -> None:
        if not entries:
            return
        try:
            self.database.users.update_one({"_id": uid}, {"$push": {"cart": {"$each": entries}}})
        except PyMongoError:
            logger.exception("cart_restore_failed", user_id=str(uid), entries=len(entries))

    def list(self, user_id: str, page: Any = None, limit: Any = None) -> Tuple[List[Dict[str, Any]], int]:
        uid = require_user_id(user_id)
        if not self.database.users.find_one({"_id": uid}, {"_id": 1}):
            raise NotFound(USER_NOT_FOUND)

        skip, limit = page_bounds(page, limit)
        orders = self.database.orders
        total = orders.count_documents({"userId": uid})
        cursor = orders.find({"userId": uid}).sort("_id", ASCENDING).skip(skip).limit(limit)
        return [serialize_doc(doc) for doc in cursor], total
