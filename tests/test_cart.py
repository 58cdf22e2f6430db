from concurrent.futures import ThreadPoolExecutor

import pytest
from bson import ObjectId

from errors import NotFound, ValidationError
from schemas import Product

from conftest import product_payload


@pytest.fixture()
def user_id(credentials):
    return credentials.register("alice", "password1")


@pytest.fixture()
def product_id(catalog):
    return catalog.create(Product(**product_payload()))


class TestAdd:
    def test_add_defaults_to_quantity_one(self, cart, user_id, product_id):
        cart.add(user_id, product_id)

        assert cart.get(user_id) == [{"productId": product_id, "quantity": 1}]

    def test_same_product_accumulates_quantity(self, cart, user_id, product_id):
        cart.add(user_id, product_id, 2)
        cart.add(user_id, product_id, 3)

        assert cart.get(user_id) == [{"productId": product_id, "quantity": 5}]

    def test_entries_keep_insertion_order(self, cart, catalog, user_id, product_id):
        other_id = catalog.create(Product(**product_payload("Chair")))

        cart.add(user_id, product_id, 1)
        cart.add(user_id, other_id, 4)

        assert [e["productId"] for e in cart.get(user_id)] == [product_id, other_id]

    def test_unknown_user(self, cart, product_id):
        with pytest.raises(NotFound):
            cart.add(str(ObjectId()), product_id)

    def test_unknown_product(self, cart, user_id):
        with pytest.raises(NotFound):
            cart.add(user_id, str(ObjectId()))

    def test_malformed_product_id(self, cart, user_id):
        with pytest.raises(ValidationError):
            cart.add(user_id, "nope")


class TestRemove:
    def test_remove_drops_entry_whatever_the_quantity(self, cart, catalog, user_id, product_id):
        other_id = catalog.create(Product(**product_payload("Chair")))
        cart.add(user_id, product_id, 7)
        cart.add(user_id, other_id)

        cart.remove(user_id, product_id)

        assert cart.get(user_id) == [{"productId": other_id, "quantity": 1}]

    def test_remove_absent_product_is_harmless(self, cart, user_id):
        cart.remove(user_id, str(ObjectId()))

        assert cart.get(user_id) == []

    def test_unknown_user(self, cart):
        with pytest.raises(NotFound):
            cart.remove(str(ObjectId()), str(ObjectId()))


def test_locks_are_shared_per_user(locks):
    first = locks.for_user("a")

    assert locks.for_user("a") is first
    assert locks.for_user("b") is not first


def test_concurrent_adds_merge_into_one_entry(cart, user_id, product_id):
    with ThreadPoolExecutor(max_workers=8) as pool:
        for job in [pool.submit(cart.add, user_id, product_id, 1) for _ in range(20)]:
            job.result()

    assert cart.get(user_id) == [{"productId": product_id, "quantity": 20}]
