import pytest

from errors import Conflict, Unauthorized


class TestRegister:
    def test_register_stores_hash_and_empty_cart(self, credentials, open_db):
        user_id = credentials.register("alice", "password1")

        user = open_db.users.find_one({"username": "alice"})
        assert str(user["_id"]) == user_id
        assert user["password"] != "password1"
        assert user["cart"] == []

    def test_duplicate_username_conflicts_regardless_of_password(self, credentials):
        credentials.register("alice", "password1")

        with pytest.raises(Conflict):
            credentials.register("alice", "something-else")


class TestVerifyLogin:
    def test_valid_credentials_return_user_id(self, credentials):
        user_id = credentials.register("alice", "password1")

        assert credentials.verify_login("alice", "password1") == user_id

    def test_wrong_password_and_unknown_user_look_the_same(self, credentials):
        credentials.register("alice", "password1")

        with pytest.raises(Unauthorized) as wrong_password:
            credentials.verify_login("alice", "password2")
        with pytest.raises(Unauthorized) as unknown_user:
            credentials.verify_login("bob", "password1")

        assert wrong_password.value.message == unknown_user.value.message
