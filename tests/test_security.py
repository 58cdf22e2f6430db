from datetime import timedelta

import pytest
from bson import ObjectId
from jose import jwt

from errors import InvalidToken
from security import TokenIssuer, parse_bearer

from conftest import TEST_SECRET


class TestPasswordHasher:
    def test_hash_is_salted_and_verifies(self, hasher):
        first = hasher.hash("password1")
        second = hasher.hash("password1")

        assert first != second
        assert first.startswith("$2")
        assert hasher.verify("password1", first)
        assert not hasher.verify("password2", first)

    def test_verify_without_hash_fails(self, hasher):
        assert not hasher.verify("password1", None)
        assert not hasher.verify("password1", "")


class TestTokenIssuer:
    def test_issue_then_verify(self, tokens):
        user_id = str(ObjectId())
        token = tokens.issue(user_id)

        assert tokens.verify(token) == user_id

    def test_payload_carries_user_and_times(self, tokens):
        user_id = str(ObjectId())
        payload = jwt.get_unverified_claims(tokens.issue(user_id))

        assert payload["userId"] == user_id
        assert payload["exp"] - payload["iat"] == 5 * 60

    def test_expired_token_is_rejected(self, tokens):
        token = tokens.issue(str(ObjectId()), expires_delta=timedelta(seconds=-30))

        with pytest.raises(InvalidToken):
            tokens.verify(token)

    def test_token_signed_with_other_key_is_rejected(self, tokens):
        other = TokenIssuer("some-other-secret")
        token = other.issue(str(ObjectId()))

        with pytest.raises(InvalidToken):
            tokens.verify(token)

    def test_token_without_valid_user_id_is_rejected(self, tokens):
        token = jwt.encode({"userId": "not-an-id"}, TEST_SECRET, algorithm="HS256")

        with pytest.raises(InvalidToken):
            tokens.verify(token)

    def test_garbage_is_rejected(self, tokens):
        with pytest.raises(InvalidToken):
            tokens.verify("not.a.token")

    def test_secret_is_required(self):
        with pytest.raises(ValueError):
            TokenIssuer("")


@pytest.mark.parametrize(
    "header,expected",
    [
        ("Bearer abc.def", "abc.def"),
        ("bearer abc.def", "abc.def"),
        ("Bearer ", None),
        ("Basic abc", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_bearer(header, expected):
    assert parse_bearer(header) == expected
