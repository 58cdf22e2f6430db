import mongomock
import pytest
from fastapi.testclient import TestClient

from cart import CartStore, UserLocks
from catalog import CatalogStore
from config import Settings
from credentials import CredentialStore
from database import Database
from main import create_app
from orders import OrderStore
from security import PasswordHasher, TokenIssuer

TEST_SECRET = "test-secret-not-for-production"


@pytest.fixture()
def settings():
    return Settings(
        environment="test",
        jwt_secret=TEST_SECRET,
        bcrypt_rounds=4,
        rate_limit_requests=0,
    )


@pytest.fixture()
def database():
    """An unopened handle over an in-memory MongoDB."""
    return Database("mongodb://localhost:27017", "shop_test", client=mongomock.MongoClient())


@pytest.fixture()
def open_db(database):
    database.open()
    yield database
    database.close()


@pytest.fixture()
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture()
def tokens():
    return TokenIssuer(TEST_SECRET, expire_minutes=5)


@pytest.fixture()
def credentials(open_db, hasher):
    return CredentialStore(open_db, hasher)


@pytest.fixture()
def catalog(open_db):
    return CatalogStore(open_db)


@pytest.fixture()
def locks():
    return UserLocks()


@pytest.fixture()
def cart(open_db, catalog, locks):
    return CartStore(open_db, catalog, locks)


@pytest.fixture()
def orders(open_db, locks):
    return OrderStore(open_db, locks)


@pytest.fixture()
def client(settings, database):
    with TestClient(create_app(settings, database)) as c:
        yield c


def product_payload(name="Desk Lamp", **overrides):
    payload = {
        "name": name,
        "description": "Adjustable LED lamp",
        "category": "Lighting",
        "price": 24.99,
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def auth_headers(client):
    def _auth(username="alice", password="password1"):
        resp = client.post("/api/users/register", json={"username": username, "password": password})
        assert resp.status_code == 200
        resp = client.post("/api/users/login", json={"username": username, "password": password})
        assert resp.status_code == 200
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _auth


@pytest.fixture()
def make_product(client):
    def _make(name="Desk Lamp", **overrides):
        resp = client.post("/api/products", json=product_payload(name, **overrides))
        assert resp.status_code == 200
        return resp.json()["productId"]

    return _make
