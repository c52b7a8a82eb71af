import itertools
import os
from datetime import datetime, timezone

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from auth.utils import Identity, create_access_token, get_password_hash
from main import app

_sequence = itertools.count(1)


def auth_header(user_id: str, role: str) -> dict:
    token = create_access_token(Identity(id=user_id, role=role))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    """Every test gets its own empty in-memory database."""
    test_db = mongomock.MongoClient()["quickpick_test"]
    monkeypatch.setattr(database, "db", test_db)
    database.ensure_indexes()
    return test_db


@pytest.fixture
def client(mongo):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def account(mongo):
    """Inserts an account straight into the store and returns it with `id` and `headers`."""
    def _make(kind="buyer", password="secret1", **fields):
        n = next(_sequence)
        doc = {
            "firstName": f"First{n}",
            "lastName": f"Last{n}",
            "email": f"user{n}@x.com",
            "password": get_password_hash(password),
            "role": kind,
            "createdAt": datetime.now(timezone.utc),
        }
        if kind == "seller":
            doc.update({
                "mobileNumber": str(9000000000 + n),
                "shopName": f"Shop {n}",
                "shopAddress": "12 Market Road",
                "isApproved": False,
            })
        doc.update(fields)
        mongo[database.IDENTITY_COLLECTIONS[doc["role"]]].insert_one(doc)
        doc["id"] = str(doc["_id"])
        doc["headers"] = auth_header(doc["id"], doc["role"])
        return doc

    return _make
