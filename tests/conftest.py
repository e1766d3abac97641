"""
Hostel Management API - Test Configuration and Fixtures
"""
import os

os.environ['ENVIRONMENT'] = 'testing'
os.environ['JWT_SECRET'] = 'test-jwt-secret-for-testing-only'
os.environ.pop('DATABASE_URL', None)

import mongomock
import pytest
from faker import Faker
from fastapi.testclient import TestClient
from pymongo.errors import AutoReconnect

import database
import occupancy
import users
from auth import issue_token
from database import DocumentStore, get_store
from main import app

fake = Faker()


@pytest.fixture
def store() -> DocumentStore:
    """Fresh in-memory database for each test"""
    client = mongomock.MongoClient()
    return DocumentStore(client["hostel_test"])


@pytest.fixture
def make_student(store):
    def _make(**overrides):
        data = {
            "name": fake.name(),
            "email": f"{fake.unique.user_name()}@hostel.ac.in",
            "role": "student",
            "course": "B.Tech Computer Science",
            "year": 2,
        }
        data.update(overrides)
        return users.create_user(store, data)
    return _make


@pytest.fixture
def admin(store):
    return users.create_user(store, {
        "name": "Hostel Admin",
        "email": f"{fake.unique.user_name()}@hostel.ac.in",
        "role": "admin",
        "staff_id": "STF001",
    })


@pytest.fixture
def make_room(store):
    def _make(capacity: int = 2, **overrides):
        data = {
            "room_number": str(fake.unique.random_int(min=100, max=999)),
            "block": "A",
            "floor": 1,
            "capacity": capacity,
            "type": "double",
        }
        data.update(overrides)
        return occupancy.create_room(store, data)
    return _make


@pytest.fixture
def client(store):
    """Test client with the store dependency pointed at the in-memory database"""
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer header for a stored user, as the identity provider would issue it"""
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {issue_token(user)}"}
    return _headers


class FlakyCollection:
    """Real collection whose `method` drops the connection for the next `failures` calls"""

    def __init__(self, collection, method: str, failures: int, after_write: bool):
        self._collection = collection
        self.method = method
        self.failures = failures
        self.after_write = after_write
        self.calls = 0

    def __getattr__(self, name):
        return getattr(self._collection, name)

    def _call(self, method, *args, **kwargs):
        real = getattr(self._collection, method)
        if method != self.method:
            return real(*args, **kwargs)
        self.calls += 1
        if self.failures <= 0:
            return real(*args, **kwargs)
        self.failures -= 1
        if self.after_write:
            real(*args, **kwargs)
        raise AutoReconnect("connection reset")

    def find_one_and_update(self, *args, **kwargs):
        return self._call("find_one_and_update", *args, **kwargs)

    def insert_one(self, *args, **kwargs):
        return self._call("insert_one", *args, **kwargs)


class FlakyDatabase:
    def __init__(self, db, collection: str, flaky: FlakyCollection):
        self._db = db
        self._name = collection
        self.flaky = flaky

    def __getitem__(self, name):
        return self.flaky if name == self._name else self._db[name]

    def __getattr__(self, name):
        return getattr(self._db, name)


@pytest.fixture
def flaky_store(store, monkeypatch):
    """Store over the same data whose writes to one collection lose the connection"""
    monkeypatch.setattr(database.time, "sleep", lambda seconds: None)

    def _make(collection: str, method: str, failures: int = 1, after_write: bool = True) -> DocumentStore:
        flaky = FlakyCollection(store.db[collection], method, failures, after_write)
        return DocumentStore(FlakyDatabase(store.db, collection, flaky))
    return _make
