"""Pytest fixtures for bookstore tests."""

import itertools

import mongomock
import pytest
from fastapi.testclient import TestClient

import books
import database
from auth import create_token, hash_password
from schemas import User as UserSchema


@pytest.fixture
def db():
    """A fresh in-memory database wired in as the app's database."""
    database.close_db()
    mdb = database.init_db(mongomock.MongoClient(), name="bookstore_test")
    yield mdb
    database.close_db()


@pytest.fixture
def client(db):
    from main import app

    return TestClient(app)


def _make_user(db, name, email, role):
    user = UserSchema(name=name, email=email, password_hash=hash_password("secret123"), role=role)
    user_id = database.create_document(db, "user", user)
    token = create_token({"id": user_id, "email": email, "role": role})
    return {
        "id": user_id,
        "email": email,
        "role": role,
        "headers": {"Authorization": f"Bearer {token}"},
    }


@pytest.fixture
def buyer(db):
    return _make_user(db, "Bea Buyer", "buyer@example.com", "BUYER")


@pytest.fixture
def other_buyer(db):
    return _make_user(db, "Otto Other", "other@example.com", "BUYER")


@pytest.fixture
def seller(db):
    return _make_user(db, "Sam Seller", "seller@example.com", "SELLER")


@pytest.fixture
def other_seller(db):
    return _make_user(db, "Rita Rival", "rival@example.com", "SELLER")


@pytest.fixture
def admin(db):
    return _make_user(db, "Ada Admin", "admin@example.com", "ADMIN")


@pytest.fixture
def make_book(db, seller):
    """Factory for listed books. Defaults: $10.00, 5 in stock."""
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        data = {
            "title": f"Test Book {n}",
            "description": "A book that only exists in tests.",
            "isbn": f"97800000{n:05d}",
            "author": "Test Author",
            "category": "Fiction",
            "price": 10.0,
            "stock": 5,
        }
        data.update(overrides)
        return books.create_book(db, seller["id"], data)

    return _make


@pytest.fixture
def book(make_book):
    return make_book()


@pytest.fixture
def address():
    return {
        "name": "Bea Buyer",
        "street": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "country": "US",
    }
