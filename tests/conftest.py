"""
Test fixtures for the Payments API test suite.

This module provides shared fixtures used across all test files:

  - db: A fresh in-memory Database for each test
  - client: Async HTTP test client (unauthenticated) wired to that Database
  - register: Factory that signs a user up through the real endpoint
  - sender / receiver: Two registered users with auth headers
  - admin: A registered user promoted to ADMIN
  - alice / bob: Users saved directly in the store, for service-level tests

Key design decisions:
  - Each test gets its own Database, so no state leaks between tests.
  - We override FastAPI's get_db dependency to inject the test Database,
    so the application code works exactly as it does in production.
  - HTTP fixtures register users via the endpoint, exercising the real
    registration flow (hashing, onboarding bonus, JWT).
  - The admin fixture promotes a user directly in the store — admins are
    provisioned by an operator, not self-service.
"""

import os

# Must be set before app.config is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.database import Database, UserUpdate, get_db
from app.main import app
from app.models.user import User, UserRole

DEFAULT_PASSWORD = "SecurePass123"


@pytest.fixture
def db():
    """A fresh, empty Database."""
    return Database()


@pytest_asyncio.fixture
async def client(db):
    """Async HTTP test client with the test Database injected."""
    app.dependency_overrides[get_db] = lambda: db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """
    Return a coroutine that registers a user and returns a namespace with
    `id`, `email`, `token`, `headers` and the raw `user` payload.
    """

    async def _register(name: str, email: str, password: str = DEFAULT_PASSWORD):
        response = await client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        assert response.status_code == 201, f"Register failed: {response.text}"
        data = response.json()
        return SimpleNamespace(
            id=data["user"]["id"],
            email=data["user"]["email"],
            token=data["token"],
            headers={"Authorization": f"Bearer {data['token']}"},
            user=data["user"],
        )

    return _register


@pytest_asyncio.fixture
async def sender(register):
    return await register("Sandra Sender", "sender@example.com")


@pytest_asyncio.fixture
async def receiver(register):
    return await register("Rick Receiver", "receiver@example.com")


@pytest_asyncio.fixture
async def admin(register, db):
    registered = await register("Ada Admin", "admin@example.com")
    await db.users.update(registered.id, UserUpdate(role=UserRole.ADMIN))
    return registered


async def _store_user(db: Database, name: str, email: str, balance_cents: int) -> User:
    user = User.create(name=name, email=email, hashed_password="not-a-real-hash")
    user.update_balance(balance_cents)
    await db.users.save(user)
    return user


@pytest_asyncio.fixture
async def alice(db):
    """Service-level sender with $1000.00."""
    return await _store_user(db, "Alice", "alice@example.com", 100_000)


@pytest_asyncio.fixture
async def bob(db):
    """Service-level receiver with $1000.00."""
    return await _store_user(db, "Bob", "bob@example.com", 100_000)
