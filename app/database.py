"""
In-memory stores, locking and unit-of-work.

This module replaces a database engine with plain process memory. Key
components:

  - Repository: generic keyed store (upsert, lookup, filter, update, delete)
  - UserStore: the identity store (users, unique case-insensitive email)
  - TransactionStore: the ledger store (transactions, participant queries)
  - KeyedLocks: per-key asyncio locks for read-validate-write sequences
  - UnitOfWork: snapshot/restore of every entity saved inside a block
  - Database: owns all of the above; one instance per application
  - get_db(): FastAPI dependency that returns the application's Database

Copy semantics:
  Stores keep private deep copies. `save()` publishes a copy of the
  caller's object and every read hands back a fresh copy, so a caller's
  mutations are invisible to everyone else until it saves. A single caller
  always reads its own writes.

Lifecycle:
  The Database is created once in the application lifespan (app/main.py)
  and lives on `app.state.db`. It is never a module-level global; tests
  build their own instance and override get_db. `reset()` is the explicit
  hook for clearing state.
"""

import asyncio
import copy
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from fastapi import Request

from app.exceptions import ConflictError
from app.models.transaction import Transaction, TransactionStatus, TransactionType
from app.models.user import User, UserRole, UserStatus

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", User, Transaction)


# ---------------------------------------------------------------------------
# Typed filters and partial updates
# ---------------------------------------------------------------------------

@dataclass
class UserFilter:
    email: str | None = None
    status: UserStatus | None = None


@dataclass
class UserUpdate:
    """Fields of a User that may be changed through UserStore.update().

    The balance is intentionally absent: it only changes via
    User.update_balance().
    """
    name: str | None = None
    email: str | None = None
    hashed_password: str | None = None
    status: UserStatus | None = None
    role: UserRole | None = None


@dataclass
class TransactionFilter:
    sender_user_id: str | None = None
    receiver_user_id: str | None = None
    status: TransactionStatus | None = None
    type: TransactionType | None = None


@dataclass
class TransactionUpdate:
    """Fields of a Transaction that may be changed through update().

    Status and authorization change only through the entity's transitions.
    """
    description: str | None = None


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

class Repository(Generic[EntityT]):
    """
    Keyed in-memory repository.

    All methods are async so callers are written against the same interface
    a real backing store would expose.
    """

    def __init__(self) -> None:
        self._items: dict[str, EntityT] = {}

    async def save(self, entity: EntityT) -> EntityT:
        """Insert or replace by id. Returns the caller's object."""
        self._items[entity.id] = copy.deepcopy(entity)
        return entity

    async def find_by_id(self, entity_id: str) -> EntityT | None:
        entity = self._items.get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    async def delete(self, entity_id: str) -> bool:
        return self._items.pop(entity_id, None) is not None

    async def count(self) -> int:
        return len(self._items)

    def clear(self) -> None:
        self._items.clear()

    def _select(self, predicate: Callable[[EntityT], bool]) -> list[EntityT]:
        return [copy.deepcopy(e) for e in self._items.values() if predicate(e)]


class UserStore(Repository[User]):
    """Identity store: users keyed by id, unique by lowercased email."""

    async def save(self, user: User) -> User:
        existing = self._find_by_email(user.email)
        if existing is not None and existing.id != user.id:
            raise ConflictError(f"Email {user.email} is already registered")
        return await super().save(user)

    async def find_by_email(self, email: str) -> User | None:
        user = self._find_by_email(email)
        return copy.deepcopy(user) if user is not None else None

    def _find_by_email(self, email: str) -> User | None:
        wanted = email.lower()
        for user in self._items.values():
            if user.email == wanted:
                return user
        return None

    async def find(self, criteria: UserFilter | None = None) -> list[User]:
        criteria = criteria or UserFilter()
        email = criteria.email.lower() if criteria.email else None
        status = UserStatus(criteria.status) if criteria.status else None
        return self._select(
            lambda u: (email is None or u.email == email)
            and (status is None or u.status == status)
        )

    async def update(self, user_id: str, changes: UserUpdate) -> User | None:
        """
        Apply a partial update and refresh updated_at.

        Returns the updated user, or None if it does not exist.

        Raises:
            ConflictError: If the new email belongs to another user.
            ValueError: If status or role is not a valid value.
        """
        user = await self.find_by_id(user_id)
        if user is None:
            return None

        if changes.name is not None:
            user.name = changes.name
        if changes.email is not None:
            user.email = changes.email.lower()
        if changes.hashed_password is not None:
            user.hashed_password = changes.hashed_password
        if changes.status is not None:
            user.status = UserStatus(changes.status)
        if changes.role is not None:
            user.role = UserRole(changes.role)

        user.touch()
        return await self.save(user)


class TransactionStore(Repository[Transaction]):
    """Ledger store: transactions keyed by id."""

    async def find(self, criteria: TransactionFilter | None = None) -> list[Transaction]:
        """Filtered transactions, newest first."""
        criteria = criteria or TransactionFilter()
        status = TransactionStatus(criteria.status) if criteria.status else None
        txn_type = TransactionType(criteria.type) if criteria.type else None
        results = self._select(
            lambda t: (criteria.sender_user_id is None or t.sender_user_id == criteria.sender_user_id)
            and (criteria.receiver_user_id is None or t.receiver_user_id == criteria.receiver_user_id)
            and (status is None or t.status == status)
            and (txn_type is None or t.type == txn_type)
        )
        results.sort(key=lambda t: t.created_at, reverse=True)
        return results

    async def find_by_user_id(
        self,
        user_id: str,
        criteria: TransactionFilter | None = None,
    ) -> list[Transaction]:
        """
        Transactions where the user is sender OR receiver, newest first.

        Only the status and type of `criteria` apply; the participant fields
        are replaced by the sender-or-receiver match.
        """
        criteria = criteria or TransactionFilter()
        status = TransactionStatus(criteria.status) if criteria.status else None
        txn_type = TransactionType(criteria.type) if criteria.type else None
        results = self._select(
            lambda t: t.involves(user_id)
            and (status is None or t.status == status)
            and (txn_type is None or t.type == txn_type)
        )
        results.sort(key=lambda t: t.created_at, reverse=True)
        return results

    async def update(self, transaction_id: str, changes: TransactionUpdate) -> Transaction | None:
        txn = await self.find_by_id(transaction_id)
        if txn is None:
            return None
        if changes.description is not None:
            txn.description = changes.description
        return await self.save(txn)


# ---------------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------------

class KeyedLocks:
    """
    Registry of asyncio locks keyed by string.

    DEADLOCK PREVENTION: hold() acquires its keys in sorted order, so two
    flows that need the same pair of keys always lock them in the same
    order (the classic A->B / B->A transfer case).

    A key's lock exists only while someone holds it or waits for it; the
    last user to leave removes it, so the registry does not grow with the
    ledger.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def _hold_one(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        # Counted before acquiring, so waiters keep the lock alive
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users.get(key, 0) - 1
            if remaining > 0:
                self._users[key] = remaining
            else:
                self._users.pop(key, None)
                self._locks.pop(key, None)

    @asynccontextmanager
    async def hold(self, *keys: str):
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._hold_one(key))
            yield

    def clear(self) -> None:
        self._locks.clear()
        self._users.clear()


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------

class UnitOfWork:
    """
    Records the prior state of every entity saved through it.

    If the block using it raises, rollback() restores each entity to its
    snapshot (or deletes it if it did not exist), newest write first.
    """

    def __init__(self) -> None:
        self._undo: list[tuple[Repository, str, object | None]] = []

    async def save(self, repository: Repository[EntityT], entity: EntityT) -> EntityT:
        before = await repository.find_by_id(entity.id)
        self._undo.append((repository, entity.id, before))
        return await repository.save(entity)

    async def rollback(self) -> None:
        for repository, entity_id, before in reversed(self._undo):
            if before is None:
                await repository.delete(entity_id)
            else:
                await repository.save(before)
        self._undo.clear()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

class Database:
    """The application's complete in-memory state."""

    def __init__(self) -> None:
        self.users = UserStore()
        self.transactions = TransactionStore()
        self.locks = KeyedLocks()

    @asynccontextmanager
    async def unit_of_work(self):
        uow = UnitOfWork()
        try:
            yield uow
        except BaseException:
            logger.warning("Rolling back unit of work")
            await uow.rollback()
            raise

    def reset(self) -> None:
        """Drop all users, transactions and locks."""
        self.users.clear()
        self.transactions.clear()
        self.locks.clear()

    async def stats(self) -> dict:
        return {
            "users": await self.users.count(),
            "transactions": await self.transactions.count(),
        }


def get_db(request: Request) -> Database:
    """
    FastAPI dependency that provides the application's Database.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: Database = Depends(get_db)):
            ...
    """
    return request.app.state.db
