"""
Domain models package.

Users and transactions are plain dataclasses owned by the in-memory stores
in app.database. Other modules can import from app.models directly.
"""

from app.models.user import User, UserRole, UserStatus  # noqa: F401
from app.models.transaction import (  # noqa: F401
    Transaction,
    TransactionStatus,
    TransactionType,
)
