"""
User model — the balance holder and authentication identity.

Each User carries a login credential (email + hashed password), a role,
an account status and a balance in integer cents.

Balance management:
  The balance lives in a private field and is exposed through the read-only
  `balance_cents` property. The ONLY way to change it is `update_balance()`,
  which refuses any delta that would take the balance below zero. Callers
  never assign the balance directly, so "balance >= 0" holds after any
  sequence of operations.

User status:
  - ACTIVE: Can log in, send and receive payments
  - INACTIVE: Soft-disabled; cannot authenticate or receive payments
  - BLOCKED: Disabled by an administrator

User roles:
  - USER: Default role for every registration
  - ADMIN: Can search users, change a user's status and issue refunds
"""

import enum
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone

from app.exceptions import InsufficientFundsError
from app.security import generate_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"


class UserRole(str, enum.Enum):
    """
    Defines the role a user holds within the system.

    Inherits from str so the enum value serializes naturally to JSON.
    """
    USER = "user"
    ADMIN = "admin"


@dataclass
class User:
    id: str
    name: str
    email: str
    # Argon2id hash of the password (never exposed through the API)
    hashed_password: str
    status: UserStatus = UserStatus.ACTIVE
    role: UserRole = UserRole.USER
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    _balance_cents: int = field(default=0, repr=False)

    @classmethod
    def create(cls, name: str, email: str, hashed_password: str) -> "User":
        """Build a new active user with a zero balance."""
        now = _utcnow()
        return cls(
            id=generate_id(),
            name=name,
            email=email.lower(),
            hashed_password=hashed_password,
            created_at=now,
            updated_at=now,
        )

    @property
    def balance_cents(self) -> int:
        return self._balance_cents

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def touch(self) -> None:
        """Refresh the last-modified timestamp."""
        self.updated_at = _utcnow()

    def update_balance(self, delta_cents: int) -> None:
        """
        Add `delta_cents` (negative to debit) to the balance.

        Raises:
            InsufficientFundsError: If the resulting balance would be negative.
                The balance is left untouched in that case.
        """
        new_balance = self._balance_cents + delta_cents
        if new_balance < 0:
            raise InsufficientFundsError(
                requested_cents=-delta_cents,
                available_cents=self._balance_cents,
            )
        self._balance_cents = new_balance
        self.touch()

    def has_sufficient_balance(self, amount_cents: int) -> bool:
        return self._balance_cents >= amount_cents

    def to_safe_dict(self) -> dict:
        """Public representation of the user, without credential material."""
        data = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("hashed_password", "_balance_cents")
        }
        data["balance_cents"] = self._balance_cents
        return data
