"""
Transaction model — one peer-to-peer movement of funds and its lifecycle.

A transaction is a two-phase transfer:

    create ──> pending (not authorized)
                  │ authorize(code)
                  v
               pending (authorized) ──complete()──> completed ──refund()──> refunded
                  │
    cancel() from pending ──> cancelled
    fail(reason) from any non-terminal state ──> failed

Creating and authorizing are non-binding: no money moves until the
transaction service processes it. `can_be_processed()` is the single gate
the service checks before touching balances.

Terminal states (completed, failed, cancelled, refunded) never transition
back to an earlier state, and `is_authorized` never goes from True to False.
Every illegal transition raises TransactionStateError.

Why amount_cents is always positive:
  The direction is given by sender/receiver, so a signed amount would be
  redundant and ambiguous.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.exceptions import TransactionStateError
from app.security import codes_match, generate_authorization_code, generate_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class TransactionType(str, enum.Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


TERMINAL_STATUSES = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
    TransactionStatus.REFUNDED,
})


@dataclass
class Transaction:
    id: str
    sender_user_id: str
    receiver_user_id: str
    amount_cents: int
    description: str
    type: TransactionType = TransactionType.PAYMENT
    status: TransactionStatus = TransactionStatus.PENDING
    # One-time secret proving sender intent, checked at authorize()
    authorization_code: str = field(default_factory=generate_authorization_code)
    is_authorized: bool = False
    failure_reason: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    # Set on refund transactions: the payment being reversed
    related_transaction_id: str | None = None

    @classmethod
    def create(
        cls,
        sender_user_id: str,
        receiver_user_id: str,
        amount_cents: int,
        description: str,
        txn_type: TransactionType = TransactionType.PAYMENT,
        related_transaction_id: str | None = None,
    ) -> "Transaction":
        """
        Build a new pending, unauthorized transaction.

        Raises:
            ValueError: If sender and receiver are the same user or the
                amount is not positive.
        """
        if sender_user_id == receiver_user_id:
            raise ValueError("Sender and receiver must be different users")
        if amount_cents <= 0:
            raise ValueError("Amount must be positive")
        return cls(
            id=generate_id(),
            sender_user_id=sender_user_id,
            receiver_user_id=receiver_user_id,
            amount_cents=amount_cents,
            description=description,
            type=TransactionType(txn_type),
            related_transaction_id=related_transaction_id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def involves(self, user_id: str) -> bool:
        return user_id in (self.sender_user_id, self.receiver_user_id)

    def can_be_processed(self) -> bool:
        return self.is_authorized and self.status == TransactionStatus.PENDING

    # --- Transitions ---

    def authorize(self, code: str | None = None) -> None:
        """Confirm sender intent. A supplied code must match."""
        if self.status != TransactionStatus.PENDING or self.is_authorized:
            raise TransactionStateError(
                "Transaction was already authorized or is not pending"
            )
        if code is not None and not codes_match(code, self.authorization_code):
            raise TransactionStateError("Invalid authorization code")
        self.is_authorized = True

    def complete(self) -> None:
        if not self.is_authorized:
            raise TransactionStateError(
                "Transaction must be authorized before it can be completed"
            )
        if self.status != TransactionStatus.PENDING:
            raise TransactionStateError(
                f"Cannot complete a {self.status.value} transaction"
            )
        self.status = TransactionStatus.COMPLETED
        self.completed_at = _utcnow()

    def fail(self, reason: str) -> None:
        if self.is_terminal:
            raise TransactionStateError(
                f"Cannot fail a {self.status.value} transaction"
            )
        self.status = TransactionStatus.FAILED
        self.failure_reason = reason

    def cancel(self) -> None:
        if self.status == TransactionStatus.COMPLETED:
            raise TransactionStateError("Cannot cancel a completed transaction")
        if self.status != TransactionStatus.PENDING:
            raise TransactionStateError(
                f"Cannot cancel a {self.status.value} transaction"
            )
        self.status = TransactionStatus.CANCELLED

    def refund(self) -> None:
        if self.status != TransactionStatus.COMPLETED:
            raise TransactionStateError("Only completed transactions can be refunded")
        self.status = TransactionStatus.REFUNDED
