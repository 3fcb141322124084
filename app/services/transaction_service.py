"""
Transaction service — the two-phase transfer orchestrator.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - Creating pending transactions (no money moves)
  - Authorizing them with the sender's authorization code
  - Processing them: the only step that moves funds
  - Cancelling and refunding
  - Participant-scoped history and detail queries

Every step re-validates from current state. A transaction authorized an
hour ago is checked against the sender's balance again when processed.

Locking:
  Each state-changing flow holds `db.locks` for the transaction and for
  every user whose balance it may touch, then re-reads the transaction
  under the lock. Two concurrent `process` calls therefore serialize: the
  first completes the transfer, the second finds the transaction no
  longer processable and gets a ValidationError. KeyedLocks acquires the
  keys in sorted order, so opposite-direction transfers cannot deadlock.

Atomicity:
  The balance updates and the transaction's completion are saved inside
  one unit of work. If any save fails, every entity touched is restored
  to its previous state before the transaction is marked failed, so a
  debit is never left without its matching credit.

Failure audit trail:
  A transaction that fails a balance re-check (at authorize or process
  time) is moved to `failed` and persisted before the error is raised. It
  will not retry itself; the sender has to create a new one.
"""

import logging
from datetime import datetime, timezone

from app.database import Database, TransactionFilter
from app.exceptions import (
    ForbiddenError,
    InsufficientFundsError,
    NotFoundError,
    PaymentError,
    TransactionStateError,
    ValidationError,
)
from app.models.transaction import Transaction, TransactionStatus, TransactionType
from app.models.user import User
from app.security import codes_match

logger = logging.getLogger(__name__)


def _lock_keys(txn: Transaction) -> tuple[str, str, str]:
    return (
        f"transaction:{txn.id}",
        f"user:{txn.sender_user_id}",
        f"user:{txn.receiver_user_id}",
    )


async def _get_transaction_or_404(db: Database, transaction_id: str) -> Transaction:
    txn = await db.transactions.find_by_id(transaction_id)
    if txn is None:
        raise NotFoundError("Transaction not found")
    return txn


async def _fail(db: Database, txn: Transaction, reason: str) -> None:
    """Move a transaction to `failed` and persist it."""
    txn.fail(reason)
    await db.transactions.save(txn)
    logger.warning("Transaction %s failed: %s", txn.id, reason)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def create_transaction(
    db: Database,
    sender_id: str,
    receiver_id: str,
    amount_cents: int,
    description: str,
    txn_type: TransactionType = TransactionType.PAYMENT,
) -> Transaction:
    """
    Create a pending, unauthorized transaction. No funds move.

    Raises:
        ValidationError: If sender and receiver are the same user, or the
            receiver's account is not active.
        NotFoundError: If the sender or receiver does not exist.
        InsufficientFundsError: If the sender's balance is below the amount.
    """
    if sender_id == receiver_id:
        raise ValidationError("You cannot send a transaction to yourself")

    receiver = await db.users.find_by_id(receiver_id)
    if receiver is None:
        raise NotFoundError("Receiver does not exist")

    if not receiver.is_active:
        raise ValidationError("Receiver does not have an active account")

    sender = await db.users.find_by_id(sender_id)
    if sender is None:
        raise NotFoundError("Sender does not exist")

    if not sender.has_sufficient_balance(amount_cents):
        raise InsufficientFundsError(
            f"Insufficient funds. Your current balance is {sender.balance_cents} cents",
            requested_cents=amount_cents,
            available_cents=sender.balance_cents,
        )

    try:
        txn = Transaction.create(
            sender_user_id=sender_id,
            receiver_user_id=receiver_id,
            amount_cents=amount_cents,
            description=description,
            txn_type=txn_type,
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    await db.transactions.save(txn)
    logger.info(
        "Transaction %s created: %s -> %s, %d cents",
        txn.id, sender_id, receiver_id, amount_cents,
    )
    return txn


async def authorize_transaction(
    db: Database,
    transaction_id: str,
    actor_id: str,
    authorization_code: str | None = None,
) -> Transaction:
    """
    Confirm the sender's intent. Still no funds move.

    Raises:
        NotFoundError: If the transaction (or its sender) does not exist.
        ForbiddenError: If the actor is not the sender.
        ValidationError: If already authorized, not pending, or the code
            does not match.
        InsufficientFundsError: If the sender can no longer afford it; the
            transaction is failed and persisted first.
    """
    txn = await _get_transaction_or_404(db, transaction_id)
    if txn.sender_user_id != actor_id:
        raise ForbiddenError("Only the sender can authorize this transaction")

    async with db.locks.hold(f"transaction:{txn.id}", f"user:{txn.sender_user_id}"):
        txn = await _get_transaction_or_404(db, transaction_id)

        if txn.status != TransactionStatus.PENDING or txn.is_authorized:
            raise ValidationError("Transaction was already authorized or is not pending")

        if authorization_code and not codes_match(
            authorization_code, txn.authorization_code
        ):
            raise ValidationError("Invalid authorization code")

        sender = await db.users.find_by_id(txn.sender_user_id)
        if sender is None:
            await _fail(db, txn, "Sender not found")
            raise NotFoundError("Sender does not exist")

        if not sender.has_sufficient_balance(txn.amount_cents):
            await _fail(db, txn, "Insufficient funds")
            raise InsufficientFundsError(
                "Insufficient funds to complete the transaction",
                requested_cents=txn.amount_cents,
                available_cents=sender.balance_cents,
            )

        txn.authorize(authorization_code or None)
        await db.transactions.save(txn)

    logger.info("Transaction %s authorized", txn.id)
    return txn


async def process_transaction(
    db: Database,
    transaction_id: str,
    actor_id: str,
) -> tuple[Transaction, User, User]:
    """
    Execute the funds movement for an authorized transaction, exactly once.

    Returns:
        Tuple of (completed transaction, sender, receiver) with the
        post-transfer balances.

    Raises:
        NotFoundError: If the transaction or either user does not exist.
        ForbiddenError: If the actor is neither sender nor receiver.
        ValidationError: If the transaction cannot be processed (not
            authorized, or no longer pending).
        InsufficientFundsError: If the sender can no longer afford it.
        PaymentError: If moving the funds fails; all writes are rolled back
            and the transaction is marked failed.
    """
    txn = await _get_transaction_or_404(db, transaction_id)
    if not txn.involves(actor_id):
        raise ForbiddenError("You do not have permission to process this transaction")

    async with db.locks.hold(*_lock_keys(txn)):
        # Re-read under the lock: a concurrent call may have completed it.
        txn = await _get_transaction_or_404(db, transaction_id)
        if not txn.can_be_processed():
            raise ValidationError("Transaction cannot be processed in its current state")

        sender = await db.users.find_by_id(txn.sender_user_id)
        receiver = await db.users.find_by_id(txn.receiver_user_id)
        if sender is None or receiver is None:
            await _fail(db, txn, "User not found")
            raise NotFoundError("One of the users involved does not exist")

        if not sender.has_sufficient_balance(txn.amount_cents):
            await _fail(db, txn, "Insufficient funds")
            raise InsufficientFundsError(
                "Insufficient funds to complete the transaction",
                requested_cents=txn.amount_cents,
                available_cents=sender.balance_cents,
            )

        try:
            async with db.unit_of_work() as uow:
                sender.update_balance(-txn.amount_cents)
                receiver.update_balance(txn.amount_cents)
                await uow.save(db.users, sender)
                await uow.save(db.users, receiver)
                txn.complete()
                await uow.save(db.transactions, txn)
        except Exception as exc:
            logger.exception("Processing transaction %s failed", transaction_id)
            stored = await _get_transaction_or_404(db, transaction_id)
            if not stored.is_terminal:
                await _fail(db, stored, str(exc))
            raise PaymentError(f"Error processing the transaction: {exc}") from exc

    logger.info(
        "Transaction %s completed: %d cents moved %s -> %s",
        txn.id, txn.amount_cents, sender.id, receiver.id,
    )
    return txn, sender, receiver


async def cancel_transaction(
    db: Database,
    transaction_id: str,
    actor_id: str,
) -> Transaction:
    """
    Cancel a pending transaction.

    Raises:
        NotFoundError: If the transaction does not exist.
        ForbiddenError: If the actor is not the sender.
        ValidationError: If the transaction is completed or otherwise no
            longer pending.
    """
    txn = await _get_transaction_or_404(db, transaction_id)
    if txn.sender_user_id != actor_id:
        raise ForbiddenError("Only the sender can cancel this transaction")

    async with db.locks.hold(f"transaction:{txn.id}"):
        txn = await _get_transaction_or_404(db, transaction_id)
        try:
            txn.cancel()
        except TransactionStateError as exc:
            raise ValidationError(str(exc)) from exc
        await db.transactions.save(txn)

    logger.info("Transaction %s cancelled", txn.id)
    return txn


async def refund_transaction(
    db: Database,
    transaction_id: str,
    actor: User,
) -> tuple[Transaction, Transaction]:
    """
    Return the funds of a completed payment to its sender.

    The receiver (or an admin) initiates it. A new completed transaction of
    type `refund` records the reverse movement and points back at the
    original, which becomes `refunded`.

    Returns:
        Tuple of (original transaction, refund transaction).

    Raises:
        NotFoundError: If the transaction or either user does not exist.
        ForbiddenError: If the actor is neither the receiver nor an admin.
        ValidationError: If the transaction is not completed.
        InsufficientFundsError: If the receiver can no longer cover it.
        PaymentError: If moving the funds fails; nothing is changed.
    """
    original = await _get_transaction_or_404(db, transaction_id)
    if not actor.is_admin and actor.id != original.receiver_user_id:
        raise ForbiddenError("Only the receiver or an admin can refund this transaction")

    async with db.locks.hold(*_lock_keys(original)):
        original = await _get_transaction_or_404(db, transaction_id)
        if original.status != TransactionStatus.COMPLETED:
            raise ValidationError("Only completed transactions can be refunded")

        payer = await db.users.find_by_id(original.receiver_user_id)
        payee = await db.users.find_by_id(original.sender_user_id)
        if payer is None or payee is None:
            raise NotFoundError("One of the users involved does not exist")

        if not payer.has_sufficient_balance(original.amount_cents):
            raise InsufficientFundsError(
                "Receiver has insufficient funds to refund this transaction",
                requested_cents=original.amount_cents,
                available_cents=payer.balance_cents,
            )

        refund = Transaction.create(
            sender_user_id=payer.id,
            receiver_user_id=payee.id,
            amount_cents=original.amount_cents,
            description=f"Refund of transaction {original.id}",
            txn_type=TransactionType.REFUND,
            related_transaction_id=original.id,
        )
        try:
            async with db.unit_of_work() as uow:
                payer.update_balance(-original.amount_cents)
                payee.update_balance(original.amount_cents)
                await uow.save(db.users, payer)
                await uow.save(db.users, payee)
                refund.authorize(refund.authorization_code)
                refund.complete()
                original.refund()
                await uow.save(db.transactions, refund)
                await uow.save(db.transactions, original)
        except Exception as exc:
            logger.exception("Refunding transaction %s failed", transaction_id)
            raise PaymentError(f"Error refunding the transaction: {exc}") from exc

    logger.info("Transaction %s refunded by %s as %s", original.id, actor.id, refund.id)
    return original, refund


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _as_utc(value: datetime) -> datetime:
    # Naive datetimes from query strings are taken to be UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


async def get_transaction_history(
    db: Database,
    user_id: str,
    status: TransactionStatus | None = None,
    txn_type: TransactionType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[dict], int]:
    """
    List the user's transactions (sent or received), newest first.

    Each item is the transaction's fields plus `role` ("sender" or
    "receiver") and `other_party` (id, name, email of the counterparty,
    or None if that user no longer exists).

    Returns:
        Tuple of (items on the requested page, total matching transactions).
    """
    transactions = await db.transactions.find_by_user_id(
        user_id, TransactionFilter(status=status, type=txn_type)
    )

    if start_date is not None:
        start_date = _as_utc(start_date)
        transactions = [t for t in transactions if t.created_at >= start_date]
    if end_date is not None:
        end_date = _as_utc(end_date)
        transactions = [t for t in transactions if t.created_at <= end_date]

    start = (page - 1) * limit
    items = []
    for txn in transactions[start:start + limit]:
        is_sender = txn.sender_user_id == user_id
        other = await db.users.find_by_id(
            txn.receiver_user_id if is_sender else txn.sender_user_id
        )
        items.append({
            **vars(txn),
            "role": "sender" if is_sender else "receiver",
            "other_party": (
                {"id": other.id, "name": other.name, "email": other.email}
                if other is not None else None
            ),
        })
    return items, len(transactions)


async def get_transaction_detail(
    db: Database,
    transaction_id: str,
    actor_id: str,
) -> tuple[Transaction, User | None, User | None]:
    """
    Get a transaction together with both participants.

    Raises:
        NotFoundError: If the transaction does not exist.
        ForbiddenError: If the actor is not a participant.
    """
    txn = await _get_transaction_or_404(db, transaction_id)
    if not txn.involves(actor_id):
        raise ForbiddenError("You do not have permission to view this transaction")

    sender = await db.users.find_by_id(txn.sender_user_id)
    receiver = await db.users.find_by_id(txn.receiver_user_id)
    return txn, sender, receiver


async def get_authorization_status(
    db: Database,
    transaction_id: str,
    actor_id: str,
) -> Transaction:
    """
    Raises:
        NotFoundError: If the transaction does not exist.
        ForbiddenError: If the actor is not a participant.
    """
    txn = await _get_transaction_or_404(db, transaction_id)
    if not txn.involves(actor_id):
        raise ForbiddenError("You do not have permission to view this transaction")
    return txn
