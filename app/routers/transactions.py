"""
Transactions router — the two-phase transfer lifecycle.

Endpoints:
  POST /api/transactions                    — Create a pending transaction
  GET  /api/transactions                    — History (filters + pagination)
  GET  /api/transactions/{id}               — Detail (participants only)
  GET  /api/transactions/{id}/validate      — Authorization status
  POST /api/transactions/{id}/authorize     — Sender confirms with the code
  POST /api/transactions/{id}/process       — Move the funds
  POST /api/transactions/{id}/cancel        — Sender cancels a pending one
  POST /api/transactions/{id}/refund        — Receiver/admin refunds a completed one

Nothing moves money until /process. The authorization code is returned to
the sender by create and authorize only; other reads never include it.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from app.database import Database, get_db
from app.dependencies import get_current_user
from app.models.transaction import TransactionStatus, TransactionType
from app.models.user import User
from app.schemas.transaction import (
    AuthorizationStatusResponse,
    AuthorizeRequest,
    ProcessResponse,
    RefundResponse,
    TransactionCreateRequest,
    TransactionDetailResponse,
    TransactionHistoryItem,
    TransactionHistoryResponse,
    TransactionResponse,
    TransactionWithCodeResponse,
)
from app.schemas.user import Pagination, UserResponse
from app.services import transaction_service

router = APIRouter()


@router.post(
    "",
    response_model=TransactionWithCodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a transaction",
)
async def create_transaction(
    request: TransactionCreateRequest,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """
    Create a pending transaction from the authenticated user to
    **receiver_user_id**. It must be authorized and then processed before
    any money moves.

    All amounts are in **integer cents** (e.g., $10.50 = 1050).
    """
    txn = await transaction_service.create_transaction(
        db=db,
        sender_id=user.id,
        receiver_id=request.receiver_user_id,
        amount_cents=request.amount_cents,
        description=request.description,
        txn_type=request.type,
    )
    return TransactionWithCodeResponse.model_validate(txn)


@router.get(
    "",
    response_model=TransactionHistoryResponse,
    summary="List own transactions",
)
async def list_transactions(
    status: TransactionStatus | None = Query(None),
    type: TransactionType | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """
    Transactions the user sent or received, newest first. Each item says
    whether the caller was the sender or the receiver and who the other
    party was.
    """
    items, total = await transaction_service.get_transaction_history(
        db=db,
        user_id=user.id,
        status=status,
        txn_type=type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return TransactionHistoryResponse(
        transactions=[TransactionHistoryItem.model_validate(item) for item in items],
        pagination=Pagination.build(page, limit, total),
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionDetailResponse,
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    txn, sender, receiver = await transaction_service.get_transaction_detail(
        db, transaction_id, user.id
    )
    return TransactionDetailResponse(
        **TransactionResponse.model_validate(txn).model_dump(),
        sender=UserResponse.from_user(sender) if sender else None,
        receiver=UserResponse.from_user(receiver) if receiver else None,
        user_role="sender" if txn.sender_user_id == user.id else "receiver",
    )


@router.get(
    "/{transaction_id}/validate",
    response_model=AuthorizationStatusResponse,
    summary="Check whether a transaction is authorized",
)
async def validate_authorization(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    txn = await transaction_service.get_authorization_status(db, transaction_id, user.id)
    return AuthorizationStatusResponse(
        transaction_id=txn.id,
        is_authorized=txn.is_authorized,
        status=txn.status,
    )


@router.post(
    "/{transaction_id}/authorize",
    response_model=TransactionWithCodeResponse,
    summary="Authorize a pending transaction",
)
async def authorize_transaction(
    transaction_id: str,
    request: AuthorizeRequest | None = None,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """
    Sender-only. If **authorization_code** is sent it must match the code
    returned at creation. The sender's balance is checked again; if it no
    longer covers the amount the transaction is marked failed.
    """
    txn = await transaction_service.authorize_transaction(
        db=db,
        transaction_id=transaction_id,
        actor_id=user.id,
        authorization_code=request.authorization_code if request else None,
    )
    return TransactionWithCodeResponse.model_validate(txn)


@router.post(
    "/{transaction_id}/process",
    response_model=ProcessResponse,
    summary="Process an authorized transaction",
)
async def process_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """
    Move the funds from sender to receiver. Either participant may call it.
    Processing happens at most once per transaction.
    """
    txn, sender, receiver = await transaction_service.process_transaction(
        db, transaction_id, user.id
    )
    return ProcessResponse(
        transaction=TransactionResponse.model_validate(txn),
        sender_balance_cents=sender.balance_cents,
        receiver_balance_cents=receiver.balance_cents,
    )


@router.post(
    "/{transaction_id}/cancel",
    response_model=TransactionResponse,
    summary="Cancel a pending transaction",
)
async def cancel_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    txn = await transaction_service.cancel_transaction(db, transaction_id, user.id)
    return TransactionResponse.model_validate(txn)


@router.post(
    "/{transaction_id}/refund",
    response_model=RefundResponse,
    summary="Refund a completed transaction",
)
async def refund_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    original, refund = await transaction_service.refund_transaction(db, transaction_id, user)
    return RefundResponse(
        transaction=TransactionResponse.model_validate(original),
        refund_transaction=TransactionResponse.model_validate(refund),
    )
