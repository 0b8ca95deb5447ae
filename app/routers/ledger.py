"""
Ledger router — deposit, withdraw, transfer and history for the caller.

Endpoints (all require a bearer token; the account is the token's subject):
  POST /deposit                    — Add money to the caller's account
  POST /withdraw                   — Remove money from the caller's account
  POST /transfer                   — Move money to another account
  GET  /transactions               — Balance plus full transaction history
  GET  /transactions/{id}          — A single transaction
  GET  /balance                    — Stored vs. recomputed balance

The router only translates: raw amounts are coerced with
parse_amount_cents() before the engine sees them, and domain errors are
turned into HTTP responses by the handlers in app/exceptions.py
(400 for caller errors, 404 for unknown accounts, 503 for store faults).
"""

import uuid

from fastapi import APIRouter, Depends

from app.config import settings
from app.dependencies import get_current_account_id, get_ledger_service, get_query_service
from app.money import parse_amount_cents
from app.schemas.ledger import (
    AmountRequest,
    BalanceResponse,
    HistoryResponse,
    PostingResponse,
    TransactionResponse,
    TransferRequest,
    TransferResponse,
)
from app.services.ledger_service import LedgerService
from app.services.query_service import QueryService

router = APIRouter()


@router.post(
    "/deposit",
    response_model=PostingResponse,
    summary="Deposit money into your account",
)
async def deposit(
    request: AmountRequest,
    account_id: uuid.UUID = Depends(get_current_account_id),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """
    Add money to the authenticated account.

    All amounts are in **integer cents** (e.g., $10.50 = 1050).
    """
    amount_cents = parse_amount_cents(request.amount_cents, settings.MAX_AMOUNT_CENTS)
    result = await ledger.deposit(account_id, amount_cents, request.transaction_id)
    return PostingResponse(
        message="Deposit successful",
        balance_cents=result.balance_cents,
        transaction=TransactionResponse.model_validate(result.transaction),
        replayed=result.replayed,
    )


@router.post(
    "/withdraw",
    response_model=PostingResponse,
    summary="Withdraw money from your account",
)
async def withdraw(
    request: AmountRequest,
    account_id: uuid.UUID = Depends(get_current_account_id),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """
    Remove money from the authenticated account.

    Rejected with 400 if the balance is lower than the amount; nothing is
    recorded in that case.
    """
    amount_cents = parse_amount_cents(request.amount_cents, settings.MAX_AMOUNT_CENTS)
    result = await ledger.withdraw(account_id, amount_cents, request.transaction_id)
    return PostingResponse(
        message="Withdrawal successful",
        balance_cents=result.balance_cents,
        transaction=TransactionResponse.model_validate(result.transaction),
        replayed=result.replayed,
    )


@router.post(
    "/transfer",
    response_model=TransferResponse,
    summary="Transfer money to another account",
)
async def transfer(
    request: TransferRequest,
    account_id: uuid.UUID = Depends(get_current_account_id),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """
    Transfer money from the authenticated account to another account.

    This is an atomic operation — either both legs are recorded and both
    balances change, or nothing happens.

    - **recipient_account_id**: Any other existing account
    - **amount_cents**: Positive integer in cents (e.g., $50.00 = 5000)
    - Cannot transfer to your own account
    """
    amount_cents = parse_amount_cents(request.amount_cents, settings.MAX_AMOUNT_CENTS)
    result = await ledger.transfer(
        account_id,
        request.recipient_account_id,
        amount_cents,
        request.transfer_id,
    )
    return TransferResponse(
        message="Transfer successful",
        transfer_id=result.transfer_id,
        sender_balance_cents=result.sender_balance_cents,
        amount_cents=result.amount_cents,
        recipient_account_id=result.recipient_account_id,
        debit_transaction=TransactionResponse.model_validate(result.debit_transaction),
        credit_transaction=TransactionResponse.model_validate(result.credit_transaction),
        replayed=result.replayed,
    )


@router.get(
    "/transactions",
    response_model=HistoryResponse,
    summary="Balance and transaction history",
)
async def get_history(
    account_id: uuid.UUID = Depends(get_current_account_id),
    queries: QueryService = Depends(get_query_service),
):
    """
    The account's balance and every transaction, oldest first.

    The balance and the list come from the same snapshot, so the balance
    always equals the opening balance plus the sum of the amounts.
    """
    history = await queries.get_history(account_id)
    return HistoryResponse.model_validate(history)


@router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: uuid.UUID,
    account_id: uuid.UUID = Depends(get_current_account_id),
    queries: QueryService = Depends(get_query_service),
):
    """Get details for a specific transaction of your account."""
    return await queries.get_transaction(account_id, transaction_id)


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Check your balance against the transaction log",
)
async def get_balance(
    account_id: uuid.UUID = Depends(get_current_account_id),
    queries: QueryService = Depends(get_query_service),
):
    """Stored balance next to the balance recomputed from the log."""
    check = await queries.get_balance(account_id)
    return BalanceResponse.model_validate(check)
