"""
Pydantic schemas for the ledger endpoints.

All monetary amounts are in integer cents (e.g., $10.50 = 1050).

Request amounts are declared as Any on purpose: the raw JSON value is
handed to app.money.parse_amount_cents() in the router, which turns a
malformed amount into an InvalidAmountError (400) rather than a generic
validation error. Only validated ints ever reach the ledger engine.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AmountRequest(BaseModel):
    """Request body for POST /deposit and POST /withdraw."""
    amount_cents: Any = Field(None, description="Amount in cents (must be a positive integer)")
    transaction_id: uuid.UUID | None = Field(
        None, description="Optional ID for the new transaction; re-sending it replays the result"
    )


class TransferRequest(BaseModel):
    """Request body for POST /transfer."""
    recipient_account_id: uuid.UUID
    amount_cents: Any = Field(None, description="Amount in cents (must be a positive integer)")
    transfer_id: uuid.UUID | None = Field(
        None, description="Optional ID shared by both legs; re-sending it replays the result"
    )


class TransactionResponse(BaseModel):
    """Public representation of a transaction."""
    id: uuid.UUID
    account_id: uuid.UUID
    sequence: int
    kind: str
    amount_cents: int
    transfer_id: uuid.UUID | None
    counterparty_account_id: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PostingResponse(BaseModel):
    """Response body for a deposit or withdrawal."""
    message: str
    balance_cents: int
    transaction: TransactionResponse
    replayed: bool = False


class TransferResponse(BaseModel):
    """Response body for a successful transfer."""
    message: str
    transfer_id: uuid.UUID
    sender_balance_cents: int
    amount_cents: int
    recipient_account_id: uuid.UUID
    debit_transaction: TransactionResponse
    credit_transaction: TransactionResponse
    replayed: bool = False


class HistoryResponse(BaseModel):
    """Balance plus the account's transactions, oldest first."""
    account_id: uuid.UUID
    opening_balance_cents: int
    balance_cents: int
    transactions: list[TransactionResponse]

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """
    Balance check response — includes both stored and computed values.

    The `match` field indicates whether the stored balance agrees with
    the opening balance plus the sum of the account's transactions.
    """
    account_id: uuid.UUID
    balance_cents: int
    computed_balance_cents: int
    match: bool

    model_config = {"from_attributes": True}
