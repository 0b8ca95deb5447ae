"""
Custom exception classes and FastAPI exception handlers.

Why custom exceptions?
  The ledger engine raises domain-specific errors (like
  InsufficientBalanceError) without importing HTTP concepts. The boundary
  layer then translates these into proper HTTP responses.

  This separation means:
    - Engine code is testable without HTTP
    - Error responses are consistent across all endpoints
    - Adding new error kinds is straightforward

Exception hierarchy:
    LedgerError (base)
    ├── InvalidAmountError        — non-positive, non-finite or malformed amount
    ├── InvalidTransferError      — structurally invalid transfer (self-transfer)
    ├── AccountNotFoundError      — account(s) referenced by an operation don't exist
    ├── TransactionNotFoundError  — transaction lookup outside the account's log
    ├── DuplicateTransactionError — transaction ID reused for another operation
    ├── InsufficientBalanceError  — withdraw/transfer larger than the balance
    └── StoreUnavailableError     — the store couldn't commit; safe to retry

Every precondition error is raised before anything is written, so only
StoreUnavailableError is marked retryable.
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerError(Exception):
    """Base exception for all ledger domain errors."""

    error_type = "ledger_error"
    retryable = False

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Caller errors (non-retryable)
# ---------------------------------------------------------------------------

class InvalidAmountError(LedgerError):
    """Raised when an amount is non-positive, non-numeric or otherwise malformed."""

    error_type = "invalid_amount"

    def __init__(self, detail: str = "Invalid amount"):
        super().__init__(detail)


class InvalidTransferError(LedgerError):
    """Raised for transfers that can never succeed, e.g. sender == recipient."""

    error_type = "invalid_transfer"

    def __init__(self, detail: str = "Invalid transfer"):
        super().__init__(detail)


class AccountNotFoundError(LedgerError):
    """
    Raised when one or more referenced accounts don't exist.

    Attributes:
        account_ids: The missing account IDs.
        role: Which side of the operation was missing — "account" for
              single-account operations, "sender", "recipient" or "both"
              for transfers.
    """

    error_type = "account_not_found"

    def __init__(self, *account_ids: uuid.UUID, role: str = "account"):
        self.account_ids = account_ids
        self.role = role
        ids = ", ".join(str(account_id) for account_id in account_ids)
        if role == "both":
            detail = f"Sender and recipient accounts not found: {ids}"
        elif role == "account":
            detail = f"Account {ids} not found"
        else:
            detail = f"{role.capitalize()} account {ids} not found"
        super().__init__(detail)


class TransactionNotFoundError(LedgerError):
    """Raised when a transaction doesn't exist in the given account's log."""

    error_type = "transaction_not_found"

    def __init__(self, transaction_id: uuid.UUID):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class DuplicateTransactionError(LedgerError):
    """
    Raised when a caller-supplied transaction ID is already in the log for
    a different operation (other account, kind or amount).

    Re-sending the *same* operation with the same ID is not an error — the
    engine returns the recorded result instead.
    """

    error_type = "duplicate_transaction"

    def __init__(self, transaction_id: uuid.UUID):
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction {transaction_id} already exists for a different operation"
        )


class InsufficientBalanceError(LedgerError):
    """
    Raised when a withdrawal or transfer would cause a negative balance.

    Attributes:
        account_id: The account that lacks sufficient funds.
        requested_cents: The amount the caller tried to remove.
        available_cents: The current balance of the account.
    """

    error_type = "insufficient_balance"

    def __init__(
        self,
        account_id: uuid.UUID,
        requested_cents: int,
        available_cents: int,
    ):
        self.account_id = account_id
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            f"Insufficient balance: requested {requested_cents} cents, "
            f"available {available_cents} cents"
        )


# ---------------------------------------------------------------------------
# Store errors (retryable)
# ---------------------------------------------------------------------------

class StoreUnavailableError(LedgerError):
    """
    Raised when the durable store could not complete an operation.

    Nothing was applied by the failed attempt: its transaction was rolled
    back. The one exception is a commit whose outcome the store never
    reported (outcome_unknown=True). Retrying with the same transaction
    ID is still safe, because the engine replays an operation whose ID is
    already in the log instead of applying it again.
    """

    error_type = "store_unavailable"
    retryable = True

    def __init__(
        self,
        detail: str = "The ledger store is temporarily unavailable",
        outcome_unknown: bool = False,
    ):
        self.outcome_unknown = outcome_unknown
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error_body(exc: LedgerError, **extra) -> dict:
    return {"detail": exc.detail, "error_type": exc.error_type, **extra}


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each handler maps a domain exception to an HTTP status code and a
    consistent JSON body: {"detail": "...", "error_type": "..."}

    This is called once during app setup in main.py.
    """

    @app.exception_handler(InvalidAmountError)
    @app.exception_handler(InvalidTransferError)
    async def bad_request_handler(request: Request, exc: LedgerError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(exc))

    @app.exception_handler(InsufficientBalanceError)
    async def insufficient_balance_handler(
        request: Request, exc: InsufficientBalanceError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=_error_body(
                exc,
                requested_cents=exc.requested_cents,
                available_cents=exc.available_cents,
            ),
        )

    @app.exception_handler(AccountNotFoundError)
    async def account_not_found_handler(
        request: Request, exc: AccountNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content=_error_body(
                exc,
                role=exc.role,
                account_ids=[str(account_id) for account_id in exc.account_ids],
            ),
        )

    @app.exception_handler(TransactionNotFoundError)
    async def transaction_not_found_handler(
        request: Request, exc: TransactionNotFoundError
    ) -> JSONResponse:
        return JSONResponse(status_code=404, content=_error_body(exc))

    @app.exception_handler(DuplicateTransactionError)
    async def duplicate_transaction_handler(
        request: Request, exc: DuplicateTransactionError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,  # Conflict — the ID is taken by another operation
            content=_error_body(exc),
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(
        request: Request, exc: StoreUnavailableError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=503,  # Service Unavailable — the whole operation may be retried
            content=_error_body(exc, retryable=True, outcome_unknown=exc.outcome_unknown),
            headers={"Retry-After": "1"},
        )
