"""
Ledger service — deposit, withdraw and transfer.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - Applying balance changes and recording them as Transaction rows
  - Executing atomic transfers between two accounts
  - Balance enforcement (no negative balances)
  - Idempotent replay of operations whose ID is already in the log

Atomicity:
  Every balance change and its corresponding transaction record are
  written in the SAME database transaction and committed exactly once
  (see app/services/unit_of_work.py). A transfer's two balance updates
  and two transaction rows are one commit — there is no moment at which
  the sender has been debited but the recipient not yet credited.

Linearizability:
  Each operation holds the in-process lock of every account it touches
  from its first read until after its commit, and the store serialises
  writers on top of that (FOR UPDATE on PostgreSQL, BEGIN IMMEDIATE on
  SQLite). Concurrent operations on one account therefore behave as if
  they ran one after another; operations on other accounts don't wait.

Deadlock prevention:
  When a transfer involves two accounts, we always lock them in a
  consistent order (sorted by UUID). This prevents the classic deadlock
  scenario where:
    - Transfer A->B locks A, then tries to lock B
    - Transfer B->A locks B, then tries to lock A
  By always locking the lower UUID first, we guarantee a consistent
  lock ordering.

Validation order:
  All preconditions are checked before anything is written:
    1. amount (InvalidAmountError)
    2. transfer to self (InvalidTransferError)
    3. account existence (AccountNotFoundError)
    4. balance (InsufficientBalanceError)

Idempotency:
  Callers may pass their own transaction_id (deposit/withdraw) or
  transfer_id (transfer). If that ID is already in the log for the same
  operation, the recorded transaction is returned with replayed=True and
  nothing is applied. This also makes the engine's own retries safe after
  a commit whose outcome was never reported.
"""

import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.exceptions import (
    AccountNotFoundError,
    DuplicateTransactionError,
    InsufficientBalanceError,
    InvalidTransferError,
    LedgerError,
)
from app.locks import AccountLocks
from app.logging import get_logger
from app.models.account import Account
from app.models.transaction import Transaction, TransactionKind
from app.money import require_positive_cents
from app.services import account_store, transaction_log
from app.services.unit_of_work import UnitOfWork

logger = get_logger(__name__)


@dataclass(frozen=True)
class PostingResult:
    """Outcome of a deposit or withdrawal."""
    account_id: uuid.UUID
    balance_cents: int
    transaction: Transaction
    replayed: bool = False


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a transfer — both legs and both resulting balances."""
    transfer_id: uuid.UUID
    sender_account_id: uuid.UUID
    recipient_account_id: uuid.UUID
    amount_cents: int
    sender_balance_cents: int
    recipient_balance_cents: int
    debit_transaction: Transaction
    credit_transaction: Transaction
    replayed: bool = False


class LedgerService:
    """
    The only writer of account balances and transaction logs.

    One instance is shared by all callers; it is safe to call its methods
    concurrently from many tasks on the same event loop. A QueryService
    that must see consistent snapshots has to share the same AccountLocks.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: AccountLocks | None = None,
        *,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.05,
        lock_timeout_seconds: float | None = None,
        max_amount_cents: int = 10**13,
    ):
        self.locks = locks if locks is not None else AccountLocks(lock_timeout_seconds)
        self.unit_of_work = UnitOfWork(
            session_factory,
            self.locks,
            retry_attempts=retry_attempts,
            retry_backoff_seconds=retry_backoff_seconds,
        )
        self.max_amount_cents = max_amount_cents

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        locks: AccountLocks | None = None,
    ) -> "LedgerService":
        return cls(
            session_factory,
            locks,
            retry_attempts=settings.STORE_RETRY_ATTEMPTS,
            retry_backoff_seconds=settings.STORE_RETRY_BACKOFF_SECONDS,
            lock_timeout_seconds=settings.LOCK_TIMEOUT_SECONDS,
            max_amount_cents=settings.MAX_AMOUNT_CENTS,
        )

    # ------------------------------------------------------------------
    # Deposit / withdraw
    # ------------------------------------------------------------------

    async def deposit(
        self,
        account_id: uuid.UUID,
        amount_cents: int,
        transaction_id: uuid.UUID | None = None,
    ) -> PostingResult:
        """
        Add money to an account.

        Args:
            account_id: The account to credit.
            amount_cents: Positive integer amount in cents.
            transaction_id: Optional caller-chosen ID for the new transaction.

        Returns:
            PostingResult with the new balance and the deposit transaction.

        Raises:
            InvalidAmountError: If the amount is not a positive int in range.
            AccountNotFoundError: If the account doesn't exist.
            DuplicateTransactionError: If transaction_id belongs to another operation.
            StoreUnavailableError: If the store couldn't commit.
        """
        return await self._post(
            TransactionKind.DEPOSIT, account_id, amount_cents, transaction_id
        )

    async def withdraw(
        self,
        account_id: uuid.UUID,
        amount_cents: int,
        transaction_id: uuid.UUID | None = None,
    ) -> PostingResult:
        """
        Remove money from an account.

        Same contract as deposit(), plus:

        Raises:
            InsufficientBalanceError: If the balance is lower than the
                                      amount. Nothing is recorded.
        """
        return await self._post(
            TransactionKind.WITHDRAW, account_id, amount_cents, transaction_id
        )

    async def _post(
        self,
        kind: TransactionKind,
        account_id: uuid.UUID,
        amount_cents: int,
        transaction_id: uuid.UUID | None,
    ) -> PostingResult:
        operation = kind.value
        try:
            amount_cents = require_positive_cents(amount_cents, self.max_amount_cents)
        except LedgerError as exc:
            self._log_rejection(operation, exc, account_id=account_id)
            raise

        signed_amount = amount_cents if kind is TransactionKind.DEPOSIT else -amount_cents
        transaction_id = transaction_id or uuid.uuid4()

        async def work(db: AsyncSession) -> PostingResult:
            accounts = await account_store.lock_accounts(db, [account_id])
            account = accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)

            existing = await transaction_log.get(db, transaction_id)
            if existing is not None:
                if (
                    existing.account_id != account_id
                    or existing.kind != kind.value
                    or existing.amount_cents != signed_amount
                ):
                    raise DuplicateTransactionError(transaction_id)
                return PostingResult(account.id, account.balance_cents, existing, replayed=True)

            if kind is TransactionKind.WITHDRAW and account.balance_cents < amount_cents:
                raise InsufficientBalanceError(
                    account_id=account_id,
                    requested_cents=amount_cents,
                    available_cents=account.balance_cents,
                )

            account.balance_cents += signed_amount
            txn = await transaction_log.append(
                db, account, kind, signed_amount, transaction_id=transaction_id
            )
            await db.flush()
            return PostingResult(account.id, account.balance_cents, txn)

        try:
            result = await self.unit_of_work.run([account_id], work, operation=operation)
        except LedgerError as exc:
            self._log_rejection(operation, exc, account_id=account_id)
            raise

        logger.info(
            "%s %s: %d cents, balance now %d cents",
            operation.capitalize(),
            "replayed" if result.replayed else "posted",
            amount_cents,
            result.balance_cents,
            extra={"extra": {
                "operation": operation,
                "account_id": str(account_id),
                "amount_cents": amount_cents,
                "balance_cents": result.balance_cents,
                "transaction_id": str(result.transaction.id),
                "replayed": result.replayed,
            }},
        )
        return result

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    async def transfer(
        self,
        sender_account_id: uuid.UUID,
        recipient_account_id: uuid.UUID,
        amount_cents: int,
        transfer_id: uuid.UUID | None = None,
    ) -> TransferResult:
        """
        Execute an atomic transfer between two accounts.

        This creates TWO transactions (a negative leg on the sender and a
        positive leg on the recipient) linked by a shared transfer_id.
        Both balance updates and both inserts are committed together.

        Args:
            sender_account_id: Account the money leaves.
            recipient_account_id: Account the money arrives in.
            amount_cents: Positive integer amount in cents.
            transfer_id: Optional caller-chosen ID shared by both legs.

        Returns:
            TransferResult with both balances and both legs.

        Raises:
            InvalidAmountError: If the amount is not a positive int in range.
            InvalidTransferError: If sender and recipient are the same account.
            AccountNotFoundError: If either account is missing; `role` says
                                  which ("sender", "recipient" or "both").
            InsufficientBalanceError: If the sender's balance is too low.
            DuplicateTransactionError: If transfer_id belongs to another transfer.
            StoreUnavailableError: If the store couldn't commit.
        """
        log_ids = {"sender_account_id": sender_account_id, "recipient_account_id": recipient_account_id}
        try:
            amount_cents = require_positive_cents(amount_cents, self.max_amount_cents)
            if sender_account_id == recipient_account_id:
                raise InvalidTransferError("Cannot transfer to the same account")
        except LedgerError as exc:
            self._log_rejection("transfer", exc, **log_ids)
            raise

        transfer_id = transfer_id or uuid.uuid4()

        async def work(db: AsyncSession) -> TransferResult:
            accounts = await account_store.lock_accounts(
                db, [sender_account_id, recipient_account_id]
            )
            sender = accounts.get(sender_account_id)
            recipient = accounts.get(recipient_account_id)

            if sender is None and recipient is None:
                raise AccountNotFoundError(sender_account_id, recipient_account_id, role="both")
            if sender is None:
                raise AccountNotFoundError(sender_account_id, role="sender")
            if recipient is None:
                raise AccountNotFoundError(recipient_account_id, role="recipient")

            replay = await self._replay_transfer(db, transfer_id, sender, recipient, amount_cents)
            if replay is not None:
                return replay

            if sender.balance_cents < amount_cents:
                raise InsufficientBalanceError(
                    account_id=sender_account_id,
                    requested_cents=amount_cents,
                    available_cents=sender.balance_cents,
                )

            # Update balances atomically
            sender.balance_cents -= amount_cents
            recipient.balance_cents += amount_cents

            # Each leg lives in its own account's log; the shared
            # transfer_id links them for reconciliation
            debit_txn = await transaction_log.append(
                db,
                sender,
                TransactionKind.TRANSFER,
                -amount_cents,
                transaction_id=uuid.uuid4(),
                transfer_id=transfer_id,
                counterparty_account_id=recipient.id,
            )
            credit_txn = await transaction_log.append(
                db,
                recipient,
                TransactionKind.TRANSFER,
                amount_cents,
                transaction_id=uuid.uuid4(),
                transfer_id=transfer_id,
                counterparty_account_id=sender.id,
            )
            await db.flush()

            return TransferResult(
                transfer_id=transfer_id,
                sender_account_id=sender.id,
                recipient_account_id=recipient.id,
                amount_cents=amount_cents,
                sender_balance_cents=sender.balance_cents,
                recipient_balance_cents=recipient.balance_cents,
                debit_transaction=debit_txn,
                credit_transaction=credit_txn,
            )

        try:
            result = await self.unit_of_work.run(
                [sender_account_id, recipient_account_id], work, operation="transfer"
            )
        except LedgerError as exc:
            self._log_rejection("transfer", exc, **log_ids)
            raise

        logger.info(
            "Transfer %s: %d cents, sender balance now %d cents",
            "replayed" if result.replayed else "posted",
            amount_cents,
            result.sender_balance_cents,
            extra={"extra": {
                "operation": "transfer",
                "transfer_id": str(result.transfer_id),
                "sender_account_id": str(sender_account_id),
                "recipient_account_id": str(recipient_account_id),
                "amount_cents": amount_cents,
                "sender_balance_cents": result.sender_balance_cents,
                "recipient_balance_cents": result.recipient_balance_cents,
                "replayed": result.replayed,
            }},
        )
        return result

    async def _replay_transfer(
        self,
        db: AsyncSession,
        transfer_id: uuid.UUID,
        sender: Account,
        recipient: Account,
        amount_cents: int,
    ) -> TransferResult | None:
        """Return the recorded transfer if transfer_id is already in the log."""
        legs = await transaction_log.list_for_transfer(db, transfer_id)
        if not legs:
            return None

        debit = next((t for t in legs if t.account_id == sender.id), None)
        credit = next((t for t in legs if t.account_id == recipient.id), None)
        if (
            len(legs) != 2
            or debit is None
            or credit is None
            or debit.amount_cents != -amount_cents
            or credit.amount_cents != amount_cents
        ):
            raise DuplicateTransactionError(transfer_id)

        return TransferResult(
            transfer_id=transfer_id,
            sender_account_id=sender.id,
            recipient_account_id=recipient.id,
            amount_cents=amount_cents,
            sender_balance_cents=sender.balance_cents,
            recipient_balance_cents=recipient.balance_cents,
            debit_transaction=debit,
            credit_transaction=credit,
            replayed=True,
        )

    @staticmethod
    def _log_rejection(operation: str, exc: LedgerError, **account_ids: uuid.UUID) -> None:
        logger.info(
            "%s rejected (%s): %s",
            operation.capitalize(),
            exc.error_type,
            exc.detail,
            extra={"extra": {
                "operation": operation,
                "error_type": exc.error_type,
                **{key: str(value) for key, value in account_ids.items()},
            }},
        )
