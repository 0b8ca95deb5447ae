"""
Query service — read-only access to balances and transaction history.

Snapshot consistency:
  get_history() reads the balance and the transaction log while holding
  the account's lock and inside a single store transaction. A deposit
  that is in flight on the same account either committed completely
  before the read or starts after it, so the returned balance always
  equals the opening balance plus the sum of the returned amounts.
  Reads run as read-only units of work, so on SQLite they read a WAL
  snapshot and don't hold the write lock other accounts' writers need.

Reconciliation:
  get_balance() compares the stored balance with the balance recomputed
  from the log. A mismatch would indicate a data integrity issue — the
  engine's single-commit design is meant to make it impossible.
"""

import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.exceptions import AccountNotFoundError, TransactionNotFoundError
from app.locks import AccountLocks
from app.models.account import Account
from app.models.transaction import Transaction
from app.services import account_store, transaction_log
from app.services.unit_of_work import UnitOfWork


@dataclass(frozen=True)
class AccountHistory:
    """Point-in-time view of one account."""
    account_id: uuid.UUID
    opening_balance_cents: int
    balance_cents: int
    transactions: list[Transaction]

    @property
    def transaction_ids(self) -> list[uuid.UUID]:
        return [txn.id for txn in self.transactions]


@dataclass(frozen=True)
class BalanceCheck:
    """Stored balance next to the balance recomputed from the log."""
    account_id: uuid.UUID
    balance_cents: int
    computed_balance_cents: int

    @property
    def match(self) -> bool:
        return self.balance_cents == self.computed_balance_cents


class QueryService:
    """Read side of the ledger. Never writes."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: AccountLocks,
        *,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.05,
    ):
        self.unit_of_work = UnitOfWork(
            session_factory,
            locks,
            retry_attempts=retry_attempts,
            retry_backoff_seconds=retry_backoff_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        locks: AccountLocks,
    ) -> "QueryService":
        return cls(
            session_factory,
            locks,
            retry_attempts=settings.STORE_RETRY_ATTEMPTS,
            retry_backoff_seconds=settings.STORE_RETRY_BACKOFF_SECONDS,
        )

    async def get_history(self, account_id: uuid.UUID) -> AccountHistory:
        """
        Current balance and the full transaction log, oldest first.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
            StoreUnavailableError: If the store couldn't be read.
        """
        async def work(db: AsyncSession) -> AccountHistory:
            account = await _require_account(db, account_id)
            transactions = await transaction_log.list_for_account(db, account_id)
            return AccountHistory(
                account_id=account.id,
                opening_balance_cents=account.opening_balance_cents,
                balance_cents=account.balance_cents,
                transactions=transactions,
            )

        return await self.unit_of_work.run(
            [account_id], work, operation="get_history", read_only=True
        )

    async def get_balance(self, account_id: uuid.UUID) -> BalanceCheck:
        """
        The stored balance and the balance computed from the log.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
        """
        async def work(db: AsyncSession) -> BalanceCheck:
            account = await _require_account(db, account_id)
            net_change = await transaction_log.sum_for_account(db, account_id)
            return BalanceCheck(
                account_id=account.id,
                balance_cents=account.balance_cents,
                computed_balance_cents=account.opening_balance_cents + net_change,
            )

        return await self.unit_of_work.run(
            [account_id], work, operation="get_balance", read_only=True
        )

    async def get_transaction(
        self,
        account_id: uuid.UUID,
        transaction_id: uuid.UUID,
    ) -> Transaction:
        """
        A single transaction from an account's log.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
            TransactionNotFoundError: If the transaction doesn't exist or
                                      belongs to another account.
        """
        async def work(db: AsyncSession) -> Transaction:
            await _require_account(db, account_id)
            txn = await transaction_log.get(db, transaction_id)
            if txn is None or txn.account_id != account_id:
                raise TransactionNotFoundError(transaction_id)
            return txn

        return await self.unit_of_work.run(
            [account_id], work, operation="get_transaction", read_only=True
        )


async def _require_account(db: AsyncSession, account_id: uuid.UUID) -> Account:
    account = await account_store.get_account(db, account_id)
    if account is None:
        raise AccountNotFoundError(account_id)
    return account
