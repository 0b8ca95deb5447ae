"""
Transaction log — durable append-only storage of Transaction records.

append() is the only write in this module and the only place a
Transaction row is ever created. It also advances the owning account's
log bookkeeping (transaction_count, last_posted_at) in the same session,
which is what keeps each account's log gap-free and ordered.

Like the account store, nothing here commits.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Account
from app.models.transaction import Transaction, TransactionKind


def _next_timestamp(account: Account) -> datetime:
    """Current time, but never earlier than the account's latest entry."""
    now = datetime.now(timezone.utc)
    if account.last_posted_at is None:
        return now
    return max(now, account.last_posted_at)


async def append(
    db: AsyncSession,
    account: Account,
    kind: TransactionKind,
    amount_cents: int,
    *,
    transaction_id: uuid.UUID,
    transfer_id: uuid.UUID | None = None,
    counterparty_account_id: uuid.UUID | None = None,
) -> Transaction:
    """
    Append one transaction to an account's log.

    The caller must hold the account's lock and is responsible for the
    matching balance change — this function only records it.

    Args:
        db: Database session.
        account: The (locked) account the entry belongs to.
        kind: deposit, withdraw or transfer.
        amount_cents: Signed amount (positive = into the account).
        transaction_id: Pre-generated ID for the new row.
        transfer_id: Shared ID of both legs of a transfer.
        counterparty_account_id: The other account of a transfer leg.

    Returns:
        The new Transaction, added to the session but not flushed.
    """
    created_at = _next_timestamp(account)
    sequence = account.transaction_count + 1

    txn = Transaction(
        id=transaction_id,
        account_id=account.id,
        sequence=sequence,
        kind=kind.value,
        amount_cents=amount_cents,
        transfer_id=transfer_id,
        counterparty_account_id=counterparty_account_id,
        created_at=created_at,
    )
    db.add(txn)

    account.transaction_count = sequence
    account.last_posted_at = created_at
    return txn


async def list_for_account(db: AsyncSession, account_id: uuid.UUID) -> list[Transaction]:
    """All transactions of an account in log order (oldest first)."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.account_id == account_id)
        .order_by(Transaction.sequence)
    )
    return list(result.scalars().all())


async def get(db: AsyncSession, transaction_id: uuid.UUID) -> Transaction | None:
    """Get a single transaction by ID, or None if it doesn't exist."""
    result = await db.execute(select(Transaction).where(Transaction.id == transaction_id))
    return result.scalar_one_or_none()


async def list_for_transfer(db: AsyncSession, transfer_id: uuid.UUID) -> list[Transaction]:
    """Both legs of a transfer (empty if the transfer was never recorded)."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.transfer_id == transfer_id)
        .order_by(Transaction.amount_cents)
    )
    return list(result.scalars().all())


async def sum_for_account(db: AsyncSession, account_id: uuid.UUID) -> int:
    """Net change of an account's balance according to its log."""
    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount_cents), 0))
        .where(Transaction.account_id == account_id)
    )
    return result.scalar_one()
