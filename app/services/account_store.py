"""
Account store — durable keyed storage of Account records.

These are leaf functions over an AsyncSession. They never commit: the
caller (the unit of work) owns the transaction boundary, so whatever they
change becomes visible together with the rest of the operation or not at
all.

Locking:
  lock_accounts() loads rows with SELECT ... FOR UPDATE in sorted UUID
  order — the same canonical order app/locks.py uses in-process. On
  PostgreSQL that locks the rows until commit; on SQLite the clause is
  dropped and the BEGIN IMMEDIATE transaction (see app/database.py)
  already holds the database write lock.
"""

import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Account


async def open_account(
    db: AsyncSession,
    opening_balance_cents: int = 0,
    account_id: uuid.UUID | None = None,
) -> Account:
    """
    Create a new account with an opening balance.

    Registration is not part of the ledger itself — this is the hook the
    registration flow (and the demo seed script) uses to hand the engine
    an existing account.

    Args:
        db: Database session.
        opening_balance_cents: Non-negative starting balance in cents.
        account_id: Optional pre-assigned ID (generated if omitted).

    Returns:
        The newly created Account instance.
    """
    if opening_balance_cents < 0:
        raise ValueError("Opening balance cannot be negative")

    account = Account(
        id=account_id or uuid.uuid4(),
        opening_balance_cents=opening_balance_cents,
        balance_cents=opening_balance_cents,
        transaction_count=0,
    )
    db.add(account)
    await db.flush()
    return account


async def get_account(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
    """Get a single account by ID, or None if it doesn't exist."""
    result = await db.execute(select(Account).where(Account.id == account_id))
    return result.scalar_one_or_none()


async def lock_accounts(
    db: AsyncSession,
    account_ids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, Account]:
    """
    Load and row-lock several accounts in canonical order.

    Returns:
        Dict of account ID -> Account for the accounts that exist.
        Missing IDs are simply absent from the dict.
    """
    accounts: dict[uuid.UUID, Account] = {}
    for account_id in sorted(set(account_ids)):
        result = await db.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()  # No-op on SQLite, locks row on PostgreSQL
        )
        account = result.scalar_one_or_none()
        if account is not None:
            accounts[account_id] = account
    return accounts
