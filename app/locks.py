"""
Per-account exclusive access for the ledger engine.

Why in-process locks on top of the database?
  The balance check and the balance update of an operation must not
  interleave with another operation on the same account, otherwise two
  concurrent deposits can both read balance 0 and one of them is lost.
  Holding the account's lock from the first read until after the commit
  makes every operation on one account run one at a time, in some total
  order. Operations on other accounts are not affected.

Deadlock prevention:
  A transfer needs two locks. They are always acquired in sorted UUID
  order, so concurrent transfers A->B and B->A both go for the same lock
  first and can't each end up holding the lock the other one needs.

Lifecycle:
  Locks are created on first use and dropped again once nobody holds or
  waits for them, so the registry doesn't grow with the number of
  accounts ever touched.
"""

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.exceptions import StoreUnavailableError


class AccountLocks:
    """Registry of one asyncio.Lock per account ID."""

    def __init__(self, timeout_seconds: float | None = None):
        self._timeout_seconds = timeout_seconds
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._users: dict[uuid.UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, account_id: uuid.UUID) -> bool:
        lock = self._locks.get(account_id)
        return lock is not None and lock.locked()

    def _checkout(self, account_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        self._users[account_id] = self._users.get(account_id, 0) + 1
        return lock

    def _checkin(self, account_id: uuid.UUID) -> None:
        remaining = self._users[account_id] - 1
        if remaining:
            self._users[account_id] = remaining
        else:
            del self._users[account_id]
            del self._locks[account_id]

    async def _acquire(self, account_id: uuid.UUID, lock: asyncio.Lock) -> None:
        if self._timeout_seconds is None:
            await lock.acquire()
            return
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self._timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError(
                f"Timed out waiting for exclusive access to account {account_id}"
            ) from exc

    @asynccontextmanager
    async def hold(self, *account_ids: uuid.UUID) -> AsyncIterator[None]:
        """
        Hold the locks of all given accounts for the duration of the block.

        Duplicate IDs are collapsed and the locks are taken in canonical
        order. Either every lock is acquired and the block runs, or the
        ones already taken are released before the error propagates.

        Raises:
            StoreUnavailableError: If a lock isn't acquired within the timeout.
        """
        ordered = sorted(set(account_ids))
        held: list[uuid.UUID] = []
        try:
            for account_id in ordered:
                lock = self._checkout(account_id)
                try:
                    await self._acquire(account_id, lock)
                except BaseException:
                    self._checkin(account_id)
                    raise
                held.append(account_id)
            yield
        finally:
            for account_id in reversed(held):
                self._locks[account_id].release()
                self._checkin(account_id)
