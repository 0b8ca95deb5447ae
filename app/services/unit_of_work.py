"""
Unit of work — one lock scope, one session and one commit per operation.

Every ledger operation runs through UnitOfWork.run():

  1. Take the per-account locks (canonical order, see app/locks.py)
  2. Open a fresh session and run the operation's work function
  3. Commit exactly once, while the locks are still held
  4. Release the locks

The work function reads, validates and writes through the account store
and transaction log. If it raises a LedgerError (a failed precondition),
nothing has been committed and the session rolls back on close.

Store faults and retries:
  Transient faults (lost connection, "database is locked", timeouts) are
  retried with exponential backoff up to the configured attempt budget.
  Each attempt starts from a fresh session, so a failed attempt leaves
  nothing behind. When the budget is spent the caller gets a
  StoreUnavailableError. Non-transient SQLAlchemy errors are reported as
  StoreUnavailableError straight away, without storage-specific detail.

Commits of unknown outcome:
  If the commit call itself fails, the transaction may or may not have
  been applied. Work functions therefore start by looking up the
  operation's pre-generated transaction ID and return the stored result
  when it is already there, so the next attempt can't apply the
  operation a second time. If the budget runs out after such a failure,
  the StoreUnavailableError is flagged with outcome_unknown=True.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import READ_ONLY_OPTION
from app.exceptions import StoreUnavailableError
from app.locks import AccountLocks
from app.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """True for store faults that a later attempt may not hit again."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (OSError, TimeoutError))


class UnitOfWork:
    """Runs work functions atomically under per-account locks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: AccountLocks,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.05,
    ):
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self.session_factory = session_factory
        self.locks = locks
        self.retry_attempts = retry_attempts
        self.retry_backoff_seconds = retry_backoff_seconds

    async def run(
        self,
        account_ids: Iterable[uuid.UUID],
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        operation: str = "operation",
        read_only: bool = False,
    ) -> T:
        """
        Run `work` under the accounts' locks and commit its session once.

        Args:
            account_ids: Accounts the work reads or writes.
            work: Async function doing the reads/writes on the given session.
                  It may be called again after a store fault, so it must be
                  safe to re-run (see "Commits of unknown outcome" above).
            operation: Name used in log messages.
            read_only: The work never writes. On SQLite the transaction
                       then starts deferred instead of taking the write lock.

        Returns:
            Whatever `work` returned on the attempt that committed.

        Raises:
            LedgerError: Raised by `work`; nothing is committed.
            StoreUnavailableError: The store couldn't complete the operation.
        """
        async with self.locks.hold(*account_ids):
            outcome_unknown = False
            for attempt in range(1, self.retry_attempts + 1):
                committing = False
                try:
                    async with self.session_factory() as db:
                        if read_only:
                            await db.connection(execution_options={READ_ONLY_OPTION: True})
                        result = await work(db)
                        committing = True
                        await db.commit()
                        return result
                except (SQLAlchemyError, OSError, TimeoutError) as exc:
                    # A later attempt that fails before committing doesn't
                    # settle what an earlier failed commit did
                    outcome_unknown = outcome_unknown or committing
                    log_extra = {"extra": {"operation": operation, "attempt": attempt}}

                    if not is_transient(exc):
                        logger.error(
                            "%s failed with a non-transient store error",
                            operation,
                            exc_info=True,
                            extra=log_extra,
                        )
                        raise StoreUnavailableError(outcome_unknown=outcome_unknown) from exc

                    if attempt == self.retry_attempts:
                        logger.error(
                            "%s gave up after %d attempts",
                            operation,
                            attempt,
                            exc_info=True,
                            extra=log_extra,
                        )
                        raise StoreUnavailableError(outcome_unknown=outcome_unknown) from exc

                    delay = self.retry_backoff_seconds * 2 ** (attempt - 1)
                    logger.warning(
                        "%s hit a store fault on attempt %d, retrying in %.3fs: %s",
                        operation,
                        attempt,
                        delay,
                        exc.__class__.__name__,
                        extra=log_extra,
                    )
                    await asyncio.sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover
