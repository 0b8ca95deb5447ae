"""
Concurrency tests — the properties a naive read-modify-write would break.

These tests verify:
  - N concurrent deposits never lose an update
  - Concurrent withdrawals can't overdraw an account
  - Opposite-direction transfers between the same pair never deadlock
  - History reads never observe a half-applied operation
  - An operation on one account doesn't wait for another account
  - An open read never holds up a writer
"""

import asyncio

import pytest

from app.exceptions import InsufficientBalanceError
from app.services import account_store


class TestNoLostUpdates:

    async def test_concurrent_deposits(self, ledger, queries, open_account):
        initial, amount, n = 1_000, 25, 40
        account_id = await open_account(initial)

        await asyncio.gather(*(ledger.deposit(account_id, amount) for _ in range(n)))

        history = await queries.get_history(account_id)
        assert history.balance_cents == initial + n * amount
        assert len(history.transactions) == n
        assert [t.sequence for t in history.transactions] == list(range(1, n + 1))

    async def test_two_deposits_from_zero(self, ledger, queries, open_account):
        """+10 and +5 against 0 always end at 15."""
        account_id = await open_account(0)

        await asyncio.gather(ledger.deposit(account_id, 10), ledger.deposit(account_id, 5))

        history = await queries.get_history(account_id)
        assert history.balance_cents == 15

    async def test_concurrent_withdrawals_never_overdraw(self, ledger, queries, open_account):
        account_id = await open_account(100)

        results = await asyncio.gather(
            *(ledger.withdraw(account_id, 30) for _ in range(5)),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, InsufficientBalanceError)]
        assert len(succeeded) == 3
        assert len(rejected) == 2

        history = await queries.get_history(account_id)
        assert history.balance_cents == 10
        assert len(history.transactions) == 3

    async def test_mixed_operations_reconcile(self, ledger, queries, open_account):
        account_a = await open_account(500)
        account_b = await open_account(500)

        operations = []
        for _ in range(10):
            operations.append(ledger.deposit(account_a, 7))
            operations.append(ledger.withdraw(account_b, 3))
            operations.append(ledger.transfer(account_a, account_b, 11))
            operations.append(ledger.transfer(account_b, account_a, 5))
        await asyncio.gather(*operations)

        # A: 500 + 70 - 110 + 50 = 510
        # B: 500 - 30 + 110 - 50 = 530
        check_a = await queries.get_balance(account_a)
        check_b = await queries.get_balance(account_b)
        assert check_a.balance_cents == 510
        assert check_b.balance_cents == 530
        assert check_a.match and check_b.match


class TestNoDeadlock:

    async def test_opposite_transfers_terminate(self, ledger, queries, open_account):
        account_x = await open_account(1_000)
        account_y = await open_account(1_000)

        rounds = []
        for _ in range(20):
            rounds.append(ledger.transfer(account_x, account_y, 100))
            rounds.append(ledger.transfer(account_y, account_x, 100))

        await asyncio.wait_for(asyncio.gather(*rounds), timeout=30)

        history_x = await queries.get_history(account_x)
        history_y = await queries.get_history(account_y)
        assert history_x.balance_cents == 1_000
        assert history_y.balance_cents == 1_000
        assert len(history_x.transactions) == 40
        assert len(history_y.transactions) == 40

    async def test_transfer_ring_terminates(self, ledger, queries, open_account):
        """A->B, B->C, C->A all at once — a cycle over three locks."""
        accounts = [await open_account(300) for _ in range(3)]

        transfers = [
            ledger.transfer(accounts[i], accounts[(i + 1) % 3], 10)
            for i in range(3)
            for _ in range(10)
        ]
        await asyncio.wait_for(asyncio.gather(*transfers), timeout=30)

        for account_id in accounts:
            history = await queries.get_history(account_id)
            assert history.balance_cents == 300


class TestSnapshotConsistency:

    async def test_history_consistent_during_mutations(self, ledger, queries, open_account):
        account_id = await open_account(1_000)
        other_id = await open_account(1_000)
        snapshots = []

        async def mutate():
            for i in range(15):
                await ledger.deposit(account_id, 10 + i)
                await ledger.transfer(account_id, other_id, 5)
                await ledger.withdraw(account_id, 3)

        async def observe():
            for _ in range(30):
                snapshots.append(await queries.get_history(account_id))
                await asyncio.sleep(0)

        await asyncio.gather(mutate(), observe())

        assert snapshots
        for snapshot in snapshots:
            assert snapshot.balance_cents == snapshot.opening_balance_cents + sum(
                t.amount_cents for t in snapshot.transactions
            )
            assert [t.sequence for t in snapshot.transactions] == list(
                range(1, len(snapshot.transactions) + 1)
            )


class TestIndependentAccounts:

    async def test_other_accounts_are_not_blocked(self, ledger, locks, open_account):
        busy_account = await open_account(100)
        free_account = await open_account(100)

        async with locks.hold(busy_account):
            # The free account goes through while the busy one is held
            result = await asyncio.wait_for(ledger.deposit(free_account, 50), timeout=5)
            assert result.balance_cents == 150

            # The busy account has to wait
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(ledger.deposit(busy_account, 50), timeout=0.2)

        # Nothing leaked from the cancelled attempt
        assert len(locks) == 0
        result = await ledger.deposit(busy_account, 50)
        assert result.balance_cents == 150

    async def test_open_read_does_not_block_writers(self, ledger, queries, open_account):
        """A deposit elsewhere commits while a history read's transaction is still open."""
        read_account = await open_account(100)
        write_account = await open_account(100)

        async def read_then_write(db):
            account = await account_store.get_account(db, read_account)
            posted = await asyncio.wait_for(ledger.deposit(write_account, 50), timeout=2)
            # The reader keeps its snapshot of the other account
            unchanged = await account_store.get_account(db, write_account)
            return account.balance_cents, posted.balance_cents, unchanged.balance_cents

        read_balance, posted_balance, seen_balance = await queries.unit_of_work.run(
            [read_account], read_then_write, operation="get_history", read_only=True
        )

        assert read_balance == 100
        assert posted_balance == 150
        assert seen_balance == 100
        assert (await queries.get_balance(write_account)).balance_cents == 150
