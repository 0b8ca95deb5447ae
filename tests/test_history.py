"""
Tests for the query service (history, balance check, single transaction).
"""

import uuid

import pytest

from app.exceptions import AccountNotFoundError, TransactionNotFoundError


class TestHistory:

    async def test_new_account_has_empty_history(self, queries, open_account):
        account_id = await open_account(25_00)

        history = await queries.get_history(account_id)

        assert history.account_id == account_id
        assert history.opening_balance_cents == 25_00
        assert history.balance_cents == 25_00
        assert history.transactions == []

    async def test_history_is_chronological(self, ledger, queries, open_account):
        account_id = await open_account()
        other_id = await open_account()

        await ledger.deposit(account_id, 1_000)
        await ledger.withdraw(account_id, 300)
        await ledger.transfer(account_id, other_id, 200)
        await ledger.transfer(other_id, account_id, 50)

        history = await queries.get_history(account_id)

        assert [t.kind for t in history.transactions] == [
            "deposit", "withdraw", "transfer", "transfer",
        ]
        assert [t.amount_cents for t in history.transactions] == [1_000, -300, -200, 50]
        assert [t.sequence for t in history.transactions] == [1, 2, 3, 4]
        assert history.balance_cents == 550

    async def test_balance_matches_sum_of_amounts(self, ledger, queries, open_account):
        account_id = await open_account(10_00)
        for amount in (333, 667, 1234):
            await ledger.deposit(account_id, amount)
        await ledger.withdraw(account_id, 834)

        history = await queries.get_history(account_id)

        assert history.balance_cents == history.opening_balance_cents + sum(
            t.amount_cents for t in history.transactions
        )

    async def test_history_of_unknown_account(self, queries):
        with pytest.raises(AccountNotFoundError):
            await queries.get_history(uuid.uuid4())


class TestBalanceCheck:

    async def test_balance_check_matches(self, ledger, queries, open_account):
        account_id = await open_account(100)
        await ledger.deposit(account_id, 900)
        await ledger.withdraw(account_id, 250)

        check = await queries.get_balance(account_id)

        assert check.balance_cents == 750
        assert check.computed_balance_cents == 750
        assert check.match is True

    async def test_balance_check_detects_drift(self, queries, open_account, session_factory):
        """A balance changed behind the engine's back shows up as a mismatch."""
        from sqlalchemy import update

        from app.models.account import Account

        account_id = await open_account(100)
        async with session_factory() as db:
            await db.execute(
                update(Account).where(Account.id == account_id).values(balance_cents=999)
            )
            await db.commit()

        check = await queries.get_balance(account_id)

        assert check.balance_cents == 999
        assert check.computed_balance_cents == 100
        assert check.match is False

    async def test_balance_of_unknown_account(self, queries):
        with pytest.raises(AccountNotFoundError):
            await queries.get_balance(uuid.uuid4())


class TestGetTransaction:

    async def test_get_own_transaction(self, ledger, queries, open_account):
        account_id = await open_account()
        posted = await ledger.deposit(account_id, 500)

        txn = await queries.get_transaction(account_id, posted.transaction.id)

        assert txn.id == posted.transaction.id
        assert txn.amount_cents == 500

    async def test_other_accounts_transaction_not_visible(self, ledger, queries, open_account):
        account_a = await open_account()
        account_b = await open_account()
        posted = await ledger.deposit(account_b, 500)

        with pytest.raises(TransactionNotFoundError):
            await queries.get_transaction(account_a, posted.transaction.id)

    async def test_unknown_transaction(self, queries, open_account):
        account_id = await open_account()

        with pytest.raises(TransactionNotFoundError):
            await queries.get_transaction(account_id, uuid.uuid4())
