"""
Tests for transfers (atomic money movement between accounts).

These tests verify:
  - Successful transfers create paired negative + positive legs
  - The sum of both balances is unchanged (money is conserved)
  - Self-transfers are rejected and record nothing
  - Missing accounts are reported with the side that was missing
  - Transfers are declined when the sender has insufficient funds
  - Replaying a transfer ID doesn't move the money twice
  - The worked example from the ledger's documentation
"""

import uuid

import pytest

from app.exceptions import (
    AccountNotFoundError,
    DuplicateTransactionError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidTransferError,
)


class TestTransferSuccess:

    async def test_transfer_moves_money(self, ledger, queries, open_account):
        sender = await open_account(100_00)
        recipient = await open_account()

        result = await ledger.transfer(sender, recipient, 20_00)

        assert result.sender_balance_cents == 80_00
        assert result.recipient_balance_cents == 20_00
        assert result.amount_cents == 20_00

        # Both legs share the transfer ID and cancel each other out
        assert result.debit_transaction.amount_cents == -20_00
        assert result.credit_transaction.amount_cents == 20_00
        assert result.debit_transaction.kind == "transfer"
        assert result.credit_transaction.kind == "transfer"
        assert result.debit_transaction.transfer_id == result.transfer_id
        assert result.credit_transaction.transfer_id == result.transfer_id
        assert result.debit_transaction.account_id == sender
        assert result.credit_transaction.account_id == recipient
        assert result.debit_transaction.counterparty_account_id == recipient
        assert result.credit_transaction.counterparty_account_id == sender

        sender_history = await queries.get_history(sender)
        recipient_history = await queries.get_history(recipient)
        assert sender_history.transaction_ids == [result.debit_transaction.id]
        assert recipient_history.transaction_ids == [result.credit_transaction.id]

    async def test_transfer_conserves_money(self, ledger, queries, open_account):
        account_a = await open_account(200_00)
        account_b = await open_account(50_00)

        await ledger.transfer(account_a, account_b, 50_00)
        await ledger.transfer(account_a, account_b, 30_00)
        await ledger.transfer(account_b, account_a, 20_00)

        bal_a = await queries.get_balance(account_a)
        bal_b = await queries.get_balance(account_b)

        # A: 20000 - 5000 - 3000 + 2000 = 14000
        # B: 5000 + 5000 + 3000 - 2000 = 11000
        assert bal_a.balance_cents == 140_00
        assert bal_b.balance_cents == 110_00
        assert bal_a.balance_cents + bal_b.balance_cents == 250_00
        assert bal_a.match is True
        assert bal_b.match is True

    async def test_transfer_exact_balance(self, ledger, open_account):
        sender = await open_account(75_00)
        recipient = await open_account()

        result = await ledger.transfer(sender, recipient, 75_00)

        assert result.sender_balance_cents == 0
        assert result.recipient_balance_cents == 75_00

    async def test_documented_example(self, ledger, queries, open_account):
        """A starts at 100: +50, -30, then 20 to B (starting at 0)."""
        account_a = await open_account(100)
        account_b = await open_account(0)

        deposit = await ledger.deposit(account_a, 50)
        assert deposit.balance_cents == 150
        assert deposit.transaction.kind == "deposit"
        assert deposit.transaction.amount_cents == 50

        withdrawal = await ledger.withdraw(account_a, 30)
        assert withdrawal.balance_cents == 120
        assert withdrawal.transaction.kind == "withdraw"
        assert withdrawal.transaction.amount_cents == -30

        transfer = await ledger.transfer(account_a, account_b, 20)
        assert transfer.sender_balance_cents == 100
        assert transfer.recipient_balance_cents == 20

        history_a = await queries.get_history(account_a)
        history_b = await queries.get_history(account_b)
        assert [t.amount_cents for t in history_a.transactions] == [50, -30, -20]
        assert [t.kind for t in history_a.transactions] == ["deposit", "withdraw", "transfer"]
        assert [t.amount_cents for t in history_b.transactions] == [20]
        assert history_a.balance_cents == 100
        assert history_b.balance_cents == 20


class TestTransferRejections:

    async def test_self_transfer_rejected(self, ledger, queries, open_account):
        account_id = await open_account(100_00)

        with pytest.raises(InvalidTransferError):
            await ledger.transfer(account_id, account_id, 10_00)

        history = await queries.get_history(account_id)
        assert history.balance_cents == 100_00
        assert history.transactions == []

    async def test_self_transfer_rejected_even_for_unknown_account(self, ledger):
        account_id = uuid.uuid4()

        with pytest.raises(InvalidTransferError):
            await ledger.transfer(account_id, account_id, 10_00)

    async def test_insufficient_funds(self, ledger, queries, open_account):
        sender = await open_account(50_00)
        recipient = await open_account()

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await ledger.transfer(sender, recipient, 100_00)

        assert exc_info.value.account_id == sender
        assert exc_info.value.available_cents == 50_00

        sender_history = await queries.get_history(sender)
        recipient_history = await queries.get_history(recipient)
        assert sender_history.balance_cents == 50_00
        assert recipient_history.balance_cents == 0
        assert sender_history.transactions == []
        assert recipient_history.transactions == []

    @pytest.mark.parametrize("amount", [0, -100])
    async def test_invalid_amount(self, ledger, open_account, amount):
        sender = await open_account(100_00)
        recipient = await open_account()

        with pytest.raises(InvalidAmountError):
            await ledger.transfer(sender, recipient, amount)

    async def test_missing_recipient(self, ledger, queries, open_account):
        sender = await open_account(100_00)
        recipient = uuid.uuid4()

        with pytest.raises(AccountNotFoundError) as exc_info:
            await ledger.transfer(sender, recipient, 10_00)

        assert exc_info.value.role == "recipient"
        assert exc_info.value.account_ids == (recipient,)

        # No orphaned debit on the sender
        history = await queries.get_history(sender)
        assert history.balance_cents == 100_00
        assert history.transactions == []

    async def test_missing_sender(self, ledger, open_account):
        sender = uuid.uuid4()
        recipient = await open_account()

        with pytest.raises(AccountNotFoundError) as exc_info:
            await ledger.transfer(sender, recipient, 10_00)

        assert exc_info.value.role == "sender"
        assert exc_info.value.account_ids == (sender,)

    async def test_missing_both(self, ledger):
        sender, recipient = uuid.uuid4(), uuid.uuid4()

        with pytest.raises(AccountNotFoundError) as exc_info:
            await ledger.transfer(sender, recipient, 10_00)

        assert exc_info.value.role == "both"
        assert exc_info.value.account_ids == (sender, recipient)


class TestTransferIdempotency:

    async def test_replay_moves_money_once(self, ledger, queries, open_account):
        sender = await open_account(100_00)
        recipient = await open_account()
        transfer_id = uuid.uuid4()

        first = await ledger.transfer(sender, recipient, 10_00, transfer_id)
        second = await ledger.transfer(sender, recipient, 10_00, transfer_id)

        assert first.transfer_id == transfer_id
        assert second.replayed is True
        assert second.debit_transaction.id == first.debit_transaction.id
        assert second.credit_transaction.id == first.credit_transaction.id
        assert second.sender_balance_cents == 90_00

        history = await queries.get_history(recipient)
        assert history.balance_cents == 10_00
        assert len(history.transactions) == 1

    async def test_reused_transfer_id_with_other_amount_rejected(self, ledger, open_account):
        sender = await open_account(100_00)
        recipient = await open_account()
        transfer_id = uuid.uuid4()
        await ledger.transfer(sender, recipient, 10_00, transfer_id)

        with pytest.raises(DuplicateTransactionError):
            await ledger.transfer(sender, recipient, 20_00, transfer_id)

    async def test_reused_transfer_id_in_reverse_direction_rejected(self, ledger, open_account):
        account_a = await open_account(100_00)
        account_b = await open_account(100_00)
        transfer_id = uuid.uuid4()
        await ledger.transfer(account_a, account_b, 10_00, transfer_id)

        with pytest.raises(DuplicateTransactionError):
            await ledger.transfer(account_b, account_a, 10_00, transfer_id)
