"""
Transaction model — the immutable record of every balance change.

Every movement of money creates Transaction rows, one per affected account:

  - A deposit creates one DEPOSIT row with a positive amount
  - A withdrawal creates one WITHDRAW row with a negative amount
  - A transfer creates TWO TRANSFER rows: a negative leg on the sender and
    a positive leg on the recipient, linked by a shared `transfer_id`

Signed amounts:
  amount_cents is positive when money entered the account and negative
  when it left. Summing an account's rows therefore gives its balance
  change directly, and the two legs of a transfer always add up to zero.

Key fields:
  - account_id: The account whose log this row belongs to
  - sequence: 1-based position in that account's log (unique per account)
  - kind: "deposit", "withdraw" or "transfer"
  - transfer_id: Links the two legs of a transfer (NULL otherwise)
  - counterparty_account_id: The other account of a transfer leg

Rows are only ever inserted. Nothing in the code base updates or deletes
a Transaction — the log is the source of truth for balance history.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UTCDateTime


class TransactionKind(str, enum.Enum):
    """
    The operation that produced a transaction.

    Inherits from str so the value serializes naturally to JSON and is
    stored as a plain string column.
    """
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents != 0", name="ck_transactions_non_zero_amount"),
        CheckConstraint(
            "kind IN ('deposit', 'withdraw', 'transfer')",
            name="ck_transactions_kind",
        ),
        CheckConstraint("sequence > 0", name="ck_transactions_positive_sequence"),
        # A second writer that read a stale transaction_count can't slip
        # a duplicate position into the log
        UniqueConstraint("account_id", "sequence", name="uq_transactions_account_sequence"),
    )

    # Generated by the engine before the insert, so a retried operation
    # can check whether an earlier attempt already committed
    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    # Signed: positive = into the account, negative = out of it
    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Shared by both legs of a transfer
    transfer_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
        index=True,
    )

    counterparty_account_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # Non-decreasing within one account's log
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
