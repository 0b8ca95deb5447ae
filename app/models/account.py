"""
Account model — a balance plus the bookkeeping for its transaction log.

Each account has:
  - An opaque UUID assigned when it is opened (registration happens
    outside the ledger; the engine only ever receives existing accounts)
  - The opening balance it was registered with
  - The current balance in integer cents
  - The length of its transaction log and the timestamp of its latest entry

Balance management:
  The `balance_cents` column stores the current balance as an integer
  (in cents, e.g., $10.50 = 1050). It is only ever changed in the same
  database transaction that appends the matching Transaction row, so at
  every commit:

      balance_cents == opening_balance_cents + sum(transaction amounts)

  A CHECK constraint at the database level enforces that the balance can
  never go negative. The engine checks before debiting; the constraint is
  the final safety net against bugs.

Log bookkeeping:
  `transaction_count` is the sequence number of the latest transaction
  (the next one gets transaction_count + 1) and `last_posted_at` is its
  timestamp. Both advance together with the balance, which is what keeps
  the per-account log gap-free and its timestamps non-decreasing.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UTCDateTime


class Account(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        # Database-level constraint: balance can never be negative
        CheckConstraint("balance_cents >= 0", name="ck_accounts_non_negative_balance"),
        CheckConstraint(
            "opening_balance_cents >= 0",
            name="ck_accounts_non_negative_opening_balance",
        ),
        CheckConstraint("transaction_count >= 0", name="ck_accounts_transaction_count"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Balance the account was registered with (before any transaction)
    opening_balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    # Current balance in cents — updated atomically with each transaction
    balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    # Sequence number of the latest transaction in this account's log
    transaction_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Timestamp of the latest transaction (NULL until the first one)
    last_posted_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
