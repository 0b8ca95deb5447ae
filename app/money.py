"""
Monetary amount handling.

All amounts are integer cents (e.g., $10.50 = 1050) from the request body
to the database column. Integer arithmetic is exact, so balances never
drift the way repeated float additions do (0.1 + 0.2 != 0.3).

Two checks live here:

  - parse_amount_cents(): boundary coercion of an untrusted JSON value.
    JSON numbers may decode as int, float or (with custom decoders)
    Decimal; anything that is not a finite, positive, whole number of
    cents is rejected.

  - require_positive_cents(): the engine's own guard. The engine only
    accepts a real int, so a value that skipped the boundary still can't
    sneak a float or bool into a balance.
"""

import math
from decimal import Decimal, InvalidOperation
from typing import Any

from app.exceptions import InvalidAmountError


def require_positive_cents(amount_cents: Any, max_amount_cents: int) -> int:
    """
    Validate an already-typed amount.

    Raises:
        InvalidAmountError: Unless amount_cents is an int (not bool) with
                            0 < amount_cents <= max_amount_cents.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise InvalidAmountError("Amount must be an integer number of cents")
    if amount_cents <= 0:
        raise InvalidAmountError("Amount must be positive")
    if amount_cents > max_amount_cents:
        raise InvalidAmountError(f"Amount exceeds the maximum of {max_amount_cents} cents")
    return amount_cents


def parse_amount_cents(raw: Any, max_amount_cents: int) -> int:
    """
    Coerce a raw request value into a validated amount in cents.

    Accepts ints and integral floats/Decimals (1500 and 1500.0 are the
    same amount). Rejects missing values, booleans, strings, NaN and
    infinities, fractional cents, non-positive values and values above
    max_amount_cents.

    Raises:
        InvalidAmountError: If the value can't be used as an amount.
    """
    if raw is None:
        raise InvalidAmountError("Amount is required")
    # bool is a subclass of int — "true" is not an amount
    if isinstance(raw, bool) or not isinstance(raw, (int, float, Decimal)):
        raise InvalidAmountError("Amount must be a number")

    if isinstance(raw, float):
        if not math.isfinite(raw):
            raise InvalidAmountError("Amount must be a finite number")
        if not raw.is_integer():
            raise InvalidAmountError("Amount must be a whole number of cents")
        raw = int(raw)
    elif isinstance(raw, Decimal):
        try:
            if not raw.is_finite() or raw != raw.to_integral_value():
                raise InvalidAmountError("Amount must be a finite whole number of cents")
            raw = int(raw)
        except InvalidOperation as exc:
            raise InvalidAmountError("Amount must be a number") from exc

    return require_positive_cents(raw, max_amount_cents)
