"""Parsing and formatting of token amounts in smallest units."""

import re
from typing import Optional

MAX_SAFE_AMOUNT = 10**15
MAX_DECIMALS = 18

_NUMERIC_RE = re.compile(r"^\d*\.?\d*$")


def parse_amount(amount: str, decimals: int, balance: Optional[int] = None) -> int:
    """Convert a human-readable amount (``"100.5"``) to raw smallest units.

    Raises:
        ValueError: If the amount is malformed, non-positive, has too many
            decimal places, exceeds the safe range or the given balance.
    """
    amount = amount.strip()
    if not _NUMERIC_RE.match(amount):
        raise ValueError("Invalid number format")

    if decimals < 0 or decimals > MAX_DECIMALS:
        raise ValueError("Invalid token decimals")

    whole, _, fraction = amount.partition(".")
    if len(fraction) > decimals:
        raise ValueError(f"Maximum {decimals} decimal places allowed")

    digits = (whole or "0") + fraction.ljust(decimals, "0")
    raw = int(digits) if digits else 0

    if raw <= 0:
        raise ValueError("Amount must be greater than 0")

    if raw > MAX_SAFE_AMOUNT * 10**decimals:
        raise ValueError("Amount exceeds maximum allowed")

    if balance is not None and raw > balance:
        raise ValueError("Insufficient balance")

    return raw


def format_amount(raw: int, decimals: int) -> str:
    """Format raw smallest units as a decimal string without trailing zeros."""
    if decimals == 0:
        return str(raw)

    whole, fraction = divmod(raw, 10**decimals)
    if fraction == 0:
        return str(whole)

    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{fraction_str}"
