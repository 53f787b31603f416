"""
FHE Vault SDK - Amount Codec

Converts between human-entered decimal ETH amounts and the wei unit used
by the vault. The encrypted balance is a euint64, so every amount must fit
in [1, 2^64 - 1] wei.

All arithmetic is on integers; no float ever touches an amount.

Examples:
    >>> to_units("1.5")
    1500000000000000000

    >>> to_decimal_string(1500000000000000000)
    '1.5'

    >>> to_decimal_string(1234567890123456789)
    '1.234567'
"""

import re
from typing import Optional

from .errors import InvalidAmount
from .vault_types import MAX_UINT64

# ═══════════════════════════════════════════════════════════════════════════════
# UNITS
# ═══════════════════════════════════════════════════════════════════════════════

DECIMALS = 18
UNIT = 10 ** DECIMALS

# Fractional digits kept when formatting for display
DISPLAY_FRACTION_DIGITS = 6

_AMOUNT_RE = re.compile(r"^(?P<whole>\d*)(?:\.(?P<frac>\d*))?$", re.ASCII)


def to_units(value: str) -> int:
    """
    Parse a decimal ETH string into wei.

    Args:
        value: Decimal string such as "2", "0.25" or ".5"

    Returns:
        Amount in wei

    Raises:
        InvalidAmount: If the string is empty, not a plain decimal number,
            has more than 18 fractional digits, is zero, or exceeds 2^64 - 1
    """
    if value is None:
        raise InvalidAmount("Enter an amount in ETH")
    if not isinstance(value, str):
        raise InvalidAmount(f"Amount must be a decimal string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise InvalidAmount("Enter an amount in ETH")

    match = _AMOUNT_RE.match(text)
    if not match or not (match.group("whole") or match.group("frac")):
        raise InvalidAmount(f"Not a valid amount: {text!r}")

    whole = match.group("whole") or "0"
    frac = match.group("frac") or ""
    if len(frac) > DECIMALS:
        raise InvalidAmount(f"Too many decimals (max {DECIMALS}): {text!r}")

    units = int(whole) * UNIT + int(frac.ljust(DECIMALS, "0") or "0")
    if units <= 0:
        raise InvalidAmount("Amount must be positive")
    if units > MAX_UINT64:
        raise InvalidAmount("Amount exceeds uint64 range supported by the contract")
    return units


def to_decimal_string(units: int,
                      max_fraction_digits: Optional[int] = DISPLAY_FRACTION_DIGITS) -> str:
    """
    Format wei as a decimal ETH string.

    The fraction is truncated (not rounded) to max_fraction_digits and
    trailing zeros are stripped. The integer part is always exact.
    Pass max_fraction_digits=None to keep full precision.
    """
    if isinstance(units, bool) or not isinstance(units, int):
        raise TypeError(f"Units must be integer, got {type(units)}")
    if units < 0:
        raise ValueError(f"Units must not be negative, got {units}")

    whole, frac = divmod(units, UNIT)
    digits = str(frac).rjust(DECIMALS, "0")
    if max_fraction_digits is not None:
        digits = digits[:max_fraction_digits]
    digits = digits.rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def validate_units(units: int) -> int:
    """Range-check an already-integer amount (1 .. 2^64 - 1)."""
    if isinstance(units, bool) or not isinstance(units, int):
        raise InvalidAmount(f"Amount must be integer wei, got {type(units).__name__}")
    if units <= 0:
        raise InvalidAmount("Amount must be positive")
    if units > MAX_UINT64:
        raise InvalidAmount("Amount exceeds uint64 range supported by the contract")
    return units


def parse_amount(value) -> int:
    """Accept a decimal ETH string or integer wei and return validated wei."""
    if isinstance(value, float):
        raise InvalidAmount("Float amounts are not exact; pass a decimal string or wei")
    if isinstance(value, int) and not isinstance(value, bool):
        return validate_units(value)
    return to_units(value)
