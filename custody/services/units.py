"""Conversion between SOL display decimals and integer lamports."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any

SOL_DECIMALS = 9
LAMPORTS_PER_SOL = 10 ** SOL_DECIMALS
# Lamport amounts are u64 on the wire
MAX_LAMPORTS = 2 ** 64 - 1

_SCALE = Decimal(LAMPORTS_PER_SOL)


def to_decimal(value: Any) -> Decimal:
    """Coerce ``value`` to a finite Decimal. Floats go through ``str`` to avoid binary noise."""
    if isinstance(value, bool):
        raise ValueError("Boolean is not an amount")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def to_base_units(amount: Decimal) -> int:
    """SOL → lamports, rounding toward zero."""
    return int((amount * _SCALE).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(lamports: int) -> Decimal:
    """Lamports → SOL."""
    return Decimal(int(lamports)) / _SCALE


__all__ = ["LAMPORTS_PER_SOL", "MAX_LAMPORTS", "SOL_DECIMALS", "to_decimal", "to_base_units", "from_base_units"]
