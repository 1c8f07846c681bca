from __future__ import annotations

from decimal import Decimal
from typing import Union

from .project_constants import LAMPORTS_PER_SOL, SOL_DECIMALS


def base_token_amount(lamports: int, rate: int, token_decimals: int) -> int:
    """
    Token amount (smallest units) bought by `lamports` at `rate` tokens per SOL.

    All multiplications happen before the single floor division so nothing is
    truncated along the way.
    """
    if lamports < 0:
        raise ValueError(f"lamports must be non-negative, got {lamports}")
    return (int(lamports) * int(rate) * 10**token_decimals) // LAMPORTS_PER_SOL


def apply_bonus(base: int, percent: int) -> int:
    return base + (base * percent) // 100


def token_amount_with_bonus(
    lamports: int, rate: int, token_decimals: int, percent: int
) -> int:
    return apply_bonus(base_token_amount(lamports, rate, token_decimals), percent)


def lamports_to_sol(lamports: int) -> Decimal:
    return format_decimal(lamports, SOL_DECIMALS)


def sol_to_lamports(amount: Union[Decimal, str, int]) -> int:
    """Exact SOL -> lamports. Sub-lamport precision is rejected, never rounded."""
    value = Decimal(str(amount)) * LAMPORTS_PER_SOL
    if value != value.to_integral_value():
        raise ValueError(f"{amount} SOL is not a whole number of lamports")
    return int(value)


def format_decimal(raw_amount: int, decimals: int) -> Decimal:
    return Decimal(format_units(raw_amount, decimals))


def format_units(raw_amount: int, decimals: int) -> str:
    """Render a raw integer amount with exactly `decimals` fraction digits."""
    sign = "-" if raw_amount < 0 else ""
    whole, frac = divmod(abs(int(raw_amount)), 10**decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac:0{decimals}d}"
