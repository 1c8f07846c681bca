from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence, Tuple

from .amounts import lamports_to_sol, sol_to_lamports
from .errors import ConfigurationError


@dataclass(frozen=True)
class BonusTier:
    threshold: Decimal  # whole SOL
    percent: int


def sort_tiers(tiers: Iterable[BonusTier]) -> Tuple[BonusTier, ...]:
    """Highest threshold first, so resolution can stop at the first match."""
    return tuple(sorted(tiers, key=lambda t: t.threshold, reverse=True))


def validate_tiers(tiers: Sequence[BonusTier]) -> None:
    ascending = sorted(tiers, key=lambda t: t.threshold)
    seen = set()
    prev_percent = 0
    for tier in ascending:
        if tier.threshold <= 0:
            raise ConfigurationError(
                f"Bonus tier threshold must be positive, got {tier.threshold}"
            )
        if tier.threshold in seen:
            raise ConfigurationError(f"Duplicate bonus tier threshold {tier.threshold}")
        seen.add(tier.threshold)
        try:
            sol_to_lamports(tier.threshold)
        except ValueError as e:
            raise ConfigurationError(f"Invalid bonus tier threshold: {e}")
        if not 0 <= tier.percent <= 100:
            raise ConfigurationError(
                f"Bonus percent must be within 0..100, got {tier.percent}"
            )
        # Bigger buys may never earn a smaller bonus.
        if tier.percent < prev_percent:
            raise ConfigurationError(
                f"Bonus tiers are not monotonic: {tier.threshold} SOL gives "
                f"{tier.percent}% but a lower threshold gives {prev_percent}%"
            )
        prev_percent = tier.percent


def resolve_bonus_percent(amount_sol: Decimal, tiers: Sequence[BonusTier]) -> int:
    """
    Bonus percent for a contribution of `amount_sol`.

    `tiers` must already be sorted descending (see sort_tiers). A contribution
    exactly equal to a threshold qualifies for that tier.
    """
    for tier in tiers:
        if amount_sol >= tier.threshold:
            return tier.percent
    return 0


def resolve_bonus_for_lamports(lamports: int, tiers: Sequence[BonusTier]) -> int:
    return resolve_bonus_percent(lamports_to_sol(lamports), tiers)
