from decimal import Decimal

import pytest

from solana_presale.errors import ConfigurationError
from solana_presale.tiers import (
    BonusTier,
    resolve_bonus_for_lamports,
    resolve_bonus_percent,
    sort_tiers,
    validate_tiers,
)

TIERS = sort_tiers(
    [
        BonusTier(Decimal("1"), 5),
        BonusTier(Decimal("2.5"), 8),
        BonusTier(Decimal("5"), 12),
        BonusTier(Decimal("10"), 20),
    ]
)


def test_sorted_descending():
    assert [t.threshold for t in TIERS] == [Decimal("10"), Decimal("5"), Decimal("2.5"), Decimal("1")]


def test_exact_threshold_qualifies():
    assert resolve_bonus_percent(Decimal("2.5"), TIERS) == 8
    assert resolve_bonus_for_lamports(2_500_000_000, TIERS) == 8


def test_just_below_threshold_does_not():
    assert resolve_bonus_percent(Decimal("2.499999999"), TIERS) == 5
    assert resolve_bonus_for_lamports(2_499_999_999, TIERS) == 5


def test_below_every_tier_is_zero():
    assert resolve_bonus_percent(Decimal("0.5"), TIERS) == 0
    assert resolve_bonus_percent(Decimal("0"), TIERS) == 0
    assert resolve_bonus_percent(Decimal("3"), ()) == 0


def test_highest_qualifying_tier_wins():
    assert resolve_bonus_percent(Decimal("250"), TIERS) == 20


def test_bonus_never_decreases_as_amount_grows():
    previous = 0
    for lamports in range(0, 12 * 10**9, 10**8):
        percent = resolve_bonus_for_lamports(lamports, TIERS)
        assert percent >= previous
        previous = percent


@pytest.mark.parametrize(
    "tiers",
    [
        [BonusTier(Decimal("1"), 10), BonusTier(Decimal("5"), 5)],
        [BonusTier(Decimal("1"), 5), BonusTier(Decimal("1"), 8)],
        [BonusTier(Decimal("0"), 5)],
        [BonusTier(Decimal("1"), 150)],
        [BonusTier(Decimal("0.0000000001"), 5)],
    ],
)
def test_invalid_tiers_rejected(tiers):
    with pytest.raises(ConfigurationError):
        validate_tiers(tiers)


def test_unsorted_but_monotonic_tiers_accepted():
    validate_tiers([BonusTier(Decimal("5"), 12), BonusTier(Decimal("1"), 5)])
