from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .amounts import lamports_to_sol, token_amount_with_bonus
from .config import PresaleWindow
from .ledger import LedgerEntry
from .tiers import resolve_bonus_percent


@dataclass(frozen=True)
class ContributorAggregate:
    address: str
    total_lamports: int
    bonus_percent: int
    total_token_amount: int  # smallest units
    transaction_count: int

    @property
    def total_native_amount(self) -> Decimal:
        return lamports_to_sol(self.total_lamports)


@dataclass(frozen=True)
class PresaleProgress:
    total_lamports: int
    contributor_count: int
    transaction_count: int

    @property
    def total_native_amount(self) -> Decimal:
        return lamports_to_sol(self.total_lamports)


def aggregate_contributors(
    entries: Iterable[LedgerEntry], window: PresaleWindow
) -> List[ContributorAggregate]:
    """
    One airdrop row per buyer.

    SOL is summed first and the bonus tier is looked up once on that sum, so
    the result is generally NOT the sum of the per-entry ledger token amounts.
    Sorted by address so the output does not depend on scan order.
    """
    lamports: Dict[str, int] = defaultdict(int)
    counts: Dict[str, int] = defaultdict(int)
    for e in entries:
        lamports[e.buyer_address] += e.lamports
        counts[e.buyer_address] += 1

    out: List[ContributorAggregate] = []
    for address in sorted(lamports):
        total = lamports[address]
        percent = resolve_bonus_percent(lamports_to_sol(total), window.bonus_tiers)
        out.append(
            ContributorAggregate(
                address=address,
                total_lamports=total,
                bonus_percent=percent,
                total_token_amount=token_amount_with_bonus(
                    total, window.rate, window.token_decimals, percent
                ),
                transaction_count=counts[address],
            )
        )
    return out


def filter_entries(
    entries: Iterable[LedgerEntry],
    start: Optional[int] = None,
    end: Optional[int] = None,
) -> List[LedgerEntry]:
    return [
        e
        for e in entries
        if (start is None or e.timestamp >= start) and (end is None or e.timestamp < end)
    ]


def presale_progress(entries: Iterable[LedgerEntry]) -> PresaleProgress:
    total = 0
    count = 0
    buyers = set()
    for e in entries:
        total += e.lamports
        count += 1
        buyers.add(e.buyer_address)
    return PresaleProgress(
        total_lamports=total, contributor_count=len(buyers), transaction_count=count
    )


def contributions_for(entries: Iterable[LedgerEntry], address: str) -> List[LedgerEntry]:
    """A single wallet's ledger rows, newest first."""
    mine = [e for e in entries if e.buyer_address == address]
    mine.sort(key=lambda e: (e.timestamp, e.signature, e.instruction_index), reverse=True)
    return mine
