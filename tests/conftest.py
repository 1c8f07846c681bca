"""
Shared fixtures for the presale reconciliation tests.

Chain data is served by an in-memory FakeChain that mimics the shape of
getSignaturesForAddress / getTransaction (jsonParsed) responses; the ledger
runs on a throwaway SQLite file through aiosqlite.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import base58
import pytest
import pytest_asyncio

from solana_presale.config import PresaleWindow
from solana_presale.ledger import LedgerStore
from solana_presale.tiers import BonusTier, sort_tiers

PRESALE_START = 1_758_326_400  # 2025-09-20T00:00:00Z
PRESALE_END = 1_761_004_800  # 2025-10-21T00:00:00Z


def address(n: int) -> str:
    """Deterministic, valid 32-byte base58 address."""
    return base58.b58encode(bytes([n]) * 32).decode("ascii")


DISTRIBUTION = address(200)
BUYER_A = address(1)
BUYER_B = address(2)
BUYER_C = address(3)
PROJECT_WALLET = address(201)


def transfer_ix(source: str, destination: str, lamports: Any) -> Dict[str, Any]:
    return {
        "program": "system",
        "programId": "11111111111111111111111111111111",
        "parsed": {
            "type": "transfer",
            "info": {"source": source, "destination": destination, "lamports": lamports},
        },
    }


def memo_ix() -> Dict[str, Any]:
    return {
        "programId": "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr",
        "accounts": [],
        "data": "3vQB7B6MrGQZaxCuFg4oh",
    }


def make_tx(
    signature: str,
    instructions: List[Dict[str, Any]],
    block_time: Optional[int] = PRESALE_START + 60,
    err: Any = None,
) -> Dict[str, Any]:
    return {
        "blockTime": block_time,
        "slot": 1,
        "meta": {"err": err, "fee": 5000},
        "transaction": {
            "signatures": [signature],
            "message": {"instructions": instructions},
        },
    }


class FakeChain:
    """Newest-first signature history plus transaction bodies keyed by signature."""

    def __init__(self, txs: Sequence[Dict[str, Any]]) -> None:
        ordered = sorted(txs, key=lambda t: t["blockTime"] or 0, reverse=True)
        self.history = [
            {"signature": t["transaction"]["signatures"][0], "blockTime": t["blockTime"], "err": None}
            for t in ordered
        ]
        self.bodies = {t["transaction"]["signatures"][0]: t for t in txs}
        self.page_calls: List[Optional[str]] = []
        self.batch_calls: List[List[str]] = []
        self.fail_batch_number: Optional[int] = None

    async def get_signatures_for_address(
        self, address: str, before: Optional[str] = None, limit: int = 1000
    ) -> List[Dict[str, Any]]:
        self.page_calls.append(before)
        start = 0
        if before is not None:
            start = [h["signature"] for h in self.history].index(before) + 1
        return self.history[start : start + limit]

    async def get_parsed_transactions(
        self, signatures: Sequence[str]
    ) -> List[Optional[Dict[str, Any]]]:
        self.batch_calls.append(list(signatures))
        if self.fail_batch_number is not None and len(self.batch_calls) == self.fail_batch_number:
            raise ConnectionError("RPC node went away")
        return [self.bodies.get(s) for s in signatures]


@pytest.fixture
def window() -> PresaleWindow:
    """Two-tier window from the end-to-end reconciliation scenario."""
    return PresaleWindow(
        distribution_address=DISTRIBUTION,
        start_time=PRESALE_START,
        end_time=PRESALE_END,
        rate=9_000_000,
        token_decimals=9,
        bonus_tiers=sort_tiers(
            [BonusTier(Decimal("1"), 5), BonusTier(Decimal("5"), 12)]
        ),
        excluded_sources=frozenset({PROJECT_WALLET}),
    )


@pytest_asyncio.fixture
async def ledger(tmp_path: Path):
    store = LedgerStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await store.create_all()
    yield store
    await store.close()
