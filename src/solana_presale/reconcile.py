"""
Presale sync: chain history -> contribution ledger.

Bonus here is resolved against each transfer on its own ("instant bonus per
buy"). The airdrop totals in aggregate.py resolve the bonus against a
contributor's cumulative SOL instead, so a buyer who crosses a tier over
several purchases ends up with more tokens there than the sum of their ledger
rows. Both results are intended; do not merge the two code paths.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .amounts import format_units, token_amount_with_bonus
from .classifier import RawTransfer, extract_presale_transfers
from .config import PresaleWindow
from .errors import ConfigurationError, MalformedTransactionError, SyncIncompleteError
from .ledger import LedgerEntry
from .pager import collect_signatures
from .project_constants import DEFAULT_TX_BATCH_SIZE, MAX_TX_BATCH_SIZE, SIGNATURE_PAGE_SIZE
from .tiers import resolve_bonus_for_lamports

log = logging.getLogger(__name__)


class ChainSource(Protocol):
    async def get_signatures_for_address(
        self, address: str, before: Optional[str] = None, limit: int = ...
    ) -> List[Dict[str, Any]]: ...

    async def get_parsed_transactions(
        self, signatures: Sequence[str]
    ) -> List[Optional[Dict[str, Any]]]: ...


class LedgerWriter(Protocol):
    async def upsert(self, entry: LedgerEntry) -> bool: ...


@dataclass
class SyncReport:
    signatures_found: int = 0
    transactions_processed: int = 0
    transfers_found: int = 0
    entries_written: int = 0
    malformed_skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def ledger_entry_for(transfer: RawTransfer, window: PresaleWindow) -> LedgerEntry:
    """Ledger row for one transfer, bonus resolved on that transfer alone."""
    percent = resolve_bonus_for_lamports(transfer.lamports, window.bonus_tiers)
    tokens = token_amount_with_bonus(
        transfer.lamports, window.rate, window.token_decimals, percent
    )
    return LedgerEntry(
        signature=transfer.signature,
        instruction_index=transfer.instruction_index,
        buyer_address=transfer.source,
        lamports=transfer.lamports,
        bonus_percent=percent,
        token_amount=tokens,
        token_amount_with_bonus=format_units(tokens, window.token_decimals),
        timestamp=transfer.block_time,
    )


class Reconciler:
    def __init__(
        self,
        window: PresaleWindow,
        chain: ChainSource,
        ledger: LedgerWriter,
        batch_size: int = DEFAULT_TX_BATCH_SIZE,
        page_size: int = SIGNATURE_PAGE_SIZE,
    ) -> None:
        if not 1 <= batch_size <= MAX_TX_BATCH_SIZE:
            raise ConfigurationError(
                f"batch_size must be within 1..{MAX_TX_BATCH_SIZE}, got {batch_size}"
            )
        if not 1 <= page_size <= SIGNATURE_PAGE_SIZE:
            raise ConfigurationError(
                f"page_size must be within 1..{SIGNATURE_PAGE_SIZE}, got {page_size}"
            )
        self.window = window
        self.chain = chain
        self.ledger = ledger
        self.batch_size = batch_size
        self.page_size = page_size

    async def _fetch_page(self, before: Optional[str], limit: int) -> List[Dict[str, Any]]:
        return await self.chain.get_signatures_for_address(
            self.window.distribution_address, before=before, limit=limit
        )

    async def run(self) -> SyncReport:
        report = SyncReport()
        signatures = await collect_signatures(
            self._fetch_page, self.window.start_time, self.page_size
        )
        report.signatures_found = len(signatures)
        if not signatures:
            log.info("No presale signatures to sync.")
            return report

        total_batches = (len(signatures) + self.batch_size - 1) // self.batch_size
        for n, i in enumerate(range(0, len(signatures), self.batch_size), start=1):
            batch = signatures[i : i + self.batch_size]
            log.info("Batch %d/%d (%d signatures)", n, total_batches, len(batch))
            try:
                txs = await self.chain.get_parsed_transactions(batch)
            except Exception as e:
                log.error("Batch %d/%d failed: %s", n, total_batches, e)
                raise SyncIncompleteError(
                    f"Sync incomplete: batch {n}/{total_batches} failed ({e}); "
                    f"{report.entries_written} entries written, safe to re-run",
                    report,
                ) from e

            for sig, tx in zip(batch, txs):
                await self._process_transaction(sig, tx, report)

        log.info(
            "Sync complete: %d signatures, %d transfers, %d new entries",
            report.signatures_found,
            report.transfers_found,
            report.entries_written,
        )
        return report

    async def _process_transaction(
        self, signature: str, tx: Optional[Dict[str, Any]], report: SyncReport
    ) -> None:
        if tx is None:
            log.warning("Transaction %s not available, skipped", signature)
            report.malformed_skipped += 1
            return
        try:
            transfers = extract_presale_transfers(
                tx, self.window.distribution_address, self.window.excluded_sources
            )
        except MalformedTransactionError as e:
            log.warning("Skipping malformed transaction %s: %s", signature, e)
            report.malformed_skipped += 1
            return
        report.transactions_processed += 1

        for transfer in transfers:
            if not self.window.contains(transfer.block_time):
                continue
            report.transfers_found += 1
            if await self.ledger.upsert(ledger_entry_for(transfer, self.window)):
                report.entries_written += 1
