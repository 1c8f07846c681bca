from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List

from .errors import MalformedTransactionError
from .project_constants import SYSTEM_PROGRAM_ID

TRANSFER_TYPES = ("transfer", "transferWithSeed")


@dataclass(frozen=True)
class RawTransfer:
    signature: str
    instruction_index: int
    source: str
    destination: str
    lamports: int
    block_time: int


def extract_presale_transfers(
    tx: Dict[str, Any],
    distribution_address: str,
    excluded_sources: FrozenSet[str] = frozenset(),
) -> List[RawTransfer]:
    """
    Native SOL transfers into `distribution_address` found in one
    `getTransaction` (jsonParsed) body.

    A transaction can carry several qualifying instructions (split payments);
    each becomes its own RawTransfer. Transfers from the system program,
    from project-internal wallets, or inside a failed transaction never count.
    """
    if not isinstance(tx, dict):
        raise MalformedTransactionError(f"Transaction body is not an object: {tx!r}")

    meta = tx.get("meta")
    if isinstance(meta, dict) and meta.get("err") is not None:
        return []

    try:
        signature = tx["transaction"]["signatures"][0]
        instructions = tx["transaction"]["message"]["instructions"]
    except (KeyError, IndexError, TypeError):
        raise MalformedTransactionError("Transaction is missing signatures or message.")

    block_time = tx.get("blockTime")
    if not isinstance(block_time, int):
        raise MalformedTransactionError(f"{signature}: missing blockTime")

    out: List[RawTransfer] = []
    for index, inst in enumerate(instructions):
        info = _native_transfer_info(inst)
        if info is None:
            continue
        if info.get("destination") != distribution_address:
            continue

        source = info.get("source")
        if not source:
            raise MalformedTransactionError(f"{signature}#{index}: transfer without source")
        if source == SYSTEM_PROGRAM_ID or source in excluded_sources:
            continue

        lamports = info.get("lamports")
        # bool is an int subclass; a parsed lamports field never is one.
        if not isinstance(lamports, int) or isinstance(lamports, bool) or lamports < 0:
            raise MalformedTransactionError(
                f"{signature}#{index}: invalid lamports {lamports!r}"
            )
        if lamports == 0:
            continue

        out.append(
            RawTransfer(
                signature=signature,
                instruction_index=index,
                source=source,
                destination=distribution_address,
                lamports=lamports,
                block_time=block_time,
            )
        )
    return out


def _native_transfer_info(inst: Any) -> Dict[str, Any] | None:
    # Unparsed (opaque) instructions only carry programId/accounts/data.
    if not isinstance(inst, dict) or inst.get("program") != "system":
        return None
    parsed = inst.get("parsed")
    if not isinstance(parsed, dict) or parsed.get("type") not in TRANSFER_TYPES:
        return None
    info = parsed.get("info")
    if not isinstance(info, dict):
        return None
    return info
