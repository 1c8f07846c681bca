from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from typing import Any, Dict, Sequence, TextIO

from .aggregate import ContributorAggregate
from .amounts import format_units, lamports_to_sol, token_amount_with_bonus
from .config import PresaleWindow
from .errors import ManifestMismatchError
from .project_constants import SOL_DECIMALS
from .tiers import resolve_bonus_for_lamports

CSV_HEADERS = ["contributor_address", "total_sol_spent", "total_tokens_to_receive"]


def write_contributors_csv(
    f: TextIO, contributors: Sequence[ContributorAggregate], token_decimals: int
) -> int:
    writer = csv.writer(f, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for c in contributors:
        writer.writerow(
            [
                c.address,
                format_units(c.total_lamports, SOL_DECIMALS),
                format_units(c.total_token_amount, token_decimals),
            ]
        )
    return len(contributors)


def build_manifest(
    contributors: Sequence[ContributorAggregate], window: PresaleWindow
) -> Dict[str, Any]:
    total_lamports = sum(c.total_lamports for c in contributors)
    total_tokens = sum(c.total_token_amount for c in contributors)
    return {
        "metadata": {
            "tool": "solana-presale",
            "version": "1.0.0",
            "generated_at_utc": datetime.now(timezone.utc).isoformat(),
            "window": window.to_dict(),
            "contributor_count": len(contributors),
            "total_lamports": total_lamports,
            "total_sol": str(lamports_to_sol(total_lamports)),
            # big int; store as string for safety
            "total_token_amount": str(total_tokens),
        },
        # Deterministic order so anyone can re-run the totals.
        "contributors": [
            {
                "address": c.address,
                "total_lamports": c.total_lamports,
                "bonus_percent": c.bonus_percent,
                "token_amount": str(c.total_token_amount),
                "transaction_count": c.transaction_count,
            }
            for c in contributors
        ],
    }


def write_manifest(path: str, manifest: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)


def verify_manifest(manifest: Dict[str, Any]) -> Dict[str, Any]:
    """Recompute every contributor's entitlement and the totals from lamports alone."""
    meta = manifest["metadata"]
    window = PresaleWindow.from_dict(meta["window"])

    total_lamports = 0
    total_tokens = 0
    seen = set()
    for c in manifest["contributors"]:
        address = c["address"]
        if address in seen:
            raise ManifestMismatchError(f"Duplicate contributor: {address}")
        seen.add(address)

        lamports = int(c["total_lamports"])
        percent = resolve_bonus_for_lamports(lamports, window.bonus_tiers)
        if percent != int(c["bonus_percent"]):
            raise ManifestMismatchError(
                f"Bonus mismatch for {address}: manifest={c['bonus_percent']} recomputed={percent}"
            )
        tokens = token_amount_with_bonus(
            lamports, window.rate, window.token_decimals, percent
        )
        if tokens != int(c["token_amount"]):
            raise ManifestMismatchError(
                f"Token amount mismatch for {address}: manifest={c['token_amount']} recomputed={tokens}"
            )
        total_lamports += lamports
        total_tokens += tokens

    if total_lamports != int(meta["total_lamports"]):
        raise ManifestMismatchError(
            f"Total lamports mismatch: manifest={meta['total_lamports']} recomputed={total_lamports}"
        )
    if total_tokens != int(meta["total_token_amount"]):
        raise ManifestMismatchError(
            f"Total token mismatch: manifest={meta['total_token_amount']} recomputed={total_tokens}"
        )

    return {
        "ok": True,
        "contributors": len(seen),
        "total_lamports": total_lamports,
        "total_token_amount": total_tokens,
        "token_decimals": window.token_decimals,
    }


def verify_manifest_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        manifest = json.load(f)
    return verify_manifest(manifest)

