from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import logging
import os

from .aggregate import aggregate_contributors, contributions_for, presale_progress
from .amounts import format_units, lamports_to_sol
from .config import (
    PresaleWindow,
    Settings,
    database_url_from_env,
    load_presale_window,
    validate_address,
)
from .errors import PresaleError, SyncIncompleteError
from .export import build_manifest, verify_manifest_file, write_contributors_csv, write_manifest
from .ledger import LedgerStore
from .project_constants import DEFAULT_TX_BATCH_SIZE, DEFAULT_WINDOW_FILE
from .reconcile import Reconciler
from .rpc import RpcClient

log = logging.getLogger("presale")


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _window(args: argparse.Namespace) -> PresaleWindow:
    return load_presale_window(args.window)


def _ledger(args: argparse.Namespace) -> LedgerStore:
    return LedgerStore.from_url(database_url_from_env(args.database_url))


async def _sync(args: argparse.Namespace) -> int:
    settings = Settings.from_env(
        rpc_url_override=args.rpc_url, database_url_override=args.database_url
    )
    window = _window(args)

    ledger = LedgerStore.from_url(settings.database_url)
    rpc = RpcClient(settings.rpc_url, timeout_s=args.timeout)
    try:
        await ledger.create_all()
        reconciler = Reconciler(window, rpc, ledger, batch_size=args.batch_size)
        log.info("Syncing presale wallet %s", window.distribution_address)
        try:
            report = await reconciler.run()
        except SyncIncompleteError as e:
            print(json.dumps({"status": "incomplete", **e.report.to_dict()}, indent=2))
            raise
    finally:
        await rpc.close()
        await ledger.close()

    print(json.dumps({"status": "complete", **report.to_dict()}, indent=2))
    return 0


async def _export(args: argparse.Namespace) -> int:
    window = _window(args)
    ledger = _ledger(args)
    try:
        await ledger.create_all()
        entries = await ledger.list_entries(window.start_time, window.end_time)
    finally:
        await ledger.close()

    contributors = aggregate_contributors(entries, window)
    log.info("Ledger entries    : %d", len(entries))
    log.info("Contributors      : %d", len(contributors))

    if args.csv:
        with open(args.csv, "w", encoding="utf-8", newline="") as f:
            write_contributors_csv(f, contributors, window.token_decimals)
        print(f"Wrote CSV     : {args.csv}")

    manifest = build_manifest(contributors, window)
    if args.manifest:
        write_manifest(args.manifest, manifest)
        print(f"Wrote manifest: {args.manifest}")

    meta = manifest["metadata"]
    print(f"Total SOL     : {meta['total_sol']}")
    print(
        "Total tokens  : "
        f"{format_units(int(meta['total_token_amount']), window.token_decimals)}"
    )
    return 0


async def _contributions(args: argparse.Namespace) -> int:
    window = _window(args)
    wallet = validate_address(args.wallet, "wallet")
    ledger = _ledger(args)
    try:
        await ledger.create_all()
        entries = await ledger.entries_for_buyer(wallet)
    finally:
        await ledger.close()

    mine = contributions_for(entries, wallet)
    summary = aggregate_contributors(mine, window)
    print(f"Wallet        : {wallet}")
    for e in mine:
        print(
            f"  {e.signature[:16]}... {e.sol_amount} SOL "
            f"+{e.bonus_percent}% -> {e.token_amount_with_bonus}"
        )
    if summary:
        agg = summary[0]
        print(f"Total SOL     : {agg.total_native_amount}")
        print(f"Airdrop bonus : {agg.bonus_percent}%")
        print(
            f"Airdrop total : {format_units(agg.total_token_amount, window.token_decimals)}"
        )
    else:
        print("No contributions recorded.")
    return 0


async def _progress(args: argparse.Namespace) -> int:
    window = _window(args)
    ledger = _ledger(args)
    try:
        await ledger.create_all()
        entries = await ledger.list_entries(window.start_time, window.end_time)
    finally:
        await ledger.close()

    progress = presale_progress(entries)
    print(
        json.dumps(
            {
                "total_sol": str(lamports_to_sol(progress.total_lamports)),
                "contributors": progress.contributor_count,
                "transactions": progress.transaction_count,
            },
            indent=2,
        )
    )
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    result = verify_manifest_file(args.manifest)
    print("✅ MANIFEST VERIFIED")
    print(f"Contributors  : {result['contributors']}")
    print(f"Total SOL     : {lamports_to_sol(result['total_lamports'])}")
    print(
        "Total tokens  : "
        f"{format_units(result['total_token_amount'], result['token_decimals'])}"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="solana-presale",
        description="Reconcile Solana presale contributions and build airdrop totals.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--rpc-url", default=None, help="Override RPC URL (else use env).")
    p.add_argument(
        "--database-url", default=None, help="Override DATABASE_URL (else use env)."
    )
    p.add_argument("--timeout", type=float, default=60.0, help="RPC timeout seconds.")
    p.add_argument(
        "--window",
        default=os.getenv("PRESALE_CONFIG", DEFAULT_WINDOW_FILE),
        help="Presale window JSON file.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("sync", help="Scan the presale wallet and update the ledger.")
    s.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_TX_BATCH_SIZE,
        help="Transactions fetched per RPC batch.",
    )
    s.set_defaults(func=_sync)

    e = sub.add_parser("export", help="Aggregate the ledger into airdrop totals.")
    e.add_argument("--csv", default=None, help="CSV output path.")
    e.add_argument("--manifest", default=None, help="Airdrop manifest JSON output path.")
    e.set_defaults(func=_export)

    c = sub.add_parser("contributions", help="Show one wallet's contributions.")
    c.add_argument("--wallet", required=True, help="Buyer wallet address.")
    c.set_defaults(func=_contributions)

    pr = sub.add_parser("progress", help="Show presale totals.")
    pr.set_defaults(func=_progress)

    v = sub.add_parser("verify", help="Verify an airdrop manifest deterministically.")
    v.add_argument("--manifest", required=True, help="Path to manifest JSON.")
    v.set_defaults(func=cmd_verify)

    return p


def run(args: argparse.Namespace) -> int:
    try:
        if inspect.iscoroutinefunction(args.func):
            return asyncio.run(args.func(args))
        return args.func(args)
    except PresaleError as e:
        log.error("%s", e)
        return 1


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)
    raise SystemExit(run(args))
