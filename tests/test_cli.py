import asyncio
import csv
import json

import pytest

from conftest import BUYER_A, DISTRIBUTION, PRESALE_START
from solana_presale.cli import build_parser, run
from solana_presale.classifier import RawTransfer
from solana_presale.ledger import LedgerStore
from solana_presale.reconcile import ledger_entry_for

ONE_SOL = 1_000_000_000


@pytest.fixture
def workspace(tmp_path, window):
    window_file = tmp_path / "presale.json"
    window_file.write_text(json.dumps(window.to_dict()), encoding="utf-8")
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"

    async def seed():
        store = LedgerStore.from_url(db_url)
        await store.create_all()
        for i, lamports in enumerate([1 * ONE_SOL, 4 * ONE_SOL]):
            t = RawTransfer(f"sig{i}", 0, BUYER_A, DISTRIBUTION, lamports, PRESALE_START + i)
            await store.upsert(ledger_entry_for(t, window))
        await store.close()

    asyncio.run(seed())
    return tmp_path, str(window_file), db_url


def cli(*argv):
    return run(build_parser().parse_args(list(argv)))


def test_export_then_verify(workspace, capsys):
    tmp_path, window_file, db_url = workspace
    csv_path = tmp_path / "out.csv"
    manifest_path = tmp_path / "manifest.json"

    assert cli(
        "--window", window_file, "--database-url", db_url,
        "export", "--csv", str(csv_path), "--manifest", str(manifest_path),
    ) == 0

    with open(csv_path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert rows == [
        {
            "contributor_address": BUYER_A,
            "total_sol_spent": "5.000000000",
            "total_tokens_to_receive": "50400000.000000000",
        }
    ]

    assert cli("verify", "--manifest", str(manifest_path)) == 0
    assert "MANIFEST VERIFIED" in capsys.readouterr().out


def test_progress(workspace, capsys):
    _, window_file, db_url = workspace
    assert cli("--window", window_file, "--database-url", db_url, "progress") == 0
    out = json.loads(capsys.readouterr().out)
    assert out == {"total_sol": "5.000000000", "contributors": 1, "transactions": 2}


def test_contributions(workspace, capsys):
    _, window_file, db_url = workspace
    assert cli("--window", window_file, "--database-url", db_url, "contributions", "--wallet", BUYER_A) == 0
    out = capsys.readouterr().out
    assert "Airdrop bonus : 12%" in out
    assert "Airdrop total : 50400000.000000000" in out


def test_configuration_error_exits_nonzero(tmp_path):
    assert cli("--window", str(tmp_path / "missing.json"), "progress") == 1


def test_invalid_wallet_exits_nonzero(workspace):
    _, window_file, db_url = workspace
    assert cli("--window", window_file, "--database-url", db_url, "contributions", "--wallet", "xyz") == 1
