"""
Chain-level constants shared by the presale reconciliation engine.

Presale parameters (wallet, window, rate, tiers) are NOT defined here; they
live in the presale window JSON file and are loaded once per run.
"""

# 1 SOL = 10^9 lamports
LAMPORTS_PER_SOL = 1_000_000_000
SOL_DECIMALS = 9

# System program id; also the "null" address that must never count as a buyer.
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

# getSignaturesForAddress hard limit
SIGNATURE_PAGE_SIZE = 1000

# getTransaction bodies requested per JSON-RPC batch
DEFAULT_TX_BATCH_SIZE = 50
MAX_TX_BATCH_SIZE = 1000

# Most SPL tokens (and Token-2022 mints created by default) use 9 decimals
DEFAULT_TOKEN_DECIMALS = 9

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///presale.db"
DEFAULT_WINDOW_FILE = "presale.json"
