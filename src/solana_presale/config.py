from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, Tuple

import base58
from dotenv import load_dotenv

from .errors import ConfigurationError
from .project_constants import DEFAULT_DATABASE_URL, DEFAULT_TOKEN_DECIMALS
from .tiers import BonusTier, sort_tiers, validate_tiers


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    database_url: str = DEFAULT_DATABASE_URL

    @staticmethod
    def from_env(
        rpc_url_override: str | None = None,
        database_url_override: str | None = None,
    ) -> "Settings":
        load_dotenv()
        database_url = database_url_from_env(database_url_override)

        # If user provides --rpc-url, trust it.
        if rpc_url_override:
            return Settings(rpc_url=rpc_url_override, database_url=database_url)

        # Otherwise, use RPC_URL from env if present, else build helius url from key.
        env_rpc = os.getenv("RPC_URL", "").strip()
        if env_rpc:
            return Settings(rpc_url=env_rpc, database_url=database_url)

        helius_key = os.getenv("HELIUS_API_KEY", "").strip()
        if not helius_key:
            raise ConfigurationError(
                "Missing HELIUS_API_KEY (or RPC_URL). Put it in .env or export it."
            )

        return Settings(
            rpc_url=f"https://mainnet.helius-rpc.com/?api-key={helius_key}",
            database_url=database_url,
        )


def database_url_from_env(override: str | None = None) -> str:
    load_dotenv()
    return normalize_database_url(
        override or os.getenv("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL
    )


def normalize_database_url(url: str) -> str:
    """Managed Postgres hands out postgres:// URLs; the async engine needs asyncpg."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def validate_address(address: str, what: str = "address") -> str:
    address = (address or "").strip()
    try:
        raw = base58.b58decode(address)
    except ValueError:
        raise ConfigurationError(f"Invalid {what}: {address!r} is not base58")
    if not address or len(raw) != 32:
        raise ConfigurationError(f"Invalid {what}: {address!r} is not a 32-byte public key")
    return address


@dataclass(frozen=True)
class PresaleWindow:
    distribution_address: str
    start_time: int  # unix seconds, inclusive
    end_time: int  # unix seconds, exclusive
    rate: int  # tokens per whole SOL
    token_decimals: int = DEFAULT_TOKEN_DECIMALS
    bonus_tiers: Tuple[BonusTier, ...] = ()  # sorted descending by threshold
    excluded_sources: FrozenSet[str] = field(default_factory=frozenset)

    def contains(self, block_time: int) -> bool:
        return self.start_time <= block_time < self.end_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distribution_address": self.distribution_address,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "rate": self.rate,
            "token_decimals": self.token_decimals,
            "bonus_tiers": [
                {"threshold": str(t.threshold), "percentage": t.percent}
                for t in sorted(self.bonus_tiers, key=lambda t: t.threshold)
            ],
            "excluded_sources": sorted(self.excluded_sources),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PresaleWindow":
        if not isinstance(data, dict):
            raise ConfigurationError("Presale window must be a JSON object.")

        distribution = validate_address(
            data.get("distribution_address", ""), "distribution_address"
        )
        start = _timestamp(data, "start")
        end = _timestamp(data, "end")
        if end <= start:
            raise ConfigurationError(
                f"Presale window ends ({end}) before it starts ({start})."
            )

        try:
            rate = int(data["rate"])
            token_decimals = int(data.get("token_decimals", DEFAULT_TOKEN_DECIMALS))
        except KeyError:
            raise ConfigurationError("Presale window is missing 'rate'.")
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid rate/token_decimals: {e}")
        if rate <= 0:
            raise ConfigurationError(f"rate must be positive, got {rate}")
        if token_decimals < 0:
            raise ConfigurationError(f"token_decimals must be >= 0, got {token_decimals}")

        tiers = []
        for raw in data.get("bonus_tiers") or []:
            try:
                tiers.append(
                    BonusTier(
                        threshold=Decimal(str(raw["threshold"])),
                        percent=int(raw.get("percentage", raw.get("percent"))),
                    )
                )
            except (KeyError, TypeError, ValueError, InvalidOperation) as e:
                raise ConfigurationError(f"Invalid bonus tier {raw!r}: {e}")
        validate_tiers(tiers)

        excluded = frozenset(
            validate_address(a, "excluded source")
            for a in data.get("excluded_sources") or []
        )

        return PresaleWindow(
            distribution_address=distribution,
            start_time=start,
            end_time=end,
            rate=rate,
            token_decimals=token_decimals,
            bonus_tiers=sort_tiers(tiers),
            excluded_sources=excluded,
        )


def load_presale_window(path: str) -> PresaleWindow:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Presale window file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Presale window file is not valid JSON: {e}")
    return PresaleWindow.from_dict(data)


def _timestamp(data: Dict[str, Any], prefix: str) -> int:
    """Accepts `<prefix>_time` (unix seconds) or `<prefix>_date` (ISO-8601)."""
    if data.get(f"{prefix}_time") is not None:
        try:
            return int(data[f"{prefix}_time"])
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid {prefix}_time: {data[f'{prefix}_time']!r}")

    raw = data.get(f"{prefix}_date")
    if not raw:
        raise ConfigurationError(f"Presale window is missing {prefix}_time/{prefix}_date.")
    try:
        dt = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        raise ConfigurationError(f"Invalid {prefix}_date: {raw!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())
