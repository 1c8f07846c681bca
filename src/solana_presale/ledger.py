"""
Durable presale contribution ledger.

One row per qualifying transfer, keyed on (transaction_signature,
instruction_index). Inserts use ON CONFLICT DO NOTHING, so re-running a sync
over signatures that are already stored never duplicates or rewrites a row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .amounts import lamports_to_sol

log = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class PresaleContributionModel(Base):
    __tablename__ = "presale_contributions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_signature: Mapped[str] = mapped_column(String(128), nullable=False)
    instruction_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    buyer_wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)

    lamports: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sol_amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)
    bonus_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    # Raw token units can overflow BIGINT; stored as a fixed-point string.
    token_amount_with_bonus: Mapped[str] = mapped_column(String(64), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint(
            "transaction_signature",
            "instruction_index",
            name="uq_presale_contributions_signature",
        ),
        Index("idx_presale_contributions_buyer", "buyer_wallet_address"),
        Index("idx_presale_contributions_timestamp", "timestamp"),
    )


@dataclass(frozen=True)
class LedgerEntry:
    signature: str
    instruction_index: int
    buyer_address: str
    lamports: int
    bonus_percent: int
    token_amount: int  # smallest units, bonus included
    token_amount_with_bonus: str  # token_amount rendered with token_decimals digits
    timestamp: int  # unix seconds

    @property
    def sol_amount(self) -> Decimal:
        return lamports_to_sol(self.lamports)

    @classmethod
    def from_model(cls, model: PresaleContributionModel) -> "LedgerEntry":
        whole, _, frac = model.token_amount_with_bonus.partition(".")
        ts = model.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            signature=model.transaction_signature,
            instruction_index=model.instruction_index,
            buyer_address=model.buyer_wallet_address,
            lamports=int(model.lamports),
            bonus_percent=model.bonus_percent,
            token_amount=int(whole + frac),
            token_amount_with_bonus=model.token_amount_with_bonus,
            timestamp=int(ts.timestamp()),
        )


class LedgerStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "LedgerStore":
        return cls(create_async_engine(database_url))

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    async def upsert(self, entry: LedgerEntry) -> bool:
        """Insert `entry` unless its signature is already recorded. True if a row was written."""
        values = {
            "transaction_signature": entry.signature,
            "instruction_index": entry.instruction_index,
            "buyer_wallet_address": entry.buyer_address,
            "lamports": entry.lamports,
            "sol_amount": entry.sol_amount,
            "bonus_percent": entry.bonus_percent,
            "token_amount_with_bonus": entry.token_amount_with_bonus,
            "timestamp": datetime.fromtimestamp(entry.timestamp, tz=timezone.utc),
            "created_at": datetime.now(timezone.utc),
        }
        if self.engine.dialect.name == "postgresql":
            stmt = pg_insert(PresaleContributionModel).values(**values)
        elif self.engine.dialect.name == "sqlite":
            stmt = sqlite_insert(PresaleContributionModel).values(**values)
        else:
            raise NotImplementedError(f"Unsupported dialect: {self.engine.dialect.name}")
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["transaction_signature", "instruction_index"]
        )

        async with self.sessions() as session:
            result = await session.execute(stmt)
            await session.commit()
        written = (result.rowcount or 0) > 0
        if not written:
            log.debug("Ledger already has %s#%d", entry.signature, entry.instruction_index)
        return written

    async def list_entries(
        self, start: Optional[int] = None, end: Optional[int] = None
    ) -> List[LedgerEntry]:
        """All entries, optionally restricted to start <= timestamp < end (unix seconds)."""
        stmt = select(PresaleContributionModel)
        if start is not None:
            stmt = stmt.where(
                PresaleContributionModel.timestamp
                >= datetime.fromtimestamp(start, tz=timezone.utc)
            )
        if end is not None:
            stmt = stmt.where(
                PresaleContributionModel.timestamp
                < datetime.fromtimestamp(end, tz=timezone.utc)
            )
        stmt = stmt.order_by(
            PresaleContributionModel.timestamp,
            PresaleContributionModel.transaction_signature,
            PresaleContributionModel.instruction_index,
        )
        async with self.sessions() as session:
            result = await session.execute(stmt)
            return [LedgerEntry.from_model(m) for m in result.scalars()]

    async def entries_for_buyer(self, address: str) -> List[LedgerEntry]:
        stmt = (
            select(PresaleContributionModel)
            .where(PresaleContributionModel.buyer_wallet_address == address)
            .order_by(PresaleContributionModel.timestamp.desc())
        )
        async with self.sessions() as session:
            result = await session.execute(stmt)
            return [LedgerEntry.from_model(m) for m in result.scalars()]
