"""
Durable tier: SQLAlchemy-backed wallet profiles, profile history and trade ledger.

Uses DATABASE_URL for PostgreSQL when set; otherwise falls back to SQLite
(WHISPERER_DB_PATH or wallet_whisperer.db). The public API is async; the sync
SQLAlchemy work runs in a worker thread via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import json
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from wallet_whisperer.analysis_engine.models import WalletProfile
from wallet_whisperer.cache.entry import CacheEntry
from wallet_whisperer.ingestion.models import Trade, TradeDirection
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------


class WalletProfileRecord(Base):
    """
    Current profile per wallet. invalidated=True forces the next read to recompute.
    """

    __tablename__ = "wallet_profiles"

    wallet = Column(String(64), primary_key=True)
    model_version = Column(String(32), nullable=False)
    archetype = Column(String(64), nullable=False)
    trade_count = Column(Integer, nullable=False, default=0)
    confidence = Column(Float, nullable=False, default=0.0)
    profile_json = Column(Text, nullable=False)
    stored_at = Column(Float, nullable=False, index=True)  # Unix
    ttl = Column(Float, nullable=False)
    invalidated = Column(Boolean, nullable=False, default=False)

    def to_entry(self) -> CacheEntry[WalletProfile]:
        profile = WalletProfile.from_dict(json.loads(self.profile_json))
        return CacheEntry(value=profile, stored_at=self.stored_at, ttl=self.ttl)


class WalletProfileHistory(Base):
    """
    History of computed profiles per wallet (append-only). One row per computation.
    """

    __tablename__ = "wallet_profile_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet = Column(String(64), nullable=False, index=True)
    model_version = Column(String(32), nullable=False)
    archetype = Column(String(64), nullable=False)
    scores_json = Column(String(512), nullable=False)
    trade_count = Column(Integer, nullable=False)
    confidence = Column(Float, nullable=False)
    computed_at = Column(Float, nullable=False, index=True)  # Unix

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "wallet": self.wallet,
            "model_version": self.model_version,
            "archetype": self.archetype,
            "scores": json.loads(self.scores_json),
            "trade_count": self.trade_count,
            "confidence": self.confidence,
            "computed_at": self.computed_at,
        }


class TradeRecord(Base):
    """
    Normalized trade ledger (append-only). Signature is unique per wallet.
    """

    __tablename__ = "wallet_trades"
    __table_args__ = (UniqueConstraint("wallet", "signature", name="uq_wallet_trades_wallet_signature"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet = Column(String(64), nullable=False, index=True)
    signature = Column(String(128), nullable=False)
    timestamp = Column(Integer, nullable=False, index=True)  # Unix seconds
    direction = Column(String(16), nullable=False)
    token_mint = Column(String(64), nullable=False)
    token_category = Column(String(32), nullable=True)
    amount_raw = Column(Float, nullable=False)
    amount_usd = Column(Float, nullable=True)  # NULL = unknown price, not zero
    fee_paid = Column(Float, nullable=False, default=0.0)

    def to_trade(self) -> Trade:
        return Trade(
            signature=self.signature,
            timestamp=datetime.fromtimestamp(self.timestamp, tz=timezone.utc),
            direction=TradeDirection(self.direction),
            token_mint=self.token_mint,
            token_category=self.token_category,
            amount_raw=self.amount_raw,
            amount_usd=self.amount_usd,
            fee_paid=self.fee_paid,
        )


# -----------------------------------------------------------------------------
# Engine and session (DATABASE_URL → Postgres, else SQLite)
# -----------------------------------------------------------------------------


def _display_url(url: str) -> str:
    return url.split("?")[0].split("//")[-1].split("@")[-1]


class Database:
    """Engine + session factory for one database URL. Shared by the durable tier and ledger."""

    def __init__(self, url: str, engine: Engine | None = None) -> None:
        self.url = url
        if engine is None:
            connect_args: dict[str, Any] = {}
            if url.startswith("sqlite"):
                connect_args["check_same_thread"] = False
            engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        self.engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def init_db(self) -> None:
        """Create tables if they do not exist. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("durable_tier_init_db", url=_display_url(self.url))
        except SQLAlchemyError as e:
            logger.exception("durable_tier_init_db_failed", error=str(e))
            raise

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Context manager for a single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        try:
            with self.engine.connect():
                return True
        except SQLAlchemyError:
            return False

    def dispose(self) -> None:
        self.engine.dispose()


# -----------------------------------------------------------------------------
# Durable profile tier
# -----------------------------------------------------------------------------


class SqlAlchemyDurableTier:
    """
    Authoritative profile store: one current row per wallet plus append-only history.

    get() returns None for missing or invalidated rows; freshness (TTL, model
    version) is decided by the caller's TTL policy.
    """

    def __init__(self, db: Database, clock=time.time) -> None:
        self._db = db
        self._clock = clock

    def _get(self, key: str) -> CacheEntry[WalletProfile] | None:
        with self._db.session_scope() as session:
            row = session.get(WalletProfileRecord, key)
            if row is None or row.invalidated:
                return None
            return row.to_entry()

    def _upsert(self, key: str, profile: WalletProfile, ttl: float) -> CacheEntry[WalletProfile]:
        stored_at = self._clock()
        payload = profile.to_dict()
        with self._db.session_scope() as session:
            row = session.get(WalletProfileRecord, key)
            if row is None:
                row = WalletProfileRecord(wallet=key)
                session.add(row)
            row.model_version = profile.model_version
            row.archetype = profile.archetype.value
            row.trade_count = profile.trade_count
            row.confidence = profile.confidence
            row.profile_json = json.dumps(payload, separators=(",", ":"))
            row.stored_at = stored_at
            row.ttl = ttl
            row.invalidated = False
            session.add(
                WalletProfileHistory(
                    wallet=key,
                    model_version=profile.model_version,
                    archetype=profile.archetype.value,
                    scores_json=json.dumps(profile.scores, sort_keys=True),
                    trade_count=profile.trade_count,
                    confidence=profile.confidence,
                    computed_at=profile.computed_at.timestamp(),
                )
            )
        logger.debug("durable_tier_upserted", wallet_id=key[:16], ttl_sec=ttl)
        return CacheEntry(value=profile, stored_at=stored_at, ttl=ttl)

    def _invalidate(self, key: str) -> bool:
        with self._db.session_scope() as session:
            updated = (
                session.query(WalletProfileRecord)
                .filter(WalletProfileRecord.wallet == key)
                .update({"invalidated": True})
            )
        return bool(updated)

    def _history(self, key: str, limit: int) -> list[dict[str, Any]]:
        with self._db.session_scope() as session:
            rows = (
                session.query(WalletProfileHistory)
                .filter(WalletProfileHistory.wallet == key)
                .order_by(WalletProfileHistory.id.desc())
                .limit(limit)
                .all()
            )
            return [r.to_dict() for r in rows]

    async def get(self, key: str) -> CacheEntry[WalletProfile] | None:
        return await asyncio.to_thread(self._get, key)

    async def upsert(self, key: str, profile: WalletProfile, ttl: float) -> CacheEntry[WalletProfile]:
        return await asyncio.to_thread(self._upsert, key, profile, ttl)

    async def invalidate(self, key: str) -> bool:
        """Mark the current row invalidated. Returns False when there was no row."""
        return await asyncio.to_thread(self._invalidate, key)

    async def history(self, key: str, limit: int = 50) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._history, key, limit)

    async def ping(self) -> bool:
        return await asyncio.to_thread(self._db.ping)


# -----------------------------------------------------------------------------
# Trade ledger
# -----------------------------------------------------------------------------


class SqlAlchemyTradeLedger:
    """
    Append-only per-wallet trade ledger keyed by signature.

    Trades are immutable once stored: appending a known signature is a no-op.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _record(wallet: str, t: Trade) -> TradeRecord:
        return TradeRecord(
            wallet=wallet,
            signature=t.signature,
            timestamp=int(t.timestamp.timestamp()),
            direction=t.direction.value,
            token_mint=t.token_mint,
            token_category=t.token_category,
            amount_raw=t.amount_raw,
            amount_usd=t.amount_usd,
            fee_paid=t.fee_paid,
        )

    def _append(self, wallet: str, trades: list[Trade]) -> int:
        if not trades:
            return 0
        signatures = [t.signature for t in trades]
        with self._db.session_scope() as session:
            existing = {
                r[0]
                for r in session.query(TradeRecord.signature)
                .filter(TradeRecord.wallet == wallet, TradeRecord.signature.in_(signatures))
                .all()
            }
        fresh: dict[str, Trade] = {}
        for t in trades:
            if t.signature not in existing:
                fresh[t.signature] = t
        if not fresh:
            return 0
        try:
            with self._db.session_scope() as session:
                session.add_all([self._record(wallet, t) for t in fresh.values()])
            return len(fresh)
        except IntegrityError:
            # Concurrent writer stored some of these; fall back to row-by-row
            inserted = 0
            for t in fresh.values():
                try:
                    with self._db.session_scope() as session:
                        session.add(self._record(wallet, t))
                    inserted += 1
                except IntegrityError:
                    continue
            return inserted

    def _latest_signature(self, wallet: str) -> str | None:
        with self._db.session_scope() as session:
            row = (
                session.query(TradeRecord.signature)
                .filter(TradeRecord.wallet == wallet)
                .order_by(TradeRecord.timestamp.desc(), TradeRecord.signature.desc())
                .first()
            )
            return row[0] if row else None

    def _recent(self, wallet: str, limit: int) -> list[Trade]:
        with self._db.session_scope() as session:
            rows = (
                session.query(TradeRecord)
                .filter(TradeRecord.wallet == wallet)
                .order_by(TradeRecord.timestamp.desc(), TradeRecord.signature.desc())
                .limit(limit)
                .all()
            )
            trades = [r.to_trade() for r in rows]
        trades.sort(key=lambda t: (t.timestamp, t.signature))
        return trades

    def _count(self, wallet: str) -> int:
        with self._db.session_scope() as session:
            return session.query(TradeRecord).filter(TradeRecord.wallet == wallet).count()

    async def append(self, wallet: str, trades: Iterable[Trade]) -> int:
        """Store trades not yet in the ledger. Returns the number inserted."""
        inserted = await asyncio.to_thread(self._append, wallet, list(trades))
        if inserted:
            logger.debug("trade_ledger_appended", wallet_id=wallet[:16], inserted=inserted)
        return inserted

    async def latest_signature(self, wallet: str) -> str | None:
        return await asyncio.to_thread(self._latest_signature, wallet)

    async def recent(self, wallet: str, limit: int) -> list[Trade]:
        """The newest `limit` trades, ordered by (timestamp, signature)."""
        return await asyncio.to_thread(self._recent, wallet, limit)

    async def count(self, wallet: str) -> int:
        return await asyncio.to_thread(self._count, wallet)
