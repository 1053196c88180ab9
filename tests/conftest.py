"""
Pytest fixtures for Wallet Whisperer tests.

Fakes for the transaction source, holdings source and scorer count their calls
so tests can assert single-flight behavior. The durable tier and trade ledger
use a temporary SQLite DB; the hot tier is in-process. Time is a FakeClock.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from wallet_whisperer.analysis_engine.scorer import score
from wallet_whisperer.ingestion.models import (
    SOL_MINT,
    USDC_MINT,
    Holdings,
    TokenHolding,
    Trade,
    TradeDirection,
)

# Valid Solana pubkeys (base58, 32 bytes)
WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
WALLET_2 = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
POOL = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"

MINT_MEME = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hrpump"
MINT_DEFI = "DeFiMint11111111111111111111111111111111111"
MINT_GAME = "GameMint11111111111111111111111111111111111"

# 2023-11-14 22:13:20 UTC
BASE_TS = 1_700_000_000


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start: float = float(BASE_TS + 30 * 86400)) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransactionSource:
    """Returns canned Helius records (newest first); counts calls."""

    def __init__(self, records=None, *, delay: float = 0.0, error: Exception | None = None) -> None:
        self.records = sorted(records or [], key=lambda r: r.get("timestamp") or 0, reverse=True)
        self.delay = delay
        self.error = error
        self.calls = 0
        self.since: list[str | None] = []

    async def fetch_transactions(self, address, since_signature=None):
        self.calls += 1
        self.since.append(since_signature)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        out = []
        for record in self.records:
            if since_signature and record.get("signature") == since_signature:
                break
            out.append(record)
        return out


class FakeHoldingsSource:
    def __init__(self, tokens=(), *, error: Exception | None = None) -> None:
        self.tokens = tuple(tokens)
        self.error = error
        self.calls = 0

    async def get_holdings(self, address):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return Holdings(wallet=address, tokens=self.tokens)


class CountingScorer:
    """Wraps the real scorer; optionally fails every call with `error`."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    def __call__(self, trades, holdings, **kwargs):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return score(trades, holdings, **kwargs)


class BrokenHotTier:
    """Hot tier whose every command fails, like an unreachable Redis."""

    def __init__(self) -> None:
        self.calls = 0

    async def get(self, key):
        from wallet_whisperer.core.exceptions import CacheUnavailable

        self.calls += 1
        raise CacheUnavailable("redis get failed: connection refused", key=key)

    async def set(self, key, entry):
        from wallet_whisperer.core.exceptions import CacheUnavailable

        self.calls += 1
        raise CacheUnavailable("redis set failed: connection refused", key=key)

    async def delete(self, key):
        from wallet_whisperer.core.exceptions import CacheUnavailable

        self.calls += 1
        raise CacheUnavailable("redis delete failed: connection refused", key=key)


def helius_trade(
    signature: str,
    timestamp: int | None,
    *,
    mint: str,
    amount: float,
    usd: float,
    side: str = "buy",
    wallet: str = WALLET,
    fee: int = 5000,
    failed: bool = False,
) -> dict:
    """Helius enhanced transaction where the wallet trades USDC for `mint` (buy) or back (sell)."""
    token_leg = {"fromUserAccount": POOL, "toUserAccount": wallet, "mint": mint, "tokenAmount": amount}
    quote_leg = {"fromUserAccount": wallet, "toUserAccount": POOL, "mint": USDC_MINT, "tokenAmount": usd}
    if side == "sell":
        token_leg["fromUserAccount"], token_leg["toUserAccount"] = wallet, POOL
        quote_leg["fromUserAccount"], quote_leg["toUserAccount"] = POOL, wallet
    return {
        "signature": signature,
        "timestamp": timestamp,
        "fee": fee,
        "feePayer": wallet,
        "source": "JUPITER",
        "type": "SWAP",
        "nativeTransfers": [],
        "tokenTransfers": [token_leg, quote_leg],
        "transactionError": {"InstructionError": [0, "Custom"]} if failed else None,
    }


def make_trade(
    signature: str,
    at: datetime | int,
    *,
    direction: TradeDirection = TradeDirection.BUY,
    mint: str = MINT_DEFI,
    category: str | None = "DeFi",
    amount: float = 100.0,
    usd: float | None = 100.0,
    fee: float = 0.000005,
) -> Trade:
    if isinstance(at, int):
        at = datetime.fromtimestamp(at, tz=timezone.utc)
    return Trade(
        signature=signature,
        timestamp=at,
        direction=direction,
        token_mint=mint,
        token_category=category,
        amount_raw=amount,
        amount_usd=usd,
        fee_paid=fee,
    )


@pytest.fixture
def raw_trade():
    """Builder for Helius-format raw records."""
    return helius_trade


@pytest.fixture
def trade():
    """Builder for normalized Trade objects."""
    return make_trade


@pytest.fixture
def sample_records():
    """Six buy/sell round trips over six days across three tokens (12 trades)."""
    mints = (MINT_MEME, MINT_DEFI, MINT_GAME)
    records = []
    for i in range(6):
        mint = mints[i % 3]
        opened = BASE_TS + i * 86400
        records.append(helius_trade(f"buy{i:02d}", opened, mint=mint, amount=1000.0, usd=200.0 + 10 * i))
        records.append(
            helius_trade(f"sell{i:02d}", opened + 30 * 3600, mint=mint, amount=1000.0, usd=230.0 + 10 * i, side="sell")
        )
    return records


@pytest.fixture
def sample_holdings():
    return (
        TokenHolding(mint=MINT_MEME, amount=5000.0, usd_value=800.0, category="Meme", symbol="PUMPY"),
        TokenHolding(mint=MINT_DEFI, amount=50.0, usd_value=150.0, category="DeFi"),
        TokenHolding(mint=SOL_MINT, amount=2.0, usd_value=50.0, category="Utility", symbol="SOL"),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(tmp_path):
    """Temporary SQLite database with tables created."""
    from wallet_whisperer.cache.durable_tier import Database

    db = Database(f"sqlite:///{tmp_path / 'whisperer.db'}")
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def durable(database, clock):
    from wallet_whisperer.cache.durable_tier import SqlAlchemyDurableTier

    return SqlAlchemyDurableTier(database, clock=clock)


@pytest.fixture
def ledger(database):
    from wallet_whisperer.cache.durable_tier import SqlAlchemyTradeLedger

    return SqlAlchemyTradeLedger(database)


@pytest.fixture
def hot(clock):
    from wallet_whisperer.cache.hot_tier import InMemoryHotTier

    return InMemoryHotTier(clock=clock)


@pytest.fixture
def source(sample_records):
    # Long enough that every concurrent caller arrives while the fetch is in flight
    return FakeTransactionSource(sample_records, delay=0.2)


@pytest.fixture
def holdings_source(sample_holdings):
    return FakeHoldingsSource(sample_holdings)


@pytest.fixture
def scorer():
    return CountingScorer()


@pytest.fixture
def pipeline(source, holdings_source, scorer):
    from wallet_whisperer.analytics.analytics_pipeline import WalletAnalysisPipeline

    return WalletAnalysisPipeline(source=source, holdings=holdings_source, scorer=scorer, fetch_timeout=5.0)


@pytest.fixture
def orchestrator(hot, durable, pipeline, clock):
    from wallet_whisperer.analytics.orchestrator import ProfileOrchestrator

    return ProfileOrchestrator(hot=hot, durable=durable, computer=pipeline, clock=clock)


@pytest.fixture
def insufficient_profile():
    """Profile of a wallet with no trades (what a cold start produces)."""
    return score(
        [],
        Holdings(wallet=WALLET),
        wallet_address=WALLET,
        computed_at=datetime.fromtimestamp(BASE_TS, tz=timezone.utc) + timedelta(days=29),
    )


@pytest.fixture
def client(orchestrator):
    """FastAPI TestClient over the fake-backed orchestrator. One event loop for all requests."""
    from fastapi.testclient import TestClient

    from wallet_whisperer.api_server.server import create_app

    with TestClient(create_app(orchestrator=orchestrator)) as c:
        yield c


@pytest.fixture
def broken_hot():
    return BrokenHotTier()
