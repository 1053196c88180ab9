"""
Pytest tests for the transaction normalizer (raw Helius records -> Trade rows).

Metadata resolver and price oracle are in-memory fakes.
"""

from __future__ import annotations

import asyncio

import pytest

from wallet_whisperer.ingestion.models import LAMPORTS_PER_SOL, SOL_MINT, USDC_MINT, RawRecord, TradeDirection
from wallet_whisperer.ingestion.normalizer import TransactionNormalizer, draft_trade, parse_raw_records
from wallet_whisperer.ingestion.token_metadata import TokenMetadata

VALID_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
OTHER = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
POOL = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
MINT = "TokenMint1111111111111111111111111111111111"
MINT_2 = "TokenMint2222222222222222222222222222222222"
TS = 1_710_000_000


class FakeMetadata:
    def __init__(self, categories=None, *, error: Exception | None = None, delay: float = 0.0) -> None:
        self.categories = categories or {}
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def resolve(self, mint):
        self.calls.append(mint)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return TokenMetadata(mint=mint, category=self.categories.get(mint))


class FakePrices:
    def __init__(self, prices=None, *, error: Exception | None = None) -> None:
        self.prices = prices or {}
        self.error = error
        self.calls = 0

    async def get_prices(self, mints):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {m: self.prices.get(m) for m in mints}


def _sol_buy(signature: str, ts: int, *, sol: float, amount: float, mint: str = MINT) -> dict:
    """Wallet pays native SOL and receives `amount` of `mint`."""
    return {
        "signature": signature,
        "timestamp": ts,
        "fee": 5000,
        "feePayer": VALID_WALLET,
        "type": "SWAP",
        "source": "RAYDIUM",
        "nativeTransfers": [
            {"fromUserAccount": VALID_WALLET, "toUserAccount": POOL, "amount": int(sol * LAMPORTS_PER_SOL)}
        ],
        "tokenTransfers": [
            {"fromUserAccount": POOL, "toUserAccount": VALID_WALLET, "mint": mint, "tokenAmount": amount}
        ],
    }


# --- Parsing ---


def test_parse_skips_records_without_signature(raw_trade):
    items = [raw_trade("sig1", TS, mint=MINT, amount=10, usd=5), {"timestamp": TS}, "garbage"]
    records = parse_raw_records(items)
    assert [r.signature for r in records] == ["sig1"]


def test_raw_record_keeps_missing_amounts_as_none():
    record = RawRecord.from_helius(
        {
            "signature": "sig",
            "timestamp": TS,
            "tokenTransfers": [{"fromUserAccount": POOL, "toUserAccount": VALID_WALLET, "mint": MINT}],
        }
    )
    assert record.token_transfers[0].token_amount is None
    assert record.fee_lamports is None


# --- Direction inference ---


def test_buy_and_sell_against_stablecoin(raw_trade):
    buy = draft_trade(RawRecord.from_helius(raw_trade("b", TS, mint=MINT, amount=100, usd=25)), VALID_WALLET)
    sell = draft_trade(RawRecord.from_helius(raw_trade("s", TS, mint=MINT, amount=100, usd=30, side="sell")), VALID_WALLET)
    assert buy.direction == TradeDirection.BUY
    assert buy.token_mint == MINT
    assert buy.stable_usd == 25
    assert sell.direction == TradeDirection.SELL
    assert sell.stable_usd == 30


def test_token_for_token_is_swap():
    record = RawRecord.from_helius(
        {
            "signature": "swap",
            "timestamp": TS,
            "tokenTransfers": [
                {"fromUserAccount": VALID_WALLET, "toUserAccount": POOL, "mint": MINT, "tokenAmount": 50},
                {"fromUserAccount": POOL, "toUserAccount": VALID_WALLET, "mint": MINT_2, "tokenAmount": 900},
            ],
        }
    )
    draft = draft_trade(record, VALID_WALLET)
    assert draft.direction == TradeDirection.SWAP
    assert draft.token_mint == MINT_2
    assert draft.amount_raw == 900


def test_token_received_alone_is_transfer():
    record = RawRecord.from_helius(
        {
            "signature": "airdrop",
            "timestamp": TS,
            "tokenTransfers": [{"fromUserAccount": OTHER, "toUserAccount": VALID_WALLET, "mint": MINT, "tokenAmount": 7}],
        }
    )
    assert draft_trade(record, VALID_WALLET).direction == TradeDirection.TRANSFER


def test_record_not_touching_wallet_is_dropped():
    record = RawRecord.from_helius(
        {
            "signature": "unrelated",
            "timestamp": TS,
            "tokenTransfers": [{"fromUserAccount": OTHER, "toUserAccount": POOL, "mint": MINT, "tokenAmount": 7}],
        }
    )
    assert draft_trade(record, VALID_WALLET) is None


def test_fee_only_counts_when_wallet_pays(raw_trade):
    item = raw_trade("b", TS, mint=MINT, amount=100, usd=25, fee=10_000)
    item["feePayer"] = OTHER
    draft = draft_trade(RawRecord.from_helius(item), VALID_WALLET)
    assert draft.fee_paid == 0.0
    own = draft_trade(RawRecord.from_helius(raw_trade("b2", TS, mint=MINT, amount=100, usd=25, fee=10_000)), VALID_WALLET)
    assert own.fee_paid == pytest.approx(10_000 / LAMPORTS_PER_SOL)


# --- normalize() ---


@pytest.mark.asyncio
async def test_duplicate_signature_last_record_wins(raw_trade):
    records = [
        raw_trade("dup", TS, mint=MINT, amount=100, usd=25),
        raw_trade("dup", TS, mint=MINT, amount=300, usd=75),
    ]
    trades = await TransactionNormalizer().normalize(records, VALID_WALLET)
    assert len(trades) == 1
    assert trades[0].amount_raw == 300
    assert trades[0].amount_usd == 75


@pytest.mark.asyncio
async def test_failed_and_undated_records_are_dropped(raw_trade):
    records = [
        raw_trade("ok", TS, mint=MINT, amount=10, usd=1),
        raw_trade("failed", TS + 1, mint=MINT, amount=10, usd=1, failed=True),
        raw_trade("undated", None, mint=MINT, amount=10, usd=1),
    ]
    trades = await TransactionNormalizer().normalize(records, VALID_WALLET)
    assert [t.signature for t in trades] == ["ok"]


@pytest.mark.asyncio
async def test_trades_are_ordered_by_timestamp_then_signature(raw_trade):
    records = [
        raw_trade("c", TS + 60, mint=MINT, amount=1, usd=1),
        raw_trade("b", TS, mint=MINT, amount=1, usd=1),
        raw_trade("a", TS, mint=MINT, amount=1, usd=1),
    ]
    trades = await TransactionNormalizer().normalize(records, VALID_WALLET)
    assert [t.signature for t in trades] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_sol_leg_priced_through_oracle():
    prices = FakePrices({SOL_MINT: 150.0})
    normalizer = TransactionNormalizer(prices=prices)
    trades = await normalizer.normalize([_sol_buy("solbuy", TS, sol=2.0, amount=1_000_000)], VALID_WALLET)
    assert trades[0].direction == TradeDirection.BUY
    assert trades[0].amount_usd == pytest.approx(300.0)
    assert prices.calls == 1


@pytest.mark.asyncio
async def test_unpriced_trade_keeps_null_usd():
    """No price available: amount_usd is None, never 0."""
    normalizer = TransactionNormalizer(prices=FakePrices({}))
    trades = await normalizer.normalize([_sol_buy("solbuy", TS, sol=2.0, amount=5)], VALID_WALLET)
    assert trades[0].amount_usd is None


@pytest.mark.asyncio
async def test_price_oracle_failure_keeps_trades():
    normalizer = TransactionNormalizer(prices=FakePrices(error=RuntimeError("coingecko down")))
    trades = await normalizer.normalize([_sol_buy("solbuy", TS, sol=1.0, amount=5)], VALID_WALLET)
    assert len(trades) == 1
    assert trades[0].amount_usd is None


@pytest.mark.asyncio
async def test_stable_legs_need_no_oracle(raw_trade):
    prices = FakePrices({})
    normalizer = TransactionNormalizer(prices=prices)
    trades = await normalizer.normalize([raw_trade("b", TS, mint=MINT, amount=10, usd=42)], VALID_WALLET)
    assert trades[0].amount_usd == 42
    assert prices.calls == 0


@pytest.mark.asyncio
async def test_category_from_metadata(raw_trade):
    metadata = FakeMetadata({MINT: "Gaming"})
    normalizer = TransactionNormalizer(metadata=metadata)
    trades = await normalizer.normalize(
        [raw_trade("a", TS, mint=MINT, amount=1, usd=1), raw_trade("b", TS + 1, mint=MINT, amount=1, usd=1)],
        VALID_WALLET,
    )
    assert {t.token_category for t in trades} == {"Gaming"}
    # One lookup per distinct mint
    assert metadata.calls == [MINT]


@pytest.mark.asyncio
async def test_category_lookup_failure_keeps_trade_with_null_category(raw_trade):
    normalizer = TransactionNormalizer(metadata=FakeMetadata(error=RuntimeError("rpc down")))
    trades = await normalizer.normalize([raw_trade("a", TS, mint=MINT, amount=1, usd=1)], VALID_WALLET)
    assert len(trades) == 1
    assert trades[0].token_category is None


@pytest.mark.asyncio
async def test_category_lookup_timeout_keeps_trade_with_null_category(raw_trade):
    normalizer = TransactionNormalizer(metadata=FakeMetadata({MINT: "DeFi"}, delay=1.0), metadata_timeout=0.05)
    trades = await normalizer.normalize([raw_trade("a", TS, mint=MINT, amount=1, usd=1)], VALID_WALLET)
    assert trades[0].token_category is None


@pytest.mark.asyncio
async def test_offline_rules_used_when_metadata_fails(raw_trade):
    """pump.fun mints are still recognized without the resolver."""
    pump = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hrpump"
    normalizer = TransactionNormalizer(metadata=FakeMetadata(error=RuntimeError("rpc down")))
    trades = await normalizer.normalize([raw_trade("a", TS, mint=pump, amount=1, usd=1)], VALID_WALLET)
    assert trades[0].token_category == "Meme"


@pytest.mark.asyncio
async def test_sol_to_stable_is_swap():
    record = {
        "signature": "solusdc",
        "timestamp": TS,
        "nativeTransfers": [{"fromUserAccount": VALID_WALLET, "toUserAccount": POOL, "amount": LAMPORTS_PER_SOL}],
        "tokenTransfers": [{"fromUserAccount": POOL, "toUserAccount": VALID_WALLET, "mint": USDC_MINT, "tokenAmount": 140}],
    }
    trades = await TransactionNormalizer().normalize([record], VALID_WALLET)
    assert trades[0].direction == TradeDirection.SWAP
    assert trades[0].token_mint == USDC_MINT
    assert trades[0].amount_usd == 140
