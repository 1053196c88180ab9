"""
Normalize raw provider records into canonical Trade rows for one wallet.

Rules:
  - duplicate signatures: the last record wins
  - failed transactions and records without a timestamp are dropped
  - direction from the wallet's net token deltas: token in + SOL/stable out -> buy,
    token out + SOL/stable in -> sell, token in + token out -> swap, else transfer
  - category lookup failures keep the trade with token_category=None
  - USD from the stable leg, else SOL leg x SOL price, else token amount x token price;
    None when nothing can be priced (0.0 is a real value)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from wallet_whisperer.core.exceptions import InvalidRawRecord
from wallet_whisperer.ingestion.models import (
    LAMPORTS_PER_SOL,
    QUOTE_MINTS,
    SOL_MINT,
    STABLECOIN_MINTS,
    RawRecord,
    Trade,
    TradeDirection,
)
from wallet_whisperer.ingestion.pricing import PriceOracle
from wallet_whisperer.ingestion.token_metadata import TokenMetadataResolver, categorize_token
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

DEFAULT_METADATA_TIMEOUT = 5.0
# Deltas below this are rounding noise from the provider
_EPSILON = 1e-12


def parse_raw_records(items: Iterable[Any]) -> list[RawRecord]:
    """Build RawRecords from provider items. Invalid items are skipped and logged."""
    records: list[RawRecord] = []
    skipped = 0
    for item in items:
        if isinstance(item, RawRecord):
            records.append(item)
            continue
        try:
            records.append(RawRecord.from_helius(item))
        except InvalidRawRecord as e:
            skipped += 1
            logger.debug("raw_record_skipped", error=e.message)
    if skipped:
        logger.warning("raw_records_skipped", skipped=skipped, kept=len(records))
    return records


@dataclass
class _Draft:
    """Trade before category and price resolution."""

    signature: str
    timestamp: datetime
    direction: TradeDirection
    token_mint: str
    amount_raw: float
    stable_usd: float | None
    sol_amount: float | None
    fee_paid: float


def _wallet_deltas(record: RawRecord, wallet: str) -> tuple[dict[str, float], float]:
    """Net token deltas per mint (SOL merged in) and the net SOL delta for the wallet."""
    tokens: dict[str, float] = {}
    for t in record.token_transfers:
        if t.token_amount is None or not t.mint:
            continue
        if t.to_account == wallet:
            tokens[t.mint] = tokens.get(t.mint, 0.0) + t.token_amount
        if t.from_account == wallet:
            tokens[t.mint] = tokens.get(t.mint, 0.0) - t.token_amount
    sol = tokens.pop(SOL_MINT, 0.0)
    for n in record.native_transfers:
        if n.lamports is None:
            continue
        if n.to_account == wallet:
            sol += n.lamports / LAMPORTS_PER_SOL
        if n.from_account == wallet:
            sol -= n.lamports / LAMPORTS_PER_SOL
    return {m: d for m, d in tokens.items() if abs(d) > _EPSILON}, sol


def _largest(legs: dict[str, float]) -> tuple[str, float]:
    mint = max(sorted(legs), key=lambda m: abs(legs[m]))
    return mint, abs(legs[mint])


def draft_trade(record: RawRecord, wallet: str) -> _Draft | None:
    """Infer direction, main token and quote legs for one record; None if the wallet moved nothing."""
    if record.timestamp is None:
        return None
    deltas, sol = _wallet_deltas(record, wallet)
    stable = sum(d for m, d in deltas.items() if m in STABLECOIN_MINTS)
    tokens = {m: d for m, d in deltas.items() if m not in QUOTE_MINTS}
    tokens_in = {m: d for m, d in tokens.items() if d > 0}
    tokens_out = {m: d for m, d in tokens.items() if d < 0}
    quote_out = stable < -_EPSILON or sol < -_EPSILON
    quote_in = stable > _EPSILON or sol > _EPSILON

    if tokens_in and tokens_out:
        direction = TradeDirection.SWAP
        mint, amount = _largest(tokens_in)
    elif tokens_in and quote_out:
        direction = TradeDirection.BUY
        mint, amount = _largest(tokens_in)
    elif tokens_out and quote_in:
        direction = TradeDirection.SELL
        mint, amount = _largest(tokens_out)
    elif tokens:
        direction = TradeDirection.TRANSFER
        mint, amount = _largest(tokens)
    elif abs(stable) > _EPSILON and abs(sol) > _EPSILON and (stable > 0) != (sol > 0):
        # SOL <-> stablecoin; the received side is the traded token
        direction = TradeDirection.SWAP
        if stable > 0:
            mint, amount = _largest({m: d for m, d in deltas.items() if m in STABLECOIN_MINTS})
        else:
            mint, amount = SOL_MINT, abs(sol)
    elif abs(stable) > _EPSILON:
        direction = TradeDirection.TRANSFER
        mint, amount = _largest({m: d for m, d in deltas.items() if m in STABLECOIN_MINTS})
    elif abs(sol) > _EPSILON:
        direction = TradeDirection.TRANSFER
        mint, amount = SOL_MINT, abs(sol)
    else:
        return None

    fee = 0.0
    if record.fee_lamports is not None and record.fee_payer in ("", wallet):
        fee = record.fee_lamports / LAMPORTS_PER_SOL

    if mint in STABLECOIN_MINTS:
        stable_usd: float | None = amount
    else:
        stable_usd = abs(stable) if abs(stable) > _EPSILON else None
    return _Draft(
        signature=record.signature,
        timestamp=datetime.fromtimestamp(record.timestamp, tz=timezone.utc),
        direction=direction,
        token_mint=mint,
        amount_raw=amount,
        stable_usd=stable_usd,
        sol_amount=abs(sol) if abs(sol) > _EPSILON else None,
        fee_paid=fee,
    )


def _usd_value(draft: _Draft, prices: dict[str, float | None]) -> float | None:
    if draft.stable_usd is not None:
        return draft.stable_usd
    if draft.token_mint == SOL_MINT:
        price = prices.get(SOL_MINT)
        return draft.amount_raw * price if price is not None else None
    if draft.sol_amount is not None and prices.get(SOL_MINT) is not None:
        return draft.sol_amount * prices[SOL_MINT]
    price = prices.get(draft.token_mint)
    if price is not None:
        return draft.amount_raw * price
    return None


class TransactionNormalizer:
    """
    RawRecord -> Trade conversion with category and USD enrichment.

    metadata: resolver used for categories; each lookup is bounded by metadata_timeout.
    prices: oracle for SOL and token USD prices. Both are optional; without them
    categories fall back to offline rules and amount_usd is only set from stable legs.
    """

    def __init__(
        self,
        metadata: TokenMetadataResolver | None = None,
        prices: PriceOracle | None = None,
        metadata_timeout: float = DEFAULT_METADATA_TIMEOUT,
    ) -> None:
        self._metadata = metadata
        self._prices = prices
        self._metadata_timeout = metadata_timeout

    async def _category(self, mint: str) -> str | None:
        if self._metadata is None:
            return categorize_token(mint)
        try:
            meta = await asyncio.wait_for(self._metadata.resolve(mint), timeout=self._metadata_timeout)
        except asyncio.TimeoutError:
            logger.warning("token_metadata_timeout", mint=mint, timeout_sec=self._metadata_timeout)
            return categorize_token(mint)
        except Exception as e:
            logger.warning("token_metadata_failed", mint=mint, error=str(e))
            return categorize_token(mint)
        if meta is None or meta.category is None:
            return categorize_token(mint)
        return meta.category

    async def _resolve_categories(self, mints: set[str]) -> dict[str, str | None]:
        ordered = sorted(mints)
        results = await asyncio.gather(*(self._category(m) for m in ordered))
        return dict(zip(ordered, results))

    async def _resolve_prices(self, drafts: list[_Draft]) -> dict[str, float | None]:
        wanted: set[str] = set()
        for d in drafts:
            if d.stable_usd is not None:
                continue
            if d.sol_amount is not None or d.token_mint == SOL_MINT:
                wanted.add(SOL_MINT)
            else:
                wanted.add(d.token_mint)
        if not wanted or self._prices is None:
            return {}
        try:
            return await self._prices.get_prices(wanted)
        except Exception as e:
            logger.warning("price_oracle_failed", mints=len(wanted), error=str(e))
            return {}

    async def normalize(self, records: Iterable[RawRecord | dict[str, Any]], wallet: str) -> list[Trade]:
        """Return the wallet's trades ordered by (timestamp, signature)."""
        latest: dict[str, RawRecord] = {}
        for record in parse_raw_records(records):
            latest[record.signature] = record

        drafts: list[_Draft] = []
        dropped_failed = 0
        for record in latest.values():
            if record.failed:
                dropped_failed += 1
                continue
            draft = draft_trade(record, wallet)
            if draft is not None:
                drafts.append(draft)

        categories = await self._resolve_categories({d.token_mint for d in drafts})
        prices = await self._resolve_prices(drafts)

        trades = [
            Trade(
                signature=d.signature,
                timestamp=d.timestamp,
                direction=d.direction,
                token_mint=d.token_mint,
                token_category=categories.get(d.token_mint),
                amount_raw=d.amount_raw,
                amount_usd=_usd_value(d, prices),
                fee_paid=d.fee_paid,
            )
            for d in drafts
        ]
        trades.sort(key=lambda t: (t.timestamp, t.signature))
        logger.info(
            "transactions_normalized",
            wallet_id=wallet[:16],
            records=len(latest),
            trades=len(trades),
            failed_dropped=dropped_failed,
            unpriced=sum(1 for t in trades if t.amount_usd is None),
            uncategorized=sum(1 for t in trades if t.token_category is None),
        )
        return trades
