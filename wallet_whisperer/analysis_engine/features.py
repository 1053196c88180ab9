"""
Behavioral feature extraction from a wallet's normalized trades.

Converts an ordered list of Trade rows into a TradeFeatures vector: trade
frequency, FIFO holding periods, same-day round trips, spike entries, quick
entries, night activity and sizing statistics. No scoring logic; the scorer
turns these into 0-100 scores.
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

import numpy as np

from wallet_whisperer.ingestion.models import Trade, TradeDirection

SECONDS_PER_HOUR = 3600
HOURS_PER_DAY = 24

# Directions that open a position in trade.token_mint
ENTRY_DIRECTIONS = (TradeDirection.BUY, TradeDirection.SWAP)


@dataclass(frozen=True)
class HoldPeriod:
    """One FIFO-matched slice of a position."""

    mint: str
    hours: float
    weight: float
    """USD value of the matched slice when known, else 1.0."""
    closed: bool
    """False for lots still open at the newest trade timestamp."""


@dataclass
class TradeFeatures:
    """
    Behavioral feature vector over the observed trades.

    Rates are fractions in [0, 1]; None means the feature could not be
    computed from the supplied trades.
    """

    trade_count: int
    active_days: int
    trades_per_day: float
    """Trades per active (UTC) day."""
    unique_tokens: int
    hold_periods: list[HoldPeriod] = field(default_factory=list)
    weighted_hold_hours: float | None = None
    median_hold_hours: float | None = None
    round_trip_count: int = 0
    """Closed slices bought and sold within 24 hours."""
    round_trip_ratio: float = 0.0
    night_ratio: float = 0.0
    """Share of trades between 00:00 and 06:00 UTC."""
    entry_count: int = 0
    spike_entry_rate: float = 0.0
    quick_entry_rate: float = 0.0
    sized_usd: list[float] = field(default_factory=list)
    """Non-null amount_usd values in trade order."""
    total_fees_sol: float = 0.0

    @property
    def avg_trade_usd(self) -> float | None:
        if not self.sized_usd:
            return None
        return float(np.mean(self.sized_usd))

    @property
    def avg_fee_sol(self) -> float:
        return self.total_fees_sol / self.trade_count if self.trade_count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_count": self.trade_count,
            "active_days": self.active_days,
            "trades_per_day": self.trades_per_day,
            "unique_tokens": self.unique_tokens,
            "weighted_hold_hours": self.weighted_hold_hours,
            "median_hold_hours": self.median_hold_hours,
            "round_trip_count": self.round_trip_count,
            "round_trip_ratio": self.round_trip_ratio,
            "night_ratio": self.night_ratio,
            "entry_count": self.entry_count,
            "spike_entry_rate": self.spike_entry_rate,
            "quick_entry_rate": self.quick_entry_rate,
            "avg_trade_usd": self.avg_trade_usd,
            "total_fees_sol": self.total_fees_sol,
        }


def _hours_between(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds() / SECONDS_PER_HOUR)


def holding_periods(trades: list[Trade]) -> list[HoldPeriod]:
    """
    FIFO buy->sell matching per mint.

    Entries (buy, swap) open lots; sells consume the oldest lots first. Sells
    with no open lot (position opened before the observed window) are ignored.
    Lots still open are held until the newest trade timestamp.
    """
    if not trades:
        return []
    as_of = max(t.timestamp for t in trades)
    # mint -> deque of [remaining_amount, opened_at, unit_usd]
    lots: dict[str, deque[list[Any]]] = defaultdict(deque)
    periods: list[HoldPeriod] = []
    for t in trades:
        if t.direction in ENTRY_DIRECTIONS and t.amount_raw > 0:
            lots[t.token_mint].append([t.amount_raw, t.timestamp, t.unit_price_usd])
        elif t.direction == TradeDirection.SELL:
            remaining = t.amount_raw
            queue = lots.get(t.token_mint)
            while remaining > 0 and queue:
                lot = queue[0]
                matched = min(remaining, lot[0])
                periods.append(
                    HoldPeriod(
                        mint=t.token_mint,
                        hours=_hours_between(lot[1], t.timestamp),
                        weight=matched * lot[2] if lot[2] else 1.0,
                        closed=True,
                    )
                )
                lot[0] -= matched
                remaining -= matched
                if lot[0] <= 1e-12:
                    queue.popleft()
    for mint in sorted(lots):
        for amount, opened_at, unit_usd in lots[mint]:
            periods.append(
                HoldPeriod(
                    mint=mint,
                    hours=_hours_between(opened_at, as_of),
                    weight=amount * unit_usd if unit_usd else 1.0,
                    closed=False,
                )
            )
    return periods


def trades_per_active_day(trades: list[Trade]) -> tuple[float, int]:
    """(trades per distinct UTC date, number of distinct dates)."""
    days = {t.timestamp.date() for t in trades}
    if not days:
        return 0.0, 0
    return len(trades) / len(days), len(days)


def spike_entry_rate(
    trades: list[Trade],
    *,
    spike_threshold: float = 0.3,
    lookback_hours: float = 24.0,
) -> float:
    """
    Fraction of priced entries whose unit price is at least spike_threshold
    above the lowest unit price seen for that mint in the preceding lookback window.
    """
    seen: dict[str, list[tuple[datetime, float]]] = defaultdict(list)
    priced_entries = 0
    spikes = 0
    for t in trades:
        price = t.unit_price_usd
        if price is None:
            continue
        if t.direction in ENTRY_DIRECTIONS:
            priced_entries += 1
            window = [
                p for ts, p in seen[t.token_mint]
                if _hours_between(ts, t.timestamp) <= lookback_hours
            ]
            if window:
                low = min(window)
                if low > 0 and price >= low * (1 + spike_threshold):
                    spikes += 1
        seen[t.token_mint].append((t.timestamp, price))
    return spikes / priced_entries if priced_entries else 0.0


def quick_entry_rate(trades: list[Trade], *, quick_entry_minutes: float = 30.0) -> float:
    """Fraction of entries made within quick_entry_minutes of the previous trade."""
    entries = 0
    quick = 0
    previous: datetime | None = None
    for t in trades:
        if t.direction in ENTRY_DIRECTIONS:
            entries += 1
            if previous is not None and _hours_between(previous, t.timestamp) * 60 <= quick_entry_minutes:
                quick += 1
        previous = t.timestamp
    return quick / entries if entries else 0.0


def night_trade_ratio(trades: list[Trade], night_hours: Iterable[int] = range(0, 6)) -> float:
    if not trades:
        return 0.0
    hours = set(night_hours)
    return sum(1 for t in trades if t.timestamp.hour in hours) / len(trades)


def _weighted_hold_hours(periods: list[HoldPeriod]) -> float | None:
    if not periods:
        return None
    hours = np.array([p.hours for p in periods], dtype=float)
    weights = np.array([p.weight for p in periods], dtype=float)
    if weights.sum() <= 0:
        return float(hours.mean())
    return float(np.average(hours, weights=weights))


def extract_trade_features(
    trades: list[Trade],
    *,
    spike_threshold: float = 0.3,
    spike_lookback_hours: float = 24.0,
    quick_entry_minutes: float = 30.0,
) -> TradeFeatures:
    """
    Build the feature vector for a wallet's trades.

    Trades are re-sorted by (timestamp, signature) so callers may pass any order
    and get identical features.

    Args:
        trades: Normalized trades for a single wallet.
        spike_threshold: Relative price rise over the window minimum that marks a spike entry.
        spike_lookback_hours: Window used to find the minimum price.
        quick_entry_minutes: Max gap to the previous trade for an entry to count as quick.
    """
    ordered = sorted(trades, key=lambda t: (t.timestamp, t.signature))
    tpd, active_days = trades_per_active_day(ordered)
    periods = holding_periods(ordered)
    closed = [p for p in periods if p.closed]
    round_trips = sum(1 for p in closed if p.hours < HOURS_PER_DAY)
    return TradeFeatures(
        trade_count=len(ordered),
        active_days=active_days,
        trades_per_day=tpd,
        unique_tokens=len({t.token_mint for t in ordered}),
        hold_periods=periods,
        weighted_hold_hours=_weighted_hold_hours(periods),
        median_hold_hours=float(np.median([p.hours for p in periods])) if periods else None,
        round_trip_count=round_trips,
        round_trip_ratio=round_trips / len(closed) if closed else 0.0,
        night_ratio=night_trade_ratio(ordered),
        entry_count=sum(1 for t in ordered if t.direction in ENTRY_DIRECTIONS),
        spike_entry_rate=spike_entry_rate(
            ordered, spike_threshold=spike_threshold, lookback_hours=spike_lookback_hours
        ),
        quick_entry_rate=quick_entry_rate(ordered, quick_entry_minutes=quick_entry_minutes),
        sized_usd=[t.amount_usd for t in ordered if t.amount_usd is not None],
        total_fees_sol=sum(t.fee_paid for t in ordered),
    )
