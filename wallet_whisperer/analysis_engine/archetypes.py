"""
Rule-based archetype classification.

Each rule scores the wallet 0-100 from sub-scores and features and declares
the minimum sample it needs. The highest-scoring eligible rule wins; ties go
to the rule with the larger min_trades, then to declaration order. Below the
confidence threshold the label is Insufficient Data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from wallet_whisperer.analysis_engine.models import Archetype

WHALE_TRADE_USD = 10_000.0
PREMIUM_FEE_SOL = 0.001
SWING_HOLD_HOURS = 7 * 24.0
DAY_TRADE_HOLD_HOURS = 24.0


@dataclass(frozen=True)
class ArchetypeInputs:
    """Everything the rules look at; built by the scorer."""

    scores: dict[str, int]
    trade_count: int
    trades_per_day: float
    high_frequency_threshold: float
    median_hold_hours: float | None
    avg_trade_usd: float | None
    avg_fee_sol: float
    token_count: int


@dataclass(frozen=True)
class ArchetypeRule:
    archetype: Archetype
    min_trades: int
    score: Callable[[ArchetypeInputs], float]


def _frequency(i: ArchetypeInputs) -> float:
    if i.high_frequency_threshold <= 0:
        return 0.0
    return min(i.trades_per_day / i.high_frequency_threshold, 1.0)


def _whale_score(i: ArchetypeInputs) -> float:
    size = min((i.avg_trade_usd or 0.0) / WHALE_TRADE_USD, 1.0)
    premium = min(i.avg_fee_sol / PREMIUM_FEE_SOL, 1.0)
    return 100 * (0.7 * size + 0.3 * premium)


def _diamond_hands_score(i: ArchetypeInputs) -> float:
    return 0.5 * i.scores["patience"] + 0.5 * i.scores["conviction"]


def _degen_score(i: ArchetypeInputs) -> float:
    return float(i.scores["degen"])


def _day_trader_score(i: ArchetypeInputs) -> float:
    if i.median_hold_hours is None:
        short_holds = 0.0
    else:
        short_holds = max(0.0, 1 - i.median_hold_hours / DAY_TRADE_HOLD_HOURS)
    return 100 * (0.5 * _frequency(i) + 0.5 * short_holds)


def _swing_trader_score(i: ArchetypeInputs) -> float:
    if i.median_hold_hours is None:
        return 0.0
    hold_fit = max(0.0, 1 - abs(i.median_hold_hours - SWING_HOLD_HOURS) / SWING_HOLD_HOURS)
    moderate_activity = max(0.0, 1 - abs(i.trade_count - 50) / 50)
    return 100 * (0.6 * hold_fit + 0.4 * moderate_activity)


def _fomo_chaser_score(i: ArchetypeInputs) -> float:
    return float(i.scores["fomo"])


def _active_trader_score(i: ArchetypeInputs) -> float:
    return 35 + 30 * _frequency(i)


DEFAULT_RULES: tuple[ArchetypeRule, ...] = (
    ArchetypeRule(Archetype.WHALE_PREMIUM_STRATEGIST, 20, _whale_score),
    ArchetypeRule(Archetype.DIAMOND_HANDS, 10, _diamond_hands_score),
    ArchetypeRule(Archetype.DEGEN_HUNTER, 15, _degen_score),
    ArchetypeRule(Archetype.DAY_TRADER, 30, _day_trader_score),
    ArchetypeRule(Archetype.SWING_TRADER, 20, _swing_trader_score),
    ArchetypeRule(Archetype.FOMO_CHASER, 15, _fomo_chaser_score),
    ArchetypeRule(Archetype.ACTIVE_TRADER, 10, _active_trader_score),
)


def rank_archetypes(
    inputs: ArchetypeInputs,
    rules: tuple[ArchetypeRule, ...] = DEFAULT_RULES,
) -> list[tuple[Archetype, int]]:
    """Eligible rules with their rounded scores, best first (tie-break applied)."""
    scored = [
        (round(max(0.0, min(100.0, rule.score(inputs)))), rule.min_trades, idx, rule.archetype)
        for idx, rule in enumerate(rules)
        if inputs.trade_count >= rule.min_trades
    ]
    scored.sort(key=lambda s: (-s[0], -s[1], s[2]))
    return [(archetype, score) for score, _, _, archetype in scored]


def classify_archetype(
    inputs: ArchetypeInputs,
    confidence: float,
    *,
    min_confidence: float,
    rules: tuple[ArchetypeRule, ...] = DEFAULT_RULES,
) -> Archetype:
    if confidence < min_confidence:
        return Archetype.INSUFFICIENT_DATA
    ranked = rank_archetypes(inputs, rules)
    if not ranked:
        return Archetype.INSUFFICIENT_DATA
    return ranked[0][0]
