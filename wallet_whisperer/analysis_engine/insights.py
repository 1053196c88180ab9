"""
Deterministic contradictions, behavioral flags and suggestions.

Derived only from sub-scores and features so the same profile always yields
the same strings. These feed the narrative layer of the product.
"""

from __future__ import annotations

from dataclasses import dataclass

from wallet_whisperer.analysis_engine.models import Archetype, Diversification

FLAG_CONVICTION_COLLAPSE = "high_conviction_collapse"
FLAG_EMOTIONAL_SIZING = "emotional_sizing"
FLAG_HIGH_FREQUENCY = "high_frequency_trading"
FLAG_FOMO_DOMINANT = "fomo_dominant"
FLAG_UNRESOLVED_EXPOSURE = "unresolved_exposure"
FLAG_INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class InsightInputs:
    scores: dict[str, int]
    sizing_consistency: int
    archetype: Archetype
    trades_per_day: float
    high_frequency: bool
    round_trip_count: int
    diversification: Diversification


def detect_contradictions(i: InsightInputs) -> list[str]:
    out: list[str] = []
    if i.scores["conviction"] > 80 and i.trades_per_day > 2:
        out.append("High conviction claimed despite frequent position changes")
    if i.archetype == Archetype.WHALE_PREMIUM_STRATEGIST and i.scores["fomo"] > 60:
        out.append("Premium strategy but FOMO-driven entries detected")
    if i.scores["fomo"] > 40 and i.scores["degen"] < 30:
        out.append("FOMO behavior inconsistent with conservative degen rating")
    if i.archetype == Archetype.WHALE_PREMIUM_STRATEGIST and i.diversification.token_count > 20:
        out.append("Whale classification conflicts with portfolio scatter")
    return out


def generate_flags(i: InsightInputs) -> list[str]:
    out: list[str] = []
    if i.round_trip_count > 5:
        out.append(FLAG_CONVICTION_COLLAPSE)
    if i.sizing_consistency < 30:
        out.append(FLAG_EMOTIONAL_SIZING)
    if i.high_frequency:
        out.append(FLAG_HIGH_FREQUENCY)
    if i.scores["fomo"] > 70:
        out.append(FLAG_FOMO_DOMINANT)
    if i.diversification.category_exposure.get("Unknown", 0.0) > 0.5:
        out.append(FLAG_UNRESOLVED_EXPOSURE)
    return out


def generate_suggestions(i: InsightInputs) -> list[str]:
    out: list[str] = []
    if i.scores["conviction"] < 50:
        out.append("Consider longer hold times or larger position sizing")
    if i.sizing_consistency < 40:
        out.append("Implement systematic position sizing rules")
    if i.scores["fomo"] > 50:
        out.append("Implement 24-hour cooling period for social-driven trades")
    exposure = i.diversification.category_exposure
    if exposure and max(exposure.values()) > 0.85:
        out.append("Consider diversifying across different market narratives")
    if i.scores["risk"] > 60:
        out.append("Reduce position sizes during high-risk periods")
    return out
