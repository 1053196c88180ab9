"""
Behavioral score computation: trades + holdings -> WalletProfile.

Pure and deterministic; no I/O. Every sub-score is a separate function so it
can be tested on its own. Thresholds live in ScoringConfig.

Small samples: below min_trades the headline scores are all 50, confidence is
capped at low_confidence_cap and the archetype is Insufficient Data.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

import numpy as np

from wallet_whisperer.analysis_engine.archetypes import ArchetypeInputs, classify_archetype
from wallet_whisperer.analysis_engine.features import TradeFeatures, extract_trade_features
from wallet_whisperer.analysis_engine.insights import (
    FLAG_INSUFFICIENT_DATA,
    InsightInputs,
    detect_contradictions,
    generate_flags,
    generate_suggestions,
)
from wallet_whisperer.analysis_engine.models import (
    MODEL_VERSION,
    NEUTRAL_SCORE,
    Archetype,
    Diversification,
    DiversificationStyle,
    ScoreName,
    WalletProfile,
)
from wallet_whisperer.core.exceptions import ComputeFailed
from wallet_whisperer.ingestion.models import Holdings, Trade
from wallet_whisperer.ingestion.token_metadata import CATEGORY_MEME, CATEGORY_UNKNOWN
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

# fomo > FOMO_DOMINANT requires degen >= DEGEN_FLOOR
FOMO_DOMINANT = 60
DEGEN_FLOOR = 20


@dataclass
class ScoringConfig:
    """
    Thresholds and weights for scoring. Product opinion, not physics: tune freely
    as long as the validated bounds hold.
    """

    # Sample size
    min_trades: int = 10
    low_confidence_cap: float = 0.2
    saturation_trades: int = 100
    archetype_min_confidence: float = 0.1

    # Sizing: coefficient of variation at which consistency bottoms out
    cv_ceiling: float = 2.0

    # Frequency / conviction
    high_frequency_trades_per_day: float = 10.0
    round_trip_ratio_threshold: float = 0.5
    high_frequency_conviction_cap: int = 70
    conviction_hold_target_hours: float = 14 * 24.0
    patience_target_hours: float = 30 * 24.0

    # Diversification
    concentrated_top3_share: float = 0.8
    over_diversified_min_tokens: int = 20
    over_diversified_top3_share: float = 0.5

    # FOMO / degen
    spike_threshold: float = 0.3
    spike_lookback_hours: float = 24.0
    quick_entry_minutes: float = 30.0
    fomo_degen_gap: int = 40

    whisperer_weights: dict[str, float] = field(
        default_factory=lambda: {
            "conviction": 0.25,
            "patience": 0.2,
            "sizing": 0.2,
            "calm": 0.15,
            "safety": 0.2,
        }
    )

    def __post_init__(self) -> None:
        if self.min_trades < 1:
            raise ValueError("min_trades must be >= 1")
        if self.saturation_trades < self.min_trades:
            raise ValueError("saturation_trades must be >= min_trades")
        if not 0.0 <= self.low_confidence_cap <= 1.0:
            raise ValueError("low_confidence_cap must be within [0, 1]")
        if self.high_frequency_conviction_cap > 70:
            raise ValueError("high_frequency_conviction_cap must be <= 70")
        if self.fomo_degen_gap > FOMO_DOMINANT - DEGEN_FLOOR:
            raise ValueError(f"fomo_degen_gap must be <= {FOMO_DOMINANT - DEGEN_FLOOR}")
        if self.cv_ceiling <= 0 or self.high_frequency_trades_per_day <= 0:
            raise ValueError("cv_ceiling and high_frequency_trades_per_day must be > 0")


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _to_score(value: float) -> int:
    return int(round(_clamp(value)))


def confidence_for(trade_count: int, config: ScoringConfig) -> float:
    """min(1, n / saturation); capped at low_confidence_cap below min_trades."""
    conf = min(1.0, trade_count / config.saturation_trades)
    if trade_count < config.min_trades:
        conf = min(conf, config.low_confidence_cap)
    return round(conf, 4)


def position_sizing_consistency(sizes: Iterable[float], config: ScoringConfig) -> int:
    """
    100 * (1 - min(cv / cv_ceiling, 1)) over USD trade sizes.
    Fewer than two sized trades (or a zero mean) gives the neutral 50.
    """
    arr = np.array([s for s in sizes if s is not None], dtype=float)
    if arr.size < 2:
        return NEUTRAL_SCORE
    mean = float(arr.mean())
    if mean <= 0:
        return NEUTRAL_SCORE
    cv = float(arr.std()) / mean
    return _to_score(100 * (1 - min(cv / config.cv_ceiling, 1.0)))


def is_high_frequency(trades_per_day: float, round_trip_ratio: float, config: ScoringConfig) -> bool:
    return (
        trades_per_day > config.high_frequency_trades_per_day
        or round_trip_ratio > config.round_trip_ratio_threshold
    )


def conviction_score(
    weighted_hold_hours: float | None,
    top3_share: float,
    trades_per_day: float,
    round_trip_ratio: float,
    config: ScoringConfig,
) -> int:
    """
    Holding duration and concentration, multiplied by a frequency penalty.
    High-frequency wallets are capped at high_frequency_conviction_cap.
    """
    if weighted_hold_hours is None:
        hold = 0.5
    else:
        hold = min(weighted_hold_hours / config.conviction_hold_target_hours, 1.0)
    raw = 100 * (0.6 * hold + 0.4 * _clamp(top3_share, 0.0, 1.0))
    frequency = min(trades_per_day / config.high_frequency_trades_per_day, 1.0)
    penalty = max(0.2, 1 - 0.4 * frequency - 0.4 * round_trip_ratio)
    value = raw * penalty
    if is_high_frequency(trades_per_day, round_trip_ratio, config):
        value = min(value, config.high_frequency_conviction_cap)
    return _to_score(value)


def _style(top3_share: float, token_count: int, has_exposure: bool, config: ScoringConfig) -> DiversificationStyle:
    if not has_exposure:
        return DiversificationStyle.BALANCED
    if top3_share >= config.concentrated_top3_share:
        return DiversificationStyle.CONCENTRATED
    if token_count >= config.over_diversified_min_tokens and top3_share < config.over_diversified_top3_share:
        return DiversificationStyle.OVER_DIVERSIFIED
    return DiversificationStyle.BALANCED


def diversification(holdings: Holdings, trades: list[Trade], config: ScoringConfig) -> Diversification:
    """
    USD exposure per category, not token count.

    Uses holdings values; when holdings carry no USD value, falls back to traded
    USD volume. Tokens without a category go to the Unknown bucket.
    """
    exposure: dict[str, float] = {}
    mints: set[str] = set()
    for h in sorted(holdings.tokens, key=lambda h: h.mint):
        mints.add(h.mint)
        if h.usd_value is not None and h.usd_value > 0:
            key = h.category or CATEGORY_UNKNOWN
            exposure[key] = exposure.get(key, 0.0) + h.usd_value
    if not exposure:
        mints = set()
        for t in sorted(trades, key=lambda t: (t.timestamp, t.signature)):
            mints.add(t.token_mint)
            if t.amount_usd is not None and t.amount_usd > 0:
                key = t.token_category or CATEGORY_UNKNOWN
                exposure[key] = exposure.get(key, 0.0) + t.amount_usd
    total = sum(exposure[k] for k in sorted(exposure))
    shares = {k: round(exposure[k] / total, 6) for k in sorted(exposure)} if total > 0 else {}
    top3 = round(sum(sorted(shares.values(), reverse=True)[:3]), 6)
    return Diversification(
        style=_style(top3, len(mints), bool(shares), config),
        top3_share=top3,
        token_count=len(mints),
        category_exposure=shares,
    )


def fomo_score(spike_rate: float, quick_rate: float) -> int:
    return _to_score(100 * (0.65 * spike_rate + 0.35 * quick_rate))


def degen_score(
    spike_rate: float,
    meme_share: float,
    night_ratio: float,
    trades_per_day: float,
    fomo: int,
    config: ScoringConfig,
) -> int:
    """
    Shares the spike-entry feature with FOMO and is floored at fomo - fomo_degen_gap,
    so a FOMO-dominant wallet is never rated very low degen.
    """
    frequency = min(trades_per_day / config.high_frequency_trades_per_day, 1.0)
    raw = 100 * (0.35 * spike_rate + 0.25 * meme_share + 0.15 * night_ratio + 0.25 * frequency)
    return _to_score(max(raw, fomo - config.fomo_degen_gap))


def risk_score(speculative_share: float, sizing: int, degen: int) -> int:
    return _to_score(40 * speculative_share + 0.3 * (100 - sizing) + 0.3 * degen)


def patience_score(median_hold_hours: float | None, config: ScoringConfig) -> int:
    """Log-scaled median holding time; hours == patience_target_hours scores 100."""
    if median_hold_hours is None:
        return NEUTRAL_SCORE
    scaled = math.log1p(median_hold_hours) / math.log1p(config.patience_target_hours)
    return _to_score(100 * min(scaled, 1.0))


def whisperer_score(scores: dict[str, int], sizing: int, config: ScoringConfig) -> int:
    w = config.whisperer_weights
    parts = {
        "conviction": scores[ScoreName.CONVICTION.value],
        "patience": scores[ScoreName.PATIENCE.value],
        "sizing": sizing,
        "calm": 100 - scores[ScoreName.FOMO.value],
        "safety": 100 - scores[ScoreName.RISK.value],
    }
    total_weight = sum(w.get(k, 0.0) for k in parts)
    if total_weight <= 0:
        return NEUTRAL_SCORE
    return _to_score(sum(parts[k] * w.get(k, 0.0) for k in parts) / total_weight)


def _check_invariants(scores: dict[str, int], high_frequency: bool, confidence: float, config: ScoringConfig) -> None:
    for name in ScoreName:
        value = scores.get(name.value)
        if value is None or not 0 <= value <= 100:
            raise ComputeFailed("score out of range", score=name.value, value=value)
    if scores[ScoreName.FOMO.value] > FOMO_DOMINANT and scores[ScoreName.DEGEN.value] < DEGEN_FLOOR:
        raise ComputeFailed("fomo/degen invariant violated", fomo=scores["fomo"], degen=scores["degen"])
    if high_frequency and scores[ScoreName.CONVICTION.value] > config.high_frequency_conviction_cap:
        raise ComputeFailed("conviction above cap for high-frequency wallet", conviction=scores["conviction"])
    if not 0.0 <= confidence <= 1.0:
        raise ComputeFailed("confidence out of range", confidence=confidence)


def _headline_scores(features: TradeFeatures, div: Diversification, sizing: int, config: ScoringConfig) -> dict[str, int]:
    conviction = conviction_score(
        features.weighted_hold_hours,
        div.top3_share,
        features.trades_per_day,
        features.round_trip_ratio,
        config,
    )
    fomo = fomo_score(features.spike_entry_rate, features.quick_entry_rate)
    degen = degen_score(
        features.spike_entry_rate,
        div.category_exposure.get(CATEGORY_MEME, 0.0),
        features.night_ratio,
        features.trades_per_day,
        fomo,
        config,
    )
    speculative = div.category_exposure.get(CATEGORY_MEME, 0.0) + div.category_exposure.get(CATEGORY_UNKNOWN, 0.0)
    scores = {
        ScoreName.RISK.value: risk_score(speculative, sizing, degen),
        ScoreName.FOMO.value: fomo,
        ScoreName.PATIENCE.value: patience_score(features.median_hold_hours, config),
        ScoreName.CONVICTION.value: conviction,
        ScoreName.DEGEN.value: degen,
    }
    scores[ScoreName.WHISPERER.value] = whisperer_score(scores, sizing, config)
    return scores


def score(
    trades: list[Trade],
    holdings: Holdings | None,
    *,
    wallet_address: str,
    config: ScoringConfig | None = None,
    computed_at: datetime | None = None,
) -> WalletProfile:
    """
    Compute the behavioral profile for one wallet.

    Raises ComputeFailed when holdings are missing or a score invariant breaks;
    never returns a partially filled profile.
    """
    if holdings is None:
        raise ComputeFailed("holdings unavailable", wallet=wallet_address)
    config = config or ScoringConfig()
    features = extract_trade_features(
        trades,
        spike_threshold=config.spike_threshold,
        spike_lookback_hours=config.spike_lookback_hours,
        quick_entry_minutes=config.quick_entry_minutes,
    )
    div = diversification(holdings, trades, config)
    sizing = position_sizing_consistency(features.sized_usd, config)
    high_frequency = is_high_frequency(features.trades_per_day, features.round_trip_ratio, config)
    confidence = confidence_for(features.trade_count, config)

    if features.trade_count < config.min_trades:
        scores = {name.value: NEUTRAL_SCORE for name in ScoreName}
        archetype = Archetype.INSUFFICIENT_DATA
        contradictions: list[str] = []
        flags = [FLAG_INSUFFICIENT_DATA]
        suggestions: list[str] = []
    else:
        scores = _headline_scores(features, div, sizing, config)
        archetype = classify_archetype(
            ArchetypeInputs(
                scores=scores,
                trade_count=features.trade_count,
                trades_per_day=features.trades_per_day,
                high_frequency_threshold=config.high_frequency_trades_per_day,
                median_hold_hours=features.median_hold_hours,
                avg_trade_usd=features.avg_trade_usd,
                avg_fee_sol=features.avg_fee_sol,
                token_count=div.token_count,
            ),
            confidence,
            min_confidence=config.archetype_min_confidence,
        )
        insight_inputs = InsightInputs(
            scores=scores,
            sizing_consistency=sizing,
            archetype=archetype,
            trades_per_day=features.trades_per_day,
            high_frequency=high_frequency,
            round_trip_count=features.round_trip_count,
            diversification=div,
        )
        contradictions = detect_contradictions(insight_inputs)
        flags = generate_flags(insight_inputs)
        suggestions = generate_suggestions(insight_inputs)

    _check_invariants(scores, high_frequency, confidence, config)
    profile = WalletProfile(
        wallet_address=wallet_address,
        computed_at=computed_at or datetime.now(timezone.utc),
        scores=scores,
        archetype=archetype,
        trade_count=features.trade_count,
        confidence=confidence,
        model_version=MODEL_VERSION,
        sizing_consistency=sizing,
        diversification=div,
        trades_per_day=round(features.trades_per_day, 4),
        high_frequency=high_frequency,
        spike_entry_rate=round(features.spike_entry_rate, 4),
        median_hold_hours=round(features.median_hold_hours, 4) if features.median_hold_hours is not None else None,
        contradictions=tuple(contradictions),
        flags=tuple(flags),
        suggestions=tuple(suggestions),
    )
    logger.debug(
        "wallet_scored",
        wallet_id=wallet_address[:16],
        trade_count=profile.trade_count,
        archetype=archetype.value,
        confidence=confidence,
    )
    return profile
