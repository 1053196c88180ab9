"""
WalletProfile and the closed label sets it carries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Bump when scoring rules change; profiles from another version are stale.
MODEL_VERSION = "whisperer-v1"

NEUTRAL_SCORE = 50


class SourceTier(str, Enum):
    HOT = "hot"
    DURABLE = "durable"
    FRESH = "fresh"


class ScoreName(str, Enum):
    RISK = "risk"
    FOMO = "fomo"
    PATIENCE = "patience"
    CONVICTION = "conviction"
    DEGEN = "degen"
    WHISPERER = "whisperer"


class Archetype(str, Enum):
    WHALE_PREMIUM_STRATEGIST = "Whale Premium Strategist"
    DIAMOND_HANDS = "Diamond Hands"
    DEGEN_HUNTER = "Degen Hunter"
    DAY_TRADER = "Day Trader"
    SWING_TRADER = "Swing Trader"
    FOMO_CHASER = "FOMO Chaser"
    ACTIVE_TRADER = "Active Trader"
    INSUFFICIENT_DATA = "Insufficient Data"


class DiversificationStyle(str, Enum):
    CONCENTRATED = "concentrated"
    BALANCED = "balanced"
    OVER_DIVERSIFIED = "over-diversified"


@dataclass(frozen=True)
class Diversification:
    style: DiversificationStyle
    top3_share: float
    """Share of USD exposure held by the three largest categories (0-1)."""
    token_count: int
    category_exposure: dict[str, float] = field(default_factory=dict)
    """Category -> share of USD exposure; unresolved categories are under Unknown."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "style": self.style.value,
            "top3_share": self.top3_share,
            "token_count": self.token_count,
            "category_exposure": dict(self.category_exposure),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Diversification":
        return cls(
            style=DiversificationStyle(data["style"]),
            top3_share=float(data.get("top3_share") or 0.0),
            token_count=int(data.get("token_count") or 0),
            category_exposure={k: float(v) for k, v in (data.get("category_exposure") or {}).items()},
        )


@dataclass(frozen=True)
class WalletProfile:
    """
    Computed behavioral profile for one wallet.

    source_tier is diagnostic (where this copy was served from) and is not
    persisted as part of the cached value.
    """

    wallet_address: str
    computed_at: datetime
    scores: dict[str, int]
    """ScoreName value -> integer score in [0, 100]."""
    archetype: Archetype
    trade_count: int
    confidence: float
    """0-1 reliability given sample size."""
    model_version: str = MODEL_VERSION
    sizing_consistency: int = NEUTRAL_SCORE
    diversification: Diversification | None = None
    trades_per_day: float = 0.0
    high_frequency: bool = False
    spike_entry_rate: float = 0.0
    median_hold_hours: float | None = None
    contradictions: tuple[str, ...] = ()
    flags: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    source_tier: SourceTier = field(default=SourceTier.FRESH, compare=False)

    def score(self, name: ScoreName | str) -> int:
        key = name.value if isinstance(name, ScoreName) else name
        return self.scores[key]

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet_address": self.wallet_address,
            "computed_at": self.computed_at.isoformat(),
            "scores": dict(self.scores),
            "archetype": self.archetype.value,
            "trade_count": self.trade_count,
            "confidence": self.confidence,
            "model_version": self.model_version,
            "sizing_consistency": self.sizing_consistency,
            "diversification": self.diversification.to_dict() if self.diversification else None,
            "trades_per_day": self.trades_per_day,
            "high_frequency": self.high_frequency,
            "spike_entry_rate": self.spike_entry_rate,
            "median_hold_hours": self.median_hold_hours,
            "contradictions": list(self.contradictions),
            "flags": list(self.flags),
            "suggestions": list(self.suggestions),
            "source_tier": self.source_tier.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WalletProfile":
        computed_at = datetime.fromisoformat(data["computed_at"])
        if computed_at.tzinfo is None:
            computed_at = computed_at.replace(tzinfo=timezone.utc)
        div = data.get("diversification")
        hold = data.get("median_hold_hours")
        return cls(
            wallet_address=data["wallet_address"],
            computed_at=computed_at,
            scores={k: int(v) for k, v in (data.get("scores") or {}).items()},
            archetype=Archetype(data["archetype"]),
            trade_count=int(data.get("trade_count") or 0),
            confidence=float(data.get("confidence") or 0.0),
            model_version=data.get("model_version") or "",
            sizing_consistency=int(data.get("sizing_consistency", NEUTRAL_SCORE)),
            diversification=Diversification.from_dict(div) if div else None,
            trades_per_day=float(data.get("trades_per_day") or 0.0),
            high_frequency=bool(data.get("high_frequency")),
            spike_entry_rate=float(data.get("spike_entry_rate") or 0.0),
            median_hold_hours=float(hold) if hold is not None else None,
            contradictions=tuple(data.get("contradictions") or ()),
            flags=tuple(data.get("flags") or ()),
            suggestions=tuple(data.get("suggestions") or ()),
            source_tier=SourceTier(data.get("source_tier") or SourceTier.FRESH.value),
        )
