"""
TTL policy for cached profiles.

Fields fall into classes with their own TTL: market (price-dependent, short)
and behavioral (classification, long). A profile is fresh for the minimum TTL
of the classes it carries, whichever tier serves it. durable_max_ttl only bounds
how long a durable row is kept.

A profile from another scoring model version is stale unless that version has
an explicit override, in which case the override caps its TTL.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from wallet_whisperer.analysis_engine.models import MODEL_VERSION, WalletProfile
from wallet_whisperer.cache.entry import CacheEntry

FIELD_CLASS_MARKET = "market"
FIELD_CLASS_BEHAVIORAL = "behavioral"

# Profile field -> TTL class
FIELD_CLASSES: dict[str, str] = {
    "diversification": FIELD_CLASS_MARKET,
    "scores.risk": FIELD_CLASS_BEHAVIORAL,
    "scores.fomo": FIELD_CLASS_BEHAVIORAL,
    "scores.patience": FIELD_CLASS_BEHAVIORAL,
    "scores.conviction": FIELD_CLASS_BEHAVIORAL,
    "scores.degen": FIELD_CLASS_BEHAVIORAL,
    "scores.whisperer": FIELD_CLASS_BEHAVIORAL,
    "archetype": FIELD_CLASS_BEHAVIORAL,
    "sizing_consistency": FIELD_CLASS_BEHAVIORAL,
    "trades_per_day": FIELD_CLASS_BEHAVIORAL,
    "spike_entry_rate": FIELD_CLASS_BEHAVIORAL,
}


class TtlPolicy(Protocol):
    def hot_ttl(self, profile: WalletProfile) -> float: ...

    def durable_ttl(self, profile: WalletProfile) -> float: ...

    def is_fresh(self, entry: CacheEntry[WalletProfile], now: float) -> bool: ...

    def remaining(self, entry: CacheEntry[WalletProfile], now: float) -> float: ...


def carried_fields(profile: WalletProfile) -> list[str]:
    """Fields from FIELD_CLASSES that hold real data in this profile."""
    fields = ["archetype", "sizing_consistency", "trades_per_day", "spike_entry_rate"]
    fields += [f"scores.{name}" for name in sorted(profile.scores)]
    if profile.diversification is not None and profile.diversification.category_exposure:
        fields.append("diversification")
    return [f for f in fields if f in FIELD_CLASSES]


@dataclass
class FieldTtlPolicy:
    """
    market_ttl: seconds for price-dependent fields.
    behavioral_ttl: seconds for classification fields.
    durable_max_ttl: seconds a durable row is retained; freshness never exceeds max_age.
    version_overrides: model_version -> max TTL; also admits older versions.
    """

    market_ttl: float = 600.0
    behavioral_ttl: float = 6 * 3600.0
    durable_max_ttl: float = 24 * 3600.0
    version_overrides: dict[str, float] = field(default_factory=dict)
    current_version: str = MODEL_VERSION

    def class_ttl(self, field_class: str) -> float:
        if field_class == FIELD_CLASS_MARKET:
            return self.market_ttl
        return self.behavioral_ttl

    def _cap(self, profile: WalletProfile, ttl: float) -> float:
        override = self.version_overrides.get(profile.model_version)
        return min(ttl, override) if override is not None else ttl

    def max_age(self, profile: WalletProfile) -> float:
        """Oldest a served copy of this profile may be, whichever tier holds it."""
        classes = {FIELD_CLASSES[f] for f in carried_fields(profile)} or {FIELD_CLASS_BEHAVIORAL}
        return self._cap(profile, min(self.class_ttl(c) for c in classes))

    def hot_ttl(self, profile: WalletProfile) -> float:
        return self.max_age(profile)

    def durable_ttl(self, profile: WalletProfile) -> float:
        return self._cap(profile, self.durable_max_ttl)

    def remaining(self, entry: CacheEntry[WalletProfile], now: float) -> float:
        """Seconds until the entry goes stale; 0.0 for stale entries and unknown model versions."""
        version = entry.value.model_version
        if version != self.current_version and version not in self.version_overrides:
            return 0.0
        ttl = min(entry.ttl, self.max_age(entry.value))
        return max(0.0, entry.stored_at + ttl - now)

    def is_fresh(self, entry: CacheEntry[WalletProfile], now: float) -> bool:
        return self.remaining(entry, now) > 0
