"""
Analysis engine package: behavioral scoring for wallets.

Consumes normalized trades and current holdings and produces a WalletProfile:
headline scores, archetype, confidence and per-card analytics.
"""

from wallet_whisperer.analysis_engine.features import (
    TradeFeatures,
    extract_trade_features,
)
from wallet_whisperer.analysis_engine.models import (
    MODEL_VERSION,
    Archetype,
    Diversification,
    DiversificationStyle,
    ScoreName,
    SourceTier,
    WalletProfile,
)
from wallet_whisperer.analysis_engine.scorer import ScoringConfig, score

__all__ = [
    "MODEL_VERSION",
    "Archetype",
    "Diversification",
    "DiversificationStyle",
    "ScoreName",
    "ScoringConfig",
    "SourceTier",
    "TradeFeatures",
    "WalletProfile",
    "extract_trade_features",
    "score",
]
