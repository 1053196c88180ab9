"""
Pytest tests for the scoring engine: sub-scores, invariants, archetypes and small-sample handling.

All inputs are built in memory; scoring is pure so no mocks are needed.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from wallet_whisperer.analysis_engine.archetypes import ArchetypeInputs, ArchetypeRule, rank_archetypes
from wallet_whisperer.analysis_engine.models import Archetype, DiversificationStyle, ScoreName
from wallet_whisperer.analysis_engine.scorer import (
    ScoringConfig,
    conviction_score,
    degen_score,
    diversification,
    patience_score,
    position_sizing_consistency,
    score,
)
from wallet_whisperer.core.exceptions import ComputeFailed
from wallet_whisperer.ingestion.models import Holdings, TokenHolding, TradeDirection

VALID_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
COMPUTED_AT = datetime(2024, 9, 1, tzinfo=timezone.utc)
CATEGORIES = ("Meme", "DeFi", "Utility", "Gaming", "Infra", "Governance", "NFT")


def _round_trips(trade, n_pairs: int, *, spacing: timedelta, hold: timedelta, mints: int = 25, usd: float = 50_000.0):
    """n_pairs buy/sell pairs cycling over `mints` tokens."""
    trades = []
    for k in range(n_pairs):
        mint = f"Mint{k % mints:02d}"
        category = CATEGORIES[k % mints % len(CATEGORIES)]
        opened = T0 + k * spacing
        trades.append(trade(f"b{k:03d}", opened, mint=mint, category=category, amount=1000.0, usd=usd))
        trades.append(
            trade(
                f"s{k:03d}",
                opened + hold,
                direction=TradeDirection.SELL,
                mint=mint,
                category=category,
                amount=1000.0,
                usd=usd * 1.02,
            )
        )
    return trades


def _concentrated_holdings() -> Holdings:
    """25 tokens; three of them carry 95% of the USD exposure."""
    tokens = [
        TokenHolding(mint="Mint00", amount=1.0, usd_value=50_000.0, category="Meme"),
        TokenHolding(mint="Mint01", amount=1.0, usd_value=30_000.0, category="DeFi"),
        TokenHolding(mint="Mint02", amount=1.0, usd_value=15_000.0, category="Utility"),
    ]
    for i in range(3, 25):
        tokens.append(
            TokenHolding(mint=f"Mint{i:02d}", amount=1.0, usd_value=5_000.0 / 22, category=CATEGORIES[3 + i % 4])
        )
    return Holdings(wallet=VALID_WALLET, tokens=tuple(tokens))


# --- Determinism and invariants ---


def test_score_is_deterministic(trade):
    """Same inputs twice (and in a different order) give identical scores."""
    trades = _round_trips(trade, 30, spacing=timedelta(hours=7), hold=timedelta(hours=40))
    holdings = _concentrated_holdings()

    a = score(trades, holdings, wallet_address=VALID_WALLET, computed_at=COMPUTED_AT)
    b = score(trades, holdings, wallet_address=VALID_WALLET, computed_at=COMPUTED_AT)
    shuffled = list(trades)
    random.Random(3).shuffle(shuffled)
    c = score(shuffled, holdings, wallet_address=VALID_WALLET, computed_at=COMPUTED_AT)

    assert a.scores == b.scores == c.scores
    assert a == b == c


def test_invariants_hold_across_generated_wallets(trade):
    """fomo > 60 never with degen < 20; high-frequency wallets never above conviction 70."""
    rng = random.Random(42)
    config = ScoringConfig()
    for w in range(40):
        trades = []
        at = T0
        for k in range(rng.randint(0, 120)):
            at += timedelta(minutes=rng.choice([2, 10, 45, 240, 1440, 4000]))
            price = rng.uniform(0.5, 3.0)
            amount = rng.uniform(10, 5000)
            trades.append(
                trade(
                    f"w{w}t{k}",
                    at,
                    direction=rng.choice([TradeDirection.BUY, TradeDirection.SELL, TradeDirection.SWAP]),
                    mint=f"Mint{rng.randint(0, 8)}",
                    category=rng.choice(CATEGORIES + (None,)),
                    amount=amount,
                    usd=amount * price if rng.random() > 0.1 else None,
                )
            )
        holdings = Holdings(
            wallet=VALID_WALLET,
            tokens=tuple(
                TokenHolding(mint=f"Mint{i}", amount=1.0, usd_value=rng.uniform(0, 1000), category=rng.choice(CATEGORIES))
                for i in range(rng.randint(0, 6))
            ),
        )
        profile = score(trades, holdings, wallet_address=VALID_WALLET, config=config, computed_at=COMPUTED_AT)

        assert set(profile.scores) == {n.value for n in ScoreName}
        assert all(0 <= v <= 100 for v in profile.scores.values())
        assert not (profile.score("fomo") > 60 and profile.score("degen") < 20)
        if profile.high_frequency:
            assert profile.score("conviction") <= 70
        assert 0.0 <= profile.confidence <= 1.0


# --- Scenarios ---


def test_concentrated_high_frequency_wallet(trade):
    """96 trades over 25 tokens, 3 tokens hold 95%: concentrated, and conviction pays for frequency."""
    holdings = _concentrated_holdings()
    fast = _round_trips(trade, 48, spacing=timedelta(hours=2), hold=timedelta(hours=1))
    slow = _round_trips(trade, 48, spacing=timedelta(days=2), hold=timedelta(hours=25))

    hf = score(fast, holdings, wallet_address=VALID_WALLET, computed_at=COMPUTED_AT)
    lf = score(slow, holdings, wallet_address=VALID_WALLET, computed_at=COMPUTED_AT)

    assert hf.trade_count == 96
    assert hf.diversification.style == DiversificationStyle.CONCENTRATED
    assert hf.diversification.token_count == 25
    assert hf.diversification.top3_share >= 0.95
    assert hf.high_frequency is True
    assert hf.score("conviction") <= 70
    assert lf.high_frequency is False
    assert hf.score("conviction") < lf.score("conviction")
    assert "high_frequency_trading" in hf.flags


def test_cold_start_profile():
    """No trades: confidence at or below the low cap, Insufficient Data, all scores 50."""
    profile = score([], Holdings(wallet=VALID_WALLET), wallet_address=VALID_WALLET, computed_at=COMPUTED_AT)
    assert profile.trade_count == 0
    assert profile.confidence <= ScoringConfig().low_confidence_cap
    assert profile.archetype == Archetype.INSUFFICIENT_DATA
    assert all(v == 50 for v in profile.scores.values())
    assert profile.flags == ("insufficient_data",)


def test_small_sample_is_capped(trade):
    trades = _round_trips(trade, 4, spacing=timedelta(days=1), hold=timedelta(hours=3))
    profile = score(trades, Holdings(wallet=VALID_WALLET), wallet_address=VALID_WALLET, computed_at=COMPUTED_AT)
    assert profile.trade_count == 8
    assert profile.confidence <= 0.2
    assert profile.archetype == Archetype.INSUFFICIENT_DATA


def test_missing_holdings_fails():
    with pytest.raises(ComputeFailed):
        score([], None, wallet_address=VALID_WALLET)


def test_profile_round_trips_through_dict(trade):
    from wallet_whisperer.analysis_engine.models import WalletProfile

    trades = _round_trips(trade, 20, spacing=timedelta(hours=9), hold=timedelta(hours=30))
    profile = score(trades, _concentrated_holdings(), wallet_address=VALID_WALLET, computed_at=COMPUTED_AT)
    assert WalletProfile.from_dict(profile.to_dict()) == profile


# --- Sub-scores ---


def test_position_sizing_consistency():
    config = ScoringConfig()
    assert position_sizing_consistency([100.0, 100.0, 100.0], config) == 100
    assert position_sizing_consistency([100.0], config) == 50
    assert position_sizing_consistency([], config) == 50
    assert position_sizing_consistency([1.0, 1.0, 1.0, 5000.0], config) < 30


def test_conviction_capped_for_high_frequency():
    config = ScoringConfig()
    capped = conviction_score(10_000.0, 1.0, 11.0, 0.0, config)
    uncapped = conviction_score(10_000.0, 1.0, 1.0, 0.0, config)
    assert capped <= 70
    assert uncapped > 70


def test_degen_floor_follows_fomo():
    """A FOMO-dominant wallet is never rated very low degen."""
    config = ScoringConfig()
    assert degen_score(0.0, 0.0, 0.0, 0.0, fomo=90, config=config) == 50
    assert degen_score(0.0, 0.0, 0.0, 0.0, fomo=10, config=config) == 0


def test_patience_score_scale():
    config = ScoringConfig()
    assert patience_score(None, config) == 50
    assert patience_score(0.0, config) == 0
    assert patience_score(config.patience_target_hours, config) == 100
    assert 0 < patience_score(24.0, config) < patience_score(24.0 * 7, config) < 100


def test_diversification_unknown_bucket_and_over_diversified():
    """Uncategorized exposure goes to Unknown; many evenly spread categories are over-diversified."""
    config = ScoringConfig()
    tokens = tuple(
        TokenHolding(mint=f"Mint{i:02d}", amount=1.0, usd_value=100.0, category=(CATEGORIES + (None,))[i % 8])
        for i in range(24)
    )
    div = diversification(Holdings(wallet=VALID_WALLET, tokens=tokens), [], config)
    assert div.style == DiversificationStyle.OVER_DIVERSIFIED
    assert div.category_exposure["Unknown"] == pytest.approx(0.125)
    assert div.top3_share == pytest.approx(0.375)


def test_diversification_falls_back_to_traded_volume(trade):
    config = ScoringConfig()
    trades = [
        trade("a", T0, mint="MintA", category="Meme", usd=900.0),
        trade("b", T0 + timedelta(hours=1), mint="MintB", category=None, usd=100.0),
        trade("c", T0 + timedelta(hours=2), mint="MintC", category="DeFi", usd=None),
    ]
    div = diversification(Holdings(wallet=VALID_WALLET), trades, config)
    assert div.category_exposure == {"Meme": 0.9, "Unknown": 0.1}
    assert div.token_count == 3
    assert div.style == DiversificationStyle.CONCENTRATED


def test_diversification_without_exposure_is_balanced():
    div = diversification(Holdings(wallet=VALID_WALLET), [], ScoringConfig())
    assert div.style == DiversificationStyle.BALANCED
    assert div.category_exposure == {}


# --- Archetypes ---


def _inputs(**overrides) -> ArchetypeInputs:
    values = dict(
        scores={"risk": 50, "fomo": 50, "patience": 50, "conviction": 50, "degen": 50, "whisperer": 50},
        trade_count=40,
        trades_per_day=2.0,
        high_frequency_threshold=10.0,
        median_hold_hours=48.0,
        avg_trade_usd=500.0,
        avg_fee_sol=0.00001,
        token_count=5,
    )
    values.update(overrides)
    return ArchetypeInputs(**values)


def test_archetype_tie_prefers_stricter_rule():
    """Equal scores: the rule with the higher minimum trade count wins, then declaration order."""
    rules = (
        ArchetypeRule(Archetype.ACTIVE_TRADER, 10, lambda i: 60.0),
        ArchetypeRule(Archetype.DAY_TRADER, 30, lambda i: 60.2),
        ArchetypeRule(Archetype.SWING_TRADER, 30, lambda i: 59.6),
    )
    ranked = rank_archetypes(_inputs(), rules)
    assert [a for a, _ in ranked] == [Archetype.DAY_TRADER, Archetype.SWING_TRADER, Archetype.ACTIVE_TRADER]


def test_archetype_rules_respect_min_trades():
    rules = (
        ArchetypeRule(Archetype.WHALE_PREMIUM_STRATEGIST, 20, lambda i: 99.0),
        ArchetypeRule(Archetype.ACTIVE_TRADER, 10, lambda i: 40.0),
    )
    ranked = rank_archetypes(_inputs(trade_count=12), rules)
    assert ranked == [(Archetype.ACTIVE_TRADER, 40)]


def test_fomo_chaser_wins_on_fomo():
    ranked = rank_archetypes(_inputs(scores={"risk": 40, "fomo": 95, "patience": 10, "conviction": 10, "degen": 60, "whisperer": 20}))
    assert ranked[0][0] == Archetype.FOMO_CHASER


# --- Config validation ---


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_trades": 0},
        {"high_frequency_conviction_cap": 80},
        {"fomo_degen_gap": 45},
        {"low_confidence_cap": 1.5},
        {"saturation_trades": 5},
        {"cv_ceiling": 0.0},
    ],
)
def test_scoring_config_rejects_invalid_values(overrides):
    with pytest.raises(ValueError):
        ScoringConfig(**overrides)
