"""
Analytics pipeline: one fresh wallet analysis (fetch -> ledger -> normalize -> holdings -> score).

Single compute step used by the orchestrator and the CLI. Raises
UpstreamUnavailable when the transaction source fails or times out and
ComputeFailed when holdings are unavailable or scoring breaks. Never writes
profile tiers; that is the orchestrator's job.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from wallet_whisperer.analysis_engine.models import WalletProfile
from wallet_whisperer.analysis_engine.scorer import ScoringConfig, score
from wallet_whisperer.core.exceptions import ComputeFailed, UpstreamUnavailable
from wallet_whisperer.ingestion.helius_client import HoldingsSource, TransactionSource
from wallet_whisperer.ingestion.models import Trade
from wallet_whisperer.ingestion.normalizer import TransactionNormalizer
from wallet_whisperer.ingestion.retry import RetryPolicy
from wallet_whisperer.whisperer_logging import bind_wallet

DEFAULT_FETCH_TIMEOUT = 45.0
DEFAULT_MAX_TX_HISTORY = 500


class TradeLedger(Protocol):
    async def append(self, wallet: str, trades: list[Trade]) -> int: ...

    async def latest_signature(self, wallet: str) -> str | None: ...

    async def recent(self, wallet: str, limit: int) -> list[Trade]: ...


@dataclass
class WalletAnalysisPipeline:
    """
    Collaborators for a fresh computation, injected so tests can use fakes.

    retry wraps the whole transaction fetch; leave it None when the source
    already retries per request (the Helius client does).
    """

    source: TransactionSource
    holdings: HoldingsSource
    normalizer: TransactionNormalizer = field(default_factory=TransactionNormalizer)
    ledger: TradeLedger | None = None
    scoring_config: ScoringConfig = field(default_factory=ScoringConfig)
    scorer: Callable[..., WalletProfile] = score
    retry: RetryPolicy | None = None
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    max_tx_history: int = DEFAULT_MAX_TX_HISTORY

    async def _fetch(self, address: str, since_signature: str | None) -> list:
        if self.retry is not None:
            call = self.retry.call(self.source.fetch_transactions, address, since_signature=since_signature)
        else:
            call = self.source.fetch_transactions(address, since_signature=since_signature)
        try:
            return list(await asyncio.wait_for(call, timeout=self.fetch_timeout))
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                "transaction fetch timed out", timeout_sec=self.fetch_timeout
            ) from e

    async def _since_signature(self, address: str, log) -> str | None:
        if self.ledger is None:
            return None
        try:
            return await self.ledger.latest_signature(address)
        except SQLAlchemyError as e:
            log.warning("trade_ledger_unavailable", error=str(e))
            return None

    async def _window(self, address: str, new_trades: list[Trade], since: str | None, log) -> list[Trade]:
        """Ledger-backed recent window; without a ledger, the freshly normalized trades."""
        if self.ledger is None:
            return new_trades[-self.max_tx_history:]
        try:
            await self.ledger.append(address, new_trades)
            return await self.ledger.recent(address, self.max_tx_history)
        except SQLAlchemyError as e:
            if since is not None:
                # Incremental fetch only returned new trades; the window is incomplete
                raise ComputeFailed("trade ledger unavailable", error=str(e)) from e
            log.warning("trade_ledger_write_failed", error=str(e))
            return new_trades[-self.max_tx_history:]

    async def run_wallet_analysis(self, address: str, *, computed_at: datetime | None = None) -> WalletProfile:
        """Run one full analysis for a wallet and return the fresh profile."""
        log = bind_wallet(address, __name__)
        log.info("analytics_pipeline_start")

        since = await self._since_signature(address, log)
        raw = await self._fetch(address, since)
        new_trades = await self.normalizer.normalize(raw, address)
        trades = await self._window(address, new_trades, since, log)

        try:
            holdings = await asyncio.wait_for(self.holdings.get_holdings(address), timeout=self.fetch_timeout)
        except (UpstreamUnavailable, asyncio.TimeoutError) as e:
            raise ComputeFailed("holdings lookup failed", error=str(e) or "timeout") from e

        profile = self.scorer(
            trades,
            holdings,
            wallet_address=address,
            config=self.scoring_config,
            computed_at=computed_at,
        )
        log.info(
            "analytics_pipeline_done",
            since_signature=since[:16] if since else None,
            fetched=len(raw),
            new_trades=len(new_trades),
            trade_count=profile.trade_count,
            archetype=profile.archetype.value,
            confidence=profile.confidence,
        )
        return profile
