"""
Wire a ProfileOrchestrator from Settings: Helius + CoinGecko clients, SQLAlchemy
durable tier and ledger, Redis (or in-memory) hot tier.
"""

from __future__ import annotations

import httpx

from wallet_whisperer.analytics.analytics_pipeline import WalletAnalysisPipeline
from wallet_whisperer.analytics.orchestrator import ProfileOrchestrator
from wallet_whisperer.cache.durable_tier import Database, SqlAlchemyDurableTier, SqlAlchemyTradeLedger
from wallet_whisperer.cache.hot_tier import InMemoryHotTier, RedisHotTier
from wallet_whisperer.cache.ttl import FieldTtlPolicy
from wallet_whisperer.config.env import mask_api_key
from wallet_whisperer.config.settings import Settings, get_settings
from wallet_whisperer.ingestion.helius_client import HeliusHoldingsSource, HeliusTransactionSource
from wallet_whisperer.ingestion.normalizer import TransactionNormalizer
from wallet_whisperer.ingestion.pricing import CoinGeckoPriceOracle
from wallet_whisperer.ingestion.retry import RetryPolicy
from wallet_whisperer.ingestion.token_metadata import HeliusTokenMetadata
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)


def build_pipeline(settings: Settings, client: httpx.AsyncClient, db: Database | None = None) -> WalletAnalysisPipeline:
    retry = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_sec,
        max_delay=settings.retry_max_delay_sec,
    )
    normalizer = TransactionNormalizer(
        metadata=HeliusTokenMetadata(settings.helius_rpc_url, client=client, timeout=settings.metadata_timeout_sec),
        prices=CoinGeckoPriceOracle(
            api_key=settings.coingecko_api_key,
            client=client,
            cache_ttl=min(settings.market_ttl_sec, 300.0),
        ),
        metadata_timeout=settings.metadata_timeout_sec,
    )
    return WalletAnalysisPipeline(
        source=HeliusTransactionSource(
            settings.helius_api_url,
            settings.helius_api_key,
            client,
            retry=retry,
            max_transactions=settings.max_tx_history,
        ),
        holdings=HeliusHoldingsSource(settings.helius_rpc_url, client, retry=retry),
        normalizer=normalizer,
        ledger=SqlAlchemyTradeLedger(db) if db is not None else None,
        fetch_timeout=settings.fetch_timeout_sec,
        max_tx_history=settings.max_tx_history,
    )


def build_orchestrator(settings: Settings | None = None) -> ProfileOrchestrator:
    """
    Build the production orchestrator. Creates tables on first use.
    Call `await orchestrator.aclose()` on shutdown to release clients.
    """
    settings = settings or get_settings()
    if not settings.helius_api_key:
        logger.warning("helius_api_key_missing", hint="set HELIUS_API_KEY in .env")

    db = Database(settings.database_url)
    db.init_db()
    client = httpx.AsyncClient()

    if settings.redis_url:
        hot = RedisHotTier.from_url(settings.redis_url)
    else:
        logger.warning("hot_tier_in_memory", reason="REDIS_URL disabled")
        hot = InMemoryHotTier()

    async def _dispose_db() -> None:
        db.dispose()

    orchestrator = ProfileOrchestrator(
        hot=hot,
        durable=SqlAlchemyDurableTier(db),
        computer=build_pipeline(settings, client, db),
        ttl_policy=FieldTtlPolicy(
            market_ttl=settings.market_ttl_sec,
            behavioral_ttl=settings.profile_ttl_sec,
            durable_max_ttl=settings.durable_ttl_sec,
        ),
        closers=[client.aclose, hot.close, _dispose_db],
    )
    logger.info(
        "orchestrator_ready",
        hot_tier="redis" if settings.redis_url else "memory",
        redis=(settings.redis_url or "").split("@")[-1],
        helius=mask_api_key(settings.helius_rpc_url),
    )
    return orchestrator
