"""
Tiered profile orchestrator: hot tier -> durable tier -> singleflight fresh compute.

Read path:
  1. hot tier (skipped on force_refresh); CacheUnavailable counts as a miss
  2. durable tier (skipped on force_refresh); a fresh hit repopulates the hot tier
  3. join or start the in-flight computation for the address

Write path (fresh compute only): durable upsert, then hot set. A failed
computation writes nothing and every waiter receives the same error.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Protocol

from wallet_whisperer.analysis_engine.models import SourceTier, WalletProfile
from wallet_whisperer.analytics.inflight import InFlightRegistry
from wallet_whisperer.cache.entry import CacheEntry
from wallet_whisperer.cache.hot_tier import HotTier
from wallet_whisperer.cache.ttl import FieldTtlPolicy, TtlPolicy
from wallet_whisperer.core.exceptions import (
    CacheUnavailable,
    ComputeFailed,
    StoreUnavailable,
    WaitTimeout,
    WhispererError,
)
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)


class DurableTier(Protocol):
    async def get(self, key: str) -> CacheEntry[WalletProfile] | None: ...

    async def upsert(self, key: str, profile: WalletProfile, ttl: float) -> CacheEntry[WalletProfile]: ...

    async def invalidate(self, key: str) -> bool: ...


class ProfileComputer(Protocol):
    async def run_wallet_analysis(self, address: str) -> WalletProfile: ...


@dataclass
class OrchestratorStats:
    hot_hits: int = 0
    hot_misses: int = 0
    hot_errors: int = 0
    durable_hits: int = 0
    durable_misses: int = 0
    durable_errors: int = 0
    computations: int = 0
    joins: int = 0
    failures: int = 0
    wait_timeouts: int = 0
    invalidations: int = 0
    stale_writes_skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


class ProfileOrchestrator:
    """
    Serves WalletProfiles across tiers with at most one computation per wallet.

    All collaborators are injected; nothing here is a process-wide singleton.
    """

    def __init__(
        self,
        hot: HotTier,
        durable: DurableTier,
        computer: ProfileComputer,
        *,
        ttl_policy: TtlPolicy | None = None,
        inflight: InFlightRegistry[WalletProfile] | None = None,
        clock: Callable[[], float] = time.time,
        closers: list[Callable[[], Awaitable[Any]]] | None = None,
    ) -> None:
        self._hot = hot
        self._durable = durable
        self._computer = computer
        self._ttl = ttl_policy or FieldTtlPolicy()
        self._inflight = inflight if inflight is not None else InFlightRegistry()
        self._clock = clock
        self._closers = closers or []
        self._stats = OrchestratorStats()
        # address -> invalidation count; a computation that saw an older count does not write
        self._generations: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Tier access (tier failures are recovered here)
    # ------------------------------------------------------------------

    async def _hot_get(self, address: str) -> CacheEntry[WalletProfile] | None:
        try:
            return await self._hot.get(address)
        except CacheUnavailable as e:
            self._stats.hot_errors += 1
            logger.warning("hot_tier_unavailable", op="get", wallet_id=address[:16], error=e.message)
            return None

    async def _hot_set(self, address: str, profile: WalletProfile, max_ttl: float | None = None) -> None:
        ttl = self._ttl.hot_ttl(profile)
        if max_ttl is not None:
            ttl = min(ttl, max_ttl)
        if ttl <= 0:
            return
        entry = CacheEntry(value=replace(profile, source_tier=SourceTier.FRESH), stored_at=self._clock(), ttl=ttl)
        try:
            await self._hot.set(address, entry)
        except CacheUnavailable as e:
            self._stats.hot_errors += 1
            logger.warning("hot_tier_unavailable", op="set", wallet_id=address[:16], error=e.message)

    async def _durable_get(self, address: str) -> CacheEntry[WalletProfile] | None:
        try:
            return await self._durable.get(address)
        except Exception as e:
            self._stats.durable_errors += 1
            logger.warning("durable_tier_read_failed", wallet_id=address[:16], error=str(e))
            return None

    # ------------------------------------------------------------------
    # Compute
    # ------------------------------------------------------------------

    async def _compute(self, address: str) -> WalletProfile:
        self._stats.computations += 1
        generation = self._generations.get(address, 0)
        started = time.monotonic()
        try:
            profile = await self._computer.run_wallet_analysis(address)
        except WhispererError as e:
            self._stats.failures += 1
            logger.warning("profile_compute_failed", wallet_id=address[:16], error_code=e.code, error=e.message)
            raise
        except Exception as e:
            self._stats.failures += 1
            logger.exception("profile_compute_crashed", wallet_id=address[:16], error=str(e))
            raise ComputeFailed(f"unexpected error during analysis: {e}") from e

        if self._generations.get(address, 0) != generation:
            self._stats.stale_writes_skipped += 1
            logger.info("profile_invalidated_during_compute", wallet_id=address[:16])
            return profile

        try:
            await self._durable.upsert(address, profile, self._ttl.durable_ttl(profile))
        except Exception as e:
            # Not committed durably, so the hot tier must not see it either
            self._stats.durable_errors += 1
            logger.error("durable_tier_write_failed", wallet_id=address[:16], error=str(e))
        else:
            if self._generations.get(address, 0) == generation:
                await self._hot_set(address, profile)
            else:
                # invalidate() ran while the row was being written
                self._stats.stale_writes_skipped += 1
                try:
                    await self._durable.invalidate(address)
                except Exception as e:
                    logger.error("durable_tier_invalidate_failed", wallet_id=address[:16], error=str(e))
        logger.info(
            "profile_computed",
            wallet_id=address[:16],
            trade_count=profile.trade_count,
            archetype=profile.archetype.value,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return profile

    async def _join_or_compute(self, address: str, timeout: float | None) -> WalletProfile:
        task, started = self._inflight.join_or_start(address, lambda: self._compute(address))
        if not started:
            self._stats.joins += 1
            logger.debug("profile_compute_joined", wallet_id=address[:16])
        try:
            if timeout is None:
                profile = await asyncio.shield(task)
            else:
                profile = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError as e:
            self._stats.wait_timeouts += 1
            raise WaitTimeout(
                f"profile not ready after {timeout}s; computation continues",
                timeout_sec=timeout,
            ) from e
        return replace(profile, source_tier=SourceTier.FRESH)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_profile(
        self,
        address: str,
        *,
        force_refresh: bool = False,
        timeout: float | None = None,
    ) -> WalletProfile:
        """
        Return the wallet's profile from the fastest tier that has a fresh copy.

        Raises UpstreamUnavailable, ComputeFailed, or WaitTimeout (only when
        timeout is given). force_refresh skips both tiers but still joins an
        in-flight computation for the same wallet.
        """
        if not force_refresh:
            now = self._clock()
            entry = await self._hot_get(address)
            if entry is not None and self._ttl.is_fresh(entry, now):
                self._stats.hot_hits += 1
                logger.debug("hot_tier_hit", wallet_id=address[:16])
                return replace(entry.value, source_tier=SourceTier.HOT)
            self._stats.hot_misses += 1

            entry = await self._durable_get(address)
            now = self._clock()
            if entry is not None and self._ttl.is_fresh(entry, now):
                self._stats.durable_hits += 1
                logger.debug("durable_tier_hit", wallet_id=address[:16])
                await self._hot_set(address, entry.value, max_ttl=self._ttl.remaining(entry, now))
                return replace(entry.value, source_tier=SourceTier.DURABLE)
            self._stats.durable_misses += 1
            logger.debug("profile_cache_miss", wallet_id=address[:16], stale=entry is not None)

        return await self._join_or_compute(address, timeout)

    async def invalidate(self, address: str) -> None:
        """Drop the hot entry and mark the durable row invalidated; next read recomputes."""
        self._stats.invalidations += 1
        self._generations[address] = self._generations.get(address, 0) + 1
        try:
            await self._hot.delete(address)
        except CacheUnavailable as e:
            self._stats.hot_errors += 1
            logger.warning("hot_tier_unavailable", op="delete", wallet_id=address[:16], error=e.message)
        try:
            found = await self._durable.invalidate(address)
        except Exception as e:
            logger.error("durable_tier_invalidate_failed", wallet_id=address[:16], error=str(e))
            raise StoreUnavailable(f"could not invalidate stored profile: {e}") from e
        logger.info("profile_invalidated", wallet_id=address[:16], durable_row=found)

    def stats(self) -> dict[str, int]:
        out = self._stats.to_dict()
        out["inflight"] = len(self._inflight)
        return out

    async def health(self) -> dict[str, Any]:
        async def _ping(tier: Any) -> bool | None:
            ping = getattr(tier, "ping", None)
            if ping is None:
                return None
            return bool(await ping())

        return {
            "hot_tier": await _ping(self._hot),
            "durable_tier": await _ping(self._durable),
            "inflight": len(self._inflight),
        }

    async def aclose(self) -> None:
        await self._inflight.cancel_all()
        for close in self._closers:
            try:
                await close()
            except Exception as e:
                logger.warning("orchestrator_close_failed", error=str(e))
