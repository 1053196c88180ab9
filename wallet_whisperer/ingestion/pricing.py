"""
USD price lookup for Solana mints (CoinGecko).

Prices are current spot prices; stablecoins are pinned to 1.0. Any mint that
cannot be priced maps to None so the normalizer leaves amount_usd unknown
rather than zero.
"""

from __future__ import annotations

import time
from typing import Callable, Iterable, Protocol

import httpx

from wallet_whisperer.ingestion.models import SOL_MINT, STABLECOIN_MINTS
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

COINGECKO_API_URL = "https://api.coingecko.com/api/v3"
COINGECKO_SOL_ID = "solana"
# CoinGecko caps contract_addresses per request
TOKEN_PRICE_BATCH = 30
REQUEST_TIMEOUT = 10.0


class PriceOracle(Protocol):
    async def get_prices(self, mints: Iterable[str]) -> dict[str, float | None]: ...


def _coingecko_headers(api_key: str) -> dict[str, str]:
    if api_key:
        return {"x-cg-demo-api-key": api_key}
    return {}


class CoinGeckoPriceOracle:
    """
    PriceOracle backed by CoinGecko simple/price and simple/token_price/solana.

    Memoizes prices per instance for cache_ttl seconds so concurrent wallet
    computations share lookups without serving stale prices for long.
    """

    def __init__(
        self,
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
        base_url: str = COINGECKO_API_URL,
        cache_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._headers = _coingecko_headers(api_key)
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._cache_ttl = cache_ttl
        self._clock = clock
        # mint -> (price, fetched_at)
        self._memo: dict[str, tuple[float | None, float]] = {}

    async def _get_json(self, client: httpx.AsyncClient, path: str, params: dict[str, str]) -> dict:
        r = await client.get(f"{self._base_url}{path}", params=params, headers=self._headers, timeout=REQUEST_TIMEOUT)
        r.raise_for_status()
        data = r.json()
        return data if isinstance(data, dict) else {}

    async def _fetch(self, client: httpx.AsyncClient, mints: list[str]) -> dict[str, float | None]:
        out: dict[str, float | None] = {}
        if SOL_MINT in mints:
            try:
                data = await self._get_json(client, "/simple/price", {"ids": COINGECKO_SOL_ID, "vs_currencies": "usd"})
                out[SOL_MINT] = (data.get(COINGECKO_SOL_ID) or {}).get("usd")
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("price_lookup_failed", mint=SOL_MINT, error=str(e))
                out[SOL_MINT] = None
        tokens = [m for m in mints if m != SOL_MINT]
        for i in range(0, len(tokens), TOKEN_PRICE_BATCH):
            batch = tokens[i : i + TOKEN_PRICE_BATCH]
            try:
                data = await self._get_json(
                    client,
                    "/simple/token_price/solana",
                    {"contract_addresses": ",".join(batch), "vs_currencies": "usd"},
                )
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("price_lookup_failed", mints=len(batch), error=str(e))
                data = {}
            lowered = {k.lower(): v for k, v in data.items() if isinstance(v, dict)}
            for mint in batch:
                entry = data.get(mint) or lowered.get(mint.lower()) or {}
                price = entry.get("usd")
                out[mint] = float(price) if isinstance(price, (int, float)) else None
        return out

    async def get_prices(self, mints: Iterable[str]) -> dict[str, float | None]:
        wanted = sorted(set(mints))
        result: dict[str, float | None] = {}
        missing: list[str] = []
        now = self._clock()
        for mint in wanted:
            cached = self._memo.get(mint)
            if mint in STABLECOIN_MINTS:
                result[mint] = 1.0
            elif cached is not None and now - cached[1] < self._cache_ttl:
                result[mint] = cached[0]
            else:
                missing.append(mint)
        if missing:
            if self._client is not None:
                fetched = await self._fetch(self._client, missing)
            else:
                async with httpx.AsyncClient() as client:
                    fetched = await self._fetch(client, missing)
            self._memo.update({m: (p, now) for m, p in fetched.items()})
            result.update(fetched)
        return result
