"""
Helius clients: transaction history (enhanced transactions API) and current
fungible holdings (DAS searchAssets).

HTTP status mapping: 429 -> RateLimited (with Retry-After when sent),
5xx / other non-2xx / transport errors / timeouts -> UpstreamUnavailable.
Every request goes through the shared RetryPolicy.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from wallet_whisperer.config.env import mask_api_key
from wallet_whisperer.core.exceptions import RateLimited, UpstreamUnavailable
from wallet_whisperer.ingestion.models import (
    LAMPORTS_PER_SOL,
    SOL_MINT,
    Holdings,
    TokenHolding,
)
from wallet_whisperer.ingestion.retry import RetryPolicy
from wallet_whisperer.ingestion.token_metadata import metadata_from_asset
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

PAGE_LIMIT = 100
DEFAULT_MAX_TRANSACTIONS = 500
REQUEST_TIMEOUT = 30.0


class TransactionSource(Protocol):
    async def fetch_transactions(
        self, address: str, since_signature: str | None = None
    ) -> list[dict[str, Any]]: ...


class HoldingsSource(Protocol):
    async def get_holdings(self, address: str) -> Holdings: ...


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _raise_for_status(r: httpx.Response, what: str) -> None:
    if r.status_code == 429:
        raise RateLimited(
            f"{what}: rate limited",
            retry_after=_parse_retry_after(r.headers.get("Retry-After")),
            status=429,
        )
    if r.status_code >= 400:
        raise UpstreamUnavailable(f"{what}: HTTP {r.status_code}", status=r.status_code)


async def _send(client: httpx.AsyncClient, what: str, method: str, url: str, **kwargs: Any) -> Any:
    """Single HTTP call with error mapping; returns decoded JSON."""
    try:
        r = await client.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
    except httpx.TimeoutException as e:
        raise UpstreamUnavailable(f"{what}: timed out", url=mask_api_key(url)) from e
    except httpx.TransportError as e:
        raise UpstreamUnavailable(f"{what}: {e}", url=mask_api_key(url)) from e
    _raise_for_status(r, what)
    try:
        return r.json()
    except ValueError as e:
        raise UpstreamUnavailable(f"{what}: invalid JSON body") from e


class HeliusTransactionSource:
    """
    Fetch a wallet's parsed transaction history, newest first.

    Pages backwards with before=<last signature>. When since_signature is given,
    paging stops at that signature (exclusive) so only newer records are returned.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        client: httpx.AsyncClient,
        retry: RetryPolicy | None = None,
        max_transactions: int = DEFAULT_MAX_TRANSACTIONS,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._client = client
        self._retry = retry or RetryPolicy()
        self._max_transactions = max(1, max_transactions)

    async def _page(self, address: str, before: str | None, until: str | None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"api-key": self._api_key, "limit": PAGE_LIMIT}
        if before:
            params["before"] = before
        if until:
            params["until"] = until
        url = f"{self._api_url}/v0/addresses/{address}/transactions"
        data = await self._retry.call(_send, self._client, "helius_transactions", "GET", url, params=params)
        if not isinstance(data, list):
            raise UpstreamUnavailable("helius_transactions: unexpected response shape")
        return [item for item in data if isinstance(item, dict)]

    async def fetch_transactions(
        self, address: str, since_signature: str | None = None
    ) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        before: str | None = None
        while len(out) < self._max_transactions:
            page = await self._page(address, before, since_signature)
            if not page:
                break
            for item in page:
                if since_signature and item.get("signature") == since_signature:
                    logger.debug("helius_reached_since_signature", wallet_id=address[:16])
                    return out
                out.append(item)
                if len(out) >= self._max_transactions:
                    break
            if len(page) < PAGE_LIMIT:
                break
            before = page[-1].get("signature")
            if not before:
                break
        logger.info("helius_transactions_fetched", wallet_id=address[:16], count=len(out))
        return out


def _holding_from_asset(item: dict[str, Any]) -> TokenHolding | None:
    mint = (item.get("id") or "").strip()
    if not mint:
        return None
    token_info = item.get("token_info") or {}
    if not isinstance(token_info, dict):
        token_info = {}
    balance = token_info.get("balance")
    decimals = token_info.get("decimals") or 0
    try:
        amount = float(balance) / (10 ** int(decimals)) if balance is not None else 0.0
    except (TypeError, ValueError):
        amount = 0.0
    price_info = token_info.get("price_info") or {}
    total = price_info.get("total_price") if isinstance(price_info, dict) else None
    meta = metadata_from_asset(mint, item)
    return TokenHolding(
        mint=mint,
        amount=amount,
        usd_value=float(total) if isinstance(total, (int, float)) else None,
        category=meta.category if meta else None,
        symbol=meta.symbol if meta else None,
    )


class HeliusHoldingsSource:
    """Current fungible holdings (and native SOL) via DAS searchAssets."""

    def __init__(self, rpc_url: str, client: httpx.AsyncClient, retry: RetryPolicy | None = None) -> None:
        self._rpc_url = rpc_url
        self._client = client
        self._retry = retry or RetryPolicy()

    async def get_holdings(self, address: str) -> Holdings:
        if not self._rpc_url:
            raise UpstreamUnavailable("holdings: HELIUS_API_KEY or HELIUS_RPC_URL not configured")
        body = {
            "jsonrpc": "2.0",
            "id": "whisperer-holdings",
            "method": "searchAssets",
            "params": {
                "ownerAddress": address,
                "tokenType": "fungible",
                "displayOptions": {"showNativeBalance": True},
            },
        }
        data = await self._retry.call(_send, self._client, "helius_holdings", "POST", self._rpc_url, json=body)
        if not isinstance(data, dict) or data.get("error"):
            raise UpstreamUnavailable("holdings: RPC error", error=(data or {}).get("error") if isinstance(data, dict) else None)
        result = data.get("result") or {}
        tokens: list[TokenHolding] = []
        for item in result.get("items") or []:
            if isinstance(item, dict):
                holding = _holding_from_asset(item)
                if holding is not None:
                    tokens.append(holding)
        native = result.get("nativeBalance") or {}
        lamports = native.get("lamports") if isinstance(native, dict) else None
        if lamports:
            total = native.get("total_price")
            tokens.append(
                TokenHolding(
                    mint=SOL_MINT,
                    amount=float(lamports) / LAMPORTS_PER_SOL,
                    usd_value=float(total) if isinstance(total, (int, float)) else None,
                    category="Utility",
                    symbol="SOL",
                )
            )
        logger.debug("helius_holdings_fetched", wallet_id=address[:16], tokens=len(tokens))
        return Holdings(wallet=address, tokens=tuple(tokens))
