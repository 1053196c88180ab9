"""
Token metadata lookup and category rules.

resolve(mint) returns name/symbol/category for a mint via Helius DAS getAsset.
Category assignment is deterministic: manual seed tags first, then pump.fun
source and keyword patterns over name/symbol/description. When nothing
matches, category is None and scoring puts the token in the Unknown bucket.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from wallet_whisperer.ingestion.models import SOL_MINT, USDC_MINT, USDT_MINT
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

CATEGORY_MEME = "Meme"
CATEGORY_UTILITY = "Utility"
CATEGORY_INFRA = "Infra"
CATEGORY_DEFI = "DeFi"
CATEGORY_GAMING = "Gaming"
CATEGORY_NFT = "NFT"
CATEGORY_GOVERNANCE = "Governance"
CATEGORY_UNKNOWN = "Unknown"

PRIMARY_CATEGORIES = (
    CATEGORY_MEME,
    CATEGORY_UTILITY,
    CATEGORY_INFRA,
    CATEGORY_DEFI,
    CATEGORY_GAMING,
    CATEGORY_NFT,
    CATEGORY_GOVERNANCE,
)

# Manual seed tags for top traded tokens: mint -> (primary, *secondary)
MANUAL_TOKEN_TAGS: dict[str, tuple[str, ...]] = {
    SOL_MINT: (CATEGORY_UTILITY, "Native"),
    USDC_MINT: (CATEGORY_DEFI, "Stablecoin"),
    USDT_MINT: (CATEGORY_DEFI, "Stablecoin"),
    "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263": (CATEGORY_MEME, "Dog", "Bonk"),
    "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm": (CATEGORY_MEME, "Dog", "WIF"),
    "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN": (CATEGORY_INFRA, "DEX", "Jupiter"),
    "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R": (CATEGORY_INFRA, "DEX", "Raydium"),
    "SW1TCH7qEPTdLsDHRgPuMQjbQxKdH2aBStViMFnt64f": (CATEGORY_INFRA, "Oracle", "Switchboard"),
    "GENEtH5amGSi8kHAtQoezp1XEXwZRLNzThPuuKiMYfy6": (CATEGORY_GAMING, "Genopets"),
    "MangoCzJ36AjZyKwVj3VnYU4GTonjfVEnJmvvWaxLac": (CATEGORY_GOVERNANCE, "Mango"),
}

_MEME_KEYWORDS = ("dog", "doge", "shiba", "inu", "pepe", "wojak", "chad", "giga", "bonk", "samo", "maga", "cat", "frog")
_GOVERNANCE_KEYWORDS = ("gov", "governance", "dao", "vote")
_ORACLE_KEYWORDS = ("oracle", "price feed", "chainlink", "pyth")
_DEX_KEYWORDS = ("swap", "dex", "exchange", "liquidity", "amm")
_DEFI_KEYWORDS = ("lend", "yield", "staked", "stake", "lp ", "vault")
_GAMING_KEYWORDS = ("game", "gaming", "play", "metaverse", "quest")
PUMP_FUN_SOURCES = ("PUMP_FUN", "pump.fun")
PUMP_FUN_AUTHORITY = "TSLvdd1pWpHVjahSpsvCXUbgwsL3JAcvokwaKt1eokM"


@dataclass(frozen=True)
class TokenMetadata:
    mint: str
    name: str | None = None
    symbol: str | None = None
    category: str | None = None
    source: str | None = None


class TokenMetadataResolver(Protocol):
    async def resolve(self, mint: str) -> TokenMetadata | None: ...


def categorize_token(
    mint: str,
    name: str | None = None,
    symbol: str | None = None,
    description: str | None = None,
    source: str | None = None,
    is_nft: bool = False,
) -> str | None:
    """
    Return the primary category for a token, or None if no rule matches.

    Order: manual tags, NFT standard, pump.fun source, keyword patterns.
    """
    manual = MANUAL_TOKEN_TAGS.get(mint)
    if manual:
        return manual[0]
    if is_nft:
        return CATEGORY_NFT
    if source in PUMP_FUN_SOURCES or mint.endswith("pump"):
        return CATEGORY_MEME
    text = " ".join(s.lower() for s in (name, symbol, description) if s)
    if not text:
        return None
    words = set(text.replace("-", " ").replace("_", " ").split())
    if any(k in words for k in _MEME_KEYWORDS):
        return CATEGORY_MEME
    if any(k in words for k in _GOVERNANCE_KEYWORDS):
        return CATEGORY_GOVERNANCE
    if any(k in text for k in _ORACLE_KEYWORDS):
        return CATEGORY_INFRA
    if any(k in words for k in _DEX_KEYWORDS):
        return CATEGORY_INFRA
    if any(k in text for k in _DEFI_KEYWORDS):
        return CATEGORY_DEFI
    if any(k in words for k in _GAMING_KEYWORDS):
        return CATEGORY_GAMING
    return None


def metadata_from_asset(mint: str, asset: dict[str, Any] | None) -> TokenMetadata | None:
    """
    Extract name/symbol/category from a DAS getAsset result. Handles missing keys safely.
    Returns None when the asset payload is empty.
    """
    if not asset or not isinstance(asset, dict):
        return None
    content = asset.get("content") or {}
    if not isinstance(content, dict):
        content = {}
    metadata = content.get("metadata") or {}
    if not isinstance(metadata, dict):
        metadata = {}
    name = (metadata.get("name") or "").strip() or None
    symbol = (metadata.get("symbol") or "").strip() or None
    description = (metadata.get("description") or "").strip() or None
    interface = (asset.get("interface") or "").strip()
    is_nft = interface in ("V1_NFT", "ProgrammableNFT", "MplCoreAsset")
    authorities = asset.get("authorities") or []
    source = None
    for auth in authorities if isinstance(authorities, list) else []:
        if isinstance(auth, dict) and auth.get("address") == PUMP_FUN_AUTHORITY:
            source = "pump.fun"
    return TokenMetadata(
        mint=mint,
        name=name,
        symbol=symbol,
        category=categorize_token(mint, name, symbol, description, source, is_nft),
        source=source,
    )


class HeliusTokenMetadata:
    """
    TokenMetadataResolver backed by Helius DAS getAsset.

    Manual-tagged mints resolve without a network call. Results (including
    misses) are memoized per instance. Network or RPC errors return None.
    """

    def __init__(self, rpc_url: str, client: httpx.AsyncClient | None = None, timeout: float = 5.0) -> None:
        self._rpc_url = rpc_url
        self._client = client
        self._timeout = timeout
        self._memo: dict[str, TokenMetadata | None] = {}

    async def resolve(self, mint: str) -> TokenMetadata | None:
        if mint in MANUAL_TOKEN_TAGS:
            return TokenMetadata(mint=mint, category=MANUAL_TOKEN_TAGS[mint][0], source="manual")
        if mint in self._memo:
            return self._memo[mint]
        if not self._rpc_url:
            return None
        body = {"jsonrpc": "2.0", "id": "whisperer-asset", "method": "getAsset", "params": {"id": mint}}
        try:
            if self._client is not None:
                r = await self._client.post(self._rpc_url, json=body, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    r = await client.post(self._rpc_url, json=body)
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("token_metadata_lookup_failed", mint=mint, error=str(e))
            return None
        if data.get("error"):
            logger.debug("token_metadata_rpc_error", mint=mint, error=data.get("error"))
            self._memo[mint] = None
            return None
        meta = metadata_from_asset(mint, data.get("result"))
        self._memo[mint] = meta
        return meta
