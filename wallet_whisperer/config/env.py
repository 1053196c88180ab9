"""
Environment variable loading for Wallet Whisperer.

- SOLANA_NETWORK: devnet | mainnet (default: mainnet)
- HELIUS_API_KEY: Helius API key (enhanced transactions, DAS)
- HELIUS_API_URL: override for the Helius REST base URL
- HELIUS_RPC_URL: override for the Helius JSON-RPC URL (DAS methods)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is wallet_whisperer/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

HELIUS_MAINNET_API_URL = "https://api.helius.xyz"
HELIUS_DEVNET_API_URL = "https://api-devnet.helius.xyz"
HELIUS_MAINNET_RPC_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
HELIUS_DEVNET_RPC_TEMPLATE = "https://devnet.helius-rpc.com/?api-key={key}"


def load_whisperer_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides real env."""
    if _ENV_PATH.exists():
        load_dotenv(_ENV_PATH, override=False)


def get_solana_network() -> str:
    """Return SOLANA_NETWORK from env: devnet | mainnet. Default: mainnet."""
    load_whisperer_env()
    raw = (os.getenv("SOLANA_NETWORK") or "mainnet").strip().lower()
    return "devnet" if raw == "devnet" else "mainnet"


def get_helius_api_key() -> str:
    load_whisperer_env()
    return (os.getenv("HELIUS_API_KEY") or "").strip()


def get_helius_api_url() -> str:
    """
    Resolve the Helius REST base URL.
    Order: HELIUS_API_URL > network default.
    """
    load_whisperer_env()
    url = (os.getenv("HELIUS_API_URL") or "").strip()
    if url:
        return url.rstrip("/")
    return HELIUS_DEVNET_API_URL if get_solana_network() == "devnet" else HELIUS_MAINNET_API_URL


def get_helius_rpc_url() -> str:
    """
    Resolve the Helius JSON-RPC URL used for DAS calls (getAsset, searchAssets).
    Order: HELIUS_RPC_URL > HELIUS_API_KEY (network-specific) > empty string.
    """
    load_whisperer_env()
    url = (os.getenv("HELIUS_RPC_URL") or "").strip()
    if url:
        return url
    key = get_helius_api_key()
    if not key:
        return ""
    template = HELIUS_DEVNET_RPC_TEMPLATE if get_solana_network() == "devnet" else HELIUS_MAINNET_RPC_TEMPLATE
    return template.format(key=key)


def mask_api_key(url: str) -> str:
    """Hide the api-key query value so URLs can be logged."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
