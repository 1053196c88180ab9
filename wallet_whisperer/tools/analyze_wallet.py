"""
Print the Wallet Whisperer profile for one wallet.

How to run:
    From project root (with .env configured):
        py -m wallet_whisperer.tools.analyze_wallet <address>
        py -m wallet_whisperer.tools.analyze_wallet <address> --refresh --timeout 60

Required env vars:
    HELIUS_API_KEY     (transactions and holdings)
    COINGECKO_API_KEY  (optional; improves rate limits for price lookups)
    REDIS_URL          (optional; "disabled" uses the in-process hot tier)

Goes through the same tiers as the API, so a second run is served from cache.

Exit codes: 0 ok, 1 unexpected error, 2 invalid address, 3 upstream
unavailable, 4 compute failed, 5 timed out waiting.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from solders.pubkey import Pubkey

from wallet_whisperer.analysis_engine.models import WalletProfile
from wallet_whisperer.analytics.factory import build_orchestrator
from wallet_whisperer.core.exceptions import (
    ComputeFailed,
    InvalidAddress,
    UpstreamUnavailable,
    WaitTimeout,
    WhispererError,
)
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

EXIT_CODES: dict[type[WhispererError], int] = {
    InvalidAddress: 2,
    UpstreamUnavailable: 3,
    ComputeFailed: 4,
    WaitTimeout: 5,
}


def exit_code_for(err: WhispererError) -> int:
    for cls, code in EXIT_CODES.items():
        if isinstance(err, cls):
            return code
    return 1


def _check_address(address: str) -> str:
    address = address.strip()
    try:
        Pubkey.from_string(address)
    except Exception as e:
        raise InvalidAddress(f"not a Solana public key: {address!r}") from e
    return address


def format_profile(profile: WalletProfile) -> str:
    """Short human-readable summary."""
    lines = [
        f"wallet:      {profile.wallet_address}",
        f"archetype:   {profile.archetype.value}  (confidence {profile.confidence:.2f}, {profile.trade_count} trades)",
        f"source:      {profile.source_tier.value}  computed {profile.computed_at.isoformat()}",
        "scores:      " + ", ".join(f"{k}={v}" for k, v in profile.scores.items()),
    ]
    if profile.diversification is not None:
        d = profile.diversification
        lines.append(f"portfolio:   {d.style.value} (top3 {d.top3_share:.0%}, {d.token_count} tokens)")
    for label, items in (("flags", profile.flags), ("contradicts", profile.contradictions), ("suggest", profile.suggestions)):
        for item in items:
            lines.append(f"{label + ':':<12} {item}")
    return "\n".join(lines)


async def run(address: str, *, refresh: bool = False, timeout: float | None = None) -> WalletProfile:
    orchestrator = build_orchestrator()
    try:
        return await orchestrator.get_profile(address, force_refresh=refresh, timeout=timeout)
    finally:
        await orchestrator.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compute or fetch the cached behavioral profile of a Solana wallet.",
    )
    parser.add_argument("address", help="Wallet address (base58)")
    parser.add_argument("--refresh", action="store_true", help="Skip both cache tiers and recompute")
    parser.add_argument("--timeout", type=float, default=None, help="Max seconds to wait for a fresh analysis")
    parser.add_argument("--json", action="store_true", help="Print the full profile as JSON")
    args = parser.parse_args(argv)
    try:
        address = _check_address(args.address)
        profile = asyncio.run(run(address, refresh=args.refresh, timeout=args.timeout))
    except WhispererError as e:
        print(f"ERROR [{e.code}]: {e.message}", file=sys.stderr)
        return exit_code_for(e)
    except Exception as e:
        logger.exception("analyze_wallet_failed", error=str(e))
        print("ERROR:", e, file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps(profile.to_dict(), indent=2))
    else:
        print(format_profile(profile))
    return 0


if __name__ == "__main__":
    sys.exit(main())
