"""
FastAPI application: wallet profile endpoints over the tiered orchestrator.

Errors are returned as {"error": code, "detail": message} with a status per
error code, so clients can tell a failure apart from a profile.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from solders.pubkey import Pubkey

from wallet_whisperer import __version__
from wallet_whisperer.analytics.orchestrator import ProfileOrchestrator
from wallet_whisperer.core.exceptions import InvalidAddress, WhispererError
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

# Error code -> HTTP status
ERROR_STATUS: dict[str, int] = {
    "invalid_address": 422,
    "upstream_unavailable": 503,
    "rate_limited": 503,
    "cache_unavailable": 503,
    "store_unavailable": 503,
    "compute_failed": 502,
    "wait_timeout": 504,
}

MAX_WAIT_SEC = 120.0


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------


class DiversificationModel(BaseModel):
    style: str = Field(..., description="concentrated | balanced | over-diversified")
    top3_share: float = Field(..., ge=0, le=1, description="USD share of the three largest categories")
    token_count: int = Field(..., ge=0)
    category_exposure: dict[str, float] = Field(default_factory=dict, description="Category -> USD share")


class WalletProfileResponse(BaseModel):
    """GET /wallets/{address}/profile response."""

    wallet_address: str = Field(..., description="Wallet address (base58)")
    computed_at: str = Field(..., description="ISO 8601 time the profile was computed")
    source_tier: str = Field(..., description="hot | durable | fresh (diagnostic)")
    scores: dict[str, int] = Field(..., description="risk, fomo, patience, conviction, degen, whisperer (0-100)")
    archetype: str
    trade_count: int = Field(..., ge=0)
    confidence: float = Field(..., ge=0, le=1)
    model_version: str
    sizing_consistency: int = Field(..., ge=0, le=100)
    diversification: DiversificationModel | None = None
    trades_per_day: float = Field(..., ge=0)
    high_frequency: bool
    spike_entry_rate: float = Field(..., ge=0, le=1)
    median_hold_hours: float | None = None
    contradictions: list[str] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Stable error code")
    detail: str = Field(..., description="Human-readable message")


class HealthResponse(BaseModel):
    status: str
    version: str
    hot_tier: bool | None = None
    durable_tier: bool | None = None
    inflight: int = 0
    stats: dict[str, int] = Field(default_factory=dict)


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    422: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_orchestrator(request: Request) -> ProfileOrchestrator:
    return request.app.state.orchestrator


def valid_address(address: str) -> str:
    """Path dependency: the address must parse as a Solana public key."""
    address = (address or "").strip()
    try:
        Pubkey.from_string(address)
    except Exception as e:
        raise InvalidAddress("Invalid Solana wallet address", address=address[:64]) from e
    return address


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(orchestrator: ProfileOrchestrator | None = None) -> FastAPI:
    """
    Build the ASGI app. With no orchestrator, one is built from Settings on
    startup and closed on shutdown; an injected orchestrator is left open.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "orchestrator", None) is None:
            from wallet_whisperer.analytics.factory import build_orchestrator

            owned = build_orchestrator()
            app.state.orchestrator = owned
        logger.info("api_started", version=__version__)
        yield
        if owned is not None:
            await owned.aclose()
        logger.info("api_stopped")

    app = FastAPI(
        title="Wallet Whisperer API",
        description="Behavioral wallet profiles served from hot cache, durable store or a fresh analysis.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    @app.exception_handler(WhispererError)
    async def whisperer_error_handler(request: Request, exc: WhispererError) -> JSONResponse:
        status = ERROR_STATUS.get(exc.code, 500)
        if status >= 500:
            logger.warning("api_request_failed", path=request.url.path, error_code=exc.code, error=exc.message)
        return JSONResponse(status_code=status, content={"error": exc.code, "detail": exc.message})

    @app.get(
        "/wallets/{address}/profile",
        response_model=WalletProfileResponse,
        responses=ERROR_RESPONSES,
    )
    async def get_wallet_profile(
        address: str = Depends(valid_address),
        timeout: float | None = Query(None, gt=0, le=MAX_WAIT_SEC, description="Max seconds to wait for a fresh analysis"),
        orchestrator: ProfileOrchestrator = Depends(get_orchestrator),
    ) -> WalletProfileResponse:
        """Return the wallet profile from cache, or compute it once if no fresh copy exists."""
        profile = await orchestrator.get_profile(address, timeout=timeout)
        return WalletProfileResponse(**profile.to_dict())

    @app.post(
        "/wallets/{address}/profile/refresh",
        response_model=WalletProfileResponse,
        responses=ERROR_RESPONSES,
    )
    async def refresh_wallet_profile(
        address: str = Depends(valid_address),
        timeout: float | None = Query(None, gt=0, le=MAX_WAIT_SEC),
        orchestrator: ProfileOrchestrator = Depends(get_orchestrator),
    ) -> WalletProfileResponse:
        """Recompute the profile, bypassing both tiers (joins a computation already running)."""
        logger.info("profile_refresh_requested", wallet_id=address[:16])
        profile = await orchestrator.get_profile(address, force_refresh=True, timeout=timeout)
        return WalletProfileResponse(**profile.to_dict())

    @app.delete("/wallets/{address}/profile", status_code=204, responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}})
    async def invalidate_wallet_profile(
        address: str = Depends(valid_address),
        orchestrator: ProfileOrchestrator = Depends(get_orchestrator),
    ) -> None:
        """Invalidate cached copies; the next read computes a fresh profile."""
        await orchestrator.invalidate(address)

    @app.get("/health", response_model=HealthResponse)
    async def health(orchestrator: ProfileOrchestrator = Depends(get_orchestrator)) -> HealthResponse:
        """Liveness plus tier reachability and cache counters."""
        tiers = await orchestrator.health()
        durable_ok = tiers.get("durable_tier")
        return HealthResponse(
            status="ok" if durable_ok is not False else "degraded",
            version=__version__,
            hot_tier=tiers.get("hot_tier"),
            durable_tier=durable_ok,
            inflight=tiers.get("inflight", 0),
            stats=orchestrator.stats(),
        )

    return app


app = create_app()
