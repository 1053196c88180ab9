"""
Application-level exceptions.

Every error carries a stable ``code`` so the API and worker paths can map it
to a status code and a consistent JSON body without string matching.

Taxonomy:
- UpstreamUnavailable: transaction source unreachable or timed out.
- RateLimited: upstream asked us to slow down (429); retryable.
- ComputeFailed: a required scoring input is missing or an invariant broke.
- CacheUnavailable: hot tier down; callers treat it as a miss.
- StoreUnavailable: durable store failed an operation the caller needs.
- InvalidRawRecord: provider record without the fields the normalizer needs.
- WaitTimeout: a caller stopped waiting for an in-flight computation.
- InvalidAddress: request address is not a Solana public key.
"""

from __future__ import annotations

from typing import Any


class WhispererError(Exception):
    """Base class for all Wallet Whisperer errors."""

    code = "whisperer_error"

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.details:
            out["context"] = self.details
        return out


class UpstreamUnavailable(WhispererError):
    code = "upstream_unavailable"


class RateLimited(UpstreamUnavailable):
    """
    Upstream returned 429. Subclasses UpstreamUnavailable so code that only
    cares about "upstream failed" can catch one type.
    """

    code = "rate_limited"

    def __init__(self, message: str = "", retry_after: float | None = None, **details: Any) -> None:
        super().__init__(message, **details)
        self.retry_after = retry_after


class ComputeFailed(WhispererError):
    code = "compute_failed"


class CacheUnavailable(WhispererError):
    code = "cache_unavailable"


class StoreUnavailable(WhispererError):
    code = "store_unavailable"


class InvalidRawRecord(WhispererError):
    code = "invalid_raw_record"


class WaitTimeout(WhispererError):
    code = "wait_timeout"


class InvalidAddress(WhispererError):
    code = "invalid_address"
