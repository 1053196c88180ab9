"""
Data models for ingestion: raw provider records, canonical trades, holdings.

RawRecord is the strict boundary type for Helius enhanced transactions. Only
the fields listed here are read; anything else in the provider payload is
ignored. Missing amounts stay None instead of being coerced to zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from wallet_whisperer.core.exceptions import InvalidRawRecord

LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
STABLECOIN_MINTS = frozenset({USDC_MINT, USDT_MINT})
# Mints that act as the "cash" leg of a trade
QUOTE_MINTS = STABLECOIN_MINTS | {SOL_MINT}


def _float_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _str_or_empty(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class TradeDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"
    SWAP = "swap"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class NativeTransfer:
    """SOL movement inside a transaction; amount in lamports (None if the provider omitted it)."""

    from_account: str
    to_account: str
    lamports: int | None

    @classmethod
    def from_helius(cls, item: dict[str, Any]) -> "NativeTransfer":
        amount = _float_or_none(item.get("amount"))
        return cls(
            from_account=_str_or_empty(item.get("fromUserAccount")),
            to_account=_str_or_empty(item.get("toUserAccount")),
            lamports=int(amount) if amount is not None else None,
        )


@dataclass(frozen=True)
class TokenTransfer:
    """SPL token movement; token_amount is already decimal-adjusted by the provider."""

    from_account: str
    to_account: str
    mint: str
    token_amount: float | None

    @classmethod
    def from_helius(cls, item: dict[str, Any]) -> "TokenTransfer":
        return cls(
            from_account=_str_or_empty(item.get("fromUserAccount")),
            to_account=_str_or_empty(item.get("toUserAccount")),
            mint=_str_or_empty(item.get("mint")),
            token_amount=_float_or_none(item.get("tokenAmount")),
        )


@dataclass(frozen=True)
class RawRecord:
    """
    One provider transaction record (Helius enhanced transaction format).

    Unit of work handed from the transaction source to the normalizer.
    """

    signature: str
    timestamp: int | None
    """Unix timestamp (seconds); None if the provider omitted it."""
    fee_lamports: int | None
    fee_payer: str
    source: str
    """Provider source label, e.g. JUPITER, RAYDIUM, PUMP_FUN, SYSTEM_PROGRAM."""
    type: str
    """Provider transaction type, e.g. SWAP, TRANSFER, UNKNOWN."""
    native_transfers: tuple[NativeTransfer, ...] = ()
    token_transfers: tuple[TokenTransfer, ...] = ()
    program_ids: tuple[str, ...] = ()
    failed: bool = False

    @classmethod
    def from_helius(cls, item: dict[str, Any]) -> "RawRecord":
        """Build from a single Helius enhanced transaction; raises InvalidRawRecord without a signature."""
        if not isinstance(item, dict):
            raise InvalidRawRecord("raw record must be an object", got=type(item).__name__)
        signature = _str_or_empty(item.get("signature"))
        if not signature:
            raise InvalidRawRecord("raw record has no signature")
        ts = _float_or_none(item.get("timestamp"))
        fee = _float_or_none(item.get("fee"))
        native = tuple(
            NativeTransfer.from_helius(t)
            for t in item.get("nativeTransfers") or []
            if isinstance(t, dict)
        )
        tokens = tuple(
            TokenTransfer.from_helius(t)
            for t in item.get("tokenTransfers") or []
            if isinstance(t, dict)
        )
        programs = tuple(
            _str_or_empty(ix.get("programId"))
            for ix in item.get("instructions") or []
            if isinstance(ix, dict) and ix.get("programId")
        )
        return cls(
            signature=signature,
            timestamp=int(ts) if ts is not None else None,
            fee_lamports=int(fee) if fee is not None else None,
            fee_payer=_str_or_empty(item.get("feePayer")),
            source=_str_or_empty(item.get("source")).upper(),
            type=_str_or_empty(item.get("type")).upper(),
            native_transfers=native,
            token_transfers=tokens,
            program_ids=programs,
            failed=bool(item.get("transactionError")),
        )


@dataclass(frozen=True)
class Trade:
    """
    One economically meaningful on-chain event attributable to the wallet.

    Immutable once normalized; the ledger is append-only and keyed by signature.
    """

    signature: str
    timestamp: datetime
    direction: TradeDirection
    token_mint: str
    token_category: str | None
    """Resolved category (Meme, Utility, ...); None when resolution failed."""
    amount_raw: float
    """Token units (decimal-adjusted) of token_mint moved by this trade."""
    amount_usd: float | None
    """USD value of the trade; None when no price was available (0.0 is a real value)."""
    fee_paid: float
    """Network fee in SOL."""

    @property
    def unit_price_usd(self) -> float | None:
        if self.amount_usd is None or not self.amount_raw:
            return None
        return self.amount_usd / self.amount_raw

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "timestamp": self.timestamp.isoformat(),
            "direction": self.direction.value,
            "token_mint": self.token_mint,
            "token_category": self.token_category,
            "amount_raw": self.amount_raw,
            "amount_usd": self.amount_usd,
            "fee_paid": self.fee_paid,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Trade":
        ts = datetime.fromisoformat(data["timestamp"])
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            signature=data["signature"],
            timestamp=ts,
            direction=TradeDirection(data["direction"]),
            token_mint=data["token_mint"],
            token_category=data.get("token_category"),
            amount_raw=float(data.get("amount_raw") or 0.0),
            amount_usd=_float_or_none(data.get("amount_usd")),
            fee_paid=float(data.get("fee_paid") or 0.0),
        )


@dataclass(frozen=True)
class TokenHolding:
    mint: str
    amount: float
    usd_value: float | None
    category: str | None = None
    symbol: str | None = None


@dataclass(frozen=True)
class Holdings:
    """Current fungible positions of a wallet."""

    wallet: str
    tokens: tuple[TokenHolding, ...] = field(default_factory=tuple)

    @property
    def total_usd(self) -> float:
        return sum(t.usd_value for t in self.tokens if t.usd_value is not None)

    @property
    def token_count(self) -> int:
        return len(self.tokens)
