"""
CacheEntry: a value with the time it was stored and its time-to-live.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """
    Hit iff now < stored_at + ttl. Expired entries are misses and may be evicted.
    """

    value: T
    stored_at: float
    """Unix seconds."""
    ttl: float
    """Seconds."""

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def is_live(self, now: float) -> bool:
        return now < self.expires_at

    def to_dict(self, encode: Callable[[T], Any]) -> dict[str, Any]:
        return {"value": encode(self.value), "stored_at": self.stored_at, "ttl": self.ttl}

    @classmethod
    def from_dict(cls, data: dict[str, Any], decode: Callable[[Any], T]) -> "CacheEntry[T]":
        return cls(value=decode(data["value"]), stored_at=float(data["stored_at"]), ttl=float(data["ttl"]))
