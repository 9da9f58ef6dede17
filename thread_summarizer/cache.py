from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from .config_schema import CacheConfig

DEFAULT_TTL_SECONDS = 300.0

T = TypeVar("T")

ClockFn = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    data: T
    timestamp: float


def single_page_key(location: str, page: int) -> str:
    return f"{location}:single:{page}"


def multi_page_key(location: str, from_page: int, to_page: int) -> str:
    return f"{location}:multi:{from_page}-{to_page}"


def format_cache_age(age_seconds: float) -> str:
    minutes = int(age_seconds // 60)
    if minutes < 1:
        return "hace unos segundos"
    return f"hace {minutes} min"


def _is_error(value: object) -> bool:
    return bool(getattr(value, "error", None))


class SummaryCache(Generic[T]):
    """
    In-process summary cache with a fixed time-to-live.

    Expiry is checked when an entry is read; nothing sweeps in the background.
    Values whose `error` attribute is set are never stored.
    """

    def __init__(self, *, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: ClockFn | None = None) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._ttl = float(ttl_seconds)
        self._clock = clock or time.time
        self._entries: dict[str, CacheEntry[T]] = {}

    @classmethod
    def from_config(cls, cfg: CacheConfig, *, clock: ClockFn | None = None) -> "SummaryCache[T]":
        return cls(ttl_seconds=cfg.ttl_seconds, clock=clock)

    def __len__(self) -> int:
        return len(self._entries)

    def _live_entry(self, key: str) -> CacheEntry[T] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self._ttl:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> T | None:
        entry = self._live_entry(key)
        return entry.data if entry is not None else None

    def set(self, key: str, value: T) -> None:
        if _is_error(value):
            return
        self._entries[key] = CacheEntry(data=value, timestamp=self._clock())

    def age_of(self, key: str) -> float | None:
        """Seconds since the entry was stored, or None if absent or expired."""
        entry = self._live_entry(key)
        if entry is None:
            return None
        return max(0.0, self._clock() - entry.timestamp)

    def clear(self) -> None:
        self._entries.clear()
