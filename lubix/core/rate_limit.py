from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol


class CounterStore(Protocol):
    async def incr_with_expiry(self, key: str, ttl: int) -> int: ...


@dataclass
class LimitResult:
    allowed: bool
    remaining: int
    reset_seconds: int


class RateLimiter:
    """Requests per chat per wall-clock minute."""

    def __init__(self, cache: CounterStore, limit: int) -> None:
        self.cache = cache
        self.limit = limit

    async def check(self, chat_id: int, now: datetime | None = None) -> LimitResult:
        now = now or datetime.now(timezone.utc)
        key = f"rl:req:{chat_id}:{now.strftime('%Y%m%d%H%M')}"
        count = await self.cache.incr_with_expiry(key, 60)
        # the cache reports 0 when redis is down, which never locks a chat out
        return LimitResult(
            allowed=count <= self.limit,
            remaining=max(self.limit - count, 0),
            reset_seconds=60 - now.second,
        )
