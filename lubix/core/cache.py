from __future__ import annotations

import logging
from typing import Any

import orjson
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisCache:
    """Best-effort JSON cache. Every failure degrades to a miss.

    Only display data lives here (sentiment, market pulse) together with
    de-duplication and rate-limit counters; session state never does.
    """

    def __init__(self, redis_url: str, namespace: str = "lubix") -> None:
        self.redis = Redis.from_url(redis_url, decode_responses=False)
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def close(self) -> None:
        await self.redis.aclose()

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await self.redis.get(self._key(key))
            if not raw:
                return None
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("cache_json_decode_error", extra={"event": "cache_json_decode_error", "error": key})
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_get_error", extra={"event": "cache_get_error", "error": str(exc)})
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self.redis.set(self._key(key), orjson.dumps(value), ex=ttl)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_set_error", extra={"event": "cache_set_error", "error": str(exc)})

    async def incr_with_expiry(self, key: str, ttl: int) -> int:
        try:
            pipe = self.redis.pipeline()
            pipe.incr(self._key(key))
            pipe.expire(self._key(key), ttl)
            count, _ = await pipe.execute()
            return int(count)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_incr_error", extra={"event": "cache_incr_error", "error": str(exc)})
            return 0

    async def set_if_absent(self, key: str, ttl: int) -> bool:
        try:
            return bool(await self.redis.set(self._key(key), b"1", nx=True, ex=ttl))
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_set_if_absent_error", extra={"event": "cache_set_if_absent_error", "error": str(exc)})
            return True
