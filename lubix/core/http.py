from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from lubix.core.errors import MalformedResponseError, UpstreamError

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


class UpstreamStatusError(UpstreamError):
    """Non-transient HTTP status from an upstream; adapters decide what it means."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"{url} answered {status_code}")
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


@dataclass
class CircuitState:
    failures: int = 0
    open_until: float = 0.0


class ResilientHTTPClient:
    def __init__(
        self,
        timeout: float = 10.0,
        retries: int = 2,
        backoff_base: float = 0.4,
        breaker_threshold: int = 4,
        breaker_cooldown: int = 60,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout
        self.retries = retries
        self.backoff_base = backoff_base
        self.breaker_threshold = breaker_threshold
        self.breaker_cooldown = breaker_cooldown
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._state: dict[str, CircuitState] = {}

    async def close(self) -> None:
        await self._client.aclose()

    def _is_open(self, host: str) -> bool:
        state = self._state.setdefault(host, CircuitState())
        return state.open_until > time.time()

    def _record_failure(self, host: str) -> None:
        state = self._state.setdefault(host, CircuitState())
        state.failures += 1
        if state.failures >= self.breaker_threshold:
            state.open_until = time.time() + self.breaker_cooldown

    def _record_success(self, host: str) -> None:
        self._state[host] = CircuitState()

    async def get_json(
        self, url: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None
    ) -> Any:
        """GET ``url`` and decode JSON.

        Network errors, timeouts and 429/5xx are retried with exponential
        backoff and then raised as :class:`UpstreamError`. Any other non-2xx
        status raises :class:`UpstreamStatusError` immediately. A 2xx body that
        is not JSON raises :class:`MalformedResponseError`.
        """
        host = httpx.URL(url).host or "unknown"
        if self._is_open(host):
            raise UpstreamError(f"Circuit open for {host}")

        last_error: Exception | None = None
        for attempt in range(self.retries + 1):
            started = time.monotonic()
            try:
                response = await self._client.get(url, params=params, headers=headers, timeout=self.timeout)
            except httpx.HTTPError as exc:
                last_error = exc
                self._record_failure(host)
            else:
                latency_ms = int((time.monotonic() - started) * 1000)
                if response.status_code in TRANSIENT_STATUSES:
                    last_error = UpstreamError(f"Transient status {response.status_code}")
                    self._record_failure(host)
                elif response.is_success:
                    self._record_success(host)
                    logger.debug("upstream_ok", extra={"event": "upstream_ok", "provider": host, "latency_ms": latency_ms})
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise MalformedResponseError(f"Invalid JSON from {host}") from exc
                else:
                    # the host is healthy, the resource is not
                    self._record_success(host)
                    raise UpstreamStatusError(url, response.status_code)

            if attempt >= self.retries:
                break
            await asyncio.sleep(self.backoff_base * (2**attempt))

        logger.warning(
            "upstream_failed",
            extra={"event": "upstream_failed", "provider": host, "error": str(last_error)},
        )
        raise UpstreamError(f"Failed to fetch {url}: {last_error}")
