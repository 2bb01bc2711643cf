"""Base HTTP client for the scanner's transport layer.

Provides:
- Rate limiting (token bucket per client)
- Automatic retry with exponential backoff on connection errors, 429 and 5xx
- Timeout handling
- Structured transport errors

The Helius client builds on this. Webhook delivery does not, because
publishing is never retried.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx


@dataclass
class RateLimiter:
    """Simple token-bucket rate limiter."""

    max_per_second: float
    _tokens: float = field(init=False)
    _last_refill: float = field(init=False)

    def __post_init__(self) -> None:
        self._tokens = self.max_per_second
        self._last_refill = time.monotonic()

    def acquire(self) -> float:
        """Acquire a token. Returns wait time in seconds (0 if immediate)."""
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self.max_per_second, self._tokens + elapsed * self.max_per_second)
        self._last_refill = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return 0.0

        return (1.0 - self._tokens) / self.max_per_second


class TransportError(Exception):
    """A remote call failed (HTTP, connection, decoding or JSON-RPC error)."""

    def __init__(self, message: str, status_code: int = 0, provider: str = "", retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider
        self.retryable = retryable


class BaseClient:
    """HTTP client with retry and rate limiting.

    Usage:
        client = BaseClient(
            base_url="https://mainnet.helius-rpc.com/?api-key=xxx",
            rate_limit=10.0,  # 10 req/sec
            timeout=15.0,
            provider_name="helius",
        )
        data = await client.post("", json_data={"jsonrpc": "2.0", ...})
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        rate_limit: float = 10.0,
        timeout: float = 15.0,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        backoff_multiplier: float = 2.0,
        provider_name: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.provider_name = provider_name
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.backoff_multiplier = backoff_multiplier
        self._rate_limiter = RateLimiter(max_per_second=rate_limit)
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json", **(headers or {})},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def post(
        self,
        json_data: dict[str, Any] | None = None,
        url: str | None = None,
    ) -> Any:
        """POST request with rate limiting and retry. Returns decoded JSON."""
        return await self._request("POST", url or self.base_url, json_data=json_data)

    async def _request(
        self,
        method: str,
        url: str,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Execute request with retry and backoff."""
        last_error: TransportError | None = None
        delay = self.backoff_base

        for attempt in range(self.max_retries + 1):
            wait = self._rate_limiter.acquire()
            if wait > 0:
                await asyncio.sleep(wait)

            try:
                response = await self._client.request(method, url, json=json_data)

                if response.status_code == 429:
                    raise TransportError(
                        f"Rate limited by {self.provider_name}",
                        status_code=429,
                        provider=self.provider_name,
                        retryable=True,
                    )

                if response.status_code >= 500:
                    raise TransportError(
                        f"Server error from {self.provider_name}: {response.status_code}",
                        status_code=response.status_code,
                        provider=self.provider_name,
                        retryable=True,
                    )

                if response.status_code >= 400:
                    raise TransportError(
                        f"Client error from {self.provider_name}: {response.status_code} - {response.text[:200]}",
                        status_code=response.status_code,
                        provider=self.provider_name,
                        retryable=False,
                    )

                try:
                    return response.json()
                except ValueError as e:
                    raise TransportError(
                        f"Undecodable response from {self.provider_name}: {e}",
                        status_code=response.status_code,
                        provider=self.provider_name,
                    ) from e

            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = TransportError(
                    f"Connection error to {self.provider_name}: {e}",
                    provider=self.provider_name,
                    retryable=True,
                )
            except TransportError as e:
                last_error = e
                if not e.retryable:
                    raise

            if attempt < self.max_retries:
                await asyncio.sleep(min(delay, self.backoff_max))
                delay *= self.backoff_multiplier

        raise last_error or TransportError(f"Request failed after {self.max_retries} retries")
