"""Webhook publisher — hands records to the n8n automation pipeline.

Fire-and-forget: one POST per document, 2xx means delivered. Failures are
logged and reported as False; nothing is retried or raised to the caller.
"""

from __future__ import annotations

import sys
import time
from typing import Any

import httpx


class PublishError(Exception):
    """Webhook delivery failed (non-2xx status or network error)."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


def _log(msg: str) -> None:
    ts = time.strftime("%H:%M:%S")
    print(f"[webhook {ts}] {msg}", file=sys.stderr)


class WebhookPublisher:
    """POSTs JSON documents to a single webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def _send(self, payload: dict[str, Any]) -> None:
        try:
            response = await self._client.post(self.url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise PublishError(f"request failed: {e}") from e
        if not response.is_success:
            raise PublishError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

    async def publish(self, payload: dict[str, Any]) -> bool:
        """Deliver one document. Returns True on a 2xx response."""
        if not self.enabled:
            return False
        try:
            await self._send(payload)
        except PublishError as e:
            label = payload.get("symbol") or payload.get("mint") or payload.get("ca") or "?"
            _log(f"❌ Failed to send {label}: {e}")
            return False
        return True

    async def close(self) -> None:
        await self._client.aclose()
