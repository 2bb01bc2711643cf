"""Helius client — Solana JSON-RPC + DAS API.

Provides:
- Raw JSON-RPC calls (getSignaturesForAddress, getTransaction, ...)
- Holder count via DAS getTokenAccounts
- Asset metadata via DAS getAsset

Every call is charged to the shared PollCycleState: 1 credit for plain RPC,
10 for DAS methods. These are approximations of Helius pricing. When the
state carries a per-cycle budget, a call that would exceed it is refused
before it is sent.
"""

from __future__ import annotations

import time
from typing import Any

from pumpscan.clients.base import BaseClient, TransportError
from pumpscan.state import PollCycleState

RPC_CREDITS = 1
DAS_CREDITS = 10


class CreditBudgetExceeded(TransportError):
    """The cycle's credit budget has no room for another call."""

    def __init__(self, message: str):
        super().__init__(message, provider="helius")


class HeliusClient:
    """Helius RPC endpoint (api key embedded in the URL)."""

    def __init__(
        self,
        endpoint: str,
        state: PollCycleState | None = None,
        rate_limit: float = 10.0,
        timeout: float = 15.0,
        **client_kwargs: Any,
    ):
        self.endpoint = endpoint
        self.state = state or PollCycleState()
        self._rpc = BaseClient(
            base_url=endpoint,
            rate_limit=rate_limit,
            timeout=timeout,
            provider_name="helius",
            **client_kwargs,
        )

    async def call(self, method: str, params: Any = None, credits: int = RPC_CREDITS) -> Any:
        """Issue one JSON-RPC request and return its ``result``.

        Raises TransportError on HTTP failure or a JSON-RPC error member, and
        CreditBudgetExceeded (without sending anything) when the cycle budget
        cannot cover ``credits``.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": int(time.time() * 1000),
            "method": method,
            "params": params if params is not None else [],
        }
        if not self.state.reserve(credits):
            raise CreditBudgetExceeded(
                f"Credit budget of {self.state.cycle_budget} reached, {method} not sent"
            )
        answered = False
        try:
            data = await self._rpc.post(json_data=payload)
            answered = True
        except TransportError as e:
            answered = bool(e.status_code)
            raise
        finally:
            self.state.settle(credits, answered)

        if not isinstance(data, dict):
            raise TransportError(f"Malformed RPC response for {method}", provider="helius")
        if data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise TransportError(f"RPC Error: {message}", provider="helius")
        return data.get("result")

    async def get_signatures_for_address(
        self, address: str, limit: int = 100, before: str | None = None
    ) -> list[dict[str, Any]]:
        """Newest-first signature records for ``address``, paging with ``before``."""
        options: dict[str, Any] = {"limit": limit}
        if before:
            options["before"] = before
        result = await self.call("getSignaturesForAddress", [address, options])
        return result if isinstance(result, list) else []

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        """Parsed transaction, or None when the node does not have it."""
        result = await self.call(
            "getTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}],
        )
        return result if isinstance(result, dict) else None

    async def fetch_holder_count(self, mint: str) -> int:
        """Number of non-zero token accounts for ``mint`` (DAS ``total``)."""
        result = await self.call(
            "getTokenAccounts",
            {"mint": mint, "limit": 1, "options": {"showZeroBalance": False}},
            credits=DAS_CREDITS,
        )
        if not isinstance(result, dict):
            return 0
        try:
            return max(int(result.get("total") or 0), 0)
        except (TypeError, ValueError):
            return 0

    async def fetch_asset(self, mint: str) -> dict[str, Any] | None:
        """DAS asset record (name, symbol, token_info...) or None."""
        result = await self.call("getAsset", {"id": mint}, credits=DAS_CREDITS)
        return result if isinstance(result, dict) else None

    async def close(self) -> None:
        await self._rpc.close()
