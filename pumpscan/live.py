"""Live graduation listener — PumpPortal WebSocket feed.

Alternate pipeline to the poll scanner: subscribes to PumpPortal's new-token
stream and to trades on the Pump.fun migration account, classifies every
message, and forwards each graduation to the webhook the moment it is seen.
Lower latency than polling, no holder/age filtering.

Usage:
    python3 -m pumpscan --mode live
"""

from __future__ import annotations

import asyncio
import json
import sys
import time
from typing import Any, Callable, Iterable

import websockets
from pydantic import ValidationError

from pumpscan.clients.webhook import WebhookPublisher
from pumpscan.config import Settings
from pumpscan.models import GraduationEvent
from pumpscan.state import SeenSet

MIGRATION_ACCOUNT = "39azUYFWPz3VHgKCf3VChUwbpURdCHRxjWVowf5jUJjg"

GRADUATION_TX_TYPES = frozenset({
    "migrate",
    "migration",
    "graduate",
    "graduated",
    "graduation",
    "complete",
    "raydium_migration",
})
TRADE_TX_TYPES = frozenset({"buy", "sell", "trade"})

MINT_FIELDS = ("mint", "ca", "tokenAddress", "token_address", "token")
LIQUIDITY_FIELDS = ("liquidityUsd", "liquidity_usd", "liquidity")
MARKET_CAP_FIELDS = ("usdMarketCap", "marketCapUsd", "market_cap")


class ParseError(Exception):
    """A feed message looked like a graduation but could not be decoded."""


def _log(msg: str) -> None:
    ts = time.strftime("%H:%M:%S")
    print(f"[live {ts}] {msg}", file=sys.stderr)


def _first_present(data: dict[str, Any], fields: Iterable[str]) -> Any | None:
    for name in fields:
        value = data.get(name)
        if value not in (None, ""):
            return value
    return None


def _first_number(data: dict[str, Any], fields: Iterable[str]) -> float:
    for name in fields:
        try:
            return float(data[name])
        except (KeyError, TypeError, ValueError):
            continue
    return 0.0


def is_graduation(data: dict[str, Any]) -> bool:
    """True when any graduation rule matches the decoded message."""
    tx_type = str(data.get("txType") or "").lower()
    if tx_type in GRADUATION_TX_TYPES:
        return True
    if tx_type == "create" and data.get("pool"):
        return True
    if data.get("migrated") is True:
        return True
    if tx_type in TRADE_TX_TYPES and data.get("bondingCurveComplete") is True:
        return True
    return False


def build_event(data: dict[str, Any]) -> GraduationEvent:
    """GraduationEvent from a message already classified as a graduation."""
    mint = _first_present(data, MINT_FIELDS)
    if not mint or not isinstance(mint, str):
        raise ParseError(f"no mint in graduation message (keys: {sorted(data)[:10]})")

    try:
        return GraduationEvent(
            mint=mint,
            symbol=str(_first_present(data, ("symbol", "name")) or "UNKNOWN"),
            name=str(_first_present(data, ("name", "symbol")) or "UNKNOWN"),
            liquidity_usd=_first_number(data, LIQUIDITY_FIELDS),
            market_cap=_first_number(data, MARKET_CAP_FIELDS),
            raw=data,
        )
    except ValidationError as e:
        raise ParseError(str(e)) from e


def classify_message(raw: str | bytes) -> GraduationEvent | None:
    """GraduationEvent for a graduation message, None for anything else.

    Non-JSON and non-object messages are ignored. Graduations without a
    usable mint are logged and dropped.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or not is_graduation(data):
        return None

    try:
        return build_event(data)
    except ParseError as e:
        _log(f"⚠️  Dropping graduation message: {e}")
        return None


class GraduationListener:
    """Reconnecting PumpPortal subscriber that publishes graduations once each."""

    def __init__(
        self,
        settings: Settings,
        publisher: WebhookPublisher,
        seen: SeenSet | None = None,
        connect: Callable[..., Any] | None = None,
    ):
        self.settings = settings
        self.publisher = publisher
        self.seen = seen if seen is not None else SeenSet(settings.dedup_max_entries)
        self._connect = connect or websockets.connect
        self._stop_event = asyncio.Event()
        self.reconnect_delay = settings.reconnect_initial_seconds
        self.published = 0

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def handle_message(self, raw: str | bytes) -> bool:
        """Classify, dedup and publish one feed message. True if a publish was attempted."""
        event = classify_message(raw)
        if event is None:
            return False
        if not self.seen.add(event.mint):
            return False

        _log(f"🎓 GRADUATION: {event.symbol} ({event.mint[:8]}...)")
        try:
            delivered = await asyncio.wait_for(
                self.publisher.publish(event.to_payload()),
                timeout=self.settings.publish_timeout_seconds,
            )
        except asyncio.TimeoutError:
            _log(f"   ❌ Webhook timed out for {event.mint[:8]}...")
            delivered = False
        except Exception as e:
            _log(f"   ❌ Webhook failed for {event.mint[:8]}...: {e}")
            delivered = False
        if delivered:
            self.published += 1
            _log(f"   ✅ Sent to n8n: {event.symbol}")
        return True

    async def subscribe(self, ws: Any) -> None:
        await ws.send(json.dumps({"method": "subscribeNewToken"}))
        await ws.send(json.dumps({"method": "subscribeAccountTrade", "keys": [MIGRATION_ACCOUNT]}))
        _log("📡 Subscribed to new tokens + migration account trades")

    async def _keepalive(self, ws: Any) -> None:
        interval = self.settings.ping_interval_seconds
        while True:
            await asyncio.sleep(interval)
            await ws.ping()

    async def _session(self) -> None:
        """One connection: subscribe, then consume until the socket closes."""
        _log(f"🔌 Connecting to {self.settings.feed_url}")
        async with self._connect(self.settings.feed_url, ping_interval=None) as ws:
            _log("✅ Connected to PumpPortal")
            self.reconnect_delay = self.settings.reconnect_initial_seconds
            await self.subscribe(ws)
            keepalive = asyncio.create_task(self._keepalive(ws))
            try:
                async for message in ws:
                    await self.handle_message(message)
                    if self.stopped:
                        break
            finally:
                keepalive.cancel()
                try:
                    await keepalive
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    _log(f"   Keep-alive ended: {e}")

    def next_delay(self) -> float:
        """Current reconnect delay; doubles the stored delay up to the ceiling."""
        delay = self.reconnect_delay
        self.reconnect_delay = min(delay * 2, self.settings.reconnect_max_seconds)
        return delay

    async def run(self) -> None:
        """Connect and reconnect forever until stopped."""
        while not self.stopped:
            try:
                await self._session()
                _log("🔌 Connection closed")
            except websockets.exceptions.ConnectionClosed as e:
                _log(f"🔌 Connection closed: {e}")
            except (OSError, websockets.exceptions.WebSocketException) as e:
                _log(f"❌ WebSocket error: {e}")
            except Exception as e:
                _log(f"❌ Listener error: {type(e).__name__}: {e}")

            if self.stopped:
                break
            delay = self.next_delay()
            _log(f"🔄 Reconnecting in {delay:g}s...")
            await asyncio.sleep(delay)

        _log(f"👋 Listener stopped ({len(self.seen)} mints seen, {self.published} published)")
