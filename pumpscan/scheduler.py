"""Poll scheduler — runs the survivor pipeline on a fixed cadence.

One cycle:
1. Discover Pump.fun mints older than the minimum age
2. Enrich them with holder count + metadata (concurrently), dropping thin ones
3. Rank by holders and keep the top K
4. Print survivors and POST each to the webhook

A cycle never overlaps the next one. Any error inside a cycle is caught and
logged, the cycle is marked failed, and the next tick runs as usual.
"""

from __future__ import annotations

import asyncio
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pumpscan.clients.webhook import WebhookPublisher
from pumpscan.config import Settings
from pumpscan.discovery import discover_graduations
from pumpscan.enrichment import enrich_batch
from pumpscan.models import SurvivorRecord
from pumpscan.ranking import format_survivor, rank_survivors
from pumpscan.state import PollCycleState

SUCCESS = "success"
FAILED = "failed"


def _log(msg: str) -> None:
    ts = time.strftime("%H:%M:%S")
    print(f"[poll {ts}] {msg}", file=sys.stderr)


@dataclass
class CycleResult:
    """Outcome of one poll cycle."""
    status: str = SUCCESS
    discovered: int = 0
    enriched: int = 0
    survivors: int = 0
    delivered: int = 0
    credits: int = 0
    error: str = ""


class PollScheduler:
    """Drives discovery → enrichment → ranking → publishing."""

    def __init__(
        self,
        settings: Settings,
        client: Any,
        publisher: WebhookPublisher | None = None,
        state: PollCycleState | None = None,
    ):
        self.settings = settings
        self.client = client
        self.publisher = publisher
        if state is None:
            client_state = getattr(client, "state", None)
            state = client_state if isinstance(client_state, PollCycleState) else PollCycleState()
        self.state = state
        self.state.cycle_budget = settings.credit_budget

    async def publish(self, survivors: list[SurvivorRecord]) -> int:
        """Send each survivor to the webhook. Returns the number delivered."""
        if self.publisher is None or not self.publisher.enabled:
            _log("   ⚠️  PUBLISHER_URL not set, skipping webhook")
            return 0

        timeout = self.settings.publish_timeout_seconds

        async def _send(survivor: SurvivorRecord) -> bool:
            try:
                delivered = await asyncio.wait_for(
                    self.publisher.publish(survivor.to_payload()), timeout=timeout
                )
            except asyncio.TimeoutError:
                _log(f"   ❌ Webhook timed out for {survivor.symbol} ({survivor.mint[:8]}...)")
                return False
            except Exception as e:
                _log(f"   ❌ Webhook failed for {survivor.symbol} ({survivor.mint[:8]}...): {e}")
                return False
            if delivered:
                _log(f"   ✅ Sent to n8n: {survivor.symbol} ({survivor.mint[:8]}...)")
            return delivered

        results = await asyncio.gather(*[_send(s) for s in survivors])
        return sum(1 for r in results if r)

    async def run_cycle(self) -> CycleResult:
        """Run one isolated poll cycle."""
        settings = self.settings
        start_credits = self.state.begin_poll()
        result = CycleResult()

        _log("=" * 60)
        _log(f"🔍 POLL #{self.state.poll_count} - {datetime.now(timezone.utc).isoformat()}")
        _log("=" * 60)

        try:
            candidates = await discover_graduations(
                self.client,
                settings.min_age_minutes,
                max_pages=settings.max_pages,
                page_size=settings.page_size,
                sample_size=settings.sample_size,
                throttle_seconds=settings.throttle_seconds,
                age_margin=settings.age_margin,
            )
            result.discovered = len(candidates)
            if not candidates:
                _log("   No graduations found this poll")
                return result

            _log(f"📊 Enriching {len(candidates)} mints with holder data...")
            enriched = await enrich_batch(
                self.client,
                candidates,
                settings.min_holders,
                max_concurrent=settings.enrich_concurrency or None,
            )
            result.enriched = len(enriched)
            _log(f"   {len(enriched)} mints passed holder filter (>= {settings.min_holders})")
            if not enriched:
                _log("   No survivors this poll")
                return result

            survivors = rank_survivors(enriched, settings.top_k)
            result.survivors = len(survivors)
            _log(f"🏆 TOP {len(survivors)} SURVIVORS:")
            for rank, survivor in enumerate(survivors, start=1):
                _log(format_survivor(survivor, rank))

            result.delivered = await self.publish(survivors)

        except Exception as e:
            result.status = FAILED
            result.error = str(e)
            _log(f"❌ Poll error: {e}")

        finally:
            result.credits = self.state.end_poll(start_credits)
            _log(f"📈 Credits used this poll: ~{result.credits}")
            _log(f"📈 Total credits used: ~{self.state.credits_used}")
            _log(f"⏰ Next poll in {settings.poll_interval_ms / 60000:g} minutes")

        return result

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Run a cycle now, then once per interval until ``stop_event`` is set."""
        interval = self.settings.poll_interval_seconds
        while not stop_event.is_set():
            started = time.monotonic()
            await self.run_cycle()
            remaining = max(interval - (time.monotonic() - started), 0.0)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                continue

        _log(f"📈 Final credits used: ~{self.state.credits_used}")
