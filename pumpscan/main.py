"""Pump.fun Survivor Scanner — CLI entry point.

Poll mode (default): every POLL_INTERVAL_MS, finds Pump.fun tokens that
graduated, are older than MIN_AGE_MINUTES and have at least MIN_HOLDERS
holders, and sends the top survivors to the webhook.

Live mode: listens to PumpPortal for graduation events and forwards each one
immediately.

Usage:
    python3 -m pumpscan
    python3 -m pumpscan --once
    python3 -m pumpscan --mode live
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from pumpscan.clients.helius import HeliusClient
from pumpscan.clients.webhook import WebhookPublisher
from pumpscan.config import ConfigurationError, Settings, load_settings
from pumpscan.live import GraduationListener
from pumpscan.scheduler import FAILED, PollScheduler
from pumpscan.state import PollCycleState

BANNER = """
╔════════════════════════════════════════════════════════════╗
║         PUMP.FUN SURVIVOR SCANNER                          ║
║         Powered by Helius RPC                              ║
╚════════════════════════════════════════════════════════════╝
"""


def _print(msg: str) -> None:
    print(msg, file=sys.stderr)


def print_banner(settings: Settings, mode: str) -> None:
    _print(BANNER)
    _print("Configuration:")
    _print(f"  - Mode: {mode}")
    if mode == "poll":
        _print(f"  - Helius RPC: {settings.masked_endpoint()}")
    else:
        _print(f"  - Feed: {settings.feed_url}")
    _print(f"  - n8n Webhook: {settings.masked_publisher()}")
    if mode == "poll":
        _print(f"  - Poll Interval: {settings.poll_interval_ms / 60000:g} minutes")
        _print(f"  - Min Holders: {settings.min_holders}")
        _print(f"  - Min Age: {settings.min_age_minutes} minutes")
        _print(f"  - Top K: {settings.top_k}")
        if settings.credit_budget:
            _print(f"  - Credit Budget: {settings.credit_budget} per poll")


def _install_signal_handlers(stop) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops: KeyboardInterrupt still reaches asyncio.run
            pass


async def run_poll(settings: Settings, once: bool = False) -> int:
    state = PollCycleState()
    client = HeliusClient(settings.require_transport(), state=state)
    publisher = WebhookPublisher(settings.publisher_url, timeout=settings.publish_timeout_seconds)
    scheduler = PollScheduler(settings, client, publisher, state=state)

    try:
        if once:
            result = await scheduler.run_cycle()
            return 1 if result.status == FAILED else 0

        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event.set)
        _print("\n👀 Scanner running. Press Ctrl+C to stop.\n")
        task = asyncio.create_task(scheduler.run_forever(stop_event))
        await stop_event.wait()
        _print("\n👋 Shutting down...")
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            _print(f"📈 Final credits used: ~{state.credits_used}")
        return 0
    finally:
        await client.close()
        await publisher.close()


async def run_live(settings: Settings) -> int:
    publisher = WebhookPublisher(settings.require_publisher(), timeout=settings.publish_timeout_seconds)
    listener = GraduationListener(settings, publisher)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event.set)
    task = asyncio.create_task(listener.run())
    try:
        await stop_event.wait()
        _print("\n👋 Shutting down...")
        listener.stop()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return 0
    finally:
        await publisher.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Pump.fun Survivor Scanner")
    parser.add_argument("--mode", choices=("poll", "live"), default="poll", help="Pipeline to run")
    parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")
    parser.add_argument("--config", type=Path, help="YAML config file (default: config/scanner.yaml)")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
        if args.mode == "poll":
            settings.require_transport()
        else:
            settings.require_publisher()
    except ConfigurationError as e:
        _print(f"❌ {e}")
        sys.exit(1)

    print_banner(settings, args.mode)

    try:
        if args.mode == "live":
            code = asyncio.run(run_live(settings))
        else:
            code = asyncio.run(run_poll(settings, once=args.once))
    except KeyboardInterrupt:
        _print("\n👋 Shutting down...")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
