"""Graduation discovery — pages back through Pump.fun program activity.

Walks getSignaturesForAddress for the Pump.fun program newest-first, samples
the head of every page, and collects each mint the first time it shows up in
a transaction's token-balance changes. Pagination stops when the page's
oldest transaction is old enough to cover the minimum-age window (with a
margin), when history runs out, after a fixed number of pages, or when the
cycle's credit budget is spent.
"""

from __future__ import annotations

import asyncio
import sys
import time
from typing import Any

from pumpscan.clients.base import TransportError
from pumpscan.clients.helius import CreditBudgetExceeded
from pumpscan.models import WRAPPED_SOL_MINT, CandidateToken

PUMP_FUN_PROGRAM = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"


def _log(msg: str) -> None:
    ts = time.strftime("%H:%M:%S")
    print(f"[discovery {ts}] {msg}", file=sys.stderr)


def balance_mints(tx: dict[str, Any]) -> list[str]:
    """Mints in a transaction's post- then pre-token balances, in order.

    Anything that is not shaped like an RPC balance list is ignored.
    """
    meta = tx.get("meta")
    if not isinstance(meta, dict):
        return []
    balances: list[Any] = []
    for key in ("postTokenBalances", "preTokenBalances"):
        entries = meta.get(key)
        if isinstance(entries, list):
            balances.extend(entries)
    return [
        b["mint"] for b in balances
        if isinstance(b, dict) and isinstance(b.get("mint"), str) and b["mint"]
    ]


async def _oldest_age_minutes(client: Any, last_sig: dict[str, Any], now: float) -> float | None:
    """Age of the last (oldest) signature in a page, or None if unknown."""
    block_time = last_sig.get("blockTime")
    if block_time is None:
        try:
            tx = await client.get_transaction(last_sig["signature"])
        except TransportError as e:
            _log(f"   Could not date page tail {last_sig['signature'][:8]}...: {e}")
            return None
        if not isinstance(tx, dict) or tx.get("blockTime") is None:
            return None
        block_time = tx["blockTime"]
    try:
        return (now - float(block_time)) / 60
    except (TypeError, ValueError):
        return None


async def discover_graduations(
    client: Any,
    min_age_minutes: float,
    max_pages: int = 5,
    page_size: int = 100,
    sample_size: int = 20,
    throttle_seconds: float = 0.05,
    age_margin: float = 2.0,
    program: str = PUMP_FUN_PROGRAM,
    now: float | None = None,
) -> list[CandidateToken]:
    """Collect mints at least ``min_age_minutes`` old from recent program activity.

    Failures listing a page propagate. A transaction that cannot be fetched
    or read is logged and skipped. Once the cycle's credit budget is spent
    the walk ends and whatever was found so far is returned.
    """
    _log("📡 Fetching Pump.fun transactions (paginating for older data)...")

    now = time.time() if now is None else now
    seen: set[str] = set()
    candidates: list[CandidateToken] = []
    before: str | None = None
    checked = 0
    out_of_credits = False

    for page in range(max_pages):
        try:
            signatures = await client.get_signatures_for_address(program, limit=page_size, before=before)
        except CreditBudgetExceeded as e:
            _log(f"   💳 {e}, stopping pagination")
            break
        if not signatures:
            _log(f"   Page {page + 1}: no signatures, history exhausted")
            break

        _log(f"   Page {page + 1}: fetched {len(signatures)} signatures")
        last_sig = signatures[-1]
        before = last_sig["signature"]

        oldest_age = await _oldest_age_minutes(client, last_sig, now)
        if oldest_age is not None:
            _log(f"   Oldest tx in batch: {oldest_age:.1f} min ago")

        for sig in signatures[:sample_size]:
            try:
                tx = await client.get_transaction(sig["signature"])
                if not tx or not tx.get("meta") or tx.get("blockTime") is None:
                    tx_mints: list[str] = []
                    block_time = None
                else:
                    block_time = int(tx["blockTime"])
                    tx_mints = balance_mints(tx)
            except CreditBudgetExceeded as e:
                _log(f"   💳 {e}, stopping pagination")
                out_of_credits = True
                break
            except Exception as e:
                _log(f"   Skipping {sig['signature'][:8]}...: {e}")
                block_time = None

            if block_time is not None:
                checked += 1
                age_minutes = (now - block_time) / 60
                for mint in tx_mints:
                    if mint == WRAPPED_SOL_MINT or mint in seen:
                        continue
                    seen.add(mint)
                    if age_minutes >= min_age_minutes:
                        candidates.append(
                            CandidateToken(
                                mint=mint,
                                signature=sig["signature"],
                                block_time=block_time,
                                age_minutes=round(age_minutes),
                            )
                        )

            if throttle_seconds > 0:
                await asyncio.sleep(throttle_seconds)

        if out_of_credits:
            break
        if oldest_age is not None and oldest_age >= min_age_minutes * age_margin:
            _log(f"   Reached {oldest_age:.0f} min ago, stopping pagination")
            break

    _log(f"   Checked {checked} transactions total")
    _log(f"   Found {len(candidates)} mints older than {min_age_minutes} min")
    return candidates
