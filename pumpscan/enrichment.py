"""Enrichment & holder filter.

Each candidate is checked for holder count first; only candidates that clear
the threshold pay for the metadata lookup. Candidates are processed
concurrently and a failure for one never affects the others.
"""

from __future__ import annotations

import sys
import time
from typing import Any

from pumpscan.models import CandidateToken, SurvivorRecord
from pumpscan.utils.async_batch import batch_gather


def _log(msg: str) -> None:
    ts = time.strftime("%H:%M:%S")
    print(f"[enrich {ts}] {msg}", file=sys.stderr)


def parse_asset_labels(asset: dict[str, Any] | None) -> tuple[str, str]:
    """(symbol, name) from a DAS asset record, with placeholders when absent."""
    if not asset:
        return "UNKNOWN", ""
    metadata = (asset.get("content") or {}).get("metadata") or {}
    token_info = asset.get("token_info") or {}
    symbol = metadata.get("symbol") or token_info.get("symbol") or "UNKNOWN"
    name = metadata.get("name") or ""
    return str(symbol), str(name)


async def enrich_candidate(
    client: Any,
    candidate: CandidateToken,
    min_holders: int,
) -> SurvivorRecord | None:
    """Survivor record for ``candidate``, or None if it has too few holders.

    Holder lookup errors propagate; metadata errors fall back to placeholders.
    """
    holders = await client.fetch_holder_count(candidate.mint)
    if holders < min_holders:
        return None

    try:
        asset = await client.fetch_asset(candidate.mint)
    except Exception as e:
        _log(f"   No metadata for {candidate.mint[:8]}...: {e}")
        asset = None

    symbol, name = parse_asset_labels(asset)
    return SurvivorRecord.from_candidate(candidate, holders=holders, symbol=symbol, name=name)


async def enrich_batch(
    client: Any,
    candidates: list[CandidateToken],
    min_holders: int,
    max_concurrent: int | None = None,
) -> list[SurvivorRecord]:
    """Enrich all candidates concurrently and keep those passing the filter.

    Result order follows ``candidates``.
    """

    def _report(candidate: CandidateToken, error: Exception) -> None:
        _log(f"   Error enriching {candidate.mint[:8]}...: {error}")

    results = await batch_gather(
        candidates,
        lambda c: enrich_candidate(client, c, min_holders),
        max_concurrent=max_concurrent,
        on_error=_report,
    )
    return [r for r in results if r is not None]
