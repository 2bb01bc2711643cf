"""Survivor ranking."""

from __future__ import annotations

from typing import Sequence

from pumpscan.models import SurvivorRecord

DEFAULT_TOP_K = 5


def rank_survivors(records: Sequence[SurvivorRecord], k: int = DEFAULT_TOP_K) -> list[SurvivorRecord]:
    """Top ``k`` records by holder count, highest first.

    The sort is stable, so records with equal holder counts keep their
    input order.
    """
    if k <= 0:
        return []
    return sorted(records, key=lambda r: r.holders, reverse=True)[:k]


def format_survivor(survivor: SurvivorRecord, rank: int) -> str:
    """Console block for one ranked survivor."""
    return (
        f"\n  #{rank} {survivor.symbol} ({survivor.name or 'No name'})\n"
        f"     Mint: {survivor.mint}\n"
        f"     Holders: {survivor.holders}\n"
        f"     Age: {survivor.age_minutes} minutes\n"
        f"     🔗 {survivor.links.get('dexscreener', '')}\n"
    )
