"""Process-lifetime state for the scanner.

Nothing here is persisted: counters and the dedup set live for the life of
the process and start fresh on restart. Both are owned by the runner that
creates them and passed explicitly to the components that update them.
Everything runs on one asyncio loop, so no locking is done.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timezone

from pydantic import BaseModel, Field


class PollCycleState(BaseModel):
    """Credit and cycle counters. ``credits_used`` only ever grows.

    ``cycle_budget`` caps the credits one cycle may spend (0 = no cap).
    Calls reserve their cost before going out and settle it when they
    return, so concurrent calls can never overshoot the cap together.
    """

    credits_used: int = 0
    poll_count: int = 0
    last_poll_credits: int = 0
    cycle_budget: int = 0
    cycle_start_credits: int = 0
    in_flight: int = 0
    started_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def cycle_credits(self) -> int:
        return self.credits_used - self.cycle_start_credits

    def charge(self, credits: int) -> None:
        """Record credits consumed by one remote call."""
        if credits > 0:
            self.credits_used += credits

    def reserve(self, credits: int) -> bool:
        """Hold ``credits`` for a call about to be made. False if over budget."""
        if self.cycle_budget > 0 and self.cycle_credits + self.in_flight + credits > self.cycle_budget:
            return False
        self.in_flight += credits
        return True

    def settle(self, credits: int, answered: bool) -> None:
        """Release a reservation, charging it if the provider answered."""
        self.in_flight = max(self.in_flight - credits, 0)
        if answered:
            self.charge(credits)

    def begin_poll(self) -> int:
        """Start a cycle. Returns the credit total at cycle start."""
        self.poll_count += 1
        self.cycle_start_credits = self.credits_used
        return self.credits_used

    def end_poll(self, start_credits: int) -> int:
        """Close a cycle. Returns credits consumed by it."""
        self.last_poll_credits = self.credits_used - start_credits
        return self.last_poll_credits


class SeenSet:
    """Insertion-ordered set of identifiers with an optional size cap.

    When the cap is exceeded the oldest identifier is evicted, so a mint
    can only be re-processed after ``max_entries`` newer mints were seen.
    ``max_entries=0`` means unbounded.
    """

    def __init__(self, max_entries: int = 100_000):
        self.max_entries = max_entries
        self._items: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def add(self, key: str) -> bool:
        """Add ``key``. Returns False if it was already present."""
        if key in self._items:
            return False
        self._items[key] = None
        if self.max_entries and len(self._items) > self.max_entries:
            self._items.popitem(last=False)
        return True
