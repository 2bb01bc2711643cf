"""Tests for batch_gather: ordering, error capture and concurrency cap."""

from __future__ import annotations

import asyncio

import pytest

from pumpscan.utils.async_batch import batch_gather


async def _double_or_fail(n: int) -> int:
    await asyncio.sleep(0.001 * (5 - n % 5))
    if n < 0:
        raise ValueError(f"negative: {n}")
    return n * 2


class TestBatchGather:

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        results = await batch_gather([4, 3, 2, 1, 0], _double_or_fail)
        assert results == [8, 6, 4, 2, 0]

    @pytest.mark.asyncio
    async def test_errors_become_none_and_reach_hook(self):
        failures = []

        results = await batch_gather(
            [1, -2, 3, -4],
            _double_or_fail,
            on_error=lambda item, error: failures.append((item, str(error))),
        )

        assert results == [2, None, 6, None]
        assert sorted(failures) == [(-4, "negative: -4"), (-2, "negative: -2")]

    @pytest.mark.asyncio
    async def test_stop_on_error_propagates(self):
        failures = []

        with pytest.raises(ValueError, match="negative: -5"):
            await batch_gather(
                [1, -5, 3],
                _double_or_fail,
                continue_on_error=False,
                on_error=lambda item, error: failures.append(item),
            )

        assert failures == []

    @pytest.mark.asyncio
    async def test_concurrency_cap(self):
        running = 0
        peak = 0

        async def _track(n: int) -> int:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.005)
            running -= 1
            return n

        results = await batch_gather(list(range(10)), _track, max_concurrent=3)

        assert results == list(range(10))
        assert peak == 3

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await batch_gather([], _double_or_fail) == []
