"""Tests for graduation discovery.

Covers pagination termination (age margin, empty page, page cap), the
seen-set, the minimum-age filter and per-transaction failure isolation.
"""

from __future__ import annotations

import pytest
from unittest.mock import AsyncMock

from pumpscan.clients.base import TransportError
from pumpscan.clients.helius import CreditBudgetExceeded
from pumpscan.discovery import PUMP_FUN_PROGRAM, balance_mints, discover_graduations
from tests.mocks.mock_helius import NOW, WSOL, signature_page, transaction

MIN_AGE = 30


def _tx_for(sig: dict) -> dict:
    """One fresh mint per transaction, named after its signature."""
    return transaction(sig["signature"], sig["blockTime"], [f"mint-{sig['signature']}"])


def _make_client(pages: list[list[dict]], tx_lookup=None) -> AsyncMock:
    by_sig = {s["signature"]: s for page in pages for s in page}

    def _get_tx(signature: str):
        if tx_lookup is not None:
            return tx_lookup(signature)
        return _tx_for(by_sig[signature])

    client = AsyncMock()
    client.get_signatures_for_address = AsyncMock(side_effect=pages + [[]])
    client.get_transaction = AsyncMock(side_effect=_get_tx)
    return client


async def _discover(client, **kwargs):
    options = dict(max_pages=5, page_size=100, sample_size=20, throttle_seconds=0, now=NOW)
    options.update(kwargs)
    return await discover_graduations(client, MIN_AGE, **options)


class TestPagination:
    """Termination rules for the backward page walk."""

    @pytest.mark.asyncio
    async def test_stops_after_page_reaching_twice_min_age(self):
        """3 pages x 100 sigs, 20 sampled each; page 3 tail >= 60 min -> no 4th fetch."""
        pages = [signature_page(p) for p in range(3)]
        client = _make_client(pages)

        candidates = await _discover(client)

        assert client.get_signatures_for_address.await_count == 3
        # 20 sampled lookups per page, tail dated from the signature blockTime
        assert client.get_transaction.await_count == 60
        # Page 1 is younger than 30 min; pages 2 and 3 contribute 20 each
        assert len(candidates) == 40

    @pytest.mark.asyncio
    async def test_pages_backward_with_before_cursor(self):
        pages = [signature_page(p) for p in range(3)]
        client = _make_client(pages)

        await _discover(client)

        calls = client.get_signatures_for_address.await_args_list
        assert calls[0].args == (PUMP_FUN_PROGRAM,)
        assert calls[0].kwargs == {"limit": 100, "before": None}
        assert calls[1].kwargs["before"] == "sig-0-99"
        assert calls[2].kwargs["before"] == "sig-1-99"

    @pytest.mark.asyncio
    async def test_empty_page_stops_immediately(self):
        client = _make_client([])

        candidates = await _discover(client)

        assert candidates == []
        assert client.get_signatures_for_address.await_count == 1
        client.get_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_exhausted_mid_walk(self):
        """A short history ends the walk even below the age margin."""
        pages = [signature_page(0, step_seconds=1)]
        client = _make_client(pages)

        await _discover(client)

        assert client.get_signatures_for_address.await_count == 2

    @pytest.mark.asyncio
    async def test_max_pages_caps_the_walk(self):
        # Pages only 1 minute apart: the age margin is never reached
        pages = [signature_page(p, step_seconds=0, page_span=60) for p in range(10)]
        client = _make_client(pages)

        await _discover(client, max_pages=4)

        assert client.get_signatures_for_address.await_count == 4

    @pytest.mark.asyncio
    async def test_tail_dated_by_lookup_when_signature_has_no_blocktime(self):
        pages = [signature_page(p) for p in range(3)]
        for page in pages:
            for sig in page:
                sig.pop("blockTime")
        block_times = {f"sig-{p}-{i}": NOW - p * 1800 - i * 18 for p in range(3) for i in range(100)}

        def _lookup(signature):
            return transaction(signature, block_times[signature], [f"mint-{signature}"])

        client = _make_client(pages, tx_lookup=_lookup)

        await _discover(client)

        # Tail lookup + 20 sampled lookups per page
        assert client.get_transaction.await_count == 63
        assert client.get_signatures_for_address.await_count == 3

    @pytest.mark.asyncio
    async def test_custom_age_margin(self):
        pages = [signature_page(p) for p in range(3)]
        client = _make_client(pages)

        await _discover(client, age_margin=1.0)

        # Page 2 tail is 59.7 min old, past 1.0 x 30 min
        assert client.get_signatures_for_address.await_count == 2


class TestCandidates:
    """Properties of the emitted candidate sequence."""

    @pytest.mark.asyncio
    async def test_all_candidates_meet_min_age(self):
        pages = [signature_page(p) for p in range(3)]
        candidates = await _discover(_make_client(pages))

        assert candidates
        assert all(c.age_minutes >= MIN_AGE for c in candidates)

    @pytest.mark.asyncio
    async def test_no_duplicate_mints_and_no_wrapped_sol(self):
        # Every transaction trades the same shared mint plus its own one
        pages = [signature_page(p) for p in range(3)]
        by_sig = {s["signature"]: s for page in pages for s in page}

        def _lookup(signature):
            sig = by_sig[signature]
            return transaction(signature, sig["blockTime"], ["SHAREDmint", f"mint-{signature}", WSOL])

        candidates = await _discover(_make_client(pages, tx_lookup=_lookup))

        mints = [c.mint for c in candidates]
        assert len(mints) == len(set(mints))
        assert WSOL not in mints

    @pytest.mark.asyncio
    async def test_mint_first_seen_too_young_is_not_emitted_later(self):
        """The seen-set is updated before the age check."""
        pages = [signature_page(p) for p in range(3)]
        by_sig = {s["signature"]: s for page in pages for s in page}

        def _lookup(signature):
            sig = by_sig[signature]
            return transaction(signature, sig["blockTime"], ["SHAREDmint"])

        candidates = await _discover(_make_client(pages, tx_lookup=_lookup))

        assert candidates == []

    @pytest.mark.asyncio
    async def test_candidate_fields(self):
        pages = [signature_page(p) for p in range(3)]
        candidates = await _discover(_make_client(pages))

        first = candidates[0]
        assert first.mint == "mint-sig-1-0"
        assert first.signature == "sig-1-0"
        assert first.block_time == NOW - 1800
        assert first.age_minutes == 30

    @pytest.mark.asyncio
    async def test_transaction_failures_are_skipped(self):
        pages = [signature_page(p) for p in range(3)]
        by_sig = {s["signature"]: s for page in pages for s in page}

        def _lookup(signature):
            if signature in ("sig-1-3", "sig-2-7"):
                raise TransportError("RPC Error: timeout", provider="helius")
            if signature == "sig-1-4":
                return None
            return _tx_for(by_sig[signature])

        candidates = await _discover(_make_client(pages, tx_lookup=_lookup))

        assert len(candidates) == 37
        assert "mint-sig-1-3" not in {c.mint for c in candidates}

    @pytest.mark.asyncio
    async def test_malformed_transactions_are_skipped(self):
        pages = [signature_page(p) for p in range(3)]
        by_sig = {s["signature"]: s for page in pages for s in page}

        def _lookup(signature):
            tx = _tx_for(by_sig[signature])
            if signature == "sig-1-3":
                tx["meta"] = ["not", "an", "object"]
            elif signature == "sig-1-5":
                tx["blockTime"] = "soon"
            elif signature == "sig-2-2":
                tx["meta"]["postTokenBalances"] = {"mint": "mint-sig-2-2"}
            return tx

        candidates = await _discover(_make_client(pages, tx_lookup=_lookup))
        mints = {c.mint for c in candidates}

        assert len(candidates) == 37
        assert not {"mint-sig-1-3", "mint-sig-1-5", "mint-sig-2-2"} & mints
        assert "mint-sig-1-4" in mints

    @pytest.mark.asyncio
    async def test_transaction_without_meta_contributes_nothing(self):
        pages = [signature_page(p) for p in range(3)]

        def _lookup(signature):
            return {"blockTime": NOW - 7200, "meta": None}

        candidates = await _discover(_make_client(pages, tx_lookup=_lookup))

        assert candidates == []

    @pytest.mark.asyncio
    async def test_page_listing_failure_propagates(self):
        client = AsyncMock()
        client.get_signatures_for_address = AsyncMock(side_effect=TransportError("Server error from helius: 503"))

        with pytest.raises(TransportError):
            await _discover(client)


class TestCreditBudget:
    """Discovery ends early, keeping its results, once the budget is spent."""

    @pytest.mark.asyncio
    async def test_budget_reached_during_lookups_stops_walk(self):
        pages = [signature_page(p) for p in range(3)]
        by_sig = {s["signature"]: s for page in pages for s in page}
        lookups = 0

        def _lookup(signature):
            nonlocal lookups
            lookups += 1
            if lookups > 25:
                raise CreditBudgetExceeded("Credit budget of 45 reached, getTransaction not sent")
            return _tx_for(by_sig[signature])

        client = _make_client(pages, tx_lookup=_lookup)
        candidates = await _discover(client)

        assert client.get_signatures_for_address.await_count == 2
        assert client.get_transaction.await_count == 26
        assert [c.mint for c in candidates] == [f"mint-sig-1-{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_budget_reached_on_page_listing_returns_found_so_far(self):
        client = _make_client([signature_page(1)])
        client.get_signatures_for_address = AsyncMock(side_effect=[
            signature_page(1),
            CreditBudgetExceeded("Credit budget of 21 reached, getSignaturesForAddress not sent"),
        ])

        candidates = await _discover(client)

        assert len(candidates) == 20
        assert client.get_signatures_for_address.await_count == 2


class TestBalanceMints:

    def test_post_then_pre_order(self):
        tx = {
            "meta": {
                "postTokenBalances": [{"mint": "A"}, {"mint": "B"}],
                "preTokenBalances": [{"mint": "C"}, {"accountIndex": 3}],
            }
        }
        assert balance_mints(tx) == ["A", "B", "C"]

    def test_missing_balances(self):
        assert balance_mints({"meta": {}}) == []
        assert balance_mints({}) == []

    def test_malformed_meta(self):
        assert balance_mints({"meta": ["postTokenBalances"]}) == []
        assert balance_mints({"meta": "oops"}) == []
        tx = {"meta": {"postTokenBalances": {"mint": "A"}, "preTokenBalances": [{"mint": 7}, {"mint": "B"}, "C"]}}
        assert balance_mints(tx) == ["B"]
