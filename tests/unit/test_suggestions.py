# tests/unit/test_suggestions.py
"""
Unit tests for debounced entity suggestions.

Tests:
- Debouncer coalescing and cancellation
- Request generation tokens
- Stale suggestion responses never reach the draft
- Lookup failures are logged and ignored
"""

import asyncio
import logging

import httpx
import pytest

from signal_wizard.generations import Debouncer, RequestGenerations
from signal_wizard.steps import EntitiesStepController, WizardNavigator
from signal_wizard.suggestions import SuggestionSearch

from tests.fixtures.data import FakeSuggester


class TestRequestGenerations:
    """Tests for RequestGenerations."""

    def test_tokens_increase(self):
        generations = RequestGenerations()
        first = generations.issue()
        second = generations.issue()

        assert second > first
        assert generations.is_current(second)
        assert not generations.is_current(first)

    def test_invalidate_makes_all_tokens_stale(self):
        generations = RequestGenerations()
        token = generations.issue()
        generations.invalidate()

        assert not generations.is_current(token)
        assert generations.latest > token


@pytest.mark.asyncio
class TestDebouncer:
    """Tests for Debouncer."""

    async def test_burst_fires_once(self):
        fired = []

        async def callback():
            fired.append(asyncio.get_running_loop().time())

        debouncer = Debouncer(0.05)
        for _ in range(5):
            debouncer.trigger(callback)
            await asyncio.sleep(0.01)
        await debouncer.drain()

        assert len(fired) == 1

    async def test_cancel_pending(self):
        fired = []

        async def callback():
            fired.append(True)

        debouncer = Debouncer(0.02)
        debouncer.trigger(callback)
        assert debouncer.pending

        debouncer.cancel_pending()
        await asyncio.sleep(0.05)

        assert fired == []
        assert not debouncer.pending

    async def test_trigger_does_not_cancel_fired_callback(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.05)
            finished.append("slow")

        async def fast():
            finished.append("fast")

        debouncer = Debouncer(0.01)
        debouncer.trigger(slow)
        await asyncio.sleep(0.03)
        assert debouncer.in_flight == 1

        debouncer.trigger(fast)
        await debouncer.drain()

        assert sorted(finished) == ["fast", "slow"]

    async def test_close_cancels_everything(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.05)
            finished.append("slow")

        debouncer = Debouncer(0.01)
        debouncer.trigger(slow)
        await asyncio.sleep(0.02)
        debouncer.close()
        await asyncio.sleep(0.06)

        assert finished == []
        assert debouncer.in_flight == 0
        debouncer.close()


@pytest.mark.asyncio
class TestSuggestionSearch:
    """Tests for SuggestionSearch."""

    async def test_keystrokes_coalesce_into_one_request(self, store):
        suggester = FakeSuggester()
        search = SuggestionSearch(store, suggester, delay=0.3)
        loop = asyncio.get_running_loop()

        # Keystrokes at t=0, 50, 100 and 300ms
        search.on_input("a")
        await asyncio.sleep(0.05)
        search.on_input("ac")
        await asyncio.sleep(0.05)
        search.on_input("acm")
        await asyncio.sleep(0.2)
        search.on_input("acme")
        last_keystroke = loop.time()

        await search.wait()

        assert suggester.calls == [("acme", None)]
        assert search.requests_sent == 1
        assert suggester.call_times[0] - last_keystroke >= 0.3 - 0.005

    async def test_response_written_to_draft(self, store):
        search = SuggestionSearch(store, FakeSuggester(), delay=0.01)

        search.on_input("acme", title="Acme watch")
        await search.wait()

        assert [s.id for s in store.get().suggestions] == ["acme-1"]

    async def test_title_is_forwarded(self, store):
        suggester = FakeSuggester()
        search = SuggestionSearch(store, suggester, delay=0.01)

        search.on_input("acme", title="Acme watch")
        await search.wait()

        assert suggester.calls == [("acme", "Acme watch")]

    async def test_stale_response_is_discarded(self, store):
        suggester = FakeSuggester(delays={"slow": 0.15})
        search = SuggestionSearch(store, suggester, delay=0.01)
        writes = []
        store.subscribe(lambda d: writes.append([s.id for s in d.suggestions]))

        search.on_input("slow")
        await asyncio.sleep(0.05)
        search.on_input("fast")
        await search.wait()

        # Both requests were dispatched; only the newer one was applied.
        assert [query for query, _ in suggester.calls] == ["slow", "fast"]
        assert writes == [["fast-1"]]
        assert [s.id for s in store.get().suggestions] == ["fast-1"]

    async def test_failed_lookup_is_ignored(self, store):
        async def failing(query, title=None):
            raise httpx.ConnectError("suggest service down")

        search = SuggestionSearch(store, failing, delay=0.01)

        search.on_input("acme")
        await search.wait()

        assert store.get().suggestions == []
        assert store.version == 0

    async def test_malformed_response_is_logged_and_ignored(self, store, caplog):
        async def malformed(query, title=None):
            raise ValueError("Expected a JSON object from /api/v1/suggest, got list")

        caplog.set_level(logging.WARNING, logger="signal_wizard.suggestions")
        search = SuggestionSearch(store, malformed, delay=0.01)

        search.on_input("acme")
        await search.wait()

        assert store.get().suggestions == []
        assert "Entity suggestion lookup failed" in caplog.text

    async def test_blank_input_cancels_pending_lookup(self, store):
        suggester = FakeSuggester()
        search = SuggestionSearch(store, suggester, delay=0.02)

        search.on_input("acme")
        search.on_input("   ")
        await asyncio.sleep(0.05)

        assert suggester.calls == []

    async def test_cancel_ignores_in_flight_lookup(self, store):
        suggester = FakeSuggester(delays={"acme": 0.05})
        search = SuggestionSearch(store, suggester, delay=0.01)

        search.on_input("acme")
        await asyncio.sleep(0.03)
        search.cancel()
        await asyncio.sleep(0.06)

        assert store.version == 0


@pytest.mark.asyncio
class TestEntitiesSearch:
    """The entities step feeds keystrokes to the suggestion lookup."""

    async def test_search_uses_signal_name_as_title(self, store):
        suggester = FakeSuggester()
        search = SuggestionSearch(store, suggester, delay=0.01)
        entities = EntitiesStepController(store, WizardNavigator(store), suggestions=search)
        store.patch(name="Acme watch")

        entities.search("acme")
        await search.wait()

        assert suggester.calls == [("acme", "Acme watch")]
