"""Tests for provider selection, probe caching and status history."""

import httpx
import pytest

from seqchat.ai_providers.selector import MAX_STATUS_HISTORY, ProviderSelector
from seqchat.dispatch.dispatcher import RequestDispatcher
from seqchat.errors import NoProviderAvailableError
from seqchat.execution.history import ConversationHistory


def _history(text: str) -> ConversationHistory:
    history = ConversationHistory()
    history.append_user(text)
    return history


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestSelectionPolicy:
    @pytest.mark.asyncio
    async def test_priority_order_first_reachable(self, stub_provider):
        first = stub_provider("first", probe_ok=False)
        second = stub_provider("second")
        third = stub_provider("third")
        selector = ProviderSelector([first, second, third])

        provider = await selector.select_available()

        assert provider is second
        assert selector.current() is second
        assert third.probe_calls == 0

    @pytest.mark.asyncio
    async def test_unconfigured_providers_are_not_probed(self, stub_provider):
        missing = stub_provider("missing", configured=False)
        present = stub_provider("present")
        selector = ProviderSelector([missing, present])

        assert await selector.select_available() is present
        assert missing.probe_calls == 0

    @pytest.mark.asyncio
    async def test_preferred_provider_wins_without_probe(self, stub_provider):
        first = stub_provider("first")
        preferred = stub_provider("preferred")
        selector = ProviderSelector([first, preferred], preferred="preferred")

        assert await selector.select_available() is preferred
        assert preferred.probe_calls == 0
        assert first.probe_calls == 0

    @pytest.mark.asyncio
    async def test_unconfigured_preferred_falls_back(self, stub_provider):
        first = stub_provider("first")
        preferred = stub_provider("preferred", configured=False)
        selector = ProviderSelector([first, preferred], preferred="preferred")

        assert await selector.select_available() is first

    @pytest.mark.asyncio
    async def test_preferred_marked_unavailable_is_skipped(self, stub_provider):
        first = stub_provider("first")
        preferred = stub_provider("preferred")
        selector = ProviderSelector([preferred, first], preferred="preferred")

        selector.mark_unavailable("preferred")

        assert await selector.select_available() is first

    @pytest.mark.asyncio
    async def test_nothing_available(self, stub_provider):
        down = stub_provider("down", probe_ok=False)
        missing = stub_provider("missing", configured=False)
        selector = ProviderSelector([down, missing])

        with pytest.raises(NoProviderAvailableError) as exc_info:
            await selector.select_available()

        assert exc_info.value.tried == ["down"]
        with pytest.raises(NoProviderAvailableError):
            selector.current()

    @pytest.mark.asyncio
    async def test_exclude(self, stub_provider):
        first = stub_provider("first")
        second = stub_provider("second")
        selector = ProviderSelector([first, second])

        assert await selector.select_available(exclude={"first"}) is second

    def test_select_sets_preference(self, stub_provider):
        first = stub_provider("first")
        second = stub_provider("second")
        selector = ProviderSelector([first, second])

        assert selector.select("second") is second
        assert selector.preferred == "second"
        assert selector.current() is second

    @pytest.mark.asyncio
    async def test_current_provider_is_kept(self, stub_provider):
        first = stub_provider("first", probe_ok=False)
        second = stub_provider("second")
        selector = ProviderSelector([first, second], probe_ttl=0)

        assert await selector.select_available() is second
        first.probe_ok = True

        assert await selector.select_available() is second
        assert first.probe_calls == 1

    @pytest.mark.asyncio
    async def test_marked_unavailable_current_is_replaced(self, stub_provider):
        first = stub_provider("first")
        second = stub_provider("second")
        selector = ProviderSelector([first, second])
        assert await selector.select_available() is first

        selector.mark_unavailable("first", "HTTP 503")

        assert await selector.select_available() is second

    def test_select_unknown(self, stub_provider):
        selector = ProviderSelector([stub_provider("only")])

        with pytest.raises(ValueError):
            selector.select("nope")

    def test_rejects_duplicates_and_unknown_preference(self, stub_provider):
        with pytest.raises(ValueError):
            ProviderSelector([stub_provider("a"), stub_provider("a")])
        with pytest.raises(ValueError):
            ProviderSelector([stub_provider("a")], preferred="b")


class TestProbeCache:
    @pytest.mark.asyncio
    async def test_probe_result_cached_for_ttl(self, stub_provider):
        clock = FakeClock()
        provider = stub_provider("p")
        selector = ProviderSelector([provider], probe_ttl=60.0, clock=clock)

        await selector.probe("p")
        await selector.probe("p")
        assert provider.probe_calls == 1

        clock.now += 60.0
        await selector.probe("p")
        assert provider.probe_calls == 2

    @pytest.mark.asyncio
    async def test_force_bypasses_cache(self, stub_provider):
        provider = stub_provider("p")
        selector = ProviderSelector([provider])

        await selector.probe("p")
        await selector.probe("p", force=True)

        assert provider.probe_calls == 2

    @pytest.mark.asyncio
    async def test_probe_exception_recorded_as_unavailable(self, stub_provider):
        provider = stub_provider("p", probe_ok=httpx.ConnectError("refused"))
        selector = ProviderSelector([provider])

        assert await selector.probe("p") is False

        status = selector.get_status("p")
        assert status.is_available is False
        assert "ConnectError" in status.error_message
        assert status.latency is not None

    @pytest.mark.asyncio
    async def test_recovery_after_ttl(self, stub_provider):
        clock = FakeClock()
        provider = stub_provider("p", probe_ok=False)
        selector = ProviderSelector([provider], clock=clock)

        assert await selector.probe("p") is False
        provider.probe_ok = True
        assert await selector.probe("p") is False

        clock.now += 61
        assert await selector.probe("p") is True
        assert [s.is_available for s in selector.get_status_history("p")] == [
            True,
            False,
        ]


class TestStatusHistory:
    @pytest.mark.asyncio
    async def test_history_bounded_and_newest_first(self, stub_provider):
        provider = stub_provider("p")
        selector = ProviderSelector([provider], probe_ttl=0)

        for _ in range(MAX_STATUS_HISTORY + 5):
            await selector.probe("p")
        provider.probe_ok = False
        await selector.probe("p")

        history = selector.get_status_history("p")
        assert len(history) == MAX_STATUS_HISTORY
        assert history[0].is_available is False
        assert selector.get_status("p") is history[0]

    def test_status_before_any_probe(self, stub_provider):
        selector = ProviderSelector([stub_provider("p")])

        assert selector.get_status("p") is None
        assert selector.get_status_history() == []

    @pytest.mark.asyncio
    async def test_status_to_dict(self, stub_provider):
        selector = ProviderSelector([stub_provider("p")])
        await selector.probe("p")

        data = selector.get_status("p").to_dict()
        assert data["provider"] == "p"
        assert data["is_available"] is True
        assert data["last_checked"] is not None

    @pytest.mark.asyncio
    async def test_shutdown_only_initialized(self, stub_provider):
        used = stub_provider("used")
        unused = stub_provider("unused")
        selector = ProviderSelector([used, unused])
        await used.ensure_initialized()

        await selector.shutdown()

        assert used.initialized is False
        assert unused.initialized is False


class TestStickySelectionThroughDispatcher:
    """A run never moves to another provider on its own."""

    @pytest.mark.asyncio
    async def test_fallback_kept_after_cache_expiry(self, stub_provider, no_sleep):
        clock = FakeClock()
        openai = stub_provider("openai", probe_ok=False)
        claude = stub_provider("claude")
        selector = ProviderSelector([openai, claude], probe_ttl=60.0, clock=clock)
        dispatcher = RequestDispatcher(selector, failover=False, sleep=no_sleep)

        await dispatcher.send(_history("first"))
        assert selector.current() is claude

        openai.probe_ok = True
        clock.now += 61
        await dispatcher.send(_history("second"))

        assert selector.current() is claude
        assert len(claude.calls) == 2
        assert openai.calls == []

    @pytest.mark.asyncio
    async def test_explicit_select_switches(self, stub_provider, no_sleep):
        openai = stub_provider("openai", probe_ok=False)
        claude = stub_provider("claude")
        selector = ProviderSelector([openai, claude])
        dispatcher = RequestDispatcher(selector, sleep=no_sleep)
        await dispatcher.send(_history("first"))

        selector.select("openai")
        await dispatcher.send(_history("second"))

        assert len(openai.calls) == 1
        assert len(claude.calls) == 1
