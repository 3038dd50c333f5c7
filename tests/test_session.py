import asyncio

import pytest

from browsebuddy.analysis.session import TRUNCATION_MARKER, TextClassifierSession
from browsebuddy.errors import BudgetExhaustionError, ClassificationError, InitializationError


class FakeHandle:
    def __init__(self, max_tokens=1000, tokens_left=None, errors=None, response="Low risk, looks fine."):
        self.max_tokens = max_tokens
        self.tokens_used = 0
        self.tokens_left = max_tokens if tokens_left is None else tokens_left
        self.errors = list(errors or [])
        self.response = response
        self.prompts = []
        self.destroyed = False

    async def classify(self, text):
        self.prompts.append(text)
        if self.errors:
            raise self.errors.pop(0)
        self.tokens_used += len(text) // 4
        self.tokens_left = self.max_tokens - self.tokens_used
        return self.response

    async def destroy(self):
        self.destroyed = True


class FakeProvider:
    def __init__(self, fail_times=0, factory=FakeHandle):
        self.fail_times = fail_times
        self.factory = factory
        self.created = []
        self.create_calls = 0

    async def create(self, system_prompt):
        self.create_calls += 1
        await asyncio.sleep(0)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("model unavailable")
        handle = self.factory()
        self.created.append(handle)
        return handle


def test_concurrent_requests_share_one_initialization():
    provider = FakeProvider()
    session = TextClassifierSession(provider, "prompt")

    async def request(text):
        await session.ensure_budget()
        return await session.classify(text)

    async def scenario():
        return await asyncio.gather(request("first"), request("second"))

    results = asyncio.run(scenario())

    assert len(results) == 2
    assert provider.create_calls == 1
    assert session.sessions_created == 1
    assert sorted(provider.created[0].prompts) == ["first", "second"]


def test_failed_initialization_reaches_every_waiter_and_is_retryable():
    provider = FakeProvider(fail_times=1)
    session = TextClassifierSession(provider, "prompt")

    async def scenario():
        first = await asyncio.gather(session.ensure_ready(), session.ensure_ready(), return_exceptions=True)
        await session.ensure_ready()
        return first

    first = asyncio.run(scenario())

    assert all(isinstance(exc, InitializationError) for exc in first)
    assert provider.create_calls == 2
    assert session.is_ready


def test_low_budget_renews_session_before_use():
    provider = FakeProvider(factory=lambda: FakeHandle(max_tokens=1000, tokens_left=150))
    session = TextClassifierSession(provider, "prompt")

    async def scenario():
        await session.ensure_ready()
        await session.ensure_budget()

    asyncio.run(scenario())

    assert provider.create_calls == 2
    assert provider.created[0].destroyed is True
    assert session.sessions_destroyed == 1


def test_budget_defaults_when_handle_lacks_counters():
    class BareHandle:
        async def classify(self, text):
            return "ok"

        async def destroy(self):
            return None

    provider = FakeProvider(factory=BareHandle)
    session = TextClassifierSession(provider, "prompt", default_max_tokens=6144)
    asyncio.run(session.ensure_ready())

    budget = session.budget()
    assert (budget.max_tokens, budget.tokens_used, budget.tokens_left) == (6144, 0, 6144)
    assert not session.needs_renewal()


def test_long_text_is_truncated_with_marker():
    provider = FakeProvider(factory=lambda: FakeHandle(max_tokens=100))
    session = TextClassifierSession(provider, "prompt")
    asyncio.run(session.ensure_ready())

    assert session.fit_text("a" * 200) == "a" * 200
    fitted = session.fit_text("b" * 300)
    assert fitted == "b" * 200 + TRUNCATION_MARKER


def test_classify_maps_provider_errors():
    handle = FakeHandle(errors=[RuntimeError("Token quota exceeded"), RuntimeError("socket closed")])
    provider = FakeProvider(factory=lambda: handle)
    session = TextClassifierSession(provider, "prompt")

    async def scenario():
        await session.ensure_ready()
        with pytest.raises(BudgetExhaustionError):
            await session.classify("one")
        with pytest.raises(ClassificationError):
            await session.classify("two")

    asyncio.run(scenario())


def test_classify_without_session_fails():
    session = TextClassifierSession(FakeProvider(), "prompt")
    with pytest.raises(ClassificationError):
        asyncio.run(session.classify("text"))


def test_close_destroys_handle():
    provider = FakeProvider()
    session = TextClassifierSession(provider, "prompt")

    async def scenario():
        await session.ensure_ready()
        await session.close()

    asyncio.run(scenario())
    assert provider.created[0].destroyed
    assert not session.is_ready
