import asyncio

import pytest

from browsebuddy.aggregation.store import AggregationStore
from browsebuddy.analysis.scheduler import AnalysisScheduler
from browsebuddy.analysis.session import TextClassifierSession
from browsebuddy.errors import DownloadError, MalformedInputError
from browsebuddy.events import (
    ContentAnalysisResult,
    EventRouter,
    GenerateReportRequest,
    PageVisit,
    ScreenTimeTick,
    event_from_message,
)
from browsebuddy.report.serializer import ReportSerializer

from test_session import FakeHandle, FakeProvider


class SlowSink:
    def __init__(self, error=None):
        self.release = None
        self.error = error
        self.saved = []

    async def save(self, data, filename, prompt_for_location=True):
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        self.saved.append(filename)
        return "id-1"


def make_router(sink=None):
    store = AggregationStore()
    return EventRouter(store, ReportSerializer(sink or SlowSink()))


def test_router_acknowledges_every_event():
    router = make_router()

    async def scenario():
        return [
            await router.handle(PageVisit("https://a.test")),
            await router.handle(ScreenTimeTick("https://a.test", 1500)),
            await router.handle(ContentAnalysisResult("https://a.test", {"details": "ok"})),
            await router.handle(ContentAnalysisResult("https://a.test", None)),
            await router.handle(GenerateReportRequest()),
        ]

    results = asyncio.run(scenario())

    assert all(r.success for r in results)
    assert results[-1].filename.startswith("browseBuddy_report_")
    assert router.store.summary() == {"websites": 1, "analyses": 1, "warnings": 0}


@pytest.mark.parametrize("duration", ["1500", None, -5])
def test_invalid_duration_is_reported(duration):
    router = make_router()
    result = asyncio.run(router.handle(ScreenTimeTick("https://a.test", duration)))
    assert not result.success
    assert result.error == "Invalid duration"


def test_unknown_event_is_rejected():
    result = asyncio.run(make_router().handle(object()))
    assert not result.success
    assert result.error == "Unknown event type"


def test_report_failure_is_surfaced_and_guard_released():
    router = make_router(SlowSink(error=DownloadError("permission denied")))
    result = asyncio.run(router.handle(GenerateReportRequest()))
    assert not result.success
    assert "permission denied" in result.error
    assert router.report_in_progress is False


def test_overlapping_report_requests_are_refused():
    sink = SlowSink()
    router = make_router(sink)

    async def scenario():
        sink.release = asyncio.Event()
        first = asyncio.ensure_future(router.handle(GenerateReportRequest()))
        await asyncio.sleep(0)
        assert router.report_in_progress
        second = await router.handle(GenerateReportRequest())
        sink.release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert first.success
    assert not second.success
    assert second.error == "Report generation already in progress"
    assert router.report_in_progress is False
    assert len(sink.saved) == 1


def test_event_from_message_parses_wire_messages():
    assert event_from_message({"type": "PAGE_VISIT"}, sender_url="https://a.test") == PageVisit("https://a.test")
    assert event_from_message({"type": "PAGE_VISIT"}) == PageVisit("unknown")
    tick = event_from_message({"type": "UPDATE_SCREEN_TIME", "url": "https://a.test", "data": {"duration": 900}})
    assert tick == ScreenTimeTick("https://a.test", 900)
    analysis = event_from_message(
        {"type": "ADD_CONTENT_ANALYSIS", "url": "https://a.test", "data": {"analysis": {"details": "d"}}}
    )
    assert analysis.payload == {"details": "d"}
    assert isinstance(event_from_message({"type": "GENERATE_REPORT"}), GenerateReportRequest)

    with pytest.raises(MalformedInputError):
        event_from_message({"type": "SOMETHING_ELSE"})
    with pytest.raises(MalformedInputError):
        event_from_message(["PAGE_VISIT"])


def test_scheduler_verdicts_flow_into_store_through_router():
    router = make_router()
    url = "https://news.test/story"
    provider = FakeProvider(factory=lambda: FakeHandle(response="Harmful content found,\nrisk level HIGH"))
    session = TextClassifierSession(provider, "prompt")
    scheduler = AnalysisScheduler(
        session,
        lambda payload: router.handle(ContentAnalysisResult(url, payload)),
    )

    async def scenario():
        await router.handle(PageVisit(url))
        return await scheduler.tick("Story headline")

    outcome = asyncio.run(scenario())

    assert outcome.success
    snapshot = router.store.snapshot()
    assert len(snapshot.analyses) == 1
    assert len(snapshot.warnings) == 1
    assert snapshot.warnings[0].details == "Harmful content found; risk level HIGH"
    assert snapshot.warnings[0].risk_level.value == "high"
