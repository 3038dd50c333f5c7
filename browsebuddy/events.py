"""Inbound event types and the router that applies them to the store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Optional, Union

from browsebuddy.aggregation.store import AggregationStore
from browsebuddy.errors import MalformedInputError
from browsebuddy.report.serializer import ReportSerializer
from browsebuddy.types import UNKNOWN_URL

LOGGER = logging.getLogger("browsebuddy.events")


@dataclass(frozen=True)
class PageVisit:
    url: str


@dataclass(frozen=True)
class ScreenTimeTick:
    url: str
    duration_ms: Any


@dataclass(frozen=True)
class ContentAnalysisResult:
    url: str
    payload: Any = field(default=None, hash=False)


@dataclass(frozen=True)
class GenerateReportRequest:
    pass


Event = Union[PageVisit, ScreenTimeTick, ContentAnalysisResult, GenerateReportRequest]


@dataclass
class EventResult:
    success: bool
    error: Optional[str] = None
    filename: Optional[str] = None


def event_from_message(message: Mapping[str, Any], sender_url: Optional[str] = None) -> Event:
    """Parse a wire-style ``{"type": ..., "data": {...}}`` message into an event."""
    if not isinstance(message, Mapping):
        raise MalformedInputError(f"message must be a mapping, got {type(message).__name__}")
    kind = message.get("type")
    data = message.get("data") or {}
    if not isinstance(data, Mapping):
        raise MalformedInputError("message data must be a mapping")
    url = message.get("url") or sender_url or UNKNOWN_URL

    if kind == "PAGE_VISIT":
        return PageVisit(url=url)
    if kind == "UPDATE_SCREEN_TIME":
        return ScreenTimeTick(url=url, duration_ms=data.get("duration"))
    if kind == "ADD_CONTENT_ANALYSIS":
        return ContentAnalysisResult(url=url, payload=data.get("analysis"))
    if kind == "GENERATE_REPORT":
        return GenerateReportRequest()
    raise MalformedInputError(f"unknown message type {kind!r}")


class EventRouter:
    """Applies inbound events and acknowledges every one with an EventResult."""

    def __init__(self, store: AggregationStore, serializer: ReportSerializer) -> None:
        self.store = store
        self.serializer = serializer
        self.report_in_progress = False

    @asynccontextmanager
    async def report_guard(self) -> AsyncIterator[None]:
        self.report_in_progress = True
        try:
            yield
        finally:
            self.report_in_progress = False

    async def handle(self, event: Any) -> EventResult:
        name = type(event).__name__
        try:
            if isinstance(event, PageVisit):
                self.store.record_visit(event.url)
                return EventResult(success=True)
            if isinstance(event, ScreenTimeTick):
                return self._screen_time(event)
            if isinstance(event, ContentAnalysisResult):
                self.store.record_analysis(event.payload, event.url)
                return EventResult(success=True)
            if isinstance(event, GenerateReportRequest):
                return await self._generate_report()
        except Exception as exc:
            LOGGER.exception("Failed to handle %s", name)
            return EventResult(success=False, error=str(exc) or name)
        LOGGER.warning("Unknown event type: %s", name)
        return EventResult(success=False, error="Unknown event type")

    def _screen_time(self, event: ScreenTimeTick) -> EventResult:
        if not self.store.add_screen_time(event.url, event.duration_ms):
            LOGGER.error("Invalid screen time data: %r", event.duration_ms)
            return EventResult(success=False, error="Invalid duration")
        return EventResult(success=True)

    async def _generate_report(self) -> EventResult:
        if self.report_in_progress:
            return EventResult(success=False, error="Report generation already in progress")
        async with self.report_guard():
            result = await self.serializer.export(self.store)
        if not result.success:
            return EventResult(success=False, error=result.error or "Failed to generate report")
        return EventResult(success=True, filename=result.filename)
