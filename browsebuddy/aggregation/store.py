"""In-memory ledgers for website visits, screen time, analyses and warnings."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from browsebuddy.errors import MalformedInputError
from browsebuddy.types import (
    ContentAnalysisRecord,
    ContentType,
    ContentWarningRecord,
    RiskLevel,
    StoreSnapshot,
    WebsiteVisitRecord,
    normalize_url,
)

LOGGER = logging.getLogger("browsebuddy.aggregation.store")

_NEWLINES = re.compile(r"[\r\n]+")
_TRUE_STRINGS = {"true", "yes", "1"}


def sanitize_details(details: Any, max_chars: int = 1000) -> str:
    """Collapse newlines to spaces, swap commas for semicolons, then truncate."""
    if details is None:
        return ""
    text = str(details)
    text = _NEWLINES.sub(" ", text)
    text = text.replace(",", ";")
    return text[:max_chars]


def _is_duration(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _lookup(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def _payload_to_mapping(raw_result: Any) -> Mapping[str, Any]:
    if raw_result is None:
        raise MalformedInputError("analysis payload is null")
    if hasattr(raw_result, "to_payload"):
        raw_result = raw_result.to_payload()
    if not isinstance(raw_result, Mapping):
        raise MalformedInputError(f"analysis payload must be a mapping, got {type(raw_result).__name__}")
    if not raw_result:
        raise MalformedInputError("analysis payload is empty")
    return raw_result


class AggregationStore:
    """Owns the visit, analysis and warning ledgers.

    Operations never raise past this boundary: bad input is dropped and logged.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        details_max_chars: int = 1000,
    ) -> None:
        self._clock = clock
        self.details_max_chars = details_max_chars
        self._visits: Dict[str, WebsiteVisitRecord] = {}
        self._analyses: List[ContentAnalysisRecord] = []
        self._warnings: List[ContentWarningRecord] = []

    def __len__(self) -> int:
        return len(self._visits)

    def record_visit(self, url: Optional[str]) -> WebsiteVisitRecord:
        key = normalize_url(url)
        now = self._clock()
        record = self._visits.get(key)
        if record is None:
            record = WebsiteVisitRecord(url=key, first_visit=now, last_visit=now)
            self._visits[key] = record
            LOGGER.debug("New visit record for %s", key)
        else:
            record.last_visit = now
            record.visit_count += 1
            LOGGER.debug("Visit %d for %s", record.visit_count, key)
        return record

    def add_screen_time(self, url: Optional[str], duration_ms: Any) -> bool:
        """Add screen time to a known URL.

        Returns False only when the duration itself is rejected (non-numeric or
        negative). An unknown URL is a silent no-op and still returns True.
        Negative durations are refused so ``total_time_ms`` never decreases.
        """
        if not _is_duration(duration_ms):
            LOGGER.warning("Rejected non-numeric screen time %r for %s", duration_ms, url)
            return False
        if duration_ms < 0:
            LOGGER.warning("Rejected negative screen time %r for %s", duration_ms, url)
            return False
        record = self._visits.get(normalize_url(url))
        if record is not None:
            record.total_time_ms += float(duration_ms)
        return True

    def record_analysis(self, raw_result: Any, url: Optional[str]) -> Optional[ContentAnalysisRecord]:
        try:
            payload = _payload_to_mapping(raw_result)
        except MalformedInputError as exc:
            LOGGER.warning("Dropping analysis for %s: %s", url, exc)
            return None

        record = ContentAnalysisRecord(
            url=normalize_url(url),
            timestamp=self._clock(),
            type=ContentType.coerce(_lookup(payload, "type", "content_type")),
            risk_level=RiskLevel.coerce(_lookup(payload, "riskLevel", "risk_level")),
            details=sanitize_details(payload.get("details"), self.details_max_chars),
            harmful_content=_as_flag(_lookup(payload, "harmfulContent", "harmful_content")),
        )
        self._analyses.append(record)
        if record.harmful_content:
            self._warnings.append(ContentWarningRecord.from_analysis(record))
            LOGGER.info(
                "Content warning for %s: type=%s risk=%s",
                record.url,
                record.type.value,
                record.risk_level.value,
            )
        return record

    def visit_count(self, url: Optional[str]) -> int:
        record = self._visits.get(normalize_url(url))
        return record.visit_count if record else 0

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            visits=tuple(replace(rec) for rec in self._visits.values()),
            analyses=tuple(self._analyses),
            warnings=tuple(self._warnings),
        )

    def summary(self) -> Dict[str, int]:
        return {
            "websites": len(self._visits),
            "analyses": len(self._analyses),
            "warnings": len(self._warnings),
        }
