"""Common dataclasses and enums used across the browsebuddy package."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

UNKNOWN_URL = "unknown"


class ContentType(str, Enum):
    HARMFUL_CONTENT = "harmful-content"
    CYBERBULLYING = "cyberbullying"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: object) -> "ContentType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class RiskLevel(str, Enum):
    LOW = "low"
    HIGH = "high"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: object) -> "RiskLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass
class WebsiteVisitRecord:
    """Per-URL visit ledger entry."""

    url: str
    first_visit: datetime
    last_visit: datetime
    total_time_ms: float = 0.0
    visit_count: int = 1

    @property
    def total_minutes(self) -> float:
        return self.total_time_ms / 60000.0


@dataclass(frozen=True)
class ContentAnalysisRecord:
    """Normalized classifier verdict for a page. Never mutated once stored."""

    url: str
    timestamp: datetime
    type: ContentType
    risk_level: RiskLevel
    details: str
    harmful_content: bool = False


@dataclass(frozen=True)
class ContentWarningRecord:
    url: str
    timestamp: datetime
    type: ContentType
    risk_level: RiskLevel
    details: str

    @classmethod
    def from_analysis(cls, record: ContentAnalysisRecord) -> "ContentWarningRecord":
        return cls(
            url=record.url,
            timestamp=record.timestamp,
            type=record.type,
            risk_level=record.risk_level,
            details=record.details,
        )


@dataclass(frozen=True)
class TokenBudget:
    """Token counters read from a classifier session."""

    max_tokens: int
    tokens_used: int
    tokens_left: int

    def is_critical(self, threshold: float = 0.2) -> bool:
        return self.tokens_left < self.max_tokens * threshold

    def as_dict(self) -> dict:
        return {"max": self.max_tokens, "used": self.tokens_used, "left": self.tokens_left}


@dataclass(frozen=True)
class StoreSnapshot:
    """Read-only copy of the aggregation ledgers, each in insertion order."""

    visits: Tuple[WebsiteVisitRecord, ...] = ()
    analyses: Tuple[ContentAnalysisRecord, ...] = ()
    warnings: Tuple[ContentWarningRecord, ...] = ()


def normalize_url(url: Optional[str]) -> str:
    """Lowercase scheme/host and strip whitespace; path, query and fragment are kept."""
    if url is None:
        return UNKNOWN_URL
    text = str(url).strip()
    if not text:
        return UNKNOWN_URL
    try:
        parts = urlsplit(text)
    except ValueError:
        return text
    if not parts.scheme or not parts.netloc:
        return text
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, parts.fragment))
