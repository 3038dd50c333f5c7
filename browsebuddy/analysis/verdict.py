"""Keyword rules turning classifier responses into analysis payloads."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict

from browsebuddy.types import ContentType, RiskLevel

_WHITESPACE = re.compile(r"\s+")
_EMPTY_SENTENCE = re.compile(r"\. \.")


@dataclass(frozen=True)
class AnalysisVerdict:
    harmful_content: bool
    type: ContentType
    risk_level: RiskLevel
    details: str

    @classmethod
    def from_response(cls, text: str) -> "AnalysisVerdict":
        lowered = (text or "").lower()
        return cls(
            harmful_content="harmful" in lowered or "inappropriate" in lowered,
            type=ContentType.CYBERBULLYING if "cyberbullying" in lowered else ContentType.HARMFUL_CONTENT,
            risk_level=RiskLevel.HIGH if "high" in lowered else RiskLevel.LOW,
            details=text or "",
        )

    def to_payload(self) -> Dict[str, object]:
        return {
            "harmfulContent": self.harmful_content,
            "type": self.type.value,
            "riskLevel": self.risk_level.value,
            "details": self.details,
        }


def normalize_page_text(text: str) -> str:
    """Collapse whitespace and drop empty sentence artifacts from joined headlines."""
    cleaned = _WHITESPACE.sub(" ", text or "")
    cleaned = _EMPTY_SENTENCE.sub(".", cleaned)
    return cleaned.strip()
