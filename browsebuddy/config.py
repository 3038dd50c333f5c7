"""Typed configuration for the analysis and report layers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from browsebuddy.io_utils import load_yaml

LOGGER = logging.getLogger("browsebuddy.config")

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI content moderator. Analyze content for:\n"
    "1. Harmful content\n"
    "2. Cyberbullying\n"
    "3. Inappropriate language\n"
    "4. Personal information exposure\n"
    "Respond with small analysis including type and risk level."
)


@dataclass
class AnalysisConfig:
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    cooldown_s: float = 30.0
    poll_interval_s: float = 5.0
    # Renew the session once fewer than this fraction of tokens remain
    renew_threshold: float = 0.2
    # Share of the session budget a single input may use
    input_budget_fraction: float = 0.5
    chars_per_token: int = 4
    default_max_tokens: int = 6144


@dataclass
class ReportConfig:
    filename_prefix: str = "browseBuddy_report"
    timestamp_format: str = "%x %X"
    details_max_chars: int = 1000
    prompt_for_location: bool = True
    output_dir: Path = Path("data/reports")


@dataclass
class BrowseBuddyConfig:
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BrowseBuddyConfig":
        data = data or {}
        for key in data:
            if key not in ("analysis", "report"):
                LOGGER.warning("Ignoring unknown config section %r", key)
        analysis = _build(AnalysisConfig, data.get("analysis") or {}, "analysis")
        report = _build(ReportConfig, data.get("report") or {}, "report")
        if not isinstance(report.output_dir, Path):
            report.output_dir = Path(report.output_dir)
        return cls(analysis=analysis, report=report)


def _build(config_cls, section: Dict[str, Any], name: str):
    known = {f.name for f in fields(config_cls)}
    kwargs = {}
    for key, value in section.items():
        if key not in known:
            LOGGER.warning("Ignoring unknown %s setting %r", name, key)
            continue
        kwargs[key] = value
    return config_cls(**kwargs)


def load_config(path: Optional[Path]) -> BrowseBuddyConfig:
    """Load config YAML, falling back to defaults when the file is missing."""
    if path is None or not path.exists():
        if path is not None:
            LOGGER.info("Config %s not found; using defaults", path)
        return BrowseBuddyConfig()
    return BrowseBuddyConfig.from_dict(load_yaml(path))
