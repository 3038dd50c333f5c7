"""CSV report rendering for aggregation store snapshots."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional, Sequence

import pandas as pd

from browsebuddy.aggregation.store import AggregationStore
from browsebuddy.errors import DownloadError
from browsebuddy.report.sinks import DownloadSink
from browsebuddy.types import StoreSnapshot

LOGGER = logging.getLogger("browsebuddy.report.serializer")

VISIT_SECTION = "Website Activity Report"
ANALYSIS_SECTION = "Content Analyses"
WARNING_SECTION = "Content Warnings"

VISIT_COLUMNS = ["URL", "First Visit", "Last Visit", "Total Time (minutes)", "Number of Visits"]
ANALYSIS_COLUMNS = ["Timestamp", "URL", "Type", "Risk Level", "Harmful Content", "Details"]
WARNING_COLUMNS = ["Timestamp", "URL", "Type", "Risk Level", "Details"]


@dataclass
class ReportResult:
    success: bool
    filename: Optional[str] = None
    download_id: Optional[str] = None
    error: Optional[str] = None


def _write_section(buf: io.StringIO, title: str, columns: Sequence[str], rows: List[list]) -> None:
    buf.write(f"{title}\n")
    frame = pd.DataFrame(rows, columns=list(columns), dtype=object)
    frame.to_csv(buf, index=False, lineterminator="\n")


class ReportSerializer:
    """Renders a store snapshot into the three-section CSV report."""

    def __init__(
        self,
        sink: DownloadSink,
        timestamp_format: str = "%x %X",
        filename_prefix: str = "browseBuddy_report",
        prompt_for_location: bool = True,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.sink = sink
        self.timestamp_format = timestamp_format
        self.filename_prefix = filename_prefix
        self.prompt_for_location = prompt_for_location
        self._today = today

    def _fmt_ts(self, value: datetime) -> str:
        return value.strftime(self.timestamp_format)

    def filename(self, today: Optional[date] = None) -> str:
        day = today or self._today()
        return f"{self.filename_prefix}_{day.isoformat()}.csv"

    def render(self, snapshot: StoreSnapshot) -> str:
        buf = io.StringIO()

        visit_rows = [
            [
                rec.url,
                self._fmt_ts(rec.first_visit),
                self._fmt_ts(rec.last_visit),
                f"{rec.total_minutes:.2f}",
                str(rec.visit_count),
            ]
            for rec in snapshot.visits
        ]
        _write_section(buf, VISIT_SECTION, VISIT_COLUMNS, visit_rows)
        buf.write("\n")

        analysis_rows = [
            [
                self._fmt_ts(rec.timestamp),
                rec.url,
                rec.type.value,
                rec.risk_level.value,
                "Yes" if rec.harmful_content else "No",
                rec.details,
            ]
            for rec in snapshot.analyses
        ]
        _write_section(buf, ANALYSIS_SECTION, ANALYSIS_COLUMNS, analysis_rows)
        buf.write("\n")

        if snapshot.warnings:
            warning_rows = [
                [
                    self._fmt_ts(rec.timestamp),
                    rec.url,
                    rec.type.value,
                    rec.risk_level.value,
                    rec.details,
                ]
                for rec in snapshot.warnings
            ]
            _write_section(buf, WARNING_SECTION, WARNING_COLUMNS, warning_rows)

        return buf.getvalue()

    async def export(self, store: AggregationStore) -> ReportResult:
        """Render the store and hand the document to the sink.

        Sink failures come back as an unsuccessful result; the store is never touched.
        """
        summary = store.summary()
        LOGGER.info(
            "Generating report: websites=%d analyses=%d warnings=%d",
            summary["websites"],
            summary["analyses"],
            summary["warnings"],
        )
        filename = self.filename()
        try:
            data = self.render(store.snapshot()).encode("utf-8")
            download_id = await self.sink.save(data, filename, self.prompt_for_location)
        except DownloadError as exc:
            LOGGER.error("Report download failed: %s", exc)
            return ReportResult(success=False, filename=filename, error=f"Failed to download report: {exc}")
        except Exception as exc:
            LOGGER.exception("Report generation failed")
            return ReportResult(success=False, filename=filename, error=str(exc) or "Failed to generate report")
        LOGGER.info("Report saved: %s (id=%s)", filename, download_id)
        return ReportResult(success=True, filename=filename, download_id=download_id)
