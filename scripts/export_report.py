#!/usr/bin/env python3
"""CLI for replaying a browsing event log and exporting the CSV report."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from tqdm import tqdm

from browsebuddy.aggregation.store import AggregationStore
from browsebuddy.config import BrowseBuddyConfig, load_config
from browsebuddy.errors import MalformedInputError
from browsebuddy.events import EventRouter, GenerateReportRequest, event_from_message
from browsebuddy.io_utils import count_lines, iter_jsonl, setup_logging
from browsebuddy.report.serializer import ReportSerializer
from browsebuddy.report.sinks import FileDownloadSink


LOGGER = logging.getLogger("scripts.export_report")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay browsing events and export the CSV report")
    parser.add_argument("events", type=Path, help="JSONL event log (one message per line)")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/browsebuddy.yaml"),
        help="BrowseBuddy configuration YAML",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the report (defaults to report.output_dir)",
    )
    parser.add_argument(
        "--timestamp-format",
        type=str,
        default=None,
        help="strftime format for report timestamps",
    )
    parser.add_argument("--overwrite", action="store_true", help="Replace an existing report for today")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def build_router(cfg: BrowseBuddyConfig, args: argparse.Namespace) -> EventRouter:
    output_dir = args.output_dir if args.output_dir is not None else cfg.report.output_dir
    timestamp_format = args.timestamp_format if args.timestamp_format is not None else cfg.report.timestamp_format
    store = AggregationStore(details_max_chars=cfg.report.details_max_chars)
    serializer = ReportSerializer(
        sink=FileDownloadSink(output_dir, overwrite=args.overwrite),
        timestamp_format=timestamp_format,
        filename_prefix=cfg.report.filename_prefix,
        prompt_for_location=cfg.report.prompt_for_location,
    )
    return EventRouter(store, serializer)


async def replay(router: EventRouter, events_path: Path, show_progress: bool = True) -> Dict[str, int]:
    stats = {"applied": 0, "rejected": 0, "malformed": 0}
    total = count_lines(events_path)
    for line_no, message in tqdm(
        iter_jsonl(events_path), total=total, desc="events", unit="evt", disable=not show_progress
    ):
        if message is None:
            stats["malformed"] += 1
            continue
        try:
            event = event_from_message(message)
        except MalformedInputError as exc:
            LOGGER.warning("Line %d: %s", line_no, exc)
            stats["malformed"] += 1
            continue
        if isinstance(event, GenerateReportRequest):
            # The report is written once, after the whole log is replayed.
            continue
        result = await router.handle(event)
        stats["applied" if result.success else "rejected"] += 1
    return stats


async def _run(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    router = build_router(cfg, args)
    stats = await replay(router, args.events, show_progress=not args.no_progress)
    LOGGER.info(
        "Replayed %s: applied=%d rejected=%d malformed=%d",
        args.events,
        stats["applied"],
        stats["rejected"],
        stats["malformed"],
    )
    result = await router.handle(GenerateReportRequest())
    if not result.success:
        LOGGER.error("Report export failed: %s", result.error)
        return 1
    LOGGER.info("Exported report %s", result.filename)
    return 0


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
