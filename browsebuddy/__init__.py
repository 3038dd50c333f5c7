"""
Core package init for BrowseBuddy.

Aggregation ledgers, CSV reporting and content-analysis scheduling for the
browsing monitor.
"""

__all__ = [
    "aggregation",
    "analysis",
    "report",
    "config",
    "errors",
    "events",
    "io_utils",
    "types",
]
