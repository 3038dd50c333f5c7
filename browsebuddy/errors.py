"""Error taxonomy for the browsebuddy core."""

from __future__ import annotations


class BrowseBuddyError(Exception):
    """Base class for all browsebuddy errors."""


class InitializationError(BrowseBuddyError):
    """Classifier session could not be created. Retried on the next request."""


class BudgetExhaustionError(BrowseBuddyError):
    """Classifier session token budget is critical or was exceeded."""


class ClassificationError(BrowseBuddyError):
    """The classify call failed."""


class MalformedInputError(BrowseBuddyError, ValueError):
    """Null, empty or otherwise unusable inbound payload."""


class DownloadError(BrowseBuddyError):
    """The download sink failed to save the report."""


def is_budget_message(message: object) -> bool:
    """True when an error message points at a token or limit problem."""
    text = str(message or "").lower()
    return "token" in text or "limit" in text
