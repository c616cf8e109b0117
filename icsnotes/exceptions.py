"""Exception hierarchy for icsnotes."""

from typing import Optional


class IcsNotesError(Exception):
    """Base exception for icsnotes errors."""

    def __init__(self, message: str, source_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source_name = source_name


class FeedError(IcsNotesError):
    """Base exception for errors that make a whole feed unusable for one cycle."""


class FeedFetchError(FeedError):
    """Exception raised when a feed cannot be downloaded."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, source_name)
        self.status_code = status_code


class FeedAuthError(FeedFetchError):
    """Exception raised when the feed server rejects our credentials."""


class FeedNetworkError(FeedFetchError):
    """Exception raised for connection-level failures."""


class FeedTimeoutError(FeedFetchError):
    """Exception raised when the feed request times out."""


class FeedParseError(FeedError):
    """Exception raised when feed content is not valid iCalendar data."""


class EntryError(IcsNotesError):
    """Exception raised for a single entry that cannot be used.

    Entry errors never abort a feed; the entry is skipped and its siblings
    are processed normally.
    """


class RuleEvaluationError(EntryError):
    """Exception raised when a recurrence rule cannot be evaluated."""


class ConfigError(IcsNotesError):
    """Exception raised when configuration is invalid."""
