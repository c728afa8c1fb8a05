"""
Core interfaces and data structures for Beacon.

One detection run moves a single log entry through three pluggable stages:
- Fetchers: retrieve the latest candidate entry from the host log
- Matchers: decide whether the entry carries the configured keyword
- Notifiers: send the outbound notification

The error taxonomy shared by every stage lives here as well.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class BeaconError(Exception):
    """Base class for all Beacon errors."""


class ConfigError(BeaconError):
    """Configuration could not be loaded or is invalid. Always fatal."""


class MissingKeys(ConfigError):
    """One or more required configuration keys are absent."""

    def __init__(self, keys: list[str]):
        self.keys = list(keys)
        super().__init__(f"Missing required configuration keys: {', '.join(self.keys)}")


class InvalidEventId(ConfigError):
    """The eventID value is not a non-negative integer."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"eventID must be a non-negative integer, got {value!r}")


class ConfigUnreadable(ConfigError):
    """The configuration source could not be read or parsed."""


class QueryError(BeaconError):
    """The host log could not be queried."""


class DispatchError(BeaconError):
    """A notification could not be delivered."""


class StateError(BeaconError):
    """The dedup record could not be persisted."""


class SchedulerError(BeaconError):
    """The host scheduler task could not be registered or removed."""


@dataclass(frozen=True)
class LogEntry:
    """One entry read from the host log."""
    record_id: int  # Host-assigned identifier, used as the dedup key value
    timestamp: datetime | None
    source: str
    event_id: int
    message: str


class Outcome(Enum):
    """Terminal status of one detection run."""
    NOTIFIED = "notified"
    CONFIG_ERROR = "config_error"
    NO_EVENT = "no_event"
    NO_MATCH = "no_match"
    DUPLICATE = "duplicate"
    QUERY_FAILED = "query_failed"
    DISPATCH_FAILED = "dispatch_failed"
    FRESH = "fresh"  # Dry run stopped before dispatch

    @property
    def exit_code(self) -> int:
        """Process exit status for this outcome."""
        return _EXIT_CODES[self]


_EXIT_CODES = {
    Outcome.NOTIFIED: 0,
    Outcome.FRESH: 0,
    Outcome.DISPATCH_FAILED: 1,
    Outcome.CONFIG_ERROR: 2,
    Outcome.NO_EVENT: 3,
    Outcome.NO_MATCH: 4,
    Outcome.DUPLICATE: 5,
    Outcome.QUERY_FAILED: 6,
}


@dataclass
class RunResult:
    """Result of one detection run."""
    outcome: Outcome
    detail: str
    entry: LogEntry | None = None
    error: BeaconError | None = None

    def to_dict(self) -> dict[str, Any]:
        """Machine-readable form for --json output."""
        data: dict[str, Any] = {
            "outcome": self.outcome.value,
            "exit_code": self.outcome.exit_code,
            "detail": self.detail,
        }
        if self.entry is not None:
            data["entry"] = {
                "record_id": self.entry.record_id,
                "timestamp": self.entry.timestamp.isoformat() if self.entry.timestamp else None,
                "source": self.entry.source,
                "event_id": self.entry.event_id,
            }
        if self.error is not None:
            data["error"] = type(self.error).__name__
        return data


class Fetcher(ABC):
    """
    Base class for all fetchers.

    Fetchers read the host log. They filter by source and numeric event
    code only; keyword filtering happens downstream in a Matcher.
    """

    def __init__(self, config: dict[str, Any]):
        """
        Initialize the fetcher with configuration.

        Args:
            config: Type-specific configuration dictionary
        """
        self.config = config

    @abstractmethod
    def fetch_latest(self, source: str, event_id: int) -> LogEntry | None:
        """
        Return the most recent entry for source/event_id.

        Returns:
            The newest matching LogEntry, or None if there is none

        Raises:
            QueryError: If the log backend cannot be queried
        """
        raise NotImplementedError


class Matcher(ABC):
    """
    Base class for all matchers.

    Matchers decide whether a fetched entry is a genuine occurrence.
    """

    def __init__(self, keyword: str):
        """
        Initialize the matcher.

        Args:
            keyword: The configured match keyword
        """
        self.keyword = keyword

    @abstractmethod
    def matches(self, entry: LogEntry) -> bool:
        """Return True if the entry message matches the keyword."""
        raise NotImplementedError


class Notifier(ABC):
    """
    Base class for all notifiers.

    Notifiers make exactly one delivery attempt per call and never retry.
    """

    def __init__(self, config: dict[str, Any]):
        """
        Initialize the notifier with configuration.

        Args:
            config: Type-specific configuration dictionary
        """
        self.config = config

    @abstractmethod
    def notify(self, entry: LogEntry) -> None:
        """
        Send a notification about an occurrence.

        Args:
            entry: The occurrence being notified

        Raises:
            DispatchError: If the notification could not be delivered
        """
        raise NotImplementedError
