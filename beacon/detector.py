"""
Detector that wires together fetcher, matcher, dedup state and notifier.

One run is one pass through:

    config loaded -> queried -> (no event | no match | matched)
    matched -> (duplicate | fresh) -> (notified | dispatch failed)

Every path ends in a RunResult; taxonomy errors never escape run().
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

from beacon.config import Configuration, load_config
from beacon.core import (
    ConfigError,
    DispatchError,
    Fetcher,
    Matcher,
    Notifier,
    Outcome,
    QueryError,
    RunResult,
    StateError,
)
from beacon.logging_config import get_logger
from beacon.plugins import create_fetcher, create_matcher, create_notifier
from beacon.state import DedupState

logger = get_logger(__name__)


def notifier_settings(config: Configuration) -> dict[str, Any]:
    """Notifier config dictionary derived from a Configuration."""
    return {
        "recipients": list(config.recipients),
        "sender": config.sender,
        "template_id": config.template_id,
        "api_key": config.api_key,
        "endpoint": config.endpoint,
        "timeout": config.timeout,
    }


class Detector:
    """
    Runs one detection pass for a configuration.

    The dedup record is written only after a successful dispatch, so a
    failed dispatch leaves the occurrence eligible for the next run.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        config: Configuration,
        fetcher: Fetcher,
        matcher: Matcher,
        notifier: Notifier,
        state: DedupState,
        *,
        dry_run: bool = False,
        force: bool = False
    ):
        """
        Initialize the detector.

        Args:
            config: Validated configuration
            fetcher: Fetcher for the host log
            matcher: Keyword matcher
            notifier: Notification transport
            state: Dedup state store
            dry_run: Stop before dispatch and leave state untouched
            force: Ignore the stored dedup record
        """
        self.config = config
        self.fetcher = fetcher
        self.matcher = matcher
        self.notifier = notifier
        self.state = state
        self.dry_run = dry_run
        self.force = force

    @classmethod
    def from_config(
        cls,
        config: Configuration,
        *,
        dry_run: bool = False,
        force: bool = False
    ) -> "Detector":
        """
        Build a detector and its components from configuration.

        Raises:
            ConfigError: If the configuration names an unknown plugin
        """
        try:
            fetcher = create_fetcher("wevtutil", {
                "log_name": config.log_name,
                "lookback_seconds": config.lookback_seconds,
            })
            matcher = create_matcher(config.match_mode, config.keyword)
            notifier = create_notifier(config.notifier, notifier_settings(config))
        except ValueError as e:
            raise ConfigError(str(e)) from e

        return cls(
            config=config,
            fetcher=fetcher,
            matcher=matcher,
            notifier=notifier,
            state=DedupState(config.state_dir),
            dry_run=dry_run,
            force=force,
        )

    def run(self) -> RunResult:
        """Run one detection pass and return its terminal result."""
        result = self._run()
        log = logger.error if result.outcome in (
            Outcome.QUERY_FAILED, Outcome.DISPATCH_FAILED
        ) else logger.info
        log("Run finished: %s - %s", result.outcome.value, result.detail)
        return result

    def _run(self) -> RunResult:
        config = self.config

        # Queried
        try:
            entry = self.fetcher.fetch_latest(config.event_source, config.event_id)
        except QueryError as e:
            return RunResult(Outcome.QUERY_FAILED, f"Event log query failed: {e}", error=e)

        if entry is None:
            return RunResult(
                Outcome.NO_EVENT,
                f"No '{config.event_source}' event {config.event_id} found"
            )

        if not self.matcher.matches(entry):
            return RunResult(
                Outcome.NO_MATCH,
                f"Record {entry.record_id} does not contain keyword '{config.keyword}'",
                entry=entry
            )

        # Matched
        key = config.dedup_key
        last_notified = None if self.force else self.state.read(key)
        if last_notified == entry.record_id:
            return RunResult(
                Outcome.DUPLICATE,
                f"Record {entry.record_id} was already notified",
                entry=entry
            )

        # Fresh
        logger.info(
            "New occurrence: record %d at %s (last notified: %s)",
            entry.record_id, entry.timestamp, last_notified
        )
        logger.info("Event message: %s", entry.message)

        if self.dry_run:
            return RunResult(
                Outcome.FRESH,
                f"Dry run: record {entry.record_id} would be notified",
                entry=entry
            )

        try:
            self.notifier.notify(entry)
        except DispatchError as e:
            return RunResult(Outcome.DISPATCH_FAILED, str(e), entry=entry, error=e)

        try:
            self.state.write(key, entry.record_id)
        except StateError:
            # Dispatch is not undone by a failed write
            logger.error("Notified record %d but could not save dedup state", entry.record_id,
                         exc_info=True)

        return RunResult(
            Outcome.NOTIFIED,
            f"Notified {len(config.recipients)} recipient(s) about record {entry.record_id}",
            entry=entry
        )


def run_detection(
    config_path: str | Path,
    *,
    dry_run: bool = False,
    force: bool = False,
    on_config: Callable[[Configuration], None] | None = None
) -> RunResult:
    """
    Load configuration and run one detection pass.

    Args:
        config_path: Path to the key=value configuration file
        dry_run: Stop before dispatch
        force: Ignore the stored dedup record
        on_config: Callback invoked with the loaded configuration before
            any query, e.g. to configure logging

    Returns:
        RunResult; configuration failures yield Outcome.CONFIG_ERROR and
        no query is performed
    """
    try:
        config = load_config(config_path)
        if on_config is not None:
            on_config(config)
        detector = Detector.from_config(config, dry_run=dry_run, force=force)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return RunResult(Outcome.CONFIG_ERROR, str(e), error=e)

    return detector.run()

