"""
Tests for the detection pipeline.
"""

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from beacon.config import Configuration, build_config, parse_key_values
from beacon.core import (
    DispatchError,
    Fetcher,
    LogEntry,
    MissingKeys,
    Notifier,
    Outcome,
    QueryError,
    StateError,
)
from beacon.detector import Detector, notifier_settings, run_detection
from beacon.fetchers import WevtutilFetcher
from beacon.matchers import ContainsMatcher, RegexMatcher
from beacon.notifiers import ConsoleNotifier, Smtp2GoNotifier
from beacon.state import DedupState

SCENARIO_ENTRY = LogEntry(
    record_id=42,
    timestamp=datetime(2024, 3, 5, 10, 15, 30),
    source=".NET Runtime",
    event_id=1026,
    message="Application: Xpo.Svc.Agent.exe failed with an unhandled exception",
)


class FakeFetcher(Fetcher):
    """Returns a fixed entry and records queries."""

    def __init__(self, entry: LogEntry | None = None, error: Exception | None = None):
        super().__init__({})
        self.entry = entry
        self.error = error
        self.queries: list[tuple[str, int]] = []

    def fetch_latest(self, source: str, event_id: int) -> LogEntry | None:
        self.queries.append((source, event_id))
        if self.error:
            raise self.error
        return self.entry


class RecordingNotifier(Notifier):
    """Records dispatches, optionally failing."""

    def __init__(self, config: dict[str, Any], fail: bool = False):
        super().__init__(config)
        self.fail = fail
        self.sent: list[LogEntry] = []

    def notify(self, entry: LogEntry) -> None:
        self.sent.append(entry)
        if self.fail:
            raise DispatchError("HTTP 503")


@pytest.fixture
def config(config_text: str, tmp_path: Path) -> Configuration:
    """Scenario configuration with state under tmp_path."""
    values = parse_key_values(config_text)
    values["state_dir"] = str(tmp_path / "state")
    return build_config(values)


@pytest.fixture
def make_detector(config: Configuration) -> Callable[..., Detector]:
    """Return a factory for detectors sharing one state directory."""
    def _make(
        entry: LogEntry | None = SCENARIO_ENTRY,
        notifier: Notifier | None = None,
        fetcher: Fetcher | None = None,
        **kwargs: Any
    ) -> Detector:
        return Detector(
            config=config,
            fetcher=fetcher or FakeFetcher(entry),
            matcher=ContainsMatcher(config.keyword),
            notifier=notifier or RecordingNotifier(notifier_settings(config)),
            state=DedupState(config.state_dir),
            **kwargs
        )
    return _make


class TestScenarios:
    """End-to-end detection scenarios."""

    def test_fresh_occurrence_is_notified(self, config: Configuration) -> None:
        """Scenario A: new matching occurrence is dispatched, then recorded."""
        state = DedupState(config.state_dir)
        fetcher = FakeFetcher(SCENARIO_ENTRY)
        notifier = Smtp2GoNotifier(notifier_settings(config))
        detector = Detector(config, fetcher, ContainsMatcher(config.keyword), notifier, state)

        with patch('requests.post') as mock_post:
            result = detector.run()

            mock_post.assert_called_once()
            payload = mock_post.call_args[1]["json"]
            assert payload["to"] == ["ops@example.com", "oncall@example.com"]
            assert payload["sender"] == "beacon@example.com"
            assert payload["template_id"] == "1234567"
            assert payload["api_key"] == "api-secret-key"

        assert result.outcome is Outcome.NOTIFIED
        assert result.entry == SCENARIO_ENTRY
        assert fetcher.queries == [(".NET Runtime", 1026)]
        assert state.read("xposvcagent") == 42

    def test_already_notified_is_suppressed(
        self, config: Configuration, make_detector: Callable[..., Detector]
    ) -> None:
        """Scenario B: state already holds the record ID."""
        DedupState(config.state_dir).write(config.dedup_key, 42)
        notifier = RecordingNotifier({})

        result = make_detector(notifier=notifier).run()

        assert result.outcome is Outcome.DUPLICATE
        assert notifier.sent == []

    def test_no_candidate(self, config: Configuration, make_detector: Callable[..., Detector]) -> None:
        """Scenario C: no entry in the log."""
        notifier = RecordingNotifier({})

        result = make_detector(entry=None, notifier=notifier).run()

        assert result.outcome is Outcome.NO_EVENT
        assert notifier.sent == []
        assert not DedupState(config.state_dir).path_for(config.dedup_key).exists()

    def test_missing_api_key(
        self, config_text: str, write_config: Callable[..., Path]
    ) -> None:
        """Scenario D: missing API_KEY stops before any query."""
        path = write_config(config_text.replace("API_KEY=api-secret-key\n", ""))

        with patch.object(WevtutilFetcher, "fetch_latest") as mock_fetch:
            result = run_detection(path)

            mock_fetch.assert_not_called()

        assert result.outcome is Outcome.CONFIG_ERROR
        assert isinstance(result.error, MissingKeys)
        assert result.error.keys == ["API_KEY"]


class TestDedupProperties:
    """Dedup guarantees across sequential runs."""

    def test_sequential_runs_notify_once(self, make_detector: Callable[..., Detector]) -> None:
        """Test two runs on the same occurrence dispatch exactly once."""
        first_notifier = RecordingNotifier({})
        second_notifier = RecordingNotifier({})

        first = make_detector(notifier=first_notifier).run()
        second = make_detector(notifier=second_notifier).run()

        assert first.outcome is Outcome.NOTIFIED
        assert second.outcome is Outcome.DUPLICATE
        assert len(first_notifier.sent) == 1
        assert second_notifier.sent == []

    def test_new_occurrence_after_notified_one(
        self, config: Configuration, make_detector: Callable[..., Detector]
    ) -> None:
        """Test that a later occurrence replaces the recorded one."""
        make_detector().run()
        newer = LogEntry(43, datetime(2024, 3, 6), ".NET Runtime", 1026, "xpo.svc.agent again")
        notifier = RecordingNotifier({})

        result = make_detector(entry=newer, notifier=notifier).run()

        assert result.outcome is Outcome.NOTIFIED
        assert notifier.sent == [newer]
        assert DedupState(config.state_dir).read(config.dedup_key) == 43

    @pytest.mark.parametrize("content", ["garbage{", "", "not-a-number", "{\"last_notified\": null}"])
    def test_corrupt_state_fails_open(
        self, config: Configuration, make_detector: Callable[..., Detector], content: str
    ) -> None:
        """Test that corrupt state is treated as no prior record."""
        path = DedupState(config.state_dir).path_for(config.dedup_key)
        path.parent.mkdir(parents=True)
        path.write_text(content, encoding="utf-8")
        notifier = RecordingNotifier({})

        result = make_detector(notifier=notifier).run()

        assert result.outcome is Outcome.NOTIFIED
        assert len(notifier.sent) == 1
        assert DedupState(config.state_dir).read(config.dedup_key) == 42

    def test_no_match_never_dispatches(
        self, config: Configuration, make_detector: Callable[..., Detector]
    ) -> None:
        """Test that a non-matching candidate is never dispatched."""
        other = LogEntry(42, None, ".NET Runtime", 1026, "Application: other.exe failed")
        notifier = RecordingNotifier({})

        result = make_detector(entry=other, notifier=notifier).run()

        assert result.outcome is Outcome.NO_MATCH
        assert result.entry == other
        assert notifier.sent == []
        assert DedupState(config.state_dir).read(config.dedup_key) is None

    def test_dispatch_failure_keeps_retry_eligibility(
        self, config: Configuration, make_detector: Callable[..., Detector]
    ) -> None:
        """Test that a failed dispatch leaves state untouched for the next run."""
        state = DedupState(config.state_dir)
        state.write(config.dedup_key, 41)
        failing = RecordingNotifier({}, fail=True)

        with patch.object(DedupState, "write") as mock_write:
            result = make_detector(notifier=failing).run()
            mock_write.assert_not_called()

        assert result.outcome is Outcome.DISPATCH_FAILED
        assert isinstance(result.error, DispatchError)
        assert state.read(config.dedup_key) == 41

        retry_notifier = RecordingNotifier({})
        retry = make_detector(notifier=retry_notifier).run()

        assert retry.outcome is Outcome.NOTIFIED
        assert len(retry_notifier.sent) == 1


class TestDetectorErrors:
    """Error handling inside a run."""

    def test_query_error(self, config: Configuration, make_detector: Callable[..., Detector]) -> None:
        """Test that a query failure is terminal and leaves state alone."""
        notifier = RecordingNotifier({})
        fetcher = FakeFetcher(error=QueryError("wevtutil not found"))

        result = make_detector(fetcher=fetcher, notifier=notifier).run()

        assert result.outcome is Outcome.QUERY_FAILED
        assert "wevtutil not found" in result.detail
        assert notifier.sent == []
        assert DedupState(config.state_dir).read(config.dedup_key) is None

    def test_state_write_failure_keeps_notified(
        self, make_detector: Callable[..., Detector], caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a failed state write does not undo a sent notification."""
        notifier = RecordingNotifier({})

        with patch.object(DedupState, "write", side_effect=StateError("read-only")):
            result = make_detector(notifier=notifier).run()

        assert result.outcome is Outcome.NOTIFIED
        assert len(notifier.sent) == 1
        assert "could not save dedup state" in caplog.text

    def test_unreadable_state_fails_open(
        self, config: Configuration, make_detector: Callable[..., Detector]
    ) -> None:
        """Test that a record that cannot be read is treated as no record."""
        # A directory where the record file should be cannot be read as text
        DedupState(config.state_dir).path_for(config.dedup_key).mkdir(parents=True)
        notifier = RecordingNotifier({})

        result = make_detector(notifier=notifier).run()

        assert result.outcome is Outcome.NOTIFIED
        assert len(notifier.sent) == 1

    def test_run_logs_outcome(
        self, make_detector: Callable[..., Detector], caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that every run logs its terminal outcome."""
        with caplog.at_level("INFO", logger="beacon"):
            make_detector(entry=None).run()

        assert "Run finished: no_event" in caplog.text


class TestDetectorModes:
    """Dry-run and force modes."""

    def test_dry_run(self, config: Configuration, make_detector: Callable[..., Detector]) -> None:
        """Test that dry run stops before dispatch and writes nothing."""
        notifier = RecordingNotifier({})

        result = make_detector(notifier=notifier, dry_run=True).run()

        assert result.outcome is Outcome.FRESH
        assert notifier.sent == []
        assert DedupState(config.state_dir).read(config.dedup_key) is None

    def test_dry_run_reports_duplicate(
        self, config: Configuration, make_detector: Callable[..., Detector]
    ) -> None:
        """Test that dry run still honours dedup state."""
        DedupState(config.state_dir).write(config.dedup_key, 42)

        result = make_detector(dry_run=True).run()

        assert result.outcome is Outcome.DUPLICATE

    def test_force_ignores_state(
        self, config: Configuration, make_detector: Callable[..., Detector]
    ) -> None:
        """Test that force re-notifies an already notified record."""
        DedupState(config.state_dir).write(config.dedup_key, 42)
        notifier = RecordingNotifier({})

        result = make_detector(notifier=notifier, force=True).run()

        assert result.outcome is Outcome.NOTIFIED
        assert len(notifier.sent) == 1


class TestFromConfig:
    """Tests for building detectors from configuration."""

    def test_default_components(self, config: Configuration) -> None:
        """Test the default plugin selection."""
        detector = Detector.from_config(config)

        assert isinstance(detector.fetcher, WevtutilFetcher)
        assert isinstance(detector.matcher, ContainsMatcher)
        assert isinstance(detector.notifier, Smtp2GoNotifier)
        assert detector.notifier.config["api_key"] == "api-secret-key"
        assert detector.state.state_dir == config.state_dir

    def test_configured_components(self, config: Configuration) -> None:
        """Test selecting matcher and notifier by name."""
        custom = config.model_copy(update={"match_mode": "regex", "notifier": "console"})

        detector = Detector.from_config(custom, dry_run=True)

        assert isinstance(detector.matcher, RegexMatcher)
        assert isinstance(detector.notifier, ConsoleNotifier)
        assert detector.dry_run is True

    def test_unknown_notifier(self, write_config: Callable[..., Path]) -> None:
        """Test that an unknown notifier is a configuration error."""
        result = run_detection(write_config(notifier="carrier-pigeon"))

        assert result.outcome is Outcome.CONFIG_ERROR
        assert "Unknown notifier type" in result.detail


class TestRunDetection:
    """Tests for run_detection."""

    def test_full_run_with_wevtutil(
        self, write_config: Callable[..., Path], tmp_path: Path, event_xml: str
    ) -> None:
        """Test config file to notification with subprocess and HTTP mocked."""
        path = write_config()
        seen: list[Configuration] = []

        with patch("subprocess.run") as mock_run, patch("requests.post") as mock_post:
            mock_run.return_value = MagicMock(
                stdout=event_xml, stderr="", returncode=0
            )
            first = run_detection(path, on_config=seen.append)
            second = run_detection(path)

            assert mock_post.call_count == 1

        assert first.outcome is Outcome.NOTIFIED
        assert second.outcome is Outcome.DUPLICATE
        assert len(seen) == 1
        assert DedupState(tmp_path.resolve() / "state").read("xposvcagent") == 42

    def test_missing_config_file(self, tmp_path: Path) -> None:
        """Test that a missing config file is a configuration error."""
        result = run_detection(tmp_path / "absent.conf")

        assert result.outcome is Outcome.CONFIG_ERROR
        assert result.outcome.exit_code == 2
