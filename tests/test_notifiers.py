"""
Tests for notifier implementations.
"""

from datetime import datetime
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests

from beacon.core import DispatchError, LogEntry
from beacon.notifiers import ConsoleNotifier, Smtp2GoNotifier
from beacon.notifiers.console import mask_secret


@pytest.fixture
def settings() -> dict[str, Any]:
    """Notifier settings as built by the detector."""
    return {
        "recipients": ["ops@example.com", "oncall@example.com"],
        "sender": "beacon@example.com",
        "template_id": "1234567",
        "api_key": "api-secret-key",
        "endpoint": None,
        "timeout": 10.0,
    }


@pytest.fixture
def entry() -> LogEntry:
    """A matched occurrence."""
    return LogEntry(
        record_id=42,
        timestamp=datetime(2024, 3, 5, 10, 15, 30),
        source=".NET Runtime",
        event_id=1026,
        message="Application: Xpo.Svc.Agent.exe failed",
    )


class TestSmtp2GoNotifier:
    """Tests for Smtp2GoNotifier."""

    def test_notify_success(self, settings: dict[str, Any], entry: LogEntry) -> None:
        """Test successful dispatch and the request payload."""
        notifier = Smtp2GoNotifier(settings)

        with patch('requests.post') as mock_post:
            mock_response = MagicMock()
            mock_response.raise_for_status = MagicMock()
            mock_post.return_value = mock_response

            notifier.notify(entry)

            mock_post.assert_called_once()
            call_args = mock_post.call_args
            assert call_args[0][0] == "https://api.smtp2go.com/v3/email/send"
            assert call_args[1]["json"] == {
                "api_key": "api-secret-key",
                "to": ["ops@example.com", "oncall@example.com"],
                "sender": "beacon@example.com",
                "template_id": "1234567",
            }
            assert call_args[1]["timeout"] == 10.0

    def test_endpoint_override(self, settings: dict[str, Any], entry: LogEntry) -> None:
        """Test that endpoint replaces the fixed API URL."""
        settings["endpoint"] = "https://mail.internal/send"
        notifier = Smtp2GoNotifier(settings)

        with patch('requests.post') as mock_post:
            notifier.notify(entry)

            assert mock_post.call_args[0][0] == "https://mail.internal/send"

    def test_http_error(self, settings: dict[str, Any], entry: LogEntry) -> None:
        """Test that a >= 400 response becomes DispatchError."""
        notifier = Smtp2GoNotifier(settings)
        response = requests.Response()
        response.status_code = 401

        with patch('requests.post') as mock_post:
            mock_response = MagicMock()
            mock_response.raise_for_status.side_effect = requests.HTTPError(
                "401 Unauthorized", response=response
            )
            mock_post.return_value = mock_response

            with pytest.raises(DispatchError, match="HTTP 401") as exc_info:
                notifier.notify(entry)

        assert "api-secret-key" not in str(exc_info.value)

    def test_network_error(self, settings: dict[str, Any], entry: LogEntry) -> None:
        """Test that a connection failure becomes DispatchError."""
        notifier = Smtp2GoNotifier(settings)

        with patch('requests.post', side_effect=requests.ConnectionError("refused")):
            with pytest.raises(DispatchError, match="ConnectionError"):
                notifier.notify(entry)

    def test_timeout_not_retried(self, settings: dict[str, Any], entry: LogEntry) -> None:
        """Test that a timeout is reported once, without retrying."""
        notifier = Smtp2GoNotifier(settings)

        with patch('requests.post', side_effect=requests.Timeout()) as mock_post:
            with pytest.raises(DispatchError):
                notifier.notify(entry)

            assert mock_post.call_count == 1

    def test_api_key_not_logged(
        self, settings: dict[str, Any], entry: LogEntry, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that the API key never reaches the log."""
        notifier = Smtp2GoNotifier(settings)

        with caplog.at_level("DEBUG", logger="beacon"):
            with patch('requests.post'):
                notifier.notify(entry)

        assert "Notification for record 42 sent" in caplog.text
        assert "api-secret-key" not in caplog.text


class TestConsoleNotifier:
    """Tests for ConsoleNotifier."""

    def test_notify_prints(
        self, settings: dict[str, Any], entry: LogEntry, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that console output shows the event and masks the key."""
        ConsoleNotifier(settings).notify(entry)

        output = capsys.readouterr().out
        assert ".NET Runtime 1026 (record 42)" in output
        assert "ops@example.com, oncall@example.com" in output
        assert "Xpo.Svc.Agent.exe failed" in output
        assert "api-secret-key" not in output
        assert "*" * 10 + "-key" in output

    def test_mask_secret(self) -> None:
        """Test secret masking."""
        assert mask_secret("abcdefgh") == "****efgh"
        assert mask_secret("abc") == "***"
        assert mask_secret("") == ""
