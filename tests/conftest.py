"""
Pytest configuration and fixtures for Beacon tests.
"""

import logging
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

VALID_CONFIG = """\
to=[ops@example.com, oncall@example.com]
sender=beacon@example.com
template_id=1234567
API_KEY=api-secret-key
eventID=1026
eventSource=.NET Runtime
keyword=xpo.svc.agent
"""


@pytest.fixture(autouse=True)
def reset_beacon_logger() -> Iterator[None]:
    """
    Undo setup_logging between tests.

    setup_logging disables propagation, which would hide records from caplog.
    """
    yield
    logger = logging.getLogger("beacon")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """
    Return a function that writes a config file into tmp_path.

    Extra keyword arguments are appended as key=value lines.
    """
    def _write(text: str = VALID_CONFIG, **extra: str) -> Path:
        lines = [text.rstrip("\n")]
        lines.extend(f"{key}={value}" for key, value in extra.items())
        path = tmp_path / "beacon.conf"
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def config_text() -> str:
    """A complete, valid configuration file body."""
    return VALID_CONFIG


@pytest.fixture
def event_xml() -> str:
    """wevtutil RenderedXml output for record 42 of '.NET Runtime' event 1026."""
    return (
        "<Event xmlns='http://schemas.microsoft.com/win/2004/08/events/event'>"
        "<System><Provider Name='.NET Runtime'/><EventID Qualifiers='0'>1026</EventID>"
        "<TimeCreated SystemTime='2024-03-05T10:15:30.1234567Z'/>"
        "<EventRecordID>42</EventRecordID><Channel>Application</Channel></System>"
        "<EventData><Data>Application: Xpo.Svc.Agent.exe</Data></EventData>"
        "<RenderingInfo Culture='en-US'><Message>Application: Xpo.Svc.Agent.exe "
        "failed with an unhandled exception.</Message></RenderingInfo></Event>"
    )
