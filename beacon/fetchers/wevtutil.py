"""
Fetches the latest matching Windows event log entry via wevtutil.
"""

import re
import subprocess  # nosec B404 - Required to query the host event log
import xml.etree.ElementTree as ET  # nosec B405 - Trusted output of a local system utility
from datetime import datetime

from beacon.core import Fetcher, LogEntry, QueryError
from beacon.logging_config import get_logger
from beacon.registry import register_fetcher

logger = get_logger(__name__)

EVENT_NS = {"e": "http://schemas.microsoft.com/win/2004/08/events/event"}

_SYSTEM_TIME_RE = re.compile(r"^(?P<base>[^.Z+]+)(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$")


def quote_xpath(value: str) -> str:
    """Quote a string literal for an XPath 1.0 expression."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    raise ValueError(f"Cannot quote value containing both quote characters: {value!r}")


def build_event_xpath(source: str, event_id: int, lookback_seconds: int = 0) -> str:
    """
    Build the event log XPath filter for a provider and event ID.

    Args:
        source: Provider (event source) name
        event_id: Numeric event ID
        lookback_seconds: Optional recency window (0 = no window)

    Returns:
        XPath expression usable by wevtutil and Task Scheduler subscriptions
    """
    predicates = [
        f"Provider[@Name={quote_xpath(source)}]",
        f"(EventID={event_id})",
    ]
    if lookback_seconds > 0:
        predicates.append(f"TimeCreated[timediff(@SystemTime) <= {lookback_seconds * 1000}]")
    return f"*[System[{' and '.join(predicates)}]]"


def parse_system_time(value: str | None) -> datetime | None:
    """Parse TimeCreated/@SystemTime, which carries up to 7 fractional digits."""
    if not value:
        return None

    match = _SYSTEM_TIME_RE.match(value.strip())
    if not match:
        logger.warning("Unrecognized event timestamp: %s", value)
        return None

    text = match.group("base")
    if match.group("frac"):
        text += "." + match.group("frac")[:6].ljust(6, "0")
    tz = match.group("tz")
    if tz:
        text += "+00:00" if tz == "Z" else tz

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Unrecognized event timestamp: %s", value)
        return None


def parse_event_xml(output: str) -> LogEntry | None:
    """
    Parse the first event from wevtutil XML output.

    Returns:
        LogEntry for the first event, or None if the output holds no event

    Raises:
        QueryError: If the output is not valid event XML
    """
    if not output.strip():
        return None

    # wevtutil prints events back to back without a root element
    try:
        root = ET.fromstring(f"<Events>{output.strip()}</Events>")  # nosec B314
    except ET.ParseError as e:
        raise QueryError(f"Unparseable wevtutil output: {e}") from e

    event = root.find("e:Event", EVENT_NS)
    if event is None:
        return None

    system = event.find("e:System", EVENT_NS)
    if system is None:
        raise QueryError("Event XML has no System element")

    record_id_text = system.findtext("e:EventRecordID", default="", namespaces=EVENT_NS)
    event_id_text = system.findtext("e:EventID", default="", namespaces=EVENT_NS)
    try:
        record_id = int(record_id_text.strip())
        event_id = int(event_id_text.strip())
    except ValueError as e:
        raise QueryError(
            f"Event XML has invalid EventRecordID/EventID: {record_id_text!r}/{event_id_text!r}"
        ) from e

    provider = system.find("e:Provider", EVENT_NS)
    time_created = system.find("e:TimeCreated", EVENT_NS)

    message = event.findtext("e:RenderingInfo/e:Message", default="", namespaces=EVENT_NS)
    if not message:
        data = [d.text or "" for d in event.findall("e:EventData/e:Data", EVENT_NS)]
        message = "\n".join(data)

    return LogEntry(
        record_id=record_id,
        timestamp=parse_system_time(
            time_created.get("SystemTime") if time_created is not None else None
        ),
        source=provider.get("Name", "") if provider is not None else "",
        event_id=event_id,
        message=message,
    )


@register_fetcher("wevtutil")
class WevtutilFetcher(Fetcher):
    """
    Queries the Windows event log with wevtutil.

    Only the newest entry is requested (/c:1 /rd:true); older occurrences
    are never replayed.

    Config:
        log_name: Event log channel (default: "Application")
        lookback_seconds: Optional recency window (default: 0, no window)
        timeout: Seconds to wait for wevtutil (default: 30)
    """

    def fetch_latest(self, source: str, event_id: int) -> LogEntry | None:
        """Return the newest entry for source/event_id, or None."""
        log_name = self.config.get("log_name", "Application")
        lookback = self.config.get("lookback_seconds", 0)
        timeout = self.config.get("timeout", 30)

        try:
            query = build_event_xpath(source, event_id, lookback)
        except ValueError as e:
            raise QueryError(str(e)) from e

        command = [
            "wevtutil", "qe", log_name,
            f"/q:{query}",
            "/c:1",
            "/rd:true",
            "/f:RenderedXml",
        ]
        logger.debug("Querying event log: %s", command)

        try:
            result = subprocess.run(
                command,  # nosec B603 B607 - Standard Windows event log utility
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False
            )
        except FileNotFoundError as e:
            raise QueryError("wevtutil not found; reading the event log requires Windows") from e
        except subprocess.TimeoutExpired as e:
            raise QueryError(f"wevtutil timed out after {timeout}s") from e
        except OSError as e:
            raise QueryError(f"Failed to run wevtutil: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            # An empty result set is reported as an error on some Windows builds
            if "No events were found" in stderr:
                return None
            raise QueryError(f"wevtutil exited with {result.returncode}: {stderr}")

        entry = parse_event_xml(result.stdout)
        if entry is None:
            logger.info("No '%s' event %d found in %s log", source, event_id, log_name)
        else:
            logger.info(
                "Latest '%s' event %d in %s log: record %d at %s",
                source, event_id, log_name, entry.record_id, entry.timestamp
            )
        return entry


# Export for dynamic importing
__all__ = ["WevtutilFetcher"]
