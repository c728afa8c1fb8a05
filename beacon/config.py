"""
Configuration loading and validation for Beacon.

The configuration file is a plain key=value text file, one setting per
line. Required keys:

    to=[ops@example.com, oncall@example.com]
    sender=beacon@example.com
    template_id=1234567
    API_KEY=api-XXXXXXXX
    eventID=1026
    eventSource=.NET Runtime
    keyword=xpo.svc.agent
"""

import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from beacon.core import ConfigError, ConfigUnreadable, InvalidEventId, MissingKeys
from beacon.logging_config import get_logger

logger = get_logger(__name__)

# File key -> Configuration field, in the order they are reported when missing
REQUIRED_KEYS: dict[str, str] = {
    "to": "recipients",
    "sender": "sender",
    "template_id": "template_id",
    "API_KEY": "api_key",
    "eventID": "event_id",
    "eventSource": "event_source",
    "keyword": "keyword",
}

OPTIONAL_KEYS: dict[str, str] = {
    "match_mode": "match_mode",
    "notifier": "notifier",
    "endpoint": "endpoint",
    "timeout": "timeout",
    "log_name": "log_name",
    "lookback_seconds": "lookback_seconds",
    "state_dir": "state_dir",
    "log_file": "log_file",
    "log_level": "log_level",
}

_EVENT_ID_RE = re.compile(r"^\d+$")


def sanitize_keyword(keyword: str) -> str:
    """
    Strip every non-alphabetic character from a keyword.

    The result keys the dedup record and names the scheduled task.
    sanitize_keyword(sanitize_keyword(k)) == sanitize_keyword(k).
    """
    return "".join(ch for ch in keyword if ch.isalpha())


class Configuration(BaseModel):
    """Validated, immutable settings for one Beacon run."""
    model_config = ConfigDict(frozen=True)

    recipients: tuple[str, ...] = Field(..., min_length=1)
    sender: str = Field(..., min_length=1)
    template_id: str = Field(..., min_length=1)
    api_key: str = Field(..., min_length=1, repr=False)
    event_id: int = Field(..., ge=0)
    event_source: str = Field(..., min_length=1)
    keyword: str = Field(..., min_length=1)

    match_mode: Literal["contains", "contains_case", "regex"] = "contains"
    notifier: str = "smtp2go"
    endpoint: str | None = None
    timeout: float = Field(10.0, gt=0)
    log_name: str = Field("Application", min_length=1)
    lookback_seconds: int = Field(0, ge=0)
    state_dir: Path = Path("state")
    log_file: str | None = None
    log_level: str = "INFO"

    @field_validator("recipients")
    @classmethod
    def _strip_recipients(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        recipients = tuple(r.strip() for r in value if r.strip())
        if not recipients:
            raise ValueError("at least one recipient is required")
        return recipients

    @field_validator("event_source")
    @classmethod
    def _check_event_source(cls, value: str) -> str:
        if "'" in value and '"' in value:
            raise ValueError("eventSource cannot contain both single and double quotes")
        return value

    @model_validator(mode="after")
    def _check_keyword(self) -> "Configuration":
        if not sanitize_keyword(self.keyword):
            raise ValueError(
                f"keyword {self.keyword!r} contains no alphabetic characters"
            )
        if self.match_mode == "regex":
            try:
                re.compile(self.keyword)
            except re.error as e:
                raise ValueError(f"keyword is not a valid regular expression: {e}") from e
        return self

    @property
    def dedup_key(self) -> str:
        """Storage key for the dedup record."""
        return sanitize_keyword(self.keyword)

    @property
    def task_name(self) -> str:
        """Name of the scheduled task that invokes detection."""
        return f"Beacon-{sanitize_keyword(self.keyword)}"


def parse_key_values(text: str) -> dict[str, str]:
    """
    Parse key=value lines.

    Each line splits on the first '='. Blank lines and lines starting
    with '#' or ';' are skipped. Matching surrounding quotes are removed
    from values.

    Raises:
        ConfigUnreadable: If a non-blank line has no '='
    """
    values: dict[str, str] = {}
    for lineno, raw_line in enumerate(text.splitlines(), 1):
        line = raw_line.strip()
        if not line or line.startswith(("#", ";")):
            continue
        if "=" not in line:
            raise ConfigUnreadable(f"Line {lineno} is not a key=value pair: {raw_line!r}")

        key, value = line.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        values[key.strip()] = value
    return values


def parse_recipients(value: str) -> list[str]:
    """
    Parse the 'to' value into an ordered list of addresses.

    Accepts a bracketed list ("[a@x.io, b@y.io]"), a single address, or
    a plain comma separated list.
    """
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as e:
        raise ConfigUnreadable(f"Cannot parse recipient list {value!r}: {e}") from e

    if parsed is None:
        return []
    if isinstance(parsed, list):
        if not all(item is None or isinstance(item, str) for item in parsed):
            raise ConfigUnreadable(f"Recipient list {value!r} must hold plain addresses")
        items = [item for item in parsed if item is not None]
    elif isinstance(parsed, str):
        items = parsed.split(",")
    else:
        raise ConfigUnreadable(f"Cannot parse recipient list {value!r}")
    return [item.strip() for item in items if item.strip()]


def build_config(values: dict[str, str], base_dir: Path | None = None) -> Configuration:
    """
    Validate raw key/value pairs into a Configuration.

    Args:
        values: Parsed key=value pairs
        base_dir: Directory that relative state_dir/log_file paths resolve against

    Returns:
        Validated Configuration

    Raises:
        MissingKeys: If any required key is absent
        InvalidEventId: If eventID is not a non-negative integer
        ConfigError: If any other value is invalid
    """
    missing = [key for key in REQUIRED_KEYS if key not in values]
    if missing:
        raise MissingKeys(missing)

    event_id = values["eventID"]
    if not _EVENT_ID_RE.match(event_id):
        raise InvalidEventId(event_id)

    fields: dict[str, Any] = {}
    for key, value in values.items():
        if key in REQUIRED_KEYS:
            fields[REQUIRED_KEYS[key]] = value
        elif key in OPTIONAL_KEYS:
            if value:
                fields[OPTIONAL_KEYS[key]] = value
        else:
            logger.warning("Ignoring unknown configuration key '%s'", key)

    fields["recipients"] = parse_recipients(values["to"])
    fields["event_id"] = int(event_id)

    if base_dir is not None:
        state_dir = Path(fields.get("state_dir", "state"))
        fields["state_dir"] = state_dir if state_dir.is_absolute() else base_dir / state_dir
        if "log_file" in fields:
            log_file = Path(fields["log_file"])
            fields["log_file"] = str(log_file if log_file.is_absolute() else base_dir / log_file)

    try:
        return Configuration.model_validate(fields)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation error: {e}") from e


def load_config(config_path: str | Path) -> Configuration:
    """
    Load and validate configuration from a key=value file.

    Relative paths inside the file resolve against the file's directory.

    Raises:
        ConfigUnreadable: If the file is missing or unreadable
        ConfigError: If the configuration is invalid
    """
    path = Path(config_path)

    try:
        text = path.read_text(encoding="utf-8-sig")
    except FileNotFoundError as e:
        raise ConfigUnreadable(f"Configuration file not found: {config_path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigUnreadable(f"Cannot read configuration file {config_path}: {e}") from e

    return build_config(parse_key_values(text), base_dir=path.resolve().parent)
