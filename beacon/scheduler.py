"""
Registers the Windows scheduled task that runs detection on each event.

The task is event-triggered: Task Scheduler subscribes to the same
provider/EventID filter the detector queries, and starts
`beacon -c <config> detect` as SYSTEM whenever a matching event is logged.
"""

import subprocess  # nosec B404 - Required to register tasks with schtasks
import sys
import tempfile
import xml.etree.ElementTree as ET  # nosec B405 - Only used to build XML
from pathlib import Path

from beacon.config import Configuration
from beacon.core import SchedulerError
from beacon.fetchers.wevtutil import build_event_xpath
from beacon.logging_config import get_logger

logger = get_logger(__name__)

TASK_NS = "http://schemas.microsoft.com/windows/2004/02/mit/task"
SYSTEM_SID = "S-1-5-18"


def _sub(parent: ET.Element, tag: str, text: str | None = None, **attrib: str) -> ET.Element:
    element = ET.SubElement(parent, f"{{{TASK_NS}}}{tag}", attrib)
    if text is not None:
        element.text = text
    return element


class TaskRegistrar:
    """
    Builds and registers the detection task for one configuration.

    Registration replaces any task with the same name, so running it
    twice leaves exactly one task.
    """

    def __init__(
        self,
        config: Configuration,
        config_path: str | Path,
        executable: str | None = None,
        working_dir: str | Path | None = None
    ) -> None:
        """
        Initialize the registrar.

        Args:
            config: Validated configuration
            config_path: Configuration file the task passes to `detect`
            executable: Program to run; defaults to this Python interpreter
                with `-m beacon`
            working_dir: Task working directory; defaults to the config
                file's directory
        """
        self.config = config
        self.config_path = Path(config_path).resolve()
        self.executable = executable
        self.working_dir = Path(working_dir) if working_dir else self.config_path.parent

    @property
    def task_name(self) -> str:
        """Scheduled task name."""
        return self.config.task_name

    def subscription_query(self) -> str:
        """Event log subscription XML for the task trigger."""
        log_name = self.config.log_name
        xpath = build_event_xpath(
            self.config.event_source,
            self.config.event_id,
            self.config.lookback_seconds
        )
        query_list = ET.Element("QueryList")
        query = ET.SubElement(query_list, "Query", {"Id": "0", "Path": log_name})
        select = ET.SubElement(query, "Select", {"Path": log_name})
        select.text = xpath
        return ET.tostring(query_list, encoding="unicode")

    def command(self) -> tuple[str, str]:
        """Return (command, arguments) for the task action."""
        arguments = f'-c "{self.config_path}" detect'
        if self.executable:
            return self.executable, arguments
        return sys.executable, f"-m beacon {arguments}"

    def build_task_xml(self) -> str:
        """Build the Task Scheduler XML definition."""
        ET.register_namespace("", TASK_NS)
        task = ET.Element(f"{{{TASK_NS}}}Task", {"version": "1.2"})

        info = _sub(task, "RegistrationInfo")
        _sub(info, "Description",
             f"Beacon: notify on '{self.config.event_source}' event "
             f"{self.config.event_id} containing '{self.config.keyword}'")

        triggers = _sub(task, "Triggers")
        trigger = _sub(triggers, "EventTrigger")
        _sub(trigger, "Enabled", "true")
        _sub(trigger, "Subscription", self.subscription_query())

        principals = _sub(task, "Principals")
        principal = _sub(principals, "Principal", id="Author")
        _sub(principal, "UserId", SYSTEM_SID)
        _sub(principal, "RunLevel", "HighestAvailable")

        settings = _sub(task, "Settings")
        _sub(settings, "MultipleInstancesPolicy", "IgnoreNew")
        _sub(settings, "DisallowStartIfOnBatteries", "false")
        _sub(settings, "StopIfGoingOnBatteries", "false")
        _sub(settings, "ExecutionTimeLimit", "PT10M")
        _sub(settings, "Enabled", "true")

        actions = _sub(task, "Actions", Context="Author")
        exec_action = _sub(actions, "Exec")
        command, arguments = self.command()
        _sub(exec_action, "Command", command)
        _sub(exec_action, "Arguments", arguments)
        _sub(exec_action, "WorkingDirectory", str(self.working_dir))

        body = ET.tostring(task, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-16"?>\n{body}'

    def register(self) -> None:
        """
        Create or replace the scheduled task.

        Raises:
            SchedulerError: If schtasks fails
        """
        # schtasks reads the file as UTF-16, matching the XML declaration
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-16", suffix=".xml", delete=False
        ) as f:
            f.write(self.build_task_xml())
            xml_path = Path(f.name)

        try:
            self._schtasks(["/Create", "/TN", self.task_name, "/XML", str(xml_path), "/F"])
        finally:
            xml_path.unlink(missing_ok=True)

        logger.info("Registered scheduled task '%s'", self.task_name)

    def unregister(self) -> None:
        """
        Delete the scheduled task.

        Raises:
            SchedulerError: If schtasks fails
        """
        self._schtasks(["/Delete", "/TN", self.task_name, "/F"])
        logger.info("Removed scheduled task '%s'", self.task_name)

    def _schtasks(self, args: list[str]) -> None:
        command = ["schtasks", *args]
        logger.debug("Running: %s", command)
        try:
            result = subprocess.run(
                command,  # nosec B603 B607 - Standard Windows task utility
                capture_output=True,
                text=True,
                timeout=60,
                check=False
            )
        except FileNotFoundError as e:
            raise SchedulerError("schtasks not found; task registration requires Windows") from e
        except (subprocess.TimeoutExpired, OSError) as e:
            raise SchedulerError(f"Failed to run schtasks: {e}") from e

        if result.returncode != 0:
            raise SchedulerError(
                f"schtasks {args[0]} failed ({result.returncode}): "
                f"{result.stderr.strip() or result.stdout.strip()}"
            )
