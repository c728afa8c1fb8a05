"""
Beacon CLI - Command line interface for detection and setup.

Provides commands for:
- Detection runs (invoked by the scheduled task)
- Configuration validation
- Scheduled task registration (setup)
- Dedup state inspection and reset
- Test notifications
"""

import argparse
import json
import sys
from datetime import datetime
from typing import TextIO

from beacon.config import Configuration, load_config
from beacon.core import BeaconError, ConfigError, DispatchError, LogEntry, Outcome
from beacon.detector import notifier_settings, run_detection
from beacon.logging_config import get_logger, setup_logging
from beacon.plugins import create_notifier
from beacon.scheduler import TaskRegistrar
from beacon.state import DedupState

logger = get_logger(__name__)


def _log_stream(args: argparse.Namespace) -> TextIO:
    """Keep stdout clean for --json output."""
    return sys.stderr if getattr(args, "json", False) else sys.stdout


def _load(args: argparse.Namespace) -> Configuration | None:
    """Load config for commands other than detect, printing errors."""
    try:
        return load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


def cmd_detect(args: argparse.Namespace) -> int:
    """Run one detection pass."""

    def configure_logging(config: Configuration) -> None:
        level = "DEBUG" if args.verbose else config.log_level
        setup_logging(level, config.log_file, stream=_log_stream(args))

    try:
        result = run_detection(
            args.config,
            dry_run=args.dry_run,
            force=args.force,
            on_config=configure_logging
        )
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.exception("Unexpected error during detection")
        if args.json:
            print(json.dumps({"outcome": "failed", "exit_code": 1, "detail": str(e)}))
        else:
            print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_dict()))
    elif result.outcome is Outcome.CONFIG_ERROR:
        print(f"Error: {result.detail}", file=sys.stderr)

    return result.outcome.exit_code


def cmd_config_validate(args: argparse.Namespace) -> int:
    """Validate configuration file."""
    config = _load(args)
    if config is None:
        return Outcome.CONFIG_ERROR.exit_code

    print(f"✓ Configuration valid: {args.config}")
    print(f"  - Event:      {config.event_source} / {config.event_id} ({config.log_name} log)")
    print(f"  - Keyword:    {config.keyword} (match mode: {config.match_mode})")
    print(f"  - Recipients: {', '.join(config.recipients)}")
    print(f"  - Notifier:   {config.notifier}")
    print(f"  - State:      {DedupState(config.state_dir).path_for(config.dedup_key)}")
    print(f"  - Task name:  {config.task_name}")
    return 0


def _registrar(args: argparse.Namespace, config: Configuration) -> TaskRegistrar:
    return TaskRegistrar(
        config,
        args.config,
        executable=getattr(args, "executable", None),
        working_dir=getattr(args, "workdir", None)
    )


def cmd_setup_register(args: argparse.Namespace) -> int:
    """Register (or replace) the scheduled task."""
    config = _load(args)
    if config is None:
        return Outcome.CONFIG_ERROR.exit_code

    registrar = _registrar(args, config)
    try:
        registrar.register()
    except BeaconError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    print(f"✓ Scheduled task registered: {registrar.task_name}")
    return 0


def cmd_setup_remove(args: argparse.Namespace) -> int:
    """Remove the scheduled task."""
    config = _load(args)
    if config is None:
        return Outcome.CONFIG_ERROR.exit_code

    registrar = _registrar(args, config)
    try:
        registrar.unregister()
    except BeaconError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    print(f"✓ Scheduled task removed: {registrar.task_name}")
    return 0


def cmd_setup_show(args: argparse.Namespace) -> int:
    """Print the task definition without registering it."""
    config = _load(args)
    if config is None:
        return Outcome.CONFIG_ERROR.exit_code

    print(_registrar(args, config).build_task_xml())
    return 0


def cmd_state_show(args: argparse.Namespace) -> int:
    """Show the last notified record."""
    config = _load(args)
    if config is None:
        return Outcome.CONFIG_ERROR.exit_code

    state = DedupState(config.state_dir)
    last = state.read(config.dedup_key)
    if last is None:
        print(f"No occurrence notified yet for '{config.dedup_key}'")
    else:
        print(f"Last notified record for '{config.dedup_key}': {last}")
    return 0


def cmd_state_clear(args: argparse.Namespace) -> int:
    """Forget the last notified record."""
    config = _load(args)
    if config is None:
        return Outcome.CONFIG_ERROR.exit_code

    try:
        removed = DedupState(config.state_dir).clear(config.dedup_key)
    except BeaconError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    if removed:
        print(f"✓ Cleared dedup state for '{config.dedup_key}'")
    else:
        print(f"Nothing to clear for '{config.dedup_key}'")
    return 0


def cmd_notify(args: argparse.Namespace) -> int:
    """Send a test notification, bypassing detection and dedup state."""
    config = _load(args)
    if config is None:
        return Outcome.CONFIG_ERROR.exit_code

    entry = LogEntry(
        record_id=0,
        timestamp=datetime.now(),
        source=config.event_source,
        event_id=config.event_id,
        message=f"Beacon test notification for keyword '{config.keyword}'"
    )

    try:
        notifier = create_notifier(config.notifier, notifier_settings(config))
        notifier.notify(entry)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return Outcome.CONFIG_ERROR.exit_code
    except DispatchError as e:
        print(f"✗ {e}", file=sys.stderr)
        return Outcome.DISPATCH_FAILED.exit_code

    print(f"✓ Test notification sent to {', '.join(config.recipients)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="beacon",
        description="Beacon - one notification per occurrence of a watched event log entry"
    )
    parser.add_argument(
        "-c", "--config",
        default="beacon.conf",
        help="Path to configuration file (default: beacon.conf)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Detect command
    detect_parser = subparsers.add_parser("detect", help="Run one detection pass")
    detect_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run detection without sending notifications or updating state"
    )
    detect_parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore the stored dedup record"
    )
    detect_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON"
    )

    # Config commands
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="subcommand")
    config_subparsers.add_parser("validate", help="Validate configuration file")

    # Setup commands
    setup_parser = subparsers.add_parser("setup", help="Scheduled task management")
    setup_subparsers = setup_parser.add_subparsers(dest="subcommand")
    register_parser = setup_subparsers.add_parser("register", help="Register the scheduled task")
    show_parser = setup_subparsers.add_parser("show", help="Print the task definition")
    for sub in (register_parser, show_parser):
        sub.add_argument(
            "--executable",
            help="Program the task runs (default: this Python with -m beacon)"
        )
        sub.add_argument(
            "--workdir",
            help="Task working directory (default: config file directory)"
        )
    setup_subparsers.add_parser("remove", help="Remove the scheduled task")

    # State commands
    state_parser = subparsers.add_parser("state", help="Dedup state management")
    state_subparsers = state_parser.add_subparsers(dest="subcommand")
    state_subparsers.add_parser("show", help="Show the last notified record")
    state_subparsers.add_parser("clear", help="Forget the last notified record")

    # Notify command
    subparsers.add_parser("notify", help="Send a test notification")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.verbose else "INFO", stream=_log_stream(args))

    if not args.command:
        parser.print_help()
        return 0

    handlers = {
        ("detect", None): cmd_detect,
        ("config", "validate"): cmd_config_validate,
        ("setup", "register"): cmd_setup_register,
        ("setup", "remove"): cmd_setup_remove,
        ("setup", "show"): cmd_setup_show,
        ("state", "show"): cmd_state_show,
        ("state", "clear"): cmd_state_clear,
        ("notify", None): cmd_notify,
    }
    handler = handlers.get((args.command, getattr(args, "subcommand", None)))
    if handler is None:
        parser.print_help()
        return 0

    return handler(args)


if __name__ == '__main__':
    sys.exit(main())
