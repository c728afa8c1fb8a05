"""
Console notifier for Beacon.
"""

from beacon.core import LogEntry, Notifier
from beacon.logging_config import get_logger
from beacon.registry import register_notifier

logger = get_logger(__name__)


def mask_secret(value: str, visible: int = 4) -> str:
    """Mask all but the last few characters of a secret."""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


@register_notifier("console")
class ConsoleNotifier(Notifier):
    """
    Prints notifications to console/stdout instead of sending them.

    Useful for testing a configuration before going live.

    Config:
        Same keys as the smtp2go notifier; api_key is masked in output.
    """

    def notify(self, entry: LogEntry) -> None:
        """Print notification to console."""
        logger.info("Console notification for record %d", entry.record_id)

        print(f"\n{'=' * 60}")
        print(f"EVENT: {entry.source} {entry.event_id} (record {entry.record_id})")
        print(f"Time: {entry.timestamp}")
        print(f"To: {', '.join(self.config.get('recipients', []))}")
        print(f"Sender: {self.config.get('sender', '')}")
        print(f"Template: {self.config.get('template_id', '')}")
        print(f"API key: {mask_secret(self.config.get('api_key', ''))}")
        print(f"\nMessage:\n{entry.message}")
        print(f"{'=' * 60}\n")


# Export for dynamic importing
__all__ = ["ConsoleNotifier"]
