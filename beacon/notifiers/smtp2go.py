"""
SMTP2GO templated email notifier for Beacon.
"""

from typing import Any, ClassVar

import requests

from beacon.core import DispatchError, LogEntry, Notifier
from beacon.logging_config import get_logger
from beacon.registry import register_notifier

logger = get_logger(__name__)


@register_notifier("smtp2go")
class Smtp2GoNotifier(Notifier):
    """
    Sends a templated email through the SMTP2GO send API.

    The template renders its own content, so the payload carries only
    addressing and the template reference.

    Config:
        recipients: List of recipient addresses
        sender: Sender address
        template_id: SMTP2GO template identifier
        api_key: SMTP2GO API key
        endpoint: Optional URL override
        timeout: Request timeout in seconds (default: 10)
    """

    API_URL: ClassVar[str] = "https://api.smtp2go.com/v3/email/send"

    def build_payload(self) -> dict[str, Any]:
        """Build the JSON body for the send request."""
        return {
            "api_key": self.config["api_key"],
            "to": list(self.config["recipients"]),
            "sender": self.config["sender"],
            "template_id": self.config["template_id"],
        }

    def notify(self, entry: LogEntry) -> None:
        """Send one notification. Failures raise DispatchError and are not retried."""
        url = self.config.get("endpoint") or self.API_URL
        timeout = self.config.get("timeout", 10)
        payload = self.build_payload()

        try:
            response = requests.post(url, json=payload, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            # Only the exception type and status; the text may echo the request body
            status = f" (HTTP {e.response.status_code})" if e.response is not None else ""
            raise DispatchError(
                f"Notification for record {entry.record_id} to {url} failed: "
                f"{type(e).__name__}{status}"
            ) from e

        logger.info(
            "Notification for record %d sent to %s via %s",
            entry.record_id,
            ", ".join(payload["to"]),
            url
        )


# Export for dynamic importing
__all__ = ["Smtp2GoNotifier"]
