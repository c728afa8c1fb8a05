"""
Beacon - one notification per occurrence of a watched host log event.

Beacon is invoked by the host task scheduler whenever a matching event is
written to the event log. Each invocation fetches the latest occurrence,
checks it against the configured keyword and sends a templated email
notification unless that occurrence was already notified.
"""

__version__ = "0.1.0"
