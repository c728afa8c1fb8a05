"""
Plugin initialization for Beacon.

This module imports all built-in plugins to register them with the registry.
Import this module to ensure all plugins are available.
"""

# Import all plugin modules to trigger registration decorators
# pylint: disable=unused-import
# ruff: noqa: F401
from beacon import fetchers, matchers, notifiers

# Re-export registry functions for convenience
from beacon.registry import (
    create_fetcher,
    create_matcher,
    create_notifier,
    get_registry,
)

__all__ = [
    "create_fetcher",
    "create_matcher",
    "create_notifier",
    "get_registry",
]
