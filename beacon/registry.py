"""
Plugin registry and factory system for Beacon.

This module provides a centralized registry for all plugin types and
factory functions to instantiate them from configuration.
"""

from collections.abc import Callable
from typing import Any

from beacon.core import Fetcher, Matcher, Notifier


class PluginRegistry:
    """
    Central registry for all plugin types.

    Each category (fetchers, matchers, notifiers) maintains a mapping of
    type names to implementation classes.
    """

    def __init__(self) -> None:
        self._fetchers: dict[str, type[Fetcher]] = {}
        self._matchers: dict[str, type[Matcher]] = {}
        self._notifiers: dict[str, type[Notifier]] = {}

    # Fetcher registration
    def register_fetcher(self, type_name: str, cls: type[Fetcher]) -> None:
        """Register a fetcher implementation."""
        self._fetchers[type_name] = cls

    def get_fetcher(self, type_name: str) -> type[Fetcher]:
        """Get a fetcher class by type name."""
        if type_name not in self._fetchers:
            raise ValueError(f"Unknown fetcher type: {type_name}")
        return self._fetchers[type_name]

    # Matcher registration
    def register_matcher(self, type_name: str, cls: type[Matcher]) -> None:
        """Register a matcher implementation."""
        self._matchers[type_name] = cls

    def get_matcher(self, type_name: str) -> type[Matcher]:
        """Get a matcher class by type name."""
        if type_name not in self._matchers:
            raise ValueError(f"Unknown matcher type: {type_name}")
        return self._matchers[type_name]

    # Notifier registration
    def register_notifier(self, type_name: str, cls: type[Notifier]) -> None:
        """Register a notifier implementation."""
        self._notifiers[type_name] = cls

    def get_notifier(self, type_name: str) -> type[Notifier]:
        """Get a notifier class by type name."""
        if type_name not in self._notifiers:
            raise ValueError(f"Unknown notifier type: {type_name}")
        return self._notifiers[type_name]

    def list_plugins(self) -> dict[str, list[str]]:
        """List all registered plugins by category."""
        return {
            "fetchers": list(self._fetchers.keys()),
            "matchers": list(self._matchers.keys()),
            "notifiers": list(self._notifiers.keys()),
        }


# Global registry instance
_registry = PluginRegistry()


# Factory functions
def create_fetcher(type_name: str, config: dict[str, Any]) -> Fetcher:
    """Create a fetcher instance from configuration."""
    cls = _registry.get_fetcher(type_name)
    return cls(config)


def create_matcher(type_name: str, keyword: str) -> Matcher:
    """Create a matcher instance for a keyword."""
    cls = _registry.get_matcher(type_name)
    return cls(keyword)


def create_notifier(type_name: str, config: dict[str, Any]) -> Notifier:
    """Create a notifier instance from configuration."""
    cls = _registry.get_notifier(type_name)
    return cls(config)


# Decorators for easy registration
def register_fetcher(type_name: str) -> Callable[[type[Fetcher]], type[Fetcher]]:
    """Decorator to register a fetcher class."""
    def decorator(cls: type[Fetcher]) -> type[Fetcher]:
        _registry.register_fetcher(type_name, cls)
        return cls
    return decorator


def register_matcher(type_name: str) -> Callable[[type[Matcher]], type[Matcher]]:
    """Decorator to register a matcher class."""
    def decorator(cls: type[Matcher]) -> type[Matcher]:
        _registry.register_matcher(type_name, cls)
        return cls
    return decorator


def register_notifier(type_name: str) -> Callable[[type[Notifier]], type[Notifier]]:
    """Decorator to register a notifier class."""
    def decorator(cls: type[Notifier]) -> type[Notifier]:
        _registry.register_notifier(type_name, cls)
        return cls
    return decorator


def get_registry() -> PluginRegistry:
    """Get the global plugin registry."""
    return _registry
