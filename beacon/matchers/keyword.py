"""
Keyword matchers for Beacon.

The keyword comes from user configuration and log messages are free text,
so the default matcher is case-insensitive literal containment. Regular
expression matching is opt-in via match_mode=regex.
"""

import re

from beacon.core import LogEntry, Matcher
from beacon.registry import register_matcher


@register_matcher("contains")
class ContainsMatcher(Matcher):
    """Case-insensitive substring test of the keyword against the message."""

    def matches(self, entry: LogEntry) -> bool:
        return self.keyword.casefold() in entry.message.casefold()


@register_matcher("contains_case")
class CaseSensitiveContainsMatcher(Matcher):
    """Case-sensitive substring test."""

    def matches(self, entry: LogEntry) -> bool:
        return self.keyword in entry.message


@register_matcher("regex")
class RegexMatcher(Matcher):
    """
    Case-insensitive regular expression search.

    The keyword is compiled as-is; '.' in "xpo.svc.agent" matches any
    character.
    """

    def __init__(self, keyword: str):
        super().__init__(keyword)
        self.pattern = re.compile(keyword, re.IGNORECASE)

    def matches(self, entry: LogEntry) -> bool:
        return self.pattern.search(entry.message) is not None


# Export for dynamic importing
__all__ = ["ContainsMatcher", "CaseSensitiveContainsMatcher", "RegexMatcher"]
