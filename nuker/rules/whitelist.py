"""Whitelist evaluation.

A whitelisted resource is reported but never deleted, whatever rules it matches.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..models.policy import MatchKind, WhitelistEntry
from ..models.resource import Resource


class Whitelist:
    """Whitelist entries of one policy.

    Attributes:
        entries: Entries in configuration order
    """

    def __init__(self, entries: Iterable[WhitelistEntry]) -> None:
        self.entries = list(entries)

    def is_whitelisted(self, resource: Resource) -> tuple[bool, Optional[str]]:
        """Check if resource matches any whitelist entry.

        Returns on the first matching entry.

        Args:
            resource: Resource to check

        Returns:
            Tuple of (is_whitelisted, reason)
                is_whitelisted: True if any entry matches
                reason: Human-readable reason, None if not whitelisted
        """
        for entry in self.entries:
            if entry.matches(resource):
                return True, self._get_whitelist_reason(entry, resource)
        return False, None

    def _get_whitelist_reason(self, entry: WhitelistEntry, resource: Resource) -> str:
        if entry.description:
            return f"{entry.description} ({entry.matcher.value}: {entry.pattern})"

        if entry.matcher is MatchKind.TAG:
            key = entry.pattern.partition("=")[0]
            return f"Tag {key}={resource.tags.get(key, '')} matches {entry.pattern}"

        if entry.matcher is MatchKind.NAME:
            return f"Name {resource.name} matches {entry.pattern}"

        return f"Id {resource.id} matches {entry.pattern}"
