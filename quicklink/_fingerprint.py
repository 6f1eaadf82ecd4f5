"""
Build fingerprints for QuickLink.

A fingerprint identifies one cacheable build variant: the program name exactly
as given on the command line plus its build tags in canonical form.
"""

import json
from typing import List, Optional

from ._type_check import typecheck_methods


def parse_tags(value: Optional[str]) -> List[str]:
    """Split a comma-separated -tags value into a tag list.
    Args:    value: Flag value such as "netgo,osusergo" (None or "" for no tags)
    Returns: List of tags with surrounding whitespace and empty entries removed"""
    if not value:
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def canonical_tags(tags: List[str]) -> str:
    """Serialize tags as a compact JSON array, deduplicated and sorted."""
    return json.dumps(sorted(set(tags)), separators=(',', ':'))


@typecheck_methods
class Fingerprint:
    """Cache key made of a program name and a set of build tags.

    The program name is not normalized (case- and path-sensitive). Tags are
    deduplicated and sorted, so any permutation of the same tags yields an
    equal fingerprint."""

    def __init__(self, program: str, tags: Optional[List[str]] = None):
        self.program = program
        self.tags = sorted(set(tags or []))

    @property
    def canonical_tags(self) -> str:
        """Canonical serialized tag set, as stored in the cache."""
        return canonical_tags(self.tags)

    def __eq__(self, other):
        if not isinstance(other, Fingerprint):
            return NotImplemented
        return self.program == other.program and self.tags == other.tags

    def __hash__(self):
        return hash((self.program, self.canonical_tags))

    def __str__(self) -> str:
        if not self.tags:
            return self.program
        return f"{self.program} [{','.join(self.tags)}]"

    def __repr__(self):
        return f"Fingerprint({self.program!r}, tags={self.tags!r})"
