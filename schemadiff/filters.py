"""
filters
=======

Include/exclude filtering of snapshot entities by qualified name.

Patterns are matched against ``schema.name``:

- SQL LIKE wildcards ``%`` and ``_`` (default)
- a regex when prefixed with ``re:``

Matching is case-insensitive unless ``case_sensitive`` is set.

Examples::

    include: ["dbo.%", "sales.Fact_%"]
    exclude: ["%.tmp_%", "re:^audit\\."]
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, field, replace
from typing import Iterable, List, TypeVar

from .models import Snapshot
from .utils import qualified_name

E = TypeVar("E")


@dataclass(frozen=True)
class ObjectFilter:
    """Include/exclude patterns for entity selection."""
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    case_sensitive: bool = False

    def is_empty(self) -> bool:
        return not self.include and not self.exclude


def sql_like_to_fnmatch(pattern: str) -> str:
    """Convert SQL LIKE patterns (% and _) to fnmatch syntax (* and ?)."""
    return pattern.replace("%", "*").replace("_", "?")


def matches_pattern(name: str, pattern: str, case_sensitive: bool = False) -> bool:
    """Return True if name matches pattern (LIKE by default, regex via ``re:``)."""
    if pattern.startswith("re:"):
        flags = 0 if case_sensitive else re.IGNORECASE
        return re.search(pattern[3:], name, flags) is not None
    fm = sql_like_to_fnmatch(pattern)
    if case_sensitive:
        return fnmatch.fnmatchcase(name, fm)
    return fnmatch.fnmatchcase(name.lower(), fm.lower())


def is_selected(name: str, object_filter: ObjectFilter) -> bool:
    """Include keeps a name matching *any* include; exclude drops one matching *any* exclude."""
    cs = object_filter.case_sensitive
    if object_filter.include and not any(matches_pattern(name, p, cs) for p in object_filter.include):
        return False
    if object_filter.exclude and any(matches_pattern(name, p, cs) for p in object_filter.exclude):
        return False
    return True


def filter_entities(entities: Iterable[E], object_filter: ObjectFilter) -> tuple:
    """Keep entities whose ``schema_name.name`` passes *object_filter* (order kept)."""
    return tuple(
        e for e in entities
        if is_selected(qualified_name(e.schema_name, e.name), object_filter)  # type: ignore[attr-defined]
    )


def filter_snapshot(snapshot: Snapshot, object_filter: ObjectFilter) -> Snapshot:
    """Return a copy of *snapshot* holding only the selected entities."""
    if object_filter.is_empty():
        return snapshot
    return replace(
        snapshot,
        tables=filter_entities(snapshot.tables, object_filter),
        views=filter_entities(snapshot.views, object_filter),
        procedures=filter_entities(snapshot.procedures, object_filter),
        functions=filter_entities(snapshot.functions, object_filter),
        skipped=tuple(s for s in snapshot.skipped if is_selected(s.qualified_name, object_filter)),
    )
