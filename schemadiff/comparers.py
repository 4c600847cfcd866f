"""
comparers
=========

Structural differencing of two snapshots, one entity kind at a time.

Each comparer takes the source and target entities of one kind and returns
an :class:`~schemadiff.models.EntityDiff` (added / removed / modified).

Matching rules
--------------
- Top-level entities match on ``schema.name`` exactly (case-sensitive).
- Columns, indexes, constraints and parameters match on their lower-cased
  name.
- Every scalar property goes through :func:`schemadiff.utils.values_equal`.
- A matched pair with no detected change is left out of ``modified``.

Output order: ``added`` follows the target's order; ``removed`` and
``modified`` follow the source's order.
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    TypeVar,
)

from .models import (
    KIND_FUNCTION,
    KIND_PROCEDURE,
    KIND_TABLE,
    KIND_VIEW,
    Column,
    Constraint,
    EntityDiff,
    Function,
    Index,
    IndexColumn,
    MemberChanges,
    MemberModification,
    Parameter,
    Procedure,
    PropertyChange,
    RoutineModification,
    Table,
    TableModification,
    View,
    ViewModification,
)
from .utils import normalize_text, qualified_name, values_equal

log = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M")

COLUMN_PROPERTIES = (
    "data_type",
    "max_length",
    "precision",
    "scale",
    "is_nullable",
    "default_value",
    "character_set",
    "collation",
)
INDEX_PROPERTIES = ("index_type", "is_unique", "is_primary_key")
CONSTRAINT_PROPERTIES = ("constraint_type", "definition", "column_name")
PARAMETER_PROPERTIES = (
    "data_type",
    "max_length",
    "precision",
    "scale",
    "is_output",
    "has_default",
    "default_value",
)


class Comparer(Protocol[T, M]):
    """Shared contract of the four entity comparers."""

    def compare(self, source: Sequence[T], target: Sequence[T]) -> EntityDiff[T, M]:
        ...


# ---- generic keyed diff ----
def index_by(items: Iterable[T], key: Callable[[T], str]) -> Dict[str, T]:
    """Map items by key, keeping first-seen order (a later duplicate replaces the value)."""
    out: Dict[str, T] = {}
    for item in items:
        out[key(item)] = item
    return out


def diff_keyed(
    source: Iterable[T],
    target: Iterable[T],
    key: Callable[[T], str],
    compare_pair: Callable[[T, T], Optional[M]],
) -> Tuple[Tuple[T, ...], Tuple[T, ...], Tuple[M, ...]]:
    """Split two collections into added, removed and modified.

    *compare_pair* returns a modification record for a matched pair, or
    ``None`` when the pair is unchanged.
    """
    source_map = index_by(source, key)
    target_map = index_by(target, key)

    added = tuple(item for k, item in target_map.items() if k not in source_map)
    removed: List[T] = []
    modified: List[M] = []
    for k, source_item in source_map.items():
        target_item = target_map.get(k)
        if target_item is None:
            removed.append(source_item)
            continue
        record = compare_pair(source_item, target_item)
        if record is not None:
            modified.append(record)
    return added, tuple(removed), tuple(modified)


def compare_properties(source: Any, target: Any, properties: Sequence[str]) -> Tuple[PropertyChange, ...]:
    """Return a change entry for every listed attribute whose values differ."""
    changes = []
    for prop in properties:
        source_value = getattr(source, prop)
        target_value = getattr(target, prop)
        if not values_equal(source_value, target_value):
            changes.append(PropertyChange(prop, source_value, target_value))
    return tuple(changes)


def diff_members(
    source: Iterable[T],
    target: Iterable[T],
    name_of: Callable[[T], str],
    compare: Callable[[T, T], Tuple[PropertyChange, ...]],
) -> MemberChanges[T]:
    """Diff sub-entities matched by lower-cased name."""

    def compare_pair(s: T, t: T) -> Optional[MemberModification]:
        changes = compare(s, t)
        return MemberModification(name_of(s), changes) if changes else None

    added, removed, modified = diff_keyed(source, target, lambda m: name_of(m).lower(), compare_pair)
    return MemberChanges(added=added, removed=removed, modified=modified)


def entity_key(entity: Any) -> str:
    """Top-level identity key: exact ``schema.name``."""
    return qualified_name(entity.schema_name, entity.name)


# ---- tables ----
def compare_columns(source: Column, target: Column) -> Tuple[PropertyChange, ...]:
    """Compare the :data:`COLUMN_PROPERTIES` of a matched column."""
    return compare_properties(source, target, COLUMN_PROPERTIES)


def ordered_index_columns(index: Index) -> Tuple[IndexColumn, ...]:
    """Columns in key-ordinal order; included columns (ordinal 0) sorted by name."""
    return tuple(sorted(index.columns, key=lambda c: (c.key_ordinal, c.column_name.lower())))


def index_columns_equal(source: Sequence[IndexColumn], target: Sequence[IndexColumn]) -> bool:
    """Same columns, same key ordinals, same flags, position by position."""
    if len(source) != len(target):
        return False
    fields = ("column_name", "key_ordinal", "is_descending", "is_included")
    return all(
        values_equal(getattr(s, f), getattr(t, f))
        for s, t in zip(source, target)
        for f in fields
    )


def compare_indexes(source: Index, target: Index) -> Tuple[PropertyChange, ...]:
    """Compare index flags one by one and the key-ordered column list as a whole.

    Column differences are reported as a single ``columns`` change holding
    both ordered column tuples.
    """
    changes = list(compare_properties(source, target, INDEX_PROPERTIES))
    source_columns = ordered_index_columns(source)
    target_columns = ordered_index_columns(target)
    if not index_columns_equal(source_columns, target_columns):
        changes.append(PropertyChange("columns", source_columns, target_columns))
    return tuple(changes)


def compare_constraints(source: Constraint, target: Constraint) -> Tuple[PropertyChange, ...]:
    """Compare constraint type, definition text and column name."""
    return compare_properties(source, target, CONSTRAINT_PROPERTIES)


def compare_table(source: Table, target: Table) -> Optional[TableModification]:
    """Diff columns, indexes and constraints of a matched table.

    Returns
    -------
    TableModification or None
        ``None`` when none of the three member diffs found anything.
    """
    modification = TableModification(
        schema_name=source.schema_name,
        table_name=source.table_name,
        column_changes=diff_members(source.columns, target.columns, lambda c: c.column_name, compare_columns),
        index_changes=diff_members(source.indexes, target.indexes, lambda i: i.index_name, compare_indexes),
        constraint_changes=diff_members(
            source.constraints, target.constraints, lambda c: c.constraint_name, compare_constraints
        ),
    )
    return modification if modification.has_changes() else None


class TableComparer:
    """Diff tables down to columns, indexes and constraints."""

    kind = KIND_TABLE

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or log

    def compare(self, source: Sequence[Table], target: Sequence[Table]) -> EntityDiff[Table, TableModification]:
        self.logger.info("Comparing tables...")
        added, removed, modified = diff_keyed(source, target, entity_key, compare_table)
        self.logger.info("Tables: %d added, %d removed, %d modified", len(added), len(removed), len(modified))
        return EntityDiff(added, removed, modified)


# ---- views ----
def compare_view(source: View, target: View) -> Optional[ViewModification]:
    """Return a modification when the normalized definitions differ."""
    definition_changed = not values_equal(normalize_text(source.definition), normalize_text(target.definition))
    if not definition_changed:
        return None
    return ViewModification(
        schema_name=source.schema_name,
        view_name=source.view_name,
        definition_changed=True,
        source_definition=source.definition,
        target_definition=target.definition,
    )


class ViewComparer:
    """Diff views by definition text."""

    kind = KIND_VIEW

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or log

    def compare(self, source: Sequence[View], target: Sequence[View]) -> EntityDiff[View, ViewModification]:
        self.logger.info("Comparing views...")
        added, removed, modified = diff_keyed(source, target, entity_key, compare_view)
        self.logger.info("Views: %d added, %d removed, %d modified", len(added), len(removed), len(modified))
        return EntityDiff(added, removed, modified)


# ---- procedures / functions ----
def compare_parameters(source: Parameter, target: Parameter) -> Tuple[PropertyChange, ...]:
    """Compare the :data:`PARAMETER_PROPERTIES` of a matched parameter."""
    return compare_properties(source, target, PARAMETER_PROPERTIES)


def compare_routine(source: Any, target: Any) -> Optional[RoutineModification]:
    """Compare two procedures or two functions: body text and parameter list."""
    definition_changed = not values_equal(normalize_text(source.definition), normalize_text(target.definition))
    parameter_changes = diff_members(
        source.parameters, target.parameters, lambda p: p.parameter_name, compare_parameters
    )
    parameters_changed = parameter_changes.has_changes()
    if not (definition_changed or parameters_changed):
        return None
    return RoutineModification(
        schema_name=source.schema_name,
        routine_name=source.name,
        definition_changed=definition_changed,
        parameters_changed=parameters_changed,
        source_definition=source.definition,
        target_definition=target.definition,
        parameter_changes=parameter_changes,
    )


class ProcedureComparer:
    """Diff stored procedures."""

    kind = KIND_PROCEDURE

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or log

    def compare(
        self, source: Sequence[Procedure], target: Sequence[Procedure]
    ) -> EntityDiff[Procedure, RoutineModification]:
        self.logger.info("Comparing stored procedures...")
        added, removed, modified = diff_keyed(source, target, entity_key, compare_routine)
        self.logger.info("Procedures: %d added, %d removed, %d modified", len(added), len(removed), len(modified))
        return EntityDiff(added, removed, modified)


class FunctionComparer:
    """Diff user-defined functions."""

    kind = KIND_FUNCTION

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or log

    def compare(
        self, source: Sequence[Function], target: Sequence[Function]
    ) -> EntityDiff[Function, RoutineModification]:
        self.logger.info("Comparing functions...")
        added, removed, modified = diff_keyed(source, target, entity_key, compare_routine)
        self.logger.info("Functions: %d added, %d removed, %d modified", len(added), len(removed), len(modified))
        return EntityDiff(added, removed, modified)
