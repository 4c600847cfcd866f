"""
models
======

Plain data structures shared by extraction, comparison and reporting.

Every structure is a frozen dataclass holding tuples, so a
:class:`Snapshot` cannot be changed once an extractor has returned it.

Groups
------
- Catalog entities: :class:`Table`, :class:`View`, :class:`Procedure`,
  :class:`Function` and their parts.
- Snapshot: :class:`Snapshot` (one database at one point in time).
- Diff results: :class:`EntityDiff`, :class:`MemberChanges` and the
  per-kind modification records.
- Run output: :class:`Differences`, :class:`Summary`,
  :class:`ComparisonResult`.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")
M = TypeVar("M")

KIND_TABLE = "table"
KIND_VIEW = "view"
KIND_PROCEDURE = "procedure"
KIND_FUNCTION = "function"

CONSTRAINT_TYPES = ("CHECK", "DEFAULT", "UNIQUE")


# ---- tables ----
@dataclass(frozen=True)
class Column:
    """One table column as reported by INFORMATION_SCHEMA.COLUMNS."""
    column_name: str
    position: int
    data_type: str
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_nullable: bool = True
    default_value: Optional[str] = None
    character_set: Optional[str] = None
    collation: Optional[str] = None


@dataclass(frozen=True)
class IndexColumn:
    column_name: str
    key_ordinal: int
    is_descending: bool = False
    is_included: bool = False


@dataclass(frozen=True)
class Index:
    """An index with its columns ordered by key ordinal."""
    index_name: str
    index_type: str
    is_unique: bool = False
    is_primary_key: bool = False
    columns: Tuple[IndexColumn, ...] = ()


@dataclass(frozen=True)
class Constraint:
    constraint_name: str
    constraint_type: str  # "CHECK" | "DEFAULT" | "UNIQUE"
    definition: Optional[str] = None
    column_name: Optional[str] = None


@dataclass(frozen=True)
class PrimaryKey:
    constraint_name: str
    column_name: str
    key_sequence: int


@dataclass(frozen=True)
class ForeignKey:
    constraint_name: str
    column_name: str
    referenced_schema: str
    referenced_table: str
    referenced_column: str
    update_rule: str
    delete_rule: str


@dataclass(frozen=True)
class Table:
    schema_name: str
    table_name: str
    columns: Tuple[Column, ...] = ()
    primary_keys: Tuple[PrimaryKey, ...] = ()
    foreign_keys: Tuple[ForeignKey, ...] = ()
    indexes: Tuple[Index, ...] = ()
    constraints: Tuple[Constraint, ...] = ()

    @property
    def name(self) -> str:
        return self.table_name


# ---- views ----
@dataclass(frozen=True)
class Dependency:
    referenced_schema: str
    referenced_object: str
    referenced_type: str


@dataclass(frozen=True)
class View:
    schema_name: str
    view_name: str
    definition: str = ""
    check_option: Optional[str] = None
    is_updatable: bool = False
    dependencies: Tuple[Dependency, ...] = ()

    @property
    def name(self) -> str:
        return self.view_name


# ---- routines ----
@dataclass(frozen=True)
class Parameter:
    """A routine parameter; ``parameter_id`` 0 is a function's return slot."""
    parameter_name: str
    parameter_id: int
    data_type: str
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_output: bool = False
    has_default: bool = False
    default_value: Optional[str] = None


@dataclass(frozen=True)
class Procedure:
    schema_name: str
    procedure_name: str
    create_date: Optional[dt.datetime] = None
    modify_date: Optional[dt.datetime] = None
    definition: str = ""
    parameters: Tuple[Parameter, ...] = ()

    @property
    def name(self) -> str:
        return self.procedure_name


@dataclass(frozen=True)
class Function:
    schema_name: str
    function_name: str
    function_type: str = ""
    create_date: Optional[dt.datetime] = None
    modify_date: Optional[dt.datetime] = None
    definition: str = ""
    parameters: Tuple[Parameter, ...] = ()

    @property
    def name(self) -> str:
        return self.function_name


# ---- snapshot ----
@dataclass(frozen=True)
class SkippedEntity:
    """An entity left out of a snapshot because its detail fetch failed."""
    kind: str
    schema_name: str
    name: str
    reason: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"


@dataclass(frozen=True)
class Snapshot:
    """Structural metadata of one database, captured once per comparison run."""
    database_name: str
    server: str
    tables: Tuple[Table, ...] = ()
    views: Tuple[View, ...] = ()
    procedures: Tuple[Procedure, ...] = ()
    functions: Tuple[Function, ...] = ()
    extracted_at: dt.datetime = field(default_factory=dt.datetime.now)
    skipped: Tuple[SkippedEntity, ...] = ()

    def skipped_count(self, kind: str) -> int:
        return sum(1 for s in self.skipped if s.kind == kind)


# ---- diff results ----
@dataclass(frozen=True)
class PropertyChange:
    property: str
    source_value: Any
    target_value: Any


@dataclass(frozen=True)
class MemberModification:
    """A matched column/index/constraint/parameter with its property changes."""
    name: str
    changes: Tuple[PropertyChange, ...]


@dataclass(frozen=True)
class MemberChanges(Generic[T]):
    """Added/removed/modified members of one entity (columns, indexes, ...)."""
    added: Tuple[T, ...] = ()
    removed: Tuple[T, ...] = ()
    modified: Tuple[MemberModification, ...] = ()

    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)


@dataclass(frozen=True)
class TableModification:
    schema_name: str
    table_name: str
    column_changes: MemberChanges[Column] = field(default_factory=MemberChanges)
    index_changes: MemberChanges[Index] = field(default_factory=MemberChanges)
    constraint_changes: MemberChanges[Constraint] = field(default_factory=MemberChanges)

    @property
    def name(self) -> str:
        return self.table_name

    def has_changes(self) -> bool:
        return (
            self.column_changes.has_changes()
            or self.index_changes.has_changes()
            or self.constraint_changes.has_changes()
        )


@dataclass(frozen=True)
class ViewModification:
    schema_name: str
    view_name: str
    definition_changed: bool
    source_definition: str
    target_definition: str

    @property
    def name(self) -> str:
        return self.view_name


@dataclass(frozen=True)
class RoutineModification:
    """Modification record shared by procedures and functions."""
    schema_name: str
    routine_name: str
    definition_changed: bool
    parameters_changed: bool
    source_definition: str
    target_definition: str
    parameter_changes: MemberChanges[Parameter] = field(default_factory=MemberChanges)

    @property
    def name(self) -> str:
        return self.routine_name


@dataclass(frozen=True)
class EntityDiff(Generic[T, M]):
    """Added/removed/modified entities of one kind."""
    added: Tuple[T, ...] = ()
    removed: Tuple[T, ...] = ()
    modified: Tuple[M, ...] = ()

    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)


@dataclass(frozen=True)
class Differences:
    tables: EntityDiff[Table, TableModification] = field(default_factory=EntityDiff)
    views: EntityDiff[View, ViewModification] = field(default_factory=EntityDiff)
    procedures: EntityDiff[Procedure, RoutineModification] = field(default_factory=EntityDiff)
    functions: EntityDiff[Function, RoutineModification] = field(default_factory=EntityDiff)

    def has_changes(self) -> bool:
        return any(d.has_changes() for d in (self.tables, self.views, self.procedures, self.functions))


@dataclass(frozen=True)
class KindSummary:
    source: int
    target: int
    added: int
    removed: int
    modified: int
    skipped: int = 0


STATUS_IDENTICAL = "identical"
STATUS_DIFFERENT = "different"


@dataclass(frozen=True)
class Summary:
    tables: KindSummary
    views: KindSummary
    procedures: KindSummary
    functions: KindSummary
    overall_status: str  # "identical" | "different"


@dataclass(frozen=True)
class ComparisonResult:
    source: Snapshot
    target: Snapshot
    differences: Differences
    summary: Summary
    timestamp: dt.datetime = field(default_factory=dt.datetime.now)
