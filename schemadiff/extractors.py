"""
extractors
==========

Snapshot extraction: turn catalog query results into normalized entities.

There is one extractor per entity kind (:class:`TableExtractor`,
:class:`ViewExtractor`, :class:`ProcedureExtractor`,
:class:`FunctionExtractor`). Each one exposes the same narrow contract:

- ``await extract_all()`` returns the entities ordered by (schema, name)
  as the catalog returned them
- ``skipped`` lists the entities left out on the last run

Design choices
--------------
- Entities are processed one at a time (:func:`extract_sequentially`), so a
  single connection never sees more than one entity's detail queries at once.
  The detail queries *for* one entity run concurrently.
- A failing detail fetch skips that entity only; it is logged and recorded
  as a :class:`~schemadiff.models.SkippedEntity`. The enumeration query itself
  and :class:`ConnectionError` are fatal and propagate.
- A failing constraint sub-query (CHECK/DEFAULT/UNIQUE) or view dependency
  query counts as zero rows of that kind.
- Constraint rows are merged per constraint name; a multi-column UNIQUE
  constraint lists its columns in key order in ``column_name``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from . import queries as q
from .errors import EntityNotFoundError
from .models import (
    KIND_FUNCTION,
    KIND_PROCEDURE,
    KIND_TABLE,
    KIND_VIEW,
    Column,
    Constraint,
    Dependency,
    ForeignKey,
    Function,
    Index,
    IndexColumn,
    Parameter,
    PrimaryKey,
    Procedure,
    SkippedEntity,
    Table,
    View,
)

if TYPE_CHECKING:
    from .connection import ConnectionPort

log = logging.getLogger(__name__)

E = TypeVar("E")
Row = Mapping[str, Any]

RETURN_VALUE_NAME = "RETURN_VALUE"


# ---- row helpers ----
def as_bool(value: Any) -> bool:
    """Catalog flags arrive as BIT (bool/int) or as 'YES'/'NO' text."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().upper() in ("YES", "Y", "TRUE", "1")
    return bool(value)


def as_int(value: Any) -> Optional[int]:
    """Return *value* as an ``int``, keeping ``None`` (e.g. no max length)."""
    if value is None:
        return None
    return int(value)


def as_text(value: Any) -> Optional[str]:
    """Return *value* as text, keeping ``None``."""
    if value is None:
        return None
    return str(value)


async def run_query(connection: "ConnectionPort", query: str, **params: Any) -> List[Row]:
    """Run *query* with keyword arguments bound as its ``@name`` parameters."""
    return await connection.execute_query(query, params or None)


async def gather_details(*aws: Awaitable[Any]) -> List[Any]:
    """Run one entity's detail queries concurrently and wait for all of them.

    A failure is re-raised only after every sibling query has finished, so
    nothing is left running when the next entity starts. A
    :class:`ConnectionError` from any sibling wins over other failures;
    otherwise the first failure in argument order is raised.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    for error in errors:
        if isinstance(error, ConnectionError):
            raise error
    if errors:
        raise errors[0]
    return list(results)


# ---- per-entity outcome ----
@dataclass(frozen=True)
class ExtractionOutcome(Generic[E]):
    """Result of one entity's detail fetch: the entity, or the reason it was skipped."""
    schema_name: str
    name: str
    entity: Optional[E] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.entity is not None


async def extract_one(
    kind: str,
    schema_name: str,
    name: str,
    fetch: Callable[[str, str], Awaitable[E]],
    logger: logging.Logger,
) -> ExtractionOutcome[E]:
    """Fetch one entity; any failure other than a lost connection becomes a skip."""
    try:
        entity = await fetch(schema_name, name)
    except ConnectionError:
        raise
    except Exception as exc:
        logger.error("Failed to extract %s %s.%s: %s", kind, schema_name, name, exc, exc_info=True)
        return ExtractionOutcome(schema_name, name, error=f"{type(exc).__name__}: {exc}")
    logger.debug("Extracted %s %s.%s", kind, schema_name, name)
    return ExtractionOutcome(schema_name, name, entity=entity)


async def extract_sequentially(
    kind: str,
    names: Sequence[Tuple[str, str]],
    fetch: Callable[[str, str], Awaitable[E]],
    logger: logging.Logger,
) -> Tuple[List[E], List[SkippedEntity]]:
    """Fetch entities one after another, keeping catalog order.

    Returns
    -------
    tuple
        ``(entities, skipped)``.
    """
    entities: List[E] = []
    skipped: List[SkippedEntity] = []
    for schema_name, name in names:
        outcome = await extract_one(kind, schema_name, name, fetch, logger)
        if outcome.ok:
            entities.append(outcome.entity)
        else:
            skipped.append(SkippedEntity(kind, schema_name, name, outcome.error or "unknown error"))
    if skipped:
        logger.warning("%s extraction finished: %d extracted, %d skipped", kind, len(entities), len(skipped))
    else:
        logger.info("%s extraction finished: %d extracted", kind, len(entities))
    return entities, skipped


# ---- row -> model ----
def column_from_row(row: Row) -> Column:
    """Build a :class:`Column` from one ``Q_TABLE_COLUMNS`` row."""
    return Column(
        column_name=row["column_name"],
        position=int(row["position"]),
        data_type=row["data_type"],
        max_length=as_int(row.get("max_length")),
        precision=as_int(row.get("precision")),
        scale=as_int(row.get("scale")),
        is_nullable=as_bool(row.get("is_nullable")),
        default_value=as_text(row.get("default_value")),
        character_set=as_text(row.get("character_set")),
        collation=as_text(row.get("collation")),
    )


def primary_key_from_row(row: Row) -> PrimaryKey:
    """Build a :class:`PrimaryKey` entry (one per key column)."""
    return PrimaryKey(
        constraint_name=row["constraint_name"],
        column_name=row["column_name"],
        key_sequence=int(row["key_sequence"]),
    )


def foreign_key_from_row(row: Row) -> ForeignKey:
    """Build a :class:`ForeignKey` entry (one per referencing column)."""
    return ForeignKey(
        constraint_name=row["constraint_name"],
        column_name=row["column_name"],
        referenced_schema=row["referenced_schema"],
        referenced_table=row["referenced_table"],
        referenced_column=row["referenced_column"],
        update_rule=row["update_rule"],
        delete_rule=row["delete_rule"],
    )


def constraint_from_row(row: Row, constraint_type: str) -> Constraint:
    """Build a :class:`Constraint`; *constraint_type* fills in a missing type column."""
    return Constraint(
        constraint_name=row["constraint_name"],
        constraint_type=row.get("constraint_type") or constraint_type,
        definition=as_text(row.get("definition")),
        column_name=as_text(row.get("column_name")),
    )


def merge_constraint_rows(rows: Sequence[Row], constraint_type: str) -> List[Constraint]:
    """Merge column-level constraint rows into one :class:`Constraint` per name.

    A multi-column UNIQUE constraint comes back as one row per key column.
    Its column names are joined with ``", "`` in ``ordinal_position`` order,
    so the constraint compares as a whole.

    Parameters
    ----------
    rows : sequence of mapping
        Rows from one of the constraint queries.
    constraint_type : str
        ``CHECK``, ``DEFAULT`` or ``UNIQUE``.

    Returns
    -------
    list of Constraint
        In order of first appearance.
    """
    grouped: Dict[str, List[Row]] = {}
    for row in rows:
        grouped.setdefault(row["constraint_name"], []).append(row)

    constraints = []
    for group in grouped.values():
        head = constraint_from_row(group[0], constraint_type)
        if len(group) > 1:
            ordered = sorted(group, key=lambda r: r.get("ordinal_position") or 0)
            names = [r["column_name"] for r in ordered if r.get("column_name")]
            head = replace(head, column_name=", ".join(names) or None)
        constraints.append(head)
    return constraints


def group_index_rows(rows: Sequence[Row]) -> Tuple[Index, ...]:
    """Group column-level index rows into one :class:`Index` per index name.

    Indexes keep the order in which their names first appear; each index's
    columns are ordered by ``key_ordinal``.
    """
    headers: Dict[str, Row] = {}
    columns: Dict[str, List[IndexColumn]] = {}
    for row in rows:
        index_name = row["index_name"]
        if index_name not in headers:
            headers[index_name] = row
            columns[index_name] = []
        columns[index_name].append(
            IndexColumn(
                column_name=row["column_name"],
                key_ordinal=int(row["key_ordinal"]),
                is_descending=as_bool(row.get("is_descending")),
                is_included=as_bool(row.get("is_included")),
            )
        )

    return tuple(
        Index(
            index_name=index_name,
            index_type=head["index_type"],
            is_unique=as_bool(head.get("is_unique")),
            is_primary_key=as_bool(head.get("is_primary_key")),
            columns=tuple(sorted(columns[index_name], key=lambda c: (c.key_ordinal, c.column_name.lower()))),
        )
        for index_name, head in headers.items()
    )


def dependency_from_row(row: Row) -> Dependency:
    """Build a :class:`Dependency` from one ``Q_VIEW_DEPENDENCIES`` row."""
    return Dependency(
        referenced_schema=row["referenced_schema"],
        referenced_object=row["referenced_object"],
        referenced_type=row["referenced_type"],
    )


def parameter_from_row(row: Row) -> Parameter:
    """Build a procedure :class:`Parameter` from one ``sys.parameters`` row."""
    return Parameter(
        parameter_name=row["parameter_name"],
        parameter_id=int(row["parameter_id"]),
        data_type=row["data_type"],
        max_length=as_int(row.get("max_length")),
        precision=as_int(row.get("precision")),
        scale=as_int(row.get("scale")),
        is_output=as_bool(row.get("is_output")),
        has_default=as_bool(row.get("has_default")),
        default_value=as_text(row.get("default_value")),
    )


def function_parameter_from_row(row: Row) -> Parameter:
    """Parameter id 0 is the function's return value slot."""
    parameter_id = int(row["parameter_id"])
    return Parameter(
        parameter_name=row.get("parameter_name") or RETURN_VALUE_NAME,
        parameter_id=parameter_id,
        data_type=row["data_type"],
        max_length=as_int(row.get("max_length")),
        precision=as_int(row.get("precision")),
        scale=as_int(row.get("scale")),
        is_output=parameter_id == 0 or as_bool(row.get("is_output")),
        has_default=as_bool(row.get("has_default")),
        default_value=as_text(row.get("default_value")),
    )


# ---- extractors ----
class TableExtractor:
    """Extract base tables with columns, keys, indexes and constraints."""

    kind = KIND_TABLE

    def __init__(self, connection: "ConnectionPort", logger: Optional[logging.Logger] = None) -> None:
        self.connection = connection
        self.logger = logger or log
        self.skipped: List[SkippedEntity] = []

    async def extract_all(self) -> List[Table]:
        self.logger.info("Extracting tables...")
        rows = await run_query(self.connection, q.Q_LIST_TABLES)
        names = [(r["schema_name"], r["table_name"]) for r in rows]
        tables, self.skipped = await extract_sequentially(self.kind, names, self.extract_table, self.logger)
        return tables

    async def extract_table(self, schema_name: str, table_name: str) -> Table:
        columns, primary_keys, foreign_keys, indexes, constraints = await gather_details(
            self.get_columns(schema_name, table_name),
            self.get_primary_keys(schema_name, table_name),
            self.get_foreign_keys(schema_name, table_name),
            self.get_indexes(schema_name, table_name),
            self.get_constraints(schema_name, table_name),
        )
        return Table(
            schema_name=schema_name,
            table_name=table_name,
            columns=columns,
            primary_keys=primary_keys,
            foreign_keys=foreign_keys,
            indexes=indexes,
            constraints=constraints,
        )

    async def get_columns(self, schema_name: str, table_name: str) -> Tuple[Column, ...]:
        rows = await run_query(self.connection, q.Q_TABLE_COLUMNS, schema_name=schema_name, table_name=table_name)
        return tuple(column_from_row(r) for r in rows)

    async def get_primary_keys(self, schema_name: str, table_name: str) -> Tuple[PrimaryKey, ...]:
        rows = await run_query(self.connection, q.Q_TABLE_PRIMARY_KEYS, schema_name=schema_name, table_name=table_name)
        return tuple(primary_key_from_row(r) for r in rows)

    async def get_foreign_keys(self, schema_name: str, table_name: str) -> Tuple[ForeignKey, ...]:
        rows = await run_query(self.connection, q.Q_TABLE_FOREIGN_KEYS, schema_name=schema_name, table_name=table_name)
        return tuple(foreign_key_from_row(r) for r in rows)

    async def get_indexes(self, schema_name: str, table_name: str) -> Tuple[Index, ...]:
        rows = await run_query(self.connection, q.Q_TABLE_INDEXES, schema_name=schema_name, table_name=table_name)
        return group_index_rows(rows)

    async def get_constraints(self, schema_name: str, table_name: str) -> Tuple[Constraint, ...]:
        """CHECK, DEFAULT and UNIQUE constraints, concatenated in that order."""
        per_kind = await gather_details(
            *(
                self._get_constraints_of_type(constraint_type, query, schema_name, table_name)
                for constraint_type, query in q.CONSTRAINT_QUERIES.items()
            )
        )
        return tuple(c for group in per_kind for c in group)

    async def _get_constraints_of_type(
        self, constraint_type: str, query: str, schema_name: str, table_name: str
    ) -> List[Constraint]:
        try:
            rows = await run_query(self.connection, query, schema_name=schema_name, table_name=table_name)
        except ConnectionError:
            raise
        except Exception as exc:
            self.logger.warning(
                "Could not read %s constraints of %s.%s, treating as none: %s",
                constraint_type, schema_name, table_name, exc,
            )
            return []
        return merge_constraint_rows(rows, constraint_type)


class ViewExtractor:
    """Extract views with definitions and referenced objects."""

    kind = KIND_VIEW

    def __init__(self, connection: "ConnectionPort", logger: Optional[logging.Logger] = None) -> None:
        self.connection = connection
        self.logger = logger or log
        self.skipped: List[SkippedEntity] = []

    async def extract_all(self) -> List[View]:
        self.logger.info("Extracting views...")
        rows = await run_query(self.connection, q.Q_LIST_VIEWS)
        names = [(r["schema_name"], r["view_name"]) for r in rows]
        views, self.skipped = await extract_sequentially(self.kind, names, self.extract_view, self.logger)
        return views

    async def extract_view(self, schema_name: str, view_name: str) -> View:
        details, dependencies = await gather_details(
            run_query(self.connection, q.Q_VIEW_DETAILS, schema_name=schema_name, view_name=view_name),
            self.get_dependencies(schema_name, view_name),
        )
        if not details:
            raise EntityNotFoundError(self.kind, schema_name, view_name)
        detail = details[0]
        return View(
            schema_name=schema_name,
            view_name=view_name,
            definition=detail.get("definition") or "",
            check_option=as_text(detail.get("check_option")),
            is_updatable=as_bool(detail.get("is_updatable")),
            dependencies=dependencies,
        )

    async def get_dependencies(self, schema_name: str, view_name: str) -> Tuple[Dependency, ...]:
        try:
            rows = await run_query(self.connection, q.Q_VIEW_DEPENDENCIES, schema_name=schema_name, view_name=view_name)
        except ConnectionError:
            raise
        except Exception as exc:
            self.logger.warning("Could not read dependencies of view %s.%s: %s", schema_name, view_name, exc)
            return ()
        return tuple(dependency_from_row(r) for r in rows)


class ProcedureExtractor:
    """Extract stored procedures with definitions and parameters."""

    kind = KIND_PROCEDURE

    def __init__(self, connection: "ConnectionPort", logger: Optional[logging.Logger] = None) -> None:
        self.connection = connection
        self.logger = logger or log
        self.skipped: List[SkippedEntity] = []

    async def extract_all(self) -> List[Procedure]:
        self.logger.info("Extracting stored procedures...")
        rows = await run_query(self.connection, q.Q_LIST_PROCEDURES)
        names = [(r["schema_name"], r["procedure_name"]) for r in rows]
        procedures, self.skipped = await extract_sequentially(self.kind, names, self.extract_procedure, self.logger)
        return procedures

    async def extract_procedure(self, schema_name: str, procedure_name: str) -> Procedure:
        details, param_rows = await gather_details(
            run_query(self.connection, q.Q_PROCEDURE_DETAILS, schema_name=schema_name, procedure_name=procedure_name),
            run_query(self.connection, q.Q_PROCEDURE_PARAMETERS, schema_name=schema_name, procedure_name=procedure_name),
        )
        if not details:
            raise EntityNotFoundError(self.kind, schema_name, procedure_name)
        detail = details[0]
        return Procedure(
            schema_name=schema_name,
            procedure_name=procedure_name,
            create_date=detail.get("create_date"),
            modify_date=detail.get("modify_date"),
            definition=detail.get("definition") or "",
            parameters=tuple(parameter_from_row(r) for r in param_rows),
        )


class FunctionExtractor:
    """Extract scalar and table-valued user functions."""

    kind = KIND_FUNCTION

    def __init__(self, connection: "ConnectionPort", logger: Optional[logging.Logger] = None) -> None:
        self.connection = connection
        self.logger = logger or log
        self.skipped: List[SkippedEntity] = []

    async def extract_all(self) -> List[Function]:
        self.logger.info("Extracting functions...")
        rows = await run_query(self.connection, q.Q_LIST_FUNCTIONS)
        names = [(r["schema_name"], r["function_name"]) for r in rows]
        functions, self.skipped = await extract_sequentially(self.kind, names, self.extract_function, self.logger)
        return functions

    async def extract_function(self, schema_name: str, function_name: str) -> Function:
        details, param_rows = await gather_details(
            run_query(self.connection, q.Q_FUNCTION_DETAILS, schema_name=schema_name, function_name=function_name),
            run_query(self.connection, q.Q_FUNCTION_PARAMETERS, schema_name=schema_name, function_name=function_name),
        )
        if not details:
            raise EntityNotFoundError(self.kind, schema_name, function_name)
        detail = details[0]
        return Function(
            schema_name=schema_name,
            function_name=function_name,
            function_type=detail.get("function_type") or "",
            create_date=detail.get("create_date"),
            modify_date=detail.get("modify_date"),
            definition=detail.get("definition") or "",
            parameters=tuple(function_parameter_from_row(r) for r in param_rows),
        )
