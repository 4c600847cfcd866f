"""
compare
=======

Comparison orchestration: two snapshots in, one :class:`ComparisonResult` out.

Flow::

    connection -> extractors (x4, concurrent) -> Snapshot      (source, target concurrently)
    Snapshot x2 -> comparers (x4) -> Differences -> Summary

Public API
----------
- :func:`extract_snapshot`
- :func:`compare_snapshots` (pure; no I/O)
- :func:`compare_databases`
- :func:`build_summary`

No retries happen here: a failure opening a connection or a fatal query
error propagates to the caller unchanged.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from .comparers import FunctionComparer, ProcedureComparer, TableComparer, ViewComparer
from .extractors import FunctionExtractor, ProcedureExtractor, TableExtractor, ViewExtractor
from .filters import ObjectFilter, filter_snapshot
from .models import (
    KIND_FUNCTION,
    KIND_PROCEDURE,
    KIND_TABLE,
    KIND_VIEW,
    STATUS_DIFFERENT,
    STATUS_IDENTICAL,
    ComparisonResult,
    Differences,
    EntityDiff,
    KindSummary,
    Snapshot,
    Summary,
)

if TYPE_CHECKING:
    from .connection import ConnectionPort

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Options:
    """Which entity kinds to extract and compare."""
    tables: bool = True
    views: bool = True
    procedures: bool = True
    functions: bool = True


async def _nothing() -> list:
    return []


async def extract_snapshot(
    connection: "ConnectionPort",
    options: Options = Options(),
    logger: Optional[logging.Logger] = None,
) -> Snapshot:
    """Extract all enabled entity kinds from *connection* concurrently.

    A disabled kind yields an empty tuple. Entities whose details could not be
    read are listed in ``Snapshot.skipped``.
    """
    logger = logger or log
    logger.info("Extracting metadata from %s/%s", connection.server_name, connection.database_name)
    started = time.monotonic()

    table_ex = TableExtractor(connection, logger)
    view_ex = ViewExtractor(connection, logger)
    proc_ex = ProcedureExtractor(connection, logger)
    func_ex = FunctionExtractor(connection, logger)

    tables, views, procedures, functions = await asyncio.gather(
        table_ex.extract_all() if options.tables else _nothing(),
        view_ex.extract_all() if options.views else _nothing(),
        proc_ex.extract_all() if options.procedures else _nothing(),
        func_ex.extract_all() if options.functions else _nothing(),
    )

    snapshot = Snapshot(
        database_name=connection.database_name,
        server=connection.server_name,
        tables=tuple(tables),
        views=tuple(views),
        procedures=tuple(procedures),
        functions=tuple(functions),
        extracted_at=dt.datetime.now(),
        skipped=tuple(table_ex.skipped + view_ex.skipped + proc_ex.skipped + func_ex.skipped),
    )
    logger.info(
        "Extracted %s/%s in %.1fs: %d tables, %d views, %d procedures, %d functions (%d skipped)",
        snapshot.server, snapshot.database_name, time.monotonic() - started,
        len(snapshot.tables), len(snapshot.views), len(snapshot.procedures), len(snapshot.functions),
        len(snapshot.skipped),
    )
    return snapshot


def _kind_summary(source_count: int, target_count: int, diff: EntityDiff[Any, Any], skipped: int) -> KindSummary:
    return KindSummary(
        source=source_count,
        target=target_count,
        added=len(diff.added),
        removed=len(diff.removed),
        modified=len(diff.modified),
        skipped=skipped,
    )


def build_summary(source: Snapshot, target: Snapshot, differences: Differences) -> Summary:
    """Counts per kind plus ``identical``/``different``.

    ``skipped`` counts entities dropped from either snapshot.
    """
    def skipped(kind: str) -> int:
        return source.skipped_count(kind) + target.skipped_count(kind)

    return Summary(
        tables=_kind_summary(len(source.tables), len(target.tables), differences.tables, skipped(KIND_TABLE)),
        views=_kind_summary(len(source.views), len(target.views), differences.views, skipped(KIND_VIEW)),
        procedures=_kind_summary(
            len(source.procedures), len(target.procedures), differences.procedures, skipped(KIND_PROCEDURE)
        ),
        functions=_kind_summary(
            len(source.functions), len(target.functions), differences.functions, skipped(KIND_FUNCTION)
        ),
        overall_status=STATUS_DIFFERENT if differences.has_changes() else STATUS_IDENTICAL,
    )


def compare_snapshots(
    source: Snapshot,
    target: Snapshot,
    object_filter: Optional[ObjectFilter] = None,
    logger: Optional[logging.Logger] = None,
) -> ComparisonResult:
    """Diff two snapshots and build the summary. Pure: no database access."""
    logger = logger or log
    if object_filter is not None:
        source = filter_snapshot(source, object_filter)
        target = filter_snapshot(target, object_filter)

    differences = Differences(
        tables=TableComparer(logger).compare(source.tables, target.tables),
        views=ViewComparer(logger).compare(source.views, target.views),
        procedures=ProcedureComparer(logger).compare(source.procedures, target.procedures),
        functions=FunctionComparer(logger).compare(source.functions, target.functions),
    )
    summary = build_summary(source, target, differences)
    logger.info("Comparison finished: %s", summary.overall_status)
    return ComparisonResult(
        source=source,
        target=target,
        differences=differences,
        summary=summary,
        timestamp=dt.datetime.now(),
    )


async def compare_databases(
    source: "ConnectionPort",
    target: "ConnectionPort",
    options: Options = Options(),
    object_filter: Optional[ObjectFilter] = None,
    logger: Optional[logging.Logger] = None,
) -> ComparisonResult:
    """Extract both databases concurrently, then compare them."""
    logger = logger or log
    started = time.monotonic()
    source_snapshot, target_snapshot = await asyncio.gather(
        extract_snapshot(source, options, logger),
        extract_snapshot(target, options, logger),
    )
    result = compare_snapshots(source_snapshot, target_snapshot, object_filter, logger)
    logger.info("Database comparison took %.1fs", time.monotonic() - started)
    return result
