#!/usr/bin/env python3
"""
cli
===

Compare the schema of two SQL Server databases ("source" and "target") and
write a JSON report, definition diffs and a Markdown summary.

Objects compared:

- Tables (columns, indexes, CHECK/DEFAULT/UNIQUE constraints)
- Views (definition)
- Stored procedures (definition, parameters)
- User-defined functions (definition, parameters incl. return value)

Outputs under ``out_dir``: ``comparison.json``, ``diffs/`` and ``SUMMARY.md``.

Object filtering
----------------

Include/exclude patterns are matched against ``schema.name``:

- include: keep only objects that match ANY include pattern
- exclude: drop objects that match ANY exclude pattern

Patterns support SQL LIKE wildcards (``%`` and ``_``, default) or a regex
when prefixed with ``re:``. Matching is case-insensitive unless
``object_filter.case_sensitive`` is true.

Configuration
-------------

Example ``config.yml``::

    out_dir: out
    log_level: INFO
    options:
      tables: true
      views: true
      procedures: true
      functions: true

    object_filter:
      include: ["dbo.%"]
      exclude: ["re:^dbo\\.tmp_"]
      case_sensitive: false

    source:
      server: "sql-dev.example.com,1433"
      database: "Sales"
      auth: sql
      username: "reader"
      password: "..."

    target:
      server: "sql-prod.example.com"
      database: "Sales"
      auth: windows

Every connection field can also come from the environment
(``SCHEMADIFF_<SIDE>_<FIELD>``, e.g. ``SCHEMADIFF_TARGET_PASSWORD``) or the
command line (``--<side>-<field>``, e.g. ``--target-server``).
Priority: environment variable > CLI flag > config file.

CLI Usage
---------

Basic run::

    schemadiff --config config.yml

Skip routines and only look at the ``sales`` schema::

    schemadiff --config config.yml --no-procedures --no-functions --include "sales.%"

Exit status: 0 when identical, 1 when different, 2 on a fatal error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from sqlalchemy.exc import SQLAlchemyError

from .compare import Options, compare_databases
from .connection import DEFAULT_DRIVER, DbTarget, SqlServerConnection
from .errors import ConfigError, SchemaDiffError
from .filters import ObjectFilter
from .models import STATUS_IDENTICAL, ComparisonResult
from .reporting import generate_summary_md, write_definition_diffs, write_json_report

log = logging.getLogger(__name__)

SIDES = ("source", "target")
# fields settable from the command line as --<side>-<field>
CLI_FIELDS = ("server", "database", "auth", "username", "password", "driver")
REQUIRED_FIELDS = ("server", "database")
EXIT_IDENTICAL = 0
EXIT_DIFFERENT = 1
EXIT_ERROR = 2


def load_config(path: Path) -> Dict[str, Any]:
    """Load YAML config file."""
    if not path.exists():
        raise SystemExit(f"ERROR: config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def deep_get(d: Dict[str, Any], keys: List[str], default: Any = None) -> Any:
    """Safely get nested dict value with default."""
    cur: Any = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def get_env_var(side: str, field: str) -> Optional[str]:
    """Return ``SCHEMADIFF_<SIDE>_<FIELD>`` if set."""
    return os.environ.get(f"SCHEMADIFF_{side.upper()}_{field.upper()}")


def resolve_field(cfg: Dict[str, Any], side: str, field: str, overrides: Dict[str, Any]) -> Any:
    """Pick a connection field: env var > CLI override > config value."""
    env_value = get_env_var(side, field)
    if env_value not in (None, ""):
        return env_value
    cli_value = overrides.get(f"{side}_{field}")
    if cli_value not in (None, ""):
        return cli_value
    return deep_get(cfg, [side, field])


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "y", "on"):
        return True
    if text in ("0", "false", "no", "n", "off"):
        return False
    raise ConfigError(f"{field}: expected a boolean, got {value!r}")


def parse_int(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field}: expected an integer, got {value!r}") from exc


def build_target(cfg: Dict[str, Any], side: str, overrides: Dict[str, Any]) -> DbTarget:
    """Build the connection settings for *side* (``source`` or ``target``).

    Raises
    ------
    SystemExit
        When a required field is missing; the message names the config key,
        the environment variable and the CLI flag that can provide it.
    ConfigError
        When a boolean or integer field cannot be parsed.
    """

    def get(field: str, default: Any = None) -> Any:
        value = resolve_field(cfg, side, field, overrides)
        return default if value in (None, "") else value

    for field in REQUIRED_FIELDS:
        if get(field) is None:
            raise SystemExit(
                f"ERROR: missing {side}.{field}. Set it in the config file, "
                f"via SCHEMADIFF_{side.upper()}_{field.upper()}, or with --{side}-{field.replace('_', '-')}"
            )

    auth = str(get("auth", "sql" if get("username") else "windows")).lower()
    return DbTarget(
        server=str(get("server")),
        database=str(get("database")),
        auth=auth,
        username=get("username"),
        password=get("password"),
        driver=str(get("driver", DEFAULT_DRIVER)),
        encrypt=parse_bool(get("encrypt", False), f"{side}.encrypt"),
        trust_server_certificate=parse_bool(
            get("trust_server_certificate", True), f"{side}.trust_server_certificate"
        ),
        connect_timeout=parse_int(get("connect_timeout", 30), f"{side}.connect_timeout"),
        query_timeout=parse_int(get("query_timeout", 60), f"{side}.query_timeout"),
        label=side,
    )


def read_options(cfg: Dict[str, Any], args: argparse.Namespace) -> Options:
    """Object-kind toggles from config, with ``--no-*`` flags taking priority."""
    return Options(
        tables=bool(deep_get(cfg, ["options", "tables"], True)) and not args.no_tables,
        views=bool(deep_get(cfg, ["options", "views"], True)) and not args.no_views,
        procedures=bool(deep_get(cfg, ["options", "procedures"], True)) and not args.no_procedures,
        functions=bool(deep_get(cfg, ["options", "functions"], True)) and not args.no_functions,
    )


def read_log_level(cfg: Dict[str, Any], args: argparse.Namespace) -> str:
    """Return the logging level name from --log-level, else config, else INFO.

    Raises
    ------
    ConfigError
        If the name is not a standard logging level.
    """
    level = str(args.log_level or cfg.get("log_level") or "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"log_level: unknown logging level {level!r}")
    return level


def read_object_filter(cfg: Dict[str, Any], args: argparse.Namespace) -> ObjectFilter:
    """Include/exclude patterns from config; CLI patterns are appended."""
    cfg_includes = deep_get(cfg, ["object_filter", "include"], []) or []
    cfg_excludes = deep_get(cfg, ["object_filter", "exclude"], []) or []
    return ObjectFilter(
        include=list(cfg_includes) + list(args.include or []),
        exclude=list(cfg_excludes) + list(args.exclude or []),
        case_sensitive=bool(deep_get(cfg, ["object_filter", "case_sensitive"], False)),
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="schemadiff",
        description="Compare tables, views, stored procedures and functions of two SQL Server databases.",
    )
    ap.add_argument("--config", default="config.yml", help="Path to config.yml (default: config.yml)")
    ap.add_argument("--out", default=None, help="Override out_dir from config")
    ap.add_argument("--log-level", default=None, help="Logging level (default: log_level from config, else INFO)")

    # toggles
    ap.add_argument("--no-tables", action="store_true", help="Skip tables")
    ap.add_argument("--no-views", action="store_true", help="Skip views")
    ap.add_argument("--no-procedures", action="store_true", help="Skip stored procedures")
    ap.add_argument("--no-functions", action="store_true", help="Skip user-defined functions")

    # include/exclude filters (repeatable)
    ap.add_argument(
        "--include",
        action="append",
        default=[],
        help="Include pattern on schema.name (repeatable). SQL LIKE (%% _) or regex via re:... e.g. --include 'dbo.%%'",
    )
    ap.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Exclude pattern on schema.name (repeatable). SQL LIKE (%% _) or regex via re:... e.g. --exclude '%%.tmp_%%'",
    )

    for side in SIDES:
        for field in CLI_FIELDS:
            ap.add_argument(f"--{side}-{field}", dest=f"{side}_{field}", default=None)
    return ap


async def run_comparison(
    source: DbTarget, target: DbTarget, options: Options, object_filter: ObjectFilter
) -> ComparisonResult:
    """Open both connections, compare, and close them again."""
    async with await SqlServerConnection.open(source) as source_conn:
        async with await SqlServerConnection.open(target) as target_conn:
            return await compare_databases(source_conn, target_conn, options, object_filter)


def header_lines(
    cfg_path: Path, source: DbTarget, target: DbTarget, options: Options, object_filter: ObjectFilter
) -> List[str]:
    return [
        f"- Config: `{cfg_path.name}`",
        f"- {source.describe()}",
        f"- {target.describe()}",
        f"- Options: tables={options.tables} views={options.views} "
        f"procedures={options.procedures} functions={options.functions}",
        f"- Object filters: include={object_filter.include or '[]'} exclude={object_filter.exclude or '[]'}",
    ]


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI entry-point and return the exit status."""
    args = build_parser().parse_args(argv)

    cfg_path = Path(args.config).resolve()
    cfg = load_config(cfg_path)

    try:
        level = read_log_level(cfg, args)
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    out_root = Path(args.out or cfg.get("out_dir", "out")).resolve()
    options = read_options(cfg, args)
    object_filter = read_object_filter(cfg, args)

    try:
        overrides = vars(args)
        source = build_target(cfg, "source", overrides)
        target = build_target(cfg, "target", overrides)

        print(f"Comparing {source.server}/{source.database} -> {target.server}/{target.database} ...")
        result = asyncio.run(run_comparison(source, target, options, object_filter))
    except (ConnectionError, SchemaDiffError, SQLAlchemyError) as exc:
        log.debug("Comparison failed", exc_info=True)
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR

    json_path = write_json_report(out_root / "comparison.json", result)
    diff_files = write_definition_diffs(out_root, result)
    summary_path = generate_summary_md(
        out_root, result, header_lines(cfg_path, source, target, options, object_filter), diff_files
    )

    summary = result.summary
    print("\nDone.")
    for title, counts in (
        ("Tables", summary.tables),
        ("Views", summary.views),
        ("Procedures", summary.procedures),
        ("Functions", summary.functions),
    ):
        print(
            f"{title:<11}: +{counts.added} -{counts.removed} ~{counts.modified}"
            + (f" (skipped {counts.skipped})" if counts.skipped else "")
        )
    print(f"Status : {summary.overall_status}")
    print(f"Report : {json_path}")
    print(f"Summary: {summary_path}")

    return EXIT_IDENTICAL if summary.overall_status == STATUS_IDENTICAL else EXIT_DIFFERENT


if __name__ == "__main__":
    sys.exit(main())
