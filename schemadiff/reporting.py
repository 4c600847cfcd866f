"""
reporting
=========

Report generation for a :class:`~schemadiff.models.ComparisonResult`.

Three outputs, all under ``out_dir``:

- ``comparison.json``: the full result as plain JSON
- ``diffs/<kind>/<schema.name>.diff``: unified diffs of changed view and
  routine definitions
- ``SUMMARY.md``: counts per kind and the changed objects, linking to the
  definition diffs

Links are written as *relative* paths so the whole output directory can be
moved or archived while preserving navigation.

Primary API
-----------
- :func:`to_jsonable` / :func:`write_json_report`
- :func:`write_definition_diffs`
- :func:`generate_summary_md`
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import difflib
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import (
    ComparisonResult,
    EntityDiff,
    IndexColumn,
    KindSummary,
    MemberChanges,
    MemberModification,
    PropertyChange,
    RoutineModification,
    TableModification,
    ViewModification,
)
from .utils import qualified_name, safe_name

SECTIONS = (
    ("Tables", "tables"),
    ("Views", "views"),
    ("Stored procedures", "procedures"),
    ("Functions", "functions"),
)


# ---- file helpers ----
def write_text(path: Path, content: str) -> None:
    """Write UTF-8 text with normalized newlines, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = content.replace("\r\n", "\n").replace("\r", "\n")
    path.write_text(content, encoding="utf-8")


def unified_diff(a_text: str, b_text: str, fromfile: str, tofile: str) -> str:
    """Return a unified diff between two strings (empty when equal)."""
    a_lines = a_text.replace("\r\n", "\n").splitlines(keepends=True)
    b_lines = b_text.replace("\r\n", "\n").splitlines(keepends=True)
    return "".join(difflib.unified_diff(a_lines, b_lines, fromfile=fromfile, tofile=tofile))


def rel_link(from_file: Path, to_file: Path) -> str:
    """Create a portable relative link for Markdown."""
    return os.path.relpath(to_file, start=from_file.parent).replace("\\", "/")


def md_anchor(title: str) -> str:
    """Create an approximate GitHub-style markdown anchor from a section title."""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


# ---- JSON ----
def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    return value


def to_jsonable(result: ComparisonResult) -> Dict[str, Any]:
    """Convert *result* to dicts and lists; datetimes become ISO-8601 strings."""
    return _plain(dataclasses.asdict(result))


def write_json_report(path: Path, result: ComparisonResult) -> Path:
    """Write *result* as indented JSON and return *path*."""
    write_text(path, json.dumps(to_jsonable(result), indent=2, ensure_ascii=False) + "\n")
    return path


# ---- definition diffs ----
def _definition_modifications(result: ComparisonResult) -> List[Tuple[str, Any]]:
    diffs = result.differences
    out: List[Tuple[str, Any]] = []
    for kind, entity_diff in (("views", diffs.views), ("procedures", diffs.procedures), ("functions", diffs.functions)):
        out.extend((kind, m) for m in entity_diff.modified if m.definition_changed)
    return out


def write_definition_diffs(out_dir: Path, result: ComparisonResult) -> Dict[str, Path]:
    """Write one unified diff per changed view/routine definition.

    Returns
    -------
    dict
        ``"<kind>:<schema.name>"`` -> diff file path.
    """
    written: Dict[str, Path] = {}
    source_label = f"{result.source.server}/{result.source.database_name}"
    target_label = f"{result.target.server}/{result.target.database_name}"
    for kind, mod in _definition_modifications(result):
        name = qualified_name(mod.schema_name, mod.name)
        diff = unified_diff(
            mod.source_definition,
            mod.target_definition,
            fromfile=f"{source_label}/{name}",
            tofile=f"{target_label}/{name}",
        )
        if not diff.strip():
            continue
        path = out_dir / "diffs" / kind / f"{safe_name(name)}.diff"
        write_text(path, diff)
        written[f"{kind}:{name}"] = path
    return written


# ---- markdown ----
def _fmt(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_fmt(v) for v in value) + "]"
    if isinstance(value, IndexColumn):
        suffix = " INCLUDE" if value.is_included else (" DESC" if value.is_descending else "")
        return f"{value.column_name}@{value.key_ordinal}{suffix}"
    return str(value)


def _change_text(change: PropertyChange) -> str:
    return f"{change.property}: {_fmt(change.source_value)} -> {_fmt(change.target_value)}"


def _member_lines(label: str, changes: MemberChanges[Any], name_attr: str) -> List[str]:
    lines: List[str] = []
    if changes.added:
        lines.append(f"  - {label} added: " + ", ".join(getattr(m, name_attr) for m in changes.added) + "\n")
    if changes.removed:
        lines.append(f"  - {label} removed: " + ", ".join(getattr(m, name_attr) for m in changes.removed) + "\n")
    for mod in changes.modified:
        lines.append(f"  - {label} modified: {_member_modification_text(mod)}\n")
    return lines


def _member_modification_text(mod: MemberModification) -> str:
    return f"{mod.name} (" + "; ".join(_change_text(c) for c in mod.changes) + ")"


def _modification_lines(mod: Any, summary_path: Path, kind: str, diff_files: Dict[str, Path]) -> List[str]:
    name = qualified_name(mod.schema_name, mod.name)
    lines = [f"- Modified: `{name}`\n"]
    if isinstance(mod, TableModification):
        lines += _member_lines("columns", mod.column_changes, "column_name")
        lines += _member_lines("indexes", mod.index_changes, "index_name")
        lines += _member_lines("constraints", mod.constraint_changes, "constraint_name")
        return lines

    if isinstance(mod, (ViewModification, RoutineModification)) and mod.definition_changed:
        diff_file = diff_files.get(f"{kind}:{name}")
        if diff_file is not None:
            lines.append(f"  - definition changed: [{diff_file.name}]({rel_link(summary_path, diff_file)})\n")
        else:
            lines.append("  - definition changed\n")
    if isinstance(mod, RoutineModification) and mod.parameters_changed:
        lines += _member_lines("parameters", mod.parameter_changes, "parameter_name")
    return lines


def _section_lines(
    title: str, kind: str, entity_diff: EntityDiff[Any, Any], summary_path: Path, diff_files: Dict[str, Path]
) -> List[str]:
    lines = [f"## {title}\n\n"]
    if not entity_diff.has_changes():
        lines.append("- ✅ No differences\n\n")
        return lines
    for entity in entity_diff.added:
        lines.append(f"- Added: `{qualified_name(entity.schema_name, entity.name)}`\n")
    for entity in entity_diff.removed:
        lines.append(f"- Removed: `{qualified_name(entity.schema_name, entity.name)}`\n")
    for mod in entity_diff.modified:
        lines.extend(_modification_lines(mod, summary_path, kind, diff_files))
    lines.append("\n")
    return lines


def _counts_row(title: str, counts: KindSummary) -> str:
    return (
        f"| {title} | {counts.source} | {counts.target} | {counts.added} | "
        f"{counts.removed} | {counts.modified} | {counts.skipped} |\n"
    )


def generate_summary_md(
    out_dir: Path,
    result: ComparisonResult,
    header_lines: Sequence[str] = (),
    diff_files: Optional[Dict[str, Path]] = None,
) -> Path:
    """Generate a Markdown summary of *result*.

    Parameters
    ----------
    out_dir:
        Output directory where ``SUMMARY.md`` is written.
    result:
        The comparison to summarize.
    header_lines:
        Bullet-style lines to include near the top (config/targets/options).
    diff_files:
        Definition diff files from :func:`write_definition_diffs`; modified
        views and routines link to theirs.

    Returns
    -------
    pathlib.Path
        The path to the generated ``SUMMARY.md``.
    """
    summary_path = out_dir / "SUMMARY.md"
    diff_files = diff_files or {}
    generated = result.timestamp.strftime("%Y-%m-%d %H:%M:%S")
    summary = result.summary

    lines: List[str] = []
    lines.append("# SQL Server Schema Diff Summary\n\n")
    lines.append(f"_Generated: {generated}_\n\n")

    if header_lines:
        for h in header_lines:
            lines.append(h + "\n")
        lines.append("\n")

    lines.append(f"**Overall status:** {summary.overall_status}\n\n")
    lines.append("| Kind | Source | Target | Added | Removed | Modified | Skipped |\n")
    lines.append("|---|---:|---:|---:|---:|---:|---:|\n")
    for title, attr in SECTIONS:
        lines.append(_counts_row(title, getattr(summary, attr)))
    lines.append("\n")

    skipped = [("source", s) for s in result.source.skipped] + [("target", s) for s in result.target.skipped]
    titles = [title for title, _ in SECTIONS] + (["Skipped objects"] if skipped else [])
    lines.append("## Contents\n")
    for title in titles:
        lines.append(f"- [{title}](#{md_anchor(title)})\n")
    lines.append("\n")

    for title, attr in SECTIONS:
        lines.extend(_section_lines(title, attr, getattr(result.differences, attr), summary_path, diff_files))

    if skipped:
        lines.append("## Skipped objects\n\n")
        lines.append("These objects could not be read and were left out of the comparison.\n\n")
        for side, s in skipped:
            lines.append(f"- {side} {s.kind} `{s.qualified_name}`: {s.reason}\n")
        lines.append("\n")

    write_text(summary_path, "".join(lines))
    return summary_path
