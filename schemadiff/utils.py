"""
utils
=====

Small, shared utilities used across the codebase.

This module intentionally contains only low-level helpers that are safe to
import from anywhere (no database calls, no heavy imports).

Functions
---------
- :func:`normalize_text`:
  Trim a catalog text value and collapse internal whitespace.
- :func:`values_equal`:
  The one equality rule every comparer uses for scalar properties.
- :func:`qualified_name`:
  ``schema.name`` identity key for top-level entities.
- :func:`safe_name`:
  Convert an arbitrary identifier into a filesystem-safe filename component.
"""

from __future__ import annotations

import re
from typing import Any, Optional

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION_SPACE = re.compile(r" ?([,()]) ?")


def normalize_text(value: Optional[str]) -> str:
    """Return *value* trimmed, with every whitespace run collapsed to one space.

    Spaces next to ``,`` ``(`` and ``)`` are dropped, so ``a, b`` and
    ``a,b`` normalize the same. ``None`` and the empty string both
    normalize to ``""``.

    Examples
    --------
    >>> normalize_text("  SELECT  a,\\n  b ")
    'SELECT a,b'
    >>> normalize_text("COUNT( * )")
    'COUNT(*)'
    """
    if not value:
        return ""
    return _PUNCTUATION_SPACE.sub(r"\1", _WHITESPACE.sub(" ", value.strip()))


def values_equal(source: Any, target: Any) -> bool:
    """Compare two catalog values.

    Rules
    -----
    - two ``None`` values are equal; ``None`` never equals a present value
    - two strings are equal when their normalized, case-folded forms match
    - anything else is compared with ``==`` and must share a type, so
      ``1 == True`` or ``1 == 1.0`` do not count as equal

    Examples
    --------
    >>> values_equal("SELECT  a,b FROM t", "select a, b\\nfrom t")
    True
    >>> values_equal(None, "")
    False
    """
    if source is None or target is None:
        return source is None and target is None
    if isinstance(source, str) and isinstance(target, str):
        return normalize_text(source).casefold() == normalize_text(target).casefold()
    if type(source) is not type(target):
        return False
    return source == target


def qualified_name(schema_name: str, name: str) -> str:
    """Return the ``schema.name`` identity key (case and whitespace kept)."""
    return f"{schema_name}.{name}"


def safe_name(value: str) -> str:
    """Return a filesystem-safe version of *value*.

    Examples
    --------
    >>> safe_name("dbo.Order Details")
    'dbo.Order_Details'
    >>> safe_name("")
    'unnamed'
    """
    out = re.sub(r"[^A-Za-z0-9._-]+", "_", value).strip("_")
    return out or "unnamed"
