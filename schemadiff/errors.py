"""Exception types raised by schemadiff."""

from __future__ import annotations


class SchemaDiffError(Exception):
    """Base class for schemadiff errors."""


class EntityNotFoundError(SchemaDiffError):
    """An enumerated entity had no detail row (dropped mid-extraction or hidden by permissions)."""

    def __init__(self, kind: str, schema_name: str, name: str) -> None:
        super().__init__(f"{kind} {schema_name}.{name} not found")
        self.kind = kind
        self.schema_name = schema_name
        self.name = name


class ConfigError(SchemaDiffError):
    """Invalid connection or run configuration."""
