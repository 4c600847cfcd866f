"""
schemadiff
==========

Structural comparison of two SQL Server databases.

Modules, bottom-up:

- :mod:`schemadiff.models` / :mod:`schemadiff.utils`: data types and the shared equality rule
- :mod:`schemadiff.queries` / :mod:`schemadiff.connection`: catalog queries and database access
- :mod:`schemadiff.extractors`: snapshot extraction per entity kind
- :mod:`schemadiff.comparers` / :mod:`schemadiff.compare`: diffing and orchestration
- :mod:`schemadiff.reporting` / :mod:`schemadiff.cli`: reports and the ``schemadiff`` command
"""

__version__ = "0.1.0"
