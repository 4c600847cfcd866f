"""
connection
==========

SQL Server access for snapshot extraction.

The rest of the codebase treats database access as one async call:

- input: catalog query text (``@name`` placeholders) + a parameter mapping
- output: a list of row dicts keyed by column alias

:class:`ConnectionPort` is that contract. :class:`SqlServerConnection`
implements it with a SQLAlchemy engine over pyodbc; blocking driver calls run
in worker threads so one entity's detail queries can be in flight together,
each on its own pooled DBAPI connection.

Errors
------
Driver errors that mean the server is unreachable or the session is gone
(``OperationalError``, ``InterfaceError``) are raised as
:class:`ConnectionError` and end the run. Other driver errors propagate
as-is, so extractors can treat them as a problem with one entity.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from .queries import Q_SERVER_VERSION

log = logging.getLogger(__name__)

DEFAULT_PORT = 1433
DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
AUTH_TYPES = ("sql", "windows")


class ConnectionPort(Protocol):
    """What extraction needs from a database connection."""

    @property
    def database_name(self) -> str:
        ...

    @property
    def server_name(self) -> str:
        ...

    async def execute_query(
        self, query: str, parameters: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        ...


@dataclass(frozen=True)
class ServerAddress:
    """A parsed server string.

    Attributes:
        host: Host name or IP, including ``\\INSTANCE`` for named instances.
        port: TCP port, or None for a named instance without explicit port.
        explicit_port: True when the input carried a port.
    """

    host: str
    port: Optional[int]
    explicit_port: bool


def _parse_port(raw: str) -> int:
    raw = raw.strip()
    if not raw.isdigit() or not 1 <= int(raw) <= 65535:
        raise ValueError(f"invalid port number: {raw!r}")
    return int(raw)


def parse_server_address(value: str) -> ServerAddress:
    """Parse ``host``, ``host:port``, ``host,port`` or ``HOST\\INSTANCE``.

    Examples
    --------
    >>> parse_server_address("10.0.0.5,26923")
    ServerAddress(host='10.0.0.5', port=26923, explicit_port=True)
    >>> parse_server_address("localhost")
    ServerAddress(host='localhost', port=1433, explicit_port=False)
    """
    server = (value or "").strip()
    if not server:
        raise ValueError("server address must not be empty")

    for sep in (",", ":"):
        if sep in server:
            host, _, port = server.partition(sep)
            if not host.strip():
                raise ValueError(f"invalid server address: {value!r}")
            return ServerAddress(host.strip(), _parse_port(port), True)

    if "\\" in server:
        # named instance: the SQL Browser service resolves the port
        return ServerAddress(server, None, False)
    return ServerAddress(server, DEFAULT_PORT, False)


@dataclass(frozen=True)
class DbTarget:
    """Connection settings for one side of a comparison.

    Attributes:
        server: Server address (see :func:`parse_server_address`).
        database: Database name.
        auth: ``sql`` (username/password) or ``windows`` (trusted connection).
        username: SQL login (``sql`` auth only).
        password: SQL password (``sql`` auth only).
        driver: ODBC driver name.
        encrypt: Request an encrypted connection.
        trust_server_certificate: Skip certificate validation.
        connect_timeout: Login timeout in seconds.
        query_timeout: Per-query timeout in seconds (0 = none).
        label: Logical label for logs and reports (``source`` or ``target``).
    """

    server: str
    database: str
    auth: str = "windows"
    username: Optional[str] = None
    password: Optional[str] = None
    driver: str = DEFAULT_DRIVER
    encrypt: bool = False
    trust_server_certificate: bool = True
    connect_timeout: int = 30
    query_timeout: int = 60
    label: str = "source"

    def describe(self) -> str:
        """Return a human-readable description for logs/reports (no secrets)."""
        who = f"user={self.username}" if self.auth == "sql" else "windows-auth"
        return f"{self.label.upper()}: server={self.server} db={self.database} {who}"


def build_url(target: DbTarget) -> URL:
    """Build the ``mssql+pyodbc`` URL for *target*."""
    if target.auth not in AUTH_TYPES:
        raise ValueError(f"unknown auth type {target.auth!r}; expected one of {AUTH_TYPES}")

    address = parse_server_address(target.server)
    query = {
        "driver": target.driver,
        "Encrypt": "yes" if target.encrypt else "no",
        "TrustServerCertificate": "yes" if target.trust_server_certificate else "no",
    }
    if target.auth == "windows":
        query["Trusted_Connection"] = "yes"
        return URL.create(
            "mssql+pyodbc", host=address.host, port=address.port, database=target.database, query=query
        )
    return URL.create(
        "mssql+pyodbc",
        username=target.username,
        password=target.password,
        host=address.host,
        port=address.port,
        database=target.database,
        query=query,
    )


_PLACEHOLDER = re.compile(r"(?<![@\w])@([A-Za-z_]\w*)")


def to_bind_params(query: str, parameters: Optional[Mapping[str, Any]]) -> str:
    """Rewrite ``@name`` placeholders as SQLAlchemy ``:name`` binds.

    Only names present in *parameters* are rewritten, so system functions
    such as ``@@VERSION`` are left alone.
    """
    if not parameters:
        return query
    return _PLACEHOLDER.sub(lambda m: f":{m.group(1)}" if m.group(1) in parameters else m.group(0), query)


class SqlServerConnection:
    """:class:`ConnectionPort` over a SQLAlchemy engine.

    Use :meth:`open` to create and verify a connection::

        async with await SqlServerConnection.open(target) as conn:
            rows = await conn.execute_query(Q_LIST_TABLES)
    """

    def __init__(self, target: DbTarget, engine: Engine, logger: Optional[logging.Logger] = None) -> None:
        self.target = target
        self.engine = engine
        self.logger = logger or log

    @property
    def database_name(self) -> str:
        return self.target.database

    @property
    def server_name(self) -> str:
        return self.target.server

    @classmethod
    async def open(cls, target: DbTarget, logger: Optional[logging.Logger] = None) -> "SqlServerConnection":
        """Create the engine and run a version query; raise ConnectionError on failure."""
        try:
            engine = create_engine(
                build_url(target),
                pool_pre_ping=True,
                connect_args={"timeout": target.connect_timeout},
            )
        except (SQLAlchemyError, ValueError) as exc:
            raise ConnectionError(f"{target.label}: cannot configure connection: {exc}") from exc

        conn = cls(target, engine, logger)
        try:
            rows = await conn.execute_query(Q_SERVER_VERSION)
        except SQLAlchemyError as exc:
            await conn.close()
            raise ConnectionError(f"{target.label}: cannot connect to {target.server}/{target.database}: {exc}") from exc
        except ConnectionError:
            await conn.close()
            raise

        version = str(rows[0].get("version", "")) if rows else ""
        conn.logger.info("Connected %s (%s)", target.describe(), version.splitlines()[0] if version else "unknown version")
        return conn

    async def execute_query(
        self, query: str, parameters: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._execute, query, parameters)

    def _execute(self, query: str, parameters: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        stmt = text(to_bind_params(query, parameters))
        try:
            with self.engine.connect() as conn:
                if self.target.query_timeout:
                    conn.connection.driver_connection.timeout = self.target.query_timeout
                result = conn.execute(stmt, dict(parameters or {}))
                return [dict(row) for row in result.mappings()]
        except (OperationalError, InterfaceError) as exc:
            raise ConnectionError(f"{self.target.label}: connection failure: {exc}") from exc

    async def close(self) -> None:
        await asyncio.to_thread(self.engine.dispose)
        self.logger.debug("Closed %s", self.target.describe())

    async def __aenter__(self) -> "SqlServerConnection":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
