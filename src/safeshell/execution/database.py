"""Read-only database access through the native command-line clients.

The executor never links a database driver.  It resolves a connection
through a :class:`~safeshell.core.interfaces.ConnectionResolver`, then runs
``mysql``/``mariadb`` or ``psql`` with a read-only session:

* MySQL family: ``--init-command="SET SESSION TRANSACTION READ ONLY"``,
  tab-separated ``--batch --raw`` output, password in ``MYSQL_PWD``.
* PostgreSQL: ``PGOPTIONS=-c default_transaction_read_only=on``, unaligned
  tab-separated output, password in ``PGPASSWORD``.

Callers must pass SQL through the query guard and table names through
:func:`~safeshell.validation.query.validate_identifier` first.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from safeshell.core.errors import (
    ConnectionNotFound,
    ExecutionFailed,
    NoDatabase,
    UnknownDatabaseType,
)
from safeshell.core.interfaces import ConnectionResolver
from safeshell.core.types import ConnectionDescriptor, DatabaseDriver
from safeshell.execution.runner import CommandRunner, require_binary
from safeshell.validation.query import apply_row_limit

logger = logging.getLogger(__name__)

TARGET_DATABASE_FILE = ".target-database"

_CLIENT_BINARIES: dict[DatabaseDriver, tuple[str, ...]] = {
    DatabaseDriver.MYSQL: ("mysql", "mariadb"),
    DatabaseDriver.MARIADB: ("mariadb", "mysql"),
    DatabaseDriver.PGSQL: ("psql",),
}


@dataclass(slots=True)
class QueryRows:
    """Tab-separated client output parsed into header and rows."""

    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)


def parse_tabular(output: str) -> QueryRows:
    """Parse client output whose first line is the column header."""
    lines = [line for line in output.splitlines() if line != ""]
    if not lines:
        return QueryRows()
    columns = lines[0].split("\t")
    rows: list[dict[str, Any]] = []
    for line in lines[1:]:
        cells = line.split("\t")
        rows.append({col: cells[i] if i < len(cells) else None for i, col in enumerate(columns)})
    return QueryRows(columns=columns, rows=rows)


def read_target_database(cwd: str | os.PathLike[str]) -> str | None:
    """Return the first line of ``.target-database`` in *cwd*, if present."""
    marker = Path(cwd) / TARGET_DATABASE_FILE
    try:
        first = marker.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return None
    name = first[0].strip() if first else ""
    return name or None


class DatabaseExecutor:
    """Run read-only SQL through a native client.

    Parameters
    ----------
    runner:
        The command runner used to spawn the client.
    resolver:
        Supplies connection descriptors by name.
    max_rows:
        ``LIMIT`` appended to a ``SELECT`` that has none.
    """

    def __init__(
        self,
        runner: CommandRunner,
        resolver: ConnectionResolver,
        *,
        max_rows: int = 100,
    ) -> None:
        self._runner = runner
        self._resolver = resolver
        self._max_rows = max_rows

    # -- resolution ---------------------------------------------------------

    def resolve(self, connection: str) -> ConnectionDescriptor:
        descriptor = self._resolver.resolve(connection)
        if descriptor is None:
            raise ConnectionNotFound(
                f"Database connection {connection!r} is not configured",
                details={"connection": connection, "available": self._resolver.names()},
            )
        if descriptor.driver not in _CLIENT_BINARIES:
            raise UnknownDatabaseType(details={"driver": str(descriptor.driver)})
        return descriptor

    @staticmethod
    def select_database(
        descriptor: ConnectionDescriptor,
        explicit: str | None,
        cwd: str | os.PathLike[str],
    ) -> str:
        """Pick the database: explicit, then URL, then ``.target-database``."""
        database = explicit or descriptor.database or read_target_database(cwd)
        if not database:
            raise NoDatabase(details={"connection": descriptor.name})
        return database

    # -- client invocation --------------------------------------------------

    @staticmethod
    def build_invocation(
        binary: str,
        descriptor: ConnectionDescriptor,
        database: str,
        sql: str,
    ) -> tuple[list[str], dict[str, str]]:
        """Return ``(argv, extra_env)`` for one client call."""
        password = descriptor.password.expose()
        port = str(descriptor.effective_port)
        if descriptor.driver.is_mysql_family:
            argv = [
                binary,
                "--batch",
                "--raw",
                "--init-command=SET SESSION TRANSACTION READ ONLY",
                f"--host={descriptor.host}",
                f"--port={port}",
                f"--database={database}",
            ]
            if descriptor.user:
                argv.append(f"--user={descriptor.user}")
            argv += ["--execute", sql]
            extra = {"MYSQL_PWD": password} if password else {}
            return argv, extra

        argv = [
            binary,
            "-X",
            "-q",
            "-A",
            "-F",
            "\t",
            "-P",
            "footer=off",
            "-v",
            "ON_ERROR_STOP=1",
            "-h",
            descriptor.host,
            "-p",
            port,
            "-d",
            database,
        ]
        if descriptor.user:
            argv += ["-U", descriptor.user]
        argv += ["-c", sql]
        extra = {"PGOPTIONS": "-c default_transaction_read_only=on"}
        if password:
            extra["PGPASSWORD"] = password
        return argv, extra

    async def _run_sql(
        self,
        sql: str,
        *,
        connection: str,
        database: str | None,
        cwd: str | os.PathLike[str] | None,
        timeout: float | None,
    ) -> tuple[ConnectionDescriptor, str, QueryRows]:
        workdir = cwd if cwd is not None else os.getcwd()
        descriptor = self.resolve(connection)
        selected = self.select_database(descriptor, database, workdir)
        binary = require_binary(*_CLIENT_BINARIES[descriptor.driver])
        argv, extra_env = self.build_invocation(binary, descriptor, selected, sql)

        logger.debug("Running %s query on %s/%s", descriptor.driver, descriptor.name, selected)
        result = await self._runner.execute(argv, timeout=timeout, cwd=workdir, extra_env=extra_env)
        if result.exit_status != 0:
            message = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else ""
            raise ExecutionFailed(
                f"Database client exited with status {result.exit_status}",
                details={"exit_status": result.exit_status, "stderr": message},
            )
        return descriptor, selected, parse_tabular(result.stdout)

    # -- operations ---------------------------------------------------------

    async def query(
        self,
        sql: str,
        *,
        connection: str = "default",
        database: str | None = None,
        cwd: str | os.PathLike[str] | None = None,
        timeout: float | None = None,
        max_rows: int | None = None,
    ) -> dict[str, Any]:
        """Run an already-validated read-only query.

        A ``SELECT`` without ``LIMIT`` is capped at *max_rows* (default: the
        executor's ``max_rows``).
        """
        limited = apply_row_limit(sql, max_rows or self._max_rows)
        descriptor, selected, parsed = await self._run_sql(
            limited, connection=connection, database=database, cwd=cwd, timeout=timeout
        )
        return {
            "connection": descriptor.name,
            "database": selected,
            "columns": parsed.columns,
            "rows": parsed.rows,
            "count": len(parsed.rows),
        }

    async def tables(
        self,
        *,
        connection: str = "default",
        database: str | None = None,
        cwd: str | os.PathLike[str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        descriptor = self.resolve(connection)
        if descriptor.driver.is_mysql_family:
            sql = "SHOW TABLES"
        else:
            sql = (
                "SELECT tablename FROM pg_catalog.pg_tables "
                "WHERE schemaname NOT IN ('pg_catalog', 'information_schema') "
                "ORDER BY tablename"
            )
        descriptor, selected, parsed = await self._run_sql(
            sql, connection=connection, database=database, cwd=cwd, timeout=timeout
        )
        first = parsed.columns[0] if parsed.columns else None
        names = [row[first] for row in parsed.rows] if first else []
        return {"connection": descriptor.name, "database": selected, "tables": names}

    async def schema(
        self,
        table: str,
        *,
        connection: str = "default",
        database: str | None = None,
        cwd: str | os.PathLike[str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Describe the columns of an already-validated *table*."""
        descriptor = self.resolve(connection)
        if descriptor.driver.is_mysql_family:
            sql = f"DESCRIBE `{table}`"
        else:
            sql = (
                "SELECT column_name, data_type, is_nullable, column_default "
                "FROM information_schema.columns "
                f"WHERE table_name = '{table}' ORDER BY ordinal_position"
            )
        descriptor, selected, parsed = await self._run_sql(
            sql, connection=connection, database=database, cwd=cwd, timeout=timeout
        )
        return {
            "connection": descriptor.name,
            "database": selected,
            "table": table,
            "columns": parsed.rows,
        }

    async def sample(
        self,
        table: str,
        limit: int = 5,
        *,
        connection: str = "default",
        database: str | None = None,
        cwd: str | os.PathLike[str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Return the first *limit* rows of an already-validated *table*."""
        descriptor = self.resolve(connection)
        quoted = f"`{table}`" if descriptor.driver.is_mysql_family else f'"{table}"'
        sql = f"SELECT * FROM {quoted} LIMIT {int(limit)}"
        descriptor, selected, parsed = await self._run_sql(
            sql, connection=connection, database=database, cwd=cwd, timeout=timeout
        )
        return {
            "connection": descriptor.name,
            "database": selected,
            "table": table,
            "columns": parsed.columns,
            "rows": parsed.rows,
        }
