"""safeshell command-line interface.

Every subcommand builds one :class:`~safeshell.core.types.GatewayRequest`
and hands it to :meth:`Gateway.dispatch`.  Documents go to stdout; a
failure prints a single JSON line ``{"error": "<reason_code>", ...}`` on
stderr.

Exit status: 0 on success (``exec`` returns the child's status, or
``128 + signum`` when a signal killed it), 2 when a validator blocked the
request, 124 on timeout, 1 for any other failure.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import click

from safeshell import __version__
from safeshell.core.config import GatewayConfig
from safeshell.core.errors import GatewayError
from safeshell.core.types import GatewayRequest, GatewayResponse, OperationKind
from safeshell.gateway import Gateway
from safeshell.reports.text import render_text

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class CliState:
    """Per-invocation state shared by subcommands."""

    def __init__(self, gateway: Gateway, output_format: str, timeout: float | None) -> None:
        self.gateway = gateway
        self.output_format = output_format
        self.timeout = timeout


def _configure_logging(level: str) -> None:
    logging.basicConfig(stream=sys.stderr, level=level.upper(), format=LOG_FORMAT)


def _emit_error(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False), err=True)


def _emit(response: GatewayResponse, output_format: str) -> None:
    if response.error is not None:
        _emit_error(response.error.model_dump(mode="json", exclude_defaults=True))
        return
    document = response.document
    if output_format == "text":
        text = render_text(response.operation, document)
        if text:
            click.echo(text)
        if response.operation is OperationKind.EXEC and isinstance(document, dict):
            stderr = document.get("stderr", "")
            if stderr:
                click.echo(stderr.rstrip("\n"), err=True)
        return
    click.echo(json.dumps(document, ensure_ascii=False, indent=2))


def _exit_code(status: int) -> int:
    """Map a child killed by a signal (negative status) to ``128 + signum``."""
    return 128 - status if status < 0 else status


def _run(ctx: click.Context, operation: OperationKind, **fields: Any) -> None:
    state: CliState = ctx.obj
    values = {key: value for key, value in fields.items() if value is not None}
    if state.timeout is not None:
        values.setdefault("timeout", state.timeout)
    request = GatewayRequest(operation=operation, **values)
    response = asyncio.run(state.gateway.dispatch(request))
    _emit(response, state.output_format)
    ctx.exit(_exit_code(response.exit_status))


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "text"]),
    default="json",
    show_default=True,
    help="Output format for documents.",
)
@click.option("--timeout", type=float, default=None, help="Timeout in seconds (1-600).")
@click.option(
    "--log-level",
    default=lambda: os.environ.get("SAFESHELL_LOG_LEVEL", "WARNING"),
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level for diagnostics on stderr.",
)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory that '..' segments may not escape.",
)
@click.option(
    "--policy-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML/JSON file with additional policy rules.",
)
@click.version_option(__version__, prog_name="safeshell")
@click.pass_context
def cli(
    ctx: click.Context,
    output_format: str,
    timeout: float | None,
    log_level: str,
    root: Path | None,
    policy_file: Path | None,
) -> None:
    """Safety-gated command and introspection gateway."""
    _configure_logging(log_level)
    config = GatewayConfig.from_env()
    overrides: dict[str, Any] = {}
    if root is not None:
        overrides["root"] = root.expanduser()
    if policy_file is not None:
        overrides["policy_file"] = policy_file.expanduser()
    if overrides:
        config = config.model_copy(update=overrides)

    try:
        gateway = Gateway(config)
    except GatewayError as exc:
        _emit_error(exc.to_dict())
        ctx.exit(exc.exit_status)
    logger.debug(
        "Gateway ready (policy v%d, %d rules, %s)",
        gateway.policy.version,
        len(gateway.policy),
        gateway.policy.engine.engine_name,
    )
    ctx.obj = CliState(gateway, output_format, timeout)


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------

@cli.command(
    "exec",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def exec_cmd(ctx: click.Context, command: tuple[str, ...]) -> None:
    """Run COMMAND after checking it against the dangerous-command rules."""
    _run(ctx, OperationKind.EXEC, target=" ".join(command))


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------

@cli.command("tree")
@click.argument("path", required=False)
@click.option("--depth", type=click.IntRange(min=0), default=None, help="Levels to list.")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Maximum entries.")
@click.pass_context
def tree_cmd(ctx: click.Context, path: str | None, depth: int | None, limit: int | None) -> None:
    """Compact directory tree of PATH (default: current directory)."""
    _run(ctx, OperationKind.TREE, target=path, depth=depth, limit=limit)


@cli.command("find")
@click.argument("pattern", required=False)
@click.argument("path", required=False)
@click.option("--type", "file_type", type=click.Choice(["f", "d"]), default="f", show_default=True)
@click.option("--contains", default=None, help="Only files whose content matches REGEX.")
@click.option("--limit", type=click.IntRange(min=1), default=None)
@click.pass_context
def find_cmd(
    ctx: click.Context,
    pattern: str | None,
    path: str | None,
    file_type: str,
    contains: str | None,
    limit: int | None,
) -> None:
    """Find files by name PATTERN (glob) below PATH."""
    _run(
        ctx,
        OperationKind.FIND,
        target=pattern,
        path=path,
        file_type=file_type,
        contains=contains,
        limit=limit,
    )


@cli.command("grep")
@click.argument("pattern")
@click.argument("path", required=False)
@click.option("--ext", "extensions", multiple=True, help="File extension filter (repeatable, comma-separated).")
@click.option("--context", type=click.IntRange(min=0), default=0, help="Context lines around each hit.")
@click.option("--limit", type=click.IntRange(min=1), default=None)
@click.pass_context
def grep_cmd(
    ctx: click.Context,
    pattern: str,
    path: str | None,
    extensions: tuple[str, ...],
    context: int,
    limit: int | None,
) -> None:
    """Search file contents for the regex PATTERN."""
    _run(
        ctx,
        OperationKind.GREP,
        target=pattern,
        path=path,
        extensions=list(extensions),
        context=context,
        limit=limit,
    )


@cli.command("config")
@click.argument("file")
@click.pass_context
def config_cmd(ctx: click.Context, file: str) -> None:
    """Read a config FILE (JSON/YAML/TOML parsed; never secret files)."""
    _run(ctx, OperationKind.CONFIG, target=file)


@cli.command("project")
@click.argument("path", required=False)
@click.pass_context
def project_cmd(ctx: click.Context, path: str | None) -> None:
    """Detect the project type of PATH."""
    _run(ctx, OperationKind.PROJECT, target=path)


@cli.command("deps")
@click.argument("path", required=False)
@click.option("--dev", "include_dev", is_flag=True, help="Split into prod and dev dependencies.")
@click.pass_context
def deps_cmd(ctx: click.Context, path: str | None, include_dev: bool) -> None:
    """List declared dependencies of the project at PATH."""
    _run(ctx, OperationKind.DEPENDENCIES, target=path, include_dev=include_dev)


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------

@cli.command("git-status")
@click.argument("path", required=False)
@click.pass_context
def git_status_cmd(ctx: click.Context, path: str | None) -> None:
    """Compact git status of the repository at PATH."""
    _run(ctx, OperationKind.GIT_STATUS, target=path)


@cli.command("git-diff")
@click.argument("path", required=False)
@click.option("--staged", is_flag=True, help="Diff the index instead of the worktree.")
@click.pass_context
def git_diff_cmd(ctx: click.Context, path: str | None, staged: bool) -> None:
    """Diff statistics for the repository at PATH."""
    _run(ctx, OperationKind.GIT_DIFF, target=path, staged=staged)


@cli.command("git-log")
@click.argument("path", required=False)
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Number of commits.")
@click.pass_context
def git_log_cmd(ctx: click.Context, path: str | None, limit: int | None) -> None:
    """Recent commits of the repository at PATH."""
    _run(ctx, OperationKind.GIT_LOG, target=path, limit=limit)


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------

@cli.command("ports")
@click.option("--listen", "listen_only", is_flag=True, help="Only listening sockets.")
@click.pass_context
def ports_cmd(ctx: click.Context, listen_only: bool) -> None:
    """Ports in use."""
    _run(ctx, OperationKind.PORTS, listen_only=listen_only)


@cli.command("procs")
@click.option("--name", "name_filter", default=None, help="Substring of the process name.")
@click.option("--port", type=click.IntRange(1, 65535), default=None, help="Processes using PORT.")
@click.option("--limit", type=click.IntRange(min=1), default=None)
@click.pass_context
def procs_cmd(ctx: click.Context, name_filter: str | None, port: int | None, limit: int | None) -> None:
    """Processes, optionally filtered by name or port."""
    _run(ctx, OperationKind.PROCESSES, name_filter=name_filter, port=port, limit=limit)


@cli.command("env")
@click.option("--filter", "name_filter", default=None, help="Regex matched against variable names.")
@click.pass_context
def env_cmd(ctx: click.Context, name_filter: str | None) -> None:
    """Environment variables, with secret-looking names omitted."""
    _run(ctx, OperationKind.ENVIRONMENT, name_filter=name_filter)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

def _db_options(func: Any) -> Any:
    func = click.option("-d", "--database", default=None, help="Database name.")(func)
    func = click.option(
        "-c", "--connection", default="default", show_default=True, help="Connection name."
    )(func)
    return func


@cli.command("db-query")
@click.argument("query")
@_db_options
@click.option("-r", "--rows", type=click.IntRange(min=1), default=None, help="LIMIT for SELECTs without one.")
@click.pass_context
def db_query_cmd(
    ctx: click.Context, query: str, database: str | None, connection: str, rows: int | None
) -> None:
    """Run a read-only QUERY."""
    _run(
        ctx, OperationKind.DB_QUERY, target=query, database=database, connection=connection, limit=rows
    )


@cli.command("db-tables")
@_db_options
@click.pass_context
def db_tables_cmd(ctx: click.Context, database: str | None, connection: str) -> None:
    """List tables."""
    _run(ctx, OperationKind.DB_TABLES, database=database, connection=connection)


@cli.command("db-schema")
@click.argument("table")
@_db_options
@click.pass_context
def db_schema_cmd(ctx: click.Context, table: str, database: str | None, connection: str) -> None:
    """Describe the columns of TABLE."""
    _run(ctx, OperationKind.DB_SCHEMA, target=table, database=database, connection=connection)


@cli.command("db-sample")
@click.argument("table")
@_db_options
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Rows to return.")
@click.pass_context
def db_sample_cmd(
    ctx: click.Context, table: str, database: str | None, connection: str, limit: int | None
) -> None:
    """First rows of TABLE."""
    _run(
        ctx, OperationKind.DB_SAMPLE, target=table, database=database, connection=connection, limit=limit
    )


def main() -> None:
    """Console-script entry point."""
    cli(prog_name="safeshell")


if __name__ == "__main__":
    main()
