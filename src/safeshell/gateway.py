"""safeshell gateway -- the main orchestrator.

This module implements the :class:`Gateway` class, the single entry point
through which every public operation runs.  It composes the policy store,
the validators, the execution engine and the report encoders.

Pipeline
--------

1. **Route** -- :meth:`Gateway.dispatch` looks up the handler for the
   request's :class:`~safeshell.core.types.OperationKind`.
2. **Validate** -- the handler passes its primary argument through the
   relevant validator(s).  A rejection stops the pipeline before any side
   effect.
3. **Execute** -- the execution engine or a report encoder performs the
   OS/DB call.
4. **Respond** -- the report is returned as a
   :class:`~safeshell.core.types.GatewayResponse`; every
   :class:`~safeshell.core.errors.GatewayError` becomes a ``blocked`` or
   ``error`` response.  :class:`~safeshell.core.errors.PolicyError` is
   fatal and propagates.

Usage
-----
::

    from safeshell.core.config import GatewayConfig
    from safeshell.core.types import GatewayRequest, OperationKind
    from safeshell.gateway import Gateway

    gateway = Gateway(GatewayConfig.from_env())
    response = await gateway.dispatch(
        GatewayRequest(operation=OperationKind.EXEC, target="ls -la /tmp"),
    )
"""
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from safeshell.core.config import GatewayConfig
from safeshell.core.errors import (
    BlockedError,
    ExecutionFailed,
    GatewayError,
    InvalidPattern,
    MissingArgument,
    NotADirectory,
    NotAGitRepo,
    PolicyError,
    error_for_outcome,
)
from safeshell.core.interfaces import ConnectionResolver, EnvironmentConnectionResolver
from safeshell.core.types import (
    ExecutionResult,
    GatewayRequest,
    GatewayResponse,
    OperationKind,
    ValidationOutcome,
)
from safeshell.execution.database import DatabaseExecutor
from safeshell.execution.runner import CommandRunner, require_binary
from safeshell.policy.pattern_engine import BoundedPattern
from safeshell.policy.rules import PolicyStore, default_policy
from safeshell.reports import config as config_report
from safeshell.reports import environment as env_report
from safeshell.reports import git as git_report
from safeshell.reports import project as project_report
from safeshell.reports import search as search_report
from safeshell.reports import system as system_report
from safeshell.reports import tree as tree_report
from safeshell.validation.command import CommandValidator
from safeshell.validation.paths import PathValidator
from safeshell.validation.query import QueryGuard, validate_identifier
from safeshell.validation.secrets import SecretFileDetector

logger = logging.getLogger(__name__)

Handler = Callable[[GatewayRequest], Awaitable[Any]]


class Gateway:
    """The safety-gated command and introspection gateway.

    Parameters
    ----------
    config:
        Gateway configuration.  Defaults to ``GatewayConfig()``.
    policy:
        Policy store.  Defaults to :func:`default_policy`, extended with
        ``config.policy_file`` when set.
    resolver:
        Database connection resolver.  Defaults to
        :class:`EnvironmentConnectionResolver`.
    runner:
        Command runner.  Defaults to one built from *config*.
    environ:
        Environment mapping reported by the ``env`` operation.  Defaults
        to ``os.environ``.

    Raises
    ------
    PolicyError
        If the policy file cannot be loaded.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        policy: PolicyStore | None = None,
        resolver: ConnectionResolver | None = None,
        runner: CommandRunner | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config or GatewayConfig()
        if policy is None:
            policy = default_policy(self._config.secret_config_path)
            if self._config.policy_file is not None:
                policy = policy.with_file(self._config.policy_file)
        self._policy = policy

        self._commands = CommandValidator(policy)
        self._paths = PathValidator(policy, root=self._config.root)
        self._secrets = SecretFileDetector(policy)
        self._queries = QueryGuard(policy)

        self._runner = runner or CommandRunner(
            shell=self._config.shell,
            default_timeout=self._config.default_timeout,
        )
        self._database = DatabaseExecutor(
            self._runner,
            resolver or EnvironmentConnectionResolver(),
            max_rows=self._config.db_max_rows,
        )
        self._environ = environ

        self._handlers: dict[OperationKind, Handler] = {
            OperationKind.EXEC: self.exec,
            OperationKind.TREE: self.tree,
            OperationKind.FIND: self.find,
            OperationKind.GREP: self.grep,
            OperationKind.CONFIG: self.config_file,
            OperationKind.PROJECT: self.project,
            OperationKind.DEPENDENCIES: self.dependencies,
            OperationKind.GIT_STATUS: self.git_status,
            OperationKind.GIT_DIFF: self.git_diff,
            OperationKind.GIT_LOG: self.git_log,
            OperationKind.PORTS: self.ports,
            OperationKind.PROCESSES: self.processes,
            OperationKind.ENVIRONMENT: self.environment,
            OperationKind.DB_QUERY: self.db_query,
            OperationKind.DB_TABLES: self.db_tables,
            OperationKind.DB_SCHEMA: self.db_schema,
            OperationKind.DB_SAMPLE: self.db_sample,
        }

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def policy(self) -> PolicyStore:
        return self._policy

    @property
    def operations(self) -> frozenset[OperationKind]:
        """Operation kinds with a registered handler."""
        return frozenset(self._handlers)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, request: GatewayRequest) -> GatewayResponse:
        """Run one request through the pipeline.

        All gateway errors are converted to a :class:`GatewayResponse`
        with status ``blocked`` (policy rejections) or ``error``.
        """
        handler = self._handlers.get(request.operation)
        if handler is None:
            raise ValueError(f"No handler for operation {request.operation!r}")

        logger.debug("Dispatching %s", request.operation)
        try:
            result = await handler(request)
        except PolicyError:
            raise
        except BlockedError as exc:
            return self._error_response("blocked", request.operation, exc)
        except GatewayError as exc:
            return self._error_response("error", request.operation, exc)
        except Exception as exc:
            logger.exception("Unexpected failure in %s", request.operation)
            wrapped = GatewayError(
                f"Internal error: {type(exc).__name__}",
                details={"exception_type": type(exc).__name__},
            )
            return self._error_response("error", request.operation, wrapped)

        exit_status = result.exit_status if isinstance(result, ExecutionResult) else 0
        return GatewayResponse(
            status="success",
            operation=request.operation,
            document=_to_document(result),
            exit_status=exit_status,
        )

    @staticmethod
    def _error_response(
        status: str,
        operation: OperationKind,
        exc: GatewayError,
    ) -> GatewayResponse:
        return GatewayResponse(
            status=status,  # type: ignore[arg-type]
            operation=operation,
            error=exc.to_payload(),
            exit_status=exc.exit_status,
        )

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(outcome: ValidationOutcome, **details: Any) -> str:
        if not outcome.allowed:
            raise error_for_outcome(outcome, **details)
        return outcome.value or ""

    def _path(self, raw: str | None, *, deny_secrets: bool = False) -> str:
        return self._require(self._paths.validate(raw, deny_secrets=deny_secrets))

    def _directory(self, raw: str | None) -> str:
        path = self._path(raw)
        if not os.path.isdir(path):
            raise NotADirectory(details={"path": path})
        return path

    def _is_forbidden(self, path: str) -> bool:
        return self._paths.forbidden_rule(path) is not None

    def _compile(self, pattern: str, request: GatewayRequest) -> BoundedPattern:
        engine = self._policy.engine
        try:
            return engine.bounded(pattern, timeout=self._timeout(request))
        except engine.errors as exc:
            raise InvalidPattern(details={"pattern": pattern}) from exc

    def _timeout(self, request: GatewayRequest) -> float:
        return request.timeout if request.timeout is not None else self._config.default_timeout

    async def _tool(
        self,
        request: GatewayRequest,
        argv: Sequence[str],
        *,
        cwd: str | None = None,
        ok_statuses: tuple[int, ...] = (0,),
    ) -> ExecutionResult:
        result = await self._runner.execute(list(argv), timeout=self._timeout(request), cwd=cwd)
        if result.exit_status not in ok_statuses:
            tail = result.stderr.strip().splitlines()
            raise ExecutionFailed(
                f"{os.path.basename(argv[0])} exited with status {result.exit_status}",
                details={"exit_status": result.exit_status, "stderr": tail[-1] if tail else ""},
            )
        return result

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    async def exec(self, request: GatewayRequest) -> ExecutionResult:
        """Validate and run a shell command."""
        command = self._require(self._commands.validate(request.target or ""))
        return await self._runner.execute(command, timeout=self._timeout(request))

    # ------------------------------------------------------------------
    # Filesystem
    # ------------------------------------------------------------------

    async def tree(self, request: GatewayRequest) -> BaseModel:
        root = self._directory(request.target or request.path)
        depth = request.depth if request.depth is not None else self._config.tree_depth
        return tree_report.build_tree(
            root,
            depth=depth,
            max_entries=request.limit or self._config.tree_max_entries,
            prune=self._config.prune_dirs,
            exclude=self._is_forbidden,
        )

    async def find(self, request: GatewayRequest) -> BaseModel:
        if not request.target and not request.contains:
            raise MissingArgument("A name pattern or --contains regex is required")
        root = self._directory(request.path)
        compiled = self._compile(request.contains, request) if request.contains else None
        return search_report.find_files(
            root,
            request.target or "*",
            compiled_contains=compiled,
            contains=request.contains,
            file_type=request.file_type,
            limit=request.limit or self._config.search_limit,
            prune=self._config.prune_dirs,
            exclude=self._is_forbidden,
            is_secret=self._secrets.is_secret,
        )

    async def grep(self, request: GatewayRequest) -> BaseModel:
        if not request.target:
            raise MissingArgument("A search pattern is required")
        root = self._path(request.path)
        if os.path.isfile(root):
            root = self._path(request.path, deny_secrets=True)
        elif not os.path.isdir(root):
            raise NotADirectory(details={"path": root})
        return search_report.grep_files(
            root,
            request.target,
            self._compile(request.target, request),
            extensions=request.extensions,
            context=request.context,
            limit=request.limit or self._config.search_limit,
            prune=self._config.prune_dirs,
            exclude=self._is_forbidden,
            is_secret=self._secrets.is_secret,
        )

    async def config_file(self, request: GatewayRequest) -> BaseModel:
        if not request.target:
            raise MissingArgument("A config file path is required")
        path = self._path(request.target, deny_secrets=True)
        return config_report.read_config(path)

    async def project(self, request: GatewayRequest) -> BaseModel:
        return project_report.detect_project(self._directory(request.target or request.path))

    async def dependencies(self, request: GatewayRequest) -> BaseModel:
        root = self._directory(request.target or request.path)
        return project_report.list_dependencies(root, include_dev=request.include_dev)

    # ------------------------------------------------------------------
    # Git
    # ------------------------------------------------------------------

    async def _git_repo(self, request: GatewayRequest) -> tuple[str, str]:
        root = self._directory(request.target or request.path)
        git = require_binary("git")
        check = await self._runner.execute(
            [git, "-C", root, "rev-parse", "--git-dir"], timeout=self._timeout(request)
        )
        if check.exit_status != 0:
            raise NotAGitRepo(details={"path": root})
        return git, root

    async def git_status(self, request: GatewayRequest) -> BaseModel:
        git, root = await self._git_repo(request)
        result = await self._tool(request, [git, "-C", root, *git_report.STATUS_ARGS])
        return git_report.parse_status(result.stdout)

    async def git_diff(self, request: GatewayRequest) -> BaseModel:
        git, root = await self._git_repo(request)
        argv = [git, "-C", root, *git_report.DIFF_ARGS]
        if request.staged:
            argv.append("--staged")
        result = await self._tool(request, argv)
        return git_report.parse_diff_stat(result.stdout, staged=request.staged)

    async def git_log(self, request: GatewayRequest) -> BaseModel:
        git, root = await self._git_repo(request)
        limit = request.limit or self._config.git_log_limit
        # An empty repository has no HEAD; report no commits.
        result = await self._tool(
            request, [git, "-C", root, *git_report.log_args(limit)], ok_statuses=(0, 128)
        )
        return git_report.parse_log(result.stdout)

    # ------------------------------------------------------------------
    # System
    # ------------------------------------------------------------------

    async def ports(self, request: GatewayRequest) -> BaseModel:
        binary = require_binary("ss", "netstat")
        if os.path.basename(binary) == "ss":
            result = await self._tool(request, [binary, *system_report.ss_args(request.listen_only)])
            return system_report.parse_ss(result.stdout, listen_only=request.listen_only)
        result = await self._tool(request, [binary, *system_report.netstat_args(request.listen_only)])
        return system_report.parse_netstat(result.stdout, listen_only=request.listen_only)

    async def processes(self, request: GatewayRequest) -> BaseModel:
        if request.port is not None:
            lsof = require_binary("lsof")
            # lsof exits 1 when nothing matches.
            result = await self._tool(
                request, [lsof, "-nP", f"-i:{request.port}"], ok_statuses=(0, 1)
            )
            return system_report.parse_lsof(result.stdout, port=request.port)
        ps = require_binary("ps")
        result = await self._tool(request, [ps, *system_report.PS_ARGS])
        return system_report.parse_ps(
            result.stdout,
            name_filter=request.name_filter or request.target,
            limit=request.limit or 20,
        )

    async def environment(self, request: GatewayRequest) -> BaseModel:
        pattern = request.name_filter or request.target
        compiled = self._compile(pattern, request) if pattern else None
        environ = os.environ if self._environ is None else self._environ
        return env_report.snapshot_environment(environ, name_filter=compiled)

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    def _table(self, request: GatewayRequest) -> str:
        if not request.target:
            raise MissingArgument("A table name is required")
        return self._require(validate_identifier(request.target))

    async def db_query(self, request: GatewayRequest) -> dict[str, Any]:
        sql = self._require(self._queries.validate_query(request.target))
        return await self._database.query(
            sql,
            connection=request.connection,
            database=request.database,
            timeout=self._timeout(request),
            max_rows=request.limit,
        )

    async def db_tables(self, request: GatewayRequest) -> dict[str, Any]:
        return await self._database.tables(
            connection=request.connection,
            database=request.database,
            timeout=self._timeout(request),
        )

    async def db_schema(self, request: GatewayRequest) -> dict[str, Any]:
        table = self._table(request)
        return await self._database.schema(
            table,
            connection=request.connection,
            database=request.database,
            timeout=self._timeout(request),
        )

    async def db_sample(self, request: GatewayRequest) -> dict[str, Any]:
        table = self._table(request)
        return await self._database.sample(
            table,
            request.limit or self._config.db_sample_rows,
            connection=request.connection,
            database=request.database,
            timeout=self._timeout(request),
        )


def _to_document(result: Any) -> dict[str, Any] | list[Any]:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json", exclude_none=True)
    return result

