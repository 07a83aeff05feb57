"""safeshell shared domain types.

This module defines the value types, enums and Pydantic models shared by
every gateway component.

Key design decisions:
* ``SecretValue`` is a plain Python class (not Pydantic) that prevents
  accidental exposure of a database password via ``str()``, ``repr()``,
  logging, or JSON serialisation.
* ``ValidationOutcome`` is a frozen dataclass: validators build a fresh one
  per call and never keep it.
* Enums use *string* values so they serialise cleanly to JSON and the
  reason codes appear word-for-word on the error channel.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
)

# ---------------------------------------------------------------------------
# SecretValue -- opaque wrapper that prevents accidental exposure
# ---------------------------------------------------------------------------

REDACTED = "[REDACTED]"


class SecretValue:
    """A secret value that prevents accidental exposure.

    The underlying plaintext is *only* accessible via the explicit
    :meth:`expose` method.  ``str()``, ``repr()``, ``format()`` and
    ``logging`` all return a redacted placeholder.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = value

    def expose(self) -> str:
        """Explicitly reveal the secret value.  Use with caution."""
        return self._value

    def __str__(self) -> str:
        return REDACTED

    def __repr__(self) -> str:
        return f"SecretValue({REDACTED})"

    def __format__(self, format_spec: str) -> str:
        return REDACTED

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretValue):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __len__(self) -> int:
        return len(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)


def _coerce_secret(value: Any) -> SecretValue:
    if isinstance(value, SecretValue):
        return value
    if isinstance(value, str):
        return SecretValue(value)
    raise TypeError(f"Expected str or SecretValue, got {type(value).__name__}")


SecretField = Annotated[
    SecretValue,
    PlainValidator(_coerce_secret),
    PlainSerializer(lambda _v: REDACTED, return_type=str),
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ReasonCode(enum.StrEnum):
    """Stable machine-readable reason codes.

    The first nine are the gateway's block/failure taxonomy; the remainder
    cover request errors raised by individual operations.  Values never
    change between versions.
    """

    DANGEROUS_COMMAND_BLOCKED = "dangerous_command_blocked"
    PATH_TRAVERSAL_BLOCKED = "path_traversal_blocked"
    FORBIDDEN_PATH = "forbidden_path"
    SECRET_FILE_BLOCKED = "secret_file_blocked"
    WRITE_OPERATION_BLOCKED = "write_operation_blocked"
    INVALID_TABLE_NAME = "invalid_table_name"
    DEPENDENCY_MISSING = "dependency_missing"
    EXECUTION_TIMEOUT = "execution_timeout"
    CONNECTION_NOT_FOUND = "connection_not_found"

    EMPTY_COMMAND = "empty_command"
    MISSING_ARGUMENT = "missing_argument"
    INVALID_PATTERN = "invalid_pattern"
    NOT_A_DIRECTORY = "not_a_directory"
    FILE_NOT_FOUND = "file_not_found"
    NOT_A_GIT_REPO = "not_a_git_repo"
    NO_PACKAGE_FILE = "no_package_file"
    NO_DATABASE = "no_database"
    UNKNOWN_DB_TYPE = "unknown_db_type"
    EXECUTION_FAILED = "execution_failed"
    POLICY_ERROR = "policy_error"
    INTERNAL_ERROR = "internal_error"


class RuleKind(enum.StrEnum):
    """Kinds of policy rule held by the :class:`PolicyStore`."""

    COMMAND_SUBSTRING = "command-substring"
    COMMAND_REGEX = "command-regex"
    PATH_PREFIX = "path-prefix"
    SECRET_PATTERN = "secret-pattern"
    SQL_KEYWORD = "sql-keyword"


class OperationKind(enum.StrEnum):
    """Every public gateway operation.

    :meth:`safeshell.gateway.Gateway.dispatch` routes on this enum; each
    member has exactly one handler.
    """

    EXEC = "exec"
    TREE = "tree"
    FIND = "find"
    GREP = "grep"
    CONFIG = "config"
    PROJECT = "project"
    DEPENDENCIES = "deps"
    GIT_STATUS = "git-status"
    GIT_DIFF = "git-diff"
    GIT_LOG = "git-log"
    PORTS = "ports"
    PROCESSES = "procs"
    ENVIRONMENT = "env"
    DB_QUERY = "db-query"
    DB_TABLES = "db-tables"
    DB_SCHEMA = "db-schema"
    DB_SAMPLE = "db-sample"


class NodeKind(enum.StrEnum):
    """Kind of a :class:`ReportNode`.  Symlinks are never followed."""

    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"


class DatabaseDriver(enum.StrEnum):
    """Database client families the execution engine can dispatch to."""

    MYSQL = "mysql"
    MARIADB = "mariadb"
    PGSQL = "pgsql"

    @property
    def is_mysql_family(self) -> bool:
        return self in (DatabaseDriver.MYSQL, DatabaseDriver.MARIADB)


# ---------------------------------------------------------------------------
# Validation outcome
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of a single validator call.

    Attributes
    ----------
    allowed:
        ``True`` when the input passed every rule.
    reason:
        The :class:`ReasonCode` when blocked, ``None`` when allowed.
    value:
        The normalised input on success (trimmed command, canonical path,
        stripped query).  ``None`` when blocked.
    rule_id:
        Identifier of the first matching policy rule, if any.
    pattern:
        Pattern of the first matching policy rule, if any.
    """

    allowed: bool
    reason: ReasonCode | None = None
    value: str | None = None
    rule_id: str | None = None
    pattern: str | None = None

    @classmethod
    def allow(cls, value: str) -> ValidationOutcome:
        return cls(allowed=True, value=value)

    @classmethod
    def block(
        cls,
        reason: ReasonCode,
        *,
        rule_id: str | None = None,
        pattern: str | None = None,
    ) -> ValidationOutcome:
        return cls(allowed=False, reason=reason, rule_id=rule_id, pattern=pattern)

    def __bool__(self) -> bool:
        return self.allowed


# ---------------------------------------------------------------------------
# Execution and connection models
# ---------------------------------------------------------------------------

class ExecutionResult(BaseModel):
    """The captured outcome of one child process."""

    model_config = ConfigDict(strict=True, frozen=True)

    exit_status: int
    stdout: str = ""
    stderr: str = ""
    duration: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")


class ConnectionDescriptor(BaseModel):
    """A resolved database connection.

    Produced by a :class:`~safeshell.core.interfaces.ConnectionResolver`
    and consumed read-only by the database executor.  The password is a
    :class:`SecretValue` and is redacted in every rendering.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = "default"
    driver: DatabaseDriver
    user: str = ""
    password: SecretField = Field(default_factory=lambda: SecretValue(""))
    host: str = "localhost"
    port: int | None = None
    database: str = ""

    @property
    def effective_port(self) -> int:
        if self.port is not None:
            return self.port
        return 5432 if self.driver is DatabaseDriver.PGSQL else 3306


# ---------------------------------------------------------------------------
# Request / response envelope
# ---------------------------------------------------------------------------

class GatewayRequest(BaseModel):
    """One request to the gateway.

    ``target`` is the operation's primary argument (a command, a path, a
    pattern, a query, or a table name).  The remaining fields are the
    optional flags; each handler reads only the ones it understands.
    """

    model_config = ConfigDict(strict=True)

    operation: OperationKind
    target: str | None = None
    path: str | None = None
    depth: int | None = Field(default=None, ge=0)
    limit: int | None = Field(default=None, ge=1)
    timeout: float | None = Field(default=None, gt=0)
    connection: str = "default"
    database: str | None = None
    file_type: Literal["f", "d"] = "f"
    contains: str | None = None
    extensions: list[str] = Field(default_factory=list)
    context: int = Field(default=0, ge=0)
    staged: bool = False
    include_dev: bool = False
    listen_only: bool = False
    name_filter: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)


class ErrorPayload(BaseModel):
    """The error-channel document.  ``error`` carries the reason code."""

    model_config = ConfigDict(strict=True)

    error: ReasonCode
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class GatewayResponse(BaseModel):
    """Response to a :class:`GatewayRequest`.

    Exactly one of ``document`` or ``error`` is populated, depending on
    ``status``.
    """

    model_config = ConfigDict(strict=True)

    status: Literal["success", "blocked", "error"]
    operation: OperationKind
    document: dict[str, Any] | list[Any] | None = None
    error: ErrorPayload | None = None
    exit_status: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "success"
