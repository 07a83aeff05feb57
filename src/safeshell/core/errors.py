"""safeshell error hierarchy.

Every :class:`~safeshell.core.types.ReasonCode` is represented by a concrete
exception class so the gateway facade can raise and catch by category.

Hierarchy
---------
::

    GatewayError
    +-- BlockedError        policy rejections (exit status 2)
    +-- RequestError        bad or unsatisfiable requests
    +-- ExecutionError      child process / client failures
    +-- PolicyError         the policy store itself is unusable (fatal)

Validators never raise these; they return a
:class:`~safeshell.core.types.ValidationOutcome` which the facade turns into
a :class:`BlockedError` with :func:`error_for_outcome`.

Usage
-----
Raise concrete subclasses directly::

    raise NotAGitRepo(details={"path": str(path)})

Catch by category::

    try:
        ...
    except BlockedError:
        # handles DangerousCommandBlocked, ForbiddenPath, etc.
        ...
"""
from __future__ import annotations

from typing import Any

from safeshell.core.types import ErrorPayload, ReasonCode, ValidationOutcome

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class GatewayError(Exception):
    """Base exception for all gateway errors.

    Attributes
    ----------
    reason : ReasonCode
        Stable machine-readable reason code, printed word-for-word on the
        error channel.
    exit_status : int
        Process exit status the CLI reports for this error.
    message : str
        Human-readable description (MUST NOT contain secret values).
    details : dict[str, Any]
        Machine-readable context specific to the error instance.
    """

    reason: ReasonCode = ReasonCode.INTERNAL_ERROR
    exit_status: int = 1
    message: str = "Internal gateway error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.details: dict[str, Any] = details or {}
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_payload(self) -> ErrorPayload:
        """Build the error-channel document."""
        return ErrorPayload(
            error=self.reason,
            message=self.message,
            details=dict(self.details),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise the error to its error-channel form."""
        return self.to_payload().model_dump(mode="json", exclude_defaults=True)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(reason={self.reason.value!r}, message={self.message!r})"


# ===================================================================
# Category base classes
# ===================================================================

class BlockedError(GatewayError):
    """A validator rejected the request; nothing was executed."""

    exit_status = 2


class RequestError(GatewayError):
    """The request cannot be satisfied as given."""


class ExecutionError(GatewayError):
    """The child process or database client could not complete."""


class PolicyError(GatewayError):
    """The policy store could not be loaded.  Fatal: never caught by the facade."""

    reason = ReasonCode.POLICY_ERROR
    message = "Policy store could not be loaded"


# ===================================================================
# Blocked
# ===================================================================

class DangerousCommandBlocked(BlockedError):
    reason = ReasonCode.DANGEROUS_COMMAND_BLOCKED
    message = "Command matches a dangerous pattern"


class EmptyCommand(BlockedError):
    reason = ReasonCode.EMPTY_COMMAND
    message = "Command is empty"


class PathTraversalBlocked(BlockedError):
    reason = ReasonCode.PATH_TRAVERSAL_BLOCKED
    message = "Path escapes the permitted root"


class ForbiddenPath(BlockedError):
    reason = ReasonCode.FORBIDDEN_PATH
    message = "Path is under a forbidden location"


class SecretFileBlocked(BlockedError):
    reason = ReasonCode.SECRET_FILE_BLOCKED
    message = "Cannot read .env or credential files"


class WriteOperationBlocked(BlockedError):
    reason = ReasonCode.WRITE_OPERATION_BLOCKED
    message = "Only SELECT, SHOW, DESCRIBE, EXPLAIN allowed"


class InvalidTableName(BlockedError):
    reason = ReasonCode.INVALID_TABLE_NAME
    message = "Table name must be alphanumeric or underscore"


# ===================================================================
# Request errors
# ===================================================================

class MissingArgument(RequestError):
    reason = ReasonCode.MISSING_ARGUMENT
    message = "A required argument is missing"


class InvalidPattern(RequestError):
    reason = ReasonCode.INVALID_PATTERN
    message = "Search pattern is not a valid regular expression"


class NotADirectory(RequestError):
    reason = ReasonCode.NOT_A_DIRECTORY
    message = "Path is not a directory"


class FileNotFound(RequestError):
    reason = ReasonCode.FILE_NOT_FOUND
    message = "File does not exist"


class NotAGitRepo(RequestError):
    reason = ReasonCode.NOT_A_GIT_REPO
    message = "Not a git repository"


class NoPackageFile(RequestError):
    reason = ReasonCode.NO_PACKAGE_FILE
    message = "No supported package manifest found"


class ConnectionNotFound(RequestError):
    reason = ReasonCode.CONNECTION_NOT_FOUND
    message = "Database connection is not configured"


class NoDatabase(RequestError):
    reason = ReasonCode.NO_DATABASE
    message = "Specify a database explicitly, in the connection URL, or in .target-database"


class UnknownDatabaseType(RequestError):
    reason = ReasonCode.UNKNOWN_DB_TYPE
    message = "Unsupported database driver"


# ===================================================================
# Execution errors
# ===================================================================

class DependencyMissing(ExecutionError):
    reason = ReasonCode.DEPENDENCY_MISSING
    message = "A required external tool is not installed"


class ExecutionTimeout(ExecutionError):
    reason = ReasonCode.EXECUTION_TIMEOUT
    exit_status = 124
    message = "Execution exceeded its timeout"


class ExecutionFailed(ExecutionError):
    reason = ReasonCode.EXECUTION_FAILED
    message = "Child process could not be started"


# ===================================================================
# Reason code -> exception lookup
# ===================================================================

_BLOCKED_BY_REASON: dict[ReasonCode, type[GatewayError]] = {
    cls.reason: cls
    for cls in (
        DangerousCommandBlocked,
        EmptyCommand,
        PathTraversalBlocked,
        ForbiddenPath,
        SecretFileBlocked,
        WriteOperationBlocked,
        InvalidTableName,
        MissingArgument,
    )
}


def error_for_outcome(outcome: ValidationOutcome, **details: Any) -> GatewayError:
    """Return the exception matching a blocked :class:`ValidationOutcome`.

    Extra keyword arguments are merged into the error details together with
    the matching rule id and pattern.
    """
    if outcome.allowed or outcome.reason is None:
        raise ValueError("error_for_outcome() requires a blocked outcome")
    cls = _BLOCKED_BY_REASON.get(outcome.reason, BlockedError)
    payload: dict[str, Any] = {k: v for k, v in details.items() if v is not None}
    if outcome.rule_id is not None:
        payload["rule_id"] = outcome.rule_id
    if outcome.pattern is not None:
        payload["pattern"] = outcome.pattern
    return cls(details=payload)
