"""safeshell -- safety-gated command and introspection gateway.

A mediation layer through which an automated caller requests shell
command execution, filesystem inspection or database reads, while a
policy engine blocks destructive, secret-leaking or write-capable
operations before they reach the operating system or a database.
"""
from __future__ import annotations

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Core types
# ---------------------------------------------------------------------------
from safeshell.core.types import (
    ConnectionDescriptor,
    DatabaseDriver,
    ExecutionResult,
    GatewayRequest,
    GatewayResponse,
    NodeKind,
    OperationKind,
    ReasonCode,
    RuleKind,
    SecretValue,
    ValidationOutcome,
)

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
from safeshell.core.errors import (
    BlockedError,
    ExecutionError,
    GatewayError,
    PolicyError,
    RequestError,
)

# ---------------------------------------------------------------------------
# Configuration and interfaces
# ---------------------------------------------------------------------------
from safeshell.core.config import GatewayConfig
from safeshell.core.interfaces import (
    ConnectionResolver,
    EnvironmentConnectionResolver,
    InMemoryConnectionResolver,
)

# ---------------------------------------------------------------------------
# Policy and validators
# ---------------------------------------------------------------------------
from safeshell.policy import PolicyRule, PolicyStore, default_policy
from safeshell.validation import (
    is_secret_file,
    validate_command,
    validate_identifier,
    validate_path,
    validate_query,
)

# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------
from safeshell.gateway import Gateway

__all__ = [
    "BlockedError",
    "ConnectionDescriptor",
    "ConnectionResolver",
    "DatabaseDriver",
    "EnvironmentConnectionResolver",
    "ExecutionError",
    "ExecutionResult",
    "Gateway",
    "GatewayConfig",
    "GatewayError",
    "GatewayRequest",
    "GatewayResponse",
    "InMemoryConnectionResolver",
    "NodeKind",
    "OperationKind",
    "PolicyError",
    "PolicyRule",
    "PolicyStore",
    "ReasonCode",
    "RequestError",
    "RuleKind",
    "SecretValue",
    "ValidationOutcome",
    "__version__",
    "default_policy",
    "is_secret_file",
    "validate_command",
    "validate_identifier",
    "validate_path",
    "validate_query",
]
