"""safeshell validators.

Every validator is a pure function of its input and the policy store.  No
validator raises for a rejected input; each returns a
:class:`~safeshell.core.types.ValidationOutcome`.

* **CommandValidator** -- dangerous command patterns.
* **PathValidator** -- canonicalisation, traversal and forbidden prefixes.
* **SecretFileDetector** -- secret-bearing file names.
* **QueryGuard** -- read-only SQL and safe identifiers.
"""
from __future__ import annotations

from safeshell.validation.command import CommandValidator, validate_command
from safeshell.validation.paths import PathValidator, canonicalize, validate_path
from safeshell.validation.query import (
    QueryGuard,
    apply_row_limit,
    validate_identifier,
    validate_query,
)
from safeshell.validation.secrets import SecretFileDetector, is_secret_file

__all__ = [
    "CommandValidator",
    "PathValidator",
    "QueryGuard",
    "SecretFileDetector",
    "apply_row_limit",
    "canonicalize",
    "is_secret_file",
    "validate_command",
    "validate_identifier",
    "validate_path",
    "validate_query",
]
