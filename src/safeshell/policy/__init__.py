"""safeshell pattern policy store.

This subpackage holds the rules every validator consults:

* **PolicyStore** -- immutable, versioned rule collection built once per
  process by :func:`default_policy` and optionally extended from a policy
  file.
* **PolicyRule** -- a single command, path, secret or SQL rule.
* **PatternEngine** -- RE2-compatible pattern matching with timeout
  support and compilation caching.
* **BoundedPattern** -- a caller-supplied regex searched under a deadline.
"""
from __future__ import annotations

from safeshell.policy.pattern_engine import BoundedPattern, PatternEngine
from safeshell.policy.rules import (
    POLICY_VERSION,
    PolicyRule,
    PolicyStore,
    canonical_prefix,
    default_policy,
    load_rules,
)

__all__ = [
    "POLICY_VERSION",
    "BoundedPattern",
    "PatternEngine",
    "PolicyRule",
    "PolicyStore",
    "canonical_prefix",
    "default_policy",
    "load_rules",
]
