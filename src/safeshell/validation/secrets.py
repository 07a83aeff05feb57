"""Secret file detector.

A file is secret-bearing when its basename matches one of the policy's
secret patterns (shell-style globs, matched case-sensitively).  The check
is pure: the file is never opened or stat'ed.
"""
from __future__ import annotations

import fnmatch
import os

from safeshell.policy.rules import PolicyRule, PolicyStore, default_policy


class SecretFileDetector:
    """Match basenames against the ``secret-pattern`` rules of a policy."""

    def __init__(self, policy: PolicyStore | None = None) -> None:
        self._rules = (policy or default_policy()).secret_rules

    def match(self, name_or_path: str | os.PathLike[str]) -> PolicyRule | None:
        """Return the first secret rule matching the basename, if any."""
        basename = os.path.basename(os.fspath(name_or_path).rstrip("/"))
        if not basename:
            return None
        for rule in self._rules:
            if fnmatch.fnmatchcase(basename, rule.pattern):
                return rule
        return None

    def is_secret(self, name_or_path: str | os.PathLike[str]) -> bool:
        return self.match(name_or_path) is not None


def is_secret_file(
    name_or_path: str | os.PathLike[str],
    *,
    policy: PolicyStore | None = None,
) -> bool:
    """Return ``True`` if *name_or_path* names a secret-bearing file."""
    return SecretFileDetector(policy).is_secret(name_or_path)
