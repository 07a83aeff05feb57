"""Path validator.

Resolves a caller-supplied path to its canonical form and checks it
against the forbidden-path rules of the policy store.

Order of checks:

1. Empty input means ``.``; ``~`` is expanded.
2. The path is resolved against the working directory and every symlink
   is followed (``os.path.realpath``).  All comparisons use this form.
3. A raw path containing a ``..`` segment whose canonical form is not
   the configured root (or beneath it) is a traversal.
4. A canonical path equal to, or nested under, a forbidden prefix is
   forbidden.  A prefix ending in ``*`` matches by plain string prefix.
5. Optionally, a secret-bearing basename is rejected.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

from safeshell.core.types import ReasonCode, ValidationOutcome
from safeshell.policy.rules import PolicyRule, PolicyStore, default_policy
from safeshell.validation.secrets import SecretFileDetector

logger = logging.getLogger(__name__)


def has_parent_segment(raw: str) -> bool:
    """Return ``True`` if *raw* contains a ``..`` path segment."""
    return ".." in raw.replace("\\", "/").split("/")


def canonicalize(raw: str, cwd: str | os.PathLike[str] | None = None) -> str:
    """Return the absolute, symlink-resolved form of *raw*."""
    expanded = os.path.expanduser(raw or ".")
    base = os.fspath(cwd) if cwd is not None else os.getcwd()
    return os.path.realpath(os.path.join(base, expanded))


def _is_within(path: str, root: str) -> bool:
    return Path(path).is_relative_to(root)


def matches_prefix(path: str, prefix: str) -> bool:
    """Return ``True`` if canonical *path* falls under forbidden *prefix*."""
    if prefix.endswith("*"):
        return path.startswith(prefix[:-1])
    return _is_within(path, prefix)


class PathValidator:
    """Canonicalising path validator.

    Parameters
    ----------
    policy:
        The policy store to consult.
    root:
        Directory that ``..`` segments may not escape.  ``None`` means the
        working directory of each call.
    """

    def __init__(
        self,
        policy: PolicyStore | None = None,
        *,
        root: str | os.PathLike[str] | None = None,
    ) -> None:
        self._policy = policy or default_policy()
        self._root = root
        self._secrets = SecretFileDetector(self._policy)

    def forbidden_rule(self, canonical: str) -> PolicyRule | None:
        """Return the first path rule covering *canonical*, if any."""
        for rule in self._policy.path_rules:
            if matches_prefix(canonical, rule.pattern):
                return rule
        return None

    def validate(
        self,
        raw: str | None,
        *,
        deny_secrets: bool = False,
        cwd: str | os.PathLike[str] | None = None,
    ) -> ValidationOutcome:
        """Validate *raw*; the allowed value is the canonical absolute path."""
        raw = raw or "."
        base = os.fspath(cwd) if cwd is not None else os.getcwd()
        canonical = canonicalize(raw, base)

        if has_parent_segment(raw):
            root = os.path.realpath(self._root if self._root is not None else base)
            if not _is_within(canonical, root):
                logger.info("Path traversal blocked (root %s)", root)
                return ValidationOutcome.block(ReasonCode.PATH_TRAVERSAL_BLOCKED)

        rule = self.forbidden_rule(canonical)
        if rule is not None:
            logger.info("Forbidden path blocked by %s", rule.rule_id)
            return ValidationOutcome.block(rule.reason, rule_id=rule.rule_id, pattern=rule.pattern)

        if deny_secrets:
            secret = self._secrets.match(canonical) or self._secrets.match(raw)
            if secret is not None:
                logger.info("Secret file blocked by %s", secret.rule_id)
                return ValidationOutcome.block(
                    secret.reason, rule_id=secret.rule_id, pattern=secret.pattern
                )

        return ValidationOutcome.allow(canonical)


def validate_path(
    raw: str | None,
    *,
    deny_secrets: bool = False,
    policy: PolicyStore | None = None,
    root: str | os.PathLike[str] | None = None,
) -> ValidationOutcome:
    """Shorthand for ``PathValidator(policy, root=root).validate(raw, ...)``."""
    return PathValidator(policy, root=root).validate(raw, deny_secrets=deny_secrets)
