"""SQL query guard.

Lexical, conservative classification of SQL text.  A query is rejected if
any write-capable keyword appears anywhere in it as a whole word, matched
case-insensitively, including inside string literals and comments.  Those
false positives are accepted; a false negative is not.

Identifiers interpolated into generated SQL (table names) must be plain
``[A-Za-z_][A-Za-z0-9_]*`` of at most 64 characters.
"""
from __future__ import annotations

import logging
import re

from safeshell.core.types import ReasonCode, ValidationOutcome
from safeshell.policy.rules import PolicyStore, default_policy

logger = logging.getLogger(__name__)

MAX_IDENTIFIER_LENGTH = 64

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SELECT_RE = re.compile(r"^\s*SELECT\b", re.IGNORECASE)
_LIMIT_RE = re.compile(r"\bLIMIT\s+\d+", re.IGNORECASE)


class QueryGuard:
    """Read-only SQL classifier backed by the ``sql-keyword`` policy rules."""

    def __init__(self, policy: PolicyStore | None = None) -> None:
        self._policy = policy or default_policy()

    def validate_query(self, sql: str | None) -> ValidationOutcome:
        """Validate *sql*; the allowed value is the stripped query."""
        query = (sql or "").strip()
        if not query:
            return ValidationOutcome.block(ReasonCode.MISSING_ARGUMENT)

        rules = self._policy.sql_rules
        index = self._policy.engine.first_match(
            [rule.expression or "" for rule in rules], query, ignore_case=True
        )
        if index is None:
            return ValidationOutcome.allow(query)
        rule = rules[index]
        logger.info("Write query blocked by %s", rule.rule_id)
        return ValidationOutcome.block(rule.reason, rule_id=rule.rule_id, pattern=rule.pattern)


def validate_query(sql: str | None, *, policy: PolicyStore | None = None) -> ValidationOutcome:
    """Shorthand for ``QueryGuard(policy).validate_query(sql)``."""
    return QueryGuard(policy).validate_query(sql)


def validate_identifier(name: str | None) -> ValidationOutcome:
    """Validate a table name for interpolation into generated SQL."""
    if name and len(name) <= MAX_IDENTIFIER_LENGTH and _IDENTIFIER_RE.match(name):
        return ValidationOutcome.allow(name)
    return ValidationOutcome.block(ReasonCode.INVALID_TABLE_NAME)


def apply_row_limit(query: str, limit: int) -> str:
    """Append ``LIMIT n`` to a ``SELECT`` that has none."""
    if _SELECT_RE.match(query) and not _LIMIT_RE.search(query):
        return f"{query.rstrip().rstrip(';').rstrip()} LIMIT {limit}"
    return query
