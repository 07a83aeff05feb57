"""Command validator.

Checks a command string against the dangerous-command rules of the policy
store before anything is executed.  Matching is performed on the literal
string the caller intends to run: there is no tokenisation, no shell
expansion and no Unicode normalisation.  Quoting, variable expansion or
encoding can therefore evade a rule; the validator is a tripwire, not a
sandbox.
"""
from __future__ import annotations

import logging

from safeshell.core.types import ReasonCode, ValidationOutcome
from safeshell.policy.rules import PolicyStore, default_policy

logger = logging.getLogger(__name__)


class CommandValidator:
    """Default-allow, deny-by-pattern command validator.

    Parameters
    ----------
    policy:
        The policy store to consult.  Defaults to :func:`default_policy`.
    """

    def __init__(self, policy: PolicyStore | None = None) -> None:
        self._policy = policy or default_policy()

    @property
    def policy(self) -> PolicyStore:
        return self._policy

    def validate(self, raw: str) -> ValidationOutcome:
        """Validate *raw* and return the outcome.

        The allowed value is the trimmed command; it is otherwise passed
        through unchanged.
        """
        command = raw.strip()
        if not command:
            return ValidationOutcome.block(ReasonCode.EMPTY_COMMAND)

        rules = self._policy.command_rules
        index = self._policy.engine.first_match([rule.expression or "" for rule in rules], command)
        if index is None:
            return ValidationOutcome.allow(command)
        rule = rules[index]
        logger.info("Command blocked by %s", rule.rule_id)
        return ValidationOutcome.block(rule.reason, rule_id=rule.rule_id, pattern=rule.pattern)


def validate_command(raw: str, *, policy: PolicyStore | None = None) -> ValidationOutcome:
    """Shorthand for ``CommandValidator(policy).validate(raw)``."""
    return CommandValidator(policy).validate(raw)
