"""Pattern policy store.

Holds every rule the validators consult: dangerous command patterns,
forbidden path prefixes, secret file name patterns and SQL write keywords.

A :class:`PolicyStore` is built once per process with :func:`default_policy`
(optionally extended from a YAML/JSON policy file) and is read-only
afterwards.  Every regular expression is compiled when the store is built,
so a bad pattern fails loudly at load time instead of at match time.
"""
from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from safeshell.core.errors import PolicyError
from safeshell.core.types import ReasonCode, RuleKind
from safeshell.policy.pattern_engine import PatternEngine

logger = logging.getLogger(__name__)

POLICY_VERSION = 1

# ---------------------------------------------------------------------------
# Rule data structure
# ---------------------------------------------------------------------------

_REASON_BY_KIND: dict[RuleKind, ReasonCode] = {
    RuleKind.COMMAND_SUBSTRING: ReasonCode.DANGEROUS_COMMAND_BLOCKED,
    RuleKind.COMMAND_REGEX: ReasonCode.DANGEROUS_COMMAND_BLOCKED,
    RuleKind.PATH_PREFIX: ReasonCode.FORBIDDEN_PATH,
    RuleKind.SECRET_PATTERN: ReasonCode.SECRET_FILE_BLOCKED,
    RuleKind.SQL_KEYWORD: ReasonCode.WRITE_OPERATION_BLOCKED,
}


@dataclass(frozen=True, slots=True)
class PolicyRule:
    """A single policy rule.

    Attributes
    ----------
    rule_id:
        Unique identifier (``SS-CMD-NNN`` etc. for the default rules).
    kind:
        Which validator consults the rule.
    pattern:
        Literal substring, regex, path prefix, basename glob or SQL keyword
        phrase, depending on *kind*.
    reason:
        Reason code reported when the rule matches.
    description:
        Human-readable description of what the rule blocks.
    """

    rule_id: str
    kind: RuleKind
    pattern: str
    reason: ReasonCode
    description: str = ""

    @property
    def expression(self) -> str | None:
        """Regex evaluated by the pattern engine, or ``None`` for non-regex kinds."""
        if self.kind is RuleKind.COMMAND_REGEX:
            return self.pattern
        if self.kind is RuleKind.COMMAND_SUBSTRING:
            return re.escape(self.pattern)
        if self.kind is RuleKind.SQL_KEYWORD:
            words = self.pattern.split()
            return r"\b" + r"\s+".join(re.escape(w) for w in words) + r"\b"
        return None


def _rule(rule_id: str, kind: RuleKind, pattern: str, description: str = "") -> PolicyRule:
    return PolicyRule(
        rule_id=rule_id,
        kind=kind,
        pattern=pattern,
        reason=_REASON_BY_KIND[kind],
        description=description,
    )


# ---------------------------------------------------------------------------
# Default rules
# ---------------------------------------------------------------------------

_COMMAND_PATTERNS: list[tuple[str, str]] = [
    # Filesystem destruction
    (r"rm -rf /", "Recursive force-remove of the filesystem root"),
    (r"rm -rf ~", "Recursive force-remove of the home directory"),
    (r"rm -rf \$HOME", "Recursive force-remove of $HOME"),
    (r"rm -rf \*", "Recursive force-remove of a wildcard"),
    (r"rm -fr /", "Recursive force-remove of the filesystem root"),
    (r"rm -fr ~", "Recursive force-remove of the home directory"),
    (r"rm  -rf", "Recursive force-remove with padded flags"),
    (r"rm -rf `", "Recursive force-remove of a command substitution"),
    (r"rm -rf \$\(", "Recursive force-remove of a command substitution"),
    (r"rm -r /", "Recursive remove of the filesystem root"),
    (r"rm -f /", "Force-remove under the filesystem root"),
    (r"cd / && rm", "Remove after changing to the filesystem root"),
    (r"cd /; rm", "Remove after changing to the filesystem root"),
    # Disk operations
    (r"dd if=", "Raw block copy"),
    (r"mkfs\.", "Filesystem formatting"),
    (r"> /dev/sd", "Raw write to a SCSI/SATA block device"),
    (r"> /dev/nvme", "Raw write to an NVMe block device"),
    (r"> /dev/vd", "Raw write to a virtio block device"),
    (r"> /dev/mem", "Raw write to physical memory"),
    (r"> /dev/kmem", "Raw write to kernel memory"),
    # Permission escalation
    (r"chmod -R 777 /", "World-writable filesystem root"),
    (r"chmod 777 /", "World-writable filesystem root"),
    (r"chown -R .* /", "Recursive ownership change from the root"),
    (r"sudo rm -rf", "Privileged recursive force-remove"),
    (r"sudo dd ", "Privileged raw block copy"),
    (r"sudo mkfs", "Privileged filesystem formatting"),
    # System destruction
    (r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", "Fork bomb"),
    (r"shutdown", "System shutdown"),
    (r"reboot", "System reboot"),
    (r"init 0", "System halt via init"),
    (r"init 6", "System reboot via init"),
    (r"halt", "System halt"),
    (r"poweroff", "System power-off"),
    # Remote code execution
    (r"curl.*\|.*sh", "Piping a download into a shell"),
    (r"curl.*\|.*bash", "Piping a download into bash"),
    (r"wget.*\|.*sh", "Piping a download into a shell"),
    (r"wget.*\|.*bash", "Piping a download into bash"),
    # History manipulation
    (r"history -c", "Clearing shell history"),
    (r"history -w", "Overwriting shell history"),
    (r"HISTFILE=", "Redirecting shell history"),
    # Credential theft
    (r"cat.*/etc/shadow", "Reading the shadow password database"),
    (r"cat.*/etc/passwd", "Reading the password database"),
    (r"\.ssh/id_", "Touching SSH private keys"),
    (r"AWS_SECRET", "Touching AWS secret credentials"),
    (r"PRIVATE_KEY", "Touching private key material"),
    # Gateway self-protection
    (r"\bsafeshell\b", "Recursive gateway invocation"),
    (r"SAFESHELL_[A-Z_]*=", "Overriding gateway settings"),
]

_PATH_PREFIXES: list[str] = [
    "/etc/shadow",
    "/etc/gshadow",
    "/etc/passwd",
    "/etc/sudoers",
    "/etc/ssl/private",
    "/boot",
    "/dev/sd*",
    "/dev/nvme*",
    "/dev/vd*",
    "/dev/mem",
    "/dev/kmem",
    "/root/.ssh",
    "/root/.gnupg",
    "/root/.aws",
    "~/.ssh",
    "~/.gnupg",
    "~/.aws",
    "~/.kube",
    "~/.docker",
]

_SECRET_PATTERNS: list[str] = [
    ".env",
    ".env.*",
    "*.pem",
    "*.key",
    "*_rsa",
    "id_rsa*",
    "id_ed25519*",
    "id_ecdsa*",
    "credentials*",
    "secrets*",
    ".safeshell_env",
    ".netrc",
    ".pgpass",
    ".my.cnf",
]

_SQL_KEYWORDS: list[str] = [
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "TRUNCATE",
    "CREATE",
    "GRANT",
    "REVOKE",
    "RENAME",
    "MERGE",
    "INTO OUTFILE",
    "INTO DUMPFILE",
]


def canonical_prefix(prefix: str) -> str:
    """Expand ``~`` and canonicalise a forbidden prefix.

    A trailing ``*`` (device family) is preserved after canonicalisation.
    """
    wildcard = prefix.endswith("*")
    base = prefix[:-1] if wildcard else prefix
    resolved = os.path.realpath(os.path.expanduser(base))
    return resolved + "*" if wildcard else resolved


def _build_default_rules(secret_config_path: str) -> list[PolicyRule]:
    rules: list[PolicyRule] = []
    for index, (pattern, description) in enumerate(_COMMAND_PATTERNS, start=1):
        rules.append(_rule(f"SS-CMD-{index:03d}", RuleKind.COMMAND_REGEX, pattern, description))
    for index, prefix in enumerate([*_PATH_PREFIXES, secret_config_path], start=1):
        rules.append(
            _rule(f"SS-PATH-{index:03d}", RuleKind.PATH_PREFIX, canonical_prefix(prefix), "Forbidden location")
        )
    for index, glob in enumerate(_SECRET_PATTERNS, start=1):
        rules.append(_rule(f"SS-SECRET-{index:03d}", RuleKind.SECRET_PATTERN, glob, "Secret-bearing file"))
    for index, keyword in enumerate(_SQL_KEYWORDS, start=1):
        rules.append(_rule(f"SS-SQL-{index:03d}", RuleKind.SQL_KEYWORD, keyword, "Write-capable SQL"))
    return rules


# ---------------------------------------------------------------------------
# PolicyStore
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PolicyStore:
    """Immutable, versioned collection of :class:`PolicyRule` objects.

    Parameters
    ----------
    rules:
        The rules, in evaluation order.  The first matching rule of a kind
        is the one reported.
    version:
        Policy version, bumped by :meth:`extend`.
    engine:
        Pattern engine used to compile and evaluate regex rules.

    Raises
    ------
    PolicyError
        If a rule id is duplicated or a regex rule does not compile.
    """

    rules: tuple[PolicyRule, ...]
    version: int = POLICY_VERSION
    engine: PatternEngine = field(default_factory=PatternEngine, compare=False, repr=False)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for rule in self.rules:
            if rule.rule_id in seen:
                raise PolicyError(
                    f"Duplicate policy rule id {rule.rule_id!r}",
                    details={"rule_id": rule.rule_id},
                )
            seen.add(rule.rule_id)
            expression = rule.expression
            if expression is None:
                continue
            try:
                self.engine.compile(expression, ignore_case=rule.kind is RuleKind.SQL_KEYWORD)
            except self.engine.errors as exc:
                raise PolicyError(
                    f"Invalid pattern in rule {rule.rule_id!r}: {exc}",
                    details={"rule_id": rule.rule_id, "pattern": rule.pattern},
                ) from exc

    # -- queries ------------------------------------------------------------

    def of_kind(self, *kinds: RuleKind) -> tuple[PolicyRule, ...]:
        """Return the rules of the given kind(s), in evaluation order."""
        return tuple(rule for rule in self.rules if rule.kind in kinds)

    @property
    def command_rules(self) -> tuple[PolicyRule, ...]:
        return self.of_kind(RuleKind.COMMAND_SUBSTRING, RuleKind.COMMAND_REGEX)

    @property
    def path_rules(self) -> tuple[PolicyRule, ...]:
        return self.of_kind(RuleKind.PATH_PREFIX)

    @property
    def secret_rules(self) -> tuple[PolicyRule, ...]:
        return self.of_kind(RuleKind.SECRET_PATTERN)

    @property
    def sql_rules(self) -> tuple[PolicyRule, ...]:
        return self.of_kind(RuleKind.SQL_KEYWORD)

    def get(self, rule_id: str) -> PolicyRule | None:
        for rule in self.rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    def __len__(self) -> int:
        return len(self.rules)

    # -- construction -------------------------------------------------------

    def extend(self, rules: Iterable[PolicyRule]) -> PolicyStore:
        """Return a new store with *rules* appended and the version bumped."""
        added = tuple(rules)
        return PolicyStore(
            rules=self.rules + added,
            version=self.version + 1 if added else self.version,
            engine=self.engine,
        )

    def with_file(self, path: str | os.PathLike[str]) -> PolicyStore:
        """Return a new store extended with the rules in a policy file."""
        return self.extend(load_rules(path))


def default_policy(
    secret_config_path: str = "~/.safeshell_env",
    *,
    engine: PatternEngine | None = None,
) -> PolicyStore:
    """Build the default policy store.

    *secret_config_path* is the gateway's own credential file; it is
    always a forbidden path.
    """
    return PolicyStore(
        rules=tuple(_build_default_rules(secret_config_path)),
        engine=engine or PatternEngine(),
    )


# ---------------------------------------------------------------------------
# Policy files
# ---------------------------------------------------------------------------

def _parse_rule(entry: Any, position: int) -> PolicyRule:
    if not isinstance(entry, Mapping):
        raise PolicyError(f"Policy rule #{position} must be a mapping")
    try:
        kind = RuleKind(str(entry["kind"]))
        pattern = str(entry["pattern"])
    except KeyError as exc:
        raise PolicyError(f"Policy rule #{position} is missing {exc.args[0]!r}") from exc
    except ValueError as exc:
        raise PolicyError(
            f"Policy rule #{position} has unknown kind {entry.get('kind')!r}",
            details={"allowed": [k.value for k in RuleKind]},
        ) from exc
    if not pattern:
        raise PolicyError(f"Policy rule #{position} has an empty pattern")
    if kind is RuleKind.PATH_PREFIX:
        pattern = canonical_prefix(pattern)
    rule_id = str(entry.get("id") or f"SS-CUSTOM-{position:03d}")
    return _rule(rule_id, kind, pattern, str(entry.get("description", "")))


def load_rules(path: str | os.PathLike[str]) -> list[PolicyRule]:
    """Read additional rules from a YAML (or JSON) policy file.

    Expected layout::

        rules:
          - id: LOCAL-001
            kind: command-regex
            pattern: "terraform\\s+destroy"
            description: Infrastructure teardown

    Raises
    ------
    PolicyError
        If the file cannot be read or does not have the expected shape.
    """
    policy_path = Path(path).expanduser()
    try:
        with policy_path.open(encoding="utf-8") as fh:
            document = yaml.safe_load(fh)
    except OSError as exc:
        raise PolicyError(
            f"Cannot read policy file: {exc.strerror}",
            details={"path": str(policy_path)},
        ) from exc
    except yaml.YAMLError as exc:
        raise PolicyError(
            "Policy file is not valid YAML/JSON",
            details={"path": str(policy_path)},
        ) from exc

    if document is None:
        return []
    if not isinstance(document, Mapping) or not isinstance(document.get("rules", []), list):
        raise PolicyError(
            "Policy file must be a mapping with a 'rules' list",
            details={"path": str(policy_path)},
        )
    rules = [_parse_rule(entry, i) for i, entry in enumerate(document.get("rules", []), start=1)]
    logger.info("Loaded %d policy rule(s) from %s", len(rules), policy_path)
    return rules
