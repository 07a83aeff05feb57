"""Tests for the policy store and the pattern engine.

1. **Pattern engine** -- matching, case folding, caching, fail-closed timeout,
   bounded caller patterns.
2. **Default policy** -- rule kinds, id uniqueness, canonical prefixes.
3. **Policy extension** -- ``extend``, version bump, duplicate ids.
4. **Policy files** -- YAML loading, default ids, malformed files.
"""
from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from safeshell.core.errors import ExecutionTimeout, PolicyError
from safeshell.core.types import ReasonCode, RuleKind
from safeshell.policy import (
    POLICY_VERSION,
    BoundedPattern,
    PatternEngine,
    PolicyRule,
    PolicyStore,
    canonical_prefix,
    default_policy,
    load_rules,
)

# ===================================================================
# Pattern engine
# ===================================================================


class TestPatternEngine:
    """Test the regex engine wrapper."""

    @pytest.fixture
    def engine(self) -> PatternEngine:
        return PatternEngine(prefer_re2=False)

    def test_simple_match(self, engine: PatternEngine) -> None:
        assert engine.match(r"dd if=", "sudo dd if=/dev/zero of=x")

    def test_no_match(self, engine: PatternEngine) -> None:
        assert not engine.match(r"dd if=", "echo add")

    def test_case_sensitive_by_default(self, engine: PatternEngine) -> None:
        assert not engine.match(r"DROP", "drop table users")

    def test_ignore_case(self, engine: PatternEngine) -> None:
        assert engine.match(r"DROP", "drop table users", ignore_case=True)

    def test_first_match_returns_index(self, engine: PatternEngine) -> None:
        assert engine.first_match([r"mkfs", r"\d+", r"abc"], "abc 123") == 1

    def test_first_match_none(self, engine: PatternEngine) -> None:
        assert engine.first_match([r"mkfs", r"\d+"], "abc") is None
        assert engine.first_match([], "abc") is None

    def test_compilation_is_cached(self, engine: PatternEngine) -> None:
        PatternEngine.clear_cache()
        engine.compile(r"cached-pattern")
        engine.compile(r"cached-pattern")
        assert PatternEngine.cache_info().hits >= 1

    def test_invalid_pattern_raises(self, engine: PatternEngine) -> None:
        with pytest.raises(engine.errors):
            engine.compile(r"(unclosed")

    def test_engine_name_is_stdlib(self, engine: PatternEngine) -> None:
        assert engine.engine_name == "re (stdlib)"

    def test_timeout_fails_closed(self) -> None:
        engine = PatternEngine(timeout_ms=10)

        def _slow() -> bool:
            time.sleep(0.5)
            return False

        assert engine._run_with_timeout(_slow) is True

    def test_rule_set_evaluated_in_one_pass(
        self, engine: PatternEngine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[object] = []
        original = engine._run_with_timeout

        def _counting(fn: object) -> bool:
            calls.append(fn)
            return original(fn)

        monkeypatch.setattr(engine, "_run_with_timeout", _counting)
        assert engine.first_match([r"mkfs", r"shred", r"dd if="], "dd if=/dev/zero") == 2
        assert len(calls) == 1

    def test_first_match_timeout_fails_closed(
        self, engine: PatternEngine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(engine, "_run_with_timeout", lambda fn: True)
        assert engine.first_match([r"mkfs", r"shred"], "ls -la") == 0


class _TimingOut:
    def search(self, text: str, timeout: float | None = None) -> None:
        raise TimeoutError("regex timed out")


class TestBoundedPattern:
    """Test caller-supplied patterns searched under a deadline."""

    def test_search(self) -> None:
        pattern = PatternEngine.bounded(r"ma.n", timeout=5.0)
        assert pattern.search("def main():") is not None
        assert pattern.search("nothing here") is None

    def test_invalid_pattern_raises(self) -> None:
        engine = PatternEngine()
        with pytest.raises(engine.errors):
            engine.bounded(r"(unclosed", timeout=5.0)

    def test_spent_deadline_raises_timeout(self) -> None:
        pattern = BoundedPattern(r"x", timeout=0.0)
        with pytest.raises(ExecutionTimeout) as info:
            pattern.search("x")
        assert info.value.exit_status == 124
        assert info.value.details["pattern"] == "x"

    def test_matcher_timeout_becomes_execution_timeout(self) -> None:
        pattern = BoundedPattern(r"(a+)+$", timeout=5.0)
        pattern._compiled = _TimingOut()
        with pytest.raises(ExecutionTimeout):
            pattern.search("a" * 40 + "b")


# ===================================================================
# Default policy
# ===================================================================


class TestDefaultPolicy:
    """Test the shipped rule set."""

    def test_version(self, policy: PolicyStore) -> None:
        assert policy.version == POLICY_VERSION

    def test_every_kind_is_populated(self, policy: PolicyStore) -> None:
        assert policy.command_rules
        assert policy.path_rules
        assert policy.secret_rules
        assert policy.sql_rules

    def test_rule_ids_unique(self, policy: PolicyStore) -> None:
        ids = [rule.rule_id for rule in policy.rules]
        assert len(ids) == len(set(ids))

    def test_len(self, policy: PolicyStore) -> None:
        assert len(policy) == len(policy.rules)

    def test_get(self, policy: PolicyStore) -> None:
        rule = policy.get("SS-CMD-001")
        assert rule is not None
        assert rule.kind is RuleKind.COMMAND_REGEX
        assert rule.reason is ReasonCode.DANGEROUS_COMMAND_BLOCKED

    def test_get_unknown(self, policy: PolicyStore) -> None:
        assert policy.get("SS-NOPE-999") is None

    def test_reasons_follow_kind(self, policy: PolicyStore) -> None:
        assert {r.reason for r in policy.path_rules} == {ReasonCode.FORBIDDEN_PATH}
        assert {r.reason for r in policy.secret_rules} == {ReasonCode.SECRET_FILE_BLOCKED}
        assert {r.reason for r in policy.sql_rules} == {ReasonCode.WRITE_OPERATION_BLOCKED}

    def test_secret_config_path_is_forbidden(self) -> None:
        store = default_policy("/opt/agent/creds.env")
        assert canonical_prefix("/opt/agent/creds.env") in {r.pattern for r in store.path_rules}

    def test_home_prefixes_are_expanded(self, policy: PolicyStore) -> None:
        patterns = {r.pattern for r in policy.path_rules}
        assert canonical_prefix("~/.ssh") in patterns
        assert not any(p.startswith("~") for p in patterns)

    def test_store_is_frozen(self, policy: PolicyStore) -> None:
        with pytest.raises(AttributeError):
            policy.version = 7  # type: ignore[misc]


class TestPolicyRuleExpression:
    """Test how each rule kind is turned into a regex."""

    def test_command_regex_is_verbatim(self) -> None:
        rule = PolicyRule("X-1", RuleKind.COMMAND_REGEX, r"dd if=", ReasonCode.DANGEROUS_COMMAND_BLOCKED)
        assert rule.expression == r"dd if="

    def test_substring_is_escaped(self) -> None:
        rule = PolicyRule("X-2", RuleKind.COMMAND_SUBSTRING, "a.b*", ReasonCode.DANGEROUS_COMMAND_BLOCKED)
        assert rule.expression == r"a\.b\*"

    def test_sql_keyword_phrase(self) -> None:
        rule = PolicyRule("X-3", RuleKind.SQL_KEYWORD, "INTO OUTFILE", ReasonCode.WRITE_OPERATION_BLOCKED)
        assert rule.expression == r"\bINTO\s+OUTFILE\b"

    def test_path_prefix_has_no_expression(self) -> None:
        rule = PolicyRule("X-4", RuleKind.PATH_PREFIX, "/boot", ReasonCode.FORBIDDEN_PATH)
        assert rule.expression is None


class TestCanonicalPrefix:
    def test_expands_home(self) -> None:
        assert canonical_prefix("~/.aws") == os.path.realpath(os.path.expanduser("~/.aws"))

    def test_keeps_wildcard(self) -> None:
        assert canonical_prefix("/dev/sd*").endswith("*")


# ===================================================================
# Extension
# ===================================================================


class TestPolicyExtension:
    def test_extend_bumps_version(self, policy: PolicyStore) -> None:
        extra = PolicyRule(
            "LOCAL-001", RuleKind.COMMAND_REGEX, r"terraform\s+destroy", ReasonCode.DANGEROUS_COMMAND_BLOCKED
        )
        extended = policy.extend([extra])
        assert extended.version == policy.version + 1
        assert extended.get("LOCAL-001") == extra
        assert policy.get("LOCAL-001") is None

    def test_extend_with_nothing_keeps_version(self, policy: PolicyStore) -> None:
        assert policy.extend([]).version == policy.version

    def test_duplicate_id_rejected(self, policy: PolicyStore) -> None:
        duplicate = PolicyRule(
            "SS-CMD-001", RuleKind.COMMAND_REGEX, r"x", ReasonCode.DANGEROUS_COMMAND_BLOCKED
        )
        with pytest.raises(PolicyError):
            policy.extend([duplicate])

    def test_invalid_regex_rejected(self) -> None:
        bad = PolicyRule("BAD-1", RuleKind.COMMAND_REGEX, r"(oops", ReasonCode.DANGEROUS_COMMAND_BLOCKED)
        with pytest.raises(PolicyError) as exc_info:
            PolicyStore(rules=(bad,))
        assert exc_info.value.details["rule_id"] == "BAD-1"


# ===================================================================
# Policy files
# ===================================================================


class TestLoadRules:
    def test_loads_yaml_rules(self, tmp_path: Path) -> None:
        policy_file = tmp_path / "policy.yaml"
        policy_file.write_text(
            "rules:\n"
            "  - id: LOCAL-001\n"
            "    kind: command-regex\n"
            "    pattern: 'terraform\\s+destroy'\n"
            "    description: Infrastructure teardown\n"
            "  - kind: secret-pattern\n"
            "    pattern: '*.kdbx'\n",
            encoding="utf-8",
        )
        rules = load_rules(policy_file)
        assert [r.rule_id for r in rules] == ["LOCAL-001", "SS-CUSTOM-002"]
        assert rules[0].kind is RuleKind.COMMAND_REGEX
        assert rules[0].description == "Infrastructure teardown"
        assert rules[1].reason is ReasonCode.SECRET_FILE_BLOCKED

    def test_loads_json_rules(self, tmp_path: Path) -> None:
        policy_file = tmp_path / "policy.json"
        policy_file.write_text(
            '{"rules": [{"id": "J-1", "kind": "sql-keyword", "pattern": "CALL"}]}',
            encoding="utf-8",
        )
        rules = load_rules(policy_file)
        assert rules[0].kind is RuleKind.SQL_KEYWORD

    def test_path_prefix_is_canonicalised(self, tmp_path: Path) -> None:
        policy_file = tmp_path / "policy.yaml"
        policy_file.write_text(
            "rules:\n  - kind: path-prefix\n    pattern: '~/.config/gcloud'\n", encoding="utf-8"
        )
        (rule,) = load_rules(policy_file)
        assert rule.pattern == canonical_prefix("~/.config/gcloud")

    def test_empty_file(self, tmp_path: Path) -> None:
        policy_file = tmp_path / "empty.yaml"
        policy_file.write_text("", encoding="utf-8")
        assert load_rules(policy_file) == []

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PolicyError):
            load_rules(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        policy_file = tmp_path / "broken.yaml"
        policy_file.write_text("rules: [unclosed\n", encoding="utf-8")
        with pytest.raises(PolicyError):
            load_rules(policy_file)

    def test_rules_must_be_list(self, tmp_path: Path) -> None:
        policy_file = tmp_path / "shape.yaml"
        policy_file.write_text("rules: nope\n", encoding="utf-8")
        with pytest.raises(PolicyError):
            load_rules(policy_file)

    def test_unknown_kind(self, tmp_path: Path) -> None:
        policy_file = tmp_path / "kind.yaml"
        policy_file.write_text("rules:\n  - kind: magic\n    pattern: x\n", encoding="utf-8")
        with pytest.raises(PolicyError) as exc_info:
            load_rules(policy_file)
        assert "command-regex" in exc_info.value.details["allowed"]

    def test_missing_pattern(self, tmp_path: Path) -> None:
        policy_file = tmp_path / "pattern.yaml"
        policy_file.write_text("rules:\n  - kind: command-regex\n", encoding="utf-8")
        with pytest.raises(PolicyError):
            load_rules(policy_file)

    def test_with_file_extends_store(self, tmp_path: Path, policy: PolicyStore) -> None:
        policy_file = tmp_path / "policy.yaml"
        policy_file.write_text(
            "rules:\n  - id: LOCAL-9\n    kind: command-substring\n    pattern: kubectl delete\n",
            encoding="utf-8",
        )
        extended = policy.with_file(policy_file)
        assert len(extended) == len(policy) + 1
        assert extended.get("LOCAL-9") is not None
