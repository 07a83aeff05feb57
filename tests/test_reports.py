"""Tests for the report builders and parsers.

1. **Tree** -- depth, entry limit, pruning, symlinks, text rendering.
2. **Search** -- find by glob, ``--contains``, grep with context and
   extension filters, secret and binary files skipped.
3. **Git parsers** -- porcelain status, diff stat, log.
4. **System parsers** -- ss, netstat, ps, lsof.
5. **Environment snapshot** -- secret-name omission, name filter.
6. **Project detection and dependencies** -- each supported manifest.
7. **Config files** -- parsed formats, raw fallbacks.
8. **Text rendering**.
"""
from __future__ import annotations

import json
import re
from pathlib import Path

import pytest

from safeshell.core.errors import FileNotFound, NoPackageFile
from safeshell.core.types import NodeKind, OperationKind
from safeshell.reports import (
    build_tree,
    detect_project,
    find_files,
    grep_files,
    list_dependencies,
    parse_diff_stat,
    parse_log,
    parse_lsof,
    parse_netstat,
    parse_ps,
    parse_ss,
    parse_status,
    read_config,
    render_text,
    render_tree_text,
    snapshot_environment,
)
from safeshell.reports.environment import is_secret_name
from safeshell.reports.git import LOG_FIELD_SEP, log_args
from safeshell.reports.search import read_text

PRUNE = ("node_modules", ".git")


def _is_env(path: str) -> bool:
    return path.endswith(".env")


# ===================================================================
# Tree
# ===================================================================


class TestTree:
    def test_lists_sorted_entries(self, project_dir: Path) -> None:
        report = build_tree(str(project_dir), depth=1, prune=PRUNE)
        names = [child.name for child in report.root.children]
        assert names == [".env", "README.md", "src"]
        assert report.entries == 3
        assert not report.truncated

    def test_depth_limits_walk(self, project_dir: Path) -> None:
        shallow = build_tree(str(project_dir), depth=1, prune=PRUNE)
        src = next(c for c in shallow.root.children if c.name == "src")
        assert src.children == []

        deep = build_tree(str(project_dir), depth=2, prune=PRUNE)
        src = next(c for c in deep.root.children if c.name == "src")
        assert [c.name for c in src.children] == ["app.py", "util.py"]

    def test_depth_zero_lists_only_root(self, project_dir: Path) -> None:
        report = build_tree(str(project_dir), depth=0)
        assert report.root.children == []
        assert report.entries == 0

    def test_max_entries_truncates(self, project_dir: Path) -> None:
        report = build_tree(str(project_dir), depth=3, max_entries=2, prune=PRUNE)
        assert report.entries == 2
        assert report.truncated

    def test_exclude_predicate(self, project_dir: Path) -> None:
        report = build_tree(str(project_dir), depth=1, prune=PRUNE, exclude=_is_env)
        assert ".env" not in [c.name for c in report.root.children]

    def test_file_sizes_and_kinds(self, project_dir: Path) -> None:
        report = build_tree(str(project_dir), depth=1, prune=PRUNE)
        by_name = {c.name: c for c in report.root.children}
        assert by_name["src"].kind is NodeKind.DIR
        assert by_name["README.md"].kind is NodeKind.FILE
        assert by_name["README.md"].size == len("# demo\nmain entry\n")

    def test_symlink_not_followed(self, project_dir: Path) -> None:
        (project_dir / "loop").symlink_to(project_dir)
        report = build_tree(str(project_dir), depth=5, prune=PRUNE)
        loop = next(c for c in report.root.children if c.name == "loop")
        assert loop.kind is NodeKind.SYMLINK
        assert loop.children == []

    def test_render_text(self, project_dir: Path) -> None:
        (project_dir / "link").symlink_to(project_dir / "README.md")
        report = build_tree(str(project_dir), depth=2, prune=PRUNE)
        text = render_tree_text(report)
        lines = text.splitlines()
        assert lines[0] == str(project_dir)
        assert "  src/" in lines
        assert "    app.py" in lines
        assert "  link@" in lines

    def test_document_omits_unset_fields(self, project_dir: Path) -> None:
        document = build_tree(str(project_dir), depth=1, prune=PRUNE).to_document()
        src = next(c for c in document["root"]["children"] if c["name"] == "src")
        assert "size" not in src
        assert src["kind"] == "dir"


# ===================================================================
# Search
# ===================================================================


class TestFind:
    def test_glob(self, project_dir: Path) -> None:
        report = find_files(str(project_dir), "*.py", prune=PRUNE)
        assert report.matches == ["src/app.py", "src/util.py"]
        assert report.count == 2
        assert report.type == "f"

    def test_directories(self, project_dir: Path) -> None:
        report = find_files(str(project_dir), "*", file_type="d", prune=PRUNE)
        assert report.matches == ["src"]

    def test_pruned_directories_skipped(self, project_dir: Path) -> None:
        report = find_files(str(project_dir), "*.js", prune=PRUNE)
        assert report.matches == []

    def test_contains(self, project_dir: Path) -> None:
        report = find_files(
            str(project_dir),
            "*",
            compiled_contains=re.compile(r"main"),
            contains="main",
            prune=PRUNE,
            is_secret=_is_env,
        )
        assert report.matches == ["README.md", "src/app.py"]
        assert report.contains == "main"

    def test_contains_forces_files(self, project_dir: Path) -> None:
        report = find_files(
            str(project_dir), "*", compiled_contains=re.compile("x"), file_type="d", prune=PRUNE
        )
        assert report.type == "f"

    def test_limit(self, project_dir: Path) -> None:
        report = find_files(str(project_dir), "*", limit=1, prune=PRUNE)
        assert report.count == 1
        assert report.truncated


class TestGrep:
    def test_hits(self, project_dir: Path) -> None:
        report = grep_files(
            str(project_dir), "main", re.compile("main"), prune=PRUNE, is_secret=_is_env
        )
        assert [(h.file, h.line) for h in report.hits] == [("README.md", 2), ("src/app.py", 3)]
        assert report.count == 2

    def test_secret_file_never_read(self, project_dir: Path) -> None:
        report = grep_files(
            str(project_dir), "hunter2", re.compile("hunter2"), prune=PRUNE, is_secret=_is_env
        )
        assert report.hits == []

    def test_extension_filter(self, project_dir: Path) -> None:
        report = grep_files(
            str(project_dir), "main", re.compile("main"), extensions=["py,.txt"], prune=PRUNE,
            is_secret=_is_env,
        )
        assert [h.file for h in report.hits] == ["src/app.py"]

    def test_context(self, project_dir: Path) -> None:
        report = grep_files(
            str(project_dir / "src"), "def main", re.compile("def main"), context=1
        )
        (hit,) = report.hits
        assert hit.before == [""]
        assert hit.after == ["    return os.getcwd()"]

    def test_single_file(self, project_dir: Path) -> None:
        target = project_dir / "src" / "util.py"
        report = grep_files(str(target), "return", re.compile("return"))
        assert [(h.file, h.line, h.text) for h in report.hits] == [("util.py", 2, "    return 42")]

    def test_binary_files_skipped(self, project_dir: Path) -> None:
        (project_dir / "blob.bin").write_bytes(b"main\x00\x01\x02")
        assert read_text(str(project_dir / "blob.bin")) is None
        report = grep_files(str(project_dir), "main", re.compile("main"), prune=PRUNE, is_secret=_is_env)
        assert "blob.bin" not in [h.file for h in report.hits]

    def test_limit(self, project_dir: Path) -> None:
        report = grep_files(str(project_dir), "e", re.compile("e"), limit=1, prune=PRUNE)
        assert report.count == 1
        assert report.truncated


# ===================================================================
# Git parsers
# ===================================================================


class TestGitParsers:
    def test_status(self) -> None:
        output = (
            "## main...origin/main [ahead 2, behind 1]\n"
            "M  staged.py\n"
            " M modified.py\n"
            "MM both.py\n"
            "R  old.py -> new.py\n"
            "?? notes.txt\n"
            "!! ignored.log\n"
        )
        report = parse_status(output)
        assert report.branch == "main"
        assert report.upstream == "origin/main"
        assert report.ahead == 2
        assert report.behind == 1
        assert report.staged == ["staged.py", "both.py", "new.py"]
        assert report.modified == ["modified.py", "both.py"]
        assert report.untracked == ["notes.txt"]

    def test_status_no_upstream(self) -> None:
        report = parse_status("## feature\n")
        assert report.branch == "feature"
        assert report.upstream is None
        assert report.ahead == 0

    def test_status_empty_repository(self) -> None:
        assert parse_status("## No commits yet on main\n").branch == "main"

    def test_status_detached_head(self) -> None:
        assert parse_status("## HEAD (no branch)\n").branch is None

    def test_diff_stat(self) -> None:
        output = (
            " src/app.py   | 12 ++++++++----\n"
            " logo.png     | Bin 0 -> 1234 bytes\n"
            " 2 files changed, 8 insertions(+), 4 deletions(-)\n"
        )
        report = parse_diff_stat(output, staged=True)
        assert report.staged is True
        assert report.files[0].file == "src/app.py"
        assert report.files[0].changes == 12
        assert report.files[1].binary is True
        assert report.files[1].changes == 0
        assert report.insertions == 8
        assert report.deletions == 4
        assert report.summary == "2 files changed, 8 insertions(+), 4 deletions(-)"

    def test_diff_stat_insertions_only(self) -> None:
        report = parse_diff_stat(" a.txt | 1 +\n 1 file changed, 1 insertion(+)\n")
        assert report.insertions == 1
        assert report.deletions == 0

    def test_diff_stat_empty(self) -> None:
        report = parse_diff_stat("")
        assert report.files == []
        assert report.summary == ""

    def test_log(self) -> None:
        sep = LOG_FIELD_SEP
        output = (
            f"abc1234{sep}Fix parser{sep}Dana{sep}2026-01-02 10:00:00 +0000\n"
            f"def5678{sep}Add | pipes{sep}Lee{sep}2026-01-01 09:00:00 +0000\n"
        )
        report = parse_log(output)
        assert [c.hash for c in report.commits] == ["abc1234", "def5678"]
        assert report.commits[1].subject == "Add | pipes"
        assert report.commits[0].author == "Dana"

    def test_log_args(self) -> None:
        args = log_args(5)
        assert args[:2] == ["log", "-n5"]
        assert args[2].startswith("--format=")


# ===================================================================
# System parsers
# ===================================================================


SS_OUTPUT = """\
Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
tcp   LISTEN 0      511          0.0.0.0:80         0.0.0.0:*
tcp   LISTEN 0      128        127.0.0.1:5432       0.0.0.0:*
tcp   ESTAB  0      0          10.0.0.5:43210    93.184.216.34:443
tcp   LISTEN 0      511             [::]:80            [::]:*
udp   UNCONN 0      0          0.0.0.0:68          0.0.0.0:*
"""

NETSTAT_OUTPUT = """\
Active Internet connections (only servers)
Proto Recv-Q Send-Q Local Address           Foreign Address         State
tcp        0      0 0.0.0.0:22              0.0.0.0:*               LISTEN
tcp        0      0 10.0.0.5:22             10.0.0.9:51000          ESTABLISHED
udp        0      0 0.0.0.0:123             0.0.0.0:*
"""

PS_OUTPUT = """\
    1 root      0.0  0.1 systemd
  812 postgres  0.3  1.2 postgres
  813 postgres  0.0  0.4 postgres: checkpointer
 1200 app       2.5  3.0 node
"""

LSOF_OUTPUT = """\
COMMAND  PID USER   FD   TYPE DEVICE SIZE/OFF NODE NAME
node    1200  app   21u  IPv4  12345      0t0  TCP *:3000 (LISTEN)
node    1200  app   22u  IPv6  12346      0t0  TCP *:3000 (LISTEN)
nginx    900 root    6u  IPv4  12347      0t0  TCP *:3000 (LISTEN)
"""


class TestSystemParsers:
    def test_ss_all(self) -> None:
        report = parse_ss(SS_OUTPUT)
        assert [(p.port, p.proto, p.address) for p in report.ports] == [
            (68, "udp", "0.0.0.0"),
            (80, "tcp", "0.0.0.0"),
            (80, "tcp", "::"),
            (5432, "tcp", "127.0.0.1"),
            (43210, "tcp", "10.0.0.5"),
        ]

    def test_ss_listen_only(self) -> None:
        report = parse_ss(SS_OUTPUT, listen_only=True)
        assert 43210 not in [p.port for p in report.ports]
        assert {p.state for p in report.ports} == {"LISTEN", "UNCONN"}

    def test_netstat(self) -> None:
        report = parse_netstat(NETSTAT_OUTPUT, listen_only=True)
        assert [(p.port, p.proto, p.state) for p in report.ports] == [
            (22, "tcp", "LISTEN"),
            (123, "udp", None),
        ]

    def test_ps(self) -> None:
        report = parse_ps(PS_OUTPUT)
        assert [p.pid for p in report.processes] == [1, 812, 813, 1200]
        assert report.processes[2].name == "postgres: checkpointer"
        assert report.processes[3].cpu == 2.5

    def test_ps_name_filter(self) -> None:
        report = parse_ps(PS_OUTPUT, name_filter="POSTGRES")
        assert [p.pid for p in report.processes] == [812, 813]

    def test_ps_limit(self) -> None:
        assert len(parse_ps(PS_OUTPUT, limit=2).processes) == 2

    def test_lsof(self) -> None:
        report = parse_lsof(LSOF_OUTPUT, port=3000)
        assert [(p.pid, p.name, p.user, p.port) for p in report.processes] == [
            (1200, "node", "app", 3000),
            (900, "nginx", "root", 3000),
        ]

    def test_lsof_empty(self) -> None:
        assert parse_lsof("", port=1).processes == []


# ===================================================================
# Environment
# ===================================================================


class TestEnvironmentSnapshot:
    ENVIRON = {
        "PATH": "/usr/bin",
        "HOME": "/home/agent",
        "API_TOKEN": "t0k3n",
        "DB_PASSWORD": "pw",
        "aws_secret_access_key": "x",
        "GITHUB_AUTH": "y",
        "SAFESHELL_DATABASE_URL": "mysql://u:p@h/db",
    }

    @pytest.mark.parametrize(
        "name", ["API_TOKEN", "db_password", "MY_SECRET", "SSH_PRIVATE", "SAFESHELL_DATABASE_URL"]
    )
    def test_secret_names(self, name: str) -> None:
        assert is_secret_name(name)

    def test_secret_names_omitted(self) -> None:
        report = snapshot_environment(self.ENVIRON)
        assert report.variables == {"HOME": "/home/agent", "PATH": "/usr/bin"}
        assert report.omitted == 5

    def test_values_never_leak(self) -> None:
        dumped = json.dumps(snapshot_environment(self.ENVIRON).to_document())
        for secret in ("t0k3n", "mysql://u:p@h/db", "API_TOKEN"):
            assert secret not in dumped

    def test_name_filter(self) -> None:
        report = snapshot_environment(self.ENVIRON, name_filter=re.compile("^PA"))
        assert report.variables == {"PATH": "/usr/bin"}
        assert report.omitted == 5


# ===================================================================
# Project detection and dependencies
# ===================================================================


class TestProjectDetection:
    def test_laravel(self, tmp_path: Path) -> None:
        (tmp_path / "composer.json").write_text('{"require": {"laravel/framework": "^11"}}')
        (tmp_path / "artisan").write_text("")
        report = detect_project(tmp_path)
        assert (report.type, report.framework, report.package_manager) == ("php", "laravel", "composer")

    def test_symfony_from_require(self, tmp_path: Path) -> None:
        (tmp_path / "composer.json").write_text('{"require": {"symfony/console": "^7"}}')
        assert detect_project(tmp_path).framework == "symfony"

    def test_node_with_yarn(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text(
            '{"main": "index.js", "dependencies": {"react": "18"}, "devDependencies": {"jest": "29"}}'
        )
        (tmp_path / "yarn.lock").write_text("")
        (tmp_path / "__tests__").mkdir()
        report = detect_project(tmp_path)
        assert report.type == "javascript"
        assert report.package_manager == "yarn"
        assert report.framework == "react"
        assert report.entry_point == "index.js"
        assert report.has_tests

    def test_next_beats_react(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text('{"dependencies": {"next": "14", "react": "18"}}')
        (tmp_path / "pnpm-lock.yaml").write_text("")
        report = detect_project(tmp_path)
        assert report.framework == "nextjs"
        assert report.package_manager == "pnpm"

    def test_django(self, tmp_path: Path) -> None:
        (tmp_path / "requirements.txt").write_text("Django>=5\n")
        (tmp_path / "manage.py").write_text("")
        report = detect_project(tmp_path)
        assert (report.type, report.framework, report.entry_point) == ("python", "django", "manage.py")

    def test_flask(self, tmp_path: Path) -> None:
        (tmp_path / "requirements.txt").write_text("Flask==3.0\n")
        assert detect_project(tmp_path).framework == "flask"

    def test_poetry(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text('[tool.poetry]\nname = "x"\n')
        assert detect_project(tmp_path).package_manager == "poetry"

    def test_go(self, tmp_path: Path) -> None:
        (tmp_path / "go.mod").write_text("module example.com/x\n")
        (tmp_path / "main.go").write_text("package main\n")
        (tmp_path / "main_test.go").write_text("package main\n")
        report = detect_project(tmp_path)
        assert (report.type, report.entry_point, report.has_tests) == ("go", "main.go", True)

    def test_rust(self, tmp_path: Path) -> None:
        (tmp_path / "Cargo.toml").write_text('[package]\nname = "x"\n')
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "main.rs").write_text("fn main() {}\n")
        report = detect_project(tmp_path)
        assert (report.type, report.entry_point) == ("rust", "src/main.rs")

    def test_unknown(self, tmp_path: Path) -> None:
        (tmp_path / "tests").mkdir()
        report = detect_project(tmp_path)
        assert report.type == "unknown"
        assert report.has_tests


class TestDependencies:
    def test_composer(self, tmp_path: Path) -> None:
        (tmp_path / "composer.json").write_text(
            '{"require": {"php": "^8.2", "monolog/monolog": "^3"}, "require-dev": {"phpunit/phpunit": "^11"}}'
        )
        report = list_dependencies(tmp_path, include_dev=True)
        assert report.manager == "composer"
        assert report.prod == ["monolog/monolog", "php"]
        assert report.dev == ["phpunit/phpunit"]
        assert report.dependencies is None

    def test_npm_without_dev(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text(
            '{"dependencies": {"express": "4", "axios": "1"}, "devDependencies": {"jest": "29"}}'
        )
        report = list_dependencies(tmp_path)
        assert report.dependencies == ["axios", "express"]
        assert report.prod is None
        assert "prod" not in report.to_document()

    def test_requirements(self, tmp_path: Path) -> None:
        (tmp_path / "requirements.txt").write_text(
            "# pinned\nrequests==2.32\n-r base.txt\nclick>=8  # cli\n\n"
        )
        (tmp_path / "requirements-dev.txt").write_text("pytest\n")
        report = list_dependencies(tmp_path, include_dev=True)
        assert report.prod == ["requests", "click"]
        assert report.dev == ["pytest"]

    def test_pep621(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "x"\ndependencies = ["pydantic>=2", "PyYAML"]\n'
            '[project.optional-dependencies]\ntest = ["pytest>=8"]\n'
        )
        report = list_dependencies(tmp_path, include_dev=True)
        assert report.manager == "pip"
        assert report.prod == ["pydantic", "PyYAML"]
        assert report.dev == ["pytest"]

    def test_poetry(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            "[tool.poetry.dependencies]\npython = \"^3.11\"\nhttpx = \"*\"\n"
            "[tool.poetry.group.dev.dependencies]\nruff = \"*\"\n"
        )
        report = list_dependencies(tmp_path, include_dev=True)
        assert report.manager == "poetry"
        assert report.prod == ["httpx"]
        assert report.dev == ["ruff"]

    def test_go_mod(self, tmp_path: Path) -> None:
        (tmp_path / "go.mod").write_text(
            "module x\n\nrequire github.com/a/b v1.0.0\n\nrequire (\n"
            "\tgithub.com/c/d v0.1.0 // indirect\n\tgolang.org/x/e v0.2.0\n)\n"
        )
        report = list_dependencies(tmp_path)
        assert report.dependencies == ["github.com/a/b", "github.com/c/d", "golang.org/x/e"]

    def test_cargo(self, tmp_path: Path) -> None:
        (tmp_path / "Cargo.toml").write_text(
            '[package]\nname = "x"\n[dependencies]\nserde = "1"\n[dev-dependencies]\ncriterion = "0.5"\n'
        )
        report = list_dependencies(tmp_path, include_dev=True)
        assert report.prod == ["serde"]
        assert report.dev == ["criterion"]

    def test_no_manifest(self, tmp_path: Path) -> None:
        with pytest.raises(NoPackageFile):
            list_dependencies(tmp_path)


# ===================================================================
# Config files
# ===================================================================


class TestConfigFiles:
    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "app.json"
        path.write_text('{"debug": true, "port": 8080}')
        report = read_config(str(path))
        assert report.format == "json"
        assert report.content == {"debug": True, "port": 8080}
        assert report.code is None

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "app.yml"
        path.write_text("services:\n  - web\n  - worker\n")
        report = read_config(str(path))
        assert report.format == "yaml"
        assert report.content == {"services": ["web", "worker"]}

    def test_yaml_dates_become_strings(self, tmp_path: Path) -> None:
        path = tmp_path / "release.yaml"
        path.write_text("released: 2026-01-02\n")
        assert read_config(str(path)).content == {"released": "2026-01-02"}

    def test_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "tool.toml"
        path.write_text('[server]\nhost = "0.0.0.0"\n')
        report = read_config(str(path))
        assert report.format == "toml"
        assert report.content == {"server": {"host": "0.0.0.0"}}

    def test_unparseable_falls_back_to_code(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        report = read_config(str(path))
        assert report.content is None
        assert report.code == "{not json"
        assert report.lang == "json"

    def test_other_formats_are_code(self, tmp_path: Path) -> None:
        path = tmp_path / "php.ini"
        path.write_text("memory_limit = 256M\n")
        report = read_config(str(path))
        assert report.lang == "ini"
        assert report.code == "memory_limit = 256M\n"

    def test_unknown_extension(self, tmp_path: Path) -> None:
        path = tmp_path / "Makefile"
        path.write_text("all:\n")
        assert read_config(str(path)).lang == "text"

    def test_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFound):
            read_config(str(tmp_path / "nope.json"))


# ===================================================================
# Text rendering
# ===================================================================


class TestRenderText:
    def test_exec(self) -> None:
        assert render_text(OperationKind.EXEC, {"stdout": "a\nb\n", "exit_status": 0}) == "a\nb"

    def test_find(self) -> None:
        assert render_text(OperationKind.FIND, {"matches": ["a.py", "b.py"]}) == "a.py\nb.py"

    def test_grep(self) -> None:
        document = {"hits": [{"file": "a.py", "line": 3, "text": "x = 1"}]}
        assert render_text(OperationKind.GREP, document) == "a.py:3:x = 1"

    def test_env(self) -> None:
        assert render_text(OperationKind.ENVIRONMENT, {"variables": {"A": "1"}}) == "A=1"

    def test_config_code(self) -> None:
        assert render_text(OperationKind.CONFIG, {"path": "x", "code": "k=v\n"}) == "k=v"

    def test_tree_round_trips_document(self, project_dir: Path) -> None:
        report = build_tree(str(project_dir), depth=1, prune=PRUNE)
        assert render_text(OperationKind.TREE, report.to_document()) == render_tree_text(report)

    def test_fallback_yaml(self) -> None:
        assert render_text(OperationKind.PORTS, {"ports": []}) == "ports: []"
