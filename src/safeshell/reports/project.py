"""Project and dependency detection.

The project kind is decided by which manifest is present, checked in a
fixed order: composer, npm (yarn/pnpm by lockfile), Python, Go, Cargo.
"""
from __future__ import annotations

import json
import logging
import re
import tomllib
from pathlib import Path
from typing import Any

from safeshell.core.errors import NoPackageFile
from safeshell.reports.models import DependencyReport, ProjectReport

logger = logging.getLogger(__name__)

_JS_FRAMEWORKS: tuple[tuple[str, str], ...] = (
    ("next", "nextjs"),
    ("react", "react"),
    ("vue", "vue"),
    ("express", "express"),
)

_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def _load_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.debug("Unreadable manifest %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.debug("Unreadable manifest %s: %s", path, exc)
        return {}


def _keys(section: Any) -> list[str]:
    return sorted(section) if isinstance(section, dict) else []


def _requirement_name(spec: str) -> str | None:
    match = _REQUIREMENT_NAME_RE.match(spec)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Project detection
# ---------------------------------------------------------------------------

def detect_project(root: str | Path) -> ProjectReport:
    """Detect the project kind of the directory *root*."""
    base = Path(root)
    has_tests_dir = (base / "tests").is_dir()

    if (base / "composer.json").is_file():
        composer = _load_json(base / "composer.json")
        framework = None
        entry_point = None
        if (base / "artisan").is_file():
            framework, entry_point = "laravel", "public/index.php"
        elif (base / "symfony").is_dir() or any(
            name.startswith("symfony/") for name in _keys(composer.get("require"))
        ):
            framework, entry_point = "symfony", "public/index.php"
        return ProjectReport(
            type="php",
            path=str(base),
            has_tests=has_tests_dir,
            framework=framework,
            package_manager="composer",
            entry_point=entry_point,
        )

    if (base / "package.json").is_file():
        package = _load_json(base / "package.json")
        manager = "npm"
        if (base / "yarn.lock").is_file():
            manager = "yarn"
        if (base / "pnpm-lock.yaml").is_file():
            manager = "pnpm"
        declared = set(_keys(package.get("dependencies"))) | set(_keys(package.get("devDependencies")))
        framework = next((label for dep, label in _JS_FRAMEWORKS if dep in declared), None)
        main = package.get("main")
        return ProjectReport(
            type="javascript",
            path=str(base),
            has_tests=has_tests_dir or (base / "__tests__").is_dir(),
            framework=framework,
            package_manager=manager,
            entry_point=main if isinstance(main, str) else None,
        )

    requirements = base / "requirements.txt"
    pyproject = base / "pyproject.toml"
    if requirements.is_file() or pyproject.is_file():
        manager = "pip"
        if pyproject.is_file() and "poetry" in _load_toml(pyproject).get("tool", {}):
            manager = "poetry"
        framework = None
        entry_point = None
        if (base / "manage.py").is_file():
            framework, entry_point = "django", "manage.py"
        elif requirements.is_file() and "flask" in requirements.read_text(
            encoding="utf-8", errors="replace"
        ).lower():
            framework = "flask"
        return ProjectReport(
            type="python",
            path=str(base),
            has_tests=has_tests_dir,
            framework=framework,
            package_manager=manager,
            entry_point=entry_point,
        )

    if (base / "go.mod").is_file():
        has_tests = has_tests_dir or any(base.glob("*_test.go"))
        entry_point = "main.go" if (base / "main.go").is_file() else None
        return ProjectReport(
            type="go",
            path=str(base),
            has_tests=has_tests,
            package_manager="go",
            entry_point=entry_point,
        )

    if (base / "Cargo.toml").is_file():
        entry_point = "src/main.rs" if (base / "src" / "main.rs").is_file() else None
        return ProjectReport(
            type="rust",
            path=str(base),
            has_tests=has_tests_dir,
            package_manager="cargo",
            entry_point=entry_point,
        )

    return ProjectReport(type="unknown", path=str(base), has_tests=has_tests_dir)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def _report(manager: str, prod: list[str], dev: list[str], include_dev: bool) -> DependencyReport:
    if include_dev:
        return DependencyReport(manager=manager, prod=prod, dev=dev)
    return DependencyReport(manager=manager, dependencies=prod)


def _python_requirements(path: Path) -> list[str]:
    names: list[str] = []
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = line.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        name = _requirement_name(line)
        if name is not None:
            names.append(name)
    return names


def _pyproject_dependencies(data: dict[str, Any]) -> tuple[str, list[str], list[str]]:
    poetry = data.get("tool", {}).get("poetry")
    if isinstance(poetry, dict):
        prod = [name for name in _keys(poetry.get("dependencies")) if name != "python"]
        dev = _keys(poetry.get("dev-dependencies"))
        for group in (poetry.get("group") or {}).values():
            if isinstance(group, dict):
                dev.extend(_keys(group.get("dependencies")))
        return "poetry", prod, sorted(set(dev))

    project = data.get("project", {})
    prod = [n for n in map(_requirement_name, project.get("dependencies", [])) if n]
    dev: list[str] = []
    for specs in (project.get("optional-dependencies") or {}).values():
        dev.extend(n for n in map(_requirement_name, specs) if n)
    return "pip", prod, sorted(set(dev))


def _go_modules(path: Path) -> list[str]:
    modules: list[str] = []
    in_block = False
    for raw in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = raw.split("//", 1)[0].strip()
        if line.startswith("require ("):
            in_block = True
        elif in_block and line == ")":
            in_block = False
        elif in_block and line:
            modules.append(line.split()[0])
        elif line.startswith("require "):
            modules.append(line.split()[1])
    return modules


def list_dependencies(root: str | Path, *, include_dev: bool = False) -> DependencyReport:
    """List declared dependencies from the first manifest found in *root*.

    Raises
    ------
    NoPackageFile
        If no supported manifest exists.
    """
    base = Path(root)

    if (base / "composer.json").is_file():
        data = _load_json(base / "composer.json")
        return _report(
            "composer", _keys(data.get("require")), _keys(data.get("require-dev")), include_dev
        )

    if (base / "package.json").is_file():
        data = _load_json(base / "package.json")
        manager = "npm"
        if (base / "yarn.lock").is_file():
            manager = "yarn"
        if (base / "pnpm-lock.yaml").is_file():
            manager = "pnpm"
        return _report(
            manager, _keys(data.get("dependencies")), _keys(data.get("devDependencies")), include_dev
        )

    if (base / "requirements.txt").is_file():
        dev_file = base / "requirements-dev.txt"
        dev = _python_requirements(dev_file) if dev_file.is_file() else []
        return _report("pip", _python_requirements(base / "requirements.txt"), dev, include_dev)

    if (base / "pyproject.toml").is_file():
        manager, prod, dev = _pyproject_dependencies(_load_toml(base / "pyproject.toml"))
        return _report(manager, prod, dev, include_dev)

    if (base / "go.mod").is_file():
        return _report("go", _go_modules(base / "go.mod"), [], include_dev)

    if (base / "Cargo.toml").is_file():
        data = _load_toml(base / "Cargo.toml")
        return _report(
            "cargo", _keys(data.get("dependencies")), _keys(data.get("dev-dependencies")), include_dev
        )

    raise NoPackageFile(details={"path": str(base)})
