"""Plain-text rendering of report documents (``--format text``)."""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

import yaml

from safeshell.core.types import OperationKind
from safeshell.reports.models import TreeReport
from safeshell.reports.tree import render_tree_text


def _tree(document: dict[str, Any]) -> str:
    return render_tree_text(TreeReport.model_validate(document, strict=False))


def _exec(document: dict[str, Any]) -> str:
    return document.get("stdout", "").rstrip("\n")


def _find(document: dict[str, Any]) -> str:
    return "\n".join(document.get("matches", []))


def _grep(document: dict[str, Any]) -> str:
    return "\n".join(f"{h['file']}:{h['line']}:{h['text']}" for h in document.get("hits", []))


def _git_log(document: dict[str, Any]) -> str:
    return "\n".join(
        f"{c['hash']} {c['subject']} ({c['author']}, {c['date']})" for c in document.get("commits", [])
    )


def _env(document: dict[str, Any]) -> str:
    return "\n".join(f"{k}={v}" for k, v in document.get("variables", {}).items())


def _config(document: dict[str, Any]) -> str:
    if "code" in document:
        return document["code"].rstrip("\n")
    return _yaml(document.get("content"))


def _yaml(document: Any) -> str:
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False).rstrip("\n")


_RENDERERS: dict[OperationKind, Callable[[dict[str, Any]], str]] = {
    OperationKind.TREE: _tree,
    OperationKind.EXEC: _exec,
    OperationKind.FIND: _find,
    OperationKind.GREP: _grep,
    OperationKind.GIT_LOG: _git_log,
    OperationKind.ENVIRONMENT: _env,
    OperationKind.CONFIG: _config,
}


def render_text(operation: OperationKind, document: Any) -> str:
    """Render *document* for humans; unknown shapes fall back to YAML."""
    renderer = _RENDERERS.get(operation)
    if renderer is not None and isinstance(document, dict):
        return renderer(document)
    return _yaml(document)
