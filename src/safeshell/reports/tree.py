"""Directory tree report.

Walks a directory breadth-limited by depth and entry count.  Symlinks are
reported with kind ``symlink`` and never followed, so the walk is acyclic.
Pruned directory names (``node_modules``, ``.git`` ...) are omitted, as is
anything the *exclude* predicate rejects.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable

from safeshell.core.types import NodeKind
from safeshell.reports.models import ReportNode, TreeReport

logger = logging.getLogger(__name__)

PathPredicate = Callable[[str], bool]

_TEXT_SUFFIX = {NodeKind.DIR: "/", NodeKind.SYMLINK: "@"}


def _node_for(entry: os.DirEntry[str]) -> ReportNode:
    if entry.is_symlink():
        return ReportNode(path=entry.path, name=entry.name, kind=NodeKind.SYMLINK)
    if entry.is_dir(follow_symlinks=False):
        return ReportNode(path=entry.path, name=entry.name, kind=NodeKind.DIR)
    try:
        size = entry.stat(follow_symlinks=False).st_size
    except OSError:
        size = None
    return ReportNode(path=entry.path, name=entry.name, kind=NodeKind.FILE, size=size)


def build_tree(
    root: str,
    *,
    depth: int = 3,
    max_entries: int = 200,
    prune: Iterable[str] = (),
    exclude: PathPredicate | None = None,
) -> TreeReport:
    """Build a :class:`TreeReport` for the directory *root*.

    *depth* is the number of levels listed below *root*; ``0`` lists only
    the root itself.  At most *max_entries* nodes (excluding the root) are
    reported; ``truncated`` is set when the limit cut the walk short.
    """
    pruned = frozenset(prune)
    top = ReportNode(path=root, name=os.path.basename(root) or root, kind=NodeKind.DIR)
    count = 0
    truncated = False
    # Breadth-first so a truncated tree still shows every top-level entry.
    queue: list[tuple[ReportNode, int]] = [(top, 0)]

    while queue and not truncated:
        parent, level = queue.pop(0)
        if level >= depth:
            continue
        try:
            with os.scandir(parent.path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            logger.debug("Skipping unreadable directory %s: %s", parent.path, exc.strerror)
            continue

        for entry in entries:
            if entry.name in pruned or (exclude is not None and exclude(entry.path)):
                continue
            if count >= max_entries:
                truncated = True
                break
            node = _node_for(entry)
            parent.children.append(node)
            count += 1
            if node.kind is NodeKind.DIR:
                queue.append((node, level + 1))

    return TreeReport(root=top, depth=depth, entries=count, truncated=truncated)


def render_tree_text(report: TreeReport) -> str:
    """Render a tree as an indented listing; directories end with ``/``, symlinks with ``@``."""
    lines = [report.root.path]

    def _walk(node: ReportNode, indent: int) -> None:
        for child in node.children:
            suffix = _TEXT_SUFFIX.get(child.kind, "")
            lines.append(f"{'  ' * indent}{child.name}{suffix}")
            _walk(child, indent + 1)

    _walk(report.root, 1)
    return "\n".join(lines)
