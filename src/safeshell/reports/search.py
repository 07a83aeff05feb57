"""File search reports (``find`` and ``grep``).

Both walk the tree with ``os.walk`` without following symlinks, skipping
pruned directory names and anything the *exclude* predicate rejects.
Content is never read from secret-bearing files (the *is_secret*
predicate) or from binary files.
"""
from __future__ import annotations

import fnmatch
import logging
import os
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from safeshell.reports.models import FindReport, GrepHit, GrepReport

logger = logging.getLogger(__name__)

PathPredicate = Callable[[str], bool]

# Files larger than this are not searched.
MAX_SEARCH_BYTES = 2 * 1024 * 1024
_BINARY_SNIFF_BYTES = 8192


def _never(_path: str) -> bool:
    return False


def walk(
    root: str,
    *,
    prune: Iterable[str] = (),
    exclude: PathPredicate | None = None,
) -> Iterator[tuple[str, bool]]:
    """Yield ``(path, is_dir)`` for every entry below *root*, sorted per level."""
    pruned = frozenset(prune)
    skip = exclude or _never
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames[:] = sorted(
            d for d in dirnames if d not in pruned and not skip(os.path.join(dirpath, d))
        )
        for name in dirnames:
            yield os.path.join(dirpath, name), True
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            if not skip(path):
                yield path, False


def read_text(path: str) -> str | None:
    """Return the text of a regular, non-binary file, or ``None``."""
    try:
        if os.path.islink(path) or os.path.getsize(path) > MAX_SEARCH_BYTES:
            return None
        with open(path, "rb") as fh:
            data = fh.read()
    except OSError:
        return None
    if b"\0" in data[:_BINARY_SNIFF_BYTES]:
        return None
    return data.decode("utf-8", errors="replace")


def _relative(path: str, root: str) -> str:
    return os.path.relpath(path, root)


def find_files(
    root: str,
    pattern: str,
    *,
    compiled_contains: Any = None,
    contains: str | None = None,
    file_type: str = "f",
    limit: int = 100,
    prune: Iterable[str] = (),
    exclude: PathPredicate | None = None,
    is_secret: PathPredicate | None = None,
) -> FindReport:
    """Find entries whose basename matches the glob *pattern*.

    With *compiled_contains* (any pattern object with a ``search`` method)
    only regular files whose content matches are reported, and *file_type*
    is forced to ``f``.
    """
    secret = is_secret or _never
    if compiled_contains is not None:
        file_type = "f"
    matches: list[str] = []
    truncated = False

    for path, is_dir in walk(root, prune=prune, exclude=exclude):
        if is_dir != (file_type == "d"):
            continue
        if not fnmatch.fnmatchcase(os.path.basename(path), pattern):
            continue
        if compiled_contains is not None:
            if secret(path):
                continue
            text = read_text(path)
            if text is None or compiled_contains.search(text) is None:
                continue
        if len(matches) >= limit:
            truncated = True
            break
        matches.append(_relative(path, root))

    return FindReport(
        path=root,
        pattern=pattern,
        type=file_type,
        contains=contains,
        matches=matches,
        count=len(matches),
        truncated=truncated,
    )


def _normalise_extensions(extensions: Iterable[str]) -> tuple[str, ...]:
    out: list[str] = []
    for ext in extensions:
        for part in ext.split(","):
            part = part.strip().lstrip(".")
            if part:
                out.append("." + part)
    return tuple(out)


def grep_files(
    root: str,
    pattern: str,
    compiled: Any,
    *,
    extensions: Iterable[str] = (),
    context: int = 0,
    limit: int = 100,
    prune: Iterable[str] = (),
    exclude: PathPredicate | None = None,
    is_secret: PathPredicate | None = None,
) -> GrepReport:
    """Search file contents below *root* (or the single file *root*)."""
    secret = is_secret or _never
    suffixes = _normalise_extensions(extensions)
    hits: list[GrepHit] = []
    truncated = False

    if os.path.isfile(root):
        candidates: Iterable[tuple[str, bool]] = [(root, False)]
        base = os.path.dirname(root)
    else:
        candidates = walk(root, prune=prune, exclude=exclude)
        base = root

    for path, is_dir in candidates:
        if is_dir or secret(path):
            continue
        if suffixes and not path.endswith(suffixes):
            continue
        text = read_text(path)
        if text is None:
            continue
        before: deque[str] = deque(maxlen=context)
        lines = text.splitlines()
        for number, line in enumerate(lines, start=1):
            if compiled.search(line) is not None:
                if len(hits) >= limit:
                    truncated = True
                    break
                hit = GrepHit(file=_relative(path, base), line=number, text=line)
                if context:
                    hit.before = list(before)
                    hit.after = lines[number:number + context]
                hits.append(hit)
            before.append(line)
        if truncated:
            break

    return GrepReport(path=root, pattern=pattern, hits=hits, count=len(hits), truncated=truncated)
