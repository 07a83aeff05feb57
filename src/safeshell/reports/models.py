"""Report document models.

One pydantic model per introspection operation.  Field names are stable;
optional fields are omitted from the rendered document when unset
(``model_dump(mode="json", exclude_none=True)``).
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from safeshell.core.types import NodeKind


class Report(BaseModel):
    """Base class for every report document."""

    model_config = ConfigDict(strict=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------

class ReportNode(BaseModel):
    """One entry of a directory tree.  Symlinks are reported, never followed."""

    model_config = ConfigDict(strict=True)

    path: str
    name: str
    kind: NodeKind
    size: int | None = None
    children: list[ReportNode] = Field(default_factory=list)


class TreeReport(Report):
    root: ReportNode
    depth: int
    entries: int
    truncated: bool = False


class FindReport(Report):
    path: str
    pattern: str
    type: str
    contains: str | None = None
    matches: list[str] = Field(default_factory=list)
    count: int = 0
    truncated: bool = False


class GrepHit(BaseModel):
    model_config = ConfigDict(strict=True)

    file: str
    line: int
    text: str
    before: list[str] | None = None
    after: list[str] | None = None


class GrepReport(Report):
    path: str
    pattern: str
    hits: list[GrepHit] = Field(default_factory=list)
    count: int = 0
    truncated: bool = False


class ConfigReport(Report):
    """A parsed config file (``content``) or its raw text (``code``/``lang``)."""

    path: str
    format: str | None = None
    content: Any = None
    code: str | None = None
    lang: str | None = None


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------

class GitStatusReport(Report):
    branch: str | None = None
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    staged: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    untracked: list[str] = Field(default_factory=list)


class DiffFile(BaseModel):
    model_config = ConfigDict(strict=True)

    file: str
    changes: int
    binary: bool | None = None


class GitDiffReport(Report):
    staged: bool
    files: list[DiffFile] = Field(default_factory=list)
    insertions: int = 0
    deletions: int = 0
    summary: str = ""


class GitCommit(BaseModel):
    model_config = ConfigDict(strict=True)

    hash: str
    subject: str
    author: str
    date: str


class GitLogReport(Report):
    commits: list[GitCommit] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------

class PortEntry(BaseModel):
    model_config = ConfigDict(strict=True)

    port: int
    proto: str
    state: str | None = None
    address: str


class PortsReport(Report):
    ports: list[PortEntry] = Field(default_factory=list)


class ProcessEntry(BaseModel):
    model_config = ConfigDict(strict=True)

    pid: int
    name: str
    user: str | None = None
    cpu: float | None = None
    mem: float | None = None
    port: int | None = None


class ProcessesReport(Report):
    processes: list[ProcessEntry] = Field(default_factory=list)


class EnvironmentReport(Report):
    variables: dict[str, str] = Field(default_factory=dict)
    omitted: int = 0


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

class ProjectReport(Report):
    type: str
    path: str
    has_tests: bool = False
    framework: str | None = None
    package_manager: str | None = None
    entry_point: str | None = None


class DependencyReport(Report):
    manager: str
    dependencies: list[str] | None = None
    prod: list[str] | None = None
    dev: list[str] | None = None
