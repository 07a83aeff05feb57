"""Git report encoders.

Pure parsers from ``git`` plumbing output to report models.  The gateway
runs the commands; these functions only read their stdout.
"""
from __future__ import annotations

import re

from safeshell.reports.models import (
    DiffFile,
    GitCommit,
    GitDiffReport,
    GitLogReport,
    GitStatusReport,
)

# Field separator used in the ``git log`` format (ASCII unit separator).
LOG_FIELD_SEP = "\x1f"
LOG_FORMAT = "%h%x1f%s%x1f%an%x1f%ci"

STATUS_ARGS = ("status", "--porcelain=v1", "--branch", "--untracked-files=normal")
DIFF_ARGS = ("diff", "--stat=1000", "--no-color")

_BRANCH_RE = re.compile(r"^## (?P<branch>.+?)(?:\.\.\.(?P<upstream>\S+))?(?: \[(?P<track>[^\]]*)\])?$")
_AHEAD_RE = re.compile(r"ahead (\d+)")
_BEHIND_RE = re.compile(r"behind (\d+)")
_STAT_RE = re.compile(r"^\s*(?P<file>.+?)\s+\|\s+(?P<rest>.*)$")
_INSERT_RE = re.compile(r"(\d+) insertions?\(\+\)")
_DELETE_RE = re.compile(r"(\d+) deletions?\(-\)")


def log_args(limit: int) -> list[str]:
    return ["log", f"-n{int(limit)}", f"--format={LOG_FORMAT}"]


def _parse_branch(header: str, report: GitStatusReport) -> None:
    match = _BRANCH_RE.match(header)
    if match is None:
        return
    branch = match.group("branch")
    for prefix in ("No commits yet on ", "Initial commit on "):
        if branch.startswith(prefix):
            branch = branch[len(prefix):]
    report.branch = None if branch.startswith("HEAD (") else branch
    report.upstream = match.group("upstream")
    track = match.group("track") or ""
    if ahead := _AHEAD_RE.search(track):
        report.ahead = int(ahead.group(1))
    if behind := _BEHIND_RE.search(track):
        report.behind = int(behind.group(1))


def parse_status(output: str) -> GitStatusReport:
    """Parse ``git status --porcelain=v1 --branch``."""
    report = GitStatusReport()
    for line in output.splitlines():
        if line.startswith("## "):
            _parse_branch(line, report)
            continue
        if len(line) < 4:
            continue
        index, worktree, path = line[0], line[1], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if index == "?" and worktree == "?":
            report.untracked.append(path)
            continue
        if index == "!":
            continue
        if index != " ":
            report.staged.append(path)
        if worktree != " ":
            report.modified.append(path)
    return report


def parse_diff_stat(output: str, *, staged: bool = False) -> GitDiffReport:
    """Parse ``git diff --stat`` output."""
    report = GitDiffReport(staged=staged)
    for line in output.splitlines():
        match = _STAT_RE.match(line)
        if match is not None:
            rest = match.group("rest")
            if rest.startswith("Bin"):
                report.files.append(DiffFile(file=match.group("file"), changes=0, binary=True))
            else:
                count = rest.split(" ", 1)[0]
                changes = int(count) if count.isdigit() else 0
                report.files.append(DiffFile(file=match.group("file"), changes=changes))
        elif "changed" in line:
            report.summary = line.strip()
            if inserted := _INSERT_RE.search(line):
                report.insertions = int(inserted.group(1))
            if deleted := _DELETE_RE.search(line):
                report.deletions = int(deleted.group(1))
    return report


def parse_log(output: str) -> GitLogReport:
    """Parse ``git log`` output produced with :data:`LOG_FORMAT`."""
    commits: list[GitCommit] = []
    for line in output.splitlines():
        parts = line.split(LOG_FIELD_SEP)
        if len(parts) != 4:
            continue
        commit_hash, subject, author, date = parts
        commits.append(GitCommit(hash=commit_hash, subject=subject, author=author, date=date))
    return GitLogReport(commits=commits)
