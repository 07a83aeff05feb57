"""safeshell structured report encoders.

Every encoder is a pure transformation from a filesystem, process or
command-output snapshot to a pydantic report model.  No encoder decides
security policy; the gateway validates every path and query first.
"""
from __future__ import annotations

from safeshell.reports.config import read_config
from safeshell.reports.environment import is_secret_name, snapshot_environment
from safeshell.reports.git import parse_diff_stat, parse_log, parse_status
from safeshell.reports.models import (
    ConfigReport,
    DependencyReport,
    EnvironmentReport,
    FindReport,
    GitDiffReport,
    GitLogReport,
    GitStatusReport,
    GrepReport,
    PortsReport,
    ProcessesReport,
    ProjectReport,
    Report,
    ReportNode,
    TreeReport,
)
from safeshell.reports.project import detect_project, list_dependencies
from safeshell.reports.search import find_files, grep_files
from safeshell.reports.system import parse_lsof, parse_netstat, parse_ps, parse_ss
from safeshell.reports.text import render_text
from safeshell.reports.tree import build_tree, render_tree_text

__all__ = [
    "ConfigReport",
    "DependencyReport",
    "EnvironmentReport",
    "FindReport",
    "GitDiffReport",
    "GitLogReport",
    "GitStatusReport",
    "GrepReport",
    "PortsReport",
    "ProcessesReport",
    "ProjectReport",
    "Report",
    "ReportNode",
    "TreeReport",
    "build_tree",
    "detect_project",
    "find_files",
    "grep_files",
    "is_secret_name",
    "list_dependencies",
    "parse_diff_stat",
    "parse_log",
    "parse_lsof",
    "parse_netstat",
    "parse_ps",
    "parse_ss",
    "parse_status",
    "read_config",
    "render_text",
    "render_tree_text",
    "snapshot_environment",
]
