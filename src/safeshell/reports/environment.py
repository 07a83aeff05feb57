"""Environment snapshot report.

Variables whose *name* looks secret-bearing are omitted entirely, not
masked: neither the name nor the value appears in the document.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from safeshell.reports.models import EnvironmentReport

SECRET_NAME_MARKERS: tuple[str, ...] = (
    "PASSWORD",
    "SECRET",
    "TOKEN",
    "KEY",
    "CREDENTIAL",
    "AUTH",
    "PRIVATE",
    "AWS_",
    "DATABASE_URL",
    "DB_PASS",
)


def is_secret_name(name: str) -> bool:
    """Return ``True`` if *name* contains a secret marker (case-insensitive)."""
    upper = name.upper()
    return any(marker in upper for marker in SECRET_NAME_MARKERS)


def snapshot_environment(
    environ: Mapping[str, str],
    *,
    name_filter: Any = None,
) -> EnvironmentReport:
    """Build the environment report.

    *name_filter* is an optional compiled regex searched in each name.
    Secret-looking names are omitted before the filter is applied.
    """
    variables: dict[str, str] = {}
    omitted = 0
    for name in sorted(environ):
        if is_secret_name(name):
            omitted += 1
            continue
        if name_filter is not None and name_filter.search(name) is None:
            continue
        variables[name] = environ[name]
    return EnvironmentReport(variables=variables, omitted=omitted)
