"""safeshell execution engine.

This subpackage performs the side effects a validated request asks for:

* **CommandRunner** -- asyncio child processes with a clamped timeout and
  SIGTERM/SIGKILL enforcement.
* **EnvironmentManager** -- the child environment, minus gateway-private
  variables.
* **DatabaseExecutor** -- read-only queries through ``mysql``/``mariadb``
  or ``psql``.
* **require_binary** -- capability check failing with
  ``dependency_missing``.
"""
from __future__ import annotations

from safeshell.execution.database import DatabaseExecutor, QueryRows, parse_tabular
from safeshell.execution.environment import EnvironmentManager
from safeshell.execution.runner import (
    DEFAULT_TIMEOUT_S,
    MAX_TIMEOUT_S,
    MIN_TIMEOUT_S,
    CommandRunner,
    require_binary,
)

__all__ = [
    "DEFAULT_TIMEOUT_S",
    "MAX_TIMEOUT_S",
    "MIN_TIMEOUT_S",
    "CommandRunner",
    "DatabaseExecutor",
    "EnvironmentManager",
    "QueryRows",
    "parse_tabular",
    "require_binary",
]
