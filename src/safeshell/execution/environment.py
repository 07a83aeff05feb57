"""Child process environment construction.

The child inherits the parent environment, minus the gateway's own
connection variables (``SAFESHELL_DATABASE_URL*``), plus explicit extra
variables.  Database passwords travel to client binaries through the
extra variables (``MYSQL_PWD``, ``PGPASSWORD``), never through argv.
"""
from __future__ import annotations

import os
import re
from collections.abc import Mapping

from safeshell.core.interfaces import ENV_PREFIX

# Gateway-private variables that never reach a child process.
_PRIVATE_VAR_RE = re.compile(rf"^{ENV_PREFIX}(_[A-Za-z0-9_]*)?$")

_VALID_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class EnvironmentManager:
    """Build environment mappings for child processes.

    Typical usage::

        mgr = EnvironmentManager()
        env = mgr.build_child_env(extra_vars={"PGPASSWORD": password})
    """

    def __init__(self, base: Mapping[str, str] | None = None) -> None:
        self._base = base

    def build_child_env(
        self,
        extra_vars: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Construct the child process environment.

        Raises
        ------
        ValueError
            If an extra variable name is not a valid identifier.
        """
        source = os.environ if self._base is None else self._base
        env = {key: val for key, val in source.items() if not _PRIVATE_VAR_RE.match(key)}

        for key, val in (extra_vars or {}).items():
            if not _VALID_NAME_RE.match(key):
                raise ValueError(f"Invalid environment variable name {key!r}")
            env[key] = val
        return env

    @staticmethod
    def is_private(name: str) -> bool:
        """Return ``True`` for variables reserved to the gateway."""
        return _PRIVATE_VAR_RE.match(name) is not None
