"""safeshell gateway configuration.

Defines the validated configuration model consumed by the validators, the
execution engine and the report builders.  Every field carries a default so
that ``GatewayConfig()`` is a usable configuration; :meth:`from_env`
overlays ``SAFESHELL_*`` environment variables.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PRUNE_DIRS: tuple[str, ...] = (
    "node_modules",
    "vendor",
    ".git",
    "__pycache__",
    ".cache",
)


class GatewayConfig(BaseModel):
    """Configuration for a :class:`~safeshell.gateway.Gateway`.

    ``root`` bounds parent-directory traversal: a path containing ``..``
    must still resolve inside it.  ``None`` means the working directory at
    the time of each call.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    root: Path | None = Field(
        default=None,
        description="Directory that '..' segments may not escape.",
    )
    default_timeout: float = Field(
        default=30.0,
        ge=1,
        le=600,
        description="Default command timeout in seconds.",
    )
    shell: str = Field(
        default="/bin/sh",
        description="Shell used to run command strings.",
    )
    tree_depth: int = Field(default=3, ge=0, le=32)
    tree_max_entries: int = Field(default=200, ge=1)
    search_limit: int = Field(default=100, ge=1)
    git_log_limit: int = Field(default=10, ge=1)
    db_max_rows: int = Field(default=100, ge=1)
    db_sample_rows: int = Field(default=5, ge=1)
    prune_dirs: tuple[str, ...] = DEFAULT_PRUNE_DIRS
    policy_file: Path | None = Field(
        default=None,
        description="Optional YAML/JSON file with additional policy rules.",
    )
    secret_config_path: str = Field(
        default="~/.safeshell_env",
        description="The gateway's own credential file; always a forbidden path.",
    )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewayConfig:
        """Build a configuration from ``SAFESHELL_*`` environment variables.

        Unparseable or out-of-range values are ignored with a warning and
        the field keeps its default, so a malformed variable never disables
        the gateway.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        sources: dict[str, str] = {}

        if root := env.get("SAFESHELL_ROOT"):
            values["root"] = Path(root).expanduser()
            sources["root"] = "SAFESHELL_ROOT"
        if policy := env.get("SAFESHELL_POLICY_FILE"):
            values["policy_file"] = Path(policy).expanduser()
            sources["policy_file"] = "SAFESHELL_POLICY_FILE"
        if shell := env.get("SAFESHELL_SHELL"):
            values["shell"] = shell
            sources["shell"] = "SAFESHELL_SHELL"

        numeric = {
            "SAFESHELL_TIMEOUT": ("default_timeout", float),
            "SAFESHELL_TREE_DEPTH": ("tree_depth", int),
            "SAFESHELL_SEARCH_LIMIT": ("search_limit", int),
            "SAFESHELL_DB_MAX_ROWS": ("db_max_rows", int),
        }
        for var, (field, convert) in numeric.items():
            if raw := env.get(var):
                try:
                    values[field] = convert(raw)
                except ValueError:
                    logger.warning("Ignoring invalid %s=%r", var, raw)
                    continue
                sources[field] = var

        try:
            return cls.model_validate(values, strict=False)
        except ValidationError as exc:
            rejected = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
            for field in sorted(rejected):
                var = sources.get(field, field)
                logger.warning("Ignoring out-of-range %s=%r", var, env.get(var))
            kept = {key: value for key, value in values.items() if key not in rejected}
            return cls.model_validate(kept, strict=False)
