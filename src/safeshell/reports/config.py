"""Config file report.

JSON, YAML and TOML files are parsed into ``content``.  Any other file, or
one that fails to parse, is returned verbatim as ``code`` with a ``lang``
hint.  Secret-bearing files are rejected by the path validator before this
module is reached.
"""
from __future__ import annotations

import json
import logging
import os
import tomllib
from typing import Any

import yaml

from safeshell.core.errors import FileNotFound
from safeshell.reports.models import ConfigReport

logger = logging.getLogger(__name__)

MAX_CONFIG_BYTES = 1024 * 1024

_LANG_BY_SUFFIX: dict[str, str] = {
    ".ini": "ini",
    ".cfg": "ini",
    ".conf": "conf",
    ".xml": "xml",
    ".php": "php",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".py": "python",
    ".sh": "bash",
    ".properties": "properties",
    ".neon": "neon",
}


def _parse_json(text: str) -> Any:
    return json.loads(text)


def _parse_yaml(text: str) -> Any:
    return yaml.safe_load(text)


def _parse_toml(text: str) -> Any:
    return tomllib.loads(text)


_PARSERS: dict[str, tuple[str, Any]] = {
    ".json": ("json", _parse_json),
    ".yaml": ("yaml", _parse_yaml),
    ".yml": ("yaml", _parse_yaml),
    ".toml": ("toml", _parse_toml),
}


def read_config(path: str) -> ConfigReport:
    """Read one config file.

    Raises
    ------
    FileNotFound
        If *path* is not a regular file.
    """
    if not os.path.isfile(path):
        raise FileNotFound(details={"path": path})
    with open(path, "rb") as fh:
        text = fh.read(MAX_CONFIG_BYTES).decode("utf-8", errors="replace")

    suffix = os.path.splitext(path)[1].lower()
    parser = _PARSERS.get(suffix)
    if parser is not None:
        fmt, parse = parser
        try:
            content = json.loads(json.dumps(parse(text), default=str))
        except (ValueError, yaml.YAMLError) as exc:
            logger.debug("Config %s did not parse as %s: %s", path, fmt, exc)
        else:
            return ConfigReport(path=path, format=fmt, content=content)
        return ConfigReport(path=path, code=text, lang=fmt)

    lang = _LANG_BY_SUFFIX.get(suffix, suffix.lstrip(".") or "text")
    return ConfigReport(path=path, code=text, lang=lang)
