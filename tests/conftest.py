"""Shared fixtures for the safeshell unit tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from safeshell.core.config import GatewayConfig
from safeshell.core.interfaces import InMemoryConnectionResolver
from safeshell.core.types import ConnectionDescriptor, DatabaseDriver
from safeshell.gateway import Gateway
from safeshell.policy.rules import PolicyStore, default_policy


@pytest.fixture
def policy() -> PolicyStore:
    return default_policy()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A small source tree with a secret file and a pruned directory."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text(
        "import os\n\ndef main():\n    return os.getcwd()\n", encoding="utf-8"
    )
    (tmp_path / "src" / "util.py").write_text("def helper():\n    return 42\n", encoding="utf-8")
    (tmp_path / "README.md").write_text("# demo\nmain entry\n", encoding="utf-8")
    (tmp_path / ".env").write_text("DB_PASSWORD=hunter2\nmain=1\n", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "lib.js").write_text("main()\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def resolver() -> InMemoryConnectionResolver:
    return InMemoryConnectionResolver(
        {
            "default": ConnectionDescriptor(
                name="default",
                driver=DatabaseDriver.MYSQL,
                user="app",
                password="s3cret-pw",
                host="db.internal",
                port=3307,
                database="shop",
            ),
            "analytics": ConnectionDescriptor(
                name="analytics",
                driver=DatabaseDriver.PGSQL,
                user="reader",
                host="pg.internal",
            ),
        }
    )


@pytest.fixture
def gateway(tmp_path: Path, resolver: InMemoryConnectionResolver) -> Gateway:
    return Gateway(
        GatewayConfig(root=tmp_path),
        resolver=resolver,
        environ={"HOME": "/home/agent", "API_TOKEN": "abc", "LANG": "C.UTF-8"},
    )
