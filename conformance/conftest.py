"""Shared fixtures for the safeshell conformance tests.

Every test here states a guarantee the gateway must keep regardless of
configuration: dangerous commands never run, forbidden and secret-bearing
paths are never read, write SQL never reaches a database, and a blocked
request has no side effects.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from safeshell.core.config import GatewayConfig
from safeshell.core.interfaces import InMemoryConnectionResolver
from safeshell.core.types import (
    ConnectionDescriptor,
    DatabaseDriver,
    GatewayRequest,
    OperationKind,
)
from safeshell.gateway import Gateway
from safeshell.policy.rules import PolicyStore, default_policy

# ---------------------------------------------------------------------------
# Common values used across tests
# ---------------------------------------------------------------------------
DB_PASSWORD = "conformance-db-password-9876"
ENV_SECRET = "conformance-env-token-1234"


# ---------------------------------------------------------------------------
# Policy and gateway fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def policy() -> PolicyStore:
    return default_policy()


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    """A working tree holding one ordinary file and several secret files."""
    (tmp_path / "app.py").write_text("print('ok')\n", encoding="utf-8")
    (tmp_path / ".env").write_text(f"API_TOKEN={ENV_SECRET}\n", encoding="utf-8")
    (tmp_path / ".env.local").write_text(f"API_TOKEN={ENV_SECRET}\n", encoding="utf-8")
    (tmp_path / "server.key").write_text(f"{ENV_SECRET}\n", encoding="utf-8")
    return tmp_path


@pytest.fixture()
def resolver() -> InMemoryConnectionResolver:
    return InMemoryConnectionResolver(
        {
            "default": ConnectionDescriptor(
                name="default",
                driver=DatabaseDriver.MYSQL,
                user="reader",
                password=DB_PASSWORD,
                host="127.0.0.1",
                database="app",
            ),
        }
    )


@pytest.fixture()
def gateway(workspace: Path, resolver: InMemoryConnectionResolver) -> Gateway:
    return Gateway(
        GatewayConfig(root=workspace),
        resolver=resolver,
        environ={"PATH": "/usr/bin", "API_TOKEN": ENV_SECRET, "DB_PASSWORD": DB_PASSWORD},
    )


# ---------------------------------------------------------------------------
# Request helper
# ---------------------------------------------------------------------------
def make_request(operation: OperationKind, target: str | None = None, **fields: object) -> GatewayRequest:
    """Build a GatewayRequest with only the given fields set."""
    return GatewayRequest(operation=operation, target=target, **fields)  # type: ignore[arg-type]
