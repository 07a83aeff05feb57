#!/usr/bin/env python3
"""safeshell quickstart.

Demonstrates the core workflow of the gateway:

1. Create a Gateway with an in-memory database connection.
2. Run an ordinary command.
3. Watch a destructive command get blocked.
4. Inspect the current directory as a tree.
5. Try to read a secret file.
6. Try a write query.

Run:
    python examples/quickstart.py
"""
from __future__ import annotations

import asyncio
import json

from safeshell import Gateway, GatewayConfig, InMemoryConnectionResolver
from safeshell.core.types import (
    ConnectionDescriptor,
    DatabaseDriver,
    GatewayRequest,
    GatewayResponse,
    OperationKind,
)


def show(step: int, title: str, response: GatewayResponse) -> None:
    print(f"[{step}] {title}: {response.status} (exit {response.exit_status})")
    if response.error is not None:
        print("    " + json.dumps(response.error.model_dump(mode="json", exclude_defaults=True)))


async def main() -> None:
    # -- Step 1: Create the gateway ------------------------------------------
    resolver = InMemoryConnectionResolver()
    resolver.add(
        ConnectionDescriptor(
            name="default",
            driver=DatabaseDriver.PGSQL,
            user="reader",
            password="example-only",
            database="shop",
        )
    )
    gateway = Gateway(GatewayConfig(), resolver=resolver)
    print(f"[1] Gateway ready: policy v{gateway.policy.version}, {len(gateway.policy)} rules")

    # -- Step 2: An ordinary command -----------------------------------------
    response = await gateway.dispatch(
        GatewayRequest(operation=OperationKind.EXEC, target="echo hello from safeshell")
    )
    show(2, "echo", response)
    if response.document is not None:
        print("    stdout: " + response.document["stdout"].strip())

    # -- Step 3: A destructive command ---------------------------------------
    response = await gateway.dispatch(GatewayRequest(operation=OperationKind.EXEC, target="rm -rf /"))
    show(3, "rm -rf /", response)

    # -- Step 4: Directory tree ----------------------------------------------
    response = await gateway.dispatch(GatewayRequest(operation=OperationKind.TREE, depth=1))
    show(4, "tree .", response)
    if response.document is not None:
        print(f"    {response.document['entries']} entries")

    # -- Step 5: A secret file -----------------------------------------------
    response = await gateway.dispatch(GatewayRequest(operation=OperationKind.CONFIG, target=".env"))
    show(5, "config .env", response)

    # -- Step 6: A write query -----------------------------------------------
    response = await gateway.dispatch(
        GatewayRequest(operation=OperationKind.DB_QUERY, target="DELETE FROM orders")
    )
    show(6, "DELETE FROM orders", response)


if __name__ == "__main__":
    asyncio.run(main())
