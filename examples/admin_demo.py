#!/usr/bin/env python3
"""
Liftbridge CLI Admin Example

Runs the admin commands against an in-process broker.
"""

import asyncio
import sys

from liftbridge_cli import LiftbridgeError, commands
from liftbridge_cli.logging import configure_logging

ADDRESS = "memory://admin-demo"


async def run():
    print("Creating stream 'orders' (twice, creation is idempotent)...")
    await commands.create(ADDRESS, "orders")
    await commands.create(ADDRESS, "orders")

    print("Publishing three messages...")
    for i in range(3):
        await commands.publish(ADDRESS, "orders", f"order {i}", ack_policy="all")

    print("\n=== Cluster Metadata ===")
    await commands.metadata(ADDRESS)

    print("\n=== Partition 0 ===")
    await commands.pause(ADDRESS, "orders", partitions=[0])
    await commands.partition_metadata(ADDRESS, "orders", 0)

    print("\n=== Cursors ===")
    await commands.fetch_cursor(ADDRESS, "orders", "billing")
    await commands.set_cursor(ADDRESS, "orders", "billing", offset=2)
    await commands.fetch_cursor(ADDRESS, "orders", "billing")


def main():
    configure_logging()
    try:
        asyncio.run(run())
    except LiftbridgeError as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
