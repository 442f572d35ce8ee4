#!/usr/bin/env python3
"""
Liftbridge CLI Activity Stream Example

Follows the activity stream of an in-process broker while another task
creates, pauses, resumes and deletes a stream.
"""

import asyncio

from liftbridge_cli import MemoryBroker, commands
from liftbridge_cli.logging import configure_logging

ADDRESS = "memory://activity-demo"


async def operate(broker: MemoryBroker):
    await asyncio.sleep(0.1)
    broker.create_stream("events", "events", partitions=2)
    broker.pause_stream("events", resume_all=True)
    broker.publish("events", b"wake up")
    broker.delete_stream("events")
    await asyncio.sleep(0.1)


async def run():
    broker = MemoryBroker.named("activity-demo")
    follower = asyncio.create_task(commands.subscribe_activity_stream(ADDRESS))

    await operate(broker)

    follower.cancel()
    try:
        await follower
    except asyncio.CancelledError:
        pass


def main():
    configure_logging()
    asyncio.run(run())


if __name__ == "__main__":
    main()
