"""
Stream session helpers

Idempotent stream creation and the long-running subscription session shared
by the subscribe commands.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from .client import Client, Message, StartPosition, StreamExistsError, connect
from .config import settings
from .exceptions import (
    BrokerTimeout,
    DeliveryError,
    StreamCreationFailed,
    SubscriptionFailed,
)
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


async def with_deadline(awaitable: Awaitable[T], timeout: float) -> T:
    """
    Await with a deadline

    Raises:
        BrokerTimeout: deadline exceeded
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise BrokerTimeout(timeout) from None


async def ensure_stream_created(client: Client, stream: str, subject: str = ""):
    """
    Create a stream, treating "already exists" as success

    Args:
        client: Connected client
        stream: Stream name
        subject: Subject name (defaults to the stream name)

    Raises:
        StreamCreationFailed: creation failed for any other reason
    """
    subject = subject or stream

    try:
        await client.create_stream(subject, stream)
    except StreamExistsError:
        logger.debug("stream already exists", stream=stream)
        return
    except Exception as e:
        raise StreamCreationFailed(stream, e) from e

    logger.info("stream created", stream=stream, subject=subject)


async def subscribe_to_stream(
    address: str,
    stream: str,
    handler: Callable[[Message], None],
    subject: str = "",
    create_stream: bool = False,
    timeout: float = settings.timeout
) -> None:
    """
    Subscribe to a stream and block until delivery fails

    Setup (connect, optional stream creation, subscribe) must finish within
    timeout. Streaming has no deadline: it replays the partition from the
    earliest message and hands every message to handler, one at a time,
    until the broker reports an error or the calling task is cancelled.

    Args:
        address: Broker address
        stream: Stream name
        handler: Called with each message; exceptions it raises end the session
        subject: Subject used if the stream has to be created
        create_stream: Create the stream first if it doesn't exist
        timeout: Setup deadline in seconds

    Raises:
        SubscriptionFailed: setup failed
        DeliveryError: the broker reported a delivery error
    """
    async def setup() -> Client:
        client = await connect(address)
        try:
            if create_stream:
                await ensure_stream_created(client, stream, subject)
        except BaseException:
            await client.close()
            raise
        return client

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    try:
        client = await with_deadline(setup(), timeout)
    except Exception as e:
        raise SubscriptionFailed(stream, e) from e

    # Single pending-error slot; the first terminal outcome wins
    terminated: asyncio.Future = loop.create_future()

    stopped = False

    def settle(error: BaseException):
        if not terminated.done():
            terminated.set_exception(error)

    def stop(error: BaseException):
        nonlocal stopped
        stopped = True
        loop.call_soon_threadsafe(settle, error)

    def on_message(message: Optional[Message], error: Optional[Exception]):
        if stopped:
            return
        if error is not None:
            stop(DeliveryError(stream, error))
            return
        try:
            handler(message)
        except Exception as e:
            stop(e)

    try:
        try:
            subscription = await with_deadline(
                client.subscribe(stream, on_message, start_position=StartPosition.EARLIEST),
                max(deadline - loop.time(), 0),
            )
        except BrokerTimeout:
            raise SubscriptionFailed(stream, BrokerTimeout(timeout)) from None
        except Exception as e:
            raise SubscriptionFailed(stream, e) from e

        logger.info("subscribed", stream=stream, address=address)
        try:
            await terminated
        finally:
            await subscription.cancel()
    finally:
        await client.close()
