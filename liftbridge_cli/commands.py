"""
Command handlers

One coroutine per CLI verb. Each handler connects, optionally makes sure the
stream exists, performs a single broker call (or runs a subscription) and
wraps the first error it meets with a command-specific prefix.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Type, TypeVar

from . import activity
from .client import Client, Message, open_client
from .config import settings
from .exceptions import (
    CommandError,
    CursorOperationFailed,
    DecodeError,
    LiftbridgeError,
    MetadataFetchFailed,
)
from .logging import get_logger
from .options import resolve_ack_policy, to_partition_indices
from .render import format_message, metadata_lines, partition_metadata_lines
from .session import ensure_stream_created, subscribe_to_stream, with_deadline

logger = get_logger(__name__)

T = TypeVar('T')

Echo = Callable[[str], None]


@asynccontextmanager
async def _command(
    prefix: str,
    address: str,
    error: Type[CommandError] = CommandError
) -> AsyncIterator[Client]:
    """Scoped client whose errors are reported under prefix"""
    try:
        async with open_client(address) as client:
            yield client
    except Exception as e:
        raise error(prefix, e) from e


async def _call(
    client: Client,
    call: Callable[[], Awaitable[T]],
    timeout: float,
    stream: str = "",
    subject: str = "",
    create_stream: bool = False
) -> T:
    """Run the optional stream creation and one broker call under one deadline"""
    async def bounded() -> T:
        if create_stream:
            await ensure_stream_created(client, stream, subject)
        return await call()

    return await with_deadline(bounded(), timeout)


async def create(
    address: str,
    stream: str,
    subject: str = "",
    timeout: float = settings.timeout
):
    """Create a stream; succeeds if it already exists"""
    async with _command("creation failed", address) as client:
        await with_deadline(ensure_stream_created(client, stream, subject), timeout)


async def subscribe(
    address: str,
    stream: str,
    subject: str = "",
    create_stream: bool = False,
    timeout: float = settings.timeout,
    echo: Echo = print
):
    """Print every message of a stream until the subscription fails"""
    def print_message(message: Message):
        echo(format_message(message))

    try:
        await subscribe_to_stream(address, stream, print_message, subject, create_stream, timeout)
    except Exception as e:
        raise CommandError("stream subscription failed", e) from e


async def subscribe_activity_stream(
    address: str,
    timeout: float = settings.timeout,
    echo: Echo = print,
    stream: str = settings.activity_stream
):
    """Print a summary of every activity stream event"""
    def print_activity(message: Message):
        try:
            event = activity.decode(message.value)
        except DecodeError as e:
            logger.warning("invalid activity message", offset=message.offset, error=str(e))
            echo(f"Received an invalid activity message from the activity stream: {e}")
            return
        echo(activity.format_activity_message(event, message.offset))

    try:
        await subscribe_to_stream(address, stream, print_activity, timeout=timeout)
    except Exception as e:
        raise CommandError("activity stream subscription failed", e) from e


async def publish(
    address: str,
    stream: str,
    message: str,
    subject: str = "",
    ack_policy: str = settings.ack_policy,
    create_stream: bool = False,
    timeout: float = settings.timeout
):
    """Publish one message"""
    try:
        policy = resolve_ack_policy(ack_policy)
    except LiftbridgeError as e:
        raise CommandError("publication failed", e) from e

    async with _command("publication failed", address) as client:
        ack = await _call(
            client,
            lambda: client.publish(stream, message.encode("utf-8"), policy),
            timeout, stream, subject, create_stream,
        )

    if ack is not None:
        logger.info("message published", stream=stream, offset=ack.offset)


async def set_readonly(
    address: str,
    stream: str,
    subject: str = "",
    readonly: bool = True,
    partitions: Optional[List[int]] = None,
    create_stream: bool = False,
    timeout: float = settings.timeout
):
    """Set or clear the read-only flag of a stream's partitions"""
    indices = to_partition_indices(partitions or [])

    async with _command("set readonly failed", address) as client:
        await _call(
            client,
            lambda: client.set_stream_readonly(stream, indices, readonly),
            timeout, stream, subject, create_stream,
        )


async def pause(
    address: str,
    stream: str,
    subject: str = "",
    resume_all: bool = False,
    partitions: Optional[List[int]] = None,
    create_stream: bool = False,
    timeout: float = settings.timeout
):
    """Pause a stream's partitions"""
    indices = to_partition_indices(partitions or [])

    async with _command("pause failed", address) as client:
        await _call(
            client,
            lambda: client.pause_stream(stream, indices, resume_all),
            timeout, stream, subject, create_stream,
        )


async def delete(
    address: str,
    stream: str,
    subject: str = "",
    create_stream: bool = False,
    timeout: float = settings.timeout
):
    """Delete a stream"""
    async with _command("delete failed", address) as client:
        await _call(
            client,
            lambda: client.delete_stream(stream),
            timeout, stream, subject, create_stream,
        )


async def metadata(
    address: str,
    timeout: float = settings.timeout,
    echo: Echo = print
):
    """Print cluster metadata"""
    async with _command("metadata fetching failed", address, MetadataFetchFailed) as client:
        result = await _call(client, client.fetch_metadata, timeout)

    for line in metadata_lines(result):
        echo(line)


async def partition_metadata(
    address: str,
    stream: str,
    partition: int = 0,
    subject: str = "",
    create_stream: bool = False,
    timeout: float = settings.timeout,
    echo: Echo = print
):
    """Print one partition's metadata"""
    index, = to_partition_indices([partition])

    async with _command("partition metadata fetching failed", address, MetadataFetchFailed) as client:
        result = await _call(
            client,
            lambda: client.fetch_partition_metadata(stream, index),
            timeout, stream, subject, create_stream,
        )

    for line in partition_metadata_lines(result):
        echo(line)


async def set_cursor(
    address: str,
    stream: str,
    cursor_id: str = settings.cursor_id,
    partition: int = 0,
    offset: int = 0,
    subject: str = "",
    create_stream: bool = False,
    timeout: float = settings.timeout
):
    """Store a cursor's offset"""
    index, = to_partition_indices([partition])

    async with _command("setting cursor failed", address, CursorOperationFailed) as client:
        await _call(
            client,
            lambda: client.set_cursor(cursor_id, stream, index, offset),
            timeout, stream, subject, create_stream,
        )


async def fetch_cursor(
    address: str,
    stream: str,
    cursor_id: str = settings.cursor_id,
    partition: int = 0,
    timeout: float = settings.timeout,
    echo: Echo = print
) -> int:
    """Print a cursor's offset (-1 when the cursor was never set)"""
    index, = to_partition_indices([partition])

    async with _command("fetching cursor failed", address, CursorOperationFailed) as client:
        offset = await _call(
            client,
            lambda: client.fetch_cursor(cursor_id, stream, index),
            timeout,
        )

    echo(f"offset: {offset}")
    return offset
