"""
In-process broker

A single-node broker living inside the current process, reachable through
"memory://<name>" addresses. Brokers are registered by name so that several
clients (and several command invocations) share the same streams.
"""

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set, Tuple

from . import activity
from .client import (
    NO_CURSOR,
    Ack,
    AckPolicy,
    BrokerError,
    BrokerInfo,
    Client,
    Message,
    MessageHandler,
    Metadata,
    NoSuchPartitionError,
    NoSuchStreamError,
    PartitionEventTimestamps,
    PartitionInfo,
    PartitionMetadata,
    ReadonlyPartitionError,
    StartPosition,
    StreamDeletedError,
    StreamExistsError,
    StreamInfo,
    Subscription,
)
from .config import settings
from .logging import get_logger

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _EventTimes:
    """First/latest occurrence of a partition event"""

    def __init__(self):
        self.first: Optional[datetime] = None
        self.latest: Optional[datetime] = None

    def record(self):
        now = _now()
        if self.first is None:
            self.first = now
        self.latest = now

    def snapshot(self) -> PartitionEventTimestamps:
        return PartitionEventTimestamps(self.first, self.latest)


class _Partition:
    def __init__(self, stream: str, subject: str, partition_id: int):
        self.stream = stream
        self.subject = subject
        self.id = partition_id
        self.messages: List[Message] = []
        self.paused = False
        self.readonly = False
        self.received = _EventTimes()
        self.pause_times = _EventTimes()
        self.readonly_times = _EventTimes()

    def append(self, value: bytes) -> Message:
        message = Message(
            self.stream,
            self.id,
            len(self.messages),
            value,
            subject=self.subject,
        )
        self.messages.append(message)
        self.received.record()
        return message

    @property
    def newest_offset(self) -> int:
        return len(self.messages) - 1


class _Stream:
    def __init__(self, name: str, subject: str, partitions: int):
        self.name = name
        self.subject = subject
        self.partitions = {i: _Partition(name, subject, i) for i in range(partitions)}
        self.resume_all = False

    def select(self, partitions: Sequence[int]) -> List[_Partition]:
        if not partitions:
            return list(self.partitions.values())
        selected = []
        for partition_id in partitions:
            if partition_id not in self.partitions:
                raise NoSuchPartitionError(self.name, partition_id)
            selected.append(self.partitions[partition_id])
        return selected


class MemoryBroker:
    """
    Single-node in-process broker

    Example:
        broker = MemoryBroker.named("demo")
        broker.create_stream("foo", "foo")
        broker.publish("foo", b"bar", partition=0)
    """

    _registry: Dict[str, "MemoryBroker"] = {}

    def __init__(
        self,
        name: str = "default",
        host: str = "127.0.0.1",
        port: int = 9292,
        activity_stream: str = settings.activity_stream
    ):
        self.name = name
        self.info = BrokerInfo(f"{name}-0", host, port)
        self.activity_stream = activity_stream
        self.started = _now()

        self._streams: Dict[str, _Stream] = {}
        self._cursors: Dict[Tuple[str, int, str], int] = {}
        self._waiters: Set[asyncio.Event] = set()
        self._activity_ids = itertools.count(1)

        self._streams[activity_stream] = _Stream(activity_stream, activity_stream, 1)

    @classmethod
    def named(cls, name: str) -> "MemoryBroker":
        """Return the broker registered under name, creating it if needed"""
        if name not in cls._registry:
            cls._registry[name] = cls(name)
        return cls._registry[name]

    @classmethod
    def discard(cls, name: str):
        """Forget a registered broker"""
        cls._registry.pop(name, None)

    def _stream(self, name: str) -> _Stream:
        try:
            return self._streams[name]
        except KeyError:
            raise NoSuchStreamError(name) from None

    def _partition(self, name: str, partition: int) -> _Partition:
        stream = self._stream(name)
        try:
            return stream.partitions[partition]
        except KeyError:
            raise NoSuchPartitionError(name, partition) from None

    def _notify(self):
        for waiter in list(self._waiters):
            waiter.set()

    def _record_activity(self, payload_for_id):
        stream = self._streams.get(self.activity_stream)
        if stream is None:
            return
        stream.partitions[0].append(payload_for_id(next(self._activity_ids)))

    def create_stream(self, subject: str, name: str, partitions: int = 1):
        if name in self._streams:
            raise StreamExistsError(name)
        if partitions < 1:
            raise BrokerError(f"invalid partition count: {partitions}")

        self._streams[name] = _Stream(name, subject, partitions)
        self._record_activity(lambda event_id: activity.encode(
            activity.CreateStreamActivity(name, tuple(range(partitions)), event_id)
        ))
        self._notify()
        logger.debug("stream created", broker=self.name, stream=name, subject=subject)

    def delete_stream(self, name: str):
        self._stream(name)
        del self._streams[name]
        self._cursors = {key: value for key, value in self._cursors.items() if key[0] != name}
        self._record_activity(lambda event_id: activity.encode(
            activity.DeleteStreamActivity(name, event_id)
        ))
        self._notify()
        logger.debug("stream deleted", broker=self.name, stream=name)

    def set_stream_readonly(self, name: str, partitions: Sequence[int] = (), readonly: bool = True):
        selected = self._stream(name).select(partitions)
        for partition in selected:
            partition.readonly = readonly
            partition.readonly_times.record()

        ids = [p.id for p in selected]
        self._record_activity(lambda event_id: activity.encode_set_readonly(
            event_id, name, ids, readonly
        ))
        self._notify()

    def pause_stream(self, name: str, partitions: Sequence[int] = (), resume_all: bool = False):
        stream = self._stream(name)
        selected = stream.select(partitions)
        for partition in selected:
            partition.paused = True
            partition.pause_times.record()
        stream.resume_all = resume_all

        ids = tuple(p.id for p in selected)
        self._record_activity(lambda event_id: activity.encode(
            activity.PauseStreamActivity(name, ids, resume_all, event_id)
        ))
        self._notify()

    def _resume(self, stream: _Stream, partition: _Partition):
        if stream.resume_all:
            resumed = [p for p in stream.partitions.values() if p.paused]
        else:
            resumed = [partition]
        for p in resumed:
            p.paused = False
        stream.resume_all = False

        ids = tuple(p.id for p in resumed)
        self._record_activity(lambda event_id: activity.encode(
            activity.ResumeStreamActivity(stream.name, ids, event_id)
        ))

    def publish(self, stream_name: str, value: bytes, partition: int = 0) -> Message:
        stream = self._stream(stream_name)
        target = self._partition(stream_name, partition)
        if target.readonly:
            raise ReadonlyPartitionError(stream_name, partition)
        if target.paused:
            self._resume(stream, target)

        message = target.append(value)
        self._notify()
        return message

    def metadata(self) -> Metadata:
        streams = []
        for stream in self._streams.values():
            partitions = {
                p.id: PartitionInfo(p.id, self.info, [self.info], [self.info])
                for p in stream.partitions.values()
            }
            streams.append(StreamInfo(stream.name, stream.subject, partitions))
        return Metadata([self.info.addr], [self.info], streams, _now())

    def partition_metadata(self, stream: str, partition: int) -> PartitionMetadata:
        p = self._partition(stream, partition)
        return PartitionMetadata(
            id=p.id,
            leader=self.info,
            replicas=[self.info],
            isr=[self.info],
            high_watermark=p.newest_offset,
            newest_offset=p.newest_offset,
            paused=p.paused,
            readonly=p.readonly,
            messages_received_timestamps=p.received.snapshot(),
            pause_timestamps=p.pause_times.snapshot(),
            readonly_timestamps=p.readonly_times.snapshot(),
        )

    def set_cursor(self, cursor_id: str, stream: str, partition: int, offset: int):
        self._partition(stream, partition)
        self._cursors[(stream, partition, cursor_id)] = offset

    def fetch_cursor(self, cursor_id: str, stream: str, partition: int) -> int:
        self._partition(stream, partition)
        return self._cursors.get((stream, partition, cursor_id), NO_CURSOR)


class MemorySubscription(Subscription):
    """Delivers a partition's messages to a handler from a background task"""

    def __init__(self, broker: MemoryBroker, stream: str, partition: int, offset: int, handler: MessageHandler):
        self._broker = broker
        self._stream = broker._stream(stream)
        self._partition = broker._partition(stream, partition)
        self._offset = offset
        self._handler = handler
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self):
        self._broker._waiters.add(self._wakeup)
        self._task = asyncio.create_task(self._deliver())

    async def _deliver(self):
        name = self._stream.name
        try:
            while True:
                if self._broker._streams.get(name) is not self._stream:
                    self._handler(None, StreamDeletedError(name))
                    return

                messages = self._partition.messages
                while self._offset < len(messages):
                    self._handler(messages[self._offset], None)
                    self._offset += 1

                self._wakeup.clear()
                await self._wakeup.wait()
        finally:
            self._broker._waiters.discard(self._wakeup)

    async def cancel(self):
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class MemoryClient(Client):
    """Client bound to a MemoryBroker"""

    def __init__(self, broker: MemoryBroker):
        self.broker = broker
        self.connected = True
        self._subscriptions: List[MemorySubscription] = []

    def _check_connected(self):
        if not self.connected:
            raise BrokerError("client is closed")

    async def create_stream(self, subject: str, name: str, partitions: int = 1):
        self._check_connected()
        self.broker.create_stream(subject, name, partitions)

    async def delete_stream(self, name: str):
        self._check_connected()
        self.broker.delete_stream(name)

    async def set_stream_readonly(self, name: str, partitions: Sequence[int] = (), readonly: bool = True):
        self._check_connected()
        self.broker.set_stream_readonly(name, partitions, readonly)

    async def pause_stream(self, name: str, partitions: Sequence[int] = (), resume_all: bool = False):
        self._check_connected()
        self.broker.pause_stream(name, partitions, resume_all)

    async def publish(
        self,
        stream: str,
        value: bytes,
        ack_policy: AckPolicy = AckPolicy.LEADER,
        partition: int = 0
    ) -> Optional[Ack]:
        self._check_connected()
        message = self.broker.publish(stream, value, partition)
        if ack_policy is AckPolicy.NONE:
            return None
        return Ack(stream, partition, message.offset, ack_policy)

    async def subscribe(
        self,
        stream: str,
        handler: MessageHandler,
        partition: int = 0,
        start_position: StartPosition = StartPosition.EARLIEST
    ) -> Subscription:
        self._check_connected()
        newest = self.broker._partition(stream, partition).newest_offset
        if start_position is StartPosition.EARLIEST:
            offset = 0
        elif start_position is StartPosition.LATEST:
            offset = max(newest, 0)
        else:
            offset = newest + 1

        subscription = MemorySubscription(self.broker, stream, partition, offset, handler)
        subscription.start()
        self._subscriptions.append(subscription)
        return subscription

    async def fetch_metadata(self) -> Metadata:
        self._check_connected()
        return self.broker.metadata()

    async def fetch_partition_metadata(self, stream: str, partition: int) -> PartitionMetadata:
        self._check_connected()
        return self.broker.partition_metadata(stream, partition)

    async def set_cursor(self, cursor_id: str, stream: str, partition: int, offset: int):
        self._check_connected()
        self.broker.set_cursor(cursor_id, stream, partition, offset)

    async def fetch_cursor(self, cursor_id: str, stream: str, partition: int) -> int:
        self._check_connected()
        return self.broker.fetch_cursor(cursor_id, stream, partition)

    async def close(self):
        for subscription in self._subscriptions:
            await subscription.cancel()
        self._subscriptions.clear()
        self.connected = False


async def connect_memory(target: str) -> Client:
    """Transport for memory://<name> addresses"""
    return MemoryClient(MemoryBroker.named(target or "default"))
