"""
gRPC transport

Talks to a Liftbridge cluster over its public gRPC API. Registered as the
"liftbridge" transport, so bare host:port addresses resolve here.

Subscriptions and partition metadata requests are routed to the partition
leader; cursor requests to the leader of the internal cursors partition that
owns the cursor.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import grpc
from grpc import aio

from . import api
from .client import (
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
    StartPosition,
    StreamExistsError,
    StreamInfo,
    Subscription,
)
from .config import settings
from .exceptions import BrokerTimeout
from .logging import get_logger

logger = get_logger(__name__)

CURSORS_STREAM = "__cursors"

_ACK_POLICIES = {
    AckPolicy.LEADER: api.AckPolicy.LEADER,
    AckPolicy.ALL: api.AckPolicy.ALL,
    AckPolicy.NONE: api.AckPolicy.NONE,
}

_START_POSITIONS = {
    StartPosition.EARLIEST: api.StartPosition.EARLIEST,
    StartPosition.NEW_ONLY: api.StartPosition.NEW_ONLY,
    StartPosition.LATEST: api.StartPosition.LATEST,
}


def broker_error(error: grpc.RpcError, stream: str = "") -> BrokerError:
    """Translate a gRPC status into a broker error"""
    code = error.code()
    if code == grpc.StatusCode.ALREADY_EXISTS:
        return StreamExistsError(stream)
    details = error.details() or code.name.lower()
    return BrokerError(details)


def fnv1a_32(data: bytes) -> int:
    """32-bit FNV-1a hash, used to place cursors on partitions"""
    value = 0x811C9DC5
    for byte in data:
        value ^= byte
        value = (value * 0x01000193) & 0xFFFFFFFF
    return value


def _time(nanoseconds: int) -> Optional[datetime]:
    if not nanoseconds:
        return None
    return datetime.fromtimestamp(nanoseconds / 1e9, timezone.utc)


def _timestamps(timestamps) -> PartitionEventTimestamps:
    return PartitionEventTimestamps(
        _time(timestamps.firstTimestamp),
        _time(timestamps.latestTimestamp),
    )


def _broker(brokers: Dict[str, BrokerInfo], broker_id: str) -> BrokerInfo:
    return brokers.get(broker_id, BrokerInfo(broker_id, "", 0))


def _message(message, stream: str) -> Message:
    return Message(
        message.stream or stream,
        message.partition,
        message.offset,
        message.value,
        subject=message.subject,
        timestamp=message.timestamp / 1e9 if message.timestamp else None,
        headers=dict(message.headers),
    )


class GrpcSubscription(Subscription):
    """Reads a server stream and hands each message to the handler"""

    def __init__(self, call, stream: str, handler: MessageHandler):
        self._call = call
        self._stream = stream
        self._handler = handler
        self._task: Optional[asyncio.Task] = None

    def start(self):
        self._task = asyncio.create_task(self._deliver())

    async def _deliver(self):
        while True:
            try:
                message = await self._call.read()
            except grpc.RpcError as e:
                self._handler(None, broker_error(e, self._stream))
                return
            if message is aio.EOF:
                self._handler(None, BrokerError("subscription closed by broker"))
                return
            self._handler(_message(message, self._stream), None)

    async def cancel(self):
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        self._call.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class GrpcClient(Client):
    """
    Client for a Liftbridge cluster

    Args:
        channel: Open channel to the seed broker
        address: Seed broker address
    """

    def __init__(self, channel: aio.Channel, address: str):
        self.address = address
        self._channel = channel
        self._channels: Dict[str, aio.Channel] = {address: channel}
        self._subscriptions: List[GrpcSubscription] = []

    async def _call(self, name: str, request, response_type, stream: str = "", channel=None):
        rpc = (channel or self._channel).unary_unary(
            api.method(name),
            request_serializer=type(request).SerializeToString,
            response_deserializer=response_type.FromString,
        )
        try:
            return await rpc(request)
        except grpc.RpcError as e:
            raise broker_error(e, stream) from e

    def _channel_to(self, address: str) -> aio.Channel:
        if address not in self._channels:
            self._channels[address] = aio.insecure_channel(address)
        return self._channels[address]

    async def _fetch_metadata(self, streams: Sequence[str] = ()):
        return await self._call(
            "FetchMetadata",
            api.FetchMetadataRequest(streams=list(streams)),
            api.FetchMetadataResponse,
        )

    async def _leader(self, stream: str, partition: int) -> Tuple[aio.Channel, Dict[str, BrokerInfo]]:
        """Channel to the leader of a partition, with the known brokers"""
        response = await self._fetch_metadata([stream])
        brokers = {b.id: BrokerInfo(b.id, b.host, b.port) for b in response.brokers}

        for stream_metadata in response.streamMetadata:
            if stream_metadata.name != stream:
                continue
            if stream_metadata.error == api.StreamError.UNKNOWN_STREAM:
                raise NoSuchStreamError(stream)
            if partition not in stream_metadata.partitions:
                raise NoSuchPartitionError(stream, partition)
            leader = stream_metadata.partitions[partition].leader
            if leader not in brokers:
                raise BrokerError(f"no known leader for {stream}/{partition}")
            return self._channel_to(brokers[leader].addr), brokers

        raise NoSuchStreamError(stream)

    async def _cursor_channel(self, cursor_id: str, stream: str, partition: int) -> aio.Channel:
        """Channel to the leader of the cursors partition holding a cursor"""
        response = await self._fetch_metadata([CURSORS_STREAM])
        brokers = {b.id: BrokerInfo(b.id, b.host, b.port) for b in response.brokers}

        for stream_metadata in response.streamMetadata:
            if stream_metadata.name != CURSORS_STREAM or not stream_metadata.partitions:
                continue
            key = f"{cursor_id},{stream},{partition}".encode("utf-8")
            cursors_partition = fnv1a_32(key) % len(stream_metadata.partitions)
            if cursors_partition not in stream_metadata.partitions:
                continue
            leader = stream_metadata.partitions[cursors_partition].leader
            if leader in brokers:
                return self._channel_to(brokers[leader].addr)

        # The broker reports its own error when cursors are disabled
        return self._channel

    async def create_stream(self, subject: str, name: str, partitions: int = 1):
        await self._call(
            "CreateStream",
            api.CreateStreamRequest(subject=subject, name=name, partitions=partitions, replicationFactor=1),
            api.CreateStreamResponse,
            stream=name,
        )

    async def delete_stream(self, name: str):
        await self._call(
            "DeleteStream",
            api.DeleteStreamRequest(name=name),
            api.DeleteStreamResponse,
            stream=name,
        )

    async def set_stream_readonly(self, name: str, partitions: Sequence[int] = (), readonly: bool = True):
        await self._call(
            "SetStreamReadonly",
            api.SetStreamReadonlyRequest(name=name, partitions=list(partitions), readonly=readonly),
            api.SetStreamReadonlyResponse,
            stream=name,
        )

    async def pause_stream(self, name: str, partitions: Sequence[int] = (), resume_all: bool = False):
        await self._call(
            "PauseStream",
            api.PauseStreamRequest(name=name, partitions=list(partitions), resumeAll=resume_all),
            api.PauseStreamResponse,
            stream=name,
        )

    async def publish(
        self,
        stream: str,
        value: bytes,
        ack_policy: AckPolicy = AckPolicy.LEADER,
        partition: int = 0
    ) -> Optional[Ack]:
        response = await self._call(
            "Publish",
            api.PublishRequest(
                stream=stream,
                partition=partition,
                value=value,
                ackPolicy=_ACK_POLICIES[ack_policy],
            ),
            api.PublishResponse,
            stream=stream,
        )
        if ack_policy is AckPolicy.NONE or not response.HasField("ack"):
            return None
        return Ack(stream, partition, response.ack.offset, ack_policy)

    async def subscribe(
        self,
        stream: str,
        handler: MessageHandler,
        partition: int = 0,
        start_position: StartPosition = StartPosition.EARLIEST
    ) -> Subscription:
        channel, _ = await self._leader(stream, partition)
        rpc = channel.unary_stream(
            api.method("Subscribe"),
            request_serializer=api.SubscribeRequest.SerializeToString,
            response_deserializer=api.Message.FromString,
        )
        call = rpc(api.SubscribeRequest(
            stream=stream,
            partition=partition,
            startPosition=_START_POSITIONS[start_position],
        ))

        # The broker confirms a subscription with an empty message
        try:
            first = await call.read()
        except grpc.RpcError as e:
            raise broker_error(e, stream) from e
        except BaseException:
            call.cancel()
            raise
        if first is aio.EOF:
            raise BrokerError("subscription closed by broker")

        subscription = GrpcSubscription(call, stream, handler)
        subscription.start()
        self._subscriptions.append(subscription)
        return subscription

    async def fetch_metadata(self) -> Metadata:
        response = await self._fetch_metadata()
        brokers = {b.id: BrokerInfo(b.id, b.host, b.port) for b in response.brokers}

        streams = []
        for stream_metadata in response.streamMetadata:
            partitions = {
                partition_id: PartitionInfo(
                    p.id,
                    _broker(brokers, p.leader),
                    [_broker(brokers, r) for r in p.replicas],
                    [_broker(brokers, r) for r in p.isr],
                )
                for partition_id, p in stream_metadata.partitions.items()
            }
            streams.append(StreamInfo(stream_metadata.name, stream_metadata.subject, partitions))

        return Metadata([self.address], list(brokers.values()), streams, datetime.now(timezone.utc))

    async def fetch_partition_metadata(self, stream: str, partition: int) -> PartitionMetadata:
        channel, brokers = await self._leader(stream, partition)
        response = await self._call(
            "FetchPartitionMetadata",
            api.FetchPartitionMetadataRequest(stream=stream, partition=partition),
            api.FetchPartitionMetadataResponse,
            stream=stream,
            channel=channel,
        )
        p = response.metadata
        return PartitionMetadata(
            id=p.id,
            leader=_broker(brokers, p.leader),
            replicas=[_broker(brokers, r) for r in p.replicas],
            isr=[_broker(brokers, r) for r in p.isr],
            high_watermark=p.highWatermark,
            newest_offset=p.newestOffset,
            paused=p.paused,
            readonly=p.readonly,
            messages_received_timestamps=_timestamps(p.messagesReceivedTimestamps),
            pause_timestamps=_timestamps(p.pauseTimestamps),
            readonly_timestamps=_timestamps(p.readonlyTimestamps),
        )

    async def set_cursor(self, cursor_id: str, stream: str, partition: int, offset: int):
        channel = await self._cursor_channel(cursor_id, stream, partition)
        await self._call(
            "SetCursor",
            api.SetCursorRequest(stream=stream, partition=partition, cursorId=cursor_id, offset=offset),
            api.SetCursorResponse,
            stream=stream,
            channel=channel,
        )

    async def fetch_cursor(self, cursor_id: str, stream: str, partition: int) -> int:
        channel = await self._cursor_channel(cursor_id, stream, partition)
        response = await self._call(
            "FetchCursor",
            api.FetchCursorRequest(stream=stream, partition=partition, cursorId=cursor_id),
            api.FetchCursorResponse,
            stream=stream,
            channel=channel,
        )
        return response.offset

    async def close(self):
        for subscription in self._subscriptions:
            await subscription.cancel()
        self._subscriptions.clear()
        for channel in self._channels.values():
            await channel.close()
        self._channels.clear()


async def connect_grpc(target: str, timeout: float = settings.timeout) -> Client:
    """Transport for host:port addresses"""
    channel = aio.insecure_channel(target)
    try:
        await asyncio.wait_for(channel.channel_ready(), timeout=timeout)
    except asyncio.TimeoutError:
        await channel.close()
        raise BrokerTimeout(timeout) from None
    except BaseException:
        await channel.close()
        raise

    logger.debug("channel ready", target=target)
    return GrpcClient(channel, target)
