"""
Broker client boundary

Defines the session-oriented client the commands talk to, the value types it
returns, the errors the broker can report and the connection provider that
picks a transport for an address.
"""

import abc
import enum
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from importlib.metadata import entry_points
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .exceptions import ConnectionFailed, LiftbridgeError
from .logging import get_logger

logger = get_logger(__name__)

TRANSPORT_GROUP = "liftbridge_cli.transports"
DEFAULT_SCHEME = "liftbridge"

# Value returned by fetch_cursor when the cursor was never set
NO_CURSOR = -1


class AckPolicy(enum.Enum):
    """Durability acknowledgement requested for a publish"""
    LEADER = "leader"
    ALL = "all"
    NONE = "none"


class StartPosition(enum.Enum):
    """Where a subscription starts reading a partition"""
    EARLIEST = "earliest"
    NEW_ONLY = "new-only"
    LATEST = "latest"


class BrokerError(LiftbridgeError):
    """Error reported by the broker"""
    pass


class StreamExistsError(BrokerError):
    """Stream already exists"""

    def __init__(self, stream: str = ""):
        super().__init__("stream already exists")
        self.stream = stream


class NoSuchStreamError(BrokerError):
    """Stream does not exist"""

    def __init__(self, stream: str):
        super().__init__(f"no such stream: {stream}")
        self.stream = stream


class NoSuchPartitionError(BrokerError):
    """Partition does not exist"""

    def __init__(self, stream: str, partition: int):
        super().__init__(f"no such partition: {stream}/{partition}")
        self.stream = stream
        self.partition = partition


class ReadonlyPartitionError(BrokerError):
    """Partition is read-only"""

    def __init__(self, stream: str, partition: int):
        super().__init__(f"partition is readonly: {stream}/{partition}")
        self.stream = stream
        self.partition = partition


class StreamDeletedError(BrokerError):
    """Stream was deleted while subscribed"""

    def __init__(self, stream: str):
        super().__init__(f"stream deleted: {stream}")
        self.stream = stream


class Message:
    """Represents a message delivered by a subscription"""

    def __init__(
        self,
        stream: str,
        partition: int,
        offset: int,
        value: bytes,
        subject: str = "",
        timestamp: Optional[float] = None,
        headers: Optional[dict] = None
    ):
        self.stream = stream
        self.partition = partition
        self.offset = offset
        self.value = value
        self.subject = subject
        self.headers = headers or {}
        self.timestamp = timestamp if timestamp is not None else time.time()

    def __repr__(self):
        return f"Message(stream={self.stream}, partition={self.partition}, offset={self.offset}, len={len(self.value)})"


@dataclass(frozen=True)
class Ack:
    """Publish acknowledgement"""
    stream: str
    partition: int
    offset: int
    ack_policy: AckPolicy


@dataclass(frozen=True)
class BrokerInfo:
    id: str
    host: str
    port: int

    @property
    def addr(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class PartitionInfo:
    id: int
    leader: BrokerInfo
    replicas: List[BrokerInfo] = field(default_factory=list)
    isr: List[BrokerInfo] = field(default_factory=list)


@dataclass(frozen=True)
class StreamInfo:
    name: str
    subject: str
    partitions: Dict[int, PartitionInfo] = field(default_factory=dict)


@dataclass(frozen=True)
class Metadata:
    """Cluster metadata snapshot"""
    addresses: List[str]
    brokers: List[BrokerInfo]
    streams: List[StreamInfo]
    last_updated: datetime


@dataclass(frozen=True)
class PartitionEventTimestamps:
    """First and latest time an event happened on a partition (None = never)"""
    first_time: Optional[datetime] = None
    latest_time: Optional[datetime] = None


@dataclass(frozen=True)
class PartitionMetadata:
    id: int
    leader: BrokerInfo
    replicas: List[BrokerInfo]
    isr: List[BrokerInfo]
    high_watermark: int
    newest_offset: int
    paused: bool
    readonly: bool
    messages_received_timestamps: PartitionEventTimestamps
    pause_timestamps: PartitionEventTimestamps
    readonly_timestamps: PartitionEventTimestamps


# Called once per inbound message, or once with an error when delivery fails
MessageHandler = Callable[[Optional[Message], Optional[Exception]], None]


class Subscription(abc.ABC):
    """Handle on an active subscription"""

    @abc.abstractmethod
    async def cancel(self):
        """Stop delivery; no handler calls happen after this returns"""


class Client(abc.ABC):
    """
    Session-oriented broker client

    A client is owned by a single command invocation and must be closed by
    its owner. Use open_client() for scoped acquisition.
    """

    @abc.abstractmethod
    async def create_stream(self, subject: str, name: str, partitions: int = 1):
        """Create a stream; raises StreamExistsError if it already exists"""

    @abc.abstractmethod
    async def delete_stream(self, name: str):
        """Delete a stream"""

    @abc.abstractmethod
    async def set_stream_readonly(self, name: str, partitions: Sequence[int] = (), readonly: bool = True):
        """Set or clear the read-only flag (no partitions = all partitions)"""

    @abc.abstractmethod
    async def pause_stream(self, name: str, partitions: Sequence[int] = (), resume_all: bool = False):
        """Pause partitions of a stream (no partitions = all partitions)"""

    @abc.abstractmethod
    async def publish(
        self,
        stream: str,
        value: bytes,
        ack_policy: AckPolicy = AckPolicy.LEADER,
        partition: int = 0
    ) -> Optional[Ack]:
        """Publish a message; returns None when no ack was requested"""

    @abc.abstractmethod
    async def subscribe(
        self,
        stream: str,
        handler: MessageHandler,
        partition: int = 0,
        start_position: StartPosition = StartPosition.EARLIEST
    ) -> Subscription:
        """Start delivering messages of a partition to handler"""

    @abc.abstractmethod
    async def fetch_metadata(self) -> Metadata:
        """Fetch cluster metadata"""

    @abc.abstractmethod
    async def fetch_partition_metadata(self, stream: str, partition: int) -> PartitionMetadata:
        """Fetch a single partition's metadata"""

    @abc.abstractmethod
    async def set_cursor(self, cursor_id: str, stream: str, partition: int, offset: int):
        """Store a cursor offset"""

    @abc.abstractmethod
    async def fetch_cursor(self, cursor_id: str, stream: str, partition: int) -> int:
        """Return a cursor offset, NO_CURSOR if it was never set"""

    @abc.abstractmethod
    async def close(self):
        """Release the session"""


Transport = Callable[[str], Awaitable[Client]]


def parse_address(address: str) -> Tuple[str, str]:
    """
    Split an address into (scheme, target)

    A bare "host:port" uses the default scheme and must carry a numeric port.
    """
    address = address.strip()
    if "://" in address:
        scheme, target = address.split("://", 1)
        return scheme, target

    host, port = address.rsplit(":", 1)
    if not host:
        raise ValueError(f"missing host in {address!r}")
    int(port)
    return DEFAULT_SCHEME, address


def load_transport(scheme: str) -> Transport:
    """
    Find the transport registered for an address scheme

    Installed entry points win; "liftbridge" (gRPC) and "memory" ship with
    the package and are used when nothing is registered.
    """
    for entry_point in entry_points(group=TRANSPORT_GROUP, name=scheme):
        return entry_point.load()

    if scheme == DEFAULT_SCHEME:
        from .grpc_client import connect_grpc
        return connect_grpc
    if scheme == "memory":
        from .memory import connect_memory
        return connect_memory

    raise LookupError(f"no transport installed for scheme {scheme!r}")


async def connect(address: str) -> Client:
    """
    Open a session to the broker cluster at address

    Single attempt; any failure is raised as ConnectionFailed.
    """
    try:
        scheme, target = parse_address(address)
        transport = load_transport(scheme)
        client = await transport(target)
    except ConnectionFailed:
        raise
    except Exception as e:
        raise ConnectionFailed(address, e) from e

    logger.debug("connected", address=address)
    return client


@asynccontextmanager
async def open_client(address: str) -> AsyncIterator[Client]:
    """Connect and always close the client when the block exits"""
    client = await connect(address)
    try:
        yield client
    finally:
        await client.close()
        logger.debug("disconnected", address=address)
