"""
Liftbridge CLI

Administrative and data-plane command-line client for Liftbridge.
"""

# Broker client boundary
from .client import (
    NO_CURSOR,
    Ack,
    AckPolicy,
    BrokerError,
    Client,
    Message,
    StartPosition,
    StreamExistsError,
    connect,
    open_client,
)
from .grpc_client import GrpcClient
from .memory import MemoryBroker, MemoryClient

# Session layer
from .session import ensure_stream_created, subscribe_to_stream
from .options import resolve_ack_policy, to_partition_indices

# Exceptions
from .exceptions import (
    LiftbridgeError,
    ConnectionFailed,
    StreamCreationFailed,
    InvalidAckPolicy,
    SubscriptionFailed,
    DeliveryError,
    DecodeError,
    BrokerTimeout,
    CommandError,
    MetadataFetchFailed,
    CursorOperationFailed
)

__version__ = "0.1.0"
__all__ = [
    # Client
    "Ack",
    "AckPolicy",
    "BrokerError",
    "Client",
    "Message",
    "NO_CURSOR",
    "StartPosition",
    "StreamExistsError",
    "connect",
    "open_client",
    "GrpcClient",
    "MemoryBroker",
    "MemoryClient",
    # Session
    "ensure_stream_created",
    "subscribe_to_stream",
    "resolve_ack_policy",
    "to_partition_indices",
    # Exceptions
    "LiftbridgeError",
    "ConnectionFailed",
    "StreamCreationFailed",
    "InvalidAckPolicy",
    "SubscriptionFailed",
    "DeliveryError",
    "DecodeError",
    "BrokerTimeout",
    "CommandError",
    "MetadataFetchFailed",
    "CursorOperationFailed"
]
