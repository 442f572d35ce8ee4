"""
Liftbridge gRPC API messages

The subset of the broker's public API (service proto.API) used by this tool,
built into a private descriptor pool at import time. Field numbers follow the
liftbridge-api api.proto definitions.
"""

import enum

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "proto"
SERVICE = f"{PACKAGE}.API"

_Field = descriptor_pb2.FieldDescriptorProto

STRING = _Field.TYPE_STRING
BYTES = _Field.TYPE_BYTES
BOOL = _Field.TYPE_BOOL
INT32 = _Field.TYPE_INT32
INT64 = _Field.TYPE_INT64
ENUM = _Field.TYPE_ENUM
MESSAGE = _Field.TYPE_MESSAGE


class StartPosition(enum.IntEnum):
    NEW_ONLY = 0
    OFFSET = 1
    EARLIEST = 2
    LATEST = 3
    TIMESTAMP = 4


class AckPolicy(enum.IntEnum):
    LEADER = 0
    ALL = 1
    NONE = 2


class StreamError(enum.IntEnum):
    """StreamMetadata.Error"""
    OK = 0
    UNKNOWN_STREAM = 1


def method(name: str) -> str:
    """Full gRPC method path of an API call"""
    return f"/{SERVICE}/{name}"


def _ref(name: str) -> str:
    return f".{PACKAGE}.{name}"


def _add_field(message, number, name, field_type, ref=None, repeated=False):
    field = message.field.add(
        name=name,
        number=number,
        type=field_type,
        label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
    )
    if ref:
        field.type_name = _ref(ref)


def _add_map(message, number, name, key_type, value_type, value_ref=None):
    entry_name = name[0].upper() + name[1:] + "Entry"
    entry = message.nested_type.add(name=entry_name)
    entry.options.map_entry = True
    _add_field(entry, 1, "key", key_type)
    _add_field(entry, 2, "value", value_type, value_ref)
    _add_field(message, number, name, MESSAGE, f"{message.name}.{entry_name}", repeated=True)


def _add_enum(file_proto, values):
    enum_proto = file_proto.enum_type.add(name=values.__name__)
    for value in values:
        enum_proto.value.add(name=value.name, number=value.value)


# (number, name, type, type reference, repeated); "map" entries are
# (number, name, "map", key type, value type, value reference)
_MESSAGES = {
    "CreateStreamRequest": [
        (1, "subject", STRING),
        (2, "name", STRING),
        (3, "group", STRING),
        (4, "replicationFactor", INT32),
        (5, "partitions", INT32),
    ],
    "CreateStreamResponse": [],
    "DeleteStreamRequest": [(1, "name", STRING)],
    "DeleteStreamResponse": [],
    "PauseStreamRequest": [
        (1, "name", STRING),
        (2, "partitions", INT32, None, True),
        (3, "resumeAll", BOOL),
    ],
    "PauseStreamResponse": [],
    "SetStreamReadonlyRequest": [
        (1, "name", STRING),
        (2, "partitions", INT32, None, True),
        (3, "readonly", BOOL),
    ],
    "SetStreamReadonlyResponse": [],
    "SubscribeRequest": [
        (1, "stream", STRING),
        (2, "partition", INT32),
        (3, "startPosition", ENUM, "StartPosition"),
        (4, "startOffset", INT64),
        (5, "startTimestamp", INT64),
    ],
    "Message": [
        (1, "offset", INT64),
        (2, "key", BYTES),
        (3, "value", BYTES),
        (4, "timestamp", INT64),
        (5, "stream", STRING),
        (6, "partition", INT32),
        (7, "subject", STRING),
        (8, "replySubject", STRING),
        (9, "headers", "map", STRING, BYTES),
    ],
    "PublishRequest": [
        (1, "key", BYTES),
        (2, "value", BYTES),
        (3, "stream", STRING),
        (4, "partition", INT32),
        (5, "headers", "map", STRING, BYTES),
        (6, "ackInbox", STRING),
        (7, "correlationId", STRING),
        (8, "ackPolicy", ENUM, "AckPolicy"),
    ],
    "Ack": [
        (1, "stream", STRING),
        (2, "partitionSubject", STRING),
        (3, "msgSubject", STRING),
        (4, "offset", INT64),
        (5, "ackInbox", STRING),
        (6, "correlationId", STRING),
        (7, "ackPolicy", ENUM, "AckPolicy"),
        (8, "receptionTimestamp", INT64),
        (9, "commitTimestamp", INT64),
    ],
    "PublishResponse": [(1, "ack", MESSAGE, "Ack")],
    "Broker": [
        (1, "id", STRING),
        (2, "host", STRING),
        (3, "port", INT32),
    ],
    "PartitionEventTimestamps": [
        (1, "firstTimestamp", INT64),
        (2, "latestTimestamp", INT64),
    ],
    "PartitionMetadata": [
        (1, "id", INT32),
        (2, "leader", STRING),
        (3, "replicas", STRING, None, True),
        (4, "isr", STRING, None, True),
        (5, "highWatermark", INT64),
        (6, "newestOffset", INT64),
        (7, "paused", BOOL),
        (8, "readonly", BOOL),
        (9, "messagesReceivedTimestamps", MESSAGE, "PartitionEventTimestamps"),
        (10, "pauseTimestamps", MESSAGE, "PartitionEventTimestamps"),
        (11, "readonlyTimestamps", MESSAGE, "PartitionEventTimestamps"),
    ],
    "StreamMetadata": [
        (1, "name", STRING),
        (2, "subject", STRING),
        (3, "error", ENUM, "StreamError"),
        (4, "partitions", "map", INT32, MESSAGE, "PartitionMetadata"),
    ],
    "FetchMetadataRequest": [(1, "streams", STRING, None, True)],
    "FetchMetadataResponse": [
        (1, "brokers", MESSAGE, "Broker", True),
        (2, "streamMetadata", MESSAGE, "StreamMetadata", True),
    ],
    "FetchPartitionMetadataRequest": [
        (1, "stream", STRING),
        (2, "partition", INT32),
    ],
    "FetchPartitionMetadataResponse": [(1, "metadata", MESSAGE, "PartitionMetadata")],
    "SetCursorRequest": [
        (1, "stream", STRING),
        (2, "partition", INT32),
        (3, "cursorId", STRING),
        (4, "offset", INT64),
    ],
    "SetCursorResponse": [],
    "FetchCursorRequest": [
        (1, "stream", STRING),
        (2, "partition", INT32),
        (3, "cursorId", STRING),
    ],
    "FetchCursorResponse": [(1, "offset", INT64)],
}


def _build_pool() -> descriptor_pool.DescriptorPool:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="liftbridge_cli/api.proto",
        package=PACKAGE,
        syntax="proto3",
    )
    for values in (StartPosition, AckPolicy, StreamError):
        _add_enum(file_proto, values)

    for name, fields in _MESSAGES.items():
        message = file_proto.message_type.add(name=name)
        for number, field_name, field_type, *rest in fields:
            if field_type == "map":
                _add_map(message, number, field_name, *rest)
            else:
                _add_field(message, number, field_name, field_type, *rest)

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return pool


_pool = _build_pool()


def _message_class(name: str):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))


CreateStreamRequest = _message_class("CreateStreamRequest")
CreateStreamResponse = _message_class("CreateStreamResponse")
DeleteStreamRequest = _message_class("DeleteStreamRequest")
DeleteStreamResponse = _message_class("DeleteStreamResponse")
PauseStreamRequest = _message_class("PauseStreamRequest")
PauseStreamResponse = _message_class("PauseStreamResponse")
SetStreamReadonlyRequest = _message_class("SetStreamReadonlyRequest")
SetStreamReadonlyResponse = _message_class("SetStreamReadonlyResponse")
SubscribeRequest = _message_class("SubscribeRequest")
Message = _message_class("Message")
PublishRequest = _message_class("PublishRequest")
PublishResponse = _message_class("PublishResponse")
Ack = _message_class("Ack")
Broker = _message_class("Broker")
PartitionEventTimestamps = _message_class("PartitionEventTimestamps")
PartitionMetadata = _message_class("PartitionMetadata")
StreamMetadata = _message_class("StreamMetadata")
FetchMetadataRequest = _message_class("FetchMetadataRequest")
FetchMetadataResponse = _message_class("FetchMetadataResponse")
FetchPartitionMetadataRequest = _message_class("FetchPartitionMetadataRequest")
FetchPartitionMetadataResponse = _message_class("FetchPartitionMetadataResponse")
SetCursorRequest = _message_class("SetCursorRequest")
SetCursorResponse = _message_class("SetCursorResponse")
FetchCursorRequest = _message_class("FetchCursorRequest")
FetchCursorResponse = _message_class("FetchCursorResponse")
