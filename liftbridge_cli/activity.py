"""
Activity stream event codec

The broker records stream lifecycle operations on the activity stream as
protobuf-encoded ActivityStreamEvent messages. This module decodes them into
one typed variant per operation and renders a one-line summary.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, Tuple, Union

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError as ProtobufDecodeError

from .exceptions import DecodeError

UNKNOWN_ACTIVITY = "unknown activity"


class ActivityOp(enum.IntEnum):
    """Discriminant of an activity stream event"""
    CREATE_STREAM = 0
    DELETE_STREAM = 1
    PAUSE_STREAM = 2
    RESUME_STREAM = 3
    SET_STREAM_READONLY = 4


_Field = descriptor_pb2.FieldDescriptorProto
_PACKAGE = "liftbridge.activity"


def _add_message(file_proto, name: str, fields):
    message = file_proto.message_type.add(name=name)
    for number, (field_name, field_type, repeated, type_name) in enumerate(fields, 1):
        field = message.field.add(
            name=field_name,
            number=number,
            type=field_type,
            label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
        )
        if type_name:
            field.type_name = f".{_PACKAGE}.{type_name}"


def _build_event_class():
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="liftbridge_cli/activity.proto",
        package=_PACKAGE,
        syntax="proto3",
    )

    ops = file_proto.enum_type.add(name="ActivityStreamOp")
    for op in ActivityOp:
        ops.value.add(name=op.name, number=op.value)

    stream = ("stream", _Field.TYPE_STRING, False, None)
    partitions = ("partitions", _Field.TYPE_INT32, True, None)

    _add_message(file_proto, "CreateStreamOp", [stream, partitions])
    _add_message(file_proto, "DeleteStreamOp", [stream])
    _add_message(file_proto, "PauseStreamOp", [
        stream, partitions, ("resumeAll", _Field.TYPE_BOOL, False, None),
    ])
    _add_message(file_proto, "ResumeStreamOp", [stream, partitions])
    _add_message(file_proto, "SetStreamReadonlyOp", [
        stream, partitions, ("readonly", _Field.TYPE_BOOL, False, None),
    ])
    _add_message(file_proto, "ActivityStreamEvent", [
        ("id", _Field.TYPE_UINT64, False, None),
        ("op", _Field.TYPE_ENUM, False, "ActivityStreamOp"),
        ("createStreamOp", _Field.TYPE_MESSAGE, False, "CreateStreamOp"),
        ("deleteStreamOp", _Field.TYPE_MESSAGE, False, "DeleteStreamOp"),
        ("pauseStreamOp", _Field.TYPE_MESSAGE, False, "PauseStreamOp"),
        ("resumeStreamOp", _Field.TYPE_MESSAGE, False, "ResumeStreamOp"),
        ("setStreamReadonlyOp", _Field.TYPE_MESSAGE, False, "SetStreamReadonlyOp"),
    ])

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return message_factory.GetMessageClass(
        pool.FindMessageTypeByName(f"{_PACKAGE}.ActivityStreamEvent")
    )


ActivityStreamEvent = _build_event_class()


@dataclass(frozen=True)
class CreateStreamActivity:
    stream: str
    partitions: Tuple[int, ...] = ()
    id: int = 0

    op = ActivityOp.CREATE_STREAM


@dataclass(frozen=True)
class DeleteStreamActivity:
    stream: str
    id: int = 0

    op = ActivityOp.DELETE_STREAM


@dataclass(frozen=True)
class PauseStreamActivity:
    stream: str
    partitions: Tuple[int, ...] = ()
    resume_all: bool = False
    id: int = 0

    op = ActivityOp.PAUSE_STREAM


@dataclass(frozen=True)
class ResumeStreamActivity:
    stream: str
    partitions: Tuple[int, ...] = ()
    id: int = 0

    op = ActivityOp.RESUME_STREAM


@dataclass(frozen=True)
class UnknownActivity:
    """Any operation this tool does not summarise"""
    op: int
    id: int = 0


ActivityEvent = Union[
    CreateStreamActivity,
    DeleteStreamActivity,
    PauseStreamActivity,
    ResumeStreamActivity,
    UnknownActivity,
]


def op_name(op: int) -> str:
    """Name of a discriminant, or its number when the name is unknown"""
    try:
        return ActivityOp(op).name
    except ValueError:
        return str(op)


def decode(payload: bytes) -> ActivityEvent:
    """
    Decode an activity stream payload

    Raises:
        DecodeError: payload is not a valid ActivityStreamEvent
    """
    event = ActivityStreamEvent()
    try:
        event.ParseFromString(payload)
    except ProtobufDecodeError as e:
        raise DecodeError(f"invalid activity stream event: {e}") from e

    if event.op == ActivityOp.CREATE_STREAM:
        body = event.createStreamOp
        return CreateStreamActivity(body.stream, tuple(body.partitions), event.id)
    if event.op == ActivityOp.DELETE_STREAM:
        return DeleteStreamActivity(event.deleteStreamOp.stream, event.id)
    if event.op == ActivityOp.PAUSE_STREAM:
        body = event.pauseStreamOp
        return PauseStreamActivity(body.stream, tuple(body.partitions), body.resumeAll, event.id)
    if event.op == ActivityOp.RESUME_STREAM:
        body = event.resumeStreamOp
        return ResumeStreamActivity(body.stream, tuple(body.partitions), event.id)
    return UnknownActivity(event.op, event.id)


def encode(event: ActivityEvent) -> bytes:
    """Encode an activity event into its wire payload"""
    message = ActivityStreamEvent(id=event.id, op=int(event.op))

    if isinstance(event, CreateStreamActivity):
        message.createStreamOp.stream = event.stream
        message.createStreamOp.partitions.extend(event.partitions)
    elif isinstance(event, DeleteStreamActivity):
        message.deleteStreamOp.stream = event.stream
    elif isinstance(event, PauseStreamActivity):
        message.pauseStreamOp.stream = event.stream
        message.pauseStreamOp.partitions.extend(event.partitions)
        message.pauseStreamOp.resumeAll = event.resume_all
    elif isinstance(event, ResumeStreamActivity):
        message.resumeStreamOp.stream = event.stream
        message.resumeStreamOp.partitions.extend(event.partitions)

    return message.SerializeToString()


def encode_set_readonly(event_id: int, stream: str, partitions: Iterable[int], readonly: bool) -> bytes:
    """Encode a SET_STREAM_READONLY event (decoded as UnknownActivity)"""
    message = ActivityStreamEvent(id=event_id, op=int(ActivityOp.SET_STREAM_READONLY))
    message.setStreamReadonlyOp.stream = stream
    message.setStreamReadonlyOp.partitions.extend(partitions)
    message.setStreamReadonlyOp.readonly = readonly
    return message.SerializeToString()


def _partitions(partitions: Tuple[int, ...]) -> str:
    return "[" + " ".join(str(p) for p in partitions) + "]"


def render(event: ActivityEvent) -> str:
    """Summarise an activity event"""
    if isinstance(event, CreateStreamActivity):
        return f"stream: {event.stream}, partitions: {_partitions(event.partitions)}"
    if isinstance(event, DeleteStreamActivity):
        return f"stream: {event.stream}"
    if isinstance(event, PauseStreamActivity):
        resume_all = "true" if event.resume_all else "false"
        return (
            f"stream: {event.stream}, partitions: {_partitions(event.partitions)}, "
            f"resumeAll: {resume_all}"
        )
    if isinstance(event, ResumeStreamActivity):
        return f"stream: {event.stream}, partitions: {_partitions(event.partitions)}"
    return UNKNOWN_ACTIVITY


def format_activity_message(event: ActivityEvent, offset: int) -> str:
    """Line printed for each activity stream message"""
    return (
        f"Received activity stream message: op: {op_name(event.op)}, "
        f"{render(event)}, offset: {offset}"
    )
