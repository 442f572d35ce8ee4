"""
Pytest configuration and fixtures
"""
import socket
import time
import uuid
from concurrent import futures

import grpc
import pytest

from liftbridge_cli import api
from liftbridge_cli import client as client_module
from liftbridge_cli.client import (
    BrokerError,
    NoSuchPartitionError,
    NoSuchStreamError,
    ReadonlyPartitionError,
    StreamExistsError,
)
from liftbridge_cli.logging import configure_logging
from liftbridge_cli.memory import MemoryBroker


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: needs a running Liftbridge broker")


@pytest.fixture(scope="session", autouse=True)
def structured_logging():
    """Send debug logs to stderr for the whole run"""
    configure_logging(log_level="DEBUG")


@pytest.fixture
def broker_address():
    """Default broker address for tests"""
    return "127.0.0.1:9292"


@pytest.fixture
def broker_name():
    """Unique in-process broker name"""
    name = f"test-{uuid.uuid4().hex[:8]}"
    yield name
    MemoryBroker.discard(name)


@pytest.fixture
def memory_address(broker_name):
    """Address of a fresh in-process broker"""
    return f"memory://{broker_name}"


@pytest.fixture
def broker(broker_name):
    """The in-process broker behind memory_address"""
    return MemoryBroker.named(broker_name)


@pytest.fixture
def test_stream():
    """Generate a unique test stream name"""
    return f"test-stream-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def use_transport(monkeypatch):
    """Route every address to the given transport coroutine"""
    def install(transport):
        monkeypatch.setattr(client_module, "load_transport", lambda scheme: transport)
    return install


def is_broker_available(host="127.0.0.1", port=9292, timeout=1):
    """Check if a Liftbridge broker is listening"""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        result = sock.connect_ex((host, port))
        sock.close()
        return result == 0
    except socket.error:
        return False


@pytest.fixture(scope="session")
def require_broker():
    """Skip tests if no broker is listening"""
    if not is_broker_available():
        pytest.skip("Liftbridge broker not running on 127.0.0.1:9292")


_STATUS_CODES = [
    (StreamExistsError, grpc.StatusCode.ALREADY_EXISTS),
    (NoSuchStreamError, grpc.StatusCode.NOT_FOUND),
    (NoSuchPartitionError, grpc.StatusCode.NOT_FOUND),
    (ReadonlyPartitionError, grpc.StatusCode.FAILED_PRECONDITION),
]


def _nanos(value):
    return int(value.timestamp() * 1e9) if value else 0


def _timestamps(timestamps):
    return api.PartitionEventTimestamps(
        firstTimestamp=_nanos(timestamps.first_time),
        latestTimestamp=_nanos(timestamps.latest_time),
    )


class LiftbridgeApi:
    """Serves the Liftbridge gRPC API from an in-process broker"""

    def __init__(self, broker):
        self.broker = broker

    def _invoke(self, context, call, *args):
        try:
            return call(*args)
        except BrokerError as e:
            for error_type, code in _STATUS_CODES:
                if isinstance(e, error_type):
                    context.abort(code, str(e))
            context.abort(grpc.StatusCode.INTERNAL, str(e))

    def CreateStream(self, request, context):
        self._invoke(context, self.broker.create_stream, request.subject, request.name, request.partitions or 1)
        return api.CreateStreamResponse()

    def DeleteStream(self, request, context):
        self._invoke(context, self.broker.delete_stream, request.name)
        return api.DeleteStreamResponse()

    def PauseStream(self, request, context):
        self._invoke(context, self.broker.pause_stream, request.name, list(request.partitions), request.resumeAll)
        return api.PauseStreamResponse()

    def SetStreamReadonly(self, request, context):
        self._invoke(context, self.broker.set_stream_readonly, request.name, list(request.partitions), request.readonly)
        return api.SetStreamReadonlyResponse()

    def Publish(self, request, context):
        message = self._invoke(context, self.broker.publish, request.stream, request.value, request.partition)
        if request.ackPolicy == api.AckPolicy.NONE:
            return api.PublishResponse()
        return api.PublishResponse(ack=api.Ack(
            stream=request.stream,
            offset=message.offset,
            ackPolicy=request.ackPolicy,
        ))

    def FetchMetadata(self, request, context):
        info = self.broker.info
        response = api.FetchMetadataResponse(brokers=[api.Broker(id=info.id, host=info.host, port=info.port)])

        known = {stream.name: stream for stream in self.broker.metadata().streams}
        for name in list(request.streams) or list(known):
            stream_metadata = response.streamMetadata.add(name=name)
            if name not in known:
                stream_metadata.error = api.StreamError.UNKNOWN_STREAM
                continue
            stream_metadata.subject = known[name].subject
            for partition_id, partition in known[name].partitions.items():
                entry = stream_metadata.partitions[partition_id]
                entry.id = partition.id
                entry.leader = partition.leader.id
                entry.replicas.extend(b.id for b in partition.replicas)
                entry.isr.extend(b.id for b in partition.isr)
        return response

    def FetchPartitionMetadata(self, request, context):
        p = self._invoke(context, self.broker.partition_metadata, request.stream, request.partition)
        return api.FetchPartitionMetadataResponse(metadata=api.PartitionMetadata(
            id=p.id,
            leader=p.leader.id,
            replicas=[b.id for b in p.replicas],
            isr=[b.id for b in p.isr],
            highWatermark=p.high_watermark,
            newestOffset=p.newest_offset,
            paused=p.paused,
            readonly=p.readonly,
            messagesReceivedTimestamps=_timestamps(p.messages_received_timestamps),
            pauseTimestamps=_timestamps(p.pause_timestamps),
            readonlyTimestamps=_timestamps(p.readonly_timestamps),
        ))

    def SetCursor(self, request, context):
        self._invoke(
            context, self.broker.set_cursor,
            request.cursorId, request.stream, request.partition, request.offset,
        )
        return api.SetCursorResponse()

    def FetchCursor(self, request, context):
        offset = self._invoke(context, self.broker.fetch_cursor, request.cursorId, request.stream, request.partition)
        return api.FetchCursorResponse(offset=offset)

    def Subscribe(self, request, context):
        partition = self._invoke(context, self.broker._partition, request.stream, request.partition)
        stream = self.broker._streams[request.stream]
        offset = 0 if request.startPosition == api.StartPosition.EARLIEST else len(partition.messages)

        yield api.Message()
        while context.is_active():
            while offset < len(partition.messages):
                m = partition.messages[offset]
                yield api.Message(
                    offset=m.offset,
                    value=m.value,
                    stream=m.stream,
                    partition=m.partition,
                    subject=m.subject,
                )
                offset += 1
            if self.broker._streams.get(request.stream) is not stream:
                context.abort(grpc.StatusCode.NOT_FOUND, "stream deleted")
            time.sleep(0.01)


_UNARY_CALLS = {
    "CreateStream": (api.CreateStreamRequest, api.CreateStreamResponse),
    "DeleteStream": (api.DeleteStreamRequest, api.DeleteStreamResponse),
    "PauseStream": (api.PauseStreamRequest, api.PauseStreamResponse),
    "SetStreamReadonly": (api.SetStreamReadonlyRequest, api.SetStreamReadonlyResponse),
    "Publish": (api.PublishRequest, api.PublishResponse),
    "FetchMetadata": (api.FetchMetadataRequest, api.FetchMetadataResponse),
    "FetchPartitionMetadata": (api.FetchPartitionMetadataRequest, api.FetchPartitionMetadataResponse),
    "SetCursor": (api.SetCursorRequest, api.SetCursorResponse),
    "FetchCursor": (api.FetchCursorRequest, api.FetchCursorResponse),
}


def api_handler(service):
    handlers = {
        name: grpc.unary_unary_rpc_method_handler(
            getattr(service, name),
            request_deserializer=request.FromString,
            response_serializer=response.SerializeToString,
        )
        for name, (request, response) in _UNARY_CALLS.items()
    }
    handlers["Subscribe"] = grpc.unary_stream_rpc_method_handler(
        service.Subscribe,
        request_deserializer=api.SubscribeRequest.FromString,
        response_serializer=api.Message.SerializeToString,
    )
    return grpc.method_handlers_generic_handler(api.SERVICE, handlers)


@pytest.fixture
def liftbridge_server(broker_name):
    """Local gRPC API server backed by an in-process broker; yields (address, broker)"""
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=8))
    port = server.add_insecure_port("127.0.0.1:0")
    broker = MemoryBroker(broker_name, port=port)
    server.add_generic_rpc_handlers((api_handler(LiftbridgeApi(broker)),))
    server.start()
    yield f"127.0.0.1:{port}", broker
    server.stop(None)
