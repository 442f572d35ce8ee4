"""
Tests for command handlers
"""
import asyncio

import pytest

from liftbridge_cli import (
    NO_CURSOR,
    CommandError,
    ConnectionFailed,
    CursorOperationFailed,
    InvalidAckPolicy,
    MemoryClient,
    MetadataFetchFailed,
    StreamCreationFailed,
    commands,
)
from liftbridge_cli import activity
from liftbridge_cli.client import ReadonlyPartitionError
from liftbridge_cli.memory import connect_memory


class RecordingClient(MemoryClient):
    """Memory client that records which broker calls were made"""

    calls = []

    async def create_stream(self, subject, name, partitions=1):
        self.calls.append("create_stream")
        await super().create_stream(subject, name, partitions)

    async def publish(self, stream, value, ack_policy=None, partition=0):
        self.calls.append("publish")
        return await super().publish(stream, value, ack_policy, partition)


@pytest.fixture
def recording_transport(use_transport, broker):
    RecordingClient.calls = []

    async def transport(target):
        return RecordingClient(broker)

    use_transport(transport)
    return RecordingClient.calls


def activity_events(broker):
    log = broker._partition(broker.activity_stream, 0).messages
    return [activity.decode(message.value) for message in log]


class TestCreate:
    """Test the create command"""

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, memory_address, broker, test_stream):
        """Test creating the same stream twice succeeds"""
        await commands.create(memory_address, test_stream)
        await commands.create(memory_address, test_stream)

        names = [s.name for s in broker.metadata().streams]
        assert names.count(test_stream) == 1

    @pytest.mark.asyncio
    async def test_connection_error_prefix(self, test_stream):
        """Test errors are reported under the command prefix"""
        with pytest.raises(CommandError) as exc_info:
            await commands.create("bad-address", test_stream)
        assert str(exc_info.value).startswith("creation failed: connection failed with address bad-address")
        assert isinstance(exc_info.value.cause, ConnectionFailed)


class TestPublish:
    """Test the publish command"""

    @pytest.mark.asyncio
    async def test_publish_with_create(self, memory_address, broker, test_stream):
        """Test publishing with stream creation on an empty broker"""
        await commands.publish(memory_address, test_stream, "bar", create_stream=True)

        messages = broker._partition(test_stream, 0).messages
        assert [(m.offset, m.value) for m in messages] == [(0, b"bar")]

    @pytest.mark.asyncio
    async def test_publish_without_create_does_not_create(self, memory_address, broker, test_stream):
        """Test streams are never created unless asked"""
        with pytest.raises(CommandError) as exc_info:
            await commands.publish(memory_address, test_stream, "bar")
        assert str(exc_info.value) == f"publication failed: no such stream: {test_stream}"
        assert test_stream not in [s.name for s in broker.metadata().streams]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ack_policy", ["leader", "all", "none"])
    async def test_ack_policies(self, memory_address, broker, test_stream, ack_policy):
        """Test every valid ack policy publishes"""
        await commands.publish(memory_address, test_stream, "bar", ack_policy=ack_policy, create_stream=True)
        assert len(broker._partition(test_stream, 0).messages) == 1

    @pytest.mark.asyncio
    async def test_invalid_ack_policy_skips_publish(self, recording_transport, test_stream):
        """Test an invalid ack policy fails before any broker call"""
        with pytest.raises(CommandError) as exc_info:
            await commands.publish("127.0.0.1:9292", test_stream, "bar", ack_policy="most", create_stream=True)
        assert isinstance(exc_info.value.cause, InvalidAckPolicy)
        assert str(exc_info.value) == "publication failed: invalid ack policy: most"
        assert recording_transport == []

    @pytest.mark.asyncio
    async def test_ensure_then_publish(self, recording_transport, test_stream):
        """Test stream creation happens before the publish call"""
        await commands.publish("127.0.0.1:9292", test_stream, "bar", create_stream=True)
        assert recording_transport == ["create_stream", "publish"]

    @pytest.mark.asyncio
    async def test_creation_failure_is_wrapped(self, use_transport, broker, test_stream):
        """Test creation failures carry the command prefix"""
        class Failing(MemoryClient):
            async def create_stream(self, subject, name, partitions=1):
                raise ReadonlyPartitionError(name, 0)

        async def transport(target):
            return Failing(broker)

        use_transport(transport)
        with pytest.raises(CommandError) as exc_info:
            await commands.publish("127.0.0.1:9292", test_stream, "bar", create_stream=True)
        assert isinstance(exc_info.value.cause, StreamCreationFailed)
        assert str(exc_info.value).startswith(f"publication failed: stream creation failed for stream {test_stream}")

    @pytest.mark.asyncio
    async def test_deadline(self, use_transport, broker, test_stream):
        """Test a broker call exceeding the deadline fails the command"""
        class Slow(MemoryClient):
            async def publish(self, *args, **kwargs):
                await asyncio.sleep(10)

        async def transport(target):
            return Slow(broker)

        use_transport(transport)
        with pytest.raises(CommandError, match="no response from broker within 0.05s"):
            await commands.publish("127.0.0.1:9292", test_stream, "bar", timeout=0.05)


class TestStreamAdmin:
    """Test readonly, pause and delete commands"""

    @pytest.mark.asyncio
    async def test_set_readonly(self, memory_address, broker, test_stream):
        """Test a stream can be made read-only and writable again"""
        await commands.set_readonly(memory_address, test_stream, create_stream=True)
        assert broker.partition_metadata(test_stream, 0).readonly

        with pytest.raises(CommandError, match="partition is readonly"):
            await commands.publish(memory_address, test_stream, "bar")

        await commands.set_readonly(memory_address, test_stream, readonly=False, partitions=[0])
        assert not broker.partition_metadata(test_stream, 0).readonly

    @pytest.mark.asyncio
    async def test_set_readonly_unknown_partition(self, memory_address, broker, test_stream):
        """Test targeting a missing partition fails"""
        broker.create_stream(test_stream, test_stream)
        with pytest.raises(CommandError, match="^set readonly failed: no such partition"):
            await commands.set_readonly(memory_address, test_stream, partitions=[5])

    @pytest.mark.asyncio
    async def test_pause_and_resume_all(self, memory_address, broker, test_stream):
        """Test publishing to a paused partition resumes every partition with resume-all"""
        broker.create_stream(test_stream, test_stream, partitions=2)
        await commands.pause(memory_address, test_stream, resume_all=True)
        assert broker.partition_metadata(test_stream, 1).paused

        await commands.publish(memory_address, test_stream, "wake")
        assert not broker.partition_metadata(test_stream, 0).paused
        assert not broker.partition_metadata(test_stream, 1).paused

        events = activity_events(broker)
        assert events[-2] == activity.PauseStreamActivity(test_stream, (0, 1), True, id=events[-2].id)
        assert events[-1] == activity.ResumeStreamActivity(test_stream, (0, 1), id=events[-1].id)

    @pytest.mark.asyncio
    async def test_pause_single_partition(self, memory_address, broker, test_stream):
        """Test only the selected partitions are paused"""
        broker.create_stream(test_stream, test_stream, partitions=2)
        await commands.pause(memory_address, test_stream, partitions=[1])
        assert not broker.partition_metadata(test_stream, 0).paused
        assert broker.partition_metadata(test_stream, 1).paused

    @pytest.mark.asyncio
    async def test_delete(self, memory_address, broker, test_stream):
        """Test deleting a stream"""
        await commands.delete(memory_address, test_stream, create_stream=True)
        assert test_stream not in [s.name for s in broker.metadata().streams]

        with pytest.raises(CommandError, match="^delete failed: no such stream"):
            await commands.delete(memory_address, test_stream)


class TestMetadata:
    """Test metadata commands"""

    @pytest.mark.asyncio
    async def test_metadata(self, memory_address, broker, test_stream):
        """Test cluster metadata lists brokers and streams"""
        broker.create_stream("orders", test_stream)
        lines = []
        await commands.metadata(memory_address, echo=lines.append)

        assert lines[0] == "addresses:"
        assert f" {broker.info.addr}" in lines
        assert f" {broker.info.id} ({broker.info.addr})" in lines
        assert f" {test_stream} (subject: orders)" in lines

    @pytest.mark.asyncio
    async def test_partition_metadata(self, memory_address, broker, test_stream):
        """Test partition metadata of a fresh partition"""
        lines = []
        await commands.partition_metadata(memory_address, test_stream, create_stream=True, echo=lines.append)

        assert lines[0] == "0"
        assert lines[lines.index(" paused:") + 1] == " false"
        assert lines[lines.index(" newest offset:") + 1] == " -1"
        assert lines[lines.index(" pause timestamps:") + 1] == " first: never, latest: never"

    @pytest.mark.asyncio
    async def test_partition_metadata_missing(self, memory_address, test_stream):
        """Test missing partitions fail with a metadata error"""
        with pytest.raises(MetadataFetchFailed) as exc_info:
            await commands.partition_metadata(memory_address, test_stream, echo=lambda line: None)
        assert str(exc_info.value).startswith("partition metadata fetching failed: ")

    @pytest.mark.asyncio
    async def test_client_library_error(self, use_transport, broker):
        """Test an OSError from the client carries the command prefix"""
        class Reset(MemoryClient):
            async def fetch_metadata(self):
                raise OSError("connection reset by peer")

        async def transport(target):
            return Reset(broker)

        use_transport(transport)
        with pytest.raises(MetadataFetchFailed) as exc_info:
            await commands.metadata("127.0.0.1:9292", echo=lambda line: None)
        assert str(exc_info.value) == "metadata fetching failed: connection reset by peer"
        assert isinstance(exc_info.value.cause, OSError)


class TestCursors:
    """Test cursor commands"""

    @pytest.mark.asyncio
    async def test_fetch_unset_cursor(self, memory_address, broker, test_stream):
        """Test fetching a cursor that was never set returns the no-cursor value"""
        broker.create_stream(test_stream, test_stream)
        lines = []
        offset = await commands.fetch_cursor(memory_address, test_stream, "c1", echo=lines.append)
        assert offset == NO_CURSOR
        assert lines == ["offset: -1"]

    @pytest.mark.asyncio
    async def test_set_then_fetch(self, memory_address, test_stream):
        """Test a stored cursor is read back"""
        await commands.set_cursor(memory_address, test_stream, "c1", offset=42, create_stream=True)
        lines = []
        await commands.fetch_cursor(memory_address, test_stream, "c1", echo=lines.append)
        assert lines == ["offset: 42"]

    @pytest.mark.asyncio
    async def test_cursor_missing_stream(self, memory_address, test_stream):
        """Test cursor errors use the cursor prefixes"""
        with pytest.raises(CursorOperationFailed, match="^setting cursor failed: "):
            await commands.set_cursor(memory_address, test_stream, "c1", offset=1)
        with pytest.raises(CursorOperationFailed, match="^fetching cursor failed: "):
            await commands.fetch_cursor(memory_address, test_stream, "c1", echo=lambda line: None)


class TestSubscribeCommands:
    """Test the subscribe commands"""

    @pytest.mark.asyncio
    async def test_subscribe_prints_messages(self, memory_address, test_stream):
        """Test published messages are printed with their offsets, then the command blocks"""
        await commands.publish(memory_address, test_stream, "bar", create_stream=True)

        printed = asyncio.Event()
        lines = []

        def echo(line):
            lines.append(line)
            printed.set()

        task = asyncio.create_task(commands.subscribe(memory_address, test_stream, echo=echo))
        await asyncio.wait_for(printed.wait(), timeout=1)
        await asyncio.sleep(0.01)

        assert lines == ["Received message with data: bar, offset: 0"]
        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_subscribe_failure_prefix(self, memory_address, test_stream):
        """Test setup failures carry the subscription prefix"""
        with pytest.raises(CommandError) as exc_info:
            await commands.subscribe(memory_address, test_stream, echo=lambda line: None)
        assert str(exc_info.value).startswith(
            f"stream subscription failed: could not subscribe to stream {test_stream}: no such stream"
        )

    @pytest.mark.asyncio
    async def test_activity_stream_survives_invalid_messages(self, memory_address, broker, test_stream):
        """Test an undecodable activity message is reported and the session keeps going"""
        broker.publish(broker.activity_stream, b"\xff\xff\xff\xff")
        broker.create_stream(test_stream, test_stream, partitions=2)

        lines = []
        received = asyncio.Event()

        def echo(line):
            lines.append(line)
            if len(lines) >= 3:
                received.set()

        task = asyncio.create_task(commands.subscribe_activity_stream(memory_address, echo=echo))
        await asyncio.sleep(0.01)
        broker.delete_stream(test_stream)
        await asyncio.wait_for(received.wait(), timeout=1)

        assert lines[0].startswith("Received an invalid activity message from the activity stream: ")
        assert lines[1] == (
            f"Received activity stream message: op: CREATE_STREAM, stream: {test_stream}, "
            f"partitions: [0 1], offset: 1"
        )
        assert lines[2] == (
            f"Received activity stream message: op: DELETE_STREAM, stream: {test_stream}, offset: 2"
        )
        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_activity_stream_readonly_is_unknown(self, memory_address, broker, test_stream):
        """Test readonly events are summarised as unknown activity"""
        broker.create_stream(test_stream, test_stream)
        broker.set_stream_readonly(test_stream)

        lines = []
        received = asyncio.Event()

        def echo(line):
            lines.append(line)
            if len(lines) >= 2:
                received.set()

        task = asyncio.create_task(commands.subscribe_activity_stream(memory_address, echo=echo))
        await asyncio.wait_for(received.wait(), timeout=1)
        assert lines[1] == "Received activity stream message: op: SET_STREAM_READONLY, unknown activity, offset: 1"
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestMemoryTransport:
    """Test the in-process transport used by the commands"""

    @pytest.mark.asyncio
    async def test_closed_client_rejects_calls(self, broker_name):
        """Test a closed client can no longer be used"""
        client = await connect_memory(broker_name)
        await client.close()
        with pytest.raises(Exception, match="client is closed"):
            await client.fetch_metadata()
