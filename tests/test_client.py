"""
Tests for the connection provider
"""
import pytest

from liftbridge_cli import ConnectionFailed, MemoryClient, connect, open_client
from liftbridge_cli.client import DEFAULT_SCHEME, load_transport, parse_address


class TestParseAddress:
    """Test address parsing"""

    def test_host_port(self):
        """Test a bare host:port uses the default scheme"""
        assert parse_address("127.0.0.1:9292") == (DEFAULT_SCHEME, "127.0.0.1:9292")

    def test_scheme(self):
        """Test an explicit scheme is split off"""
        assert parse_address("memory://demo") == ("memory", "demo")

    @pytest.mark.parametrize("address", ["localhost", "localhost:port", ":9292"])
    def test_invalid(self, address):
        """Test addresses without a usable port are rejected"""
        with pytest.raises(ValueError):
            parse_address(address)


class TestConnect:
    """Test connecting through transports"""

    @pytest.mark.asyncio
    async def test_memory_transport(self, memory_address, broker):
        """Test memory:// addresses reach the named broker"""
        client = await connect(memory_address)
        assert isinstance(client, MemoryClient)
        assert client.broker is broker
        await client.close()

    @pytest.mark.asyncio
    async def test_invalid_address(self):
        """Test a malformed address fails as ConnectionFailed"""
        with pytest.raises(ConnectionFailed) as exc_info:
            await connect("not-an-address")
        assert exc_info.value.address == "not-an-address"
        assert str(exc_info.value).startswith("connection failed with address not-an-address: ")

    @pytest.mark.asyncio
    async def test_unknown_scheme(self):
        """Test an address without an installed transport"""
        with pytest.raises(ConnectionFailed) as exc_info:
            await connect("carrier-pigeon://coop")
        assert isinstance(exc_info.value.cause, LookupError)

    @pytest.mark.asyncio
    async def test_transport_failure(self, use_transport):
        """Test transport errors are surfaced as ConnectionFailed"""
        async def refuse(target):
            raise OSError("connection refused")

        use_transport(refuse)
        with pytest.raises(ConnectionFailed) as exc_info:
            await connect("127.0.0.1:9292")
        assert "connection refused" in str(exc_info.value)

    def test_load_memory_transport(self):
        """Test the in-process transport is always available"""
        assert load_transport("memory") is not None


class TestOpenClient:
    """Test scoped client acquisition"""

    @pytest.mark.asyncio
    async def test_closes_on_exit(self, memory_address):
        """Test the client is closed after the block"""
        async with open_client(memory_address) as client:
            assert client.connected
        assert not client.connected

    @pytest.mark.asyncio
    async def test_closes_on_error(self, memory_address):
        """Test the client is closed when the block raises"""
        with pytest.raises(RuntimeError):
            async with open_client(memory_address) as client:
                raise RuntimeError("boom")
        assert not client.connected
