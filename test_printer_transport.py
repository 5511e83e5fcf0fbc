"""
BLE printer transport tests - characteristic choice, chunking and failures
against a fake bleak client
"""

import asyncio

import pytest
from bleak.exc import BleakError

import printer_transport
from printer_transport import BlePrinterTransport

ISSC_UART = "49535343-8841-43f4-a8d4-ecbe34729bb3"
ADDRESS = "11:22:33:44:55:66"


class FakeCharacteristic:
    def __init__(self, uuid, properties):
        self.uuid = uuid
        self.properties = properties


class FakeService:
    def __init__(self, *characteristics):
        self.characteristics = list(characteristics)


class FakeBleakClient:
    """Records GATT writes; connect_error / write_error make those calls fail"""

    services = []
    connect_error = None
    write_error = None
    instances = []

    def __init__(self, address, timeout=None):
        self.address = address
        self.timeout = timeout
        self.is_connected = False
        self.writes = []
        self.disconnected = False
        type(self).instances.append(self)

    async def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.is_connected = True

    async def write_gatt_char(self, char, data, response=None):
        self.writes.append((char, bytes(data), response))
        if self.write_error is not None:
            raise self.write_error

    async def disconnect(self):
        self.is_connected = False
        self.disconnected = True


@pytest.fixture
def fake_client(monkeypatch):
    class Client(FakeBleakClient):
        services = []
        instances = []

    monkeypatch.setattr(printer_transport, "BleakClient", Client)
    return Client


def make_transport(chunk_size=100):
    return BlePrinterTransport(chunk_size=chunk_size, write_delay_ms=0, connect_timeout=1.0)


def test_known_characteristic_preferred(fake_client):
    generic = FakeCharacteristic("0000aaaa-0000-1000-8000-00805f9b34fb", ["read", "write"])
    known = FakeCharacteristic(ISSC_UART.upper(), ["write"])
    fake_client.services = [FakeService(generic), FakeService(known)]
    transport = make_transport()

    assert asyncio.run(transport.connect(ADDRESS))

    assert transport.write_characteristic is known
    assert transport.address == ADDRESS
    assert fake_client.instances[0].timeout == 1.0


def test_falls_back_to_write_without_response(fake_client):
    notify = FakeCharacteristic("0000bbbb-0000-1000-8000-00805f9b34fb", ["notify"])
    writable = FakeCharacteristic("0000cccc-0000-1000-8000-00805f9b34fb", ["write-without-response"])
    fake_client.services = [FakeService(notify, writable)]
    transport = make_transport()

    assert asyncio.run(transport.connect(ADDRESS))
    assert transport.write_characteristic is writable


def test_no_writable_characteristic(fake_client):
    fake_client.services = [FakeService(FakeCharacteristic("0000bbbb-0000-1000-8000-00805f9b34fb", ["read"]))]
    transport = make_transport()

    assert not asyncio.run(transport.connect(ADDRESS))
    assert not asyncio.run(transport.connection_status())
    assert fake_client.instances[0].disconnected


def test_job_split_into_chunks(fake_client):
    char = FakeCharacteristic(ISSC_UART, ["write"])
    fake_client.services = [FakeService(char)]
    transport = make_transport(chunk_size=100)
    data = bytes(range(250))

    async def connect_and_send():
        await transport.connect(ADDRESS)
        return await transport.write_bytes(data)

    assert asyncio.run(connect_and_send())

    writes = fake_client.instances[0].writes
    assert [len(chunk) for _, chunk, _ in writes] == [100, 100, 50]
    assert b"".join(chunk for _, chunk, _ in writes) == data
    assert all(target is char for target, _, _ in writes)


@pytest.mark.parametrize(
    "properties, expected_response",
    [(["write"], True), (["write-without-response"], False), (["write", "write-without-response"], False)],
)
def test_response_follows_characteristic_properties(fake_client, properties, expected_response):
    fake_client.services = [FakeService(FakeCharacteristic(ISSC_UART, properties))]
    transport = make_transport()

    async def connect_and_send():
        await transport.connect(ADDRESS)
        return await transport.write_bytes(b"\x1b@")

    assert asyncio.run(connect_and_send())
    assert fake_client.instances[0].writes[0][2] is expected_response


def test_connect_error_returns_false(fake_client):
    fake_client.services = [FakeService(FakeCharacteristic(ISSC_UART, ["write"]))]
    fake_client.connect_error = BleakError("device not found")
    transport = make_transport()

    assert not asyncio.run(transport.connect(ADDRESS))
    assert not asyncio.run(transport.connection_status())
    assert transport.client is None
    assert len(fake_client.instances) == 1


def test_write_error_returns_false_without_retry(fake_client):
    fake_client.services = [FakeService(FakeCharacteristic(ISSC_UART, ["write"]))]
    transport = make_transport(chunk_size=100)

    async def connect_and_send():
        await transport.connect(ADDRESS)
        fake_client.write_error = BleakError("link lost")
        return await transport.write_bytes(bytes(250))

    assert not asyncio.run(connect_and_send())
    assert len(fake_client.instances[0].writes) == 1


def test_write_while_disconnected(fake_client):
    transport = make_transport()

    assert not asyncio.run(transport.write_bytes(b"\x1b@"))
    assert fake_client.instances == []


def test_disconnect_clears_state(fake_client):
    fake_client.services = [FakeService(FakeCharacteristic(ISSC_UART, ["write"]))]
    transport = make_transport()

    async def connect_then_disconnect():
        await transport.connect(ADDRESS)
        await transport.disconnect()
        return await transport.connection_status()

    assert not asyncio.run(connect_then_disconnect())
    assert fake_client.instances[0].disconnected
    assert transport.write_characteristic is None
