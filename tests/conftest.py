"""Shared fixtures and fakes for pytest."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from bleak.exc import BleakError

from crosstrainer import ManagerConfig, TrainerDevice, TrainerManager

DEVICE_ADDRESS = "AA:BB:CC:DD:EE:FF"


class FakeCharacteristic:
    """Stand-in for a bleak GATT characteristic."""

    def __init__(self, uuid: str, properties: tuple[str, ...] = ("write", "notify")) -> None:
        self.uuid = uuid
        self.properties = list(properties)

    def __repr__(self) -> str:
        return f"FakeCharacteristic({self.uuid!r})"


class FakeTransport:
    """In-memory GATT server with the GattTransport interface.

    ``services`` maps a service UUID to the characteristic UUIDs it exposes.
    Writes are recorded in order; ``notify`` feeds a frame to the handler a
    subscriber registered for a characteristic.
    """

    def __init__(
        self,
        services: dict[str, list[str]] | None = None,
        *,
        address: str = DEVICE_ADDRESS,
    ) -> None:
        self.address = address
        self.services = {
            service: {uuid: FakeCharacteristic(uuid) for uuid in characteristics}
            for service, characteristics in (services or {}).items()
        }
        self.is_connected = False
        self.writes: list[tuple[str, bytes]] = []
        self.handlers: dict[str, Callable[[bytes], None]] = {}
        self.fail_writes = False
        self.connect_error: Exception | None = None
        self.disconnect_calls = 0
        self.on_disconnect: Callable[[], None] | None = None

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.is_connected = True

    @property
    def service_uuids(self) -> list[str]:
        return list(self.services)

    def get_characteristic(self, service_uuid: str, characteristic_uuid: str):
        return self.services.get(service_uuid, {}).get(characteristic_uuid)

    async def start_notify(self, characteristic, handler: Callable[[bytes], None]) -> None:
        self.handlers[characteristic.uuid] = handler

    async def stop_notify(self, characteristic) -> None:
        self.handlers.pop(characteristic.uuid, None)

    async def write(self, characteristic, data: bytes) -> None:
        if self.fail_writes:
            raise BleakError("write failed")
        self.writes.append((characteristic.uuid, bytes(data)))

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        was_connected = self.is_connected
        self.is_connected = False
        # bleak reports its own disconnects through the callback too.
        if was_connected and self.on_disconnect:
            self.on_disconnect()

    def notify(self, characteristic_uuid: str, data: bytes) -> None:
        """Deliver a notification frame to the subscribed handler."""
        self.handlers[characteristic_uuid](bytes(data))

    def drop_link(self) -> None:
        """Simulate the device going away."""
        self.is_connected = False
        if self.on_disconnect:
            self.on_disconnect()

    def writes_to(self, characteristic_uuid: str) -> list[bytes]:
        return [data for uuid, data in self.writes if uuid == characteristic_uuid]


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Factory for fake transports exposing the given services."""
    return FakeTransport


@pytest.fixture
def device() -> TrainerDevice:
    return TrainerDevice(address=DEVICE_ADDRESS, name="MOBI-Test", rssi=-60)


@pytest.fixture
def events() -> list[tuple[str, dict]]:
    """Connection events recorded by managers built with ``make_manager``."""
    return []


@pytest.fixture
def make_manager(device, events) -> Callable[..., TrainerManager]:
    """Build a TrainerManager wired to a fake transport and a fixed device."""

    def _make(transport: FakeTransport, **config) -> TrainerManager:
        async def _request(_: ManagerConfig) -> TrainerDevice:
            return device

        def _transport_factory(_device, _config, on_disconnect):
            transport.on_disconnect = on_disconnect
            return transport

        config.setdefault("settle_delay", 0.0)
        return TrainerManager(
            ManagerConfig(**config),
            device_requester=_request,
            transport_factory=_transport_factory,
            on_event=lambda event, data: events.append((event.value, data)),
        )

    return _make
