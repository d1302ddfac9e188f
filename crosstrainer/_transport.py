"""GATT transport wrapper around bleak."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from bleak import BleakClient
from bleak.exc import BleakError

if TYPE_CHECKING:
    from bleak.backends.characteristic import BleakGATTCharacteristic
    from bleak.backends.device import BLEDevice

LOGGER = logging.getLogger(__name__)

# Errors a BLE operation may surface from bleak or the OS Bluetooth stack.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (BleakError, OSError, TimeoutError)

NotificationHandler = Callable[[bytes], None]


class GattTransport:
    """Connection to one GATT server.

    Adapters only talk to the device through this class, which keeps them
    independent of bleak's callback signatures and makes them easy to fake.
    """

    def __init__(
        self,
        device: BLEDevice | str,
        *,
        timeout: float = 10.0,
        disconnected_callback: Callable[[], None] | None = None,
    ) -> None:
        self._disconnected_callback = disconnected_callback
        self._client = BleakClient(
            device,
            disconnected_callback=self._handle_disconnected,
            timeout=timeout,
        )

    @property
    def address(self) -> str:
        """Address of the remote device."""
        return self._client.address

    @property
    def is_connected(self) -> bool:
        """Return True while the GATT link is up."""
        return self._client.is_connected

    async def connect(self) -> None:
        """Open the GATT connection and discover services."""
        await self._client.connect()
        LOGGER.debug("Connected to %s", self.address)

    @property
    def service_uuids(self) -> list[str]:
        """UUIDs of the primary services discovered on connect."""
        return [service.uuid for service in self._client.services]

    def get_characteristic(
        self, service_uuid: str, characteristic_uuid: str
    ) -> BleakGATTCharacteristic | None:
        """Resolve a characteristic inside a service, or None when absent."""
        service = self._client.services.get_service(service_uuid)
        if service is None:
            return None
        return service.get_characteristic(characteristic_uuid)

    async def start_notify(
        self, characteristic: BleakGATTCharacteristic, handler: NotificationHandler
    ) -> None:
        """Subscribe to notifications and forward each payload as bytes."""

        def _callback(_: BleakGATTCharacteristic, data: bytearray) -> None:
            handler(bytes(data))

        await self._client.start_notify(characteristic, _callback)

    async def stop_notify(self, characteristic: BleakGATTCharacteristic) -> None:
        """Unsubscribe from a characteristic."""
        await self._client.stop_notify(characteristic)

    async def write(self, characteristic: BleakGATTCharacteristic, data: bytes) -> None:
        """Write ``data``, with response when the characteristic supports it."""
        response = "write" in characteristic.properties
        LOGGER.debug("Write %s -> %s (response=%s)", data.hex(), characteristic.uuid, response)
        await self._client.write_gatt_char(characteristic, data, response=response)

    async def disconnect(self) -> None:
        """Close the GATT connection."""
        if self._client.is_connected:
            await self._client.disconnect()

    def _handle_disconnected(self, _: BleakClient) -> None:
        if self._disconnected_callback:
            self._disconnected_callback()
