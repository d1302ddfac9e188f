from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bleak import BleakScanner

from ._transport import TRANSPORT_ERRORS
from .exceptions import TransportUnavailableError, UserCancelledSelectionError
from .protocols import DISCOVERY_SERVICE_UUIDS

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainerDevice:
    """Metadata for a discovered piece of equipment."""

    address: str
    name: str | None
    service_uuids: tuple[str, ...] = ()
    rssi: int | None = None
    ble_device: BLEDevice | None = field(default=None, compare=False, repr=False)


DeviceChooser = Callable[[Sequence[TrainerDevice]], "TrainerDevice | None"]


def choose_strongest(devices: Sequence[TrainerDevice]) -> TrainerDevice | None:
    """Pick the device with the strongest signal, or None when there is none."""
    if not devices:
        return None
    return max(devices, key=lambda device: device.rssi if device.rssi is not None else -999)


def choose_address(address: str) -> DeviceChooser:
    """Return a chooser that selects the device with ``address``."""
    wanted = address.upper()

    def _choose(devices: Sequence[TrainerDevice]) -> TrainerDevice | None:
        return next((device for device in devices if device.address.upper() == wanted), None)

    return _choose


async def discover_trainers(
    timeout: float = 10.0, *, accept_all: bool = False
) -> list[TrainerDevice]:
    """Scan for equipment advertising one of the supported services.

    With ``accept_all`` every advertising device is returned. Use it on hosts
    where vendor services are not advertised or filtered scans miss them;
    protocol detection then happens after the GATT connection.

    Raises:
        TransportUnavailableError: If the host has no usable Bluetooth stack.
    """
    service_uuids = None if accept_all else list(DISCOVERY_SERVICE_UUIDS)
    try:
        devices = await BleakScanner.discover(
            timeout=timeout, return_adv=True, service_uuids=service_uuids
        )
    except TRANSPORT_ERRORS as exc:
        raise TransportUnavailableError(f"Bluetooth is not available: {exc}") from exc

    trainers = [
        TrainerDevice(
            address=device.address,
            name=device.name or adv_data.local_name,
            service_uuids=tuple(adv_data.service_uuids),
            rssi=adv_data.rssi,
            ble_device=device,
        )
        for device, adv_data in devices.values()
    ]
    LOGGER.debug("Discovered %d device(s) (accept_all=%s)", len(trainers), accept_all)
    return trainers


async def request_device(
    chooser: DeviceChooser = choose_strongest,
    *,
    timeout: float = 10.0,
    accept_all: bool = False,
) -> TrainerDevice:
    """Discover equipment and let ``chooser`` pick one.

    Raises:
        TransportUnavailableError: If the host has no usable Bluetooth stack.
        UserCancelledSelectionError: If nothing was found or nothing was chosen.
    """
    trainers = await discover_trainers(timeout, accept_all=accept_all)
    device = chooser(trainers)
    if device is None:
        if not trainers:
            raise UserCancelledSelectionError(f"No fitness equipment found after {timeout}s")
        raise UserCancelledSelectionError("No device selected")
    LOGGER.info("Selected %s (%s)", device.name or "Unknown", device.address)
    return device
