from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .._transport import TRANSPORT_ERRORS
from ..exceptions import HandshakeFailedError
from ._base import ProtocolAdapter, TelemetrySink, bt16
from ._codec import clamp, ensure_available, read_uint8, read_uint16
from ._sample import WorkoutSample

if TYPE_CHECKING:
    from .._connection import Connection
    from .._transport import GattTransport

V2_SERVICE_UUID = bt16(0x8800)
V2_UNLOCK_UUID = bt16(0x88FF)
V2_DATA_UUID = bt16(0x8813)
V2_RESISTANCE_UUID = bt16(0x8812)

# Written to the unlock characteristic before the machine accepts anything else.
V2_UNLOCK_CODE = bytes([0x11, 0x82, 0x07])

V2_MIN_FRAME_LENGTH = 9
V2_POWER_FRAME_LENGTH = 11

V2_MIN_LEVEL = 1
V2_MAX_LEVEL = 32


def decode_v2_data(frame: bytes) -> WorkoutSample:
    """Decode a V2 data frame.

    Layout (big-endian, fixed offsets)::

        0     speed, 0.1 km/h
        1     incline (unused)
        2     cadence, rpm
        3-4   elapsed time, s
        5-6   distance, m
        7-8   energy, 0.1 kcal
        9-10  power, W (only in frames of 11 bytes or more)
    """
    ensure_available(frame, 0, V2_MIN_FRAME_LENGTH)
    power = (
        read_uint16(frame, 9, "big") if len(frame) >= V2_POWER_FRAME_LENGTH else None
    )
    return WorkoutSample(
        speed_kph=read_uint8(frame, 0) / 10,
        cadence_rpm=read_uint8(frame, 2),
        elapsed_s=read_uint16(frame, 3, "big"),
        distance_m=read_uint16(frame, 5, "big"),
        energy_kcal=read_uint16(frame, 7, "big") / 10,
        power_w=power,
    )


def encode_v2_resistance(level: float) -> bytes:
    """Encode a V2 resistance command: a single level byte."""
    return bytes([clamp(level, V2_MIN_LEVEL, V2_MAX_LEVEL)])


class VendorV2Adapter(ProtocolAdapter):
    """Mobi V2 ("classic") proprietary service."""

    name = "Mobi V2 (Classic)"
    service_markers = ("8800",)

    def __init__(self, connection: Connection | None = None) -> None:
        super().__init__(connection)
        self._unlock_char: Any = None
        self._data_char: Any = None
        self._resistance_char: Any = None

    async def connect(self, transport: GattTransport) -> None:
        """Resolve the three characteristics and send the unlock code."""
        self._transport = transport
        self._unlock_char = self._require_characteristic(V2_SERVICE_UUID, V2_UNLOCK_UUID)
        self._data_char = self._require_characteristic(V2_SERVICE_UUID, V2_DATA_UUID)
        self._resistance_char = self._require_characteristic(V2_SERVICE_UUID, V2_RESISTANCE_UUID)

        try:
            await transport.write(self._unlock_char, V2_UNLOCK_CODE)
        except TRANSPORT_ERRORS as exc:
            raise HandshakeFailedError(f"{self.name}: unlock rejected: {exc}") from exc
        self._record("unlocked")

    async def start_telemetry(self, sink: TelemetrySink) -> None:
        """Subscribe to the flat data frame."""
        await self._subscribe(self._data_char, decode_v2_data, sink)

    async def set_resistance(self, level: int) -> None:
        """Write the clamped level byte."""
        self._require_transport()
        await self._write_command(self._resistance_char, encode_v2_resistance(level))

    def disconnect(self) -> None:
        """Release characteristic handles."""
        self._unlock_char = None
        self._data_char = None
        self._resistance_char = None
        self._transport = None
