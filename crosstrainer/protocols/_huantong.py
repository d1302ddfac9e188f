from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from ..exceptions import DecodeError
from ._base import ProtocolAdapter, TelemetrySink, bt16
from ._codec import checksum8, clamp, read_uint8
from ._sample import WorkoutSample

if TYPE_CHECKING:
    from .._connection import Connection
    from .._transport import GattTransport

HUANTONG_SERVICE_UUID = bt16(0xFFF0)
HUANTONG_NOTIFY_UUID = bt16(0xFFF1)
HUANTONG_WRITE_UUID = bt16(0xFFF2)

HUANTONG_COMMAND_PREFIX = bytes([0x20, 0xC1])
HUANTONG_FRAME_LENGTH = 12

_DECIMAL_PREFIX = re.compile(r"\d+(?:\.\d*)?(?:[eE][+-]?\d+)?")


def encode_huantong_resistance(level: float) -> bytes:
    """Encode ``[0x20, 0xC1, level, 0x00, checksum]``.

    The checksum is the low byte of the sum of the first three bytes.
    """
    head = HUANTONG_COMMAND_PREFIX + bytes([clamp(level, 0, 0xFF)])
    return head + bytes([0x00, checksum8(head)])


def decode_huantong_data(frame: bytes) -> WorkoutSample | None:
    """Decode cadence from a 12-byte notification.

    NOTE: not a real encoding. The vendor app formats bytes 2 and 3 as hex
    digits ("%X%02X") and parses the text as a decimal number, so 0x01 0x23
    reads as 123 rpm and 0x1E 0x05 as 1E05 = 100000. Only the longest
    leading decimal prefix counts, so "10A" reads as 10; text starting with a
    digit A-F has no number in it and the frame is dropped. This is mirrored
    for compatibility until checked against real hardware.
    """
    if len(frame) != HUANTONG_FRAME_LENGTH or read_uint8(frame, 1) == 0:
        return None
    text = f"{read_uint8(frame, 2):X}{read_uint8(frame, 3):02X}"
    match = _DECIMAL_PREFIX.match(text)
    if match is None:
        raise DecodeError(f"cadence digits {text!r} do not start with a decimal number")
    return WorkoutSample(cadence_rpm=float(match.group()))


class HuanTongAdapter(ProtocolAdapter):
    """HuanTong controller used by Mobi-E models."""

    name = "HuanTong (MOBI-E)"
    service_markers = ("fff0",)

    def __init__(self, connection: Connection | None = None) -> None:
        super().__init__(connection)
        self._notify_char: Any = None
        self._write_char: Any = None

    async def connect(self, transport: GattTransport) -> None:
        """Resolve the notify and write characteristics."""
        self._transport = transport
        self._notify_char = self._require_characteristic(
            HUANTONG_SERVICE_UUID, HUANTONG_NOTIFY_UUID
        )
        self._write_char = self._require_characteristic(HUANTONG_SERVICE_UUID, HUANTONG_WRITE_UUID)

    async def start_telemetry(self, sink: TelemetrySink) -> None:
        """Subscribe to FFF1."""
        await self._subscribe(self._notify_char, decode_huantong_data, sink)

    async def set_resistance(self, level: int) -> None:
        """Write the checksummed resistance frame."""
        self._require_transport()
        await self._write_command(self._write_char, encode_huantong_resistance(level))

    def disconnect(self) -> None:
        """Release characteristic handles."""
        self._notify_char = None
        self._write_char = None
        self._transport = None
