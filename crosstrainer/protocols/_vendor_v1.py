from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import HandshakeFailedError, PreconditionNotMetError
from ._base import ProtocolAdapter, TelemetrySink, bt16
from ._codec import clamp, read_uint8, read_uint16
from ._sample import WorkoutSample

if TYPE_CHECKING:
    from .._connection import Connection
    from .._transport import GattTransport

V1_SERVICE_MARKERS = ("ffe0", "ffc0")
V1_DATA_UUID = bt16(0xFFE4)
V1_CONTROL_UUID = bt16(0xFFEB)
V1_WRITE_UUID = bt16(0xFFE3)
V1_AUX_DATA_UUID = bt16(0xFFE1)

V1_FRAME_HEADER = 0xAB
V1_RESISTANCE_OPCODE = 0x03
V1_SPEED_OPCODE = 0x0A

V1_MIN_LEVEL = 1
V1_MAX_LEVEL = 24

V1_LEVEL_OFFSET = 5
V1_CONTROL_FRAME_LENGTH = 7
V1_SPEED_FRAME_LENGTH = 6


def decode_v1_control(frame: bytes) -> WorkoutSample | None:
    """Decode a control-status frame; byte 5 reports the current resistance.

    Frames without the 0xAB header are ignored.
    """
    if not frame or read_uint8(frame, 0) != V1_FRAME_HEADER:
        return None
    if len(frame) < V1_CONTROL_FRAME_LENGTH:
        return WorkoutSample()
    level = read_uint8(frame, V1_LEVEL_OFFSET)
    if V1_MIN_LEVEL <= level <= V1_MAX_LEVEL:
        return WorkoutSample(resistance_level=level)
    return WorkoutSample()


def decode_v1_data(frame: bytes) -> WorkoutSample | None:
    """Decode a data frame.

    Provisional: only the header is confirmed. The 0x0A speed layout is a
    guess from the vendor app's opcode table and has not been checked against
    hardware.
    """
    if not frame or read_uint8(frame, 0) != V1_FRAME_HEADER:
        return None
    if len(frame) >= V1_SPEED_FRAME_LENGTH and frame[1] == V1_SPEED_OPCODE:
        return WorkoutSample(speed_kph=read_uint16(frame, 2, "big") / 10)
    return WorkoutSample()


def encode_v1_resistance(level: float, control_frame: bytes) -> bytes:
    """Build the echo-modify-write resistance command.

    Bytes 3, 4 and 6 of the last control-status frame are copied verbatim;
    the machine ignores commands that do not echo them.

    Raises:
        PreconditionNotMetError: If the control frame is too short to echo.
    """
    if len(control_frame) < V1_CONTROL_FRAME_LENGTH:
        raise PreconditionNotMetError(
            f"control frame too short to echo: {control_frame.hex()}"
        )
    return bytes(
        [
            V1_FRAME_HEADER,
            V1_RESISTANCE_OPCODE,
            0x00,
            control_frame[3],
            control_frame[4],
            clamp(level, V1_MIN_LEVEL, V1_MAX_LEVEL),
            control_frame[6],
        ]
    )


class VendorV1Adapter(ProtocolAdapter):
    """Mobi V1 legacy serial-over-GATT service (FFE0/FFC0)."""

    name = "Mobi V1 (Legacy)"
    service_markers = V1_SERVICE_MARKERS

    def __init__(self, connection: Connection | None = None) -> None:
        super().__init__(connection)
        self._data_char: Any = None
        self._aux_data_char: Any = None
        self._control_char: Any = None
        self._write_char: Any = None

    async def connect(self, transport: GattTransport) -> None:
        """Locate the legacy service and resolve its characteristics."""
        self._transport = transport
        service_uuid = next(
            (uuid for uuid in transport.service_uuids if self.is_supported([uuid])), None
        )
        if service_uuid is None:
            raise HandshakeFailedError(f"{self.name}: service FFE0/FFC0 not found on device")

        self._data_char = self._require_characteristic(service_uuid, V1_DATA_UUID)
        self._write_char = self._require_characteristic(service_uuid, V1_WRITE_UUID)
        self._control_char = self._optional_characteristic(service_uuid, V1_CONTROL_UUID)
        if self._control_char is None:
            self._record("resistance control unavailable without FFEB", level=logging.WARNING)
        self._aux_data_char = self._optional_characteristic(service_uuid, V1_AUX_DATA_UUID)
        self._record("using service %s", service_uuid)

    async def start_telemetry(self, sink: TelemetrySink) -> None:
        """Subscribe to data, auxiliary data and control-status notifications."""
        await self._subscribe(self._data_char, decode_v1_data, sink)
        if self._aux_data_char is not None:
            await self._subscribe(self._aux_data_char, decode_v1_data, sink)
        if self._control_char is not None:
            await self._subscribe(
                self._control_char, decode_v1_control, sink, on_frame=self._remember_control
            )

    def _remember_control(self, frame: bytes) -> None:
        self.connection.last_control_frame = frame

    async def set_resistance(self, level: int) -> None:
        """Echo the last control-status frame with the new level.

        Raises:
            PreconditionNotMetError: If no control-status frame has arrived yet.
        """
        self._require_transport()
        control_frame = self.connection.last_control_frame
        if control_frame is None:
            raise PreconditionNotMetError(
                f"{self.name}: no control frame received yet; cannot echo FFEB bytes"
            )
        await self._write_command(self._write_char, encode_v1_resistance(level, control_frame))

    def disconnect(self) -> None:
        """Release characteristic handles and forget the echoed frame."""
        self._data_char = None
        self._aux_data_char = None
        self._control_char = None
        self._write_char = None
        self._transport = None
        self.connection.last_control_frame = None
