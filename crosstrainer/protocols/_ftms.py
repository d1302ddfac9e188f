from __future__ import annotations

import asyncio
import logging
from enum import IntEnum
from struct import pack
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field, model_validator

from .._transport import TRANSPORT_ERRORS
from ..exceptions import CommandRejectedError
from ._base import ProtocolAdapter, TelemetrySink, bt16
from ._codec import (
    ByteOrder,
    clamp,
    ensure_available,
    is_bit_set,
    read_sint16,
    read_uint8,
    read_uint16,
)
from ._sample import WorkoutSample

if TYPE_CHECKING:
    from .._connection import Connection
    from .._transport import GattTransport

# FTMS Service and characteristics
FTMS_SERVICE_UUID = bt16(0x1826)
CROSS_TRAINER_DATA_UUID = bt16(0x2ACE)
FITNESS_MACHINE_CONTROL_POINT_UUID = bt16(0x2AD9)

FLAGS_OFFSET = 0
SPEED_OFFSET = 2
SPEED_SIZE = 2

HEART_RATE_UNKNOWN = 0xFF
ELAPSED_TIME_UNKNOWN = 0xFFFF

DEFAULT_SETTLE_DELAY = 0.2


class ControlPointOpcode(IntEnum):
    """Fitness Machine Control Point opcodes written by the client."""

    REQUEST_CONTROL = 0x00
    SET_TARGET_RESISTANCE = 0x04
    START_OR_RESUME = 0x07


class CrossTrainerFlag(IntEnum):
    """Bit positions of the Cross Trainer Data flags word.

    Each set bit adds one field after the always-present instantaneous
    speed, in ascending bit order. Bit 0 ("more data") and bits 14-15 add
    nothing.
    """

    AVERAGE_SPEED = 1
    TOTAL_DISTANCE = 2
    STEP_COUNT = 3
    AVERAGE_STEP_RATE = 4
    ELEVATION_GAIN = 5
    INCLINATION = 6
    STRIDE_COUNT = 7
    RESISTANCE_LEVEL = 8
    INSTANTANEOUS_POWER = 9
    EXPENDED_ENERGY = 10
    HEART_RATE = 11
    METABOLIC_EQUIVALENT = 12
    ELAPSED_TIME = 13


# Field width in bytes for each flag, as observed on elliptical trainers.
CROSS_TRAINER_FIELD_SIZES: dict[CrossTrainerFlag, int] = {
    CrossTrainerFlag.AVERAGE_SPEED: 2,
    CrossTrainerFlag.TOTAL_DISTANCE: 3,
    CrossTrainerFlag.STEP_COUNT: 2,
    CrossTrainerFlag.AVERAGE_STEP_RATE: 2,
    CrossTrainerFlag.ELEVATION_GAIN: 2,
    CrossTrainerFlag.INCLINATION: 2,
    CrossTrainerFlag.STRIDE_COUNT: 2,
    CrossTrainerFlag.RESISTANCE_LEVEL: 2,
    CrossTrainerFlag.INSTANTANEOUS_POWER: 2,
    CrossTrainerFlag.EXPENDED_ENERGY: 5,  # total (2) + per hour (2) + per minute (1)
    CrossTrainerFlag.HEART_RATE: 1,
    CrossTrainerFlag.METABOLIC_EQUIVALENT: 1,
    CrossTrainerFlag.ELAPSED_TIME: 2,
}


class FtmsVariant(BaseModel):
    """Firmware-specific interpretation of the FTMS cross trainer profile.

    Observed firmware disagrees on the speed resolution, on the byte order of
    the data fields and on what raw value the Set Target Resistance opcode
    expects, with nothing on the wire to tell them apart.
    """

    speed_divisor: Literal[10, 100] = 10
    field_byteorder: Literal["big", "little"] = "big"
    resistance_encoding: Literal["direct", "scaled"] = "direct"
    min_level: int = Field(default=10, ge=0)
    max_level: int = Field(default=24, ge=0)

    @model_validator(mode="after")
    def validate_levels(self) -> FtmsVariant:
        """Ensure the level range is ordered and encodable as sint16."""
        if self.min_level > self.max_level:
            msg = f"min_level ({self.min_level}) > max_level ({self.max_level})"
            raise ValueError(msg)
        scale = 10 if self.resistance_encoding == "scaled" else 1
        if self.max_level * scale > 0x7FFF:
            msg = f"max_level ({self.max_level}) does not fit a sint16 command"
            raise ValueError(msg)
        return self


FTMS_VARIANTS: dict[str, FtmsVariant] = {
    # Mobi ellipticals: speed in 0.1 km/h, big-endian fields, level written as-is.
    "mobi": FtmsVariant(),
    "standard": FtmsVariant(
        speed_divisor=100,
        field_byteorder="little",
        resistance_encoding="scaled",
        min_level=1,
        max_level=24,
    ),
}

DEFAULT_FTMS_VARIANT = FTMS_VARIANTS["mobi"]


def cross_trainer_frame_length(flags: int) -> int:
    """Return the exact frame length implied by a flags word."""
    length = SPEED_OFFSET + SPEED_SIZE
    for flag, size in CROSS_TRAINER_FIELD_SIZES.items():
        if is_bit_set(flags, flag):
            length += size
    return length


def decode_cross_trainer_data(
    frame: bytes, variant: FtmsVariant = DEFAULT_FTMS_VARIANT
) -> WorkoutSample:
    """Decode a Cross Trainer Data notification.

    Raises:
        OutOfBoundsError: If the flags announce more fields than the frame holds.
    """
    flags = read_uint16(frame, FLAGS_OFFSET, "little")
    order: ByteOrder = variant.field_byteorder
    values: dict[str, Any] = {
        "speed_kph": read_uint16(frame, SPEED_OFFSET, order) / variant.speed_divisor
    }
    pos = SPEED_OFFSET + SPEED_SIZE

    for flag, size in CROSS_TRAINER_FIELD_SIZES.items():
        if not is_bit_set(flags, flag):
            continue
        # Skipped fields are bounds-checked too so pos never passes the end.
        ensure_available(frame, pos, size)
        match flag:
            case CrossTrainerFlag.STEP_COUNT:
                values["cadence_rpm"] = read_uint16(frame, pos, order)
            case CrossTrainerFlag.RESISTANCE_LEVEL:
                values["resistance_level"] = read_sint16(frame, pos, order) / 10
            case CrossTrainerFlag.INSTANTANEOUS_POWER:
                values["power_w"] = read_sint16(frame, pos, order)
            case CrossTrainerFlag.HEART_RATE:
                heart_rate = read_uint8(frame, pos)
                if heart_rate != HEART_RATE_UNKNOWN:
                    values["heart_rate_bpm"] = heart_rate
            case CrossTrainerFlag.ELAPSED_TIME:
                # Little-endian on every observed firmware, unlike the fields above.
                elapsed = read_uint16(frame, pos, "little")
                if elapsed != ELAPSED_TIME_UNKNOWN:
                    values["elapsed_s"] = elapsed
            case _:
                # Distance and energy are device lifetime totals; sessions compute their own.
                pass
        pos += size

    return WorkoutSample(**values)


def encode_set_target_resistance(
    level: float, variant: FtmsVariant = DEFAULT_FTMS_VARIANT
) -> bytes:
    """Encode a Set Target Resistance Level control point command."""
    clamped = clamp(level, variant.min_level, variant.max_level)
    raw = clamped if variant.resistance_encoding == "direct" else clamped * 10
    return pack("<Bh", ControlPointOpcode.SET_TARGET_RESISTANCE, raw)


class FtmsAdapter(ProtocolAdapter):
    """Standard Fitness Machine Service (cross trainer profile)."""

    name = "Standard FTMS"
    service_markers = ("1826",)

    def __init__(
        self,
        connection: Connection | None = None,
        *,
        variant: FtmsVariant | None = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
    ) -> None:
        super().__init__(connection)
        self.variant = variant or DEFAULT_FTMS_VARIANT
        self._settle_delay = settle_delay
        self._data_char: Any = None
        self._control_char: Any = None

    async def connect(self, transport: GattTransport) -> None:
        """Resolve FTMS characteristics and request control of the machine.

        A missing or rejecting control point is tolerated: some machines only
        publish data.
        """
        self._transport = transport
        self._data_char = self._require_characteristic(
            FTMS_SERVICE_UUID, CROSS_TRAINER_DATA_UUID
        )
        self._control_char = self._optional_characteristic(
            FTMS_SERVICE_UUID, FITNESS_MACHINE_CONTROL_POINT_UUID
        )
        if self._control_char is None:
            return

        try:
            await transport.write(self._control_char, bytes([ControlPointOpcode.REQUEST_CONTROL]))
            # Wait for control to be granted before starting the session.
            await asyncio.sleep(self._settle_delay)
            if self.connection.closed:
                return
            await transport.write(self._control_char, bytes([ControlPointOpcode.START_OR_RESUME]))
        except TRANSPORT_ERRORS as exc:
            self._record(
                "control point setup failed (might be read-only device): %s",
                exc,
                level=logging.WARNING,
            )
        else:
            self._record("control requested and session started")

    async def start_telemetry(self, sink: TelemetrySink) -> None:
        """Subscribe to Cross Trainer Data."""
        await self._subscribe(
            self._data_char,
            lambda frame: decode_cross_trainer_data(frame, self.variant),
            sink,
        )

    async def set_resistance(self, level: int) -> None:
        """Write Set Target Resistance Level through the control point."""
        self._require_transport()
        if self._control_char is None:
            raise CommandRejectedError(f"{self.name}: device exposes no control point")
        await self._write_command(
            self._control_char, encode_set_target_resistance(level, self.variant)
        )

    def disconnect(self) -> None:
        """Release characteristic handles."""
        self._data_char = None
        self._control_char = None
        self._transport = None
