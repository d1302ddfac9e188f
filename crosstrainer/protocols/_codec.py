from __future__ import annotations

from typing import Literal

from ..exceptions import OutOfBoundsError

ByteOrder = Literal["big", "little"]

FLAGS_WORD_BITS = 16


def ensure_available(buffer: bytes, pos: int, size: int) -> None:
    """Raise OutOfBoundsError unless ``size`` bytes are readable at ``pos``."""
    if pos < 0 or pos + size > len(buffer):
        raise OutOfBoundsError(
            f"read of {size} byte(s) at offset {pos} exceeds frame length {len(buffer)}"
        )


def _read_int(buffer: bytes, pos: int, size: int, byteorder: ByteOrder, *, signed: bool) -> int:
    ensure_available(buffer, pos, size)
    return int.from_bytes(buffer[pos : pos + size], byteorder, signed=signed)


def read_uint8(buffer: bytes, pos: int) -> int:
    """Read an unsigned byte."""
    return _read_int(buffer, pos, 1, "little", signed=False)


def read_uint16(buffer: bytes, pos: int, byteorder: ByteOrder = "little") -> int:
    """Read an unsigned 16-bit integer."""
    return _read_int(buffer, pos, 2, byteorder, signed=False)


def read_sint16(buffer: bytes, pos: int, byteorder: ByteOrder = "little") -> int:
    """Read a signed 16-bit integer."""
    return _read_int(buffer, pos, 2, byteorder, signed=True)


def read_uint24(buffer: bytes, pos: int, byteorder: ByteOrder = "little") -> int:
    """Read an unsigned 24-bit integer."""
    return _read_int(buffer, pos, 3, byteorder, signed=False)


def is_bit_set(flags: int, bit: int) -> bool:
    """Return True when ``bit`` of a 16-bit flags word is set."""
    if not 0 <= bit < FLAGS_WORD_BITS:
        raise ValueError(f"bit index out of range for a 16-bit flags word: {bit}")
    return bool(flags & (1 << bit))


def checksum8(data: bytes) -> int:
    """Low byte of the sum of ``data``."""
    return sum(data) & 0xFF


def clamp(value: float, minimum: int, maximum: int) -> int:
    """Round ``value`` and clamp it into ``[minimum, maximum]``."""
    return max(minimum, min(maximum, round(value)))
