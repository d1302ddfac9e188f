from __future__ import annotations

import abc
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, ClassVar

from .._connection import Connection
from .._transport import TRANSPORT_ERRORS
from ..exceptions import (
    CommandRejectedError,
    ConnectError,
    DecodeError,
    HandshakeFailedError,
    NotConnectedError,
)
from ._sample import WorkoutSample

if TYPE_CHECKING:
    from .._transport import GattTransport

TelemetrySink = Callable[[WorkoutSample], None]
FrameDecoder = Callable[[bytes], "WorkoutSample | None"]


def bt16(uuid16: int) -> str:
    """Convert a 16-bit SIG UUID to a 128-bit UUID string."""
    return f"0000{uuid16:04x}-0000-1000-8000-00805f9b34fb"


class ProtocolAdapter(abc.ABC):
    """Capability contract shared by every supported wire protocol.

    One instance serves exactly one :class:`Connection`. Subclasses declare
    ``name`` and the ``service_markers`` used to recognise their GATT layout.
    """

    name: ClassVar[str]
    service_markers: ClassVar[tuple[str, ...]]

    def __init__(self, connection: Connection | None = None) -> None:
        self._connection = connection or Connection()
        self._transport: GattTransport | None = None

    @property
    def connection(self) -> Connection:
        """Connection state this adapter belongs to."""
        return self._connection

    def is_supported(self, service_uuids: Iterable[str]) -> bool:
        """Return True when any discovered service carries one of our markers."""
        return any(
            marker in uuid.lower() for uuid in service_uuids for marker in self.service_markers
        )

    @abc.abstractmethod
    async def connect(self, transport: GattTransport) -> None:
        """Resolve characteristics and run the protocol handshake."""

    @abc.abstractmethod
    async def start_telemetry(self, sink: TelemetrySink) -> None:
        """Subscribe to notifications and forward decoded samples to ``sink``."""

    @abc.abstractmethod
    async def set_resistance(self, level: int) -> None:
        """Encode and write a resistance command."""

    @abc.abstractmethod
    def disconnect(self) -> None:
        """Release characteristic handles. Safe to call repeatedly."""

    def _record(self, message: str, *args: object, level: int = logging.INFO) -> None:
        self._connection.diagnostics.record(f"{self.name}: {message}", *args, level=level)

    def _require_transport(self) -> GattTransport:
        if self._transport is None:
            raise NotConnectedError(f"{self.name} adapter is not connected")
        return self._transport

    def _require_characteristic(self, service_uuid: str, characteristic_uuid: str) -> Any:
        characteristic = self._require_transport().get_characteristic(
            service_uuid, characteristic_uuid
        )
        if characteristic is None:
            raise HandshakeFailedError(
                f"{self.name}: required characteristic {characteristic_uuid} not found"
            )
        return characteristic

    def _optional_characteristic(self, service_uuid: str, characteristic_uuid: str) -> Any:
        characteristic = self._require_transport().get_characteristic(
            service_uuid, characteristic_uuid
        )
        if characteristic is None:
            self._record(
                "optional characteristic %s not found", characteristic_uuid, level=logging.WARNING
            )
        return characteristic

    async def _subscribe(
        self,
        characteristic: Any,
        decoder: FrameDecoder,
        sink: TelemetrySink,
        *,
        on_frame: Callable[[bytes], None] | None = None,
    ) -> None:
        """Start notifications on ``characteristic`` routed through ``decoder``."""

        def _handle(frame: bytes) -> None:
            if on_frame:
                on_frame(frame)
            try:
                sample = decoder(frame)
            except DecodeError as exc:
                # One malformed frame must not end the stream.
                self._record("dropped frame %s: %s", frame.hex(), exc, level=logging.WARNING)
                return
            if sample is not None and not sample.is_empty():
                sink(sample)

        try:
            await self._require_transport().start_notify(characteristic, _handle)
        except TRANSPORT_ERRORS as exc:
            raise ConnectError(
                f"{self.name}: failed to subscribe to {characteristic.uuid}: {exc}"
            ) from exc
        self._record("notifications started on %s", characteristic.uuid)

    async def _write_command(self, characteristic: Any, command: bytes) -> None:
        try:
            await self._require_transport().write(characteristic, command)
        except TRANSPORT_ERRORS as exc:
            raise CommandRejectedError(
                f"{self.name}: write of {command.hex()} failed: {exc}"
            ) from exc
        self._record("wrote %s", command.hex(), level=logging.DEBUG)
