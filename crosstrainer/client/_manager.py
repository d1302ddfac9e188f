from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from functools import partial
from typing import Any

from pydantic import BaseModel, Field

from .._connection import Connection
from .._diagnostics import DEFAULT_CAPACITY, DiagnosticLog
from .._scanner import DeviceChooser, TrainerDevice, choose_strongest, request_device
from .._transport import TRANSPORT_ERRORS, GattTransport
from ..exceptions import AlreadyConnectingError, ConnectError, NotConnectedError
from ..protocols import (
    FTMS_VARIANTS,
    FtmsVariant,
    ProtocolAdapter,
    TelemetrySink,
    create_adapters,
    select_adapter,
)
from ..protocols._ftms import DEFAULT_SETTLE_DELAY

LOGGER = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle of a :class:`TrainerManager` connection."""

    IDLE = "idle"
    REQUESTING = "requesting"
    GATT_CONNECTING = "gatt_connecting"
    DETECTING_PROTOCOL = "detecting_protocol"
    HANDSHAKING = "handshaking"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class ConnectionEvent(str, Enum):
    """Events reported to an analytics collaborator through ``on_event``."""

    CONNECT_ATTEMPT = "CONNECT_ATTEMPT"
    CONNECT_SUCCESS = "CONNECT_SUCCESS"
    CONNECT_ERROR = "CONNECT_ERROR"
    DISCONNECT_MANUAL = "DISCONNECT_MANUAL"
    DISCONNECT_PASSIVE = "DISCONNECT_PASSIVE"


_CONNECTABLE_STATES = frozenset(
    {ConnectionState.IDLE, ConnectionState.DISCONNECTED, ConnectionState.ERROR}
)


class ManagerConfig(BaseModel):
    """Configuration for :class:`TrainerManager`."""

    scan_timeout: float = Field(default=10.0, gt=0.0)
    connect_timeout: float = Field(default=10.0, gt=0.0)
    accept_all_devices: bool = False
    diagnostic_capacity: int = Field(default=DEFAULT_CAPACITY, ge=1)
    settle_delay: float = Field(default=DEFAULT_SETTLE_DELAY, ge=0.0)
    ftms_variant: FtmsVariant = Field(default_factory=lambda: FTMS_VARIANTS["mobi"])


DeviceRequester = Callable[[ManagerConfig], Awaitable[TrainerDevice]]
TransportFactory = Callable[[TrainerDevice, ManagerConfig, Callable[[], None]], GattTransport]
EventListener = Callable[[ConnectionEvent, dict[str, Any]], None]


def _default_transport_factory(
    device: TrainerDevice, config: ManagerConfig, on_disconnect: Callable[[], None]
) -> GattTransport:
    return GattTransport(
        device.ble_device or device.address,
        timeout=config.connect_timeout,
        disconnected_callback=on_disconnect,
    )


def _check_open(connection: Connection, step: str) -> None:
    if connection.cancelled:
        raise ConnectError("Connection attempt cancelled by disconnect()")
    if connection.closed:
        raise ConnectError(f"Device disconnected {step}")


class TrainerManager:
    """Connect to an elliptical trainer and drive whichever protocol it speaks.

    The manager discovers a device, opens its GATT server, picks the first
    adapter (in :data:`~crosstrainer.protocols.ADAPTER_PRIORITY` order) that
    supports the discovered services and delegates telemetry and resistance
    control to it. Every ``connect()`` builds a new :class:`Connection`; its
    diagnostic log stays readable through :meth:`diagnostics` after a failure.

    Example:
        >>> manager = TrainerManager()
        >>> protocol = await manager.connect()
        >>> await manager.start_telemetry(print)
        >>> await manager.set_resistance(12)
        >>> await manager.disconnect()
    """

    def __init__(
        self,
        config: ManagerConfig | None = None,
        *,
        chooser: DeviceChooser | None = None,
        device_requester: DeviceRequester | None = None,
        transport_factory: TransportFactory | None = None,
        log_sink: logging.Logger | None = None,
        on_event: EventListener | None = None,
    ) -> None:
        """Create a manager.

        Args:
            config: Timeouts, discovery mode and FTMS variant
            chooser: Picks a device from discovery results (default: strongest signal)
            device_requester: Replaces discovery entirely; receives the config
            transport_factory: Builds the GATT transport for a chosen device
            log_sink: Logger every diagnostic entry is forwarded to
            on_event: Receives connection events for analytics
        """
        self.config = config or ManagerConfig()
        self._chooser = chooser or choose_strongest
        self._device_requester = device_requester or self._request_device
        self._transport_factory = transport_factory or _default_transport_factory
        self._log_sink = log_sink or LOGGER
        self._on_event = on_event
        self._state = ConnectionState.IDLE
        self._connection: Connection | None = None
        self._connecting = False

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state."""
        return self._state

    @property
    def protocol_name(self) -> str | None:
        """Name of the active protocol, if connected."""
        if self._connection and self._connection.adapter:
            return self._connection.adapter.name
        return None

    def is_connected(self) -> bool:
        """Return True while a protocol adapter is active on a live link."""
        connection = self._connection
        return (
            self._state is ConnectionState.CONNECTED
            and connection is not None
            and connection.adapter is not None
            and connection.transport is not None
            and connection.transport.is_connected
        )

    def diagnostics(self) -> list[str]:
        """Timestamped diagnostic entries of the latest connection attempt."""
        if self._connection is None:
            return []
        return self._connection.diagnostics.snapshot()

    async def connect(self) -> str:
        """Discover, connect and hand the device to the matching protocol.

        Returns:
            Human-readable name of the selected protocol

        Raises:
            AlreadyConnectingError: If a connection is in progress or active
            TransportUnavailableError: If the host has no Bluetooth support
            UserCancelledSelectionError: If no device was chosen
            NoSupportedProtocolError: If the device matches no adapter
            HandshakeFailedError: If the protocol handshake failed
            ConnectError: If the GATT connection failed
        """
        if self._connecting or self._state not in _CONNECTABLE_STATES:
            raise AlreadyConnectingError(f"connect() called while {self._state.value}")

        connection = Connection(
            diagnostics=DiagnosticLog(self.config.diagnostic_capacity, sink=self._log_sink)
        )
        self._connection = connection
        self._connecting = True
        self._emit(ConnectionEvent.CONNECT_ATTEMPT, accept_all=self.config.accept_all_devices)

        try:
            adapter = await self._establish(connection)
        except (Exception, asyncio.CancelledError) as exc:
            connection.diagnostics.record("Connection failed: %s", exc, level=logging.ERROR)
            if not connection.cancelled:
                self._set_state(ConnectionState.ERROR)
            await self._teardown(connection)
            self._emit(ConnectionEvent.CONNECT_ERROR, error_details=str(exc))
            raise
        finally:
            self._connecting = False

        self._set_state(ConnectionState.CONNECTED)
        device = connection.device
        self._emit(
            ConnectionEvent.CONNECT_SUCCESS,
            device_name=device.name if device else None,
            protocol=adapter.name,
        )
        return adapter.name

    async def _establish(self, connection: Connection) -> ProtocolAdapter:
        diagnostics = connection.diagnostics

        self._set_state(ConnectionState.REQUESTING)
        device = await self._device_requester(self.config)
        _check_open(connection, "before the GATT connection")
        connection.device = device
        diagnostics.record("Selected device %s (%s)", device.name or "Unknown", device.address)

        self._set_state(ConnectionState.GATT_CONNECTING)
        transport = self._transport_factory(
            device, self.config, partial(self._handle_transport_disconnect, connection)
        )
        connection.transport = transport
        try:
            await transport.connect()
        except TRANSPORT_ERRORS as exc:
            raise ConnectError(f"GATT server connection failed: {exc}") from exc
        _check_open(connection, "while opening the GATT server")

        self._set_state(ConnectionState.DETECTING_PROTOCOL)
        service_uuids = transport.service_uuids
        diagnostics.record("Discovered services: %s", ", ".join(service_uuids) or "none")
        adapter = select_adapter(
            create_adapters(
                connection,
                ftms_variant=self.config.ftms_variant,
                settle_delay=self.config.settle_delay,
            ),
            service_uuids,
        )
        diagnostics.record("Selected protocol: %s", adapter.name)

        self._set_state(ConnectionState.HANDSHAKING)
        connection.adapter = adapter
        await adapter.connect(transport)
        _check_open(connection, "during the handshake")
        diagnostics.record("Connected using %s", adapter.name)
        return adapter

    async def start_telemetry(self, sink: TelemetrySink) -> None:
        """Forward decoded samples to ``sink`` in notification order."""
        adapter = self._require_adapter()
        await adapter.start_telemetry(sink)

    async def set_resistance(self, level: int) -> None:
        """Ask the active protocol to change the resistance level."""
        adapter = self._require_adapter()
        self._require_connection().diagnostics.record(
            "Set resistance to %s", level, level=logging.DEBUG
        )
        await adapter.set_resistance(level)

    async def disconnect(self) -> None:
        """Tear down the active connection. Calling it again is a no-op.

        While connect() is still running this cancels the attempt: it stops
        before its next I/O step and raises ConnectError, leaving the state
        DISCONNECTED.
        """
        connection = self._connection
        if connection is None or connection.closed:
            return
        if self._connecting:
            connection.cancelled = True
            connection.diagnostics.record("Disconnecting (connection attempt cancelled)")
        else:
            connection.diagnostics.record("Disconnecting (manual)")
        await self._teardown(connection)
        self._set_state(ConnectionState.DISCONNECTED)
        self._emit(ConnectionEvent.DISCONNECT_MANUAL)

    def _handle_transport_disconnect(self, connection: Connection) -> None:
        """Handle a link loss reported by the transport."""
        if connection is not self._connection or connection.closed:
            return
        connection.diagnostics.record("Device disconnected (passive)", level=logging.WARNING)
        connection.closed = True
        if self._state is not ConnectionState.CONNECTED:
            # connect() is still running and fails on its own.
            return
        if connection.adapter:
            connection.adapter.disconnect()
            connection.adapter = None
        self._set_state(ConnectionState.DISCONNECTED)
        self._emit(ConnectionEvent.DISCONNECT_PASSIVE)

    async def _teardown(self, connection: Connection) -> None:
        connection.closed = True
        if connection.adapter:
            connection.adapter.disconnect()
            connection.adapter = None
        if connection.transport is not None:
            try:
                await connection.transport.disconnect()
            except TRANSPORT_ERRORS as exc:
                connection.diagnostics.record(
                    "Error during disconnect: %s", exc, level=logging.WARNING
                )

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise NotConnectedError("Not connected")
        return self._connection

    def _require_adapter(self) -> ProtocolAdapter:
        connection = self._require_connection()
        if self._state is not ConnectionState.CONNECTED or connection.adapter is None:
            raise NotConnectedError("Not connected")
        return connection.adapter

    async def _request_device(self, config: ManagerConfig) -> TrainerDevice:
        return await request_device(
            self._chooser, timeout=config.scan_timeout, accept_all=config.accept_all_devices
        )

    def _set_state(self, state: ConnectionState) -> None:
        LOGGER.debug("State %s -> %s", self._state.value, state.value)
        self._state = state

    def _emit(self, event: ConnectionEvent, **data: Any) -> None:
        if not self._on_event:
            return
        try:
            self._on_event(event, data)
        except Exception:
            LOGGER.exception("Event listener failed for %s", event.value)
