"""Tests for protocol selection and the connection lifecycle."""

from __future__ import annotations

import asyncio
import logging

import pytest
from bleak.exc import BleakError
from pydantic import ValidationError

from crosstrainer import (
    AlreadyConnectingError,
    ConnectError,
    Connection,
    ConnectionState,
    HandshakeFailedError,
    ManagerConfig,
    NoSupportedProtocolError,
    NotConnectedError,
    PreconditionNotMetError,
    TrainerManager,
    WorkoutSample,
)
from crosstrainer.protocols import (
    ADAPTER_PRIORITY,
    FtmsAdapter,
    HuanTongAdapter,
    VendorV1Adapter,
    VendorV2Adapter,
    bt16,
    create_adapters,
    select_adapter,
)
from crosstrainer.protocols._ftms import (
    CROSS_TRAINER_DATA_UUID,
    FITNESS_MACHINE_CONTROL_POINT_UUID,
    FTMS_SERVICE_UUID,
)
from crosstrainer.protocols._huantong import (
    HUANTONG_NOTIFY_UUID,
    HUANTONG_SERVICE_UUID,
    HUANTONG_WRITE_UUID,
)
from crosstrainer.protocols._vendor_v1 import V1_DATA_UUID, V1_WRITE_UUID
from crosstrainer.protocols._vendor_v2 import (
    V2_DATA_UUID,
    V2_RESISTANCE_UUID,
    V2_SERVICE_UUID,
    V2_UNLOCK_UUID,
)

FTMS_SERVICES = {FTMS_SERVICE_UUID: [CROSS_TRAINER_DATA_UUID, FITNESS_MACHINE_CONTROL_POINT_UUID]}
V2_SERVICES = {V2_SERVICE_UUID: [V2_UNLOCK_UUID, V2_DATA_UUID, V2_RESISTANCE_UUID]}
V1_SERVICES = {bt16(0xFFE0): [V1_DATA_UUID, V1_WRITE_UUID]}
HUANTONG_SERVICES = {HUANTONG_SERVICE_UUID: [HUANTONG_NOTIFY_UUID, HUANTONG_WRITE_UUID]}
UNKNOWN_SERVICES = {bt16(0x180A): [], bt16(0x180F): []}

VALID_FTMS_FRAME = bytes.fromhex("0803 0096 003c 0078 0064")


def _event_names(events) -> list[str]:
    return [name for name, _ in events]


@pytest.mark.unit
class TestRegistry:
    def test_priority_order(self):
        assert ADAPTER_PRIORITY == (FtmsAdapter, VendorV2Adapter, VendorV1Adapter, HuanTongAdapter)

    def test_fresh_adapters_share_connection(self):
        connection = Connection()
        adapters = create_adapters(connection)
        assert [type(adapter) for adapter in adapters] == list(ADAPTER_PRIORITY)
        assert all(adapter.connection is connection for adapter in adapters)
        assert create_adapters(connection)[0] is not adapters[0]

    @pytest.mark.parametrize("adapter_cls", ADAPTER_PRIORITY)
    def test_connection_keyword(self, adapter_cls):
        connection = Connection()
        assert adapter_cls(connection=connection).connection is connection
        assert adapter_cls().connection is not connection

    @pytest.mark.parametrize(
        ("uuids", "expected"),
        [
            ([FTMS_SERVICE_UUID], FtmsAdapter),
            ([V2_SERVICE_UUID], VendorV2Adapter),
            ([bt16(0xFFE0)], VendorV1Adapter),
            ([bt16(0xFFC0)], VendorV1Adapter),
            ([HUANTONG_SERVICE_UUID], HuanTongAdapter),
            ([HUANTONG_SERVICE_UUID, V2_SERVICE_UUID, FTMS_SERVICE_UUID], FtmsAdapter),
            ([HUANTONG_SERVICE_UUID.upper()], HuanTongAdapter),
        ],
    )
    def test_select(self, uuids, expected):
        assert isinstance(select_adapter(create_adapters(Connection()), uuids), expected)

    def test_no_match(self):
        with pytest.raises(NoSupportedProtocolError) as exc_info:
            select_adapter(create_adapters(Connection()), list(UNKNOWN_SERVICES))
        assert exc_info.value.service_uuids == list(UNKNOWN_SERVICES)


@pytest.mark.unit
class TestConnect:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("services", "protocol"),
        [
            (FTMS_SERVICES, "Standard FTMS"),
            (V2_SERVICES, "Mobi V2 (Classic)"),
            (V1_SERVICES, "Mobi V1 (Legacy)"),
            (HUANTONG_SERVICES, "HuanTong (MOBI-E)"),
        ],
    )
    async def test_selects_protocol(self, make_manager, make_transport, events, services, protocol):
        manager = make_manager(make_transport(services))
        assert await manager.connect() == protocol
        assert manager.state is ConnectionState.CONNECTED
        assert manager.is_connected()
        assert manager.protocol_name == protocol
        assert events == [
            ("CONNECT_ATTEMPT", {"accept_all": False}),
            ("CONNECT_SUCCESS", {"device_name": "MOBI-Test", "protocol": protocol}),
        ]

    @pytest.mark.asyncio
    async def test_unsupported_device(self, make_manager, make_transport, events):
        transport = make_transport(UNKNOWN_SERVICES)
        manager = make_manager(transport)

        with pytest.raises(NoSupportedProtocolError):
            await manager.connect()

        assert manager.state is ConnectionState.ERROR
        assert not manager.is_connected()
        assert transport.disconnect_calls == 1
        assert _event_names(events) == ["CONNECT_ATTEMPT", "CONNECT_ERROR"]
        assert "No supported protocol" in events[-1][1]["error_details"]
        diagnostics = "\n".join(manager.diagnostics())
        assert "Discovered services" in diagnostics
        assert "Connection failed" in diagnostics

    @pytest.mark.asyncio
    async def test_gatt_connect_failure(self, make_manager, make_transport):
        transport = make_transport(FTMS_SERVICES)
        transport.connect_error = BleakError("device not found")
        manager = make_manager(transport)

        with pytest.raises(ConnectError, match="device not found"):
            await manager.connect()
        assert manager.state is ConnectionState.ERROR

    @pytest.mark.asyncio
    async def test_handshake_failure(self, make_manager, make_transport, events):
        manager = make_manager(make_transport({V2_SERVICE_UUID: [V2_DATA_UUID]}))
        with pytest.raises(HandshakeFailedError):
            await manager.connect()
        assert manager.state is ConnectionState.ERROR
        assert manager.protocol_name is None
        assert _event_names(events)[-1] == "CONNECT_ERROR"

    @pytest.mark.asyncio
    async def test_link_lost_during_handshake(self, make_manager, make_transport, events):
        transport = make_transport(V2_SERVICES)

        async def _write_then_drop(characteristic, data):
            transport.drop_link()

        transport.write = _write_then_drop
        manager = make_manager(transport)

        with pytest.raises(ConnectError, match="during the handshake"):
            await manager.connect()
        assert manager.state is ConnectionState.ERROR
        assert _event_names(events) == ["CONNECT_ATTEMPT", "CONNECT_ERROR"]

    @pytest.mark.asyncio
    async def test_connect_while_connected(self, make_manager, make_transport):
        manager = make_manager(make_transport(FTMS_SERVICES))
        await manager.connect()
        with pytest.raises(AlreadyConnectingError):
            await manager.connect()
        assert manager.is_connected()

    @pytest.mark.asyncio
    async def test_connect_while_connecting(self, make_transport, device):
        transport = make_transport(FTMS_SERVICES)
        release = asyncio.Event()

        async def _slow_request(_config):
            await release.wait()
            return device

        manager = TrainerManager(
            ManagerConfig(settle_delay=0),
            device_requester=_slow_request,
            transport_factory=lambda _device, _config, _callback: transport,
        )
        first = asyncio.create_task(manager.connect())
        await asyncio.sleep(0)
        assert manager.state is ConnectionState.REQUESTING

        with pytest.raises(AlreadyConnectingError):
            await manager.connect()

        release.set()
        assert await first == "Standard FTMS"

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_connect(self, make_transport, device):
        def _failing_listener(event, data):
            raise RuntimeError("listener bug")

        async def _request(_config):
            return device

        manager = TrainerManager(
            ManagerConfig(settle_delay=0),
            device_requester=_request,
            transport_factory=lambda _device, _config, _callback: make_transport(FTMS_SERVICES),
            on_event=_failing_listener,
        )
        assert await manager.connect() == "Standard FTMS"

    @pytest.mark.asyncio
    async def test_diagnostics_forwarded_to_log_sink(self, make_transport, device, caplog):
        async def _request(_config):
            return device

        manager = TrainerManager(
            ManagerConfig(settle_delay=0),
            device_requester=_request,
            transport_factory=lambda _device, _config, _callback: make_transport(FTMS_SERVICES),
            log_sink=logging.getLogger("trainer.app"),
        )
        with caplog.at_level(logging.INFO, logger="trainer.app"):
            await manager.connect()

        messages = [
            record.getMessage() for record in caplog.records if record.name == "trainer.app"
        ]
        assert "Selected protocol: Standard FTMS" in messages
        assert any(
            entry.endswith("Selected protocol: Standard FTMS") for entry in manager.diagnostics()
        )

    def test_config_validation(self):
        with pytest.raises(ValidationError):
            ManagerConfig(scan_timeout=0)
        with pytest.raises(ValidationError):
            ManagerConfig(diagnostic_capacity=0)


@pytest.mark.unit
class TestConnectedOperations:
    @pytest.mark.asyncio
    async def test_operations_require_connection(self, make_manager, make_transport):
        manager = make_manager(make_transport(FTMS_SERVICES))
        with pytest.raises(NotConnectedError):
            await manager.set_resistance(10)
        with pytest.raises(NotConnectedError):
            await manager.start_telemetry(lambda sample: None)

    @pytest.mark.asyncio
    async def test_malformed_frame_between_valid_frames(self, make_manager, make_transport):
        transport = make_transport(FTMS_SERVICES)
        manager = make_manager(transport)
        await manager.connect()
        samples: list[WorkoutSample] = []
        await manager.start_telemetry(samples.append)

        transport.notify(CROSS_TRAINER_DATA_UUID, VALID_FTMS_FRAME)
        transport.notify(CROSS_TRAINER_DATA_UUID, VALID_FTMS_FRAME[:7])
        transport.notify(CROSS_TRAINER_DATA_UUID, VALID_FTMS_FRAME)

        assert len(samples) == 2
        assert manager.is_connected()

    @pytest.mark.asyncio
    async def test_set_resistance_delegates(self, make_manager, make_transport):
        transport = make_transport(HUANTONG_SERVICES)
        manager = make_manager(transport)
        await manager.connect()
        await manager.set_resistance(10)
        assert transport.writes_to(HUANTONG_WRITE_UUID) == [bytes([0x20, 0xC1, 0x0A, 0x00, 0xDB])]

    @pytest.mark.asyncio
    async def test_ftms_variant_from_config(self, make_manager, make_transport):
        transport = make_transport(FTMS_SERVICES)
        manager = make_manager(transport, ftms_variant={"speed_divisor": 100})
        await manager.connect()
        samples: list[WorkoutSample] = []
        await manager.start_telemetry(samples.append)
        transport.notify(CROSS_TRAINER_DATA_UUID, VALID_FTMS_FRAME)
        assert samples[0].speed_kph == 1.5


@pytest.mark.unit
class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, make_manager, make_transport, events):
        transport = make_transport(FTMS_SERVICES)
        manager = make_manager(transport)
        await manager.connect()

        await manager.disconnect()
        assert not manager.is_connected()
        await manager.disconnect()
        assert not manager.is_connected()

        assert manager.state is ConnectionState.DISCONNECTED
        assert transport.disconnect_calls == 1
        assert _event_names(events) == ["CONNECT_ATTEMPT", "CONNECT_SUCCESS", "DISCONNECT_MANUAL"]

    @pytest.mark.asyncio
    async def test_disconnect_without_connection(self, make_manager, make_transport, events):
        manager = make_manager(make_transport(FTMS_SERVICES))
        await manager.disconnect()
        assert not manager.is_connected()
        assert manager.state is ConnectionState.IDLE
        assert events == []

    @pytest.mark.asyncio
    async def test_passive_disconnect(self, make_manager, make_transport, events):
        transport = make_transport(FTMS_SERVICES)
        manager = make_manager(transport)
        await manager.connect()

        transport.drop_link()

        assert manager.state is ConnectionState.DISCONNECTED
        assert not manager.is_connected()
        assert _event_names(events)[-1] == "DISCONNECT_PASSIVE"
        assert any("passive" in entry for entry in manager.diagnostics())
        with pytest.raises(NotConnectedError):
            await manager.set_resistance(10)

        await manager.disconnect()
        assert _event_names(events).count("DISCONNECT_MANUAL") == 0

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect(self, make_manager, make_transport):
        transport = make_transport(FTMS_SERVICES)
        manager = make_manager(transport)
        await manager.connect()
        await manager.disconnect()
        assert manager.diagnostics()[-1].endswith("Disconnecting (manual)")

        assert await manager.connect() == "Standard FTMS"
        assert manager.is_connected()
        assert not any("Disconnecting" in entry for entry in manager.diagnostics())

    @pytest.mark.asyncio
    async def test_v1_reconnect_waits_for_new_control_frame(self, make_manager, make_transport):
        transport = make_transport(V1_SERVICES)
        manager = make_manager(transport)
        await manager.connect()
        await manager.disconnect()
        await manager.connect()
        with pytest.raises(PreconditionNotMetError):
            await manager.set_resistance(5)
        assert transport.writes_to(V1_WRITE_UUID) == []

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending_connect(self, make_transport, device, events):
        transport = make_transport(FTMS_SERVICES)
        release = asyncio.Event()

        async def _slow_request(_config):
            await release.wait()
            return device

        def _transport_factory(_device, _config, on_disconnect):
            transport.on_disconnect = on_disconnect
            return transport

        manager = TrainerManager(
            ManagerConfig(settle_delay=0),
            device_requester=_slow_request,
            transport_factory=_transport_factory,
            on_event=lambda event, data: events.append((event.value, data)),
        )
        first = asyncio.create_task(manager.connect())
        await asyncio.sleep(0)

        await manager.disconnect()
        assert manager.state is ConnectionState.DISCONNECTED
        with pytest.raises(AlreadyConnectingError):
            await manager.connect()

        release.set()
        with pytest.raises(ConnectError, match="cancelled"):
            await first

        assert transport.writes == []
        assert transport.disconnect_calls == 0
        assert not transport.is_connected
        assert manager.state is ConnectionState.DISCONNECTED
        assert _event_names(events) == ["CONNECT_ATTEMPT", "DISCONNECT_MANUAL", "CONNECT_ERROR"]

        assert await manager.connect() == "Standard FTMS"
        assert manager.is_connected()

    @pytest.mark.asyncio
    async def test_disconnect_while_opening_gatt(self, make_manager, make_transport):
        transport = make_transport(FTMS_SERVICES)
        opening = asyncio.Event()
        release = asyncio.Event()
        open_link = transport.connect

        async def _slow_connect():
            opening.set()
            await release.wait()
            await open_link()

        transport.connect = _slow_connect
        manager = make_manager(transport)
        first = asyncio.create_task(manager.connect())
        await opening.wait()

        await manager.disconnect()
        release.set()
        with pytest.raises(ConnectError, match="cancelled"):
            await first

        assert transport.writes == []
        assert not transport.is_connected
        assert manager.state is ConnectionState.DISCONNECTED
        assert manager.protocol_name is None

    @pytest.mark.asyncio
    async def test_disconnect_during_ftms_settle(self, make_manager, make_transport):
        transport = make_transport(FTMS_SERVICES)
        manager = make_manager(transport, settle_delay=0.05)
        first = asyncio.create_task(manager.connect())
        while not transport.writes:
            await asyncio.sleep(0)

        await manager.disconnect()
        with pytest.raises(ConnectError, match="cancelled"):
            await first

        # Request Control went out; Start or Resume did not.
        assert transport.writes_to(FITNESS_MACHINE_CONTROL_POINT_UUID) == [bytes([0x00])]
        assert manager.state is ConnectionState.DISCONNECTED
