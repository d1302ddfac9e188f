from __future__ import annotations

from collections.abc import Iterable

from .._connection import Connection
from ..exceptions import NoSupportedProtocolError
from ._base import ProtocolAdapter, bt16
from ._ftms import DEFAULT_SETTLE_DELAY, FTMS_SERVICE_UUID, FtmsAdapter, FtmsVariant
from ._huantong import HUANTONG_SERVICE_UUID, HuanTongAdapter
from ._vendor_v1 import VendorV1Adapter
from ._vendor_v2 import V2_SERVICE_UUID, VendorV2Adapter

# Detection order; the first adapter whose markers match wins.
ADAPTER_PRIORITY: tuple[type[ProtocolAdapter], ...] = (
    FtmsAdapter,
    VendorV2Adapter,
    VendorV1Adapter,
    HuanTongAdapter,
)

# All service UUIDs used as discovery filters, in priority order.
DISCOVERY_SERVICE_UUIDS: tuple[str, ...] = (
    FTMS_SERVICE_UUID,
    V2_SERVICE_UUID,
    bt16(0xFFE0),
    HUANTONG_SERVICE_UUID,
)


def create_adapters(
    connection: Connection,
    *,
    ftms_variant: FtmsVariant | None = None,
    settle_delay: float = DEFAULT_SETTLE_DELAY,
) -> list[ProtocolAdapter]:
    """Instantiate one fresh adapter per protocol, in priority order."""
    adapters: list[ProtocolAdapter] = []
    for adapter_type in ADAPTER_PRIORITY:
        if adapter_type is FtmsAdapter:
            adapters.append(
                FtmsAdapter(connection, variant=ftms_variant, settle_delay=settle_delay)
            )
        else:
            adapters.append(adapter_type(connection))
    return adapters


def select_adapter(
    adapters: Iterable[ProtocolAdapter], service_uuids: Iterable[str]
) -> ProtocolAdapter:
    """Return the first adapter supporting ``service_uuids``.

    Raises:
        NoSupportedProtocolError: If no adapter matches.
    """
    uuids = list(service_uuids)
    for adapter in adapters:
        if adapter.is_supported(uuids):
            return adapter
    raise NoSupportedProtocolError(uuids)
