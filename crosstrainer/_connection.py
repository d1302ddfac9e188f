from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._diagnostics import DiagnosticLog

if TYPE_CHECKING:
    from ._scanner import TrainerDevice
    from ._transport import GattTransport
    from .protocols import ProtocolAdapter


@dataclass
class Connection:
    """State owned by one connect() call.

    A fresh instance is built for every connection attempt and dropped on
    disconnect. ``last_control_frame`` is written only by the Vendor-V1
    notification handler and read only by its resistance command.
    ``cancelled`` marks an attempt that disconnect() stopped midway.
    """

    diagnostics: DiagnosticLog = field(default_factory=DiagnosticLog)
    device: TrainerDevice | None = None
    transport: GattTransport | None = None
    adapter: ProtocolAdapter | None = None
    last_control_frame: bytes | None = None
    closed: bool = False
    cancelled: bool = False
