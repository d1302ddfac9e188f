"""Cross Trainer BLE Library.

A Python library for talking to elliptical trainers over Bluetooth Low Energy.
Detects which of the supported wire protocols a machine speaks (standard FTMS
or one of the Mobi / HuanTong vendor protocols), decodes live telemetry and
sends resistance commands.
"""

from ._connection import Connection
from ._diagnostics import DiagnosticLog
from ._scanner import (
    TrainerDevice,
    choose_address,
    choose_strongest,
    discover_trainers,
    request_device,
)
from ._transport import GattTransport
from .client import (
    ConnectionEvent,
    ConnectionState,
    ManagerConfig,
    TrainerManager,
    WorkoutSession,
)
from .exceptions import (
    AlreadyConnectingError,
    CommandError,
    CommandRejectedError,
    ConnectError,
    CrossTrainerError,
    DecodeError,
    HandshakeFailedError,
    NoSupportedProtocolError,
    NotConnectedError,
    OutOfBoundsError,
    PreconditionNotMetError,
    TransportUnavailableError,
    UserCancelledSelectionError,
)
from .protocols import FTMS_VARIANTS, FtmsVariant, ProtocolAdapter, WorkoutSample

__version__ = "0.1.0"

__all__ = [
    "FTMS_VARIANTS",
    "AlreadyConnectingError",
    "CommandError",
    "CommandRejectedError",
    "ConnectError",
    "Connection",
    "ConnectionEvent",
    "ConnectionState",
    "CrossTrainerError",
    "DecodeError",
    "DiagnosticLog",
    "FtmsVariant",
    "GattTransport",
    "HandshakeFailedError",
    "ManagerConfig",
    "NoSupportedProtocolError",
    "NotConnectedError",
    "OutOfBoundsError",
    "PreconditionNotMetError",
    "ProtocolAdapter",
    "TrainerDevice",
    "TrainerManager",
    "TransportUnavailableError",
    "UserCancelledSelectionError",
    "WorkoutSample",
    "WorkoutSession",
    "choose_address",
    "choose_strongest",
    "discover_trainers",
    "request_device",
]
