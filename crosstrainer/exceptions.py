"""Exceptions raised by the cross trainer BLE client."""

from __future__ import annotations

from collections.abc import Iterable


class CrossTrainerError(Exception):
    """Base class for all errors raised by this package."""


class ConnectError(CrossTrainerError):
    """Raised when a connection to the equipment cannot be established."""


class TransportUnavailableError(ConnectError):
    """Raised when the host has no usable Bluetooth adapter or stack."""


class UserCancelledSelectionError(ConnectError):
    """Raised when no device was chosen during discovery."""


class NoSupportedProtocolError(ConnectError):
    """Raised when a device exposes none of the supported services."""

    def __init__(self, service_uuids: Iterable[str]) -> None:
        self.service_uuids = list(service_uuids)
        super().__init__(
            "No supported protocol found on this device. "
            f"Discovered services: {', '.join(self.service_uuids) or 'none'}"
        )


class HandshakeFailedError(ConnectError):
    """Raised when a required characteristic is missing or a handshake write fails."""


class AlreadyConnectingError(ConnectError):
    """Raised when connect() is called while a connection is in progress or active."""


class NotConnectedError(CrossTrainerError):
    """Raised when an operation needs an active protocol adapter."""


class CommandError(CrossTrainerError):
    """Base class for resistance command failures."""


class PreconditionNotMetError(CommandError):
    """Raised when a command needs device state that has not been received yet."""


class CommandRejectedError(CommandError):
    """Raised when the transport write of a command fails."""


class DecodeError(CrossTrainerError):
    """Raised when a notification frame cannot be decoded."""


class OutOfBoundsError(DecodeError):
    """Raised when a decoder addresses bytes past the end of a frame."""
