"""Custom exceptions for pygree library."""

from __future__ import annotations

from typing import Any


class GreeError(Exception):
    """Base exception for all Gree errors."""


class GreeConnectionError(GreeError):
    """Exception raised when the datagram transport fails."""


class GreeTimeoutError(GreeError):
    """Exception raised when no matching reply arrives before the deadline."""


class BindTimeoutError(GreeTimeoutError):
    """Exception raised when a device does not answer a bind request in time."""


class DecodeError(GreeError):
    """Exception raised when an encrypted pack cannot be decoded.

    Usually indicates a wrong key or a corrupted datagram.
    """


class ProtocolError(GreeError):
    """Exception raised for well-formed but semantically unexpected replies."""


class InvalidParameterError(GreeError):
    """Exception raised for invalid property codes or values.

    Attributes:
        parameter_name: Optional name of the invalid parameter.
        value: Optional value that was invalid.
    """

    def __init__(
        self,
        message: str = "",
        parameter_name: str | None = None,
        value: Any = None,
    ) -> None:
        """Initialize InvalidParameterError.

        Args:
            message: Error message.
            parameter_name: Optional name of the invalid parameter.
            value: Optional value that was invalid.
        """
        super().__init__(message)
        self.parameter_name = parameter_name
        self.value = value


class UnknownPropertyError(InvalidParameterError):
    """Exception raised when a property name or code is not in the catalog."""


class DeviceError(GreeError):
    """Exception raised for device-related errors.

    Attributes:
        device_id: Optional device mac associated with the error.
    """

    def __init__(self, message: str = "", device_id: str | None = None) -> None:
        """Initialize DeviceError.

        Args:
            message: Error message.
            device_id: Optional device mac associated with the error.
        """
        super().__init__(message)
        self.device_id = device_id


class DeviceNotBoundError(DeviceError):
    """Exception raised when a command is issued against an unbound session."""


class DeviceNotFoundError(DeviceError):
    """Exception raised when a target is not among the discovered devices."""


class CommandCancelledError(GreeError):
    """Exception raised when a queued command is cancelled before it runs."""
