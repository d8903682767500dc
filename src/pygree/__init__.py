"""Python client library for Gree air conditioners on the local network.

This package speaks the Gree/EWPE UDP protocol: broadcast discovery, the key
binding handshake, and encrypted status reads and commands.

The library is organized into layers:
1. **Protocol Layer** (pygree.cipher, pygree.serializers, pygree.parsers): wire format
2. **Engine Layer** (pygree.api, pygree.session, pygree.discovery): request/reply round trips
3. **Client Layer** (pygree.client): discovery, aliases and device coordination
4. **Device Layer** (pygree.devices): stateful device objects with optimistic updates

Example:
    Basic usage:

    ```python
    from pygree import GreeClient, GreeConfig, Mode

    async with GreeClient(GreeConfig(broadcast_address="192.168.1.255")) as client:
        devices = await client.get_devices()

        for device in devices:
            await device.refresh()
            await device.turn_on()
            await device.set_mode(Mode.COOL)
            await device.set_target_temperature(24)

        print(f"Target: {devices[0].target_temperature} °C")
    ```

    Low-level usage with the command engine:

    ```python
    from pygree import GreeAPI, Session, UdpTransport, discover

    async with UdpTransport() as transport:
        api = GreeAPI(transport)
        identity = (await discover(transport, "192.168.1.255"))[0]

        session = Session(identity)
        await session.bind(api)
        status = await api.read_status(session, ["Pow", "SetTem"])
    ```
"""

from __future__ import annotations

from pygree.api import GreeAPI
from pygree.cipher import decrypt, encrypt
from pygree.client import GreeClient, GreeConfig
from pygree.devices import GreeDevice
from pygree.discovery import discover
from pygree.exceptions import (
    BindTimeoutError,
    CommandCancelledError,
    DecodeError,
    DeviceError,
    DeviceNotBoundError,
    DeviceNotFoundError,
    GreeConnectionError,
    GreeError,
    GreeTimeoutError,
    InvalidParameterError,
    ProtocolError,
    UnknownPropertyError,
)
from pygree.models import (
    BindingState,
    DeviceIdentity,
    DeviceKey,
    Envelope,
    PropertySet,
)
from pygree.properties import (
    DEFAULT_STATUS_CODES,
    FanSpeed,
    HorizontalSwing,
    Mode,
    TemperatureUnit,
    VerticalSwing,
)
from pygree.queue import CommandQueue, QueuedCommand
from pygree.resilience import (
    CircuitBreaker,
    CircuitState,
    ExponentialBackoff,
    retry_with_backoff,
)
from pygree.session import Session
from pygree.transport import Datagram, DatagramTransport, UdpTransport


__version__ = "0.1.0"

__all__ = [
    "DEFAULT_STATUS_CODES",
    "BindTimeoutError",
    "BindingState",
    "CircuitBreaker",
    "CircuitState",
    "CommandCancelledError",
    "CommandQueue",
    "Datagram",
    "DatagramTransport",
    "DecodeError",
    "DeviceError",
    "DeviceIdentity",
    "DeviceKey",
    "DeviceNotBoundError",
    "DeviceNotFoundError",
    "Envelope",
    "ExponentialBackoff",
    "FanSpeed",
    "GreeAPI",
    "GreeClient",
    "GreeConfig",
    "GreeConnectionError",
    "GreeDevice",
    "GreeError",
    "GreeTimeoutError",
    "HorizontalSwing",
    "InvalidParameterError",
    "Mode",
    "PropertySet",
    "ProtocolError",
    "QueuedCommand",
    "Session",
    "TemperatureUnit",
    "UdpTransport",
    "UnknownPropertyError",
    "VerticalSwing",
    "__version__",
    "decrypt",
    "discover",
    "encrypt",
    "retry_with_backoff",
]
