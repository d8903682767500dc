"""Device manager and coordinator for Gree devices.

This module ties the pieces together: it owns the UDP transport, discovers devices
on the local segment, keeps one stateful device object per mac, resolves aliases
and re-scans the network when its view of it is stale.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from pygree.api import GreeAPI
from pygree.const import (
    DEFAULT_BROADCAST_ADDRESS,
    DEFAULT_DISCOVERY_WINDOW,
    DEFAULT_LOCAL_ADDRESS,
    DEFAULT_MAX_DEVICES,
    DEFAULT_MAX_SCAN_AGE,
    DEFAULT_MIN_REQUEST_INTERVAL,
    DEFAULT_MIN_SCAN_AGE,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_UID,
)
from pygree.devices import GreeDevice
from pygree.exceptions import DeviceNotFoundError, GreeTimeoutError
from pygree.models import PropertySet
from pygree.properties import DEFAULT_STATUS_CODES, code_for, validate_changes
from pygree.queue import CommandQueue
from pygree.resilience import retry_with_backoff
from pygree.session import Session
from pygree.transport import UdpTransport


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping
    from types import TracebackType

    from pygree.models import DeviceIdentity, DeviceKey
    from pygree.resilience import CircuitBreaker, ExponentialBackoff
    from pygree.transport import DatagramTransport

__all__ = ["GreeClient", "GreeConfig"]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


@dataclass
class GreeConfig:
    """Configuration for GreeClient.

    Attributes:
        broadcast_address: Broadcast address of the segment the devices are on.
        port: Device port.
        local_address: (host, port) the UDP socket binds to.
        timeout: Reply timeout for every round trip, in seconds.
        discovery_window: How long a scan collects replies, in seconds.
        max_count: A scan stops after this many devices answered.
        min_scan_age: A forced rescan is skipped if the last scan is younger.
        max_scan_age: The cached scan is refreshed once it is this old.
        aliases: Alias -> mac map, accepted wherever a target is expected.
        uid: User id sent in every envelope.
        min_request_interval: Minimum seconds between two writes to one device.
    """

    broadcast_address: str = DEFAULT_BROADCAST_ADDRESS
    port: int = DEFAULT_PORT
    local_address: tuple[str, int] = DEFAULT_LOCAL_ADDRESS
    timeout: float = DEFAULT_TIMEOUT
    discovery_window: float = DEFAULT_DISCOVERY_WINDOW
    max_count: int = DEFAULT_MAX_DEVICES
    min_scan_age: float = DEFAULT_MIN_SCAN_AGE
    max_scan_age: float = DEFAULT_MAX_SCAN_AGE
    aliases: dict[str, str] = field(default_factory=dict)
    uid: int = DEFAULT_UID
    min_request_interval: float = DEFAULT_MIN_REQUEST_INTERVAL


class GreeClient:
    """Device manager and coordinator for Gree devices.

    The first operation scans the network. Afterwards the cached scan is reused
    until it is older than ``max_scan_age``; a target that cannot be found, or a
    device that stops answering, triggers a forced rescan, which is honoured
    once the cached scan is older than ``min_scan_age``.

    Example:
        Basic usage:

        ```python
        from pygree import GreeClient, GreeConfig

        config = GreeConfig(broadcast_address="192.168.1.255", aliases={"bedroom": "f4911e7aca59"})
        async with GreeClient(config) as client:
            for device in await client.get_devices():
                print(device.mac, device.host)

            await client.write("bedroom", {"power": 1, "target_temperature": 22})
            status = await client.read("bedroom", ["Pow", "SetTem"])
        ```

        With resilience patterns:

        ```python
        from pygree.resilience import CircuitBreaker, ExponentialBackoff

        client = GreeClient(
            config,
            circuit_breaker=CircuitBreaker(failure_threshold=5),
            backoff=ExponentialBackoff(max_retries=3),
        )
        ```

    Attributes:
        api: Command engine shared by every device.
        config: Client configuration.
    """

    def __init__(
        self,
        config: GreeConfig | None = None,
        *,
        transport: DatagramTransport | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        backoff: ExponentialBackoff | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration; defaults to GreeConfig().
            transport: Optional datagram transport. If not provided, a UdpTransport
                is created and closed with the client.
            circuit_breaker: Optional CircuitBreaker around device round trips.
            backoff: Optional ExponentialBackoff for retrying device round trips.
        """
        self.config = config or GreeConfig()
        self._owns_transport = transport is None
        self._transport: DatagramTransport = transport or UdpTransport(local_address=self.config.local_address)
        self._api = GreeAPI(self._transport, timeout=self.config.timeout)

        self._circuit_breaker = circuit_breaker
        self._backoff = backoff

        self._devices: dict[str, GreeDevice] = {}
        self._scanned_at: float | None = None
        self._scan_lock = asyncio.Lock()

    @property
    def api(self) -> GreeAPI:
        """Command engine shared by every device."""
        return self._api

    @property
    def devices(self) -> dict[str, GreeDevice]:
        """Known devices by mac, without scanning."""
        return dict(self._devices)

    async def __aenter__(self) -> GreeClient:
        """Enter the context manager, opening the transport.

        Returns:
            Self for use in async with statements.
        """
        if self._owns_transport and isinstance(self._transport, UdpTransport):
            await self._transport.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the context manager.

        Shuts down all devices and closes the transport if the client created it.
        """
        await self.close()

    async def close(self) -> None:
        """Shut down all devices and close an owned transport."""
        for device in self._devices.values():
            await device.shutdown()
        if self._owns_transport:
            await self._transport.close()

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def _scan_due(self, *, force: bool) -> bool:
        if self._scanned_at is None:
            return True
        age = asyncio.get_running_loop().time() - self._scanned_at
        if age >= self.config.max_scan_age:
            return True
        return force and age >= self.config.min_scan_age

    async def scan(self, *, force: bool = False) -> list[GreeDevice]:
        """Scan the network if the cached scan is stale.

        Args:
            force: Rescan even if the cached scan is younger than max_scan_age
                (but not younger than min_scan_age).

        Returns:
            All known devices.

        Raises:
            GreeConnectionError: If the broadcast cannot be sent.
        """
        async with self._scan_lock:
            if self._scan_due(force=force):
                identities = await self._api.scan(
                    self.config.broadcast_address,
                    port=self.config.port,
                    window=self.config.discovery_window,
                    max_count=self.config.max_count,
                )
                self._scanned_at = asyncio.get_running_loop().time()
                await self._apply_scan(identities)
            else:
                _LOGGER.debug("Skipping scan, cached scan is recent")
        return list(self._devices.values())

    async def _apply_scan(self, identities: list[DeviceIdentity]) -> None:
        """Register discovered devices.

        A device that answered from a new address gets a fresh session. Devices
        that did not answer this time are kept.
        """
        for identity in identities:
            existing = self._devices.get(identity.mac)
            if existing is not None and existing.identity == identity:
                continue
            if existing is not None:
                _LOGGER.info("Device %s moved from %s to %s", identity.mac, existing.host, identity.host)
                await existing.shutdown()
            self._devices[identity.mac] = self._create_device(identity)

    def _create_device(self, identity: DeviceIdentity, key: DeviceKey | bytes | str | None = None) -> GreeDevice:
        return GreeDevice(
            self._api,
            Session(identity, uid=self.config.uid, key=key),
            command_queue=CommandQueue(min_interval=self.config.min_request_interval),
            round_trip=self._with_resilience if self._circuit_breaker or self._backoff else None,
        )

    async def _with_resilience(self, func: Callable[[], Awaitable[_T]]) -> _T:
        return await retry_with_backoff(func, circuit_breaker=self._circuit_breaker, backoff=self._backoff)

    def add_device(self, identity: DeviceIdentity, *, key: DeviceKey | bytes | str | None = None) -> GreeDevice:
        """Register a device without scanning, optionally with a known key.

        Returns:
            The registered device.
        """
        device = self._create_device(identity, key)
        self._devices[identity.mac] = device
        return device

    # -------------------------------------------------------------------------
    # Device Lookup
    # -------------------------------------------------------------------------

    def resolve(self, target: str) -> str:
        """Return the mac for an alias, or target itself."""
        return self.config.aliases.get(target, target)

    async def get_devices(self) -> list[GreeDevice]:
        """Return all known devices, scanning first if the cached scan is stale."""
        return await self.scan()

    async def get_device(self, target: str) -> GreeDevice:
        """Return the device for a mac or alias.

        A target missing from the cached scan triggers one forced rescan.

        Raises:
            DeviceNotFoundError: If the target is still unknown after rescanning.
        """
        mac = self.resolve(target)
        await self.scan()
        device = self._devices.get(mac)
        if device is None:
            _LOGGER.debug("Device %s not known, rescanning", target)
            await self.scan(force=True)
            device = self._devices.get(mac)
        if device is None:
            msg = f"Device {target} not found"
            raise DeviceNotFoundError(msg, device_id=mac)
        return device

    async def _execute(self, target: str, operation: Callable[[GreeDevice], Awaitable[_T]]) -> _T:
        """Run operation on target; on timeout retry once if a rescan moved it."""
        device = await self.get_device(target)
        try:
            return await operation(device)
        except GreeTimeoutError:
            await self.scan(force=True)
            moved = self._devices.get(device.mac)
            if moved is None or moved is device:
                raise
            _LOGGER.debug("Retrying on %s at its new address %s", moved.mac, moved.host)
        return await operation(moved)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def bind(self, target: str) -> DeviceKey:
        """Bind to a device and return its key."""
        return await self._execute(target, lambda device: device.ensure_bound())

    async def read(self, target: str, codes: Iterable[str] | None = None) -> PropertySet:
        """Read properties (codes or names) from a device.

        Args:
            target: Mac or alias.
            codes: Codes or names to read; defaults to DEFAULT_STATUS_CODES.

        Returns:
            The values read, in request order.
        """
        wire_codes = [code_for(code) for code in (DEFAULT_STATUS_CODES if codes is None else codes)]
        return await self._execute(target, lambda device: device.refresh(wire_codes))

    async def write(
        self,
        target: str,
        changes: PropertySet | Mapping[str, Any] | Iterable[tuple[str, Any]],
    ) -> PropertySet:
        """Write properties (codes or names) to a device.

        Args:
            target: Mac or alias.
            changes: (code or name, value) pairs to write.

        Returns:
            The values acknowledged by the device.
        """
        wire_changes = validate_changes((code_for(code), value) for code, value in PropertySet.coerce(changes))
        return await self._execute(target, lambda device: device.set_properties(wire_changes))
