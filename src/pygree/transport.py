"""Datagram transport abstraction and its UDP implementation.

The protocol engine only ever sees ``DatagramTransport``: it sends bytes to an
address and waits, with a timeout, for the next datagram. ``UdpTransport`` backs
that with an asyncio datagram endpoint; tests substitute an in-memory fake.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pygree.const import DEFAULT_LOCAL_ADDRESS
from pygree.exceptions import GreeConnectionError, GreeTimeoutError


if TYPE_CHECKING:
    from types import TracebackType

__all__ = ["Datagram", "DatagramTransport", "UdpTransport"]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Datagram:
    """A received datagram.

    Attributes:
        data: Raw datagram bytes.
        address: (host, port) the datagram came from.
    """

    data: bytes
    address: tuple[str, int]


class DatagramTransport(ABC):
    """Send datagrams and receive them one at a time.

    Implementations raise GreeConnectionError when the underlying socket fails and
    GreeTimeoutError when nothing arrives before the timeout.
    """

    @abstractmethod
    async def send(self, address: tuple[str, int], data: bytes) -> None:
        """Send one datagram to address."""

    @abstractmethod
    async def receive(self, timeout: float) -> Datagram:
        """Wait up to timeout seconds for the next datagram."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying socket."""

    async def __aenter__(self) -> DatagramTransport:
        """Enter the context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the context manager, closing the transport."""
        await self.close()


class _UdpProtocol(asyncio.DatagramProtocol):
    """Pushes received datagrams onto a queue."""

    def __init__(self, queue: asyncio.Queue[Datagram]) -> None:
        self._queue = queue
        self.lost: Exception | None = None

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        _LOGGER.debug("Received %d bytes from %s:%s", len(data), addr[0], addr[1])
        self._queue.put_nowait(Datagram(data=data, address=(addr[0], addr[1])))

    def error_received(self, exc: Exception) -> None:
        # ICMP errors for earlier sends; the matching exchange simply times out
        _LOGGER.warning("Socket error received: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            _LOGGER.warning("UDP endpoint lost: %s", exc)
            self.lost = exc


class UdpTransport(DatagramTransport):
    """UDP datagram transport with broadcast enabled.

    The socket is opened on first use (or on entering the context manager) and
    bound to ``local_address``; replies are queued until ``receive`` picks them up.

    Example:
        ```python
        async with UdpTransport() as transport:
            await transport.send(("192.168.1.255", 7000), b'{"t":"scan"}')
            datagram = await transport.receive(timeout=3.0)
        ```
    """

    def __init__(self, *, local_address: tuple[str, int] = DEFAULT_LOCAL_ADDRESS) -> None:
        """Initialize the transport.

        Args:
            local_address: (host, port) to bind; port 0 picks an ephemeral port.
        """
        self._local_address = local_address
        self._transport: asyncio.DatagramTransport | None = None
        self._protocol: _UdpProtocol | None = None
        self._queue: asyncio.Queue[Datagram] | None = None
        self._closed = False

    @property
    def local_address(self) -> tuple[str, int] | None:
        """Address the socket is bound to, once open."""
        if self._transport is None:
            return None
        sockname = self._transport.get_extra_info("sockname")
        return (sockname[0], sockname[1]) if sockname else None

    async def open(self) -> None:
        """Open the socket if it is not open yet.

        Raises:
            GreeConnectionError: If the socket cannot be created or the transport
                was closed.
        """
        if self._closed:
            msg = "Transport is closed"
            raise GreeConnectionError(msg)
        if self._transport is not None:
            return

        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        queue = self._queue
        try:
            transport, protocol = await loop.create_datagram_endpoint(
                lambda: _UdpProtocol(queue),
                local_addr=self._local_address,
                allow_broadcast=True,
            )
        except OSError as err:
            msg = f"Cannot open UDP socket on {self._local_address[0]}:{self._local_address[1]}: {err}"
            raise GreeConnectionError(msg) from err

        self._transport = transport
        self._protocol = protocol
        _LOGGER.debug("UDP transport bound to %s", self.local_address)

    async def __aenter__(self) -> UdpTransport:
        """Enter the context manager, opening the socket."""
        await self.open()
        return self

    def _check_alive(self) -> None:
        if self._protocol is not None and self._protocol.lost is not None:
            msg = f"UDP endpoint lost: {self._protocol.lost}"
            raise GreeConnectionError(msg) from self._protocol.lost

    async def send(self, address: tuple[str, int], data: bytes) -> None:
        """Send one datagram.

        Raises:
            GreeConnectionError: If the socket is closed or the send fails.
        """
        await self.open()
        self._check_alive()
        assert self._transport is not None

        _LOGGER.debug("Sending %d bytes to %s:%s: %s", len(data), address[0], address[1], data)
        try:
            self._transport.sendto(data, address)
        except OSError as err:
            msg = f"Cannot send to {address[0]}:{address[1]}: {err}"
            raise GreeConnectionError(msg) from err

    async def receive(self, timeout: float) -> Datagram:
        """Wait for the next datagram.

        Raises:
            GreeTimeoutError: If nothing arrives within timeout seconds.
            GreeConnectionError: If the socket is closed.
        """
        await self.open()
        self._check_alive()
        assert self._queue is not None

        try:
            return await asyncio.wait_for(self._queue.get(), timeout=max(timeout, 0.0))
        except TimeoutError as err:
            msg = f"No datagram received within {timeout:.1f}s"
            raise GreeTimeoutError(msg) from err

    async def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        self._closed = True
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            _LOGGER.debug("UDP transport closed")
