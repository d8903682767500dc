"""Command engine for the Gree protocol.

This module performs the request/reply round trips against one device: a
single send followed by a bounded wait for the matching reply. It never retries;
timeouts and malformed replies surface as typed errors so that retry policy stays
a caller concern (see ``pygree.resilience``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pygree.cipher import decrypt
from pygree.const import (
    DEFAULT_BROADCAST_ADDRESS,
    DEFAULT_DISCOVERY_WINDOW,
    DEFAULT_MAX_DEVICES,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    MSG_COMMAND_RESULT,
    MSG_STATUS_RESULT,
    STATUS_OK,
)
from pygree.discovery import discover
from pygree.exceptions import GreeTimeoutError, InvalidParameterError, ProtocolError
from pygree.models import CommandResultPayload, PropertySet, StatusPayload
from pygree.parsers import parse_payload
from pygree.properties import spec_for, validate_changes
from pygree.serializers import build_command_request, build_status_request, decode_envelope


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from pygree.models import DeviceIdentity, DeviceKey, Payload
    from pygree.session import Session
    from pygree.transport import Datagram, DatagramTransport

__all__ = ["GreeAPI"]

_LOGGER = logging.getLogger(__name__)

# Reply field echoing the codes of the request it answers
_ECHO_FIELDS = {MSG_STATUS_RESULT: "cols", MSG_COMMAND_RESULT: "opt"}


class GreeAPI:
    """Low-level request/reply engine.

    Each operation sends exactly one request and consumes exactly one matching
    reply. Replies from another host, for another device, of another type, or
    echoing other property codes (late answers to an earlier request) are
    discarded while waiting. Exchanges on one engine are serialized, since they
    share one transport.

    Example:
        ```python
        async with UdpTransport() as transport:
            api = GreeAPI(transport)
            session = Session(identity)
            await session.bind(api)

            status = await api.read_status(session, ["Pow", "SetTem"])
            await api.write_status(session, {"Pow": 1, "SetTem": 24})
        ```

    Attributes:
        transport: Datagram transport used for every exchange.
        timeout: Default reply timeout in seconds.
    """

    def __init__(self, transport: DatagramTransport, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize the engine.

        Args:
            transport: Datagram transport used for every exchange.
            timeout: Default reply timeout in seconds.
        """
        self.transport = transport
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def _decode_candidate(
        self,
        datagram: Datagram,
        identity: DeviceIdentity,
        key: DeviceKey,
        expected_type: str,
        expected_codes: Sequence[str] | None = None,
    ) -> dict | None:
        """Return the decrypted payload if datagram answers this exchange, else None.

        Raises:
            DecodeError: If a reply addressed to us cannot be decrypted.
        """
        if datagram.address[0] != identity.host:
            _LOGGER.debug("Discarding datagram from unrelated host %s", datagram.address[0])
            return None

        try:
            envelope = decode_envelope(datagram.data)
        except ProtocolError as err:
            _LOGGER.warning("Discarding malformed datagram from %s: %s", identity.host, err)
            return None

        if envelope.cid and envelope.cid != identity.mac:
            _LOGGER.debug("Discarding reply for %s while waiting for %s", envelope.cid, identity.mac)
            return None
        if envelope.pack is None:
            _LOGGER.debug("Discarding %r reply without pack from %s", envelope.t, identity.mac)
            return None
        if envelope.i == 1 and not key.is_generic:
            # Late reply to an earlier bind, encrypted with the generic key
            _LOGGER.debug("Discarding generic-key reply from %s", identity.mac)
            return None

        data = decrypt(key, envelope.pack)

        if data.get("t") != expected_type:
            _LOGGER.debug(
                "Discarding %r reply from %s while waiting for %r",
                data.get("t"),
                identity.mac,
                expected_type,
            )
            return None
        mac = data.get("mac")
        if mac is not None and mac != identity.mac:
            _LOGGER.debug("Discarding reply for %s while waiting for %s", mac, identity.mac)
            return None

        echo_field = _ECHO_FIELDS.get(expected_type)
        if expected_codes is not None and echo_field is not None:
            echoed = data.get(echo_field)
            # A missing or ill-typed echo is left to the payload parser
            if isinstance(echoed, list) and echoed != list(expected_codes):
                _LOGGER.debug(
                    "Discarding %r reply from %s for %s while waiting for %s",
                    expected_type,
                    identity.mac,
                    echoed,
                    list(expected_codes),
                )
                return None
        return data

    async def exchange(
        self,
        identity: DeviceIdentity,
        request: bytes,
        key: DeviceKey,
        expected_type: str,
        timeout: float | None = None,
        *,
        expected_codes: Sequence[str] | None = None,
    ) -> Payload:
        """Send one request and wait for the matching reply.

        Args:
            identity: Device the request is addressed to.
            request: Serialized request datagram.
            key: Key the reply's pack is encrypted with.
            expected_type: Payload tag of the expected reply (e.g., "dat").
            timeout: Reply timeout in seconds; defaults to the engine's timeout.
            expected_codes: Property codes the reply must echo, in request order.

        Returns:
            The parsed reply payload.

        Raises:
            GreeTimeoutError: If no matching reply arrives in time.
            GreeConnectionError: If the transport fails.
            DecodeError: If a reply from the device cannot be decrypted.
            ProtocolError: If the matching reply is missing a field.
        """
        timeout = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()

        async with self._lock:
            await self.transport.send(identity.address, request)
            deadline = loop.time() + timeout

            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    msg = f"No {expected_type!r} reply from {identity.mac} at {identity.host} within {timeout:.1f}s"
                    raise GreeTimeoutError(msg)
                try:
                    datagram = await self.transport.receive(remaining)
                except GreeTimeoutError as err:
                    msg = f"No {expected_type!r} reply from {identity.mac} at {identity.host} within {timeout:.1f}s"
                    raise GreeTimeoutError(msg) from err

                data = self._decode_candidate(datagram, identity, key, expected_type, expected_codes)
                if data is not None:
                    return parse_payload(data)

    async def scan(
        self,
        broadcast_address: str = DEFAULT_BROADCAST_ADDRESS,
        *,
        port: int = DEFAULT_PORT,
        window: float = DEFAULT_DISCOVERY_WINDOW,
        max_count: int = DEFAULT_MAX_DEVICES,
    ) -> list[DeviceIdentity]:
        """Discover devices, holding the exchange lock so no reply is stolen.

        See ``pygree.discovery.discover``.
        """
        async with self._lock:
            return await discover(
                self.transport,
                broadcast_address,
                port=port,
                window=window,
                max_count=max_count,
            )

    async def read_status(
        self,
        session: Session,
        codes: Iterable[str],
        *,
        timeout: float | None = None,
    ) -> PropertySet:
        """Read properties from a bound device.

        Values are returned in the order the codes were requested; the protocol
        correlates them by position only.

        Args:
            session: Bound session of the device.
            codes: Property codes to read.
            timeout: Reply timeout in seconds.

        Returns:
            PropertySet of (code, value) in request order.

        Raises:
            InvalidParameterError: If no code, a repeated code, or an unknown code
                is requested.
            DeviceNotBoundError: If the session is not bound.
            GreeTimeoutError: If the device does not answer in time.
            ProtocolError: If the reply is rejected or its length does not match.
        """
        codes = list(codes)
        if not codes:
            msg = "At least one property must be read"
            raise InvalidParameterError(msg)
        for code in codes:
            spec_for(code)
        if len(set(codes)) != len(codes):
            msg = f"Duplicate property codes in {codes}"
            raise InvalidParameterError(msg)

        key = session.require_bound()
        identity = session.identity
        request = build_status_request(identity.mac, key, codes, session.uid)
        payload = await self.exchange(identity, request, key, MSG_STATUS_RESULT, timeout, expected_codes=codes)
        assert isinstance(payload, StatusPayload)

        if payload.r != STATUS_OK:
            msg = f"Device {identity.mac} rejected status read with status {payload.r}"
            raise ProtocolError(msg)
        if len(payload.dat) != len(codes):
            msg = f"Device {identity.mac} returned {len(payload.dat)} values for {len(codes)} properties"
            raise ProtocolError(msg)

        status = PropertySet(zip(codes, payload.dat, strict=True))
        _LOGGER.debug("Status of %s: %s", identity.mac, status)
        return status

    async def write_status(
        self,
        session: Session,
        changes: PropertySet | Mapping[str, object] | Iterable[tuple[str, object]],
        *,
        timeout: float | None = None,
    ) -> PropertySet:
        """Write properties to a bound device.

        Every value is validated before anything is sent.

        Args:
            session: Bound session of the device.
            changes: (code, value) pairs to write.
            timeout: Reply timeout in seconds.

        Returns:
            PropertySet of the values the device acknowledged.

        Raises:
            InvalidParameterError: If a code or value is not acceptable.
            DeviceNotBoundError: If the session is not bound.
            GreeTimeoutError: If the device does not answer in time.
            ProtocolError: If the reply is rejected or its values do not match its codes.
        """
        validated = validate_changes(PropertySet.coerce(changes))

        key = session.require_bound()
        identity = session.identity
        request = build_command_request(identity.mac, key, validated, session.uid)
        payload = await self.exchange(
            identity,
            request,
            key,
            MSG_COMMAND_RESULT,
            timeout,
            expected_codes=validated.codes,
        )
        assert isinstance(payload, CommandResultPayload)

        if payload.r != STATUS_OK:
            msg = f"Device {identity.mac} rejected command with status {payload.r}"
            raise ProtocolError(msg)
        if len(payload.p) != len(payload.opt):
            msg = f"Device {identity.mac} acknowledged {len(payload.p)} values for {len(payload.opt)} properties"
            raise ProtocolError(msg)

        acknowledged = PropertySet(zip(payload.opt, payload.p, strict=True))
        _LOGGER.debug("Wrote %s to %s", acknowledged, identity.mac)
        return acknowledged
