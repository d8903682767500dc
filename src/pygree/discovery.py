"""Network discovery of Gree devices.

A plaintext scan request is broadcast; every device on the segment answers with
an envelope whose pack, encrypted with the generic key, describes the device.
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
    MSG_SCAN_RESULT,
)
from pygree.exceptions import DecodeError, GreeTimeoutError, ProtocolError
from pygree.models import DeviceKey, ScanPayload
from pygree.parsers import parse_scan_result, scan_to_identity
from pygree.serializers import build_scan_request, decode_envelope


if TYPE_CHECKING:
    from pygree.models import DeviceIdentity
    from pygree.transport import Datagram, DatagramTransport

__all__ = ["discover"]

_LOGGER = logging.getLogger(__name__)


def _parse_scan_reply(datagram: Datagram) -> ScanPayload:
    """Decode one scan reply.

    Raises:
        ProtocolError: If the envelope or payload is malformed or not a scan reply.
        DecodeError: If the pack cannot be decrypted with the generic key.
    """
    envelope = decode_envelope(datagram.data)
    if envelope.pack is None:
        msg = f"Reply of type {envelope.t!r} carries no pack"
        raise ProtocolError(msg)

    data = decrypt(DeviceKey.generic(), envelope.pack)
    if data.get("t") != MSG_SCAN_RESULT:
        msg = f"Expected a {MSG_SCAN_RESULT!r} payload, got {data.get('t')!r}"
        raise ProtocolError(msg)

    payload = parse_scan_result(data)
    if not payload.mac and envelope.cid:
        payload.mac = envelope.cid
    return payload


async def discover(
    transport: DatagramTransport,
    broadcast_address: str = DEFAULT_BROADCAST_ADDRESS,
    *,
    port: int = DEFAULT_PORT,
    window: float = DEFAULT_DISCOVERY_WINDOW,
    max_count: int = DEFAULT_MAX_DEVICES,
) -> list[DeviceIdentity]:
    """Broadcast a scan request and collect the devices that answer.

    Replies are collected until ``window`` seconds have passed since the
    broadcast, or until ``max_count`` distinct devices have answered. Malformed
    replies are logged and skipped; repeated replies from the same mac are merged.
    No answer at all is not an error.

    Args:
        transport: Transport to broadcast on.
        broadcast_address: Broadcast address of the local segment.
        port: Device port.
        window: Overall collection window in seconds.
        max_count: Stop after this many distinct devices.

    Returns:
        Discovered devices, in order of first reply.

    Raises:
        GreeConnectionError: If the broadcast cannot be sent.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + window

    _LOGGER.debug("Scanning %s:%s for %.1fs", broadcast_address, port, window)
    await transport.send((broadcast_address, port), build_scan_request())

    found: dict[str, DeviceIdentity] = {}
    while len(found) < max_count:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        try:
            datagram = await transport.receive(remaining)
        except GreeTimeoutError:
            break

        try:
            payload = _parse_scan_reply(datagram)
        except (DecodeError, ProtocolError) as err:
            _LOGGER.warning("Ignoring malformed scan reply from %s: %s", datagram.address[0], err)
            continue

        if payload.mac in found:
            _LOGGER.debug("Duplicate scan reply from %s", payload.mac)
            continue

        identity = scan_to_identity(payload, datagram.address[0], datagram.address[1])
        found[payload.mac] = identity
        _LOGGER.info(
            "Discovered %s (%s) at %s:%s",
            identity.display_name,
            identity.mac,
            identity.host,
            identity.port,
        )

    _LOGGER.debug("Scan finished with %d device(s)", len(found))
    return list(found.values())
