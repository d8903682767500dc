"""Serialization of outgoing requests and the outer datagram envelope.

Stateless functions that turn requests into datagram bytes and datagram bytes
into Envelope objects. Payload decoding lives in ``pygree.parsers``.

Design Philosophy:
    - Stateless functions (no classes, no state)
    - Wire key order matches what the vendor app sends
    - Only the scan request travels in plaintext
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pygree.cipher import encrypt
from pygree.const import (
    APP_CID,
    DEFAULT_UID,
    MSG_BIND,
    MSG_COMMAND,
    MSG_PACK,
    MSG_SCAN,
    MSG_STATUS,
)
from pygree.exceptions import ProtocolError
from pygree.models import DeviceKey, Envelope, PropertySet


if TYPE_CHECKING:
    from collections.abc import Sequence


__all__ = [
    "build_bind_request",
    "build_command_request",
    "build_scan_request",
    "build_status_request",
    "decode_envelope",
    "encode_envelope",
]

_ENVELOPE_FIELDS = ("cid", "i", "pack", "t", "tcid", "uid")


def encode_envelope(envelope: Envelope) -> bytes:
    """Serialize an envelope as compact JSON, omitting absent fields.

    Example:
        >>> encode_envelope(Envelope(t="scan"))
        b'{"t":"scan"}'
    """
    data = {name: getattr(envelope, name) for name in _ENVELOPE_FIELDS if getattr(envelope, name) is not None}
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


def _optional(data: dict[str, Any], name: str, kind: type) -> Any:
    value = data.get(name)
    if value is not None and (not isinstance(value, kind) or isinstance(value, bool)):
        msg = f"Envelope field {name!r} must be {kind.__name__}, got {value!r}"
        raise ProtocolError(msg)
    return value


def decode_envelope(data: bytes) -> Envelope:
    """Parse datagram bytes into an Envelope.

    Raises:
        ProtocolError: If the datagram is not a JSON object with a string ``t``
            or any known field has the wrong type.
    """
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        msg = "Datagram is not UTF-8 JSON"
        raise ProtocolError(msg) from err

    if not isinstance(raw, dict):
        msg = f"Datagram holds {type(raw).__name__}, expected an object"
        raise ProtocolError(msg)

    t = raw.get("t")
    if not isinstance(t, str):
        msg = f"Datagram has no message type: {raw!r}"
        raise ProtocolError(msg)

    return Envelope(
        t=t,
        pack=_optional(raw, "pack", str),
        cid=_optional(raw, "cid", str),
        tcid=_optional(raw, "tcid", str),
        i=_optional(raw, "i", int),
        uid=_optional(raw, "uid", int),
    )


def _request(mac: str, key: DeviceKey, payload: dict[str, Any], uid: int) -> bytes:
    return encode_envelope(
        Envelope(
            t=MSG_PACK,
            pack=encrypt(key, payload),
            cid=APP_CID,
            tcid=mac,
            i=1 if key.is_generic else 0,
            uid=uid,
        )
    )


def build_scan_request() -> bytes:
    """Build the broadcast scan request.

    Devices ignore an encrypted scan, so this is the one plaintext request.
    """
    return encode_envelope(Envelope(t=MSG_SCAN))


def build_bind_request(mac: str, uid: int = DEFAULT_UID) -> bytes:
    """Build a bind request, encrypted with the generic key."""
    payload = {"mac": mac, "t": MSG_BIND, "uid": uid}
    return _request(mac, DeviceKey.generic(), payload, uid)


def build_status_request(
    mac: str,
    key: DeviceKey,
    codes: Sequence[str],
    uid: int = DEFAULT_UID,
) -> bytes:
    """Build a status request for the given codes, in order."""
    payload = {"cols": list(codes), "mac": mac, "t": MSG_STATUS}
    return _request(mac, key, payload, uid)


def build_command_request(
    mac: str,
    key: DeviceKey,
    changes: PropertySet,
    uid: int = DEFAULT_UID,
) -> bytes:
    """Build a command request writing the given (code, value) pairs, in order."""
    payload = {"opt": changes.codes, "p": changes.values, "t": MSG_COMMAND}
    return _request(mac, key, payload, uid)
