"""Parsing of decrypted reply payloads.

This module turns the JSON object carried in a reply's ``pack`` into one of the
typed payload models, dispatching on the payload's ``t`` tag.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pygree.const import MSG_BIND_RESULT, MSG_COMMAND_RESULT, MSG_SCAN_RESULT, MSG_STATUS_RESULT
from pygree.exceptions import ProtocolError
from pygree.models import (
    BindPayload,
    CommandResultPayload,
    DeviceIdentity,
    ScanPayload,
    StatusPayload,
)


if TYPE_CHECKING:
    from collections.abc import Callable

    from pygree.models import Payload, PropertyValue


__all__ = [
    "parse_bind_result",
    "parse_command_result",
    "parse_payload",
    "parse_scan_result",
    "parse_status_result",
    "scan_to_identity",
]


def _field(data: dict[str, Any], name: str, kind: type) -> Any:
    """Return a required field, checking its type."""
    if name not in data:
        msg = f"Payload {data.get('t')!r} is missing field {name!r}"
        raise ProtocolError(msg)
    value = data[name]
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        msg = f"Payload field {name!r} must be {kind.__name__}, got {value!r}"
        raise ProtocolError(msg)
    return value


def _text(data: dict[str, Any], name: str) -> str | None:
    """Return an optional text field, mapping blanks to None."""
    value = data.get(name)
    if value is None:
        return None
    return str(value) or None


def _string_list(data: dict[str, Any], name: str) -> list[str]:
    values = _field(data, name, list)
    if not all(isinstance(value, str) for value in values):
        msg = f"Payload field {name!r} must be a list of strings, got {values!r}"
        raise ProtocolError(msg)
    return values


def _value_list(data: dict[str, Any], name: str) -> list[PropertyValue]:
    values = _field(data, name, list)
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int | str):
            msg = f"Payload field {name!r} must hold integers or strings, got {value!r}"
            raise ProtocolError(msg)
    return values


def parse_scan_result(data: dict[str, Any]) -> ScanPayload:
    """Parse a scan reply payload (``t == "dev"``).

    Example:
        >>> parse_scan_result({"t": "dev", "mac": "f4911e7aca59", "name": "1e7aca59"}).mac
        'f4911e7aca59'
    """
    return ScanPayload(
        mac=_field(data, "mac", str),
        name=_text(data, "name"),
        brand=_text(data, "brand"),
        model=_text(data, "model"),
        firmware_version=_text(data, "ver"),
        raw=dict(data),
    )


def parse_bind_result(data: dict[str, Any]) -> BindPayload:
    """Parse a bind reply payload (``t == "bindok"``)."""
    return BindPayload(
        mac=_field(data, "mac", str),
        key=_field(data, "key", str),
        r=_field(data, "r", int),
    )


def parse_status_result(data: dict[str, Any]) -> StatusPayload:
    """Parse a status reply payload (``t == "dat"``)."""
    return StatusPayload(
        mac=_field(data, "mac", str),
        r=_field(data, "r", int),
        cols=_string_list(data, "cols"),
        dat=_value_list(data, "dat"),
    )


def parse_command_result(data: dict[str, Any]) -> CommandResultPayload:
    """Parse a command reply payload (``t == "res"``).

    Some firmware reports the acknowledged values in ``val`` rather than ``p``.
    """
    val = _value_list(data, "val") if "val" in data else []
    p = _value_list(data, "p") if "p" in data else list(val)
    if "p" not in data and "val" not in data:
        msg = "Payload 'res' carries neither 'p' nor 'val'"
        raise ProtocolError(msg)

    return CommandResultPayload(
        mac=_field(data, "mac", str),
        r=_field(data, "r", int),
        opt=_string_list(data, "opt"),
        p=p,
        val=val,
    )


_PARSERS: dict[str, Callable[[dict[str, Any]], Payload]] = {
    MSG_SCAN_RESULT: parse_scan_result,
    MSG_BIND_RESULT: parse_bind_result,
    MSG_STATUS_RESULT: parse_status_result,
    MSG_COMMAND_RESULT: parse_command_result,
}


def parse_payload(data: dict[str, Any]) -> Payload:
    """Parse a decrypted payload, dispatching on its ``t`` tag.

    Raises:
        ProtocolError: If the tag is unknown or a field is missing or ill-typed.
    """
    tag = data.get("t")
    parser = _PARSERS.get(tag) if isinstance(tag, str) else None
    if parser is None:
        msg = f"Unknown payload type: {tag!r}"
        raise ProtocolError(msg)
    return parser(data)


def scan_to_identity(payload: ScanPayload, host: str, port: int) -> DeviceIdentity:
    """Build a DeviceIdentity from a scan reply and the address it came from."""
    return DeviceIdentity(
        host=host,
        port=port,
        mac=payload.mac,
        name=payload.name,
        brand=payload.brand,
        model=payload.model,
        firmware_version=payload.firmware_version,
    )
