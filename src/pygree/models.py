"""Data models for Gree devices, keys and wire messages."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from pygree.const import DEFAULT_PORT, GENERIC_KEY, KEY_LENGTH


__all__ = [
    "BindPayload",
    "BindingState",
    "CommandResultPayload",
    "DeviceIdentity",
    "DeviceKey",
    "Envelope",
    "Payload",
    "PropertySet",
    "PropertyValue",
    "ScanPayload",
    "StatusPayload",
]

PropertyValue = Union[int, str]


@dataclass(frozen=True)
class DeviceIdentity:
    """Network identity of a discovered device.

    Two identities are equal when host, port and mac are equal; the remaining
    fields are descriptive scan metadata.

    Attributes:
        host: IP address the device answered from.
        port: UDP port of the device.
        mac: Device id reported in the scan reply (``cid``/``mac``).
        name: Optional user-visible name.
        brand: Brand reported by the device (e.g., "gree").
        model: Model reported by the device.
        firmware_version: Firmware version reported by the device.
    """

    host: str
    port: int = DEFAULT_PORT
    mac: str = ""
    name: str | None = field(default=None, compare=False)
    brand: str | None = field(default=None, compare=False)
    model: str | None = field(default=None, compare=False)
    firmware_version: str | None = field(default=None, compare=False)

    @property
    def address(self) -> tuple[str, int]:
        """Datagram address of the device."""
        return (self.host, self.port)

    @property
    def display_name(self) -> str:
        """Name if the device reported one, otherwise the mac."""
        return self.name or self.mac


@dataclass(frozen=True)
class DeviceKey:
    """A 16-byte AES key.

    The generic key is shared by every device and only decrypts scan replies and
    bind exchanges; a bound key is issued by one device and is tagged with its mac.
    """

    value: bytes
    bound_to: str | None = None

    def __post_init__(self) -> None:
        """Validate the key length."""
        if len(self.value) != KEY_LENGTH:
            msg = f"Key must be exactly {KEY_LENGTH} bytes, got {len(self.value)}"
            raise ValueError(msg)

    @classmethod
    def generic(cls) -> DeviceKey:
        """Return the protocol's generic key."""
        return cls(GENERIC_KEY)

    @classmethod
    def bound(cls, value: bytes | str, mac: str) -> DeviceKey:
        """Return a key issued by the device with the given mac."""
        if isinstance(value, str):
            value = value.encode("utf-8")
        return cls(value, bound_to=mac)

    @property
    def is_generic(self) -> bool:
        """Check if this is the generic key."""
        return self.bound_to is None

    def __str__(self) -> str:
        """Return the key as text, as devices issue it."""
        return self.value.decode("utf-8", errors="replace")


class BindingState(Enum):
    """Binding state of a session."""

    UNBOUND = "unbound"
    BOUND = "bound"


class PropertySet:
    """Ordered sequence of (code, value) pairs.

    Used both for status reads (values in the order the codes were requested) and
    for writes (values in the order they are sent).
    """

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[tuple[str, PropertyValue]] = ()) -> None:
        """Initialize from (code, value) pairs."""
        self._items: tuple[tuple[str, PropertyValue], ...] = tuple((code, value) for code, value in items)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, PropertyValue]) -> PropertySet:
        """Build a PropertySet from a mapping, keeping its iteration order."""
        return cls(mapping.items())

    @classmethod
    def coerce(cls, value: PropertySet | Mapping[str, Any] | Iterable[tuple[str, Any]]) -> PropertySet:
        """Return value as a PropertySet, accepting mappings and pair iterables."""
        if isinstance(value, PropertySet):
            return value
        if isinstance(value, Mapping):
            return cls.from_mapping(value)
        return cls(value)

    @property
    def codes(self) -> list[str]:
        """Codes in order."""
        return [code for code, _ in self._items]

    @property
    def values(self) -> list[PropertyValue]:
        """Values in order."""
        return [value for _, value in self._items]

    def get(self, code: str, default: PropertyValue | None = None) -> PropertyValue | None:
        """Return the value for code, or default if absent."""
        for item_code, value in self._items:
            if item_code == code:
                return value
        return default

    def as_dict(self) -> dict[str, PropertyValue]:
        """Return the pairs as a dict (later duplicates win)."""
        return dict(self._items)

    def merged(self, other: PropertySet) -> PropertySet:
        """Return a copy updated with the pairs of other.

        Codes already present keep their position; new codes are appended.
        """
        merged = self.as_dict()
        merged.update(other.as_dict())
        return PropertySet(merged.items())

    def __getitem__(self, code: str) -> PropertyValue:
        """Return the value for code."""
        for item_code, value in self._items:
            if item_code == code:
                return value
        raise KeyError(code)

    def __contains__(self, code: object) -> bool:
        """Check if code is present."""
        return any(item_code == code for item_code, _ in self._items)

    def __iter__(self) -> Iterator[tuple[str, PropertyValue]]:
        """Iterate over (code, value) pairs."""
        return iter(self._items)

    def __len__(self) -> int:
        """Return the number of pairs."""
        return len(self._items)

    def __bool__(self) -> bool:
        """Check if any pair is present."""
        return bool(self._items)

    def __eq__(self, other: object) -> bool:
        """Compare pairs in order."""
        if not isinstance(other, PropertySet):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        """Hash the pairs."""
        return hash(self._items)

    def __repr__(self) -> str:
        """Return a readable representation."""
        pairs = ", ".join(f"{code}={value!r}" for code, value in self._items)
        return f"PropertySet({pairs})"


@dataclass
class Envelope:
    """Outer JSON object of every datagram.

    Attributes:
        t: Message type, "pack" for everything but the plaintext scan request.
        pack: Base64 ciphertext of the inner payload.
        cid: Sender id ("app" for requests, the device mac in replies).
        tcid: Target device id for requests.
        i: 1 when the pack is encrypted with the generic key, else 0.
        uid: User id, 0 on a local network.
    """

    t: str
    pack: str | None = None
    cid: str | None = None
    tcid: str | None = None
    i: int | None = None
    uid: int | None = None


@dataclass
class ScanPayload:
    """Decrypted scan reply (``t == "dev"``)."""

    mac: str
    name: str | None = None
    brand: str | None = None
    model: str | None = None
    firmware_version: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class BindPayload:
    """Decrypted bind reply (``t == "bindok"``)."""

    mac: str
    key: str
    r: int


@dataclass
class StatusPayload:
    """Decrypted status reply (``t == "dat"``)."""

    mac: str
    r: int
    cols: list[str]
    dat: list[PropertyValue]


@dataclass
class CommandResultPayload:
    """Decrypted command reply (``t == "res"``).

    ``p`` holds the acknowledged values; ``val`` is an older alias some firmware
    fills instead.
    """

    mac: str
    r: int
    opt: list[str]
    p: list[PropertyValue]
    val: list[PropertyValue] = field(default_factory=list)


Payload = Union[ScanPayload, BindPayload, StatusPayload, CommandResultPayload]
