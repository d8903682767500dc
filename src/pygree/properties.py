"""Property catalog for Gree air conditioners.

This module holds the static mapping between human-meaningful setting names
(``power``, ``mode``, ``target_temperature``, ...) and the short codes used on the
wire (``Pow``, ``Mod``, ``SetTem``, ...), together with the legal value domain of
each code. Everything here is local and synchronous; nothing touches the network.

Example:
    ```python
    from pygree import properties
    from pygree.properties import Mode

    code = properties.code_for("mode")  # "Mod"
    properties.validate(code, Mode.COOL)  # 1
    properties.validate(code, "heat")  # 4
    properties.validate("SetTem", 5)  # raises InvalidParameterError
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import TYPE_CHECKING

from pygree.const import FAHRENHEIT_MAX, FAHRENHEIT_MIN
from pygree.exceptions import InvalidParameterError, UnknownPropertyError
from pygree.models import PropertySet


if TYPE_CHECKING:
    from collections.abc import Iterable

    from pygree.models import PropertyValue


__all__ = [
    "ALL_CODES",
    "DEFAULT_STATUS_CODES",
    "FanSpeed",
    "HorizontalSwing",
    "Mode",
    "OnOff",
    "PropertyKind",
    "PropertySpec",
    "TemperatureUnit",
    "VerticalSwing",
    "code_for",
    "fahrenheit_to_wire",
    "parse_value",
    "spec_for",
    "validate",
    "validate_changes",
    "wire_to_fahrenheit",
]

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class OnOff(IntEnum):
    """Generic switch value."""

    OFF = 0
    ON = 1


class Mode(IntEnum):
    """Operating mode (``Mod``)."""

    AUTO = 0
    COOL = 1
    DRY = 2
    FAN = 3
    HEAT = 4


class TemperatureUnit(IntEnum):
    """Display unit of the set temperature (``TemUn``)."""

    CELSIUS = 0
    FAHRENHEIT = 1


class FanSpeed(IntEnum):
    """Fan speed (``WdSpd``). Medium-low and medium-high are missing on 3-speed units."""

    AUTO = 0
    LOW = 1
    MEDIUM_LOW = 2
    MEDIUM = 3
    MEDIUM_HIGH = 4
    HIGH = 5


class VerticalSwing(IntEnum):
    """Vertical blade position or swing region (``SwUpDn``)."""

    DEFAULT = 0
    FULL = 1
    FIXED_UPPER = 2
    FIXED_UPPER_MIDDLE = 3
    FIXED_MIDDLE = 4
    FIXED_LOWER_MIDDLE = 5
    FIXED_LOWER = 6
    SWING_LOWER = 7
    SWING_LOWER_MIDDLE = 8
    SWING_MIDDLE = 9
    SWING_UPPER_MIDDLE = 10
    SWING_UPPER = 11


class HorizontalSwing(IntEnum):
    """Horizontal blade position (``SwingLfRig``), only on some units."""

    DEFAULT = 0
    FULL = 1
    LEFT = 2
    LEFT_CENTER = 3
    CENTER = 4
    RIGHT_CENTER = 5
    RIGHT = 6


class PropertyKind(Enum):
    """Shape of a property's value domain."""

    ENUM = "enum"
    RANGE = "range"
    TEXT = "text"


@dataclass(frozen=True)
class PropertySpec:
    """Catalog entry for one wire property.

    Attributes:
        code: Literal code used on the wire (e.g., "SetTem").
        name: Human-meaningful name (e.g., "target_temperature").
        kind: Shape of the value domain.
        minimum: Lowest legal value for RANGE properties.
        maximum: Highest legal value for RANGE properties.
        choices: Enumeration of legal values for ENUM properties.
        writable: Whether the device accepts the code in a command.
        description: Short explanation of the property.
    """

    code: str
    name: str
    kind: PropertyKind
    minimum: int | None = None
    maximum: int | None = None
    choices: type[IntEnum] | None = None
    writable: bool = True
    description: str = ""


def _switch(code: str, name: str, description: str) -> PropertySpec:
    return PropertySpec(code=code, name=name, kind=PropertyKind.ENUM, choices=OnOff, description=description)


_CATALOG: tuple[PropertySpec, ...] = (
    _switch("Pow", "power", "Power state of the device"),
    PropertySpec("Mod", "mode", PropertyKind.ENUM, choices=Mode, description="Mode of operation"),
    PropertySpec(
        "SetTem",
        "target_temperature",
        PropertyKind.RANGE,
        minimum=16,
        maximum=30,
        description="Set temperature in Celsius (see TemRec for Fahrenheit rounding)",
    ),
    PropertySpec(
        "TemUn",
        "temperature_unit",
        PropertyKind.ENUM,
        choices=TemperatureUnit,
        description="Unit shown on the display",
    ),
    PropertySpec("WdSpd", "fan_speed", PropertyKind.ENUM, choices=FanSpeed, description="Fan speed"),
    _switch("Air", "fresh_air", "Fresh air valve (not available on all units)"),
    _switch("Blo", "xfan", "X-Fan: keeps the fan running after shutdown in Dry and Cool mode"),
    _switch("Health", "health", "Cold plasma mode (units with an anion generator)"),
    _switch("SwhSlp", "sleep", "Sleep mode"),
    _switch("Lig", "light", "Display and indicator lights"),
    PropertySpec(
        "SwingLfRig",
        "horizontal_swing",
        PropertyKind.ENUM,
        choices=HorizontalSwing,
        description="Horizontal blade position",
    ),
    PropertySpec(
        "SwUpDn",
        "vertical_swing",
        PropertyKind.ENUM,
        choices=VerticalSwing,
        description="Vertical blade position or swing region",
    ),
    _switch("Quiet", "quiet", "Quiet mode, not available in Dry and Fan mode"),
    _switch("Tur", "turbo", "Turbo fan, only in Dry and Cool mode"),
    _switch("StHt", "steady_heat", "Keep the room at 8 degrees Celsius while heating"),
    PropertySpec(
        "HeatCoolType",
        "heat_cool_type",
        PropertyKind.RANGE,
        minimum=0,
        maximum=255,
        writable=False,
        description="Unit type reported by the device",
    ),
    PropertySpec(
        "TemRec",
        "temperature_recovery",
        PropertyKind.RANGE,
        minimum=0,
        maximum=1,
        description="Distinguishes the two Fahrenheit values sharing one SetTem",
    ),
    _switch("SvSt", "energy_saving", "Energy saving mode"),
    PropertySpec(
        "TemSen",
        "room_temperature",
        PropertyKind.RANGE,
        minimum=0,
        maximum=255,
        writable=False,
        description="Internal temperature sensor, Celsius with a +40 offset",
    ),
    PropertySpec(
        "time",
        "time",
        PropertyKind.TEXT,
        description="Device clock, must be written on its own",
    ),
)

_BY_CODE: dict[str, PropertySpec] = {spec.code: spec for spec in _CATALOG}
_BY_NAME: dict[str, PropertySpec] = {spec.name: spec for spec in _CATALOG}

ALL_CODES: tuple[str, ...] = tuple(spec.code for spec in _CATALOG)

# Read by a default status refresh
DEFAULT_STATUS_CODES: tuple[str, ...] = (
    "Pow",
    "Mod",
    "SetTem",
    "WdSpd",
    "Air",
    "Blo",
    "Health",
    "SwhSlp",
    "Lig",
    "SwingLfRig",
    "SwUpDn",
    "Quiet",
    "Tur",
    "StHt",
    "TemUn",
    "HeatCoolType",
    "TemRec",
    "SvSt",
)


def code_for(name: str) -> str:
    """Return the wire code for a property name.

    Wire codes are accepted as well and returned unchanged.

    Args:
        name: Property name (e.g., "target_temperature") or wire code (e.g., "SetTem").

    Returns:
        The wire code.

    Raises:
        UnknownPropertyError: If the name is not in the catalog.
    """
    spec = _BY_NAME.get(name) or _BY_CODE.get(name)
    if spec is None:
        msg = f"Unknown property: {name!r}"
        raise UnknownPropertyError(msg, parameter_name=name)
    return spec.code


def spec_for(code: str) -> PropertySpec:
    """Return the catalog entry for a wire code.

    Raises:
        UnknownPropertyError: If the code is not in the catalog.
    """
    try:
        return _BY_CODE[code]
    except KeyError:
        msg = f"Unknown property code: {code!r}"
        raise UnknownPropertyError(msg, parameter_name=code) from None


def validate(code: str, value: object) -> PropertyValue:
    """Validate a value against a property's declared domain.

    Booleans become 0/1, enumeration members and their lower-case labels become
    their integer values. Validation never touches the network and yields the same
    result for the same input.

    Args:
        code: Wire code of the property.
        value: Candidate value.

    Returns:
        The normalized wire value.

    Raises:
        UnknownPropertyError: If the code is not in the catalog.
        InvalidParameterError: If the value is outside the property's domain.
    """
    spec = spec_for(code)

    if spec.kind is PropertyKind.TEXT:
        if not isinstance(value, str):
            msg = f"{code} must be a string, got {value!r}"
            raise InvalidParameterError(msg, parameter_name=code, value=value)
        try:
            datetime.strptime(value, TIME_FORMAT)  # noqa: DTZ007 - device local time
        except ValueError:
            msg = f"{code} must match {TIME_FORMAT!r}, got {value!r}"
            raise InvalidParameterError(msg, parameter_name=code, value=value) from None
        return value

    if isinstance(value, str) and spec.choices is not None:
        try:
            return int(spec.choices[value.strip().upper()])
        except KeyError:
            labels = ", ".join(member.name.lower() for member in spec.choices)
            msg = f"{code} must be one of {labels}, got {value!r}"
            raise InvalidParameterError(msg, parameter_name=code, value=value) from None

    if isinstance(value, bool):
        value = int(value)

    if not isinstance(value, int):
        msg = f"{code} must be an integer, got {value!r}"
        raise InvalidParameterError(msg, parameter_name=code, value=value)

    if spec.choices is not None:
        try:
            return int(spec.choices(value))
        except ValueError:
            legal = [int(member) for member in spec.choices]
            msg = f"{code} must be one of {legal}, got {value}"
            raise InvalidParameterError(msg, parameter_name=code, value=value) from None

    assert spec.minimum is not None
    assert spec.maximum is not None
    if not spec.minimum <= value <= spec.maximum:
        msg = f"{code} must be {spec.minimum}-{spec.maximum}, got {value}"
        raise InvalidParameterError(msg, parameter_name=code, value=value)

    return int(value)


def validate_changes(changes: PropertySet | Iterable[tuple[str, object]]) -> PropertySet:
    """Validate a set of changes before it is written to a device.

    Args:
        changes: Ordered (code, value) pairs to write.

    Returns:
        A PropertySet with normalized wire values, in the original order.

    Raises:
        InvalidParameterError: If the set is empty, repeats a code, names a
            read-only code, combines ``time`` with other codes, or carries an
            out-of-domain value.
        UnknownPropertyError: If a code is not in the catalog.
    """
    items = list(changes)
    if not items:
        msg = "At least one property must be written"
        raise InvalidParameterError(msg)

    seen: set[str] = set()
    normalized: list[tuple[str, PropertyValue]] = []
    for code, value in items:
        spec = spec_for(code)
        if code in seen:
            msg = f"Property {code} appears more than once"
            raise InvalidParameterError(msg, parameter_name=code, value=value)
        if not spec.writable:
            msg = f"Property {code} is read-only"
            raise InvalidParameterError(msg, parameter_name=code, value=value)
        seen.add(code)
        normalized.append((code, validate(code, value)))

    if "time" in seen and len(seen) > 1:
        msg = "Property time must be written on its own"
        raise InvalidParameterError(msg, parameter_name="time")

    return PropertySet(normalized)


def parse_value(code: str, text: str) -> PropertyValue:
    """Parse a textual value (command line, query string) for a property.

    Args:
        code: Wire code of the property.
        text: Textual value, either a number or an enumeration label.

    Returns:
        The validated wire value.

    Raises:
        InvalidParameterError: If the text is not a legal value for the property.
    """
    spec = spec_for(code)
    text = text.strip()
    if spec.kind is PropertyKind.TEXT:
        return validate(code, text)

    try:
        number = int(text)
    except ValueError:
        return validate(code, text)
    return validate(code, number)


def fahrenheit_to_wire(fahrenheit: int) -> tuple[int, int]:
    """Convert a Fahrenheit set point into the (SetTem, TemRec) pair.

    The device stores Celsius; ``TemRec`` records on which side of the rounded
    Celsius value the Fahrenheit set point lies.

    Raises:
        InvalidParameterError: If the temperature is outside 61-86 °F.
    """
    if not FAHRENHEIT_MIN <= fahrenheit <= FAHRENHEIT_MAX:
        msg = f"Fahrenheit temperature must be {FAHRENHEIT_MIN}-{FAHRENHEIT_MAX}, got {fahrenheit}"
        raise InvalidParameterError(msg, parameter_name="target_temperature", value=fahrenheit)

    celsius = (fahrenheit - 32.0) * 5.0 / 9.0
    set_tem = round(celsius)
    tem_rec = int(celsius - set_tem > -0.001)
    return set_tem, tem_rec


def wire_to_fahrenheit(set_tem: int, tem_rec: int) -> int:
    """Convert a (SetTem, TemRec) pair back into the Fahrenheit set point."""
    if tem_rec == 1:
        min_celsius = float(set_tem)
        max_celsius = set_tem + 0.4999
    else:
        min_celsius = set_tem - 0.4999
        max_celsius = float(set_tem)

    min_fahrenheit = min_celsius * 9.0 / 5.0 + 32.0
    max_fahrenheit = max_celsius * 9.0 / 5.0 + 32.0
    return round((min_fahrenheit + max_fahrenheit) / 2.0)
