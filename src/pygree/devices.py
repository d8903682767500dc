"""Stateful device objects for Gree air conditioners.

This module provides device objects that cache the last known property values,
update them optimistically when a setting is changed, and notify listeners.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable  # noqa: TC003 - Used at runtime for type hints
from datetime import UTC, datetime
from enum import IntEnum
from typing import TYPE_CHECKING, Any, TypeVar

from pygree.const import TEMSEN_OFFSET
from pygree.exceptions import GreeError
from pygree.models import PropertySet
from pygree.properties import (
    DEFAULT_STATUS_CODES,
    FanSpeed,
    HorizontalSwing,
    Mode,
    TemperatureUnit,
    VerticalSwing,
    fahrenheit_to_wire,
    validate_changes,
    wire_to_fahrenheit,
)


if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable, Mapping

    from pygree.api import GreeAPI
    from pygree.models import DeviceIdentity, DeviceKey
    from pygree.queue import CommandQueue
    from pygree.session import Session

    RoundTripWrapper = Callable[[Callable[[], Awaitable[Any]]], Awaitable[Any]]

__all__ = ["GreeDevice"]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")
_E = TypeVar("_E", bound=IntEnum)


async def _direct(func: Callable[[], Awaitable[_T]]) -> _T:
    return await func()


class GreeDevice:
    """Stateful representation of one air conditioner.

    **Key Features:**
    - **State Caching**: Properties return the last values read or written
    - **Optimistic Updates**: Setters update the cache first, then write
    - **Reversion**: A failed write restores the previous values and re-raises
    - **Change Listeners**: Callbacks run on every state change
    - **Auto-refresh**: Optional background polling

    Example:
        ```python
        async with GreeClient(GreeConfig(broadcast_address="192.168.1.255")) as client:
            device = await client.get_device("living-room")
            await device.refresh()

            await device.turn_on()
            await device.set_mode(Mode.COOL)
            await device.set_target_temperature(72, fahrenheit=True)

            print(device.power, device.mode, device.target_temperature)
        ```

    Attributes:
        mac: Device id.
        name: User-visible name, or the mac.
        host: IP address of the device.
    """

    def __init__(
        self,
        api: GreeAPI,
        session: Session,
        state: PropertySet | None = None,
        command_queue: CommandQueue | None = None,
        *,
        round_trip: RoundTripWrapper | None = None,
    ) -> None:
        """Initialize the device.

        Args:
            api: Command engine used for every round trip.
            session: Binding session of the device.
            state: Initial cached state.
            command_queue: Optional queue writes are routed through.
            round_trip: Optional wrapper around every round trip (retry policy).
        """
        self._api = api
        self._session = session
        self._state = state if state is not None else PropertySet()
        self._command_queue = command_queue
        self._round_trip: RoundTripWrapper = round_trip or _direct
        self._last_refresh: datetime | None = None

        self._listeners: list[Callable[[GreeDevice], None]] = []

        self._auto_refresh_task: asyncio.Task[None] | None = None
        self._auto_refresh_interval: float = 60.0

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def identity(self) -> DeviceIdentity:
        """Network identity of the device."""
        return self._session.identity

    @property
    def session(self) -> Session:
        """Binding session of the device."""
        return self._session

    @property
    def mac(self) -> str:
        """Device id."""
        return self.identity.mac

    @property
    def name(self) -> str:
        """User-visible name, or the mac."""
        return self.identity.display_name

    @property
    def host(self) -> str:
        """IP address of the device."""
        return self.identity.host

    @property
    def is_bound(self) -> bool:
        """Check if the device key has been obtained."""
        return self._session.is_bound

    @property
    def state(self) -> PropertySet:
        """Cached (code, value) pairs."""
        return self._state

    @property
    def last_refresh(self) -> datetime | None:
        """Time of the last successful refresh."""
        return self._last_refresh

    # -------------------------------------------------------------------------
    # Cached Properties
    # -------------------------------------------------------------------------

    def _int(self, code: str) -> int | None:
        value = self._state.get(code)
        return value if isinstance(value, int) else None

    def _switch(self, code: str) -> bool | None:
        value = self._int(code)
        return None if value is None else bool(value)

    def _enum(self, code: str, enum: type[_E]) -> _E | None:
        value = self._int(code)
        if value is None:
            return None
        try:
            return enum(value)
        except ValueError:
            return None

    @property
    def power(self) -> bool | None:
        """Power state."""
        return self._switch("Pow")

    @property
    def mode(self) -> Mode | None:
        """Operating mode."""
        return self._enum("Mod", Mode)

    @property
    def target_temperature(self) -> int | None:
        """Set temperature in Celsius."""
        return self._int("SetTem")

    @property
    def target_temperature_fahrenheit(self) -> int | None:
        """Set temperature in Fahrenheit, recovered from SetTem and TemRec."""
        set_tem = self._int("SetTem")
        if set_tem is None:
            return None
        return wire_to_fahrenheit(set_tem, self._int("TemRec") or 0)

    @property
    def temperature_unit(self) -> TemperatureUnit | None:
        """Unit shown on the display."""
        return self._enum("TemUn", TemperatureUnit)

    @property
    def fan_speed(self) -> FanSpeed | None:
        """Fan speed."""
        return self._enum("WdSpd", FanSpeed)

    @property
    def vertical_swing(self) -> VerticalSwing | None:
        """Vertical blade position."""
        return self._enum("SwUpDn", VerticalSwing)

    @property
    def horizontal_swing(self) -> HorizontalSwing | None:
        """Horizontal blade position."""
        return self._enum("SwingLfRig", HorizontalSwing)

    @property
    def light(self) -> bool | None:
        """Display light state."""
        return self._switch("Lig")

    @property
    def quiet(self) -> bool | None:
        """Quiet mode state."""
        return self._switch("Quiet")

    @property
    def turbo(self) -> bool | None:
        """Turbo mode state."""
        return self._switch("Tur")

    @property
    def sleep(self) -> bool | None:
        """Sleep mode state."""
        return self._switch("SwhSlp")

    @property
    def xfan(self) -> bool | None:
        """X-Fan state."""
        return self._switch("Blo")

    @property
    def health(self) -> bool | None:
        """Health (cold plasma) state."""
        return self._switch("Health")

    @property
    def fresh_air(self) -> bool | None:
        """Fresh air valve state."""
        return self._switch("Air")

    @property
    def energy_saving(self) -> bool | None:
        """Energy saving state."""
        return self._switch("SvSt")

    @property
    def steady_heat(self) -> bool | None:
        """8 °C heating state."""
        return self._switch("StHt")

    @property
    def room_temperature(self) -> int | None:
        """Room temperature in Celsius, when TemSen has been read.

        Units without a sensor report zero, which is treated as unknown.
        """
        value = self._int("TemSen")
        if not value:
            return None
        return value - TEMSEN_OFFSET

    # -------------------------------------------------------------------------
    # Round Trips
    # -------------------------------------------------------------------------

    async def ensure_bound(self) -> DeviceKey:
        """Bind to the device if not bound yet and return its key."""
        return await self._round_trip(lambda: self._session.bind(self._api))

    async def refresh(self, codes: Iterable[str] | None = None) -> PropertySet:
        """Read properties from the device and update the cache.

        Args:
            codes: Codes to read; defaults to DEFAULT_STATUS_CODES.

        Returns:
            The values read.

        Raises:
            GreeError: If binding or the status read fails.
        """
        codes = list(DEFAULT_STATUS_CODES if codes is None else codes)
        await self.ensure_bound()
        status = await self._round_trip(lambda: self._api.read_status(self._session, codes))
        self._update_state(status)
        self._last_refresh = datetime.now(UTC)
        return status

    # -------------------------------------------------------------------------
    # Control Methods (with Optimistic Updates)
    # -------------------------------------------------------------------------

    async def set_properties(
        self,
        changes: PropertySet | Mapping[str, Any] | Iterable[tuple[str, Any]],
    ) -> PropertySet:
        """Write properties with an optimistic update.

        The cache is updated and listeners notified before the write. If the write
        fails, the previous values are restored, listeners are notified again and
        the error is re-raised.

        Args:
            changes: (code, value) pairs to write.

        Returns:
            The values acknowledged by the device.

        Raises:
            InvalidParameterError: If a code or value is not acceptable (nothing
                is changed or sent).
            GreeError: If binding or the write fails.
        """
        validated = validate_changes(PropertySet.coerce(changes))

        previous = self._state
        self._update_state(validated)

        try:
            if self._command_queue is not None:
                command_type = "+".join(sorted(validated.codes))
                acknowledged = await self._command_queue.enqueue(
                    command_type,
                    validated.as_dict(),
                    lambda: self._write(validated),
                )
            else:
                acknowledged = await self._write(validated)
        except GreeError:
            _LOGGER.warning("Write of %s to %s failed, reverting", validated, self.mac)
            self._state = previous
            self._notify_listeners()
            raise

        self._update_state(acknowledged)
        return acknowledged

    async def _write(self, changes: PropertySet) -> PropertySet:
        await self.ensure_bound()
        return await self._round_trip(lambda: self._api.write_status(self._session, changes))

    async def turn_on(self) -> PropertySet:
        """Turn the unit on."""
        return await self.set_power(True)

    async def turn_off(self) -> PropertySet:
        """Turn the unit off."""
        return await self.set_power(False)

    async def set_power(self, power_on: bool) -> PropertySet:
        """Set the power state."""
        return await self.set_properties({"Pow": int(power_on)})

    async def set_mode(self, mode: Mode | int | str) -> PropertySet:
        """Set the operating mode (enum member, value or label such as "cool")."""
        return await self.set_properties({"Mod": mode})

    async def set_target_temperature(self, value: int, *, fahrenheit: bool = False) -> PropertySet:
        """Set the target temperature.

        Args:
            value: Temperature, in Celsius (16-30) or Fahrenheit (61-86).
            fahrenheit: Interpret value as Fahrenheit.

        Raises:
            InvalidParameterError: If the temperature is out of range.
        """
        if fahrenheit:
            set_tem, tem_rec = fahrenheit_to_wire(value)
            return await self.set_properties({"SetTem": set_tem, "TemRec": tem_rec})
        return await self.set_properties({"SetTem": value, "TemRec": 0})

    async def set_temperature_unit(self, unit: TemperatureUnit | int | str) -> PropertySet:
        """Set the unit shown on the display."""
        return await self.set_properties({"TemUn": unit})

    async def set_fan_speed(self, speed: FanSpeed | int | str) -> PropertySet:
        """Set the fan speed."""
        return await self.set_properties({"WdSpd": speed})

    async def set_vertical_swing(self, swing: VerticalSwing | int | str) -> PropertySet:
        """Set the vertical blade position or swing region."""
        return await self.set_properties({"SwUpDn": swing})

    async def set_horizontal_swing(self, swing: HorizontalSwing | int | str) -> PropertySet:
        """Set the horizontal blade position."""
        return await self.set_properties({"SwingLfRig": swing})

    async def set_light(self, on: bool) -> PropertySet:
        """Switch the display light."""
        return await self.set_properties({"Lig": int(on)})

    async def set_quiet(self, on: bool) -> PropertySet:
        """Switch quiet mode."""
        return await self.set_properties({"Quiet": int(on)})

    async def set_turbo(self, on: bool) -> PropertySet:
        """Switch turbo mode."""
        return await self.set_properties({"Tur": int(on)})

    async def set_sleep(self, on: bool) -> PropertySet:
        """Switch sleep mode."""
        return await self.set_properties({"SwhSlp": int(on)})

    async def set_xfan(self, on: bool) -> PropertySet:
        """Switch X-Fan."""
        return await self.set_properties({"Blo": int(on)})

    async def set_health(self, on: bool) -> PropertySet:
        """Switch health (cold plasma) mode."""
        return await self.set_properties({"Health": int(on)})

    async def set_fresh_air(self, on: bool) -> PropertySet:
        """Switch the fresh air valve."""
        return await self.set_properties({"Air": int(on)})

    async def set_energy_saving(self, on: bool) -> PropertySet:
        """Switch energy saving mode."""
        return await self.set_properties({"SvSt": int(on)})

    async def set_steady_heat(self, on: bool) -> PropertySet:
        """Switch 8 °C heating."""
        return await self.set_properties({"StHt": int(on)})

    async def set_time(self, when: datetime) -> PropertySet:
        """Set the device clock (local time)."""
        return await self.set_properties({"time": when.strftime("%Y-%m-%d %H:%M:%S")})

    # -------------------------------------------------------------------------
    # State Management
    # -------------------------------------------------------------------------

    def _update_state(self, values: PropertySet) -> None:
        """Merge values into the cache and notify listeners."""
        self._state = self._state.merged(values)
        self._notify_listeners()

    def _notify_listeners(self) -> None:
        """Call every listener; a failing listener does not affect the others."""
        for listener in self._listeners:
            try:
                listener(self)
            except Exception:
                _LOGGER.exception("Error in state change listener for device %s", self.mac)

    def add_listener(self, callback: Callable[[GreeDevice], None]) -> None:
        """Register a callback run after every state change.

        Args:
            callback: Callable taking the device.
        """
        if callback not in self._listeners:
            self._listeners.append(callback)
            _LOGGER.debug("Added state change listener for device %s", self.mac)

    def remove_listener(self, callback: Callable[[GreeDevice], None]) -> None:
        """Unregister a callback."""
        if callback in self._listeners:
            self._listeners.remove(callback)
            _LOGGER.debug("Removed state change listener for device %s", self.mac)

    # -------------------------------------------------------------------------
    # Auto-refresh
    # -------------------------------------------------------------------------

    async def start_auto_refresh(self, interval: float = 60.0) -> None:
        """Start polling the device in the background.

        Args:
            interval: Seconds between refreshes.
        """
        await self.stop_auto_refresh()

        self._auto_refresh_interval = interval
        self._auto_refresh_task = asyncio.create_task(self._auto_refresh_loop())
        _LOGGER.info("Started auto-refresh for device %s (interval: %ss)", self.mac, interval)

    async def stop_auto_refresh(self) -> None:
        """Stop background polling."""
        if self._auto_refresh_task is not None:
            self._auto_refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._auto_refresh_task
            self._auto_refresh_task = None
            _LOGGER.info("Stopped auto-refresh for device %s", self.mac)

    async def _auto_refresh_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._auto_refresh_interval)
                try:
                    await self.refresh()
                except GreeError as err:
                    _LOGGER.warning("Auto-refresh failed for device %s: %s", self.mac, err)
        except asyncio.CancelledError:
            _LOGGER.debug("Auto-refresh loop cancelled for device %s", self.mac)

    async def shutdown(self) -> None:
        """Stop polling and cancel queued writes."""
        await self.stop_auto_refresh()
        if self._command_queue is not None:
            await self._command_queue.shutdown()

    # -------------------------------------------------------------------------
    # String Representation
    # -------------------------------------------------------------------------

    def __str__(self) -> str:
        """Return string representation of device."""
        return f"{self.name} ({self.mac})"

    def __repr__(self) -> str:
        """Return detailed string representation of device."""
        return f"GreeDevice(mac='{self.mac}', host='{self.host}')"
