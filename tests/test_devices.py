"""Tests for the stateful device object."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from fakes import DEVICE_KEY, FakeTransport, bind_reply, command_reply, status_reply

from pygree.cipher import decrypt
from pygree.devices import GreeDevice
from pygree.exceptions import GreeTimeoutError, InvalidParameterError
from pygree.models import PropertySet
from pygree.properties import FanSpeed, Mode, VerticalSwing
from pygree.queue import CommandQueue
from pygree.session import Session


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pygree.api import GreeAPI
    from pygree.models import DeviceIdentity


def _sent_payload(transport: FakeTransport, index: int = -1) -> dict[str, Any]:
    return decrypt(DEVICE_KEY, transport.sent_json(index)["pack"])


@pytest.fixture
def device(api: GreeAPI, bound_session: Session) -> GreeDevice:
    """Device with a bound session and no queue."""
    return GreeDevice(api, bound_session)


class TestCachedProperties:
    """Tests for values derived from the cache."""

    def test_unknown_before_refresh(self, device: GreeDevice) -> None:
        """Test that nothing is known before the first read."""
        assert device.power is None
        assert device.mode is None
        assert device.target_temperature is None
        assert device.room_temperature is None
        assert device.last_refresh is None

    def test_values(self, api: GreeAPI, bound_session: Session) -> None:
        """Test typed accessors over a cached state."""
        state = PropertySet.from_mapping(
            {"Pow": 1, "Mod": 1, "SetTem": 22, "TemRec": 1, "WdSpd": 5, "SwUpDn": 1, "Lig": 0, "TemSen": 63}
        )
        device = GreeDevice(api, bound_session, state)

        assert device.power is True
        assert device.mode is Mode.COOL
        assert device.target_temperature == 22
        assert device.target_temperature_fahrenheit == 72
        assert device.fan_speed is FanSpeed.HIGH
        assert device.vertical_swing is VerticalSwing.FULL
        assert device.light is False
        assert device.room_temperature == 23

    def test_room_temperature_zero_is_unknown(self, api: GreeAPI, bound_session: Session) -> None:
        """Test that units without a sensor report no room temperature."""
        device = GreeDevice(api, bound_session, PropertySet([("TemSen", 0)]))
        assert device.room_temperature is None

    def test_out_of_domain_enum(self, api: GreeAPI, bound_session: Session) -> None:
        """Test that an unexpected enum value reads as unknown."""
        device = GreeDevice(api, bound_session, PropertySet([("Mod", 9)]))
        assert device.mode is None

    def test_identity(self, device: GreeDevice) -> None:
        """Test identity accessors."""
        assert device.mac == "f4911e7aca59"
        assert device.name == "living room"
        assert device.host == "192.168.1.50"
        assert device.is_bound
        assert str(device) == "living room (f4911e7aca59)"
        assert repr(device) == "GreeDevice(mac='f4911e7aca59', host='192.168.1.50')"


class TestRefresh:
    """Tests for GreeDevice.refresh."""

    async def test_refresh_caches(self, device: GreeDevice, transport: FakeTransport) -> None:
        """Test that read values are returned and cached."""
        codes = ["Pow", "Mod", "SetTem"]
        transport.queue(status_reply(codes, [1, 4, 26]))

        status = await device.refresh(codes)

        assert status == PropertySet([("Pow", 1), ("Mod", 4), ("SetTem", 26)])
        assert device.mode is Mode.HEAT
        assert device.target_temperature == 26
        assert device.last_refresh is not None

    async def test_refresh_binds_first(self, api: GreeAPI, identity: DeviceIdentity, transport: FakeTransport) -> None:
        """Test that an unbound device binds before reading."""
        device = GreeDevice(api, Session(identity))
        transport.queue(bind_reply(), status_reply(["Pow"], [0]))

        await device.refresh(["Pow"])

        assert device.is_bound
        assert device.power is False
        assert len(transport.sent) == 2

    async def test_refresh_merges(self, api: GreeAPI, bound_session: Session, transport: FakeTransport) -> None:
        """Test that a partial refresh keeps other cached values."""
        device = GreeDevice(api, bound_session, PropertySet([("Pow", 1), ("SetTem", 20)]))
        transport.queue(status_reply(["SetTem"], [25]))

        await device.refresh(["SetTem"])

        assert device.state == PropertySet([("Pow", 1), ("SetTem", 25)])


class TestSetProperties:
    """Tests for writes with optimistic updates."""

    async def test_optimistic_update(self, device: GreeDevice, transport: FakeTransport) -> None:
        """Test that listeners see the new value before the device answers."""
        seen: list[int | None] = []
        device.add_listener(lambda dev: seen.append(dev.target_temperature))
        transport.queue(command_reply(["SetTem", "TemRec"], [24, 0]))

        await device.set_target_temperature(24)

        assert seen == [24, 24]
        assert device.target_temperature == 24

    async def test_revert_on_failure(self, api: GreeAPI, bound_session: Session) -> None:
        """Test that a failed write restores the previous values and re-raises."""
        device = GreeDevice(api, bound_session, PropertySet([("Pow", 0)]))
        seen: list[bool | None] = []
        device.add_listener(lambda dev: seen.append(dev.power))

        with pytest.raises(GreeTimeoutError):
            await device.turn_on()

        assert seen == [True, False]
        assert device.power is False

    async def test_invalid_value_changes_nothing(self, device: GreeDevice, transport: FakeTransport) -> None:
        """Test that validation errors leave the cache untouched."""
        listener_calls: list[GreeDevice] = []
        device.add_listener(listener_calls.append)

        with pytest.raises(InvalidParameterError):
            await device.set_target_temperature(40)

        assert device.target_temperature is None
        assert listener_calls == []
        assert transport.sent == []

    async def test_fahrenheit(self, device: GreeDevice, transport: FakeTransport) -> None:
        """Test that a Fahrenheit set point writes SetTem and TemRec."""
        transport.queue(command_reply(["SetTem", "TemRec"], [22, 1]))

        await device.set_target_temperature(72, fahrenheit=True)

        assert _sent_payload(transport) == {"opt": ["SetTem", "TemRec"], "p": [22, 1], "t": "cmd"}
        assert device.target_temperature_fahrenheit == 72

    async def test_fahrenheit_out_of_range(self, device: GreeDevice) -> None:
        """Test that Fahrenheit values outside 61-86 are refused."""
        with pytest.raises(InvalidParameterError):
            await device.set_target_temperature(90, fahrenheit=True)

    @pytest.mark.parametrize(
        ("method", "argument", "expected"),
        [
            ("set_mode", "dry", {"Mod": 2}),
            ("set_fan_speed", FanSpeed.LOW, {"WdSpd": 1}),
            ("set_vertical_swing", 11, {"SwUpDn": 11}),
            ("set_horizontal_swing", "center", {"SwingLfRig": 4}),
            ("set_light", False, {"Lig": 0}),
            ("set_quiet", True, {"Quiet": 1}),
            ("set_turbo", True, {"Tur": 1}),
            ("set_sleep", True, {"SwhSlp": 1}),
            ("set_xfan", True, {"Blo": 1}),
            ("set_health", True, {"Health": 1}),
            ("set_fresh_air", True, {"Air": 1}),
            ("set_energy_saving", True, {"SvSt": 1}),
            ("set_steady_heat", True, {"StHt": 1}),
            ("set_temperature_unit", "fahrenheit", {"TemUn": 1}),
        ],
    )
    async def test_setters(
        self,
        device: GreeDevice,
        transport: FakeTransport,
        method: str,
        argument: object,
        expected: dict[str, int],
    ) -> None:
        """Test that each setter writes its code."""
        transport.queue(command_reply(list(expected), list(expected.values())))

        await getattr(device, method)(argument)

        payload = _sent_payload(transport)
        assert dict(zip(payload["opt"], payload["p"], strict=True)) == expected

    async def test_set_time(self, device: GreeDevice, transport: FakeTransport) -> None:
        """Test that the clock is written as text."""
        transport.queue(command_reply(["time"], ["2024-05-01 12:30:00"]))

        await device.set_time(datetime(2024, 5, 1, 12, 30))  # noqa: DTZ001

        assert _sent_payload(transport)["p"] == ["2024-05-01 12:30:00"]

    async def test_through_queue(self, api: GreeAPI, bound_session: Session, transport: FakeTransport) -> None:
        """Test that writes go through an attached command queue."""
        queue = CommandQueue(min_interval=0.0)
        device = GreeDevice(api, bound_session, command_queue=queue)
        transport.queue(command_reply(["Pow"], [1]))

        acknowledged = await device.turn_on()

        assert acknowledged == PropertySet([("Pow", 1)])
        assert device.power is True
        await device.shutdown()

    async def test_round_trip_wrapper(self, api: GreeAPI, bound_session: Session, transport: FakeTransport) -> None:
        """Test that every round trip goes through the wrapper."""
        calls = 0

        async def wrapper(func: Callable[[], Awaitable[Any]]) -> Any:
            nonlocal calls
            calls += 1
            return await func()

        device = GreeDevice(api, bound_session, round_trip=wrapper)
        transport.queue(command_reply(["Pow"], [1]))

        await device.turn_on()

        # ensure_bound and the write
        assert calls == 2


class TestListeners:
    """Tests for change listeners."""

    async def test_failing_listener_does_not_break_others(self, device: GreeDevice, transport: FakeTransport) -> None:
        """Test that one failing listener does not affect the others."""
        seen: list[bool | None] = []

        def broken(_: GreeDevice) -> None:
            msg = "boom"
            raise RuntimeError(msg)

        device.add_listener(broken)
        device.add_listener(lambda dev: seen.append(dev.power))
        transport.queue(command_reply(["Pow"], [1]))

        await device.turn_on()

        assert seen == [True, True]

    async def test_remove_listener(self, device: GreeDevice, transport: FakeTransport) -> None:
        """Test that removed listeners are not called."""
        seen: list[GreeDevice] = []
        device.add_listener(seen.append)
        device.remove_listener(seen.append)
        transport.queue(command_reply(["Pow"], [1]))

        await device.turn_on()

        assert seen == []


class TestAutoRefresh:
    """Tests for background polling."""

    async def test_auto_refresh(self, device: GreeDevice) -> None:
        """Test that polling calls refresh periodically."""
        device.refresh = AsyncMock()  # type: ignore[method-assign]

        await device.start_auto_refresh(interval=0.01)
        await asyncio.sleep(0.05)
        await device.stop_auto_refresh()

        assert device.refresh.await_count >= 1

    async def test_auto_refresh_survives_errors(self, device: GreeDevice) -> None:
        """Test that a failing refresh does not stop polling."""
        device.refresh = AsyncMock(side_effect=GreeTimeoutError("silent"))  # type: ignore[method-assign]

        await device.start_auto_refresh(interval=0.01)
        await asyncio.sleep(0.05)
        await device.shutdown()

        assert device.refresh.await_count >= 2
