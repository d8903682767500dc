"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest
from fakes import DEVICE_HOST, DEVICE_KEY, DEVICE_MAC, FakeTransport

from pygree.api import GreeAPI
from pygree.models import DeviceIdentity, DeviceKey
from pygree.session import Session


@pytest.fixture
def identity() -> DeviceIdentity:
    """Identity of the fake device."""
    return DeviceIdentity(host=DEVICE_HOST, port=7000, mac=DEVICE_MAC, name="living room")


@pytest.fixture
def transport() -> FakeTransport:
    """Empty fake transport."""
    return FakeTransport()


@pytest.fixture
def api(transport: FakeTransport) -> GreeAPI:
    """Command engine over the fake transport."""
    return GreeAPI(transport, timeout=1.0)


@pytest.fixture
def bound_session(identity: DeviceIdentity) -> Session:
    """Session already holding the device key."""
    return Session(identity, key=DeviceKey.bound(DEVICE_KEY, DEVICE_MAC))
