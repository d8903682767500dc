"""Tests for the HTTP bridge."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING

import pytest
from fakes import (
    DEVICE_HOST,
    DEVICE_KEY,
    DEVICE_MAC,
    OTHER_HOST,
    OTHER_MAC,
    FakeTransport,
    bind_reply,
    command_reply,
    scan_reply,
    status_reply,
)

from pygree.cipher import decrypt
from pygree.client import GreeClient, GreeConfig
from pygree.exceptions import (
    DecodeError,
    DeviceNotBoundError,
    DeviceNotFoundError,
    GreeConnectionError,
    GreeTimeoutError,
    InvalidParameterError,
    ProtocolError,
    UnknownPropertyError,
)
from pygree.service import CLIENT_KEY, _status_for, create_app


if TYPE_CHECKING:
    from aiohttp.test_utils import TestClient

    from pygree.exceptions import GreeError


@pytest.fixture
def gree_client(transport: FakeTransport) -> GreeClient:
    """Client over the fake transport, with one alias."""
    config = GreeConfig(
        discovery_window=0.5,
        timeout=1.0,
        min_request_interval=0.0,
        min_scan_age=0.0,
        aliases={"bedroom": DEVICE_MAC},
    )
    return GreeClient(config, transport=transport)


@pytest.fixture
async def http(aiohttp_client: TestClient, gree_client: GreeClient) -> TestClient:
    """HTTP test client for the bridge."""
    return await aiohttp_client(create_app(gree_client))


class TestStatusMapping:
    """Tests for mapping library errors to HTTP statuses."""

    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (DeviceNotFoundError("x"), HTTPStatus.NOT_FOUND),
            (UnknownPropertyError("x"), HTTPStatus.NOT_FOUND),
            (GreeTimeoutError("x"), HTTPStatus.SERVICE_UNAVAILABLE),
            (GreeConnectionError("x"), HTTPStatus.SERVICE_UNAVAILABLE),
            (InvalidParameterError("x"), HTTPStatus.BAD_REQUEST),
            (ProtocolError("x"), HTTPStatus.BAD_REQUEST),
            (DecodeError("x"), HTTPStatus.BAD_REQUEST),
            (DeviceNotBoundError("x"), HTTPStatus.BAD_REQUEST),
        ],
    )
    def test_status_for(self, error: GreeError, status: HTTPStatus) -> None:
        """Test the status code chosen for each error type."""
        assert _status_for(error) == status


class TestRoutes:
    """Tests for the bridge routes."""

    async def test_app_holds_client(self, gree_client: GreeClient) -> None:
        """Test that the client is stored under its app key."""
        assert create_app(gree_client)[CLIENT_KEY] is gree_client

    async def test_scan(self, http: TestClient, transport: FakeTransport) -> None:
        """Test that /scan forces a scan and lists macs."""
        transport.on_send[1] = [scan_reply(), scan_reply(OTHER_MAC, OTHER_HOST)]

        response = await http.get("/scan")

        assert response.status == HTTPStatus.OK
        assert await response.json() == [DEVICE_MAC, OTHER_MAC]

    async def test_devices(self, http: TestClient, transport: FakeTransport) -> None:
        """Test listing known devices."""
        transport.on_send[1] = [scan_reply()]

        response = await http.get("/dev")

        assert await response.json() == [DEVICE_MAC]

    async def test_device(self, http: TestClient, transport: FakeTransport) -> None:
        """Test describing a device by alias."""
        transport.on_send[1] = [scan_reply()]

        response = await http.get("/dev/bedroom")

        assert response.status == HTTPStatus.OK
        assert await response.json() == {"mac": DEVICE_MAC, "ip": DEVICE_HOST, "name": "living room"}

    async def test_unknown_device(self, http: TestClient) -> None:
        """Test that an unknown target is a 404 with a JSON body."""
        response = await http.get("/dev/kitchen")

        assert response.status == HTTPStatus.NOT_FOUND
        body = await response.json()
        assert body["code"] == HTTPStatus.NOT_FOUND
        assert "kitchen" in body["message"]

    async def test_get(self, http: TestClient, transport: FakeTransport) -> None:
        """Test reading properties named in the query string."""
        transport.on_send[1] = [scan_reply()]
        transport.on_send[2] = [bind_reply()]
        transport.on_send[3] = [status_reply(["SetTem", "Pow"], [24, 1])]

        response = await http.get("/dev/bedroom/get?SetTem&power")

        assert response.status == HTTPStatus.OK
        assert await response.json() == {"SetTem": 24, "Pow": 1}

    async def test_get_unknown_property(self, http: TestClient, transport: FakeTransport) -> None:
        """Test that an unknown property is a 404 and nothing is sent."""
        response = await http.get(f"/dev/{DEVICE_MAC}/get?Foo")

        assert response.status == HTTPStatus.NOT_FOUND
        assert transport.sent == []

    async def test_set(self, http: TestClient, transport: FakeTransport) -> None:
        """Test writing properties given in the query string."""
        transport.on_send[1] = [scan_reply()]
        transport.on_send[2] = [bind_reply()]
        transport.on_send[3] = [command_reply(["SetTem", "Mod"], [23, 1])]

        response = await http.get("/dev/bedroom/set?SetTem=23&mode=cool")

        assert response.status == HTTPStatus.OK
        assert await response.json() == {"SetTem": 23, "Mod": 1}
        payload = decrypt(DEVICE_KEY, transport.sent_json(2)["pack"])
        assert payload == {"opt": ["SetTem", "Mod"], "p": [23, 1], "t": "cmd"}

    async def test_set_invalid_value(self, http: TestClient, transport: FakeTransport) -> None:
        """Test that an out-of-range value is a 400 and nothing is sent."""
        response = await http.get("/dev/bedroom/set?SetTem=99")

        assert response.status == HTTPStatus.BAD_REQUEST
        assert (await response.json())["code"] == HTTPStatus.BAD_REQUEST
        assert transport.sent == []

    async def test_device_timeout(self, http: TestClient, transport: FakeTransport) -> None:
        """Test that a silent device is a 503."""
        transport.on_send[1] = [scan_reply()]

        response = await http.get("/dev/bedroom/get?Pow")

        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE

    async def test_unknown_route(self, http: TestClient) -> None:
        """Test that routes outside the bridge are plain 404s."""
        response = await http.get("/nope")

        assert response.status == HTTPStatus.NOT_FOUND
