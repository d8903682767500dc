"""Pytest configuration and fixtures for integration tests."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from dotenv import load_dotenv


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from pygree import GreeClient, GreeDevice


# Load .env file from project root
env_path = Path(__file__).parents[2] / ".env"
load_dotenv(env_path)


@pytest.fixture(scope="session")
def integration_config() -> dict[str, str | None]:
    """Load integration test configuration from environment.

    Returns:
        Dictionary with the broadcast address and optional test device.

    Raises:
        ValueError: If GREE_BROADCAST_ADDRESS is missing.
    """
    broadcast_address = os.getenv("GREE_BROADCAST_ADDRESS")
    if not broadcast_address:
        msg = "Missing required environment variable. Please create .env file with GREE_BROADCAST_ADDRESS"
        raise ValueError(msg)

    return {
        "broadcast_address": broadcast_address,
        "test_mac": os.getenv("GREE_TEST_MAC"),
        "allow_writes": os.getenv("GREE_ALLOW_WRITES"),
    }


@pytest.fixture
async def integration_client(integration_config: dict[str, str | None]) -> AsyncGenerator[GreeClient]:
    """Client bound to a real UDP socket."""
    from pygree import GreeClient, GreeConfig

    config = GreeConfig(broadcast_address=integration_config["broadcast_address"] or "", timeout=5.0)
    async with GreeClient(config) as client:
        yield client


@pytest.fixture
async def test_device(integration_client: GreeClient, integration_config: dict[str, str | None]) -> GreeDevice:
    """The unit to test against: GREE_TEST_MAC, or the first one that answers."""
    mac = integration_config["test_mac"]
    if mac:
        return await integration_client.get_device(mac)

    devices = await integration_client.get_devices()
    if not devices:
        pytest.skip("No Gree devices answered the scan")
    return devices[0]


@pytest.fixture
def writes_allowed(integration_config: dict[str, str | None]) -> None:
    """Skip tests that change settings unless GREE_ALLOW_WRITES=1."""
    if integration_config["allow_writes"] != "1":
        pytest.skip("Set GREE_ALLOW_WRITES=1 to run tests that change device settings")


@pytest.fixture(autouse=True)
async def command_spacing(request: pytest.FixtureRequest) -> AsyncGenerator[None]:
    """Pause between integration tests so units are not flooded with commands."""
    yield
    if "integration" in request.keywords:
        await asyncio.sleep(1.0)
