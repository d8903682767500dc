"""HTTP bridge exposing a GreeClient over a small JSON API.

Routes:
    GET /scan                          forced rescan, list of macs
    GET /dev                           known macs
    GET /dev/{target}                  {"mac", "ip", "name"}
    GET /dev/{target}/get?Pow&SetTem   {"Pow": 1, "SetTem": 24}
    GET /dev/{target}/set?Pow=1&SetTem=24

Targets are macs or aliases. Library errors are returned as
``{"code": <status>, "message": <text>}``.

Example:
    ```bash
    curl http://localhost:7777/scan
    curl "http://localhost:7777/dev/f4911e7aca59/get?SetTem&Pow"
    curl "http://localhost:7777/dev/bedroom/set?SetTem=23&Pow=1"
    ```
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING

from aiohttp import web

from pygree.client import GreeClient
from pygree.const import DEFAULT_SERVICE_HOST, DEFAULT_SERVICE_PORT
from pygree.exceptions import (
    DeviceNotFoundError,
    GreeConnectionError,
    GreeError,
    GreeTimeoutError,
    UnknownPropertyError,
)
from pygree.properties import code_for, parse_value


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from pygree.client import GreeConfig

__all__ = ["CLIENT_KEY", "create_app", "run_service"]

_LOGGER = logging.getLogger(__name__)

CLIENT_KEY = web.AppKey("client", GreeClient)


def _status_for(err: GreeError) -> HTTPStatus:
    if isinstance(err, DeviceNotFoundError | UnknownPropertyError):
        return HTTPStatus.NOT_FOUND
    if isinstance(err, GreeTimeoutError | GreeConnectionError):
        return HTTPStatus.SERVICE_UNAVAILABLE
    return HTTPStatus.BAD_REQUEST


@web.middleware
async def error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """Map library errors to JSON error responses."""
    try:
        return await handler(request)
    except GreeError as err:
        status = _status_for(err)
        _LOGGER.warning("%s %s failed: %s", request.method, request.path, err)
        return web.json_response({"code": int(status), "message": str(err)}, status=status)


async def handle_scan(request: web.Request) -> web.Response:
    """Force a rescan and list the known macs."""
    devices = await request.app[CLIENT_KEY].scan(force=True)
    return web.json_response([device.mac for device in devices])


async def handle_devices(request: web.Request) -> web.Response:
    """List the known macs."""
    devices = await request.app[CLIENT_KEY].get_devices()
    return web.json_response([device.mac for device in devices])


async def handle_device(request: web.Request) -> web.Response:
    """Describe one device."""
    device = await request.app[CLIENT_KEY].get_device(request.match_info["target"])
    return web.json_response({"mac": device.mac, "ip": device.host, "name": device.identity.name})


async def handle_get(request: web.Request) -> web.Response:
    """Read the properties named in the query string (all defaults if none)."""
    codes = [code_for(name) for name in request.query] or None
    status = await request.app[CLIENT_KEY].read(request.match_info["target"], codes)
    return web.json_response(status.as_dict())


async def handle_set(request: web.Request) -> web.Response:
    """Write the properties given in the query string."""
    changes = []
    for name, text in request.query.items():
        code = code_for(name)
        changes.append((code, parse_value(code, text)))
    acknowledged = await request.app[CLIENT_KEY].write(request.match_info["target"], changes)
    return web.json_response(acknowledged.as_dict())


def create_app(client: GreeClient, *, manage_client: bool = False) -> web.Application:
    """Build the HTTP application around a client.

    Args:
        client: Client serving the requests.
        manage_client: Enter the client on startup and close it on cleanup.

    Returns:
        The aiohttp application.
    """
    app = web.Application(middlewares=[error_middleware])
    app[CLIENT_KEY] = client
    app.router.add_get("/scan", handle_scan)
    app.router.add_get("/dev", handle_devices)
    app.router.add_get("/dev/{target}", handle_device)
    app.router.add_get("/dev/{target}/get", handle_get)
    app.router.add_get("/dev/{target}/set", handle_set)

    if manage_client:
        app.cleanup_ctx.append(_client_context)
    return app


async def _client_context(app: web.Application) -> AsyncIterator[None]:
    client = app[CLIENT_KEY]
    async with client:
        yield


def run_service(
    config: GreeConfig,
    *,
    host: str = DEFAULT_SERVICE_HOST,
    port: int = DEFAULT_SERVICE_PORT,
) -> None:
    """Serve the HTTP bridge until interrupted."""
    _LOGGER.info("Starting HTTP bridge on %s:%s", host, port)
    web.run_app(create_app(GreeClient(config), manage_client=True), host=host, port=port, print=None)
