"""Command line interface for pygree.

Usage:
    pygree scan [--bcast ADDR] [--count N] [--window SECONDS]
    pygree bind --ip IP --mac MAC
    pygree get --ip IP --mac MAC --key KEY --name NAME[,NAME...]
    pygree set --ip IP --mac MAC --key KEY --var NAME=VALUE[,NAME=VALUE...]
    pygree service [--bcast ADDR] [--count N] [--alias ALIAS=MAC[,...]] [--host H] [--port P]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING

from pygree.api import GreeAPI
from pygree.client import GreeConfig
from pygree.const import (
    DEFAULT_BROADCAST_ADDRESS,
    DEFAULT_DISCOVERY_WINDOW,
    DEFAULT_MAX_DEVICES,
    DEFAULT_PORT,
    DEFAULT_SERVICE_HOST,
    DEFAULT_SERVICE_PORT,
    DEFAULT_TIMEOUT,
)
from pygree.exceptions import GreeError, InvalidParameterError
from pygree.models import DeviceIdentity
from pygree.properties import DEFAULT_STATUS_CODES, code_for, parse_value
from pygree.service import run_service
from pygree.session import Session
from pygree.transport import UdpTransport


if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["build_parser", "main"]

_LOGGER = logging.getLogger(__name__)


def parse_names(text: str) -> list[str]:
    """Parse "Pow,SetTem" (codes or names) into wire codes."""
    return [code_for(name.strip()) for name in text.split(",") if name.strip()]


def parse_assignments(text: str) -> list[tuple[str, int | str]]:
    """Parse "Pow=1,SetTem=24" into validated (code, value) pairs."""
    changes: list[tuple[str, int | str]] = []
    for item in text.split(","):
        name, sep, value = item.partition("=")
        if not sep:
            msg = f"Expected NAME=VALUE, got {item!r}"
            raise InvalidParameterError(msg, value=item)
        code = code_for(name.strip())
        changes.append((code, parse_value(code, value)))
    return changes


def parse_aliases(text: str) -> dict[str, str]:
    """Parse "bedroom=f4911e7aca59,office=..." into an alias map."""
    aliases: dict[str, str] = {}
    for item in text.split(","):
        alias, sep, mac = item.partition("=")
        if not sep or not alias or not mac:
            msg = f"Expected ALIAS=MAC, got {item!r}"
            raise InvalidParameterError(msg, value=item)
        aliases[alias.strip()] = mac.strip()
    return aliases


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(prog="pygree", description="Control Gree air conditioners on the local network")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (-v, -vv)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Reply timeout in seconds")
    commands = parser.add_subparsers(dest="command", required=True)

    def add_scan_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "-a",
            "--bcast",
            default=DEFAULT_BROADCAST_ADDRESS,
            help=f"Broadcast address (default: {DEFAULT_BROADCAST_ADDRESS})",
        )
        sub.add_argument(
            "-c",
            "--count",
            type=int,
            default=DEFAULT_MAX_DEVICES,
            help=f"Maximum number of devices (default: {DEFAULT_MAX_DEVICES})",
        )
        sub.add_argument(
            "-w",
            "--window",
            type=float,
            default=DEFAULT_DISCOVERY_WINDOW,
            help=f"Discovery window in seconds (default: {DEFAULT_DISCOVERY_WINDOW})",
        )

    def add_device_options(sub: argparse.ArgumentParser, *, key: bool) -> None:
        sub.add_argument("-i", "--ip", required=True, help="Device IP address")
        sub.add_argument("-m", "--mac", required=True, help="Device mac (as reported by scan)")
        sub.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help="Device port")
        if key:
            sub.add_argument("-k", "--key", required=True, help="Device key (as returned by bind)")

    scan = commands.add_parser("scan", help="Discover devices")
    add_scan_options(scan)

    bind = commands.add_parser("bind", help="Obtain a device key")
    add_device_options(bind, key=False)

    get = commands.add_parser("get", help="Read properties")
    add_device_options(get, key=True)
    get.add_argument(
        "-n",
        "--name",
        type=parse_names,
        default=list(DEFAULT_STATUS_CODES),
        help="Comma-separated property codes or names",
    )

    set_ = commands.add_parser("set", help="Write properties")
    add_device_options(set_, key=True)
    set_.add_argument("-V", "--var", type=parse_assignments, required=True, help="Comma-separated NAME=VALUE pairs")

    service = commands.add_parser("service", help="Run the HTTP bridge")
    add_scan_options(service)
    service.add_argument("-A", "--alias", type=parse_aliases, default={}, help="Comma-separated ALIAS=MAC pairs")
    service.add_argument("--host", default=DEFAULT_SERVICE_HOST, help=f"Listen address (default: {DEFAULT_SERVICE_HOST})")
    service.add_argument(
        "--port",
        type=int,
        default=DEFAULT_SERVICE_PORT,
        help=f"Listen port (default: {DEFAULT_SERVICE_PORT})",
    )

    return parser


def _session(args: argparse.Namespace, *, key: str | None = None) -> Session:
    return Session(DeviceIdentity(host=args.ip, port=args.port, mac=args.mac), key=key)


async def _run(args: argparse.Namespace) -> object:
    async with UdpTransport() as transport:
        api = GreeAPI(transport, timeout=args.timeout)

        if args.command == "scan":
            identities = await api.scan(args.bcast, window=args.window, max_count=args.count)
            return [
                {
                    "mac": identity.mac,
                    "ip": identity.host,
                    "name": identity.name,
                    "brand": identity.brand,
                    "model": identity.model,
                    "version": identity.firmware_version,
                }
                for identity in identities
            ]

        if args.command == "bind":
            key = await _session(args).bind(api)
            return {"mac": args.mac, "key": str(key)}

        if args.command == "get":
            status = await api.read_status(_session(args, key=args.key), args.name)
            return status.as_dict()

        acknowledged = await api.write_status(_session(args, key=args.key), args.var)
        return acknowledged.as_dict()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line tool.

    Returns:
        Process exit status.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except GreeError as err:
        parser.error(str(err))

    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "service":
        config = GreeConfig(
            broadcast_address=args.bcast,
            max_count=args.count,
            discovery_window=args.window,
            timeout=args.timeout,
            aliases=args.alias,
        )
        run_service(config, host=args.host, port=args.port)
        return 0

    try:
        result = asyncio.run(_run(args))
    except GreeError as err:
        print(f"error: {err}", file=sys.stderr)  # noqa: T201
        return 1
    except KeyboardInterrupt:
        return 130

    print(json.dumps(result, indent=2))  # noqa: T201
    return 0


if __name__ == "__main__":
    sys.exit(main())
