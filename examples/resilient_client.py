"""Resilient client example.

Datagrams get lost; the command engine makes a single attempt per round trip
and leaves retries to the caller. This example retries lost replies with
exponential backoff and stops talking to a unit that keeps failing.
"""

import asyncio
import logging

from pygree import CircuitBreaker, ExponentialBackoff, GreeClient, GreeConfig, GreeError


async def main() -> None:
    """Read status through a client with retries and a circuit breaker."""
    logging.basicConfig(level=logging.INFO)

    client = GreeClient(
        GreeConfig(broadcast_address="192.168.1.255", timeout=2.0),
        circuit_breaker=CircuitBreaker(failure_threshold=5, recovery_timeout=60.0),
        backoff=ExponentialBackoff(base_delay=0.5, max_delay=5.0, max_retries=4),
    )

    async with client:
        for device in await client.get_devices():
            try:
                status = await device.refresh()
            except GreeError as err:
                print(f"{device.name}: {err}")
                continue
            print(f"{device.name}: {status.as_dict()}")


if __name__ == "__main__":
    asyncio.run(main())
