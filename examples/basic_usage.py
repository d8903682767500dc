"""Basic usage example for pygree library."""

import asyncio

from pygree import GreeClient, GreeConfig, Mode


async def main() -> None:
    """Demonstrate basic usage of pygree."""
    # Use the broadcast address of the segment your units are on
    async with GreeClient(GreeConfig(broadcast_address="192.168.1.255")) as client:
        devices = await client.get_devices()
        print(f"Found {len(devices)} device(s)")

        for device in devices:
            print(f"\nDevice: {device.name}")
            print(f"  Mac: {device.mac}")
            print(f"  Address: {device.host}")
            print(f"  Model: {device.identity.model}")
            print(f"  Firmware: {device.identity.firmware_version}")

            # Binds on first use, then reads the default status codes
            await device.refresh()
            print(f"  Powered: {device.power}")
            print(f"  Mode: {device.mode.name if device.mode is not None else 'unknown'}")
            print(f"  Target: {device.target_temperature} °C")

            print("\nTurning device on in cool mode at 24 °C...")
            await device.turn_on()
            await device.set_mode(Mode.COOL)
            await device.set_target_temperature(24)

            print(f"Key for later sessions: {device.session.key}")


if __name__ == "__main__":
    asyncio.run(main())
