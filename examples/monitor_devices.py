"""Monitor every unit on the network.

This example demonstrates:
- Auto-refresh polling
- Change listeners
- Reading the room temperature sensor
"""

import asyncio
from datetime import datetime

from pygree import DEFAULT_STATUS_CODES, GreeClient, GreeConfig, GreeDevice


def on_change(device: GreeDevice) -> None:
    """Print a line whenever a device's cached state changes."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    power = "ON" if device.power else "OFF"
    mode = device.mode.name if device.mode is not None else "?"
    room = f"{device.room_temperature} °C" if device.room_temperature is not None else "n/a"
    print(f"[{timestamp}] {device.name}: {power} {mode} target={device.target_temperature} °C room={room}")


async def main() -> None:
    """Poll all devices every 30 seconds for five minutes."""
    async with GreeClient(GreeConfig(broadcast_address="192.168.1.255")) as client:
        devices = await client.get_devices()
        if not devices:
            print("No devices found")
            return

        for device in devices:
            device.add_listener(on_change)
            await device.refresh([*DEFAULT_STATUS_CODES, "TemSen"])
            await device.start_auto_refresh(interval=30.0)

        await asyncio.sleep(300)


if __name__ == "__main__":
    asyncio.run(main())
