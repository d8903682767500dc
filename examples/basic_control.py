"""Control one unit by alias.

This example demonstrates:
- Aliases for device macs
- Reading and writing properties by name through the client
- Fahrenheit set points
- Handling library errors
"""

import asyncio

from pygree import DeviceNotFoundError, GreeClient, GreeConfig, GreeTimeoutError, InvalidParameterError


async def main() -> None:
    """Switch the bedroom unit to a quiet, dry night setting."""
    config = GreeConfig(
        broadcast_address="192.168.1.255",
        aliases={"bedroom": "f4911e7aca59"},
    )

    async with GreeClient(config) as client:
        try:
            status = await client.read("bedroom", ["power", "mode", "target_temperature", "fan_speed"])
            print(f"Before: {status.as_dict()}")

            acknowledged = await client.write(
                "bedroom",
                {"power": 1, "mode": "dry", "fan_speed": "low", "quiet": 1, "light": 0},
            )
            print(f"Device acknowledged: {acknowledged.as_dict()}")

            device = await client.get_device("bedroom")
            await device.set_target_temperature(75, fahrenheit=True)
            print(f"Target: {device.target_temperature_fahrenheit} °F ({device.target_temperature} °C)")

        except DeviceNotFoundError:
            print("The bedroom unit did not answer the scan")
        except GreeTimeoutError as err:
            print(f"The unit stopped answering: {err}")
        except InvalidParameterError as err:
            print(f"Rejected before sending: {err}")


if __name__ == "__main__":
    asyncio.run(main())
