"""Low-level engine example.

Talks to one unit without the client: discovery, binding, status reads and
commands over a transport you own. Useful when the key is stored elsewhere.
"""

import asyncio

from pygree import GreeAPI, Session, UdpTransport


async def main() -> None:
    """Bind to the first unit found and print its status."""
    async with UdpTransport() as transport:
        api = GreeAPI(transport, timeout=3.0)

        identities = await api.scan("192.168.1.255", window=3.0)
        if not identities:
            print("No devices found")
            return

        identity = identities[0]
        session = Session(identity)
        key = await session.bind(api)
        print(f"Bound to {identity.display_name} ({identity.mac}) at {identity.host}, key {key}")

        status = await api.read_status(session, ["Pow", "Mod", "SetTem", "TemSen"])
        print(status.as_dict())

        # A stored key skips the bind exchange next time
        stored = Session(identity, key=str(key))
        acknowledged = await api.write_status(stored, [("Lig", 1)])
        print(f"Acknowledged: {acknowledged.as_dict()}")


if __name__ == "__main__":
    asyncio.run(main())
