"""Binding state machine for one device.

A session starts UNBOUND, holding the generic key. A successful bind exchange
installs the device's own key and moves the session to BOUND, which is terminal:
the key is then read-only and used for every status read and command.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pygree.const import DEFAULT_UID, KEY_LENGTH, MSG_BIND_RESULT, STATUS_OK
from pygree.exceptions import BindTimeoutError, DeviceNotBoundError, GreeTimeoutError, ProtocolError
from pygree.models import BindingState, BindPayload, DeviceKey
from pygree.serializers import build_bind_request


if TYPE_CHECKING:
    from pygree.api import GreeAPI
    from pygree.models import DeviceIdentity

__all__ = ["Session"]

_LOGGER = logging.getLogger(__name__)


class Session:
    """Key and binding state for one device.

    Example:
        ```python
        session = Session(identity)
        await session.bind(api)
        status = await api.read_status(session, ["Pow", "SetTem"])
        ```

    Attributes:
        identity: Device this session talks to.
        uid: User id sent in every envelope.
    """

    def __init__(
        self,
        identity: DeviceIdentity,
        *,
        uid: int = DEFAULT_UID,
        key: DeviceKey | bytes | str | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            identity: Device this session talks to.
            uid: User id sent in every envelope.
            key: Previously obtained device key; the session starts BOUND when given.
        """
        self.identity = identity
        self.uid = uid
        self._bind_lock: asyncio.Lock | None = None

        if key is None:
            self._key = DeviceKey.generic()
            self._state = BindingState.UNBOUND
        else:
            self._key = key if isinstance(key, DeviceKey) else DeviceKey.bound(key, identity.mac)
            self._state = BindingState.BOUND

    @property
    def state(self) -> BindingState:
        """Current binding state."""
        return self._state

    @property
    def is_bound(self) -> bool:
        """Check if the session holds a device key."""
        return self._state is BindingState.BOUND

    @property
    def key(self) -> DeviceKey:
        """Key currently held: the generic key until bound."""
        return self._key

    def require_bound(self) -> DeviceKey:
        """Return the device key.

        Raises:
            DeviceNotBoundError: If the session is not bound.
        """
        if self._state is not BindingState.BOUND:
            msg = f"Device {self.identity.mac} is not bound"
            raise DeviceNotBoundError(msg, device_id=self.identity.mac)
        return self._key

    async def bind(self, api: GreeAPI, timeout: float | None = None) -> DeviceKey:
        """Obtain the device key, binding if necessary.

        A bound session returns its key without any network I/O. A failed
        attempt leaves the session UNBOUND and may simply be retried.

        Args:
            api: Engine used for the bind exchange.
            timeout: Reply timeout in seconds; defaults to the engine's timeout.

        Returns:
            The device key.

        Raises:
            BindTimeoutError: If the device does not answer in time.
            ProtocolError: If the device rejects the bind or returns a malformed key.
            DecodeError: If the reply cannot be decrypted.
        """
        if self._bind_lock is None:
            self._bind_lock = asyncio.Lock()

        async with self._bind_lock:
            if self._state is BindingState.BOUND:
                return self._key

            mac = self.identity.mac
            request = build_bind_request(mac, self.uid)
            try:
                payload = await api.exchange(
                    self.identity,
                    request,
                    DeviceKey.generic(),
                    MSG_BIND_RESULT,
                    timeout=timeout,
                )
            except GreeTimeoutError as err:
                _LOGGER.warning("Bind to %s at %s timed out", mac, self.identity.host)
                msg = f"Device {mac} at {self.identity.host} did not answer the bind request"
                raise BindTimeoutError(msg) from err

            assert isinstance(payload, BindPayload)
            if payload.r != STATUS_OK:
                msg = f"Device {mac} rejected bind with status {payload.r}"
                raise ProtocolError(msg)

            key_bytes = payload.key.encode("utf-8")
            if len(key_bytes) != KEY_LENGTH:
                msg = f"Device {mac} returned a {len(key_bytes)}-byte key, expected {KEY_LENGTH}"
                raise ProtocolError(msg)

            self._key = DeviceKey.bound(key_bytes, mac)
            self._state = BindingState.BOUND
            _LOGGER.info("Bound to %s at %s", mac, self.identity.host)
            return self._key

    def __repr__(self) -> str:
        """Return a readable representation."""
        return f"Session(mac={self.identity.mac!r}, host={self.identity.host!r}, state={self._state.value})"
