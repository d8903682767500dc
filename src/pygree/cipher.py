"""Pack encryption for the Gree protocol.

The inner payload of every datagram (except the plaintext scan request) is
compact JSON, PKCS#7-padded to the AES block size, encrypted with AES-128 in ECB
mode and base64-encoded. ECB is the protocol's fixed block mode; devices accept
nothing else.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad, unpad

from pygree.const import BLOCK_SIZE, GENERIC_KEY, KEY_LENGTH
from pygree.exceptions import DecodeError
from pygree.models import DeviceKey


__all__ = ["GENERIC_KEY", "decrypt", "encrypt"]

_LOGGER = logging.getLogger(__name__)


def _key_bytes(key: DeviceKey | bytes | str) -> bytes:
    if isinstance(key, DeviceKey):
        return key.value
    if isinstance(key, str):
        key = key.encode("utf-8")
    if len(key) != KEY_LENGTH:
        msg = f"Key must be exactly {KEY_LENGTH} bytes, got {len(key)}"
        raise ValueError(msg)
    return key


def encrypt(key: DeviceKey | bytes | str, payload: dict[str, Any]) -> str:
    """Encrypt a payload into a base64 pack.

    Packs always carry a JSON object, so ``decrypt`` returns exactly what was
    encrypted here; other JSON values are refused on both sides.

    Args:
        key: 16-byte AES key.
        payload: JSON-serializable object.

    Returns:
        Base64 text of the ciphertext.

    Raises:
        TypeError: If the payload is not a dict.
        ValueError: If the key is not 16 bytes long.
    """
    if not isinstance(payload, dict):
        msg = f"Pack payload must be a dict, got {type(payload).__name__}"
        raise TypeError(msg)

    plaintext = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    cipher = AES.new(_key_bytes(key), AES.MODE_ECB)
    return base64.b64encode(cipher.encrypt(pad(plaintext, BLOCK_SIZE))).decode("ascii")


def decrypt(key: DeviceKey | bytes | str, pack: str) -> dict[str, Any]:
    """Decrypt a base64 pack into its payload.

    Args:
        key: 16-byte AES key.
        pack: Base64 text of the ciphertext.

    Returns:
        The decoded JSON object.

    Raises:
        DecodeError: If the pack is not valid base64, is not block aligned, has
            inconsistent padding, or does not hold a UTF-8 JSON object.
        ValueError: If the key is not 16 bytes long.
    """
    cipher = AES.new(_key_bytes(key), AES.MODE_ECB)

    try:
        ciphertext = base64.b64decode(pack, validate=True)
    except (binascii.Error, ValueError) as err:
        msg = "Pack is not valid base64"
        raise DecodeError(msg) from err

    if not ciphertext or len(ciphertext) % BLOCK_SIZE:
        msg = f"Pack length {len(ciphertext)} is not a positive multiple of {BLOCK_SIZE}"
        raise DecodeError(msg)

    try:
        plaintext = unpad(cipher.decrypt(ciphertext), BLOCK_SIZE)
    except ValueError as err:
        msg = "Pack padding is inconsistent (wrong key?)"
        raise DecodeError(msg) from err

    try:
        payload = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        msg = "Pack does not hold UTF-8 JSON (wrong key?)"
        raise DecodeError(msg) from err

    if not isinstance(payload, dict):
        msg = f"Pack holds {type(payload).__name__}, expected an object"
        raise DecodeError(msg)

    _LOGGER.debug("Decrypted pack: %s", payload)
    return payload
