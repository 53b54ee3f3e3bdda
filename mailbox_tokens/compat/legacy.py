"""
Legacy Envelope Codec — Read-only decoder for the deprecated token scheme.

Legacy format:
    base64( iv 16B | AES-GCM ciphertext + tag 16B )
    key = SHA-256(password), password kept in unauthenticated local storage

Only the migration reads through this module; nothing is ever written in
this format again.
"""
import base64
import binascii
import hashlib
import asyncio
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import LegacyDecryptionFailedError
from ..local_storage import LEGACY_PASSWORD_KEY, LocalStorage

LEGACY_IV_SIZE = 16
LEGACY_TAG_SIZE = 16


def legacy_key(password: str) -> bytes:
    """Single SHA-256 of the password; no salt, no iterations."""
    return hashlib.sha256(password.encode("utf-8")).digest()


def _unpack(packed: str) -> tuple[bytes, bytes]:
    try:
        combined = base64.b64decode(packed, validate=True)
    except (binascii.Error, ValueError) as err:
        raise LegacyDecryptionFailedError(
            f"Legacy token is not valid base64: {err}"
        ) from err
    if len(combined) < LEGACY_IV_SIZE + LEGACY_TAG_SIZE:
        raise LegacyDecryptionFailedError(
            f"Legacy token too short: {len(combined)} bytes "
            f"(minimum {LEGACY_IV_SIZE + LEGACY_TAG_SIZE})"
        )
    return combined[:LEGACY_IV_SIZE], combined[LEGACY_IV_SIZE:]


def _decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> str:
    try:
        return AESGCM(key).decrypt(iv, ciphertext, None).decode("utf-8")
    except InvalidTag as err:
        raise LegacyDecryptionFailedError(
            "Legacy token authentication failed"
        ) from err
    except UnicodeDecodeError as err:
        raise LegacyDecryptionFailedError(
            "Legacy token plaintext is not valid UTF-8"
        ) from err


class LegacyEnvelopeCodec:
    """Decodes tokens written by the static-password scheme.

    The key is derived once, on first use, from the password found in
    local storage. A missing password is reported per token, like any
    other unrecoverable legacy value.
    """

    def __init__(self, storage: LocalStorage):
        self._storage = storage
        self._key: Optional[bytes] = None

    def _require_key(self) -> bytes:
        if self._key is None:
            password = self._storage.get_item(LEGACY_PASSWORD_KEY)
            if not password:
                raise LegacyDecryptionFailedError(
                    "Legacy password is not present in local storage"
                )
            self._key = legacy_key(password)
        return self._key

    async def legacy_decrypt(self, packed: str) -> str:
        """Decrypt one legacy token.

        Raises:
            LegacyDecryptionFailedError: On any failure (missing password,
                malformed base64, short buffer, tag mismatch).
        """
        if not isinstance(packed, str) or not packed:
            raise LegacyDecryptionFailedError("Legacy token is empty")
        iv, ciphertext = _unpack(packed)
        key = self._require_key()
        return await asyncio.to_thread(_decrypt, key, iv, ciphertext)
