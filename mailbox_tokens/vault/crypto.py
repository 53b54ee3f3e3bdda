"""
Vault Crypto Core — Session-bound key derivation and AES-GCM primitives.

Key derivation:
    PBKDF2-HMAC-SHA256("{app_secret}:{user_id}:{email}", salt, iterations) → AES-256

Encryption:
    AES-GCM with a fresh random 96-bit iv and 128-bit salt per call.

The primitives are CPU-bound (600k PBKDF2 iterations by default), so the
async helpers run them in a worker thread; the ``await`` is the suspension
point and the event loop stays responsive.

Security Note:
    Never log plaintext, ciphertext or key material.
"""
import os
import asyncio
import logging
from typing import Optional

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import DecryptionFailedError, NoSessionError
from ..identity import SessionIdentity
from .config import DEFAULT_KDF_ITERATIONS, FALLBACK_APP_SECRET
from .envelope import IV_SIZE, SALT_SIZE

logger = logging.getLogger("mailbox.tokens")

KEY_LENGTH = 32  # AES-256


def generate_salt() -> bytes:
    """Return a fresh random 16-byte salt."""
    return os.urandom(SALT_SIZE)


def generate_iv() -> bytes:
    """Return a fresh random 12-byte GCM nonce."""
    return os.urandom(IV_SIZE)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def key_material(identity: SessionIdentity, app_secret: str) -> bytes:
    """Build the PBKDF2 input from the application secret and identity."""
    return f"{app_secret}:{identity.user_id}:{identity.email}".encode("utf-8")


def derive_session_key(
    identity: SessionIdentity,
    salt: bytes,
    iterations: int = DEFAULT_KDF_ITERATIONS,
    app_secret: str = FALLBACK_APP_SECRET,
) -> bytes:
    """Derive a 32-byte AES key bound to the session identity.

    Deterministic: the same identity, salt and iterations always produce
    the same key, which is what makes later decryption possible.

    Args:
        identity: Current session identity.
        salt: 16-byte per-envelope salt.
        iterations: PBKDF2 iteration count.
        app_secret: Application-wide secret mixed into the key material.

    Returns:
        32-byte derived key.
    """
    if len(salt) != SALT_SIZE:
        raise ValueError(f"salt must be {SALT_SIZE} bytes, got {len(salt)}")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(key_material(identity, app_secret))


class SessionKeyDeriver:
    """Derives session-bound keys off the event loop."""

    def __init__(
        self,
        app_secret: str = FALLBACK_APP_SECRET,
        iterations: int = DEFAULT_KDF_ITERATIONS,
    ):
        self._app_secret = app_secret
        self.iterations = iterations

    async def derive(
        self,
        identity: Optional[SessionIdentity],
        salt: bytes,
        iterations: Optional[int] = None,
    ) -> bytes:
        """Derive the key for ``identity`` and ``salt``.

        Raises:
            NoSessionError: If there is no identity to derive from.
        """
        if identity is None:
            raise NoSessionError(
                "No authenticated session available for key derivation"
            )
        return await asyncio.to_thread(
            derive_session_key,
            identity,
            salt,
            iterations or self.iterations,
            self._app_secret,
        )


# ---------------------------------------------------------------------------
# AES-GCM
# ---------------------------------------------------------------------------

async def aesgcm_encrypt(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    """Encrypt with AES-GCM; returns ciphertext with the 16-byte tag appended."""
    return await asyncio.to_thread(AESGCM(key).encrypt, iv, plaintext, None)


async def aesgcm_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    """Decrypt and authenticate AES-GCM ciphertext.

    Raises:
        DecryptionFailedError: On authentication tag mismatch.
    """
    try:
        return await asyncio.to_thread(AESGCM(key).decrypt, iv, ciphertext, None)
    except InvalidTag as err:
        raise DecryptionFailedError(
            "Authentication tag mismatch (wrong session key or tampered data)"
        ) from err


# ---------------------------------------------------------------------------
# Capability check
# ---------------------------------------------------------------------------

def primitives_available() -> bool:
    """Check that AES-256-GCM and PBKDF2-HMAC-SHA256 work on this backend."""
    try:
        PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=b"\x00" * SALT_SIZE,
            iterations=1,
        ).derive(b"probe")
        AESGCM(b"\x00" * KEY_LENGTH).encrypt(b"\x00" * IV_SIZE, b"probe", None)
    except UnsupportedAlgorithm as err:
        logger.warning("Cryptographic primitives unavailable: %s", err)
        return False
    return True
