"""
TokenCipher — Session-bound authenticated encryption of OAuth tokens.

Provides the public API for steady-state token protection:
- ``encrypt_token(plaintext)`` — encrypt under the current session's key
- ``decrypt_token(envelope)`` — re-derive the key and decrypt
- ``encrypt_to_json`` / ``decrypt_from_json`` — same, on the stored text form
- ``is_supported()`` — capability check for the underlying primitives

The session identity is fetched from the provider on every call; nothing is
cached, so key material always reflects the current session.

Security Note:
    Never log plaintext or ciphertext values. Only log user IDs and
    operations.
"""
import logging
from typing import Optional

from ..exceptions import DecryptionFailedError, UnsupportedEnvironmentError
from ..identity import SessionProvider
from .config import VaultConfig
from .crypto import (
    SessionKeyDeriver,
    aesgcm_decrypt,
    aesgcm_encrypt,
    generate_iv,
    generate_salt,
    primitives_available,
)
from .envelope import (
    ALGORITHM,
    ENVELOPE_VERSION,
    EncryptedEnvelope,
    EnvelopeInput,
    parse_envelope,
)

logger = logging.getLogger("mailbox.tokens")


class TokenCipher:
    """Encrypts and decrypts single token strings into versioned envelopes.

    A stolen at-rest database cannot be decrypted without an active session
    for the exact user that encrypted the data, and no key is ever written
    to durable storage.
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        config: Optional[VaultConfig] = None,
    ):
        self._provider = session_provider
        self._config = config or VaultConfig.from_env()
        self._deriver = SessionKeyDeriver(
            app_secret=self._config.app_secret,
            iterations=self._config.iterations,
        )

    @property
    def iterations(self) -> int:
        return self._config.iterations

    @property
    def session_provider(self) -> SessionProvider:
        return self._provider

    @property
    def config(self) -> VaultConfig:
        return self._config

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    @staticmethod
    def is_supported() -> bool:
        """Return True if AES-GCM and PBKDF2-SHA256 are available."""
        return primitives_available()

    def require_supported(self) -> None:
        """Raise UnsupportedEnvironmentError if primitives are missing."""
        if not self.is_supported():
            raise UnsupportedEnvironmentError(
                "AES-GCM / PBKDF2-HMAC-SHA256 are not available in this environment"
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def encrypt_token(self, plaintext: str) -> EncryptedEnvelope:
        """Encrypt a token under a key derived from the current session.

        Args:
            plaintext: Token string to protect.

        Returns:
            Envelope with fresh salt and iv, ``version=1``.

        Raises:
            NoSessionError: If no authenticated session is available.
        """
        identity = await self._provider.require_identity()
        salt = generate_salt()
        iv = generate_iv()
        key = await self._deriver.derive(identity, salt)
        ciphertext = await aesgcm_encrypt(key, iv, plaintext.encode("utf-8"))
        logger.debug("Token encrypted for user=%s", identity.user_id)
        return EncryptedEnvelope(
            ciphertext=ciphertext,
            iv=iv,
            salt=salt,
            iterations=self._deriver.iterations,
            algorithm=ALGORITHM,
            version=ENVELOPE_VERSION,
        )

    async def decrypt_token(self, envelope: EnvelopeInput) -> str:
        """Decrypt an envelope with a key re-derived from the current session.

        The envelope is validated before the session lookup and before any
        key derivation.

        Args:
            envelope: Envelope, its stored JSON text, or a decoded mapping.

        Returns:
            Plaintext token.

        Raises:
            InvalidEnvelopeError: If the envelope is malformed or has an
                unknown version.
            NoSessionError: If no authenticated session is available.
            DecryptionFailedError: If authentication fails (other session,
                changed identity, or tampered data).
        """
        env = parse_envelope(envelope)
        identity = await self._provider.require_identity()
        key = await self._deriver.derive(identity, env.salt, env.iterations)
        plaintext = await aesgcm_decrypt(key, env.iv, env.ciphertext)
        try:
            token = plaintext.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecryptionFailedError(
                "Decrypted token is not valid UTF-8"
            ) from err
        logger.debug("Token decrypted for user=%s", identity.user_id)
        return token

    async def encrypt_to_json(self, plaintext: str) -> str:
        """Encrypt and return the stored text form of the envelope."""
        envelope = await self.encrypt_token(plaintext)
        return envelope.to_json()

    async def decrypt_from_json(self, stored: str) -> str:
        """Decrypt the stored text form of an envelope."""
        return await self.decrypt_token(stored)
