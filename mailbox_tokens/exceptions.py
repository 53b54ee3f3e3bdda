"""
Token Vault Errors — Taxonomy of token encryption failures.

Every error carries a stable ``code`` that callers can map to user-facing
behavior:

- ``SESSION_EXPIRED``: prompt the user to log in again.
- ``INVALID_ENVELOPE``: stored data is malformed (corruption, not transient).
- ``DECRYPTION_FAILED``: authentication tag mismatch (other session, tampering).
- ``LEGACY_DECRYPTION_FAILED``: a legacy token cannot be recovered.
- ``UNSUPPORTED_ENVIRONMENT``: required primitives are unavailable.
"""


class TokenVaultError(Exception):
    """Base class for all token vault errors."""

    code: str = "TOKEN_VAULT_ERROR"

    def __init__(self, message: str = "", *args):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message, *args)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class NoSessionError(TokenVaultError):
    """No authenticated session available."""

    code = "SESSION_EXPIRED"


class InvalidEnvelopeError(TokenVaultError):
    """Encrypted envelope is malformed or unsupported."""

    code = "INVALID_ENVELOPE"


class DecryptionFailedError(TokenVaultError):
    """Token decryption failed."""

    code = "DECRYPTION_FAILED"


class LegacyDecryptionFailedError(TokenVaultError):
    """Legacy token could not be decrypted."""

    code = "LEGACY_DECRYPTION_FAILED"


class UnsupportedEnvironmentError(TokenVaultError):
    """Required cryptographic primitives are not available."""

    code = "UNSUPPORTED_ENVIRONMENT"
