"""Mailbox Tokens.

Keeps the OAuth credentials of connected mailboxes encrypted with keys
derived from the authenticated session.
"""
from .version import __version__
from .exceptions import (
    TokenVaultError,
    NoSessionError,
    InvalidEnvelopeError,
    DecryptionFailedError,
    LegacyDecryptionFailedError,
    UnsupportedEnvironmentError,
)
from .identity import (
    SessionIdentity,
    SessionProvider,
    CallableSessionProvider,
    RequestSessionProvider,
)
from .local_storage import FileLocalStorage, MemoryLocalStorage
from .vault import (
    VaultConfig,
    EncryptedEnvelope,
    TokenCipher,
    CredentialStore,
    TokenMigrator,
    MigrationResult,
    CredentialService,
    OAuthCredentials,
)

__all__ = [
    "__version__",
    "TokenVaultError",
    "NoSessionError",
    "InvalidEnvelopeError",
    "DecryptionFailedError",
    "LegacyDecryptionFailedError",
    "UnsupportedEnvironmentError",
    "SessionIdentity",
    "SessionProvider",
    "CallableSessionProvider",
    "RequestSessionProvider",
    "FileLocalStorage",
    "MemoryLocalStorage",
    "VaultConfig",
    "EncryptedEnvelope",
    "TokenCipher",
    "CredentialStore",
    "TokenMigrator",
    "MigrationResult",
    "CredentialService",
    "OAuthCredentials",
]
