"""Token Vault — Session-bound encryption of mailbox OAuth tokens.

Security Note (Threat Model):
    Keys are derived on demand from the live session identity and are never
    persisted. Derived keys and decrypted tokens are plaintext in process
    memory while in use; a memory dump of the running process can expose
    them. This is an accepted limitation.
"""

from .config import VaultConfig
from .envelope import EncryptedEnvelope, parse_envelope
from .crypto import SessionKeyDeriver, derive_session_key
from .token_cipher import TokenCipher
from .store import CredentialRecord, CredentialStore
from .migration import MigrationResult, TokenMigrator
from .credentials import CredentialService, OAuthCredentials

__all__ = [
    "VaultConfig",
    "EncryptedEnvelope",
    "parse_envelope",
    "SessionKeyDeriver",
    "derive_session_key",
    "TokenCipher",
    "CredentialRecord",
    "CredentialStore",
    "MigrationResult",
    "TokenMigrator",
    "CredentialService",
    "OAuthCredentials",
]
