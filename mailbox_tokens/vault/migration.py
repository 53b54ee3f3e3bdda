"""
Token Migration — One-way re-encryption of legacy tokens.

Tokens written by the deprecated static-password scheme are decoded with
the legacy codec and re-encrypted under the current session's key. Records
are processed sequentially; each record moves through

    discovered -> attempting -> migrated | corrupted

and is persisted with a single update, so an interrupted record keeps its
pre-migration state. A token that cannot be recovered marks the record
inactive (re-authentication required) without aborting the run.

The legacy keys in local storage are removed once every record has been
processed, whatever the outcome, so a failed run is never retried forever.
If the session expires mid-run the error propagates and the keys stay in
place, leaving the remaining records for a future attempt.

Security Note:
    Plaintext exists in memory only during re-encryption of each token.
    Never log plaintext or ciphertext values.
"""
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from ..compat.legacy import LegacyEnvelopeCodec
from ..exceptions import LegacyDecryptionFailedError, NoSessionError
from ..identity import SessionProvider
from ..local_storage import LEGACY_MARKER_KEYS, FileLocalStorage, LocalStorage
from .envelope import is_current_envelope
from .store import CredentialRecord, CredentialStore
from .token_cipher import TokenCipher

logger = logging.getLogger("mailbox.tokens")


class RecordState(str, Enum):
    DISCOVERED = "discovered"
    ATTEMPTING = "attempting"
    MIGRATED = "migrated"
    CORRUPTED = "corrupted"
    SKIPPED = "skipped"


class MigrationResult(BaseModel):
    """Aggregate outcome of a migration run."""

    migrated_count: int = 0
    corrupted_count: int = 0
    skipped_count: int = 0

    def count(self, state: RecordState) -> None:
        if state is RecordState.MIGRATED:
            self.migrated_count += 1
        elif state is RecordState.CORRUPTED:
            self.corrupted_count += 1
        else:
            self.skipped_count += 1


class TokenMigrator:
    """Migrates the current user's legacy tokens to session-bound envelopes.

    Callers must not run ``migrate()`` concurrently for the same user.
    """

    def __init__(
        self,
        cipher: TokenCipher,
        store: CredentialStore,
        local_storage: Optional[LocalStorage] = None,
        session_provider: Optional[SessionProvider] = None,
    ):
        self._cipher = cipher
        self._store = store
        if local_storage is None:
            local_storage = FileLocalStorage(cipher.config.legacy_storage_path)
        self._local = local_storage
        self._provider = session_provider or cipher.session_provider

    def migration_needed(self) -> bool:
        """True if a legacy key is still present in local storage."""
        return self._local.has_any(LEGACY_MARKER_KEYS)

    async def migrate(self) -> MigrationResult:
        """Re-encrypt every legacy token of the current user.

        Returns:
            Counts of migrated, corrupted and skipped records.

        Raises:
            NoSessionError: If there is no session at start, or it expires
                during the run. Legacy keys are kept in that case.
        """
        result = MigrationResult()
        if not self.migration_needed():
            logger.debug("No legacy keys found, skipping token migration")
            return result

        identity = await self._provider.require_identity()
        records = await self._store.fetch_user_records(identity.user_id)
        logger.info(
            "Starting token migration for user=%s (%d record(s))",
            identity.user_id, len(records),
        )
        codec = LegacyEnvelopeCodec(self._local)

        for position, record in enumerate(records):
            try:
                state = await self._migrate_record(codec, record)
            except NoSessionError:
                logger.warning(
                    "Session expired during token migration; "
                    "%d record(s) left for a future attempt",
                    len(records) - position,
                )
                raise
            except Exception as err:
                logger.error(
                    "Failed to migrate credential record %s: %s",
                    record.id, err,
                )
                state = RecordState.CORRUPTED
                # the legacy key is about to go, so these tokens are lost
                try:
                    await self._store.set_active(record.id, identity.user_id, False)
                except Exception as exc:
                    logger.error(
                        "Could not mark credential record %s inactive: %s",
                        record.id, exc,
                    )
            result.count(state)

        self._local.remove_all(LEGACY_MARKER_KEYS)
        logger.info(
            "Token migration completed: %d migrated, %d corrupted, %d skipped",
            result.migrated_count, result.corrupted_count, result.skipped_count,
        )
        if result.corrupted_count:
            logger.warning(
                "%d email configuration(s) have unrecoverable tokens "
                "and require re-authentication",
                result.corrupted_count,
            )
        return result

    async def _reencrypt(self, codec: LegacyEnvelopeCodec, packed: str) -> str:
        plaintext = await codec.legacy_decrypt(packed)
        envelope = await self._cipher.encrypt_token(plaintext)
        return envelope.to_json()

    async def _migrate_record(
        self, codec: LegacyEnvelopeCodec, record: CredentialRecord
    ) -> RecordState:
        logger.debug("Credential record %s %s", record.id, RecordState.DISCOVERED.value)
        access_token = record.access_token
        refresh_token = record.refresh_token
        corrupted = False
        changed = False

        # fields already in the current format are left as they are
        if access_token and not is_current_envelope(access_token):
            logger.debug(
                "Credential record %s %s (access token)",
                record.id, RecordState.ATTEMPTING.value,
            )
            changed = True
            try:
                access_token = await self._reencrypt(codec, access_token)
            except LegacyDecryptionFailedError as err:
                logger.warning(
                    "Could not decrypt access token of record %s: %s",
                    record.id, err,
                )
                access_token = None
                refresh_token = None
                corrupted = True

        if refresh_token and not corrupted and not is_current_envelope(refresh_token):
            logger.debug(
                "Credential record %s %s (refresh token)",
                record.id, RecordState.ATTEMPTING.value,
            )
            changed = True
            try:
                refresh_token = await self._reencrypt(codec, refresh_token)
            except LegacyDecryptionFailedError as err:
                logger.warning(
                    "Could not decrypt refresh token of record %s: %s",
                    record.id, err,
                )
                refresh_token = None

        if not changed:
            logger.debug("Credential record %s has nothing to migrate", record.id)
            return RecordState.SKIPPED

        await self._store.update_migrated_tokens(
            record.id, access_token, refresh_token, not corrupted,
        )
        if corrupted:
            logger.info(
                "Credential record %s marked %s, re-authentication required",
                record.id, RecordState.CORRUPTED.value,
            )
            return RecordState.CORRUPTED
        logger.debug("Credential record %s %s", record.id, RecordState.MIGRATED.value)
        return RecordState.MIGRATED
