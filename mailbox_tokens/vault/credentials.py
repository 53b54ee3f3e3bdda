"""
Credential Service — Connect, read and rotate mailbox OAuth credentials.

Tokens are always written through the session-bound ``TokenCipher``. A
record whose access token can no longer be decrypted is marked inactive
(never deleted) and reported as "needs re-authentication".
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

from ..exceptions import DecryptionFailedError, InvalidEnvelopeError
from .store import CredentialStore, RecordId
from .token_cipher import TokenCipher

logger = logging.getLogger("mailbox.tokens")

EXPIRY_BUFFER = timedelta(minutes=5)


class OAuthCredentials(BaseModel):
    """Decrypted OAuth credentials of a connected mailbox."""

    email: str
    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_at: Optional[datetime] = None

    def is_expired(
        self,
        buffer: timedelta = EXPIRY_BUFFER,
        now: Optional[datetime] = None,
    ) -> bool:
        """True if the access token expires within ``buffer``."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at - now < buffer


TokenRefresher = Callable[[str], Awaitable[OAuthCredentials]]


class CredentialService:
    """Steady-state use of encrypted credentials.

    Every operation acts on behalf of the user of the current session;
    records of other users are never read or written.
    """

    def __init__(self, cipher: TokenCipher, store: CredentialStore):
        self._cipher = cipher
        self._store = store

    async def _owner(self) -> str:
        identity = await self._cipher.session_provider.require_identity()
        return identity.user_id

    async def _encrypt_pair(
        self, credentials: OAuthCredentials
    ) -> tuple[str, Optional[str]]:
        access = await self._cipher.encrypt_to_json(credentials.access_token)
        refresh = None
        if credentials.refresh_token:
            refresh = await self._cipher.encrypt_to_json(credentials.refresh_token)
        return access, refresh

    async def save_credentials(
        self,
        credentials: OAuthCredentials,
        provider: str = "gmail",
    ) -> RecordId:
        """Encrypt and store the credentials of a newly connected account.

        Raises:
            UnsupportedEnvironmentError: If the primitives are unavailable.
            NoSessionError: If no authenticated session is available.
        """
        self._cipher.require_supported()
        user_id = await self._owner()
        access, refresh = await self._encrypt_pair(credentials)
        return await self._store.upsert_record(
            user_id, provider, credentials.email,
            access, refresh, credentials.expires_at,
        )

    async def update_stored_tokens(
        self, record_id: RecordId, credentials: OAuthCredentials
    ) -> None:
        """Persist tokens obtained from a refresh-token rotation."""
        self._cipher.require_supported()
        user_id = await self._owner()
        access, refresh = await self._encrypt_pair(credentials)
        await self._store.update_rotated_tokens(
            record_id, user_id, access, refresh, credentials.expires_at,
        )
        logger.info("Tokens rotated for credential record %s", record_id)

    async def set_active(self, record_id: RecordId, active: bool) -> None:
        await self._store.set_active(record_id, await self._owner(), active)

    async def get_credentials(
        self,
        record_id: RecordId,
        refresher: Optional[TokenRefresher] = None,
    ) -> Optional[OAuthCredentials]:
        """Return decrypted credentials, or None if re-authentication is needed.

        When the access token is expired (or about to) and both a refresh
        token and ``refresher`` are available, the refreshed credentials are
        stored and returned.

        Raises:
            NoSessionError: If no authenticated session is available; the
                caller should prompt a new login rather than re-connect.
        """
        user_id = await self._owner()
        record = await self._store.get_record(record_id, user_id)
        if record is None:
            logger.debug("No credential record %s for user=%s", record_id, user_id)
            return None
        if not record.access_token:
            logger.info("Credential record %s has no access token", record_id)
            return None

        try:
            access_token = await self._cipher.decrypt_token(record.access_token)
        except (DecryptionFailedError, InvalidEnvelopeError) as err:
            logger.warning(
                "Access token of record %s cannot be decrypted (%s); "
                "marking inactive", record_id, err.code,
            )
            await self._store.set_active(record_id, user_id, False)
            return None

        refresh_token = None
        if record.refresh_token:
            try:
                refresh_token = await self._cipher.decrypt_token(record.refresh_token)
            except (DecryptionFailedError, InvalidEnvelopeError) as err:
                logger.warning(
                    "Refresh token of record %s cannot be decrypted (%s); "
                    "continuing without it", record_id, err.code,
                )

        credentials = OAuthCredentials(
            email=record.email_address,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=record.expires_at,
        )
        if not credentials.is_expired():
            return credentials
        if not credentials.refresh_token:
            logger.info(
                "Access token of record %s expired and no refresh token is available",
                record_id,
            )
            return None
        if refresher is None:
            return credentials

        refreshed = await refresher(credentials.refresh_token)
        if not refreshed.refresh_token:
            refreshed = refreshed.model_copy(
                update={"refresh_token": credentials.refresh_token}
            )
        await self.update_stored_tokens(record_id, refreshed)
        return refreshed
