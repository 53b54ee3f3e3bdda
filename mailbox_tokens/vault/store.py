"""
Credential Store — Persistence of mailbox integration records.

Each row of ``user_email_configs`` holds the encrypted access/refresh token
envelopes (JSON text, or NULL when absent/cleared) and an ``is_active`` flag;
inactive rows require the user to re-authenticate. Rows are never deleted
because of decryption problems.

Security Note:
    Never log token columns. Only log record IDs and user IDs.
"""
import logging
from uuid import UUID
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel

logger = logging.getLogger("mailbox.tokens")

RecordId = Union[UUID, int, str]

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_USER_RECORDS = """
SELECT id, user_id, provider, email_address, access_token, refresh_token,
       expires_at, is_active
FROM public.user_email_configs
WHERE user_id = $1
ORDER BY created_at
"""

_SELECT_RECORD = """
SELECT id, user_id, provider, email_address, access_token, refresh_token,
       expires_at, is_active
FROM public.user_email_configs
WHERE id = $1 AND user_id = $2
"""

_UPDATE_MIGRATED_TOKENS = """
UPDATE public.user_email_configs
SET access_token = $1, refresh_token = $2, is_active = $3, updated_at = NOW()
WHERE id = $4
"""

_UPDATE_ROTATED_TOKENS = """
UPDATE public.user_email_configs
SET access_token = $1, refresh_token = $2, expires_at = $3, updated_at = NOW()
WHERE id = $4 AND user_id = $5
"""

_UPSERT_RECORD = """
INSERT INTO public.user_email_configs
    (user_id, provider, email_address, access_token, refresh_token,
     expires_at, is_active)
VALUES ($1, $2, $3, $4, $5, $6, TRUE)
ON CONFLICT (user_id, provider, email_address)
DO UPDATE SET access_token = EXCLUDED.access_token,
             refresh_token = EXCLUDED.refresh_token,
             expires_at = EXCLUDED.expires_at,
             is_active = TRUE,
             updated_at = NOW()
RETURNING id
"""

_UPDATE_ACTIVE = """
UPDATE public.user_email_configs
SET is_active = $1, updated_at = NOW()
WHERE id = $2 AND user_id = $3
"""


class CredentialRecord(BaseModel):
    """One connected mailbox account."""

    id: RecordId
    user_id: Union[UUID, str]
    provider: str = "gmail"
    email_address: str = ""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True

    @property
    def has_tokens(self) -> bool:
        return bool(self.access_token or self.refresh_token)


class CredentialStore:
    """Reads and writes credential records through an asyncpg-compatible pool."""

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def fetch_user_records(self, user_id: str) -> list[CredentialRecord]:
        """Return every credential record owned by ``user_id``."""
        async with self._db.acquire() as conn:
            rows = await conn.fetch(_SELECT_USER_RECORDS, user_id)
        return [CredentialRecord.model_validate(dict(row)) for row in rows]

    async def get_record(
        self, record_id: RecordId, user_id: str
    ) -> Optional[CredentialRecord]:
        """Return one record of ``user_id``, or None if it does not exist."""
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_RECORD, record_id, user_id)
        if row is None:
            return None
        return CredentialRecord.model_validate(dict(row))

    async def update_migrated_tokens(
        self,
        record_id: RecordId,
        access_token: Optional[str],
        refresh_token: Optional[str],
        is_active: bool,
    ) -> None:
        """Persist both token columns and the active flag in one statement."""
        async with self._db.acquire() as conn:
            await conn.execute(
                _UPDATE_MIGRATED_TOKENS,
                access_token, refresh_token, is_active, record_id,
            )
        logger.debug(
            "Credential record %s updated (active=%s)", record_id, is_active,
        )

    async def update_rotated_tokens(
        self,
        record_id: RecordId,
        user_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
    ) -> None:
        """Persist tokens issued by a refresh-token rotation."""
        async with self._db.acquire() as conn:
            await conn.execute(
                _UPDATE_ROTATED_TOKENS,
                access_token, refresh_token, expires_at, record_id, user_id,
            )

    async def upsert_record(
        self,
        user_id: str,
        provider: str,
        email_address: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
    ) -> RecordId:
        """Insert or replace the record for (user, provider, address).

        Returns:
            ID of the stored record.
        """
        async with self._db.acquire() as conn:
            record_id = await conn.fetchval(
                _UPSERT_RECORD,
                user_id, provider, email_address,
                access_token, refresh_token, expires_at,
            )
        logger.info(
            "Credential record %s stored for user=%s", record_id, user_id,
        )
        return record_id

    async def set_active(
        self, record_id: RecordId, user_id: str, is_active: bool
    ) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(_UPDATE_ACTIVE, is_active, record_id, user_id)
        logger.debug(
            "Credential record %s active=%s for user=%s",
            record_id, is_active, user_id,
        )
