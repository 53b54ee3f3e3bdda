"""Shared fixtures for the token vault tests."""
import os
import base64
import hashlib
import itertools
from contextlib import asynccontextmanager
from typing import Any, Optional

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mailbox_tokens.identity import CallableSessionProvider, SessionIdentity
from mailbox_tokens.local_storage import (
    LEGACY_PASSWORD_KEY,
    LEGACY_SESSION_KEY,
    MemoryLocalStorage,
)
from mailbox_tokens.vault import store as store_module
from mailbox_tokens.vault.config import VaultConfig
from mailbox_tokens.vault.store import CredentialStore
from mailbox_tokens.vault.token_cipher import TokenCipher

LEGACY_PASSWORD = "9f2c4d1e8a7b6c5d4e3f2a1b0c9d8e7f6a5b4c3d2e1f0a9b8c7d6e5f4a3b2c1d"


def legacy_encrypt(token: str, password: str = LEGACY_PASSWORD) -> str:
    """Build a token the way the deprecated scheme wrote it."""
    iv = os.urandom(16)
    key = hashlib.sha256(password.encode("utf-8")).digest()
    ct = AESGCM(key).encrypt(iv, token.encode("utf-8"), None)
    return base64.b64encode(iv + ct).decode("ascii")


# --- Session ---

class SwitchableSession:
    """Holds the identity returned by the session provider."""

    def __init__(self, identity: Optional[SessionIdentity]):
        self.identity = identity
        self.calls = 0

    def __call__(self) -> Optional[SessionIdentity]:
        self.calls += 1
        return self.identity


@pytest.fixture
def identity():
    return SessionIdentity(user_id="u1", email="a@b.com", session_token="sess-token-1")


@pytest.fixture
def other_identity():
    return SessionIdentity(user_id="u2", email="c@d.com", session_token="sess-token-2")


@pytest.fixture
def session(identity):
    return SwitchableSession(identity)


@pytest.fixture
def provider(session):
    return CallableSessionProvider(session)


@pytest.fixture
def config():
    return VaultConfig(app_secret="test-app-secret")


@pytest.fixture
def cipher(provider, config):
    return TokenCipher(provider, config=config)


# --- Local storage ---

@pytest.fixture
def legacy_storage():
    """Local storage as left behind by the legacy client."""
    return MemoryLocalStorage({
        LEGACY_PASSWORD_KEY: LEGACY_PASSWORD,
        LEGACY_SESSION_KEY: "legacy-session-key",
    })


# --- Database ---

class FakeConnection:
    """Just enough of an asyncpg connection for CredentialStore."""

    def __init__(self, pool: "FakePool"):
        self.pool = pool

    async def fetch(self, query: str, *args) -> list[dict]:
        assert query == store_module._SELECT_USER_RECORDS
        return [
            dict(row) for row in self.pool.rows.values()
            if row["user_id"] == args[0]
        ]

    async def fetchrow(self, query: str, *args) -> Optional[dict]:
        assert query == store_module._SELECT_RECORD
        row = self.pool.rows.get(args[0])
        if row is None or row["user_id"] != args[1]:
            return None
        return dict(row)

    async def fetchval(self, query: str, *args) -> Any:
        assert query == store_module._UPSERT_RECORD
        user_id, provider, email, access, refresh, expires_at = args
        for row in self.pool.rows.values():
            if (row["user_id"], row["provider"], row["email_address"]) == (user_id, provider, email):
                row.update(
                    access_token=access, refresh_token=refresh,
                    expires_at=expires_at, is_active=True,
                )
                return row["id"]
        return self.pool.add(
            user_id=user_id, provider=provider, email_address=email,
            access_token=access, refresh_token=refresh, expires_at=expires_at,
        )

    async def execute(self, query: str, *args) -> str:
        self.pool.executed.append((query, args))
        if query == store_module._UPDATE_MIGRATED_TOKENS:
            access, refresh, active, record_id = args
            if record_id in self.pool.fail_updates:
                raise ConnectionError("connection reset by peer")
            self.pool.rows[record_id].update(
                access_token=access, refresh_token=refresh, is_active=active,
            )
        elif query == store_module._UPDATE_ROTATED_TOKENS:
            access, refresh, expires_at, record_id, user_id = args
            row = self.pool.rows.get(record_id)
            if row is not None and row["user_id"] == user_id:
                row.update(
                    access_token=access, refresh_token=refresh,
                    expires_at=expires_at,
                )
        elif query == store_module._UPDATE_ACTIVE:
            active, record_id, user_id = args
            row = self.pool.rows.get(record_id)
            if row is not None and row["user_id"] == user_id:
                row["is_active"] = active
        else:
            raise AssertionError(f"unexpected query: {query}")
        return "UPDATE 1"


class FakePool:
    """In-memory stand-in for an asyncpg pool over user_email_configs."""

    def __init__(self):
        self.rows: dict[str, dict] = {}
        self.executed: list[tuple] = []
        self.fail_updates: set[str] = set()
        self._ids = itertools.count(1)

    def add(self, **values) -> str:
        record_id = values.pop("id", None) or f"cfg-{next(self._ids)}"
        row = {
            "id": record_id,
            "user_id": "u1",
            "provider": "gmail",
            "email_address": f"{record_id}@example.com",
            "access_token": None,
            "refresh_token": None,
            "expires_at": None,
            "is_active": True,
        }
        row.update(values)
        self.rows[record_id] = row
        return record_id

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self)


@pytest.fixture
def db_pool():
    return FakePool()


@pytest.fixture
def store(db_pool):
    return CredentialStore(db_pool)


@pytest.fixture
def legacy_token():
    """Factory for tokens written by the deprecated scheme."""
    return legacy_encrypt
