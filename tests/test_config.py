"""
Tests for vault configuration loading.
"""
from pathlib import Path

import pytest
from pydantic import ValidationError

from mailbox_tokens.vault.config import (
    DEFAULT_LEGACY_STORAGE,
    FALLBACK_APP_SECRET,
    VaultConfig,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TOKEN_ENCRYPTION_SECRET", "TOKEN_KDF_ITERATIONS", "TOKEN_LEGACY_STORAGE"):
        monkeypatch.delenv(name, raising=False)


class TestVaultConfig:

    def test_defaults(self):
        config = VaultConfig()
        assert config.iterations == 600000
        assert config.app_secret == FALLBACK_APP_SECRET
        assert config.legacy_storage_path == DEFAULT_LEGACY_STORAGE

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TOKEN_ENCRYPTION_SECRET", "s3cr3t")
        monkeypatch.setenv("TOKEN_KDF_ITERATIONS", "700000")
        monkeypatch.setenv("TOKEN_LEGACY_STORAGE", str(tmp_path / "ls.json"))
        config = VaultConfig.from_env()
        assert config.app_secret == "s3cr3t"
        assert config.iterations == 700000
        assert config.legacy_storage_path == Path(tmp_path / "ls.json")

    def test_fallback_secret_warns(self, caplog):
        with caplog.at_level("WARNING", logger="mailbox.tokens"):
            config = VaultConfig.from_env()
        assert config.app_secret == FALLBACK_APP_SECRET
        assert "TOKEN_ENCRYPTION_SECRET" in caplog.text

    def test_iterations_below_minimum(self):
        with pytest.raises(ValidationError):
            VaultConfig(iterations=100_000)

    def test_iterations_env_below_minimum(self, monkeypatch):
        monkeypatch.setenv("TOKEN_KDF_ITERATIONS", "1000")
        with pytest.raises(ValidationError):
            VaultConfig.from_env()

    def test_empty_secret(self):
        with pytest.raises(ValidationError):
            VaultConfig(app_secret="")

    def test_secret_not_in_repr(self):
        assert "s3cr3t" not in repr(VaultConfig(app_secret="s3cr3t"))
