"""
Vault Configuration — Application secret and KDF settings.

Reads settings from environment variables:
    TOKEN_ENCRYPTION_SECRET = <application-wide secret string>
    TOKEN_KDF_ITERATIONS = <integer, minimum 600000>
    TOKEN_LEGACY_STORAGE = <path of the local storage JSON file>

Security Note:
    Never log the application secret. Only log whether it was configured.
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("mailbox.tokens")

MIN_KDF_ITERATIONS = 600_000
DEFAULT_KDF_ITERATIONS = MIN_KDF_ITERATIONS

# Used only when TOKEN_ENCRYPTION_SECRET is not configured.
FALLBACK_APP_SECRET = "dmarc-analytics-fallback-secret"

DEFAULT_LEGACY_STORAGE = Path.home() / ".mailbox_tokens" / "local_storage.json"


def get_app_secret() -> str:
    """Read the application-wide secret from TOKEN_ENCRYPTION_SECRET.

    Returns:
        Configured secret, or the built-in fallback when unset or empty.
    """
    secret = os.environ.get("TOKEN_ENCRYPTION_SECRET")
    if not secret:
        logger.warning(
            "TOKEN_ENCRYPTION_SECRET is not set, using the built-in fallback secret"
        )
        return FALLBACK_APP_SECRET
    return secret


def get_kdf_iterations() -> int:
    """Read PBKDF2 iteration count from TOKEN_KDF_ITERATIONS.

    Raises:
        ValueError: If the value is not a valid integer.
    """
    raw = os.environ.get("TOKEN_KDF_ITERATIONS")
    if raw is None:
        return DEFAULT_KDF_ITERATIONS
    return int(raw)


class VaultConfig(BaseModel):
    """Validated token vault configuration."""

    app_secret: str = Field(default=FALLBACK_APP_SECRET, repr=False)
    iterations: int = Field(default=DEFAULT_KDF_ITERATIONS)
    legacy_storage_path: Path = Field(default=DEFAULT_LEGACY_STORAGE)

    @field_validator("iterations")
    @classmethod
    def validate_iterations(cls, v: int) -> int:
        """PBKDF2 iterations must not drop below the minimum."""
        if v < MIN_KDF_ITERATIONS:
            raise ValueError(
                f"iterations must be at least {MIN_KDF_ITERATIONS}, got {v}"
            )
        return v

    @model_validator(mode="after")
    def validate_secret(self) -> "VaultConfig":
        """Ensure the application secret is not empty."""
        if not self.app_secret:
            raise ValueError("app_secret cannot be empty")
        return self

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        storage = os.environ.get("TOKEN_LEGACY_STORAGE")
        return cls(
            app_secret=get_app_secret(),
            iterations=get_kdf_iterations(),
            legacy_storage_path=Path(storage).expanduser() if storage else DEFAULT_LEGACY_STORAGE,
        )
