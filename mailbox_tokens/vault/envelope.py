"""
Encrypted Envelope — Versioned, self-describing storage unit for one token.

Serialized form (stored in the credential record's token column)::

    {"ciphertext": "<b64>", "iv": "<b64 12B>", "salt": "<b64 16B>",
     "iterations": 600000, "algorithm": "AES-GCM", "version": 1}

The parser also accepts envelopes written by the browser client, where
bytes fields are JSON arrays of integers and the ciphertext key is
``encrypted``.
"""
import base64
import binascii
from typing import Any, Literal, Union
from collections.abc import Mapping

import orjson
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
)

from ..exceptions import InvalidEnvelopeError

ALGORITHM = "AES-GCM"
ENVELOPE_VERSION = 1
SUPPORTED_VERSIONS = frozenset({ENVELOPE_VERSION})

IV_SIZE = 12  # 96-bit GCM nonce
SALT_SIZE = 16
TAG_SIZE = 16
MAX_ITERATIONS = 10_000_000

_REQUIRED_FIELDS = ("iv", "salt", "iterations", "algorithm", "version")


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as err:
            raise ValueError(f"invalid base64 data: {err}") from err
    if isinstance(value, list):
        # bytes() rejects non-int items and values outside 0..255
        try:
            return bytes(value)
        except (TypeError, ValueError) as err:
            raise ValueError(f"invalid byte array: {err}") from err
    raise ValueError(f"unsupported bytes encoding: {type(value).__name__}")


class EncryptedEnvelope(BaseModel):
    """AES-GCM ciphertext bundled with everything needed to decrypt it."""

    model_config = ConfigDict(frozen=True)

    ciphertext: bytes = Field(
        validation_alias=AliasChoices("ciphertext", "encrypted"),
    )
    iv: bytes
    salt: bytes
    iterations: int = Field(ge=1, le=MAX_ITERATIONS)
    algorithm: Literal["AES-GCM"] = ALGORITHM
    version: int = ENVELOPE_VERSION

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v: Any) -> int:
        """Reject unknown envelope versions."""
        if isinstance(v, bool) or not isinstance(v, int) or v not in SUPPORTED_VERSIONS:
            raise ValueError(f"unsupported envelope version: {v!r}")
        return v

    @field_validator("ciphertext", "iv", "salt", mode="before")
    @classmethod
    def decode_bytes(cls, v: Any) -> bytes:
        return _to_bytes(v)

    @field_validator("iv")
    @classmethod
    def validate_iv(cls, v: bytes) -> bytes:
        if len(v) != IV_SIZE:
            raise ValueError(f"iv must be {IV_SIZE} bytes, got {len(v)}")
        return v

    @field_validator("salt")
    @classmethod
    def validate_salt(cls, v: bytes) -> bytes:
        if len(v) != SALT_SIZE:
            raise ValueError(f"salt must be {SALT_SIZE} bytes, got {len(v)}")
        return v

    @field_validator("ciphertext")
    @classmethod
    def validate_ciphertext(cls, v: bytes) -> bytes:
        if len(v) < TAG_SIZE:
            raise ValueError(
                f"ciphertext too short: {len(v)} bytes (minimum {TAG_SIZE})"
            )
        return v

    @field_serializer("ciphertext", "iv", "salt")
    def encode_bytes(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")

    def to_json(self) -> str:
        """Serialize to the textual form stored in the database."""
        return orjson.dumps(self.model_dump()).decode("utf-8")


EnvelopeInput = Union[EncryptedEnvelope, str, bytes, Mapping[str, Any]]


def parse_envelope(data: EnvelopeInput) -> EncryptedEnvelope:
    """Validate stored envelope data, before any cryptographic work.

    Args:
        data: An envelope, its JSON text, or an already-decoded mapping.

    Returns:
        Validated EncryptedEnvelope.

    Raises:
        InvalidEnvelopeError: If the data is not JSON, misses required
            fields, or carries an unknown version/algorithm or bad sizes.
    """
    if isinstance(data, EncryptedEnvelope):
        return data
    if isinstance(data, (str, bytes)):
        try:
            data = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise InvalidEnvelopeError(
                f"Envelope is not valid JSON: {err}"
            ) from err
    if not isinstance(data, Mapping):
        raise InvalidEnvelopeError(
            f"Envelope must be a JSON object, got {type(data).__name__}"
        )
    missing = [name for name in _REQUIRED_FIELDS if data.get(name) is None]
    if data.get("ciphertext") is None and data.get("encrypted") is None:
        missing.insert(0, "ciphertext")
    if missing:
        raise InvalidEnvelopeError(
            f"Envelope is missing required fields: {', '.join(missing)}"
        )
    try:
        return EncryptedEnvelope.model_validate(dict(data))
    except ValidationError as err:
        raise InvalidEnvelopeError(f"Invalid envelope: {err}") from err


def is_current_envelope(value: Any) -> bool:
    """Return True if value already parses as a current envelope."""
    if value is None:
        return False
    try:
        parse_envelope(value)
    except InvalidEnvelopeError:
        return False
    return True
