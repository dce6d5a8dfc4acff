"""Serialization of cache records, with optional Fernet encryption at rest.

Without a key, values are stored as compact JSON. With a key, the same JSON
is wrapped in a Fernet token.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class CodecError(Exception):
    """Raised when a value cannot be encoded or decoded."""


class ValueCodec:
    """Encodes JSON-serializable values to strings and back.

    Usage::

        codec = ValueCodec(key=ValueCodec.generate_key())
        token = codec.encode({"score": 72.5})
        codec.decode(token)  # {"score": 72.5}
    """

    def __init__(self, key: str | None = None) -> None:
        """Initialize the codec.

        Args:
            key: Optional Fernet key. Empty or None stores plaintext JSON.

        Raises:
            CodecError: If a key is given but is not a valid Fernet key.
        """
        self._fernet: Fernet | None = None
        if key and key.strip():
            try:
                self._fernet = Fernet(key.strip().encode("utf-8"))
            except (ValueError, TypeError) as exc:
                raise CodecError(f"Invalid encryption key: {exc}") from exc

    @property
    def encrypted(self) -> bool:
        return self._fernet is not None

    def encode(self, value: Any) -> str:
        try:
            text = json.dumps(value, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise CodecError(f"Value is not JSON-serializable: {exc}") from exc
        if self._fernet is None:
            return text
        return self._fernet.encrypt(text.encode("utf-8")).decode("utf-8")

    def decode(self, raw: str) -> Any:
        """Decode a stored string.

        Raises:
            CodecError: On an invalid token, wrong key, or malformed JSON.
        """
        if not isinstance(raw, str) or not raw:
            raise CodecError("Stored value is empty or not a string")
        text = raw
        if self._fernet is not None:
            try:
                text = self._fernet.decrypt(raw.encode("utf-8")).decode("utf-8")
            except InvalidToken as exc:
                raise CodecError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(text)
        except ValueError as exc:
            raise CodecError(f"Malformed JSON: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key."""
        return Fernet.generate_key().decode("utf-8")
