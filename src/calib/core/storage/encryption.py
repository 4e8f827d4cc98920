"""Fernet-based encryption for raw self-report answers at rest.

Raw answer codes are encrypted before they reach SQLite. Derived summary
values (daily index, sleep minutes, stress level) stay unencrypted so the
daily log can be queried by date without decrypting anything.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class AnswerEncryptor:
    """Encrypts and decrypts JSON-serializable values with a Fernet key.

    Usage::

        encryptor = AnswerEncryptor(key=AnswerEncryptor.generate_key())
        token = encryptor.encrypt(2)
        encryptor.decrypt(token)  # 2
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode())
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, value: Any) -> str:
        """Serialize ``value`` as JSON and return a Fernet token string."""
        try:
            plaintext = json.dumps(value, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def decrypt(self, token: str) -> Any:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the token is invalid or was made with another key.
        """
        if not token:
            raise EncryptionError("Decryption failed: empty token")
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64 Fernet key."""
        return Fernet.generate_key().decode("utf-8")
