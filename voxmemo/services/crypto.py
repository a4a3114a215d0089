"""At-rest encryption used by the secure value store and the failed-recording queue."""

from __future__ import annotations

import base64
import hashlib
from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken


class DecryptionError(RuntimeError):
    """Raised when a stored blob cannot be decrypted with the active key."""


class Encryptor(Protocol):
    """Opaque ``encrypt(bytes) -> ciphertext`` / ``decrypt(ciphertext) -> bytes`` service."""

    def encrypt(self, data: bytes) -> str:
        ...

    def decrypt(self, token: str) -> bytes:
        ...


class FernetEncryptor:
    """Authenticated symmetric encryption keyed from a configured secret."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("An encryption secret is required.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._cipher = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, data: bytes) -> str:
        return self._cipher.encrypt(data).decode("utf-8")

    def decrypt(self, token: str) -> bytes:
        try:
            return self._cipher.decrypt(token.encode("utf-8"))
        except (InvalidToken, ValueError, TypeError) as exc:
            raise DecryptionError("Failed to decrypt data") from exc


__all__ = ["DecryptionError", "Encryptor", "FernetEncryptor"]
