"""Ordered credential lookup for the OpenAI endpoints.

Sources are tried in a fixed priority order on every pipeline run so that a
key edited by the user takes effect immediately:

1. the secure store (encrypted per-key files, owner read/write only),
2. the local persisted value (plain JSON settings file),
3. the process environment.

A read failure in one source is logged and treated as "try the next source",
never as "no credential".
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from pathlib import Path
from typing import Protocol, Sequence

import httpx
from fastapi.concurrency import run_in_threadpool

from voxmemo.config.settings import Settings
from voxmemo.services.crypto import DecryptionError, Encryptor, FernetEncryptor
from voxmemo.services.errors import (
    CredentialInvalidError,
    CredentialMissingError,
    TransientAPIError,
)
from voxmemo.utils.sanitizer import log_error

logger = logging.getLogger(__name__)

ENVIRONMENT_VARIABLE = "OPENAI_API_KEY"
_UNSAFE_KEY_CHARS = re.compile(r"[/\\:*?\"<>|]")


class SecureStoreError(RuntimeError):
    """Raised when the secure value store cannot be read or written."""


class SecureValueStore:
    """Encrypted key/value files, one file per key."""

    def __init__(self, directory: Path, cipher: Encryptor) -> None:
        self.directory = Path(directory)
        self._cipher = cipher

    def _path_for(self, key: str) -> Path:
        return self.directory / _UNSAFE_KEY_CHARS.sub("_", key)

    def get(self, key: str) -> str:
        """Return the stored value or an empty string when nothing is stored."""

        path = self._path_for(key)
        if not path.exists():
            return ""
        try:
            token = path.read_text(encoding="utf-8")
            return self._cipher.decrypt(token).decode("utf-8")
        except (OSError, UnicodeDecodeError, DecryptionError) as exc:
            raise SecureStoreError(f"Failed to read secure value: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        encrypted = self._cipher.encrypt(value.encode("utf-8"))
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(encrypted)
        except OSError as exc:
            raise SecureStoreError(f"Failed to write secure value: {exc}") from exc

    def delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


class LocalValueStore:
    """Plain JSON settings file holding values persisted by the client."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def get(self, key: str) -> str:
        if not self.path.exists():
            return ""
        payload = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        value = payload.get(key) if isinstance(payload, dict) else None
        return value if isinstance(value, str) else ""

    def set(self, key: str, value: str | None) -> None:
        payload: dict[str, str] = {}
        if self.path.exists():
            loaded = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            if isinstance(loaded, dict):
                payload = loaded
        if value:
            payload[key] = value
        else:
            payload.pop(key, None)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


class CredentialSource(Protocol):
    name: str

    async def read(self) -> str | None:
        ...


class SecureStoreSource:
    name = "secure_store"

    def __init__(self, store: SecureValueStore, key: str) -> None:
        self._store = store
        self._key = key

    async def read(self) -> str | None:
        return await run_in_threadpool(self._store.get, self._key)


class LocalValueSource:
    name = "local_storage"

    def __init__(self, store: LocalValueStore, key: str) -> None:
        self._store = store
        self._key = key

    async def read(self) -> str | None:
        return await run_in_threadpool(self._store.get, self._key)


class EnvironmentSource:
    name = "environment"

    def __init__(self, variable: str = ENVIRONMENT_VARIABLE, fallback: str | None = None) -> None:
        self._variable = variable
        self._fallback = fallback

    async def read(self) -> str | None:
        return os.environ.get(self._variable) or self._fallback


class CredentialResolver:
    """Return the first non-empty credential from an ordered list of sources."""

    def __init__(self, sources: Sequence[CredentialSource]) -> None:
        self.sources = list(sources)

    async def resolve(self) -> str:
        credential, _ = await self.resolve_with_source()
        return credential

    async def resolve_with_source(self) -> tuple[str, str]:
        for source in self.sources:
            try:
                value = await source.read()
            except Exception as exc:
                log_error(logger, f"Failed to read credential from {source.name}", exc)
                continue
            if value and value.strip():
                return value.strip(), source.name
        raise CredentialMissingError()

    async def active_source(self) -> str | None:
        try:
            _, source = await self.resolve_with_source()
        except CredentialMissingError:
            return None
        return source


def build_secure_store(config: Settings) -> SecureValueStore:
    cipher = FernetEncryptor(config.storage.encryption_secret.get_secret_value())
    return SecureValueStore(config.storage.secure_dir, cipher)


def build_default_resolver(
    config: Settings,
    *,
    secure_store: SecureValueStore | None = None,
) -> CredentialResolver:
    """Assemble the source order once at process start."""

    key = config.storage.credential_key
    fallback = config.openai.api_key.get_secret_value() if config.openai.api_key else None
    return CredentialResolver(
        [
            SecureStoreSource(secure_store or build_secure_store(config), key),
            LocalValueSource(LocalValueStore(config.storage.local_settings_path), key),
            EnvironmentSource(ENVIRONMENT_VARIABLE, fallback=fallback),
        ]
    )


async def verify_credential(
    client: httpx.AsyncClient,
    credential: str,
    *,
    timeout: float = 10.0,
) -> bool:
    """Check ``credential`` against the provider's model listing within ``timeout`` seconds."""

    async def _probe() -> httpx.Response:
        return await client.get("/models", headers={"Authorization": f"Bearer {credential}"})

    try:
        response = await asyncio.wait_for(_probe(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise TransientAPIError(
            f"Credential verification timed out after {timeout:.0f}s", network=True
        ) from exc
    except httpx.TransportError as exc:
        raise TransientAPIError(f"Credential verification failed: {exc}", network=True) from exc

    if response.status_code in (401, 403):
        raise CredentialInvalidError()
    if response.status_code >= 400:
        raise TransientAPIError(
            f"Credential verification failed with status {response.status_code}",
            status_code=response.status_code,
        )
    return True


__all__ = [
    "CredentialResolver",
    "CredentialSource",
    "ENVIRONMENT_VARIABLE",
    "EnvironmentSource",
    "LocalValueSource",
    "LocalValueStore",
    "SecureStoreError",
    "SecureStoreSource",
    "SecureValueStore",
    "build_default_resolver",
    "build_secure_store",
    "verify_credential",
]
