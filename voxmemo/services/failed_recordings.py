"""Durable, encrypted queue of recordings the pipeline could not process.

The whole collection lives in a single encrypted blob. The collection is
bounded by the number of user-visible failures, so every write re-encrypts the
full list. A blob written by older builds as plaintext JSON is accepted once
and immediately re-persisted encrypted. Entries this build cannot parse are
hidden from readers but written back unchanged, so their audio is never lost.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from voxmemo.domain.models import FailedRecording
from voxmemo.services.crypto import DecryptionError, Encryptor
from voxmemo.utils.sanitizer import log_error, log_warning

logger = logging.getLogger(__name__)

# A parsed recording, or a stored entry kept verbatim because it did not parse.
StoredEntry = Union[FailedRecording, Any]


class FailedRecordingStoreError(RuntimeError):
    """Raised when the failed-recording blob cannot be written."""


class FailedRecordingStore:
    """Encrypted upsert/list/delete store for :class:`FailedRecording` entries."""

    def __init__(self, path: Path, cipher: Encryptor) -> None:
        self.path = Path(path)
        self._cipher = cipher
        self._lock = asyncio.Lock()

    async def list(self) -> list[FailedRecording]:
        async with self._lock:
            entries = await self._load()
        return [entry for entry in entries if isinstance(entry, FailedRecording)]

    async def count(self) -> int:
        return len(await self.list())

    async def get_by_id(self, recording_id: str) -> FailedRecording | None:
        for recording in await self.list():
            if recording.id == recording_id:
                return recording
        return None

    async def save(self, recording: FailedRecording) -> None:
        """Insert ``recording`` at the front, or replace the entry with the same id in place."""

        async with self._lock:
            entries = await self._load()
            for index, existing in enumerate(entries):
                if isinstance(existing, FailedRecording) and existing.id == recording.id:
                    entries[index] = recording
                    break
            else:
                entries.insert(0, recording)
            await self._persist(entries)

    async def delete(self, recording_id: str) -> bool:
        async with self._lock:
            entries = await self._load()
            remaining = [
                entry
                for entry in entries
                if not (isinstance(entry, FailedRecording) and entry.id == recording_id)
            ]
            if len(remaining) == len(entries):
                return False
            await self._persist(remaining)
            return True

    async def clear(self) -> None:
        async with self._lock:
            await run_in_threadpool(self._remove_blob)

    async def _load(self) -> list[StoredEntry]:
        stored = await run_in_threadpool(self._read_blob)
        if not stored:
            return []

        try:
            decrypted = self._cipher.decrypt(stored)
        except DecryptionError:
            return await self._migrate_plaintext(stored)

        try:
            parsed = json.loads(decrypted.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            log_error(logger, "Failed to parse decrypted failed recordings", exc)
            return []
        return self._coerce(parsed)

    async def _migrate_plaintext(self, stored: str) -> list[StoredEntry]:
        try:
            parsed = json.loads(stored)
        except json.JSONDecodeError as exc:
            log_error(logger, "Failed recordings blob is neither encrypted nor JSON", exc)
            return []
        if not isinstance(parsed, list):
            log_warning(logger, "Legacy failed recordings data is not a list")
            return []

        entries = self._coerce(parsed)
        await self._persist(entries)
        logger.info("Migrated %d plaintext failed recordings to encrypted storage", len(entries))
        return entries

    def _coerce(self, parsed: Any) -> list[StoredEntry]:
        if not isinstance(parsed, list):
            log_warning(logger, "Failed recordings data is not an array")
            return []
        entries: list[StoredEntry] = []
        for entry in parsed:
            try:
                entries.append(FailedRecording.model_validate(entry))
            except ValidationError as exc:
                log_warning(logger, "Keeping unreadable failed recording as stored", str(exc))
                entries.append(entry)
        return entries

    async def _persist(self, entries: list[StoredEntry]) -> None:
        records = [entry.to_record() if isinstance(entry, FailedRecording) else entry for entry in entries]
        payload = json.dumps(records).encode("utf-8")
        encrypted = self._cipher.encrypt(payload)
        try:
            await run_in_threadpool(self._write_blob, encrypted)
        except OSError as exc:
            log_error(logger, "Failed to save failed recordings", exc)
            raise FailedRecordingStoreError("Failed to save failed recordings") from exc

    def _read_blob(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8").strip() or None

    def _write_blob(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".failed-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def _remove_blob(self) -> None:
        self.path.unlink(missing_ok=True)


__all__ = ["FailedRecordingStore", "FailedRecordingStoreError"]
