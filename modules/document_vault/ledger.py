"""Version ledger: authoritative numbering and ordering of versions per file.

Version assignment is the one critical section of the vault. Writers take
``ledger.lock(file_id)`` and hold it across ``next_version``, the object
store write and ``append``; the write is the commit point, so a failed
write leaves neither a ledger entry nor a gap in the numbering.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from modules.document_vault.errors import VersionConflictError
from modules.document_vault.schemas import FileVersion

logger = structlog.get_logger()


class FileLocks:
    """One ``asyncio.Lock`` per file id; different files never contend."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, file_id: str) -> asyncio.Lock:
        lock = self._locks.get(file_id)
        if lock is None:
            lock = self._locks[file_id] = asyncio.Lock()
        return lock

    def discard(self, file_id: str) -> None:
        lock = self._locks.get(file_id)
        if lock is not None and not lock.locked():
            del self._locks[file_id]

    def __len__(self) -> int:
        return len(self._locks)


class VersionLedger(ABC):
    """Per-file append-only version history."""

    def __init__(self, locks: FileLocks | None = None):
        self.locks = locks or FileLocks()

    @asynccontextmanager
    async def lock(self, file_id: str) -> AsyncIterator[None]:
        async with self.locks.get(file_id):
            yield

    async def next_version(self, file_id: str) -> int:
        """Count of existing versions plus one. Call with the file lock held."""
        return await self.count(file_id) + 1

    async def latest(self, file_id: str) -> FileVersion | None:
        versions = await self.get_versions(file_id)
        return versions[-1] if versions else None

    async def get_version(self, file_id: str, version: int) -> FileVersion | None:
        for v in await self.get_versions(file_id):
            if v.version == version:
                return v
        return None

    async def _check_sequence(self, version: FileVersion) -> None:
        expected = await self.next_version(version.file_id)
        if version.version != expected:
            raise VersionConflictError(version.file_id, version.version, expected)

    @abstractmethod
    async def count(self, file_id: str) -> int: ...

    @abstractmethod
    async def append(self, version: FileVersion) -> None:
        """Record a committed version; must be exactly ``next_version``."""

    @abstractmethod
    async def get_versions(self, file_id: str) -> list[FileVersion]:
        """All versions in version order (empty if the file is unknown)."""

    @abstractmethod
    async def file_ids(self) -> list[str]: ...

    @abstractmethod
    async def remove(self, file_id: str) -> None:
        """Drop the whole history of a file."""


class InMemoryVersionLedger(VersionLedger):
    """Process-local ledger; the default metadata backend."""

    def __init__(self, locks: FileLocks | None = None):
        super().__init__(locks)
        self._versions: dict[str, list[FileVersion]] = {}

    async def count(self, file_id: str) -> int:
        return len(self._versions.get(file_id, ()))

    async def append(self, version: FileVersion) -> None:
        await self._check_sequence(version)
        self._versions.setdefault(version.file_id, []).append(version)
        logger.debug("version_recorded", file_id=version.file_id, version=version.version)

    async def get_versions(self, file_id: str) -> list[FileVersion]:
        return list(self._versions.get(file_id, ()))

    async def get_version(self, file_id: str, version: int) -> FileVersion | None:
        versions = self._versions.get(file_id, ())
        # Versions are contiguous from 1, so the number is the index
        if 1 <= version <= len(versions):
            return versions[version - 1]
        return None

    async def file_ids(self) -> list[str]:
        return list(self._versions)

    async def remove(self, file_id: str) -> None:
        self._versions.pop(file_id, None)
