"""Permission guard: read/write/delete capability sets per file.

The uploader of version 1 owns the file and holds all three capabilities.
Sharing adds other users to individual sets. Everything above this module
asks ``check``/``require`` and never inspects the sets directly, so a
richer ACL or role policy can replace ``OwnerPermissionGuard`` wholesale.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from modules.document_vault.errors import PermissionDeniedError
from modules.document_vault.schemas import CAPABILITIES, FilePermissions

logger = structlog.get_logger()


class PermissionGuard(ABC):
    @abstractmethod
    async def get_permissions(self, file_id: str) -> FilePermissions: ...

    @abstractmethod
    async def owner_of(self, file_id: str) -> str | None: ...

    @abstractmethod
    async def _add(self, file_id: str, capability: str, user_id: str, granted_by: str | None) -> None: ...

    @abstractmethod
    async def _discard(self, file_id: str, capability: str, user_id: str) -> None: ...

    @abstractmethod
    async def remove(self, file_id: str) -> None:
        """Forget every grant on a deleted file."""

    async def grant_owner(self, file_id: str, user_id: str) -> None:
        for capability in CAPABILITIES:
            await self._add(file_id, capability, user_id, None)

    async def check(self, file_id: str, user_id: str | None, capability: str) -> bool:
        permissions = await self.get_permissions(file_id)
        return permissions.allows(user_id, capability)

    async def require(self, file_id: str, user_id: str | None, capability: str) -> None:
        if not await self.check(file_id, user_id, capability):
            logger.warning(
                "permission_denied", file_id=file_id, user_id=user_id, capability=capability
            )
            raise PermissionDeniedError(file_id, user_id, capability)

    async def grant(
        self, file_id: str, capability: str, user_id: str, granted_by: str
    ) -> FilePermissions:
        """Share a capability; the granter needs write access."""
        _validate_capability(capability)
        await self.require(file_id, granted_by, "write")
        await self._add(file_id, capability, user_id, granted_by)
        logger.info(
            "permission_granted",
            file_id=file_id,
            capability=capability,
            user_id=user_id,
            granted_by=granted_by,
        )
        return await self.get_permissions(file_id)

    async def revoke(
        self, file_id: str, capability: str, user_id: str, revoked_by: str
    ) -> FilePermissions:
        _validate_capability(capability)
        await self.require(file_id, revoked_by, "write")
        owner = await self.owner_of(file_id)
        if user_id == owner and revoked_by != owner:
            raise PermissionDeniedError(file_id, revoked_by, f"revoke-{capability}-from-owner")
        await self._discard(file_id, capability, user_id)
        logger.info(
            "permission_revoked",
            file_id=file_id,
            capability=capability,
            user_id=user_id,
            revoked_by=revoked_by,
        )
        return await self.get_permissions(file_id)


def _validate_capability(capability: str) -> None:
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability {capability!r}; expected one of {CAPABILITIES}")


class OwnerPermissionGuard(PermissionGuard):
    """In-memory grants; owner-only unless a file is explicitly shared."""

    def __init__(self) -> None:
        self._grants: dict[str, FilePermissions] = {}
        self._owners: dict[str, str] = {}

    async def get_permissions(self, file_id):
        permissions = self._grants.get(file_id)
        if permissions is None:
            return FilePermissions()
        return permissions.model_copy(deep=True)

    async def owner_of(self, file_id):
        return self._owners.get(file_id)

    async def _add(self, file_id, capability, user_id, granted_by):
        if granted_by is None:
            self._owners.setdefault(file_id, user_id)
        permissions = self._grants.setdefault(file_id, FilePermissions())
        getattr(permissions, capability).add(user_id)

    async def _discard(self, file_id, capability, user_id):
        permissions = self._grants.get(file_id)
        if permissions is not None:
            getattr(permissions, capability).discard(user_id)

    async def remove(self, file_id):
        self._grants.pop(file_id, None)
        self._owners.pop(file_id, None)
