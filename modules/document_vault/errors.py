"""Error taxonomy for the document vault.

``status_code`` and ``retryable`` tell upstream handlers how to surface a
failure: storage errors are retryable 503s, permission errors are 403s and
missing files or versions are 404s.
"""

from __future__ import annotations


class DocumentVaultError(Exception):
    """Base class for all vault errors."""

    status_code: int = 500
    retryable: bool = False


class StorageError(DocumentVaultError):
    """An object store call failed or timed out."""

    status_code = 503
    retryable = True

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class StorageWriteError(StorageError):
    pass


class StorageReadError(StorageError):
    pass


class ChecksumMismatchError(StorageReadError):
    """Downloaded bytes do not hash to the checksum recorded at upload."""

    retryable = False

    def __init__(self, key: str, expected: str, actual: str):
        super().__init__(f"Checksum mismatch for {key}: expected {expected}, got {actual}", key=key)
        self.expected = expected
        self.actual = actual


class PartialDeleteError(StorageWriteError):
    """Some version objects could not be removed; metadata was left intact."""

    def __init__(self, file_id: str, remaining_versions: list[int]):
        super().__init__(
            f"Delete of {file_id} incomplete; versions still stored: {remaining_versions}"
        )
        self.file_id = file_id
        self.remaining_versions = remaining_versions


class DocumentNotFoundError(DocumentVaultError):
    """The logical file has no version history."""

    status_code = 404

    def __init__(self, file_id: str):
        super().__init__(f"File not found: {file_id}")
        self.file_id = file_id


class VersionNotFoundError(DocumentVaultError):
    status_code = 404

    def __init__(self, file_id: str, version: int):
        super().__init__(f"Version {version} not found for file {file_id}")
        self.file_id = file_id
        self.version = version


class PermissionDeniedError(DocumentVaultError):
    status_code = 403

    def __init__(self, file_id: str, user_id: str | None, capability: str):
        super().__init__(f"User {user_id} lacks {capability} permission on file {file_id}")
        self.file_id = file_id
        self.user_id = user_id
        self.capability = capability


class VersionConflictError(DocumentVaultError):
    """A version number was assigned out of sequence."""

    status_code = 409

    def __init__(self, file_id: str, version: int, expected: int | None = None):
        detail = f"; expected {expected}" if expected is not None else ""
        super().__init__(f"Version {version} conflicts with history of {file_id}{detail}")
        self.file_id = file_id
        self.version = version


class InvalidAnnotationError(DocumentVaultError):
    status_code = 422
