# -*- coding: utf-8 -*-
"""
Exception hierarchy for delta-blob-storage.

Every error carries a stable machine-readable ``kind`` (the taxonomy name)
and a numeric ``code`` that the CLI uses as its exit status.
"""

from __future__ import annotations


class DeltaStorageError(Exception):
    """
    Base exception for all delta-blob-storage errors.

    Attributes:
        message: Human-readable error description
        kind: Stable machine-readable error name
        code: Numeric error code

    Example:
        >>> try:
        ...     store.read_blob("missing")
        ... except DeltaStorageError as e:
        ...     print(e.kind, e.code)
        NotFound 11
    """
    kind: str = "Error"
    code: int = 1

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotInitializedError(DeltaStorageError):
    """Raised when no blob backend has been attached to the store."""
    kind = "NotInitialized"
    code = 10


class BlobNotFoundError(DeltaStorageError):
    """Raised when a referenced blob is absent from the backend."""
    kind = "NotFound"
    code = 11

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Blob not found: {path}")


class BlobAlreadyExistsError(DeltaStorageError):
    """
    Raised on a create-only write to an identity that already has content.

    This is raised regardless of whether the new content equals the old.
    """
    kind = "AlreadyExists"
    code = 12

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Blob already exists: {path}")


class EmptyInputError(DeltaStorageError):
    """Raised when a required buffer is None or zero-length."""
    kind = "EmptyInput"
    code = 13


class InvalidArgumentError(DeltaStorageError):
    """
    Raised when a parameter is malformed.

    Examples are a non-positive block size, a non-bytes payload or an empty
    blob identifier.
    """
    kind = "InvalidArgument"
    code = 2


class InvalidSignatureError(DeltaStorageError):
    """Raised when serialized signature bytes cannot be decoded."""
    kind = "InvalidSignature"
    code = 14


class InvalidDeltaError(DeltaStorageError):
    """
    Raised when a delta script is structurally inconsistent.

    This covers undecodable delta bytes and CopyBlock references outside
    the basis the delta was built against.
    """
    kind = "InvalidDelta"
    code = 15


class BasisMismatchError(DeltaStorageError):
    """Raised when live basis content does not match its signature."""
    kind = "BasisMismatch"
    code = 16


class DeltaApplicationError(DeltaStorageError):
    """
    Raised when reconstruction fails.

    The usual cause is an output length that differs from the delta's
    expected length, or a target digest mismatch.
    """
    kind = "DeltaApplicationFailed"
    code = 17


class StorageIOError(DeltaStorageError):
    """Raised for backend I/O failures other than missing/existing blobs."""
    kind = "StorageIOFailed"
    code = 18


class OperationCancelledError(DeltaStorageError):
    """Raised when a CancellationToken is observed as cancelled."""
    kind = "Cancelled"
    code = 130
