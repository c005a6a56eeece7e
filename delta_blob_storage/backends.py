# -*- coding: utf-8 -*-
"""
Blob backends: the narrow storage capability injected into BlobVersionStore.

A backend addresses blobs by a normalized ``container/key`` path and raises
native Python exceptions (FileNotFoundError, FileExistsError, OSError,
ValueError for unusable paths). BlobVersionStore translates them into the
DeltaStorageError taxonomy.
"""

from __future__ import annotations

import io
import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import BinaryIO, Dict, Optional, Union

from .compression import CompressionRegistry, CompressionType
from .config import COMPRESSED_MAGIC, Config, logger

BlobPayload = Union[bytes, bytearray, memoryview, BinaryIO]


def _payload_bytes(data: BlobPayload) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    return data.read()


class BlobBackend(ABC):
    """
    Abstract blob storage capability.

    Implementations must make write_new() atomic: when several writers race
    to create the same path exactly one succeeds and the others observe
    FileExistsError.
    """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if a blob is stored at ``path``."""
        raise NotImplementedError

    @abstractmethod
    def open_read(self, path: str) -> BinaryIO:
        """
        Open a blob for reading.

        The returned stream is a context manager; the caller closes it.

        Raises:
            FileNotFoundError: If no blob is stored at ``path``
        """
        raise NotImplementedError

    @abstractmethod
    def write_new(self, path: str, data: BlobPayload) -> None:
        """
        Create a blob; never overwrite.

        Raises:
            FileExistsError: If a blob is already stored at ``path``
        """
        raise NotImplementedError

    def delete(self, path: str) -> None:
        """
        Remove a blob. Optional: read-only or append-only backends may
        leave it unimplemented.

        Raises:
            FileNotFoundError: If no blob is stored at ``path``
        """
        raise NotImplementedError(f"{type(self).__name__} does not support delete")

    def read_bytes(self, path: str) -> bytes:
        with self.open_read(path) as stream:
            return stream.read()


# ============================================================================
# IN-MEMORY BACKEND
# ============================================================================

class InMemoryBlobBackend(BlobBackend):
    """
    Process-local backend for tests and embedding.

    Example:
        >>> backend = InMemoryBlobBackend()
        >>> backend.write_new("default/a.bin", b"data")
        >>> backend.read_bytes("default/a.bin")
        b'data'
    """

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._blobs

    def open_read(self, path: str) -> BinaryIO:
        with self._lock:
            try:
                data = self._blobs[path]
            except KeyError:
                raise FileNotFoundError(path)
        return io.BytesIO(data)

    def write_new(self, path: str, data: BlobPayload) -> None:
        payload = _payload_bytes(data)
        with self._lock:
            if path in self._blobs:
                raise FileExistsError(path)
            self._blobs[path] = payload

    def delete(self, path: str) -> None:
        with self._lock:
            try:
                del self._blobs[path]
            except KeyError:
                raise FileNotFoundError(path)


# ============================================================================
# FILESYSTEM BACKEND
# ============================================================================

class FileBlobBackend(BlobBackend):
    """
    Stores ``container/key`` as ``<root>/container/key`` on the local disk.

    Key separators ("/") are translated to the OS separator here. Paths
    that would escape ``root`` are rejected with ValueError. Create-only
    writes go to a temporary file in the destination directory which is
    then hard-linked into place; os.link fails atomically if the
    destination exists. A key cannot nest under an existing blob, nor
    name a directory holding other blobs; both are rejected with
    ValueError.

    Example:
        >>> backend = FileBlobBackend("/var/lib/blobs")
        >>> backend.write_new("images/v1.iso", open("v1.iso", "rb"))
    """

    TEMP_PREFIX = ".dbs-tmp-"

    def __init__(self, root: Union[str, 'os.PathLike[str]']) -> None:
        self.root = os.path.realpath(os.fspath(root))
        os.makedirs(self.root, exist_ok=True)

    def resolve(self, path: str) -> str:
        """Map a ``container/key`` path to an absolute filesystem path."""
        parts = path.split("/")
        for part in parts:
            if part in ("", ".", "..") or os.sep in part or (os.altsep and os.altsep in part):
                raise ValueError(f"Unsupported blob path: {path!r}")
        full = os.path.realpath(os.path.join(self.root, *parts))
        if os.path.commonpath([self.root, full]) != self.root or full == self.root:
            raise ValueError(f"Blob path escapes storage root: {path!r}")
        return full

    def exists(self, path: str) -> bool:
        return os.path.isfile(self.resolve(path))

    def open_read(self, path: str) -> BinaryIO:
        try:
            return open(self.resolve(path), 'rb')
        except (IsADirectoryError, NotADirectoryError):
            raise FileNotFoundError(path)

    def write_new(self, path: str, data: BlobPayload) -> None:
        full = self.resolve(path)
        if os.path.isdir(full):
            raise ValueError(f"Blob path is a container of other blobs: {path!r}")
        directory = os.path.dirname(full)
        try:
            os.makedirs(directory, exist_ok=True)
        except (FileExistsError, NotADirectoryError):
            raise ValueError(f"Blob path nests under an existing blob: {path!r}")

        fd, tmp_path = tempfile.mkstemp(prefix=self.TEMP_PREFIX, dir=directory)
        try:
            with os.fdopen(fd, 'wb') as tmp:
                if isinstance(data, (bytes, bytearray, memoryview)):
                    tmp.write(data)
                else:
                    shutil.copyfileobj(data, tmp, Config.CHUNK_SIZE_STREAMING)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.link(tmp_path, full)
        finally:
            os.unlink(tmp_path)

    def delete(self, path: str) -> None:
        os.remove(self.resolve(path))


# ============================================================================
# COMPRESSING DECORATOR
# ============================================================================

class CompressedBlobBackend(BlobBackend):
    """
    Compresses payloads at rest on top of another backend.

    Stored layout: ``b"DBZ" | compression id u8 | compressed payload``.
    Blobs without the header (written before compression was enabled) are
    returned unchanged.

    Example:
        >>> backend = CompressedBlobBackend(FileBlobBackend("/data"), "zstd")
    """

    def __init__(
        self,
        inner: BlobBackend,
        compression: Union[str, CompressionType, None] = None,
        level: Optional[int] = None,
    ) -> None:
        self.inner = inner
        self.compression = CompressionType.parse(compression if compression is not None else Config.COMPRESSION)
        self.level = level if level is not None else Config.COMPRESSION_LEVEL

    def exists(self, path: str) -> bool:
        return self.inner.exists(path)

    def open_read(self, path: str) -> BinaryIO:
        raw = self.inner.read_bytes(path)
        header_len = len(COMPRESSED_MAGIC) + 1
        if len(raw) < header_len or raw[:len(COMPRESSED_MAGIC)] != COMPRESSED_MAGIC:
            return io.BytesIO(raw)
        try:
            comp_type = CompressionType.from_wire_id(raw[len(COMPRESSED_MAGIC)])
            data = CompressionRegistry.decompress(raw[header_len:], comp_type)
        except ValueError as e:
            raise OSError(f"Cannot decompress blob {path}: {e}") from e
        return io.BytesIO(data)

    def write_new(self, path: str, data: BlobPayload) -> None:
        payload = _payload_bytes(data)
        packed = CompressionRegistry.compress(payload, self.compression, self.level)
        logger.debug(
            f"Compressed {path} with {self.compression.value}: {len(payload)} -> {len(packed)} bytes"
        )
        self.inner.write_new(path, COMPRESSED_MAGIC + bytes((self.compression.wire_id,)) + packed)

    def delete(self, path: str) -> None:
        self.inner.delete(path)
