# -*- coding: utf-8 -*-
"""
Streaming data sources for basis and target blobs.

Every engine entry point accepts either a bytes-like object or a DataSource,
so blobs larger than memory can be processed from disk or from an open
backend stream.
"""

from __future__ import annotations

import io
import os
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Optional, Union

from .errors import InvalidArgumentError, StorageIOError

BytesLike = Union[bytes, bytearray, memoryview]


class DataSource(ABC):
    """
    Abstract base class for data sources.

    DataSource provides a unified interface for reading data from various
    sources (memory, files, open streams) in a streaming fashion.

    Subclasses must implement read_chunk(), size(), and seek() methods.

    Example:
        >>> with FileDataSource("large_file.bin") as source:
        ...     while chunk := source.read_chunk(4096):
        ...         process(chunk)
    """

    @abstractmethod
    def read_chunk(self, size: int) -> bytes:
        """
        Read a chunk of data from the source.

        Args:
            size: Maximum bytes to read

        Returns:
            Bytes read (may be less than size at EOF, empty at EOF)
        """
        raise NotImplementedError

    @abstractmethod
    def size(self) -> int:
        """
        Get total size of the data source.

        Returns:
            Total size in bytes, or -1 if unknown
        """
        raise NotImplementedError

    @abstractmethod
    def seek(self, offset: int) -> None:
        """Seek to a byte offset from the start."""
        raise NotImplementedError

    def read_at(self, offset: int, length: int) -> bytes:
        """
        Read up to ``length`` bytes starting at ``offset``.

        Short results mean the source ended before ``offset + length``.
        """
        self.seek(offset)
        parts = []
        remaining = length
        while remaining > 0:
            chunk = self.read_chunk(remaining)
            if not chunk:
                break
            parts.append(chunk)
            remaining -= len(chunk)
        return b"".join(parts)

    def close(self) -> None:
        """Close the data source and release resources."""
        pass

    def __enter__(self) -> 'DataSource':
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class BytesDataSource(DataSource):
    """
    DataSource that reads from in-memory bytes.

    Example:
        >>> source = BytesDataSource(b"Hello, World!")
        >>> source.read_chunk(5)
        b'Hello'
        >>> source.read_chunk(5)
        b', Wor'
    """

    def __init__(self, data: BytesLike) -> None:
        self._data = data if isinstance(data, bytes) else bytes(data)
        self._position = 0

    def read_chunk(self, size: int) -> bytes:
        """Read up to size bytes from current position."""
        chunk = self._data[self._position:self._position + size]
        self._position += len(chunk)
        return chunk

    def read_at(self, offset: int, length: int) -> bytes:
        return self._data[offset:offset + length]

    def size(self) -> int:
        return len(self._data)

    def seek(self, offset: int) -> None:
        self._position = max(0, min(offset, len(self._data)))

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def position(self) -> int:
        """Current read position."""
        return self._position


class FileDataSource(DataSource):
    """
    DataSource that reads from a file on disk.

    Example:
        >>> with FileDataSource("/path/to/large.iso") as source:
        ...     print(f"File size: {source.size()}")
        ...     first_block = source.read_chunk(4096)
    """

    def __init__(self, filepath: Union[str, 'os.PathLike[str]']) -> None:
        """
        Args:
            filepath: Path to the file

        Raises:
            StorageIOError: If file cannot be accessed
        """
        self.filepath = os.fspath(filepath)
        self._file: Optional[BinaryIO] = None
        try:
            self._size = os.path.getsize(self.filepath)
        except OSError as e:
            raise StorageIOError(f"Cannot access file {self.filepath}: {e}")

    def __enter__(self) -> 'FileDataSource':
        """Open the file for reading."""
        try:
            self._file = open(self.filepath, 'rb')
        except OSError as e:
            raise StorageIOError(f"Cannot open file {self.filepath}: {e}")
        return self

    def read_chunk(self, size: int) -> bytes:
        if not self._file:
            raise RuntimeError("File not opened. Use 'with' statement.")
        return self._file.read(size)

    def size(self) -> int:
        return self._size

    def seek(self, offset: int) -> None:
        if not self._file:
            raise RuntimeError("File not opened. Use 'with' statement.")
        self._file.seek(offset)

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    @property
    def is_open(self) -> bool:
        return self._file is not None


class StreamDataSource(DataSource):
    """
    DataSource over an already-open seekable binary stream.

    The stream is not closed by this wrapper; its owner closes it.
    """

    def __init__(self, stream: BinaryIO) -> None:
        if not stream.seekable():
            raise InvalidArgumentError("StreamDataSource requires a seekable stream")
        self._stream = stream
        current = stream.tell()
        self._size = stream.seek(0, io.SEEK_END)
        stream.seek(current)

    def read_chunk(self, size: int) -> bytes:
        return self._stream.read(size)

    def size(self) -> int:
        return self._size

    def seek(self, offset: int) -> None:
        self._stream.seek(offset)


def as_data_source(data: Union[BytesLike, DataSource], name: str = "data") -> DataSource:
    """
    Wrap bytes-like input in a BytesDataSource; pass DataSources through.

    Raises:
        InvalidArgumentError: If data is neither bytes-like nor a DataSource
    """
    if isinstance(data, DataSource):
        return data
    if isinstance(data, (bytes, bytearray, memoryview)):
        return BytesDataSource(data)
    raise InvalidArgumentError(
        f"{name} must be bytes, bytearray, memoryview or DataSource, got {type(data).__name__}"
    )
