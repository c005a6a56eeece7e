# -*- coding: utf-8 -*-
"""
At-rest compression algorithms for stored blobs.

Only CompressedBlobBackend uses these; signatures and deltas are always
encoded uncompressed.
"""

from __future__ import annotations

import threading
import zlib
from enum import Enum
from typing import Any, Dict, Optional, Union, cast

import lz4.frame as _lz4_frame
import zstandard as _zstandard

from .errors import InvalidArgumentError


class CompressionType(Enum):
    """
    Supported compression algorithms.

    The integer ids are written into the compressed blob header:

        NONE = 0, ZLIB = 1, LZ4 = 3, ZSTD = 4
    """
    NONE = "none"
    ZLIB = "zlib"
    LZ4 = "lz4"
    ZSTD = "zstd"

    @classmethod
    def parse(cls, value: Union[str, 'CompressionType']) -> 'CompressionType':
        if isinstance(value, CompressionType):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            names = ", ".join(t.value for t in cls)
            raise InvalidArgumentError(f"Unknown compression {value!r}, expected one of: {names}")

    @property
    def wire_id(self) -> int:
        return _WIRE_IDS[self]

    @classmethod
    def from_wire_id(cls, wire_id: int) -> 'CompressionType':
        for comp_type, value in _WIRE_IDS.items():
            if value == wire_id:
                return comp_type
        raise ValueError(f"Unknown compression id: {wire_id}")


_WIRE_IDS: Dict[CompressionType, int] = {
    CompressionType.NONE: 0,
    CompressionType.ZLIB: 1,
    CompressionType.LZ4: 3,
    CompressionType.ZSTD: 4,
}


class CompressionRegistry:
    """Registry of available compression algorithms.

    Provides a unified interface over zlib, lz4 (frame format) and
    zstandard.

    Example:
        >>> packed = CompressionRegistry.compress(data, CompressionType.ZSTD)
        >>> CompressionRegistry.decompress(packed, CompressionType.ZSTD) == data
        True
    """
    # zstd contexts are not thread-safe: one set per thread
    _zstd_local = threading.local()

    @classmethod
    def compress(cls, data: bytes, comp_type: CompressionType, level: Optional[int] = None) -> bytes:
        """Compress data using specified algorithm.

        Args:
            data: Data to compress
            comp_type: Compression algorithm
            level: Compression level (None = algorithm default)

        Raises:
            ValueError: If compression type is not supported
        """
        if level is None:
            level = cls.get_compression_level(comp_type)
        if comp_type == CompressionType.NONE:
            return data
        elif comp_type == CompressionType.ZLIB:
            return zlib.compress(data, level)
        elif comp_type == CompressionType.LZ4:
            return cast(bytes, _lz4_frame.compress(data, compression_level=level))
        elif comp_type == CompressionType.ZSTD:
            return cast(bytes, cls._get_zstd_compressor(level).compress(data))
        else:
            raise ValueError(f"Unsupported compression type: {comp_type}")

    @classmethod
    def decompress(cls, data: bytes, comp_type: CompressionType) -> bytes:
        """Decompress data using specified algorithm.

        Raises:
            ValueError: If compression type is not supported or data is corrupt
        """
        try:
            if comp_type == CompressionType.NONE:
                return data
            elif comp_type == CompressionType.ZLIB:
                return zlib.decompress(data)
            elif comp_type == CompressionType.LZ4:
                return cast(bytes, _lz4_frame.decompress(data))
            elif comp_type == CompressionType.ZSTD:
                return cast(bytes, cls._get_zstd_decompressor().decompress(data))
        except (zlib.error, RuntimeError, _zstandard.ZstdError) as e:
            raise ValueError(f"Corrupt {comp_type.value} data: {e}") from e
        raise ValueError(f"Unsupported compression type: {comp_type}")

    @classmethod
    def _get_zstd_compressor(cls, level: int) -> Any:
        """Get or create this thread's ZstdCompressor for the given level."""
        compressors = getattr(cls._zstd_local, 'compressors', None)
        if compressors is None:
            compressors = cls._zstd_local.compressors = {}
        if level not in compressors:
            compressors[level] = _zstandard.ZstdCompressor(level=level)
        return compressors[level]

    @classmethod
    def _get_zstd_decompressor(cls) -> Any:
        """Get or create this thread's ZstdDecompressor."""
        decompressor = getattr(cls._zstd_local, 'decompressor', None)
        if decompressor is None:
            decompressor = cls._zstd_local.decompressor = _zstandard.ZstdDecompressor()
        return decompressor

    @classmethod
    def get_compression_level(cls, comp_type: CompressionType) -> int:
        """Get default compression level for algorithm."""
        levels = {
            CompressionType.NONE: 0,
            CompressionType.ZLIB: 6,
            CompressionType.LZ4: 0,  # lz4 frame: 0 is the fast default
            CompressionType.ZSTD: 3,  # zstd uses 1-22, 3 is balanced
        }
        return levels.get(comp_type, 6)
