# -*- coding: utf-8 -*-
"""
delta-blob-storage: Versioned Blob Storage with rsync-style Deltas
==================================================================

Stores successive versions of large binary objects as a basis plus compact
deltas. A signature of the previous version is computed, the new version
is matched against it, and only copy/insert instructions are kept.

Quick Start:
-----------
    >>> from delta_blob_storage import SignatureBuilder, DeltaBuilder, DeltaApplier
    >>>
    >>> signature = SignatureBuilder(block_size=4096).build(old_version)
    >>> delta = DeltaBuilder(signature).build(new_version)
    >>> assert DeltaApplier().apply(old_version, delta) == new_version

With a blob store:

    >>> from delta_blob_storage import BlobVersionStore, FileBlobBackend
    >>>
    >>> store = BlobVersionStore(FileBlobBackend("/data/blobs"))
    >>> store.write_blob_create_only("reports/v1.bin", old_version)
    >>> store.put_signature("reports/v1.bin", "reports/v1.sig")
    >>> store.put_delta("reports/v1.sig", new_version, "reports/v2.delta")
    >>> store.reconstruct("reports/v1.bin", "reports/v2.delta")

Algorithm:
---------
    1. Rolling Checksum: O(1) window sliding (Adler-32 variant)
    2. Strong Checksum: confirmation of weak hits (SHA-256, BLAKE2b, xxHash...)
    3. Matching: whole-block skip on a confirmed match, one-byte slide otherwise

CLI Usage:
---------
    $ delta-blob signature v1.iso -o v1.sig
    $ delta-blob delta v1.sig v2.iso -o v2.delta
    $ delta-blob patch v1.iso v2.delta -o v2.iso
    $ delta-blob --help
"""

from __future__ import annotations

__version__ = "1.0.0"
__author__ = "delta-blob-storage contributors"
__license__ = "GPL-3.0-or-later"

from .backends import BlobBackend, CompressedBlobBackend, FileBlobBackend, InMemoryBlobBackend
from .checksums import ChecksumRegistry, ChecksumType, RollingChecksum, StrongChecksum
from .compression import CompressionRegistry, CompressionType
from .config import Config, configure_logging
from .delta import CopyBlock, DeltaBuilder, DeltaScript, DeltaStats, InsertData, build_delta
from .errors import (
    BasisMismatchError,
    BlobAlreadyExistsError,
    BlobNotFoundError,
    DeltaApplicationError,
    DeltaStorageError,
    EmptyInputError,
    InvalidArgumentError,
    InvalidDeltaError,
    InvalidSignatureError,
    NotInitializedError,
    OperationCancelledError,
    StorageIOError,
)
from .patch import DeltaApplier, apply_delta, validate_delta
from .signature import Block, BlockIndex, Signature, SignatureBuilder, build_signature, validate_block_size
from .sources import BytesDataSource, DataSource, FileDataSource, StreamDataSource
from .store import BlobIdentity, BlobVersionStore, normalize_identity
from .utils import CancellationToken
from .wire import decode_delta, decode_signature, encode_delta, encode_signature

# Public API exports
__all__ = [
    # Engine
    'RollingChecksum',
    'StrongChecksum',
    'ChecksumType',
    'ChecksumRegistry',
    'SignatureBuilder',
    'DeltaBuilder',
    'DeltaApplier',
    'build_signature',
    'build_delta',
    'apply_delta',

    # Data structures
    'Block',
    'BlockIndex',
    'Signature',
    'CopyBlock',
    'InsertData',
    'DeltaScript',
    'DeltaStats',

    # Wire format
    'encode_signature',
    'decode_signature',
    'encode_delta',
    'decode_delta',

    # Storage
    'BlobIdentity',
    'BlobVersionStore',
    'normalize_identity',
    'BlobBackend',
    'InMemoryBlobBackend',
    'FileBlobBackend',
    'CompressedBlobBackend',
    'CompressionType',
    'CompressionRegistry',

    # Streaming support
    'DataSource',
    'BytesDataSource',
    'FileDataSource',
    'StreamDataSource',

    # Exceptions
    'DeltaStorageError',
    'NotInitializedError',
    'BlobNotFoundError',
    'BlobAlreadyExistsError',
    'EmptyInputError',
    'InvalidArgumentError',
    'InvalidSignatureError',
    'InvalidDeltaError',
    'BasisMismatchError',
    'DeltaApplicationError',
    'StorageIOError',
    'OperationCancelledError',

    # Configuration and helpers
    'Config',
    'configure_logging',
    'CancellationToken',
    'validate_block_size',
    'validate_delta',
]
