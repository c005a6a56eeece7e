# -*- coding: utf-8 -*-
"""
BlobVersionStore: the delta engine wired to a blob backend.

The store normalizes identifiers, enforces create-only writes and
translates backend exceptions into the DeltaStorageError taxonomy. The
delta engine itself never touches the backend.
"""

from __future__ import annotations

import contextlib
import io
from dataclasses import dataclass
from typing import Any, BinaryIO, Iterator, Optional, Union

from .backends import BlobBackend, BlobPayload
from .checksums import ChecksumType
from .config import Config, logger
from .delta import DeltaBuilder, DeltaScript
from .errors import (
    BlobAlreadyExistsError,
    BlobNotFoundError,
    EmptyInputError,
    InvalidArgumentError,
    NotInitializedError,
    StorageIOError,
)
from .patch import DeltaApplier
from .signature import Signature, SignatureBuilder, validate_block_size
from .sources import BytesLike, StreamDataSource
from .utils import CancellationToken, ProgressCallback, format_size
from .wire import decode_delta, decode_signature, encode_delta, encode_signature


# ============================================================================
# IDENTITIES
# ============================================================================

@dataclass(frozen=True)
class BlobIdentity:
    """
    Normalized blob address.

    Example:
        >>> normalize_identity("report.bin")
        BlobIdentity(container='default', key='report.bin')
        >>> normalize_identity("archive/2024/report.bin").path
        'archive/2024/report.bin'
    """
    container: str
    key: str

    @property
    def path(self) -> str:
        return f"{self.container}/{self.key}"

    def __str__(self) -> str:
        return self.path


Identifier = Union[str, BlobIdentity]


def normalize_identity(identifier: Identifier, default_container: Optional[str] = None) -> BlobIdentity:
    """
    Turn a caller-supplied identifier into a BlobIdentity.

    An identifier without "/" is placed in ``default_container``; otherwise
    the text before the first "/" is the container and the rest the key.
    No I/O is performed.

    Raises:
        InvalidArgumentError: If the identifier, container or key is empty
    """
    if isinstance(identifier, BlobIdentity):
        return identifier
    if not isinstance(identifier, str) or not identifier.strip():
        raise InvalidArgumentError("Blob identifier must be a non-empty string")
    if default_container is None:
        default_container = Config.DEFAULT_CONTAINER

    if "/" not in identifier:
        container, key = default_container, identifier
    else:
        container, key = identifier.split("/", 1)

    if not container:
        raise InvalidArgumentError(f"Blob identifier has an empty container: {identifier!r}")
    if not key:
        raise InvalidArgumentError(f"Blob identifier has an empty key: {identifier!r}")
    return BlobIdentity(container, key)


# ============================================================================
# STORE
# ============================================================================

class BlobVersionStore:
    """
    Stores successive blob versions as signatures and deltas.

    Example:
        >>> store = BlobVersionStore(FileBlobBackend("/data/blobs"), block_size=4096)
        >>> store.write_blob_create_only("v1.bin", basis)
        >>> store.put_signature("v1.bin", "v1.sig")
        >>> store.put_delta("v1.sig", new_version, "v2.delta")
        >>> store.reconstruct("v1.bin", "v2.delta", output_id="v2.bin")
    """

    def __init__(
        self,
        backend: Optional[BlobBackend] = None,
        *,
        default_container: Optional[str] = None,
        block_size: Optional[int] = None,
        strong_checksum: Union[str, ChecksumType, None] = None,
    ) -> None:
        self.default_container = default_container if default_container is not None else Config.DEFAULT_CONTAINER
        if not self.default_container or "/" in self.default_container:
            raise InvalidArgumentError(f"Invalid default container: {self.default_container!r}")
        self.block_size = block_size if block_size is not None else Config.DEFAULT_BLOCK_SIZE
        validate_block_size(self.block_size)
        self.strong_checksum = ChecksumType.parse(
            strong_checksum if strong_checksum is not None else Config.STRONG_CHECKSUM
        )
        self._backend = backend

    # ------------------------------------------------------------------------
    # Backend plumbing
    # ------------------------------------------------------------------------

    def initialize(self, backend: BlobBackend) -> None:
        """Attach (or replace) the blob backend."""
        if not isinstance(backend, BlobBackend):
            raise InvalidArgumentError(f"backend must be a BlobBackend, got {type(backend).__name__}")
        self._backend = backend

    @property
    def is_initialized(self) -> bool:
        return self._backend is not None

    def _require_backend(self) -> BlobBackend:
        if self._backend is None:
            logger.error("Blob storage has not been initialized.")
            raise NotInitializedError("Blob storage has not been initialized")
        return self._backend

    @contextlib.contextmanager
    def _backend_errors(self, path: str) -> Iterator[None]:
        """Translate native backend exceptions for ``path``."""
        try:
            yield
        except FileNotFoundError:
            logger.error(f"Blob not found: {path}")
            raise BlobNotFoundError(path)
        except FileExistsError:
            logger.error(f"Attempted to write to an existing blob: {path}")
            raise BlobAlreadyExistsError(path)
        except ValueError as e:
            logger.error(f"Rejected blob path {path}: {e}")
            raise InvalidArgumentError(str(e))
        except OSError as e:
            logger.error(f"Storage I/O failed for {path}: {e}")
            raise StorageIOError(f"Storage I/O failed for {path}: {e}")

    @contextlib.contextmanager
    def _open(self, identity: BlobIdentity) -> Iterator[BinaryIO]:
        backend = self._require_backend()
        with self._backend_errors(identity.path):
            with backend.open_read(identity.path) as stream:
                yield stream

    def normalize_identity(self, identifier: Identifier) -> BlobIdentity:
        return normalize_identity(identifier, self.default_container)

    # ------------------------------------------------------------------------
    # Blob operations
    # ------------------------------------------------------------------------

    def exists(self, identifier: Identifier) -> bool:
        identity = self.normalize_identity(identifier)
        backend = self._require_backend()
        with self._backend_errors(identity.path):
            return backend.exists(identity.path)

    def read_blob(self, identifier: Identifier) -> bytes:
        """
        Read a whole blob.

        Raises:
            NotInitializedError: If no backend is attached
            BlobNotFoundError: If the blob is absent
            StorageIOError: On other backend failures
        """
        identity = self.normalize_identity(identifier)
        with self._open(identity) as stream:
            return stream.read()

    def write_blob_create_only(self, identifier: Identifier, data: Optional[BlobPayload]) -> BlobIdentity:
        """
        Create a blob; never overwrite existing content.

        Args:
            identifier: Blob identifier
            data: Bytes or a readable binary stream (may be zero-length)

        Returns:
            The normalized identity written

        Raises:
            EmptyInputError: If data is None
            BlobAlreadyExistsError: If the identity already has content,
                including when a concurrent writer created it first
        """
        identity = self.normalize_identity(identifier)
        if data is None:
            logger.error(f"No data supplied for blob: {identity.path}")
            raise EmptyInputError(f"No data supplied for blob: {identity.path}")
        backend = self._require_backend()
        with self._backend_errors(identity.path):
            if backend.exists(identity.path):
                raise FileExistsError(identity.path)
            backend.write_new(identity.path, data)
        logger.info(f"Wrote blob: {identity.path}")
        return identity

    # ------------------------------------------------------------------------
    # Delta operations
    # ------------------------------------------------------------------------

    def compute_signature(
        self,
        basis_id: Identifier,
        block_size: Optional[int] = None,
        *,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Signature:
        """Compute the signature of a stored basis blob, streaming it from the backend."""
        builder = SignatureBuilder(
            block_size if block_size is not None else self.block_size,
            self.strong_checksum,
        )
        identity = self.normalize_identity(basis_id)
        with self._open(identity) as stream:
            return builder.build(_stream_source(stream), cancel=cancel, progress=progress)

    def compute_delta(
        self,
        signature: Union[BytesLike, Signature, None],
        target: Optional[BytesLike],
        *,
        aggregate_copies: bool = False,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> DeltaScript:
        """
        Compute a delta from an encoded signature and target bytes.

        Raises:
            EmptyInputError: If either argument is None or zero-length
            InvalidSignatureError: If the signature bytes cannot be decoded
        """
        if signature is None or (not isinstance(signature, Signature) and len(signature) == 0):
            logger.error("Signature file data is empty.")
            raise EmptyInputError("Signature data is empty")
        if target is None or len(target) == 0:
            logger.error("New file data is empty.")
            raise EmptyInputError("Target data is empty")
        if not isinstance(signature, Signature):
            signature = decode_signature(signature)
        builder = DeltaBuilder(signature, aggregate_copies=aggregate_copies)
        return builder.build(target, cancel=cancel, progress=progress)

    def apply_delta(
        self,
        basis: Optional[BytesLike],
        delta: Union[BytesLike, DeltaScript, None],
        *,
        signature: Optional[Signature] = None,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """
        Reconstruct a target from basis bytes and an encoded delta.

        Raises:
            EmptyInputError: If either argument is None or zero-length
            InvalidDeltaError: If the delta cannot be decoded or is out of range
            DeltaApplicationError: If reconstruction fails verification
        """
        if basis is None or len(basis) == 0:
            logger.error("Basis file data is empty.")
            raise EmptyInputError("Basis data is empty")
        if delta is None or (not isinstance(delta, DeltaScript) and len(delta) == 0):
            logger.error("Delta file data is empty.")
            raise EmptyInputError("Delta data is empty")
        if not isinstance(delta, DeltaScript):
            delta = decode_delta(delta)
        return DeltaApplier().apply(basis, delta, signature=signature, cancel=cancel, progress=progress)

    # ------------------------------------------------------------------------
    # Persisted workflows
    # ------------------------------------------------------------------------

    def load_signature(self, signature_id: Identifier) -> Signature:
        return decode_signature(self.read_blob(signature_id))

    def load_delta(self, delta_id: Identifier) -> DeltaScript:
        return decode_delta(self.read_blob(delta_id))

    def put_signature(
        self,
        basis_id: Identifier,
        signature_id: Identifier,
        block_size: Optional[int] = None,
        **kwargs: Any,
    ) -> Signature:
        """Compute a basis signature and store it create-only."""
        signature_identity = self.normalize_identity(signature_id)
        signature = self.compute_signature(basis_id, block_size, **kwargs)
        self.write_blob_create_only(signature_identity, encode_signature(signature))
        logger.info(
            f"Stored signature {signature_identity.path}: {signature.num_blocks} blocks "
            f"of {signature.block_size} bytes"
        )
        return signature

    def put_delta(
        self,
        signature_id: Identifier,
        target: Optional[BytesLike],
        delta_id: Identifier,
        *,
        aggregate_copies: bool = False,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> DeltaScript:
        """Compute a delta against a stored signature and store it create-only."""
        delta_identity = self.normalize_identity(delta_id)
        if target is None or len(target) == 0:
            logger.error("New file data is empty.")
            raise EmptyInputError("Target data is empty")
        signature = self.load_signature(signature_id)
        delta = self.compute_delta(
            signature, target, aggregate_copies=aggregate_copies, cancel=cancel, progress=progress
        )
        self.write_blob_create_only(delta_identity, encode_delta(delta))
        logger.info(
            f"Stored delta {delta_identity.path}: {delta.num_copies} copies, "
            f"{delta.inserted_bytes} literal bytes"
        )
        return delta

    def reconstruct(
        self,
        basis_id: Identifier,
        delta_id: Identifier,
        output_id: Optional[Identifier] = None,
        signature_id: Optional[Identifier] = None,
        *,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """
        Rebuild a version from a stored basis and delta.

        Args:
            basis_id: Stored basis blob
            delta_id: Stored delta computed against that basis
            output_id: If given, the result is also stored create-only
            signature_id: If given, the basis is verified against this
                stored signature first (BasisMismatchError on mismatch)

        Returns:
            The reconstructed bytes
        """
        output_identity = self.normalize_identity(output_id) if output_id is not None else None
        delta = self.load_delta(delta_id)
        signature = self.load_signature(signature_id) if signature_id is not None else None

        identity = self.normalize_identity(basis_id)
        with self._open(identity) as stream:
            result = DeltaApplier().apply(
                _stream_source(stream), delta, signature=signature, cancel=cancel, progress=progress
            )

        if output_identity is not None:
            self.write_blob_create_only(output_identity, result)
        return result


def _stream_source(stream: BinaryIO) -> StreamDataSource:
    """Wrap a backend stream, buffering it in memory when it cannot seek."""
    if stream.seekable():
        return StreamDataSource(stream)
    limit = Config.MAX_BLOB_SIZE_IN_MEMORY
    data = stream.read(limit + 1)
    if len(data) > limit:
        raise StorageIOError(
            f"Unseekable blob stream exceeds the {format_size(limit)} in-memory limit"
        )
    return StreamDataSource(io.BytesIO(data))
