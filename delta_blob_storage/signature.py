# -*- coding: utf-8 -*-
"""
Basis signatures: per-block weak and strong checksums.

A Signature partitions the basis into consecutive fixed-size blocks (the
last one may be short) so a delta can be computed against it without
re-reading the basis itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .checksums import ChecksumType, RollingChecksum, StrongChecksum
from .config import MAX_BLOCK_SIZE, Config, logger
from .errors import InvalidArgumentError
from .sources import BytesLike, DataSource, as_data_source
from .utils import CancellationToken, ProgressCallback, check_cancelled, format_size


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Block:
    """
    Checksums of a single basis block.

    Attributes:
        index: Ordinal position in the signature
        offset: Byte offset of this block in the basis
        length: Length in bytes (== block_size except possibly the last)
        weak_checksum: 32-bit rolling checksum
        strong_checksum: Strong digest bytes

    Example:
        >>> block = Block(index=0, offset=0, length=4096,
        ...               weak_checksum=0x12345678, strong_checksum=b'\\x00' * 32)
    """
    index: int
    offset: int
    length: int
    weak_checksum: int
    strong_checksum: bytes

    def __repr__(self) -> str:
        strong_hex = self.strong_checksum.hex()[:16]
        return (
            f"Block(#{self.index}, offset={self.offset}, len={self.length}, "
            f"weak=0x{self.weak_checksum:08x}, strong={strong_hex}...)"
        )


@dataclass(frozen=True)
class Signature:
    """
    Complete basis signature.

    Blocks are ordered by offset and partition ``[0, basis_length)`` with no
    gaps or overlaps; only the last block may be shorter than block_size.

    Attributes:
        block_size: Nominal block size
        basis_length: Total byte length of the basis
        blocks: Block checksums in offset order
        checksum_type: Strong checksum algorithm used for every block

    Example:
        >>> sig = SignatureBuilder(block_size=4).build(b"ABCDEFGH")
        >>> [b.offset for b in sig.blocks]
        [0, 4]
    """
    block_size: int
    basis_length: int
    blocks: Tuple[Block, ...]
    checksum_type: ChecksumType = ChecksumType.SHA256

    def __repr__(self) -> str:
        return (
            f"Signature(basis={format_size(self.basis_length)}, "
            f"blocks={self.num_blocks}, block_size={self.block_size}, "
            f"checksum={self.checksum_type.value})"
        )

    @property
    def num_blocks(self) -> int:
        return len(self.blocks)

    @property
    def remainder(self) -> int:
        """Length of the last block if it is short, else 0."""
        return self.basis_length % self.block_size if self.block_size > 0 else 0

    @property
    def strong_length(self) -> int:
        return StrongChecksum(self.checksum_type).digest_size

    @property
    def is_empty(self) -> bool:
        return not self.blocks

    def to_dict(self) -> Dict[str, Any]:
        """Convert signature to a JSON-friendly dictionary."""
        return {
            'type': 'signature',
            'block_size': self.block_size,
            'basis_length': self.basis_length,
            'num_blocks': self.num_blocks,
            'checksum_type': self.checksum_type.value,
            'blocks': [
                {
                    'index': block.index,
                    'offset': block.offset,
                    'length': block.length,
                    'weak': block.weak_checksum,
                    'strong': block.strong_checksum.hex(),
                }
                for block in self.blocks
            ],
        }


# ============================================================================
# INPUT VALIDATION
# ============================================================================

def validate_block_size(block_size: int) -> None:
    """
    Validate a signature block size.

    Raises:
        InvalidArgumentError: If block_size is not a positive int within MAX_BLOCK_SIZE

    Example:
        >>> validate_block_size(4096)  # OK
        >>> validate_block_size(0)  # Raises InvalidArgumentError
    """
    if isinstance(block_size, bool) or not isinstance(block_size, int):
        raise InvalidArgumentError(f"block_size must be an int, got {type(block_size).__name__}")
    if block_size <= 0:
        raise InvalidArgumentError(f"block_size must be positive, got {block_size}")
    if block_size > MAX_BLOCK_SIZE:
        raise InvalidArgumentError(
            f"block_size too large ({block_size}), maximum is {MAX_BLOCK_SIZE} bytes"
        )


def validate_signature(signature: Signature) -> None:
    """
    Validate that a Signature partitions its basis consistently.

    Raises:
        InvalidArgumentError: If the blocks do not tile [0, basis_length)
    """
    validate_block_size(signature.block_size)
    if signature.basis_length < 0:
        raise InvalidArgumentError(f"basis_length cannot be negative ({signature.basis_length})")

    expected_count = -(-signature.basis_length // signature.block_size)
    if len(signature.blocks) != expected_count:
        raise InvalidArgumentError(
            f"Signature inconsistent: basis of {signature.basis_length} bytes needs "
            f"{expected_count} blocks, got {len(signature.blocks)}"
        )

    strong_length = signature.strong_length
    for i, block in enumerate(signature.blocks):
        expected_offset = i * signature.block_size
        expected_length = min(signature.block_size, signature.basis_length - expected_offset)
        if block.index != i:
            raise InvalidArgumentError(f"Block {i} has index {block.index}")
        if block.offset != expected_offset:
            raise InvalidArgumentError(
                f"Block {i} offset mismatch: expected {expected_offset}, got {block.offset}"
            )
        if block.length != expected_length:
            raise InvalidArgumentError(
                f"Block {i} length mismatch: expected {expected_length}, got {block.length}"
            )
        if len(block.strong_checksum) != strong_length:
            raise InvalidArgumentError(
                f"Block {i} strong checksum is {len(block.strong_checksum)} bytes, "
                f"expected {strong_length}"
            )


# ============================================================================
# BLOCK INDEX - weak checksum -> candidate blocks
# ============================================================================

class BlockIndex:
    """
    Lookup from weak checksum to the blocks sharing it.

    Candidates are kept in block index order so that matching is
    deterministic when several blocks share a weak (or strong) checksum.

    Example:
        >>> index = BlockIndex(signature.blocks)
        >>> for block in index.candidates(weak, length=4096):
        ...     ...
    """

    def __init__(self, blocks: Tuple[Block, ...]) -> None:
        self.blocks = blocks
        self._table: Dict[int, List[Block]] = {}
        for block in blocks:
            self._table.setdefault(block.weak_checksum, []).append(block)

    def candidates(self, weak_checksum: int, length: Optional[int] = None) -> List[Block]:
        """
        Return blocks whose weak checksum equals ``weak_checksum``.

        Args:
            weak_checksum: Rolling checksum of the current window
            length: If provided, only blocks of exactly this length
        """
        bucket = self._table.get(weak_checksum)
        if not bucket:
            return []
        if length is None:
            return bucket
        return [block for block in bucket if block.length == length]

    def __len__(self) -> int:
        return len(self.blocks)


# ============================================================================
# SIGNATURE BUILDER
# ============================================================================

def _read_block(source: DataSource, size: int) -> bytes:
    """Read exactly ``size`` bytes unless the source ends first."""
    chunk = source.read_chunk(size)
    if len(chunk) == size or not chunk:
        return chunk
    parts = [chunk]
    remaining = size - len(chunk)
    while remaining > 0:
        more = source.read_chunk(remaining)
        if not more:
            break
        parts.append(more)
        remaining -= len(more)
    return b"".join(parts)


class SignatureBuilder:
    """
    Builds a Signature from a basis blob.

    The basis is read sequentially exactly once, ``block_size`` bytes at a
    time, so memory use is O(block_size) plus the signature itself.
    Identical basis bytes and parameters always yield an identical
    Signature.

    Example:
        >>> builder = SignatureBuilder(block_size=4096)
        >>> with FileDataSource("basis.bin") as source:
        ...     signature = builder.build(source)
        >>> print(f"{signature.num_blocks} blocks")
    """

    def __init__(
        self,
        block_size: Optional[int] = None,
        checksum_type: Union[str, ChecksumType, None] = None,
    ) -> None:
        """
        Args:
            block_size: Block size in bytes (default: Config.DEFAULT_BLOCK_SIZE)
            checksum_type: Strong checksum algorithm (default: Config.STRONG_CHECKSUM)

        Raises:
            InvalidArgumentError: If block_size or checksum_type is invalid
        """
        if block_size is None:
            block_size = Config.DEFAULT_BLOCK_SIZE
        validate_block_size(block_size)
        self.block_size = block_size
        self.strong = StrongChecksum(checksum_type if checksum_type is not None else Config.STRONG_CHECKSUM)

    @property
    def checksum_type(self) -> ChecksumType:
        return self.strong.checksum_type

    def build(
        self,
        basis: Union[BytesLike, DataSource],
        *,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Signature:
        """
        Compute the signature of a basis blob.

        Args:
            basis: Basis bytes or a DataSource positioned anywhere (rewound)
            cancel: Optional token polled once per block
            progress: Optional callback receiving (bytes_read, total_size)

        Returns:
            Signature of the basis

        Raises:
            InvalidArgumentError: If basis is not bytes-like or a DataSource
            OperationCancelledError: If cancel was triggered
        """
        source = as_data_source(basis, "basis")
        total = source.size()
        block_size = self.block_size
        digest = self.strong.digest

        source.seek(0)
        blocks: List[Block] = []
        offset = 0

        while True:
            check_cancelled(cancel, "signature")
            chunk = _read_block(source, block_size)
            if not chunk:
                break
            blocks.append(Block(
                index=len(blocks),
                offset=offset,
                length=len(chunk),
                weak_checksum=RollingChecksum.compute(chunk),
                strong_checksum=digest(chunk),
            ))
            offset += len(chunk)
            if progress is not None:
                progress(offset, total)
            if len(chunk) < block_size:
                break

        logger.debug(
            f"Signature built: {len(blocks)} blocks of {block_size} bytes "
            f"over {format_size(offset)} ({self.checksum_type.value})"
        )
        return Signature(
            block_size=block_size,
            basis_length=offset,
            blocks=tuple(blocks),
            checksum_type=self.checksum_type,
        )


def build_signature(
    basis: Union[BytesLike, DataSource],
    block_size: Optional[int] = None,
    checksum_type: Union[str, ChecksumType, None] = None,
    **kwargs: Any,
) -> Signature:
    """Convenience wrapper: ``SignatureBuilder(block_size, checksum_type).build(basis)``."""
    return SignatureBuilder(block_size, checksum_type).build(basis, **kwargs)
