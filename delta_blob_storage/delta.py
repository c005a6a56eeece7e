# -*- coding: utf-8 -*-
"""
Delta computation: match a target blob against a basis signature.

The matcher slides a window of ``block_size`` bytes over the target,
maintaining the rolling checksum incrementally. Weak-checksum hits are
confirmed with the strong checksum; a confirmed match emits a CopyBlock
and skips the whole block, otherwise the window advances by one byte and
the leading byte joins the pending literal run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .checksums import ChecksumRegistry, ChecksumType, RollingChecksum, StrongChecksum
from .config import Config, logger
from .errors import InvalidArgumentError
from .signature import BlockIndex, Signature, validate_signature
from .sources import BytesLike, DataSource, as_data_source
from .utils import CancellationToken, ProgressCallback, check_cancelled, format_size


# ============================================================================
# DELTA INSTRUCTIONS
# ============================================================================

@dataclass(frozen=True)
class CopyBlock:
    """
    Copy ``length`` bytes from the basis starting at ``basis_offset``.

    Example:
        >>> CopyBlock(basis_offset=0, length=4096)
    """
    basis_offset: int
    length: int

    def __repr__(self) -> str:
        return f"CopyBlock({self.basis_offset}, {self.length})"


@dataclass(frozen=True)
class InsertData:
    """
    Literal bytes absent from the basis, written verbatim.

    Example:
        >>> InsertData(b"new content")
    """
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        preview = self.data[:16]
        suffix = "..." if len(self.data) > 16 else ""
        return f"InsertData({preview!r}{suffix}, len={len(self.data)})"


Instruction = Union[CopyBlock, InsertData]


@dataclass
class DeltaStats:
    """
    Matching statistics for one delta computation.

    Attributes:
        hash_hits: Windows whose weak checksum had at least one candidate
        false_alarms: Candidates rejected by the strong checksum
        matches: Confirmed block matches
        literal_bytes: Bytes emitted as InsertData
        matched_bytes: Bytes emitted as CopyBlock
    """
    hash_hits: int = 0
    false_alarms: int = 0
    matches: int = 0
    literal_bytes: int = 0
    matched_bytes: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'hash_hits': self.hash_hits,
            'false_alarms': self.false_alarms,
            'matches': self.matches,
            'literal_bytes': self.literal_bytes,
            'matched_bytes': self.matched_bytes,
        }


@dataclass(frozen=True)
class DeltaScript:
    """
    Ordered instructions transforming a basis into a target.

    Attributes:
        expected_output_length: Exact length of the reconstructed target
        instructions: CopyBlock/InsertData sequence in target order
        basis_length: Length of the basis the signature was taken from
        digest_type: Algorithm of target_digest (None = no digest)
        target_digest: Digest of the whole target
        stats: Matching statistics, when collected

    Two InsertData instructions are never adjacent in a script produced by
    DeltaBuilder.

    Example:
        >>> delta = DeltaBuilder(signature).build(target)
        >>> print(f"{delta.num_copies} copies, {delta.inserted_bytes} literal bytes")
    """
    expected_output_length: int
    instructions: Tuple[Instruction, ...]
    basis_length: int = 0
    digest_type: Optional[ChecksumType] = None
    target_digest: bytes = b""
    stats: Optional[DeltaStats] = field(default=None, compare=False)

    def __repr__(self) -> str:
        return (
            f"DeltaScript(output={format_size(self.expected_output_length)}, "
            f"copies={self.num_copies}, inserts={self.num_inserts}, "
            f"literal={format_size(self.inserted_bytes)})"
        )

    @property
    def num_copies(self) -> int:
        return sum(1 for inst in self.instructions if isinstance(inst, CopyBlock))

    @property
    def num_inserts(self) -> int:
        return sum(1 for inst in self.instructions if isinstance(inst, InsertData))

    @property
    def copied_bytes(self) -> int:
        return sum(inst.length for inst in self.instructions if isinstance(inst, CopyBlock))

    @property
    def inserted_bytes(self) -> int:
        return sum(len(inst.data) for inst in self.instructions if isinstance(inst, InsertData))

    @property
    def savings_ratio(self) -> float:
        """Fraction of the target served from the basis (0.0 - 1.0)."""
        if self.expected_output_length == 0:
            return 0.0
        return self.copied_bytes / self.expected_output_length

    def to_dict(self) -> Dict[str, Any]:
        """Convert delta to a JSON-friendly summary (literal bytes are not included)."""
        result: Dict[str, Any] = {
            'type': 'delta',
            'expected_output_length': self.expected_output_length,
            'basis_length': self.basis_length,
            'digest_type': self.digest_type.value if self.digest_type else None,
            'target_digest': self.target_digest.hex(),
            'num_copies': self.num_copies,
            'num_inserts': self.num_inserts,
            'copied_bytes': self.copied_bytes,
            'inserted_bytes': self.inserted_bytes,
            'instructions': [
                {'op': 'copy', 'basis_offset': inst.basis_offset, 'length': inst.length}
                if isinstance(inst, CopyBlock)
                else {'op': 'insert', 'length': len(inst.data)}
                for inst in self.instructions
            ],
        }
        if self.stats is not None:
            result['stats'] = self.stats.to_dict()
        return result


# ============================================================================
# DELTA BUILDER
# ============================================================================

class _InstructionSink:
    """Accumulates instructions, optionally merging contiguous copies."""

    def __init__(self, aggregate_copies: bool) -> None:
        self.aggregate_copies = aggregate_copies
        self.instructions: List[Instruction] = []

    def copy(self, basis_offset: int, length: int) -> None:
        if self.aggregate_copies and self.instructions:
            last = self.instructions[-1]
            if isinstance(last, CopyBlock) and last.basis_offset + last.length == basis_offset:
                self.instructions[-1] = CopyBlock(last.basis_offset, last.length + length)
                return
        self.instructions.append(CopyBlock(basis_offset, length))

    def insert(self, data: bytes) -> None:
        if data:
            self.instructions.append(InsertData(data))


class DeltaBuilder:
    """
    Computes a DeltaScript for a target blob against a basis Signature.

    The target is read once through a compacted window buffer; memory use
    is roughly ``block_size + Config.CHUNK_SIZE_STREAMING`` plus the
    current pending literal run.

    Example:
        >>> signature = SignatureBuilder(block_size=4).build(b"ABCDEFGH")
        >>> DeltaBuilder(signature).build(b"ABCDXEFGH").instructions
        (CopyBlock(0, 4), InsertData(b'X', len=1), CopyBlock(4, 4))
    """

    def __init__(
        self,
        signature: Signature,
        *,
        aggregate_copies: bool = False,
        collect_stats: Optional[bool] = None,
        digest_type: Union[str, ChecksumType, None] = None,
    ) -> None:
        """
        Args:
            signature: Basis signature to match against
            aggregate_copies: Merge CopyBlocks with contiguous basis ranges
            collect_stats: Attach DeltaStats (default: Config.COLLECT_STATS)
            digest_type: Whole-target digest algorithm (default: Config.TARGET_DIGEST)

        Raises:
            InvalidArgumentError: If the signature is not internally consistent
        """
        if not isinstance(signature, Signature):
            raise InvalidArgumentError(f"signature must be a Signature, got {type(signature).__name__}")
        validate_signature(signature)
        self.signature = signature
        self.aggregate_copies = aggregate_copies
        self.collect_stats = Config.COLLECT_STATS if collect_stats is None else collect_stats
        self.digest_type = ChecksumType.parse(digest_type if digest_type is not None else Config.TARGET_DIGEST)
        self.strong = StrongChecksum(signature.checksum_type)
        self.index = BlockIndex(signature.blocks)

    def build(
        self,
        target: Union[BytesLike, DataSource],
        *,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> DeltaScript:
        """
        Compute the delta of ``target`` against the signature.

        Args:
            target: Target bytes or a DataSource (rewound before reading)
            cancel: Optional token polled at block boundaries
            progress: Optional callback receiving (bytes_scanned, total_size)

        Returns:
            DeltaScript whose replay against the basis yields the target

        Raises:
            InvalidArgumentError: If target is not bytes-like or a DataSource
            OperationCancelledError: If cancel was triggered
        """
        source = as_data_source(target, "target")
        file_size = source.size()
        if file_size < 0:
            raise InvalidArgumentError("target source must report its size")
        source.seek(0)

        signature = self.signature
        blength = signature.block_size
        blocks = signature.blocks
        digest = self.strong.digest
        index = self.index
        sink = _InstructionSink(self.aggregate_copies)
        stats = DeltaStats()
        target_acc = ChecksumRegistry.get_checksum_accumulator(self.digest_type)
        chunk_size = max(Config.CHUNK_SIZE_STREAMING, blength)

        # Window buffer: buf[0] is target offset buf_start. Everything from
        # lit_start onward stays buffered until flushed or matched.
        buf = bytearray()
        buf_start = 0
        eof = False

        def ensure(needed_end: int) -> None:
            nonlocal eof
            needed_end = min(needed_end, file_size)
            while not eof and buf_start + len(buf) < needed_end:
                to_read = min(file_size, max(needed_end, buf_start + len(buf) + chunk_size)) - (buf_start + len(buf))
                chunk = source.read_chunk(to_read)
                if not chunk:
                    eof = True
                    break
                target_acc.update(chunk)
                buf.extend(chunk)

        def compact(keep_from: int) -> None:
            nonlocal buf, buf_start
            drop = keep_from - buf_start
            if drop >= chunk_size:
                del buf[:drop]
                buf_start += drop

        last_block_len = blocks[-1].length if blocks else 0
        # Windows shorter than the last basis block can never match.
        end = file_size + 1 - last_block_len if last_block_len > 0 else 0

        offset = 0
        lit_start = 0
        want_i = 0
        next_checkpoint = 0
        k = min(blength, file_size)
        rolling = RollingChecksum()
        if k > 0 and end > 0:
            ensure(k + 1)
            rolling.reset(buf, 0, k)

        while offset < end and k > 0:
            if offset >= next_checkpoint:
                check_cancelled(cancel, "delta")
                if progress is not None:
                    progress(offset, file_size)
                next_checkpoint = offset + blength

            ensure(offset + k + 1)
            weak = rolling.value
            candidates = index.candidates(weak, length=k)
            if candidates:
                stats.hash_hits += 1
                off_i = offset - buf_start
                strong = digest(bytes(buf[off_i:off_i + k]))

                matched = None
                for block in candidates:
                    if block.strong_checksum == strong:
                        matched = block
                        break
                    stats.false_alarms += 1

                # Prefer the block following the previous match so copies
                # stay contiguous in the basis.
                if matched is not None and matched.index != want_i and want_i < len(blocks):
                    wanted = blocks[want_i]
                    if wanted.length == k and wanted.weak_checksum == weak and wanted.strong_checksum == strong:
                        matched = wanted

                if matched is not None:
                    if offset > lit_start:
                        sink.insert(bytes(buf[lit_start - buf_start:offset - buf_start]))
                        stats.literal_bytes += offset - lit_start
                    sink.copy(matched.offset, matched.length)
                    stats.matches += 1
                    stats.matched_bytes += k
                    want_i = matched.index + 1

                    offset += k
                    lit_start = offset
                    compact(lit_start)
                    if offset >= file_size:
                        break
                    k = min(blength, file_size - offset)
                    ensure(offset + k + 1)
                    rolling.reset(buf, offset - buf_start, k)
                    continue

            # No match: slide one byte, or shrink the window at end of input.
            old_byte = buf[offset - buf_start]
            if offset + k < file_size:
                rolling.roll(old_byte, buf[offset + k - buf_start])
            else:
                rolling.rollout(old_byte)
                k -= 1
            offset += 1

        # Trailing literal run.
        ensure(file_size)
        if lit_start < file_size:
            sink.insert(bytes(buf[lit_start - buf_start:file_size - buf_start]))
            stats.literal_bytes += file_size - lit_start

        check_cancelled(cancel, "delta")
        if progress is not None:
            progress(file_size, file_size)

        logger.debug(
            f"Delta built: {stats.matches} matches, {stats.hash_hits} hash hits, "
            f"{stats.false_alarms} false alarms, {format_size(stats.literal_bytes)} literal"
        )
        return DeltaScript(
            expected_output_length=file_size,
            instructions=tuple(sink.instructions),
            basis_length=signature.basis_length,
            digest_type=self.digest_type,
            target_digest=target_acc.digest(),
            stats=stats if self.collect_stats else None,
        )


def build_delta(
    signature: Signature,
    target: Union[BytesLike, DataSource],
    **kwargs: Any,
) -> DeltaScript:
    """Convenience wrapper: ``DeltaBuilder(signature).build(target)``."""
    builder_options = {
        key: kwargs.pop(key)
        for key in ('aggregate_copies', 'collect_stats', 'digest_type')
        if key in kwargs
    }
    return DeltaBuilder(signature, **builder_options).build(target, **kwargs)
