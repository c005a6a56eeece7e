# -*- coding: utf-8 -*-
"""
Delta application: rebuild a target from a basis and a DeltaScript.
"""

from __future__ import annotations

from typing import BinaryIO, Callable, List, Optional, Union

from .checksums import ChecksumRegistry, StrongChecksum
from .config import CHUNK_SIZE, Config, logger
from .delta import CopyBlock, DeltaScript, InsertData
from .errors import BasisMismatchError, DeltaApplicationError, InvalidArgumentError, InvalidDeltaError
from .signature import Signature
from .sources import BytesLike, DataSource, as_data_source
from .utils import CancellationToken, ProgressCallback, check_cancelled, format_size


def validate_delta(delta: DeltaScript, basis_length: int) -> None:
    """
    Check a DeltaScript for structural consistency before it is applied.

    Raises:
        InvalidDeltaError: On unknown instructions, negative values or a
            CopyBlock that reaches past ``basis_length``
    """
    if delta.expected_output_length < 0:
        raise InvalidDeltaError(f"Negative expected output length: {delta.expected_output_length}")

    for position, inst in enumerate(delta.instructions):
        if isinstance(inst, CopyBlock):
            if inst.basis_offset < 0 or inst.length < 0:
                raise InvalidDeltaError(
                    f"Instruction {position}: negative copy range "
                    f"(offset={inst.basis_offset}, length={inst.length})"
                )
            if inst.basis_offset + inst.length > basis_length:
                raise InvalidDeltaError(
                    f"Instruction {position}: copy [{inst.basis_offset}, "
                    f"{inst.basis_offset + inst.length}) exceeds basis length {basis_length}"
                )
        elif not isinstance(inst, InsertData):
            raise InvalidDeltaError(f"Instruction {position}: unknown type {type(inst).__name__}")


class DeltaApplier:
    """
    Executes a DeltaScript against a basis.

    Instructions run strictly in order. CopyBlock ranges are read from the
    basis in CHUNK_SIZE pieces; only referenced ranges are read.

    Example:
        >>> applier = DeltaApplier()
        >>> target = applier.apply(basis_bytes, delta)
        >>> with FileDataSource("basis.bin") as basis, open("out.bin", "wb") as out:
        ...     applier.apply_to_stream(basis, delta, out)
    """

    def __init__(self, verify_target_digest: Optional[bool] = None) -> None:
        """
        Args:
            verify_target_digest: Check the delta's target digest after
                reconstruction (default: Config.VERIFY_TARGET_DIGEST)
        """
        self.verify_target_digest = (
            Config.VERIFY_TARGET_DIGEST if verify_target_digest is None else verify_target_digest
        )

    def apply(
        self,
        basis: Union[BytesLike, DataSource],
        delta: DeltaScript,
        *,
        basis_length: Optional[int] = None,
        signature: Optional[Signature] = None,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """
        Reconstruct the target in memory.

        Args:
            basis: Basis bytes or a DataSource
            delta: DeltaScript computed against the basis signature
            basis_length: Basis length to validate copies against
                (default: the length recorded in the delta)
            signature: When given, the live basis is checked against it
                before any output is produced
            cancel: Optional token polled once per instruction
            progress: Optional callback receiving (bytes_written, expected)

        Returns:
            The reconstructed target bytes

        Raises:
            InvalidDeltaError: If a CopyBlock lies outside the basis
            BasisMismatchError: If the basis does not match ``signature``
            DeltaApplicationError: On output length or digest mismatch
            OperationCancelledError: If cancel was triggered
        """
        output = bytearray()
        self._run(basis, delta, output.extend, basis_length, signature, cancel, progress)
        return bytes(output)

    def apply_to_stream(
        self,
        basis: Union[BytesLike, DataSource],
        delta: DeltaScript,
        output: BinaryIO,
        *,
        basis_length: Optional[int] = None,
        signature: Optional[Signature] = None,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Reconstruct the target into a writable binary stream.

        Same checks as apply(). On failure the stream holds partial output
        and the caller must discard it.

        Returns:
            Number of bytes written
        """
        return self._run(basis, delta, output.write, basis_length, signature, cancel, progress)

    # ------------------------------------------------------------------------

    def _run(
        self,
        basis: Union[BytesLike, DataSource],
        delta: DeltaScript,
        write: Callable[[bytes], object],
        basis_length: Optional[int],
        signature: Optional[Signature],
        cancel: Optional[CancellationToken],
        progress: Optional[ProgressCallback],
    ) -> int:
        if not isinstance(delta, DeltaScript):
            raise InvalidArgumentError(f"delta must be a DeltaScript, got {type(delta).__name__}")
        source = as_data_source(basis, "basis")
        if basis_length is None:
            basis_length = delta.basis_length
        validate_delta(delta, basis_length)

        if signature is not None:
            self._verify_basis(source, delta, signature, cancel)

        expected = delta.expected_output_length
        target_acc = None
        if self.verify_target_digest and delta.digest_type is not None and delta.target_digest:
            target_acc = ChecksumRegistry.get_checksum_accumulator(delta.digest_type)

        written = 0
        for inst in delta.instructions:
            check_cancelled(cancel, "apply")
            if isinstance(inst, CopyBlock):
                position = inst.basis_offset
                remaining = inst.length
                while remaining > 0:
                    chunk = source.read_at(position, min(remaining, CHUNK_SIZE))
                    if not chunk:
                        break
                    write(chunk)
                    if target_acc is not None:
                        target_acc.update(chunk)
                    written += len(chunk)
                    position += len(chunk)
                    remaining -= len(chunk)
                if remaining:
                    logger.debug(f"Basis ended {remaining} bytes short of copy at {inst.basis_offset}")
            else:
                write(inst.data)
                if target_acc is not None:
                    target_acc.update(inst.data)
                written += len(inst.data)
            if written > expected:
                break
            if progress is not None:
                progress(written, expected)

        if written != expected:
            raise DeltaApplicationError(
                f"Reconstructed length mismatch: expected {expected} bytes, got {written}"
            )
        if target_acc is not None and target_acc.digest() != delta.target_digest:
            raise DeltaApplicationError(
                f"Reconstructed target digest mismatch ({delta.digest_type.value})"
            )

        logger.debug(
            f"Delta applied: {len(delta.instructions)} instructions, {format_size(written)} written"
        )
        return written

    @staticmethod
    def _verify_basis(
        source: DataSource,
        delta: DeltaScript,
        signature: Signature,
        cancel: Optional[CancellationToken],
    ) -> None:
        """Check every signature block fully covered by a CopyBlock against the live basis."""
        if signature.basis_length != delta.basis_length:
            raise BasisMismatchError(
                f"Signature describes a {signature.basis_length}-byte basis, "
                f"delta was built against {delta.basis_length} bytes"
            )
        live_length = source.size()
        if live_length >= 0 and live_length != signature.basis_length:
            raise BasisMismatchError(
                f"Basis is {live_length} bytes, signature expects {signature.basis_length}"
            )

        block_size = signature.block_size
        wanted: List[int] = []
        seen = set()
        for inst in delta.instructions:
            if not isinstance(inst, CopyBlock) or inst.length == 0:
                continue
            copy_end = inst.basis_offset + inst.length
            index = -(-inst.basis_offset // block_size)
            while index < signature.num_blocks:
                block = signature.blocks[index]
                if block.offset + block.length > copy_end:
                    break
                if index not in seen:
                    seen.add(index)
                    wanted.append(index)
                index += 1

        strong = StrongChecksum(signature.checksum_type)
        for index in wanted:
            check_cancelled(cancel, "apply")
            block = signature.blocks[index]
            if strong.digest(source.read_at(block.offset, block.length)) != block.strong_checksum:
                raise BasisMismatchError(
                    f"Basis block {index} at offset {block.offset} does not match its signature"
                )


def apply_delta(
    basis: Union[BytesLike, DataSource],
    delta: DeltaScript,
    **kwargs: object,
) -> bytes:
    """Convenience wrapper: ``DeltaApplier().apply(basis, delta)``."""
    return DeltaApplier().apply(basis, delta, **kwargs)  # type: ignore[arg-type]

