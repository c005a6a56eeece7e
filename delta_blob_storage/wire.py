# -*- coding: utf-8 -*-
"""
Binary encodings for signatures and delta scripts.

All integers are little-endian.

Signature::

    magic "DBSG" | version u8 | checksum id u8 | block_size u32
    | basis_length u64 | block_count u32
    then block_count records: weak u32 | strong (digest length of checksum id)

Block offsets and lengths are implicit (index * block_size, last block
short).

Delta::

    magic "DBDL" | version u8 | expected_output_length u64 | basis_length u64
    | digest id u8 (0 = none) | digest length u8 | digest
    then records, each tagged by one byte:
        0x01 CopyBlock   basis_offset u64 | length u64
        0x02 InsertData  length u64 | bytes
        0x00 end of script
"""

from __future__ import annotations

import struct
from typing import List, Optional

from .checksums import ChecksumRegistry, ChecksumType
from .config import DELTA_MAGIC, SIGNATURE_MAGIC, WIRE_VERSION
from .delta import CopyBlock, DeltaScript, InsertData, Instruction
from .errors import InvalidDeltaError, InvalidSignatureError
from .signature import Block, Signature
from .sources import BytesLike

_SIG_HEADER = struct.Struct('<4sBBIQI')
_DELTA_HEADER = struct.Struct('<4sBQQBB')
_U32 = struct.Struct('<I')
_U64 = struct.Struct('<Q')
_COPY = struct.Struct('<QQ')

TAG_END = 0x00
TAG_COPY = 0x01
TAG_INSERT = 0x02


# ============================================================================
# SIGNATURE
# ============================================================================

def encode_signature(signature: Signature) -> bytes:
    """
    Serialize a Signature.

    Example:
        >>> data = encode_signature(signature)
        >>> decode_signature(data) == signature
        True
    """
    parts = [_SIG_HEADER.pack(
        SIGNATURE_MAGIC,
        WIRE_VERSION,
        signature.checksum_type.wire_id,
        signature.block_size,
        signature.basis_length,
        len(signature.blocks),
    )]
    for block in signature.blocks:
        parts.append(_U32.pack(block.weak_checksum & 0xFFFFFFFF))
        parts.append(block.strong_checksum)
    return b"".join(parts)


def decode_signature(data: BytesLike) -> Signature:
    """
    Parse bytes produced by encode_signature().

    Raises:
        InvalidSignatureError: If the bytes are truncated, carry an unknown
            magic/version/checksum, or describe an inconsistent block layout
    """
    data = bytes(data)
    if len(data) < _SIG_HEADER.size:
        raise InvalidSignatureError(
            f"Signature too short: {len(data)} bytes, header needs {_SIG_HEADER.size}"
        )
    magic, version, checksum_id, block_size, basis_length, count = _SIG_HEADER.unpack_from(data, 0)
    if magic != SIGNATURE_MAGIC:
        raise InvalidSignatureError(f"Bad signature magic: {magic!r}")
    if version != WIRE_VERSION:
        raise InvalidSignatureError(f"Unsupported signature version: {version}")
    try:
        checksum_type = ChecksumType.from_wire_id(checksum_id)
    except ValueError as e:
        raise InvalidSignatureError(str(e))
    if block_size <= 0:
        raise InvalidSignatureError(f"Invalid block size in signature: {block_size}")

    expected_count = -(-basis_length // block_size)
    if count != expected_count:
        raise InvalidSignatureError(
            f"Block count {count} inconsistent with basis length {basis_length} "
            f"and block size {block_size}"
        )

    strong_len = ChecksumRegistry.get_digest_length(checksum_type)
    record_size = _U32.size + strong_len
    body = len(data) - _SIG_HEADER.size
    if body != count * record_size:
        raise InvalidSignatureError(
            f"Signature body is {body} bytes, expected {count * record_size} for {count} blocks"
        )

    blocks: List[Block] = []
    pos = _SIG_HEADER.size
    for index in range(count):
        (weak,) = _U32.unpack_from(data, pos)
        strong = data[pos + _U32.size:pos + record_size]
        offset = index * block_size
        blocks.append(Block(
            index=index,
            offset=offset,
            length=min(block_size, basis_length - offset),
            weak_checksum=weak,
            strong_checksum=strong,
        ))
        pos += record_size

    return Signature(
        block_size=block_size,
        basis_length=basis_length,
        blocks=tuple(blocks),
        checksum_type=checksum_type,
    )


# ============================================================================
# DELTA
# ============================================================================

def encode_delta(delta: DeltaScript) -> bytes:
    """Serialize a DeltaScript."""
    digest_id = delta.digest_type.wire_id if delta.digest_type is not None else 0
    digest = delta.target_digest if delta.digest_type is not None else b""
    parts = [
        _DELTA_HEADER.pack(
            DELTA_MAGIC,
            WIRE_VERSION,
            delta.expected_output_length,
            delta.basis_length,
            digest_id,
            len(digest),
        ),
        digest,
    ]
    for inst in delta.instructions:
        if isinstance(inst, CopyBlock):
            parts.append(bytes((TAG_COPY,)))
            parts.append(_COPY.pack(inst.basis_offset, inst.length))
        else:
            parts.append(bytes((TAG_INSERT,)))
            parts.append(_U64.pack(len(inst.data)))
            parts.append(inst.data)
    parts.append(bytes((TAG_END,)))
    return b"".join(parts)


def decode_delta(data: BytesLike) -> DeltaScript:
    """
    Parse bytes produced by encode_delta().

    Raises:
        InvalidDeltaError: If the bytes are truncated, carry an unknown
            magic/version/tag, or have trailing garbage after the end record
    """
    data = bytes(data)
    if len(data) < _DELTA_HEADER.size:
        raise InvalidDeltaError(f"Delta too short: {len(data)} bytes, header needs {_DELTA_HEADER.size}")
    magic, version, expected, basis_length, digest_id, digest_len = _DELTA_HEADER.unpack_from(data, 0)
    if magic != DELTA_MAGIC:
        raise InvalidDeltaError(f"Bad delta magic: {magic!r}")
    if version != WIRE_VERSION:
        raise InvalidDeltaError(f"Unsupported delta version: {version}")

    digest_type: Optional[ChecksumType] = None
    if digest_id:
        try:
            digest_type = ChecksumType.from_wire_id(digest_id)
        except ValueError as e:
            raise InvalidDeltaError(str(e))
        if digest_len != ChecksumRegistry.get_digest_length(digest_type):
            raise InvalidDeltaError(
                f"Digest length {digest_len} does not match {digest_type.value}"
            )
    elif digest_len:
        raise InvalidDeltaError("Digest bytes present without a digest type")

    pos = _DELTA_HEADER.size
    if pos + digest_len > len(data):
        raise InvalidDeltaError("Delta truncated inside target digest")
    digest = data[pos:pos + digest_len]
    pos += digest_len

    instructions: List[Instruction] = []
    while True:
        if pos >= len(data):
            raise InvalidDeltaError("Delta truncated: missing end record")
        tag = data[pos]
        pos += 1
        if tag == TAG_END:
            break
        if tag == TAG_COPY:
            if pos + _COPY.size > len(data):
                raise InvalidDeltaError(f"Delta truncated inside copy record at byte {pos}")
            basis_offset, length = _COPY.unpack_from(data, pos)
            pos += _COPY.size
            instructions.append(CopyBlock(basis_offset, length))
        elif tag == TAG_INSERT:
            if pos + _U64.size > len(data):
                raise InvalidDeltaError(f"Delta truncated inside insert header at byte {pos}")
            (length,) = _U64.unpack_from(data, pos)
            pos += _U64.size
            if pos + length > len(data):
                raise InvalidDeltaError(
                    f"Insert of {length} bytes at byte {pos} runs past end of delta"
                )
            instructions.append(InsertData(data[pos:pos + length]))
            pos += length
        else:
            raise InvalidDeltaError(f"Unknown delta record tag 0x{tag:02x} at byte {pos - 1}")

    if pos != len(data):
        raise InvalidDeltaError(f"{len(data) - pos} trailing bytes after end of delta")

    return DeltaScript(
        expected_output_length=expected,
        instructions=tuple(instructions),
        basis_length=basis_length,
        digest_type=digest_type,
        target_digest=digest,
    )


def detect_kind(data: BytesLike) -> Optional[str]:
    """Return 'signature', 'delta' or None from the leading magic bytes."""
    head = bytes(data[:4])
    if head == SIGNATURE_MAGIC:
        return 'signature'
    if head == DELTA_MAGIC:
        return 'delta'
    return None
