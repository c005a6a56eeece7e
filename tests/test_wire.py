#!/usr/bin/env python
"""
Tests del formato binario de firmas y deltas.
"""

import struct
import unittest

from delta_blob_storage import (
    ChecksumType,
    CopyBlock,
    DeltaBuilder,
    DeltaScript,
    InsertData,
    InvalidDeltaError,
    InvalidSignatureError,
    SignatureBuilder,
    decode_delta,
    decode_signature,
    encode_delta,
    encode_signature,
)
from delta_blob_storage.config import DELTA_MAGIC, SIGNATURE_MAGIC, WIRE_VERSION
from delta_blob_storage.wire import detect_kind


class TestSignatureWire(unittest.TestCase):
    """Tests de codificación de firmas"""

    def test_round_trip(self):
        """Test: decode(encode(firma)) == firma"""
        for checksum_type in ("sha256", "md5", "xxh128"):
            sig = SignatureBuilder(block_size=4, checksum_type=checksum_type).build(b"ABCDEFGHIJ")
            self.assertEqual(decode_signature(encode_signature(sig)), sig)

    def test_round_trip_empty(self):
        """Test: firma vacía"""
        sig = SignatureBuilder(block_size=64).build(b"")
        self.assertEqual(decode_signature(encode_signature(sig)), sig)

    def test_layout(self):
        """Test: cabecera y registros en little-endian"""
        sig = SignatureBuilder(block_size=4).build(b"ABCDEF")
        data = encode_signature(sig)
        self.assertEqual(data[:4], SIGNATURE_MAGIC)
        self.assertEqual(data[4], WIRE_VERSION)
        self.assertEqual(data[5], ChecksumType.SHA256.wire_id)
        self.assertEqual(struct.unpack_from('<IQI', data, 6), (4, 6, 2))
        self.assertEqual(len(data), 22 + 2 * (4 + 32))
        self.assertEqual(struct.unpack_from('<I', data, 22)[0], sig.blocks[0].weak_checksum)

    def test_errors(self):
        """Test: entradas corruptas lanzan InvalidSignatureError"""
        good = encode_signature(SignatureBuilder(block_size=4).build(b"ABCDEFGH"))
        bad_inputs = {
            'empty': b"",
            'short header': good[:10],
            'magic': b"XXXX" + good[4:],
            'version': good[:4] + bytes((99,)) + good[5:],
            'checksum id': good[:5] + bytes((200,)) + good[6:],
            'zero block size': good[:6] + struct.pack('<I', 0) + good[10:],
            'block count': good[:18] + struct.pack('<I', 3) + good[22:],
            'truncated body': good[:-1],
            'trailing bytes': good + b"\x00",
            'delta bytes': encode_delta(DeltaScript(0, ())),
        }
        for name, data in bad_inputs.items():
            with self.assertRaises(InvalidSignatureError, msg=name):
                decode_signature(data)

    def test_error_code(self):
        """Test: código de error de firma inválida"""
        with self.assertRaises(InvalidSignatureError) as ctx:
            decode_signature(b"garbage")
        self.assertEqual(ctx.exception.kind, "InvalidSignature")
        self.assertEqual(ctx.exception.code, 14)


class TestDeltaWire(unittest.TestCase):
    """Tests de codificación de deltas"""

    def test_round_trip(self):
        """Test: decode(encode(delta)) == delta, incluido el digest"""
        sig = SignatureBuilder(block_size=4).build(b"ABCDEFGH")
        delta = DeltaBuilder(sig).build(b"ABCDXEFGH")
        decoded = decode_delta(encode_delta(delta))
        self.assertEqual(decoded, delta)
        self.assertEqual(decoded.digest_type, ChecksumType.XXH128)

    def test_exact_bytes(self):
        """Test: codificación exacta de un script escrito a mano"""
        script = DeltaScript(
            expected_output_length=9,
            instructions=(CopyBlock(0, 4), InsertData(b"X"), CopyBlock(4, 4)),
            basis_length=8,
        )
        expected = (
            DELTA_MAGIC + bytes((WIRE_VERSION,))
            + struct.pack('<QQ', 9, 8) + b"\x00\x00"
            + b"\x01" + struct.pack('<QQ', 0, 4)
            + b"\x02" + struct.pack('<Q', 1) + b"X"
            + b"\x01" + struct.pack('<QQ', 4, 4)
            + b"\x00"
        )
        self.assertEqual(encode_delta(script), expected)
        self.assertEqual(decode_delta(expected), script)

    def test_empty_script(self):
        """Test: script sin instrucciones"""
        script = DeltaScript(0, ())
        self.assertEqual(decode_delta(encode_delta(script)), script)

    def test_large_insert(self):
        """Test: literal grande"""
        payload = bytes(range(256)) * 1000
        script = DeltaScript(len(payload), (InsertData(payload),))
        self.assertEqual(decode_delta(encode_delta(script)).instructions[0].data, payload)

    def test_errors(self):
        """Test: entradas corruptas lanzan InvalidDeltaError"""
        script = DeltaScript(5, (CopyBlock(0, 4), InsertData(b"X")), basis_length=8)
        good = encode_delta(script)
        header = good[:23]
        sig = SignatureBuilder(block_size=4).build(b"ABCDEFGH")
        with_digest = encode_delta(DeltaBuilder(sig).build(b"ABCDXEFGH"))
        bad_inputs = {
            'empty': b"",
            'short header': good[:10],
            'magic': b"XXXX" + good[4:],
            'version': good[:4] + bytes((7,)) + good[5:],
            'digest id': good[:21] + bytes((250, 0)) + good[23:],
            'digest length': with_digest[:22] + bytes((3,)) + with_digest[23:],
            'digest without type': good[:21] + bytes((0, 4)) + b"abcd" + good[23:],
            'truncated digest': with_digest[:30],
            'missing end': good[:-1],
            'truncated copy': header + b"\x01" + b"\x00" * 5,
            'truncated insert header': header + b"\x02\x01",
            'insert past end': header + b"\x02" + struct.pack('<Q', 100) + b"abc",
            'unknown tag': header + b"\x09\x00",
            'trailing bytes': good + b"\x00",
            'signature bytes': encode_signature(sig),
        }
        for name, data in bad_inputs.items():
            with self.assertRaises(InvalidDeltaError, msg=name):
                decode_delta(data)


class TestDetectKind(unittest.TestCase):
    """Tests de detección por magic"""

    def test_detect(self):
        """Test: firma, delta y desconocido"""
        sig = SignatureBuilder(block_size=4).build(b"ABCD")
        self.assertEqual(detect_kind(encode_signature(sig)), 'signature')
        self.assertEqual(detect_kind(encode_delta(DeltaScript(0, ()))), 'delta')
        self.assertIsNone(detect_kind(b"PK\x03\x04"))
        self.assertIsNone(detect_kind(b""))


if __name__ == '__main__':
    unittest.main()
