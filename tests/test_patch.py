#!/usr/bin/env python
"""
Tests de aplicación de deltas (DeltaApplier) y de sus verificaciones.
"""

import dataclasses
import io
import os
import shutil
import tempfile
import unittest

from delta_blob_storage import (
    BasisMismatchError,
    CancellationToken,
    Config,
    CopyBlock,
    DeltaApplicationError,
    DeltaApplier,
    DeltaBuilder,
    DeltaScript,
    FileDataSource,
    InsertData,
    InvalidArgumentError,
    InvalidDeltaError,
    OperationCancelledError,
    SignatureBuilder,
    apply_delta,
)
from delta_blob_storage.patch import validate_delta


BASIS = b"ABCDEFGH"
TARGET = b"ABCDXEFGH"


def make_delta(basis=BASIS, target=TARGET, block_size=4):
    sig = SignatureBuilder(block_size=block_size).build(basis)
    return sig, DeltaBuilder(sig).build(target)


class TestDeltaApplier(unittest.TestCase):
    """Tests de reconstrucción"""

    def test_apply_reference(self):
        """Test: reconstrucción exacta"""
        _, delta = make_delta()
        self.assertEqual(DeltaApplier().apply(BASIS, delta), TARGET)
        self.assertEqual(apply_delta(BASIS, delta), TARGET)

    def test_apply_hand_written_script(self):
        """Test: script escrito a mano sin digest"""
        script = DeltaScript(
            expected_output_length=9,
            instructions=(CopyBlock(4, 4), InsertData(b"-"), CopyBlock(0, 4)),
            basis_length=8,
        )
        self.assertEqual(DeltaApplier().apply(BASIS, script), b"EFGH-ABCD")

    def test_copy_ranges_may_overlap(self):
        """Test: la misma región de la base puede copiarse varias veces"""
        script = DeltaScript(9, (CopyBlock(0, 3), CopyBlock(0, 3), CopyBlock(1, 3)), basis_length=8)
        self.assertEqual(DeltaApplier().apply(BASIS, script), b"ABCABCBCD")

    def test_empty_basis_and_delta(self):
        """Test: base vacía y script vacío producen salida vacía"""
        self.assertEqual(DeltaApplier().apply(b"", DeltaScript(0, ())), b"")

    def test_apply_to_stream(self):
        """Test: apply_to_stream escribe en un flujo y devuelve bytes escritos"""
        _, delta = make_delta()
        out = io.BytesIO()
        self.assertEqual(DeltaApplier().apply_to_stream(BASIS, delta, out), len(TARGET))
        self.assertEqual(out.getvalue(), TARGET)

    def test_progress(self):
        """Test: progreso por instrucción hasta la longitud esperada"""
        _, delta = make_delta()
        calls = []
        DeltaApplier().apply(BASIS, delta, progress=lambda d, t: calls.append((d, t)))
        self.assertEqual(calls, [(4, 9), (5, 9), (9, 9)])

    def test_cancellation(self):
        """Test: token cancelado aborta sin resultado"""
        _, delta = make_delta()
        token = CancellationToken()
        token.cancel()
        with self.assertRaises(OperationCancelledError):
            DeltaApplier().apply(BASIS, delta, cancel=token)

    def test_not_a_delta(self):
        """Test: delta que no es DeltaScript"""
        with self.assertRaises(InvalidArgumentError):
            DeltaApplier().apply(BASIS, [CopyBlock(0, 4)])


class TestDeltaValidation(unittest.TestCase):
    """Tests de errores de estructura y de resultado"""

    def tearDown(self):
        Config.reset_defaults()

    def test_copy_out_of_range(self):
        """Test: CopyBlock fuera de la base lanza InvalidDeltaError"""
        script = DeltaScript(4, (CopyBlock(6, 4),), basis_length=8)
        with self.assertRaises(InvalidDeltaError):
            DeltaApplier().apply(BASIS, script)

    def test_explicit_basis_length(self):
        """Test: basis_length explícito prevalece sobre el del delta"""
        script = DeltaScript(4, (CopyBlock(4, 4),), basis_length=8)
        with self.assertRaises(InvalidDeltaError):
            DeltaApplier().apply(BASIS, script, basis_length=6)

    def test_negative_values(self):
        """Test: offsets, longitudes o salida negativos"""
        with self.assertRaises(InvalidDeltaError):
            validate_delta(DeltaScript(4, (CopyBlock(-1, 4),), basis_length=8), 8)
        with self.assertRaises(InvalidDeltaError):
            validate_delta(DeltaScript(4, (CopyBlock(0, -4),), basis_length=8), 8)
        with self.assertRaises(InvalidDeltaError):
            validate_delta(DeltaScript(-1, ()), 8)

    def test_unknown_instruction(self):
        """Test: instrucción desconocida"""
        with self.assertRaises(InvalidDeltaError):
            validate_delta(DeltaScript(1, ("copy",)), 8)

    def test_truncated_basis(self):
        """Test: base más corta de lo esperado produce DeltaApplicationError"""
        _, delta = make_delta()
        with self.assertRaises(DeltaApplicationError):
            DeltaApplier().apply(BASIS[:7], delta)

    def test_length_mismatch(self):
        """Test: longitud esperada distinta de la producida"""
        script = DeltaScript(5, (InsertData(b"abc"),))
        with self.assertRaises(DeltaApplicationError):
            DeltaApplier().apply(b"", script)
        script = DeltaScript(2, (InsertData(b"abc"),))
        with self.assertRaises(DeltaApplicationError):
            DeltaApplier().apply(b"", script)

    def test_digest_mismatch(self):
        """Test: digest del target incorrecto"""
        _, delta = make_delta()
        forged = dataclasses.replace(delta, target_digest=b"\x00" * 16)
        with self.assertRaises(DeltaApplicationError):
            DeltaApplier().apply(BASIS, forged)

    def test_digest_check_disabled(self):
        """Test: verify_target_digest=False omite la comprobación"""
        _, delta = make_delta()
        forged = dataclasses.replace(delta, target_digest=b"\x00" * 16)
        self.assertEqual(DeltaApplier(verify_target_digest=False).apply(BASIS, forged), TARGET)
        Config.VERIFY_TARGET_DIGEST = False
        self.assertEqual(DeltaApplier().apply(BASIS, forged), TARGET)

    def test_wrong_basis_detected_by_digest(self):
        """Test: base distinta de igual longitud detectada por el digest"""
        _, delta = make_delta()
        with self.assertRaises(DeltaApplicationError):
            DeltaApplier().apply(b"abcdefgh", delta)


class TestBasisVerification(unittest.TestCase):
    """Tests de verificación de la base contra su firma"""

    def test_matching_basis(self):
        """Test: base correcta pasa la verificación"""
        sig, delta = make_delta()
        self.assertEqual(DeltaApplier().apply(BASIS, delta, signature=sig), TARGET)

    def test_signature_length_differs_from_delta(self):
        """Test: firma de otra base"""
        _, delta = make_delta()
        other = SignatureBuilder(block_size=4).build(b"ABCDEFGHIJ")
        with self.assertRaises(BasisMismatchError):
            DeltaApplier().apply(BASIS, delta, signature=other)

    def test_live_length_differs(self):
        """Test: base real de longitud distinta a la firma"""
        sig, delta = make_delta()
        with self.assertRaises(BasisMismatchError):
            DeltaApplier().apply(b"ABCDEFG", delta, signature=sig)

    def test_block_content_differs(self):
        """Test: bloque copiado con contenido distinto"""
        sig, delta = make_delta()
        with self.assertRaises(BasisMismatchError):
            DeltaApplier().apply(b"ABCDEFGZ", delta, signature=sig)

    def test_uncopied_block_not_checked(self):
        """Test: solo se verifican bloques cubiertos por una copia"""
        sig = SignatureBuilder(block_size=4).build(BASIS)
        delta = DeltaBuilder(sig).build(b"ABCDxyz")
        self.assertEqual(delta.instructions, (CopyBlock(0, 4), InsertData(b"xyz")))
        self.assertEqual(DeltaApplier().apply(b"ABCDzzzz", delta, signature=sig), b"ABCDxyz")


class TestFileApply(unittest.TestCase):
    """Tests con bases en disco"""

    def setUp(self):
        """Crear directorio temporal para tests"""
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        """Limpiar directorio temporal"""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_large_file_round_trip(self):
        """Test: base en archivo mayor que CHUNK_SIZE"""
        basis = os.urandom(300 * 1024)
        target = basis[:1000] + b"inserted" + basis[1000:200000] + basis[250000:]
        path = os.path.join(self.test_dir, "basis.bin")
        with open(path, "wb") as f:
            f.write(basis)

        with FileDataSource(path) as source:
            sig = SignatureBuilder(block_size=2048).build(source)
        delta = DeltaBuilder(sig).build(target)
        self.assertLess(delta.inserted_bytes, 4 * 2048)

        with FileDataSource(path) as source:
            self.assertEqual(DeltaApplier().apply(source, delta, signature=sig), target)


if __name__ == '__main__':
    unittest.main()
