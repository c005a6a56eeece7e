#!/usr/bin/env python
"""
test_end_to_end.py - End-to-End Integration Tests
==================================================

Tests que simulan el ciclo de vida completo de un blob versionado:
firma de la versión base -> delta de la versión nueva -> serialización ->
reconstrucción, tanto sobre archivos como sobre el BlobVersionStore.
"""

import os
import random
import shutil
import tempfile
import threading
import unittest

from delta_blob_storage import (
    BlobAlreadyExistsError,
    BlobVersionStore,
    CancellationToken,
    CompressedBlobBackend,
    DeltaApplier,
    DeltaBuilder,
    FileBlobBackend,
    FileDataSource,
    InMemoryBlobBackend,
    OperationCancelledError,
    SignatureBuilder,
    decode_delta,
    decode_signature,
    encode_delta,
    encode_signature,
)


def random_bytes(rng, n):
    return bytes(rng.randrange(256) for _ in range(n))


class TestEndToEndSync(unittest.TestCase):
    """Tests de sincronización de archivos end-to-end"""

    def setUp(self):
        """Crear directorio temporal para tests"""
        self.test_dir = tempfile.mkdtemp()
        self.rng = random.Random(2024)

    def tearDown(self):
        """Limpiar directorio temporal"""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def write(self, name, data):
        path = os.path.join(self.test_dir, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def sync(self, basis, target, block_size):
        """Ciclo completo con serialización intermedia."""
        sig_bytes = encode_signature(SignatureBuilder(block_size=block_size).build(basis))
        delta_bytes = encode_delta(DeltaBuilder(decode_signature(sig_bytes)).build(target))
        return DeltaApplier().apply(basis, decode_delta(delta_bytes)), delta_bytes

    def test_identical_files_no_literals(self):
        """Test: Archivos idénticos no transfieren datos literales"""
        data = b"Hello, World!" * 1000
        sig = SignatureBuilder(block_size=1024).build(data)
        delta = DeltaBuilder(sig).build(data)
        self.assertEqual(delta.inserted_bytes, 0)
        self.assertEqual(delta.savings_ratio, 1.0)

    def test_small_modification_minimal_transfer(self):
        """Test: Modificación pequeña transfiere poco"""
        basis = random_bytes(self.rng, 64 * 1024)
        target = basis[:30000] + b"MODIFIED" + basis[30008:]
        result, delta_bytes = self.sync(basis, target, 1024)
        self.assertEqual(result, target)
        self.assertLess(len(delta_bytes), 4 * 1024)

    def test_insertion_at_start(self):
        """Test: Inserción al principio desplaza todo el contenido"""
        basis = random_bytes(self.rng, 20000)
        target = b"new header bytes" + basis
        result, _ = self.sync(basis, target, 512)
        self.assertEqual(result, target)
        delta = DeltaBuilder(SignatureBuilder(block_size=512).build(basis)).build(target)
        self.assertEqual(delta.inserted_bytes, 16)

    def test_deletion_and_append(self):
        """Test: Borrado en medio y datos añadidos al final"""
        basis = random_bytes(self.rng, 20000)
        target = basis[:5000] + basis[9000:] + b"tail" * 100
        result, _ = self.sync(basis, target, 256)
        self.assertEqual(result, target)

    def test_completely_different(self):
        """Test: Contenido sin relación se envía como un único literal"""
        basis = random_bytes(self.rng, 8000)
        target = random_bytes(self.rng, 6000)
        sig = SignatureBuilder(block_size=512).build(basis)
        delta = DeltaBuilder(sig).build(target)
        self.assertEqual(delta.num_inserts, 1)
        self.assertEqual(delta.num_copies, 0)
        self.assertEqual(DeltaApplier().apply(basis, delta), target)

    def test_files_on_disk(self):
        """Test: Firma, delta y reconstrucción leyendo desde disco"""
        basis = random_bytes(self.rng, 150000)
        target = basis[:70000] + random_bytes(self.rng, 300) + basis[70000:]
        basis_path = self.write("basis.bin", basis)
        target_path = self.write("target.bin", target)

        with FileDataSource(basis_path) as source:
            sig = SignatureBuilder(block_size=4096).build(source)
        with FileDataSource(target_path) as source:
            delta = DeltaBuilder(sig).build(source)
        out_path = os.path.join(self.test_dir, "out.bin")
        with FileDataSource(basis_path) as source, open(out_path, 'wb') as out:
            written = DeltaApplier().apply_to_stream(source, delta, out, signature=sig)
        self.assertEqual(written, len(target))
        with open(out_path, 'rb') as f:
            self.assertEqual(f.read(), target)

    def test_cancel_from_another_thread(self):
        """Test: Cancelación desde otro hilo durante el cálculo del delta"""
        basis = random_bytes(self.rng, 4096)
        target = random_bytes(self.rng, 200000)
        sig = SignatureBuilder(block_size=16).build(basis)
        token = CancellationToken()
        errors = []

        def progress(done, total):
            if done > 1000:
                token.cancel()

        def worker():
            try:
                DeltaBuilder(sig).build(target, cancel=token, progress=progress)
            except OperationCancelledError as e:
                errors.append(e)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].code, 130)


class TestVersionChain(unittest.TestCase):
    """Tests de una cadena de versiones en el BlobVersionStore"""

    def setUp(self):
        """Crear directorio temporal para tests"""
        self.test_dir = tempfile.mkdtemp()
        self.rng = random.Random(99)

    def tearDown(self):
        """Limpiar directorio temporal"""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def run_chain(self, store):
        versions = [random_bytes(self.rng, 30000)]
        for _ in range(4):
            prev = bytearray(versions[-1])
            pos = self.rng.randrange(len(prev))
            prev[pos:pos + 50] = random_bytes(self.rng, 80)
            versions.append(bytes(prev))

        store.write_blob_create_only("chain/v0", versions[0])
        for n in range(1, len(versions)):
            store.put_signature(f"chain/v{n - 1}", f"chain/v{n - 1}.sig")
            store.put_delta(f"chain/v{n - 1}.sig", versions[n], f"chain/v{n}.delta")
            rebuilt = store.reconstruct(
                f"chain/v{n - 1}", f"chain/v{n}.delta",
                output_id=f"chain/v{n}", signature_id=f"chain/v{n - 1}.sig",
            )
            self.assertEqual(rebuilt, versions[n])

        for n, expected in enumerate(versions):
            self.assertEqual(store.read_blob(f"chain/v{n}"), expected)

    def test_chain_in_memory(self):
        """Test: Cadena de cinco versiones en memoria"""
        self.run_chain(BlobVersionStore(InMemoryBlobBackend(), block_size=256))

    def test_chain_on_disk_compressed(self):
        """Test: Cadena de cinco versiones en disco con lz4"""
        backend = CompressedBlobBackend(FileBlobBackend(os.path.join(self.test_dir, "blobs")), "lz4")
        self.run_chain(BlobVersionStore(backend, block_size=512, strong_checksum="blake2b"))

    def test_versions_are_immutable(self):
        """Test: Ninguna versión de la cadena puede sobrescribirse"""
        store = BlobVersionStore(InMemoryBlobBackend(), block_size=256)
        self.run_chain(store)
        with self.assertRaises(BlobAlreadyExistsError):
            store.write_blob_create_only("chain/v2", b"rewrite")


if __name__ == '__main__':
    unittest.main()
