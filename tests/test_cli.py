#!/usr/bin/env python
"""
Tests de la interfaz de línea de comandos (delta-blob).
"""

import contextlib
import io
import json
import os
import shutil
import tempfile
import unittest

from delta_blob_storage import Config, decode_delta, decode_signature
from delta_blob_storage.cli import create_parser, main


class CLITestCase(unittest.TestCase):
    """Base con directorio temporal y helpers"""

    def setUp(self):
        """Crear directorio temporal para tests"""
        self.test_dir = tempfile.mkdtemp()
        self.v1 = self.write("v1.bin", b"".join(f"record {i:05d}\n".encode() for i in range(3000)))
        self.v2 = self.write(
            "v2.bin",
            b"".join(f"record {i:05d}\n".encode() for i in range(3000) if i % 500 != 7) + b"appended\n",
        )

    def tearDown(self):
        """Limpiar directorio temporal"""
        shutil.rmtree(self.test_dir, ignore_errors=True)
        Config.reset_defaults()

    def path(self, name):
        return os.path.join(self.test_dir, name)

    def write(self, name, data):
        with open(self.path(name), 'wb') as f:
            f.write(data)
        return self.path(name)

    def read(self, name):
        with open(self.path(name), 'rb') as f:
            return f.read()

    def run_cli(self, *argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            code = main(list(argv))
        return code, stdout.getvalue(), stderr.getvalue()


class TestCLIEngine(CLITestCase):
    """Tests de signature / delta / patch / info"""

    def test_full_cycle(self):
        """Test: signature -> delta -> patch reconstruye v2"""
        sig, delta, out = self.path("v1.sig"), self.path("v2.delta"), self.path("v2.out")
        self.assertEqual(self.run_cli("-q", "signature", self.v1, "-o", sig, "-b", "256")[0], 0)
        self.assertEqual(self.run_cli("-q", "delta", sig, self.v2, "-o", delta)[0], 0)
        self.assertEqual(self.run_cli("-q", "patch", self.v1, delta, "-o", out, "--signature", sig)[0], 0)
        self.assertEqual(self.read("v2.out"), self.read("v2.bin"))
        self.assertEqual(decode_signature(self.read("v1.sig")).block_size, 256)
        self.assertLess(os.path.getsize(delta), os.path.getsize(self.v2) // 4)

    def test_verbose_output(self):
        """Test: salida informativa sin -q"""
        sig = self.path("v1.sig")
        code, out, _ = self.run_cli("--no-color", "signature", self.v1, "-o", sig, "--checksum", "blake2b")
        self.assertEqual(code, 0)
        self.assertIn("[OK] Signature saved to:", out)
        self.assertIn("blake2b", out)

    def test_delta_options(self):
        """Test: --aggregate y --stats"""
        sig, delta = self.path("v1.sig"), self.path("v1.delta")
        self.run_cli("-q", "signature", self.v1, "-o", sig, "-b", "512")
        code, out, _ = self.run_cli("--no-color", "delta", sig, self.v1, "-o", delta, "--aggregate", "--stats")
        self.assertEqual(code, 0)
        self.assertIn("Hash hits:", out)
        self.assertEqual(len(decode_delta(self.read("v1.delta")).instructions), 1)

    def test_info(self):
        """Test: info imprime JSON de firmas y deltas"""
        sig, delta = self.path("v1.sig"), self.path("v2.delta")
        self.run_cli("-q", "signature", self.v1, "-o", sig, "-b", "1024")
        self.run_cli("-q", "delta", sig, self.v2, "-o", delta)

        code, out, _ = self.run_cli("info", sig)
        self.assertEqual(code, 0)
        summary = json.loads(out)
        self.assertEqual(summary['type'], 'signature')
        self.assertEqual(summary['block_size'], 1024)
        self.assertNotIn('blocks', summary)

        code, out, _ = self.run_cli("info", delta, "--blocks")
        summary = json.loads(out)
        self.assertEqual(summary['type'], 'delta')
        self.assertEqual(summary['expected_output_length'], os.path.getsize(self.v2))
        self.assertIn('instructions', summary)

    def test_info_unknown_file(self):
        """Test: info sobre un archivo que no es firma ni delta"""
        code, _, err = self.run_cli("info", self.v1)
        self.assertEqual(code, 2)
        self.assertIn("InvalidArgument", err)

    def test_missing_input(self):
        """Test: archivo inexistente devuelve StorageIOFailed (18)"""
        code, _, err = self.run_cli("-q", "signature", self.path("nope"), "-o", self.path("x.sig"))
        self.assertEqual(code, 18)
        self.assertIn("StorageIOFailed", err)
        self.assertFalse(os.path.exists(self.path("x.sig")))

    def test_invalid_block_size(self):
        """Test: tamaño de bloque inválido devuelve InvalidArgument (2)"""
        self.assertEqual(self.run_cli("-q", "signature", self.v1, "-o", self.path("x.sig"), "-b", "0")[0], 2)

    def test_corrupt_signature(self):
        """Test: firma corrupta devuelve InvalidSignature (14)"""
        bad = self.write("bad.sig", b"DBSG\x01garbage")
        self.assertEqual(self.run_cli("-q", "delta", bad, self.v2, "-o", self.path("x.delta"))[0], 14)

    def test_patch_wrong_basis(self):
        """Test: base equivocada no deja archivo de salida"""
        sig, delta, out = self.path("v1.sig"), self.path("v2.delta"), self.path("out.bin")
        self.run_cli("-q", "signature", self.v1, "-o", sig)
        self.run_cli("-q", "delta", sig, self.v2, "-o", delta)
        other = self.write("other.bin", bytes(len(self.read("v1.bin"))))

        self.assertEqual(self.run_cli("-q", "patch", other, delta, "-o", out)[0], 17)
        self.assertFalse(os.path.exists(out))
        self.assertEqual(self.run_cli("-q", "patch", other, delta, "-o", out, "--signature", sig)[0], 16)
        self.assertFalse(os.path.exists(out))
        self.assertEqual(
            [name for name in os.listdir(self.test_dir) if name.startswith('.delta-blob-')], []
        )


class TestCLIStore(CLITestCase):
    """Tests de put / get sobre un directorio de blobs"""

    def test_put_get(self):
        """Test: put y get con compresión"""
        store = self.path("blobs")
        self.assertEqual(self.run_cli("-q", "put", "--store", store, "--compression", "zstd", "logs/v1", self.v1)[0], 0)
        self.assertTrue(os.path.isfile(os.path.join(store, "logs", "v1")))
        self.assertEqual(self.run_cli("-q", "get", "--store", store, "logs/v1", "-o", self.path("copy"))[0], 0)
        self.assertEqual(self.read("copy"), self.read("v1.bin"))

    def test_default_container(self):
        """Test: identificador sin '/' va al contenedor por defecto"""
        store = self.path("blobs")
        self.run_cli("-q", "put", "--store", store, "plain", self.v2)
        self.assertTrue(os.path.isfile(os.path.join(store, "default", "plain")))

    def test_put_twice(self):
        """Test: segunda escritura devuelve AlreadyExists (12)"""
        store = self.path("blobs")
        self.assertEqual(self.run_cli("-q", "put", "--store", store, "a/b", self.v1)[0], 0)
        code, _, err = self.run_cli("-q", "put", "--store", store, "a/b", self.v1)
        self.assertEqual(code, 12)
        self.assertIn("AlreadyExists", err)

    def test_get_missing(self):
        """Test: blob inexistente devuelve NotFound (11)"""
        code, _, _ = self.run_cli("-q", "get", "--store", self.path("blobs"), "a/missing", "-o", self.path("x"))
        self.assertEqual(code, 11)
        self.assertFalse(os.path.exists(self.path("x")))

    def test_put_missing_file(self):
        """Test: archivo local inexistente devuelve StorageIOFailed (18)"""
        code, _, _ = self.run_cli("-q", "put", "--store", self.path("blobs"), "a/b", self.path("nope"))
        self.assertEqual(code, 18)


class TestParser(unittest.TestCase):
    """Tests del parser de argumentos"""

    def test_subcommand_required(self):
        """Test: sin subcomando argparse termina con error"""
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                create_parser().parse_args([])

    def test_defaults(self):
        """Test: valores por defecto de signature"""
        args = create_parser().parse_args(["signature", "basis", "-o", "sig"])
        self.assertIsNone(args.block_size)
        self.assertIsNone(args.checksum)
        self.assertFalse(args.quiet)


if __name__ == '__main__':
    unittest.main()
