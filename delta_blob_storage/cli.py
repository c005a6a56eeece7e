# -*- coding: utf-8 -*-
"""
Command line interface for delta-blob-storage.

Usage:
    delta-blob signature BASIS -o SIG [--block-size N] [--checksum NAME]
    delta-blob delta SIG TARGET -o DELTA [--aggregate]
    delta-blob patch BASIS DELTA -o OUT [--signature SIG]
    delta-blob info FILE
    delta-blob put --store DIR ID FILE [--compression ALGO]
    delta-blob get --store DIR ID -o FILE

Exit status is 0 on success, otherwise the numeric code of the error
(see delta_blob_storage.errors); 130 when interrupted.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import tempfile
import time
import traceback
from typing import Any, Callable, List, Optional

from . import __version__
from .backends import BlobBackend, CompressedBlobBackend, FileBlobBackend
from .checksums import ChecksumType
from .compression import CompressionType
from .config import Config, configure_logging
from .delta import DeltaBuilder
from .errors import DeltaStorageError, InvalidArgumentError, StorageIOError
from .patch import DeltaApplier
from .signature import SignatureBuilder
from .sources import FileDataSource
from .store import BlobVersionStore
from .utils import ProgressCallback, format_size, format_time
from .wire import decode_delta, decode_signature, detect_kind, encode_delta, encode_signature


# ============================================================================
# TERMINAL OUTPUT
# ============================================================================

class Colors:
    """
    ANSI color helpers for terminal output.

    Automatically disabled on non-TTY terminals (pipes, redirects) or when
    Config.USE_COLORS = False.

    Example:
        >>> print(Colors.success("Signature saved"))
        [OK] Signature saved
    """
    _RESET = '\033[0m'
    _BOLD = '\033[1m'
    _RED = '\033[91m'
    _GREEN = '\033[92m'
    _YELLOW = '\033[93m'
    _BLUE = '\033[94m'

    @classmethod
    def _is_enabled(cls) -> bool:
        if not Config.USE_COLORS:
            return False
        return hasattr(sys.stdout, 'isatty') and sys.stdout.isatty()

    @classmethod
    def success(cls, text: str) -> str:
        if cls._is_enabled():
            return f"{cls._GREEN}✓{cls._RESET} {text}"
        return f"[OK] {text}"

    @classmethod
    def error(cls, text: str) -> str:
        if cls._is_enabled():
            return f"{cls._RED}✗{cls._RESET} {text}"
        return f"[ERROR] {text}"

    @classmethod
    def warning(cls, text: str) -> str:
        if cls._is_enabled():
            return f"{cls._YELLOW}⚠{cls._RESET} {text}"
        return f"[WARN] {text}"

    @classmethod
    def info(cls, text: str) -> str:
        if cls._is_enabled():
            return f"{cls._BLUE}ℹ{cls._RESET} {text}"
        return f"[INFO] {text}"

    @classmethod
    def bold(cls, text: str) -> str:
        if cls._is_enabled():
            return f"{cls._BOLD}{text}{cls._RESET}"
        return text


def _progress_printer(label: str) -> ProgressCallback:
    """Progress callback that redraws a percentage line on stderr."""
    state = {'last': -1}

    def report(done: int, total: int) -> None:
        percent = 100 if total <= 0 else min(100, done * 100 // total)
        if percent == state['last']:
            return
        state['last'] = percent
        end = "\n" if percent >= 100 else ""
        print(f"\r  {label}: {percent:3d}% ({format_size(done)})", end=end, file=sys.stderr, flush=True)

    return report


def _write_output(path: str, writer: Callable[[Any], Any]) -> None:
    """Write through a temporary file in the destination directory, replacing ``path`` on success."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix='.delta-blob-', dir=directory)
    try:
        with os.fdopen(fd, 'wb') as tmp:
            writer(tmp)
        os.replace(tmp_path, path)
    except BaseException:
        os.unlink(tmp_path)
        raise


def _read_file(path: str) -> bytes:
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise StorageIOError(f"Cannot read {path}: {e}")


def _progress(args: Any, label: str) -> Optional[ProgressCallback]:
    return _progress_printer(label) if getattr(args, 'progress', False) and not args.quiet else None


# ============================================================================
# COMMANDS
# ============================================================================

def cli_signature(args: Any) -> int:
    """Compute the signature of a basis file."""
    start_time = time.time()
    builder = SignatureBuilder(block_size=args.block_size, checksum_type=args.checksum)

    if not args.quiet:
        print(Colors.info(f"Generating signature for: {Colors.bold(args.basis)}"))
        print(f"  Block size: {builder.block_size:,} bytes")

    with FileDataSource(args.basis) as source:
        signature = builder.build(source, progress=_progress(args, "signature"))
    _write_output(args.output, lambda f: f.write(encode_signature(signature)))

    if not args.quiet:
        print(f"\n{Colors.success(f'Signature saved to: {args.output}')}")
        print(f"  Basis size:   {signature.basis_length:,} bytes")
        print(f"  Blocks:       {signature.num_blocks:,}")
        print(f"  Checksum:     {signature.checksum_type.value}")
        print(f"  Time:         {format_time(time.time() - start_time)}")
    return 0


def cli_delta(args: Any) -> int:
    """Compute the delta of a target file against a stored signature."""
    start_time = time.time()
    signature = decode_signature(_read_file(args.signature))
    builder = DeltaBuilder(signature, aggregate_copies=args.aggregate, collect_stats=args.stats)

    if not args.quiet:
        print("Generating delta:")
        print(f"  Signature: {args.signature}")
        print(f"  Target:    {args.target}")

    with FileDataSource(args.target) as source:
        delta = builder.build(source, progress=_progress(args, "delta"))
    _write_output(args.output, lambda f: f.write(encode_delta(delta)))

    if not args.quiet:
        print(f"\n{Colors.success(f'Delta saved to: {args.output}')}")
        print(f"  Basis size:     {signature.basis_length:,} bytes")
        print(f"  Target size:    {delta.expected_output_length:,} bytes")
        print(f"  Copied bytes:   {delta.copied_bytes:,} ({delta.savings_ratio:.1%})")
        print(f"  Literal bytes:  {delta.inserted_bytes:,}")
        print(f"  Instructions:   {len(delta.instructions)}")
        if delta.stats is not None:
            stats = delta.stats
            print(f"  Hash hits:      {stats.hash_hits:,} ({stats.false_alarms:,} false alarms)")
        print(f"  Time:           {format_time(time.time() - start_time)}")
    return 0


def cli_patch(args: Any) -> int:
    """Rebuild a target from a basis file and a delta file."""
    start_time = time.time()
    delta = decode_delta(_read_file(args.delta))
    signature = decode_signature(_read_file(args.signature)) if args.signature else None

    if not args.quiet:
        print("Applying delta:")
        print(f"  Basis: {args.basis}")
        print(f"  Delta: {args.delta}")

    applier = DeltaApplier()
    with FileDataSource(args.basis) as basis:
        _write_output(args.output, lambda f: applier.apply_to_stream(
            basis, delta, f, signature=signature, progress=_progress(args, "patch")
        ))

    if not args.quiet:
        print(f"\n{Colors.success(f'File reconstructed: {args.output}')}")
        print(f"  Size: {delta.expected_output_length:,} bytes")
        print(f"  Time: {format_time(time.time() - start_time)}")
    return 0


def cli_info(args: Any) -> int:
    """Print a JSON summary of a signature or delta file."""
    data = _read_file(args.file)
    kind = detect_kind(data)
    if kind == 'signature':
        summary = decode_signature(data).to_dict()
        if not args.blocks:
            summary.pop('blocks')
    elif kind == 'delta':
        summary = decode_delta(data).to_dict()
        if not args.blocks:
            summary.pop('instructions')
    else:
        raise InvalidArgumentError(f"{args.file} is neither a signature nor a delta")
    print(json.dumps(summary, indent=2))
    return 0


def _open_store(args: Any) -> BlobVersionStore:
    backend: BlobBackend = FileBlobBackend(args.store)
    compression = getattr(args, 'compression', None)
    # Reads always go through the decorator; headerless blobs pass through unchanged.
    backend = CompressedBlobBackend(backend, compression or CompressionType.NONE)
    return BlobVersionStore(backend)


def cli_put(args: Any) -> int:
    """Store a local file in a directory-backed blob store (create-only)."""
    store = _open_store(args)
    try:
        with open(args.file, 'rb') as f:
            identity = store.write_blob_create_only(args.id, f)
    except OSError as e:
        raise StorageIOError(f"Cannot read {args.file}: {e}")
    if not args.quiet:
        print(Colors.success(f"Stored {args.file} as {identity.path}"))
    return 0


def cli_get(args: Any) -> int:
    """Copy a blob out of a directory-backed blob store."""
    store = _open_store(args)
    data = store.read_blob(args.id)
    _write_output(args.output, lambda f: f.write(data))
    if not args.quiet:
        print(Colors.success(f"Wrote {format_size(len(data))} to {args.output}"))
    return 0


# ============================================================================
# ARGUMENT PARSING
# ============================================================================

def create_parser() -> argparse.ArgumentParser:
    checksum_names = [t.value for t in ChecksumType]
    compression_names = [t.value for t in CompressionType]

    parser = argparse.ArgumentParser(
        prog='delta-blob',
        description='Store blob versions as rsync-style signatures and deltas.',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='enable INFO logging')
    parser.add_argument('--quiet', '-q', action='store_true', help='suppress non-error messages')
    parser.add_argument('--no-color', action='store_true', help='disable colored output')
    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    p = subparsers.add_parser('signature', help='compute the signature of a basis file')
    p.add_argument('basis', help='basis file')
    p.add_argument('-o', '--output', required=True, help='signature output file')
    p.add_argument('--block-size', '-b', type=int, default=None,
                   help=f'block size in bytes (default: {Config.DEFAULT_BLOCK_SIZE})')
    p.add_argument('--checksum', choices=checksum_names, default=None,
                   help=f'strong checksum (default: {Config.STRONG_CHECKSUM})')
    p.add_argument('--progress', action='store_true', help='show progress on stderr')
    p.set_defaults(func=cli_signature)

    p = subparsers.add_parser('delta', help='compute a delta against a signature')
    p.add_argument('signature', help='signature file')
    p.add_argument('target', help='new version of the file')
    p.add_argument('-o', '--output', required=True, help='delta output file')
    p.add_argument('--aggregate', action='store_true', help='merge contiguous copy instructions')
    p.add_argument('--stats', action='store_true', help='collect matching statistics')
    p.add_argument('--progress', action='store_true', help='show progress on stderr')
    p.set_defaults(func=cli_delta)

    p = subparsers.add_parser('patch', help='rebuild a file from basis and delta')
    p.add_argument('basis', help='basis file')
    p.add_argument('delta', help='delta file')
    p.add_argument('-o', '--output', required=True, help='reconstructed output file')
    p.add_argument('--signature', help='verify the basis against this signature first')
    p.add_argument('--progress', action='store_true', help='show progress on stderr')
    p.set_defaults(func=cli_patch)

    p = subparsers.add_parser('info', help='describe a signature or delta file as JSON')
    p.add_argument('file', help='signature or delta file')
    p.add_argument('--blocks', action='store_true', help='include per-block / per-instruction detail')
    p.set_defaults(func=cli_info)

    p = subparsers.add_parser('put', help='store a file in a blob store directory')
    p.add_argument('--store', required=True, help='blob store root directory')
    p.add_argument('--compression', choices=compression_names, default=None,
                   help='compress the blob at rest')
    p.add_argument('id', help='blob identifier (container/key or key)')
    p.add_argument('file', help='file to store')
    p.set_defaults(func=cli_put)

    p = subparsers.add_parser('get', help='read a blob from a blob store directory')
    p.add_argument('--store', required=True, help='blob store root directory')
    p.add_argument('id', help='blob identifier (container/key or key)')
    p.add_argument('-o', '--output', required=True, help='output file')
    p.set_defaults(func=cli_get)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        Exit code (0 for success, the error code otherwise)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    if args.no_color:
        Config.USE_COLORS = False

    try:
        return int(args.func(args))
    except DeltaStorageError as e:
        print(Colors.error(f"{e.kind}: {e}"), file=sys.stderr)
        return e.code
    except KeyboardInterrupt:
        print(Colors.warning("\nOperation cancelled by user"), file=sys.stderr)
        return 130
    except OSError as e:
        print(Colors.error(f"File I/O error: {e}"), file=sys.stderr)
        return StorageIOError.code
    except Exception as e:
        print(Colors.error(f"Unexpected error: {type(e).__name__}: {e}"), file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
