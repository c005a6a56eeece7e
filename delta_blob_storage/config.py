# -*- coding: utf-8 -*-
"""
Configuration, constants and logging for delta-blob-storage.
"""

from __future__ import annotations

import logging
from typing import ClassVar, Dict, Optional

# ============================================================================
# CONSTANTS
# ============================================================================

# Block sizes
MAX_BLOCK_SIZE = 16 * 1024 * 1024  # 16 MiB upper bound for signature blocks
DEFAULT_BLOCK_SIZE = 2048
CHUNK_SIZE = 64 * 1024  # 64KB chunk for basis copies during apply

# Wire format magics and version
SIGNATURE_MAGIC = b"DBSG"
DELTA_MAGIC = b"DBDL"
COMPRESSED_MAGIC = b"DBZ"
WIRE_VERSION = 1

# Default container used when an identifier has no "/" separator
DEFAULT_CONTAINER = "default"


# ============================================================================
# GLOBAL CONFIGURATION - Performance and behavior tuning
# ============================================================================

class Config:
    """
    Global configuration for delta-blob-storage behavior.

    Every component accepts explicit constructor arguments; these values are
    only consulted when an argument is omitted.

    Attributes:
        DEFAULT_BLOCK_SIZE (int): Block size for new signatures
        DEFAULT_CONTAINER (str): Container prepended to bare identifiers
        STRONG_CHECKSUM (str): Strong checksum algorithm name for signatures
        TARGET_DIGEST (str): Algorithm for the whole-target digest in deltas
        CHUNK_SIZE_STREAMING (int): Read size when streaming a target
        MAX_BLOB_SIZE_IN_MEMORY (int): Largest blob the store buffers in memory
        COLLECT_STATS (bool): Attach matching statistics to delta scripts
        VERIFY_TARGET_DIGEST (bool): Check the target digest after apply
        COMPRESSION (str): At-rest compression for CompressedBlobBackend
        COMPRESSION_LEVEL (Optional[int]): Level override (None = default)
        USE_COLORS (bool): Enable colored CLI output (auto-detected)
        VERBOSE_LOGGING (bool): Enable INFO-level logging

    Example:
        >>> Config.VERBOSE_LOGGING = True
        >>> Config.COLLECT_STATS = True
        >>> Config.reset_defaults()  # Reset all to defaults
    """
    # Algorithm settings
    DEFAULT_BLOCK_SIZE: ClassVar[int] = DEFAULT_BLOCK_SIZE
    STRONG_CHECKSUM: ClassVar[str] = "sha256"
    TARGET_DIGEST: ClassVar[str] = "xxh128"
    VERIFY_TARGET_DIGEST: ClassVar[bool] = True

    # Storage settings
    DEFAULT_CONTAINER: ClassVar[str] = DEFAULT_CONTAINER
    CHUNK_SIZE_STREAMING: ClassVar[int] = 1024 * 1024  # 1MB chunks for streaming
    MAX_BLOB_SIZE_IN_MEMORY: ClassVar[int] = 256 * 1024 * 1024
    COMPRESSION: ClassVar[str] = "none"
    COMPRESSION_LEVEL: ClassVar[Optional[int]] = None

    # UI settings
    USE_COLORS: ClassVar[bool] = True
    VERBOSE_LOGGING: ClassVar[bool] = False

    # Statistics collection (hash hits, false alarms, matches)
    COLLECT_STATS: ClassVar[bool] = False

    @classmethod
    def reset_defaults(cls) -> None:
        """Reset all configuration to default values."""
        defaults: Dict[str, object] = {
            "DEFAULT_BLOCK_SIZE": DEFAULT_BLOCK_SIZE,
            "STRONG_CHECKSUM": "sha256",
            "TARGET_DIGEST": "xxh128",
            "VERIFY_TARGET_DIGEST": True,
            "DEFAULT_CONTAINER": DEFAULT_CONTAINER,
            "CHUNK_SIZE_STREAMING": 1024 * 1024,
            "MAX_BLOB_SIZE_IN_MEMORY": 256 * 1024 * 1024,
            "COMPRESSION": "none",
            "COMPRESSION_LEVEL": None,
            "USE_COLORS": True,
            "VERBOSE_LOGGING": False,
            "COLLECT_STATS": False,
        }
        for name, value in defaults.items():
            setattr(cls, name, value)


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

logger = logging.getLogger('delta-blob-storage')
logger.setLevel(logging.INFO if Config.VERBOSE_LOGGING else logging.WARNING)


def configure_logging(verbose: bool = False) -> None:
    """
    Install a basic stderr handler and set the package log level.

    Library code never calls this; the CLI does.

    Args:
        verbose: Log at INFO instead of WARNING
    """
    level = logging.INFO if (verbose or Config.VERBOSE_LOGGING) else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.setLevel(level)
