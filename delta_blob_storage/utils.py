# -*- coding: utf-8 -*-
"""
Formatting helpers and cooperative cancellation.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from .errors import OperationCancelledError

# progress(done, total) callback; total is -1 when unknown
ProgressCallback = Callable[[int, int], None]


def format_size(size: int) -> str:
    """
    Format byte size in human-readable format.

    Args:
        size: Size in bytes

    Returns:
        Human-readable string (e.g., "1.23 MB")

    Example:
        >>> format_size(1234567890)
        '1.15 GB'
    """
    value = float(size)
    for unit in ('B', 'KB', 'MB', 'GB', 'TB'):
        if abs(value) < 1024.0:
            return f"{value:.2f} {unit}" if unit != 'B' else f"{int(value)} {unit}"
        value = value / 1024.0
    return f"{value:.2f} PB"


def format_time(seconds: float) -> str:
    """
    Format time duration in human-readable format.

    Example:
        >>> format_time(0.00123)
        '1.23ms'
    """
    if seconds < 0.001:
        return f"{seconds * 1000000:.0f}µs"
    elif seconds < 1.0:
        return f"{seconds * 1000:.2f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    else:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and an engine.

    Engines poll the token between blocks (or instructions) and raise
    OperationCancelledError; no partial result is returned.

    Example:
        >>> token = CancellationToken()
        >>> worker = threading.Thread(target=builder.build, args=(data,),
        ...                           kwargs={'cancel': token})
        >>> token.cancel()
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        """Raise OperationCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise OperationCancelledError(f"{operation} cancelled")


def check_cancelled(token: Optional[CancellationToken], operation: str) -> None:
    """Poll an optional token."""
    if token is not None:
        token.raise_if_cancelled(operation)
