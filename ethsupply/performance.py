"""Timing of awaitables."""

from __future__ import annotations

import logging
import os
import time
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_perf_enabled() -> bool:
    return os.environ.get("LOG_PERF", "").strip().lower() == "true"


def _format_duration(seconds: float) -> str:
    if seconds >= 1:
        return f"{seconds:.2f}s"
    if seconds >= 1e-3:
        return f"{seconds * 1e3:.2f}ms"
    if seconds >= 1e-6:
        return f"{seconds * 1e6:.2f}µs"
    return f"{seconds * 1e9:.2f}ns"


async def timed(awaitable: Awaitable[T], name: str) -> T:
    """Await and return the result, logging how long it took when LOG_PERF is set."""
    start = time.perf_counter()
    try:
        return await awaitable
    finally:
        if _log_perf_enabled():
            elapsed = time.perf_counter() - start
            logger.debug("%s took %s", name, _format_duration(elapsed))