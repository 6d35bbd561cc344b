"""Heap and wall-clock tracing for encode/decode jobs.

``tracemalloc_snapshot(label)`` wraps a block, then logs the elapsed time,
the net heap delta and (at DEBUG) the top allocation sites.  Used around
background saves so large clip sets show up in the log.  Tracing slows every
thread while it runs, so the session manager only turns it on when
``PROFILE_MEMORY=1`` is set::

    with tracemalloc_snapshot("encode group 'arena'"):
        blob = encode_clip_set(clip_set, options)
    # INFO  [prof] encode group 'arena': 12.4 ms, +310 KB (1.20 MB → 1.51 MB)
"""
from __future__ import annotations

import contextlib
import logging
import os
import time
import tracemalloc
from typing import ContextManager, Generator

log = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def profiling_enabled() -> bool:
    return os.environ.get("PROFILE_MEMORY", "0").strip().lower() in _TRUTHY


def maybe_profile(label: str) -> ContextManager[None]:
    """``tracemalloc_snapshot(label)`` when PROFILE_MEMORY is set, else a no-op."""
    if profiling_enabled():
        return tracemalloc_snapshot(label)
    return contextlib.nullcontext()


@contextlib.contextmanager
def tracemalloc_snapshot(label: str, top_n: int = 5) -> Generator[None, None, None]:
    """Log time and heap delta for the enclosed block.  Safe to nest."""
    already_tracing = tracemalloc.is_tracing()
    if not already_tracing:
        tracemalloc.start(10)

    before = tracemalloc.take_snapshot()
    mem_before = sum(s.size for s in before.statistics("filename"))
    t0 = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        after = tracemalloc.take_snapshot()
        mem_after = sum(s.size for s in after.statistics("filename"))
        diff = mem_after - mem_before
        log.info(
            "[prof] %s: %.1f ms, %s%d KB (%.2f MB → %.2f MB)",
            label,
            elapsed_ms,
            "+" if diff >= 0 else "",
            diff // 1024,
            mem_before / 1024 / 1024,
            mem_after / 1024 / 1024,
        )
        for rank, stat in enumerate(after.compare_to(before, "lineno")[:top_n], 1):
            if stat.size_diff:
                site = str(stat.traceback[0]) if stat.traceback else "<unknown>"
                log.debug("[prof]  #%-2d %+8.1f KB  |  %s", rank, stat.size_diff / 1024, site)
        if not already_tracing:
            tracemalloc.stop()
