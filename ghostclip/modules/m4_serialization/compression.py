"""Byte-buffer compression keyed by CompressionMethod.  NONE is a copy passthrough."""

from __future__ import annotations

import gzip
import logging
import zlib
from typing import Callable, Dict

import zstandard

from ghostclip.shared.errors import CompressionFailure, DecompressionFailure
from ghostclip.shared.options import CompressionMethod

log = logging.getLogger(__name__)


def _zstd_compress(data: bytes) -> bytes:
    return zstandard.ZstdCompressor(level=3, write_content_size=True).compress(data)


def _zstd_decompress(data: bytes, expected: int) -> bytes:
    return zstandard.ZstdDecompressor().decompress(data, max_output_size=max(expected, 1))


_COMPRESSORS: Dict[CompressionMethod, Callable[[bytes], bytes]] = {
    CompressionMethod.ZLIB: zlib.compress,
    CompressionMethod.GZIP: lambda data: gzip.compress(data, mtime=0),
    CompressionMethod.ZSTD: _zstd_compress,
}

_DECOMPRESSORS: Dict[CompressionMethod, Callable[[bytes, int], bytes]] = {
    CompressionMethod.ZLIB: lambda data, expected: zlib.decompress(data),
    CompressionMethod.GZIP: lambda data, expected: gzip.decompress(data),
    CompressionMethod.ZSTD: _zstd_decompress,
}

_LIBRARY_ERRORS = (zlib.error, OSError, EOFError, zstandard.ZstdError)


def compress(data: bytes, method: CompressionMethod) -> bytes:
    """Raises CompressionFailure for unknown methods or library errors."""
    if method == CompressionMethod.NONE:
        return bytes(data)
    fn = _COMPRESSORS.get(method)
    if fn is None:
        raise CompressionFailure(f"Unsupported compression method: {method!r}")
    try:
        out = fn(bytes(data))
    except _LIBRARY_ERRORS as exc:
        raise CompressionFailure(f"{CompressionMethod(method).name} compress failed: {exc}") from exc
    log.debug("compressed %d → %d bytes (%s)", len(data), len(out), CompressionMethod(method).name)
    return out


def decompress(data: bytes, expected_size: int, method: CompressionMethod) -> bytes:
    """Raises DecompressionFailure on corrupt input or a size mismatch."""
    if method == CompressionMethod.NONE:
        return bytes(data)
    fn = _DECOMPRESSORS.get(method)
    if fn is None:
        raise DecompressionFailure(f"Unsupported compression method: {method!r}")
    try:
        out = fn(bytes(data), expected_size)
    except _LIBRARY_ERRORS as exc:
        raise DecompressionFailure(f"{CompressionMethod(method).name} decompress failed: {exc}") from exc
    if len(out) != expected_size:
        raise DecompressionFailure(
            f"{CompressionMethod(method).name} produced {len(out)} bytes, expected {expected_size}"
        )
    return out
