"""Smallest-three quaternion packing.

The largest-magnitude component is dropped (its index kept in 2 bits) and
reconstructed from unit length; the other three lie in ±1/√2 and are
stored as unsigned fixed point.  With 15 bits each the record fits in 48
bits, with 10 bits each in 32 bits.
"""

from __future__ import annotations

import math

import numpy as np

_LIMIT = 1.0 / math.sqrt(2.0)


def normalize_quat(q: np.ndarray) -> np.ndarray:
    q = np.asarray(q, dtype=np.float64)
    n = float(np.linalg.norm(q))
    if not math.isfinite(n) or n < 1e-12:
        return np.array([0.0, 0.0, 0.0, 1.0])
    return q / n


def pack_smallest_three(q: np.ndarray, bits: int) -> int:
    q = normalize_quat(q)
    largest = int(np.argmax(np.abs(q)))
    if q[largest] < 0:
        q = -q
    max_int = (1 << bits) - 1
    packed = largest
    for i in range(4):
        if i == largest:
            continue
        v = min(max(float(q[i]), -_LIMIT), _LIMIT)
        packed = (packed << bits) | int(round((v + _LIMIT) / (2.0 * _LIMIT) * max_int))
    return packed


def unpack_smallest_three(packed: int, bits: int) -> np.ndarray:
    max_int = (1 << bits) - 1
    rest = []
    for _ in range(3):
        rest.append(((packed & max_int) / max_int) * 2.0 * _LIMIT - _LIMIT)
        packed >>= bits
    rest.reverse()
    largest = packed & 0b11
    dropped = math.sqrt(max(0.0, 1.0 - sum(v * v for v in rest)))
    q = rest[:largest] + [dropped] + rest[largest:]
    return normalize_quat(np.array(q))
