"""
#WHERE
    Used by m4_serialization.framer for every sub-part and bone transform
    in a clip body.

#WHAT
    Fixed-size transform records for the four precision tiers:

        NONE             10 × float64                     80 bytes
        STANDARD_HIGH    loc int32×3 (1/100), rot 48-bit,
                         scale int32×3 (1/10)              30 bytes
        STANDARD_MEDIUM  same, rot 32-bit                  28 bytes
        STANDARD_LOW     loc 11/11/10 in range, rot 32-bit,
                         scale 11/11/10 in range           12 bytes

#INPUT
    Transform (+ RangeBounds for STANDARD_LOW).

#OUTPUT
    bytes of exactly ``codec.size``; decode() gives back a Transform.
"""

from __future__ import annotations

import struct
from typing import Dict, Optional

import numpy as np

from ghostclip.shared.errors import RangeUnavailable
from ghostclip.shared.models import RangeBounds, Transform
from ghostclip.shared.options import QuantizationMethod
from .rotation import normalize_quat, pack_smallest_three, unpack_smallest_three

_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1
_VEC_BITS = (11, 11, 10)

_FULL = struct.Struct("<10d")
_INT3 = struct.Struct("<3i")
_U32 = struct.Struct("<I")


def _fixed(values: np.ndarray, scale: float) -> tuple:
    q = np.clip(np.rint(np.asarray(values) * scale), _INT32_MIN, _INT32_MAX)
    return tuple(int(v) for v in q)


def _pack_interval(values: np.ndarray, mins: np.ndarray, extents: np.ndarray) -> int:
    norm = np.clip((np.asarray(values) - mins) / extents, 0.0, 1.0)
    packed = 0
    for n, bits in zip(norm, _VEC_BITS):
        packed = (packed << bits) | int(round(float(n) * ((1 << bits) - 1)))
    return packed


def _unpack_interval(packed: int, mins: np.ndarray, extents: np.ndarray) -> np.ndarray:
    out = np.empty(3)
    for axis in (2, 1, 0):
        bits = _VEC_BITS[axis]
        max_int = (1 << bits) - 1
        out[axis] = (packed & max_int) / max_int
        packed >>= bits
    return mins + out * extents


class TransformCodec:
    """Base class: one fixed-size record per transform."""

    method: QuantizationMethod
    size: int
    needs_range: bool = False

    def encode(self, transform: Transform, bounds: Optional[RangeBounds] = None) -> bytes:
        raise NotImplementedError

    def decode(self, data: bytes, bounds: Optional[RangeBounds] = None) -> Transform:
        raise NotImplementedError


class FullPrecisionCodec(TransformCodec):
    method = QuantizationMethod.NONE
    size = _FULL.size

    def encode(self, transform, bounds=None):
        return _FULL.pack(*transform.location, *transform.rotation, *transform.scale)

    def decode(self, data, bounds=None):
        v = _FULL.unpack(data)
        return Transform(location=v[0:3], rotation=v[3:7], scale=v[7:10])


class AbsoluteCodec(TransformCodec):
    """Location in 1/100 units, scale in 1/10 units, smallest-three rotation."""

    def __init__(self, method: QuantizationMethod, rotation_bits: int, rotation_bytes: int) -> None:
        self.method = method
        self._rot_bits = rotation_bits
        self._rot_bytes = rotation_bytes
        self.size = _INT3.size * 2 + rotation_bytes

    def encode(self, transform, bounds=None):
        rot = pack_smallest_three(transform.rotation, self._rot_bits)
        return b"".join((
            _INT3.pack(*_fixed(transform.location, 100.0)),
            rot.to_bytes(self._rot_bytes, "little"),
            _INT3.pack(*_fixed(transform.scale, 10.0)),
        ))

    def decode(self, data, bounds=None):
        loc = np.array(_INT3.unpack_from(data, 0), dtype=np.float64) / 100.0
        off = _INT3.size
        rot = unpack_smallest_three(int.from_bytes(data[off:off + self._rot_bytes], "little"), self._rot_bits)
        off += self._rot_bytes
        scale = np.array(_INT3.unpack_from(data, off), dtype=np.float64) / 10.0
        return Transform(location=loc, rotation=rot, scale=scale)


class IntervalCodec(TransformCodec):
    """Location and scale normalised against RangeBounds; 32-bit rotation."""

    method = QuantizationMethod.STANDARD_LOW
    size = _U32.size * 3
    needs_range = True

    def encode(self, transform, bounds=None):
        if bounds is None:
            raise RangeUnavailable("STANDARD_LOW encode needs RangeBounds")
        return b"".join((
            _U32.pack(_pack_interval(transform.location, bounds.position_min, bounds.safe_position_extent())),
            _U32.pack(pack_smallest_three(transform.rotation, 10)),
            _U32.pack(_pack_interval(transform.scale, bounds.scale_min, bounds.safe_scale_extent())),
        ))

    def decode(self, data, bounds=None):
        if bounds is None:
            raise RangeUnavailable("STANDARD_LOW decode needs the RangeBounds used at encode time")
        loc_bits, rot_bits, scale_bits = struct.unpack("<3I", data)
        return Transform(
            location=_unpack_interval(loc_bits, bounds.position_min, bounds.safe_position_extent()),
            rotation=normalize_quat(unpack_smallest_three(rot_bits, 10)),
            scale=_unpack_interval(scale_bits, bounds.scale_min, bounds.safe_scale_extent()),
        )


_CODECS: Dict[QuantizationMethod, TransformCodec] = {
    QuantizationMethod.NONE: FullPrecisionCodec(),
    QuantizationMethod.STANDARD_HIGH: AbsoluteCodec(QuantizationMethod.STANDARD_HIGH, 15, 6),
    QuantizationMethod.STANDARD_MEDIUM: AbsoluteCodec(QuantizationMethod.STANDARD_MEDIUM, 10, 4),
    QuantizationMethod.STANDARD_LOW: IntervalCodec(),
}


def get_codec(method: QuantizationMethod) -> TransformCodec:
    codec = _CODECS.get(QuantizationMethod(method))
    if codec is None:
        raise ValueError(f"Unknown quantization method: {method!r}")
    return codec


def quantize(transform: Transform, method: QuantizationMethod, bounds: Optional[RangeBounds] = None) -> bytes:
    return get_codec(method).encode(transform, bounds)


def dequantize(data: bytes, method: QuantizationMethod, bounds: Optional[RangeBounds] = None) -> Transform:
    return get_codec(method).decode(data, bounds)
