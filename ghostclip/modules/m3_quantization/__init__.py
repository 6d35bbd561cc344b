"""
Quantization Module (Module 3)
==============================
Range accumulation and the four transform precision tiers.

Example:
    from ghostclip.modules.m3_quantization import compute_ranges, quantize, dequantize

    compute_ranges(clip)
    blob = quantize(t, QuantizationMethod.STANDARD_LOW, clip.ranges)
    back = dequantize(blob, QuantizationMethod.STANDARD_LOW, clip.ranges)
"""

from .ranges import compute_ranges, compute_all_ranges
from .rotation import pack_smallest_three, unpack_smallest_three
from .codec import TransformCodec, get_codec, quantize, dequantize

__all__ = [
    "compute_ranges",
    "compute_all_ranges",
    "pack_smallest_three",
    "unpack_smallest_three",
    "TransformCodec",
    "get_codec",
    "quantize",
    "dequantize",
]
