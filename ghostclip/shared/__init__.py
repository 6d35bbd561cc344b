"""
#WHERE
    Imported by every stage module (M1–M5), sessions.py, main.py and tests.

#WHAT
    Shared data model, option dataclasses, error kinds and constants.

#INPUT
    None (definitions only).

#OUTPUT
    Transform, SubPartMeta, ActivityInterval, RangeBounds, Sample, Clip,
    ClipSetHeader, ClipSet; RecordOptions, PlaybackOptions, FileOptions;
    CompressionMethod, QuantizationMethod; ClipError and its subclasses.
"""

from .constants import OPEN_END, KINDA_SMALL_NUMBER
from .errors import (
    ClipError,
    InsufficientSamples,
    InvalidInterval,
    CompressionFailure,
    DecompressionFailure,
    RangeUnavailable,
    TruncatedFile,
    RuntimeVersionMismatch,
)
from .models import (
    Transform,
    SubPartKind,
    MaterialParameters,
    SubPartMeta,
    ActivityInterval,
    RangeBounds,
    Sample,
    Clip,
    ClipSetHeader,
    ClipSet,
)
from .options import (
    CompressionMethod,
    QuantizationMethod,
    RecordOptions,
    PlaybackOptions,
    FileOptions,
)

__all__ = [
    "OPEN_END",
    "KINDA_SMALL_NUMBER",
    "ClipError",
    "InsufficientSamples",
    "InvalidInterval",
    "CompressionFailure",
    "DecompressionFailure",
    "RangeUnavailable",
    "TruncatedFile",
    "RuntimeVersionMismatch",
    "Transform",
    "SubPartKind",
    "MaterialParameters",
    "SubPartMeta",
    "ActivityInterval",
    "RangeBounds",
    "Sample",
    "Clip",
    "ClipSetHeader",
    "ClipSet",
    "CompressionMethod",
    "QuantizationMethod",
    "RecordOptions",
    "PlaybackOptions",
    "FileOptions",
]
