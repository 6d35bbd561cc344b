"""Recording, playback and file option dataclasses plus their enums."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List

from .constants import DEFAULT_GROUP_NAME, DEFAULT_MAX_RECORD_TIME, DEFAULT_SAMPLING_INTERVAL


class CompressionMethod(IntEnum):
    NONE = 0
    ZLIB = 1
    GZIP = 2
    ZSTD = 3


class QuantizationMethod(IntEnum):
    NONE = 0
    STANDARD_HIGH = 1
    STANDARD_MEDIUM = 2
    STANDARD_LOW = 3


@dataclass
class RecordOptions:
    group_name: str = DEFAULT_GROUP_NAME
    file_name: str = ""                                   # empty → "<group>-<timestamp>"
    tags: List[str] = field(default_factory=list)         # searchable via has_all_tags()
    max_record_time: float = DEFAULT_MAX_RECORD_TIME      # seconds kept in the ring buffer
    sampling_interval: float = DEFAULT_SAMPLING_INTERVAL  # seconds between samples
    save_immediately_if_group_empty: bool = False         # stop+save when last entity leaves

    @property
    def capacity(self) -> int:
        """Ring buffer capacity: ceil(max_record_time / sampling_interval) + 1, at least 2."""
        return max(math.ceil(self.max_record_time / self.sampling_interval) + 1, 2)

    def validate(self) -> None:
        if self.max_record_time <= 0:
            raise ValueError(f"max_record_time must be positive, got {self.max_record_time}")
        if self.sampling_interval <= 0:
            raise ValueError(f"sampling_interval must be positive, got {self.sampling_interval}")


@dataclass
class PlaybackOptions:
    playback_rate: float = 1.0   # negative plays backwards
    looping: bool = False

    def validate(self) -> None:
        if self.playback_rate == 0:
            raise ValueError("playback_rate must be non-zero")


@dataclass
class FileOptions:
    compression: CompressionMethod = CompressionMethod.ZLIB
    quantization: QuantizationMethod = QuantizationMethod.STANDARD_MEDIUM
