"""Split an encoded blob into indexed transfer chunks and put it back together."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from ghostclip.shared.constants import TRANSFER_CHUNK_SIZE
from ghostclip.shared.errors import TruncatedFile

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chunk:
    index: int
    total: int
    data: bytes


def split_into_chunks(blob: bytes, chunk_size: int = TRANSFER_CHUNK_SIZE) -> List[Chunk]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    total = max(1, math.ceil(len(blob) / chunk_size))
    return [Chunk(i, total, bytes(blob[i * chunk_size:(i + 1) * chunk_size])) for i in range(total)]


class ChunkAssembler:
    """Collects chunks in any order; assemble() fails if one is missing."""

    def __init__(self, total: int, expected_size: Optional[int] = None) -> None:
        if total < 1:
            raise ValueError("total must be >= 1")
        self.total = total
        self.expected_size = expected_size
        self._chunks: Dict[int, bytes] = {}

    @property
    def received(self) -> int:
        return len(self._chunks)

    def is_complete(self) -> bool:
        return len(self._chunks) == self.total

    def add(self, chunk: Chunk) -> bool:
        if not 0 <= chunk.index < self.total or chunk.total != self.total:
            log.warning("ChunkAssembler: chunk %d/%d rejected (expected total %d)",
                        chunk.index, chunk.total, self.total)
            return False
        self._chunks[chunk.index] = chunk.data
        return True

    def assemble(self) -> bytes:
        missing = [i for i in range(self.total) if i not in self._chunks]
        if missing:
            raise TruncatedFile(f"missing {len(missing)} chunk(s), first index {missing[0]}")
        blob = b"".join(self._chunks[i] for i in range(self.total))
        if self.expected_size is not None and len(blob) != self.expected_size:
            raise TruncatedFile(f"assembled {len(blob)} bytes, expected {self.expected_size}")
        return blob
