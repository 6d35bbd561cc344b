"""
Serialization Module (Module 4)
===============================
Binary framing, compression, file storage and chunked transfer of
encoded clip sets.

Example:
    from ghostclip.modules.m4_serialization import encode_clip_set, decode_clip_set

    blob = encode_clip_set(clip_set, FileOptions(CompressionMethod.ZSTD))
    again = decode_clip_set(blob)
"""

from .archive import BinaryReader, BinaryWriter
from .compression import compress, decompress
from .framer import (
    FileHeader,
    RawPayload,
    encode_clip_set,
    decode_clip_set,
    read_headers,
    read_raw_payload,
    decode_raw_payload,
    serialize_body,
    deserialize_body,
)
from .store import FileStore
from .chunks import Chunk, ChunkAssembler, split_into_chunks

__all__ = [
    "BinaryReader",
    "BinaryWriter",
    "compress",
    "decompress",
    "FileHeader",
    "RawPayload",
    "encode_clip_set",
    "decode_clip_set",
    "read_headers",
    "read_raw_payload",
    "decode_raw_payload",
    "serialize_body",
    "deserialize_body",
    "FileStore",
    "Chunk",
    "ChunkAssembler",
    "split_into_chunks",
]
