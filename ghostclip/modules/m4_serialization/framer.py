"""
#WHERE
    Used by FileStore (save/load), SessionManager background saves,
    chunked transfer and main.py ``info``.

#WHAT
    Length-prefixed container for one ClipSet:

        int32   header_byte_size          (back-patched)
        FileHeader                        magic, version, compression,
                                          quantization, uncompressed size
        ClipSetHeader                     names, tags, spawn, timings, user data
        payload                           body compressed per FileHeader

    header_byte_size covers every byte before the payload so a reader can
    fetch the metadata without touching the body.

#INPUT
    ClipSet + FileOptions (encode) / raw bytes (decode).

#OUTPUT
    bytes (encode) / ClipSet, headers or RawPayload (decode).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ghostclip.shared.constants import FILE_MAGIC, FILE_VERSION
from ghostclip.shared.errors import (
    DecompressionFailure, RangeUnavailable, RuntimeVersionMismatch, TruncatedFile,
)
from ghostclip.shared.models import (
    ActivityInterval, Clip, ClipSet, ClipSetHeader, MaterialParameters,
    RangeBounds, Sample, SubPartKind, SubPartMeta, Transform,
)
from ghostclip.shared.options import CompressionMethod, FileOptions, QuantizationMethod
from ghostclip.modules.m3_quantization.codec import FullPrecisionCodec, TransformCodec, get_codec
from ghostclip.modules.m3_quantization.ranges import compute_all_ranges
from .archive import BinaryReader, BinaryWriter
from .compression import compress, decompress

log = logging.getLogger(__name__)

HEADER_SIZE_PREFIX = 4
_FULL = FullPrecisionCodec()


@dataclass
class FileHeader:
    magic: int = FILE_MAGIC
    version: int = FILE_VERSION
    options: FileOptions = field(default_factory=FileOptions)
    uncompressed_size: int = 0


@dataclass
class RawPayload:
    """Headers plus the still-compressed body, as stored on disk."""
    file_header: FileHeader
    header: ClipSetHeader
    payload: bytes


# ── Headers ──────────────────────────────────────────────────────────────

def _write_file_header(w: BinaryWriter, fh: FileHeader) -> None:
    w.write_uint32(fh.magic)
    w.write_uint32(fh.version)
    w.write_uint8(int(fh.options.compression))
    w.write_uint8(int(fh.options.quantization))
    w.write_int64(fh.uncompressed_size)


def _read_file_header(r: BinaryReader) -> FileHeader:
    magic = r.read_uint32()
    version = r.read_uint32()
    if magic != FILE_MAGIC:
        raise RuntimeVersionMismatch(f"bad magic 0x{magic:08X}, expected 0x{FILE_MAGIC:08X}")
    if version != FILE_VERSION:
        raise RuntimeVersionMismatch(f"file version {version}, runtime supports {FILE_VERSION}")
    compression, quantization = r.read_uint8(), r.read_uint8()
    try:
        options = FileOptions(CompressionMethod(compression), QuantizationMethod(quantization))
    except ValueError as exc:
        raise RuntimeVersionMismatch(f"unknown file option: {exc}") from exc
    return FileHeader(magic, version, options, r.read_int64())


def _write_clip_set_header(w: BinaryWriter, h: ClipSetHeader) -> None:
    w.write_string(h.file_name)
    w.write_string(h.level_name)
    w.write_list(h.tags, w.write_string)
    w.write_raw(_FULL.encode(h.spawn_transform))
    w.write_float32(h.max_record_time)
    w.write_float32(h.sampling_interval)
    w.write_float32(h.total_length)
    w.write_int32(len(h.actor_user_data))
    w.write_bytes(h.group_user_data)
    for data in h.actor_user_data:
        w.write_bytes(data)


def _read_clip_set_header(r: BinaryReader) -> ClipSetHeader:
    h = ClipSetHeader()
    h.file_name = r.read_string()
    h.level_name = r.read_string()
    h.tags = r.read_list(r.read_string)
    h.spawn_transform = _FULL.decode(r.read_raw(_FULL.size))
    h.max_record_time = r.read_float32()
    h.sampling_interval = r.read_float32()
    h.total_length = r.read_float32()
    count = r.read_count()
    h.group_user_data = r.read_bytes()
    h.actor_user_data = [r.read_bytes() for _ in range(count)]
    return h


# ── Body ─────────────────────────────────────────────────────────────────

def _write_meta(w: BinaryWriter, meta: SubPartMeta) -> None:
    w.write_string(meta.name)
    w.write_uint8(int(meta.kind))
    w.write_string(meta.asset_path)
    w.write_list(meta.material_paths, w.write_string)
    w.write_int32(len(meta.material_params))
    for slot, params in meta.material_params.items():
        w.write_int32(slot)
        w.write_int32(len(params.vector_params))
        for name, rgba in params.vector_params.items():
            w.write_string(name)
            for c in rgba:
                w.write_float32(c)
        w.write_int32(len(params.scalar_params))
        for name, value in params.scalar_params.items():
            w.write_string(name)
            w.write_float32(value)
    w.write_string(meta.leader_name)


def _read_meta(r: BinaryReader) -> SubPartMeta:
    name = r.read_string()
    try:
        kind = SubPartKind(r.read_uint8())
    except ValueError as exc:
        raise RuntimeVersionMismatch(f"unknown sub-part kind for {name!r}: {exc}") from exc
    asset_path = r.read_string()
    material_paths = r.read_list(r.read_string)
    material_params: Dict[int, MaterialParameters] = {}
    for _ in range(r.read_count()):
        slot = r.read_int32()
        vectors = r.read_map(lambda: tuple(r.read_float32() for _ in range(4)))
        scalars = r.read_map(r.read_float32)
        material_params[slot] = MaterialParameters(vectors, scalars)
    leader = r.read_string()
    try:
        return SubPartMeta(name, kind, asset_path, material_paths, material_params, leader)
    except ValueError as exc:
        raise TruncatedFile(f"corrupt metadata for {name!r}: {exc}") from exc


def _write_clip(w: BinaryWriter, clip: Clip, codec: TransformCodec) -> None:
    w.write_string(clip.primary_name)

    w.write_int32(len(clip.intervals))
    for iv in clip.intervals:
        _write_meta(w, iv.meta)
        w.write_int32(iv.start_frame)
        w.write_int32(iv.end_frame)

    w.write_vec3(clip.ranges.position_min)
    w.write_vec3(clip.ranges.position_max)
    w.write_vec3(clip.ranges.scale_min)
    w.write_vec3(clip.ranges.scale_max)
    w.write_int32(len(clip.bone_ranges))
    for name, b in clip.bone_ranges.items():
        w.write_string(name)
        w.write_vec3(b.position_min)
        w.write_vec3(b.position_max)
    w.write_int32(len(clip.bone_ranges))
    for name, b in clip.bone_ranges.items():
        w.write_string(name)
        w.write_vec3(b.scale_min)
        w.write_vec3(b.scale_max)

    w.write_int32(len(clip.samples))
    for s in clip.samples:
        w.write_float32(s.timestamp)
        w.write_int32(s.frame_index)
        w.write_int32(len(s.transforms))
        for name, t in s.transforms.items():
            w.write_string(name)
            w.write_raw(codec.encode(t, clip.ranges))
        w.write_int32(len(s.bone_transforms))
        for name, pose in s.bone_transforms.items():
            bounds = clip.bone_ranges.get(name)
            if codec.needs_range and bounds is None:
                raise RangeUnavailable(f"no bone range for {name!r} in clip {clip.primary_name!r}")
            w.write_string(name)
            w.write_int32(len(pose))
            for t in pose:
                w.write_raw(codec.encode(t, bounds))


def _read_clip(r: BinaryReader, codec: TransformCodec) -> Clip:
    clip = Clip(primary_name=r.read_string())

    for _ in range(r.read_count()):
        meta = _read_meta(r)
        clip.intervals.append(ActivityInterval(meta, r.read_int32(), r.read_int32()))

    clip.ranges = RangeBounds(r.read_vec3(), r.read_vec3(), r.read_vec3(), r.read_vec3())
    positions = r.read_map(lambda: (r.read_vec3(), r.read_vec3()))
    scales = r.read_map(lambda: (r.read_vec3(), r.read_vec3()))
    for name in list(positions) + [n for n in scales if n not in positions]:
        pmin, pmax = positions.get(name, (None, None))
        smin, smax = scales.get(name, (None, None))
        clip.bone_ranges[name] = RangeBounds(pmin, pmax, smin, smax)

    for _ in range(r.read_count()):
        timestamp = r.read_float32()
        frame_index = r.read_int32()
        transforms: Dict[str, Transform] = {}
        for _ in range(r.read_count()):
            name = r.read_string()
            transforms[name] = codec.decode(r.read_raw(codec.size), clip.ranges)
        bones: Dict[str, List[Transform]] = {}
        for _ in range(r.read_count()):
            name = r.read_string()
            bounds = clip.bone_ranges.get(name)
            if codec.needs_range and bounds is None:
                raise RangeUnavailable(f"no bone range for {name!r} in clip {clip.primary_name!r}")
            bones[name] = [codec.decode(r.read_raw(codec.size), bounds) for _ in range(r.read_count())]
        clip.samples.append(Sample(timestamp, frame_index, transforms, bones))
    return clip


def serialize_body(clips: List[Clip], quantization: QuantizationMethod) -> bytes:
    codec = get_codec(quantization)
    w = BinaryWriter()
    w.write_int32(len(clips))
    for clip in clips:
        _write_clip(w, clip, codec)
    return w.getvalue()


def deserialize_body(data: bytes, quantization: QuantizationMethod) -> List[Clip]:
    codec = get_codec(quantization)
    r = BinaryReader(data)
    clips = [_read_clip(r, codec) for _ in range(r.read_count())]
    if r.remaining:
        log.warning("deserialize_body: %d trailing bytes ignored", r.remaining)
    return clips


# ── Container ────────────────────────────────────────────────────────────

def encode_clip_set(clip_set: ClipSet, options: Optional[FileOptions] = None) -> bytes:
    """Compute ranges, serialize, compress and frame *clip_set*."""
    options = options or FileOptions()
    compute_all_ranges(clip_set.clips)
    body = serialize_body(clip_set.clips, options.quantization)
    payload = compress(body, options.compression)

    w = BinaryWriter()
    w.write_int32(0)
    _write_file_header(w, FileHeader(options=options, uncompressed_size=len(body)))
    _write_clip_set_header(w, clip_set.header)
    w.patch_int32(0, w.tell())
    w.write_raw(payload)
    log.debug("encoded %d clips: body %d B, payload %d B (%s/%s)",
              len(clip_set.clips), len(body), len(payload),
              options.compression.name, options.quantization.name)
    return w.getvalue()


def read_header_size(data: bytes) -> int:
    size = BinaryReader(data).read_int32()
    if size < HEADER_SIZE_PREFIX:
        raise TruncatedFile(f"invalid header size {size}")
    return size


def read_headers(data: bytes) -> Tuple[FileHeader, ClipSetHeader]:
    """Parse only the headers; *data* may stop right after them."""
    size = read_header_size(data)
    if len(data) < size:
        raise TruncatedFile(f"header declares {size} bytes, only {len(data)} available")
    r = BinaryReader(data[:size], HEADER_SIZE_PREFIX)
    return _read_file_header(r), _read_clip_set_header(r)


def read_raw_payload(data: bytes) -> RawPayload:
    file_header, header = read_headers(data)
    payload = bytes(data[read_header_size(data):])
    if file_header.options.compression == CompressionMethod.NONE and len(payload) < file_header.uncompressed_size:
        raise TruncatedFile(
            f"payload has {len(payload)} bytes, header declares {file_header.uncompressed_size}"
        )
    return RawPayload(file_header, header, payload)


def decode_raw_payload(raw: RawPayload) -> ClipSet:
    opts = raw.file_header.options
    body = decompress(raw.payload, raw.file_header.uncompressed_size, opts.compression)
    if len(body) < raw.file_header.uncompressed_size:
        raise DecompressionFailure(
            f"body has {len(body)} bytes, header declares {raw.file_header.uncompressed_size}"
        )
    return ClipSet(header=raw.header, clips=deserialize_body(body, opts.quantization))


def decode_clip_set(data: bytes) -> ClipSet:
    return decode_raw_payload(read_raw_payload(data))
