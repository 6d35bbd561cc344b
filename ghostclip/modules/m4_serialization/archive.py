"""Little-endian binary primitives shared by the framer and the body codec."""

from __future__ import annotations

import struct
from typing import Callable, Dict, List, TypeVar

import numpy as np

from ghostclip.shared.errors import TruncatedFile

T = TypeVar("T")

_I32 = struct.Struct("<i")
_U32 = struct.Struct("<I")
_U8 = struct.Struct("<B")
_I64 = struct.Struct("<q")
_F32 = struct.Struct("<f")
_F64 = struct.Struct("<d")
_VEC3 = struct.Struct("<3d")


class BinaryWriter:
    """Append-only byte buffer with int32 back-patching."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def tell(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def write_int32(self, v: int) -> None:
        self._buf += _I32.pack(v)

    def write_uint32(self, v: int) -> None:
        self._buf += _U32.pack(v)

    def write_uint8(self, v: int) -> None:
        self._buf += _U8.pack(v)

    def write_int64(self, v: int) -> None:
        self._buf += _I64.pack(v)

    def write_float32(self, v: float) -> None:
        self._buf += _F32.pack(v)

    def write_float64(self, v: float) -> None:
        self._buf += _F64.pack(v)

    def write_vec3(self, v: np.ndarray) -> None:
        self._buf += _VEC3.pack(*(float(x) for x in v))

    def write_string(self, s: str) -> None:
        data = s.encode("utf-8")
        self.write_int32(len(data))
        self._buf += data

    def write_bytes(self, data: bytes) -> None:
        """Length-prefixed opaque bytes."""
        self.write_int32(len(data))
        self._buf += data

    def write_raw(self, data: bytes) -> None:
        self._buf += data

    def write_list(self, items: List[T], write_item: Callable[[T], None]) -> None:
        self.write_int32(len(items))
        for item in items:
            write_item(item)

    def patch_int32(self, offset: int, v: int) -> None:
        _I32.pack_into(self._buf, offset, v)


class BinaryReader:
    """Cursor over a byte buffer; any short read raises TruncatedFile."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = memoryview(data)
        self._pos = offset

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _take(self, n: int) -> memoryview:
        if n < 0:
            raise TruncatedFile(f"negative length {n} at offset {self._pos}")
        if self._pos + n > len(self._data):
            raise TruncatedFile(
                f"wanted {n} bytes at offset {self._pos}, only {self.remaining} left"
            )
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def _unpack(self, fmt: struct.Struct):
        return fmt.unpack(self._take(fmt.size))[0]

    def read_int32(self) -> int:
        return self._unpack(_I32)

    def read_uint32(self) -> int:
        return self._unpack(_U32)

    def read_uint8(self) -> int:
        return self._unpack(_U8)

    def read_int64(self) -> int:
        return self._unpack(_I64)

    def read_float32(self) -> float:
        return self._unpack(_F32)

    def read_float64(self) -> float:
        return self._unpack(_F64)

    def read_vec3(self) -> np.ndarray:
        return np.array(_VEC3.unpack(self._take(_VEC3.size)), dtype=np.float64)

    def read_string(self) -> str:
        start = self._pos
        try:
            return bytes(self._take(self.read_int32())).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TruncatedFile(f"corrupt string at offset {start}: {exc}") from exc

    def read_bytes(self) -> bytes:
        return bytes(self._take(self.read_int32()))

    def read_raw(self, n: int) -> bytes:
        return bytes(self._take(n))

    def read_count(self) -> int:
        """int32 element count; negative values mean a corrupt stream."""
        n = self.read_int32()
        if n < 0:
            raise TruncatedFile(f"negative element count {n} at offset {self._pos - 4}")
        return n

    def read_list(self, read_item: Callable[[], T]) -> List[T]:
        return [read_item() for _ in range(self.read_count())]

    def read_map(self, read_value: Callable[[], T]) -> Dict[str, T]:
        out: Dict[str, T] = {}
        for _ in range(self.read_count()):
            key = self.read_string()
            out[key] = read_value()
        return out
