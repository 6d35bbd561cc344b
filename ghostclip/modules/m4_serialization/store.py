"""
#WHERE
    Owned by SessionManager; used directly by main.py ``list`` / ``info``.

#WHAT
    On-disk layout ``<root>/<level>/<file>.bin`` with full, header-only and
    raw-payload reads plus level/file listing.  Every public method is a
    recoverable seam: failures are logged and reported as None / False.

#INPUT
    ClipSet + FileOptions to save; level and file names to load.

#OUTPUT
    Paths, ClipSets, (FileHeader, ClipSetHeader) pairs or RawPayloads.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from ghostclip.shared.constants import DEFAULT_SAVE_ROOT, FILE_EXTENSION
from ghostclip.shared.errors import ClipError
from ghostclip.shared.models import ClipSet, ClipSetHeader
from ghostclip.shared.options import FileOptions
from .framer import (
    HEADER_SIZE_PREFIX, FileHeader, RawPayload,
    decode_clip_set, encode_clip_set, read_header_size, read_headers, read_raw_payload,
)

log = logging.getLogger(__name__)


def _sanitize(name: str) -> str:
    return name.replace("\\", " ").replace("/", " ")


class FileStore:
    """Reads and writes encoded clip sets under a root directory."""

    def __init__(self, root: str = DEFAULT_SAVE_ROOT) -> None:
        self.root = root

    # -- paths --

    def level_dir(self, level: str) -> str:
        return os.path.join(self.root, _sanitize(level))

    def path_for(self, level: str, file_name: str) -> str:
        if not file_name.endswith(FILE_EXTENSION):
            file_name += FILE_EXTENSION
        return os.path.join(self.level_dir(level), _sanitize(file_name))

    def exists(self, level: str, file_name: str) -> bool:
        return os.path.isfile(self.path_for(level, file_name))

    # -- write --

    def save(self, clip_set: ClipSet, level: str, file_name: str,
             options: Optional[FileOptions] = None) -> Optional[str]:
        """Encode and write; returns the path or None on failure."""
        path = self.path_for(level, file_name)
        try:
            blob = encode_clip_set(clip_set, options)
            self.save_bytes(blob, path)
        except (ClipError, OSError) as exc:
            log.warning("FileStore: save of %s failed (%s)", path, exc)
            return None
        log.info("Recording saved: %s (%d clips, %d bytes)", path, len(clip_set.clips), len(blob))
        return path

    @staticmethod
    def save_bytes(blob: bytes, path: str) -> str:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        tmp = path + ".tmp"
        with open(tmp, "wb") as f:
            f.write(blob)
        os.replace(tmp, path)
        return path

    def delete(self, level: str, file_name: str) -> bool:
        path = self.path_for(level, file_name)
        try:
            os.remove(path)
        except OSError as exc:
            log.warning("FileStore: delete of %s failed (%s)", path, exc)
            return False
        return True

    # -- read --

    def load(self, level: str, file_name: str) -> Optional[ClipSet]:
        path = self.path_for(level, file_name)
        try:
            with open(path, "rb") as f:
                return decode_clip_set(f.read())
        except (ClipError, OSError) as exc:
            log.warning("FileStore: load of %s failed (%s)", path, exc)
            return None

    def load_raw_payload(self, level: str, file_name: str) -> Optional[RawPayload]:
        path = self.path_for(level, file_name)
        try:
            with open(path, "rb") as f:
                return read_raw_payload(f.read())
        except (ClipError, OSError) as exc:
            log.warning("FileStore: raw load of %s failed (%s)", path, exc)
            return None

    def load_header(self, level: str, file_name: str) -> Optional[Tuple[FileHeader, ClipSetHeader]]:
        return self.load_header_from_path(self.path_for(level, file_name))

    @staticmethod
    def load_header_from_path(path: str) -> Optional[Tuple[FileHeader, ClipSetHeader]]:
        """Read only ``header_byte_size`` bytes; the payload is never touched."""
        try:
            with open(path, "rb") as f:
                prefix = f.read(HEADER_SIZE_PREFIX)
                size = read_header_size(prefix)
                return read_headers(prefix + f.read(size - HEADER_SIZE_PREFIX))
        except (ClipError, OSError) as exc:
            log.warning("FileStore: header load of %s failed (%s)", path, exc)
            return None

    # -- listing --

    def level_names(self) -> List[str]:
        if not os.path.isdir(self.root):
            return []
        return sorted(d for d in os.listdir(self.root) if os.path.isdir(os.path.join(self.root, d)))

    def file_names(self, level: str) -> List[str]:
        """Saved file names in *level*, without extension."""
        folder = self.level_dir(level)
        if not os.path.isdir(folder):
            return []
        return sorted(
            f[: -len(FILE_EXTENSION)] for f in os.listdir(folder) if f.endswith(FILE_EXTENSION)
        )

    def load_headers_in_level(self, level: str) -> Dict[str, ClipSetHeader]:
        headers = {}
        for name in self.file_names(level):
            loaded = self.load_header(level, name)
            if loaded is not None:
                headers[name] = loaded[1]
        return headers

    def load_all_headers(self) -> Dict[Tuple[str, str], ClipSetHeader]:
        """(level, file) → header for every file under the root."""
        headers = {}
        for level in self.level_names():
            for name, header in self.load_headers_in_level(level).items():
                headers[(level, name)] = header
        return headers

    def load_headers_with_tags(self, tags: Iterable[str], level: Optional[str] = None) -> Dict[Tuple[str, str], ClipSetHeader]:
        tags = list(tags)
        if level is not None:
            found = {(level, n): h for n, h in self.load_headers_in_level(level).items()}
        else:
            found = self.load_all_headers()
        return {key: h for key, h in found.items() if h.has_all_tags(tags)}
