"""
#WHERE
    Imported by the capture, serialization and playback stages, the
    session manager and the CLI.

#WHAT
    Wire-format identifiers, frame sentinels and recording defaults.
    Change the magic or version only together with the framer.

#INPUT / #OUTPUT
    None.
"""

# ── File format ──────────────────────────────────────────────────────────

FILE_MAGIC: int = 0x5253746E    # 'RStn' little-endian
FILE_VERSION: int = 1
FILE_EXTENSION: str = ".bin"

# ── Numerics ─────────────────────────────────────────────────────────────

KINDA_SMALL_NUMBER: float = 1.0e-4   # minimum range width / frame gap
INT32_MAX: int = 2**31 - 1
OPEN_END: int = INT32_MAX            # end frame of a still-active interval

# ── Recording defaults ───────────────────────────────────────────────────

DEFAULT_MAX_RECORD_TIME: float = 5.0     # seconds kept in the ring buffer
DEFAULT_SAMPLING_INTERVAL: float = 0.1   # seconds between samples (10 Hz)
DEFAULT_GROUP_NAME: str = "default"

# ── Storage / transfer ───────────────────────────────────────────────────

DEFAULT_SAVE_ROOT: str = "saved/ghostclip"
TRANSFER_CHUNK_SIZE: int = 1024     # bytes per transfer chunk
