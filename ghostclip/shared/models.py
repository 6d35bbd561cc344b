"""
#WHERE
    Imported by every stage module (M1 capture → M5 playback), by
    sessions.py and by tests.

#WHAT
    Plain data model for recorded clips: transforms, sub-part metadata,
    activity intervals, range bounds, samples, clips and clip sets.

#INPUT
    Values produced by the capture side or by the binary decoder.

#OUTPUT
    Dataclasses passed between stages.  No I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from .constants import (
    DEFAULT_MAX_RECORD_TIME, DEFAULT_SAMPLING_INTERVAL, KINDA_SMALL_NUMBER, OPEN_END,
)


def _vec3(value, default: float) -> np.ndarray:
    if value is None:
        return np.full(3, default, dtype=np.float64)
    return np.asarray(value, dtype=np.float64).reshape(3).copy()


# ── Transform ────────────────────────────────────────────────────────────

@dataclass(eq=False)
class Transform:
    """Rigid transform: location, scalar-last quaternion (x, y, z, w), 3D scale."""
    location: np.ndarray | None = None
    rotation: np.ndarray | None = None
    scale: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.location = _vec3(self.location, 0.0)
        self.scale = _vec3(self.scale, 1.0)
        if self.rotation is None:
            self.rotation = np.array([0.0, 0.0, 0.0, 1.0])
        else:
            self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(4).copy()

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def from_euler(cls, location=(0.0, 0.0, 0.0), euler_deg=(0.0, 0.0, 0.0),
                   scale=(1.0, 1.0, 1.0)) -> "Transform":
        quat = Rotation.from_euler("xyz", euler_deg, degrees=True).as_quat()
        return cls(location=location, rotation=quat, scale=scale)

    def copy(self) -> "Transform":
        return Transform(self.location, self.rotation, self.scale)

    def is_close(self, other: "Transform", atol: float = 1e-6, rot_atol: Optional[float] = None) -> bool:
        """Component-wise comparison; q and -q count as the same rotation."""
        rot_atol = atol if rot_atol is None else rot_atol
        if not np.allclose(self.location, other.location, atol=atol):
            return False
        if not np.allclose(self.scale, other.scale, atol=atol):
            return False
        return (np.allclose(self.rotation, other.rotation, atol=rot_atol)
                or np.allclose(self.rotation, -other.rotation, atol=rot_atol))

    def __repr__(self) -> str:
        loc = ", ".join(f"{v:.3f}" for v in self.location)
        rot = ", ".join(f"{v:.3f}" for v in self.rotation)
        scl = ", ".join(f"{v:.3f}" for v in self.scale)
        return f"Transform(loc=[{loc}], rot=[{rot}], scale=[{scl}])"


# ── Sub-part metadata ────────────────────────────────────────────────────

class SubPartKind(IntEnum):
    STATIC_MESH = 0
    SKELETAL_MESH = 1
    GROOM = 2


@dataclass
class MaterialParameters:
    vector_params: Dict[str, Tuple[float, float, float, float]] = field(default_factory=dict)
    scalar_params: Dict[str, float] = field(default_factory=dict)


@dataclass
class SubPartMeta:
    """Everything the replay side needs to recreate one sub-part."""
    name: str
    kind: SubPartKind = SubPartKind.STATIC_MESH
    asset_path: str = ""
    material_paths: List[str] = field(default_factory=list)
    material_params: Dict[int, MaterialParameters] = field(default_factory=dict)
    leader_name: str = ""        # skeletal only: sub-part whose pose this one follows

    def __post_init__(self) -> None:
        self.kind = SubPartKind(self.kind)
        if self.kind != SubPartKind.SKELETAL_MESH and self.leader_name:
            raise ValueError(f"leader_name is only valid for skeletal sub-parts, got {self.kind.name}")


# ── Activity intervals ───────────────────────────────────────────────────

@dataclass(eq=False)
class ActivityInterval:
    """[start_frame, end_frame) during which a sub-part existed.  Equality is by name."""
    meta: SubPartMeta
    start_frame: int = 0
    end_frame: int = OPEN_END

    @property
    def name(self) -> str:
        return self.meta.name

    @property
    def is_open(self) -> bool:
        return self.end_frame == OPEN_END

    def contains(self, frame: int) -> bool:
        return self.start_frame <= frame < self.end_frame

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ActivityInterval):
            return NotImplemented
        return self.meta.name == other.meta.name

    def __hash__(self) -> int:
        return hash(self.meta.name)

    def __repr__(self) -> str:
        end = "open" if self.is_open else self.end_frame
        return f"ActivityInterval({self.meta.name!r}, {self.start_frame}, {end})"


# ── Range bounds ─────────────────────────────────────────────────────────

@dataclass(eq=False)
class RangeBounds:
    """Min/max envelope of positions and scales, used by the Low tier."""
    position_min: np.ndarray | None = None
    position_max: np.ndarray | None = None
    scale_min: np.ndarray | None = None
    scale_max: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.position_min = _vec3(self.position_min, 0.0)
        self.position_max = _vec3(self.position_max, 0.0)
        self.scale_min = _vec3(self.scale_min, 1.0)
        self.scale_max = _vec3(self.scale_max, 1.0)

    def safe_position_extent(self) -> np.ndarray:
        return np.maximum(self.position_max - self.position_min, KINDA_SMALL_NUMBER)

    def safe_scale_extent(self) -> np.ndarray:
        return np.maximum(self.scale_max - self.scale_min, KINDA_SMALL_NUMBER)

    def copy(self) -> "RangeBounds":
        return RangeBounds(self.position_min, self.position_max, self.scale_min, self.scale_max)

    def is_close(self, other: "RangeBounds", atol: float = 1e-6) -> bool:
        return all(
            np.allclose(a, b, atol=atol) for a, b in (
                (self.position_min, other.position_min), (self.position_max, other.position_max),
                (self.scale_min, other.scale_min), (self.scale_max, other.scale_max),
            )
        )


# ── Samples and clips ────────────────────────────────────────────────────

@dataclass(frozen=True)
class Sample:
    """One tick's pose snapshot for one entity.  Never mutated after capture."""
    timestamp: float
    frame_index: int
    transforms: Dict[str, Transform] = field(default_factory=dict)
    bone_transforms: Dict[str, List[Transform]] = field(default_factory=dict)

    def rebased(self, time_offset: float, frame_index: Optional[int] = None) -> "Sample":
        return replace(
            self,
            timestamp=self.timestamp - time_offset,
            frame_index=self.frame_index if frame_index is None else frame_index,
        )


@dataclass
class Clip:
    """Cooked, time-rebased recording of one entity."""
    primary_name: str = ""
    intervals: List[ActivityInterval] = field(default_factory=list)
    ranges: RangeBounds = field(default_factory=RangeBounds)
    bone_ranges: Dict[str, RangeBounds] = field(default_factory=dict)
    samples: List[Sample] = field(default_factory=list)

    @property
    def num_frames(self) -> int:
        return len(self.samples)

    @property
    def is_valid(self) -> bool:
        return len(self.samples) >= 2

    @property
    def start_time(self) -> float:
        return self.samples[0].timestamp if self.samples else 0.0

    @property
    def end_time(self) -> float:
        return self.samples[-1].timestamp if self.samples else 0.0

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def timestamps(self) -> np.ndarray:
        return np.fromiter((s.timestamp for s in self.samples), dtype=np.float64, count=len(self.samples))


@dataclass
class ClipSetHeader:
    file_name: str = ""
    level_name: str = ""
    tags: List[str] = field(default_factory=list)
    spawn_transform: Transform = field(default_factory=Transform.identity)
    max_record_time: float = DEFAULT_MAX_RECORD_TIME
    sampling_interval: float = DEFAULT_SAMPLING_INTERVAL
    total_length: float = 0.0
    group_user_data: bytes = b""
    actor_user_data: List[bytes] = field(default_factory=list)

    def has_all_tags(self, tags: Iterable[str]) -> bool:
        own = set(self.tags)
        return all(t in own for t in tags)


@dataclass
class ClipSet:
    """Unit encoded/decoded as one blob: header + one clip per entity."""
    header: ClipSetHeader = field(default_factory=ClipSetHeader)
    clips: List[Clip] = field(default_factory=list)
