"""Per-clip position/scale envelopes for interval-relative (Low tier) quantization."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import numpy as np

from ghostclip.shared.models import Clip, RangeBounds, Transform

log = logging.getLogger(__name__)


def _bounds_of(transforms: List[Transform]) -> Optional[RangeBounds]:
    """Component-wise min/max; seeded from the data itself, never from zero."""
    if not transforms:
        return None
    locs = np.stack([t.location for t in transforms])
    scales = np.stack([t.scale for t in transforms])
    return RangeBounds(
        position_min=locs.min(axis=0),
        position_max=locs.max(axis=0),
        scale_min=scales.min(axis=0),
        scale_max=scales.max(axis=0),
    )


def compute_ranges(clip: Clip) -> Clip:
    """Fill ``clip.ranges`` and ``clip.bone_ranges`` from every sample.  Mutates and returns *clip*."""
    world: List[Transform] = []
    bones: Dict[str, List[Transform]] = {}
    for sample in clip.samples:
        world.extend(sample.transforms.values())
        for name, pose in sample.bone_transforms.items():
            bones.setdefault(name, []).extend(pose)

    clip.ranges = _bounds_of(world) or RangeBounds()
    clip.bone_ranges = {}
    for name, pose in bones.items():
        bounds = _bounds_of(pose)
        if bounds is not None:
            clip.bone_ranges[name] = bounds
    log.debug("ranges for %r: %d bone sets", clip.primary_name, len(clip.bone_ranges))
    return clip


def compute_all_ranges(clips: Iterable[Clip]) -> None:
    for clip in clips:
        compute_ranges(clip)
