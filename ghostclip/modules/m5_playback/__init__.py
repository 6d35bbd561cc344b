"""
Playback Module (Module 5)
==========================
Interval-tree sub-part activity, time → frame-pair resolution and
transform interpolation for decoded clips.

Example:
    from ghostclip.modules.m5_playback import ClipPlayer

    player = ClipPlayer(clip, PlaybackOptions(looping=True))
    player.initialize(start_time=clock())
    frame = player.update(clock())
"""

from .interval_tree import IntervalTree
from .player import (
    PlaybackState,
    PlaybackFrame,
    ClipPlayer,
    ClipSetPlayer,
    calculate_elapsed_time,
    interpolate_transform,
    interpolate_pose,
)

__all__ = [
    "IntervalTree",
    "PlaybackState",
    "PlaybackFrame",
    "ClipPlayer",
    "ClipSetPlayer",
    "calculate_elapsed_time",
    "interpolate_transform",
    "interpolate_pose",
]
