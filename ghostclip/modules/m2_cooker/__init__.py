"""
Clip Cooker Module (Module 2)
=============================
Converts buffered samples + lifecycle intervals into time-rebased clips
and windows a recording group to its maximum duration.
"""

from .cooker import cook_from_buffer, remap_initial_intervals, group_window, clip_by_group_window

__all__ = [
    "cook_from_buffer",
    "remap_initial_intervals",
    "group_window",
    "clip_by_group_window",
]
