"""
#WHERE
    Called by EntityRecorder.cook(), TerminatedEntityManager.cook_group()
    and SessionManager.stop_recording().

#WHAT
    Turns raw buffered samples + lifecycle intervals into a normalized,
    time-rebased Clip, and trims a group of cooked clips to a shared
    maximum-duration window.

#INPUT
    A drainable sample buffer, the entity's ActivityIntervals and the
    group-relative clip start time.

#OUTPUT
    Clip with timestamps starting at 0, frame indices 0..N-1 and
    intervals expressed in those frame indices.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from ghostclip.shared.constants import OPEN_END
from ghostclip.shared.errors import InsufficientSamples
from ghostclip.shared.models import ActivityInterval, Clip, Sample

log = logging.getLogger(__name__)


class Drainable(Protocol):
    def drain_all(self) -> List[Sample]: ...


# ── Initial cook ─────────────────────────────────────────────────────────

def cook_from_buffer(
    buffer: Drainable,
    intervals: Iterable[ActivityInterval],
    clip_start_time: float,
    primary_name: str = "",
) -> Clip:
    """
    Drain *buffer* and build a Clip starting at *clip_start_time*.

    Samples before the start are dropped; the rest are re-based so the
    first kept sample sits at (about) t=0 and gets frame index 0.
    Raises InsufficientSamples when fewer than 2 samples survive.
    """
    kept: List[Sample] = []
    for sample in buffer.drain_all():
        if sample.timestamp - clip_start_time < 0:
            continue
        kept.append(sample)

    if len(kept) < 2:
        raise InsufficientSamples(f"need at least 2 samples to cook, got {len(kept)}")

    first_frame = kept[0].frame_index
    samples = [s.rebased(clip_start_time, i) for i, s in enumerate(kept)]
    clip_intervals = remap_initial_intervals(intervals, first_frame, len(samples))
    log.debug("cooked %d samples, %d intervals (first frame %d)",
              len(samples), len(clip_intervals), first_frame)
    return Clip(primary_name=primary_name, intervals=clip_intervals, samples=samples)


def remap_initial_intervals(
    intervals: Iterable[ActivityInterval], first_frame: int, num_samples: int
) -> List[ActivityInterval]:
    """Drop intervals that ended before *first_frame*; shift the rest into clip frames."""
    ordered = sorted(intervals, key=lambda iv: iv.end_frame)
    ends = [iv.end_frame for iv in ordered]
    start_idx = bisect.bisect_right(ends, first_frame)

    result = []
    for iv in ordered[start_idx:]:
        start = max(0, iv.start_frame - first_frame)
        if iv.end_frame == OPEN_END:
            end = num_samples
        else:
            end = min(iv.end_frame - first_frame, num_samples)
        result.append(replace(iv, start_frame=start, end_frame=end))
    return result


# ── Group windowing ──────────────────────────────────────────────────────

def group_window(clips: Sequence[Clip], max_group_duration: float) -> Optional[Tuple[float, float]]:
    """(window_start, group_end) over the non-empty clips, or None if there are none."""
    populated = [c for c in clips if c.samples]
    if not populated:
        return None
    group_start = min(c.samples[0].timestamp for c in populated)
    group_end = max(c.samples[-1].timestamp for c in populated)
    return max(group_start, group_end - max_group_duration), group_end


def clip_by_group_window(clips: Sequence[Clip], max_group_duration: float) -> List[Clip]:
    """
    Trim every clip in place to the last *max_group_duration* seconds of the group.

    Clips that do not overlap the window are emptied (samples and intervals).
    Every surviving clip is re-based to the window start, so the earliest
    entity starts at t=0 and later ones keep their offset; frames restart at 0.
    Returns the clips that still hold samples.
    """
    window = group_window(clips, max_group_duration)
    if window is None:
        log.warning("clip_by_group_window: no clips to process")
        return []
    window_start, window_end = window

    for clip in clips:
        if not clip.samples:
            continue
        if clip.samples[-1].timestamp < window_start or clip.samples[0].timestamp > window_end:
            log.info("clip %r lies outside window [%.3f, %.3f], emptied",
                     clip.primary_name, window_start, window_end)
            clip.samples = []
            clip.intervals = []
            continue
        _window_clip(clip, window_start, window_end)

    return [c for c in clips if c.samples]


def _window_clip(clip: Clip, window_start: float, window_end: float) -> None:
    frames = clip.samples
    length = len(frames)
    stamps = [s.timestamp for s in frames]
    start_idx = min(max(bisect.bisect_left(stamps, window_start), 0), length - 1)
    end_idx = min(max(bisect.bisect_right(stamps, window_end) - 1, 0), length - 1)
    if start_idx > end_idx:
        clip.samples = []
        clip.intervals = []
        return

    old_to_new = [-1] * length
    for i in range(start_idx, end_idx + 1):
        old_to_new[i] = i - start_idx
    new_count = end_idx - start_idx + 1

    clip.samples = [frames[i].rebased(window_start, i - start_idx) for i in range(start_idx, end_idx + 1)]

    remapped = []
    for iv in clip.intervals:
        new_start = next(
            (old_to_new[o] for o in range(iv.start_frame, min(iv.end_frame, length)) if old_to_new[o] != -1),
            None,
        )
        if new_start is None:
            continue
        last_old = min(iv.end_frame - 1, length - 1)
        new_end = next(
            (old_to_new[o] + 1 for o in range(last_old, iv.start_frame - 1, -1) if old_to_new[o] != -1),
            None,
        )
        if new_end is None or new_end <= new_start:
            continue
        remapped.append(replace(
            iv,
            start_frame=min(max(new_start, 0), new_count),
            end_frame=min(max(new_end, 0), new_count),
        ))
    clip.intervals = remapped
