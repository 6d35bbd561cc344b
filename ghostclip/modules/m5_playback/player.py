"""
#WHERE
    Driven by SessionManager.tick() through ClipSetPlayer, or used directly
    by anything that owns a decoded Clip.

#WHAT
    Per-entity playback state machine:
        UNINITIALIZED → READY → SEEKING (per tick) → FINISHED

    Elapsed time is resolved to a bracketing frame pair (prev, next) by
    binary search; location and scale are lerped and rotations slerped
    (scipy Slerp per component, a vectorised slerp for bones).  Sub-part
    activity is queried from an IntervalTree only when the resolved frame changes and
    only sub-parts whose state flipped are reported.

#INPUT
    Decoded Clip, PlaybackOptions, a monotonic clock value per tick.

#OUTPUT
    PlaybackFrame per tick: interpolated transforms, activation toggles,
    hidden flag, finished flag.
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

import numpy as np
from scipy.spatial.transform import Rotation, Slerp

from ghostclip.shared.constants import KINDA_SMALL_NUMBER
from ghostclip.shared.models import Clip, ClipSet, Transform
from ghostclip.shared.options import PlaybackOptions
from ghostclip.modules.m3_quantization.rotation import normalize_quat
from .interval_tree import IntervalTree

log = logging.getLogger(__name__)


class PlaybackState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SEEKING = "seeking"
    FINISHED = "finished"


@dataclass
class PlaybackFrame:
    transforms: Dict[str, Transform] = field(default_factory=dict)
    bone_transforms: Dict[str, List[Transform]] = field(default_factory=dict)
    activated: List[str] = field(default_factory=list)
    deactivated: List[str] = field(default_factory=list)
    hidden: bool = False
    finished: bool = False


# ── Time mapping ─────────────────────────────────────────────────────────

def calculate_elapsed_time(
    now: float,
    start_time: float,
    rate: float,
    duration: float,
    looping: bool,
) -> Optional[float]:
    """Clip-local playback time, or None once a non-looping clip has finished."""
    if duration <= 0:
        return None
    elapsed = (now - start_time) * rate
    if looping:
        elapsed = math.fmod(elapsed, duration)
        if elapsed < 0:
            elapsed += duration
        return elapsed
    if rate < 0:
        elapsed += duration
    if elapsed < 0 or elapsed > duration:
        return None
    return elapsed


# ── Interpolation ────────────────────────────────────────────────────────

def interpolate_transform(a: Transform, b: Transform, alpha: float) -> Transform:
    """Lerp location/scale, slerp rotation."""
    rots = Rotation.from_quat(np.stack([normalize_quat(a.rotation), normalize_quat(b.rotation)]))
    rot = Slerp([0.0, 1.0], rots)([alpha]).as_quat()[0]
    return Transform(
        location=a.location + (b.location - a.location) * alpha,
        rotation=rot,
        scale=a.scale + (b.scale - a.scale) * alpha,
    )


def interpolate_pose(prev: List[Transform], nxt: List[Transform], alpha: float) -> List[Transform]:
    """Vectorised lerp + slerp over min(len(prev), len(nxt)) bones."""
    n = min(len(prev), len(nxt))
    if n == 0:
        return []
    l0 = np.stack([t.location for t in prev[:n]])
    l1 = np.stack([t.location for t in nxt[:n]])
    s0 = np.stack([t.scale for t in prev[:n]])
    s1 = np.stack([t.scale for t in nxt[:n]])
    q0 = np.stack([t.rotation for t in prev[:n]])
    q1 = np.stack([t.rotation for t in nxt[:n]])

    dot = np.sum(q0 * q1, axis=1)
    q1 = np.where((dot < 0)[:, None], -q1, q1)   # shortest arc
    dot = np.clip(np.abs(dot), 0.0, 1.0)

    theta_0 = np.arccos(dot)
    sin_0 = np.maximum(np.sin(theta_0), 1e-10)
    w0 = np.sin((1.0 - alpha) * theta_0) / sin_0
    w1 = np.sin(alpha * theta_0) / sin_0
    nearly_equal = dot > 0.9995
    w0 = np.where(nearly_equal, 1.0 - alpha, w0)
    w1 = np.where(nearly_equal, alpha, w1)

    q = w0[:, None] * q0 + w1[:, None] * q1
    q /= np.maximum(np.linalg.norm(q, axis=1, keepdims=True), 1e-12)
    loc = l0 + (l1 - l0) * alpha
    scale = s0 + (s1 - s0) * alpha
    return [Transform(loc[i], q[i], scale[i]) for i in range(n)]


# ── Player ───────────────────────────────────────────────────────────────

class ClipPlayer:
    """Replays one decoded Clip against a caller-supplied clock."""

    def __init__(self, clip: Clip, options: Optional[PlaybackOptions] = None,
                 duration: Optional[float] = None) -> None:
        self.options = options or PlaybackOptions()
        self.options.validate()
        self._clip = clip
        self._duration = clip.end_time if duration is None else duration
        self._state = PlaybackState.UNINITIALIZED
        self._tree: Optional[IntervalTree] = None
        self._timestamps: List[float] = []
        self._start_time = 0.0
        self._current_frame = 0
        self._active: Set[str] = set()
        self._pending_on: List[str] = []
        self._pending_off: List[str] = []
        self._hidden = False

    # -- observable state --

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def clip(self) -> Clip:
        return self._clip

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def current_frame(self) -> int:
        return self._current_frame

    @property
    def active_names(self) -> Set[str]:
        return set(self._active)

    @property
    def is_hidden(self) -> bool:
        return self._hidden

    # -- lifecycle --

    def initialize(self, start_time: float = 0.0) -> bool:
        """Build the interval tree and seek to frame 0.  False if the clip is too short."""
        if not self._clip.is_valid:
            log.warning("ClipPlayer: %r has %d samples, playback not started",
                        self._clip.primary_name, self._clip.num_frames)
            return False
        self._tree = IntervalTree(self._clip.intervals)
        self._timestamps = [s.timestamp for s in self._clip.samples]
        self._start_time = start_time
        self._state = PlaybackState.READY
        self.seek_frame(0)
        return True

    def finish(self) -> None:
        self._state = PlaybackState.FINISHED

    # -- per tick --

    def update(self, now: float) -> PlaybackFrame:
        if self._state in (PlaybackState.UNINITIALIZED, PlaybackState.FINISHED):
            return PlaybackFrame(hidden=True, finished=True)
        t = calculate_elapsed_time(
            now, self._start_time, self.options.playback_rate, self._duration, self.options.looping,
        )
        if t is None:
            self.finish()
            return PlaybackFrame(hidden=True, finished=True)
        return self.update_to_time(t)

    def update_to_time(self, t: float) -> PlaybackFrame:
        out = PlaybackFrame()
        n = len(self._timestamps)
        if self._state == PlaybackState.UNINITIALIZED or n < 2:
            out.hidden = True
            return out
        if t < self._timestamps[0] or t > self._timestamps[-1]:
            self._hidden = True
            out.hidden = True
            return out
        self._hidden = False
        if self._state != PlaybackState.FINISHED:
            self._state = PlaybackState.SEEKING

        idx = min(max(bisect.bisect_right(self._timestamps, t) - 1, 0), n - 2)
        if idx != self._current_frame:
            self.seek_frame(idx)
        out.activated, self._pending_on = self._pending_on, []
        out.deactivated, self._pending_off = self._pending_off, []

        prev, nxt = self._clip.samples[idx], self._clip.samples[idx + 1]
        gap = nxt.timestamp - prev.timestamp
        alpha = min(max((t - prev.timestamp) / gap, 0.0), 1.0) if gap > KINDA_SMALL_NUMBER else 1.0

        for name in nxt.transforms.keys() | prev.transforms.keys():
            a = prev.transforms.get(name) or nxt.transforms[name]
            b = nxt.transforms.get(name) or a
            out.transforms[name] = interpolate_transform(a, b, alpha)
        for name, pose in nxt.bone_transforms.items():
            out.bone_transforms[name] = interpolate_pose(prev.bone_transforms.get(name) or pose, pose, alpha)
        return out

    def seek_frame(self, frame_index: int) -> bool:
        """Refresh the active sub-part set for *frame_index*, queueing only changes."""
        if self._tree is None:
            return False
        if not 0 <= frame_index < len(self._timestamps):
            log.warning("ClipPlayer: seek to frame %d outside [0, %d)", frame_index, len(self._timestamps))
            return False
        active = {iv.name for iv in self._tree.query(frame_index)}
        for name in sorted(active - self._active):
            self._queue_toggle(name, on=True)
        for name in sorted(self._active - active):
            self._queue_toggle(name, on=False)
        self._active = active
        self._current_frame = frame_index
        return True

    def _queue_toggle(self, name: str, on: bool) -> None:
        # a flip followed by a flop inside one tick cancels out
        opposite = self._pending_off if on else self._pending_on
        if name in opposite:
            opposite.remove(name)
        else:
            (self._pending_on if on else self._pending_off).append(name)


class ClipSetPlayer:
    """Plays every valid clip of a ClipSet against one shared clock."""

    def __init__(self, clip_set: ClipSet, options: Optional[PlaybackOptions] = None) -> None:
        self.clip_set = clip_set
        self.options = options or PlaybackOptions()
        self.players: List[ClipPlayer] = []

    @property
    def duration(self) -> float:
        if self.clip_set.header.total_length > 0:
            return self.clip_set.header.total_length
        return max((c.end_time for c in self.clip_set.clips), default=0.0)

    @property
    def is_finished(self) -> bool:
        return all(p.state == PlaybackState.FINISHED for p in self.players)

    def start(self, now: float) -> bool:
        self.players = []
        for clip in self.clip_set.clips:
            player = ClipPlayer(clip, self.options, self.duration)
            if player.initialize(now):
                self.players.append(player)
        if not self.players:
            log.warning("ClipSetPlayer: no playable clips in %r", self.clip_set.header.file_name)
            return False
        log.info("Playback started: %s (%d clips, %.2fs)",
                 self.clip_set.header.file_name, len(self.players), self.duration)
        return True

    def update(self, now: float) -> List[PlaybackFrame]:
        return [p.update(now) for p in self.players]
