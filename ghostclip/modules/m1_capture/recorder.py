"""
#WHERE
    Created by SessionManager.start_recording(), one per recorded entity.

#WHAT
    Recording session for a single entity: samples poses into a drop-oldest
    ring buffer on a fixed sampling interval and tracks sub-part
    attach/detach events as activity intervals.

#INPUT
    Per-tick clock value plus a sampler returning
    ({sub-part: world Transform}, {sub-part: [bone-local Transform]}).

#OUTPUT
    A cooked Clip (via cook()) or a RecorderState handed to the
    TerminatedEntityManager when the entity goes away mid-recording.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ghostclip.shared.models import ActivityInterval, Clip, Sample, SubPartMeta, Transform
from ghostclip.shared.options import RecordOptions
from ghostclip.modules.m2_cooker.cooker import cook_from_buffer
from .lifecycle import LifecycleTracker
from .ring_buffer import RingBuffer

log = logging.getLogger(__name__)

Sampler = Callable[[], Tuple[Mapping[str, Transform], Mapping[str, Sequence[Transform]]]]


@dataclass
class RecorderState:
    """Everything a recorder owned, detached from the live entity."""
    entity_id: str
    options: RecordOptions
    start_time: float
    buffer: RingBuffer[Sample]
    intervals: List[ActivityInterval] = field(default_factory=list)
    primary_name: str = ""
    user_data: bytes = b""

    def cook(self, clip_start_time: float) -> Clip:
        return cook_from_buffer(self.buffer, self.intervals, clip_start_time, self.primary_name)


class EntityRecorder:
    """Owns one entity's ring buffer and lifecycle tracker for a recording session."""

    def __init__(
        self,
        entity_id: str,
        options: Optional[RecordOptions] = None,
        start_time: float = 0.0,
        user_data: bytes = b"",
    ) -> None:
        self._options = options or RecordOptions()
        self._options.validate()
        self._entity_id = entity_id
        self._start_time = start_time
        self._buffer: RingBuffer[Sample] = RingBuffer(self._options.capacity)
        self._tracker = LifecycleTracker()
        self._meta_cache: Dict[str, SubPartMeta] = {}
        self._primary_name = ""
        self._frame_index = 0
        self._last_tick: Optional[float] = None
        self._since_last_record = 0.0
        self._is_finished = False
        self.user_data = user_data

    # -- observable state --

    @property
    def entity_id(self) -> str:
        return self._entity_id

    @property
    def options(self) -> RecordOptions:
        return self._options

    @property
    def start_time(self) -> float:
        return self._start_time

    @property
    def primary_name(self) -> str:
        return self._primary_name

    @property
    def frame_index(self) -> int:
        """Index the next recorded sample will get."""
        return self._frame_index

    @property
    def num_buffered(self) -> int:
        return len(self._buffer)

    @property
    def is_finished(self) -> bool:
        return self._is_finished

    def metadata(self, name: str) -> Optional[SubPartMeta]:
        return self._meta_cache.get(name)

    def active_names(self) -> List[str]:
        return self._tracker.open_names

    # -- sub-part lifecycle --

    def attach(self, meta: SubPartMeta) -> bool:
        """Start tracking *meta* at the current frame.  The first one becomes primary."""
        if self._is_finished:
            log.warning("EntityRecorder[%s]: attach after finish ignored", self._entity_id)
            return False
        if not self._tracker.open(meta, self._frame_index):
            return False
        self._meta_cache[meta.name] = meta
        if not self._primary_name:
            self._primary_name = meta.name
        return True

    def detach(self, name: str) -> bool:
        if self._is_finished:
            log.warning("EntityRecorder[%s]: detach after finish ignored", self._entity_id)
            return False
        return self._tracker.close(name, self._frame_index)

    # -- sampling --

    def record(
        self,
        now: float,
        transforms: Mapping[str, Transform],
        bone_transforms: Optional[Mapping[str, Sequence[Transform]]] = None,
    ) -> Optional[Sample]:
        """Push one sample stamped ``now - start_time`` regardless of the interval."""
        if self._is_finished:
            return None
        sample = Sample(
            timestamp=now - self._start_time,
            frame_index=self._frame_index,
            transforms=dict(transforms),
            bone_transforms={k: list(v) for k, v in (bone_transforms or {}).items()},
        )
        self._frame_index += 1
        self._buffer.push(sample)
        return sample

    def tick(self, now: float, sampler: Sampler) -> Optional[Sample]:
        """Record a sample once at least ``sampling_interval`` has passed since the last one."""
        if self._is_finished:
            return None
        last = self._start_time if self._last_tick is None else self._last_tick
        self._last_tick = now
        self._since_last_record += max(0.0, now - last)
        if self._since_last_record < self._options.sampling_interval:
            return None
        self._since_last_record -= self._options.sampling_interval
        transforms, bones = sampler()
        return self.record(now, transforms, bones)

    # -- hand-off --

    def release(self) -> RecorderState:
        """Transfer buffer and intervals out; the recorder accepts nothing afterwards."""
        self._is_finished = True
        state = RecorderState(
            entity_id=self._entity_id,
            options=self._options,
            start_time=self._start_time,
            buffer=self._buffer,
            intervals=self._tracker.take_intervals(),
            primary_name=self._primary_name,
            user_data=self.user_data,
        )
        self._buffer = RingBuffer(self._options.capacity)
        return state

    def cook(self, clip_start_time: float) -> Clip:
        """Release and cook in one step.  Raises InsufficientSamples."""
        return self.release().cook(clip_start_time)
