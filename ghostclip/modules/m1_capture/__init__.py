"""
Capture Module (Module 1)
=========================
Samples entity poses into bounded ring buffers and tracks sub-part
activity intervals.

Example:
    from ghostclip.modules.m1_capture import EntityRecorder

    rec = EntityRecorder("hero", RecordOptions(max_record_time=3.0))
    rec.attach(SubPartMeta("Body", SubPartKind.SKELETAL_MESH))
    rec.record(0.1, {"Body": Transform()})
"""

from .ring_buffer import RingBuffer
from .lifecycle import LifecycleTracker
from .recorder import EntityRecorder, RecorderState
from .terminated import TerminatedEntityManager

__all__ = [
    "RingBuffer",
    "LifecycleTracker",
    "EntityRecorder",
    "RecorderState",
    "TerminatedEntityManager",
]
