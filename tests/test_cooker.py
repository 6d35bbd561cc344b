"""Tests for Clip Cooker - initial cook and group windowing."""

import pytest

from ghostclip.modules.m1_capture import RingBuffer
from ghostclip.modules.m2_cooker import (
    clip_by_group_window, cook_from_buffer, group_window, remap_initial_intervals,
)
from ghostclip.shared.constants import OPEN_END
from ghostclip.shared.errors import InsufficientSamples
from ghostclip.shared.models import ActivityInterval, Clip, Sample, SubPartMeta, Transform


def _buffer(timestamps, first_index=0):
    buf = RingBuffer(len(timestamps) + 1)
    for i, t in enumerate(timestamps):
        buf.push(Sample(float(t), first_index + i, {"Root": Transform(location=(t, 0.0, 0.0))}))
    return buf


def _interval(name, start, end=OPEN_END):
    return ActivityInterval(SubPartMeta(name), start, end)


def _clip(timestamps, intervals=()):
    samples = [Sample(float(t), i, {"Root": Transform(location=(t, 0.0, 0.0))}) for i, t in enumerate(timestamps)]
    return Clip(primary_name="Root", intervals=list(intervals), samples=samples)


class TestCookFromBuffer:

    def test_drops_samples_before_start_and_rebases(self):
        clip = cook_from_buffer(_buffer([0, 1, 2, 3, 4]), [], clip_start_time=1.0)
        assert clip.num_frames == 4
        assert [s.timestamp for s in clip.samples] == pytest.approx([0.0, 1.0, 2.0, 3.0])
        assert [s.frame_index for s in clip.samples] == [0, 1, 2, 3]

    def test_drains_buffer(self):
        buf = _buffer([0, 1, 2])
        cook_from_buffer(buf, [], 0.0)
        assert buf.is_empty()

    def test_fewer_than_two_samples_fails(self):
        with pytest.raises(InsufficientSamples):
            cook_from_buffer(_buffer([0, 1, 2]), [], clip_start_time=1.5)

    def test_empty_buffer_fails(self):
        with pytest.raises(InsufficientSamples):
            cook_from_buffer(RingBuffer(3), [], 0.0)

    def test_intervals_remapped_to_clip_frames(self):
        # raw frames 10..14; clip keeps frames 11..14 → first kept = 11
        intervals = [
            _interval("Gone", 0, 11),        # ended before the clip
            _interval("Root", 10),           # open
            _interval("Sword", 12, 14),
            _interval("Shield", 5, 30),
        ]
        clip = cook_from_buffer(_buffer([0, 1, 2, 3, 4], first_index=10), intervals, 1.0)
        got = {iv.name: (iv.start_frame, iv.end_frame) for iv in clip.intervals}
        assert got == {"Root": (0, 4), "Sword": (1, 3), "Shield": (0, 4)}

    def test_original_intervals_untouched(self):
        iv = _interval("Root", 3)
        cook_from_buffer(_buffer([0, 1, 2], first_index=3), [iv], 0.0)
        assert (iv.start_frame, iv.end_frame) == (3, OPEN_END)


class TestRemapInitialIntervals:

    def test_boundary_end_equal_to_first_frame_is_dropped(self):
        out = remap_initial_intervals([_interval("A", 0, 5), _interval("B", 0, 6)], first_frame=5, num_samples=3)
        assert [iv.name for iv in out] == ["B"]
        assert (out[0].start_frame, out[0].end_frame) == (0, 1)

    def test_end_clamped_to_sample_count(self):
        out = remap_initial_intervals([_interval("A", 2, 100)], first_frame=0, num_samples=10)
        assert (out[0].start_frame, out[0].end_frame) == (2, 10)


class TestGroupWindow:

    def test_window_start(self):
        a = _clip(range(0, 11))
        b = _clip(range(5, 11))
        assert group_window([a, b], 3.0) == (7.0, 10.0)

    def test_window_clamped_to_group_start(self):
        assert group_window([_clip([2, 3, 4])], 10.0) == (2.0, 4.0)

    def test_no_clips(self):
        assert group_window([], 3.0) is None
        assert clip_by_group_window([], 3.0) == []

    def test_two_entities(self):
        a = _clip(range(0, 11), [_interval("Root", 0, 11), _interval("Early", 1, 4)])
        b = _clip(range(5, 11), [_interval("Root", 0, 6)])
        kept = clip_by_group_window([a, b], 3.0)

        assert kept == [a, b]
        assert [s.timestamp for s in a.samples] == pytest.approx([0.0, 1.0, 2.0, 3.0])
        assert [s.transforms["Root"].location[0] for s in a.samples] == [7.0, 8.0, 9.0, 10.0]
        assert [s.frame_index for s in a.samples] == [0, 1, 2, 3]
        assert [(iv.name, iv.start_frame, iv.end_frame) for iv in a.intervals] == [("Root", 0, 4)]

        assert [s.transforms["Root"].location[0] for s in b.samples] == [7.0, 8.0, 9.0, 10.0]
        assert b.samples[0].timestamp == pytest.approx(0.0)

    def test_entity_inside_window_unchanged(self):
        a = _clip(range(0, 11))
        b = _clip([8, 9, 10], [_interval("Root", 0, 3)])
        clip_by_group_window([a, b], 3.0)
        assert [s.transforms["Root"].location[0] for s in b.samples] == [8.0, 9.0, 10.0]
        assert [s.timestamp for s in b.samples] == pytest.approx([1.0, 2.0, 3.0])
        assert [s.frame_index for s in b.samples] == [0, 1, 2]
        assert [(iv.start_frame, iv.end_frame) for iv in b.intervals] == [(0, 3)]

    def test_entity_outside_window_emptied(self):
        a = _clip(range(0, 11))
        old = _clip([0, 1, 2], [_interval("Root", 0, 3)])
        kept = clip_by_group_window([a, old], 3.0)
        assert kept == [a]
        assert old.samples == [] and old.intervals == []

    def test_interval_partially_inside_window(self):
        a = _clip(range(0, 11), [_interval("Torch", 5, 9), _interval("Gone", 0, 7)])
        clip_by_group_window([a], 3.0)
        assert [(iv.name, iv.start_frame, iv.end_frame) for iv in a.intervals] == [("Torch", 0, 2)]

    def test_late_entity_keeps_offset_from_group(self):
        a = _clip(range(0, 11))
        b = _clip([8.5, 9.5, 10])
        clip_by_group_window([a, b], 3.0)
        assert a.samples[0].timestamp == pytest.approx(0.0)
        assert b.samples[0].timestamp - a.samples[0].timestamp == pytest.approx(1.5)
        assert b.samples[-1].timestamp == pytest.approx(a.samples[-1].timestamp)
