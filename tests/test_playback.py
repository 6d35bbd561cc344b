"""Tests for Playback - interval tree, time mapping, interpolation and the clip players."""

import random

import numpy as np
import pytest

from ghostclip.modules.m5_playback import (
    ClipPlayer, ClipSetPlayer, IntervalTree, PlaybackState,
    calculate_elapsed_time, interpolate_pose, interpolate_transform,
)
from ghostclip.shared.constants import OPEN_END
from ghostclip.shared.errors import InvalidInterval
from ghostclip.shared.models import (
    ActivityInterval, Clip, ClipSet, ClipSetHeader, SubPartMeta, Transform,
)
from ghostclip.shared.options import PlaybackOptions

from conftest import make_walker_clip, walker_sample


def _iv(name, start, end=OPEN_END):
    return ActivityInterval(SubPartMeta(name), start, end)


class TestIntervalTree:

    def test_half_open_bounds(self):
        tree = IntervalTree([_iv("Hat", 5, 12)])
        assert tree.query(4) == []
        assert [iv.name for iv in tree.query(5)] == ["Hat"]
        assert [iv.name for iv in tree.query(11)] == ["Hat"]
        assert tree.query(12) == []

    def test_open_interval_never_ends(self):
        tree = IntervalTree([_iv("Root", 0)])
        assert len(tree.query(10_000_000)) == 1

    def test_empty(self):
        tree = IntervalTree()
        assert len(tree) == 0
        assert tree.depth == 0
        assert tree.query(3) == []

    def test_rejects_reversed_interval(self):
        with pytest.raises(InvalidInterval):
            IntervalTree([_iv("Bad", 8, 3)])

    def test_matches_brute_force(self):
        rng = random.Random(7)
        intervals = []
        for i in range(200):
            start = rng.randrange(0, 500)
            intervals.append(_iv(f"p{i}", start, start + rng.randrange(0, 60)))
        tree = IntervalTree(intervals)
        assert len(tree) == 200
        assert tree.depth < 40
        for frame in range(-5, 570):
            expected = sorted(iv.name for iv in intervals if iv.start_frame <= frame < iv.end_frame)
            assert sorted(iv.name for iv in tree.query(frame)) == expected


class TestElapsedTime:

    def test_forward(self):
        assert calculate_elapsed_time(2.0, 0.0, 1.0, 5.0, False) == pytest.approx(2.0)
        assert calculate_elapsed_time(6.0, 0.0, 1.0, 5.0, False) is None

    def test_rate_scales_time(self):
        assert calculate_elapsed_time(11.0, 10.0, 2.0, 5.0, False) == pytest.approx(2.0)

    def test_reverse(self):
        assert calculate_elapsed_time(0.0, 0.0, -1.0, 5.0, False) == pytest.approx(5.0)
        assert calculate_elapsed_time(2.0, 0.0, -1.0, 5.0, False) == pytest.approx(3.0)
        assert calculate_elapsed_time(6.0, 0.0, -1.0, 5.0, False) is None

    def test_looping_wraps(self):
        assert calculate_elapsed_time(7.0, 0.0, 1.0, 5.0, True) == pytest.approx(2.0)
        assert calculate_elapsed_time(1.0, 0.0, -1.0, 5.0, True) == pytest.approx(4.0)

    def test_zero_duration(self):
        assert calculate_elapsed_time(0.0, 0.0, 1.0, 0.0, True) is None


class TestInterpolation:

    def test_transform_midpoint(self):
        a = Transform.identity()
        b = Transform.from_euler((2.0, 0.0, 0.0), (0.0, 0.0, 90.0), (3.0, 1.0, 1.0))
        mid = interpolate_transform(a, b, 0.5)
        assert mid.is_close(Transform.from_euler((1.0, 0.0, 0.0), (0.0, 0.0, 45.0), (2.0, 1.0, 1.0)))

    def test_transform_endpoints(self):
        a = Transform.from_euler((0.0, 1.0, 0.0), (10.0, 0.0, 0.0))
        b = Transform.from_euler((0.0, 3.0, 0.0), (50.0, 0.0, 0.0))
        assert interpolate_transform(a, b, 0.0).is_close(a)
        assert interpolate_transform(a, b, 1.0).is_close(b)

    def test_zero_quaternion_falls_back_to_identity(self):
        a = Transform(rotation=(0.0, 0.0, 0.0, 0.0))
        b = Transform.from_euler(euler_deg=(0.0, 0.0, 90.0))
        out = interpolate_transform(a, b, 0.0)
        assert out.is_close(Transform.identity())
        assert np.linalg.norm(interpolate_transform(a, b, 0.5).rotation) == pytest.approx(1.0)

    def test_pose_uses_shortest_arc(self):
        q = Transform.from_euler(euler_deg=(0.0, 30.0, 0.0))
        flipped = Transform(q.location, -q.rotation, q.scale)
        (out,) = interpolate_pose([q], [flipped], 0.5)
        assert out.is_close(q)
        assert np.linalg.norm(out.rotation) == pytest.approx(1.0)

    def test_pose_truncates_to_shorter(self):
        prev = [Transform.identity()] * 3
        nxt = [Transform(location=(2.0, 0.0, 0.0))] * 2
        out = interpolate_pose(prev, nxt, 0.25)
        assert len(out) == 2
        assert out[0].location[0] == pytest.approx(0.5)
        assert interpolate_pose([], nxt, 0.5) == []


class TestClipPlayer:

    def setup_method(self):
        self.clip = make_walker_clip()
        self.player = ClipPlayer(self.clip)

    def test_invalid_clip_does_not_start(self):
        player = ClipPlayer(Clip(primary_name="Root", samples=[walker_sample(0)]))
        assert not player.initialize(0.0)
        assert player.state == PlaybackState.UNINITIALIZED
        frame = player.update(1.0)
        assert frame.finished and frame.hidden

    def test_zero_rate_rejected(self):
        with pytest.raises(ValueError):
            ClipPlayer(self.clip, PlaybackOptions(playback_rate=0.0))

    def test_activation_toggles(self):
        assert self.player.initialize(100.0)
        assert self.player.state == PlaybackState.READY

        first = self.player.update(100.0)
        assert first.activated == ["Body", "Root"]
        assert first.deactivated == []
        assert self.player.state == PlaybackState.SEEKING

        entered = self.player.update(100.35)
        assert entered.activated == ["Hat"]
        assert self.player.current_frame == 3

        assert self.player.update(100.45).activated == []

        left = self.player.update(100.85)
        assert left.deactivated == ["Hat"]
        assert self.player.active_names == {"Root", "Body"}

    def test_flip_back_within_one_tick_cancels(self):
        self.player.initialize(0.0)
        self.player.update(0.0)
        assert self.player.seek_frame(4)
        assert self.player.seek_frame(1)
        frame = self.player.update_to_time(0.15)
        assert frame.activated == []
        assert frame.deactivated == []

    def test_seek_out_of_range(self):
        self.player.initialize(0.0)
        assert not self.player.seek_frame(-1)
        assert not self.player.seek_frame(self.clip.num_frames)

    def test_seek_before_initialize(self):
        assert not self.player.seek_frame(0)

    def test_interpolates_between_samples(self):
        self.player.initialize(0.0)
        frame = self.player.update_to_time(0.05)
        assert frame.transforms["Root"].location[0] == pytest.approx(1.5 * 0.05 - 2.0)
        assert len(frame.bone_transforms["Body"]) == 3
        assert set(frame.transforms) == {"Root", "Body", "Hat"}

    def test_hidden_outside_samples(self):
        self.player.initialize(0.0)
        assert self.player.update_to_time(-0.1).hidden
        assert self.player.is_hidden
        assert not self.player.update_to_time(0.5).hidden
        assert not self.player.is_hidden

    def test_finishes_after_duration(self):
        self.player.initialize(0.0)
        assert self.player.update(2.0).finished
        assert self.player.state == PlaybackState.FINISHED
        assert self.player.update(0.5).finished

    def test_reverse_starts_at_end(self):
        player = ClipPlayer(self.clip, PlaybackOptions(playback_rate=-1.0))
        player.initialize(0.0)
        frame = player.update(0.0)
        assert frame.transforms["Root"].location[0] == pytest.approx(1.5 * 1.1 - 2.0)
        assert player.current_frame == self.clip.num_frames - 2

    def test_looping_wraps(self):
        player = ClipPlayer(self.clip, PlaybackOptions(looping=True))
        player.initialize(0.0)
        frame = player.update(self.clip.duration + 0.05)
        assert not frame.finished
        assert frame.transforms["Root"].location[0] == pytest.approx(1.5 * 0.05 - 2.0, abs=1e-6)


class TestClipSetPlayer:

    def test_shared_clock(self, walker_clip_set):
        player = ClipSetPlayer(walker_clip_set)
        assert player.duration == pytest.approx(1.1)
        assert player.start(10.0)
        assert len(player.players) == 2

        frames = player.update(10.3)
        assert [f.hidden for f in frames] == [False, False]
        frames = player.update(10.8)
        assert [f.hidden for f in frames] == [False, True]

        player.update(12.0)
        assert player.is_finished

    def test_duration_falls_back_to_longest_clip(self, walker_clip_set):
        walker_clip_set.header.total_length = 0.0
        assert ClipSetPlayer(walker_clip_set).duration == pytest.approx(1.1)

    def test_nothing_playable(self):
        clip_set = ClipSet(ClipSetHeader(file_name="empty"), [Clip(samples=[walker_sample(0)])])
        player = ClipSetPlayer(clip_set)
        assert not player.start(0.0)

    def test_late_clip_hidden_until_it_appears(self):
        late = make_walker_clip(6)
        late.samples = [s.rebased(-0.5) for s in late.samples]
        clip_set = ClipSet(ClipSetHeader(file_name="late", total_length=1.1), [make_walker_clip(), late])
        player = ClipSetPlayer(clip_set)
        player.start(0.0)
        assert [f.hidden for f in player.update(0.2)] == [False, True]
        early, joined = player.update(0.7)
        assert not joined.hidden
        assert joined.transforms["Root"].location[0] == pytest.approx(1.5 * 0.2 - 2.0)
