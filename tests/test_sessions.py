"""Tests for SessionManager - record, save, replay and the caches around them."""

import os
import tracemalloc

import pytest

from ghostclip.modules.m4_serialization import FileStore
from ghostclip.sessions import SessionManager
from ghostclip.shared.models import SubPartKind, SubPartMeta
from ghostclip.shared.options import (
    CompressionMethod, FileOptions, PlaybackOptions, QuantizationMethod, RecordOptions,
)

from conftest import walker_sample

STEP = 0.05


def _sampler(now):
    sample = walker_sample(int(round(now * 100)), dt=0.01)
    return lambda: (sample.transforms, sample.bone_transforms)


def _run(sessions, entity_ids, start, stop):
    """Tick the manager from *start* to *stop* inclusive, sampling *entity_ids*."""
    n = int(round((stop - start) / STEP))
    for i in range(n + 1):
        now = start + i * STEP
        sessions.tick(now, {eid: _sampler(now) for eid in entity_ids})


def _attach_walker(recorder):
    recorder.attach(SubPartMeta("Root", SubPartKind.STATIC_MESH, "/Meshes/Capsule"))
    recorder.attach(SubPartMeta("Body", SubPartKind.SKELETAL_MESH, "/Meshes/Walker"))


@pytest.fixture
def sessions(tmp_path):
    manager = SessionManager(
        FileStore(str(tmp_path)),
        FileOptions(CompressionMethod.ZLIB, QuantizationMethod.NONE),
        level_name="lvl",
    )
    yield manager
    manager.shutdown()


@pytest.fixture
def options():
    return RecordOptions(group_name="g", file_name="run", tags=["walker", "test"],
                         max_record_time=2.0, sampling_interval=0.1)


class TestRecording:

    def test_record_save_and_replay(self, sessions, options):
        calls = []
        recorder = sessions.start_recording("a", options, now=0.0, user_data=b"ua", is_main=True)
        _attach_walker(recorder)
        _run(sessions, ["a"], 0.0, 3.0)
        assert 2 <= recorder.num_buffered <= options.capacity

        future = sessions.stop_recording("g", now=3.0, on_saved=lambda path, header: calls.append((path, header)))
        path = future.result()
        assert path is not None and os.path.isfile(path)
        assert sessions.record_group_names == []
        assert not sessions.is_recording("a")

        sessions.wait_for_saves()
        sessions.wait_for_saves()
        assert len(calls) == 1
        assert calls[0][0] == path
        assert calls[0][1].file_name == "run"

        header = sessions.find_or_load_header("lvl", "run")
        assert header.level_name == "lvl"
        assert header.tags == ["walker", "test"]
        assert header.total_length == pytest.approx(2.0)
        assert header.actor_user_data == [b"ua"]

        clip_set = sessions.find_or_load_clip_set("lvl", "run")
        (clip,) = clip_set.clips
        assert clip.primary_name == "Root"
        assert 0.0 <= clip.samples[0].timestamp < options.sampling_interval + 1e-6
        assert [s.frame_index for s in clip.samples] == list(range(clip.num_frames))
        assert clip.duration <= 2.0 + 1e-6
        assert header.spawn_transform.is_close(clip.samples[0].transforms["Root"])

        playback_id = sessions.start_playback("lvl", "run", PlaybackOptions(), now=10.0)
        assert playback_id in sessions.playback_ids
        (frame,) = sessions.tick(10.5)[playback_id]
        assert not frame.hidden
        assert frame.activated == ["Body", "Root"]
        assert "Root" in frame.transforms

        sessions.tick(13.0)
        assert sessions.playback_ids == []

    def test_duplicate_entity_rejected(self, sessions, options):
        assert sessions.start_recording("a", options) is not None
        assert sessions.start_recording("a", options) is None
        assert sessions.is_recording("a")

    def test_invalid_options_rejected(self, sessions):
        assert sessions.start_recording("a", RecordOptions(sampling_interval=0.0)) is None
        assert sessions.record_group_names == []

    def test_nothing_recorded_saves_nothing(self, sessions, options, tmp_path):
        sessions.start_recording("a", options, now=0.0)
        assert sessions.stop_recording("g", now=1.0) is None
        assert sessions.record_group_names == []
        assert not sessions.store.exists("lvl", "run")

    def test_stop_without_save(self, sessions, options):
        sessions.start_recording("a", options, now=0.0)
        _run(sessions, ["a"], 0.0, 1.0)
        assert sessions.stop_recording("g", save=False, now=1.0) is None
        assert not sessions.store.exists("lvl", "run")

    def test_stop_unknown_group(self, sessions):
        assert sessions.stop_recording("nope") is None
        assert sessions.stop_recording_entity("ghost") is None

    def test_group_user_data(self, sessions, options):
        sessions.start_recording("a", options, now=0.0)
        assert sessions.set_group_user_data("g", b"notes")
        assert not sessions.set_group_user_data("other", b"x")
        _run(sessions, ["a"], 0.0, 0.5)
        sessions.stop_recording("g", now=0.5).result()
        assert sessions.store.load_header("lvl", "run")[1].group_user_data == b"notes"

    @pytest.mark.skipif(tracemalloc.is_tracing(), reason="interpreter already tracing allocations")
    def test_heap_tracing_only_with_profile_memory(self, sessions, options, monkeypatch):
        starts = []
        real_start = tracemalloc.start

        def _start(*args):
            starts.append(args)
            real_start(*args)

        monkeypatch.setattr(tracemalloc, "start", _start)
        monkeypatch.delenv("PROFILE_MEMORY", raising=False)
        sessions.start_recording("a", options, now=0.0)
        _run(sessions, ["a"], 0.0, 0.5)
        assert sessions.stop_recording("g", now=0.5).result() is not None
        assert starts == []

        monkeypatch.setenv("PROFILE_MEMORY", "1")
        sessions.start_recording("a", options, now=1.0)
        _run(sessions, ["a"], 1.0, 1.5)
        assert sessions.stop_recording("g", now=1.5).result() is not None
        assert len(starts) == 1
        assert not tracemalloc.is_tracing()

    def test_default_file_name(self, sessions):
        sessions.start_recording("a", RecordOptions(group_name="squad"), now=0.0)
        _run(sessions, ["a"], 0.0, 0.5)
        path = sessions.stop_recording("squad", now=0.5).result()
        assert os.path.basename(path).startswith("squad-")

    def test_main_entity_sets_spawn(self, sessions, options):
        sessions.start_recording("a", options, now=0.0)
        sessions.start_recording("b", options, now=0.0, is_main=True)
        assert sessions.record_group("g").main_entity == "b"


class TestTerminatedEntities:

    def test_early_stop_is_kept_until_group_saves(self, sessions, options):
        sessions.start_recording("a", options, now=0.0, user_data=b"a")
        sessions.start_recording("b", options, now=0.0, user_data=b"b")
        _run(sessions, ["a", "b"], 0.0, 1.0)
        assert sessions.stop_recording_entity("a", now=1.0) is None
        assert not sessions.is_recording("a")
        _run(sessions, ["b"], 1.05, 2.0)

        sessions.stop_recording("g", now=2.0).result()
        header = sessions.store.load_header("lvl", "run")[1]
        assert header.actor_user_data == [b"a", b"b"]
        assert len(sessions.store.load("lvl", "run").clips) == 2

    def test_expired_terminated_entity_dropped(self, sessions, options):
        sessions.start_recording("a", options, now=0.0)
        sessions.start_recording("b", options, now=0.0)
        _run(sessions, ["a", "b"], 0.0, 1.0)
        sessions.stop_recording_entity("a", now=1.0)
        _run(sessions, ["b"], 1.05, 5.0)

        sessions.stop_recording("g", now=5.0).result()
        assert len(sessions.store.load("lvl", "run").clips) == 1

    def test_save_immediately_when_group_empties(self, sessions, options):
        options.save_immediately_if_group_empty = True
        sessions.start_recording("a", options, now=0.0)
        sessions.start_recording("b", options, now=0.0)
        _run(sessions, ["a", "b"], 0.0, 1.0)
        assert sessions.stop_recording_entity("a", now=1.0) is None
        future = sessions.stop_recording_entity("b", now=1.0)
        assert future is not None
        assert future.result() is not None
        assert sessions.record_group_names == []
        assert len(sessions.store.load("lvl", "run").clips) == 2


class TestPlaybackAndCaches:

    def _save_walk(self, sessions, options, stop=1.0):
        sessions.start_recording("a", options, now=0.0)
        _run(sessions, ["a"], 0.0, stop)
        sessions.stop_recording("g", now=stop).result()
        sessions.wait_for_saves()

    def test_missing_file(self, sessions):
        assert sessions.start_playback("lvl", "missing") is None
        assert sessions.find_or_load_header("lvl", "missing") is None

    def test_stop_playback(self, sessions, options):
        self._save_walk(sessions, options)
        playback_id = sessions.start_playback("lvl", "run", now=0.0)
        assert sessions.playback_group(playback_id).file_name == "run"
        assert sessions.stop_playback(playback_id)
        assert not sessions.stop_playback(playback_id)

    def test_concurrent_playbacks_have_distinct_ids(self, sessions, options):
        self._save_walk(sessions, options)
        first = sessions.start_playback("lvl", "run", now=0.0)
        second = sessions.start_playback("lvl", "run", PlaybackOptions(looping=True), now=0.0)
        assert first != second
        frames = sessions.tick(0.2)
        assert set(frames) == {first, second}

    def test_header_cache_survives_file_removal(self, sessions, options):
        self._save_walk(sessions, options)
        header = sessions.find_or_load_header("lvl", "run")
        sessions.store.delete("lvl", "run")
        assert sessions.find_or_load_header("lvl", "run") is header
        sessions.clear_caches()
        assert sessions.find_or_load_header("lvl", "run") is None

    def test_resave_invalidates_cache(self, sessions, options):
        self._save_walk(sessions, options, stop=1.0)
        old = sessions.find_or_load_clip_set("lvl", "run")
        assert sessions.find_or_load_clip_set("lvl", "run") is old
        self._save_walk(sessions, options, stop=1.5)
        new = sessions.find_or_load_clip_set("lvl", "run")
        assert new is not old
        assert new.header.total_length == pytest.approx(1.5)

    def test_headers_with_tags(self, sessions, options):
        self._save_walk(sessions, options)
        assert list(sessions.headers_with_tags(["walker"])) == [("lvl", "run")]
        assert sessions.headers_with_tags(["nope"]) == {}
