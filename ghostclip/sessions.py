"""
#WHERE
    Entry point for host integrations: main.py ``demo`` and whatever
    drives the per-tick clock.

#WHAT
    Explicit owner of every recording and playback session:
    record groups (name → recorders), terminated-entity buffers,
    background saves, playback groups (uuid → ClipSetPlayer) and
    header/body caches.  Nothing here is process-global.

#INPUT
    Entity ids, RecordOptions / PlaybackOptions, a monotonic clock value
    and per-entity pose samplers each tick.

#OUTPUT
    Saved files (via FileStore), PlaybackFrames per playback group.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ghostclip.modules.m1_capture import EntityRecorder, TerminatedEntityManager
from ghostclip.modules.m1_capture.recorder import Sampler
from ghostclip.modules.m2_cooker import clip_by_group_window
from ghostclip.modules.m4_serialization import FileStore
from ghostclip.modules.m5_playback import ClipSetPlayer, PlaybackFrame
from ghostclip.shared.errors import ClipError
from ghostclip.shared.models import Clip, ClipSet, ClipSetHeader, Transform
from ghostclip.shared.options import FileOptions, PlaybackOptions, RecordOptions
from ghostclip.shared.profiling import maybe_profile

log = logging.getLogger(__name__)

SaveCallback = Callable[[str, ClipSetHeader], None]


@dataclass
class RecordGroup:
    name: str
    options: RecordOptions
    start_time: float
    recorders: Dict[str, EntityRecorder] = field(default_factory=dict)
    main_entity: Optional[str] = None
    user_data: bytes = b""


@dataclass
class PlaybackGroup:
    id: str
    level: str
    file_name: str
    player: ClipSetPlayer


@dataclass
class _PendingSave:
    future: "Future[Optional[str]]"
    header: ClipSetHeader
    on_saved: Optional[SaveCallback]


class SessionManager:
    """Owns record groups, playback groups and caches.  Construct one per host."""

    def __init__(
        self,
        store: Optional[FileStore] = None,
        file_options: Optional[FileOptions] = None,
        level_name: str = "default",
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.store = store or FileStore()
        self.file_options = file_options or FileOptions()
        self.level_name = level_name
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="ghostclip-save")
        self._record_groups: Dict[str, RecordGroup] = {}
        self._terminated = TerminatedEntityManager()
        self._playback_groups: Dict[str, PlaybackGroup] = {}
        self._pending_saves: List[_PendingSave] = []
        self._header_cache: Dict[Tuple[str, str], ClipSetHeader] = {}
        self._body_cache: Dict[Tuple[str, str], ClipSet] = {}

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        """Finish in-flight saves, deliver their callbacks, stop the worker."""
        self.wait_for_saves()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # ── Recording ────────────────────────────────────────────────────────

    @property
    def record_group_names(self) -> List[str]:
        return list(self._record_groups)

    def record_group(self, name: str) -> Optional[RecordGroup]:
        return self._record_groups.get(name)

    def is_recording(self, entity_id: str) -> bool:
        return any(entity_id in g.recorders for g in self._record_groups.values())

    def start_recording(
        self,
        entity_id: str,
        options: Optional[RecordOptions] = None,
        now: float = 0.0,
        user_data: bytes = b"",
        is_main: bool = False,
    ) -> Optional[EntityRecorder]:
        """Add *entity_id* to its group (created on first use).  None if already recording."""
        options = options or RecordOptions()
        if self.is_recording(entity_id):
            log.warning("start_recording: %s is already recording", entity_id)
            return None
        try:
            options.validate()
        except ValueError as exc:
            log.warning("start_recording: %s rejected (%s)", entity_id, exc)
            return None

        group = self._record_groups.get(options.group_name)
        if group is None:
            group = RecordGroup(options.group_name, options, start_time=now)
            self._record_groups[group.name] = group
            log.info("Record group %s started at %.3f", group.name, now)

        recorder = EntityRecorder(entity_id, group.options, group.start_time, user_data)
        group.recorders[entity_id] = recorder
        if is_main or group.main_entity is None:
            group.main_entity = entity_id
        log.info("Recording started: %s (group %s)", entity_id, group.name)
        return recorder

    def set_group_user_data(self, group_name: str, data: bytes) -> bool:
        group = self._record_groups.get(group_name)
        if group is None:
            log.warning("set_group_user_data: no record group %s", group_name)
            return False
        group.user_data = data
        return True

    def stop_recording_entity(self, entity_id: str, save: bool = True,
                              now: float = 0.0) -> Optional["Future[Optional[str]]"]:
        """Stop one entity; its samples wait in the terminated buffers until the group stops."""
        group = next((g for g in self._record_groups.values() if entity_id in g.recorders), None)
        if group is None:
            log.info("stop_recording_entity: %s is not recording", entity_id)
            return None
        recorder = group.recorders.pop(entity_id)
        state = recorder.release()
        if save:
            self._terminated.add(group.name, state)
        if not group.recorders and group.options.save_immediately_if_group_empty:
            return self.stop_recording(group.name, save=save, now=now)
        return None

    def stop_recording(
        self,
        group_name: str,
        save: bool = True,
        now: float = 0.0,
        on_saved: Optional[SaveCallback] = None,
    ) -> Optional["Future[Optional[str]]"]:
        """
        Stop every recorder of *group_name*, cook, window and save in the background.

        Returns the save Future (result: path or None), or None when nothing
        was saved.  *on_saved(path, header)* runs once on success, on the
        thread that calls tick() / poll_saves().
        """
        group = self._record_groups.get(group_name)
        if group is None:
            log.warning("stop_recording: record group %s is not recording", group_name)
            return None

        future = None
        if save:
            clip_set = self._build_clip_set(group, now)
            if clip_set is not None:
                future = self._submit_save(clip_set, on_saved)

        for recorder in group.recorders.values():
            if not recorder.is_finished:
                recorder.release()
        del self._record_groups[group_name]
        self._terminated.clear(group_name)
        log.info("Recording stopped for %s", group_name)
        return future

    def _build_clip_set(self, group: RecordGroup, now: float) -> Optional[ClipSet]:
        opts = group.options
        end_time = now - group.start_time
        clip_start = max(0.0, end_time - opts.max_record_time)

        entries: List[Tuple[str, Clip, bytes]] = [
            (state.entity_id, clip, state.user_data)
            for state, clip in self._terminated.cook_group(group.name, clip_start)
        ]
        for entity_id, recorder in group.recorders.items():
            try:
                entries.append((entity_id, recorder.cook(clip_start), recorder.user_data))
            except ClipError as exc:
                log.warning("stop_recording: %s dropped (%s)", entity_id, exc)

        if not entries:
            log.warning("stop_recording: no valid recorder in group %s", group.name)
            return None

        clip_by_group_window([clip for _, clip, _ in entries], opts.max_record_time)
        entries = [e for e in entries if e[1].is_valid]
        if not entries:
            log.warning("stop_recording: every entity of %s fell outside the save window", group.name)
            return None

        main = next((e for e in entries if e[0] == group.main_entity), entries[0])
        first = main[1].samples[0]
        spawn = first.transforms.get(main[1].primary_name, Transform.identity()).copy()

        if opts.file_name:
            file_name = opts.file_name.replace("\\", " ").replace("/", " ")
        else:
            file_name = f"{group.name}-{datetime.now().strftime('%Y%m%d-%H%M%S%f')}"

        header = ClipSetHeader(
            file_name=file_name,
            level_name=self.level_name,
            tags=list(opts.tags),
            spawn_transform=spawn,
            max_record_time=opts.max_record_time,
            sampling_interval=opts.sampling_interval,
            total_length=min(end_time, opts.max_record_time),
            group_user_data=group.user_data,
            actor_user_data=[ud for _, _, ud in entries],
        )
        return ClipSet(header=header, clips=[clip for _, clip, _ in entries])

    # ── Background save ──────────────────────────────────────────────────

    def _submit_save(self, clip_set: ClipSet, on_saved: Optional[SaveCallback]) -> "Future[Optional[str]]":
        future = self._executor.submit(self._save_job, clip_set, self.file_options)
        self._pending_saves.append(_PendingSave(future, clip_set.header, on_saved))
        return future

    def _save_job(self, clip_set: ClipSet, options: FileOptions) -> Optional[str]:
        header = clip_set.header
        with maybe_profile(f"save {header.level_name}/{header.file_name}"):
            return self.store.save(clip_set, header.level_name, header.file_name, options)

    def poll_saves(self) -> int:
        """Deliver completion for finished saves.  Returns how many completed."""
        done = [p for p in self._pending_saves if p.future.done()]
        for pending in done:
            self._pending_saves.remove(pending)
            self._complete(pending)
        return len(done)

    def wait_for_saves(self) -> int:
        for pending in list(self._pending_saves):
            pending.future.exception()
        return self.poll_saves()

    def _complete(self, pending: _PendingSave) -> None:
        header = pending.header
        exc = pending.future.exception()
        path = None if exc is not None else pending.future.result()
        if path is None:
            log.error("Background save of %s failed%s", header.file_name, f" ({exc})" if exc else "")
            return
        self._header_cache.pop((header.level_name, header.file_name), None)
        self._body_cache.pop((header.level_name, header.file_name), None)
        if pending.on_saved is not None:
            pending.on_saved(path, header)

    # ── Playback ─────────────────────────────────────────────────────────

    @property
    def playback_ids(self) -> List[str]:
        return list(self._playback_groups)

    def playback_group(self, playback_id: str) -> Optional[PlaybackGroup]:
        return self._playback_groups.get(playback_id)

    def start_playback(self, level: str, file_name: str,
                       options: Optional[PlaybackOptions] = None, now: float = 0.0) -> Optional[str]:
        clip_set = self.find_or_load_clip_set(level, file_name)
        if clip_set is None:
            return None
        return self.start_playback_from_clip_set(clip_set, options, now, level=level, file_name=file_name)

    def start_playback_from_clip_set(
        self,
        clip_set: ClipSet,
        options: Optional[PlaybackOptions] = None,
        now: float = 0.0,
        level: str = "",
        file_name: str = "",
    ) -> Optional[str]:
        try:
            player = ClipSetPlayer(clip_set, options)
            started = player.start(now)
        except (ClipError, ValueError) as exc:
            log.warning("start_playback: %s rejected (%s)", file_name or clip_set.header.file_name, exc)
            return None
        if not started:
            return None
        playback_id = str(uuid.uuid4())
        self._playback_groups[playback_id] = PlaybackGroup(
            playback_id, level or clip_set.header.level_name, file_name or clip_set.header.file_name, player,
        )
        return playback_id

    def stop_playback(self, playback_id: str) -> bool:
        group = self._playback_groups.pop(playback_id, None)
        if group is None:
            log.warning("stop_playback: unknown playback %s", playback_id)
            return False
        log.info("Playback stopped: %s (%s)", group.file_name, playback_id)
        return True

    # ── Tick ─────────────────────────────────────────────────────────────

    def tick(self, now: float, samplers: Optional[Mapping[str, Sampler]] = None) -> Dict[str, List[PlaybackFrame]]:
        """Sample recorders, trim terminated buffers, advance playback, deliver save results."""
        samplers = samplers or {}
        for group in self._record_groups.values():
            for entity_id, recorder in group.recorders.items():
                sampler = samplers.get(entity_id)
                if sampler is not None:
                    recorder.tick(now, sampler)

        self._terminated.tick(now)

        frames: Dict[str, List[PlaybackFrame]] = {}
        for playback_id, group in list(self._playback_groups.items()):
            frames[playback_id] = group.player.update(now)
            if group.player.is_finished:
                del self._playback_groups[playback_id]
                log.info("Playback finished: %s (%s)", group.file_name, playback_id)

        self.poll_saves()
        return frames

    # ── Caches ───────────────────────────────────────────────────────────

    def find_or_load_header(self, level: str, file_name: str) -> Optional[ClipSetHeader]:
        key = (level, file_name)
        if key not in self._header_cache:
            loaded = self.store.load_header(level, file_name)
            if loaded is None:
                return None
            self._header_cache[key] = loaded[1]
        return self._header_cache[key]

    def find_or_load_clip_set(self, level: str, file_name: str) -> Optional[ClipSet]:
        key = (level, file_name)
        if key not in self._body_cache:
            clip_set = self.store.load(level, file_name)
            if clip_set is None:
                return None
            self._body_cache[key] = clip_set
            self._header_cache[key] = clip_set.header
        return self._body_cache[key]

    def headers_with_tags(self, tags: Iterable[str], level: Optional[str] = None) -> Dict[Tuple[str, str], ClipSetHeader]:
        found = self.store.load_headers_with_tags(tags, level)
        self._header_cache.update(found)
        return found

    def clear_caches(self) -> None:
        self._header_cache.clear()
        self._body_cache.clear()
