"""Holds the buffers of entities that stopped (or were destroyed) mid-recording."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ghostclip.shared.errors import ClipError
from ghostclip.shared.models import Clip
from .recorder import RecorderState

log = logging.getLogger(__name__)


@dataclass
class _TerminatedGroup:
    states: List[RecorderState] = field(default_factory=list)


class TerminatedEntityManager:
    """
    Keeps released RecorderStates per record group until the group is saved.

    Every tick drops samples that fell out of the ``max_record_time`` window;
    entities whose buffers empty out are forgotten, then empty groups too.
    """

    def __init__(self) -> None:
        self._groups: Dict[str, _TerminatedGroup] = {}

    def add(self, group_name: str, state: RecorderState) -> None:
        self._groups.setdefault(group_name, _TerminatedGroup()).states.append(state)
        log.debug("terminated %s kept for group %s (%d samples)",
                  state.entity_id, group_name, len(state.buffer))

    def contains(self, group_name: str) -> bool:
        return group_name in self._groups

    def entity_ids(self, group_name: str) -> List[str]:
        group = self._groups.get(group_name)
        return [s.entity_id for s in group.states] if group else []

    def clear(self, group_name: str) -> None:
        self._groups.pop(group_name, None)

    def tick(self, now: float) -> List[str]:
        """Trim expired samples; returns the names of groups removed as empty."""
        removed = []
        for name, group in self._groups.items():
            for i in range(len(group.states) - 1, -1, -1):
                state = group.states[i]
                local_now = now - state.start_time
                oldest = state.buffer.peek_oldest()
                while oldest is not None and oldest.timestamp + state.options.max_record_time < local_now:
                    state.buffer.pop_oldest()
                    oldest = state.buffer.peek_oldest()
                if state.buffer.is_empty():
                    del group.states[i]
            if not group.states:
                removed.append(name)
        for name in removed:
            del self._groups[name]
            log.info("TerminatedEntityManager: group %s expired", name)
        return removed

    def cook_group(self, group_name: str, clip_start_time: float) -> List[Tuple[RecorderState, Clip]]:
        """Cook every kept entity of *group_name* and forget the group."""
        group = self._groups.pop(group_name, None)
        if group is None:
            return []
        cooked = []
        for state in group.states:
            try:
                cooked.append((state, state.cook(clip_start_time)))
            except ClipError as exc:
                log.warning("TerminatedEntityManager: %s dropped (%s)", state.entity_id, exc)
        return cooked
