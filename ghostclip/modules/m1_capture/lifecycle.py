"""Per-entity table of sub-part activity intervals [start_frame, end_frame)."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ghostclip.shared.constants import OPEN_END
from ghostclip.shared.errors import InvalidInterval
from ghostclip.shared.models import ActivityInterval, SubPartMeta

log = logging.getLogger(__name__)


class LifecycleTracker:
    """
    Records when sub-parts are attached to / detached from an entity.

    Rejected calls (duplicate open, close without open) are no-ops that
    log a warning and return False; with ``strict=True`` they raise
    InvalidInterval instead.
    """

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict
        self._intervals: List[ActivityInterval] = []
        self._open_index: Dict[str, int] = {}

    @property
    def intervals(self) -> List[ActivityInterval]:
        return self._intervals

    @property
    def open_names(self) -> List[str]:
        return list(self._open_index)

    def is_open(self, name: str) -> bool:
        return name in self._open_index

    def find_open(self, name: str) -> Optional[ActivityInterval]:
        idx = self._open_index.get(name)
        return None if idx is None else self._intervals[idx]

    def open(self, meta: SubPartMeta, at_frame: int) -> bool:
        if meta.name in self._open_index:
            return self._reject(f"sub-part {meta.name!r} is already open")
        self._intervals.append(ActivityInterval(meta, at_frame, OPEN_END))
        self._open_index[meta.name] = len(self._intervals) - 1
        log.debug("open %s at frame %d", meta.name, at_frame)
        return True

    def close(self, name: str, at_frame: int) -> bool:
        """Mark *name* inactive from *at_frame* onwards (end is exclusive)."""
        idx = self._open_index.get(name)
        if idx is None:
            return self._reject(f"close of {name!r} without a matching open")
        interval = self._intervals[idx]
        if at_frame < interval.start_frame:
            return self._reject(
                f"close of {name!r} at frame {at_frame} precedes its open at {interval.start_frame}"
            )
        interval.end_frame = at_frame
        del self._open_index[name]
        log.debug("close %s at frame %d", name, at_frame)
        return True

    def take_intervals(self) -> List[ActivityInterval]:
        """Hand the interval list over to the caller and reset the tracker."""
        intervals = self._intervals
        self._intervals = []
        self._open_index = {}
        return intervals

    def _reject(self, message: str) -> bool:
        if self._strict:
            raise InvalidInterval(message)
        log.warning("LifecycleTracker: %s", message)
        return False
