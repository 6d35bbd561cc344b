"""Centered interval tree over ActivityIntervals for point-in-frame queries.

Nodes live in a flat list and refer to their children by index.  Each node
splits at the median of its intervals' endpoints: intervals ending before
the split go left, intervals starting after it go right, the rest stay on
the node.  A query visits one child per level, so it costs O(log n + k).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

from ghostclip.shared.errors import InvalidInterval
from ghostclip.shared.models import ActivityInterval


@dataclass
class _Node:
    center: int
    intervals: List[ActivityInterval] = field(default_factory=list)
    left: int = -1
    right: int = -1


class IntervalTree:

    def __init__(self, intervals: Iterable[ActivityInterval] = ()) -> None:
        items = list(intervals)
        for iv in items:
            if iv.end_frame < iv.start_frame:
                raise InvalidInterval(f"{iv!r} ends before it starts")
        self._nodes: List[_Node] = []
        self._size = len(items)
        self._root = self._build(items)

    def __len__(self) -> int:
        return self._size

    @property
    def depth(self) -> int:
        def _depth(idx: int) -> int:
            if idx < 0:
                return 0
            node = self._nodes[idx]
            return 1 + max(_depth(node.left), _depth(node.right))
        return _depth(self._root)

    def _build(self, intervals: List[ActivityInterval]) -> int:
        if not intervals:
            return -1
        endpoints = sorted(v for iv in intervals for v in (iv.start_frame, iv.end_frame))
        center = endpoints[len(endpoints) // 2]

        left, right, here = [], [], []
        for iv in intervals:
            if iv.end_frame < center:
                left.append(iv)
            elif iv.start_frame > center:
                right.append(iv)
            else:
                here.append(iv)

        idx = len(self._nodes)
        self._nodes.append(_Node(center, here))
        self._nodes[idx].left = self._build(left)
        self._nodes[idx].right = self._build(right)
        return idx

    def query(self, frame: int) -> List[ActivityInterval]:
        """All intervals with ``start_frame <= frame < end_frame``."""
        result = []
        idx = self._root
        while idx >= 0:
            node = self._nodes[idx]
            result.extend(iv for iv in node.intervals if iv.contains(frame))
            if frame < node.center:
                idx = node.left
            elif frame > node.center:
                idx = node.right
            else:
                break
        return result
