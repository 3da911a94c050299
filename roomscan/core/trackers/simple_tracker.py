from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable

import numpy as np

from roomscan.core.types import TrackedPoint, Vector3

logger = logging.getLogger(__name__)

MERGE_DISTANCE_M = 0.20
TRACK_TIMEOUT_S = 3.0
NS_PER_SECOND = 1e9


class SimpleTracker:
    """A lightweight distance-only 3-D identity tracker.

    A new position reuses the id of the nearest known position when it lies
    within `merge_distance` meters; otherwise a fresh id is issued. Ids are
    never reused, even after `forget`. Targets closer together than
    `merge_distance` cannot be told apart.

    Not thread-safe: confine one instance to one session.
    """

    def __init__(self, merge_distance: float = MERGE_DISTANCE_M) -> None:
        if merge_distance <= 0:
            raise ValueError("merge_distance must be > 0")
        self.merge_distance = float(merge_distance)
        self.positions: dict[int, Vector3] = {}
        self._id_iter = itertools.count(0)

    def nearest(self, position: Vector3) -> tuple[int, float] | None:
        """Return (id, distance) of the closest known position, if any."""

        if not self.positions:
            return None
        ids = list(self.positions.keys())
        pts = np.array([self.positions[i].as_tuple() for i in ids], dtype=np.float64)
        d = np.linalg.norm(pts - np.array(position.as_tuple(), dtype=np.float64), axis=1)
        k = int(d.argmin())
        return ids[k], float(d[k])

    def assign_id(self, position: Vector3) -> int:
        """Return the id for `position`, updating or creating a registry entry."""

        match = self.nearest(position)
        if match is not None and match[1] < self.merge_distance:
            tid = match[0]
            self.positions[tid] = position
            return tid

        new_id = next(self._id_iter)
        self.positions[new_id] = position
        logger.debug("New track %d at %s", new_id, position.as_tuple())
        return new_id

    def forget(self, ids: Iterable[int]) -> None:
        """Drop entries so they no longer match future positions."""

        for tid in ids:
            self.positions.pop(tid, None)

    def reset(self) -> None:
        """Drop all entries; the id counter keeps counting."""

        self.positions.clear()


class SpeakerRegistry:
    """Recency bookkeeping for tracked speakers, keyed by tracker id."""

    def __init__(self) -> None:
        self.points: dict[int, TrackedPoint] = {}

    def upsert(self, tid: int, position: Vector3, timestamp_ns: int) -> TrackedPoint:
        """Update position and last-seen time of `tid`, adding it when unknown."""

        point = self.points.get(tid)
        if point is None:
            point = TrackedPoint(id=tid, position=position, last_seen_ns=int(timestamp_ns))
            self.points[tid] = point
        else:
            point.position = position
            point.last_seen_ns = int(timestamp_ns)
        return point

    def prune(self, now_ns: int, timeout_s: float = TRACK_TIMEOUT_S) -> list[int]:
        """Remove entries not seen for more than `timeout_s`; return their ids."""

        stale = [
            tid
            for tid, p in self.points.items()
            if (int(now_ns) - p.last_seen_ns) / NS_PER_SECOND > timeout_s
        ]
        for tid in stale:
            del self.points[tid]
        return stale

    def snapshot(self) -> list[TrackedPoint]:
        return [
            TrackedPoint(id=p.id, position=p.position, last_seen_ns=p.last_seen_ns)
            for p in self.points.values()
        ]

    def clear(self) -> None:
        self.points.clear()

    def __len__(self) -> int:
        return len(self.points)


def prune(
    registry: SpeakerRegistry,
    now_ns: int,
    timeout_s: float = TRACK_TIMEOUT_S,
    tracker: SimpleTracker | None = None,
) -> list[int]:
    """Prune stale speakers and make the tracker forget them too."""

    removed = registry.prune(now_ns, timeout_s)
    if tracker is not None and removed:
        tracker.forget(removed)
        logger.debug("Pruned stale tracks %s", removed)
    return removed
