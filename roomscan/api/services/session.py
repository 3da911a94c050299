"""Measurement session: one tracker, one speaker registry and one room frame.

The core objects are not thread-safe; the session serializes access to them
with a lock so HTTP handlers running on worker threads can share one session.
"""

from __future__ import annotations

import logging
import threading

from roomscan.core.config.settings import RoomScanSettings
from roomscan.core.room.frame import (
    AxisFrame,
    PickedPoints,
    RoomExtent,
    RoomValidation,
    solve_room_frame,
    to_local,
    validate,
)
from roomscan.core.trackers.simple_tracker import SimpleTracker, SpeakerRegistry, prune
from roomscan.core.types import TrackedPoint, Vector3

logger = logging.getLogger(__name__)


class MeasurementSession:
    """Owns the per-session tracking and room state."""

    def __init__(self, settings: RoomScanSettings) -> None:
        self.settings = settings
        self.tracker = SimpleTracker(merge_distance=settings.merge_distance_m)
        self.registry = SpeakerRegistry()
        self.room: tuple[AxisFrame, RoomExtent] | None = None
        self._lock = threading.Lock()

    def observe(
        self, positions: list[Vector3], timestamp_ns: int, timeout_s: float | None = None
    ) -> tuple[list[int], list[int]]:
        """Assign ids to world positions seen at `timestamp_ns`, then prune stale ones.

        Returns (assigned ids in input order, removed ids).
        """

        timeout = self.settings.track_timeout_s if timeout_s is None else float(timeout_s)
        with self._lock:
            ids = []
            for p in positions:
                tid = self.tracker.assign_id(p)
                self.registry.upsert(tid, p, timestamp_ns)
                ids.append(tid)
            removed = prune(self.registry, timestamp_ns, timeout, self.tracker)
        if removed:
            logger.info("Removed stale speakers %s", removed)
        return ids, removed

    def speakers(self) -> list[TrackedPoint]:
        with self._lock:
            return self.registry.snapshot()

    def solve_room(
        self, picked: PickedPoints
    ) -> tuple[AxisFrame, RoomExtent, RoomValidation] | None:
        """Solve and validate a room; only accepted rooms replace the session's room."""

        solved = solve_room_frame(picked)
        if solved is None:
            return None
        frame, extent = solved
        result = validate(
            frame,
            extent,
            min_length_m=self.settings.min_room_length_m,
            orthogonality_tol=self.settings.orthogonality_tol,
        )
        if result.ok:
            with self._lock:
                self.room = (frame, extent)
        else:
            logger.info("Room rejected: %s", result.reason)
        return frame, extent, result

    def local_position(self, point: Vector3) -> tuple[float, float, float] | None:
        room = self.room
        if room is None:
            return None
        return to_local(room[0], point)

    def reset_speakers(self) -> None:
        with self._lock:
            self.registry.clear()
            self.tracker.reset()
