"""Speaker localization pipeline orchestration.

This module ties together detection, pixel-space conversion, world point
resolution, identity tracking and stale-track pruning into a single per-frame
processing step.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

import cv2
import numpy as np

from roomscan.core.depth.resolver import (
    ARFrame,
    ResolverConfig,
    SizeHint,
    resolve_world_point_with_source,
)
from roomscan.core.geometry.coords import box_center_to_image, box_width_in_image
from roomscan.core.geometry.vectors import ray_from_pixel
from roomscan.core.trackers.simple_tracker import (
    TRACK_TIMEOUT_S,
    SimpleTracker,
    SpeakerRegistry,
    prune,
)
from roomscan.core.triangulation import Triangulator
from roomscan.core.types import BoundingBox, FrameSummary, TrackedPoint, Vector3

logger = logging.getLogger(__name__)

_CV2_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


class SpeakerDetector(Protocol):
    """Minimal detector interface expected by `SpeakerPipeline`."""

    def detect(self, frame: np.ndarray) -> list[BoundingBox]:
        """Return boxes normalized to the given frame."""


class SpeakerPipeline:
    """End-to-end per-frame speaker localization.

    Responsibilities:
    - run the detector every `detect_every_n` frames, at most one call in flight
    - map box centers from the inference image to view pixels
    - resolve world points (hit-test, depth, size fallback)
    - assign stable ids and prune speakers not seen for `track_timeout_s`
    - optionally refine each speaker by triangulating its rays across frames

    The tracker and registry are injected and owned by one pipeline/session.
    """

    def __init__(
        self,
        detector: SpeakerDetector,
        tracker: SimpleTracker | None = None,
        registry: SpeakerRegistry | None = None,
        resolver_config: ResolverConfig | None = None,
        detect_every_n: int = 1,
        speaker_width_m: float | None = None,
        track_timeout_s: float = TRACK_TIMEOUT_S,
        image_rotation: int = 0,
        triangulator_factory: Callable[[], Triangulator] | None = None,
    ) -> None:
        if detect_every_n <= 0:
            raise ValueError("detect_every_n must be >= 1")
        self.detector = detector
        self.tracker = tracker or SimpleTracker()
        self.registry = registry or SpeakerRegistry()
        self.resolver_config = resolver_config or ResolverConfig()
        self.detect_every_n = int(detect_every_n)
        self.speaker_width_m = speaker_width_m
        self.track_timeout_s = float(track_timeout_s)
        self.image_rotation = int(image_rotation) % 360
        self.triangulator_factory = triangulator_factory
        self.triangulators: dict[int, Triangulator] = {}
        self.frame_id = 0
        self._busy = threading.Lock()
        self._last_speakers: list[TrackedPoint] = []

    def _inference_image(self, image: np.ndarray) -> np.ndarray:
        code = _CV2_ROTATIONS.get(self.image_rotation)
        return image if code is None else cv2.rotate(image, code)

    def _triangulate(self, frame: ARFrame, tid: int, ix: float, iy: float) -> Vector3 | None:
        intr = frame.intrinsics
        if self.triangulator_factory is None or intr.fx <= 0.0 or intr.fy <= 0.0:
            return None
        tri = self.triangulators.get(tid)
        if tri is None:
            tri = self.triangulators[tid] = self.triangulator_factory()
        ray = ray_from_pixel(ix, iy, intr, frame.pose)
        tri.add_ray(ray.origin, ray.direction)
        return tri.solve_if_ready()

    def _localize(
        self, frame: ARFrame, boxes: list[BoundingBox], image_w: int, image_h: int
    ) -> dict[str, int]:
        sources: dict[str, int] = {}
        for box in boxes:
            ix, iy = box_center_to_image(box, self.image_rotation, image_w, image_h)
            vx, vy = frame.image_to_view(ix, iy)
            hint = None
            if self.speaker_width_m is not None:
                hint = SizeHint(
                    real_width_m=self.speaker_width_m,
                    box_width_px=box_width_in_image(box, self.image_rotation, image_w, image_h),
                )
            point, source = resolve_world_point_with_source(
                frame, vx, vy, hint, self.resolver_config
            )
            if point is None or source is None:
                continue
            tid = self.tracker.assign_id(point)
            sources[source.value] = sources.get(source.value, 0) + 1
            refined = self._triangulate(frame, tid, ix, iy)
            if refined is not None:
                point = refined
                sources["triangulated"] = sources.get("triangulated", 0) + 1
            self.registry.upsert(tid, point, frame.timestamp_ns)
        return sources

    def process(self, frame: ARFrame, image: np.ndarray | None) -> FrameSummary:
        """Process one AR frame and its sensor image.

        Frames that are not scheduled for inference, or that arrive while a
        previous inference is still running, return the last known speakers.
        """

        self.frame_id += 1
        do_infer = image is not None and (
            self.detect_every_n <= 1 or self.frame_id % self.detect_every_n == 0
        )
        if not do_infer or not self._busy.acquire(blocking=False):
            return FrameSummary(
                frame_id=self.frame_id,
                timestamp_ns=frame.timestamp_ns,
                speakers=list(self._last_speakers),
                boxes=[],
            )

        try:
            timings: dict[str, float] = {}
            h, w = image.shape[:2]
            t0 = time.perf_counter()
            try:
                boxes = self.detector.detect(self._inference_image(image))
            except Exception:
                logger.exception("Speaker detection failed on frame %d", self.frame_id)
                boxes = []
            t1 = time.perf_counter()
            timings["detect_ms"] = (t1 - t0) * 1000.0

            sources = self._localize(frame, boxes, w, h)
            removed = prune(self.registry, frame.timestamp_ns, self.track_timeout_s, self.tracker)
            for tid in removed:
                self.triangulators.pop(tid, None)
            timings["localize_ms"] = (time.perf_counter() - t1) * 1000.0

            self._last_speakers = self.registry.snapshot()
            return FrameSummary(
                frame_id=self.frame_id,
                timestamp_ns=frame.timestamp_ns,
                speakers=list(self._last_speakers),
                boxes=boxes,
                inferred=True,
                sources=sources,
                timings=timings,
            )
        finally:
            self._busy.release()
