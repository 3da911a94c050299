"""2-D view pixel -> 3-D world point resolution.

Resolution tries, in order: the platform hit-test, the dense depth image
(window median along the pixel ray) and finally a size-based distance
estimate. A pixel that none of them can resolve yields `None`; callers skip
that observation for the frame.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from roomscan.core.depth.sampler import (
    DEFAULT_WINDOW_RADIUS,
    DEPTH_VALID_MAX_M,
    DEPTH_VALID_MIN_M,
    DepthImage,
    sample_depth_window,
)
from roomscan.core.geometry.coords import image_to_depth_pixel
from roomscan.core.geometry.vectors import ray_from_pixel
from roomscan.core.types import CameraIntrinsics, Point2, Pose, Vector3

logger = logging.getLogger(__name__)


class ARFrame(Protocol):
    """Per-frame view of the AR session consumed by the resolver."""

    pose: Pose
    intrinsics: CameraIntrinsics
    timestamp_ns: int

    def hit_test(self, view_x: float, view_y: float) -> Vector3 | None:
        """World position of the first surface hit at a view pixel, if any."""

    def acquire_depth_image(self) -> AbstractContextManager[DepthImage | None]:
        """Scoped access to the depth image; released when the context exits."""

    def view_to_image(self, x: float, y: float) -> Point2:
        """Convert view pixels to camera image pixels."""

    def image_to_view(self, x: float, y: float) -> Point2:
        """Convert camera image pixels to view pixels."""


class ResolveSource(str, Enum):
    HIT_TEST = "hit_test"
    DEPTH = "depth"
    SIZE = "size"


@dataclass(frozen=True)
class SizeHint:
    """Known real-world width of the target and its observed width in image pixels."""

    real_width_m: float
    box_width_px: float


@dataclass(frozen=True)
class ResolverConfig:
    window_radius: int = DEFAULT_WINDOW_RADIUS
    depth_min_m: float = DEPTH_VALID_MIN_M
    depth_max_m: float = DEPTH_VALID_MAX_M
    size_min_m: float = 0.2
    size_max_m: float = 10.0
    min_real_width_m: float = 0.01


def _clamp(v: float, lo: float, hi: float) -> float:
    return lo if v < lo else hi if v > hi else v


def size_based_distance(
    fx: float, real_width_m: float, box_width_px: float, config: ResolverConfig
) -> float | None:
    """Pinhole distance estimate `fx * W / w_px`, clamped to the configured range."""

    if fx <= 1.0:
        return None
    real_w = max(float(real_width_m), config.min_real_width_m)
    w_px = max(abs(float(box_width_px)), 1.0)
    return _clamp(fx * real_w / w_px, config.size_min_m, config.size_max_m)


def resolve_world_point_with_source(
    frame: ARFrame,
    view_x: float,
    view_y: float,
    size_hint: SizeHint | None = None,
    config: ResolverConfig | None = None,
) -> tuple[Vector3 | None, ResolveSource | None]:
    """Resolve a view pixel to a world point and report which stage produced it."""

    cfg = config or ResolverConfig()

    hit = frame.hit_test(view_x, view_y)
    if hit is not None:
        return hit, ResolveSource.HIT_TEST

    intr = frame.intrinsics
    if intr.fx <= 0.0 or intr.fy <= 0.0:
        logger.debug("Unusable intrinsics fx=%s fy=%s; pixel not resolved", intr.fx, intr.fy)
        return None, None

    u, v = frame.view_to_image(view_x, view_y)
    ray = ray_from_pixel(u, v, intr, frame.pose)

    with frame.acquire_depth_image() as depth:
        if depth is not None:
            dx, dy = image_to_depth_pixel(u, v, intr, depth.width, depth.height)
            depth_m = sample_depth_window(
                depth, dx, dy, cfg.window_radius, cfg.depth_min_m, cfg.depth_max_m
            )
            if depth_m is not None:
                return ray.point_at(depth_m), ResolveSource.DEPTH

    if size_hint is not None:
        z = size_based_distance(intr.fx, size_hint.real_width_m, size_hint.box_width_px, cfg)
        if z is not None:
            return ray.point_at(z), ResolveSource.SIZE

    logger.debug("Unresolved pixel (%.1f, %.1f)", view_x, view_y)
    return None, None


def resolve_world_point(
    frame: ARFrame,
    view_x: float,
    view_y: float,
    size_hint: SizeHint | None = None,
    config: ResolverConfig | None = None,
) -> Vector3 | None:
    """Resolve a view pixel to a world point, or `None` when nothing succeeds."""

    point, _source = resolve_world_point_with_source(frame, view_x, view_y, size_hint, config)
    return point
