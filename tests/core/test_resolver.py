from __future__ import annotations

import numpy as np
import pytest

from roomscan.core.depth.resolver import (
    ResolverConfig,
    ResolveSource,
    SizeHint,
    resolve_world_point,
    resolve_world_point_with_source,
    size_based_distance,
)
from roomscan.core.depth.sampler import DepthImage
from roomscan.core.frame_sources.base import HitRegion, RecordedFrame
from roomscan.core.geometry.coords import ViewTransform
from roomscan.core.geometry.vectors import ray_from_pixel
from roomscan.core.types import CameraIntrinsics, Pose, Vector3

INTR = CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0, width=640, height=480)


def _frame(depth_mm: int | None = None, hits=None) -> RecordedFrame:
    depth = None
    if depth_mm is not None:
        depth = DepthImage.from_millimeters(np.full((120, 160), depth_mm, dtype=np.uint16))
    return RecordedFrame(
        pose=Pose.identity(),
        intrinsics=INTR,
        timestamp_ns=1,
        view=ViewTransform(640, 480, 640, 480),
        depth=depth,
        hits=hits or [],
    )


def test_hit_test_wins_over_depth():
    hit = Vector3(1.0, 2.0, 3.0)
    frame = _frame(2000, hits=[HitRegion(320.0, 240.0, 5.0, hit)])
    point, source = resolve_world_point_with_source(frame, 321.0, 241.0)
    assert point == hit
    assert source is ResolveSource.HIT_TEST
    assert frame.depth_acquired == 0


def test_depth_point_lies_on_pixel_ray():
    frame = _frame(2000)
    point, source = resolve_world_point_with_source(frame, 320.0, 240.0)
    assert source is ResolveSource.DEPTH
    assert point.as_tuple() == pytest.approx((0.0, 0.0, -2.0), abs=1e-6)
    assert frame.depth_acquired == frame.depth_released == 1


def test_size_fallback_when_depth_is_missing():
    frame = _frame(None)
    point, source = resolve_world_point_with_source(
        frame, 320.0, 240.0, SizeHint(real_width_m=0.5, box_width_px=125.0)
    )
    assert source is ResolveSource.SIZE
    assert point.as_tuple() == pytest.approx((0.0, 0.0, -2.0), abs=1e-6)


def test_size_fallback_when_depth_is_invalid():
    frame = _frame(0)
    point = resolve_world_point(frame, 320.0, 240.0, SizeHint(0.5, 125.0))
    assert point.as_tuple() == pytest.approx((0.0, 0.0, -2.0), abs=1e-6)
    assert frame.depth_released == 1


def test_unresolvable_pixel_is_none():
    frame = _frame(0)
    assert resolve_world_point_with_source(frame, 320.0, 240.0) == (None, None)
    assert frame.depth_acquired == frame.depth_released == 1


def test_size_distance_is_clamped():
    cfg = ResolverConfig()
    assert size_based_distance(500.0, 0.5, 125.0, cfg) == pytest.approx(2.0)
    assert size_based_distance(500.0, 0.5, 1.0, cfg) == 10.0
    assert size_based_distance(500.0, 0.001, 1000.0, cfg) == 0.2
    assert size_based_distance(1.0, 0.5, 125.0, cfg) is None


def test_resolver_respects_configured_depth_range():
    frame = _frame(2000)
    cfg = ResolverConfig(depth_min_m=2.5, depth_max_m=5.0)
    assert resolve_world_point(frame, 320.0, 240.0, config=cfg) is None


def test_zero_focal_length_is_unresolved():
    intr = CameraIntrinsics(fx=0.0, fy=0.0, cx=320.0, cy=240.0, width=640, height=480)
    frame = RecordedFrame(
        pose=Pose.identity(),
        intrinsics=intr,
        timestamp_ns=1,
        view=ViewTransform(640, 480, 640, 480),
    )
    assert resolve_world_point_with_source(frame, 320.0, 240.0, SizeHint(0.5, 100.0)) == (
        None,
        None,
    )
    assert frame.depth_acquired == 0


def test_hit_test_still_works_without_intrinsics():
    hit = Vector3(0.5, 0.0, -1.0)
    intr = CameraIntrinsics(fx=0.0, fy=0.0, cx=320.0, cy=240.0, width=640, height=480)
    frame = RecordedFrame(
        pose=Pose.identity(),
        intrinsics=intr,
        timestamp_ns=1,
        view=ViewTransform(640, 480, 640, 480),
        hits=[HitRegion(320.0, 240.0, 5.0, hit)],
    )
    assert resolve_world_point_with_source(frame, 320.0, 240.0) == (hit, ResolveSource.HIT_TEST)


def _patch_depth_frame(view: ViewTransform, pose: Pose) -> RecordedFrame:
    # 4 m background with a 2 m patch around depth pixel (100, 75), i.e. image pixel (400, 300).
    mm = np.full((120, 160), 4000, dtype=np.uint16)
    mm[70:81, 95:106] = 2000
    return RecordedFrame(
        pose=pose,
        intrinsics=INTR,
        timestamp_ns=1,
        view=view,
        depth=DepthImage.from_millimeters(mm),
    )


def test_depth_point_on_scaled_view_uses_image_pixel_ray():
    pose = Pose(translation=Vector3(0.5, 1.2, -0.3))
    frame = _patch_depth_frame(ViewTransform(640, 480, 1280, 960), pose)
    point, source = resolve_world_point_with_source(frame, 800.0, 600.0)
    expected = ray_from_pixel(400.0, 300.0, INTR, pose).point_at(2.0)
    assert source is ResolveSource.DEPTH
    assert point.as_tuple() == pytest.approx(expected.as_tuple(), abs=1e-5)


def test_depth_point_on_rotated_view_uses_image_pixel_ray():
    view = ViewTransform(640, 480, 480, 640, rotation=90)
    vx, vy = view.image_to_view(400.0, 300.0)
    assert (vx, vy) == pytest.approx((180.0, 400.0))
    pose = Pose.identity()
    frame = _patch_depth_frame(view, pose)
    point, source = resolve_world_point_with_source(frame, vx, vy)
    expected = ray_from_pixel(400.0, 300.0, INTR, pose).point_at(2.0)
    assert source is ResolveSource.DEPTH
    assert point.as_tuple() == pytest.approx(expected.as_tuple(), abs=1e-5)