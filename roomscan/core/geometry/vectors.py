"""Vector, ray and projection math.

All functions are pure and operate on `Vector3`/`Pose`/`CameraIntrinsics`.
Camera space follows the usual AR convention: right-handed, +Y up and the
camera looking down -Z.
"""

from __future__ import annotations

import math

import numpy as np

from roomscan.core.types import CameraIntrinsics, Point2, Pose, Quaternion, Ray, Vector3

NEAR_PLANE_Z = -0.1
CLIP_W_EPS = 1e-5


def quaternion_to_matrix(q: Quaternion) -> np.ndarray:
    """Convert a unit quaternion (x, y, z, w) to a 3x3 rotation matrix."""

    x, y, z, w = (float(c) for c in q)
    xx, yy, zz = x + x, y + y, z + z
    wx, wy, wz = w * xx, w * yy, w * zz
    xx2, yy2, zz2 = x * xx, y * yy, z * zz
    xy2, xz2, yz2 = x * yy, x * zz, y * zz
    return np.array(
        [
            [1.0 - (yy2 + zz2), xy2 - wz, xz2 + wy],
            [xy2 + wz, 1.0 - (xx2 + zz2), yz2 - wx],
            [xz2 - wy, yz2 + wx, 1.0 - (xx2 + yy2)],
        ],
        dtype=np.float64,
    )


def rotate_by_quaternion(q: Quaternion, v: Vector3) -> Vector3:
    """Rotate `v` by the quaternion `q`."""

    m = quaternion_to_matrix(q)
    return Vector3.from_iterable(m @ np.array(v.as_tuple(), dtype=np.float64))


def camera_direction_from_pixel(u: float, v: float, intrinsics: CameraIntrinsics) -> Vector3:
    """Return the unit camera-space direction through image pixel (u, v)."""

    x = (u - intrinsics.cx) / intrinsics.fx
    y = (v - intrinsics.cy) / intrinsics.fy
    return Vector3(x, y, -1.0).normalized()


def ray_from_pixel(u: float, v: float, intrinsics: CameraIntrinsics, pose: Pose) -> Ray:
    """Map an image pixel to a world-space ray starting at the camera position."""

    dir_cam = camera_direction_from_pixel(u, v, intrinsics)
    direction = rotate_by_quaternion(pose.rotation, dir_cam).normalized()
    return Ray(origin=pose.translation, direction=direction)


def view_matrix(pose: Pose) -> np.ndarray:
    """Return the 4x4 world->camera matrix for a camera-to-world pose."""

    r = quaternion_to_matrix(pose.rotation)
    t = np.array(pose.translation.as_tuple(), dtype=np.float64)
    out = np.eye(4, dtype=np.float64)
    out[:3, :3] = r.T
    out[:3, 3] = -r.T @ t
    return out


def projection_matrix(
    intrinsics: CameraIntrinsics, near: float = 0.1, far: float = 100.0
) -> np.ndarray:
    """Build an OpenGL-style projection matrix from pinhole intrinsics.

    The resulting NDC maps onto a view of the same size as the camera image.
    Screen y grows with camera +Y, the same convention `ray_from_pixel` uses,
    so a pixel turned into a ray projects back onto itself.
    """

    w = float(max(1, intrinsics.width))
    h = float(max(1, intrinsics.height))
    out = np.zeros((4, 4), dtype=np.float64)
    out[0, 0] = 2.0 * intrinsics.fx / w
    out[0, 2] = 1.0 - 2.0 * intrinsics.cx / w
    out[1, 1] = -2.0 * intrinsics.fy / h
    out[1, 2] = 2.0 * intrinsics.cy / h - 1.0
    out[2, 2] = -(far + near) / (far - near)
    out[2, 3] = -2.0 * far * near / (far - near)
    out[3, 2] = -1.0
    return out


def project_world_to_screen(
    point: Vector3,
    view: np.ndarray,
    proj: np.ndarray,
    view_w: float,
    view_h: float,
) -> Point2 | None:
    """Project a world point to view pixels.

    Returns `None` for points behind the near plane or with a degenerate clip w.
    """

    world = np.array([point.x, point.y, point.z, 1.0], dtype=np.float64)
    view_v = np.asarray(view, dtype=np.float64) @ world
    if view_v[2] > NEAR_PLANE_Z:
        return None

    clip = np.asarray(proj, dtype=np.float64) @ view_v
    w = float(clip[3])
    if abs(w) < CLIP_W_EPS:
        return None

    ndc_x = clip[0] / w
    ndc_y = clip[1] / w
    sx = (ndc_x * 0.5 + 0.5) * view_w
    sy = (1.0 - (ndc_y * 0.5 + 0.5)) * view_h
    return (float(sx), float(sy))


def distance(a: Vector3, b: Vector3) -> float:
    """Euclidean distance in meters."""

    return (a - b).length()


def yaw_degrees(pose: Pose) -> float:
    """Heading of the pose around +Y, in degrees within [0, 360)."""

    x, y, z, w = pose.rotation
    siny_cosp = 2.0 * (w * y + x * z)
    cosy_cosp = 1.0 - 2.0 * (y * y + z * z)
    yaw = math.degrees(math.atan2(siny_cosp, cosy_cosp))
    if yaw < 0.0:
        yaw += 360.0
    return yaw


def angle_difference(a: float, b: float) -> float:
    """Signed shortest difference `b - a` in degrees, within [-180, 180)."""

    return ((b - a + 540.0) % 360.0) - 180.0
