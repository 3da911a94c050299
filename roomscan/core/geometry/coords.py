"""Explicit conversions between the 2-D pixel spaces of an AR frame.

Three spaces are involved and they are never the same:

- view pixels: the display surface the user taps on
- image pixels: the camera sensor image (what intrinsics refer to)
- depth pixels: the (usually lower resolution) depth image

Inference additionally runs on a copy of the sensor image that may have been
rotated clockwise for portrait displays. All conversions use continuous pixel
coordinates (a point at the right edge of a W-wide image has x == W).
"""

from __future__ import annotations

from dataclasses import dataclass

from roomscan.core.types import BoundingBox, CameraIntrinsics, Point2

SUPPORTED_ROTATIONS = (0, 90, 180, 270)


def _check_rotation(rotation: int) -> int:
    r = int(rotation) % 360
    if r not in SUPPORTED_ROTATIONS:
        raise ValueError("rotation must be one of 0, 90, 180, 270")
    return r


def rotated_size(width: int, height: int, rotation: int) -> tuple[int, int]:
    """Return the (width, height) of an image after a clockwise rotation."""

    r = _check_rotation(rotation)
    if r in (90, 270):
        return height, width
    return width, height


def rotate_image_point(x: float, y: float, rotation: int, width: int, height: int) -> Point2:
    """Map a point of a `width` x `height` image into the image rotated clockwise."""

    r = _check_rotation(rotation)
    if r == 90:
        return (float(height) - y, x)
    if r == 180:
        return (float(width) - x, float(height) - y)
    if r == 270:
        return (y, float(width) - x)
    return (x, y)


def unrotate_image_point(x: float, y: float, rotation: int, width: int, height: int) -> Point2:
    """Inverse of `rotate_image_point`.

    `width`/`height` are the dimensions of the source (unrotated) image.
    """

    r = _check_rotation(rotation)
    if r == 90:
        return (y, float(height) - x)
    if r == 180:
        return (float(width) - x, float(height) - y)
    if r == 270:
        return (float(width) - y, x)
    return (x, y)


def image_to_depth_pixel(
    x: float, y: float, intrinsics: CameraIntrinsics, depth_width: int, depth_height: int
) -> Point2:
    """Scale an image-pixel coordinate into depth-image pixels."""

    img_w = max(1, int(intrinsics.width))
    img_h = max(1, int(intrinsics.height))
    return (x / img_w * depth_width, y / img_h * depth_height)


def box_center_to_image(
    box: BoundingBox, rotation: int, image_width: int, image_height: int
) -> Point2:
    """Map a normalized box center on the (possibly rotated) inference image to sensor pixels."""

    rw, rh = rotated_size(image_width, image_height, rotation)
    cx, cy = box.center
    return unrotate_image_point(cx * rw, cy * rh, rotation, image_width, image_height)


def box_width_in_image(box: BoundingBox, rotation: int, image_width: int, image_height: int) -> float:
    """Horizontal extent of a box in pixels of the inference image it was decoded from."""

    rw, _rh = rotated_size(image_width, image_height, rotation)
    return abs(box.x2 - box.x1) * rw


@dataclass(frozen=True)
class ViewTransform:
    """Display <-> sensor-image mapping for a frame.

    The view shows the sensor image rotated clockwise by `rotation` and
    stretched to `view_width` x `view_height`.
    """

    image_width: int
    image_height: int
    view_width: int
    view_height: int
    rotation: int = 0

    def __post_init__(self) -> None:
        _check_rotation(self.rotation)
        if self.image_width <= 0 or self.image_height <= 0:
            raise ValueError("image size must be > 0")
        if self.view_width <= 0 or self.view_height <= 0:
            raise ValueError("view size must be > 0")

    def _scale(self) -> tuple[float, float]:
        rw, rh = rotated_size(self.image_width, self.image_height, self.rotation)
        return float(self.view_width) / rw, float(self.view_height) / rh

    def image_to_view(self, x: float, y: float) -> Point2:
        rx, ry = rotate_image_point(x, y, self.rotation, self.image_width, self.image_height)
        sx, sy = self._scale()
        return (rx * sx, ry * sy)

    def view_to_image(self, x: float, y: float) -> Point2:
        sx, sy = self._scale()
        return unrotate_image_point(
            x / sx, y / sy, self.rotation, self.image_width, self.image_height
        )
